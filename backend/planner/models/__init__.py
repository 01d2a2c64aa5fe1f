from planner.models.user import User
from planner.models.channel import Channel, ChannelVisibility
from planner.models.task import Task, TaskStatus, DEFAULT_PRIORITY_LEVEL
from planner.models.timeblock import TimeBlock, TimeBlockStatus, CalendarProvider
from planner.models.integration import CalendarIntegration, SyncMode
from planner.models.focus_session import FocusSession, FocusSessionStatus

__all__ = [
    "User",
    "Channel",
    "ChannelVisibility",
    "Task",
    "TaskStatus",
    "DEFAULT_PRIORITY_LEVEL",
    "TimeBlock",
    "TimeBlockStatus",
    "CalendarProvider",
    "CalendarIntegration",
    "SyncMode",
    "FocusSession",
    "FocusSessionStatus",
]
