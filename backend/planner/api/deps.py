from typing import Annotated
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from planner.database import get_db

# Type alias for cleaner dependency injection
Database = Annotated[AsyncSession, Depends(get_db)]
