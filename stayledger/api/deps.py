"""API dependencies for common operations."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stayledger.database import get_db

# One session per request; committed on success, rolled back on error
DbSession = Annotated[AsyncSession, Depends(get_db)]
