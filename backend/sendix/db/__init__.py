"""
Database module containing session management and base models.
"""
from sendix.db.session import get_db, async_session_maker, engine
from sendix.db.base import Base

__all__ = ["get_db", "async_session_maker", "engine", "Base"]
