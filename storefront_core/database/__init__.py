"""
Database Module
"""
from .connection import (
    init_database,
    close_database,
    check_database_health,
    get_session_factory,
    session_scope,
)
from .models import Base, EventRecord, ProductRecord, StoreRecord

__all__ = [
    "init_database",
    "close_database",
    "check_database_health",
    "get_session_factory",
    "session_scope",
    "Base",
    "EventRecord",
    "ProductRecord",
    "StoreRecord",
]
