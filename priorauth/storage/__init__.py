"""Storage module for database operations."""
from .database import (
    get_db,
    init_db,
    close_db,
    get_engine,
    get_session_factory,
    create_engine_for_url,
    create_session_factory,
)
from .interfaces import PriorAuthStore, ReferenceDataSource
from .sql_store import SqlPriorAuthStore, SqlReferenceDataSource
from .seed_data import seed_reference_data

__all__ = [
    "get_db",
    "init_db",
    "close_db",
    "get_engine",
    "get_session_factory",
    "create_engine_for_url",
    "create_session_factory",
    "PriorAuthStore",
    "ReferenceDataSource",
    "SqlPriorAuthStore",
    "SqlReferenceDataSource",
    "seed_reference_data",
]
