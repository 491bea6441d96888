"""
Database Module
"""
from .connection import (
    init_database,
    close_database,
    create_derived_tables,
    create_session_factory,
    get_db,
    get_session_factory,
)
from .materialize import replace_table
from .models import Base

__all__ = [
    "init_database",
    "close_database",
    "create_derived_tables",
    "create_session_factory",
    "get_db",
    "get_session_factory",
    "replace_table",
    "Base",
]
