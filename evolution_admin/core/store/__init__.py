"""Persistence collaborators for users and locations."""
from .database import Database, create_db_engine
from .users import UserStore, SqlUserStore, compile_filters
from .locales import LocalStore, SqlLocalStore, HttpLocalStore

__all__ = [
    "Database",
    "create_db_engine",
    "UserStore",
    "SqlUserStore",
    "compile_filters",
    "LocalStore",
    "SqlLocalStore",
    "HttpLocalStore",
]
