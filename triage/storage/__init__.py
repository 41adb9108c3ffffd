"""Persistence layer."""

from .database import DatabaseManager, to_db_datetime

__all__ = ["DatabaseManager", "to_db_datetime"]
