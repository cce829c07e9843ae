"""Singleton instances shared across routers."""

from tradeledger.config import get_database_url, load_settings
from tradeledger.database.db_manager import DatabaseManager

load_settings()

db = DatabaseManager(db_url=get_database_url())


def get_db() -> DatabaseManager:
    """FastAPI dependency returning the shared DatabaseManager."""
    return db
