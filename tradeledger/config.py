"""Environment-driven settings shared by the CLI, the web app and the store.

Values come from the process environment; entry points call ``load_settings()``
first so a local ``.env`` file is honoured.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_DATABASE_URL = "sqlite:///tradeledger.db"
DEFAULT_BROKER = "Schwab"


def load_settings(override: bool = False) -> None:
    """Load variables from a .env file into the environment (if present)."""
    load_dotenv(override=override)


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def get_default_broker() -> str:
    return os.environ.get("TRADELEDGER_BROKER", DEFAULT_BROKER)


def get_log_dir() -> str:
    return os.environ.get("TRADELEDGER_LOG_DIR", "logs")


def get_log_level() -> str:
    return os.environ.get("TRADELEDGER_LOG_LEVEL", "INFO").upper()


def resolve_db_url(value: str = None) -> str:
    """Turn a --db argument into a SQLAlchemy URL.

    Full URLs are passed through; a bare path becomes an absolute sqlite URL.
    """
    if not value:
        return get_database_url()
    if "://" in value:
        return value
    return f"sqlite:///{Path(value).expanduser().resolve()}"
