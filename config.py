"""
config.py
---------
Central configuration module. Loads all environment variables
from the .env file and exposes them as typed constants.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from utils.errors import ConfigurationError

load_dotenv()


# ── PostgreSQL ────────────────────────────────────────────
# Server-level database used to create the application database.
MASTER_DATABASE_URL: str = os.getenv("MASTER_DATABASE_URL", "")
# Application database that holds the users table.
DATABASE_URL: str = os.getenv("DATABASE_URL", "")
DB_CONNECT_TIMEOUT: int = int(os.getenv("DB_CONNECT_TIMEOUT", "10"))

# ── Schema bootstrap ──────────────────────────────────────
SCRIPTS_FOLDER: str = os.getenv("SCRIPTS_FOLDER", "sql")

# ── Logging ───────────────────────────────────────────────
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE: str = os.getenv("LOG_FILE", "")


def validate_config(
    master_url: Optional[str] = None,
    database_url: Optional[str] = None,
    scripts_folder: Optional[str] = None,
) -> None:
    """
    Fail fast on settings the application cannot start without.

    Arguments default to the module constants; they exist so callers (and
    tests) can validate explicit values.

    Raises:
        ConfigurationError: naming the first missing or unusable setting.
    """
    master_url = MASTER_DATABASE_URL if master_url is None else master_url
    database_url = DATABASE_URL if database_url is None else database_url
    scripts_folder = SCRIPTS_FOLDER if scripts_folder is None else scripts_folder

    if not master_url.strip():
        raise ConfigurationError("MASTER_DATABASE_URL cannot be null or empty.")
    if not database_url.strip():
        raise ConfigurationError("DATABASE_URL cannot be null or empty.")
    if not scripts_folder.strip():
        raise ConfigurationError("SCRIPTS_FOLDER cannot be null or empty.")
    if not Path(scripts_folder).is_dir():
        raise ConfigurationError(f"SCRIPTS_FOLDER '{scripts_folder}' is not a directory.")
