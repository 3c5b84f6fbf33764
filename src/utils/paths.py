"""File path resolution using platformdirs.

In a source checkout the database lives at the project root. Installed
copies (STORECOMMAND_USE_APPDIRS=1) use the per-user data directory.
"""

import os
from pathlib import Path

import platformdirs

APP_NAME = "storecommand"


def get_data_dir() -> Path:
    """Return the directory for persistent data (DB, key file)."""
    if os.environ.get("STORECOMMAND_USE_APPDIRS", "").lower() in ("1", "true"):
        return Path(platformdirs.user_data_dir(APP_NAME, appauthor=False))
    return Path(__file__).resolve().parent.parent.parent


def get_default_db_path() -> Path:
    """Return the default SQLite database file path."""
    data_dir = get_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir / "storecommand.db"
