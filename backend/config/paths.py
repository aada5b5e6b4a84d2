"""
Data directory and default database location.

The service keeps its SQLite file in a single data directory:
AGENTDESK_APP_DATA_DIR when set, otherwise ./data under the working directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


DATA_DIR_NAME = "data"
DATABASE_FILE_NAME = "agentdesk.db"


def resolve_data_dir(override: Optional[str] = None) -> Path:
    """Return the data directory, creating it if needed."""
    if override and override.strip():
        target = Path(override.strip()).expanduser()
    else:
        target = Path.cwd() / DATA_DIR_NAME
    target = target.resolve()
    target.mkdir(parents=True, exist_ok=True)
    return target


def sqlite_url(db_path: Path) -> str:
    # SQLAlchemy sqlite URL requires 3 slashes + absolute path.
    return f"sqlite:///{db_path.resolve()}"


def default_database_url(data_dir: Optional[str] = None) -> str:
    return sqlite_url(resolve_data_dir(data_dir) / DATABASE_FILE_NAME)
