"""
File logging helper.
"""
from __future__ import annotations

from pathlib import Path
import logging


_FILE_HANDLER_TAG = "agentdesk_file_handler"
LOG_FILE_NAME = "agentdesk.log"


def configure_file_logging(log_directory: str, formatter: logging.Formatter | None = None) -> Path:
    """
    Attach a file handler writing to <log_directory>/agentdesk.log.
    Calling it again replaces the previous handler instead of stacking another.
    """
    log_dir = Path(log_directory).expanduser().resolve()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root_logger = logging.getLogger()
    existing = next((h for h in root_logger.handlers if getattr(h, "name", "") == _FILE_HANDLER_TAG), None)
    if existing:
        root_logger.removeHandler(existing)
        existing.close()

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.name = _FILE_HANDLER_TAG
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter or logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
    root_logger.addHandler(file_handler)
    if root_logger.level > logging.INFO:
        root_logger.setLevel(logging.INFO)
    return log_file
