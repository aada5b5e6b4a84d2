"""
Health check payload for /status.
Reports database connectivity, language-model configuration and uptime.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict

from config.settings import has_llm_credentials
from storage.database import check_db_connection

logger = logging.getLogger(__name__)

_startup_time: float = time.monotonic()
_startup_utc: str = datetime.now(timezone.utc).isoformat()

APP_VERSION = "0.1.0"
SERVICE_NAME = "AgentDesk Backend"


def mark_startup() -> None:
    """Call once at startup to record the process start time."""
    global _startup_time, _startup_utc
    _startup_time = time.monotonic()
    _startup_utc = datetime.now(timezone.utc).isoformat()


def build_health_response() -> Dict[str, Any]:
    """
    Build the health payload.

    status is "unhealthy" when the database is unreachable and "degraded"
    when no language-model key is configured (AI endpoints will fail).
    """
    checks: Dict[str, Dict[str, Any]] = {}

    db_ok = check_db_connection()
    checks["database"] = {"status": "up" if db_ok else "down"}

    llm_ok = has_llm_credentials()
    checks["llm"] = {"status": "configured" if llm_ok else "missing_api_key"}

    if not db_ok:
        status = "unhealthy"
    elif not llm_ok:
        status = "degraded"
    else:
        status = "healthy"

    return {
        "status": status,
        "service": SERVICE_NAME,
        "version": APP_VERSION,
        "uptime_seconds": round(time.monotonic() - _startup_time, 1),
        "started_at": _startup_utc,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
