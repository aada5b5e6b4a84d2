"""
Request middleware for the AgentDesk API.

Provides:
- Request correlation IDs for log tracing
- Structured JSON logging
- Rate limiting for the language-model endpoints
"""
import json
import logging
import time
import uuid
from contextvars import ContextVar
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

logger = logging.getLogger(__name__)

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")

# Each generation call spends paid model tokens.
AI_RATE_LIMIT = "10/minute"


def get_request_id() -> str:
    """Get the current request correlation ID."""
    return request_id_ctx.get("")


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["120/minute"],
    storage_uri="memory://",
)


def rate_limit_exceeded_handler(_request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return rate-limit rejections as JSON."""
    return JSONResponse(
        status_code=429,
        content={
            "detail": f"Rate limit exceeded: {exc.detail}",
            "retry_after": str(getattr(exc, "retry_after", 60)),
        },
    )


async def correlation_id_middleware(request: Request, call_next) -> Response:
    """
    Attach a correlation ID to every request.
    - Reuses an incoming X-Request-ID or mints one
    - Echoes it on the response
    - Logs method, path, status and duration
    """
    rid = request.headers.get("x-request-id", "").strip() or uuid.uuid4().hex[:16]
    token = request_id_ctx.set(rid)
    start = time.monotonic()
    try:
        response: Response = await call_next(request)
        elapsed_ms = (time.monotonic() - start) * 1000
        response.headers["X-Request-ID"] = rid
        logger.log(
            logging.DEBUG if request.method == "GET" else logging.INFO,
            "req=%s method=%s path=%s status=%d duration_ms=%.1f",
            rid,
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response
    except Exception:
        logger.exception(
            "req=%s method=%s path=%s duration_ms=%.1f unhandled_exception",
            rid,
            request.method,
            request.url.path,
            (time.monotonic() - start) * 1000,
        )
        raise
    finally:
        request_id_ctx.reset(token)


class StructuredFormatter(logging.Formatter):
    """JSON log formatter that includes the request correlation ID."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        rid = get_request_id()
        if rid:
            payload["request_id"] = rid
        if record.exc_info and record.exc_info[1]:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_structured_logging(log_level: str = "INFO") -> None:
    """
    Switch the root logger to structured JSON output.
    Existing handlers keep their targets but get the JSON formatter.
    """
    root = logging.getLogger()
    level = getattr(logging, log_level.upper(), logging.INFO)
    root.setLevel(level)

    formatter = StructuredFormatter()
    for handler in root.handlers:
        handler.setFormatter(formatter)

    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler) for h in root.handlers):
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(formatter)
        root.addHandler(console)
