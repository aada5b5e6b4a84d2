"""
AgentDesk FastAPI Backend
Main application entry point.

Features:
- Health check with subsystem status
- Request correlation IDs for log tracing
- Structured JSON logging, optionally mirrored to a log file
- Rate limiting on the language-model endpoints
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from starlette.middleware.gzip import GZipMiddleware
from starlette.requests import Request
from starlette.responses import Response
import logging
import uvicorn

from api.routes import router as api_router
from api.middleware import (
    StructuredFormatter,
    correlation_id_middleware,
    configure_structured_logging,
    limiter,
    rate_limit_exceeded_handler,
)
from api.health import APP_VERSION, build_health_response, mark_startup
from api.models import RootResponse, StatusResponse
from config.settings import get_settings, has_llm_credentials
from services.logging_service import configure_file_logging
from storage.database import init_db, check_integrity

logger = logging.getLogger(__name__)
SENSITIVE_KEYS = {"api_key", "secret_key", "password", "token", "authorization"}


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    """Configure logging and make sure the schema exists before serving."""
    settings = get_settings()
    configure_structured_logging(settings.log_level)
    if settings.log_directory:
        try:
            log_file = configure_file_logging(settings.log_directory, StructuredFormatter())
            logger.info("File logging enabled: %s", log_file)
        except OSError:
            logger.warning("Could not enable file logging in %s", settings.log_directory, exc_info=True)
    mark_startup()
    logger.info("AgentDesk backend starting up (env=%s)", settings.environment)

    try:
        init_db()
        logger.info("Database initialized successfully")
    except (RuntimeError, ValueError, TypeError):
        logger.exception("Failed to initialize database schema")
        raise

    ok, result = check_integrity()
    if not ok:
        logger.critical("Database integrity check failed: %s (continuing)", result)

    if not has_llm_credentials():
        logger.warning("GROQ_API_KEY is not set. AI strategy endpoints will return errors.")

    yield
    logger.info("AgentDesk backend shut down")


app = FastAPI(
    title="AgentDesk API",
    description="Simulated trading agents, AI strategies and portfolio tracking",
    version=APP_VERSION,
    lifespan=_lifespan,
    openapi_tags=[
        {"name": "Agents", "description": "Trading agent management and communication"},
        {"name": "Strategies", "description": "AI strategy generation and adaptation"},
        {"name": "Orders", "description": "Simulated order placement"},
        {"name": "Portfolio", "description": "Positions, valuation and rebalancing"},
        {"name": "Market", "description": "Mock market data"},
        {"name": "Audit", "description": "Audit trail"},
    ],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Compress responses >= 500 bytes
app.add_middleware(GZipMiddleware, minimum_size=500)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _redact_payload(value):
    if isinstance(value, dict):
        redacted = {}
        for key, item in value.items():
            if str(key).lower() in SENSITIVE_KEYS:
                redacted[key] = "***REDACTED***"
            else:
                redacted[key] = _redact_payload(item)
        return redacted
    if isinstance(value, list):
        return [_redact_payload(item) for item in value]
    return value


@app.middleware("http")
async def _correlation_id(request: Request, call_next):
    return await correlation_id_middleware(request, call_next)


@app.middleware("http")
async def security_logging_middleware(request: Request, call_next):
    """Log write operations with redacted query parameters."""
    if request.method in {"POST", "PUT", "PATCH", "DELETE"}:
        logger.info(
            "HTTP %s %s user=%s query=%s",
            request.method,
            request.url.path,
            request.headers.get("x-user-id", "-"),
            _redact_payload(dict(request.query_params.items())),
        )
    response: Response = await call_next(request)
    return response


@app.get("/", response_model=RootResponse)
async def root():
    """Root endpoint."""
    return {"message": "AgentDesk API"}


@app.get("/status", response_model=StatusResponse)
async def status():
    """Health check: database connectivity, language-model configuration, uptime."""
    return build_health_response()


app.include_router(api_router)


if __name__ == "__main__":
    uvicorn.run(
        "app:app",
        host="127.0.0.1",
        port=8000,
        reload=get_settings().environment == "development",
    )
