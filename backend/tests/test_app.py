"""
Tests for AgentDesk application wiring: banner, health, middleware.
"""

import logging

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app import app
from api import health
from api.middleware import StructuredFormatter, request_id_ctx
from storage.database import Base, get_db
from services.logging_service import configure_file_logging

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_app.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    """Override database dependency for testing."""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()

client = TestClient(app)


@pytest.fixture(autouse=True)
def setup_database():
    """Create and drop test database for each test."""
    app.dependency_overrides[get_db] = override_get_db
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    app.dependency_overrides.pop(get_db, None)


def test_root():
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "AgentDesk API"}


def test_status(monkeypatch):
    """Test status endpoint."""
    monkeypatch.setattr(health, "check_db_connection", lambda: True)
    monkeypatch.setattr(health, "has_llm_credentials", lambda: True)
    response = client.get("/status")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "AgentDesk Backend"
    assert data["checks"]["database"]["status"] == "up"
    assert "version" in data
    assert data["uptime_seconds"] >= 0


def test_status_degraded_without_llm_key(monkeypatch):
    monkeypatch.setattr(health, "check_db_connection", lambda: True)
    monkeypatch.setattr(health, "has_llm_credentials", lambda: False)
    data = client.get("/status").json()
    assert data["status"] == "degraded"
    assert data["checks"]["llm"]["status"] == "missing_api_key"


def test_status_unhealthy_without_database(monkeypatch):
    monkeypatch.setattr(health, "check_db_connection", lambda: False)
    assert client.get("/status").json()["status"] == "unhealthy"


def test_request_id_echoed():
    response = client.get("/", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"
    assert len(client.get("/").headers["X-Request-ID"]) == 16


def test_structured_formatter_includes_request_id():
    token = request_id_ctx.set("req-42")
    try:
        record = logging.LogRecord("agentdesk", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        output = StructuredFormatter().format(record)
    finally:
        request_id_ctx.reset(token)
    assert '"message": "hello world"' in output
    assert '"request_id": "req-42"' in output


def test_file_logging_replaces_previous_handler(tmp_path):
    root = logging.getLogger()
    before = len(root.handlers)
    log_file = configure_file_logging(str(tmp_path))
    configure_file_logging(str(tmp_path))
    try:
        assert log_file.name == "agentdesk.log"
        assert len(root.handlers) == before + 1
    finally:
        handler = next(h for h in root.handlers if h.name == "agentdesk_file_handler")
        root.removeHandler(handler)
        handler.close()
