"""
Tests for health check endpoints.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.dependencies import build_engine
from app.main import app
from conftest import make_settings

client = TestClient(app)


@pytest.fixture
def engine():
    engine = build_engine(make_settings(), use_database=False)
    app.state.engine = engine
    yield engine
    del app.state.engine


def test_healthz_endpoint():
    """Test the basic health check endpoint."""
    response = client.get("/healthz")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "booking-engine"


def test_readyz_with_in_memory_ledger(engine, monkeypatch):
    """Without a database URL the in-memory ledger is always ready."""
    monkeypatch.setattr(settings, "SUPABASE_DB_URL", None)

    response = client.get("/readyz")

    assert response.status_code == 200
    data = response.json()
    assert data["overall_ok"] is True
    assert data["checks"]["database"] == {"ok": True, "ledger": "in_memory"}
    assert data["checks"]["schedule"]["source"] == "env"
    assert data["checks"]["schedule"]["slot_minutes"] == 60
    assert data["checks"]["calendar"]["configured"] is False
    assert data["checks"]["notifications"]["configured"] is False


def test_readyz_database_unhealthy(engine, monkeypatch):
    """An unhealthy pool fails readiness when a database is configured."""
    monkeypatch.setattr(settings, "SUPABASE_DB_URL", "postgresql://localhost/booking")

    with patch(
        "app.routes.health.db_health_check",
        new=AsyncMock(return_value={"healthy": False, "error": "pool not initialized"}),
    ):
        response = client.get("/readyz")

    data = response.json()
    assert data["overall_ok"] is False
    assert data["checks"]["database"]["ok"] is False
    assert data["checks"]["database"]["error"] == "pool not initialized"


def test_readyz_database_check_raises(engine, monkeypatch):
    monkeypatch.setattr(settings, "SUPABASE_DB_URL", "postgresql://localhost/booking")

    with patch(
        "app.routes.health.db_health_check",
        new=AsyncMock(side_effect=ConnectionError("refused")),
    ):
        response = client.get("/readyz")

    data = response.json()
    assert data["overall_ok"] is False
    assert "ConnectionError" in data["checks"]["database"]["error"]
