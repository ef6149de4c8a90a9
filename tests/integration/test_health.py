"""
Tests for health check endpoints.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from engagement.routes import health
from tests.fakes import FakeRedisClient


@pytest.fixture
def client():
    app = FastAPI()
    app.include_router(health.router)
    return TestClient(app)


def _db(result):
    async def check():
        if isinstance(result, Exception):
            raise result
        return result

    return check


def test_healthz_endpoint(client):
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_readyz_all_services_healthy(client, monkeypatch):
    monkeypatch.setattr(health, "fast_redis", FakeRedisClient())
    monkeypatch.setattr(
        health,
        "db_health_check",
        _db({"healthy": True, "pool_stats": {"pool_size": 3, "pool_available": 2}}),
    )

    data = client.get("/readyz").json()

    assert data["overall_ok"] is True
    assert data["checks"]["redis"]["ok"] is True
    assert data["checks"]["database"]["ok"] is True
    assert data["checks"]["database"]["pool_size"] == 3


def test_readyz_redis_down(client, monkeypatch):
    redis_client = FakeRedisClient()
    redis_client.raw.fail = True
    monkeypatch.setattr(health, "fast_redis", redis_client)
    monkeypatch.setattr(health, "db_health_check", _db({"healthy": True}))

    data = client.get("/readyz").json()

    assert data["overall_ok"] is False
    assert data["checks"]["redis"]["ok"] is False


def test_readyz_database_error(client, monkeypatch):
    monkeypatch.setattr(health, "fast_redis", FakeRedisClient())
    monkeypatch.setattr(health, "db_health_check", _db(RuntimeError("pool closed")))

    data = client.get("/readyz").json()

    assert data["overall_ok"] is False
    assert "pool closed" in data["checks"]["database"]["error"]


def test_application_mounts_every_router():
    from engagement.main import app

    paths = {route.path for route in app.routes}

    assert {"/healthz", "/readyz", "/presence", "/presence/heartbeat", "/email/webhook"} <= paths


@pytest.mark.asyncio
async def test_db_health_check_reports_pool_health(monkeypatch):
    from engagement.db import pool

    async def health_check():
        return {"healthy": True, "pool_stats": {"pool_size": 1}}

    monkeypatch.setattr(pool.db_pool, "health_check", health_check)

    assert await pool.db_health_check() == {"healthy": True, "pool_stats": {"pool_size": 1}}
