from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from prometheus_client import REGISTRY
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from recruitment.authz.catalog import seed_catalog
from recruitment.core.config import get_settings
from recruitment.core.database import Base, get_db
from recruitment.main import app, install_authorization


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch) -> Generator[TestClient, None, None]:
    monkeypatch.setenv("METRICS_ENABLED", "true")
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    seed_catalog(session)

    def override_get_db() -> Generator[Session, None, None]:
        yield session

    get_settings.cache_clear()
    install_authorization(app, SessionLocal, get_settings())
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    app.state.authorization_guard = None
    app.state.permission_cache = None
    session.close()
    Base.metadata.drop_all(bind=engine)
    get_settings.cache_clear()


def _headers(role: str) -> dict[str, str]:
    settings = get_settings()
    token = jwt.encode({"sub": "metrics-user", "role": {"_id": "r1", "name": role}}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return {"Authorization": f"Bearer {token}"}


def _ability_denials() -> float:
    return REGISTRY.get_sample_value("authz_decisions_total", {"outcome": "deny", "mode": "ability"}) or 0.0


def test_metrics_endpoint_exposes_http_and_authz_metrics(client: TestClient) -> None:
    denials_before = _ability_denials()
    assert client.get("/health").status_code == 200
    assert client.get("/api/v1/permissions", headers=_headers("HR")).status_code == 403
    assert client.get("/api/v1/permissions", headers=_headers("HR")).status_code == 403

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    body = metrics.text

    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert 'path="/health"' in body
    assert 'path="/api/v1/permissions"' in body
    assert "authz_decisions_total" in body
    assert _ability_denials() - denials_before == 2
    assert "authz_permission_cache_hit_total" in body
    assert "authz_permission_cache_miss_total" in body
    assert "authz_db_queries_total" in body


def test_metrics_endpoint_hidden_when_disabled(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("METRICS_ENABLED", "false")
    get_settings.cache_clear()

    assert client.get("/metrics").status_code == 404
