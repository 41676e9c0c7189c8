from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from subtrack.core.config import get_settings
from subtrack.core.database import Base, get_db
from subtrack.main import app


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def configure_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("METRICS_ENABLED", "true")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def test_metrics_endpoint_exposes_http_and_subscription_metrics(client: TestClient) -> None:
    health = client.get("/health")
    assert health.status_code == 200

    created = client.post(
        "/subscriptions",
        json={
            "service_name": "Metrics Plus",
            "price": 250,
            "user_id": "0b4c3a52-2f1e-4c8b-9d7a-6e5f4d3c2b1a",
            "start_date": "01-2024",
            "end_date": "03-2024",
        },
    )
    assert created.status_code == 201

    fetched = client.get(f"/subscriptions/{created.json()['id']}")
    assert fetched.status_code == 200

    total = client.get("/subscriptions/total-cost", params={"start_date": "01-2024", "end_date": "12-2024"})
    assert total.status_code == 200

    missing = client.get("/subscriptions/999999")
    assert missing.status_code == 404

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    body = metrics.text

    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert "subscription_operations_total" in body
    assert "subscription_total_cost_duration_seconds" in body

    assert 'path="/health"' in body
    assert 'path="/subscriptions/{subscription_id}"' in body
    assert 'operation="create",outcome="ok"' in body
    assert 'operation="get",outcome="not_found"' in body


def test_metrics_endpoint_hidden_when_disabled(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("METRICS_ENABLED", "false")
    get_settings.cache_clear()

    response = client.get("/metrics")
    assert response.status_code == 404
