"""Tests for the HTTP layer, backed by the in-memory contact store."""
import logging
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from api.main import app
from api.routes.identify import get_identity_service
from identity.formatter import project
from identity.resolver import IdentityResolver
from identity.service import IdentityService


class StoreBackedService:
    """IdentityService stand-in that resolves against a gateway directly."""

    def __init__(self, store):
        self.store = store

    async def identify(self, email, phone):
        resolution = await IdentityResolver(self.store).resolve(email, phone)
        return project(resolution.primary, resolution.contacts)


@pytest.fixture
def client(store):
    """Client without lifespan, so no database engine is created."""
    app.dependency_overrides[get_identity_service] = lambda: StoreBackedService(store)
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health_check(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "Identity Reconciliation"}


def test_identify_new_then_linked_contact(client):
    first = client.post("/identify", json={"email": "lorraine@hillvalley.edu", "phoneNumber": "123456"})
    second = client.post("/identify", json={"email": "mcfly@hillvalley.edu", "phoneNumber": 123456})

    assert first.status_code == 200
    assert first.json() == {"contact": {
        "primaryContactId": 1,
        "emails": ["lorraine@hillvalley.edu"],
        "phoneNumbers": ["123456"],
        "secondaryContactIds": [],
    }}
    assert second.status_code == 200
    assert second.json() == {"contact": {
        "primaryContactId": 1,
        "emails": ["lorraine@hillvalley.edu", "mcfly@hillvalley.edu"],
        "phoneNumbers": ["123456"],
        "secondaryContactIds": [2],
    }}


def test_identify_normalizes_email_before_matching(client, store):
    store.add("doc@hillvalley.edu", None)

    response = client.post("/identify", json={"email": " Doc@HillValley.edu "})

    assert response.status_code == 200
    assert response.json()["contact"]["secondaryContactIds"] == []
    assert len(store.rows) == 1


@pytest.mark.parametrize("body", [{}, {"email": None, "phoneNumber": None}, {"email": "", "phoneNumber": ""}])
def test_identify_requires_email_or_phone(client, store, body):
    response = client.post("/identify", json=body)
    assert response.status_code == 400
    assert response.json() == {"error": "email or phoneNumber is required"}
    assert store.calls == []


def test_identify_rejects_malformed_fields(client):
    response = client.post("/identify", json={"email": "not-an-email", "phoneNumber": "12ab"})

    assert response.status_code == 422
    fields = {error["field"] for error in response.json()["errors"]}
    assert fields == {"email", "phoneNumber"}


def test_store_error_detail_shown_outside_production(client, store, monkeypatch):
    monkeypatch.setenv("APP_ENV", "development")
    store.fail_on = "insert"

    response = client.post("/identify", json={"email": "doc@hillvalley.edu"})

    assert response.status_code == 500
    assert "insert failed" in response.json()["error"]


def test_store_error_hidden_in_production(client, store, monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    store.fail_on = "find_by_email_or_phone"

    response = client.post("/identify", json={"email": "doc@hillvalley.edu"})

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}



def test_malformed_json_body_is_400(client, store):
    response = client.post(
        "/identify", content="{bad", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON in request body"}
    assert store.calls == []


def test_oversized_body_is_413(client, store):
    padding = "1" * (11 * 1024)
    response = client.post(
        "/identify",
        content=f'{{"email": "doc@hillvalley.edu", "pad": "{padding}"}}',
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 413
    assert response.json() == {"error": "Payload too large"}
    assert store.calls == []


def test_commit_failure_returns_json_500(store, monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    session = MagicMock(
        commit=AsyncMock(side_effect=OperationalError("COMMIT", {}, Exception("connection lost"))),
        rollback=AsyncMock(),
    )

    @asynccontextmanager
    async def session_factory():
        yield session

    app.dependency_overrides[get_identity_service] = lambda: IdentityService(session_factory)
    try:
        with patch("identity.service.ContactStore", return_value=store):
            response = TestClient(app).post("/identify", json={"email": "doc@hillvalley.edu"})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    assert response.json() == {"error": "Internal server error"}


def test_unexpected_error_returns_json_500(monkeypatch):
    monkeypatch.setenv("APP_ENV", "development")

    class ExplodingService:
        async def identify(self, email, phone):
            raise RuntimeError("flux capacitor offline")

    app.dependency_overrides[get_identity_service] = lambda: ExplodingService()
    try:
        response = TestClient(app, raise_server_exceptions=False).post(
            "/identify", json={"email": "doc@hillvalley.edu"}
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json() == {"error": "flux capacitor offline"}


def test_requests_are_access_logged(client, caplog):
    with caplog.at_level(logging.INFO, logger="api.middleware"):
        client.post("/identify", json={"email": "doc@hillvalley.edu"})

    assert any("POST /identify 200" in record.getMessage() for record in caplog.records)
