"""Tests for registration, login and API key authentication."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient


def test_register_returns_user_and_api_key(client: TestClient) -> None:
    resp = client.post(
        "/api/auth/register",
        json={"username": "alice", "email": "Alice@Example.com", "password": "secret123"},
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["user"]["username"] == "alice"
    assert body["user"]["email"] == "alice@example.com"
    assert body["api_key"]
    assert "password" not in body["user"]


def test_issued_key_authenticates_task_requests(client: TestClient, registered: dict) -> None:
    resp = client.get("/api/tasks", headers=registered["headers"])

    assert resp.status_code == 200


def test_duplicate_username_returns_409(client: TestClient, register_user) -> None:
    register_user(client)
    resp = client.post(
        "/api/auth/register",
        json={"username": "ALICE", "email": "other@example.com", "password": "secret123"},
    )

    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "user_exists"


def test_duplicate_email_returns_409(client: TestClient, register_user) -> None:
    register_user(client)
    resp = client.post(
        "/api/auth/register",
        json={"username": "alice2", "email": "alice@example.com", "password": "secret123"},
    )

    assert resp.status_code == 409
    assert resp.json()["error"]["details"]["field"] == "email"


@pytest.mark.parametrize(
    "payload",
    [
        {"username": "al", "email": "al@example.com", "password": "secret123"},
        {"username": "bad name", "email": "b@example.com", "password": "secret123"},
        {"username": "carol", "email": "not-an-email", "password": "secret123"},
        {"username": "dave", "email": "dave@example.com", "password": "123"},
    ],
)
def test_register_validation_errors(client: TestClient, payload: dict) -> None:
    resp = client.post("/api/auth/register", json=payload)

    assert resp.status_code == 422


@pytest.mark.parametrize("identifier", ["alice", "alice@example.com", "ALICE"])
def test_login_with_username_or_email(client: TestClient, register_user, identifier: str) -> None:
    first = register_user(client)

    resp = client.post("/api/auth/login", json={"identifier": identifier, "password": "secret123"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["user"]["id"] == first["user"]["id"]
    assert body["api_key"] != first["api_key"]


def test_both_issued_keys_stay_valid(client: TestClient, register_user) -> None:
    first = register_user(client)
    login = client.post("/api/auth/login", json={"identifier": "alice", "password": "secret123"})

    for key in (first["api_key"], login.json()["api_key"]):
        assert client.get("/api/tasks", headers={"X-API-Key": key}).status_code == 200


@pytest.mark.parametrize(
    "identifier, password",
    [("alice", "wrong-password"), ("nobody", "secret123")],
)
def test_bad_credentials_return_401(client: TestClient, register_user, identifier: str, password: str) -> None:
    register_user(client)

    resp = client.post("/api/auth/login", json={"identifier": identifier, "password": password})

    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "invalid_credentials"
