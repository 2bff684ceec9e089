"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any app import so the module-level
settings object is built with test-friendly values.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("APP_PASSWORD_HASH_ITERATIONS", "1000")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Any, Callable

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.app_factory import create_app
from app.core.config import AppSettings, CacheSettings, RateLimitSettings, Settings


class FakeClock:
    """Deterministic clock used to test window and TTL logic."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Build Settings with per-group overrides, e.g. rate_limit={"anonymous_max": 2}."""

    def _make(
        *,
        rate_limit: dict[str, Any] | None = None,
        cache: dict[str, Any] | None = None,
        app: dict[str, Any] | None = None,
    ) -> Settings:
        return Settings(
            rate_limit=RateLimitSettings(**(rate_limit or {})),
            cache=CacheSettings(**(cache or {})),
            app=AppSettings(**{"password_hash_iterations": 1000, **(app or {})}),
        )

    return _make


@pytest.fixture
def make_client(make_settings, clock) -> Callable[..., TestClient]:
    """Build a TestClient around a fresh app sharing the test's FakeClock."""

    def _make(**overrides: Any) -> TestClient:
        app: FastAPI = create_app(make_settings(**overrides), clock=clock, configure_logs=False)
        return TestClient(app)

    return _make


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()


def _register_user(client: TestClient, username: str = "alice", password: str = "secret123") -> dict:
    resp = client.post(
        "/api/auth/register",
        json={"username": username, "email": f"{username}@example.com", "password": password},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.fixture
def register_user() -> Callable[..., dict]:
    """Register a user through the API and return the response JSON (includes api_key)."""

    return _register_user


@pytest.fixture
def registered(client: TestClient) -> dict:
    data = _register_user(client)
    return {"headers": {"X-API-Key": data["api_key"]}, "user": data["user"]}
