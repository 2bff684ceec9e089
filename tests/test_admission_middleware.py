"""HTTP-level tests for admission control (status codes, bodies and headers)."""

from __future__ import annotations

import pytest

ANON_MESSAGE = "Request limit exceeded for unauthenticated clients"


class TestAnonymousQuota:
    def test_denied_request_gets_429_with_body(self, make_client) -> None:
        client = make_client(rate_limit={"anonymous_max": 2})

        assert client.get("/").status_code == 200
        assert client.get("/").status_code == 200

        resp = client.get("/")
        assert resp.status_code == 429
        assert resp.json() == {
            "success": False,
            "message": ANON_MESSAGE,
            "retryAfter": 900,
            "ip": "testclient",
        }
        assert resp.headers["Retry-After"] == "900"

    def test_denied_request_never_reaches_route(self, make_client) -> None:
        client = make_client(rate_limit={"anonymous_max": 1})
        client.get("/api/tasks")

        # An allowed anonymous request would get 401 from the route
        resp = client.get("/api/tasks")
        assert resp.status_code == 429

    def test_unknown_api_key_counts_as_anonymous(self, make_client) -> None:
        client = make_client(rate_limit={"anonymous_max": 1})

        first = client.get("/api/tasks", headers={"X-API-Key": "not-a-real-key"})
        assert first.status_code == 401
        assert first.headers["X-RateLimit-Limit"] == "1"

        second = client.get("/api/tasks", headers={"X-API-Key": "not-a-real-key"})
        assert second.status_code == 429
        assert "userId" not in second.json()

    def test_window_elapse_restores_access(self, make_client, clock) -> None:
        client = make_client(rate_limit={"anonymous_max": 1, "anonymous_window_ms": 60_000})
        client.get("/")
        assert client.get("/").status_code == 429

        clock.advance(60)
        assert client.get("/").status_code == 200


class TestAuthenticatedQuota:
    def test_authenticated_denial_includes_user_id(self, make_client, register_user) -> None:
        client = make_client(rate_limit={"authenticated_max": 2})
        data = register_user(client)
        headers = {"X-API-Key": data["api_key"]}

        assert client.get("/api/tasks", headers=headers).status_code == 200
        assert client.get("/api/tasks", headers=headers).status_code == 200

        resp = client.get("/api/tasks", headers=headers)
        assert resp.status_code == 429
        body = resp.json()
        assert body["userId"] == data["user"]["id"]
        assert body["ip"] == "testclient"
        assert body["message"] == "Request limit exceeded for this user"

    def test_authenticated_budget_is_separate_from_anonymous(self, make_client, register_user) -> None:
        client = make_client(rate_limit={"anonymous_max": 1, "authenticated_max": 3})
        data = register_user(client)
        headers = {"X-API-Key": data["api_key"]}

        client.get("/")
        assert client.get("/").status_code == 429

        resp = client.get("/api/tasks", headers=headers)
        assert resp.status_code == 200
        assert resp.headers["X-RateLimit-Limit"] == "3"
        assert resp.headers["X-RateLimit-Remaining"] == "2"


class TestAuthEndpointQuota:
    def test_sixth_login_attempt_is_denied(self, client) -> None:
        payload = {"identifier": "nobody", "password": "wrong-password"}

        for _ in range(5):
            assert client.post("/api/auth/login", json=payload).status_code == 401

        resp = client.post("/api/auth/login", json=payload)
        assert resp.status_code == 429
        assert resp.json()["message"] == "Too many authentication attempts. Try again in a few minutes."

    def test_register_and_login_share_budget(self, make_client, register_user) -> None:
        client = make_client(rate_limit={"auth_endpoint_max": 2})
        register_user(client, username="alice")

        ok = client.post("/api/auth/login", json={"identifier": "alice", "password": "secret123"})
        assert ok.status_code == 200

        denied = client.post("/api/auth/login", json={"identifier": "alice", "password": "secret123"})
        assert denied.status_code == 429

    def test_auth_endpoint_budget_ignores_api_key(self, make_client, register_user) -> None:
        client = make_client(rate_limit={"auth_endpoint_max": 2, "authenticated_max": 100})
        data = register_user(client)
        headers = {"X-API-Key": data["api_key"]}

        payload = {"identifier": "alice", "password": "secret123"}
        assert client.post("/api/auth/login", json=payload, headers=headers).status_code == 200
        resp = client.post("/api/auth/login", json=payload, headers=headers)

        assert resp.status_code == 429
        assert resp.headers["X-RateLimit-Limit"] == "2"

        # Task routes still use the user's own budget
        assert client.get("/api/tasks", headers=headers).status_code == 200


class TestSkipList:
    @pytest.mark.parametrize("path", ["/health", "/api-docs/openapi.json"])
    def test_skipped_paths_are_never_limited(self, make_client, path: str) -> None:
        client = make_client(rate_limit={"anonymous_max": 1, "auth_endpoint_max": 1})
        client.get("/")
        assert client.get("/").status_code == 429

        for _ in range(5):
            resp = client.get(path)
            assert resp.status_code == 200
            assert "X-RateLimit-Limit" not in resp.headers

    def test_skipped_request_does_not_consume_budget(self, make_client) -> None:
        client = make_client(rate_limit={"anonymous_max": 1})
        for _ in range(3):
            client.get("/health")

        assert client.get("/").status_code == 200

    def test_health_payload(self, client) -> None:
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert "timestamp" in body
        assert body["uptime"] >= 0

    def test_custom_skip_list(self, make_client) -> None:
        client = make_client(rate_limit={"anonymous_max": 1, "skip_paths": "/"})
        for _ in range(3):
            assert client.get("/").status_code == 200


class TestQuotaHeaders:
    def test_standard_headers_on_allowed_response(self, client, clock) -> None:
        resp = client.get("/")

        assert resp.headers["X-RateLimit-Limit"] == "100"
        assert resp.headers["X-RateLimit-Remaining"] == "99"
        assert resp.headers["X-RateLimit-Reset"] == str(int(clock.current + 900))
        assert "RateLimit-Limit" not in resp.headers
        assert "Retry-After" not in resp.headers

    def test_legacy_headers_use_relative_reset(self, make_client, clock) -> None:
        client = make_client(rate_limit={"headers_standard": False, "headers_legacy": True})
        client.get("/")
        clock.advance(100)

        resp = client.get("/")
        assert resp.headers["RateLimit-Limit"] == "100"
        assert resp.headers["RateLimit-Remaining"] == "98"
        assert resp.headers["RateLimit-Reset"] == "800"
        assert "X-RateLimit-Limit" not in resp.headers

    def test_no_headers_on_denial_when_both_groups_disabled(self, make_client) -> None:
        client = make_client(
            rate_limit={"anonymous_max": 1, "headers_standard": False, "headers_legacy": False}
        )
        client.get("/")
        resp = client.get("/")

        assert resp.status_code == 429
        assert resp.json()["retryAfter"] == 900
        assert "Retry-After" not in resp.headers
        assert "X-RateLimit-Limit" not in resp.headers
        assert "RateLimit-Limit" not in resp.headers

    def test_retry_after_sent_with_legacy_headers_only(self, make_client) -> None:
        client = make_client(
            rate_limit={"anonymous_max": 1, "headers_standard": False, "headers_legacy": True}
        )
        client.get("/")
        resp = client.get("/")

        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "900"
        assert resp.headers["RateLimit-Remaining"] == "0"

    def test_remaining_never_negative_on_denial(self, make_client) -> None:
        client = make_client(rate_limit={"anonymous_max": 1})
        client.get("/")

        for _ in range(3):
            assert client.get("/").headers["X-RateLimit-Remaining"] == "0"


class TestOrigin:
    def test_forwarded_for_used_when_trusted(self, make_client) -> None:
        client = make_client(app={"trust_proxy_headers": True}, rate_limit={"anonymous_max": 1})

        assert client.get("/", headers={"X-Forwarded-For": "1.1.1.1"}).status_code == 200
        denied = client.get("/", headers={"X-Forwarded-For": "1.1.1.1, 10.0.0.1"})
        assert denied.status_code == 429
        assert denied.json()["ip"] == "1.1.1.1"

        assert client.get("/", headers={"X-Forwarded-For": "2.2.2.2"}).status_code == 200

    def test_forwarded_for_ignored_by_default(self, make_client) -> None:
        client = make_client(rate_limit={"anonymous_max": 1})

        assert client.get("/", headers={"X-Forwarded-For": "1.1.1.1"}).status_code == 200
        denied = client.get("/", headers={"X-Forwarded-For": "2.2.2.2"})
        assert denied.status_code == 429
        assert denied.json()["ip"] == "testclient"


def test_disabled_admission_control_never_limits(make_client) -> None:
    client = make_client(rate_limit={"enabled": False, "anonymous_max": 1})

    for _ in range(5):
        resp = client.get("/")
        assert resp.status_code == 200
        assert "X-RateLimit-Limit" not in resp.headers
