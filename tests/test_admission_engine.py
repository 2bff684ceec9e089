"""Unit tests for quota tiers and the admission decision engine."""

import pytest

from app.adapters.rate_limit.in_memory import InMemoryWindowCounterStore
from app.core.auth import CallerIdentity
from app.core.config import RateLimitSettings
from app.core.errors import ConfigurationAppError
from app.core.quota import (
    PathPatternList,
    QuotaPolicy,
    QuotaPolicyTable,
    QuotaTier,
    build_counter_key,
    select_tier,
)
from app.core.rate_limit import AdmissionEngine, RequestDescriptor

ANON = CallerIdentity.anonymous("10.0.0.1")
USER = CallerIdentity.for_user("user-1", "10.0.0.1")


def _engine(clock, **overrides) -> AdmissionEngine:
    cfg = RateLimitSettings(**overrides)
    return AdmissionEngine(
        policies=QuotaPolicyTable.from_settings(cfg),
        store=InMemoryWindowCounterStore(clock=clock),
        skip_paths=cfg.skip_path_list,
        auth_paths=cfg.auth_path_list,
        enabled=cfg.enabled,
    )


def _req(path: str, identity: CallerIdentity, method: str = "GET") -> RequestDescriptor:
    return RequestDescriptor(method=method, path=path, identity=identity)


class TestCallerIdentity:
    def test_authenticated_requires_user_id(self) -> None:
        with pytest.raises(ValueError):
            CallerIdentity(authenticated=True, user_id=None, origin="1.2.3.4")

    def test_anonymous_has_no_user(self) -> None:
        assert ANON.user_id is None
        assert ANON.authenticated is False


class TestTierSelection:
    def test_anonymous_general(self) -> None:
        assert select_tier(ANON, is_auth_endpoint=False) is QuotaTier.ANONYMOUS_GENERAL

    def test_authenticated_user(self) -> None:
        assert select_tier(USER, is_auth_endpoint=False) is QuotaTier.AUTHENTICATED_USER

    @pytest.mark.parametrize("identity", [ANON, USER])
    def test_auth_endpoint_wins_regardless_of_identity(self, identity) -> None:
        assert select_tier(identity, is_auth_endpoint=True) is QuotaTier.ANONYMOUS_AUTH_ENDPOINT

    def test_counter_keys(self) -> None:
        assert build_counter_key(QuotaTier.AUTHENTICATED_USER, USER) == "authenticated_user|user-1:10.0.0.1"
        assert build_counter_key(QuotaTier.ANONYMOUS_GENERAL, ANON) == "anonymous_general|10.0.0.1"
        assert (
            build_counter_key(QuotaTier.ANONYMOUS_AUTH_ENDPOINT, USER)
            == "anonymous_auth_endpoint|10.0.0.1"
        )


class TestPathPatternList:
    @pytest.mark.parametrize(
        "path, expected",
        [
            ("/health", True),
            ("/health/", True),
            ("/healthz", False),
            ("/api-docs", True),
            ("/api-docs/openapi.json", True),
            ("/api-docsx", False),
            ("/api/tasks", False),
        ],
    )
    def test_exact_and_wildcard_matching(self, path: str, expected: bool) -> None:
        patterns = PathPatternList(["/health", "/api-docs/*"])
        assert patterns.matches(path) is expected

    def test_rejects_relative_pattern(self) -> None:
        with pytest.raises(ConfigurationAppError):
            PathPatternList(["health"])

    def test_empty_entries_ignored(self) -> None:
        assert not PathPatternList(["", "  "])


class TestPolicyTable:
    def test_missing_tier_is_fatal(self) -> None:
        with pytest.raises(ConfigurationAppError) as exc_info:
            QuotaPolicyTable({QuotaTier.ANONYMOUS_GENERAL: QuotaPolicy(1000, 1, "m")})
        assert exc_info.value.code == "quota_tier_missing"

    @pytest.mark.parametrize("window_ms, max_requests", [(0, 1), (1000, 0), (-5, 10)])
    def test_non_positive_policy_is_fatal(self, window_ms: int, max_requests: int) -> None:
        with pytest.raises(ConfigurationAppError):
            QuotaPolicy(window_ms=window_ms, max_requests=max_requests, message="m")

    def test_from_settings_defaults(self) -> None:
        table = QuotaPolicyTable.from_settings(RateLimitSettings())
        assert table[QuotaTier.ANONYMOUS_GENERAL].max_requests == 100
        assert table[QuotaTier.ANONYMOUS_AUTH_ENDPOINT].max_requests == 5
        assert table[QuotaTier.AUTHENTICATED_USER].max_requests == 500
        assert table[QuotaTier.AUTHENTICATED_USER].window_seconds == 900


class TestAdmissionEngine:
    def test_allows_up_to_max_then_denies(self, clock) -> None:
        engine = _engine(clock, anonymous_max=3)

        for _ in range(3):
            assert engine.decide(_req("/api/tasks", ANON)).allowed is True

        denied = engine.decide(_req("/api/tasks", ANON))
        assert denied.allowed is False
        assert denied.retry_after_seconds > 0
        assert denied.tier is QuotaTier.ANONYMOUS_GENERAL
        assert denied.message == RateLimitSettings().anonymous_message

    def test_authenticated_scenario_500_per_15_minutes(self, clock) -> None:
        engine = _engine(clock, authenticated_max=500, authenticated_window_ms=900_000)

        decisions = [engine.decide(_req("/api/tasks", USER)) for _ in range(500)]
        assert all(d.allowed for d in decisions)
        assert decisions[-1].remaining == 0

        denied = engine.decide(_req("/api/tasks", USER))
        assert denied.allowed is False
        assert denied.retry_after_seconds == 900

        clock.advance(120)
        assert engine.decide(_req("/api/tasks", USER)).retry_after_seconds == 780

    def test_window_elapse_restores_admission(self, clock) -> None:
        engine = _engine(clock, anonymous_max=2, anonymous_window_ms=60_000)
        engine.decide(_req("/", ANON))
        engine.decide(_req("/", ANON))
        assert engine.decide(_req("/", ANON)).allowed is False

        clock.advance(60)
        decision = engine.decide(_req("/", ANON))
        assert decision.allowed is True
        assert decision.remaining == 1

    def test_auth_endpoint_scenario_five_attempts(self, clock) -> None:
        engine = _engine(clock)

        for _ in range(5):
            assert engine.decide(_req("/api/auth/login", ANON, "POST")).allowed is True

        denied = engine.decide(_req("/api/auth/login", ANON, "POST"))
        assert denied.allowed is False
        assert denied.tier is QuotaTier.ANONYMOUS_AUTH_ENDPOINT

    def test_auth_endpoint_budget_shared_by_login_and_register(self, clock) -> None:
        engine = _engine(clock, auth_endpoint_max=2)

        assert engine.decide(_req("/api/auth/register", ANON, "POST")).allowed is True
        assert engine.decide(_req("/api/auth/login", USER, "POST")).allowed is True
        assert engine.decide(_req("/api/auth/login", ANON, "POST")).allowed is False

    def test_tiers_and_identities_are_independent(self, clock) -> None:
        engine = _engine(clock, anonymous_max=1, authenticated_max=1, auth_endpoint_max=1)

        assert engine.decide(_req("/api/tasks", ANON)).allowed is True
        assert engine.decide(_req("/api/tasks", ANON)).allowed is False

        assert engine.decide(_req("/api/tasks", USER)).allowed is True
        assert engine.decide(_req("/api/auth/login", ANON, "POST")).allowed is True

        other_ip = CallerIdentity.anonymous("10.0.0.2")
        assert engine.decide(_req("/api/tasks", other_ip)).allowed is True

        same_user_other_ip = CallerIdentity.for_user("user-1", "10.0.0.9")
        assert engine.decide(_req("/api/tasks", same_user_other_ip)).allowed is True

    def test_health_always_allowed_after_exhausting_every_tier(self, clock) -> None:
        engine = _engine(clock, anonymous_max=1, authenticated_max=1, auth_endpoint_max=1)
        for path, identity in [("/api/tasks", ANON), ("/api/tasks", USER), ("/api/auth/login", ANON)]:
            engine.decide(_req(path, identity))
            assert engine.decide(_req(path, identity)).allowed is False

        for identity in (ANON, USER):
            for _ in range(10):
                decision = engine.decide(_req("/health", identity))
                assert decision.allowed is True
                assert decision.skipped is True

    def test_skipped_decision_touches_no_counter(self, clock) -> None:
        engine = _engine(clock)
        engine.decide(_req("/api-docs/openapi.json", ANON))

        assert len(engine.store) == 0

    def test_repeated_denials_are_idempotent(self, clock) -> None:
        engine = _engine(clock, anonymous_max=1, anonymous_window_ms=10_000)
        engine.decide(_req("/", ANON))
        key = build_counter_key(QuotaTier.ANONYMOUS_GENERAL, ANON)
        before = engine.store.snapshot(key)

        retry_values = []
        for _ in range(5):
            clock.advance(1)
            retry_values.append(engine.decide(_req("/", ANON)).retry_after_seconds)

        assert engine.store.snapshot(key) == before
        assert retry_values == [9, 8, 7, 6, 5]

    def test_disabled_engine_skips_everything(self, clock) -> None:
        engine = _engine(clock, enabled=False, anonymous_max=1)

        for _ in range(5):
            assert engine.decide(_req("/api/tasks", ANON)).allowed is True
        assert len(engine.store) == 0
