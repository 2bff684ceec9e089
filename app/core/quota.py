"""Quota policy table, tier selection and path pattern lists.

Three caller classes share the admission engine:

- ``anonymous_general``: no valid credential, keyed by origin
- ``anonymous_auth_endpoint``: login/register, keyed by origin, always used
  for those paths regardless of identity
- ``authenticated_user``: valid credential, keyed by ``user_id:origin`` so a
  shared key used from many addresses does not share one budget
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum

from app.core.auth import CallerIdentity
from app.core.config import RateLimitSettings
from app.core.errors import ConfigurationAppError


class QuotaTier(str, Enum):
    ANONYMOUS_GENERAL = "anonymous_general"
    ANONYMOUS_AUTH_ENDPOINT = "anonymous_auth_endpoint"
    AUTHENTICATED_USER = "authenticated_user"


@dataclass(frozen=True)
class QuotaPolicy:
    """Window length, budget and denial message for one tier."""

    window_ms: int
    max_requests: int
    message: str

    def __post_init__(self) -> None:
        if self.window_ms <= 0:
            raise ConfigurationAppError(
                code="invalid_quota_window",
                message="Quota window must be a positive number of milliseconds",
                details={"setting": "window_ms", "context": {"value": self.window_ms}},
            )
        if self.max_requests <= 0:
            raise ConfigurationAppError(
                code="invalid_quota_limit",
                message="Quota limit must be a positive number of requests",
                details={"setting": "max", "context": {"value": self.max_requests}},
            )

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000


class QuotaPolicyTable:
    """Immutable mapping of every ``QuotaTier`` to its policy.

    Raises:
        ConfigurationAppError: If any tier lacks a policy.
    """

    def __init__(self, policies: Mapping[QuotaTier, QuotaPolicy]) -> None:
        missing = [tier.value for tier in QuotaTier if tier not in policies]
        if missing:
            raise ConfigurationAppError(
                code="quota_tier_missing",
                message=f"No quota policy configured for tier(s): {', '.join(missing)}",
                details={"tier": missing[0]},
            )
        self._policies = dict(policies)

    def __getitem__(self, tier: QuotaTier) -> QuotaPolicy:
        return self._policies[tier]

    def items(self):
        return self._policies.items()

    @classmethod
    def from_settings(cls, cfg: RateLimitSettings) -> QuotaPolicyTable:
        return cls(
            {
                QuotaTier.ANONYMOUS_GENERAL: QuotaPolicy(
                    window_ms=cfg.anonymous_window_ms,
                    max_requests=cfg.anonymous_max,
                    message=cfg.anonymous_message,
                ),
                QuotaTier.ANONYMOUS_AUTH_ENDPOINT: QuotaPolicy(
                    window_ms=cfg.auth_endpoint_window_ms,
                    max_requests=cfg.auth_endpoint_max,
                    message=cfg.auth_endpoint_message,
                ),
                QuotaTier.AUTHENTICATED_USER: QuotaPolicy(
                    window_ms=cfg.authenticated_window_ms,
                    max_requests=cfg.authenticated_max,
                    message=cfg.authenticated_message,
                ),
            }
        )


def _normalize_path(path: str) -> str:
    if len(path) > 1 and path.endswith("/"):
        return path.rstrip("/") or "/"
    return path


class PathPatternList:
    """Exact paths plus ``/prefix/*`` wildcard patterns.

    ``/api-docs/*`` matches ``/api-docs`` itself and anything below
    ``/api-docs/``, but not ``/api-docsx``.

    Examples:
        >>> patterns = PathPatternList(["/health", "/api-docs/*"])
        >>> patterns.matches("/api-docs/openapi.json")
        True
        >>> patterns.matches("/healthz")
        False
    """

    def __init__(self, patterns: Iterable[str]) -> None:
        self._exact: set[str] = set()
        self._prefixes: list[str] = []

        for raw in patterns:
            pattern = raw.strip()
            if not pattern:
                continue
            if not pattern.startswith("/"):
                raise ConfigurationAppError(
                    code="invalid_path_pattern",
                    message=f"Path pattern must start with '/': {pattern!r}",
                    details={"setting": "skip_paths"},
                )
            if pattern.endswith("/*"):
                self._prefixes.append(_normalize_path(pattern[:-2] or "/"))
            else:
                self._exact.add(_normalize_path(pattern))

    def __bool__(self) -> bool:
        return bool(self._exact or self._prefixes)

    def matches(self, path: str) -> bool:
        path = _normalize_path(path)
        if path in self._exact:
            return True
        for prefix in self._prefixes:
            if prefix == "/" or path == prefix or path.startswith(prefix + "/"):
                return True
        return False


def select_tier(identity: CallerIdentity, *, is_auth_endpoint: bool) -> QuotaTier:
    """Pick the quota tier for a request.

    Authentication endpoints always use the auth-endpoint tier, even for
    callers that already hold a valid key.
    """
    if is_auth_endpoint:
        return QuotaTier.ANONYMOUS_AUTH_ENDPOINT
    if identity.authenticated:
        return QuotaTier.AUTHENTICATED_USER
    return QuotaTier.ANONYMOUS_GENERAL


def build_counter_key(tier: QuotaTier, identity: CallerIdentity) -> str:
    """Build the window counter key for ``tier`` and ``identity``.

    The auth-endpoint tier is keyed by origin alone, also for callers that
    present a key, so login attempts are budgeted per address.

    Examples:
        >>> build_counter_key(QuotaTier.ANONYMOUS_GENERAL, CallerIdentity.anonymous("10.0.0.1"))
        'anonymous_general|10.0.0.1'
    """
    if tier is QuotaTier.AUTHENTICATED_USER:
        discriminator = f"{identity.user_id}:{identity.origin}"
    else:
        discriminator = identity.origin
    return f"{tier.value}|{discriminator}"
