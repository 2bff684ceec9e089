"""Admission control: the adaptive rate limiting decision engine.

This module turns a request descriptor into an ``AdmissionDecision`` and wires
that decision into the HTTP layer as middleware.

Decision order:
1. Skip list match → allowed, no counter touched
2. Tier selection (auth endpoints, then authenticated, then anonymous)
3. Counter key from tier + identity
4. Rolling window check-and-count in the counter store

Quota denials are values, never exceptions, so no error path can let a
request through unchecked.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from app.adapters.rate_limit.base import AbstractWindowCounterStore
from app.core.auth import CallerIdentity
from app.core.logging import hash_for_log
from app.core.quota import (
    PathPatternList,
    QuotaPolicyTable,
    QuotaTier,
    build_counter_key,
    select_tier,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestDescriptor:
    """The parts of an HTTP request admission control looks at."""

    method: str
    path: str
    identity: CallerIdentity
    query: tuple[tuple[str, str], ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class AdmissionDecision:
    """Allow/deny outcome for one request.

    Attributes:
        allowed: Whether the request may reach the handler.
        skipped: True when the path is exempt and no quota was consulted.
        tier: Tier the request was counted against.
        identity: Identity the decision was made for.
        limit: Tier budget per window.
        remaining: Budget left in the current window.
        reset_at: UNIX seconds when the current window closes.
        retry_after_seconds: Seconds to wait when denied.
        message: Tier-specific denial message.
    """

    allowed: bool
    skipped: bool = False
    tier: QuotaTier | None = None
    identity: CallerIdentity | None = None
    limit: int | None = None
    remaining: int | None = None
    reset_at: int | None = None
    retry_after_seconds: int | None = None
    message: str | None = None

    @classmethod
    def skip(cls, identity: CallerIdentity | None = None) -> AdmissionDecision:
        return cls(allowed=True, skipped=True, identity=identity)


class AdmissionEngine:
    """Apply per-tier rolling window quotas to inbound requests."""

    def __init__(
        self,
        *,
        policies: QuotaPolicyTable,
        store: AbstractWindowCounterStore,
        skip_paths: Iterable[str] = (),
        auth_paths: Iterable[str] = (),
        enabled: bool = True,
    ) -> None:
        self.policies = policies
        self.store = store
        self.skip_list = PathPatternList(skip_paths)
        self.auth_paths = PathPatternList(auth_paths)
        self.enabled = enabled

        if not enabled:
            logger.warning("rate_limit.disabled", extra={"reason": "configuration"})

    def is_exempt(self, path: str) -> bool:
        return not self.enabled or self.skip_list.matches(path)

    def decide(self, request: RequestDescriptor) -> AdmissionDecision:
        """Allow or deny ``request`` and count it when allowed.

        Args:
            request: Method, path and resolved identity of the request.

        Returns:
            AdmissionDecision; denied decisions carry retry-after metadata.
        """
        if self.is_exempt(request.path):
            return AdmissionDecision.skip(request.identity)

        identity = request.identity
        tier = select_tier(identity, is_auth_endpoint=self.auth_paths.matches(request.path))
        policy = self.policies[tier]
        key = build_counter_key(tier, identity)

        result = self.store.hit(
            key,
            window_seconds=policy.window_seconds,
            limit=policy.max_requests,
        )

        decision = AdmissionDecision(
            allowed=result.allowed,
            tier=tier,
            identity=identity,
            limit=result.limit,
            remaining=result.remaining,
            reset_at=int(result.reset_at),
            retry_after_seconds=result.retry_after_seconds,
            message=None if result.allowed else policy.message,
        )

        log_extra = {
            "tier": tier.value,
            "key_hash": hash_for_log(key),
            "user_id": identity.user_id,
            "method": request.method,
            "path": request.path,
            "limit": result.limit,
            "remaining": result.remaining,
            "window_s": policy.window_seconds,
        }
        if result.allowed:
            logger.debug("rate_limit.allowed", extra=log_extra)
        else:
            logger.warning(
                "rate_limit.exceeded",
                extra={**log_extra, "retry_after_s": result.retry_after_seconds},
            )
        return decision


def build_rate_limit_headers(
    decision: AdmissionDecision,
    *,
    standard: bool,
    legacy: bool,
    now: float,
) -> dict[str, str]:
    """Render quota headers for a counted decision.

    Args:
        decision: Decision returned by the engine.
        standard: Emit ``X-RateLimit-*`` (reset as UNIX seconds).
        legacy: Emit ``RateLimit-*`` (reset as seconds from now).
        now: Current UNIX time, used for the relative reset value.

    Returns:
        Header mapping; empty for skipped decisions and when both header
        groups are off. ``Retry-After`` accompanies a denial only when at
        least one group is on.
    """
    if decision.skipped or decision.limit is None:
        return {}

    headers: dict[str, str] = {}
    if standard:
        headers["X-RateLimit-Limit"] = str(decision.limit)
        headers["X-RateLimit-Remaining"] = str(decision.remaining)
        headers["X-RateLimit-Reset"] = str(decision.reset_at)
    if legacy:
        headers["RateLimit-Limit"] = str(decision.limit)
        headers["RateLimit-Remaining"] = str(decision.remaining)
        headers["RateLimit-Reset"] = str(max(0, int(decision.reset_at - now)))
    if not decision.allowed and (standard or legacy):
        headers["Retry-After"] = str(decision.retry_after_seconds)
    return headers


def build_denial_body(decision: AdmissionDecision) -> dict:
    """JSON body for a 429 response, including the caller identity fields."""

    body: dict = {
        "success": False,
        "message": decision.message,
        "retryAfter": decision.retry_after_seconds,
    }
    identity = decision.identity
    if identity is not None:
        if identity.authenticated:
            body["userId"] = identity.user_id
        body["ip"] = identity.origin
    return body


async def admission_middleware(request: Request, call_next) -> Response:
    """HTTP middleware resolving identity and enforcing quotas.

    Skip-listed paths pass straight through. Otherwise the caller identity is
    stored on ``request.state.identity`` for downstream dependencies, the
    engine decides, and denied requests get a 429 without reaching the route.
    """
    context = request.app.state.admission
    engine = context.engine

    if engine.is_exempt(request.url.path):
        return await call_next(request)

    identity = context.identity_resolver.resolve(request)
    request.state.identity = identity

    decision = engine.decide(
        RequestDescriptor(
            method=request.method,
            path=request.url.path,
            identity=identity,
            query=tuple(request.query_params.multi_items()),
        )
    )

    cfg = context.settings.rate_limit
    headers = build_rate_limit_headers(
        decision,
        standard=cfg.headers_standard,
        legacy=cfg.headers_legacy,
        now=context.clock(),
    )

    if not decision.allowed:
        return JSONResponse(
            status_code=429,
            content=build_denial_body(decision),
            headers=headers,
        )

    response = await call_next(request)
    for name, value in headers.items():
        response.headers[name] = value
    return response
