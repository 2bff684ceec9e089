"""Caller identity resolution.

Every request is reduced to a ``CallerIdentity`` before admission control
runs. Identity comes from the ``X-API-Key`` header (resolved against the user
directory) and the network origin of the request.

An unknown or missing key is not an error here: the caller is simply
anonymous. Routes that need a user enforce that separately.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from fastapi import Request

from app.core.logging import hash_for_log

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"
UNKNOWN_ORIGIN = "unknown"


@dataclass(frozen=True)
class CallerIdentity:
    """Who is calling, as seen by admission control.

    Attributes:
        authenticated: True when a valid credential was presented.
        user_id: Resolved user id; always set when authenticated.
        origin: Network origin address of the request.
    """

    authenticated: bool
    user_id: str | None
    origin: str

    def __post_init__(self) -> None:
        if self.authenticated and not self.user_id:
            raise ValueError("authenticated identity requires a user_id")

    @classmethod
    def anonymous(cls, origin: str) -> CallerIdentity:
        return cls(authenticated=False, user_id=None, origin=origin)

    @classmethod
    def for_user(cls, user_id: str, origin: str) -> CallerIdentity:
        return cls(authenticated=True, user_id=user_id, origin=origin)


class ApiKeyLookup(Protocol):
    def resolve_api_key(self, api_key: str) -> str | None: ...


def resolve_origin(request: Request, *, trust_proxy_headers: bool = False) -> str:
    """Return the caller's network origin.

    Args:
        request: Incoming request.
        trust_proxy_headers: Use the first ``X-Forwarded-For`` hop when present.
    """
    if trust_proxy_headers:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    return request.client.host if request.client else UNKNOWN_ORIGIN


class IdentityResolver:
    """Resolve a ``CallerIdentity`` from request headers and peer address."""

    def __init__(self, users: ApiKeyLookup, *, trust_proxy_headers: bool = False) -> None:
        self._users = users
        self._trust_proxy_headers = trust_proxy_headers

    def resolve(self, request: Request) -> CallerIdentity:
        origin = resolve_origin(request, trust_proxy_headers=self._trust_proxy_headers)
        api_key = request.headers.get(API_KEY_HEADER)
        if not api_key:
            return CallerIdentity.anonymous(origin)

        user_id = self._users.resolve_api_key(api_key)
        if user_id is None:
            logger.info(
                "auth.unknown_api_key",
                extra={"api_key_hash": hash_for_log(api_key), "origin": origin},
            )
            return CallerIdentity.anonymous(origin)

        return CallerIdentity.for_user(user_id, origin)
