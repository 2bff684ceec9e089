"""Serve JSON responses through the per-user response cache."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Callable

from fastapi import Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.core.auth import CallerIdentity
from app.utils.response_cache import ResponseCacheStore, build_cache_key

logger = logging.getLogger(__name__)

CACHE_HEADER = "X-Cache"


def serve_cached(
    cache: ResponseCacheStore,
    *,
    identity: CallerIdentity,
    query_items: Iterable[tuple[str, str]],
    produce: Callable[[], Any],
    namespace: str = "tasks",
    enabled: bool = True,
) -> Response:
    """Return a cached body for this user+query, or render and cache a fresh one.

    The body is rendered once with ``JSONResponse`` and stored as bytes, so a
    hit returns exactly the bytes the original miss returned.

    Args:
        cache: Response cache store.
        identity: Authenticated caller; the cache is scoped per user.
        query_items: Raw query string items of the request.
        produce: Callable building the response payload on a miss.
        namespace: Resource namespace for the cache key.
        enabled: When False, always produce and never store.
    """
    if not enabled or not identity.authenticated:
        return JSONResponse(content=jsonable_encoder(produce()))

    key = build_cache_key(identity.user_id, query_items, namespace=namespace)
    lookup = cache.lookup(key)
    if lookup.hit:
        logger.info(
            "cache.served",
            extra={"user_id": identity.user_id, "namespace": namespace, "cache": "hit"},
        )
        return Response(
            content=lookup.payload,
            status_code=200,
            media_type="application/json",
            headers={CACHE_HEADER: "HIT"},
        )

    response = JSONResponse(content=jsonable_encoder(produce()))
    if response.status_code == 200:
        cache.store(key, bytes(response.body))
        logger.info(
            "cache.filled",
            extra={"user_id": identity.user_id, "namespace": namespace, "cache": "miss"},
        )
    response.headers[CACHE_HEADER] = "MISS"
    return response
