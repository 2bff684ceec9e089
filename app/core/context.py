"""Process-wide admission context.

One ``AdmissionContext`` is built per application instance by the app factory
and attached to ``app.state.admission``. It owns every piece of shared
mutable state (counter store, response cache, user and task stores), so a
fresh app in a test gets fresh state.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from fastapi import Request

from app.adapters.rate_limit.base import AbstractWindowCounterStore
from app.adapters.rate_limit.in_memory import InMemoryWindowCounterStore
from app.core.auth import IdentityResolver
from app.core.config import Settings
from app.core.quota import QuotaPolicyTable
from app.core.rate_limit import AdmissionEngine
from app.services.task_service import TaskRepository
from app.services.user_service import UserDirectory
from app.utils.response_cache import ResponseCacheStore

logger = logging.getLogger(__name__)


@dataclass
class AdmissionContext:
    settings: Settings
    clock: Callable[[], float]
    counter_store: AbstractWindowCounterStore
    engine: AdmissionEngine
    response_cache: ResponseCacheStore
    users: UserDirectory
    tasks: TaskRepository
    identity_resolver: IdentityResolver
    started_at: float


def build_admission_context(
    settings: Settings,
    *,
    clock: Callable[[], float] = time.time,
) -> AdmissionContext:
    """Build the admission context from settings.

    Args:
        settings: Resolved application settings.
        clock: Time source shared by the counter store and response cache.

    Raises:
        ConfigurationAppError: If the quota table or path patterns are unusable.
    """
    cfg = settings.rate_limit

    policies = QuotaPolicyTable.from_settings(cfg)
    counter_store = InMemoryWindowCounterStore(
        clock=clock,
        sweep_interval_seconds=cfg.sweep_interval_seconds,
        sweep_idle_windows=cfg.sweep_idle_windows,
    )
    engine = AdmissionEngine(
        policies=policies,
        store=counter_store,
        skip_paths=cfg.skip_path_list,
        auth_paths=cfg.auth_path_list,
        enabled=cfg.enabled,
    )
    response_cache = ResponseCacheStore(
        ttl_seconds=settings.cache.ttl_seconds,
        max_entries=settings.cache.max_entries,
        clock=clock,
    )
    users = UserDirectory(hash_iterations=settings.app.password_hash_iterations)

    logger.info(
        "admission.configured",
        extra={
            "enabled": cfg.enabled,
            "tiers": {
                tier.value: {"window_ms": policy.window_ms, "max": policy.max_requests}
                for tier, policy in policies.items()
            },
            "skip_paths": cfg.skip_path_list,
            "cache_ttl_s": settings.cache.ttl_seconds,
        },
    )

    return AdmissionContext(
        settings=settings,
        clock=clock,
        counter_store=counter_store,
        engine=engine,
        response_cache=response_cache,
        users=users,
        tasks=TaskRepository(),
        identity_resolver=IdentityResolver(
            users,
            trust_proxy_headers=settings.app.trust_proxy_headers,
        ),
        started_at=time.monotonic(),
    )


def get_admission_context(request: Request) -> AdmissionContext:
    """FastAPI dependency returning the app's admission context."""

    return request.app.state.admission
