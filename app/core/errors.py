"""Application-level exception types.

Domain errors shared by services and routes. Each subclass maps to one HTTP
status in ``app.core.exception_handlers``. Quota denials are not errors: the
admission engine returns them as decision values.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    field: str
    tier: str
    setting: str
    resource_id: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when request input fails domain validation."""


class AuthenticationAppError(AppError):
    """Raised when a credential is missing, unknown or wrong."""


class NotFoundAppError(AppError):
    """Raised when a resource does not exist for the calling user."""


class ConflictAppError(AppError):
    """Raised when a create would duplicate a unique attribute."""


class ConfigurationAppError(AppError):
    """Raised when quota/cache configuration is unusable.

    Fatal at startup: the app factory lets it propagate.
    """
