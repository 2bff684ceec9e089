"""Shared FastAPI dependencies for API routes."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, Request

from app.core.auth import CallerIdentity
from app.core.context import AdmissionContext, get_admission_context
from app.core.errors import AuthenticationAppError

logger = logging.getLogger(__name__)

ContextDep = Annotated[AdmissionContext, Depends(get_admission_context)]


def get_identity(request: Request, context: ContextDep) -> CallerIdentity:
    """Return the identity resolved by the admission middleware.

    Falls back to resolving it here for paths the middleware skipped.
    """
    identity = getattr(request.state, "identity", None)
    if identity is None:
        identity = context.identity_resolver.resolve(request)
        request.state.identity = identity
    return identity


def require_user(identity: Annotated[CallerIdentity, Depends(get_identity)]) -> CallerIdentity:
    """Dependency for routes that need an authenticated caller.

    Raises:
        AuthenticationAppError: 401 when no valid X-API-Key was presented.
    """
    if not identity.authenticated:
        logger.info("auth.required", extra={"origin": identity.origin})
        raise AuthenticationAppError(
            code="authentication_required",
            message="Missing or invalid API key. Provide X-API-Key header.",
        )
    return identity


UserDep = Annotated[CallerIdentity, Depends(require_user)]
