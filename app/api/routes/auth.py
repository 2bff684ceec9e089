from __future__ import annotations

from fastapi import APIRouter, status

from app.api.dependencies import ContextDep
from app.schemas.auth import AuthResponse, LoginRequest, RegisterRequest

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, context: ContextDep) -> AuthResponse:
    """Create an account and return its first API key.

    Counted against the auth-endpoint quota of the caller's address.
    """

    user, api_key = context.users.register(
        username=payload.username,
        email=payload.email,
        password=payload.password,
    )
    return AuthResponse(message="User registered", user=user, api_key=api_key)


@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, context: ContextDep) -> AuthResponse:
    """Exchange username/email and password for a new API key."""

    user, api_key = context.users.authenticate(
        identifier=payload.identifier,
        password=payload.password,
    )
    return AuthResponse(message="Login successful", user=user, api_key=api_key)
