"""In-memory user directory: registration, login and API key lookup.

Passwords are stored as salted PBKDF2-SHA256 digests. API keys are random
tokens; only their SHA-256 digests are kept, so a key can be resolved but not
recovered. Every successful register/login issues a fresh key, and earlier
keys stay valid.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from app.core.errors import AuthenticationAppError, ConflictAppError
from app.core.logging import hash_for_log
from app.schemas.auth import UserPublic

logger = logging.getLogger(__name__)


@dataclass
class _UserRecord:
    id: str
    username: str
    email: str
    password_salt: bytes
    password_hash: bytes
    created_at: datetime
    api_key_digests: set[str] = field(default_factory=set)

    def to_public(self) -> UserPublic:
        return UserPublic(
            id=self.id,
            username=self.username,
            email=self.email,
            created_at=self.created_at,
        )


def _digest_api_key(api_key: str) -> str:
    return hashlib.sha256(api_key.encode()).hexdigest()


class UserDirectory:
    """Thread-safe in-memory user store."""

    def __init__(self, *, hash_iterations: int = 120_000) -> None:
        self._hash_iterations = hash_iterations
        self._lock = threading.Lock()
        self._users: dict[str, _UserRecord] = {}
        self._ids_by_login: dict[str, str] = {}
        self._ids_by_key_digest: dict[str, str] = {}

    def _hash_password(self, password: str, salt: bytes) -> bytes:
        return hashlib.pbkdf2_hmac("sha256", password.encode(), salt, self._hash_iterations)

    def _issue_key_locked(self, user: _UserRecord) -> str:
        api_key = secrets.token_urlsafe(32)
        digest = _digest_api_key(api_key)
        user.api_key_digests.add(digest)
        self._ids_by_key_digest[digest] = user.id
        return api_key

    def register(self, *, username: str, email: str, password: str) -> tuple[UserPublic, str]:
        """Create a user and issue its first API key.

        Raises:
            ConflictAppError: If the username or email is already taken.
        """
        salt = secrets.token_bytes(16)
        password_hash = self._hash_password(password, salt)
        username_key = username.lower()
        email_key = email.lower()

        with self._lock:
            for login_key, field_name in ((username_key, "username"), (email_key, "email")):
                if login_key in self._ids_by_login:
                    raise ConflictAppError(
                        code="user_exists",
                        message=f"A user with this {field_name} already exists",
                        details={"field": field_name},
                    )

            user = _UserRecord(
                id=str(uuid.uuid4()),
                username=username,
                email=email_key,
                password_salt=salt,
                password_hash=password_hash,
                created_at=datetime.now(timezone.utc),
            )
            self._users[user.id] = user
            self._ids_by_login[username_key] = user.id
            self._ids_by_login[email_key] = user.id
            api_key = self._issue_key_locked(user)

        logger.info("auth.registered", extra={"user_id": user.id})
        return user.to_public(), api_key

    def authenticate(self, *, identifier: str, password: str) -> tuple[UserPublic, str]:
        """Check credentials and issue a new API key.

        Raises:
            AuthenticationAppError: If the user is unknown or the password is wrong.
        """
        with self._lock:
            user_id = self._ids_by_login.get(identifier.strip().lower())
            user = self._users.get(user_id) if user_id else None

        if user is None or not hmac.compare_digest(
            self._hash_password(password, user.password_salt),
            user.password_hash,
        ):
            logger.warning(
                "auth.login_failed",
                extra={"identifier_hash": hash_for_log(identifier.strip().lower())},
            )
            raise AuthenticationAppError(
                code="invalid_credentials",
                message="Invalid credentials",
            )

        with self._lock:
            api_key = self._issue_key_locked(user)

        logger.info("auth.login", extra={"user_id": user.id})
        return user.to_public(), api_key

    def resolve_api_key(self, api_key: str) -> str | None:
        """Return the user id owning ``api_key``, or None."""

        digest = _digest_api_key(api_key)
        with self._lock:
            return self._ids_by_key_digest.get(digest)

    def get(self, user_id: str) -> UserPublic | None:
        with self._lock:
            user = self._users.get(user_id)
        return user.to_public() if user else None
