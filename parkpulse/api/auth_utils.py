import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, cast

from jose import jwt

SECRET_KEY = os.environ.get("PARKPULSE_SECRET_KEY", "dev-secret-unsafe")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24  # 24 hours
ADMIN_ROLES = frozenset({"admin", "owner"})


@dataclass(frozen=True)
class Claims:
    """Identity capability handed to request handlers."""

    user_id: str | None = None
    roles: frozenset[str] = field(default_factory=frozenset)
    admin_roles: frozenset[str] = ADMIN_ROLES

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_admin(self) -> bool:
        return self.is_authenticated and bool(self.roles & self.admin_roles)


ANONYMOUS = Claims()


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
    now_utc: datetime | None = None,
    secret_key: str | None = None,
    algorithm: str = ALGORITHM,
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode in the token (``sub`` is the user id,
            ``roles`` a list of role names)
        expires_delta: Optional custom expiration delta
        now_utc: Current UTC time (for testing/determinism). Defaults to datetime.now(UTC).
        secret_key: Signing key; defaults to PARKPULSE_SECRET_KEY.
        algorithm: JWT algorithm.
    """
    to_encode = data.copy()
    current_time = now_utc if now_utc is not None else datetime.now(UTC)

    if expires_delta:
        expire = current_time + expires_delta
    else:
        expire = current_time + timedelta(minutes=15)

    to_encode.update({"exp": expire})
    encoded_jwt: str = jwt.encode(to_encode, secret_key or SECRET_KEY, algorithm=algorithm)
    return encoded_jwt


def decode_access_token(
    token: str,
    secret_key: str | None = None,
    algorithm: str = ALGORITHM,
) -> dict[str, Any] | None:
    try:
        payload = jwt.decode(token, secret_key or SECRET_KEY, algorithms=[algorithm])
        return cast(dict[str, Any], payload)
    except jwt.JWTError:
        return None


def extract_token(authorization: str | None, cookie_value: str | None) -> str | None:
    """Bearer token from the Authorization header, else from the cookie."""
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() == "bearer" and value:
            return value.strip()
    if cookie_value:
        if cookie_value.startswith("Bearer "):
            return cookie_value.split(" ", 1)[1]
        return cookie_value
    return None


def claims_from_token(
    token: str | None,
    secret_key: str | None = None,
    algorithm: str = ALGORITHM,
    admin_roles: Iterable[str] = ADMIN_ROLES,
) -> Claims:
    """Decode a token into Claims; anything invalid is anonymous."""
    if not token:
        return ANONYMOUS

    payload = decode_access_token(token, secret_key, algorithm)
    if not payload:
        return ANONYMOUS

    user_id = payload.get("sub")
    if user_id is None or not isinstance(user_id, (str, int)):
        return ANONYMOUS

    raw_roles = payload.get("roles")
    if raw_roles is None and payload.get("role"):
        raw_roles = [payload["role"]]
    roles = frozenset(str(r) for r in raw_roles) if isinstance(raw_roles, list) else frozenset()

    return Claims(user_id=str(user_id), roles=roles, admin_roles=frozenset(admin_roles))
