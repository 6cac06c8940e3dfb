"""Security helpers for token generation and credential verification."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from jose import JWTError, jwt

from co2tracker.config import Settings, get_settings
from co2tracker.domain.entities import Identity
from co2tracker.domain.exceptions import AuthError


def create_access_token(
    data: dict,
    expires_delta: timedelta | None = None,
    *,
    settings: Settings | None = None,
) -> str:
    settings = settings or get_settings()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    return jwt.encode(
        {**data, "exp": expire}, settings.secret_key, algorithm=settings.jwt_algorithm
    )


def create_identity_token(
    identity: Identity,
    expires_delta: timedelta | None = None,
    *,
    settings: Settings | None = None,
) -> str:
    """Issue an access token carrying ``identity`` in the ``user`` claim."""

    return create_access_token(
        {"user": {"id": identity.user_id, "email": identity.email}},
        expires_delta,
        settings=settings,
    )


def decode_access_token(token: str, *, settings: Settings | None = None) -> dict:
    settings = settings or get_settings()
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise ValueError("Could not validate credentials") from exc


class CredentialVerifier:
    """Validate bearer tokens and extract the :class:`Identity` they carry."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings

    def verify(self, token: str | None) -> Identity:
        """Return the identity encoded in ``token`` or raise :class:`AuthError`."""

        if not token or not token.strip():
            raise AuthError("Missing access token")

        try:
            claims = decode_access_token(token.strip(), settings=self._settings)
        except ValueError as exc:
            raise AuthError("Invalid or expired access token") from exc

        return _identity_from_claims(claims)


def _identity_from_claims(claims: Mapping[str, Any]) -> Identity:
    user_claim = claims.get("user")
    if isinstance(user_claim, Mapping):
        user_id = user_claim.get("id")
        email = user_claim.get("email")
    else:
        user_id = claims.get("sub")
        email = claims.get("email")

    if user_id in (None, "") or not isinstance(email, str) or not email:
        raise AuthError("Access token does not identify a user")
    if not isinstance(user_id, (str, int)) or isinstance(user_id, bool):
        raise AuthError("Access token does not identify a user")

    return Identity(user_id=str(user_id), email=email)


__all__ = [
    "CredentialVerifier",
    "create_access_token",
    "create_identity_token",
    "decode_access_token",
]
