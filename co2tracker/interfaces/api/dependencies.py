"""FastAPI dependency utilities."""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from starlette.requests import HTTPConnection

from co2tracker.domain.entities import Identity
from co2tracker.domain.exceptions import AuthError
from co2tracker.infrastructure.realtime import RealtimeDispatcher, RealtimeEventPublisher
from co2tracker.infrastructure.security import CredentialVerifier

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/account/login")


def get_credential_verifier(connection: HTTPConnection) -> CredentialVerifier:
    return connection.app.state.credential_verifier


def get_realtime_dispatcher(connection: HTTPConnection) -> RealtimeDispatcher:
    return connection.app.state.realtime_dispatcher


def get_realtime_publisher(connection: HTTPConnection) -> RealtimeEventPublisher:
    """Return the publisher route handlers use to push events after a change."""

    return connection.app.state.realtime_publisher


def get_current_identity(
    token: str = Depends(oauth2_scheme),
    verifier: CredentialVerifier = Depends(get_credential_verifier),
) -> Identity:
    """Return the identity carried by the bearer token."""

    try:
        return verifier.verify(token)
    except AuthError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.detail,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
