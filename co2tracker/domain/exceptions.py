"""Errors raised by the realtime notification layer."""

from __future__ import annotations


class RealtimeError(Exception):
    """Base class for realtime failures."""


class AuthError(RealtimeError):
    """The handshake credential is missing, malformed or expired."""

    def __init__(self, detail: str = "Invalid credentials") -> None:
        super().__init__(detail)
        self.detail = detail


class MalformedMessageError(RealtimeError):
    """A peer sent a frame that cannot be decoded into a message."""


class TransportError(RealtimeError):
    """The underlying transport closed or could not be established."""

    def __init__(self, code: int, reason: str = "") -> None:
        message = f"transport closed (code={code})"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.code = code
        self.reason = reason


__all__ = ["RealtimeError", "AuthError", "MalformedMessageError", "TransportError"]
