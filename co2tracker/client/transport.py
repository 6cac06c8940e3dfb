"""Websocket transport used by the realtime connector."""

from __future__ import annotations

from typing import Awaitable, Callable, Protocol
from urllib.parse import urlencode, urlsplit, urlunsplit

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import (
    ConnectionClosed,
    InvalidHandshake,
    InvalidStatus,
    InvalidURI,
)
from websockets.frames import CloseCode
from websockets.protocol import State

from co2tracker.domain.exceptions import TransportError

_SCHEMES = {"http": "ws", "ws": "ws", "https": "wss", "wss": "wss"}
_REJECTED_STATUSES = {401, 403}


class ClientTransport(Protocol):
    """One physical bidirectional session as seen by the connector."""

    @property
    def is_open(self) -> bool:
        ...

    async def send(self, data: str) -> None:
        ...

    async def recv(self) -> str:
        """Return the next text frame or raise :class:`TransportError` once closed."""

    async def close(self, code: int = CloseCode.NORMAL_CLOSURE, reason: str = "") -> None:
        ...


TransportFactory = Callable[[str], Awaitable[ClientTransport]]


def build_realtime_url(origin: str, token: str, path: str = "/realtime") -> str:
    """Return the websocket URL for ``origin`` with ``token`` as query parameter.

    Secure origins (``https``) map to ``wss``; plain ones to ``ws``.
    """

    parts = urlsplit(origin)
    scheme = _SCHEMES.get(parts.scheme.lower())
    if scheme is None or not parts.netloc:
        raise ValueError(f"Unsupported realtime origin: {origin!r}")
    return urlunsplit((scheme, parts.netloc, path, urlencode({"token": token}), ""))


class WebsocketsTransport:
    """:class:`ClientTransport` over a ``websockets`` client connection."""

    def __init__(self, connection: ClientConnection) -> None:
        self._connection = connection

    @property
    def is_open(self) -> bool:
        return self._connection.state is State.OPEN

    async def send(self, data: str) -> None:
        try:
            await self._connection.send(data)
        except ConnectionClosed as exc:
            raise _closed(exc) from exc

    async def recv(self) -> str:
        try:
            frame = await self._connection.recv()
        except ConnectionClosed as exc:
            raise _closed(exc) from exc
        if isinstance(frame, bytes):
            return frame.decode("utf-8", errors="replace")
        return frame

    async def close(self, code: int = CloseCode.NORMAL_CLOSURE, reason: str = "") -> None:
        await self._connection.close(code, reason)


async def open_websocket(url: str) -> WebsocketsTransport:
    """Perform the websocket handshake against ``url``.

    The connector arms its own handshake timeout, so none is set here.
    """

    try:
        connection = await connect(url, open_timeout=None, ping_interval=None)
    except InvalidStatus as exc:
        status_code = exc.response.status_code
        code = (
            CloseCode.POLICY_VIOLATION
            if status_code in _REJECTED_STATUSES
            else CloseCode.ABNORMAL_CLOSURE
        )
        raise TransportError(code, f"handshake rejected with HTTP {status_code}") from exc
    except (InvalidHandshake, InvalidURI, OSError) as exc:
        raise TransportError(CloseCode.ABNORMAL_CLOSURE, str(exc)) from exc
    return WebsocketsTransport(connection)


def _closed(exc: ConnectionClosed) -> TransportError:
    if exc.rcvd is not None:
        return TransportError(exc.rcvd.code, exc.rcvd.reason)
    return TransportError(CloseCode.ABNORMAL_CLOSURE, "connection lost")


__all__ = [
    "ClientTransport",
    "TransportFactory",
    "WebsocketsTransport",
    "build_realtime_url",
    "open_websocket",
]
