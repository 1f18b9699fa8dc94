"""
Socket transport port and its `websockets` adapter.

The channel only talks to SocketTransport / SocketConnection, so tests can
drive it with an in-memory transport.
"""
import asyncio
from abc import ABC, abstractmethod

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.protocol import State

from storefront.errors import ChannelError, ChannelNotConnected, TransportClosed


class SocketConnection(ABC):

    @property
    @abstractmethod
    def is_open(self) -> bool:
        ...

    @abstractmethod
    async def send(self, text: str) -> None:
        """Send one text frame; raises ChannelNotConnected if closed."""

    @abstractmethod
    async def recv(self) -> str:
        """Wait for the next text frame; raises TransportClosed when the socket closes."""

    @abstractmethod
    async def close(self) -> None:
        ...


class SocketTransport(ABC):

    @abstractmethod
    async def connect(self, url: str) -> SocketConnection:
        """Open a connection; raises ChannelError if it cannot be established."""


class WebsocketsConnection(SocketConnection):

    def __init__(self, ws: ClientConnection):
        self._ws = ws

    @property
    def is_open(self) -> bool:
        return self._ws.state is State.OPEN

    async def send(self, text: str) -> None:
        try:
            await self._ws.send(text)
        except ConnectionClosed as e:
            raise ChannelNotConnected(str(e)) from e

    async def recv(self) -> str:
        try:
            frame = await self._ws.recv()
        except ConnectionClosed as e:
            raise TransportClosed(str(e)) from e
        if isinstance(frame, bytes):
            return frame.decode("utf-8", errors="replace")
        return frame

    async def close(self) -> None:
        await self._ws.close()


class WebsocketsTransport(SocketTransport):

    def __init__(self, open_timeout: float = 10.0):
        self.open_timeout = open_timeout

    async def connect(self, url: str) -> SocketConnection:
        try:
            ws = await connect(url, open_timeout=self.open_timeout)
        except (OSError, asyncio.TimeoutError, TimeoutError, WebSocketException) as e:
            raise ChannelError(f"Cannot connect to {url}: {e}") from e
        return WebsocketsConnection(ws)
