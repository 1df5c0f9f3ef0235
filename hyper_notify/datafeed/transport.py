"""
Streaming feed transport.

The price cache only needs a bidirectional text stream: connect, send,
receive one message, close. AiohttpFeedTransport implements it over an
aiohttp websocket; tests substitute an in-memory transport.

Connect/read timeouts live here (aiohttp ClientTimeout + websocket
heartbeat), not in the cache.
"""

from __future__ import annotations

from typing import Protocol

import aiohttp
from loguru import logger

# Hyperliquid mainnet endpoint
WS_URL = "wss://api.hyperliquid.xyz/ws"


class FeedTransport(Protocol):
    """Bidirectional message stream consumed by PriceStreamCache."""

    async def connect(self) -> None: ...

    async def send(self, message: str) -> None: ...

    async def receive(self) -> str: ...

    async def close(self) -> None: ...


class AiohttpFeedTransport:
    """
    Websocket transport using aiohttp.

    One ClientSession per connection: close() releases both the socket and
    the session, connect() builds fresh ones.
    """

    def __init__(
        self,
        url: str = WS_URL,
        heartbeat: float = 30.0,
        connect_timeout: float = 10.0,
    ) -> None:
        self.url = url
        self.heartbeat = heartbeat
        self.connect_timeout = connect_timeout
        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None

    async def connect(self) -> None:
        await self.close()
        timeout = aiohttp.ClientTimeout(
            total=None,
            connect=self.connect_timeout,
            sock_connect=self.connect_timeout,
        )
        self._session = aiohttp.ClientSession(timeout=timeout)
        try:
            self._ws = await self._session.ws_connect(self.url, heartbeat=self.heartbeat)
        except BaseException:
            await self.close()
            raise
        logger.info("Connected to {}", self.url)

    async def send(self, message: str) -> None:
        if self._ws is None or self._ws.closed:
            raise ConnectionError("websocket is not connected")
        await self._ws.send_str(message)

    async def receive(self) -> str:
        if self._ws is None:
            raise ConnectionError("websocket is not connected")

        msg = await self._ws.receive()

        if msg.type == aiohttp.WSMsgType.TEXT:
            return msg.data
        if msg.type == aiohttp.WSMsgType.BINARY:
            return msg.data.decode("utf-8", errors="replace")
        if msg.type == aiohttp.WSMsgType.ERROR:
            raise ConnectionError(f"websocket error: {self._ws.exception()}")

        # CLOSE / CLOSING / CLOSED
        raise ConnectionError(f"websocket closed ({msg.type.name}, code={self._ws.close_code})")

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        session, self._session = self._session, None
        if ws is not None and not ws.closed:
            await ws.close()
        if session is not None and not session.closed:
            await session.close()
