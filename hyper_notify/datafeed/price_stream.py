"""
Reference price cache fed by a self-healing websocket subscription.

Lifecycle:
    DISCONNECTED -> CONNECTING -> SUBSCRIBED -> DISCONNECTED (on error) -> ...
    CLOSED is terminal and reachable from any state through close().

The ingester task is the only writer of the price map. Readers call
current_price() from anywhere (event loop or another thread); the lock
covers a single dict assignment/lookup so reads never wait on I/O.
"""

from __future__ import annotations

import asyncio
import contextlib
import threading
import time
from enum import Enum
from typing import Callable, Iterable

from loguru import logger

from ..errors import DecodeError
from ..types import PriceSnapshot
from .messages import (
    DEFAULT_CHANNEL,
    DEFAULT_PRICE_FIELD,
    decode_price_update,
    encode_subscription,
)
from .transport import FeedTransport

RECONNECT_DELAY_SEC = 5.0


class StreamState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    CLOSED = "closed"


class PriceStreamCache:
    """
    One reference price per subscribed instrument.

    Usage:
        cache = PriceStreamCache(AiohttpFeedTransport())
        await cache.subscribe("BTC")
        cache.start()
        price, found = cache.current_price("BTC")
        ...
        await cache.close()
    """

    def __init__(
        self,
        transport: FeedTransport,
        channel: str = DEFAULT_CHANNEL,
        price_field: str = DEFAULT_PRICE_FIELD,
        reconnect_delay: float = RECONNECT_DELAY_SEC,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.channel = channel
        self.price_field = price_field
        self.reconnect_delay = reconnect_delay

        self._transport = transport
        self._clock = clock

        # Shared state: written by the ingester task only
        self._lock = threading.Lock()
        self._prices: dict[str, PriceSnapshot] = {}

        # Subscription registry, kept across reconnects (insertion order)
        self._instruments: list[str] = []

        self._state = StreamState.DISCONNECTED
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._connects: int = 0

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def instruments(self) -> tuple[str, ...]:
        return tuple(self._instruments)

    @property
    def connect_count(self) -> int:
        """Number of successful connects since start (reconnects included)."""
        return self._connects

    def _set_state(self, state: StreamState) -> None:
        if self._state is StreamState.CLOSED:
            return
        self._state = state

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def snapshot(self, instrument: str) -> PriceSnapshot | None:
        """Latest snapshot for instrument, or None if no update arrived yet."""
        with self._lock:
            return self._prices.get(instrument)

    def current_price(self, instrument: str) -> tuple[str, bool]:
        """Return (price, found). Price is "" when not found."""
        snap = self.snapshot(instrument)
        if snap is None:
            return "", False
        return snap.price, True

    async def wait_for_prices(self, instruments: Iterable[str], timeout: float) -> bool:
        """Wait until every instrument has a price or timeout elapses."""
        pending = set(instruments)
        deadline = time.monotonic() + timeout
        while True:
            pending = {i for i in pending if self.snapshot(i) is None}
            if not pending:
                return True
            if time.monotonic() >= deadline or self._state is StreamState.CLOSED:
                logger.warning("No reference price yet for {}", ", ".join(sorted(pending)))
                return False
            await asyncio.sleep(0.1)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def subscribe(self, instrument: str) -> None:
        """
        Register interest in instrument. Idempotent.

        Sent right away on a live connection, otherwise on the next connect.
        """
        if instrument in self._instruments:
            return

        self._instruments.append(instrument)
        logger.info("Tracking reference price for {}", instrument)

        if self._state is not StreamState.SUBSCRIBED:
            return

        try:
            await self._transport.send(encode_subscription(instrument, self.channel))
        except Exception as e:  # noqa: BLE001
            # Reader notices the broken connection and resubscribes everything
            logger.warning("Subscribe {} failed, will retry on reconnect: {}", instrument, e)

    async def _resubscribe_all(self) -> None:
        # Index loop: picks up instruments registered while we are sending
        i = 0
        while i < len(self._instruments):
            instrument = self._instruments[i]
            await self._transport.send(encode_subscription(instrument, self.channel))
            logger.info("Subscribed {} {}", self.channel, instrument)
            i += 1

    # ------------------------------------------------------------------
    # Ingester
    # ------------------------------------------------------------------

    def _handle_message(self, raw: str) -> None:
        try:
            update = decode_price_update(raw, self.channel, self.price_field)
        except DecodeError as e:
            logger.warning("Skipping malformed feed message: {} ({})", e, raw[:200])
            return

        if update is None:
            return

        snapshot = PriceSnapshot(update.instrument, update.price, self._clock())
        with self._lock:
            self._prices[update.instrument] = snapshot

        logger.debug("Reference price {} = {}", update.instrument, update.price)

    async def _connect_and_read(self) -> None:
        self._set_state(StreamState.CONNECTING)
        await self._transport.connect()
        self._connects += 1

        await self._resubscribe_all()
        self._set_state(StreamState.SUBSCRIBED)

        while not self._stop.is_set():
            raw = await self._transport.receive()
            self._handle_message(raw)

    async def _run(self) -> None:
        """Connect, subscribe, read; on any failure back off and start over."""
        while not self._stop.is_set():
            try:
                await self._connect_and_read()
            except asyncio.CancelledError:
                raise
            except Exception as e:  # noqa: BLE001
                if self._stop.is_set():
                    break
                logger.warning(
                    "Feed connection failed: {!r}; retrying in {}s", e, self.reconnect_delay
                )

            with contextlib.suppress(Exception):
                await self._transport.close()

            if self._stop.is_set():
                break

            self._set_state(StreamState.DISCONNECTED)

            # Backoff, cut short by close()
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop.wait(), timeout=self.reconnect_delay)

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled() or self._state is StreamState.CLOSED:
            return
        exc = task.exception()
        if exc is None:
            return
        logger.opt(exception=exc).error("Price stream task died, restarting")
        self._set_state(StreamState.DISCONNECTED)
        self._task = None
        self.start()

    def start(self) -> asyncio.Task:
        """Launch the ingester task (no-op if already running)."""
        if self._state is StreamState.CLOSED:
            raise RuntimeError("price stream cache is closed")

        if self._task is not None and not self._task.done():
            return self._task

        self._task = asyncio.create_task(self._run(), name="price-stream")
        self._task.add_done_callback(self._on_task_done)
        return self._task

    async def close(self) -> None:
        """Stop reconnecting and release the connection. Terminal."""
        if self._state is StreamState.CLOSED:
            return

        self._stop.set()
        self._state = StreamState.CLOSED

        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        await self._transport.close()
        logger.info("Price stream closed")
