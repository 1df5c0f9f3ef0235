"""
Report job: glue between price cache, aggregator, renderer and sink.

One pass per instrument per tick:
1. Read the cached reference price (never blocks)
2. Fetch totals + windowed buckets (bounded retry on StorageError)
3. Select the display window and render
4. Hand the text to the notification sink

A failed pass is logged and skipped; nothing carries over to the next tick.
"""

from __future__ import annotations

import asyncio
import time
from typing import NamedTuple, Protocol, Sequence

from loguru import logger
from tenacity import retry_if_exception_type

from .engine.aggregator import PositionAggregator, parse_reference_price
from .engine.window import WINDOW_LIMIT, WINDOW_RADIUS, select_window
from .errors import HyperNotifyError, SelectionError, StorageError
from .report.numfmt import width_decimals
from .report.renderer import RenderOptions, render
from .retry import bounded_retry
from .types import Bucket, InstrumentTotals


class PriceSource(Protocol):
    def current_price(self, instrument: str) -> tuple[str, bool]: ...


class NotificationSink(Protocol):
    async def deliver(self, text: str, parse_mode: str = "HTML") -> bool: ...


class ReportData(NamedTuple):
    buckets: list[Bucket]
    totals: InstrumentTotals


class ReportJob:
    """Builds and delivers one distribution report per instrument per tick."""

    def __init__(
        self,
        prices: PriceSource,
        aggregator: PositionAggregator,
        sink: NotificationSink,
        instruments: Sequence[str],
        retry_count: int = 3,
        retry_delay: float = 5.0,
        render_options: RenderOptions = RenderOptions(),
        window_limit: int = WINDOW_LIMIT,
        window_radius: int = WINDOW_RADIUS,
        require_buckets: bool = False,
        parse_mode: str = "HTML",
    ) -> None:
        self.prices = prices
        self.aggregator = aggregator
        self.sink = sink
        self.instruments = list(instruments)
        self.retry_count = max(1, retry_count)
        self.retry_delay = retry_delay
        self.render_options = render_options
        self.window_limit = window_limit
        self.window_radius = window_radius
        self.require_buckets = require_buckets
        self.parse_mode = parse_mode

    async def fetch_report_data(
        self, instrument: str, min_price: float, max_price: float
    ) -> ReportData:
        """Totals + buckets, retried on StorageError up to retry_count attempts."""
        retrying = bounded_retry(
            f"Fetching {instrument} data",
            self.retry_count,
            self.retry_delay,
            retry_if_exception_type(StorageError),
        )
        async for attempt in retrying:
            with attempt:
                totals = await self.aggregator.aggregate_totals(instrument)
                buckets = await self.aggregator.aggregate_windowed(instrument, min_price, max_price)
        return ReportData(buckets, totals)

    def build_report(
        self,
        instrument: str,
        data: ReportData,
        reference: float | None,
        price_text: str | None,
    ) -> str:
        options = self.render_options._replace(
            price_decimals=width_decimals(self.aggregator.bucket_width(instrument))
        )
        if not data.buckets:
            if self.require_buckets:
                raise SelectionError(f"no {instrument} positions in the query window")
            logger.info("No {} positions in window, sending degraded report", instrument)
            return render(None, data.totals, instrument, price_text, options)

        window = select_window(data.buckets, reference, self.window_limit, self.window_radius)
        return render(window, data.totals, instrument, price_text, options)

    async def run_pass(self, instrument: str) -> bool:
        """One report for instrument. Returns True when it was delivered."""
        price_text, found = self.prices.current_price(instrument)
        reference = parse_reference_price(price_text) if found else None
        if reference is None:
            logger.info("No reference price for {}, using fallback window", instrument)
            price_text = None
        else:
            logger.info("Current {} reference price: {}", instrument, price_text)

        min_price, max_price = self.aggregator.window_for(reference)

        try:
            data = await self.fetch_report_data(instrument, min_price, max_price)
            message = self.build_report(instrument, data, reference, price_text)
        except HyperNotifyError as e:
            logger.error("Skipping {} report: {}", instrument, e)
            return False

        if not await self.sink.deliver(message, self.parse_mode):
            logger.error("Delivery of {} report failed", instrument)
            return False

        logger.info("Sent {} report ({} buckets)", instrument, len(data.buckets))
        return True

    async def run_once(self) -> int:
        """One tick over every instrument, in order. Returns delivered count."""
        delivered = 0
        for instrument in self.instruments:
            try:
                if await self.run_pass(instrument):
                    delivered += 1
            except asyncio.CancelledError:
                raise
            except Exception:  # noqa: BLE001
                logger.exception("Unexpected error in {} report pass", instrument)
        return delivered

    async def run_forever(self, interval: float) -> None:
        """Tick at wall-clock multiples of interval until cancelled."""
        logger.info("Report scheduler started, every {}s", interval)
        while True:
            await asyncio.sleep(seconds_until_next_tick(interval))
            await self.run_once()


def seconds_until_next_tick(interval: float, now: float | None = None) -> float:
    """Delay until the next multiple of interval since the epoch."""
    now = time.time() if now is None else now
    remainder = now % interval
    return interval - remainder if remainder else interval
