"""
Position aggregation engine.

Groups raw position rows into fixed-width price buckets per direction.

Strategy:
1. Filter + bin with numpy (one vectorised pass over the rows)
2. np.unique(return_inverse=True) gives sorted bins and a row -> bin index
3. np.bincount sums sizes per bin, once for Long and once for Short

Bucket widths are a per-instrument table handed in explicitly; nothing
is looked up from module state.
"""

from __future__ import annotations

import math
from typing import Mapping, Protocol, Sequence

import numpy as np

from ..errors import UnknownInstrumentError
from ..types import Bucket, Direction, InstrumentTotals, PositionRecord

# Used when no reference price is available
DEFAULT_FALLBACK_WINDOW = (47.0, 53.0)
DEFAULT_PRICE_RANGE_RATIO = 0.05

# Quotient rounding before floor(): 0.3 / 0.1 == 2.9999999999999996
_QUOTIENT_DECIMALS = 9
_BIN_DECIMALS = 10


class PositionStore(Protocol):
    """Storage queries consumed by the aggregator. Both are idempotent reads."""

    async def fetch_positions(
        self, instrument: str, min_price: float, max_price: float
    ) -> Sequence[PositionRecord]: ...

    async def fetch_totals(self, instrument: str) -> InstrumentTotals: ...


def bucketize(
    records: Sequence[PositionRecord],
    width: float,
    min_price: float = -math.inf,
    max_price: float = math.inf,
) -> list[Bucket]:
    """
    Bin positions with min_price <= price < max_price into width-wide buckets.

    bin = floor(price / width) * width. Returns buckets sorted ascending
    by bin value; an empty list when nothing falls in the window.
    """
    if width <= 0:
        raise ValueError(f"bucket width must be positive, got {width}")
    if not records:
        return []

    prices = np.fromiter((r.price for r in records), dtype=np.float64, count=len(records))
    sizes = np.fromiter((r.size for r in records), dtype=np.float64, count=len(records))
    is_long = np.fromiter(
        (r.direction is Direction.LONG for r in records), dtype=bool, count=len(records)
    )
    is_short = np.fromiter(
        (r.direction is Direction.SHORT for r in records), dtype=bool, count=len(records)
    )

    mask = (prices >= min_price) & (prices < max_price)
    if not mask.any():
        return []

    prices, sizes, is_long, is_short = prices[mask], sizes[mask], is_long[mask], is_short[mask]

    steps = np.floor(np.round(prices / width, _QUOTIENT_DECIMALS))
    bins, index = np.unique(steps, return_inverse=True)
    index = index.reshape(-1)

    long_sums = np.bincount(index, weights=np.where(is_long, sizes, 0.0), minlength=len(bins))
    short_sums = np.bincount(index, weights=np.where(is_short, sizes, 0.0), minlength=len(bins))

    return [
        Bucket(round(float(step) * width, _BIN_DECIMALS), float(long_sz), float(short_sz))
        for step, long_sz, short_sz in zip(bins, long_sums, short_sums)
    ]


def parse_reference_price(price: str | None) -> float | None:
    """Parse a decimal price string; None when absent, unparseable or not positive."""
    if not price:
        return None
    try:
        value = float(price)
    except ValueError:
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def price_window(
    reference_price: float | None,
    ratio: float = DEFAULT_PRICE_RANGE_RATIO,
    fallback: tuple[float, float] = DEFAULT_FALLBACK_WINDOW,
) -> tuple[float, float]:
    """Query window: reference * (1 -/+ ratio), or the fixed fallback."""
    if reference_price is None:
        return fallback
    return reference_price * (1 - ratio), reference_price * (1 + ratio)


class PositionAggregator:
    """
    Storage-backed aggregation for one or more instruments.

    Thread-safety: stateless apart from its configuration.
    """

    def __init__(
        self,
        store: PositionStore,
        bucket_widths: Mapping[str, float],
        price_range_ratio: float = DEFAULT_PRICE_RANGE_RATIO,
        fallback_window: tuple[float, float] = DEFAULT_FALLBACK_WINDOW,
    ) -> None:
        self.store = store
        self.bucket_widths = dict(bucket_widths)
        self.price_range_ratio = price_range_ratio
        self.fallback_window = fallback_window

    def bucket_width(self, instrument: str) -> float:
        try:
            return self.bucket_widths[instrument]
        except KeyError:
            raise UnknownInstrumentError(instrument) from None

    def window_for(self, reference_price: float | None) -> tuple[float, float]:
        return price_window(reference_price, self.price_range_ratio, self.fallback_window)

    async def aggregate_totals(self, instrument: str) -> InstrumentTotals:
        """Long/short sums over every stored position; (0, 0) when none exist."""
        return await self.store.fetch_totals(instrument)

    async def aggregate_windowed(
        self, instrument: str, min_price: float, max_price: float
    ) -> list[Bucket]:
        """Buckets for positions with min_price <= price < max_price, ascending."""
        width = self.bucket_width(instrument)
        records = await self.store.fetch_positions(instrument, min_price, max_price)
        return bucketize(records, width, min_price, max_price)
