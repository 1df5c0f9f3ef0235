"""
Data types for hyper_notify.

Notes:
- Using NamedTuple for immutable, memory-efficient structures
- A PriceSnapshot is always replaced whole, never mutated in place
"""

from enum import Enum
from typing import NamedTuple


class Direction(str, Enum):
    """Position side. Values match the stored `dir` field."""
    LONG = "Long"
    SHORT = "Short"


class PriceSnapshot(NamedTuple):
    """Latest reference price for one instrument."""
    instrument: str
    price: str           # Decimal string exactly as received from the feed
    observed_at: float   # Epoch seconds when the update was accepted


class PositionRecord(NamedTuple):
    """Single stored position row."""
    price: float
    size: float
    direction: Direction


class Bucket(NamedTuple):
    """Positions aggregated into one fixed-width price bin."""
    bin_value: float     # Lower edge of the bin
    long_size: float     # Total Long size in this bin
    short_size: float    # Total Short size in this bin (sign as stored)


class InstrumentTotals(NamedTuple):
    """Long/short sums over ALL positions of an instrument."""
    long_total: float
    short_total: float


class ReportWindow(NamedTuple):
    """
    Contiguous slice of buckets selected for display.

    highlight_index points at the bucket closest to the reference price.
    """
    buckets: tuple[Bucket, ...]
    highlight_index: int
