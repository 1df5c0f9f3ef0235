"""
Display window selection around the reference price.

Edge policy: when the closest bucket sits near either end of a long
bucket sequence the slice is clipped to what exists, never padded and
never an error.
"""

from __future__ import annotations

from typing import Sequence

from ..errors import SelectionError
from ..types import Bucket, ReportWindow

WINDOW_LIMIT = 30    # Show everything up to this many buckets
WINDOW_RADIUS = 10   # Otherwise keep this many on each side of the closest


def closest_index(buckets: Sequence[Bucket], reference_price: float) -> int:
    """Index of the bucket nearest reference_price; first one wins ties."""
    if not buckets:
        raise SelectionError("cannot select a window from an empty bucket set")

    best = 0
    best_diff = abs(buckets[0].bin_value - reference_price)
    for i in range(1, len(buckets)):
        diff = abs(buckets[i].bin_value - reference_price)
        if diff < best_diff:
            best, best_diff = i, diff
    return best


def select_window(
    buckets: Sequence[Bucket],
    reference_price: float | None,
    limit: int = WINDOW_LIMIT,
    radius: int = WINDOW_RADIUS,
) -> ReportWindow:
    """
    Pick the buckets to display and the row to highlight.

    Up to `limit` buckets are returned as-is. Beyond that, `radius` buckets
    before the closest one plus the closest and `radius - 1` after it
    (2 * radius rows, highlight at `radius`), clipped at either end.
    Without a reference price the search runs against 0.
    """
    target = reference_price if reference_price is not None else 0.0
    closest = closest_index(buckets, target)

    if len(buckets) <= limit:
        return ReportWindow(tuple(buckets), closest)

    start = max(0, closest - radius)
    end = min(len(buckets), closest + radius)
    return ReportWindow(tuple(buckets[start:end]), closest - start)
