"""
Position distribution report renderer (Telegram HTML).

Layout:
- Header + current reference price (when known)
- Long section: total, overall share, <pre> ladder
- Short section: total, overall share, <pre> ladder
- Trade link (only when a reference price was known)

Each ladder row is `glyph price  size(pct%)` with an optional bar column.
The row closest to the reference price gets HIGHLIGHT_GLYPH. Column widths
come from the longest value in the displayed rows so every row lines up.
Rendering is pure: same inputs, same bytes.
"""

from __future__ import annotations

import html
from typing import NamedTuple, Sequence

from ..types import Bucket, InstrumentTotals, ReportWindow
from .numfmt import (
    BAR_WIDTH,
    COMPACT_THRESHOLD,
    decimals_for,
    format_bars,
    format_number,
    format_percent,
    format_total,
    format_value,
    safe_ratio,
)

HIGHLIGHT_GLYPH = "🔸"
ROW_GLYPH = "🔹"
SEPARATOR = "-" * 30
TRADE_URL_TEMPLATE = "https://app.hyperliquid.xyz/trade/{symbol}/USDC"
NO_DATA = "no positions in window"


class RenderOptions(NamedTuple):
    show_bars: bool = False
    bar_width: int = BAR_WIDTH
    compact_threshold: float = COMPACT_THRESHOLD
    trade_url_template: str = TRADE_URL_TEMPLATE
    price_decimals: int = 0   # Floor for ladder price digits, from the bucket width


class SectionRow(NamedTuple):
    """One ladder row before padding."""
    price: str
    size: str
    percent: str
    bars: str


def row_shares(bucket: Bucket, totals: InstrumentTotals) -> tuple[float, float]:
    """(percent_long, percent_short) of the instrument totals, as ratios."""
    percent_long = safe_ratio(bucket.long_size, totals.long_total)
    percent_short = safe_ratio(abs(bucket.short_size), abs(totals.short_total))
    return percent_long, percent_short


def overall_shares(totals: InstrumentTotals) -> tuple[float, float]:
    """Long and short share of long + |short|; both 0 without positions."""
    whole = totals.long_total + abs(totals.short_total)
    if whole == 0:
        return 0.0, 0.0
    long_share = totals.long_total / whole
    return long_share, 1 - long_share


def _section_rows(
    buckets: Sequence[Bucket],
    totals: InstrumentTotals,
    long_side: bool,
    options: RenderOptions,
) -> list[SectionRow]:
    sizes = [b.long_size if long_side else b.short_size for b in buckets]
    peak = max((abs(s) for s in sizes), default=0.0)

    rows: list[SectionRow] = []
    for bucket, size in zip(buckets, sizes):
        percent_long, percent_short = row_shares(bucket, totals)
        share = percent_long if long_side else percent_short
        digits = max(
            decimals_for(bucket.bin_value, options.compact_threshold), options.price_decimals
        )
        rows.append(SectionRow(
            price=format_number(f"{bucket.bin_value:.{digits}f}"),
            size=format_value(size, options.compact_threshold),
            percent=format_percent(share),
            bars=format_bars(safe_ratio(abs(size), peak), options.bar_width)
            if options.show_bars else "",
        ))
    return rows


def _ladder(rows: list[SectionRow], highlight_index: int) -> list[str]:
    if not rows:
        return [NO_DATA]

    price_w = max(len(r.price) for r in rows)
    size_w = max(len(r.size) for r in rows)
    cells = [f"{r.size:>{size_w}}({r.percent})" for r in rows]
    cell_w = max(len(c) for c in cells)

    lines = []
    for i, (row, cell) in enumerate(zip(rows, cells)):
        glyph = HIGHLIGHT_GLYPH if i == highlight_index else ROW_GLYPH
        line = f"{glyph}{row.price:<{price_w}}  "
        if row.bars:
            line += f"{cell:<{cell_w}}  {row.bars}"
        else:
            line += cell
        lines.append(line)
    return lines


def _section(
    marker: str,
    label: str,
    symbol: str,
    total: float,
    share: float,
    rows: list[SectionRow],
    highlight_index: int,
) -> str:
    header = f"💰Price   {marker}{label}({format_percent(share)})"
    body = "\n".join(_ladder(rows, highlight_index))
    return (
        f"<b>{symbol} {label} total: {format_total(total)}</b>\n"
        f"<pre>\n{header}\n{SEPARATOR}\n{body}\n</pre>"
    )


def render(
    window: ReportWindow | None,
    totals: InstrumentTotals,
    instrument: str,
    reference_price: str | None = None,
    options: RenderOptions = RenderOptions(),
) -> str:
    """
    Render the two-section distribution report.

    window=None (or an empty window) renders the degraded "no data" report.
    reference_price is the raw decimal string from the feed, None if unknown.
    """
    symbol = html.escape(instrument.upper())
    buckets = window.buckets if window is not None else ()
    highlight = window.highlight_index if window is not None else -1

    long_share, short_share = overall_shares(totals)

    parts = [f"<b>📊 {symbol} Position Data</b>"]
    if reference_price:
        parts.append(f"<b>{symbol} reference price: {html.escape(format_number(reference_price))}</b>")

    parts.append(_section(
        "🟢", "Long", symbol, totals.long_total, long_share,
        _section_rows(buckets, totals, True, options), highlight,
    ))
    parts.append(_section(
        "🔴", "Short", symbol, totals.short_total, short_share,
        _section_rows(buckets, totals, False, options), highlight,
    ))

    if reference_price:
        url = options.trade_url_template.format(symbol=instrument.upper())
        parts.append(f'<a href="{html.escape(url, quote=True)}">📈 More {symbol} trading data</a>')

    return "\n\n".join(parts)
