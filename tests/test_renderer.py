from hyper_notify.engine.window import select_window
from hyper_notify.report.renderer import (
    HIGHLIGHT_GLYPH,
    NO_DATA,
    ROW_GLYPH,
    RenderOptions,
    overall_shares,
    render,
    row_shares,
)
from hyper_notify.types import Bucket, InstrumentTotals, ReportWindow


def ladder_rows(text, section):
    """Rows of the Long (0) or Short (1) ladder."""
    block = text.split("<pre>")[section + 1].split("</pre>")[0]
    return [line for line in block.splitlines() if line[:1] in (HIGHLIGHT_GLYPH, ROW_GLYPH)]


def test_row_shares():
    totals = InstrumentTotals(1000.0, -500.0)
    percent_long, percent_short = row_shares(Bucket(100, 250, -100), totals)
    assert percent_long == 0.25
    assert percent_short == 0.2


def test_row_shares_zero_totals():
    assert row_shares(Bucket(100, 250, -100), InstrumentTotals(0.0, 0.0)) == (0.0, 0.0)


def test_overall_shares():
    assert overall_shares(InstrumentTotals(750.0, -250.0)) == (0.75, 0.25)
    assert overall_shares(InstrumentTotals(0.0, 0.0)) == (0.0, 0.0)


def test_render_percentages():
    window = ReportWindow((Bucket(100, 250, -100),), 0)
    text = render(window, InstrumentTotals(1000.0, -500.0), "BTC", "100")
    long_row, = ladder_rows(text, 0)
    short_row, = ladder_rows(text, 1)
    assert "250.00(25.00%)" in long_row
    assert "-100.00(20.00%)" in short_row


def test_render_highlights_one_row_per_section():
    buckets = [Bucket(48, 10, 0), Bucket(51, 6, 0), Bucket(52, 0, -4)]
    window = select_window(buckets, 50)
    text = render(window, InstrumentTotals(16.0, -4.0), "TEST", "50")

    for section in (0, 1):
        rows = ladder_rows(text, section)
        assert len(rows) == 3
        assert [r.startswith(HIGHLIGHT_GLYPH) for r in rows] == [False, True, False]
        assert rows[1].startswith(HIGHLIGHT_GLYPH + "51.00")


def test_render_columns_align():
    buckets = [
        Bucket(9.5, 1.0, -2.0),
        Bucket(10.0, 12345.67, -0.5),
        Bucket(10.5, 250.0, -98765.4),
    ]
    text = render(ReportWindow(tuple(buckets), 1), InstrumentTotals(20000.0, -100000.0), "X", "10")
    for section in (0, 1):
        rows = ladder_rows(text, section)
        assert len({row.index("(") for row in rows}) == 1


def test_render_compacts_large_prices():
    window = ReportWindow((Bucket(100000, 1234567.891, 0), Bucket(50, 1, 0)), 0)
    text = render(window, InstrumentTotals(1234568.891, 0.0), "BTC")
    rows = ladder_rows(text, 0)
    assert rows[0].startswith(HIGHLIGHT_GLYPH + "100,000.0 ")
    assert "1,234,567.9(" in rows[0]
    assert rows[1].startswith(ROW_GLYPH + "50.00")


def test_render_link_only_with_reference_price():
    window = ReportWindow((Bucket(30, 1, -1),), 0)
    totals = InstrumentTotals(1.0, -1.0)

    with_price = render(window, totals, "hype", "30.25")
    without_price = render(window, totals, "hype", None)

    assert '<a href="https://app.hyperliquid.xyz/trade/HYPE/USDC">' in with_price
    assert "HYPE reference price: 30.25" in with_price
    assert "<a href" not in without_price
    assert "reference price" not in without_price


def test_render_reference_price_grouped():
    window = ReportWindow((Bucket(65000, 1, -1),), 0)
    text = render(window, InstrumentTotals(1.0, -1.0), "BTC", "65432.1")
    assert "BTC reference price: 65,432.1" in text


def test_render_section_totals():
    window = ReportWindow((Bucket(30, 1, -1),), 0)
    text = render(window, InstrumentTotals(1234567.0, -4321.0), "HYPE", "30")
    assert "<b>HYPE Long total: 1,234,567.00</b>" in text
    assert "<b>HYPE Short total: -4,321.00</b>" in text
    assert "🟢Long(99.65%)" in text
    assert "🔴Short(0.35%)" in text


def test_render_bars():
    window = ReportWindow((Bucket(1, 10, 0), Bucket(2, 5, 0), Bucket(3, 0, 0)), 0)
    text = render(window, InstrumentTotals(15.0, 0.0), "X", options=RenderOptions(show_bars=True))
    rows = ladder_rows(text, 0)
    assert rows[0].endswith("  " + "|" * 15)
    assert rows[1].endswith("  " + "|" * 8)
    assert "|" not in rows[2]


def test_render_no_bars_by_default():
    window = ReportWindow((Bucket(1, 10, 0),), 0)
    text = render(window, InstrumentTotals(10.0, 0.0), "X")
    assert "|" not in text


def test_render_empty_window():
    text = render(None, InstrumentTotals(0.0, 0.0), "BTC")
    assert text.count(NO_DATA) == 2
    assert HIGHLIGHT_GLYPH not in text
    assert "🟢Long(0.00%)" in text


def test_render_is_idempotent():
    buckets = [Bucket(float(b), b * 1.5, -b * 0.5) for b in range(40)]
    window = select_window(buckets, 20.4)
    totals = InstrumentTotals(2000.0, -700.0)
    options = RenderOptions(show_bars=True)
    first = render(window, totals, "ETH", "20.4", options)
    second = render(window, totals, "ETH", "20.4", options)
    assert first == second


def test_render_large_totals_keep_two_decimals():
    window = ReportWindow((Bucket(100000, 250000.5, -120000.25),), 0)
    text = render(window, InstrumentTotals(250000.5, -120000.25), "BTC", "100000")
    assert "<b>BTC Long total: 250,000.50</b>" in text
    assert "<b>BTC Short total: -120,000.25</b>" in text
    # Ladder cells keep the compact format
    long_row, = ladder_rows(text, 0)
    assert "250,000.5(" in long_row


def test_render_fine_bucket_width_keeps_bins_apart():
    window = ReportWindow((Bucket(0.123, 1, 0), Bucket(0.124, 1, 0)), 1)
    options = RenderOptions(price_decimals=3)
    rows = ladder_rows(render(window, InstrumentTotals(2.0, 0.0), "X", options=options), 0)
    assert rows[0].startswith(ROW_GLYPH + "0.123 ")
    assert rows[1].startswith(HIGHLIGHT_GLYPH + "0.124 ")
