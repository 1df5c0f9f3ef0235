import asyncio

import pytest

from hyper_notify.engine.aggregator import PositionAggregator
from hyper_notify.errors import StorageError
from hyper_notify.orchestrator import ReportJob, seconds_until_next_tick
from hyper_notify.report.renderer import HIGHLIGHT_GLYPH, NO_DATA, ROW_GLYPH
from hyper_notify.types import Direction, InstrumentTotals, PositionRecord

L, S = Direction.LONG, Direction.SHORT

EXAMPLE_POSITIONS = [
    PositionRecord(48, 10, L),
    PositionRecord(52, -4, S),
    PositionRecord(51, 6, L),
]


class FakePrices:
    def __init__(self, prices):
        self.prices = prices

    def current_price(self, instrument):
        if instrument in self.prices:
            return self.prices[instrument], True
        return "", False


class FakeStore:
    def __init__(self, positions=(), totals=InstrumentTotals(16.0, -4.0), failures=0):
        self.positions = list(positions)
        self.totals = totals
        self.failures = failures
        self.windows = []
        self.calls = 0

    async def fetch_positions(self, instrument, min_price, max_price):
        self.windows.append((min_price, max_price))
        return [p for p in self.positions if min_price <= p.price < max_price]

    async def fetch_totals(self, instrument):
        self.calls += 1
        if self.failures:
            self.failures -= 1
            raise StorageError("server selection timeout")
        return self.totals


class FakeSink:
    def __init__(self, ok=True):
        self.ok = ok
        self.messages = []

    async def deliver(self, text, parse_mode="HTML"):
        self.messages.append((text, parse_mode))
        return self.ok


def make_job(prices, store, sink=None, **kwargs):
    aggregator = PositionAggregator(store, {"TEST": 1.0, "BTC": 100.0})
    return ReportJob(FakePrices(prices), aggregator, sink or FakeSink(), ["TEST"], **kwargs)


def test_pass_end_to_end():
    store = FakeStore(EXAMPLE_POSITIONS)
    sink = FakeSink()
    job = make_job({"TEST": "50"}, store, sink)

    assert asyncio.run(job.run_pass("TEST")) is True

    (low, high), = store.windows
    assert (low, high) == (pytest.approx(47.5), pytest.approx(52.5))

    (text, parse_mode), = sink.messages
    assert parse_mode == "HTML"
    assert text.startswith("<b>📊 TEST Position Data</b>")
    assert HIGHLIGHT_GLYPH + "51.00" in text
    assert "TEST reference price: 50" in text
    assert "https://app.hyperliquid.xyz/trade/TEST/USDC" in text


def test_pass_without_price_uses_fallback_window():
    store = FakeStore(EXAMPLE_POSITIONS)
    sink = FakeSink()
    job = make_job({}, store, sink)

    assert asyncio.run(job.run_pass("TEST")) is True

    assert store.windows == [(47.0, 53.0)]
    text, _ = sink.messages[0]
    assert "<a href" not in text
    assert "reference price" not in text


def test_pass_unparseable_price_uses_fallback_window():
    store = FakeStore(EXAMPLE_POSITIONS)
    job = make_job({"TEST": "N/A"}, store)
    assert asyncio.run(job.run_pass("TEST")) is True
    assert store.windows == [(47.0, 53.0)]


def test_storage_retry_then_success():
    store = FakeStore(EXAMPLE_POSITIONS, failures=2)
    sink = FakeSink()
    job = make_job({"TEST": "50"}, store, sink, retry_count=3, retry_delay=0)

    assert asyncio.run(job.run_pass("TEST")) is True
    assert store.calls == 3
    assert len(sink.messages) == 1


def test_storage_retry_exhausted_skips_pass():
    store = FakeStore(EXAMPLE_POSITIONS, failures=5)
    sink = FakeSink()
    job = make_job({"TEST": "50"}, store, sink, retry_count=3, retry_delay=0)

    assert asyncio.run(job.run_pass("TEST")) is False
    assert store.calls == 3
    assert sink.messages == []


def test_empty_window_sends_degraded_report():
    sink = FakeSink()
    job = make_job({"TEST": "500"}, FakeStore(EXAMPLE_POSITIONS), sink)

    assert asyncio.run(job.run_pass("TEST")) is True
    text, _ = sink.messages[0]
    assert NO_DATA in text
    assert HIGHLIGHT_GLYPH not in text


def test_empty_window_fails_when_buckets_required():
    sink = FakeSink()
    job = make_job({"TEST": "500"}, FakeStore(EXAMPLE_POSITIONS), sink, require_buckets=True)

    assert asyncio.run(job.run_pass("TEST")) is False
    assert sink.messages == []


def test_sink_failure_is_reported():
    job = make_job({"TEST": "50"}, FakeStore(EXAMPLE_POSITIONS), FakeSink(ok=False))
    assert asyncio.run(job.run_pass("TEST")) is False


def test_run_once_continues_past_failures():
    sink = FakeSink()
    aggregator = PositionAggregator(FakeStore(EXAMPLE_POSITIONS), {"TEST": 1.0})
    job = ReportJob(FakePrices({"TEST": "50"}), aggregator, sink, ["DOGE", "TEST"])

    assert asyncio.run(job.run_once()) == 1
    assert len(sink.messages) == 1


def test_run_pass_is_repeatable():
    sink = FakeSink()
    job = make_job({"TEST": "50"}, FakeStore(EXAMPLE_POSITIONS), sink)

    asyncio.run(job.run_pass("TEST"))
    asyncio.run(job.run_pass("TEST"))

    assert sink.messages[0] == sink.messages[1]


def test_seconds_until_next_tick():
    assert seconds_until_next_tick(60, now=120.0) == 60
    assert seconds_until_next_tick(60, now=125.0) == 55
    assert seconds_until_next_tick(300, now=1000.0) == 200


def test_pass_fine_bucket_width_labels():
    store = FakeStore([PositionRecord(0.1234, 2, L), PositionRecord(0.1245, 3, L)])
    sink = FakeSink()
    aggregator = PositionAggregator(store, {"PEPE": 0.001})
    job = ReportJob(FakePrices({"PEPE": "0.124"}), aggregator, sink, ["PEPE"])

    assert asyncio.run(job.run_pass("PEPE")) is True

    text, _ = sink.messages[0]
    assert ROW_GLYPH + "0.123 " in text
    assert HIGHLIGHT_GLYPH + "0.124 " in text


def test_only_storage_errors_are_retried():
    store = FakeStore(EXAMPLE_POSITIONS)
    aggregator = PositionAggregator(store, {})
    job = ReportJob(FakePrices({"TEST": "50"}), aggregator, FakeSink(), ["TEST"], retry_delay=0)

    assert asyncio.run(job.run_pass("TEST")) is False
    assert store.calls == 1
