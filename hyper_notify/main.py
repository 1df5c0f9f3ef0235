#!/usr/bin/env python3
"""
hyper_notify - periodic position distribution reports for Hyperliquid.

Usage:
    python -m hyper_notify.main --config config.yaml

    Or via the console script:
    hyper-notify --once --dry-run

Runs the reference price stream in the background and sends one report per
instrument every interval until SIGINT/SIGTERM.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import signal
import sys

from loguru import logger

from .config import LoggingSettings, Settings, load_settings
from .errors import HyperNotifyError


def setup_logging(cfg: LoggingSettings, level: str | None = None) -> None:
    """stderr + rotating file sink."""
    level = (level or cfg.level).upper()
    logger.remove()
    logger.add(sys.stderr, level=level)
    if cfg.file:
        logger.add(cfg.file, rotation=cfg.rotation, retention=cfg.retention, level=level)


async def main(settings: Settings, once: bool = False, dry_run: bool = False) -> None:
    """Main entry point - runs price stream and report scheduler concurrently."""

    # Import here to avoid slow startup for --help
    from .datafeed.price_stream import PriceStreamCache
    from .datafeed.transport import AiohttpFeedTransport
    from .engine.aggregator import PositionAggregator
    from .notify.console import ConsoleSink
    from .notify.telegram import TelegramSink
    from .orchestrator import ReportJob
    from .report.renderer import RenderOptions
    from .storage.positions import MongoPositionStore

    feed = settings.feed
    transport = AiohttpFeedTransport(
        url=feed.url,
        heartbeat=feed.heartbeat,
        connect_timeout=feed.connect_timeout,
    )
    cache = PriceStreamCache(
        transport,
        channel=feed.channel,
        price_field=feed.price_field,
        reconnect_delay=feed.reconnect_delay,
    )
    for instrument in settings.instruments:
        await cache.subscribe(instrument)

    tg = settings.telegram
    if dry_run:
        sink = ConsoleSink()
    else:
        sink = TelegramSink(
            tg.token,
            tg.chat_id,
            proxy=tg.proxy or None,
            retry_count=settings.retry_count,
            retry_delay=settings.retry_delay,
            timeout=tg.timeout,
            max_length=tg.max_length,
        )

    store = MongoPositionStore(
        settings.mongo.uri,
        settings.mongo.database,
        collection_template=settings.mongo.collection_template,
        timeout_ms=settings.mongo.timeout_ms,
    )

    report = settings.report
    job = ReportJob(
        cache,
        PositionAggregator(
            store,
            settings.bucket_widths,
            price_range_ratio=settings.price_range_ratio,
            fallback_window=settings.fallback_window,
        ),
        sink,
        settings.instruments,
        retry_count=settings.retry_count,
        retry_delay=settings.retry_delay,
        render_options=RenderOptions(
            show_bars=report.show_bars,
            bar_width=report.bar_width,
            compact_threshold=report.compact_threshold,
            trade_url_template=report.trade_url_template,
        ),
        window_limit=report.window_limit,
        window_radius=report.window_radius,
        require_buckets=report.require_buckets,
        parse_mode=tg.parse_mode,
    )

    cache.start()
    try:
        await store.ping()
        if not dry_run:
            me = await sink.get_me()
            logger.info("Telegram bot @{} ready", me.get("username", "?"))
        await cache.wait_for_prices(settings.instruments, feed.startup_wait)

        if once:
            await job.run_once()
            return

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, stop.set)

        logger.info(
            "Reporting {} every {}s", ", ".join(settings.instruments), settings.interval
        )
        scheduler = asyncio.create_task(job.run_forever(settings.interval))
        try:
            await stop.wait()
            logger.info("Shutdown signal received, exiting...")
        finally:
            scheduler.cancel()
            await asyncio.gather(scheduler, return_exceptions=True)
    finally:
        # Cleanup
        await cache.close()
        await store.close()
        await sink.close()


def cli() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="hyper_notify - Hyperliquid position distribution reports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    hyper-notify --config config.yaml
    hyper-notify --once --dry-run --coins BTC,ETH
        """
    )

    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML config (default: config.yaml if present)"
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Send one round of reports and exit"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print reports to the terminal instead of Telegram"
    )

    parser.add_argument(
        "--coins",
        default=None,
        help="Comma-separated instruments, overrides config (e.g. BTC,ETH)"
    )

    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override (DEBUG, INFO, ...)"
    )

    args = parser.parse_args()

    try:
        settings = load_settings(args.config)
        if args.coins:
            settings.instruments = [c.strip() for c in args.coins.split(",") if c.strip()]
            settings.validate()
    except HyperNotifyError as e:
        parser.error(str(e))

    setup_logging(settings.logging, args.log_level)

    # Run
    try:
        asyncio.run(main(settings, once=args.once, dry_run=args.dry_run))
    except KeyboardInterrupt:
        logger.info("Shutdown requested.")
        sys.exit(0)
    except HyperNotifyError as e:
        logger.error("Fatal: {}", e)
        sys.exit(1)


if __name__ == "__main__":
    cli()
