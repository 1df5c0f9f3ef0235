"""
hyper_notify - Periodic position distribution reports for Hyperliquid.

Architecture:
- datafeed/: Websocket transport and the reference price cache
- storage/: Position store (MongoDB)
- engine/: Bucketing, totals, display window selection
- report/: Text/HTML report rendering
- notify/: Notification sinks (Telegram, console)
- orchestrator: Scheduled report passes
"""

__version__ = "0.1.0"
