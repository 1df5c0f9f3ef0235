"""Dry-run sink: prints reports to the terminal with rich."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.text import Text


class ConsoleSink:
    """NotificationSink that renders the raw report text in a panel."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    async def deliver(self, text: str, parse_mode: str = "HTML") -> bool:
        self.console.print(Panel(Text(text), title=f"report ({parse_mode or 'plain'})", expand=False))
        return True

    async def close(self) -> None:
        pass
