"""
Settings for hyper_notify.

Sources, later wins:
1. Dataclass defaults
2. YAML file (config.yaml by default, optional)
3. Environment / .env: TELEGRAM_BOT_TOKEN, TELEGRAM_CHAT_ID, TELEGRAM_PROXY,
   MONGO_URI, MONGO_DB, HYPERLIQUID_COINS, INTERVAL
"""

from __future__ import annotations

import dataclasses
import os
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv
from loguru import logger

from .datafeed.messages import DEFAULT_CHANNEL, DEFAULT_PRICE_FIELD
from .datafeed.transport import WS_URL
from .errors import ConfigError
from .report.renderer import TRADE_URL_TEMPLATE

DEFAULT_CONFIG_FILE = "config.yaml"
DEFAULT_INTERVAL_SEC = 60.0

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}

# Delay/timeout fields: plain numbers are seconds, "500ms" / "1m" also accepted
_SECONDS_FIELDS = frozenset({
    "retry_delay", "reconnect_delay", "heartbeat", "connect_timeout", "startup_wait", "timeout",
})
# Handed to loguru as-is: sizes, counts and durations are all valid
_FREEFORM_FIELDS = frozenset({"rotation", "retention"})


def _unit_seconds(text: str) -> float | None:
    """Sum of "1h30m" style components; None unless text is made only of them."""
    if _DURATION_RE.sub("", text) == "" and _DURATION_RE.search(text):
        return sum(float(n) * _DURATION_UNITS[u] for n, u in _DURATION_RE.findall(text))
    return None


def parse_duration(value: Any, default: float = DEFAULT_INTERVAL_SEC) -> float:
    """
    Seconds from "1h30m" / "90s" style durations or a bare number of minutes.

    Unparseable values fall back to default.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) * 60.0

    text = str(value or "").strip()
    if not text:
        return default

    if re.fullmatch(r"\d+", text):
        return int(text) * 60.0

    seconds = _unit_seconds(text)
    if seconds is not None:
        return seconds

    logger.warning("Cannot parse interval {!r}, using {}s", text, default)
    return default


def parse_seconds(value: Any, name: str = "value") -> float:
    """Non-negative seconds from a number or a "500ms" / "5s" / "1m" string."""
    seconds: float | None = None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if re.fullmatch(r"\d+(?:\.\d+)?", text):
            seconds = float(text)
        else:
            seconds = _unit_seconds(text)

    if seconds is None or seconds < 0:
        raise ConfigError(f"{name} must be a non-negative duration, got {value!r}")
    return seconds


@dataclass
class FeedSettings:
    url: str = WS_URL
    channel: str = DEFAULT_CHANNEL
    price_field: str = DEFAULT_PRICE_FIELD
    reconnect_delay: float = 5.0
    heartbeat: float = 30.0
    connect_timeout: float = 10.0
    startup_wait: float = 10.0   # Max seconds to wait for first prices


@dataclass
class MongoSettings:
    uri: str = "mongodb://localhost:27017"
    database: str = "hyperliquid"
    collection_template: str = "{coin}_positions"
    timeout_ms: int = 10_000


@dataclass
class TelegramSettings:
    token: str = ""
    chat_id: str = ""
    proxy: str = ""
    parse_mode: str = "HTML"
    timeout: float = 10.0
    max_length: int = 4000


@dataclass
class ReportSettings:
    show_bars: bool = False
    bar_width: int = 15
    compact_threshold: float = 99999.0
    window_limit: int = 30
    window_radius: int = 10
    trade_url_template: str = TRADE_URL_TEMPLATE
    require_buckets: bool = False


@dataclass
class LoggingSettings:
    level: str = "INFO"
    file: str = "hyper_notify.log"
    rotation: str = "10 MB"
    retention: int = 5


@dataclass
class Settings:
    instruments: list[str] = field(default_factory=lambda: ["HYPE", "BTC", "ETH", "SOL"])
    bucket_widths: dict[str, float] = field(
        default_factory=lambda: {"BTC": 100.0, "ETH": 10.0, "SOL": 1.0, "HYPE": 0.5}
    )
    price_range_ratio: float = 0.05
    fallback_window: tuple[float, float] = (47.0, 53.0)
    interval: float = DEFAULT_INTERVAL_SEC
    retry_count: int = 3
    retry_delay: float = 5.0
    feed: FeedSettings = field(default_factory=FeedSettings)
    mongo: MongoSettings = field(default_factory=MongoSettings)
    telegram: TelegramSettings = field(default_factory=TelegramSettings)
    report: ReportSettings = field(default_factory=ReportSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def validate(self) -> None:
        if not self.instruments:
            raise ConfigError("at least one instrument is required")
        missing = [i for i in self.instruments if i not in self.bucket_widths]
        if missing:
            raise ConfigError(f"no bucket width for: {', '.join(missing)}")
        bad = [k for k, w in self.bucket_widths.items() if w <= 0]
        if bad:
            raise ConfigError(f"bucket width must be positive: {', '.join(bad)}")
        if not 0 < self.price_range_ratio < 1:
            raise ConfigError(f"price_range_ratio must be in (0, 1), got {self.price_range_ratio}")
        low, high = self.fallback_window
        if low >= high:
            raise ConfigError(f"fallback_window must be (low, high), got {self.fallback_window}")
        if self.interval <= 0:
            raise ConfigError("interval must be positive")
        if self.retry_count < 1:
            raise ConfigError("retry_count must be at least 1")
        if self.report.window_radius < 1 or self.report.window_limit < 2 * self.report.window_radius:
            raise ConfigError("report.window_limit must be >= 2 * report.window_radius >= 2")


_SECTIONS = {
    "feed": FeedSettings,
    "mongo": MongoSettings,
    "telegram": TelegramSettings,
    "report": ReportSettings,
    "logging": LoggingSettings,
}


def _coerce(name: str, value: Any, default: Any, where: str) -> Any:
    """Check a scalar YAML value against the type of its dataclass default."""
    if name in _SECONDS_FIELDS:
        return parse_seconds(value, f"{where}.{name}")
    if name in _FREEFORM_FIELDS:
        return value
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ConfigError(f"{where}.{name} must be true or false, got {value!r}")
        return value
    if isinstance(default, (int, float)):
        if isinstance(value, bool):
            raise ConfigError(f"{where}.{name} must be a number, got {value!r}")
        try:
            return type(default)(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{where}.{name} must be a number, got {value!r}") from None
    if isinstance(default, str):
        return str(value)
    return value


def _build(cls: type, data: Mapping[str, Any], where: str) -> Any:
    fields = {f.name: f for f in dataclasses.fields(cls)}
    unknown = set(data) - set(fields)
    if unknown:
        raise ConfigError(f"unknown {where} keys: {', '.join(sorted(unknown))}")
    values = {
        name: _coerce(name, value, fields[name].default, where)
        for name, value in data.items()
    }
    return cls(**values)


def settings_from_dict(data: Mapping[str, Any]) -> Settings:
    """Build Settings from a parsed YAML mapping."""
    data = dict(data)
    kwargs: dict[str, Any] = {}

    for name, cls in _SECTIONS.items():
        section = data.pop(name, None) or {}
        if not isinstance(section, Mapping):
            raise ConfigError(f"{name} must be a mapping")
        kwargs[name] = _build(cls, section, name)

    if "interval" in data:
        kwargs["interval"] = parse_duration(data.pop("interval"))
    if "fallback_window" in data:
        window = data.pop("fallback_window")
        if not isinstance(window, (list, tuple)) or len(window) != 2:
            raise ConfigError("fallback_window must be [low, high]")
        kwargs["fallback_window"] = (float(window[0]), float(window[1]))
    if "bucket_widths" in data:
        widths = data.pop("bucket_widths") or {}
        kwargs["bucket_widths"] = {str(k): float(v) for k, v in widths.items()}
    if "instruments" in data:
        kwargs["instruments"] = [str(i) for i in data.pop("instruments") or []]

    kwargs.update(data)
    return _build(Settings, kwargs, "top-level")


def apply_env(settings: Settings, env: Mapping[str, str]) -> Settings:
    """Overlay environment variables onto settings (in place)."""
    tg = settings.telegram
    tg.token = env.get("TELEGRAM_BOT_TOKEN", tg.token)
    tg.chat_id = env.get("TELEGRAM_CHAT_ID", tg.chat_id)
    tg.proxy = env.get("TELEGRAM_PROXY", tg.proxy)

    settings.mongo.uri = env.get("MONGO_URI", settings.mongo.uri)
    settings.mongo.database = env.get("MONGO_DB", settings.mongo.database)

    coins = env.get("HYPERLIQUID_COINS")
    if coins:
        settings.instruments = [c.strip() for c in coins.split(",") if c.strip()]

    if env.get("INTERVAL"):
        settings.interval = parse_duration(env["INTERVAL"])

    return settings


def load_settings(
    path: str | None = None,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """
    Load settings from YAML + environment and validate them.

    An explicit path must exist; without one, config.yaml is used if present.
    env defaults to os.environ after loading .env.
    """
    if path is not None and not os.path.exists(path):
        raise ConfigError(f"Config file {path} not found.")
    if path is None and os.path.exists(DEFAULT_CONFIG_FILE):
        path = DEFAULT_CONFIG_FILE

    data: Mapping[str, Any] = {}
    if path is not None:
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"invalid YAML in {path}: {e}") from e
        if not isinstance(data, Mapping):
            raise ConfigError(f"{path} must contain a mapping")

    settings = settings_from_dict(data)

    if env is None:
        load_dotenv()
        env = os.environ
    apply_env(settings, env)

    settings.validate()
    return settings
