"""
Telegram notification sink (Bot API sendMessage over aiohttp).

Retry policy lives here: bounded attempts with a fixed delay, no retry on
permanent failures (bad request, bad token, blocked bot, ...).

Proxies: http(s) URLs go per request through aiohttp; socks4/socks5 URLs
get an aiohttp-socks connector on the session.
"""

from __future__ import annotations

import asyncio
from urllib.parse import urlparse

import aiohttp
import orjson
from aiohttp_socks import ProxyConnector
from loguru import logger
from tenacity import retry_if_exception

from ..errors import ConfigError, DeliveryError
from ..retry import bounded_retry

API_BASE = "https://api.telegram.org"

# Telegram rejects messages over 4096 characters
MAX_MESSAGE_LENGTH = 4000
SPLIT_LOOKBACK = 100
PART_PAUSE_SEC = 0.5
SECTION_BREAK = "\n\n"

HTTP_PROXY_SCHEMES = ("http", "https")
SOCKS_PROXY_SCHEMES = ("socks4", "socks5")

PERMANENT_STATUS = frozenset({400, 401, 403, 404})
PERMANENT_MESSAGES = (
    "chat not found",
    "bot was blocked by the user",
    "message is too long",
    "invalid chat_id",
)


def is_permanent_error(err: DeliveryError) -> bool:
    """True when retrying cannot help."""
    if err.error_code in PERMANENT_STATUS or err.status in PERMANENT_STATUS:
        return True
    text = str(err).lower()
    return any(msg in text for msg in PERMANENT_MESSAGES)


def is_transient_error(err: BaseException) -> bool:
    return isinstance(err, DeliveryError) and not is_permanent_error(err)


def split_message(message: str, max_length: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """
    Split message into parts of at most max_length characters.

    Cuts after the last blank line (section break) that fits, so HTML
    blocks such as <pre> stay whole. Without one, prefers a newline, '.'
    or ';' within the last SPLIT_LOOKBACK characters before the limit.
    """
    parts: list[str] = []
    rest = message
    while rest:
        if len(rest) <= max_length:
            parts.append(rest)
            break

        section = rest.rfind(SECTION_BREAK, 0, max_length)
        if section > 0:
            cut = section + len(SECTION_BREAK)
        else:
            cut = max_length
            for i in range(max_length - 1, max(max_length - SPLIT_LOOKBACK, 0), -1):
                if rest[i] in "\n.;":
                    cut = i + 1
                    break

        parts.append(rest[:cut])
        rest = rest[cut:]
    return parts


def check_proxy(proxy: str | None) -> str | None:
    """Accept http(s) and socks4/socks5 proxy URLs."""
    if not proxy:
        return None
    scheme = urlparse(proxy).scheme
    if scheme not in HTTP_PROXY_SCHEMES + SOCKS_PROXY_SCHEMES:
        raise ConfigError(
            f"unsupported Telegram proxy scheme {scheme!r} (use http, https, socks4 or socks5)"
        )
    return proxy


class TelegramSink:
    """NotificationSink delivering to one Telegram chat."""

    def __init__(
        self,
        token: str,
        chat_id: str,
        proxy: str | None = None,
        retry_count: int = 3,
        retry_delay: float = 5.0,
        timeout: float = 10.0,
        max_length: int = MAX_MESSAGE_LENGTH,
    ) -> None:
        if not token or not chat_id:
            raise ConfigError("Telegram token and chat_id are required")

        self.chat_id = chat_id
        self.proxy = check_proxy(proxy)
        self.retry_count = max(1, retry_count)
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.max_length = max_length

        self._token = token
        self._session: aiohttp.ClientSession | None = None

    @property
    def socks_proxy(self) -> str | None:
        """Proxy handled by the session connector (socks schemes)."""
        if self.proxy and urlparse(self.proxy).scheme in SOCKS_PROXY_SCHEMES:
            return self.proxy
        return None

    @property
    def request_proxy(self) -> str | None:
        """Proxy passed to each request (http schemes)."""
        if self.proxy and self.socks_proxy is None:
            return self.proxy
        return None

    def _url(self, method: str) -> str:
        return f"{API_BASE}/bot{self._token}/{method}"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = ProxyConnector.from_url(self.socks_proxy) if self.socks_proxy else None
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                json_serialize=lambda obj: orjson.dumps(obj).decode(),
            )
        return self._session

    async def _call(self, method: str, payload: dict | None = None) -> dict:
        session = self._get_session()
        try:
            async with session.post(
                self._url(method), json=payload or {}, proxy=self.request_proxy
            ) as resp:
                raw = await resp.read()
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DeliveryError(f"{method} request failed: {e!r}") from e

        try:
            body = orjson.loads(raw)
        except orjson.JSONDecodeError:
            body = {}

        if status != 200 or not body.get("ok"):
            raise DeliveryError(
                f"Telegram API error [{body.get('error_code', status)}]: "
                f"{body.get('description', 'unexpected response')}",
                status=status,
                error_code=body.get("error_code"),
            )
        return body

    async def send_message(self, text: str, parse_mode: str = "HTML") -> None:
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        if parse_mode:
            payload["parse_mode"] = parse_mode
        await self._call("sendMessage", payload)

    async def send_with_retry(self, text: str, parse_mode: str = "HTML") -> None:
        """send_message with bounded retry; permanent errors raise at once."""
        retrying = bounded_retry(
            "Telegram send",
            self.retry_count,
            self.retry_delay,
            retry_if_exception(is_transient_error),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await self.send_message(text, parse_mode)
        except DeliveryError as e:
            if is_permanent_error(e):
                logger.error("Permanent Telegram error, not retrying: {}", e)
            raise

    async def deliver(self, text: str, parse_mode: str = "HTML") -> bool:
        """Send text, splitting it when it exceeds max_length. False on failure."""
        parts = split_message(text, self.max_length)
        try:
            if len(parts) == 1:
                await self.send_with_retry(parts[0], parse_mode)
            else:
                for i, part in enumerate(parts, start=1):
                    await self.send_with_retry(f"({i}/{len(parts)})\n{part}", parse_mode)
                    if i < len(parts):
                        await asyncio.sleep(PART_PAUSE_SEC)
        except DeliveryError as e:
            logger.error("Telegram delivery failed: {}", e)
            return False

        logger.info("Message delivered to Telegram chat {}", self.chat_id)
        return True

    async def get_me(self) -> dict:
        """Bot account info; raises DeliveryError for a bad token."""
        body = await self._call("getMe")
        return body.get("result", {})

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
