"""
Hyperliquid websocket message codec.

Outbound: {"method": "subscribe", "subscription": {"type": <channel>, "coin": <coin>}}
Inbound:  {"channel": <channel>, "data": {"coin": <coin>, "ctx": {"oraclePx": "...", ...}}}

Uses orjson for JSON parsing.
"""

from __future__ import annotations

from typing import NamedTuple

import orjson

from ..errors import DecodeError

DEFAULT_CHANNEL = "activeAssetCtx"
DEFAULT_PRICE_FIELD = "oraclePx"


class PriceUpdate(NamedTuple):
    """Decoded reference price update."""
    instrument: str
    price: str


def encode_subscription(instrument: str, channel: str = DEFAULT_CHANNEL) -> str:
    """Build the subscribe request for one instrument."""
    request = {
        "method": "subscribe",
        "subscription": {"type": channel, "coin": instrument},
    }
    return orjson.dumps(request).decode()


def decode_price_update(
    raw: str | bytes,
    channel: str = DEFAULT_CHANNEL,
    price_field: str = DEFAULT_PRICE_FIELD,
) -> PriceUpdate | None:
    """
    Decode one inbound message.

    Returns None for well-formed messages of other channels
    (subscriptionResponse, pong, ...). Raises DecodeError when the payload
    is not JSON or a message on `channel` is missing the coin or price.
    """
    try:
        message = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise DecodeError(f"invalid JSON: {e}") from e

    if not isinstance(message, dict):
        raise DecodeError(f"expected object, got {type(message).__name__}")

    if message.get("channel") != channel:
        return None

    data = message.get("data")
    if not isinstance(data, dict):
        raise DecodeError(f"{channel} message without data object")

    coin = data.get("coin")
    ctx = data.get("ctx")
    if not isinstance(coin, str) or not coin:
        raise DecodeError(f"{channel} message without coin")
    if not isinstance(ctx, dict):
        raise DecodeError(f"{channel} message for {coin} without ctx")

    price = ctx.get(price_field)
    if isinstance(price, (int, float)) and not isinstance(price, bool):
        price = repr(price)
    if not isinstance(price, str) or not price:
        raise DecodeError(f"{channel} message for {coin} without {price_field}")

    return PriceUpdate(coin, price)
