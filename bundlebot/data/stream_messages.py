"""Decoding of inbound trade-stream messages.

The feed multiplexes several JSON shapes over one connection:

  {"type": "welcome", "message": ...}
  {"type": "connection", "clientId": ...}
  {"type": "event_subscription_confirmed"}
  {"type": "trade" | "transaction", "transaction" | "data": {...}, "priceInfo": {"solPrice": ...}}
  {"type": "error", "message" | "error": ...}

``decode_stream_message`` is a pure function from one raw frame to a tagged
``DecodeResult``; the client decides what to do with each kind.
"""

from __future__ import annotations

import json
import math
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from bundlebot.models.trade import TradeEvent, TradeSide


class MessageKind(str, Enum):
    WELCOME = "welcome"
    CONNECTION = "connection"
    SUBSCRIPTION_CONFIRMED = "event_subscription_confirmed"
    TRADE = "trade"
    FILTERED = "filtered"
    SERVER_ERROR = "error"
    UNKNOWN = "unknown"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class DecodeResult:
    kind: MessageKind
    event: TradeEvent | None = None
    error: str | None = None
    detail: str | None = None

    @property
    def is_error(self) -> bool:
        return self.kind in (MessageKind.SERVER_ERROR, MessageKind.UNKNOWN, MessageKind.MALFORMED)


_ZERO = Decimal("0")


def _decimal(value: Any) -> Decimal:
    """Lenient numeric parse; anything unparseable or non-finite is zero."""
    if value is None or isinstance(value, bool):
        return _ZERO
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return _ZERO
    if not result.is_finite():
        return _ZERO
    return result


def _first(*values: Any) -> Any:
    for value in values:
        if value not in (None, ""):
            return value
    return None


def _side(raw: Any) -> TradeSide:
    if isinstance(raw, str) and raw.lower() == "sell":
        return TradeSide.SELL
    return TradeSide.BUY


def market_cap_estimate(price: Decimal, quote_price: Decimal, supply: Decimal) -> Decimal:
    """``price * quote_price * supply`` when all three are positive, else zero.

    A product outside the decimal context range is also zero.
    """
    if price > 0 and quote_price > 0 and supply > 0:
        try:
            return price * quote_price * supply
        except ArithmeticError:
            return _ZERO
    return _ZERO


def decode_stream_message(
    raw: str | bytes,
    *,
    token_mint: str | None = None,
    quote_price: Decimal = _ZERO,
    token_supply: Decimal = _ZERO,
    now_ms: int | None = None,
) -> DecodeResult:
    """Decode one frame received on the trade stream.

    Args:
        raw: The frame as received.
        token_mint: Currently subscribed token. Trades for other tokens are
            returned as FILTERED.
        quote_price: Quote asset price in USD, used for the market cap
            unless the message carries ``priceInfo.solPrice``.
        token_supply: Token supply, used for the market cap.
        now_ms: Timestamp used when the message has none.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError, UnicodeDecodeError) as exc:
        return DecodeResult(MessageKind.MALFORMED, error=f"Failed to parse stream message: {exc}")
    if not isinstance(data, dict):
        return DecodeResult(
            MessageKind.MALFORMED,
            error=f"Unexpected stream message shape: {type(data).__name__}",
        )

    msg_type = data.get("type")
    if msg_type == "welcome":
        return DecodeResult(MessageKind.WELCOME, detail=data.get("message"))
    if msg_type == "connection":
        return DecodeResult(MessageKind.CONNECTION, detail=data.get("clientId"))
    if msg_type == "event_subscription_confirmed":
        return DecodeResult(MessageKind.SUBSCRIPTION_CONFIRMED)
    if msg_type == "error":
        message = _first(data.get("message"), data.get("error")) or "Unknown server error"
        return DecodeResult(MessageKind.SERVER_ERROR, error=str(message))
    if msg_type in ("trade", "transaction"):
        try:
            return _decode_trade(
                data,
                token_mint=token_mint,
                quote_price=quote_price,
                token_supply=token_supply,
                now_ms=now_ms,
            )
        except (ArithmeticError, ValueError, TypeError) as exc:
            return DecodeResult(MessageKind.MALFORMED, error=f"Invalid trade message: {exc}")
    return DecodeResult(MessageKind.UNKNOWN, error=f"Unknown stream message type: {msg_type!r}")


def _decode_trade(
    message: dict[str, Any],
    *,
    token_mint: str | None,
    quote_price: Decimal,
    token_supply: Decimal,
    now_ms: int | None,
) -> DecodeResult:
    tx = _first(message.get("transaction"), message.get("data"))
    if not isinstance(tx, dict):
        tx = {}

    mint = _first(tx.get("tokenMint"), tx.get("mint"), message.get("tokenMint"), message.get("mint"))
    if mint and token_mint and mint != token_mint:
        return DecodeResult(MessageKind.FILTERED, detail=str(mint))
    final_mint = mint or token_mint
    if not final_mint:
        return DecodeResult(MessageKind.FILTERED, detail="no token mint")

    avg_price = _decimal(_first(tx.get("avgPrice"), tx.get("avgPriceUsd")))
    price_info = message.get("priceInfo")
    live_quote = _decimal(price_info.get("solPrice")) if isinstance(price_info, dict) else _ZERO
    effective_quote = live_quote if live_quote > 0 else quote_price

    timestamp = _first(tx.get("timestamp"), message.get("timestamp"))
    if (
        not isinstance(timestamp, (int, float))
        or isinstance(timestamp, bool)
        or not math.isfinite(timestamp)
    ):
        timestamp = now_ms if now_ms is not None else int(time.time() * 1000)

    event = TradeEvent(
        side=_side(_first(tx.get("type"), tx.get("transactionType"), tx.get("tradeType"))),
        trader_address=str(_first(tx.get("signer"), tx.get("trader")) or ""),
        token_amount=_decimal(_first(tx.get("tokenAmount"), tx.get("tokensAmount"))),
        quote_amount=_decimal(tx.get("solAmount")),
        avg_price=avg_price,
        timestamp_ms=int(timestamp),
        signature=str(_first(tx.get("signature"), message.get("signature")) or ""),
        token_mint=str(final_mint),
        market_cap=market_cap_estimate(avg_price, effective_quote, token_supply),
    )
    return DecodeResult(MessageKind.TRADE, event=event)
