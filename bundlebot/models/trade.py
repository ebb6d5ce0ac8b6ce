"""Normalized trade events produced by the stream decoder."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel


class TradeSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class TradeEvent(BaseModel):
    """One trade on the subscribed token, in canonical form."""

    side: TradeSide
    trader_address: str = ""
    token_amount: Decimal = Decimal("0")
    quote_amount: Decimal = Decimal("0")
    avg_price: Decimal = Decimal("0")
    timestamp_ms: int
    signature: str = ""
    token_mint: str
    market_cap: Decimal = Decimal("0")

    model_config = {"frozen": True}

    @property
    def token_price(self) -> Decimal | None:
        return self.avg_price if self.avg_price > 0 else None

    @property
    def known_market_cap(self) -> Decimal | None:
        return self.market_cap if self.market_cap > 0 else None
