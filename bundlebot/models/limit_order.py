"""Limit orders and their status state machine."""

from __future__ import annotations

import secrets
import time
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

from bundlebot.models.trade import TradeSide


class PriceMode(str, Enum):
    MARKET_CAP = "marketCap"
    TOKEN_PRICE = "tokenPrice"


class LimitOrderStatus(str, Enum):
    ACTIVE = "active"
    TRIGGERED = "triggered"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            LimitOrderStatus.COMPLETED,
            LimitOrderStatus.FAILED,
            LimitOrderStatus.CANCELLED,
        )

    def can_transition_to(self, new: LimitOrderStatus) -> bool:
        return new in _TRANSITIONS[self]


_TRANSITIONS: dict[LimitOrderStatus, frozenset[LimitOrderStatus]] = {
    LimitOrderStatus.ACTIVE: frozenset({
        LimitOrderStatus.TRIGGERED,
        LimitOrderStatus.CANCELLED,
    }),
    LimitOrderStatus.TRIGGERED: frozenset({
        LimitOrderStatus.COMPLETED,
        LimitOrderStatus.FAILED,
    }),
    LimitOrderStatus.COMPLETED: frozenset(),
    LimitOrderStatus.FAILED: frozenset(),
    LimitOrderStatus.CANCELLED: frozenset(),
}


def _now_ms() -> int:
    return int(time.time() * 1000)


def _new_order_id() -> str:
    return f"{_now_ms()}-{secrets.token_hex(5)}"


class LimitOrderSpec(BaseModel):
    """User input for a new limit order."""

    token_address: str
    side: TradeSide
    price_mode: PriceMode = PriceMode.MARKET_CAP
    target_price: Decimal
    amount: Decimal
    wallet_addresses: list[str] = Field(default_factory=list)


class LimitOrder(BaseModel):
    """A limit order. ``amount`` is base currency for buys, percent for sells."""

    id: str = Field(default_factory=_new_order_id)
    token_address: str
    side: TradeSide
    price_mode: PriceMode
    target_price: Decimal
    amount: Decimal
    wallet_addresses: list[str] = Field(default_factory=list)
    status: LimitOrderStatus = LimitOrderStatus.ACTIVE
    created_at: int = Field(default_factory=_now_ms)
    resolved_at: int | None = None
    error: str | None = None

    @classmethod
    def from_spec(cls, spec: LimitOrderSpec) -> LimitOrder:
        return cls(**spec.model_dump())

    @property
    def is_active(self) -> bool:
        return self.status == LimitOrderStatus.ACTIVE
