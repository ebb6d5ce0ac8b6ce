"""Execution intents, per-unit outcomes and aggregated results."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from bundlebot.models.trade import TradeSide


class ExecutionMode(str, Enum):
    SINGLE = "single"
    BATCH = "batch"
    ALL_IN_ONE = "all-in-one"


class TradeIntent(BaseModel):
    """What the user wants to trade, independent of how it is bundled.

    Buys use ``amount`` (base currency per wallet) or per-wallet ``amounts``.
    Sells use exactly one of ``sell_percent`` and ``tokens_amount``.
    """

    side: TradeSide
    token_address: str
    amount: Decimal | None = None
    amounts: list[Decimal] | None = None
    sell_percent: Decimal | None = None
    tokens_amount: Decimal | None = None
    slippage_bps: int | None = None
    fee_tip_lamports: int | None = None
    jito_tip_lamports: int | None = None
    transactions_fee_lamports: int | None = None
    input_mint: str | None = None
    output_mint: str | None = None
    mode: ExecutionMode | None = None
    batch_delay: float | None = None
    single_delay: float | None = None

    model_config = {"frozen": True}

    @property
    def is_buy(self) -> bool:
        return self.side == TradeSide.BUY

    @property
    def history_amount(self) -> tuple[Decimal, str]:
        """Amount and amount type as recorded in trade history."""
        if self.is_buy:
            return self.amount or Decimal("0"), "base-currency"
        if self.tokens_amount is not None:
            return self.tokens_amount, "base-currency"
        return self.sell_percent or Decimal("0"), "percentage"


class UnitOutcome(BaseModel):
    """Outcome of one execution unit (wallet, wallet group or bundle chunk)."""

    success: bool
    payload: list[Any] = Field(default_factory=list)
    error: str | None = None


def summarize_failures(successful: int, failed: int) -> str | None:
    """Human-readable summary of a partially failed execution."""
    if failed > 0:
        return f"{failed} failed, {successful} succeeded"
    return None


class ExecutionResult(BaseModel):
    """One aggregated result per user action."""

    success: bool
    payload: list[Any] = Field(default_factory=list)
    error: str | None = None
    successful_units: int = 0
    failed_units: int = 0

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[UnitOutcome]) -> ExecutionResult:
        payload: list[Any] = []
        successful = 0
        failed = 0
        for outcome in outcomes:
            if outcome.success:
                successful += 1
                payload.extend(outcome.payload)
            else:
                failed += 1
        return cls(
            success=successful > 0,
            payload=payload,
            error=summarize_failures(successful, failed),
            successful_units=successful,
            failed_units=failed,
        )

    @classmethod
    def failure(cls, message: str) -> ExecutionResult:
        """Failure before any unit ran (validation, prep or unexpected error)."""
        return cls(success=False, error=message)
