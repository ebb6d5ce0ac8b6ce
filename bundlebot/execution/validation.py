"""Intent validation, run before any network call."""

from __future__ import annotations

from typing import TYPE_CHECKING

from bundlebot.core.errors import ValidationError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from bundlebot.models.execution import TradeIntent
    from bundlebot.models.wallet import Wallet


def validate_intent(wallets: Sequence[Wallet], intent: TradeIntent) -> None:
    """Raise ValidationError describing the first problem with ``intent``."""
    if not intent.token_address:
        raise ValidationError("Invalid token address")

    if intent.is_buy:
        _validate_buy(wallets, intent)
    else:
        _validate_sell(intent)

    if intent.slippage_bps is not None and intent.slippage_bps < 0:
        raise ValidationError("Invalid slippage value")

    if not wallets:
        raise ValidationError("No wallets provided")
    for wallet in wallets:
        if not wallet.address or not wallet.private_key:
            raise ValidationError("Invalid wallet data")


def _validate_buy(wallets: Sequence[Wallet], intent: TradeIntent) -> None:
    if intent.amount is None or intent.amount <= 0:
        raise ValidationError("Invalid SOL amount")
    if intent.amounts is not None:
        if len(intent.amounts) != len(wallets):
            raise ValidationError("Custom amounts array length must match wallets array length")
        if any(a <= 0 for a in intent.amounts):
            raise ValidationError("All custom amounts must be positive numbers")


def _validate_sell(intent: TradeIntent) -> None:
    has_percent = intent.sell_percent is not None
    has_amount = intent.tokens_amount is not None
    if not has_percent and not has_amount:
        raise ValidationError("Either sellPercent or tokensAmount must be provided")
    if has_percent and has_amount:
        raise ValidationError("Cannot specify both sellPercent and tokensAmount")
    if has_percent and not (0 < intent.sell_percent <= 100):  # type: ignore[operator]
        raise ValidationError("Invalid sell percentage (must be between 1-100)")
    if has_amount and intent.tokens_amount <= 0:  # type: ignore[operator]
        raise ValidationError("Invalid tokens amount (must be greater than 0)")
