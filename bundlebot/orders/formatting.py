"""Display helpers for limit orders."""

from __future__ import annotations

from decimal import Decimal

from bundlebot.models.limit_order import LimitOrder, PriceMode


def format_compact(value: Decimal | float) -> str:
    """Compact number: 1.50M, 12.5K, 0.042, 3.10e-5."""
    value = float(value)
    if value >= 1_000_000:
        return f"{value / 1_000_000:.2f}M"
    if value >= 1_000:
        return f"{value / 1_000:.1f}K"
    if value < 0.001:
        mantissa, exponent = f"{value:.2e}".split("e")
        return f"{mantissa}e{int(exponent):+d}"
    return f"{value:.3f}"


def format_limit_price(order: LimitOrder) -> str:
    if order.price_mode == PriceMode.MARKET_CAP:
        return f"${format_compact(order.target_price)}"
    return f"{format_compact(order.target_price)} SOL"


def format_distance(
    order: LimitOrder,
    market_cap: Decimal | None,
    token_price: Decimal | None,
) -> str:
    """Signed percentage between the current value and the order's target.

    Empty when the current value is unknown.
    """
    current = market_cap if order.price_mode == PriceMode.MARKET_CAP else token_price
    if not current or current <= 0:
        return ""
    pct = (current - order.target_price) / current * 100
    sign = "+" if pct > 0 else ""
    return f"{sign}{pct:.1f}%"
