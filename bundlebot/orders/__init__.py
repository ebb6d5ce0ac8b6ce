"""Limit orders: persistence, price monitoring and display helpers."""

from __future__ import annotations

from bundlebot.orders.formatting import format_compact, format_distance, format_limit_price
from bundlebot.orders.monitor import OrderMonitor, check_limit_orders
from bundlebot.orders.store import LimitOrderStore

__all__ = [
    "LimitOrderStore",
    "OrderMonitor",
    "check_limit_orders",
    "format_compact",
    "format_distance",
    "format_limit_price",
]
