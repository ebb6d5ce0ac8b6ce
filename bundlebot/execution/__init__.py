"""Execution layer: preparation, signing, rate limiting and submission."""

from __future__ import annotations

from bundlebot.execution.coordinator import ExecutionCoordinator
from bundlebot.execution.history import TradeHistory, TradeHistoryEntry
from bundlebot.execution.rate_limiter import RateLimitWindow, SlidingWindowRateLimiter
from bundlebot.execution.signer import BundleSigner
from bundlebot.execution.trading_client import (
    BundleParseResult,
    TradingServerClient,
    parse_transaction_bundles,
)
from bundlebot.execution.validation import validate_intent

__all__ = [
    "BundleParseResult",
    "BundleSigner",
    "ExecutionCoordinator",
    "RateLimitWindow",
    "SlidingWindowRateLimiter",
    "TradeHistory",
    "TradeHistoryEntry",
    "TradingServerClient",
    "parse_transaction_bundles",
    "validate_intent",
]
