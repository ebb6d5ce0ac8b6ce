from bundlebot.models.bundle import SignedBundle, TransactionBundle
from bundlebot.models.execution import ExecutionMode, ExecutionResult, TradeIntent, UnitOutcome
from bundlebot.models.limit_order import LimitOrder, LimitOrderSpec, LimitOrderStatus, PriceMode
from bundlebot.models.trade import TradeEvent, TradeSide
from bundlebot.models.wallet import Wallet

__all__ = [
    "ExecutionMode",
    "ExecutionResult",
    "LimitOrder",
    "LimitOrderSpec",
    "LimitOrderStatus",
    "PriceMode",
    "SignedBundle",
    "TradeEvent",
    "TradeIntent",
    "TradeSide",
    "TransactionBundle",
    "UnitOutcome",
    "Wallet",
]
