"""Limit order monitor: evaluates active orders against live prices.

Price events are throttled to one evaluation per ``check_debounce``
interval. The first event after a quiet interval is evaluated at once; later
events in the same interval replace the pending sample for their token and
are evaluated together when the interval ends.

A triggered order is flipped to TRIGGERED in the same loop turn that
evaluated it, before its execution task is created. Every later evaluation
therefore sees a non-active order and skips it.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from bundlebot.config.settings import LimitOrderSettings
from bundlebot.core.errors import CapacityError, ValidationError
from bundlebot.core.logging import get_logger, log_order_event
from bundlebot.models.execution import TradeIntent
from bundlebot.models.limit_order import LimitOrder, LimitOrderSpec, LimitOrderStatus, PriceMode
from bundlebot.models.trade import TradeSide
from bundlebot.orders.formatting import format_limit_price
from bundlebot.orders.store import LimitOrderStore

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from bundlebot.interfaces import ExecutionDispatcher
    from bundlebot.models.trade import TradeEvent
    from bundlebot.models.wallet import Wallet

logger = get_logger(__name__)

NO_ACTIVE_WALLETS = "No active wallets"

Notifier = Callable[[str, LimitOrder], None]


def check_limit_orders(
    orders: Iterable[LimitOrder],
    market_cap: Decimal | None,
    token_price: Decimal | None,
) -> list[LimitOrder]:
    """Active orders whose threshold the current values cross.

    Buys trigger at or below the target, sells at or above. Unknown or
    non-positive values never trigger.
    """
    triggered: list[LimitOrder] = []
    for order in orders:
        if order.status != LimitOrderStatus.ACTIVE:
            continue
        current = market_cap if order.price_mode == PriceMode.MARKET_CAP else token_price
        if current is None or current <= 0:
            continue
        if order.side == TradeSide.BUY:
            hit = current <= order.target_price
        else:
            hit = current >= order.target_price
        if hit:
            triggered.append(order)
    return triggered


@dataclass(frozen=True)
class PriceSample:
    token_address: str
    market_cap: Decimal | None = None
    token_price: Decimal | None = None


class OrderMonitor:
    """Watches prices and dispatches limit orders at most once each.

    Args:
        dispatcher: Execution entry point for triggered orders.
        wallet_source: Returns the currently configured wallets.
        store: Order persistence. Defaults to an in-memory store.
        settings: Capacity and debounce settings.
        notifier: Called with ("triggered" | "completed" | "failed", order).
    """

    def __init__(
        self,
        dispatcher: ExecutionDispatcher,
        wallet_source: Callable[[], Sequence[Wallet]],
        store: LimitOrderStore | None = None,
        settings: LimitOrderSettings | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._wallet_source = wallet_source
        self._store = store if store is not None else LimitOrderStore()
        self._settings = settings or LimitOrderSettings()
        self._notifier = notifier
        self._pending: dict[str, PriceSample] = {}
        self._timer: asyncio.TimerHandle | None = None
        self._last_check: float | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def store(self) -> LimitOrderStore:
        return self._store

    def active_orders(self, token_address: str | None = None) -> list[LimitOrder]:
        return self._store.active(token_address)

    # --- order management ---

    def add_order(self, spec: LimitOrderSpec) -> LimitOrder:
        """Register a new active order.

        Raises:
            ValidationError: Missing token or non-positive target or amount.
            CapacityError: The active order limit is reached.
        """
        if not spec.token_address:
            raise ValidationError("Invalid token address")
        if spec.target_price <= 0:
            raise ValidationError("Target price must be greater than 0")
        if spec.amount <= 0:
            raise ValidationError("Amount must be greater than 0")
        if spec.side == TradeSide.SELL and spec.amount > 100:
            raise ValidationError("Invalid sell percentage (must be between 1-100)")

        limit = self._settings.max_active_orders
        if len(self._store.active()) >= limit:
            raise CapacityError(limit)

        order = LimitOrder.from_spec(spec)
        self._store.add(order)
        log_order_event(
            "add",
            order.id,
            token_address=order.token_address,
            side=order.side.value,
            target=format_limit_price(order),
        )
        return order

    def cancel_order(self, order_id: str) -> bool:
        """Cancel an active order. Has no effect once it has triggered."""
        order = self._store.get(order_id)
        if order is None or not self._transition(order, LimitOrderStatus.CANCELLED):
            return False
        log_order_event("cancel", order_id)
        return True

    # --- price events ---

    def on_trade_event(self, event: TradeEvent) -> None:
        self.on_price_event(
            event.token_mint,
            market_cap=event.known_market_cap,
            token_price=event.token_price,
        )

    def on_price_event(
        self,
        token_address: str,
        market_cap: Decimal | None = None,
        token_price: Decimal | None = None,
    ) -> None:
        if self._closed:
            return
        sample = PriceSample(token_address, market_cap, token_price)
        loop = asyncio.get_running_loop()
        now = loop.time()
        interval = self._settings.check_debounce_seconds

        if self._timer is None and (self._last_check is None or now - self._last_check >= interval):
            self._last_check = now
            self._evaluate(sample)
            return

        self._pending[token_address] = sample
        if self._timer is None:
            assert self._last_check is not None
            delay = max(0.0, self._last_check + interval - now)
            self._timer = loop.call_later(delay, self._flush)

    def _flush(self) -> None:
        self._timer = None
        if self._closed:
            return
        samples = list(self._pending.values())
        self._pending.clear()
        self._last_check = asyncio.get_running_loop().time()
        for sample in samples:
            self._evaluate(sample)

    def _evaluate(self, sample: PriceSample) -> None:
        orders = self._store.active(sample.token_address)
        if not orders:
            return
        for order in check_limit_orders(orders, sample.market_cap, sample.token_price):
            self._trigger(order)

    # --- triggering ---

    def _trigger(self, order: LimitOrder) -> None:
        if not self._transition(order, LimitOrderStatus.TRIGGERED):
            return
        log_order_event("trigger", order.id, token_address=order.token_address)
        logger.info(
            "limit_order.triggered",
            order_id=order.id,
            side=order.side.value,
            target=format_limit_price(order),
        )
        self._notify("triggered", order)

        try:
            wallets = self._usable_wallets(order)
        except Exception as exc:
            logger.exception("limit_order.wallet_source_error", order_id=order.id)
            self._resolve(order, LimitOrderStatus.FAILED, str(exc) or type(exc).__name__)
            return
        if not wallets:
            self._resolve(order, LimitOrderStatus.FAILED, NO_ACTIVE_WALLETS)
            return

        task = asyncio.get_running_loop().create_task(self._dispatch(order, wallets))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _usable_wallets(self, order: LimitOrder) -> list[Wallet]:
        wanted = set(order.wallet_addresses)
        return [w for w in self._wallet_source() if w.address in wanted and not w.is_archived]

    async def _dispatch(self, order: LimitOrder, wallets: list[Wallet]) -> None:
        if order.side == TradeSide.BUY:
            intent = TradeIntent(side=TradeSide.BUY, token_address=order.token_address, amount=order.amount)
        else:
            intent = TradeIntent(side=TradeSide.SELL, token_address=order.token_address, sell_percent=order.amount)

        try:
            result = await self._dispatcher.execute(wallets, intent)
        except Exception as exc:
            logger.exception("limit_order.dispatch_error", order_id=order.id)
            self._resolve(order, LimitOrderStatus.FAILED, str(exc) or type(exc).__name__)
            return

        if result.success:
            self._resolve(order, LimitOrderStatus.COMPLETED)
        else:
            self._resolve(order, LimitOrderStatus.FAILED, result.error or "Execution failed")

    def _resolve(self, order: LimitOrder, status: LimitOrderStatus, error: str | None = None) -> None:
        if not self._transition(order, status, error):
            return
        log_order_event(status.value, order.id, error=error)
        self._notify(status.value, order)

    def _transition(
        self,
        order: LimitOrder,
        status: LimitOrderStatus,
        error: str | None = None,
    ) -> bool:
        if not order.status.can_transition_to(status):
            logger.debug(
                "limit_order.transition_rejected",
                order_id=order.id,
                current=order.status.value,
                requested=status.value,
            )
            return False
        order.status = status
        if status.is_terminal:
            order.resolved_at = int(time.time() * 1000)
            order.error = error
        self._store.save()
        return True

    def _notify(self, kind: str, order: LimitOrder) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier(kind, order)
        except Exception:
            logger.error("limit_order.notifier_error", order_id=order.id, exc_info=True)

    # --- lifecycle ---

    async def wait_idle(self) -> None:
        """Wait until every dispatched order has resolved."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        """Stop evaluating. Orders already dispatched still resolve."""
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending.clear()
