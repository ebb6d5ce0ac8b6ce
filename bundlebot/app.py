"""Application wiring: one shared runtime for one-shot trades and watch mode."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from dataclasses import dataclass
from typing import TYPE_CHECKING

from bundlebot.core.errors import BundleBotError, NetworkError
from bundlebot.core.logging import get_logger
from bundlebot.data.stream_client import StreamClient, StreamParams
from bundlebot.execution.coordinator import ExecutionCoordinator
from bundlebot.execution.history import TradeHistory
from bundlebot.execution.rate_limiter import SlidingWindowRateLimiter
from bundlebot.execution.signer import BundleSigner
from bundlebot.execution.trading_client import TradingServerClient
from bundlebot.orders.monitor import OrderMonitor
from bundlebot.orders.store import LimitOrderStore

if TYPE_CHECKING:
    from collections.abc import Sequence
    from decimal import Decimal

    import httpx

    from bundlebot.config.settings import Settings
    from bundlebot.models.execution import ExecutionMode, ExecutionResult, TradeIntent
    from bundlebot.models.limit_order import LimitOrder, LimitOrderSpec
    from bundlebot.models.wallet import Wallet

logger = get_logger(__name__)


@dataclass
class Runtime:
    settings: Settings
    rate_limiter: SlidingWindowRateLimiter
    client: TradingServerClient
    signer: BundleSigner
    history: TradeHistory
    coordinator: ExecutionCoordinator

    async def aclose(self) -> None:
        await self.client.close()


def build_runtime(
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Runtime:
    """Wire the execution pipeline around a single shared rate limiter."""
    rate_limiter = SlidingWindowRateLimiter(
        settings.rate_limit.max_per_window,
        settings.rate_limit.window_seconds,
    )
    client = TradingServerClient(settings.trading, transport=transport)
    signer = BundleSigner()
    history = TradeHistory(settings.history.path, settings.history.max_entries)
    coordinator = ExecutionCoordinator(
        prep=client,
        submitter=client,
        signer=signer,
        rate_limiter=rate_limiter,
        settings=settings.trading,
        history=history,
    )
    return Runtime(settings, rate_limiter, client, signer, history, coordinator)


async def run_trade(
    settings: Settings,
    wallets: Sequence[Wallet],
    intent: TradeIntent,
    mode: ExecutionMode | None = None,
) -> ExecutionResult:
    """Execute one buy or sell and return the aggregated result."""
    runtime = build_runtime(settings)
    try:
        return await runtime.coordinator.execute(wallets, intent, mode)
    finally:
        await runtime.aclose()


async def run_watch(
    settings: Settings,
    wallets: Sequence[Wallet],
    token_mint: str,
    specs: Sequence[LimitOrderSpec],
    *,
    quote_price: Decimal,
    token_supply: Decimal,
    stop: asyncio.Event | None = None,
) -> int:
    """Stream trades for ``token_mint`` and fire limit orders until none remain.

    Returns 0 once every order on the token has resolved or ``stop`` is set,
    1 when the stream gives up reconnecting.
    """
    runtime = build_runtime(settings)
    stop = stop or asyncio.Event()
    stream_failed = False

    def on_order(kind: str, order: LimitOrder) -> None:
        logger.info("watch.order_update", kind=kind, order_id=order.id, error=order.error)
        if kind in ("completed", "failed") and not monitor.active_orders(token_mint):
            stop.set()

    def on_error(error: BundleBotError) -> None:
        nonlocal stream_failed
        logger.warning("watch.stream_error", error=error.message)
        if isinstance(error, NetworkError):
            stream_failed = True
            stop.set()

    monitor = OrderMonitor(
        runtime.coordinator,
        lambda: wallets,
        store=LimitOrderStore(settings.limit_orders.storage_path),
        settings=settings.limit_orders,
        notifier=on_order,
    )
    for spec in specs:
        order = monitor.add_order(spec)
        logger.info("watch.order_added", order_id=order.id, token=order.token_address)

    if not monitor.active_orders(token_mint):
        logger.info("watch.nothing_to_watch", token=token_mint)
        await runtime.aclose()
        return 0

    stream = StreamClient(
        reconnect_delay=settings.stream.reconnect_delay_seconds,
        max_reconnect_attempts=settings.stream.max_reconnect_attempts,
    )
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    try:
        await stream.connect(StreamParams(
            on_event=monitor.on_trade_event,
            on_error=on_error,
            feed_url=settings.stream.url,
            token_mint=token_mint,
            quote_price=quote_price,
            token_supply=token_supply,
        ))
        await stop.wait()
    finally:
        monitor.close()
        await monitor.wait_idle()
        await stream.disconnect()
        await runtime.aclose()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(sig)

    return 1 if stream_failed else 0
