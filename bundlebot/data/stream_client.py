"""Resilient trade-stream client.

Keeps one websocket connection to the trade feed, re-subscribes after every
reconnect, and hands normalized ``TradeEvent``s to the caller.

Outbound messages:
  feed:        {"action": "subscribe", "subscriptions": ["trade"]}
  token:       {"action": "subscribe", "tokenMint": <mint>}
  unsubscribe: {"action": "unsubscribe", "tokenMint": <mint>}
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

import websockets

from bundlebot.core.errors import NetworkError, ProtocolError
from bundlebot.core.logging import get_logger
from bundlebot.data.stream_messages import MessageKind, decode_stream_message

if TYPE_CHECKING:
    from collections.abc import Callable

    from bundlebot.core.errors import BundleBotError
    from bundlebot.models.trade import TradeEvent

log = get_logger(__name__)

DEFAULT_FEED_URL = "wss://sol.fury.bot"
MAX_RECONNECT_MESSAGE = "Max reconnection attempts reached"


class ConnectionPhase(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


@dataclass
class StreamParams:
    """Callbacks and market-cap inputs for one stream session."""

    on_event: Callable[[TradeEvent], None]
    on_error: Callable[[BundleBotError], None]
    feed_url: str = DEFAULT_FEED_URL
    on_connected: Callable[[], None] | None = None
    on_disconnected: Callable[[], None] | None = None
    token_mint: str | None = None
    quote_price: Decimal = Decimal("0")
    token_supply: Decimal = Decimal("0")


@dataclass
class SubscriptionState:
    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED
    subscribed_token_mint: str | None = None
    last_sent_subscribe_message: str | None = None
    last_sent_feed_message: str | None = None


class StreamClient:
    """Websocket subscriber for the trade feed.

    Reconnects after any close or transport error, up to
    ``max_reconnect_attempts`` times in a row, waiting ``reconnect_delay``
    seconds before each attempt. A successful connection resets the count.
    When the attempts run out the client enters FAILED and reports
    ``NetworkError("Max reconnection attempts reached")`` once.
    """

    def __init__(
        self,
        reconnect_delay: float = 3.0,
        max_reconnect_attempts: int = 10,
        send_timeout: float = 5.0,
    ) -> None:
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_attempts = max_reconnect_attempts
        self._send_timeout = send_timeout
        self._params: StreamParams | None = None
        self._state = SubscriptionState()
        self._ws: Any = None
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def is_connected(self) -> bool:
        return self._state.phase == ConnectionPhase.CONNECTED and self._ws is not None

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def phase(self) -> ConnectionPhase:
        return self._state.phase

    async def connect(self, params: StreamParams) -> None:
        """Start the connection loop, or retarget a live connection."""
        if self.is_connected:
            token_changed = self._state.subscribed_token_mint != params.token_mint
            self._params = params
            if token_changed and params.token_mint:
                await self.update_subscription(params.token_mint)
            return

        self._params = params
        if self._task is not None and not self._task.done():
            return
        self._running = True
        self._state.phase = ConnectionPhase.CONNECTING
        self._task = asyncio.create_task(self._connection_loop())
        log.info("stream.starting", url=params.feed_url)

    async def update_subscription(self, token_mint: str) -> None:
        """Move the token-scoped subscription to ``token_mint``."""
        if self._params is None:
            return
        old = self._state.subscribed_token_mint
        self._params.token_mint = token_mint
        if not self.is_connected:
            return
        if old and old != token_mint:
            await self._send_unsubscribe(old)
        await self._send_token_subscribe(token_mint)

    def update_quote_price(self, price: Decimal) -> None:
        if self._params is not None:
            self._params.quote_price = price

    def update_token_supply(self, supply: Decimal) -> None:
        if self._params is not None:
            self._params.token_supply = supply

    async def disconnect(self) -> None:
        """Close the connection and stop reconnecting."""
        self._running = False
        if self._ws is not None and self._state.subscribed_token_mint:
            await self._send_unsubscribe(self._state.subscribed_token_mint)
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        self._state = SubscriptionState(phase=ConnectionPhase.DISCONNECTED)
        self._params = None
        log.info("stream.disconnected")

    # --- connection loop ---

    async def _connection_loop(self) -> None:
        attempts = 0
        while self._running:
            connected = False
            try:
                assert self._params is not None
                async with websockets.connect(
                    self._params.feed_url,
                    ping_interval=20,
                    ping_timeout=20,
                ) as ws:
                    self._ws = ws
                    connected = True
                    attempts = 0
                    await self._on_open()
                    async for raw_msg in ws:
                        if not self._running:
                            break
                        self._handle_message(raw_msg)
            except (OSError, websockets.WebSocketException) as exc:
                log.warning("stream.connection_error", error=str(exc), attempt=attempts)
            except Exception:
                log.exception("stream.unexpected_error", attempt=attempts)
            finally:
                self._ws = None

            if connected:
                log.info("stream.closed")
                self._notify(self._params.on_disconnected if self._params else None)
            if not self._running:
                break
            if attempts >= self._max_reconnect_attempts:
                self._state.phase = ConnectionPhase.FAILED
                self._running = False
                log.error("stream.failed", attempts=attempts)
                if self._params is not None:
                    self._params.on_error(NetworkError(MAX_RECONNECT_MESSAGE))
                break

            attempts += 1
            self._state.phase = ConnectionPhase.RECONNECTING
            log.info(
                "stream.reconnecting",
                attempt=attempts,
                max_attempts=self._max_reconnect_attempts,
                delay_s=self._reconnect_delay,
            )
            await asyncio.sleep(self._reconnect_delay)

    async def _on_open(self) -> None:
        self._state.phase = ConnectionPhase.CONNECTED
        self._state.last_sent_feed_message = None
        self._state.last_sent_subscribe_message = None
        self._state.subscribed_token_mint = None
        log.info("stream.connected", url=self._params.feed_url if self._params else None)
        self._notify(self._params.on_connected if self._params else None)

        await self._send_feed_subscribe()
        if self._params is not None and self._params.token_mint:
            await self._send_token_subscribe(self._params.token_mint)

    # --- outbound ---

    async def _send(self, text: str) -> bool:
        if self._ws is None:
            return False
        try:
            await asyncio.wait_for(self._ws.send(text), timeout=self._send_timeout)
        except (OSError, asyncio.TimeoutError, websockets.WebSocketException):
            log.warning("stream.send_failed", message=text[:120], exc_info=True)
            return False
        return True

    async def _send_feed_subscribe(self) -> None:
        text = json.dumps({"action": "subscribe", "subscriptions": ["trade"]})
        if text == self._state.last_sent_feed_message:
            return
        if await self._send(text):
            self._state.last_sent_feed_message = text
            log.info("stream.subscribed_feed")

    async def _send_token_subscribe(self, token_mint: str) -> None:
        text = json.dumps({"action": "subscribe", "tokenMint": token_mint})
        if text == self._state.last_sent_subscribe_message:
            log.debug("stream.subscribe_skipped", token=token_mint[:8])
            return
        if await self._send(text):
            self._state.last_sent_subscribe_message = text
            self._state.subscribed_token_mint = token_mint
            log.info("stream.subscribed_token", token=token_mint[:8])

    async def _send_unsubscribe(self, token_mint: str) -> None:
        if await self._send(json.dumps({"action": "unsubscribe", "tokenMint": token_mint})):
            if self._state.subscribed_token_mint == token_mint:
                self._state.subscribed_token_mint = None
                self._state.last_sent_subscribe_message = None
            log.info("stream.unsubscribed_token", token=token_mint[:8])

    # --- inbound ---

    def _handle_message(self, raw_msg: str | bytes) -> None:
        params = self._params
        if params is None:
            return
        try:
            result = decode_stream_message(
                raw_msg,
                token_mint=params.token_mint,
                quote_price=params.quote_price,
                token_supply=params.token_supply,
            )
        except Exception as exc:
            log.error("stream.decode_failed", exc_info=True)
            self._report(ProtocolError(f"Failed to decode stream message: {exc}"))
            return
        try:
            if result.kind == MessageKind.TRADE and result.event is not None:
                params.on_event(result.event)
            elif result.is_error:
                log.warning("stream.message_error", kind=result.kind.value, error=result.error)
                params.on_error(ProtocolError(result.error or result.kind.value))
            elif result.kind == MessageKind.FILTERED:
                log.debug("stream.filtered", mint=result.detail)
            else:
                log.debug("stream.control", kind=result.kind.value, detail=result.detail)
        except Exception:
            log.error("stream.callback_error", kind=result.kind.value, exc_info=True)

    def _report(self, error: ProtocolError) -> None:
        if self._params is None:
            return
        try:
            self._params.on_error(error)
        except Exception:
            log.error("stream.callback_error", exc_info=True)

    @staticmethod
    def _notify(callback: Callable[[], None] | None) -> None:
        if callback is None:
            return
        try:
            callback()
        except Exception:
            log.error("stream.callback_error", exc_info=True)
