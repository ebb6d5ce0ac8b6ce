"""Tests for StreamClient against a fake websocket."""

from __future__ import annotations

import asyncio
import json
from decimal import Decimal
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from bundlebot.core.errors import BundleBotError, NetworkError, ProtocolError
from bundlebot.data.stream_client import (
    MAX_RECONNECT_MESSAGE,
    ConnectionPhase,
    StreamClient,
    StreamParams,
)
from bundlebot.data.stream_messages import decode_stream_message
from bundlebot.models.trade import TradeEvent

MINT = "TokenMint1111111111111111111111111111111111"
OTHER = "OtherMint222222222222222222222222222222222"


class FakeSocket:
    """Minimal websocket: records sends, yields queued frames."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self._frames: asyncio.Queue[str | None] = asyncio.Queue()

    def feed(self, payload: dict[str, Any]) -> None:
        self._frames.put_nowait(json.dumps(payload))

    async def send(self, text: str) -> None:
        self.sent.append(json.loads(text))

    async def close(self) -> None:
        self.closed = True
        self._frames.put_nowait(None)

    def __aiter__(self) -> FakeSocket:
        return self

    async def __anext__(self) -> str:
        frame = await self._frames.get()
        if frame is None:
            raise StopAsyncIteration
        return frame


class FakeConnect:
    """Stands in for ``websockets.connect(...)`` as an async context manager."""

    def __init__(self, socket: FakeSocket) -> None:
        self._socket = socket

    async def __aenter__(self) -> FakeSocket:
        return self._socket

    async def __aexit__(self, *exc: object) -> bool:
        self._socket.closed = True
        return False


class Recorder:
    def __init__(self, expected: int = 1) -> None:
        self.events: list[TradeEvent] = []
        self.errors: list[BundleBotError] = []
        self._expected = expected
        self.done = asyncio.Event()
        self.errored = asyncio.Event()

    def on_event(self, event: TradeEvent) -> None:
        self.events.append(event)
        if len(self.events) >= self._expected:
            self.done.set()

    def on_error(self, error: BundleBotError) -> None:
        self.errors.append(error)
        self.errored.set()


def _trade(mint: str, price: str = "0.001") -> dict[str, Any]:
    return {
        "type": "trade",
        "transaction": {"tokenMint": mint, "type": "buy", "avgPrice": price, "timestamp": 1},
    }


def _params(recorder: Recorder, **kwargs: Any) -> StreamParams:
    return StreamParams(
        on_event=recorder.on_event,
        on_error=recorder.on_error,
        feed_url="wss://stream.example",
        token_mint=MINT,
        **kwargs,
    )


class TestSubscriptions:
    @pytest.mark.asyncio()
    async def test_subscribes_feed_then_token(self) -> None:
        socket = FakeSocket()
        recorder = Recorder()
        client = StreamClient(reconnect_delay=0)
        with patch("bundlebot.data.stream_client.websockets.connect", return_value=FakeConnect(socket)):
            await client.connect(_params(recorder))
            socket.feed(_trade(MINT))
            await asyncio.wait_for(recorder.done.wait(), timeout=1)

            assert socket.sent == [
                {"action": "subscribe", "subscriptions": ["trade"]},
                {"action": "subscribe", "tokenMint": MINT},
            ]
            assert client.is_connected
            assert client.phase == ConnectionPhase.CONNECTED
            assert client.state.subscribed_token_mint == MINT
            await client.disconnect()

    @pytest.mark.asyncio()
    async def test_same_token_is_not_resubscribed(self) -> None:
        socket = FakeSocket()
        recorder = Recorder()
        client = StreamClient(reconnect_delay=0)
        with patch("bundlebot.data.stream_client.websockets.connect", return_value=FakeConnect(socket)):
            await client.connect(_params(recorder))
            socket.feed(_trade(MINT))
            await asyncio.wait_for(recorder.done.wait(), timeout=1)

            await client.update_subscription(MINT)
            assert len(socket.sent) == 2
            await client.disconnect()

    @pytest.mark.asyncio()
    async def test_switching_token_unsubscribes_old(self) -> None:
        socket = FakeSocket()
        recorder = Recorder()
        client = StreamClient(reconnect_delay=0)
        with patch("bundlebot.data.stream_client.websockets.connect", return_value=FakeConnect(socket)):
            await client.connect(_params(recorder))
            socket.feed(_trade(MINT))
            await asyncio.wait_for(recorder.done.wait(), timeout=1)

            await client.update_subscription(OTHER)
            assert socket.sent[2:] == [
                {"action": "unsubscribe", "tokenMint": MINT},
                {"action": "subscribe", "tokenMint": OTHER},
            ]
            assert client.state.subscribed_token_mint == OTHER
            await client.disconnect()

    @pytest.mark.asyncio()
    async def test_disconnect_unsubscribes_and_resets(self) -> None:
        socket = FakeSocket()
        recorder = Recorder()
        client = StreamClient(reconnect_delay=0)
        with patch("bundlebot.data.stream_client.websockets.connect", return_value=FakeConnect(socket)):
            await client.connect(_params(recorder))
            socket.feed(_trade(MINT))
            await asyncio.wait_for(recorder.done.wait(), timeout=1)

            await client.disconnect()

        assert socket.sent[-1] == {"action": "unsubscribe", "tokenMint": MINT}
        assert socket.closed
        assert not client.is_connected
        assert client.phase == ConnectionPhase.DISCONNECTED
        assert client.state.subscribed_token_mint is None


class TestInbound:
    @pytest.mark.asyncio()
    async def test_other_tokens_never_reach_callback(self) -> None:
        socket = FakeSocket()
        recorder = Recorder()
        client = StreamClient(reconnect_delay=0)
        with patch("bundlebot.data.stream_client.websockets.connect", return_value=FakeConnect(socket)):
            await client.connect(_params(recorder))
            socket.feed(_trade(OTHER))
            socket.feed({"type": "welcome", "message": "hello"})
            socket.feed(_trade(MINT))
            await asyncio.wait_for(recorder.done.wait(), timeout=1)
            await client.disconnect()

        assert [e.token_mint for e in recorder.events] == [MINT]
        assert recorder.errors == []

    @pytest.mark.asyncio()
    async def test_market_cap_uses_current_inputs(self) -> None:
        socket = FakeSocket()
        recorder = Recorder(expected=2)
        client = StreamClient(reconnect_delay=0)
        params = _params(recorder, quote_price=Decimal("100"), token_supply=Decimal("1000"))
        with patch("bundlebot.data.stream_client.websockets.connect", return_value=FakeConnect(socket)):
            await client.connect(params)
            socket.feed(_trade(MINT, "0.5"))
            await asyncio.sleep(0.01)
            client.update_quote_price(Decimal("200"))
            socket.feed(_trade(MINT, "0.5"))
            await asyncio.wait_for(recorder.done.wait(), timeout=1)
            await client.disconnect()

        assert [e.market_cap for e in recorder.events] == [Decimal("50000"), Decimal("100000")]

    @pytest.mark.asyncio()
    async def test_error_frames_are_reported_and_connection_stays(self) -> None:
        socket = FakeSocket()
        recorder = Recorder()
        client = StreamClient(reconnect_delay=0)
        with patch("bundlebot.data.stream_client.websockets.connect", return_value=FakeConnect(socket)):
            await client.connect(_params(recorder))
            socket.feed({"type": "error", "message": "slow down"})
            socket.feed({"type": "nonsense"})
            socket.feed(_trade(MINT))
            await asyncio.wait_for(recorder.done.wait(), timeout=1)

            assert [type(e) for e in recorder.errors] == [ProtocolError, ProtocolError]
            assert recorder.errors[0].message == "slow down"
            assert client.is_connected
            await client.disconnect()

    @pytest.mark.asyncio()
    async def test_callback_exception_does_not_kill_stream(self) -> None:
        socket = FakeSocket()
        recorder = Recorder()
        calls: list[TradeEvent] = []

        def flaky(event: TradeEvent) -> None:
            calls.append(event)
            if len(calls) == 1:
                raise RuntimeError("consumer bug")
            recorder.on_event(event)

        client = StreamClient(reconnect_delay=0)
        params = StreamParams(on_event=flaky, on_error=recorder.on_error, token_mint=MINT)
        with patch("bundlebot.data.stream_client.websockets.connect", return_value=FakeConnect(socket)):
            await client.connect(params)
            socket.feed(_trade(MINT))
            socket.feed(_trade(MINT))
            await asyncio.wait_for(recorder.done.wait(), timeout=1)
            await client.disconnect()

        assert len(calls) == 2

    @pytest.mark.asyncio()
    @pytest.mark.parametrize("timestamp", [float("nan"), float("inf")])
    async def test_non_finite_values_do_not_kill_stream(self, timestamp: float) -> None:
        socket = FakeSocket()
        recorder = Recorder(expected=3)
        client = StreamClient(reconnect_delay=0)
        params = _params(recorder, token_supply=Decimal("1"))
        bad_price = _trade(MINT, "1e600000")
        bad_price["priceInfo"] = {"solPrice": "1e600000"}
        with patch("bundlebot.data.stream_client.websockets.connect", return_value=FakeConnect(socket)):
            await client.connect(params)
            socket.feed({"type": "trade", "transaction": {"tokenMint": MINT, "timestamp": timestamp}})
            socket.feed(bad_price)
            socket.feed(_trade(MINT))
            await asyncio.wait_for(recorder.done.wait(), timeout=1)

            assert client.is_connected
            assert recorder.events[1].market_cap == 0
            await client.disconnect()

        assert recorder.errors == []

    @pytest.mark.asyncio()
    async def test_decoder_failure_is_reported(self) -> None:
        socket = FakeSocket()
        recorder = Recorder()
        calls: list[Any] = []

        def flaky_decode(raw: Any, **kwargs: Any) -> Any:
            calls.append(raw)
            if len(calls) == 1:
                raise RuntimeError("decoder bug")
            return decode_stream_message(raw, **kwargs)

        client = StreamClient(reconnect_delay=0)
        with patch("bundlebot.data.stream_client.websockets.connect", return_value=FakeConnect(socket)), \
                patch("bundlebot.data.stream_client.decode_stream_message", flaky_decode):
            await client.connect(_params(recorder))
            socket.feed(_trade(MINT))
            socket.feed(_trade(MINT))
            await asyncio.wait_for(recorder.done.wait(), timeout=1)

            assert client.is_connected
            await client.disconnect()

        assert len(recorder.errors) == 1
        assert isinstance(recorder.errors[0], ProtocolError)
        assert "decoder bug" in recorder.errors[0].message


class BrokenSocket(FakeSocket):
    """Raises a non-network error on the first receive."""

    async def __anext__(self) -> str:
        raise RuntimeError("receive bug")


class TestReconnect:
    @pytest.mark.asyncio()
    async def test_gives_up_after_max_attempts(self) -> None:
        recorder = Recorder()
        connect = MagicMock(side_effect=OSError("connection refused"))
        client = StreamClient(reconnect_delay=0, max_reconnect_attempts=3)
        with patch("bundlebot.data.stream_client.websockets.connect", connect):
            await client.connect(_params(recorder))
            await asyncio.wait_for(recorder.errored.wait(), timeout=1)
            await asyncio.sleep(0.01)

        assert connect.call_count == 4
        assert len(recorder.errors) == 1
        assert isinstance(recorder.errors[0], NetworkError)
        assert recorder.errors[0].message == MAX_RECONNECT_MESSAGE
        assert client.phase == ConnectionPhase.FAILED

    @pytest.mark.asyncio()
    async def test_resubscribes_after_reconnect(self) -> None:
        first, second = FakeSocket(), FakeSocket()
        recorder = Recorder()
        connected: list[int] = []
        disconnected: list[int] = []
        client = StreamClient(reconnect_delay=0)
        params = _params(
            recorder,
            on_connected=lambda: connected.append(1),
            on_disconnected=lambda: disconnected.append(1),
        )
        connect = MagicMock(side_effect=[FakeConnect(first), FakeConnect(second)])
        with patch("bundlebot.data.stream_client.websockets.connect", connect):
            await client.connect(params)
            await asyncio.sleep(0.01)
            await first.close()
            second.feed(_trade(MINT))
            await asyncio.wait_for(recorder.done.wait(), timeout=1)

            assert second.sent == first.sent
            assert len(connected) == 2
            assert len(disconnected) == 1
            await client.disconnect()

    @pytest.mark.asyncio()
    async def test_unexpected_error_reconnects(self) -> None:
        second = FakeSocket()
        recorder = Recorder()
        connect = MagicMock(side_effect=[FakeConnect(BrokenSocket()), FakeConnect(second)])
        client = StreamClient(reconnect_delay=0)
        with patch("bundlebot.data.stream_client.websockets.connect", connect):
            await client.connect(_params(recorder))
            second.feed(_trade(MINT))
            await asyncio.wait_for(recorder.done.wait(), timeout=1)

            assert connect.call_count == 2
            assert client.is_connected
            await client.disconnect()

    @pytest.mark.asyncio()
    async def test_disconnect_during_reconnect_delay(self) -> None:
        recorder = Recorder()
        connect = MagicMock(side_effect=OSError("connection refused"))
        client = StreamClient(reconnect_delay=0.2)
        with patch("bundlebot.data.stream_client.websockets.connect", connect):
            await client.connect(_params(recorder))
            await asyncio.sleep(0.05)
            assert client.phase == ConnectionPhase.RECONNECTING

            await client.disconnect()
            await asyncio.sleep(0.3)

        assert connect.call_count == 1
        assert client.phase == ConnectionPhase.DISCONNECTED
        assert recorder.errors == []

    @pytest.mark.asyncio()
    async def test_connect_while_connected_retargets(self) -> None:
        socket = FakeSocket()
        recorder = Recorder()
        connect = MagicMock(return_value=FakeConnect(socket))
        client = StreamClient(reconnect_delay=0)
        with patch("bundlebot.data.stream_client.websockets.connect", connect):
            await client.connect(_params(recorder))
            socket.feed(_trade(MINT))
            await asyncio.wait_for(recorder.done.wait(), timeout=1)

            retarget = StreamParams(
                on_event=recorder.on_event, on_error=recorder.on_error, token_mint=OTHER,
            )
            await client.connect(retarget)

            assert connect.call_count == 1
            assert socket.sent[-1] == {"action": "subscribe", "tokenMint": OTHER}
            await client.disconnect()
