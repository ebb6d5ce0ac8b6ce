"""Protocol interfaces for bundlebot collaborators.

The core codes against these contracts; the HTTP client, history file and
order store are the default implementations.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from bundlebot.execution.history import TradeHistoryEntry
    from bundlebot.models.bundle import TransactionBundle
    from bundlebot.models.execution import ExecutionMode, ExecutionResult, TradeIntent
    from bundlebot.models.wallet import Wallet


class PrepResponse:
    """Bundles from the prep service, or a result the server already executed."""

    def __init__(
        self,
        bundles: list[TransactionBundle] | None = None,
        server_result: dict[str, Any] | None = None,
    ) -> None:
        self.bundles = bundles or []
        self.server_result = server_result

    @property
    def executed_by_server(self) -> bool:
        return self.server_result is not None


@runtime_checkable
class PrepService(Protocol):
    """Turns a trade intent into unsigned transaction bundles."""

    async def prepare(self, wallets: Sequence[Wallet], intent: TradeIntent) -> PrepResponse: ...


@runtime_checkable
class SubmissionService(Protocol):
    """Broadcasts signed transactions."""

    async def send_transactions(self, transactions: Sequence[str]) -> Any: ...


@runtime_checkable
class HistoryRecorder(Protocol):
    """Receives one entry per user-level execution."""

    def record(self, entry: TradeHistoryEntry) -> None: ...


@runtime_checkable
class ExecutionDispatcher(Protocol):
    """Entry point the order monitor dispatches triggered orders into."""

    async def execute(
        self,
        wallets: Sequence[Wallet],
        intent: TradeIntent,
        mode: ExecutionMode | None = None,
    ) -> ExecutionResult: ...
