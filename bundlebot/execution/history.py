"""Trade history: one entry per user-level execution, newest first."""

from __future__ import annotations

import json
import secrets
import time
from decimal import Decimal
from pathlib import Path

from pydantic import BaseModel, Field

from bundlebot.core.logging import get_logger
from bundlebot.models.execution import ExecutionMode
from bundlebot.models.trade import TradeSide

logger = get_logger(__name__)

MAX_HISTORY_ENTRIES = 50


def _now_ms() -> int:
    return int(time.time() * 1000)


class TradeHistoryEntry(BaseModel):
    id: str = Field(default_factory=lambda: f"{_now_ms()}-{secrets.token_hex(5)}")
    timestamp: int = Field(default_factory=_now_ms)
    side: TradeSide
    token_address: str
    wallets_count: int
    amount: Decimal
    amount_type: str
    base_currency_mint: str | None = None
    success: bool
    error: str | None = None
    bundle_mode: ExecutionMode | None = None


class TradeHistory:
    """Keeps the latest ``max_entries`` entries in memory and, optionally, in a JSONL file.

    The file is rewritten on every record so it never holds more than
    ``max_entries`` lines. A failed write is logged and the in-memory
    history is kept.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        max_entries: int = MAX_HISTORY_ENTRIES,
    ) -> None:
        self._path = Path(path) if path is not None else None
        self._max_entries = max_entries
        self._entries: list[TradeHistoryEntry] = []
        if self._path is not None:
            self._entries = self._read_file()

    @property
    def entries(self) -> list[TradeHistoryEntry]:
        return list(self._entries)

    def record(self, entry: TradeHistoryEntry) -> None:
        self._entries.insert(0, entry)
        del self._entries[self._max_entries:]
        if self._path is not None:
            try:
                self._write_file()
            except OSError as exc:
                logger.warning("history.write_failed", path=str(self._path), error=str(exc))

    def _read_file(self) -> list[TradeHistoryEntry]:
        assert self._path is not None
        if not self._path.exists():
            return []
        entries: list[TradeHistoryEntry] = []
        with open(self._path) as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(TradeHistoryEntry.model_validate_json(line))
                except ValueError as exc:
                    logger.warning("history.bad_line", error=str(exc)[:200])
        # file is oldest first
        entries.reverse()
        return entries[: self._max_entries]

    def _write_file(self) -> None:
        assert self._path is not None
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w") as f:
            for entry in reversed(self._entries):
                f.write(json.dumps(entry.model_dump(mode="json")) + "\n")
