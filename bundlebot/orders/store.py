"""Limit order persistence: an in-memory index backed by an optional JSON file."""

from __future__ import annotations

import json
from pathlib import Path

from bundlebot.core.logging import get_logger
from bundlebot.models.limit_order import LimitOrder, LimitOrderStatus

logger = get_logger(__name__)


class LimitOrderStore:
    """Holds every limit order, newest first.

    With a ``path`` the full order list is rewritten after each change and
    reloaded on construction. Unreadable files start an empty store.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self._orders: dict[str, LimitOrder] = {}
        if self._path is not None:
            self._load()

    def __len__(self) -> int:
        return len(self._orders)

    def all(self) -> list[LimitOrder]:
        return sorted(self._orders.values(), key=lambda o: o.created_at, reverse=True)

    def get(self, order_id: str) -> LimitOrder | None:
        return self._orders.get(order_id)

    def active(self, token_address: str | None = None) -> list[LimitOrder]:
        return [
            o for o in self.all()
            if o.status == LimitOrderStatus.ACTIVE
            and (token_address is None or o.token_address == token_address)
        ]

    def add(self, order: LimitOrder) -> None:
        self._orders[order.id] = order
        self.save()

    def save(self) -> None:
        if self._path is None:
            return
        payload = [o.model_dump(mode="json") for o in self.all()]
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2))
        except OSError as exc:
            logger.warning("order_store.write_failed", path=str(self._path), error=str(exc))

    def _load(self) -> None:
        assert self._path is not None
        if not self._path.exists():
            return
        try:
            raw = json.loads(self._path.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("order_store.read_failed", path=str(self._path), error=str(exc))
            return
        for item in raw if isinstance(raw, list) else []:
            try:
                order = LimitOrder.model_validate(item)
            except ValueError as exc:
                logger.warning("order_store.bad_order", error=str(exc)[:200])
                continue
            self._orders[order.id] = order
        logger.info("order_store.loaded", orders=len(self._orders))
