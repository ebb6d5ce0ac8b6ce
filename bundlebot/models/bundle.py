"""Transaction bundles exchanged with the prep and submission services."""

from __future__ import annotations

from pydantic import BaseModel


class TransactionBundle(BaseModel):
    """Ordered group of encoded transactions, as returned by the prep service."""

    transactions: tuple[str, ...] = ()

    model_config = {"frozen": True}

    def __len__(self) -> int:
        return len(self.transactions)

    @property
    def is_empty(self) -> bool:
        return not self.transactions


class SignedBundle(TransactionBundle):
    """Bundle whose transactions carry every signature the wallet set could provide."""
