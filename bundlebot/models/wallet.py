"""Wallet credentials handed to the core by the wallet collaborator."""

from __future__ import annotations

from pydantic import BaseModel, Field


class Wallet(BaseModel):
    """An address and its base58-encoded secret key."""

    address: str
    private_key: str = Field(repr=False)
    is_active: bool = True
    is_archived: bool = False

    model_config = {"frozen": True}

    @property
    def short_address(self) -> str:
        return f"{self.address[:6]}..."
