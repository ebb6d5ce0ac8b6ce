"""Typed views over the loaded config, one model per section."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel

from bundlebot.config.loader import ConfigLoader
from bundlebot.models.execution import ExecutionMode

SOL_MINT = "So11111111111111111111111111111111111111112"
LAMPORTS_PER_SOL = 1_000_000_000

REQUIRED_KEYS = ["trading.server_url", "stream.url"]


class TradingSettings(BaseModel):
    """Read-only defaults consumed by the execution pipeline."""

    server_url: str = ""
    self_hosted: bool = False
    default_slippage_bps: int = 9900
    default_transaction_fee_sol: float = 0.005
    default_bundle_mode: ExecutionMode = ExecutionMode.BATCH
    base_currency_mint: str = SOL_MINT
    batch_size: int = 5
    batch_delay_seconds: float = 1.0
    single_delay_seconds: float = 0.2
    bundle_stagger_seconds: float = 0.1
    max_transactions_per_bundle: int = 5
    request_timeout_seconds: float = 10.0

    model_config = {"frozen": True}

    @property
    def fee_lamports(self) -> int:
        return int(self.default_transaction_fee_sol * LAMPORTS_PER_SOL)


class RateLimitSettings(BaseModel):
    max_per_window: int = 2
    window_seconds: float = 1.0

    model_config = {"frozen": True}


class StreamSettings(BaseModel):
    url: str = "wss://sol.fury.bot"
    reconnect_delay_seconds: float = 3.0
    max_reconnect_attempts: int = 10

    model_config = {"frozen": True}


class LimitOrderSettings(BaseModel):
    max_active_orders: int = 20
    check_debounce_seconds: float = 0.25
    storage_path: Path | None = None

    model_config = {"frozen": True}


class HistorySettings(BaseModel):
    path: Path | None = None
    max_entries: int = 50

    model_config = {"frozen": True}


class Settings(BaseModel):
    trading: TradingSettings = TradingSettings()
    rate_limit: RateLimitSettings = RateLimitSettings()
    stream: StreamSettings = StreamSettings()
    limit_orders: LimitOrderSettings = LimitOrderSettings()
    history: HistorySettings = HistorySettings()

    model_config = {"frozen": True}

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> Settings:
        """Build settings from a loaded config dict; unknown keys are ignored."""
        sections = {name: config.get(name, {}) for name in cls.model_fields}
        return cls.model_validate(sections)

    @classmethod
    def load(cls, config_dir: str | Path = "config", env: str | None = None) -> Settings:
        loader = ConfigLoader(config_dir=config_dir, env=env)
        loader.load()
        loader.validate_keys(REQUIRED_KEYS)
        loader.validate_ranges()
        return cls.from_config(loader.config)
