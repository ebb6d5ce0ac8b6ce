"""Shared test fixtures."""

from __future__ import annotations

import base64
from collections.abc import Callable
from pathlib import Path  # noqa: TCH003

import base58
import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from bundlebot.config.loader import ConfigLoader
from bundlebot.config.settings import Settings, TradingSettings
from bundlebot.models.wallet import Wallet


@pytest.fixture()
def config_dir(tmp_path: Path) -> Path:
    """Create a temp config directory with default.toml."""
    config = tmp_path / "config"
    config.mkdir()

    default_toml = config / "default.toml"
    default_toml.write_text(
        """\
[trading]
server_url = "https://trade.example"
self_hosted = false
default_slippage_bps = 9900
default_transaction_fee_sol = 0.005
default_bundle_mode = "batch"
batch_size = 5
batch_delay_seconds = 1.0
single_delay_seconds = 0.2
bundle_stagger_seconds = 0.1
max_transactions_per_bundle = 5

[rate_limit]
max_per_window = 2
window_seconds = 1.0

[stream]
url = "wss://stream.example"
reconnect_delay_seconds = 3.0
max_reconnect_attempts = 10

[limit_orders]
max_active_orders = 20
check_debounce_seconds = 0.25

[history]
max_entries = 50
"""
    )
    return config


@pytest.fixture()
def config_loader(config_dir: Path) -> ConfigLoader:
    loader = ConfigLoader(config_dir=config_dir)
    loader.load()
    return loader


@pytest.fixture()
def settings(config_loader: ConfigLoader) -> Settings:
    return Settings.from_config(config_loader.config)


@pytest.fixture()
def trading_settings() -> TradingSettings:
    return TradingSettings(
        server_url="https://trade.example",
        batch_delay_seconds=0.0,
        single_delay_seconds=0.0,
        bundle_stagger_seconds=0.0,
    )


@pytest.fixture()
def keypairs() -> list[Keypair]:
    return [Keypair() for _ in range(7)]


@pytest.fixture()
def wallets(keypairs: list[Keypair]) -> list[Wallet]:
    return [Wallet(address=str(kp.pubkey()), private_key=str(kp)) for kp in keypairs]


def make_unsigned_tx(*signers: Pubkey) -> VersionedTransaction:
    """A transaction with one transfer per signer and empty signature slots."""
    instructions = [
        transfer(TransferParams(from_pubkey=s, to_pubkey=Pubkey.new_unique(), lamports=1_000))
        for s in signers
    ]
    message = MessageV0.try_compile(signers[0], instructions, [], Hash.default())
    slots = message.header.num_required_signatures
    return VersionedTransaction.populate(message, [Signature.default()] * slots)


def encode_b58(tx: VersionedTransaction) -> str:
    return base58.b58encode(bytes(tx)).decode("ascii")


def encode_b64(tx: VersionedTransaction) -> str:
    return base64.b64encode(bytes(tx)).decode("ascii")


@pytest.fixture()
def unsigned_tx() -> Callable[..., str]:
    """Factory: base58-encoded unsigned transaction requiring the given signers."""

    def _factory(*signers: Pubkey) -> str:
        return encode_b58(make_unsigned_tx(*signers))

    return _factory


@pytest.fixture()
def unsigned_tx_b64() -> Callable[..., str]:
    def _factory(*signers: Pubkey) -> str:
        return encode_b64(make_unsigned_tx(*signers))

    return _factory
