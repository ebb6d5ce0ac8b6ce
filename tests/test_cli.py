"""Tests for CLI entry point."""

from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from bundlebot.cli import _intent_from_args, build_parser, load_wallets, main
from bundlebot.models.execution import ExecutionMode, ExecutionResult
from bundlebot.models.trade import TradeSide

TOKEN = "TokenMint1111111111111111111111111111111111"


@pytest.fixture()
def wallets_file(tmp_path: Path) -> Path:
    path = tmp_path / "wallets.json"
    path.write_text(json.dumps({
        "wallets": [
            {"address": "WalletA", "privateKey": "keyA"},
            {"address": "WalletB", "private_key": "keyB", "isArchived": True},
        ],
    }))
    return path


class TestParser:
    def test_buy(self) -> None:
        args = build_parser().parse_args(
            ["buy", "--token", TOKEN, "--wallets", "w.json", "--amount", "0.5", "--mode", "single"],
        )
        assert args.command == "buy"
        assert args.amount == Decimal("0.5")
        assert args.mode == "single"
        assert args.config_dir == "config"

    def test_sell_requires_one_amount(self) -> None:
        parser = build_parser()
        with pytest.raises(SystemExit):
            parser.parse_args(["sell", "--token", TOKEN, "--wallets", "w.json"])
        with pytest.raises(SystemExit):
            parser.parse_args(
                ["sell", "--token", TOKEN, "--wallets", "w.json", "--percent", "50", "--tokens", "10"],
            )

    def test_invalid_number(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["buy", "--token", TOKEN, "--wallets", "w.json", "--amount", "lots"])

    def test_watch_defaults(self) -> None:
        args = build_parser().parse_args([
            "watch", "--token", TOKEN, "--wallets", "w.json",
            "--side", "sell", "--target", "250000", "--amount", "50",
        ])
        assert args.price_mode == "marketCap"
        assert args.sol_price == Decimal("0")

    def test_requires_command(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestIntentFromArgs:
    def test_buy_intent(self) -> None:
        args = build_parser().parse_args(
            ["buy", "--token", TOKEN, "--wallets", "w.json", "--amount", "0.5", "--slippage-bps", "300"],
        )
        intent = _intent_from_args(args)
        assert intent.side == TradeSide.BUY
        assert intent.amount == Decimal("0.5")
        assert intent.slippage_bps == 300
        assert intent.mode is None

    def test_sell_intent(self) -> None:
        args = build_parser().parse_args([
            "sell", "--token", TOKEN, "--wallets", "w.json", "--tokens", "1000", "--mode", "all-in-one",
        ])
        intent = _intent_from_args(args)
        assert intent.side == TradeSide.SELL
        assert intent.tokens_amount == Decimal("1000")
        assert intent.sell_percent is None
        assert intent.mode == ExecutionMode.ALL_IN_ONE


class TestLoadWallets:
    def test_object_with_mixed_keys(self, wallets_file: Path) -> None:
        wallets = load_wallets(wallets_file)
        assert [w.address for w in wallets] == ["WalletA", "WalletB"]
        assert wallets[0].private_key == "keyA"
        assert wallets[1].private_key == "keyB"
        assert wallets[1].is_archived

    def test_plain_list(self, tmp_path: Path) -> None:
        path = tmp_path / "w.json"
        path.write_text(json.dumps([{"address": "A", "privateKey": "k"}]))
        assert len(load_wallets(path)) == 1

    def test_wrong_shape(self, tmp_path: Path) -> None:
        path = tmp_path / "w.json"
        path.write_text(json.dumps("nope"))
        with pytest.raises(ValueError, match="expected a list"):
            load_wallets(path)


class TestMain:
    def test_missing_wallets_file(self, config_dir: Path, tmp_path: Path) -> None:
        code = main([
            "buy", "--token", TOKEN, "--wallets", str(tmp_path / "missing.json"),
            "--amount", "1", "--config-dir", str(config_dir),
        ])
        assert code == 2

    def test_buy_prints_result(
        self, config_dir: Path, wallets_file: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        run_trade = AsyncMock(return_value=ExecutionResult(success=True, successful_units=1))
        with patch("bundlebot.app.run_trade", run_trade):
            code = main([
                "buy", "--token", TOKEN, "--wallets", str(wallets_file),
                "--amount", "0.5", "--config-dir", str(config_dir),
            ])

        assert code == 0
        assert json.loads(capsys.readouterr().out)["success"] is True
        _, wallets, intent = run_trade.await_args.args
        assert len(wallets) == 2
        assert intent.amount == Decimal("0.5")

    def test_failed_trade_exit_code(self, config_dir: Path, wallets_file: Path) -> None:
        run_trade = AsyncMock(return_value=ExecutionResult.failure("No wallets provided"))
        with patch("bundlebot.app.run_trade", run_trade):
            code = main([
                "sell", "--token", TOKEN, "--wallets", str(wallets_file),
                "--percent", "100", "--config-dir", str(config_dir),
            ])
        assert code == 1

    def test_watch_rejected_order(self, config_dir: Path, wallets_file: Path) -> None:
        code = main([
            "watch", "--token", TOKEN, "--wallets", str(wallets_file),
            "--side", "sell", "--target", "250000", "--amount", "150",
            "--config-dir", str(config_dir),
        ])
        assert code == 2
