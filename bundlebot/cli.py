"""bundlebot CLI entry point."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

from bundlebot.config.loader import ConfigError
from bundlebot.core.errors import BundleBotError
from bundlebot.models.execution import ExecutionMode, TradeIntent
from bundlebot.models.limit_order import LimitOrderSpec, PriceMode
from bundlebot.models.trade import TradeSide
from bundlebot.models.wallet import Wallet


def load_wallets(path: str | Path) -> list[Wallet]:
    """Load wallets from a JSON file.

    Accepts a list of objects, or ``{"wallets": [...]}``. Keys may be
    camelCase (``privateKey``, ``isArchived``) or snake_case.
    """
    raw = json.loads(Path(path).read_text())
    if isinstance(raw, dict):
        raw = raw.get("wallets", [])
    if not isinstance(raw, list):
        msg = f"{path}: expected a list of wallets"
        raise ValueError(msg)

    wallets: list[Wallet] = []
    for item in raw:
        wallets.append(Wallet(
            address=item.get("address", ""),
            private_key=item.get("privateKey", item.get("private_key", "")),
            is_active=item.get("isActive", item.get("is_active", True)),
            is_archived=item.get("isArchived", item.get("is_archived", False)),
        ))
    return wallets


def _decimal(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        msg = f"invalid number: {value!r}"
        raise argparse.ArgumentTypeError(msg) from exc


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--token", required=True, help="Token mint address")
    parser.add_argument("--wallets", required=True, help="Path to wallets JSON file")
    parser.add_argument(
        "--config-dir",
        type=str,
        default="config",
        help="Config directory path (default: config)",
    )
    parser.add_argument(
        "--env",
        type=str,
        default=None,
        help="Environment name (default: from BUNDLEBOT_ENV)",
    )


def _add_trade_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--mode",
        choices=[m.value for m in ExecutionMode],
        default=None,
        help="Bundle mode (default: from config)",
    )
    parser.add_argument("--slippage-bps", type=int, default=None, help="Slippage in basis points")


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="bundlebot",
        description="Multi-wallet Solana bundle trading and limit orders",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    buy = sub.add_parser("buy", help="Buy a token from every wallet")
    _add_common(buy)
    _add_trade_options(buy)
    buy.add_argument("--amount", type=_decimal, required=True, help="Base currency amount per wallet")
    buy.add_argument("--input-mint", default=None, help="Base currency mint (default: from config)")

    sell = sub.add_parser("sell", help="Sell a token from every wallet")
    _add_common(sell)
    _add_trade_options(sell)
    amount = sell.add_mutually_exclusive_group(required=True)
    amount.add_argument("--percent", type=_decimal, help="Percentage of holdings to sell")
    amount.add_argument("--tokens", type=_decimal, help="Absolute token amount to sell")
    sell.add_argument("--output-mint", default=None, help="Receive this mint instead of SOL")

    watch = sub.add_parser("watch", help="Watch the trade stream and fire a limit order")
    _add_common(watch)
    watch.add_argument("--side", choices=[s.value for s in TradeSide], required=True)
    watch.add_argument("--target", type=_decimal, required=True, help="Trigger market cap or price")
    watch.add_argument(
        "--price-mode",
        choices=[m.value for m in PriceMode],
        default=PriceMode.MARKET_CAP.value,
    )
    watch.add_argument(
        "--amount",
        type=_decimal,
        required=True,
        help="Base currency per wallet (buy) or percentage (sell)",
    )
    watch.add_argument("--sol-price", type=_decimal, default=Decimal("0"), help="SOL price in USD")
    watch.add_argument("--supply", type=_decimal, default=Decimal("0"), help="Token supply")

    return parser


def _intent_from_args(args: argparse.Namespace) -> TradeIntent:
    mode = ExecutionMode(args.mode) if args.mode else None
    if args.command == "buy":
        return TradeIntent(
            side=TradeSide.BUY,
            token_address=args.token,
            amount=args.amount,
            input_mint=args.input_mint,
            slippage_bps=args.slippage_bps,
            mode=mode,
        )
    return TradeIntent(
        side=TradeSide.SELL,
        token_address=args.token,
        sell_percent=args.percent,
        tokens_amount=args.tokens,
        output_mint=args.output_mint,
        slippage_bps=args.slippage_bps,
        mode=mode,
    )


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    from bundlebot.config.settings import Settings

    try:
        settings = Settings.load(args.config_dir, args.env)
        wallets = load_wallets(args.wallets)
    except (ConfigError, OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    if args.command in ("buy", "sell"):
        from bundlebot.app import run_trade

        result = asyncio.run(run_trade(settings, wallets, _intent_from_args(args)))
        print(json.dumps(result.model_dump(mode="json"), indent=2))
        return 0 if result.success else 1

    from bundlebot.app import run_watch

    spec = LimitOrderSpec(
        token_address=args.token,
        side=TradeSide(args.side),
        price_mode=PriceMode(args.price_mode),
        target_price=args.target,
        amount=args.amount,
        wallet_addresses=[w.address for w in wallets if not w.is_archived],
    )
    print(f"Watching {args.token} for a {args.side} at {args.target} ({args.price_mode})")
    try:
        return asyncio.run(run_watch(
            settings,
            wallets,
            args.token,
            [spec],
            quote_price=args.sol_price,
            token_supply=args.supply,
        ))
    except BundleBotError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
