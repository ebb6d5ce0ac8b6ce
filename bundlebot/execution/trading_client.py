"""Trading server REST client: trade preparation and transaction submission."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx

from bundlebot.config.settings import SOL_MINT, TradingSettings
from bundlebot.core.errors import PrepServiceError, SubmissionError
from bundlebot.core.logging import get_logger, mask_secret
from bundlebot.interfaces import PrepResponse
from bundlebot.models.bundle import TransactionBundle

if TYPE_CHECKING:
    from collections.abc import Sequence

    from bundlebot.models.execution import TradeIntent
    from bundlebot.models.wallet import Wallet

log = get_logger(__name__)

BUY_PATH = "/v2/sol/buy"
SELL_PATH = "/v2/sol/sell"
SWAP_SELL_PATH = "/v2/swap/sell"
SEND_PATH = "/v2/sol/send"


class BundleShape(str, Enum):
    """Which part of a prep response the bundles were read from."""

    DATA_BUNDLES = "data.bundles"
    DATA_TRANSACTIONS = "data.transactions"
    BUNDLES = "bundles"
    TRANSACTIONS = "transactions"
    RAW_ARRAY = "array"
    NONE = "none"


@dataclass(frozen=True)
class BundleParseResult:
    shape: BundleShape
    bundles: list[TransactionBundle] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.shape != BundleShape.NONE


def _to_bundle(raw: Any) -> TransactionBundle:
    if isinstance(raw, list):
        return TransactionBundle(transactions=tuple(raw))
    if isinstance(raw, dict):
        return TransactionBundle(transactions=tuple(raw.get("transactions") or ()))
    msg = f"unexpected bundle entry of type {type(raw).__name__}"
    raise PrepServiceError(msg)


def parse_transaction_bundles(data: Any) -> BundleParseResult:
    """Normalize a prep response into bundles.

    First match wins: ``data.bundles``, ``data.transactions``, top-level
    ``bundles``, top-level ``transactions``, then a bare array.
    """
    if isinstance(data, list):
        return BundleParseResult(
            BundleShape.RAW_ARRAY,
            [TransactionBundle(transactions=tuple(data))],
        )
    if not isinstance(data, dict):
        return BundleParseResult(BundleShape.NONE)

    inner = data.get("data")
    if isinstance(inner, dict):
        if isinstance(inner.get("bundles"), list):
            return BundleParseResult(
                BundleShape.DATA_BUNDLES,
                [_to_bundle(b) for b in inner["bundles"]],
            )
        if isinstance(inner.get("transactions"), list):
            return BundleParseResult(
                BundleShape.DATA_TRANSACTIONS,
                [TransactionBundle(transactions=tuple(inner["transactions"]))],
            )

    if isinstance(data.get("bundles"), list):
        return BundleParseResult(
            BundleShape.BUNDLES,
            [_to_bundle(b) for b in data["bundles"]],
        )
    if isinstance(data.get("transactions"), list):
        return BundleParseResult(
            BundleShape.TRANSACTIONS,
            [TransactionBundle(transactions=tuple(data["transactions"]))],
        )
    return BundleParseResult(BundleShape.NONE)


def _num(value: Any) -> float:
    return float(value)


class TradingServerClient:
    """Async client for the trading server's prep and send endpoints.

    Implements both the prep and the submission service contracts.
    """

    def __init__(
        self,
        settings: TradingSettings,
        *,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._base_url = (base_url if base_url is not None else settings.server_url).rstrip("/")
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={"Content-Type": "application/json"},
                timeout=httpx.Timeout(self._settings.request_timeout_seconds),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    # --- request building ---

    def _wallet_field(self, wallets: Sequence[Wallet]) -> dict[str, list[str]]:
        if self._settings.self_hosted:
            return {"walletPrivateKeys": [w.private_key for w in wallets]}
        return {"walletAddresses": [w.address for w in wallets]}

    def build_buy_request(
        self, wallets: Sequence[Wallet], intent: TradeIntent,
    ) -> tuple[str, dict[str, Any]]:
        body: dict[str, Any] = {"tokenAddress": intent.token_address}
        body.update(self._wallet_field(wallets))

        input_mint = intent.input_mint or self._settings.base_currency_mint
        if input_mint != SOL_MINT:
            body["inputMint"] = input_mint
            body["inputAmountRaw"] = _num(intent.amount)
        else:
            body["solAmount"] = _num(intent.amount)
            if intent.amounts:
                body["amounts"] = [_num(a) for a in intent.amounts]

        body["slippageBps"] = self._slippage(intent)
        body["feeTipLamports"] = (
            intent.fee_tip_lamports
            if intent.fee_tip_lamports is not None
            else self._settings.fee_lamports
        )
        body["encoding"] = "base64"
        return BUY_PATH, body

    def build_sell_request(
        self, wallets: Sequence[Wallet], intent: TradeIntent,
    ) -> tuple[str, dict[str, Any]]:
        output_mint = intent.output_mint or self._settings.base_currency_mint
        native = output_mint == SOL_MINT

        body: dict[str, Any] = {"tokenAddress": intent.token_address}
        body.update(self._wallet_field(wallets))
        if intent.tokens_amount is not None:
            body["tokensAmount"] = _num(intent.tokens_amount)
        else:
            body["percentage"] = _num(intent.sell_percent)
        body["slippageBps"] = self._slippage(intent)
        body.update(self.sell_fees(len(wallets), intent))
        if not native:
            body["outputMint"] = output_mint
        return (SELL_PATH if native else SWAP_SELL_PATH), body

    def sell_fees(self, wallet_count: int, intent: TradeIntent) -> dict[str, int]:
        """Single-wallet sells pay a third of the fee as a priority fee, bundles tip."""
        fee = self._settings.fee_lamports
        if wallet_count < 2:
            if intent.transactions_fee_lamports is not None:
                return {"transactionsFeeLamports": intent.transactions_fee_lamports}
            return {"transactionsFeeLamports": fee // 3}
        if intent.jito_tip_lamports is not None:
            return {"jitoTipLamports": intent.jito_tip_lamports}
        return {"jitoTipLamports": fee}

    def _slippage(self, intent: TradeIntent) -> int:
        if intent.slippage_bps is not None:
            return intent.slippage_bps
        return self._settings.default_slippage_bps

    # --- endpoints ---

    async def prepare(self, wallets: Sequence[Wallet], intent: TradeIntent) -> PrepResponse:
        """Ask the server to build unsigned bundles for ``wallets``.

        Raises:
            PrepServiceError: On HTTP failure, ``success: false`` or a
                response with no recognizable bundles.
        """
        if intent.is_buy:
            path, body = self.build_buy_request(wallets, intent)
        else:
            path, body = self.build_sell_request(wallets, intent)

        client = await self._get_client()
        log.debug(
            "trading_client.prepare",
            path=path,
            token=intent.token_address,
            wallets=len(wallets),
            keys=[mask_secret(k) for k in body.get("walletPrivateKeys", [])] or None,
        )
        try:
            resp = await client.post(path, json=body)
        except httpx.HTTPError as exc:
            msg = f"Prep request failed: {exc}"
            raise PrepServiceError(msg) from exc
        if resp.status_code >= 400:
            msg = f"HTTP error! Status: {resp.status_code}"
            raise PrepServiceError(msg, status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as exc:
            msg = "Prep service returned invalid JSON"
            raise PrepServiceError(msg, status_code=resp.status_code) from exc
        if isinstance(data, dict):
            if not data.get("success"):
                error = data.get("error")
                raise PrepServiceError(
                    str(error) if error else "Failed to get partially prepared transactions",
                )
            if self._settings.self_hosted and not intent.is_buy and data.get("data"):
                return PrepResponse(server_result=data)

        parsed = parse_transaction_bundles(data)
        if not parsed.found:
            raise PrepServiceError("No transactions returned from backend")
        log.debug(
            "trading_client.prepared",
            shape=parsed.shape.value,
            bundles=len(parsed.bundles),
        )
        return PrepResponse(bundles=parsed.bundles)

    async def send_transactions(self, transactions: Sequence[str]) -> Any:
        """Submit signed transactions. Returns the server's ``result`` field.

        Raises:
            SubmissionError: On HTTP failure or ``success: false``.
        """
        client = await self._get_client()
        try:
            resp = await client.post(SEND_PATH, json={"transactions": list(transactions)})
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"Send request failed: {exc}"
            raise SubmissionError(msg) from exc

        if not isinstance(data, dict) or not data.get("success"):
            payload = data if isinstance(data, dict) else {}
            raise SubmissionError(
                payload.get("error") or "Unknown error sending transactions",
                payload.get("details"),
            )
        log.debug("trading_client.sent", transactions=len(transactions))
        return data.get("result")
