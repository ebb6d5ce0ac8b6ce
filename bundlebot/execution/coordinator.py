"""Execution coordinator: intent -> prep -> sign -> rate-limit -> submit -> result.

Three bundling modes share one pipeline:

* SINGLE: one unit per wallet, in order, with ``single_delay`` between them.
* BATCH: one unit per group of ``batch_size`` wallets, with ``batch_delay``.
* ALL_IN_ONE: one prep call for every wallet; each resulting chunk is its
  own unit and all chunks are submitted concurrently, staggered.

A failing unit never aborts the others. ``execute`` always returns an
``ExecutionResult`` and always records a history entry.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from bundlebot.core.errors import BundleBotError, PrepServiceError, SigningError
from bundlebot.core.logging import get_logger, log_execution_event
from bundlebot.execution.history import TradeHistoryEntry
from bundlebot.execution.validation import validate_intent
from bundlebot.models.execution import ExecutionMode, ExecutionResult, TradeIntent, UnitOutcome

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from bundlebot.config.settings import TradingSettings
    from bundlebot.execution.rate_limiter import SlidingWindowRateLimiter
    from bundlebot.execution.signer import BundleSigner
    from bundlebot.interfaces import HistoryRecorder, PrepService, SubmissionService
    from bundlebot.models.bundle import SignedBundle, TransactionBundle
    from bundlebot.models.wallet import Wallet

logger = get_logger(__name__)

NO_TRANSACTIONS = "No transactions generated."
NOTHING_SIGNED = "Failed to sign any transactions"
NO_SERVER_RESPONSE = "No response received from self-hosted server"


class ExecutionCoordinator:
    """Runs trade intents across a wallet set under a shared rate limiter."""

    def __init__(
        self,
        prep: PrepService,
        submitter: SubmissionService,
        signer: BundleSigner,
        rate_limiter: SlidingWindowRateLimiter,
        settings: TradingSettings,
        history: HistoryRecorder | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._prep = prep
        self._submitter = submitter
        self._signer = signer
        self._rate_limiter = rate_limiter
        self._settings = settings
        self._history = history
        self._sleep = sleep

    def resolve_mode(self, intent: TradeIntent, mode: ExecutionMode | None = None) -> ExecutionMode:
        """Explicit mode, then the intent's, then the configured default.

        Self-hosted servers execute sells themselves, so sells against one
        always go out as a single ALL_IN_ONE request.
        """
        if self._settings.self_hosted and not intent.is_buy:
            return ExecutionMode.ALL_IN_ONE
        return mode or intent.mode or self._settings.default_bundle_mode

    async def execute(
        self,
        wallets: Sequence[Wallet],
        intent: TradeIntent,
        mode: ExecutionMode | None = None,
    ) -> ExecutionResult:
        wallets = list(wallets)
        resolved = self.resolve_mode(intent, mode)
        log_execution_event(
            "start",
            intent.token_address,
            side=intent.side.value,
            mode=resolved.value,
            wallets=len(wallets),
        )

        try:
            validate_intent(wallets, intent)
            if resolved == ExecutionMode.SINGLE:
                result = await self._execute_single(wallets, intent)
            elif resolved == ExecutionMode.BATCH:
                result = await self._execute_batch(wallets, intent)
            else:
                result = await self._execute_all_in_one(wallets, intent)
        except BundleBotError as exc:
            logger.warning("execution.failed", token=intent.token_address, error=exc.message)
            result = ExecutionResult.failure(exc.message)
        except Exception as exc:
            logger.exception("execution.unexpected_error", token=intent.token_address)
            result = ExecutionResult.failure(str(exc))

        self._record(wallets, intent, resolved, result)
        log_execution_event(
            "complete" if result.success else "error",
            intent.token_address,
            mode=resolved.value,
            successful_units=result.successful_units,
            failed_units=result.failed_units,
            error=result.error,
        )
        return result

    # --- modes ---

    async def _execute_single(self, wallets: list[Wallet], intent: TradeIntent) -> ExecutionResult:
        delay = intent.single_delay if intent.single_delay is not None else self._settings.single_delay_seconds
        outcomes: list[UnitOutcome] = []
        for index, wallet in enumerate(wallets):
            unit_intent = _slice_amounts(intent, index, index + 1)
            outcomes.append(await self._run_unit([wallet], unit_intent, split=False))
            if index < len(wallets) - 1 and delay > 0:
                await self._sleep(delay)
        return ExecutionResult.from_outcomes(outcomes)

    async def _execute_batch(self, wallets: list[Wallet], intent: TradeIntent) -> ExecutionResult:
        size = self._settings.batch_size
        delay = intent.batch_delay if intent.batch_delay is not None else self._settings.batch_delay_seconds
        starts = range(0, len(wallets), size)
        outcomes: list[UnitOutcome] = []
        for n, start in enumerate(starts):
            group = wallets[start:start + size]
            unit_intent = _slice_amounts(intent, start, start + size)
            outcomes.append(await self._run_unit(group, unit_intent, split=True))
            if n < len(starts) - 1 and delay > 0:
                await self._sleep(delay)
        return ExecutionResult.from_outcomes(outcomes)

    async def _execute_all_in_one(self, wallets: list[Wallet], intent: TradeIntent) -> ExecutionResult:
        response = await self._prep.prepare(wallets, intent)
        if response.executed_by_server:
            return _server_result(response.server_result or {})
        if self._settings.self_hosted and not intent.is_buy:
            return ExecutionResult.failure(NO_SERVER_RESPONSE)
        if not response.bundles:
            return ExecutionResult.failure(NO_TRANSACTIONS)

        chunks = self._sign_and_split(response.bundles, wallets)
        if not chunks:
            return ExecutionResult.failure(NOTHING_SIGNED)

        stagger = self._settings.bundle_stagger_seconds
        results = await asyncio.gather(
            *(self._submit_staggered(chunk, index * stagger) for index, chunk in enumerate(chunks)),
            return_exceptions=True,
        )

        outcomes: list[UnitOutcome] = []
        for index, res in enumerate(results):
            if isinstance(res, BaseException):
                logger.warning("execution.unit_failed", unit=index, error=str(res))
                outcomes.append(UnitOutcome(success=False, error=str(res)))
            else:
                outcomes.append(UnitOutcome(success=True, payload=[res]))
        return ExecutionResult.from_outcomes(outcomes)

    # --- units ---

    async def _run_unit(self, wallets: list[Wallet], intent: TradeIntent, *, split: bool) -> UnitOutcome:
        """Prep, sign and submit for one wallet or wallet group."""
        try:
            response = await self._prep.prepare(wallets, intent)
            if response.executed_by_server:
                return UnitOutcome(success=True, payload=[(response.server_result or {}).get("data")])
            if not response.bundles:
                raise PrepServiceError(NO_TRANSACTIONS)
            if split:
                chunks = self._sign_and_split(response.bundles, wallets)
            else:
                keypairs = self._signer.keypairs_for(wallets)
                chunks = [
                    b for b in (self._signer.sign(raw, keypairs) for raw in response.bundles)
                    if not b.is_empty
                ]
            if not chunks:
                raise SigningError(NOTHING_SIGNED)

            payload: list[Any] = []
            for chunk in chunks:
                payload.append(await self._submit(chunk))
            return UnitOutcome(success=True, payload=payload)
        except (BundleBotError, ValueError) as exc:
            error = exc.message if isinstance(exc, BundleBotError) else str(exc)
            logger.warning(
                "execution.unit_failed",
                wallets=[w.short_address for w in wallets],
                error=error,
            )
            return UnitOutcome(success=False, error=error)

    def _sign_and_split(
        self, bundles: Sequence[TransactionBundle], wallets: Sequence[Wallet],
    ) -> list[SignedBundle]:
        keypairs = self._signer.keypairs_for(wallets)
        signed = [self._signer.sign(bundle, keypairs) for bundle in bundles]
        chunks = self._signer.split(signed, self._settings.max_transactions_per_bundle)
        return [chunk for chunk in chunks if not chunk.is_empty]

    async def _submit(self, bundle: SignedBundle) -> Any:
        await self._rate_limiter.wait()
        window = self._rate_limiter.window
        logger.debug(
            "execution.submitting",
            transactions=len(bundle.transactions),
            window_count=window.count,
            window_max=window.max_per_window,
        )
        return await self._submitter.send_transactions(list(bundle.transactions))

    async def _submit_staggered(self, bundle: SignedBundle, delay: float) -> Any:
        if delay > 0:
            await self._sleep(delay)
        return await self._submit(bundle)

    # --- history ---

    def _record(
        self,
        wallets: Sequence[Wallet],
        intent: TradeIntent,
        mode: ExecutionMode,
        result: ExecutionResult,
    ) -> None:
        if self._history is None:
            return
        amount, amount_type = intent.history_amount
        mint = (intent.input_mint if intent.is_buy else intent.output_mint) or self._settings.base_currency_mint
        self._history.record(TradeHistoryEntry(
            side=intent.side,
            token_address=intent.token_address,
            wallets_count=len(wallets),
            amount=amount,
            amount_type=amount_type,
            base_currency_mint=mint,
            success=result.success,
            error=result.error,
            bundle_mode=mode,
        ))


def _slice_amounts(intent: TradeIntent, start: int, end: int) -> TradeIntent:
    if not intent.amounts:
        return intent
    return intent.model_copy(update={"amounts": intent.amounts[start:end]})


def _server_result(server_result: dict[str, Any]) -> ExecutionResult:
    """Result a self-hosted server already executed on our behalf."""
    return ExecutionResult(
        success=True,
        payload=[server_result.get("data")],
        successful_units=1,
    )
