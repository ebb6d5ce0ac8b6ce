"""Bundle signer: signs prepared transactions with the matching wallet keys.

Transactions arrive from the prep service as base58 (or base64) encoded
``solders`` VersionedTransactions with empty signature slots. Each slot
belongs to one of the first ``num_required_signatures`` account keys; the
signer fills the slots whose key it holds and leaves the rest untouched.
"""

from __future__ import annotations

import base64
import binascii
from typing import TYPE_CHECKING

import base58
from solders.keypair import Keypair
from solders.message import to_bytes_versioned
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from bundlebot.core.logging import get_logger
from bundlebot.models.bundle import SignedBundle, TransactionBundle

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from solders.pubkey import Pubkey

    from bundlebot.models.wallet import Wallet

logger = get_logger(__name__)


def decode_transaction(encoded: str) -> VersionedTransaction:
    """Decode a base58 or base64 encoded transaction.

    Raises:
        ValueError: If neither encoding yields a valid transaction.
    """
    try:
        return VersionedTransaction.from_bytes(base58.b58decode(encoded))
    except Exception:  # noqa: BLE001 - bincode error types vary by solders version
        pass
    try:
        raw = base64.b64decode(encoded, validate=True)
    except binascii.Error as exc:
        msg = "transaction is neither base58 nor base64"
        raise ValueError(msg) from exc
    return VersionedTransaction.from_bytes(raw)


def encode_transaction(tx: VersionedTransaction) -> str:
    return base58.b58encode(bytes(tx)).decode("ascii")


def required_signers(tx: VersionedTransaction) -> list[Pubkey]:
    """Public keys whose signatures the transaction requires, in slot order."""
    message = tx.message
    return list(message.account_keys[: message.header.num_required_signatures])


class BundleSigner:
    """Signs bundles for a wallet set and splits oversized bundles."""

    @staticmethod
    def keypairs_for(wallets: Iterable[Wallet]) -> list[Keypair]:
        """Derive signing keypairs from the wallets' base58 secret keys."""
        return [Keypair.from_base58_string(w.private_key) for w in wallets]

    def sign_transaction(self, encoded: str, keypairs: Sequence[Keypair]) -> str | None:
        """Sign one transaction. Returns None when it cannot be signed."""
        try:
            tx = decode_transaction(encoded)
        except Exception as exc:
            logger.warning("signer.decode_failed", error=str(exc)[:200])
            return None

        by_pubkey = {kp.pubkey(): kp for kp in keypairs}
        signers = required_signers(tx)
        if not any(key in by_pubkey for key in signers):
            logger.warning(
                "signer.no_matching_signers",
                required=[str(k)[:8] for k in signers],
            )
            return None

        message_bytes = to_bytes_versioned(tx.message)
        signatures = list(tx.signatures)
        if len(signatures) < len(signers):
            signatures.extend(Signature.default() for _ in range(len(signers) - len(signatures)))
        for slot, key in enumerate(signers):
            keypair = by_pubkey.get(key)
            if keypair is not None:
                signatures[slot] = keypair.sign_message(message_bytes)

        signed = VersionedTransaction.populate(tx.message, signatures)
        return encode_transaction(signed)

    def sign(self, bundle: TransactionBundle, keypairs: Sequence[Keypair]) -> SignedBundle:
        """Sign every transaction in the bundle, dropping the ones nobody can sign."""
        signed = [
            tx for tx in (self.sign_transaction(t, keypairs) for t in bundle.transactions)
            if tx is not None
        ]
        dropped = len(bundle.transactions) - len(signed)
        if dropped:
            logger.warning("signer.transactions_dropped", dropped=dropped, kept=len(signed))
        return SignedBundle(transactions=tuple(signed))

    @staticmethod
    def split(
        bundles: Iterable[TransactionBundle],
        max_tx_per_bundle: int,
    ) -> list[SignedBundle]:
        """Split bundles larger than ``max_tx_per_bundle`` into ordered chunks."""
        if max_tx_per_bundle < 1:
            msg = f"max_tx_per_bundle must be >= 1, got {max_tx_per_bundle}"
            raise ValueError(msg)

        result: list[SignedBundle] = []
        for bundle in bundles:
            txs = bundle.transactions
            if len(txs) <= max_tx_per_bundle:
                result.append(SignedBundle(transactions=txs))
                continue
            for start in range(0, len(txs), max_tx_per_bundle):
                result.append(SignedBundle(transactions=txs[start:start + max_tx_per_bundle]))
        return result
