"""Attaches wallet (and mint) signatures to PumpPortal transaction envelopes."""

from __future__ import annotations

import base64
import binascii
from typing import Optional, Sequence

from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from ..models.schemas import SignedTransaction, TradeAction, UnsignedTransactionEnvelope
from ..monitoring.logger import get_logger
from .errors import SigningFailure
from .wallet import WalletIdentity


class TransactionSigner:
    """Deserializes a versioned transaction and signs it.

    The signer set is the wallet first, followed by the mint keypair for
    ``create`` envelopes.
    """

    def __init__(self, wallet: WalletIdentity) -> None:
        self._wallet = wallet
        self._logger = get_logger(__name__)

    def signer_set(self, action: TradeAction, mint: Optional[Keypair] = None) -> list[Keypair]:
        signers = [self._wallet.keypair]
        if action == TradeAction.CREATE:
            if mint is None:
                raise SigningFailure("Create transactions must be signed by the mint keypair")
            signers.append(mint)
        return signers

    def sign(self, envelope: UnsignedTransactionEnvelope, mint: Optional[Keypair] = None) -> SignedTransaction:
        signers = self.signer_set(envelope.action, mint)
        try:
            raw = base64.b64decode(envelope.payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise SigningFailure(f"Transaction envelope is not valid base64: {exc}") from exc
        unsigned = self._deserialize(raw)
        signed = self._attach(unsigned, signers)
        signature = str(signed.signatures[0])
        self._logger.debug("Signed %s transaction %s with %d signer(s)", envelope.action.value, signature, len(signers))
        return SignedTransaction(action=envelope.action, raw=bytes(signed), signature=signature)

    @staticmethod
    def _deserialize(raw: bytes) -> VersionedTransaction:
        try:
            return VersionedTransaction.from_bytes(raw)
        except Exception as exc:  # noqa: BLE001 - solders raises its own error types
            raise SigningFailure(f"Unable to deserialize transaction envelope: {exc}") from exc

    @staticmethod
    def _attach(unsigned: VersionedTransaction, signers: Sequence[Keypair]) -> VersionedTransaction:
        try:
            return VersionedTransaction(unsigned.message, list(signers))
        except Exception as exc:  # noqa: BLE001
            raise SigningFailure(f"Unable to sign transaction: {exc}") from exc


__all__ = ["TransactionSigner"]
