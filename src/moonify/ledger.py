"""
Ledger gateway

The ledger is the authority on which nullifiers are spent. A submission is
answered with ACCEPTED, REJECTED or PENDING; only ACCEPTED lets the wallet
apply the transaction. PENDING references are polled with
``wait_for_confirmation``.
"""

import asyncio
import logging
import secrets
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Optional

import base58
from solana.exceptions import SolanaRpcException
from solana.rpc.core import RPCException
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature

from .errors import LedgerError, LedgerPending
from .hashing import NULL_COMMITMENT
from .prover import ProofGateway
from .solana_client import SolanaClient
from .types import (
    LedgerReceipt,
    LedgerStatus,
    LedgerSubmission,
    Proof,
    TransactionKind,
)
from .utils import short_hex

logger = logging.getLogger(__name__)

SPEND_KINDS = (TransactionKind.PRIVATE_TRANSFER, TransactionKind.UNSHIELD)


class Ledger(ABC):
    """Public ledger that finalizes transactions"""

    @abstractmethod
    async def submit(self, submission: LedgerSubmission) -> LedgerReceipt:
        """Submit public inputs, proof and authorization"""

    @abstractmethod
    async def get_status(self, reference: str) -> LedgerReceipt:
        """Current status of a previous submission"""

    @abstractmethod
    async def is_nullifier_spent(self, nullifier: bytes) -> bool:
        """Check the authoritative nullifier set"""

    async def close(self) -> None:
        """Release connections"""


async def wait_for_confirmation(
    ledger: Ledger,
    receipt: LedgerReceipt,
    timeout: float,
    poll_interval: float,
) -> LedgerReceipt:
    """
    Poll a pending submission until it is final

    Raises:
        LedgerPending: If still pending after ``timeout`` seconds
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while receipt.status is LedgerStatus.PENDING:
        if loop.time() >= deadline:
            logger.warning("Transaction %s still pending after %gs", receipt.reference, timeout)
            raise LedgerPending(receipt.reference)
        await asyncio.sleep(poll_interval)
        receipt = await ledger.get_status(receipt.reference)
    return receipt


def verify_authorization(submission: LedgerSubmission) -> bool:
    """Check the Ed25519 spend authorization over the public inputs"""
    if len(submission.authority) != 32 or len(submission.authorization) != 64:
        return False
    pubkey = Pubkey.from_bytes(submission.authority)
    signature = Signature.from_bytes(submission.authorization)
    return signature.verify(pubkey, submission.public_inputs.to_bytes())


class InMemoryLedger(Ledger):
    """
    Reference ledger kept in process memory

    Enforces global nullifier uniqueness, spend authorization, per-asset
    vault balances and (when a verifier is given) proof validity.

    Args:
        verifier: Proof backend used to check proofs; None accepts any proof
        confirm_after: Number of status polls a submission stays PENDING
            before it is reported ACCEPTED; None never confirms
    """

    def __init__(
        self,
        verifier: Optional[ProofGateway] = None,
        confirm_after: Optional[int] = 0,
    ):
        self.verifier = verifier
        self.confirm_after = confirm_after
        self.nullifiers: set[bytes] = set()
        self.commitments: list[bytes] = []
        self.vaults: dict[int, int] = defaultdict(int)
        self.submissions: list[LedgerSubmission] = []
        self._receipts: dict[str, LedgerReceipt] = {}
        self._polls_left: dict[str, Optional[int]] = {}
        self._lock = asyncio.Lock()

    async def _check(self, submission: LedgerSubmission) -> Optional[str]:
        """Return a rejection reason, or None if the submission is valid"""
        kind = submission.kind
        nullifier = submission.nullifier
        asset_id = submission.public_inputs.asset_id or 0

        if kind in SPEND_KINDS:
            if nullifier is None:
                return "missing nullifier"
            if nullifier in self.nullifiers:
                return "nullifier already spent"
            if not verify_authorization(submission):
                return "invalid spend authorization"
        elif nullifier is not None:
            return "unexpected nullifier"

        if kind is TransactionKind.UNSHIELD:
            if self.vaults[asset_id] < (submission.public_amount or 0):
                return "insufficient vault balance"

        if self.verifier is not None:
            proof = Proof(data=submission.proof, public_inputs=submission.public_inputs)
            if not await self.verifier.verify(proof, submission.public_inputs):
                return "invalid proof"
        return None

    def _apply(self, submission: LedgerSubmission) -> None:
        kind = submission.kind
        asset_id = submission.public_inputs.asset_id or 0
        amount = submission.public_amount or 0

        if submission.nullifier is not None:
            self.nullifiers.add(submission.nullifier)
        self.commitments.extend(
            c for c in submission.commitments if c != NULL_COMMITMENT
        )
        if kind in (TransactionKind.DEPOSIT, TransactionKind.SHIELD):
            self.vaults[asset_id] += amount
        elif kind is TransactionKind.UNSHIELD:
            self.vaults[asset_id] -= amount

    async def submit(self, submission: LedgerSubmission) -> LedgerReceipt:
        async with self._lock:
            reference = base58.b58encode(secrets.token_bytes(64)).decode()
            self.submissions.append(submission)

            reason = await self._check(submission)
            if reason is not None:
                logger.info("Rejected %s: %s", submission.kind.value, reason)
                receipt = LedgerReceipt(LedgerStatus.REJECTED, reference, reason)
                self._receipts[reference] = receipt
                return receipt

            # Effects apply at submission so concurrent double spends are
            # rejected even while this one is still pending
            self._apply(submission)
            if submission.nullifier is not None:
                logger.debug("Recorded nullifier %s", short_hex(submission.nullifier))

            if self.confirm_after == 0:
                receipt = LedgerReceipt(LedgerStatus.ACCEPTED, reference)
            else:
                self._polls_left[reference] = self.confirm_after
                receipt = LedgerReceipt(LedgerStatus.PENDING, reference)
            self._receipts[reference] = receipt
            return receipt

    async def get_status(self, reference: str) -> LedgerReceipt:
        async with self._lock:
            if reference not in self._receipts:
                raise LedgerError(f"Unknown transaction {reference}")
            if reference in self._polls_left:
                remaining = self._polls_left[reference]
                if remaining is not None:
                    remaining -= 1
                    if remaining <= 0:
                        del self._polls_left[reference]
                        self._receipts[reference] = LedgerReceipt(
                            LedgerStatus.ACCEPTED, reference
                        )
                    else:
                        self._polls_left[reference] = remaining
            return self._receipts[reference]

    def confirm(self, reference: str) -> None:
        """Finalize a pending submission immediately"""
        if reference not in self._receipts:
            raise LedgerError(f"Unknown transaction {reference}")
        self._polls_left.pop(reference, None)
        self._receipts[reference] = LedgerReceipt(LedgerStatus.ACCEPTED, reference)

    async def is_nullifier_spent(self, nullifier: bytes) -> bool:
        return nullifier in self.nullifiers


class SolanaLedger(Ledger):
    """
    Ledger backed by the Moonify pool program on Solana

    Args:
        solana: RPC client for the pool program
        payer: Fee payer; signs deposits and relays spends
    """

    def __init__(self, solana: SolanaClient, payer: Keypair):
        self.solana = solana
        self.payer = payer

    async def submit(self, submission: LedgerSubmission) -> LedgerReceipt:
        try:
            signature = await self.solana.submit(submission, self.payer)
        except RPCException as e:
            # Preflight simulation failed; nothing reached the chain
            logger.info("Rejected %s: %s", submission.kind.value, e)
            return LedgerReceipt(LedgerStatus.REJECTED, "", str(e))
        except SolanaRpcException as e:
            raise LedgerError(f"RPC request failed: {e}") from e
        return LedgerReceipt(LedgerStatus.PENDING, signature)

    async def get_status(self, reference: str) -> LedgerReceipt:
        try:
            status, reason = await self.solana.get_signature_status(reference)
        except SolanaRpcException as e:
            raise LedgerError(f"RPC request failed: {e}") from e
        return LedgerReceipt(status, reference, reason)

    async def is_nullifier_spent(self, nullifier: bytes) -> bool:
        try:
            return await self.solana.is_nullifier_spent(nullifier)
        except SolanaRpcException as e:
            raise LedgerError(f"RPC request failed: {e}") from e

    async def close(self) -> None:
        await self.solana.close()
