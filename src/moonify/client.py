"""
Main Privacy Client for Moonify

Provides the high-level API: each intent is built against a wallet snapshot,
proven, submitted to the ledger, and applied to the wallet only once the
ledger accepts it.
"""

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Iterator, Optional, Union

from solders.keypair import Keypair

from .assets import NATIVE_TOKEN
from .builder import (
    build_deposit,
    build_private_transfer,
    build_shield,
    build_unshield,
)
from .config import WalletConfig
from .errors import LedgerPending, LedgerRejected
from .ledger import InMemoryLedger, Ledger, SolanaLedger, wait_for_confirmation
from .prover import ProofGateway, SignatureProver, generate_proof, verify_proof
from .solana_client import SolanaClient
from .types import (
    LedgerReceipt,
    LedgerStatus,
    LedgerSubmission,
    NoteSummary,
    PrivateTransaction,
    Proof,
    Transaction,
    TransactionStatus,
)
from .utils import short_hex
from .wallet import Wallet

logger = logging.getLogger(__name__)


class PrivacyClient:
    """
    Main client for private-balance transactions

    Example:
        ```python
        client = PrivacyClient(Wallet("wallet.enc"))
        client.create("correct horse battery")

        # Deposit native value into a private note
        tx = await client.deposit(1_000_000)

        # Private transfer to someone else's secret
        tx = await client.transfer(400_000, recipient_secret="0x1f...")

        # Release value back to a public account
        tx = await client.unshield(100_000, recipient="<base58 address>")
        ```

    Without an explicit ledger the client runs offline against an
    ``InMemoryLedger`` that verifies proofs with the same backend.

    Intents on one client run one at a time from build to apply, so each
    takes salts after those of every earlier intent, including intents
    still pending on the ledger.
    """

    def __init__(
        self,
        wallet: Optional[Wallet] = None,
        prover: Optional[ProofGateway] = None,
        ledger: Optional[Ledger] = None,
        config: Optional[WalletConfig] = None,
    ):
        """
        Initialize Privacy Client

        Args:
            wallet: Wallet to operate on (default path from config otherwise)
            prover: Proving backend (development signature prover by default)
            ledger: Ledger gateway (in-memory ledger by default)
            config: Timeouts and verification settings
        """
        self.config = config or (wallet.config if wallet else WalletConfig())
        self.wallet = wallet or Wallet(config=self.config)
        self.prover = prover or SignatureProver()
        self.ledger = ledger or InMemoryLedger(verifier=self.prover)
        self._intent_lock = asyncio.Lock()
        # Highest salt handed to a built transaction
        self._last_salt = 0

    @classmethod
    def for_solana(
        cls,
        wallet: Wallet,
        payer: Keypair,
        prover: ProofGateway,
        config: Optional[WalletConfig] = None,
    ) -> "PrivacyClient":
        """
        Build a client that submits to the pool program on Solana

        Args:
            wallet: Wallet to operate on
            payer: Fee payer and relayer keypair
            prover: Proving backend accepted by the on-chain verifier
            config: Uses ``rpc_url`` and ``program_id``
        """
        config = config or wallet.config
        solana = SolanaClient(config.rpc_url, config.program_id)
        return cls(wallet, prover, SolanaLedger(solana, payer), config)

    # =========================================================================
    # Wallet lifecycle
    # =========================================================================

    def create(self, password: str) -> None:
        self.wallet.create(password)

    def unlock(self, password: str) -> None:
        self.wallet.unlock(password)

    def lock(self) -> None:
        self.wallet.lock()

    @contextmanager
    def unlocked(self, password: str) -> Iterator["PrivacyClient"]:
        with self.wallet.unlocked(password):
            yield self

    def export(self) -> bytes:
        return self.wallet.export()

    def import_blob(self, blob: bytes, password: str) -> None:
        self.wallet.import_blob(blob, password)

    def available_balance(self) -> int:
        return self.wallet.available_balance()

    def note_summary(self) -> list[NoteSummary]:
        return self.wallet.note_summary()

    # =========================================================================
    # Intents
    # =========================================================================

    async def deposit(self, amount: int) -> PrivateTransaction:
        """
        Deposit native value into a new private note

        Args:
            amount: Amount in lamports

        Returns:
            Confirmed private transaction
        """
        return await self._run(build_deposit, amount)

    async def shield(self, amount: int, token: str = NATIVE_TOKEN) -> PrivateTransaction:
        """
        Shield public tokens into a new private note

        Args:
            amount: Amount in the token's smallest unit
            token: Token symbol or mint address
        """
        return await self._run(build_shield, amount, token)

    async def transfer(
        self, amount: int, recipient_secret: Union[int, bytes, str]
    ) -> PrivateTransaction:
        """
        Transfer value privately

        Args:
            amount: Amount to transfer
            recipient_secret: Recipient's note secret

        Returns:
            Confirmed private transaction with nullifier and proof

        Raises:
            InsufficientFunds: If no single note covers the amount
            LedgerRejected: If the ledger refuses the spend (note stays unspent)
        """
        return await self._run(build_private_transfer, amount, recipient_secret)

    async def unshield(
        self,
        amount: int,
        token: str = NATIVE_TOKEN,
        recipient: Optional[str] = None,
    ) -> PrivateTransaction:
        """
        Release private value to a public account

        Args:
            amount: Amount to release
            token: Token symbol or mint address
            recipient: Destination address (ledger default if None)
        """
        return await self._run(build_unshield, amount, token, recipient)

    async def resume(self, pending: LedgerPending) -> PrivateTransaction:
        """Keep waiting for a submission that timed out while pending"""
        if pending.transaction is None or pending.proof is None:
            raise ValueError("Pending error carries no transaction to resume")
        async with self._intent_lock:
            receipt = await self.ledger.get_status(pending.reference)
            return await self._confirm(pending.transaction, pending.proof, receipt)

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def _run(self, build: Callable[..., Transaction], *args) -> PrivateTransaction:
        async with self._intent_lock:
            snapshot = self.wallet.snapshot()
            if self._last_salt > snapshot.salt_counter:
                snapshot = replace(snapshot, salt_counter=self._last_salt)
            tx = build(snapshot, *args)
            self._last_salt = max(self._last_salt, tx.new_salt_counter)
            return await self._execute(tx)

    def _submission(self, tx: Transaction, proof: Proof) -> LedgerSubmission:
        public_inputs = tx.public_inputs()
        return LedgerSubmission(
            public_inputs=public_inputs,
            proof=proof.data,
            authority=self.wallet.public_key(),
            authorization=self.wallet.sign(public_inputs.to_bytes()),
            token=getattr(tx, "token", None),
            recipient=getattr(tx, "recipient", None),
        )

    async def _execute(self, tx: Transaction) -> PrivateTransaction:
        proof = await generate_proof(self.prover, tx.witness(), self.config.proof_timeout)
        if self.config.verify_locally:
            await verify_proof(self.prover, proof, self.config.proof_timeout)

        submission = self._submission(tx, proof)
        receipt = await self.ledger.submit(submission)
        logger.info(
            "Submitted %s %s: %s",
            tx.kind.value,
            receipt.reference,
            receipt.status.value,
        )
        return await self._confirm(tx, proof, receipt)

    async def _confirm(
        self, tx: Transaction, proof: Proof, receipt: LedgerReceipt
    ) -> PrivateTransaction:
        try:
            receipt = await wait_for_confirmation(
                self.ledger,
                receipt,
                self.config.confirmation_timeout,
                self.config.poll_interval,
            )
        except LedgerPending as e:
            e.transaction = tx
            e.proof = proof
            raise

        if receipt.status is LedgerStatus.REJECTED:
            logger.warning("Ledger rejected %s: %s", tx.kind.value, receipt.reason)
            raise LedgerRejected(receipt.reason or "rejected", receipt.reference)

        # Blocking file I/O under the wallet lock
        await asyncio.to_thread(self.wallet.apply_confirmed_transaction, tx)

        nullifier = tx.public_inputs().nullifier
        if nullifier is not None:
            logger.debug("Spent nullifier %s", short_hex(nullifier))
        return PrivateTransaction.from_transaction(
            tx, receipt.reference, TransactionStatus.CONFIRMED, proof
        )

    async def is_nullifier_spent(self, nullifier: bytes) -> bool:
        """Check if a nullifier has been spent on the ledger"""
        return await self.ledger.is_nullifier_spent(nullifier)

    async def close(self) -> None:
        """Lock the wallet and close the ledger connection"""
        self.wallet.lock()
        await self.ledger.close()
