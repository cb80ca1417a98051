"""
Solana blockchain interaction for the Moonify pool program

This module provides the low-level ledger transport:
- Instruction encoding for deposit, shield, transfer and unshield
- Transaction building, signing and submission
- Signature status and nullifier lookups
"""

import hashlib
import logging
import struct
from typing import Optional, Tuple

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus
from spl.token.constants import TOKEN_PROGRAM_ID
import spl.token.instructions as spl_token

from .assets import NATIVE_TOKEN
from .config import DEFAULT_RPC_URL
from .types import LedgerStatus, LedgerSubmission, TransactionKind

logger = logging.getLogger(__name__)

# Program ID - replace with actual deployed program ID
DEFAULT_PROGRAM_ID = "Moon111111111111111111111111111111111111111"

# Seeds for PDAs
POOL_SEED = b"privacy_pool"
VAULT_SEED = b"vault"
NULLIFIER_SEED = b"nullifier"


def find_pool_pda(program_id: Pubkey) -> Tuple[Pubkey, int]:
    """Derive the pool PDA address"""
    return Pubkey.find_program_address([POOL_SEED], program_id)


def find_vault_pda(program_id: Pubkey, pool: Pubkey) -> Tuple[Pubkey, int]:
    """Derive the vault PDA address"""
    return Pubkey.find_program_address([VAULT_SEED, bytes(pool)], program_id)


def find_nullifier_pda(
    program_id: Pubkey, pool: Pubkey, nullifier: bytes
) -> Tuple[Pubkey, int]:
    """Derive the nullifier marker PDA address"""
    return Pubkey.find_program_address(
        [NULLIFIER_SEED, bytes(pool), nullifier], program_id
    )


def discriminator(name: str) -> bytes:
    """Anchor instruction discriminator: sha256("global:<name>")[:8]"""
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


def _check_size(name: str, value: bytes, size: int) -> None:
    if len(value) != size:
        raise ValueError(f"{name} must be {size} bytes")


def _encode_proof(proof: bytes) -> bytes:
    # Variable length, preceded by 4-byte length
    return struct.pack("<I", len(proof)) + proof


def _encode_authorization(authority: bytes, authorization: bytes) -> bytes:
    _check_size("Authority", authority, 32)
    _check_size("Authorization", authorization, 64)
    return authority + authorization


class InstructionBuilder:
    """Builds Moonify pool instructions"""

    INITIALIZE_DISC = discriminator("initialize")
    DEPOSIT_DISC = discriminator("deposit")
    SHIELD_DISC = discriminator("shield")
    TRANSFER_DISC = discriminator("transfer")
    UNSHIELD_SOL_DISC = discriminator("unshield_sol")
    UNSHIELD_DISC = discriminator("unshield")

    def __init__(self, program_id: Pubkey):
        """Initialize instruction builder.

        Args:
            program_id: The pool program public key
        """
        self.program_id = program_id
        self.pool, _ = find_pool_pda(program_id)
        self.vault, _ = find_vault_pda(program_id, self.pool)

    def nullifier_marker(self, nullifier: bytes) -> Pubkey:
        marker, _ = find_nullifier_pda(self.program_id, self.pool, nullifier)
        return marker

    def initialize(self, authority: Pubkey) -> Instruction:
        """Build initialize instruction"""
        accounts = [
            AccountMeta(self.pool, is_signer=False, is_writable=True),
            AccountMeta(authority, is_signer=True, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ]
        return Instruction(self.program_id, self.INITIALIZE_DISC, accounts)

    def deposit(
        self,
        depositor: Pubkey,
        commitment: bytes,
        amount: int,
        proof: bytes,
    ) -> Instruction:
        """Build native deposit instruction"""
        _check_size("Commitment", commitment, 32)

        accounts = [
            AccountMeta(self.pool, is_signer=False, is_writable=True),
            AccountMeta(self.vault, is_signer=False, is_writable=True),
            AccountMeta(depositor, is_signer=True, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ]

        # discriminator + commitment + amount (u64) + proof
        data = (
            self.DEPOSIT_DISC
            + commitment
            + struct.pack("<Q", amount)
            + _encode_proof(proof)
        )
        return Instruction(self.program_id, data, accounts)

    def shield(
        self,
        depositor: Pubkey,
        depositor_token_account: Pubkey,
        vault_token_account: Pubkey,
        mint: Pubkey,
        commitment: bytes,
        amount: int,
        proof: bytes,
    ) -> Instruction:
        """Build shield SPL token instruction"""
        _check_size("Commitment", commitment, 32)

        accounts = [
            AccountMeta(self.pool, is_signer=False, is_writable=True),
            AccountMeta(self.vault, is_signer=False, is_writable=False),
            AccountMeta(vault_token_account, is_signer=False, is_writable=True),
            AccountMeta(depositor_token_account, is_signer=False, is_writable=True),
            AccountMeta(mint, is_signer=False, is_writable=False),
            AccountMeta(depositor, is_signer=True, is_writable=True),
            AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        ]

        data = (
            self.SHIELD_DISC
            + commitment
            + struct.pack("<Q", amount)
            + _encode_proof(proof)
        )
        return Instruction(self.program_id, data, accounts)

    def transfer(
        self,
        relayer: Pubkey,
        nullifier: bytes,
        sender_commitment: bytes,
        recipient_commitment: bytes,
        proof: bytes,
        authority: bytes,
        authorization: bytes,
    ) -> Instruction:
        """Build private transfer instruction"""
        _check_size("Nullifier", nullifier, 32)
        _check_size("Sender commitment", sender_commitment, 32)
        _check_size("Recipient commitment", recipient_commitment, 32)

        accounts = [
            AccountMeta(self.pool, is_signer=False, is_writable=True),
            AccountMeta(self.nullifier_marker(nullifier), is_signer=False, is_writable=True),
            AccountMeta(relayer, is_signer=True, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ]

        # discriminator + nullifier + both commitments + proof + spend authorization
        data = (
            self.TRANSFER_DISC
            + nullifier
            + sender_commitment
            + recipient_commitment
            + _encode_proof(proof)
            + _encode_authorization(authority, authorization)
        )
        return Instruction(self.program_id, data, accounts)

    def unshield_sol(
        self,
        relayer: Pubkey,
        recipient: Pubkey,
        nullifier: bytes,
        change_commitment: bytes,
        amount: int,
        proof: bytes,
        authority: bytes,
        authorization: bytes,
    ) -> Instruction:
        """Build unshield SOL instruction"""
        _check_size("Nullifier", nullifier, 32)
        _check_size("Change commitment", change_commitment, 32)

        accounts = [
            AccountMeta(self.pool, is_signer=False, is_writable=True),
            AccountMeta(self.nullifier_marker(nullifier), is_signer=False, is_writable=True),
            AccountMeta(self.vault, is_signer=False, is_writable=True),
            AccountMeta(recipient, is_signer=False, is_writable=True),
            AccountMeta(relayer, is_signer=True, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ]

        data = (
            self.UNSHIELD_SOL_DISC
            + nullifier
            + change_commitment
            + struct.pack("<Q", amount)
            + _encode_proof(proof)
            + _encode_authorization(authority, authorization)
        )
        return Instruction(self.program_id, data, accounts)

    def unshield_spl(
        self,
        relayer: Pubkey,
        recipient_token_account: Pubkey,
        vault_token_account: Pubkey,
        nullifier: bytes,
        change_commitment: bytes,
        amount: int,
        proof: bytes,
        authority: bytes,
        authorization: bytes,
    ) -> Instruction:
        """Build unshield SPL token instruction"""
        _check_size("Nullifier", nullifier, 32)
        _check_size("Change commitment", change_commitment, 32)

        accounts = [
            AccountMeta(self.pool, is_signer=False, is_writable=True),
            AccountMeta(self.nullifier_marker(nullifier), is_signer=False, is_writable=True),
            AccountMeta(self.vault, is_signer=False, is_writable=False),
            AccountMeta(vault_token_account, is_signer=False, is_writable=True),
            AccountMeta(recipient_token_account, is_signer=False, is_writable=True),
            AccountMeta(relayer, is_signer=True, is_writable=True),
            AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ]

        data = (
            self.UNSHIELD_DISC
            + nullifier
            + change_commitment
            + struct.pack("<Q", amount)
            + _encode_proof(proof)
            + _encode_authorization(authority, authorization)
        )
        return Instruction(self.program_id, data, accounts)


class SolanaClient:
    """
    Low-level Solana client for the pool program

    Handles direct blockchain interaction including:
    - Encoding ledger submissions as instructions
    - Submitting transactions and reading their status
    - Nullifier lookups
    """

    def __init__(
        self,
        rpc_url: str = DEFAULT_RPC_URL,
        program_id: Optional[str] = None,
    ):
        """
        Initialize Solana client

        Args:
            rpc_url: Solana RPC endpoint
            program_id: Pool program ID
        """
        self.rpc_url = rpc_url
        self.client = AsyncClient(rpc_url)
        self.program_id = Pubkey.from_string(program_id or DEFAULT_PROGRAM_ID)
        self.instruction_builder = InstructionBuilder(self.program_id)
        self.pool_pda = self.instruction_builder.pool

    async def get_recent_blockhash(self) -> Hash:
        """Get recent blockhash for transaction"""
        response = await self.client.get_latest_blockhash(commitment=Confirmed)
        return response.value.blockhash

    async def send_transaction(
        self, instructions: list[Instruction], payer: Keypair
    ) -> str:
        """Sign and send instructions as one transaction"""
        blockhash = await self.get_recent_blockhash()

        message = Message.new_with_blockhash(instructions, payer.pubkey(), blockhash)
        tx = Transaction.new_unsigned(message)
        tx.sign([payer], blockhash)

        response = await self.client.send_transaction(tx)
        return str(response.value)

    async def account_exists(self, address: Pubkey) -> bool:
        response = await self.client.get_account_info(address, commitment=Confirmed)
        return response.value is not None

    async def is_nullifier_spent(self, nullifier: bytes) -> bool:
        """
        Check if nullifier has been spent

        Returns:
            True if spent (marker PDA exists)
        """
        return await self.account_exists(
            self.instruction_builder.nullifier_marker(nullifier)
        )

    async def get_signature_status(self, signature: str) -> Tuple[LedgerStatus, Optional[str]]:
        """
        Map an RPC signature status to a ledger status

        Returns:
            (status, reason) where reason is set for rejected transactions
        """
        response = await self.client.get_signature_statuses(
            [Signature.from_string(signature)]
        )
        status = response.value[0]
        if status is None:
            return LedgerStatus.PENDING, None
        if status.err is not None:
            return LedgerStatus.REJECTED, str(status.err)
        if status.confirmation_status in (
            TransactionConfirmationStatus.Confirmed,
            TransactionConfirmationStatus.Finalized,
        ):
            return LedgerStatus.ACCEPTED, None
        return LedgerStatus.PENDING, None

    async def _ata_instructions(
        self, owner: Pubkey, mint: Pubkey, payer: Keypair
    ) -> Tuple[Pubkey, list[Instruction]]:
        """Associated token account address, plus its creation if missing"""
        ata = spl_token.get_associated_token_address(owner, mint)
        if await self.account_exists(ata):
            return ata, []
        create_ata_ix = spl_token.create_associated_token_account(
            payer=payer.pubkey(),
            owner=owner,
            mint=mint,
        )
        return ata, [create_ata_ix]

    async def build_instructions(
        self, submission: LedgerSubmission, payer: Keypair
    ) -> list[Instruction]:
        """
        Encode a ledger submission for the pool program

        Args:
            submission: Public inputs, proof and spend authorization
            payer: Fee payer; the depositor for deposits and shields, the
                relayer for spends

        Returns:
            Instructions to send in one transaction
        """
        builder = self.instruction_builder
        kind = submission.kind
        proof = submission.proof
        amount = submission.public_amount or 0

        if kind is TransactionKind.DEPOSIT:
            (commitment,) = submission.commitments
            return [builder.deposit(payer.pubkey(), commitment, amount, proof)]

        if kind is TransactionKind.SHIELD:
            (commitment,) = submission.commitments
            if submission.token in (None, NATIVE_TOKEN):
                return [builder.deposit(payer.pubkey(), commitment, amount, proof)]
            mint = Pubkey.from_string(submission.token)
            user_ata, setup = await self._ata_instructions(payer.pubkey(), mint, payer)
            vault_ata, vault_setup = await self._ata_instructions(builder.vault, mint, payer)
            return setup + vault_setup + [
                builder.shield(
                    payer.pubkey(), user_ata, vault_ata, mint, commitment, amount, proof
                )
            ]

        if kind is TransactionKind.PRIVATE_TRANSFER:
            sender_commitment, recipient_commitment = submission.commitments
            return [
                builder.transfer(
                    payer.pubkey(),
                    submission.nullifier,
                    sender_commitment,
                    recipient_commitment,
                    proof,
                    submission.authority,
                    submission.authorization,
                )
            ]

        if kind is TransactionKind.UNSHIELD:
            (change_commitment,) = submission.commitments
            recipient = (
                Pubkey.from_string(submission.recipient)
                if submission.recipient
                else payer.pubkey()
            )
            if submission.token in (None, NATIVE_TOKEN):
                return [
                    builder.unshield_sol(
                        payer.pubkey(),
                        recipient,
                        submission.nullifier,
                        change_commitment,
                        amount,
                        proof,
                        submission.authority,
                        submission.authorization,
                    )
                ]
            mint = Pubkey.from_string(submission.token)
            vault_ata = spl_token.get_associated_token_address(builder.vault, mint)
            recipient_ata, setup = await self._ata_instructions(recipient, mint, payer)
            return setup + [
                builder.unshield_spl(
                    payer.pubkey(),
                    recipient_ata,
                    vault_ata,
                    submission.nullifier,
                    change_commitment,
                    amount,
                    proof,
                    submission.authority,
                    submission.authorization,
                )
            ]

        raise ValueError(f"Unsupported transaction kind: {kind}")

    async def submit(self, submission: LedgerSubmission, payer: Keypair) -> str:
        """
        Submit a ledger submission to the pool program

        Returns:
            Transaction signature
        """
        instructions = await self.build_instructions(submission, payer)
        signature = await self.send_transaction(instructions, payer)
        logger.info("Sent %s transaction %s", submission.kind.value, signature)
        return signature

    async def initialize_pool(self, authority: Keypair) -> str:
        """
        Initialize the privacy pool

        Returns:
            Transaction signature
        """
        instruction = self.instruction_builder.initialize(authority.pubkey())
        return await self.send_transaction([instruction], authority)

    async def close(self) -> None:
        """Close RPC connection"""
        await self.client.close()
