"""Test Solana instruction encoding (offline)"""

import hashlib
import struct
from unittest.mock import AsyncMock

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from spl.token.constants import TOKEN_PROGRAM_ID

from moonify.solana_client import (
    DEFAULT_PROGRAM_ID,
    InstructionBuilder,
    SolanaClient,
    discriminator,
    find_nullifier_pda,
    find_pool_pda,
)
from moonify.types import LedgerSubmission, PublicInputs, TransactionKind

PROGRAM_ID = Pubkey.from_string(DEFAULT_PROGRAM_ID)
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

NULLIFIER = bytes(range(32))
COMMITMENT_A = bytes([1] * 32)
COMMITMENT_B = bytes([2] * 32)
PROOF = bytes(96)
AUTHORITY = bytes([7] * 32)
AUTHORIZATION = bytes([9] * 64)


@pytest.fixture
def builder():
    return InstructionBuilder(PROGRAM_ID)


class TestPda:
    """Test program-derived addresses"""

    def test_pool_deterministic(self):
        assert find_pool_pda(PROGRAM_ID) == find_pool_pda(PROGRAM_ID)

    def test_nullifier_markers_differ(self):
        pool, _ = find_pool_pda(PROGRAM_ID)
        a, _ = find_nullifier_pda(PROGRAM_ID, pool, NULLIFIER)
        b, _ = find_nullifier_pda(PROGRAM_ID, pool, COMMITMENT_A)
        assert a != b

    def test_discriminator(self):
        assert discriminator("deposit") == hashlib.sha256(b"global:deposit").digest()[:8]


class TestInstructionBuilder:
    """Test instruction layouts"""

    def test_deposit(self, builder):
        depositor = Keypair().pubkey()
        ix = builder.deposit(depositor, COMMITMENT_A, 1000, PROOF)

        data = bytes(ix.data)
        assert data[:8] == InstructionBuilder.DEPOSIT_DISC
        assert data[8:40] == COMMITMENT_A
        assert struct.unpack("<Q", data[40:48])[0] == 1000
        assert struct.unpack("<I", data[48:52])[0] == len(PROOF)
        assert data[52:] == PROOF

        assert ix.program_id == PROGRAM_ID
        signers = [meta.pubkey for meta in ix.accounts if meta.is_signer]
        assert signers == [depositor]
        assert ix.accounts[-1].pubkey == SYSTEM_PROGRAM_ID

    def test_transfer(self, builder):
        relayer = Keypair().pubkey()
        ix = builder.transfer(
            relayer, NULLIFIER, COMMITMENT_A, COMMITMENT_B, PROOF, AUTHORITY, AUTHORIZATION
        )

        data = bytes(ix.data)
        assert data[:8] == InstructionBuilder.TRANSFER_DISC
        assert data[8:40] == NULLIFIER
        assert data[40:72] == COMMITMENT_A
        assert data[72:104] == COMMITMENT_B
        assert data[-96:] == AUTHORITY + AUTHORIZATION
        assert ix.accounts[1].pubkey == builder.nullifier_marker(NULLIFIER)

    def test_unshield_spl(self, builder):
        relayer = Keypair().pubkey()
        recipient_ata = Keypair().pubkey()
        vault_ata = Keypair().pubkey()
        ix = builder.unshield_spl(
            relayer,
            recipient_ata,
            vault_ata,
            NULLIFIER,
            COMMITMENT_A,
            500,
            PROOF,
            AUTHORITY,
            AUTHORIZATION,
        )

        data = bytes(ix.data)
        assert data[:8] == InstructionBuilder.UNSHIELD_DISC
        assert data[40:72] == COMMITMENT_A
        assert struct.unpack("<Q", data[72:80])[0] == 500
        assert TOKEN_PROGRAM_ID in [meta.pubkey for meta in ix.accounts]

    def test_bad_sizes(self, builder):
        relayer = Keypair().pubkey()
        with pytest.raises(ValueError, match="Nullifier"):
            builder.transfer(
                relayer, b"short", COMMITMENT_A, COMMITMENT_B, PROOF, AUTHORITY, AUTHORIZATION
            )
        with pytest.raises(ValueError, match="Authorization"):
            builder.transfer(
                relayer, NULLIFIER, COMMITMENT_A, COMMITMENT_B, PROOF, AUTHORITY, b"sig"
            )
        with pytest.raises(ValueError, match="Commitment"):
            builder.deposit(relayer, b"", 1, PROOF)


class TestBuildInstructions:
    """Test submission dispatch without network access"""

    @pytest.fixture
    def solana(self):
        client = SolanaClient("http://localhost:8899")
        client.account_exists = AsyncMock(return_value=True)
        return client

    def submission(self, kind, commitments, **kwargs):
        nullifier = kwargs.pop("nullifier", None)
        amount = kwargs.pop("amount", None)
        asset_id = kwargs.pop("asset_id", None)
        return LedgerSubmission(
            public_inputs=PublicInputs(
                kind=kind,
                commitments=commitments,
                nullifier=nullifier,
                public_amount=amount,
                asset_id=asset_id,
            ),
            proof=PROOF,
            authority=AUTHORITY,
            authorization=AUTHORIZATION,
            **kwargs,
        )

    @pytest.mark.asyncio
    async def test_deposit(self, solana):
        payer = Keypair()
        sub = self.submission(TransactionKind.DEPOSIT, (COMMITMENT_A,), amount=10)
        (ix,) = await solana.build_instructions(sub, payer)
        assert bytes(ix.data)[:8] == InstructionBuilder.DEPOSIT_DISC

    @pytest.mark.asyncio
    async def test_transfer(self, solana):
        sub = self.submission(
            TransactionKind.PRIVATE_TRANSFER,
            (COMMITMENT_A, COMMITMENT_B),
            nullifier=NULLIFIER,
        )
        (ix,) = await solana.build_instructions(sub, Keypair())
        assert bytes(ix.data)[:8] == InstructionBuilder.TRANSFER_DISC

    @pytest.mark.asyncio
    async def test_token_shield(self, solana):
        sub = self.submission(
            TransactionKind.SHIELD, (COMMITMENT_A,), amount=10, asset_id=1, token=USDC_MINT
        )
        (ix,) = await solana.build_instructions(sub, Keypair())
        assert bytes(ix.data)[:8] == InstructionBuilder.SHIELD_DISC

    @pytest.mark.asyncio
    async def test_token_unshield_creates_missing_account(self, solana):
        solana.account_exists = AsyncMock(return_value=False)
        recipient = str(Keypair().pubkey())
        sub = self.submission(
            TransactionKind.UNSHIELD,
            (COMMITMENT_A,),
            nullifier=NULLIFIER,
            amount=10,
            token=USDC_MINT,
            recipient=recipient,
        )
        create_ata, unshield = await solana.build_instructions(sub, Keypair())
        assert bytes(unshield.data)[:8] == InstructionBuilder.UNSHIELD_DISC
        assert create_ata.program_id != PROGRAM_ID

    @pytest.mark.asyncio
    async def test_native_unshield_defaults_to_payer(self, solana):
        payer = Keypair()
        sub = self.submission(
            TransactionKind.UNSHIELD, (COMMITMENT_A,), nullifier=NULLIFIER, amount=10
        )
        (ix,) = await solana.build_instructions(sub, payer)
        assert bytes(ix.data)[:8] == InstructionBuilder.UNSHIELD_SOL_DISC
        assert ix.accounts[3].pubkey == payer.pubkey()
