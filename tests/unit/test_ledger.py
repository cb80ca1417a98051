"""Test the ledger gateway"""

import pytest
from solders.keypair import Keypair

from moonify.builder import WalletSnapshot, build_deposit, build_unshield
from moonify.errors import LedgerError, LedgerPending
from moonify.ledger import InMemoryLedger, verify_authorization, wait_for_confirmation
from moonify.prover import SignatureProver
from moonify.types import LedgerStatus, LedgerSubmission, Note

SECRET = 99


def submission_for(tx, keypair, proof=b"proof"):
    public = tx.public_inputs()
    return LedgerSubmission(
        public_inputs=public,
        proof=proof,
        authority=bytes(keypair.pubkey()),
        authorization=bytes(keypair.sign_message(public.to_bytes())),
    )


@pytest.fixture
def keypair():
    return Keypair()


@pytest.fixture
def unshield_tx():
    snapshot = WalletSnapshot(
        secret=SECRET, salt_counter=1, notes=(Note.create(100, SECRET, 1),)
    )
    return build_unshield(snapshot, 40)


@pytest.fixture
def deposit_tx():
    return build_deposit(WalletSnapshot(secret=SECRET, salt_counter=0), 100)


class TestInMemoryLedger:
    """Test the reference ledger"""

    @pytest.mark.asyncio
    async def test_deposit_accepted(self, keypair, deposit_tx):
        ledger = InMemoryLedger()
        receipt = await ledger.submit(submission_for(deposit_tx, keypair))

        assert receipt.status is LedgerStatus.ACCEPTED
        assert ledger.commitments == [deposit_tx.commitment]
        assert ledger.vaults[0] == 100

    @pytest.mark.asyncio
    async def test_nullifier_uniqueness(self, keypair, deposit_tx, unshield_tx):
        """The second spend of one nullifier is rejected"""
        ledger = InMemoryLedger()
        await ledger.submit(submission_for(deposit_tx, keypair))

        first = await ledger.submit(submission_for(unshield_tx, keypair))
        second = await ledger.submit(submission_for(unshield_tx, keypair))

        assert first.status is LedgerStatus.ACCEPTED
        assert second.status is LedgerStatus.REJECTED
        assert second.reason == "nullifier already spent"
        assert await ledger.is_nullifier_spent(unshield_tx.nullifier)

    @pytest.mark.asyncio
    async def test_bad_authorization(self, keypair, deposit_tx, unshield_tx):
        ledger = InMemoryLedger()
        await ledger.submit(submission_for(deposit_tx, keypair))
        good = submission_for(unshield_tx, keypair)
        forged = LedgerSubmission(
            public_inputs=good.public_inputs,
            proof=good.proof,
            authority=bytes(Keypair().pubkey()),
            authorization=good.authorization,
        )
        assert not verify_authorization(forged)

        receipt = await ledger.submit(forged)
        assert receipt.status is LedgerStatus.REJECTED
        assert not await ledger.is_nullifier_spent(unshield_tx.nullifier)

    @pytest.mark.asyncio
    async def test_vault_balance(self, keypair, unshield_tx):
        """Cannot release more than was deposited for the asset"""
        receipt = await InMemoryLedger().submit(submission_for(unshield_tx, keypair))
        assert receipt.status is LedgerStatus.REJECTED
        assert receipt.reason == "insufficient vault balance"

    @pytest.mark.asyncio
    async def test_proof_verified(self, keypair, deposit_tx):
        prover = SignatureProver()
        ledger = InMemoryLedger(verifier=prover)

        rejected = await ledger.submit(submission_for(deposit_tx, keypair, proof=bytes(96)))
        assert rejected.reason == "invalid proof"

        proof = await prover.request_proof(deposit_tx.witness())
        accepted = await ledger.submit(submission_for(deposit_tx, keypair, proof.data))
        assert accepted.status is LedgerStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_pending_then_accepted(self, keypair, deposit_tx):
        ledger = InMemoryLedger(confirm_after=2)
        receipt = await ledger.submit(submission_for(deposit_tx, keypair))
        assert receipt.status is LedgerStatus.PENDING

        final = await wait_for_confirmation(ledger, receipt, timeout=5, poll_interval=0.01)
        assert final.status is LedgerStatus.ACCEPTED
        assert final.reference == receipt.reference

    @pytest.mark.asyncio
    async def test_pending_timeout(self, keypair, deposit_tx):
        ledger = InMemoryLedger(confirm_after=None)
        receipt = await ledger.submit(submission_for(deposit_tx, keypair))

        with pytest.raises(LedgerPending) as exc_info:
            await wait_for_confirmation(ledger, receipt, timeout=0.05, poll_interval=0.01)
        assert exc_info.value.reference == receipt.reference

    @pytest.mark.asyncio
    async def test_unknown_reference(self):
        with pytest.raises(LedgerError):
            await InMemoryLedger().get_status("nope")
