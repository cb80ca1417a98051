"""
Proof gateway

The wallet hands a witness to a proving backend and receives an opaque proof
bound to the transaction's public inputs. Backends are asynchronous; the
caller bounds them with ``generate_proof`` so a stuck prover turns into a
``ProofTimeout`` without touching wallet state.
"""

import asyncio
import hashlib
import json
import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature

from .errors import ProofError, ProofGenerationFailed, ProofTimeout
from .hashing import NULL_COMMITMENT, commit, nullify
from .types import Proof, PublicInputs, TransactionKind, Witness

logger = logging.getLogger(__name__)


class ProofGateway(ABC):
    """Proving and verification backend"""

    @abstractmethod
    async def request_proof(self, witness: Witness) -> Proof:
        """Produce a proof for the witness's public inputs"""

    @abstractmethod
    async def verify(self, proof: Proof, public_inputs: PublicInputs) -> bool:
        """Check a proof against public inputs"""


async def generate_proof(gateway: ProofGateway, witness: Witness, timeout: float) -> Proof:
    """
    Request a proof with a deadline

    Raises:
        ProofTimeout: If the backend does not answer within ``timeout`` seconds
        ProofGenerationFailed: If the backend raises
    """
    try:
        proof = await asyncio.wait_for(gateway.request_proof(witness), timeout)
    except asyncio.TimeoutError:
        logger.warning("Proof generation timed out after %gs", timeout)
        raise ProofTimeout(timeout) from None
    except ProofError:
        raise
    except Exception as e:
        logger.warning("Proof generation failed: %s", e)
        raise ProofGenerationFailed(f"Proving backend failed: {e}") from e

    if proof.public_inputs != witness.public_inputs:
        raise ProofGenerationFailed("Proof is bound to different public inputs")
    return proof


async def verify_proof(gateway: ProofGateway, proof: Proof, timeout: float) -> None:
    """
    Verify a proof locally before it is submitted

    Raises:
        ProofError: If verification fails, errors or times out
    """
    try:
        valid = await asyncio.wait_for(
            gateway.verify(proof, proof.public_inputs), timeout
        )
    except asyncio.TimeoutError:
        raise ProofTimeout(timeout) from None
    except Exception as e:
        raise ProofError(f"Proof verification failed: {e}") from e
    if not valid:
        raise ProofError("Proof failed local verification")


# =========================================================================
# Witness consistency
# =========================================================================


def _output_commitment(amount: int, owner: int, salt: int) -> bytes:
    if amount == 0:
        return NULL_COMMITMENT
    return commit(amount, owner, salt)


def check_witness(witness: Witness) -> None:
    """
    Check the relations a circuit would enforce between witness and public inputs

    Raises:
        ValueError: If nullifier, output commitments or value balance disagree
    """
    public = witness.public_inputs
    secret = witness.secret

    if witness.input_salts:
        if public.nullifier != nullify(secret, witness.input_salts[0]):
            raise ValueError("Nullifier does not match the spent note")
    elif public.nullifier is not None:
        raise ValueError("Unexpected nullifier for a transaction without inputs")

    owners = [secret] * len(witness.output_amounts)
    if public.kind is TransactionKind.PRIVATE_TRANSFER:
        if witness.recipient_secret is None:
            raise ValueError("Transfer witness has no recipient secret")
        owners[-1] = witness.recipient_secret

    expected = tuple(
        _output_commitment(amount, owner, salt)
        for amount, owner, salt in zip(
            witness.output_amounts, owners, witness.output_salts
        )
    )
    if expected != public.commitments:
        raise ValueError("Output commitments do not match the witness")

    inflow = sum(witness.input_amounts)
    outflow = sum(witness.output_amounts)
    if public.kind in (TransactionKind.DEPOSIT, TransactionKind.SHIELD):
        inflow += public.public_amount or 0
    elif public.kind is TransactionKind.UNSHIELD:
        outflow += public.public_amount or 0
    if inflow != outflow:
        raise ValueError("Inputs and outputs do not balance")


# =========================================================================
# Backends
# =========================================================================


class SignatureProver(ProofGateway):
    """
    Development backend: Ed25519 attestation over the public inputs

    Checks the witness the way a circuit would, then signs
    sha3_256(public inputs). The proof is signature (64) + pubkey (32).
    This is NOT zero knowledge; use it for tests and local development.
    """

    PROOF_SIZE = 96

    def __init__(self, keypair: Optional[Keypair] = None):
        self.keypair = keypair or Keypair()

    @property
    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey()

    @staticmethod
    def message(public_inputs: PublicInputs) -> bytes:
        return hashlib.sha3_256(public_inputs.to_bytes()).digest()

    def _prove(self, witness: Witness) -> Proof:
        check_witness(witness)
        signature = self.keypair.sign_message(self.message(witness.public_inputs))
        return Proof(
            data=bytes(signature) + bytes(self.keypair.pubkey()),
            public_inputs=witness.public_inputs,
        )

    async def request_proof(self, witness: Witness) -> Proof:
        # Poseidon hashing is CPU bound
        return await asyncio.to_thread(self._prove, witness)

    async def verify(self, proof: Proof, public_inputs: PublicInputs) -> bool:
        if len(proof.data) != self.PROOF_SIZE:
            return False
        signature = Signature.from_bytes(proof.data[:64])
        pubkey = Pubkey.from_bytes(proof.data[64:])
        if pubkey != self.keypair.pubkey():
            return False
        return signature.verify(pubkey, self.message(public_inputs))


class SubprocessProver(ProofGateway):
    """
    Drives an external proving CLI

    The witness is written to the prover's stdin as JSON; the prover prints
    the proof as hex on stdout. An optional verifier command receives
    ``{"proof": hex, "public_inputs": {...}}`` and signals validity with its
    exit status. The child process is killed if the caller times out or
    cancels.
    """

    def __init__(
        self,
        command: Sequence[str],
        verify_command: Optional[Sequence[str]] = None,
    ):
        if not command:
            raise ValueError("Prover command is empty")
        self.command = list(command)
        self.verify_command = list(verify_command) if verify_command else None

    async def _run(self, command: list[str], payload: bytes) -> tuple[int, bytes, bytes]:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await process.communicate(payload)
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise
        return process.returncode, stdout, stderr

    async def request_proof(self, witness: Witness) -> Proof:
        payload = json.dumps(witness.to_dict()).encode("utf-8")
        returncode, stdout, stderr = await self._run(self.command, payload)
        if returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()[:200]
            raise RuntimeError(f"prover exited with status {returncode}: {detail}")

        output = stdout.decode("utf-8", errors="replace").strip()
        if output.startswith("0x"):
            output = output[2:]
        try:
            data = bytes.fromhex(output)
        except ValueError:
            raise RuntimeError("prover output is not hex") from None
        if not data:
            raise RuntimeError("prover returned an empty proof")
        return Proof(data=data, public_inputs=witness.public_inputs)

    async def verify(self, proof: Proof, public_inputs: PublicInputs) -> bool:
        if self.verify_command is None:
            logger.debug("No verifier command configured; skipping local check")
            return True
        payload = json.dumps(
            {"proof": proof.to_hex(), "public_inputs": public_inputs.to_dict()}
        ).encode("utf-8")
        returncode, _, _ = await self._run(self.verify_command, payload)
        return returncode == 0
