"""Type definitions for Moonify"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from .errors import ConservationError, ValidationError
from .hashing import MAX_AMOUNT, commit


class TransactionKind(Enum):
    """Transaction variant tag"""

    DEPOSIT = "deposit"
    PRIVATE_TRANSFER = "private_transfer"
    SHIELD = "shield"
    UNSHIELD = "unshield"


class LedgerStatus(Enum):
    """Ledger answer to a submission"""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PENDING = "pending"


class TransactionStatus(Enum):
    """Client-side outcome of an intent"""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


def validate_amount(amount: int) -> None:
    """Reject non-integer, non-positive or oversized amounts"""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("Amount must be an integer")
    if amount <= 0:
        raise ValidationError("Amount must be positive")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"Amount must not exceed {MAX_AMOUNT}")


# =========================================================================
# Notes
# =========================================================================


@dataclass(frozen=True)
class Note:
    """
    A unit of private value owned by one wallet

    The salt is the note's stable identifier inside a wallet. The commitment
    is always derived from (amount, secret, salt); use ``Note.create``.
    """

    amount: int
    salt: int
    commitment: bytes
    spent: bool = False

    @classmethod
    def create(cls, amount: int, secret: Union[int, bytes, str], salt: int) -> "Note":
        """Build an unspent note, computing its commitment"""
        return cls(amount=amount, salt=salt, commitment=commit(amount, secret, salt))

    def matches(self, secret: Union[int, bytes, str]) -> bool:
        """Recompute the commitment and compare with the stored one"""
        return commit(self.amount, secret, self.salt) == self.commitment

    def to_dict(self) -> dict[str, Any]:
        return {
            "amount": self.amount,
            "salt": self.salt,
            "spent": self.spent,
            "commitment": self.commitment.hex(),
        }


@dataclass(frozen=True)
class NoteSummary:
    """Display view of a note (no secret material)"""

    commitment: str
    amount: int
    salt: int
    spent: bool

    @classmethod
    def from_note(cls, note: Note) -> "NoteSummary":
        return cls(
            commitment=note.commitment.hex(),
            amount=note.amount,
            salt=note.salt,
            spent=note.spent,
        )


# =========================================================================
# Proof inputs
# =========================================================================


@dataclass(frozen=True)
class PublicInputs:
    """Values revealed to the ledger and bound into the proof"""

    kind: TransactionKind
    commitments: tuple[bytes, ...] = ()
    nullifier: Optional[bytes] = None
    public_amount: Optional[int] = None
    asset_id: Optional[int] = None

    def to_bytes(self) -> bytes:
        """Canonical encoding, used to bind proofs and signatures"""
        parts = [self.kind.value.encode(), len(self.commitments).to_bytes(1, "big")]
        parts.extend(self.commitments)
        parts.append(self.nullifier or bytes(32))
        parts.append((self.public_amount or 0).to_bytes(8, "big"))
        parts.append((self.asset_id or 0).to_bytes(8, "big"))
        return b"".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "commitments": [c.hex() for c in self.commitments],
            "nullifier": self.nullifier.hex() if self.nullifier else None,
            "public_amount": self.public_amount,
            "asset_id": self.asset_id,
        }


@dataclass(frozen=True)
class Witness:
    """
    Private inputs handed to the proving backend, never to the ledger

    Secret fields are excluded from repr so witnesses can be logged safely
    by accident without leaking.
    """

    public_inputs: PublicInputs
    secret: int = field(repr=False)
    input_amounts: tuple[int, ...] = ()
    input_salts: tuple[int, ...] = ()
    output_amounts: tuple[int, ...] = ()
    output_salts: tuple[int, ...] = ()
    recipient_secret: Optional[int] = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        """Field elements as decimal strings, the usual prover input format"""
        return {
            "public": self.public_inputs.to_dict(),
            "secret": str(self.secret),
            "input_amounts": [str(a) for a in self.input_amounts],
            "input_salts": [str(s) for s in self.input_salts],
            "output_amounts": [str(a) for a in self.output_amounts],
            "output_salts": [str(s) for s in self.output_salts],
            "recipient_secret": (
                str(self.recipient_secret) if self.recipient_secret is not None else None
            ),
        }


@dataclass(frozen=True)
class Proof:
    """Opaque proof bytes bound to exactly one set of public inputs"""

    data: bytes
    public_inputs: PublicInputs

    def to_hex(self) -> str:
        return self.data.hex()


# =========================================================================
# Transactions (tagged variants)
# =========================================================================


def _check_conservation(inputs: int, outputs: int) -> None:
    if inputs != outputs:
        raise ConservationError(f"Inputs {inputs} do not equal outputs {outputs}")


@dataclass(frozen=True)
class Deposit:
    """Native-asset deposit: public amount in, one commitment out"""

    amount: int
    salt: int
    commitment: bytes
    new_salt_counter: int
    secret: int = field(repr=False)

    kind = TransactionKind.DEPOSIT

    def new_notes(self) -> tuple[Note, ...]:
        return (Note(amount=self.amount, salt=self.salt, commitment=self.commitment),)

    def public_inputs(self) -> PublicInputs:
        return PublicInputs(
            kind=self.kind,
            commitments=(self.commitment,),
            public_amount=self.amount,
        )

    def witness(self) -> Witness:
        return Witness(
            public_inputs=self.public_inputs(),
            secret=self.secret,
            output_amounts=(self.amount,),
            output_salts=(self.salt,),
        )


@dataclass(frozen=True)
class Shield(Deposit):
    """Token deposit: same shape as Deposit, public leg on a token ledger"""

    token: str = "SOL"
    asset_id: int = 0

    kind = TransactionKind.SHIELD

    def public_inputs(self) -> PublicInputs:
        return PublicInputs(
            kind=self.kind,
            commitments=(self.commitment,),
            public_amount=self.amount,
            asset_id=self.asset_id,
        )


@dataclass(frozen=True)
class TransferMeta:
    old_amount: int
    new_sender_amount: int
    new_sender_salt: Optional[int]


@dataclass(frozen=True)
class PrivateTransfer:
    """Consume one note, emit recipient and (optional) change commitments"""

    amount: int
    consumed: Note
    nullifier: bytes
    sender_new_commitment: bytes
    recipient_commitment: bytes
    new_salt_counter: int
    meta: TransferMeta
    secret: int = field(repr=False)
    recipient_secret: int = field(repr=False)

    kind = TransactionKind.PRIVATE_TRANSFER

    def __post_init__(self) -> None:
        _check_conservation(
            self.consumed.amount, self.amount + self.meta.new_sender_amount
        )

    def new_notes(self) -> tuple[Note, ...]:
        if self.meta.new_sender_salt is None:
            return ()
        return (
            Note(
                amount=self.meta.new_sender_amount,
                salt=self.meta.new_sender_salt,
                commitment=self.sender_new_commitment,
            ),
        )

    def public_inputs(self) -> PublicInputs:
        return PublicInputs(
            kind=self.kind,
            commitments=(self.sender_new_commitment, self.recipient_commitment),
            nullifier=self.nullifier,
        )

    def witness(self) -> Witness:
        change_salts = (
            (self.meta.new_sender_salt,) if self.meta.new_sender_salt is not None else (0,)
        )
        return Witness(
            public_inputs=self.public_inputs(),
            secret=self.secret,
            input_amounts=(self.consumed.amount,),
            input_salts=(self.consumed.salt,),
            output_amounts=(self.meta.new_sender_amount, self.amount),
            output_salts=change_salts + (0,),
            recipient_secret=self.recipient_secret,
        )


@dataclass(frozen=True)
class Unshield:
    """Consume one note, release a public amount, keep the rest as change"""

    amount: int
    consumed: Note
    nullifier: bytes
    change_commitment: bytes
    new_salt_counter: int
    meta: TransferMeta
    secret: int = field(repr=False)
    token: str = "SOL"
    asset_id: int = 0
    recipient: Optional[str] = None

    kind = TransactionKind.UNSHIELD

    def __post_init__(self) -> None:
        _check_conservation(
            self.consumed.amount, self.amount + self.meta.new_sender_amount
        )

    def new_notes(self) -> tuple[Note, ...]:
        if self.meta.new_sender_salt is None:
            return ()
        return (
            Note(
                amount=self.meta.new_sender_amount,
                salt=self.meta.new_sender_salt,
                commitment=self.change_commitment,
            ),
        )

    def public_inputs(self) -> PublicInputs:
        return PublicInputs(
            kind=self.kind,
            commitments=(self.change_commitment,),
            nullifier=self.nullifier,
            public_amount=self.amount,
            asset_id=self.asset_id,
        )

    def witness(self) -> Witness:
        change_salt = self.meta.new_sender_salt if self.meta.new_sender_salt is not None else 0
        return Witness(
            public_inputs=self.public_inputs(),
            secret=self.secret,
            input_amounts=(self.consumed.amount,),
            input_salts=(self.consumed.salt,),
            output_amounts=(self.meta.new_sender_amount,),
            output_salts=(change_salt,),
        )


Transaction = Union[Deposit, Shield, PrivateTransfer, Unshield]


# =========================================================================
# Ledger records
# =========================================================================


@dataclass(frozen=True)
class LedgerSubmission:
    """What the ledger sees: public inputs, proof and spend authorization"""

    public_inputs: PublicInputs
    proof: bytes
    authority: bytes
    authorization: bytes
    token: Optional[str] = None
    recipient: Optional[str] = None

    @property
    def kind(self) -> TransactionKind:
        return self.public_inputs.kind

    @property
    def commitments(self) -> tuple[bytes, ...]:
        return self.public_inputs.commitments

    @property
    def nullifier(self) -> Optional[bytes]:
        return self.public_inputs.nullifier

    @property
    def public_amount(self) -> Optional[int]:
        return self.public_inputs.public_amount


@dataclass(frozen=True)
class LedgerReceipt:
    status: LedgerStatus
    reference: str
    reason: Optional[str] = None


@dataclass
class PrivateTransaction:
    """Private transaction result"""

    signature: str
    status: TransactionStatus
    kind: TransactionKind
    commitments: list[str] = field(default_factory=list)
    nullifier: Optional[str] = None
    proof: Optional[bytes] = None
    public_amount: Optional[int] = None

    @classmethod
    def from_transaction(
        cls,
        tx: Transaction,
        reference: str,
        status: TransactionStatus,
        proof: Optional[Proof] = None,
    ) -> "PrivateTransaction":
        public = tx.public_inputs()
        return cls(
            signature=reference,
            status=status,
            kind=tx.kind,
            commitments=[c.hex() for c in public.commitments],
            nullifier=public.nullifier.hex() if public.nullifier else None,
            proof=proof.data if proof else None,
            public_amount=public.public_amount,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary"""
        return {
            "signature": self.signature,
            "status": self.status.value,
            "kind": self.kind.value,
            "commitments": list(self.commitments),
            "nullifier": self.nullifier,
            "proof": self.proof.hex() if self.proof else None,
            "public_amount": self.public_amount,
        }
