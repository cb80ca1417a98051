"""
Transaction builder

Pure functions turning an intent plus a wallet snapshot into a transaction
record. Nothing here performs I/O or mutates its inputs; the wallet applies
the resulting record only after the ledger accepts it.

Salt allocation: the snapshot's ``salt_counter`` is the last salt handed
out. A new own note takes ``salt_counter + 1``, so a fresh wallet (counter 0)
never assigns salt 0, which is reserved for notes received from others.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Union

from .assets import NATIVE_TOKEN, AssetRegistry, resolve_token
from .errors import InvalidRecipient, ValidationError
from .hashing import NULL_COMMITMENT, commit, nullify, to_field_element
from .notes import NoteSelector, NoteStore
from .types import (
    Deposit,
    Note,
    PrivateTransfer,
    Shield,
    TransferMeta,
    Unshield,
    validate_amount,
)
from .utils import short_hex, validate_solana_address

logger = logging.getLogger(__name__)

# Salt used for commitments created for a recipient
RECIPIENT_SALT = 0


@dataclass(frozen=True)
class WalletSnapshot:
    """Immutable view of the wallet state a transaction is built against"""

    secret: int = field(repr=False)
    salt_counter: int
    notes: tuple[Note, ...] = ()
    selector: Optional[NoteSelector] = field(default=None, repr=False, compare=False)

    def note_store(self) -> NoteStore:
        return NoteStore(self.notes, selector=self.selector)

    @property
    def available_balance(self) -> int:
        return sum(note.amount for note in self.notes if not note.spent)


def parse_recipient_secret(recipient_secret: Union[int, bytes, str]) -> int:
    """
    Validate and encode a recipient secret

    Raises:
        InvalidRecipient: If the secret is empty, zero or not a field element
    """
    if recipient_secret is None or recipient_secret in ("", b""):
        raise InvalidRecipient("Recipient secret is empty")
    try:
        element = to_field_element(recipient_secret)
    except ValidationError as e:
        raise InvalidRecipient(f"Malformed recipient secret: {e}") from None
    if element == 0:
        raise InvalidRecipient("Recipient secret must be non-zero")
    return element


def _spend_one(snapshot: WalletSnapshot, amount: int):
    """Select a note and compute nullifier plus change output"""
    note = snapshot.note_store().select_spendable(amount)
    nullifier = nullify(snapshot.secret, note.salt)
    change = note.amount - amount

    counter = snapshot.salt_counter
    if change > 0:
        counter += 1
        change_salt: Optional[int] = counter
        change_commitment = commit(change, snapshot.secret, counter)
    else:
        change_salt = None
        change_commitment = NULL_COMMITMENT

    meta = TransferMeta(
        old_amount=note.amount,
        new_sender_amount=change,
        new_sender_salt=change_salt,
    )
    return note, nullifier, change_commitment, counter, meta


def build_deposit(snapshot: WalletSnapshot, amount: int) -> Deposit:
    """
    Build a native-asset deposit

    Args:
        snapshot: Wallet snapshot
        amount: Public amount moved into the pool

    Returns:
        Deposit with one commitment and no nullifier
    """
    validate_amount(amount)
    salt = snapshot.salt_counter + 1
    commitment = commit(amount, snapshot.secret, salt)
    logger.debug("Built deposit of %d, commitment %s", amount, short_hex(commitment))
    return Deposit(
        amount=amount,
        salt=salt,
        commitment=commitment,
        new_salt_counter=salt,
        secret=snapshot.secret,
    )


def build_shield(
    snapshot: WalletSnapshot, amount: int, token: str = NATIVE_TOKEN
) -> Shield:
    """
    Build a shield of public tokens into a private note

    Args:
        snapshot: Wallet snapshot
        amount: Token amount
        token: Token symbol or mint address
    """
    validate_amount(amount)
    token = resolve_token(token)
    salt = snapshot.salt_counter + 1
    commitment = commit(amount, snapshot.secret, salt)
    logger.debug("Built shield of %d %s", amount, token)
    return Shield(
        amount=amount,
        salt=salt,
        commitment=commitment,
        new_salt_counter=salt,
        secret=snapshot.secret,
        token=token,
        asset_id=AssetRegistry.get_asset_id(token),
    )


def build_private_transfer(
    snapshot: WalletSnapshot,
    amount: int,
    recipient_secret: Union[int, bytes, str],
) -> PrivateTransfer:
    """
    Build a private transfer consuming a single note

    The recipient commitment uses salt 0; the recipient re-salts the note
    when they next spend it into their own wallet.

    Raises:
        ValidationError: If the amount is not positive
        InvalidRecipient: If the recipient secret is malformed
        InsufficientFunds: If no single unspent note covers the amount
    """
    validate_amount(amount)
    recipient = parse_recipient_secret(recipient_secret)
    note, nullifier, change_commitment, counter, meta = _spend_one(snapshot, amount)

    recipient_commitment = commit(amount, recipient, RECIPIENT_SALT)
    logger.debug(
        "Built transfer of %d from note %d, nullifier %s",
        amount,
        note.salt,
        short_hex(nullifier),
    )
    return PrivateTransfer(
        amount=amount,
        consumed=note,
        nullifier=nullifier,
        sender_new_commitment=change_commitment,
        recipient_commitment=recipient_commitment,
        new_salt_counter=counter,
        meta=meta,
        secret=snapshot.secret,
        recipient_secret=recipient,
    )


def build_unshield(
    snapshot: WalletSnapshot,
    amount: int,
    token: str = NATIVE_TOKEN,
    recipient: Optional[str] = None,
) -> Unshield:
    """
    Build an unshield releasing ``amount`` to a public account

    Args:
        snapshot: Wallet snapshot
        amount: Public amount released
        token: Token symbol or mint address
        recipient: Destination address (optional; ledger default otherwise)
    """
    validate_amount(amount)
    token = resolve_token(token)
    if recipient is not None and not validate_solana_address(recipient):
        raise ValidationError("Invalid destination address")

    note, nullifier, change_commitment, counter, meta = _spend_one(snapshot, amount)
    logger.debug("Built unshield of %d %s from note %d", amount, token, note.salt)
    return Unshield(
        amount=amount,
        consumed=note,
        nullifier=nullifier,
        change_commitment=change_commitment,
        new_salt_counter=counter,
        meta=meta,
        secret=snapshot.secret,
        token=token,
        asset_id=AssetRegistry.get_asset_id(token),
        recipient=recipient,
    )
