"""
Wallet state machine

    UNINITIALIZED --create/import--> UNLOCKED <--unlock/lock--> LOCKED

Secrets of an unlocked wallet live in an ``UnlockedSession`` whose ``close``
zeroes every secret buffer. ``Wallet.unlocked`` scopes a session so it is
closed on every exit path.

All state transitions run under one re-entrant lock held for the whole
read-modify-persist sequence. Proof generation and ledger round trips happen
outside the lock; only the final apply-and-persist step takes it.
"""

import logging
import secrets
import threading
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional, Union

from solders.keypair import Keypair

from . import crypto, storage
from .builder import WalletSnapshot
from .config import WalletConfig
from .crypto import StorageKey
from .errors import (
    CorruptState,
    InvariantViolation,
    WalletStateError,
)
from .hashing import FIELD_MODULUS, element_to_bytes
from .notes import NoteStore
from .storage import WalletRecord
from .types import Deposit, NoteSummary, PrivateTransfer, Transaction, Unshield
from .utils import wipe

logger = logging.getLogger(__name__)


class WalletState(Enum):
    UNINITIALIZED = "uninitialized"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class UnlockedSession:
    """
    Secret material and note store of an unlocked wallet

    Secrets are held in bytearrays and zeroed by ``close``. Values derived
    from them (ints handed to the builder, hex in the serialized state) are
    immutable Python objects and are not covered.
    """

    def __init__(self, record: WalletRecord, storage_key: StorageKey):
        self._spending_key = record.spending_key
        self._secret = record.secret
        self.salt_counter = record.salt_counter
        self.notes = record.notes
        self.storage_key = storage_key
        self.closed = False

    def _check_open(self) -> None:
        if self.closed:
            raise WalletStateError("Session is closed")

    @property
    def secret(self) -> int:
        self._check_open()
        return int.from_bytes(self._secret, "big")

    def public_key(self) -> bytes:
        self._check_open()
        return bytes(self._spending_key[32:])

    def sign(self, message: bytes) -> bytes:
        """Ed25519 signature with the spending key"""
        self._check_open()
        keypair = Keypair.from_bytes(bytes(self._spending_key))
        return bytes(keypair.sign_message(message))

    def snapshot(self) -> WalletSnapshot:
        self._check_open()
        return WalletSnapshot(
            secret=self.secret,
            salt_counter=self.salt_counter,
            notes=tuple(self.notes),
            selector=self.notes.selector,
        )

    def serialize(self) -> bytes:
        self._check_open()
        return storage.encode_state(
            self._spending_key, self._secret, self.salt_counter, self.notes
        )

    def checkpoint(self) -> tuple[int, NoteStore]:
        return self.salt_counter, self.notes.snapshot()

    def restore(self, checkpoint: tuple[int, NoteStore]) -> None:
        self.salt_counter, self.notes = checkpoint

    def apply(self, tx: Transaction) -> None:
        """
        Mutate the note store for a confirmed transaction

        Raises:
            DoubleSpendLocal: If the consumed note is already spent
            DuplicateSalt: If a new note reuses an assigned salt
            InvariantViolation: If the transaction belongs to another wallet
        """
        self._check_open()
        if tx.secret != self.secret:
            raise InvariantViolation("Transaction was built for a different wallet")

        if isinstance(tx, (PrivateTransfer, Unshield)):
            self.notes.mark_spent(tx.consumed)
        elif not isinstance(tx, Deposit):
            raise TypeError(f"Unknown transaction type {type(tx).__name__}")

        # Salts reserved by a still-pending submission may sit below the counter
        for note in tx.new_notes():
            self.notes.add_note(note)
        self.salt_counter = max(self.salt_counter, tx.new_salt_counter)

    def close(self) -> None:
        wipe(self._spending_key)
        wipe(self._secret)
        self.storage_key.wipe()
        self.closed = True


class Wallet:
    """
    Encrypted, persistent private-note wallet

    Example:
        ```python
        wallet = Wallet("~/.moonify/wallet.enc")
        with wallet.unlocked("correct horse battery") as w:
            print(w.available_balance())
        ```
    """

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        config: Optional[WalletConfig] = None,
    ):
        self.config = config or WalletConfig()
        self.path = Path(path).expanduser() if path else self.config.wallet_path
        self._session: Optional[UnlockedSession] = None
        self._lock = threading.RLock()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def state(self) -> WalletState:
        with self._lock:
            if self._session is not None:
                return WalletState.UNLOCKED
            if self.path.exists():
                return WalletState.LOCKED
            return WalletState.UNINITIALIZED

    def create(self, password: str) -> None:
        """
        Create a new wallet and persist it

        Raises:
            WeakPassword: If the password is too short (nothing is written)
            WalletStateError: If a wallet already exists at the path
        """
        crypto.check_password(password, self.config.min_password_length)
        with self._lock:
            self._require_state(WalletState.UNINITIALIZED)

            keypair = Keypair()
            secret = secrets.randbelow(FIELD_MODULUS - 1) + 1
            record = WalletRecord(
                spending_key=bytearray(bytes(keypair)),
                secret=bytearray(element_to_bytes(secret)),
                salt_counter=0,
                notes=NoteStore(),
            )
            session = UnlockedSession(
                record, StorageKey.from_password(password, self.config.kdf)
            )
            try:
                self._persist(session)
            except Exception:
                session.close()
                raise

            self._session = session
            logger.info("Wallet created at %s", self.path)

    def unlock(self, password: str) -> None:
        """
        Decrypt the stored wallet

        Raises:
            AuthenticationFailed: Wrong password or tampered file
            CorruptState: Truncated file or invalid contents
            WalletStateError: If there is no wallet or it is already unlocked
        """
        with self._lock:
            self._require_state(WalletState.LOCKED)
            blob = storage.read_blob(self.path)
            self._session = self._open(blob, password)
            logger.info("Wallet unlocked (%d notes)", len(self._session.notes))

    def lock(self) -> None:
        """Wipe secrets from memory; no-op if already locked"""
        with self._lock:
            if self._session is None:
                return
            self._session.close()
            self._session = None
            logger.info("Wallet locked")

    @contextmanager
    def unlocked(self, password: str) -> Iterator["Wallet"]:
        """Unlock for the duration of a ``with`` block"""
        self.unlock(password)
        try:
            yield self
        finally:
            self.lock()

    def change_password(self, old_password: str, new_password: str) -> None:
        crypto.check_password(new_password, self.config.min_password_length)
        with self._lock:
            session = self._require_session()
            # Verifies the old password against the file on disk
            _, old_key = crypto.decrypt(storage.read_blob(self.path), old_password)
            old_key.wipe()

            new_key = StorageKey.from_password(new_password, self.config.kdf)
            previous_key = session.storage_key
            session.storage_key = new_key
            try:
                self._persist(session)
            except Exception:
                session.storage_key = previous_key
                new_key.wipe()
                raise
            previous_key.wipe()
            logger.info("Wallet password changed")

    def delete(self) -> None:
        """Destroy the wallet file; only allowed while unlocked"""
        with self._lock:
            self._require_session()
            storage.remove(self.path)
            self.lock()
            logger.info("Wallet deleted from %s", self.path)

    # =========================================================================
    # Export / import
    # =========================================================================

    def export(self) -> bytes:
        """Return the encrypted wallet blob for backup"""
        with self._lock:
            if self.state is WalletState.UNINITIALIZED:
                raise WalletStateError("No wallet to export")
            return storage.read_blob(self.path)

    def import_blob(self, blob: bytes, password: str) -> None:
        """
        Install an exported blob as this wallet and unlock it

        The blob is fully decrypted and validated before anything is written.
        """
        with self._lock:
            self._require_state(WalletState.UNINITIALIZED)
            session = self._open(blob, password)
            try:
                storage.atomic_write(self.path, blob)
            except Exception:
                session.close()
                raise
            self._session = session
            logger.info("Wallet imported to %s", self.path)

    # =========================================================================
    # Confirmed mutations
    # =========================================================================

    def apply_confirmed_transaction(self, tx: Transaction) -> None:
        """
        Apply a ledger-accepted transaction and persist before returning

        If the mutation or the write fails, memory is rolled back to the
        previous state so it keeps matching the file on disk.
        """
        with self._lock:
            session = self._require_session()
            checkpoint = session.checkpoint()
            try:
                session.apply(tx)
                self._persist(session)
            except Exception:
                session.restore(checkpoint)
                raise
            logger.info(
                "Applied %s; balance %d", tx.kind.value, session.notes.available_balance()
            )

    # =========================================================================
    # Queries
    # =========================================================================

    def snapshot(self) -> WalletSnapshot:
        """Immutable state for the transaction builder"""
        with self._lock:
            return self._require_session().snapshot()

    def available_balance(self) -> int:
        with self._lock:
            return self._require_session().notes.available_balance()

    def note_summary(self) -> list[NoteSummary]:
        with self._lock:
            return self._require_session().notes.summary()

    def public_key(self) -> bytes:
        with self._lock:
            return self._require_session().public_key()

    def sign(self, message: bytes) -> bytes:
        with self._lock:
            return self._require_session().sign(message)

    # =========================================================================
    # Internals
    # =========================================================================

    def _require_state(self, expected: WalletState) -> None:
        state = self.state
        if state is not expected:
            raise WalletStateError(
                f"Wallet is {state.value}, expected {expected.value}"
            )

    def _require_session(self) -> UnlockedSession:
        if self._session is None:
            raise WalletStateError("Wallet is locked")
        return self._session

    def _open(self, blob: bytes, password: str) -> UnlockedSession:
        plaintext, key = crypto.decrypt(blob, password)
        try:
            record = storage.decode_state(plaintext)
        except CorruptState:
            key.wipe()
            raise
        try:
            Keypair.from_bytes(bytes(record.spending_key))
        except ValueError:
            key.wipe()
            wipe(record.spending_key)
            wipe(record.secret)
            raise CorruptState("Invalid spending key") from None
        return UnlockedSession(record, key)

    def _persist(self, session: UnlockedSession) -> None:
        blob = session.storage_key.encrypt(session.serialize())
        storage.atomic_write(self.path, blob)
        logger.debug("Wallet saved to %s", self.path)
