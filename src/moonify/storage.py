"""
Wallet state serialization and crash-safe file replacement

The plaintext is JSON:
    {"version": 1, "spending_key": hex, "secret": hex, "salt_counter": int,
     "notes": [{"amount", "salt", "spent", "commitment"}, ...]}

Commitments are stored for diagnostics only; on load each one is recomputed
from (amount, secret, salt) and a mismatch rejects the whole file.

``salt_counter`` is the last salt assigned; every stored salt is at most it.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Union

from .errors import CorruptState, DuplicateSalt, StorageError, ValidationError
from .hashing import FIELD_BYTES, MAX_AMOUNT, bytes_to_element
from .notes import NoteStore
from .types import Note

logger = logging.getLogger(__name__)

STATE_VERSION = 1
SPENDING_KEY_SIZE = 64

PathLike = Union[str, Path]


@dataclass
class WalletRecord:
    """Decrypted wallet contents; secret buffers are mutable so they can be wiped"""

    spending_key: bytearray = field(repr=False)
    secret: bytearray = field(repr=False)
    # Last salt handed out (not the next free one); own notes start at 1
    salt_counter: int
    notes: NoteStore


def encode_state(
    spending_key: bytes,
    secret: bytes,
    salt_counter: int,
    notes: Iterable[Note],
) -> bytes:
    data = {
        "version": STATE_VERSION,
        "spending_key": bytes(spending_key).hex(),
        "secret": bytes(secret).hex(),
        "salt_counter": salt_counter,
        "notes": [note.to_dict() for note in notes],
    }
    return json.dumps(data, separators=(",", ":")).encode("utf-8")


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise CorruptState(message)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _hex_field(data: dict[str, Any], name: str, size: int) -> bytearray:
    value = data.get(name)
    _require(isinstance(value, str), f"Missing {name}")
    try:
        raw = bytearray.fromhex(value)
    except ValueError:
        raise CorruptState(f"Malformed {name}") from None
    _require(len(raw) == size, f"Malformed {name}")
    return raw


def decode_state(plaintext: bytes) -> WalletRecord:
    """
    Parse and verify decrypted wallet contents

    Raises:
        CorruptState: On any structural or integrity problem; nothing is
            partially returned
    """
    try:
        data = json.loads(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise CorruptState("Wallet contents are not valid JSON") from None

    _require(isinstance(data, dict), "Wallet contents must be an object")
    _require(data.get("version") == STATE_VERSION, "Unsupported wallet state version")

    spending_key = _hex_field(data, "spending_key", SPENDING_KEY_SIZE)
    secret = _hex_field(data, "secret", FIELD_BYTES)
    try:
        secret_element = bytes_to_element(bytes(secret))
    except ValidationError:
        raise CorruptState("Secret is not a field element") from None
    _require(secret_element != 0, "Secret is zero")

    salt_counter = data.get("salt_counter")
    _require(_is_int(salt_counter) and salt_counter >= 0, "Invalid salt counter")

    raw_notes = data.get("notes")
    _require(isinstance(raw_notes, list), "Missing notes")

    store = NoteStore()
    for entry in raw_notes:
        _require(isinstance(entry, dict), "Malformed note")
        amount, salt, spent = entry.get("amount"), entry.get("salt"), entry.get("spent")
        _require(_is_int(amount) and 0 <= amount <= MAX_AMOUNT, "Invalid note amount")
        _require(_is_int(salt) and 0 <= salt <= salt_counter, "Invalid note salt")
        _require(isinstance(spent, bool), "Invalid note status")

        note = Note.create(amount, secret_element, salt)
        stored = entry.get("commitment")
        _require(
            stored is None or stored == note.commitment.hex(),
            f"Commitment mismatch for note {salt}",
        )
        if spent:
            note = Note(amount=amount, salt=salt, commitment=note.commitment, spent=True)
        try:
            store.add_note(note)
        except DuplicateSalt:
            raise CorruptState(f"Duplicate salt {salt}") from None

    return WalletRecord(
        spending_key=spending_key,
        secret=secret,
        salt_counter=salt_counter,
        notes=store,
    )


def read_blob(path: PathLike) -> bytes:
    try:
        return Path(path).read_bytes()
    except FileNotFoundError:
        raise
    except OSError as e:
        raise StorageError(f"Cannot read wallet file: {e.strerror}") from e


def atomic_write(path: PathLike, data: bytes) -> None:
    """
    Replace ``path`` with ``data`` so a crash leaves either the old or the new
    file, never a partial one

    Raises:
        StorageError: If the file cannot be written; the previous file is kept
    """
    path = Path(path)
    temp_path = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        os.replace(temp_path, path)
    except OSError as e:
        try:
            os.remove(temp_path)
        except OSError:
            pass
        raise StorageError(f"Cannot write wallet file: {e.strerror or e}") from e

    # Persist the rename itself
    try:
        dir_fd = os.open(path.parent, os.O_RDONLY | os.O_DIRECTORY)
    except (OSError, AttributeError):
        return  # no directory fds on this platform
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)
    logger.debug("Wrote %d bytes to %s", len(data), path)


def remove(path: PathLike) -> None:
    try:
        Path(path).unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        raise StorageError(f"Cannot delete wallet file: {e.strerror}") from e
