"""
Commitment and nullifier primitive

Both values are Poseidon hashes over the BN254 scalar field, the native field
of Noir/Barretenberg and Circom circuits, so the same computation is cheap to
prove in zero knowledge. Every input is encoded as a field element; a leading
domain tag keeps commitments and nullifiers in disjoint input spaces.
"""

import threading
from functools import lru_cache
from typing import Iterable, Union

import poseidon

from .errors import ValidationError

# BN254 scalar field order
FIELD_MODULUS = (
    21888242871839275222246405745257275088548364400416034343698204186575808495617
)

FIELD_BYTES = 32

# Canonical "no output" value for spends without change
NULL_COMMITMENT = bytes(FIELD_BYTES)

# Amounts are u64 on the ledger side
MAX_AMOUNT = 2**64 - 1

# Permutation parameters: width 5 fits tag + three inputs in one call
POSEIDON_WIDTH = 5
POSEIDON_RATE = 4
POSEIDON_ALPHA = 5
SECURITY_LEVEL = 128


def _tag(label: bytes) -> int:
    return int.from_bytes(label, "big")


TAG_COMMIT = _tag(b"moonify.note.commitment")
TAG_NULLIFY = _tag(b"moonify.note.nullifier")

SecretLike = Union[int, bytes, bytearray, str]

# run_hash stores its working state on the instance
_hash_lock = threading.Lock()


@lru_cache(maxsize=None)
def _permutation() -> "poseidon.Poseidon":
    return poseidon.Poseidon(
        p=FIELD_MODULUS,
        security_level=SECURITY_LEVEL,
        alpha=POSEIDON_ALPHA,
        input_rate=POSEIDON_RATE,
        t=POSEIDON_WIDTH,
    )


def to_field_element(value: SecretLike) -> int:
    """
    Encode a value as a canonical field element

    Integers are taken as-is. Byte strings are read big-endian. Strings
    prefixed with ``0x`` are hex; any other string is its UTF-8 bytes.

    Raises:
        ValidationError: If the value is empty, negative, wider than 32 bytes
            or not below the field modulus
    """
    if isinstance(value, bool):
        raise ValidationError("Booleans are not field elements")

    if isinstance(value, int):
        element = value
    else:
        if isinstance(value, str):
            if value.startswith("0x"):
                try:
                    raw = bytes.fromhex(value[2:])
                except ValueError:
                    raise ValidationError("Malformed hex string") from None
            else:
                raw = value.encode("utf-8")
        elif isinstance(value, (bytes, bytearray)):
            raw = bytes(value)
        else:
            raise ValidationError(f"Cannot encode {type(value).__name__} as a field element")

        if not raw:
            raise ValidationError("Empty value")
        if len(raw) > FIELD_BYTES:
            raise ValidationError(f"Value wider than {FIELD_BYTES} bytes")
        element = int.from_bytes(raw, "big")

    if element < 0 or element >= FIELD_MODULUS:
        raise ValidationError("Value outside the field")
    return element


def element_to_bytes(element: int) -> bytes:
    """Serialize a field element as 32 big-endian bytes"""
    return element.to_bytes(FIELD_BYTES, "big")


def bytes_to_element(data: bytes) -> int:
    """Parse a 32-byte canonical field element"""
    if len(data) != FIELD_BYTES:
        raise ValidationError(f"Expected {FIELD_BYTES} bytes, got {len(data)}")
    element = int.from_bytes(data, "big")
    if element >= FIELD_MODULUS:
        raise ValidationError("Non-canonical field element")
    return element


def poseidon_hash(elements: Iterable[int]) -> int:
    """Hash up to four field elements"""
    inputs = [int(e) for e in elements]
    if len(inputs) > POSEIDON_RATE:
        raise ValueError(f"At most {POSEIDON_RATE} inputs per call")
    for element in inputs:
        if element < 0 or element >= FIELD_MODULUS:
            raise ValueError("Input outside the field")

    with _hash_lock:
        digest = _permutation().run_hash(inputs)
    return int(digest)


def _check_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("Amount must be an integer")
    if amount < 0 or amount > MAX_AMOUNT:
        raise ValidationError(f"Amount must be between 0 and {MAX_AMOUNT}")
    return amount


def _check_salt(salt: int) -> int:
    if isinstance(salt, bool) or not isinstance(salt, int):
        raise ValidationError("Salt must be an integer")
    return to_field_element(salt)


def commit(amount: int, secret: SecretLike, salt: int) -> bytes:
    """
    Compute a note commitment: Poseidon(TAG_COMMIT, amount, secret, salt)

    Args:
        amount: Note value
        secret: Owner secret
        salt: Per-note nonce

    Returns:
        32-byte commitment
    """
    digest = poseidon_hash(
        [TAG_COMMIT, _check_amount(amount), to_field_element(secret), _check_salt(salt)]
    )
    return element_to_bytes(digest)


def nullify(secret: SecretLike, salt: int) -> bytes:
    """
    Compute a note nullifier: Poseidon(TAG_NULLIFY, secret, salt)

    Args:
        secret: Owner secret
        salt: Salt of the note being spent

    Returns:
        32-byte nullifier
    """
    digest = poseidon_hash([TAG_NULLIFY, to_field_element(secret), _check_salt(salt)])
    return element_to_bytes(digest)
