"""
Wallet blob encryption

AES-256-GCM under a key derived from the password with Argon2id.

Blob layout:
    magic (4) || version (1) || time_cost (4) || memory_cost (4) ||
    parallelism (1) || kdf_salt (32) || nonce (12) || ciphertext || tag (16)

Everything before the ciphertext is authenticated as associated data, so
KDF parameters cannot be downgraded without failing decryption.
"""

import logging
import secrets
import struct
from dataclasses import dataclass
from typing import Optional

from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .config import KdfParams
from .errors import AuthenticationFailed, CorruptState, WeakPassword
from .utils import wipe

logger = logging.getLogger(__name__)

MAGIC = b"MNFY"
FORMAT_VERSION = 1
KDF_SALT_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32

_PARAMS = struct.Struct(">4sBIIB")
HEADER_SIZE = _PARAMS.size + KDF_SALT_SIZE + NONCE_SIZE

# Upper bound accepted from a file header (4 GiB), keeps a forged header from
# requesting an arbitrary allocation
MAX_MEMORY_COST = 4 * 1024 * 1024


def check_password(password: str, min_length: int) -> None:
    """
    Enforce the password policy

    Raises:
        WeakPassword: If the password is shorter than ``min_length``
    """
    if not isinstance(password, str) or len(password) < min_length:
        raise WeakPassword(
            f"Password must be at least {min_length} characters. "
            "Weak passwords put your funds at risk of theft."
        )


def derive_key(password: str, salt: bytes, params: KdfParams) -> bytearray:
    """Argon2id key derivation; returns a wipeable buffer"""
    key = hash_secret_raw(
        secret=password.encode("utf-8"),
        salt=salt,
        time_cost=params.time_cost,
        memory_cost=params.memory_cost,
        parallelism=params.parallelism,
        hash_len=KEY_SIZE,
        type=Type.ID,
    )
    return bytearray(key)


class StorageKey:
    """
    Derived encryption key for one wallet file

    Kept by an unlocked session so that every persist re-encrypts under a
    fresh nonce without re-running the KDF. ``wipe`` zeroes the key.
    """

    def __init__(self, key: bytearray, kdf_salt: bytes, params: KdfParams):
        self._key = key
        self.kdf_salt = kdf_salt
        self.params = params

    @classmethod
    def from_password(
        cls,
        password: str,
        params: KdfParams,
        kdf_salt: Optional[bytes] = None,
    ) -> "StorageKey":
        kdf_salt = kdf_salt or secrets.token_bytes(KDF_SALT_SIZE)
        return cls(derive_key(password, kdf_salt, params), kdf_salt, params)

    @property
    def wiped(self) -> bool:
        return not any(self._key)

    def header(self, nonce: bytes) -> bytes:
        return (
            _PARAMS.pack(
                MAGIC,
                FORMAT_VERSION,
                self.params.time_cost,
                self.params.memory_cost,
                self.params.parallelism,
            )
            + self.kdf_salt
            + nonce
        )

    def encrypt(self, plaintext: bytes) -> bytes:
        if self.wiped:
            raise RuntimeError("Storage key has been wiped")
        nonce = secrets.token_bytes(NONCE_SIZE)
        header = self.header(nonce)
        ciphertext = self._cipher().encrypt(nonce, plaintext, header)
        return header + ciphertext

    def _cipher(self) -> AESGCM:
        return AESGCM(bytes(self._key))

    def wipe(self) -> None:
        wipe(self._key)


@dataclass(frozen=True)
class BlobHeader:
    params: KdfParams
    kdf_salt: bytes
    nonce: bytes
    raw: bytes


def parse_header(blob: bytes) -> BlobHeader:
    """
    Split a blob header

    KDF parameters are returned unchecked; see ``params_in_range``.

    Raises:
        CorruptState: If the blob is truncated, not a wallet file, or of an
            unsupported format version
    """
    if len(blob) < HEADER_SIZE + TAG_SIZE:
        raise CorruptState("Wallet file is truncated")

    magic, version, time_cost, memory_cost, parallelism = _PARAMS.unpack_from(blob)
    if magic != MAGIC:
        raise CorruptState("Not a Moonify wallet file")
    if version != FORMAT_VERSION:
        raise CorruptState(f"Unsupported wallet format version {version}")
    offset = _PARAMS.size
    kdf_salt = blob[offset:offset + KDF_SALT_SIZE]
    offset += KDF_SALT_SIZE
    nonce = blob[offset:offset + NONCE_SIZE]

    return BlobHeader(
        params=KdfParams(
            time_cost=time_cost, memory_cost=memory_cost, parallelism=parallelism
        ),
        kdf_salt=kdf_salt,
        nonce=nonce,
        raw=blob[:HEADER_SIZE],
    )


def params_in_range(params: KdfParams) -> bool:
    """Whether header KDF parameters are safe to run"""
    return (
        params.time_cost >= 1
        and params.parallelism >= 1
        and 8 * params.parallelism <= params.memory_cost <= MAX_MEMORY_COST
    )


def encrypt(plaintext: bytes, password: str, params: KdfParams) -> tuple[bytes, StorageKey]:
    """
    Encrypt with a freshly derived key

    Returns:
        (blob, key) where key can re-encrypt later states of the same wallet
    """
    key = StorageKey.from_password(password, params)
    return key.encrypt(plaintext), key


def decrypt(blob: bytes, password: str) -> tuple[bytes, StorageKey]:
    """
    Decrypt a wallet blob

    Wrong passwords, modified ciphertext and out-of-range KDF parameters
    all run a full KDF and raise the same error.

    Returns:
        (plaintext, key) where key re-encrypts under the same KDF salt

    Raises:
        CorruptState: If the blob is truncated, foreign or of another version
        AuthenticationFailed: If the tag does not verify
    """
    header = parse_header(blob)
    if not params_in_range(header.params):
        # Same cost and error as a wrong password
        wipe(derive_key(password, header.kdf_salt, KdfParams()))
        logger.debug("Wallet blob has invalid key derivation parameters")
        raise AuthenticationFailed()
    key = StorageKey.from_password(password, header.params, header.kdf_salt)
    try:
        plaintext = key._cipher().decrypt(
            header.nonce, blob[HEADER_SIZE:], header.raw
        )
    except InvalidTag:
        key.wipe()
        logger.debug("Wallet blob failed authentication")
        raise AuthenticationFailed() from None
    return plaintext, key
