"""Test wallet blob encryption"""

from unittest.mock import patch

import pytest

from moonify import crypto
from moonify.config import KdfParams
from moonify.crypto import (
    _PARAMS,
    HEADER_SIZE,
    MAGIC,
    StorageKey,
    check_password,
    decrypt,
    encrypt,
    params_in_range,
    parse_header,
)
from moonify.errors import AuthenticationFailed, CorruptState, WeakPassword

FAST_KDF = KdfParams(time_cost=1, memory_cost=64, parallelism=1)
PASSWORD = "correct horse battery"


class TestEncryption:
    """Test AES-GCM under an Argon2id key"""

    def test_roundtrip(self):
        blob, key = encrypt(b"wallet state", PASSWORD, FAST_KDF)
        plaintext, _ = decrypt(blob, PASSWORD)
        assert plaintext == b"wallet state"
        assert blob.startswith(MAGIC)

    def test_ciphertext_hides_plaintext(self):
        blob, _ = encrypt(b"very secret wallet state", PASSWORD, FAST_KDF)
        assert b"very secret" not in blob

    def test_fresh_nonce_per_encryption(self):
        """Re-encrypting the same state never repeats the blob"""
        blob, key = encrypt(b"state", PASSWORD, FAST_KDF)
        again = key.encrypt(b"state")
        assert blob != again
        assert decrypt(again, PASSWORD)[0] == b"state"

    def test_wrong_password(self):
        blob, _ = encrypt(b"state", PASSWORD, FAST_KDF)
        with pytest.raises(AuthenticationFailed) as exc_info:
            decrypt(blob, "wrong password")
        assert PASSWORD not in str(exc_info.value)

    def test_tampered_ciphertext(self):
        """Flipping a ciphertext bit fails like a wrong password"""
        blob, _ = encrypt(b"state", PASSWORD, FAST_KDF)
        tampered = bytearray(blob)
        tampered[HEADER_SIZE] ^= 0x01
        with pytest.raises(AuthenticationFailed):
            decrypt(bytes(tampered), PASSWORD)

    def test_tampered_header(self):
        """Header bytes are authenticated"""
        blob, _ = encrypt(b"state", PASSWORD, FAST_KDF)
        tampered = bytearray(blob)
        tampered[HEADER_SIZE - 1] ^= 0x01  # last nonce byte
        with pytest.raises(AuthenticationFailed):
            decrypt(bytes(tampered), PASSWORD)

    def test_out_of_range_kdf_params(self):
        """Corrupt KDF parameters cost a full derivation and fail like a wrong password"""
        blob, _ = encrypt(b"state", PASSWORD, FAST_KDF)
        tampered = bytearray(blob)
        tampered[_PARAMS.size - 1] = 0  # parallelism
        assert not params_in_range(parse_header(bytes(tampered)).params)

        with patch.object(crypto, "hash_secret_raw", wraps=crypto.hash_secret_raw) as kdf:
            with pytest.raises(AuthenticationFailed):
                decrypt(bytes(tampered), PASSWORD)
        assert kdf.call_count == 1
        assert kdf.call_args.kwargs["memory_cost"] == KdfParams().memory_cost

    def test_unsupported_version(self):
        blob, _ = encrypt(b"state", PASSWORD, FAST_KDF)
        tampered = bytearray(blob)
        tampered[len(MAGIC)] = 99
        with pytest.raises(CorruptState, match="version"):
            decrypt(bytes(tampered), PASSWORD)

    def test_truncated(self):
        blob, _ = encrypt(b"state", PASSWORD, FAST_KDF)
        with pytest.raises(CorruptState, match="truncated"):
            decrypt(blob[:HEADER_SIZE], PASSWORD)

    def test_foreign_file(self):
        with pytest.raises(CorruptState):
            decrypt(b"PK\x03\x04" + bytes(100), PASSWORD)

    def test_header_params(self):
        blob, _ = encrypt(b"state", PASSWORD, FAST_KDF)
        header = parse_header(blob)
        assert header.params.time_cost == 1
        assert header.params.memory_cost == 64
        assert header.params == FAST_KDF
        assert len(header.kdf_salt) == 32

    def test_wiped_key_refuses(self):
        key = StorageKey.from_password(PASSWORD, FAST_KDF)
        key.wipe()
        assert key.wiped
        with pytest.raises(RuntimeError):
            key.encrypt(b"state")


class TestPasswordPolicy:
    """Test minimum password length"""

    def test_short_password(self):
        with pytest.raises(WeakPassword):
            check_password("short12", 8)

    def test_minimum_length_accepted(self):
        check_password("12345678", 8)
