"""Utility functions"""

import secrets

import base58

from .hashing import FIELD_BYTES, FIELD_MODULUS, element_to_bytes


def generate_secret() -> str:
    """
    Generate a random non-zero field element usable as a note secret

    Returns:
        0x-prefixed, 32-byte hex string
    """
    element = secrets.randbelow(FIELD_MODULUS - 1) + 1
    return "0x" + element_to_bytes(element).hex()


def commitment_to_hex(commitment: bytes) -> str:
    """
    Convert commitment bytes to hex string

    Args:
        commitment: Commitment bytes

    Returns:
        Hex string
    """
    return commitment.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """
    Convert hex string to bytes

    Args:
        hex_str: Hex string (with or without 0x prefix)

    Returns:
        Bytes
    """
    if hex_str.startswith("0x"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


def short_hex(data: bytes, length: int = 8) -> str:
    """Abbreviated hex for log lines"""
    return data.hex()[:length] + "..."


def validate_solana_address(address: str) -> bool:
    """
    Validate Solana address

    Args:
        address: Base58-encoded Solana address

    Returns:
        True if valid
    """
    if not address:
        return False
    try:
        decoded = base58.b58decode(address)
    except ValueError:
        return False
    return len(decoded) == FIELD_BYTES


def wipe(buffer: bytearray) -> None:
    """Overwrite a mutable secret buffer with zeros in place"""
    buffer[:] = bytes(len(buffer))
