"""
Asset identifiers for the public leg of shield/unshield

Deposits move the native asset; shield and unshield move a fungible token
identified by its mint. The ledger receives an 8-byte asset ID in the public
inputs so the pool can route the public amount to the right vault.
"""

import hashlib
from typing import Union

from solders.pubkey import Pubkey

from .errors import ValidationError
from .utils import validate_solana_address

# Native SOL
NATIVE_ASSET_ID = 0
NATIVE_TOKEN = "SOL"

# Token symbols accepted in place of mint addresses
COMMON_TOKENS = {
    "USDC": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
    "USDT": "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB",
    "SOL": NATIVE_TOKEN,
}


def resolve_token(token: str) -> str:
    """
    Map a symbol or mint address to the canonical token identifier

    Returns:
        "SOL" for the native asset, otherwise the base58 mint address

    Raises:
        ValidationError: If the value is neither a known symbol nor a mint
    """
    symbol = token.upper()
    if symbol in COMMON_TOKENS:
        return COMMON_TOKENS[symbol]
    if not validate_solana_address(token):
        raise ValidationError(
            f"Unknown token {token!r}: use a mint address or one of "
            f"{sorted(COMMON_TOKENS)}"
        )
    return token


class AssetRegistry:
    """Converts token identifiers to the asset IDs used in public inputs"""

    @staticmethod
    def get_asset_id(token: Union[str, Pubkey]) -> int:
        """
        Derive the 8-byte asset ID of a token

        Args:
            token: "SOL", a known symbol, or a mint address (Pubkey or string)

        Returns:
            0 for SOL, otherwise the first 8 bytes (little-endian) of
            sha256(mint)
        """
        if isinstance(token, Pubkey):
            mint = str(token)
        elif isinstance(token, str):
            mint = resolve_token(token)
        else:
            raise ValidationError(f"Invalid token type: {type(token).__name__}")

        if mint == NATIVE_TOKEN:
            return NATIVE_ASSET_ID

        digest = hashlib.sha256(mint.encode()).digest()
        return int.from_bytes(digest[:8], "little")

    @staticmethod
    def is_native(asset_id: int) -> bool:
        return asset_id == NATIVE_ASSET_ID
