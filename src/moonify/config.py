"""
Wallet configuration

Defaults suit an interactive desktop wallet. ``WalletConfig.from_env`` reads
``MOONIFY_*`` variables, loading a ``.env`` file first when present.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv

DEFAULT_WALLET_PATH = Path.home() / ".moonify" / "wallet.enc"
DEFAULT_RPC_URL = "https://api.devnet.solana.com"
ENV_PREFIX = "MOONIFY_"


@dataclass(frozen=True)
class KdfParams:
    """Argon2id parameters (OWASP recommendation by default)"""

    time_cost: int = 3
    memory_cost: int = 65536  # KiB
    parallelism: int = 4


@dataclass(frozen=True)
class WalletConfig:
    wallet_path: Path = DEFAULT_WALLET_PATH
    min_password_length: int = 8
    kdf: KdfParams = field(default_factory=KdfParams)

    # Seconds
    proof_timeout: float = 120.0
    confirmation_timeout: float = 60.0
    poll_interval: float = 2.0

    verify_locally: bool = True

    rpc_url: str = DEFAULT_RPC_URL
    program_id: Optional[str] = None

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "WalletConfig":
        """
        Build a config from environment variables

        Args:
            env_file: Path of a .env file (searched upwards from cwd if None)
        """
        load_dotenv(env_file or find_dotenv(usecwd=True))

        def get(name: str) -> Optional[str]:
            return os.environ.get(ENV_PREFIX + name)

        defaults = cls()
        kdf = KdfParams(
            time_cost=_int(get("KDF_TIME_COST"), defaults.kdf.time_cost),
            memory_cost=_int(get("KDF_MEMORY_COST"), defaults.kdf.memory_cost),
            parallelism=_int(get("KDF_PARALLELISM"), defaults.kdf.parallelism),
        )
        wallet_path = get("WALLET_PATH")
        return cls(
            wallet_path=Path(wallet_path).expanduser() if wallet_path else defaults.wallet_path,
            min_password_length=_int(
                get("MIN_PASSWORD_LENGTH"), defaults.min_password_length
            ),
            kdf=kdf,
            proof_timeout=_float(get("PROOF_TIMEOUT"), defaults.proof_timeout),
            confirmation_timeout=_float(
                get("CONFIRMATION_TIMEOUT"), defaults.confirmation_timeout
            ),
            poll_interval=_float(get("POLL_INTERVAL"), defaults.poll_interval),
            verify_locally=_bool(get("VERIFY_LOCALLY"), defaults.verify_locally),
            rpc_url=get("RPC_URL") or defaults.rpc_url,
            program_id=get("PROGRAM_ID") or defaults.program_id,
        )


def _int(value: Optional[str], default: int) -> int:
    return int(value) if value else default


def _float(value: Optional[str], default: float) -> float:
    return float(value) if value else default


def _bool(value: Optional[str], default: bool) -> bool:
    if not value:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")
