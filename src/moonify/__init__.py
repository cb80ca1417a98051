"""
Moonify - Private-balance wallet for a shielded-value pool

Notes are Poseidon commitments over the BN254 field, spent by revealing
nullifiers. Wallet state is kept encrypted on disk and only changes after the
ledger accepts a transaction.
"""

__version__ = "0.1.0"

# Export main API
from .client import PrivacyClient
from .config import KdfParams, WalletConfig
from .errors import (
    AuthenticationFailed,
    CorruptState,
    InsufficientFunds,
    InvalidRecipient,
    LedgerPending,
    LedgerRejected,
    MoonifyError,
    ProofTimeout,
    ValidationError,
    WalletStateError,
    WeakPassword,
)
from .hashing import NULL_COMMITMENT, commit, nullify
from .ledger import InMemoryLedger, Ledger, SolanaLedger
from .prover import ProofGateway, SignatureProver, SubprocessProver
from .types import (
    Note,
    NoteSummary,
    PrivateTransaction,
    TransactionKind,
    TransactionStatus,
)
from .utils import commitment_to_hex, generate_secret
from .wallet import Wallet, WalletState

__all__ = [
    # Main client
    "PrivacyClient",
    "Wallet",
    "WalletState",
    "WalletConfig",
    "KdfParams",
    # Gateways
    "ProofGateway",
    "SignatureProver",
    "SubprocessProver",
    "Ledger",
    "InMemoryLedger",
    "SolanaLedger",
    # Primitive
    "commit",
    "nullify",
    "NULL_COMMITMENT",
    # Types
    "Note",
    "NoteSummary",
    "PrivateTransaction",
    "TransactionKind",
    "TransactionStatus",
    # Errors
    "MoonifyError",
    "ValidationError",
    "WeakPassword",
    "InvalidRecipient",
    "InsufficientFunds",
    "WalletStateError",
    "AuthenticationFailed",
    "CorruptState",
    "ProofTimeout",
    "LedgerRejected",
    "LedgerPending",
    # Utilities
    "generate_secret",
    "commitment_to_hex",
    # Module info
    "__version__",
]
