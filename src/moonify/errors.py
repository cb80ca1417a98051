"""Exception hierarchy for Moonify

Messages never carry secret material; callers may show them to users.
"""

from typing import Optional


class MoonifyError(Exception):
    """Base class for all wallet errors"""


# =========================================================================
# Caller errors (recoverable by re-prompting)
# =========================================================================


class ValidationError(MoonifyError, ValueError):
    """Malformed amount, secret, recipient or password"""


class WeakPassword(ValidationError):
    """Password does not meet the minimum length policy"""


class InvalidRecipient(ValidationError):
    """Recipient secret is empty or not a valid field element"""


class InsufficientFunds(MoonifyError):
    """No single unspent note covers the requested amount"""

    def __init__(self, target: int, available: int):
        self.target = target
        self.available = available
        if available >= target:
            message = (
                f"No single note covers {target}; balance {available} is split "
                "across several notes"
            )
        else:
            message = f"Insufficient funds: requested {target}, available {available}"
        super().__init__(message)


class WalletStateError(MoonifyError, RuntimeError):
    """Operation not allowed in the wallet's current lifecycle state"""


# =========================================================================
# Persistence
# =========================================================================


class AuthenticationFailed(MoonifyError):
    """Wrong password or tampered ciphertext (deliberately indistinguishable)"""

    def __init__(self) -> None:
        super().__init__("Unable to decrypt wallet: wrong password or corrupted data")


class CorruptState(MoonifyError):
    """Persisted wallet is structurally invalid"""


class StorageError(MoonifyError):
    """Wallet file could not be written"""


# =========================================================================
# Invariant violations (programming errors, abort the operation)
# =========================================================================


class InvariantViolation(MoonifyError):
    """A note-store or transaction invariant would be broken"""


class DuplicateSalt(InvariantViolation):
    def __init__(self, salt: int):
        self.salt = salt
        super().__init__(f"Salt {salt} is already assigned to a note")


class DoubleSpendLocal(InvariantViolation):
    def __init__(self, salt: int):
        self.salt = salt
        super().__init__(f"Note with salt {salt} is already marked spent")


class NoteNotFound(InvariantViolation):
    def __init__(self, salt: int):
        self.salt = salt
        super().__init__(f"No note with salt {salt} in the store")


class ConservationError(InvariantViolation):
    """Transaction inputs and outputs do not balance"""


# =========================================================================
# External collaborators
# =========================================================================


class ProofError(MoonifyError):
    """Proving backend failure; the transaction is not submitted"""


class ProofGenerationFailed(ProofError):
    pass


class ProofTimeout(ProofError):
    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Proof generation exceeded {timeout:g}s")


class LedgerError(MoonifyError):
    pass


class LedgerRejected(LedgerError):
    """Authoritative rejection; wallet state is untouched"""

    def __init__(self, reason: str, reference: Optional[str] = None):
        self.reason = reason
        self.reference = reference
        super().__init__(f"Ledger rejected transaction: {reason}")


class LedgerPending(LedgerError):
    """
    Submission did not reach a final status within the confirmation timeout

    ``transaction`` and ``proof`` are attached by the client so the caller
    can resume confirmation later with ``PrivacyClient.resume``.
    """

    def __init__(self, reference: str):
        self.reference = reference
        self.transaction = None
        self.proof = None
        super().__init__(f"Transaction {reference} is still pending")
