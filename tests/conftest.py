"""Shared fixtures"""

import pytest

from moonify import InMemoryLedger, PrivacyClient, SignatureProver, Wallet
from moonify.config import KdfParams, WalletConfig

PASSWORD = "correct horse battery"


@pytest.fixture
def fast_config(tmp_path):
    """Cheap Argon2 parameters and short timeouts so tests run quickly"""
    return WalletConfig(
        wallet_path=tmp_path / "wallet.enc",
        kdf=KdfParams(time_cost=1, memory_cost=64, parallelism=1),
        proof_timeout=10.0,
        confirmation_timeout=1.0,
        poll_interval=0.01,
    )


@pytest.fixture
def wallet_path(fast_config):
    return fast_config.wallet_path


@pytest.fixture
def wallet(fast_config):
    """A freshly created, unlocked wallet"""
    w = Wallet(config=fast_config)
    w.create(PASSWORD)
    yield w
    w.lock()


@pytest.fixture
def prover():
    return SignatureProver()


@pytest.fixture
def ledger(prover):
    return InMemoryLedger(verifier=prover)


@pytest.fixture
def client(wallet, prover, ledger, fast_config):
    return PrivacyClient(wallet, prover, ledger, fast_config)
