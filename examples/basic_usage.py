"""
Basic usage example for Moonify
"""

import asyncio
import logging
import tempfile
from pathlib import Path

from solders.keypair import Keypair

from moonify import PrivacyClient, Wallet, WalletConfig, generate_secret


async def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    # Offline client: in-memory ledger, development signature prover
    path = Path(tempfile.mkdtemp()) / "wallet.enc"
    config = WalletConfig.from_env()
    client = PrivacyClient(Wallet(path, config=config), config=config)

    print("=== Moonify Demo ===\n")
    client.create("correct horse battery staple")
    print(f"Wallet created at {path}")

    # 1. Deposit
    print("\n1. Depositing 1 SOL...")
    deposit_tx = await client.deposit(1_000_000_000)
    print(f"   Commitment: {deposit_tx.commitments[0][:16]}...")

    # 2. Private transfer to someone else's secret
    print("\n2. Private transfer of 0.4 SOL...")
    recipient_secret = generate_secret()
    transfer_tx = await client.transfer(400_000_000, recipient_secret)
    print(f"   Nullifier: {transfer_tx.nullifier[:16]}...")
    print(f"   Recipient commitment: {transfer_tx.commitments[1][:16]}...")
    print(f"   Proof size: {len(transfer_tx.proof)} bytes")

    # 3. Unshield part of the change
    print("\n3. Unshielding 0.1 SOL...")
    destination = str(Keypair().pubkey())
    unshield_tx = await client.unshield(100_000_000, recipient=destination)
    print(f"   Released {unshield_tx.public_amount} lamports to {destination[:8]}...")

    # 4. Inspect notes
    print("\n4. Notes:")
    for note in client.note_summary():
        status = "spent" if note.spent else "unspent"
        print(f"   salt={note.salt:<3} amount={note.amount:<12} {status}")
    print(f"   Available balance: {client.available_balance()} lamports")

    # 5. Backup and lock
    backup = client.export()
    print(f"\n5. Encrypted backup is {len(backup)} bytes")

    await client.close()
    print("\n=== Demo Complete ===")


if __name__ == "__main__":
    asyncio.run(main())
