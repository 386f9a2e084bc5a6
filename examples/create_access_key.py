"""
Example: Create Access Key

Generates a P-256 access key, stores it in the local vault and authorizes it
from the root account with an optional spending limit.

Usage:
    PRIVATE_KEY=0x... python examples/create_access_key.py
    PRIVATE_KEY=0x... TOKEN=0x20c0... LIMIT=1000000 DAYS=7 python examples/create_access_key.py
"""

import asyncio
import os

from eth_account import Account

from tempo_keys import (
    DelegatedSigner,
    JsonFileKeyStore,
    KeyVault,
    Settings,
    SubmissionError,
    configure_logging,
    expiry_after,
)


async def main():
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    private_key = os.environ.get("PRIVATE_KEY")
    if not private_key:
        raise ValueError("PRIVATE_KEY environment variable not set")
    root = Account.from_key(private_key)

    limits = None
    if os.environ.get("TOKEN"):
        limits = [{"token": os.environ["TOKEN"], "limit": int(os.environ.get("LIMIT", "0"))}]

    signer = DelegatedSigner(
        settings.web3(),
        KeyVault(JsonFileKeyStore(settings.vault_path)),
        chain_id=settings.chain_id,
        fee_token=settings.fee_token,
        gas_limit=settings.gas_limit,
        receipt_timeout=settings.receipt_timeout,
    )

    try:
        creation = await signer.create_access_key(
            root,
            expiry=expiry_after(float(os.environ.get("DAYS", "1"))),
            limits=limits,
            name=os.environ.get("NAME"),
        )
    except SubmissionError as e:
        print(f"Creation failed: {e}")
        if e.creation is not None:
            print(f"Private key for {e.creation.key_id} kept in {settings.vault_path}")
        raise SystemExit(1)

    print(f"Access key: {creation.key_id}")
    print(f"Authorized in block {creation.block_number} (tx {creation.tx_hash})")


if __name__ == "__main__":
    asyncio.run(main())
