"""
Example: Send With Access Key

Transfers a TIP20 token from the root account using an access key stored in
the local vault. The root account's private key is not needed.

Usage:
    ACCOUNT=0x... KEY_ID=0x... TOKEN=0x20c0... TO=0x... AMOUNT=1000 \
        python examples/send_with_access_key.py
"""

import asyncio
import os

from tempo_keys import (
    DelegatedSigner,
    JsonFileKeyStore,
    KeyNotFoundError,
    KeyVault,
    Settings,
    configure_logging,
)


def require(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise ValueError(f"{name} environment variable not set")
    return value


async def main():
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    signer = DelegatedSigner(
        settings.web3(),
        KeyVault(JsonFileKeyStore(settings.vault_path)),
        chain_id=settings.chain_id,
        fee_token=settings.fee_token,
        gas_limit=settings.gas_limit,
        receipt_timeout=settings.receipt_timeout,
    )

    try:
        result = await signer.transfer(
            require("ACCOUNT"),
            require("KEY_ID"),
            require("TOKEN"),
            require("TO"),
            int(require("AMOUNT")),
        )
    except KeyNotFoundError as e:
        raise SystemExit(str(e))

    print(f"Transaction hash: {result.tx_hash}")
    print(f"Confirmed in block {result.block_number} (gas used: {result.gas_used})")


if __name__ == "__main__":
    asyncio.run(main())
