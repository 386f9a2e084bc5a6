"""
Example: List Access Keys

Reconstructs an account's current access keys from keychain events and prints
their remaining spending limits.

Usage:
    ACCOUNT=0x... python examples/list_access_keys.py
    ACCOUNT=0x... WATCH=1 python examples/list_access_keys.py
"""

import asyncio
import os
from datetime import datetime, timezone

from tempo_keys import (
    AccessKeyMonitor,
    JsonFileKeyStore,
    KeyVault,
    LedgerLogReader,
    Settings,
    SpendingLimitOracle,
    configure_logging,
)


def print_snapshot(snapshot, vault):
    print(f"{len(snapshot.keys)} active key(s), {len(snapshot.pending)} pending")
    for view in snapshot.views:
        local = "local" if vault.contains(view.key_id) else "remote"
        expiry = (
            "never"
            if view.expiry == 0
            else datetime.fromtimestamp(view.expiry, tz=timezone.utc).isoformat()
        )
        print(f"  {view.key_id}  {view.status.value:<8} {local:<6} expires {expiry}")
        if view.key is None:
            continue
        for token, original in view.key.original_limits.items():
            if token in view.key.unresolved_limits:
                remaining = "unknown"
            else:
                remaining = view.key.remaining(token) or 0
            print(f"      {token}: {remaining} / {original}")


async def main():
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    account = os.environ.get("ACCOUNT")
    if not account:
        raise ValueError("ACCOUNT environment variable not set")

    w3 = settings.web3()
    vault = KeyVault(JsonFileKeyStore(settings.vault_path))
    monitor = AccessKeyMonitor(
        account,
        LedgerLogReader(w3, lookback_blocks=settings.lookback_blocks),
        SpendingLimitOracle(
            w3,
            max_concurrency=settings.limit_read_concurrency,
            failure_policy=settings.limit_failure_policy,
        ),
        poll_interval=settings.poll_interval,
        pending_poll_interval=settings.pending_poll_interval,
    )

    if not os.environ.get("WATCH"):
        snapshot = await monitor.refresh()
        if snapshot is None:
            raise SystemExit("Could not load access keys, see log output")
        print_snapshot(snapshot, vault)
        return

    monitor.add_listener(lambda snapshot: print_snapshot(snapshot, vault))
    monitor.start()
    try:
        await asyncio.Event().wait()
    finally:
        await monitor.stop()


if __name__ == "__main__":
    asyncio.run(main())
