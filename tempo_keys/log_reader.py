"""Read AccountKeychain events for one account over a recent block window."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from eth_utils import to_checksum_address

from .events import (
    KeyAuthorizedEvent,
    KeyRevokedEvent,
    SpendingLimitUpdatedEvent,
    decode_key_authorized,
    decode_key_revoked,
    decode_logs,
    decode_spending_limit_updated,
)
from .exceptions import LedgerReadError
from .keychain import (
    ACCOUNT_KEYCHAIN_ADDRESS,
    KEY_AUTHORIZED_TOPIC,
    KEY_REVOKED_TOPIC,
    SPENDING_LIMIT_UPDATED_TOPIC,
)
from .types import pad_address

logger = logging.getLogger(__name__)

# Hard cap the RPC enforces on eth_getLogs block ranges
MAX_LOG_RANGE = 100_000
# Stay a safety margin below the cap
DEFAULT_LOOKBACK_BLOCKS = 99_000


@dataclass(frozen=True)
class KeyEventLog:
    """Raw keychain history for one account, in emission order.

    ``failed`` names the streams (``"authorized"``, ``"revoked"``, ``"limits"``)
    whose query errored; their tuples are empty rather than authoritative.
    """

    authorized: tuple[KeyAuthorizedEvent, ...]
    revoked: tuple[KeyRevokedEvent, ...]
    limits: tuple[SpendingLimitUpdatedEvent, ...]
    from_block: int
    to_block: int
    failed: frozenset[str] = frozenset()

    @property
    def complete(self) -> bool:
        return not self.failed


class LedgerLogReader:
    """Fetches KeyAuthorized, KeyRevoked and SpendingLimitUpdated logs.

    The three queries run concurrently and fail independently: a query that
    errors contributes an empty list and is named in ``KeyEventLog.failed``
    instead of aborting the read.
    """

    def __init__(self, w3, *, lookback_blocks: int = DEFAULT_LOOKBACK_BLOCKS):
        if lookback_blocks <= 0:
            raise ValueError("lookback_blocks must be > 0")
        if lookback_blocks >= MAX_LOG_RANGE:
            raise ValueError(f"lookback_blocks must be below {MAX_LOG_RANGE}")
        self._w3 = w3
        self.lookback_blocks = lookback_blocks

    def block_window(self, latest: int) -> tuple[int, int]:
        return max(0, latest - self.lookback_blocks), latest

    async def fetch(self, account: str) -> KeyEventLog:
        if not account:
            raise ValueError("account is required")

        try:
            latest = int(await self._w3.eth.block_number)
        except Exception as e:
            raise LedgerReadError(f"could not read latest block: {e}") from e

        from_block, to_block = self.block_window(latest)
        account_topic = "0x" + pad_address(account)

        authorized, revoked, limits = await asyncio.gather(
            self._query(KEY_AUTHORIZED_TOPIC, account_topic, from_block, to_block),
            self._query(KEY_REVOKED_TOPIC, account_topic, from_block, to_block),
            self._query(
                SPENDING_LIMIT_UPDATED_TOPIC, account_topic, from_block, to_block
            ),
        )

        logger.debug(
            "Fetched keychain logs for %s in blocks %d-%d: "
            "%d authorized, %d revoked, %d limit updates",
            account,
            from_block,
            to_block,
            len(authorized or ()),
            len(revoked or ()),
            len(limits or ()),
        )

        streams = {"authorized": authorized, "revoked": revoked, "limits": limits}
        return KeyEventLog(
            authorized=decode_logs(authorized or [], decode_key_authorized),
            revoked=decode_logs(revoked or [], decode_key_revoked),
            limits=decode_logs(limits or [], decode_spending_limit_updated),
            from_block=from_block,
            to_block=to_block,
            failed=frozenset(name for name, logs in streams.items() if logs is None),
        )

    async def _query(
        self, topic: str, account_topic: str, from_block: int, to_block: int
    ) -> Optional[list]:
        """Logs for one topic, or None when the query failed."""
        try:
            return list(
                await self._w3.eth.get_logs(
                    {
                        "address": to_checksum_address(ACCOUNT_KEYCHAIN_ADDRESS),
                        "fromBlock": from_block,
                        "toBlock": to_block,
                        "topics": [topic, account_topic],
                    }
                )
            )
        except Exception as e:
            logger.warning("eth_getLogs for topic %s failed: %s", topic[:10], e)
            return None

    async def block_timestamps(self, block_numbers: Iterable[int]) -> dict[int, int]:
        """Unix timestamps for the given blocks; blocks that fail are left out."""
        unique = sorted(set(block_numbers))

        async def fetch_one(number: int):
            try:
                block = await self._w3.eth.get_block(number)
                return number, int(block["timestamp"])
            except Exception as e:
                logger.debug("Could not fetch block %d: %s", number, e)
                return number, None

        results = await asyncio.gather(*(fetch_one(n) for n in unique))
        return {number: ts for number, ts in results if ts is not None}
