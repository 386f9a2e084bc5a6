"""Point reads against the AccountKeychain precompile."""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from eth_utils import to_checksum_address

from .keychain import (
    ACCOUNT_KEYCHAIN_ADDRESS,
    GetKeyRequest,
    GetKeyResponse,
    GetRemainingLimitRequest,
    GetRemainingLimitResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 4


class LimitFailurePolicy(enum.Enum):
    """What a failed remaining-limit read turns into."""

    # Leave the token out and report it as unresolved
    OMIT = "omit"
    # Record the token as exhausted (0); legacy behaviour
    ZERO = "zero"


@dataclass(frozen=True)
class LimitReadResult:
    """Remaining amounts for one key.

    ``limits`` holds only non-zero amounts (plus zeros recorded by the ZERO
    policy); ``unresolved`` lists tokens whose read failed under OMIT.
    """

    limits: dict = field(default_factory=dict)
    unresolved: frozenset = frozenset()


class SpendingLimitOracle:
    """Reads remaining spending limits and key records.

    These values are a client-side approximation for display and selection.
    The ledger enforces the real limit when a delegated transaction executes.
    """

    def __init__(
        self,
        w3,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        failure_policy: LimitFailurePolicy = LimitFailurePolicy.OMIT,
        legacy_abi: bool = False,
    ):
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")
        self._w3 = w3
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self.max_concurrency = max_concurrency
        self.failure_policy = failure_policy
        self.legacy_abi = legacy_abi

    async def _call(self, calldata: str) -> bytes:
        return bytes(
            await self._w3.eth.call(
                {"to": to_checksum_address(ACCOUNT_KEYCHAIN_ADDRESS), "data": calldata}
            )
        )

    async def remaining_limit(self, account: str, key_id: str, token: str) -> int:
        """Current remaining amount for (account, key, token).

        Raises:
            ValueError: If an address is missing or the result is malformed
            Exception: Whatever the RPC layer raises on a failed or reverted call
        """
        request = GetRemainingLimitRequest(account, key_id, token, legacy=self.legacy_abi)
        async with self._semaphore:
            result = await self._call(request.calldata())
        return GetRemainingLimitResponse.decode(result).remaining

    async def remaining_limits(
        self, account: str, key_id: str, tokens: Iterable[str]
    ) -> LimitReadResult:
        """Read every token for one key, at most ``max_concurrency`` at a time."""
        tokens = sorted({t.lower() for t in tokens})

        async def read(token: str):
            try:
                return token, await self.remaining_limit(account, key_id, token)
            except Exception as e:
                logger.warning(
                    "Remaining limit read failed for key %s token %s: %s",
                    key_id,
                    token,
                    e,
                )
                return token, None

        limits: dict[str, int] = {}
        unresolved = set()
        for token, remaining in await asyncio.gather(*(read(t) for t in tokens)):
            if remaining is None:
                if self.failure_policy is LimitFailurePolicy.ZERO:
                    limits[token] = 0
                else:
                    unresolved.add(token)
            elif remaining > 0:
                limits[token] = remaining

        return LimitReadResult(limits=limits, unresolved=frozenset(unresolved))

    async def get_key(self, account: str, key_id: str) -> Optional[GetKeyResponse]:
        """Key record from the precompile, or None if the key was never authorized."""
        if account.lower() == key_id.lower():
            raise ValueError("account and key_id must differ")
        async with self._semaphore:
            result = await self._call(GetKeyRequest(account, key_id).calldata())
        response = GetKeyResponse.decode(result)
        return response if response.exists else None
