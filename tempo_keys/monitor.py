"""Poll the ledger for an account's access keys and publish snapshots."""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional

from .access_key import AccessKey, PendingKey
from .exceptions import LedgerReadError
from .log_reader import KeyEventLog, LedgerLogReader
from .oracle import SpendingLimitOracle
from .overlay import KeyView, OptimisticOverlay
from .reconciler import reconcile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessKeysSnapshot:
    """Immutable result of one poll cycle, merged with the overlay."""

    keys: tuple[AccessKey, ...] = ()
    pending: tuple[PendingKey, ...] = ()
    revoking: frozenset = frozenset()
    views: tuple[KeyView, ...] = ()
    loaded: bool = False
    refreshed_at: Optional[float] = None

    def signable(self, vault) -> tuple[AccessKey, ...]:
        """Confirmed, non-revoking keys whose private key is in ``vault``."""
        return tuple(
            k
            for k in self.keys
            if k.key_id.lower() not in self.revoking and vault.contains(k.key_id)
        )

    def keys_for_token(self, token: str) -> tuple[AccessKey, ...]:
        return tuple(k for k in self.keys if k.can_spend(token))


def _clamp(key: AccessKey, remaining: dict) -> dict:
    """Remaining amounts never exceed the key's original limit for a token."""
    clamped = {}
    for token, amount in remaining.items():
        original = key.original(token)
        clamped[token] = min(amount, original) if original is not None else amount
    return clamped


Listener = Callable[[AccessKeysSnapshot], None]


class AccessKeyMonitor:
    """Keeps an up-to-date view of one account's access keys.

    Each cycle reads keychain logs, reconciles them, then fetches block
    timestamps and remaining limits concurrently. Only one cycle runs at a
    time; results from a cycle that was overtaken by ``stop()`` are dropped.
    """

    def __init__(
        self,
        account: str,
        reader: LedgerLogReader,
        oracle: SpendingLimitOracle,
        overlay: Optional[OptimisticOverlay] = None,
        *,
        poll_interval: float = 10.0,
        pending_poll_interval: float = 2.0,
        clock: Callable[[], float] = time.time,
    ):
        if not account:
            raise ValueError("account is required")
        self.account = account
        self.reader = reader
        self.oracle = oracle
        self.overlay = overlay if overlay is not None else OptimisticOverlay()
        self.poll_interval = poll_interval
        self.pending_poll_interval = pending_poll_interval
        self._clock = clock
        self._snapshot = AccessKeysSnapshot()
        self._listeners: list[Listener] = []
        self._in_flight = False
        self._generation = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def snapshot(self) -> AccessKeysSnapshot:
        return self._snapshot

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def add_listener(self, callback: Listener) -> None:
        self._listeners.append(callback)

    def _publish(self, snapshot: AccessKeysSnapshot) -> None:
        self._snapshot = snapshot
        for callback in self._listeners:
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Access key listener failed")

    async def _with_limits(self, key: AccessKey) -> AccessKey:
        if not key.original_limits:
            return key
        result = await self.oracle.remaining_limits(
            self.account, key.key_id, key.original_limits.keys()
        )
        return replace(
            key,
            spending_limits=_clamp(key, result.limits),
            unresolved_limits=result.unresolved,
        )

    async def _load(self, now: float) -> tuple[tuple[AccessKey, ...], KeyEventLog]:
        events = await self.reader.fetch(self.account)
        if "authorized" in events.failed:
            # Without authorizations the key set is unknown, not empty
            raise LedgerReadError("KeyAuthorized logs unavailable")
        keys = reconcile(events.authorized, events.revoked, events.limits, now)

        timestamps, keys = await asyncio.gather(
            self.reader.block_timestamps(k.block_number for k in keys),
            asyncio.gather(*(self._with_limits(k) for k in keys)),
        )
        keys = tuple(
            replace(k, created_at=timestamps.get(k.block_number)) for k in keys
        )
        return keys, events

    async def refresh(self) -> Optional[AccessKeysSnapshot]:
        """Run one poll cycle.

        Returns the published snapshot, or None when another cycle was already
        running, the cycle failed, or the monitor was stopped meanwhile. A cycle
        whose KeyAuthorized query failed counts as failed, so the previous
        snapshot and the overlay are left untouched.
        """
        if self._in_flight:
            logger.debug("Refresh skipped, a cycle is already running")
            return None

        self._in_flight = True
        generation = self._generation
        try:
            now = self._clock()
            keys, events = await self._load(now)
        except Exception as e:
            logger.warning("Access key refresh for %s failed: %s", self.account, e)
            return None
        finally:
            self._in_flight = False

        if generation != self._generation:
            logger.debug("Dropping refresh result from a stopped monitor")
            return None

        self.overlay.reconcile(
            keys, now=now, revoked_key_ids=(e.key_id for e in events.revoked)
        )
        snapshot = AccessKeysSnapshot(
            keys=keys,
            pending=self.overlay.pending,
            revoking=self.overlay.revoking,
            views=self.overlay.merge(keys, now=now),
            loaded=True,
            refreshed_at=now,
        )
        self._publish(snapshot)
        return snapshot

    def next_interval(self) -> float:
        if self.overlay.has_outstanding:
            return self.pending_poll_interval
        return self.poll_interval

    async def _run(self) -> None:
        while True:
            await self.refresh()
            await asyncio.sleep(self.next_interval())

    def start(self) -> asyncio.Task:
        """Start polling on the running event loop."""
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def stop(self) -> None:
        self._generation += 1
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
