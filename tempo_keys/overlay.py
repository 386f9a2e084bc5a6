"""Optimistic local state for keys that were just created or revoked.

The overlay heals itself against each poll: a pending key disappears as soon
as the reconciled list contains it, the ledger reports it revoked, or its
expiry passes. A revoking mark disappears as soon as the reconciled list no
longer contains the key. Submitters never need to report success.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from .access_key import NEVER_EXPIRES, AccessKey, PendingKey

logger = logging.getLogger(__name__)


class KeyStatus(enum.Enum):
    ACTIVE = "active"
    PENDING = "pending"
    REVOKING = "revoking"


@dataclass(frozen=True)
class KeyView:
    """One row of the merged display/selection list."""

    key_id: str
    expiry: int
    status: KeyStatus
    key: Optional[AccessKey] = None
    pending: Optional[PendingKey] = None
    tx_hash: Optional[str] = None


def _ids(key_ids: Iterable[str]) -> frozenset[str]:
    return frozenset(k.lower() for k in key_ids)


def _expired(key: PendingKey, now: float) -> bool:
    return key.expiry != NEVER_EXPIRES and key.expiry <= now


class OptimisticOverlay:
    """Pending and revoking keys held until the ledger agrees."""

    def __init__(self):
        self._pending: tuple[PendingKey, ...] = ()
        self._revoking: dict[str, Optional[str]] = {}

    @property
    def pending(self) -> tuple[PendingKey, ...]:
        return self._pending

    @property
    def revoking(self) -> frozenset[str]:
        return frozenset(self._revoking)

    @property
    def has_outstanding(self) -> bool:
        return bool(self._pending or self._revoking)

    def revoke_tx_hash(self, key_id: str) -> Optional[str]:
        return self._revoking.get(key_id.lower())

    def add_pending(self, key: PendingKey) -> None:
        key_id = key.key_id.lower()
        self._pending = tuple(
            p for p in self._pending if p.key_id.lower() != key_id
        ) + (key,)
        logger.info("Access key %s pending confirmation", key.key_id)

    def discard_pending(self, key_id: str) -> None:
        key_id = key_id.lower()
        self._pending = tuple(p for p in self._pending if p.key_id.lower() != key_id)

    def clear_confirmed(self, confirmed_key_ids: Iterable[str]) -> list[str]:
        """Drop pending keys that now appear on-chain; returns the ids dropped."""
        confirmed = _ids(confirmed_key_ids)
        kept, cleared = [], []
        for p in self._pending:
            if p.key_id.lower() in confirmed:
                cleared.append(p.key_id)
            else:
                kept.append(p)
        if cleared:
            self._pending = tuple(kept)
            logger.info("Access keys confirmed: %s", ", ".join(cleared))
        return cleared

    def prune_expired(self, now: float) -> list[str]:
        """Drop pending keys whose expiry has passed; returns the ids dropped."""
        kept, expired = [], []
        for p in self._pending:
            if _expired(p, now):
                expired.append(p.key_id)
            else:
                kept.append(p)
        if expired:
            self._pending = tuple(kept)
            logger.info("Pending access keys expired: %s", ", ".join(expired))
        return expired

    def mark_revoking(self, key_id: str, tx_hash: Optional[str] = None) -> None:
        self._revoking = {**self._revoking, key_id.lower(): tx_hash}

    def unmark_revoking(self, key_id: str) -> None:
        self._revoking = {
            k: v for k, v in self._revoking.items() if k != key_id.lower()
        }

    def clear_revoked(self, still_on_chain_key_ids: Iterable[str]) -> list[str]:
        """Drop revoking marks for keys that are gone from the reconciled list."""
        on_chain = _ids(still_on_chain_key_ids)
        cleared = [k for k in self._revoking if k not in on_chain]
        if cleared:
            self._revoking = {
                k: v for k, v in self._revoking.items() if k in on_chain
            }
            logger.info("Access key revocations confirmed: %s", ", ".join(cleared))
        return cleared

    def reconcile(
        self,
        confirmed_keys: Iterable[AccessKey],
        now: Optional[float] = None,
        revoked_key_ids: Iterable[str] = (),
    ) -> None:
        """Apply one successful poll to both overlay sets.

        A pending key listed in ``revoked_key_ids`` was authorized and revoked
        between polls, so it will never appear in the confirmed set.
        """
        ids = [k.key_id for k in confirmed_keys]
        self.clear_confirmed([*ids, *revoked_key_ids])
        self.clear_revoked(ids)
        if now is not None:
            self.prune_expired(now)

    def merge(
        self, confirmed_keys: Iterable[AccessKey], now: Optional[float] = None
    ) -> tuple[KeyView, ...]:
        """Confirmed keys first, then unexpired pending keys not shown yet."""
        views = []
        confirmed_ids = set()
        for key in confirmed_keys:
            key_id = key.key_id.lower()
            confirmed_ids.add(key_id)
            if key_id in self._revoking:
                views.append(
                    KeyView(
                        key_id=key.key_id,
                        expiry=key.expiry,
                        status=KeyStatus.REVOKING,
                        key=key,
                        tx_hash=self._revoking[key_id],
                    )
                )
            else:
                views.append(
                    KeyView(key_id=key.key_id, expiry=key.expiry, status=KeyStatus.ACTIVE, key=key)
                )

        for p in self._pending:
            if p.key_id.lower() in confirmed_ids:
                continue
            if now is not None and _expired(p, now):
                continue
            views.append(
                KeyView(
                    key_id=p.key_id,
                    expiry=p.expiry,
                    status=KeyStatus.PENDING,
                    pending=p,
                    tx_hash=p.tx_hash,
                )
            )
        return tuple(views)
