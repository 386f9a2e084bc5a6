"""Reconcile keychain event streams into the current set of access keys.

Pure and synchronous: given the three event lists and a point in time, the
result is always the same. Network reads (remaining limits, block timestamps)
happen elsewhere and are attached to the returned records afterwards.
"""

from typing import Iterable

from .access_key import NEVER_EXPIRES, AccessKey
from .events import KeyAuthorizedEvent, KeyRevokedEvent, SpendingLimitUpdatedEvent
from .keychain import signature_type_name


def collect_original_limits(
    limit_events: Iterable[SpendingLimitUpdatedEvent],
) -> dict[str, dict[str, int]]:
    """First limit seen per (key, token), keyed by lowercase addresses.

    Later updates for the same pair never overwrite it. A zero ``newLimit``
    is not a limit and is ignored.
    """
    original: dict[str, dict[str, int]] = {}
    for event in limit_events:
        if not event.new_limit:
            continue
        key_limits = original.setdefault(event.key_id.lower(), {})
        key_limits.setdefault(event.token.lower(), event.new_limit)
    return original


def collect_revoked(revoked_events: Iterable[KeyRevokedEvent]) -> frozenset[str]:
    return frozenset(event.key_id.lower() for event in revoked_events)


def is_live(expiry: int, now: float) -> bool:
    return expiry == NEVER_EXPIRES or expiry > now


def reconcile(
    authorized_events: Iterable[KeyAuthorizedEvent],
    revoked_events: Iterable[KeyRevokedEvent],
    limit_events: Iterable[SpendingLimitUpdatedEvent],
    now: float,
) -> list[AccessKey]:
    """Build the list of currently valid access keys, most recent first.

    A key is dropped when any revocation for it exists, regardless of event
    order, or when its expiry is not in the future. Re-authorizations of the
    same key collapse to the one with the highest block number.
    """
    original_limits = collect_original_limits(limit_events)
    revoked = collect_revoked(revoked_events)

    candidates: dict[str, KeyAuthorizedEvent] = {}
    for event in authorized_events:
        key = event.key_id.lower()
        if key in revoked or not is_live(event.expiry, now):
            continue
        current = candidates.get(key)
        if current is None or event.block_number >= current.block_number:
            candidates[key] = event

    keys = []
    for key, event in candidates.items():
        limits = original_limits.get(key, {})
        keys.append(
            AccessKey(
                key_id=event.key_id,
                signature_type=signature_type_name(event.signature_type),
                expiry=event.expiry,
                block_number=event.block_number,
                enforce_limits=len(limits) > 0,
                original_limits=limits,
            )
        )

    keys.sort(key=lambda k: (-k.block_number, k.key_id.lower()))
    return keys
