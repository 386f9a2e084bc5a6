"""Access key records: reconciled on-chain keys and optimistic pending keys."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

# Expiry sentinel for keys that never expire
NEVER_EXPIRES = 0


def _frozen(mapping: Optional[Mapping[str, int]]) -> Mapping[str, int]:
    return MappingProxyType({k.lower(): v for k, v in (mapping or {}).items()})


@dataclass(frozen=True)
class AccessKey:
    """A currently valid access key, reconstructed from keychain events.

    ``spending_limits`` and ``original_limits`` are keyed by lowercase token
    address. ``spending_limits`` only holds tokens with a non-zero remaining
    amount as of the last read; tokens whose read failed are listed in
    ``unresolved_limits`` instead.
    """

    key_id: str
    signature_type: str
    expiry: int
    block_number: int
    created_at: Optional[int] = None
    enforce_limits: bool = False
    spending_limits: Mapping[str, int] = field(default_factory=dict)
    original_limits: Mapping[str, int] = field(default_factory=dict)
    unresolved_limits: frozenset = frozenset()

    def __post_init__(self):
        object.__setattr__(self, "spending_limits", _frozen(self.spending_limits))
        object.__setattr__(self, "original_limits", _frozen(self.original_limits))
        object.__setattr__(
            self,
            "unresolved_limits",
            frozenset(t.lower() for t in self.unresolved_limits),
        )

    @property
    def never_expires(self) -> bool:
        return self.expiry == NEVER_EXPIRES

    def is_expired(self, now: float) -> bool:
        return not self.never_expires and self.expiry <= now

    def remaining(self, token: str) -> Optional[int]:
        """Remaining amount for ``token``; None when unknown or not limited."""
        return self.spending_limits.get(token.lower())

    def original(self, token: str) -> Optional[int]:
        return self.original_limits.get(token.lower())

    def can_spend(self, token: str) -> bool:
        """Client-side approximation; the ledger enforces the real limit."""
        if not self.enforce_limits:
            return True
        token = token.lower()
        if token in self.unresolved_limits:
            return True
        return self.spending_limits.get(token, 0) > 0


@dataclass(frozen=True)
class PendingKey:
    """A key whose authorization was submitted but not yet observed on-chain."""

    key_id: str
    expiry: int
    token_address: Optional[str] = None
    spending_limit: Optional[int] = None
    tx_hash: Optional[str] = None
