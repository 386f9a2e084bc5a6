"""Typed records for AccountKeychain event logs."""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, TypeVar

from .types import as_bytes, topic_to_address

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class KeyAuthorizedEvent:
    account: str
    key_id: str
    signature_type: int
    expiry: int
    block_number: int
    log_index: int = 0


@dataclass(frozen=True)
class KeyRevokedEvent:
    account: str
    key_id: str
    block_number: int
    log_index: int = 0


@dataclass(frozen=True)
class SpendingLimitUpdatedEvent:
    account: str
    key_id: str
    token: str
    new_limit: int
    block_number: int
    log_index: int = 0


def _topics(log, count: int) -> list:
    topics = log["topics"]
    if len(topics) < count:
        raise ValueError(f"expected {count} topics, got {len(topics)}")
    return topics


def _data_words(log, count: int) -> list[int]:
    data = as_bytes(log.get("data", b""))
    if len(data) < 32 * count:
        raise ValueError(f"expected {32 * count} data bytes, got {len(data)}")
    return [int.from_bytes(data[i * 32 : (i + 1) * 32], "big") for i in range(count)]


def _position(log) -> tuple[int, int]:
    block_number = log.get("blockNumber")
    if block_number is None:
        raise ValueError("log has no blockNumber (pending log)")
    return int(block_number), int(log.get("logIndex") or 0)


def decode_key_authorized(log) -> KeyAuthorizedEvent:
    """topics: [sig, account, publicKey]; data: signatureType, expiry."""
    topics = _topics(log, 3)
    signature_type, expiry = _data_words(log, 2)
    block_number, log_index = _position(log)
    return KeyAuthorizedEvent(
        account=topic_to_address(topics[1]),
        key_id=topic_to_address(topics[2]),
        signature_type=signature_type,
        expiry=expiry,
        block_number=block_number,
        log_index=log_index,
    )


def decode_key_revoked(log) -> KeyRevokedEvent:
    """topics: [sig, account, publicKey]."""
    topics = _topics(log, 3)
    block_number, log_index = _position(log)
    return KeyRevokedEvent(
        account=topic_to_address(topics[1]),
        key_id=topic_to_address(topics[2]),
        block_number=block_number,
        log_index=log_index,
    )


def decode_spending_limit_updated(log) -> SpendingLimitUpdatedEvent:
    """topics: [sig, account, publicKey, token]; data: newLimit."""
    topics = _topics(log, 4)
    (new_limit,) = _data_words(log, 1)
    block_number, log_index = _position(log)
    return SpendingLimitUpdatedEvent(
        account=topic_to_address(topics[1]),
        key_id=topic_to_address(topics[2]),
        token=topic_to_address(topics[3]),
        new_limit=new_limit,
        block_number=block_number,
        log_index=log_index,
    )


def decode_logs(logs: Iterable, decoder: Callable[..., T]) -> tuple[T, ...]:
    """Decode a batch in emission order, skipping logs that do not parse."""
    decoded = []
    for log in logs:
        try:
            decoded.append(decoder(log))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed keychain log: %s", e)
    decoded.sort(key=lambda event: (event.block_number, event.log_index))
    return tuple(decoded)
