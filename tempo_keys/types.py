"""Type definitions and coercion helpers for addresses, hashes and calldata."""

from typing import NewType, Optional, Union

from eth_utils import to_bytes, to_checksum_address

Address = NewType("Address", bytes)
Hash32 = NewType("Hash32", bytes)

BytesLike = Union[bytes, str]


def as_bytes(value: BytesLike) -> bytes:
    """Convert hex string, bytes, bytearray, or memoryview to bytes."""
    if isinstance(value, str):
        if value == "" or value == "0x":
            return b""
        return to_bytes(hexstr=value)
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise TypeError(f"expected str, bytes, got {type(value).__name__}")
    return bytes(value)


def as_address(value: BytesLike) -> Address:
    """Convert hex string or bytes to a validated 20-byte address."""
    b = as_bytes(value)
    if len(b) not in (0, 20):
        raise ValueError(f"address must be 20 bytes (or empty), got {len(b)}")
    return Address(b)


def as_hash32(value: BytesLike) -> Hash32:
    """Convert hex string or bytes to a validated 32-byte hash."""
    b = as_bytes(value)
    if len(b) != 32:
        raise ValueError(f"hash32 must be 32 bytes, got {len(b)}")
    return Hash32(b)


def normalize_address(value: BytesLike) -> str:
    """Lowercase 0x-prefixed hex form, used as a case-insensitive map key."""
    b = as_address(value)
    if not b:
        raise ValueError("address is required")
    return "0x" + b.hex()


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return a.lower() == b.lower()


def pad_address(value: BytesLike) -> str:
    """Left-pad an address to a 32-byte word (64 hex chars, no prefix)."""
    return normalize_address(value)[2:].zfill(64)


def topic_to_address(topic: BytesLike) -> str:
    """Extract the checksummed address held in an indexed event topic."""
    b = as_bytes(topic)
    if len(b) != 32:
        raise ValueError(f"topic must be 32 bytes, got {len(b)}")
    return to_checksum_address("0x" + b[-20:].hex())
