"""Strongly-typed Tempo transaction (type 0x76) with access key support."""

from dataclasses import dataclass, field, replace
from typing import Optional, Union

import rlp
from eth_account import Account
from eth_utils import keccak

from .keychain import SignedKeyAuthorization
from .types import Address, BytesLike, Hash32, as_address, as_bytes, as_hash32

# Keychain signature type identifier
KEYCHAIN_SIGNATURE_TYPE = 0x03


@dataclass(frozen=True)
class Call:
    """Single call in a batch transaction."""

    to: Address
    value: int
    data: bytes

    def validate(self) -> None:
        if self.value < 0:
            raise ValueError("call.value must be >= 0")

    def as_rlp_list(self) -> list:
        return [bytes(self.to), self.value, self.data]

    @classmethod
    def create(cls, to: BytesLike, value: int = 0, data: BytesLike = b"") -> "Call":
        return cls(to=as_address(to), value=value, data=as_bytes(data))


@dataclass(frozen=True)
class AccessListItem:
    """Single entry in an EIP-2930 access list."""

    address: Address
    storage_keys: tuple[Hash32, ...]

    def validate(self) -> None:
        if len(bytes(self.address)) != 20:
            raise ValueError("access list address must be 20 bytes")

    def as_rlp_list(self) -> list:
        return [bytes(self.address), [bytes(k) for k in self.storage_keys]]

    @classmethod
    def create(
        cls, address: BytesLike, storage_keys: tuple[BytesLike, ...] = ()
    ) -> "AccessListItem":
        return cls(
            address=as_address(address),
            storage_keys=tuple(as_hash32(k) for k in storage_keys),
        )


@dataclass(frozen=True)
class Signature:
    """65-byte secp256k1 signature (r || s || v)."""

    r: int
    s: int
    v: int

    def to_bytes(self) -> bytes:
        return self.r.to_bytes(32, "big") + self.s.to_bytes(32, "big") + bytes([self.v])

    @classmethod
    def from_bytes(cls, sig_bytes: bytes) -> "Signature":
        if len(sig_bytes) != 65:
            raise ValueError(f"signature must be 65 bytes, got {len(sig_bytes)}")
        return cls(
            r=int.from_bytes(sig_bytes[:32], "big"),
            s=int.from_bytes(sig_bytes[32:64], "big"),
            v=sig_bytes[64],
        )


@dataclass(frozen=True)
class KeychainSignature:
    """Access key signature: 0x03 || root_account (20 bytes) || inner_signature.

    The inner signature is 65 bytes for secp256k1 keys and 130 bytes for P-256.
    """

    root_account: Address
    inner: bytes

    def to_bytes(self) -> bytes:
        if len(self.root_account) != 20:
            raise ValueError("root_account must be 20 bytes")
        return bytes([KEYCHAIN_SIGNATURE_TYPE]) + bytes(self.root_account) + self.inner


SenderSignature = Union[Signature, KeychainSignature]


@dataclass(frozen=True)
class TempoTransaction:
    """
    Tempo Transaction (Type 0x76).

    Immutable; signing returns a new instance. An attached key_authorization
    provisions an access key in the same transaction that the key signs.
    Fees are paid by the sender in ``fee_token``.
    """

    TRANSACTION_TYPE: int = field(default=0x76, init=False, repr=False)

    chain_id: int = 1
    max_priority_fee_per_gas: int = 0
    max_fee_per_gas: int = 0
    gas_limit: int = 21_000

    calls: tuple[Call, ...] = ()
    access_list: tuple[AccessListItem, ...] = ()

    nonce_key: int = 0
    nonce: int = 0

    valid_before: Optional[int] = None
    valid_after: Optional[int] = None

    fee_token: Optional[Address] = None

    sender_address: Optional[Address] = None
    sender_signature: Optional[SenderSignature] = None

    key_authorization: Optional[SignedKeyAuthorization] = None

    def validate(self) -> None:
        """Validate the transaction fields."""
        if self.chain_id <= 0:
            raise ValueError("chain_id must be > 0")
        if self.gas_limit <= 0:
            raise ValueError("gas_limit must be > 0")
        if self.max_priority_fee_per_gas < 0:
            raise ValueError("max_priority_fee_per_gas must be >= 0")
        if self.max_fee_per_gas < 0:
            raise ValueError("max_fee_per_gas must be >= 0")
        if (
            self.max_fee_per_gas
            and self.max_priority_fee_per_gas > self.max_fee_per_gas
        ):
            raise ValueError("max_priority_fee_per_gas cannot exceed max_fee_per_gas")
        if self.nonce < 0:
            raise ValueError("nonce must be >= 0")
        if self.nonce_key < 0:
            raise ValueError("nonce_key must be >= 0")
        if not self.calls:
            raise ValueError("at least one call is required")
        for call in self.calls:
            call.validate()
        for item in self.access_list:
            item.validate()
        if self.valid_before is not None and self.valid_after is not None:
            if self.valid_after > self.valid_before:
                raise ValueError("valid_after cannot be greater than valid_before")

    @staticmethod
    def _optional_uint(v: Optional[int]) -> bytes | int:
        return b"" if v is None else v

    def _fields(self) -> list:
        """Fields shared by the signing payload and the encoding.

        The fee payer signature slot stays empty and the Tempo authorization
        list is always empty; the key authorization is appended only when set.
        """
        fields = [
            self.chain_id,
            self.max_priority_fee_per_gas,
            self.max_fee_per_gas,
            self.gas_limit,
            [c.as_rlp_list() for c in self.calls],
            [a.as_rlp_list() for a in self.access_list],
            self.nonce_key,
            self.nonce,
            self._optional_uint(self.valid_before),
            self._optional_uint(self.valid_after),
            bytes(self.fee_token) if self.fee_token else b"",
            b"",
            [],
        ]
        if self.key_authorization is not None:
            fields.append(self.key_authorization.as_rlp_list())
        return fields

    def get_signing_hash(self) -> bytes:
        """Hash the sender signs: keccak(0x76 || rlp(fields))."""
        self.validate()
        return keccak(bytes([self.TRANSACTION_TYPE]) + rlp.encode(self._fields()))

    def encode(self) -> bytes:
        """Encode: 0x76 || rlp([..., key_authorization?, sender_signature])"""
        self.validate()
        sender_sig = self.sender_signature.to_bytes() if self.sender_signature else b""
        return bytes([self.TRANSACTION_TYPE]) + rlp.encode(self._fields() + [sender_sig])

    def hash(self) -> bytes:
        """Get transaction hash."""
        return keccak(self.encode())

    def sign(self, private_key) -> "TempoTransaction":
        """Sign with a secp256k1 key (hex string, bytes or LocalAccount).

        Returns a new TempoTransaction with the signature applied.
        """
        account = Account.from_key(getattr(private_key, "key", private_key))
        signed = account.unsafe_sign_hash(self.get_signing_hash())
        return replace(
            self,
            sender_signature=Signature(r=signed.r, s=signed.s, v=signed.v),
            sender_address=as_address(account.address),
        )

    def sign_access_key(self, keypair, root_account: BytesLike) -> "TempoTransaction":
        """Sign with an access key on behalf of ``root_account``.

        The transaction's sender becomes the root account; the ledger looks up
        the access key's authorization for that account when validating.

        Args:
            keypair: AccessKeyPair holding the access key's private key
            root_account: Address of the root account
        """
        root = as_address(root_account)
        if not root:
            raise ValueError("root_account is required")
        tx = replace(self, sender_address=root)
        inner = keypair.sign_hash(tx.get_signing_hash())
        return replace(tx, sender_signature=KeychainSignature(root_account=root, inner=inner))
