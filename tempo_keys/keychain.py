"""Tempo AccountKeychain precompile: constants, key authorizations and call codecs.

The AccountKeychain precompile stores access key authorizations for a root
account and enforces their per-token spending limits. It emits three events
that together describe the history of every key:

    KeyAuthorized(address indexed account, address indexed publicKey, uint8 signatureType, uint64 expiry)
    KeyRevoked(address indexed account, address indexed publicKey)
    SpendingLimitUpdated(address indexed account, address indexed publicKey, address indexed token, uint256 newLimit)

The indexed key field is named ``publicKey`` in all three. Event topics hash
only the parameter types, so decoding is positional and the name is
documentation.

KeyAuthorization:
    Used to provision access keys inline within a Tempo transaction.
    The authorization is RLP-encoded and signed by the root account.
    Format: [chain_id, key_type, key_id, expiry?, limits?]
"""

from dataclasses import dataclass
from typing import Optional

import rlp
from eth_account import Account
from eth_utils import keccak, to_checksum_address
from rlp.sedes import Binary, big_endian_int

from .types import BytesLike, as_bytes, normalize_address, pad_address

# RLP sedes
address_sedes = Binary.fixed_length(20, allow_empty=True)
uint256_sedes = big_endian_int

# AccountKeychain precompile address
ACCOUNT_KEYCHAIN_ADDRESS = "0xaAAAaaAA00000000000000000000000000000000"

ZERO_ADDRESS = "0x" + "0" * 40


def _selector(signature: str) -> str:
    return "0x" + keccak(text=signature)[:4].hex()


def _topic(signature: str) -> str:
    return "0x" + keccak(text=signature).hex()


# Function selectors
GET_KEY_SELECTOR = _selector("getKey(address,address)")
GET_REMAINING_LIMIT_SELECTOR = _selector("getRemainingLimit(address,address,address)")
# Older ABI shape of getRemainingLimit, still answered by the precompile
SPENDING_LIMIT_SELECTOR = _selector("spendingLimit(address,address,address)")
REVOKE_KEY_SELECTOR = _selector("revokeKey(address)")
TRANSFER_SELECTOR = _selector("transfer(address,uint256)")

# Event topics
KEY_AUTHORIZED_TOPIC = _topic("KeyAuthorized(address,address,uint8,uint64)")
KEY_REVOKED_TOPIC = _topic("KeyRevoked(address,address)")
SPENDING_LIMIT_UPDATED_TOPIC = _topic(
    "SpendingLimitUpdated(address,address,address,uint256)"
)

WORD = 32


class SignatureType:
    """Signature type constants for access keys."""

    SECP256K1 = 0  # Standard Ethereum signature
    P256 = 1  # NIST P-256 / secp256r1 (passkeys)
    WEBAUTHN = 2  # WebAuthn/FIDO2

    NAMES = {SECP256K1: "secp256k1", P256: "p256", WEBAUTHN: "webauthn"}


def signature_type_name(value: int) -> str:
    """Map a wire signature type to its name; unknown values read as secp256k1."""
    return SignatureType.NAMES.get(value, "secp256k1")


class TokenLimitRLP(rlp.Serializable):
    """RLP serializable token spending limit."""

    fields = [
        ("token", address_sedes),
        ("limit", uint256_sedes),
    ]


@dataclass
class TokenLimit:
    """Per-token spending limit attached to a key authorization.

    Args:
        token: TIP20 token address
        limit: Maximum spending amount for this token (enforced over the key's lifetime)
    """

    token: str
    limit: int

    def to_rlp(self) -> TokenLimitRLP:
        return TokenLimitRLP(token=as_bytes(self.token), limit=self.limit)


@dataclass
class KeyAuthorization:
    """Key authorization for provisioning access keys.

    The root account signs this payload; the access key then submits it
    attached to its first transaction.

    Args:
        chain_id: Chain ID for replay protection (0 = valid on any chain)
        key_type: Type of key being authorized (SignatureType.SECP256K1, P256, or WEBAUTHN)
        key_id: Key identifier (address derived from the public key)
        expiry: Unix timestamp when key expires (None = never expires)
        limits: Token spending limits (None = unlimited, [] = no spending, [...] = specific limits)
    """

    chain_id: int
    key_type: int
    key_id: str
    expiry: Optional[int] = None
    limits: Optional[list[TokenLimit]] = None

    def as_rlp_list(self) -> list:
        """Nested list form; expiry and limits are optional trailing fields."""
        items: list = [self.chain_id, self.key_type, as_bytes(self.key_id)]

        if self.expiry is not None or self.limits is not None:
            items.append(self.expiry if self.expiry is not None else b"")

        if self.limits is not None:
            items.append([limit.to_rlp() for limit in self.limits])

        return items

    def rlp_encode(self) -> bytes:
        return rlp.encode(self.as_rlp_list())

    def signature_hash(self) -> bytes:
        """Compute the authorization message hash for signing."""
        return keccak(self.rlp_encode())

    def sign(self, private_key) -> "SignedKeyAuthorization":
        """Sign the key authorization with the root account's private key.

        Args:
            private_key: Root account private key (hex string, bytes, or LocalAccount)
        """
        account = Account.from_key(getattr(private_key, "key", private_key))
        signed = account.unsafe_sign_hash(self.signature_hash())

        return SignedKeyAuthorization(
            authorization=self,
            v=signed.v,
            r=signed.r,
            s=signed.s,
        )


@dataclass
class SignedKeyAuthorization:
    """Key authorization plus the root account's signature over it."""

    authorization: KeyAuthorization
    v: int
    r: int
    s: int

    def as_rlp_list(self) -> list:
        """[[chain_id, key_type, key_id, expiry?, limits?], v, r, s]"""
        return [
            self.authorization.as_rlp_list(),
            self.v,
            self.r.to_bytes(32, "big"),
            self.s.to_bytes(32, "big"),
        ]

    def rlp_encode(self) -> bytes:
        return rlp.encode(self.as_rlp_list())

    def recover_signer(self) -> str:
        """Recover the checksummed address of the root account that signed."""
        msg_hash = self.authorization.signature_hash()
        signature = (
            self.r.to_bytes(32, "big") + self.s.to_bytes(32, "big") + bytes([self.v])
        )
        recovered = Account._recover_hash(msg_hash, signature=signature)
        return to_checksum_address(recovered)


def create_key_authorization(
    key_id: str,
    chain_id: int = 0,
    key_type: int = SignatureType.P256,
    expiry: Optional[int] = None,
    limits: Optional[list] = None,
) -> KeyAuthorization:
    """Create a key authorization for provisioning an access key.

    Args:
        key_id: Address of the access key to authorize
        chain_id: Chain ID for replay protection (0 = valid on any chain)
        key_type: Signature type (default: P256)
        expiry: Unix timestamp when key expires (None = never expires)
        limits: TokenLimit objects or dicts with 'token' and 'limit' keys
                (None = unlimited, [] = no spending)

    Example:
        >>> auth = create_key_authorization(
        ...     key_id="0xAccessKeyAddress...",
        ...     chain_id=42431,
        ...     expiry=1893456000,
        ...     limits=[{"token": "0xUSDC...", "limit": 1000 * 10**6}],
        ... )
        >>> signed = auth.sign("0xRootPrivateKey...")
    """
    token_limits = None
    if limits is not None:
        token_limits = [
            lim if isinstance(lim, TokenLimit) else TokenLimit(lim["token"], lim["limit"])
            for lim in limits
        ]
        for lim in token_limits:
            if lim.limit < 0:
                raise ValueError("token limit must be >= 0")

    return KeyAuthorization(
        chain_id=chain_id,
        key_type=key_type,
        key_id=key_id,
        expiry=expiry,
        limits=token_limits,
    )


def _word(data: bytes, index: int) -> bytes:
    return data[index * WORD : (index + 1) * WORD]


def _require_addresses(**addresses: str) -> None:
    missing = [name for name, value in addresses.items() if not value]
    if missing:
        raise ValueError(f"{', '.join(missing)} required")


def encode_get_remaining_limit_calldata(
    account_address: str,
    key_id: str,
    token_address: str,
    legacy: bool = False,
) -> str:
    """Encode calldata for getRemainingLimit(address,address,address).

    With ``legacy`` the older spendingLimit(address,address,address) selector
    is used; both take the same arguments and return a uint256.
    """
    selector = SPENDING_LIMIT_SELECTOR if legacy else GET_REMAINING_LIMIT_SELECTOR
    return (
        f"{selector}{pad_address(account_address)}"
        f"{pad_address(key_id)}{pad_address(token_address)}"
    )


def encode_transfer_calldata(recipient: str, amount: int) -> bytes:
    """Encode TIP20 transfer(address,uint256) calldata."""
    if amount < 0:
        raise ValueError("amount must be >= 0")
    return as_bytes(
        f"{TRANSFER_SELECTOR}{pad_address(recipient)}{amount.to_bytes(32, 'big').hex()}"
    )


@dataclass(frozen=True)
class GetKeyRequest:
    """getKey(account, keyId) read."""

    account: str
    key_id: str

    def calldata(self) -> str:
        _require_addresses(account=self.account, key_id=self.key_id)
        return f"{GET_KEY_SELECTOR}{pad_address(self.account)}{pad_address(self.key_id)}"


@dataclass(frozen=True)
class GetKeyResponse:
    """Decoded (uint8 signatureType, address keyId, uint64 expiry, bool enforceLimits, bool isRevoked)."""

    signature_type: int
    key_id: str
    expiry: int
    enforce_limits: bool
    is_revoked: bool

    @property
    def exists(self) -> bool:
        return self.key_id.lower() != ZERO_ADDRESS

    @classmethod
    def decode(cls, data: BytesLike) -> "GetKeyResponse":
        raw = as_bytes(data)
        if len(raw) < 5 * WORD:
            raise ValueError(f"getKey result must be at least 160 bytes, got {len(raw)}")

        return cls(
            signature_type=int.from_bytes(_word(raw, 0), "big"),
            key_id=to_checksum_address("0x" + _word(raw, 1)[-20:].hex()),
            expiry=int.from_bytes(_word(raw, 2), "big"),
            enforce_limits=int.from_bytes(_word(raw, 3), "big") != 0,
            is_revoked=int.from_bytes(_word(raw, 4), "big") != 0,
        )


@dataclass(frozen=True)
class GetRemainingLimitRequest:
    """getRemainingLimit(account, keyId, token) read (or its legacy spendingLimit shape)."""

    account: str
    key_id: str
    token: str
    legacy: bool = False

    def calldata(self) -> str:
        _require_addresses(account=self.account, key_id=self.key_id, token=self.token)
        return encode_get_remaining_limit_calldata(
            self.account, self.key_id, self.token, legacy=self.legacy
        )


@dataclass(frozen=True)
class GetRemainingLimitResponse:
    """Decoded uint256 remaining amount."""

    remaining: int

    @classmethod
    def decode(cls, data: BytesLike) -> "GetRemainingLimitResponse":
        raw = as_bytes(data)
        if len(raw) != WORD:
            raise ValueError(f"uint256 result must be 32 bytes, got {len(raw)}")
        return cls(remaining=int.from_bytes(raw, "big"))


@dataclass(frozen=True)
class RevokeKeyRequest:
    """revokeKey(keyId) call, signed by the root account."""

    key_id: str

    def calldata(self) -> bytes:
        normalize_address(self.key_id)
        return as_bytes(f"{REVOKE_KEY_SELECTOR}{pad_address(self.key_id)}")
