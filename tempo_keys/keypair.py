"""Access key material: generation, PKCS#8 round-trips, address derivation, signing.

P-256 inner signatures follow Tempo's format:

    0x01 || r (32) || s (32) || pub_key_x (32) || pub_key_y (32) || pre_hash (1)

The message is hashed with SHA-256 before ECDSA signing, so ``pre_hash`` is 1.
secp256k1 inner signatures are the usual 65 bytes ``r || s || v``.
"""

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from eth_account import Account
from eth_utils import keccak, to_checksum_address

from .keychain import SignatureType

P256_SIGNATURE_TYPE = 0x01
P256_SIGNATURE_LENGTH = 130  # type (1) + r (32) + s (32) + x (32) + y (32) + prehash (1)
SECP256K1_SIGNATURE_LENGTH = 65  # r (32) + s (32) + v (1)

# Order of the P-256 group, for low-s normalization
P256_ORDER = 0xFFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551

_CURVES = {
    SignatureType.SECP256K1: ec.SECP256K1,
    SignatureType.P256: ec.SECP256R1,
}


def address_from_public_key(x: int, y: int) -> str:
    """Checksummed address of an uncompressed public key: keccak(x || y)[12:]."""
    return to_checksum_address(
        "0x" + keccak(x.to_bytes(32, "big") + y.to_bytes(32, "big"))[12:].hex()
    )


class AccessKeyPair:
    """An access key's private key plus the identity derived from it."""

    def __init__(self, private_key: ec.EllipticCurvePrivateKey):
        curve = private_key.curve.name
        if curve == ec.SECP256R1.name:
            self.signature_type = SignatureType.P256
        elif curve == ec.SECP256K1.name:
            self.signature_type = SignatureType.SECP256K1
        else:
            raise ValueError(f"unsupported access key curve: {curve}")

        self._private_key = private_key
        numbers = private_key.public_key().public_numbers()
        self.public_x = numbers.x
        self.public_y = numbers.y
        self.address = address_from_public_key(numbers.x, numbers.y)

    def __repr__(self) -> str:
        return f"AccessKeyPair(address={self.address!r}, signature_type={self.signature_type})"

    @classmethod
    def generate(cls, signature_type: int = SignatureType.P256) -> "AccessKeyPair":
        curve = _CURVES.get(signature_type)
        if curve is None:
            raise ValueError(
                f"cannot generate keys of signature type {signature_type} locally"
            )
        return cls(ec.generate_private_key(curve()))

    @classmethod
    def from_pkcs8(cls, der: bytes) -> "AccessKeyPair":
        private_key = serialization.load_der_private_key(der, password=None)
        if not isinstance(private_key, ec.EllipticCurvePrivateKey):
            raise ValueError("stored key is not an elliptic curve private key")
        return cls(private_key)

    def to_pkcs8(self) -> bytes:
        return self._private_key.private_bytes(
            serialization.Encoding.DER,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )

    @property
    def public_key_bytes(self) -> bytes:
        return self.public_x.to_bytes(32, "big") + self.public_y.to_bytes(32, "big")

    def sign_hash(self, msg_hash: bytes) -> bytes:
        """Inner signature over a 32-byte hash, in the format for this curve."""
        if len(msg_hash) != 32:
            raise ValueError(f"msg_hash must be 32 bytes, got {len(msg_hash)}")
        if self.signature_type == SignatureType.SECP256K1:
            return self._sign_secp256k1(msg_hash)
        return self._sign_p256(msg_hash)

    def _sign_secp256k1(self, msg_hash: bytes) -> bytes:
        scalar = self._private_key.private_numbers().private_value
        signed = Account.from_key(scalar.to_bytes(32, "big")).unsafe_sign_hash(msg_hash)
        return (
            signed.r.to_bytes(32, "big")
            + signed.s.to_bytes(32, "big")
            + bytes([signed.v])
        )

    def _sign_p256(self, msg_hash: bytes) -> bytes:
        der = self._private_key.sign(msg_hash, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        if s > P256_ORDER // 2:
            s = P256_ORDER - s

        sig = (
            bytes([P256_SIGNATURE_TYPE])
            + r.to_bytes(32, "big")
            + s.to_bytes(32, "big")
            + self.public_key_bytes
            + b"\x01"
        )
        assert len(sig) == P256_SIGNATURE_LENGTH
        return sig
