"""Tests for TempoTransaction, keychain signatures and the builder."""

import pytest
import rlp
from eth_account import Account

from tempo_keys.builder import TempoTransactionBuilder
from tempo_keys.keychain import SignatureType, TRANSFER_SELECTOR, create_key_authorization
from tempo_keys.keypair import AccessKeyPair
from tempo_keys.models import (
    KEYCHAIN_SIGNATURE_TYPE,
    Call,
    KeychainSignature,
    Signature,
    TempoTransaction,
)

PRIVATE_KEY = "0x7eafbf9699b30c9ed8e3d6bbae57dd4f047544fde34d4c982dd591c2bee39ad0"
ROOT = Account.from_key(PRIVATE_KEY)
FEE_TOKEN = "0x20c000000000000000000000033abb6ac7d235e5"
TARGET = "0xF0109fC8DF283027b6285cc889F5aA624EaC1F55"


def make_tx(**overrides) -> TempoTransaction:
    builder = (
        TempoTransactionBuilder(chain_id=42431)
        .set_gas(300_000)
        .set_max_fee_per_gas(2_000_000_000)
        .set_max_priority_fee_per_gas(1_000_000_000)
        .set_fee_token(FEE_TOKEN)
        .add_call(TARGET)
    )
    for name, value in overrides.items():
        setattr(builder, name, value)
    return builder.build()


class TestValidate:
    def test_empty_calls(self):
        with pytest.raises(ValueError, match="at least one call"):
            TempoTransaction(chain_id=1, calls=()).validate()

    def test_invalid_chain_id(self):
        tx = TempoTransaction(chain_id=0, calls=(Call.create(to=TARGET),))

        with pytest.raises(ValueError, match="chain_id must be > 0"):
            tx.validate()

    def test_fee_mismatch(self):
        with pytest.raises(ValueError, match="cannot exceed"):
            make_tx(max_fee_per_gas=100, max_priority_fee_per_gas=200)

    def test_negative_call_value(self):
        with pytest.raises(ValueError):
            Call.create(to=TARGET, value=-1).validate()


class TestSignature:
    def test_round_trip(self):
        sig = Signature(r=1, s=2, v=27)

        assert Signature.from_bytes(sig.to_bytes()) == sig

    def test_invalid_length(self):
        with pytest.raises(ValueError, match="65 bytes"):
            Signature.from_bytes(b"\x00" * 64)


class TestRootSigning:
    def test_sign_returns_new_transaction(self):
        tx = make_tx()

        signed = tx.sign(PRIVATE_KEY)

        assert signed is not tx
        assert tx.sender_signature is None
        assert bytes(signed.sender_address) == bytes.fromhex(ROOT.address[2:])

    def test_signature_recovers_root(self):
        signed = make_tx().sign(ROOT)
        sig = signed.sender_signature

        recovered = Account._recover_hash(make_tx().get_signing_hash(), signature=sig.to_bytes())
        assert recovered == ROOT.address


class TestAccessKeySigning:
    def test_keychain_signature_layout(self):
        keypair = AccessKeyPair.generate()

        signed = make_tx().sign_access_key(keypair, ROOT.address)
        raw = signed.sender_signature.to_bytes()

        assert isinstance(signed.sender_signature, KeychainSignature)
        assert raw[0] == KEYCHAIN_SIGNATURE_TYPE
        assert raw[1:21] == bytes.fromhex(ROOT.address[2:])
        assert len(raw) == 1 + 20 + 130

    def test_secp256k1_access_key(self):
        keypair = AccessKeyPair.generate(SignatureType.SECP256K1)

        signed = make_tx().sign_access_key(keypair, ROOT.address)
        inner = signed.sender_signature.inner

        assert len(inner) == 65
        recovered = Account._recover_hash(signed.get_signing_hash(), signature=inner)
        assert recovered == keypair.address

    def test_sender_is_root(self):
        signed = make_tx().sign_access_key(AccessKeyPair.generate(), ROOT.address)

        assert bytes(signed.sender_address) == bytes.fromhex(ROOT.address[2:])

    def test_requires_root(self):
        with pytest.raises(ValueError):
            make_tx().sign_access_key(AccessKeyPair.generate(), "")

    def test_keychain_and_root_encodings_differ(self):
        tx = make_tx()

        assert tx.sign(PRIVATE_KEY).encode() != tx.sign_access_key(
            AccessKeyPair.generate(), ROOT.address
        ).encode()


class TestKeyAuthorizationField:
    def authorization(self, keypair):
        return create_key_authorization(
            key_id=keypair.address,
            chain_id=42431,
            expiry=1_893_456_000,
            limits=[{"token": FEE_TOKEN, "limit": 1000}],
        ).sign(ROOT)

    def test_changes_signing_hash(self):
        keypair = AccessKeyPair.generate()

        with_auth = make_tx(key_authorization=self.authorization(keypair))

        assert with_auth.get_signing_hash() != make_tx().get_signing_hash()

    def test_encoded_before_sender_signature(self):
        keypair = AccessKeyPair.generate()
        authorization = self.authorization(keypair)
        signed = make_tx(key_authorization=authorization).sign_access_key(keypair, ROOT.address)

        encoded = signed.encode()
        fields = rlp.decode(encoded[1:])

        assert encoded[0] == 0x76
        assert len(fields) == 15
        assert fields[-1] == signed.sender_signature.to_bytes()
        assert rlp.encode(fields[-2]) == authorization.rlp_encode()

    def test_absent_authorization_not_encoded(self):
        fields = rlp.decode(make_tx().sign(PRIVATE_KEY).encode()[1:])

        assert len(fields) == 14


class TestBuilder:
    def test_add_transfer(self):
        tx = (
            TempoTransactionBuilder(chain_id=42431)
            .set_gas(100_000)
            .add_transfer(FEE_TOKEN, TARGET, 5)
            .build()
        )

        call = tx.calls[0]
        assert bytes(call.to) == bytes.fromhex(FEE_TOKEN[2:])
        assert call.data[:4].hex() == TRANSFER_SELECTOR[2:]
        assert int.from_bytes(call.data[36:], "big") == 5

    def test_fields_passed_through(self):
        tx = (
            TempoTransactionBuilder(chain_id=42431)
            .set_nonce(3)
            .set_nonce_key(9)
            .set_valid_before(2_000)
            .set_fee_token(FEE_TOKEN)
            .add_call(TARGET, value=1)
            .add_access_list_item(TARGET, (b"\x00" * 32,))
            .build()
        )

        assert tx.nonce == 3
        assert tx.nonce_key == 9
        assert tx.valid_before == 2_000
        assert bytes(tx.fee_token) == bytes.fromhex(FEE_TOKEN[2:])
        assert tx.access_list[0].storage_keys == (b"\x00" * 32,)

    def test_build_validates(self):
        with pytest.raises(ValueError, match="at least one call"):
            TempoTransactionBuilder(chain_id=42431).build()
