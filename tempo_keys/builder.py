"""Builder pattern for constructing Tempo transactions."""

from dataclasses import dataclass, field
from typing import Optional

from .keychain import SignedKeyAuthorization, encode_transfer_calldata
from .models import AccessListItem, Call, TempoTransaction
from .types import Address, BytesLike, as_address


@dataclass
class TempoTransactionBuilder:
    """
    Fluent builder for constructing Tempo transactions.

    Example:
        tx = (TempoTransactionBuilder(chain_id=42431)
            .set_gas(300_000)
            .set_max_fee_per_gas(2_000_000_000)
            .set_fee_token("0x20c0...")
            .add_transfer(token, recipient, 1_000_000)
            .build())
    """

    chain_id: int = 1
    max_priority_fee_per_gas: int = 0
    max_fee_per_gas: int = 0
    gas_limit: int = 21_000
    nonce: int = 0
    nonce_key: int = 0
    valid_before: Optional[int] = None
    valid_after: Optional[int] = None
    fee_token: Optional[Address] = None
    key_authorization: Optional[SignedKeyAuthorization] = None
    access_list: list[AccessListItem] = field(default_factory=list)
    calls: list[Call] = field(default_factory=list)

    def set_gas(self, gas_limit: int) -> "TempoTransactionBuilder":
        self.gas_limit = gas_limit
        return self

    def set_max_fee_per_gas(self, max_fee: int) -> "TempoTransactionBuilder":
        self.max_fee_per_gas = max_fee
        return self

    def set_max_priority_fee_per_gas(
        self, priority_fee: int
    ) -> "TempoTransactionBuilder":
        self.max_priority_fee_per_gas = priority_fee
        return self

    def set_nonce(self, nonce: int) -> "TempoTransactionBuilder":
        self.nonce = nonce
        return self

    def set_nonce_key(self, nonce_key: int) -> "TempoTransactionBuilder":
        """Set the nonce key for 2D nonce system."""
        self.nonce_key = nonce_key
        return self

    def set_valid_before(self, timestamp: int) -> "TempoTransactionBuilder":
        self.valid_before = timestamp
        return self

    def set_fee_token(self, token: BytesLike) -> "TempoTransactionBuilder":
        self.fee_token = as_address(token)
        return self

    def set_key_authorization(
        self, authorization: SignedKeyAuthorization
    ) -> "TempoTransactionBuilder":
        """Attach a root-signed key authorization to provision an access key."""
        self.key_authorization = authorization
        return self

    def add_call(
        self,
        to: BytesLike,
        value: int = 0,
        data: BytesLike = b"",
    ) -> "TempoTransactionBuilder":
        self.calls.append(Call.create(to=to, value=value, data=data))
        return self

    def add_transfer(
        self, token: BytesLike, recipient: str, amount: int
    ) -> "TempoTransactionBuilder":
        """Add a TIP20 transfer(recipient, amount) call on ``token``."""
        return self.add_call(token, data=encode_transfer_calldata(recipient, amount))

    def add_access_list_item(
        self,
        address: BytesLike,
        storage_keys: tuple[BytesLike, ...] = (),
    ) -> "TempoTransactionBuilder":
        self.access_list.append(
            AccessListItem.create(address=address, storage_keys=storage_keys)
        )
        return self

    def build(self) -> TempoTransaction:
        """
        Build and validate the transaction.

        Raises:
            ValueError: If validation fails
        """
        tx = TempoTransaction(
            chain_id=self.chain_id,
            max_priority_fee_per_gas=self.max_priority_fee_per_gas,
            max_fee_per_gas=self.max_fee_per_gas,
            gas_limit=self.gas_limit,
            calls=tuple(self.calls),
            access_list=tuple(self.access_list),
            nonce_key=self.nonce_key,
            nonce=self.nonce,
            valid_before=self.valid_before,
            valid_after=self.valid_after,
            fee_token=self.fee_token,
            key_authorization=self.key_authorization,
        )
        tx.validate()
        return tx
