"""Create, use and revoke access keys on behalf of a root account.

Creation stores the new private key in the vault before anything is signed, so
a key that reaches the ledger always has its private key on this machine. The
vault entry is never removed on failure; a retry can reuse or discard it.
"""

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from eth_account import Account
from eth_utils import to_hex

from .access_key import NEVER_EXPIRES, PendingKey
from .builder import TempoTransactionBuilder
from .exceptions import AccessKeyError, SubmissionError
from .keychain import (
    ACCOUNT_KEYCHAIN_ADDRESS,
    ZERO_ADDRESS,
    RevokeKeyRequest,
    SignatureType,
    TokenLimit,
    create_key_authorization,
)
from .keypair import AccessKeyPair
from .models import TempoTransaction
from .overlay import OptimisticOverlay
from .types import same_address

logger = logging.getLogger(__name__)

DEFAULT_GAS_LIMIT = 300_000
DEFAULT_RECEIPT_TIMEOUT = 120.0
# Used when the node reports no gas price
FALLBACK_GAS_PRICE = 2_000_000_000

SECONDS_PER_DAY = 24 * 60 * 60


def expiry_after(days: float, now: Optional[float] = None) -> int:
    """Unix expiry ``days`` from ``now``; non-positive values mean one day."""
    if now is None:
        now = time.time()
    seconds = days * SECONDS_PER_DAY if days > 0 else SECONDS_PER_DAY
    return int(now + seconds)


class KeyCreationState(enum.Enum):
    IDLE = "idle"
    KEYPAIR_STORED = "keypair_stored"
    AUTHORIZATION_SIGNED = "authorization_signed"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class KeyCreation:
    """Progress of one access key creation."""

    state: KeyCreationState = KeyCreationState.IDLE
    key_id: Optional[str] = None
    expiry: int = NEVER_EXPIRES
    limits: list[TokenLimit] = field(default_factory=list)
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class TxResult:
    tx_hash: str
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    status: int = 1


def _signing_account(root_account):
    """LocalAccount for a root given as LocalAccount, hex key or key bytes."""
    return Account.from_key(getattr(root_account, "key", root_account))


def _root_address(root_account) -> str:
    return getattr(root_account, "address", root_account)


def _token_limits(limits) -> list[TokenLimit]:
    return [
        lim if isinstance(lim, TokenLimit) else TokenLimit(lim["token"], lim["limit"])
        for lim in (limits or [])
    ]


class DelegatedSigner:
    """Builds, signs and submits Tempo transactions for access key flows.

    Fees are always paid in ``fee_token``, regardless of which token a
    delegated spend moves.

    Args:
        w3: AsyncWeb3 instance
        vault: KeyVault holding access key private keys
        chain_id: Chain to sign for; read from the node when None
        fee_token: TIP20 token used to pay fees
        gas_limit: Gas limit for every submitted transaction
        receipt_timeout: Seconds to wait for a receipt
        overlay: OptimisticOverlay to record pending and revoking keys in
    """

    def __init__(
        self,
        w3,
        vault,
        *,
        chain_id: Optional[int] = None,
        fee_token: str,
        gas_limit: int = DEFAULT_GAS_LIMIT,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
        overlay: Optional[OptimisticOverlay] = None,
    ):
        if not fee_token:
            raise ValueError("fee_token is required")
        self._w3 = w3
        self.vault = vault
        self.chain_id = chain_id
        self.fee_token = fee_token
        self.gas_limit = gas_limit
        self.receipt_timeout = receipt_timeout
        self.overlay = overlay

    async def _chain_id(self) -> int:
        if self.chain_id is None:
            self.chain_id = int(await self._w3.eth.chain_id)
        return self.chain_id

    async def _builder(self, sender: str) -> TempoTransactionBuilder:
        chain_id = await self._chain_id()
        nonce = await self._w3.eth.get_transaction_count(sender)
        gas_price = await self._w3.eth.gas_price or FALLBACK_GAS_PRICE
        return (
            TempoTransactionBuilder(chain_id=chain_id)
            .set_gas(self.gas_limit)
            .set_max_fee_per_gas(gas_price * 2)
            .set_max_priority_fee_per_gas(gas_price)
            .set_nonce(nonce)
            .set_fee_token(self.fee_token)
        )

    async def _submit(self, tx: TempoTransaction) -> str:
        return to_hex(await self._w3.eth.send_raw_transaction(tx.encode()))

    async def _wait(self, tx_hash: str) -> TxResult:
        receipt = await self._w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=self.receipt_timeout
        )
        result = TxResult(
            tx_hash=tx_hash,
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
            status=receipt.get("status", 1),
        )
        if result.status == 0:
            raise SubmissionError(f"transaction {tx_hash} reverted", tx_hash=tx_hash)
        return result

    async def create_access_key(
        self,
        root_account,
        *,
        expiry: int = NEVER_EXPIRES,
        limits=None,
        signature_type: int = SignatureType.P256,
        name: Optional[str] = None,
    ) -> KeyCreation:
        """Generate a key, authorize it from ``root_account`` and wait for inclusion.

        ``limits`` takes TokenLimit objects or dicts with 'token' and 'limit'.
        ``expiry`` of 0 never expires.

        Raises:
            SubmissionError: Signing, submission or confirmation failed; the
                error's ``creation`` holds the record and the private key is
                still in the vault
        """
        root = _signing_account(root_account)
        token_limits = _token_limits(limits)
        creation = KeyCreation(expiry=expiry, limits=token_limits)

        keypair = AccessKeyPair.generate(signature_type)
        self.vault.put(keypair.address, keypair.to_pkcs8(), name=name)
        creation.key_id = keypair.address
        creation.state = KeyCreationState.KEYPAIR_STORED
        logger.info("Stored new access key %s for %s", keypair.address, root.address)

        try:
            authorization = create_key_authorization(
                key_id=keypair.address,
                chain_id=await self._chain_id(),
                key_type=signature_type,
                expiry=None if expiry == NEVER_EXPIRES else expiry,
                limits=token_limits or None,
            ).sign(root)
            creation.state = KeyCreationState.AUTHORIZATION_SIGNED

            builder = await self._builder(root.address)
            tx = (
                builder.set_key_authorization(authorization)
                .add_call(ZERO_ADDRESS)
                .build()
                .sign_access_key(keypair, root.address)
            )

            creation.tx_hash = await self._submit(tx)
            creation.state = KeyCreationState.SUBMITTED
            if self.overlay is not None:
                first = token_limits[0] if token_limits else None
                self.overlay.add_pending(
                    PendingKey(
                        key_id=keypair.address,
                        expiry=expiry,
                        token_address=first.token if first else None,
                        spending_limit=first.limit if first else None,
                        tx_hash=creation.tx_hash,
                    )
                )

            result = await self._wait(creation.tx_hash)
        except Exception as e:
            if self.overlay is not None:
                self.overlay.discard_pending(keypair.address)
            creation.state = KeyCreationState.FAILED
            creation.error = str(e)
            logger.error("Access key %s creation failed: %s", keypair.address, e)
            raise SubmissionError(
                f"access key creation failed: {e}",
                tx_hash=creation.tx_hash,
                creation=creation,
            ) from e

        creation.block_number = result.block_number
        creation.state = KeyCreationState.CONFIRMED
        logger.info(
            "Access key %s authorized in block %s", keypair.address, result.block_number
        )
        return creation

    async def send(
        self,
        root_account,
        key_id: str,
        to: str,
        data: bytes = b"",
        value: int = 0,
    ) -> TxResult:
        """Sign a call with access key ``key_id`` on behalf of ``root_account``.

        ``root_account`` may be a LocalAccount or just the root address; the
        root's private key is not needed.

        Raises:
            KeyNotFoundError: The key's private key is not in this vault
            SubmissionError: Submission failed or the transaction reverted
        """
        return await self._send_delegated(
            root_account, key_id, lambda b: b.add_call(to, value=value, data=data)
        )

    async def transfer(
        self,
        root_account,
        key_id: str,
        token: str,
        recipient: str,
        amount: int,
    ) -> TxResult:
        """TIP20 transfer of ``amount`` of ``token`` signed by access key ``key_id``."""
        return await self._send_delegated(
            root_account, key_id, lambda b: b.add_transfer(token, recipient, amount)
        )

    async def _send_delegated(
        self,
        root_account,
        key_id: str,
        add_calls: Callable[[TempoTransactionBuilder], TempoTransactionBuilder],
    ) -> TxResult:
        keypair = AccessKeyPair.from_pkcs8(self.vault.get(key_id))
        if not same_address(keypair.address, key_id):
            raise AccessKeyError(
                f"vault entry for {key_id} holds key {keypair.address}"
            )
        root = _root_address(root_account)

        tx_hash = None
        try:
            builder = await self._builder(root)
            tx = add_calls(builder).build().sign_access_key(keypair, root)
            tx_hash = await self._submit(tx)
            logger.info("Submitted %s with access key %s", tx_hash, key_id)
            return await self._wait(tx_hash)
        except SubmissionError:
            raise
        except Exception as e:
            raise SubmissionError(
                f"delegated transaction failed: {e}", tx_hash=tx_hash
            ) from e

    async def revoke_access_key(self, root_account, key_id: str) -> TxResult:
        """Revoke ``key_id`` with a transaction signed by the root account.

        The key is shown as revoking from submission until a poll no longer
        finds it on-chain.
        """
        root = _signing_account(root_account)
        calldata = RevokeKeyRequest(key_id).calldata()

        tx_hash = None
        try:
            builder = await self._builder(root.address)
            tx = builder.add_call(ACCOUNT_KEYCHAIN_ADDRESS, data=calldata).build().sign(root)
            tx_hash = await self._submit(tx)
            if self.overlay is not None:
                self.overlay.mark_revoking(key_id, tx_hash)
            result = await self._wait(tx_hash)
        except Exception as e:
            if self.overlay is not None:
                self.overlay.unmark_revoking(key_id)
            logger.error("Revoking access key %s failed: %s", key_id, e)
            if isinstance(e, SubmissionError):
                raise
            raise SubmissionError(f"revoke failed: {e}", tx_hash=tx_hash) from e

        logger.info("Access key %s revoked in block %s", key_id, result.block_number)
        return result
