"""
tempo_keys - access key management for Tempo accounts

Reconstructs an account's access keys from AccountKeychain events, reads their
remaining spending limits, and creates, uses and revokes keys with Tempo
transactions (Type 0x76).
"""

from .access_key import NEVER_EXPIRES, AccessKey, PendingKey
from .builder import TempoTransactionBuilder
from .config import Settings
from .exceptions import (
    AccessKeyError,
    KeyNotFoundError,
    LedgerReadError,
    SubmissionError,
)
from .keychain import (
    ACCOUNT_KEYCHAIN_ADDRESS,
    KeyAuthorization,
    SignatureType,
    SignedKeyAuthorization,
    TokenLimit,
    create_key_authorization,
)
from .keypair import AccessKeyPair
from .log import configure_logging
from .log_reader import KeyEventLog, LedgerLogReader
from .models import Call, KeychainSignature, Signature, TempoTransaction
from .monitor import AccessKeyMonitor, AccessKeysSnapshot
from .oracle import LimitFailurePolicy, SpendingLimitOracle
from .overlay import KeyStatus, KeyView, OptimisticOverlay
from .reconciler import reconcile
from .signer import DelegatedSigner, KeyCreation, KeyCreationState, TxResult, expiry_after
from .vault import JsonFileKeyStore, KeyVault, MemoryKeyStore

__version__ = "0.1.0"

__all__ = [
    "ACCOUNT_KEYCHAIN_ADDRESS",
    "NEVER_EXPIRES",
    "AccessKey",
    "AccessKeyError",
    "AccessKeyMonitor",
    "AccessKeyPair",
    "AccessKeysSnapshot",
    "Call",
    "DelegatedSigner",
    "JsonFileKeyStore",
    "KeyAuthorization",
    "KeyCreation",
    "KeyCreationState",
    "KeyEventLog",
    "KeyNotFoundError",
    "KeyStatus",
    "KeyVault",
    "KeyView",
    "KeychainSignature",
    "LedgerLogReader",
    "LedgerReadError",
    "LimitFailurePolicy",
    "MemoryKeyStore",
    "OptimisticOverlay",
    "PendingKey",
    "Settings",
    "Signature",
    "SignatureType",
    "SignedKeyAuthorization",
    "SpendingLimitOracle",
    "SubmissionError",
    "TempoTransaction",
    "TempoTransactionBuilder",
    "TokenLimit",
    "TxResult",
    "configure_logging",
    "create_key_authorization",
    "expiry_after",
    "reconcile",
]
