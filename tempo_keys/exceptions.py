"""Exceptions raised by tempo_keys.

Argument validation raises ``ValueError`` like the rest of the package; the
classes below cover failures that callers are expected to handle.
"""

from typing import Optional

KEY_NOT_FOUND_MESSAGE = (
    "Access key not found in local storage. "
    "Keys created on another device cannot be used here."
)


class AccessKeyError(Exception):
    """Base class for access key failures."""


class KeyNotFoundError(AccessKeyError):
    """The vault has no private key for the requested access key.

    Not retryable: the key was generated somewhere else and its private key
    never existed in this store.
    """

    retryable = False

    def __init__(self, key_id: str):
        super().__init__(KEY_NOT_FOUND_MESSAGE)
        self.key_id = key_id


class LedgerReadError(AccessKeyError):
    """A ledger read needed to run a poll cycle failed."""


class SubmissionError(AccessKeyError):
    """Signing, submitting or confirming a transaction failed.

    ``creation`` carries the key creation record when the failure happened
    while provisioning a new key; the private key stays in the vault.
    """

    def __init__(
        self,
        message: str,
        *,
        tx_hash: Optional[str] = None,
        creation=None,
    ):
        super().__init__(message)
        self.tx_hash = tx_hash
        self.creation = creation
