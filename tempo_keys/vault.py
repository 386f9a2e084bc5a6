"""Local storage for access key private keys.

Each key lives under ``"accessKey:" + lowercase(address)`` and is stored as a
JSON object ``{"privateKey": base64(pkcs8 DER)}`` with an optional ``name``.
Storage is local to one machine: a key generated elsewhere is simply not here,
which callers surface as a non-retryable KeyNotFoundError.
"""

import base64
import binascii
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol, Union

from .exceptions import KeyNotFoundError

logger = logging.getLogger(__name__)

STORAGE_PREFIX = "accessKey:"


class KeyStore(Protocol):
    """String key/value store the vault writes through."""

    def get(self, name: str) -> Optional[str]: ...

    def put(self, name: str, value: str) -> None: ...

    def keys(self) -> list[str]: ...

    def delete(self, name: str) -> None: ...


class MemoryKeyStore:
    """Process-local store, mostly for tests and short-lived scripts."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data = dict(initial or {})

    def get(self, name: str) -> Optional[str]:
        return self._data.get(name)

    def put(self, name: str, value: str) -> None:
        self._data[name] = value

    def keys(self) -> list[str]:
        return list(self._data)

    def delete(self, name: str) -> None:
        self._data.pop(name, None)


class JsonFileKeyStore:
    """All entries in one JSON object on disk, rewritten atomically on change.

    The file is created through ``mkstemp`` and so is only readable by its owner.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not contain a JSON object")
        return data

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".keystore-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
        except BaseException:
            os.unlink(tmp)
            raise

    def get(self, name: str) -> Optional[str]:
        return self._load().get(name)

    def put(self, name: str, value: str) -> None:
        data = self._load()
        data[name] = value
        self._write(data)

    def keys(self) -> list[str]:
        return list(self._load())

    def delete(self, name: str) -> None:
        data = self._load()
        if data.pop(name, None) is not None:
            self._write(data)


def storage_key(address: str) -> str:
    if not address:
        raise ValueError("address is required")
    return STORAGE_PREFIX + address.lower()


class KeyVault:
    """Access key private keys addressed by the key's own address."""

    def __init__(self, store: KeyStore):
        self._store = store

    def _entry(self, address: str) -> Optional[dict]:
        raw = self._store.get(storage_key(address))
        if raw is None:
            return None
        try:
            entry = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable vault entry for %s", address)
            return None
        if not isinstance(entry, dict) or "privateKey" not in entry:
            logger.warning("Ignoring vault entry without privateKey for %s", address)
            return None
        return entry

    def put(self, address: str, private_key: bytes, name: Optional[str] = None) -> None:
        """Store PKCS#8 DER private key bytes for ``address``."""
        if not private_key:
            raise ValueError("private_key is required")
        entry = {"privateKey": base64.b64encode(private_key).decode("ascii")}
        if name and name.strip():
            entry["name"] = name.strip()
        self._store.put(storage_key(address), json.dumps(entry))

    def get(self, address: str) -> bytes:
        """PKCS#8 DER private key bytes.

        Raises:
            KeyNotFoundError: No usable entry exists for ``address`` in this store
        """
        entry = self._entry(address)
        if entry is None:
            raise KeyNotFoundError(address)
        try:
            return base64.b64decode(entry["privateKey"], validate=True)
        except (binascii.Error, TypeError) as e:
            logger.warning("Vault entry for %s is not valid base64: %s", address, e)
            raise KeyNotFoundError(address) from e

    def contains(self, address: str) -> bool:
        return self._entry(address) is not None

    def name(self, address: str) -> Optional[str]:
        entry = self._entry(address)
        return entry.get("name") if entry else None

    def list(self) -> list[str]:
        """Lowercase addresses of every stored key."""
        return sorted(
            name[len(STORAGE_PREFIX) :]
            for name in self._store.keys()
            if name.startswith(STORAGE_PREFIX)
        )

    def remove(self, address: str) -> None:
        self._store.delete(storage_key(address))
