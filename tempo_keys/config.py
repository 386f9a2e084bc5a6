"""Settings loaded from the environment (and a .env file, if present)."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .log_reader import DEFAULT_LOOKBACK_BLOCKS, MAX_LOG_RANGE
from .oracle import DEFAULT_MAX_CONCURRENCY, LimitFailurePolicy

DEFAULT_RPC_URL = "https://rpc.testnet.tempo.xyz"
# Fee token used for every access key flow, independent of the token moved
DEFAULT_FEE_TOKEN = "0x20c000000000000000000000033abb6ac7d235e5"
DEFAULT_GAS_LIMIT = 300_000
DEFAULT_VAULT_PATH = "~/.tempo/access-keys.json"


def _int(env, name: str, default: Optional[int]) -> Optional[int]:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw, 0)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _float(env, name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    rpc_url: str = DEFAULT_RPC_URL
    chain_id: Optional[int] = None
    fee_token: str = DEFAULT_FEE_TOKEN
    lookback_blocks: int = DEFAULT_LOOKBACK_BLOCKS
    poll_interval: float = 10.0
    pending_poll_interval: float = 2.0
    limit_read_concurrency: int = DEFAULT_MAX_CONCURRENCY
    limit_failure_policy: LimitFailurePolicy = LimitFailurePolicy.OMIT
    gas_limit: int = DEFAULT_GAS_LIMIT
    receipt_timeout: float = 120.0
    vault_path: Path = Path(DEFAULT_VAULT_PATH).expanduser()
    log_level: str = "INFO"

    def __post_init__(self):
        if not 0 < self.lookback_blocks < MAX_LOG_RANGE:
            raise ValueError(f"lookback_blocks must be between 1 and {MAX_LOG_RANGE - 1}")
        if self.poll_interval <= 0 or self.pending_poll_interval <= 0:
            raise ValueError("poll intervals must be > 0")
        if self.limit_read_concurrency <= 0:
            raise ValueError("limit_read_concurrency must be > 0")
        if self.gas_limit <= 0:
            raise ValueError("gas_limit must be > 0")

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, environ=None) -> "Settings":
        """Build settings from environment variables.

        ``environ`` defaults to ``os.environ`` after loading ``env_file``
        (or a ``.env`` in the working directory) without overriding values
        that are already set.
        """
        if environ is None:
            load_dotenv(env_file)
            environ = os.environ

        policy = environ.get("ACCESS_KEY_LIMIT_FAILURE_POLICY", "omit").lower()
        try:
            failure_policy = LimitFailurePolicy(policy)
        except ValueError:
            raise ValueError(
                f"ACCESS_KEY_LIMIT_FAILURE_POLICY must be 'omit' or 'zero', got {policy!r}"
            ) from None

        return cls(
            rpc_url=environ.get("TEMPO_RPC_URL", DEFAULT_RPC_URL),
            chain_id=_int(environ, "TEMPO_CHAIN_ID", None),
            fee_token=environ.get("TEMPO_FEE_TOKEN", DEFAULT_FEE_TOKEN),
            lookback_blocks=_int(
                environ, "ACCESS_KEY_LOOKBACK_BLOCKS", DEFAULT_LOOKBACK_BLOCKS
            ),
            poll_interval=_float(environ, "ACCESS_KEY_POLL_INTERVAL", 10.0),
            pending_poll_interval=_float(
                environ, "ACCESS_KEY_PENDING_POLL_INTERVAL", 2.0
            ),
            limit_read_concurrency=_int(
                environ, "ACCESS_KEY_LIMIT_CONCURRENCY", DEFAULT_MAX_CONCURRENCY
            ),
            limit_failure_policy=failure_policy,
            gas_limit=_int(environ, "ACCESS_KEY_GAS_LIMIT", DEFAULT_GAS_LIMIT),
            receipt_timeout=_float(environ, "ACCESS_KEY_RECEIPT_TIMEOUT", 120.0),
            vault_path=Path(
                environ.get("ACCESS_KEY_VAULT_PATH", DEFAULT_VAULT_PATH)
            ).expanduser(),
            log_level=environ.get("LOG_LEVEL", "INFO").upper(),
        )

    def web3(self):
        """AsyncWeb3 connected to ``rpc_url``."""
        from web3 import AsyncHTTPProvider, AsyncWeb3

        return AsyncWeb3(AsyncHTTPProvider(self.rpc_url))
