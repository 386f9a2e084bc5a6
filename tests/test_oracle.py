"""Tests for SpendingLimitOracle."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from helpers import ACCOUNT, KEY_A, TOKEN_X, TOKEN_Y
from tempo_keys.keychain import GET_REMAINING_LIMIT_SELECTOR, SPENDING_LIMIT_SELECTOR, SignatureType
from tempo_keys.oracle import LimitFailurePolicy, SpendingLimitOracle
from tempo_keys.types import pad_address


def word(value: int) -> bytes:
    return value.to_bytes(32, "big")


def answers(by_token: dict):
    """side_effect for ``eth.call`` answering per token (last calldata word)."""

    async def call(tx):
        token = "0x" + tx["data"][-40:]
        value = by_token[token]
        if isinstance(value, Exception):
            raise value
        return word(value)

    return call


class TestRemainingLimit:
    def test_reads_uint256(self, fake_w3):
        fake_w3.eth.call.return_value = word(250)

        remaining = asyncio.run(
            SpendingLimitOracle(fake_w3).remaining_limit(ACCOUNT, KEY_A, TOKEN_X)
        )

        assert remaining == 250
        tx = fake_w3.eth.call.await_args.args[0]
        assert tx["data"].startswith(GET_REMAINING_LIMIT_SELECTOR)
        assert tx["data"].endswith(pad_address(TOKEN_X))

    def test_legacy_abi(self, fake_w3):
        fake_w3.eth.call.return_value = word(1)

        asyncio.run(
            SpendingLimitOracle(fake_w3, legacy_abi=True).remaining_limit(ACCOUNT, KEY_A, TOKEN_X)
        )

        assert fake_w3.eth.call.await_args.args[0]["data"].startswith(SPENDING_LIMIT_SELECTOR)

    def test_malformed_result_raises(self, fake_w3):
        fake_w3.eth.call.return_value = b"\x01"

        with pytest.raises(ValueError):
            asyncio.run(SpendingLimitOracle(fake_w3).remaining_limit(ACCOUNT, KEY_A, TOKEN_X))

    def test_invalid_concurrency(self, fake_w3):
        with pytest.raises(ValueError):
            SpendingLimitOracle(fake_w3, max_concurrency=0)


class TestRemainingLimits:
    def test_reads_every_token(self, fake_w3):
        fake_w3.eth.call.side_effect = answers({TOKEN_X: 250, TOKEN_Y: 7})

        result = asyncio.run(
            SpendingLimitOracle(fake_w3).remaining_limits(ACCOUNT, KEY_A, [TOKEN_X, TOKEN_Y])
        )

        assert result.limits == {TOKEN_X: 250, TOKEN_Y: 7}
        assert result.unresolved == frozenset()

    def test_zero_remaining_omitted(self, fake_w3):
        fake_w3.eth.call.side_effect = answers({TOKEN_X: 0, TOKEN_Y: 7})

        result = asyncio.run(
            SpendingLimitOracle(fake_w3).remaining_limits(ACCOUNT, KEY_A, [TOKEN_X, TOKEN_Y])
        )

        assert result.limits == {TOKEN_Y: 7}
        assert result.unresolved == frozenset()

    def test_failed_read_unresolved_by_default(self, fake_w3):
        fake_w3.eth.call.side_effect = answers({TOKEN_X: ConnectionError("boom"), TOKEN_Y: 7})

        result = asyncio.run(
            SpendingLimitOracle(fake_w3).remaining_limits(ACCOUNT, KEY_A, [TOKEN_X, TOKEN_Y])
        )

        assert result.limits == {TOKEN_Y: 7}
        assert result.unresolved == {TOKEN_X}

    def test_failed_read_zero_policy(self, fake_w3):
        fake_w3.eth.call.side_effect = answers({TOKEN_X: ConnectionError("boom")})
        oracle = SpendingLimitOracle(fake_w3, failure_policy=LimitFailurePolicy.ZERO)

        result = asyncio.run(oracle.remaining_limits(ACCOUNT, KEY_A, [TOKEN_X]))

        assert result.limits == {TOKEN_X: 0}
        assert result.unresolved == frozenset()

    def test_duplicate_tokens_read_once(self, fake_w3):
        fake_w3.eth.call.side_effect = answers({TOKEN_X: 1})

        asyncio.run(
            SpendingLimitOracle(fake_w3).remaining_limits(
                ACCOUNT, KEY_A, [TOKEN_X, TOKEN_X.upper().replace("0X", "0x")]
            )
        )

        assert fake_w3.eth.call.await_count == 1

    def test_concurrency_bounded(self, fake_w3):
        tokens = ["0x" + f"{i:040x}" for i in range(1, 9)]
        active = 0
        peak = 0

        async def call(tx):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            active -= 1
            return word(1)

        fake_w3.eth.call = AsyncMock(side_effect=call)

        async def run():
            oracle = SpendingLimitOracle(fake_w3, max_concurrency=2)
            return await oracle.remaining_limits(ACCOUNT, KEY_A, tokens)

        result = asyncio.run(run())

        assert len(result.limits) == 8
        assert peak == 2


class TestGetKey:
    def test_existing_key(self, fake_w3):
        fake_w3.eth.call.return_value = (
            word(SignatureType.P256) + bytes(12) + bytes.fromhex(KEY_A[2:]) + word(0) + word(1) + word(0)
        )

        record = asyncio.run(SpendingLimitOracle(fake_w3).get_key(ACCOUNT, KEY_A))

        assert record.key_id.lower() == KEY_A
        assert record.enforce_limits is True

    def test_missing_key_returns_none(self, fake_w3):
        fake_w3.eth.call.return_value = bytes(160)

        assert asyncio.run(SpendingLimitOracle(fake_w3).get_key(ACCOUNT, KEY_A)) is None

    def test_account_equal_to_key_rejected(self, fake_w3):
        with pytest.raises(ValueError):
            asyncio.run(SpendingLimitOracle(fake_w3).get_key(ACCOUNT, ACCOUNT))
