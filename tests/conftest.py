"""Shared fixtures: a fake AsyncWeb3 for tests that talk to the ledger."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest


class FakeEth:
    """Stands in for ``AsyncWeb3.eth``; async properties resolve to fixed values."""

    def __init__(self, block_number=1_000, gas_price=1_000_000_000, chain_id=42431):
        self._block_number = block_number
        self._gas_price = gas_price
        self._chain_id = chain_id
        self.get_logs = AsyncMock(return_value=[])
        self.call = AsyncMock(return_value=(0).to_bytes(32, "big"))
        self.get_block = AsyncMock(side_effect=lambda n: {"timestamp": 1_700_000_000 + n})
        self.get_transaction_count = AsyncMock(return_value=7)
        self.send_raw_transaction = AsyncMock(return_value=b"\x12" * 32)
        self.wait_for_transaction_receipt = AsyncMock(
            return_value={"status": 1, "blockNumber": 1_001, "gasUsed": 50_000}
        )

    @staticmethod
    async def _value(value):
        if isinstance(value, Exception):
            raise value
        return value

    @property
    def block_number(self):
        return self._value(self._block_number)

    @property
    def gas_price(self):
        return self._value(self._gas_price)

    @property
    def chain_id(self):
        return self._value(self._chain_id)


@pytest.fixture
def fake_w3():
    return SimpleNamespace(eth=FakeEth())
