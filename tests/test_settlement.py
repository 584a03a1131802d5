"""Tests for the settlement seam."""

import asyncio
import random
import re

import pytest

from app.core.exceptions import SettlementFailed, SettlementTimeout
from app.schemas.registry_schema import TransactionRef
from app.services.settlement_service import SimulatedSettlement, settle_with_timeout


class SlowSettlement:
    async def settle(self) -> TransactionRef:
        await asyncio.sleep(5)
        return TransactionRef(hash="0x" + "0" * 64, block_number=1)


class BrokenSettlement:
    async def settle(self) -> TransactionRef:
        raise ConnectionError("node unreachable")


class MalformedSettlement:
    async def settle(self) -> TransactionRef:
        return TransactionRef(hash="0xabc", block_number=10)


class TestSimulatedSettlement:
    """Tests for SimulatedSettlement."""

    def test_returns_well_formed_reference(self) -> None:
        ref = asyncio.run(SimulatedSettlement(0, random.Random(1)).settle())

        assert re.fullmatch(r"0x[0-9a-f]{64}", ref.hash)
        assert 5_000_000 <= ref.block_number < 6_000_000

    def test_seeded_rng_is_deterministic(self) -> None:
        first = asyncio.run(SimulatedSettlement(0, random.Random(7)).settle())
        second = asyncio.run(SimulatedSettlement(0, random.Random(7)).settle())
        assert first == second

    def test_consecutive_settlements_differ(self) -> None:
        client = SimulatedSettlement(0, random.Random(3))

        async def settle_twice():
            return await client.settle(), await client.settle()

        first, second = asyncio.run(settle_twice())
        assert first.hash != second.hash


class TestSettleWithTimeout:
    """Tests for settle_with_timeout."""

    def test_passes_through_successful_settlement(self, settlement) -> None:
        ref = asyncio.run(settle_with_timeout(settlement, timeout=1))
        assert ref.hash.startswith("0x")

    def test_timeout_raises_settlement_timeout(self) -> None:
        with pytest.raises(SettlementTimeout):
            asyncio.run(settle_with_timeout(SlowSettlement(), timeout=0.01))

    def test_timeout_is_a_settlement_failure(self) -> None:
        assert issubclass(SettlementTimeout, SettlementFailed)

    def test_client_error_becomes_settlement_failed(self) -> None:
        with pytest.raises(SettlementFailed) as exc_info:
            asyncio.run(settle_with_timeout(BrokenSettlement(), timeout=1))
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    def test_malformed_reference_is_rejected(self) -> None:
        with pytest.raises(SettlementFailed):
            asyncio.run(settle_with_timeout(MalformedSettlement(), timeout=1))
