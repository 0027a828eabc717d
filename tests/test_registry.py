"""
Iceberg Protocol Nullifier Registry Tests
"""

import threading

import pytest

from iceberg.core.asset import NATIVE
from iceberg.errors import AlreadySwappedError, AlreadyWithdrawnError, NoSwapResultError
from iceberg.protocol.registry import NullifierRegistry, NullifierState, SwapResult

from conftest import USDC


@pytest.fixture
def registry():
    return NullifierRegistry()


class TestNullifierRegistry:
    """UNSEEN -> SWAPPED -> WITHDRAWN."""

    def test_initial_state(self, registry):
        """Unknown nullifier hashes are unseen."""
        assert registry.state(42) == NullifierState.UNSEEN
        assert registry.get_swap_result(42) is None
        assert not registry.is_consumed(42)

    def test_record_then_consume(self, registry):
        """A recorded result is returned once."""
        result = SwapResult(USDC, 500_000)
        registry.record(42, result)
        assert registry.state(42) == NullifierState.SWAPPED
        assert registry.consume_and_get(42) == result
        assert registry.state(42) == NullifierState.WITHDRAWN
        assert registry.is_consumed(42)

    def test_record_twice(self, registry):
        """Second record fails and leaves the first result."""
        registry.record(42, SwapResult(USDC, 1))
        with pytest.raises(AlreadySwappedError):
            registry.record(42, SwapResult(NATIVE, 2))
        assert registry.get_swap_result(42) == SwapResult(USDC, 1)

    def test_consume_twice(self, registry):
        """Second consume fails."""
        registry.record(42, SwapResult(USDC, 1))
        registry.consume_and_get(42)
        with pytest.raises(AlreadyWithdrawnError):
            registry.consume_and_get(42)

    def test_consume_without_swap(self, registry):
        """Nothing to consume before a swap; state is unchanged."""
        with pytest.raises(NoSwapResultError):
            registry.consume_and_get(42)
        assert registry.state(42) == NullifierState.UNSEEN

    def test_record_after_withdrawal(self, registry):
        """A withdrawn nullifier hash can never be swapped again."""
        registry.record(42, SwapResult(USDC, 1))
        registry.consume_and_get(42)
        with pytest.raises(AlreadySwappedError):
            registry.record(42, SwapResult(USDC, 1))

    def test_concurrent_consume(self, registry):
        """Of many racing consumers exactly one wins."""
        registry.record(42, SwapResult(USDC, 1))
        wins, losses = [], []
        barrier = threading.Barrier(8)

        def consume():
            barrier.wait()
            try:
                wins.append(registry.consume_and_get(42))
            except AlreadyWithdrawnError:
                losses.append(1)

        threads = [threading.Thread(target=consume) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(wins) == 1
        assert len(losses) == 7

    def test_copy_is_independent(self, registry):
        """Changes to a copy do not leak back."""
        registry.record(1, SwapResult(USDC, 1))
        clone = registry.copy()
        clone.record(2, SwapResult(USDC, 2))
        clone.consume_and_get(1)
        assert registry.state(1) == NullifierState.SWAPPED
        assert registry.state(2) == NullifierState.UNSEEN


class TestSwapResult:
    """JSON form."""

    def test_dict_roundtrip(self):
        """tokenOut as checksummed address, amount as decimal string."""
        result = SwapResult(USDC, 500_000)
        data = result.to_dict()
        assert data == {"tokenOut": USDC.address.checksum, "amount": "500000"}
        assert SwapResult.from_dict(data) == result

    def test_native_uses_zero_address(self):
        """The native coin serializes as the zero address."""
        data = SwapResult(NATIVE, 1).to_dict()
        assert data["tokenOut"] == "0x0000000000000000000000000000000000000000"
        assert SwapResult.from_dict(data).token_out == NATIVE
