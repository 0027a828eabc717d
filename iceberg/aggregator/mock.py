"""
Iceberg Protocol Mock Aggregator

Offline quote/execution oracle for tests and local pools. Quotes come from a
fixed rate table, payloads are ABI-encoded exactly like the live router
calldata, and execute() fills at the quoted price (optionally worse, to
exercise the slippage check).
"""

from __future__ import annotations
import logging
from typing import Dict, List, Optional, Tuple

from iceberg.aggregator.oneinch import Quote
from iceberg.aggregator.payload import ExecutionPayload, SwapDescription, build_payload
from iceberg.constants import ARBITRUM_USDC, DEFAULT_SLIPPAGE_BPS, MAX_SLIPPAGE_BPS
from iceberg.core.asset import NATIVE, Asset, Fungible
from iceberg.core.types import Address, parse_amount
from iceberg.errors import AggregatorAPIError, InvalidParameterError

logger = logging.getLogger(__name__)

# Rate as (numerator, denominator) in base units of the two assets
Rate = Tuple[int, int]

MOCK_EXECUTOR = Address.from_hex("0xe37e799d5077682fa0a244d46e5649f71457bd09")
MOCK_INNER_DATA = b"iceberg-mock-route"


def default_rates() -> Dict[Tuple[Asset, Asset], Rate]:
    """ETH at 2500 USDC (18 -> 6 decimals) and back."""
    usdc = Fungible(Address.from_hex(ARBITRUM_USDC))
    return {
        (NATIVE, usdc): (2500, 10 ** 12),
        (usdc, NATIVE): (10 ** 12, 2500),
    }


class MockAggregator:
    """
    Deterministic aggregator.

    Args:
        rates: Price table keyed by (src, dst)
        executor: Executor address written into payloads
        fill_bps: Share of the quote actually delivered by execute()
    """

    def __init__(
        self,
        rates: Optional[Dict[Tuple[Asset, Asset], Rate]] = None,
        executor: Address = MOCK_EXECUTOR,
        fill_bps: int = 10_000,
    ):
        self.rates = rates if rates is not None else default_rates()
        self.executor = executor
        self.fill_bps = fill_bps
        self.executed: List[ExecutionPayload] = []

    def set_rate(self, src: Asset, dst: Asset, numerator: int, denominator: int) -> None:
        self.rates[(src, dst)] = (numerator, denominator)

    def expected_out(self, src: Asset, dst: Asset, amount: int) -> int:
        """
        Raises:
            AggregatorAPIError: If there is no rate for the pair
        """
        rate = self.rates.get((src, dst))
        if rate is None:
            raise AggregatorAPIError(400, f"no route {src} -> {dst}", "quote")
        numerator, denominator = rate
        return parse_amount(amount) * numerator // denominator

    async def quote(self, src: Asset, dst: Asset, amount: int) -> Quote:
        return Quote(src, dst, parse_amount(amount), self.expected_out(src, dst, amount))

    async def build_execution(
        self,
        src: Asset,
        dst: Asset,
        amount: int,
        from_address: Address,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
    ) -> ExecutionPayload:
        if slippage_bps < 0 or slippage_bps > MAX_SLIPPAGE_BPS:
            raise InvalidParameterError("slippageBps", f"must be in [0, {MAX_SLIPPAGE_BPS}]")

        expected = self.expected_out(src, dst, amount)
        desc = SwapDescription(
            src_token=Address.from_hex(src.api_address),
            dst_token=Address.from_hex(dst.api_address),
            src_receiver=self.executor,
            dst_receiver=from_address,
            amount=parse_amount(amount),
            min_return_amount=expected * (10_000 - slippage_bps) // 10_000,
        )
        return build_payload(self.executor, desc, MOCK_INNER_DATA)

    def execute(self, payload: ExecutionPayload, recipient: Address) -> int:
        """Fill a payload; returns the amount of dstToken delivered to recipient."""
        desc = payload.desc
        amount_out = self.expected_out(desc.src_asset, desc.dst_asset, desc.amount)
        amount_out = amount_out * self.fill_bps // 10_000
        self.executed.append(payload)
        logger.debug(f"Mock fill {desc.amount} {desc.src_asset} -> {amount_out} {desc.dst_asset} for {recipient}")
        return amount_out


class MinimumFillExecutor:
    """
    Router stand-in for live-quoted payloads: delivers exactly the payload's
    minReturnAmount.
    """

    def execute(self, payload: ExecutionPayload, recipient: Address) -> int:
        logger.debug(f"Filling {payload.desc.amount} {payload.desc.src_asset} at minimum return for {recipient}")
        return payload.desc.min_return_amount
