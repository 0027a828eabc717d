"""
Iceberg Protocol Swap Aggregator
"""

from iceberg.aggregator.payload import ExecutionPayload, SwapDescription, decode_swap_calldata
from iceberg.aggregator.oneinch import OneInchClient, Quote
from iceberg.aggregator.mock import MockAggregator, MinimumFillExecutor

__all__ = [
    "ExecutionPayload",
    "SwapDescription",
    "decode_swap_calldata",
    "OneInchClient",
    "Quote",
    "MockAggregator",
    "MinimumFillExecutor",
]
