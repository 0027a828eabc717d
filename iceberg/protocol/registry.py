"""
Iceberg Protocol Nullifier Registry

Explicit key-value store keyed by nullifier hash:

    swap_results[nh] = SwapResult(token_out, amount)   written once by record()
    consumed[nh]     = True                            written once by consume_and_get()

Per nullifier hash the state only moves forward:

    UNSEEN -> SWAPPED -> WITHDRAWN

Both writes are check-and-set under one lock, so two callers can never both
record a swap or both consume the same nullifier hash.
"""

from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Set

from iceberg.core.asset import Asset, asset_from_address, asset_to_dict
from iceberg.core.types import parse_amount
from iceberg.crypto.field import parse_field, short_hex
from iceberg.errors import AlreadySwappedError, AlreadyWithdrawnError, NoSwapResultError

logger = logging.getLogger(__name__)


class NullifierState(Enum):
    UNSEEN = "unseen"
    SWAPPED = "swapped"
    WITHDRAWN = "withdrawn"


@dataclass(frozen=True)
class SwapResult:
    """Output of a recorded swap, claimable once by withdrawal."""
    token_out: Asset
    amount: int

    def to_dict(self) -> dict:
        return {
            "tokenOut": asset_to_dict(self.token_out)["address"],
            "amount": str(self.amount),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SwapResult":
        return cls(
            token_out=asset_from_address(data["tokenOut"]),
            amount=parse_amount(data["amount"]),
        )


class NullifierRegistry:
    """Swap results and consumed flags with atomic transitions."""

    def __init__(self):
        self._lock = threading.Lock()
        self._swap_results: Dict[int, SwapResult] = {}
        self._consumed: Set[int] = set()

    def record(self, nullifier_hash: int, result: SwapResult) -> None:
        """
        UNSEEN -> SWAPPED.

        Raises:
            AlreadySwappedError: If a result is already stored
        """
        nullifier_hash = parse_field(nullifier_hash)
        with self._lock:
            if nullifier_hash in self._swap_results:
                raise AlreadySwappedError(nullifier_hash)
            self._swap_results[nullifier_hash] = result
        logger.debug(f"Swap result stored for {short_hex(nullifier_hash)}")

    def has_swap(self, nullifier_hash: int) -> bool:
        return nullifier_hash in self._swap_results

    def consume_and_get(self, nullifier_hash: int) -> SwapResult:
        """
        SWAPPED -> WITHDRAWN, returning the stored result.

        Raises:
            AlreadyWithdrawnError: If already consumed
            NoSwapResultError: If no swap was ever recorded
        """
        nullifier_hash = parse_field(nullifier_hash)
        with self._lock:
            if nullifier_hash in self._consumed:
                raise AlreadyWithdrawnError(nullifier_hash)
            result = self._swap_results.get(nullifier_hash)
            if result is None:
                raise NoSwapResultError(nullifier_hash)
            self._consumed.add(nullifier_hash)
        logger.debug(f"Nullifier hash {short_hex(nullifier_hash)} consumed")
        return result

    def is_consumed(self, nullifier_hash: int) -> bool:
        return nullifier_hash in self._consumed

    def get_swap_result(self, nullifier_hash: int) -> Optional[SwapResult]:
        return self._swap_results.get(nullifier_hash)

    def state(self, nullifier_hash: int) -> NullifierState:
        if nullifier_hash in self._consumed:
            return NullifierState.WITHDRAWN
        if nullifier_hash in self._swap_results:
            return NullifierState.SWAPPED
        return NullifierState.UNSEEN

    def __len__(self) -> int:
        return len(self._swap_results)

    def copy(self) -> "NullifierRegistry":
        with self._lock:
            clone = NullifierRegistry()
            clone._swap_results = dict(self._swap_results)
            clone._consumed = set(self._consumed)
        return clone
