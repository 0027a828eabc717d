"""
Iceberg Protocol Deposit Scanner

Maps a commitment to its leaf index by scanning Deposit events.

The ledger's event index may lag the chain head, so an empty scan is not
proof of absence: the scan is retried with exponential backoff up to a
bounded budget, and the whole search is bounded by a timeout.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Optional, TYPE_CHECKING

from iceberg.constants import (
    EVENT_DEPOSIT,
    SCAN_BACKOFF_BASE_SEC,
    SCAN_BACKOFF_MAX_SEC,
    SCAN_CHUNK_BLOCKS,
    SCAN_LOOKBACK_BLOCKS,
    SCAN_RETRY_COUNT,
    SCAN_TIMEOUT_SEC,
)
from iceberg.crypto.field import parse_field, short_hex
from iceberg.errors import CommitmentNotFoundError, ErrorKind, IcebergError, ScanTimeoutError
from iceberg.protocol.events import DepositEvent
from iceberg.storage.events import EventStore

if TYPE_CHECKING:
    from iceberg.client.wallet import LedgerReader

logger = logging.getLogger(__name__)


def backoff_delay(attempt: int, base: float = SCAN_BACKOFF_BASE_SEC, cap: float = SCAN_BACKOFF_MAX_SEC) -> float:
    """Delay before retry number attempt + 1: base, 2*base, 4*base... up to cap."""
    return min(cap, base * (2 ** attempt))


class DepositScanner:
    """
    Commitment -> DepositEvent lookup.

    Args:
        ledger: Ledger to scan
        store: Optional local event index, synced before each attempt
        chunk_blocks: Block range per get_logs call
        lookback_blocks: How far behind the head to search (None: whole log)
        retries: Scan attempts before giving up
        backoff_base: First retry delay in seconds
        backoff_max: Retry delay cap in seconds
        timeout_sec: Bound on the whole search
    """

    def __init__(
        self,
        ledger: "LedgerReader",
        store: Optional[EventStore] = None,
        chunk_blocks: int = SCAN_CHUNK_BLOCKS,
        lookback_blocks: Optional[int] = SCAN_LOOKBACK_BLOCKS,
        retries: int = SCAN_RETRY_COUNT,
        backoff_base: float = SCAN_BACKOFF_BASE_SEC,
        backoff_max: float = SCAN_BACKOFF_MAX_SEC,
        timeout_sec: float = SCAN_TIMEOUT_SEC,
    ):
        self.ledger = ledger
        self.store = store
        self.chunk_blocks = max(1, chunk_blocks)
        self.lookback_blocks = lookback_blocks
        self.retries = max(1, retries)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.timeout_sec = timeout_sec

    async def find_deposit(self, commitment: int) -> DepositEvent:
        """
        Find the Deposit event of a commitment.

        Raises:
            CommitmentNotFoundError: If every attempt came back empty
            ScanTimeoutError: If the search exceeded timeout_sec
            IcebergError: Non-transient ledger errors, unchanged
        """
        commitment = parse_field(commitment)
        try:
            return await asyncio.wait_for(self._find_with_retries(commitment), timeout=self.timeout_sec)
        except asyncio.TimeoutError:
            raise ScanTimeoutError(self.timeout_sec) from None

    async def find_leaf_index(self, commitment: int) -> int:
        return (await self.find_deposit(commitment)).leaf_index

    async def _find_with_retries(self, commitment: int) -> DepositEvent:
        for attempt in range(self.retries):
            try:
                event = await self.scan_once(commitment)
            except IcebergError as e:
                if e.kind != ErrorKind.EXTERNAL:
                    raise
                logger.warning(f"Deposit scan attempt {attempt + 1} failed: {e.message}")
                event = None

            if event is not None:
                logger.debug(f"Commitment {short_hex(commitment)} found at leaf {event.leaf_index}")
                return event

            if attempt < self.retries - 1:
                delay = backoff_delay(attempt, self.backoff_base, self.backoff_max)
                logger.debug(f"Commitment {short_hex(commitment)} not indexed yet, retrying in {delay:.2f}s")
                await asyncio.sleep(delay)

        raise CommitmentNotFoundError(commitment, self.retries)

    async def scan_once(self, commitment: int) -> Optional[DepositEvent]:
        """One pass over the log, newest blocks first."""
        if self.store is not None:
            await self.store.sync(self.ledger)
            return await self.store.find_deposit(commitment)

        head = await self.ledger.block_number()
        lowest = 0 if self.lookback_blocks is None else max(0, head - self.lookback_blocks)

        to_block = head
        while to_block >= lowest:
            from_block = max(lowest, to_block - self.chunk_blocks + 1)
            for event in await self.ledger.get_logs(EVENT_DEPOSIT, from_block, to_block):
                if event.commitment == commitment:
                    return event
            to_block = from_block - 1
        return None
