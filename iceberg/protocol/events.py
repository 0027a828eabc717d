"""
Iceberg Protocol Ledger Events

    Deposit(commitment, leafIndex, swapConfigId, timestamp)
    SwapResultRecorded(nullifierHash, tokenOut, amountOut)
    Withdrawal(nullifierHash, recipient, tokenOut, amount)

The Deposit log is the only way to map a commitment back to its leaf index
once later deposits have moved the root, so the log is append-only and kept
for the lifetime of the ledger.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Type, Union

from iceberg.constants import EVENT_DEPOSIT, EVENT_SWAP_RESULT_RECORDED, EVENT_WITHDRAWAL
from iceberg.core.asset import Asset, asset_from_address
from iceberg.core.types import Address, parse_amount
from iceberg.crypto.field import parse_field, to_hex32
from iceberg.errors import InvalidParameterError


@dataclass(frozen=True)
class DepositEvent:
    commitment: int
    leaf_index: int
    swap_config_id: int
    timestamp: int
    block_number: int = 0

    name = EVENT_DEPOSIT

    def to_dict(self) -> dict:
        return {
            "event": self.name,
            "blockNumber": self.block_number,
            "commitment": to_hex32(self.commitment),
            "leafIndex": self.leaf_index,
            "swapConfigId": self.swap_config_id,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DepositEvent":
        return cls(
            commitment=parse_field(data["commitment"]),
            leaf_index=int(data["leafIndex"]),
            swap_config_id=int(data["swapConfigId"]),
            timestamp=int(data["timestamp"]),
            block_number=int(data.get("blockNumber", 0)),
        )


@dataclass(frozen=True)
class SwapResultRecordedEvent:
    nullifier_hash: int
    token_out: Asset
    amount_out: int
    block_number: int = 0

    name = EVENT_SWAP_RESULT_RECORDED

    def to_dict(self) -> dict:
        return {
            "event": self.name,
            "blockNumber": self.block_number,
            "nullifierHash": to_hex32(self.nullifier_hash),
            "tokenOut": self.token_out.address.checksum,
            "amountOut": str(self.amount_out),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SwapResultRecordedEvent":
        return cls(
            nullifier_hash=parse_field(data["nullifierHash"]),
            token_out=asset_from_address(data["tokenOut"]),
            amount_out=parse_amount(data["amountOut"]),
            block_number=int(data.get("blockNumber", 0)),
        )


@dataclass(frozen=True)
class WithdrawalEvent:
    nullifier_hash: int
    recipient: Address
    token_out: Asset
    amount: int
    block_number: int = 0

    name = EVENT_WITHDRAWAL

    def to_dict(self) -> dict:
        return {
            "event": self.name,
            "blockNumber": self.block_number,
            "nullifierHash": to_hex32(self.nullifier_hash),
            "recipient": self.recipient.checksum,
            "tokenOut": self.token_out.address.checksum,
            "amount": str(self.amount),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WithdrawalEvent":
        return cls(
            nullifier_hash=parse_field(data["nullifierHash"]),
            recipient=Address.parse(data["recipient"]),
            token_out=asset_from_address(data["tokenOut"]),
            amount=parse_amount(data["amount"]),
            block_number=int(data.get("blockNumber", 0)),
        )


LedgerEvent = Union[DepositEvent, SwapResultRecordedEvent, WithdrawalEvent]

EVENT_TYPES: Dict[str, Type] = {
    EVENT_DEPOSIT: DepositEvent,
    EVENT_SWAP_RESULT_RECORDED: SwapResultRecordedEvent,
    EVENT_WITHDRAWAL: WithdrawalEvent,
}


def event_from_dict(data: dict) -> LedgerEvent:
    """
    Raises:
        InvalidParameterError: If the event name is unknown
    """
    cls = EVENT_TYPES.get(data.get("event", ""))
    if cls is None:
        raise InvalidParameterError("event", f"unknown event {data.get('event')!r}")
    return cls.from_dict(data)


@dataclass
class EventLog:
    """Append-only event log ordered by block."""
    _events: List[LedgerEvent] = field(default_factory=list)

    def append(self, event: LedgerEvent) -> None:
        self._events.append(event)

    def get_logs(
        self,
        name: str,
        from_block: int = 0,
        to_block: Optional[int] = None,
    ) -> List[LedgerEvent]:
        """
        Events of one kind within an inclusive block range.

        Raises:
            InvalidParameterError: If the event name is unknown
        """
        if name not in EVENT_TYPES:
            raise InvalidParameterError("eventName", f"unknown event {name!r}")
        return [
            e for e in self._events
            if e.name == name
            and e.block_number >= from_block
            and (to_block is None or e.block_number <= to_block)
        ]

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(self._events)

    def copy(self) -> "EventLog":
        return EventLog(list(self._events))
