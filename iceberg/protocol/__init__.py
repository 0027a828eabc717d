"""
Iceberg Protocol Pool State Machine
"""

from iceberg.protocol.commitment import DepositNote, derive
from iceberg.protocol.registry import NullifierRegistry, NullifierState, SwapResult
from iceberg.protocol.swap import (
    DepositAsset,
    SwapAuthorization,
    SwapConfig,
    SwapConfigRegistry,
    SwapOperator,
    describe_swap_config,
    validate_payload,
)
from iceberg.protocol.events import (
    DepositEvent,
    SwapResultRecordedEvent,
    WithdrawalEvent,
    EventLog,
)
from iceberg.protocol.ledger import Ledger

__all__ = [
    "DepositNote",
    "derive",
    # Nullifiers
    "NullifierRegistry",
    "NullifierState",
    "SwapResult",
    # Swaps
    "DepositAsset",
    "SwapAuthorization",
    "SwapConfig",
    "SwapConfigRegistry",
    "SwapOperator",
    "describe_swap_config",
    "validate_payload",
    # Events
    "DepositEvent",
    "SwapResultRecordedEvent",
    "WithdrawalEvent",
    "EventLog",
    "Ledger",
]
