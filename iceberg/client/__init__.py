"""
Iceberg Protocol Client Operations
"""

from iceberg.client.scanner import DepositScanner
from iceberg.client.wallet import (
    WithdrawStatus,
    authorize_swap,
    check_withdrawable,
    generate_withdrawal_proof,
)

__all__ = [
    "DepositScanner",
    "WithdrawStatus",
    "authorize_swap",
    "check_withdrawable",
    "generate_withdrawal_proof",
]
