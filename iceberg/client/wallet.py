"""
Iceberg Protocol Client Operations

What a front end calls into:

    derive(passphrase)                                   -> DepositNote
    authorize_swap(note, configId, tokenOut, key, chain) -> (SwapAuthorization, signature)
    generate_withdrawal_proof(recipient, passphrase, ledger, prover)
    check_withdrawable(nullifierHash, ledger)

All secret material stays in this process; only the commitment, nullifier
hash and proof ever reach the ledger.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Tuple, Union

from eth_account import Account

from iceberg.client.scanner import DepositScanner
from iceberg.core.asset import Asset
from iceberg.core.types import Address
from iceberg.crypto.field import parse_field, short_hex, to_hex32
from iceberg.crypto.merkle import MerklePath
from iceberg.errors import InternalError
from iceberg.protocol.commitment import DepositNote, derive
from iceberg.protocol.events import LedgerEvent
from iceberg.protocol.registry import NullifierState, SwapResult
from iceberg.protocol.swap import SwapAuthorization
from iceberg.zk.circuit import WithdrawInputs
from iceberg.zk.proof import WithdrawalProof

logger = logging.getLogger(__name__)

# Attempts at reading a root and a path that belong together while other
# deposits keep moving the root
ROOT_READ_ATTEMPTS = 3

__all__ = [
    "LedgerReader",
    "WithdrawStatus",
    "derive",
    "authorize_swap",
    "generate_withdrawal_proof",
    "check_withdrawable",
]


class LedgerReader(Protocol):
    """Read side of a ledger; satisfied by Ledger and RemoteLedger."""

    async def instance_id(self) -> str: ...

    async def get_root(self) -> int: ...

    async def get_proof(self, leaf_index: int) -> MerklePath: ...

    async def is_known_root(self, root: int) -> bool: ...

    async def block_number(self) -> int: ...

    async def get_logs(self, event_name: str, from_block: int = 0,
                       to_block: Optional[int] = None) -> List[LedgerEvent]: ...

    async def is_consumed(self, nullifier_hash: int) -> bool: ...

    async def get_swap_result(self, nullifier_hash: int) -> Optional[SwapResult]: ...


class Prover(Protocol):
    async def prove(self, inputs: WithdrawInputs) -> WithdrawalProof: ...


class DepositLocator(Protocol):
    async def find_leaf_index(self, commitment: int) -> int: ...


@dataclass(frozen=True)
class WithdrawStatus:
    nullifier_hash: int
    state: NullifierState
    swap_result: Optional[SwapResult]

    @property
    def withdrawable(self) -> bool:
        return self.state == NullifierState.SWAPPED

    def to_dict(self) -> dict:
        return {
            "nullifierHash": to_hex32(self.nullifier_hash),
            "state": self.state.value,
            "withdrawable": self.withdrawable,
            "swapResult": self.swap_result.to_dict() if self.swap_result else None,
        }


def authorize_swap(
    note: DepositNote,
    swap_config_id: int,
    token_out: Asset,
    private_key: Union[bytes, str],
    chain_id: int,
) -> Tuple[SwapAuthorization, bytes]:
    """
    Sign the depositor's swap request for the operator.

    Returns:
        (authorization, 65-byte signature)
    """
    depositor = Address.from_hex(Account.from_key(private_key).address)
    authorization = SwapAuthorization(
        chain_id=chain_id,
        swap_config_id=swap_config_id,
        nullifier_hash=note.nullifier_hash,
        token_out=token_out,
        depositor=depositor,
    )
    return authorization, authorization.sign(private_key)


async def _read_path(ledger: LedgerReader, leaf_index: int, commitment: int) -> Tuple[int, MerklePath]:
    for attempt in range(ROOT_READ_ATTEMPTS):
        root = await ledger.get_root()
        path = await ledger.get_proof(leaf_index)
        if path.verify(root, commitment):
            return root, path
        logger.debug(f"Root moved while reading path for leaf {leaf_index} (attempt {attempt + 1})")
    raise InternalError(
        f"Ledger path for leaf {leaf_index} does not lead to its root",
        {"leaf_index": leaf_index, "commitment": to_hex32(commitment)},
    )


async def generate_withdrawal_proof(
    recipient: Address,
    passphrase: str,
    ledger: LedgerReader,
    prover: Prover,
    locator: Optional[DepositLocator] = None,
) -> WithdrawalProof:
    """
    Prove ownership of a deposit for a withdrawal to recipient.

    Args:
        recipient: Address the proof is bound to
        passphrase: Passphrase the deposit was made with
        ledger: Ledger (local or remote) holding the deposit
        prover: Proof pipeline (verifies locally before returning)
        locator: Deposit lookup (default: DepositScanner over ledger)

    Returns:
        Verified WithdrawalProof; contract_proof() gives the calldata layout

    Raises:
        CommitmentNotFoundError: If the deposit is not (yet) in the log
        ScanTimeoutError: If the scan did not finish in time
        WitnessError, ProverError, InvalidProofError: From the prover
    """
    if locator is None:
        locator = DepositScanner(ledger)

    note = derive(passphrase)
    leaf_index = await locator.find_leaf_index(note.commitment)
    root, path = await _read_path(ledger, leaf_index, note.commitment)

    inputs = WithdrawInputs.from_path(
        merkle_root=root,
        nullifier_hash=note.nullifier_hash,
        recipient=recipient.to_int(),
        nullifier=note.nullifier,
        secret=note.secret,
        path=path,
    )
    proof = await prover.prove(inputs)
    logger.info(f"Withdrawal proof for {short_hex(note.nullifier_hash)} bound to {recipient}")
    return proof


async def check_withdrawable(nullifier_hash: int, ledger: LedgerReader) -> WithdrawStatus:
    """Where a nullifier hash stands: unseen, swapped (withdrawable) or withdrawn."""
    nullifier_hash = parse_field(nullifier_hash)
    consumed = await ledger.is_consumed(nullifier_hash)
    result = await ledger.get_swap_result(nullifier_hash)

    if consumed:
        state = NullifierState.WITHDRAWN
    elif result is not None:
        state = NullifierState.SWAPPED
    else:
        state = NullifierState.UNSEEN
    return WithdrawStatus(nullifier_hash, state, result)
