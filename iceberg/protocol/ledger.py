"""
Iceberg Protocol Ledger

The pool's state machine:

    insert(commitment, swapConfigId, depositor)      Deposit
    recordSwap(nh, swapConfigId, tokenOut, payload)  SwapResultRecorded   [operator]
    withdraw(nh, recipient, proof)                   Withdrawal

Every mutating call is one transaction. It takes the ledger lock, works on a
copy of the state and swaps the copy in only if every step succeeded, so a
raised error always means "rejected, nothing changed". Committed
transactions advance the block number by one and stamp their events with it.

Reads never take the lock; they see the last committed state.
"""

from __future__ import annotations
import asyncio
import logging
import time
import uuid
from concurrent.futures import Executor
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, List, Optional, Protocol, Union

from iceberg.aggregator.payload import ExecutionPayload, decode_swap_calldata
from iceberg.constants import MERKLE_TREE_DEPTH
from iceberg.core.asset import Asset, Vault
from iceberg.core.types import Address, parse_amount
from iceberg.crypto.field import parse_field, short_hex
from iceberg.crypto.merkle import MerkleAccumulator, MerklePath
from iceberg.errors import (
    AlreadySwappedError,
    IcebergError,
    InsufficientFundsError,
    InvalidProofError,
    PublicSignalMismatchError,
    SlippageExceededError,
    TransferFailedError,
    UnauthorizedError,
    UnknownRootError,
)
from iceberg.protocol.events import (
    DepositEvent,
    EventLog,
    LedgerEvent,
    SwapResultRecordedEvent,
    WithdrawalEvent,
)
from iceberg.protocol.registry import NullifierRegistry, SwapResult
from iceberg.protocol.swap import SwapConfig, SwapConfigRegistry, validate_payload
from iceberg.zk.groth16 import Groth16Verifier
from iceberg.zk.proof import WithdrawalProof

logger = logging.getLogger(__name__)


class SwapExecutor(Protocol):
    """Runs a validated router call and reports the amount received."""

    def execute(self, payload: ExecutionPayload, recipient: Address) -> int:
        ...


@dataclass
class LedgerState:
    """Everything a transaction may change."""
    tree: MerkleAccumulator
    registry: NullifierRegistry = field(default_factory=NullifierRegistry)
    configs: SwapConfigRegistry = field(default_factory=SwapConfigRegistry)
    vault: Vault = field(default_factory=Vault)
    events: EventLog = field(default_factory=EventLog)
    block_number: int = 0

    def copy(self) -> "LedgerState":
        return LedgerState(
            tree=self.tree.copy(),
            registry=self.registry.copy(),
            configs=self.configs.copy(),
            vault=self.vault.copy(),
            events=self.events.copy(),
            block_number=self.block_number,
        )


class Ledger:
    """
    In-process Iceberg pool.

    Args:
        verifier: Groth16 verifier holding the withdraw verifying key
        executor: Swap execution binding (the aggregator router)
        owner: Identity allowed to add swap configurations
        operator: Identity allowed to record swaps
        pool_address: Address holding pooled funds
        depth: Merkle tree depth, must match the circuit
        clock: Source of deposit timestamps (seconds)
        verify_executor: Executor for proof verification (default pool if None)
    """

    def __init__(
        self,
        verifier: Groth16Verifier,
        executor: SwapExecutor,
        owner: Address,
        operator: Address,
        pool_address: Address,
        depth: int = MERKLE_TREE_DEPTH,
        clock: Callable[[], float] = time.time,
        verify_executor: Optional[Executor] = None,
    ):
        self.verifier = verifier
        self.executor = executor
        self.owner = owner
        self.operator = operator
        self.pool_address = pool_address
        self.clock = clock
        self.verify_executor = verify_executor

        self._state = LedgerState(tree=MerkleAccumulator(depth=depth))
        self._lock = asyncio.Lock()
        self._instance_id = uuid.uuid4().hex

    @asynccontextmanager
    async def _transaction(self, label: str) -> AsyncIterator[LedgerState]:
        async with self._lock:
            pending = self._state.copy()
            pending.block_number += 1
            try:
                yield pending
            except IcebergError as e:
                logger.debug(f"{label} reverted: {e.message}")
                raise
            self._state = pending

    # ==========================================================================
    # OWNER
    # ==========================================================================

    async def add_swap_config(self, caller: Address, token_in: Asset, fixed_amount: int) -> SwapConfig:
        """
        Register a fixed denomination.

        Raises:
            UnauthorizedError: If caller is not the owner
            InvalidAmountError, InvalidParameterError: On a bad amount
        """
        async with self._transaction("addSwapConfig") as state:
            if caller != self.owner:
                raise UnauthorizedError(caller, "owner")
            config = state.configs.add(token_in, fixed_amount)
        logger.info(f"Swap config {config.config_id}: {config.fixed_amount} {config.token_in}")
        return config

    async def fund(self, asset: Asset, owner: Address, amount: int) -> None:
        """Credit an account from outside the pool (bridging in, faucets)."""
        async with self._transaction("fund") as state:
            state.vault.mint(asset, owner, amount)

    # ==========================================================================
    # DEPOSIT
    # ==========================================================================

    async def insert(self, commitment: int, swap_config_id: int, depositor: Address) -> int:
        """
        Deposit: collect the configured amount and append the commitment.

        Args:
            commitment: H2(nullifier, secret)
            swap_config_id: Denomination being deposited
            depositor: Account paying fixedAmount of tokenIn

        Returns:
            Leaf index of the commitment

        Raises:
            UnknownConfigError: If the configuration does not exist
            InsufficientFundsError: If the depositor cannot pay
            CapacityExceededError: If the tree is full
            DuplicateCommitmentError: If the commitment was already inserted
        """
        commitment = parse_field(commitment)
        async with self._transaction("insert") as state:
            config = state.configs.get(swap_config_id)
            state.vault.transfer(config.token_in, depositor, self.pool_address, config.fixed_amount)
            leaf_index = state.tree.insert(commitment)
            state.events.append(DepositEvent(
                commitment=commitment,
                leaf_index=leaf_index,
                swap_config_id=config.config_id,
                timestamp=int(self.clock()),
                block_number=state.block_number,
            ))
        logger.info(f"Deposit {short_hex(commitment)} at leaf {leaf_index} (config {swap_config_id})")
        return leaf_index

    # ==========================================================================
    # SWAP
    # ==========================================================================

    async def record_swap(
        self,
        caller: Address,
        nullifier_hash: int,
        swap_config_id: int,
        token_out: Asset,
        execution_payload: Union[bytes, str],
    ) -> int:
        """
        Execute the swap for one deposit and bind its output to the
        nullifier hash.

        Args:
            caller: Must be the operator
            nullifier_hash: H1(nullifier) of the deposit
            swap_config_id: Configuration the deposit used
            token_out: Asset the depositor asked for
            execution_payload: Router calldata from the aggregator

        Returns:
            Amount of token_out recorded

        Raises:
            UnauthorizedError: If caller is not the operator
            AlreadySwappedError: If a result is already recorded
            UnknownConfigError: If the configuration does not exist
            InvalidParameterError: If the payload does not decode
            PayloadMismatchError: If the payload swaps anything else
            InsufficientFundsError: If the pool lacks the input amount
            SlippageExceededError: If the output is below minReturnAmount
        """
        nullifier_hash = parse_field(nullifier_hash)
        async with self._transaction("recordSwap") as state:
            if caller != self.operator:
                raise UnauthorizedError(caller, "operator")

            # Replay is reported before any other rejection
            if state.registry.has_swap(nullifier_hash):
                raise AlreadySwappedError(nullifier_hash)
            config = state.configs.get(swap_config_id)

            payload = decode_swap_calldata(execution_payload)
            validate_payload(payload, config, token_out, self.pool_address)

            state.vault.burn(config.token_in, self.pool_address, config.fixed_amount)
            amount_out = parse_amount(self.executor.execute(payload, self.pool_address))
            if amount_out < payload.desc.min_return_amount:
                raise SlippageExceededError(amount_out, payload.desc.min_return_amount)
            state.vault.mint(token_out, self.pool_address, amount_out)

            state.registry.record(nullifier_hash, SwapResult(token_out, amount_out))
            state.events.append(SwapResultRecordedEvent(
                nullifier_hash=nullifier_hash,
                token_out=token_out,
                amount_out=amount_out,
                block_number=state.block_number,
            ))
        logger.info(f"Swap recorded for {short_hex(nullifier_hash)}: {amount_out} {token_out}")
        return amount_out

    # ==========================================================================
    # WITHDRAW
    # ==========================================================================

    async def withdraw(
        self,
        nullifier_hash: int,
        recipient: Address,
        proof: WithdrawalProof,
    ) -> SwapResult:
        """
        Release a recorded swap result to recipient.

        The proof may be against any root this pool has produced, not only
        the current one.

        Args:
            nullifier_hash: Nullifier hash of the deposit
            recipient: Account receiving tokenOut
            proof: Withdraw proof with its public signals

        Returns:
            The released SwapResult

        Raises:
            PublicSignalMismatchError: If the arguments differ from the proof's signals
            UnknownRootError: If the proof's root was never a root of this pool
            InvalidProofError: If the proof does not verify
            AlreadyWithdrawnError: If the nullifier hash was already consumed
            NoSwapResultError: If no swap was recorded
            TransferFailedError: If the asset transfer reverts
        """
        nullifier_hash = parse_field(nullifier_hash)
        if proof.nullifier_hash != nullifier_hash:
            raise PublicSignalMismatchError("nullifierHash", nullifier_hash, proof.nullifier_hash)
        if proof.recipient != recipient.to_int():
            raise PublicSignalMismatchError("recipient", recipient.to_int(), proof.recipient)

        async with self._transaction("withdraw") as state:
            if not state.tree.is_known_root(proof.merkle_root):
                raise UnknownRootError(proof.merkle_root)

            loop = asyncio.get_running_loop()
            valid = await loop.run_in_executor(
                self.verify_executor,
                self.verifier.verify,
                proof.proof,
                proof.public_signals.to_list(),
            )
            if not valid:
                raise InvalidProofError()

            result = state.registry.consume_and_get(nullifier_hash)
            try:
                state.vault.transfer(result.token_out, self.pool_address, recipient, result.amount)
            except InsufficientFundsError as e:
                raise TransferFailedError(result.token_out, recipient, result.amount, e.message) from e

            state.events.append(WithdrawalEvent(
                nullifier_hash=nullifier_hash,
                recipient=recipient,
                token_out=result.token_out,
                amount=result.amount,
                block_number=state.block_number,
            ))
        logger.info(f"Withdrawal {short_hex(nullifier_hash)}: {result.amount} {result.token_out} -> {recipient}")
        return result

    # ==========================================================================
    # READS
    # ==========================================================================

    async def instance_id(self) -> str:
        """Random id of this ledger; every restart of a node builds a new one."""
        return self._instance_id

    async def get_root(self) -> int:
        return self._state.tree.root()

    async def get_proof(self, leaf_index: int) -> MerklePath:
        return self._state.tree.get_proof(leaf_index)

    async def is_known_root(self, root: int) -> bool:
        return self._state.tree.is_known_root(root)

    async def leaf_count(self) -> int:
        return self._state.tree.leaf_count

    async def get_swap_config(self, swap_config_id: int) -> SwapConfig:
        return self._state.configs.get(swap_config_id)

    async def next_swap_config_id(self) -> int:
        return self._state.configs.next_id

    async def list_swap_configs(self) -> List[SwapConfig]:
        """Every configuration, ordered by id."""
        return self._state.configs.all()

    async def is_consumed(self, nullifier_hash: int) -> bool:
        return self._state.registry.is_consumed(nullifier_hash)

    async def get_swap_result(self, nullifier_hash: int) -> Optional[SwapResult]:
        return self._state.registry.get_swap_result(nullifier_hash)

    async def block_number(self) -> int:
        return self._state.block_number

    async def get_logs(
        self,
        event_name: str,
        from_block: int = 0,
        to_block: Optional[int] = None,
    ) -> List[LedgerEvent]:
        return self._state.events.get_logs(event_name, from_block, to_block)

    async def balance_of(self, asset: Asset, owner: Address) -> int:
        return self._state.vault.balance_of(asset, owner)

    async def block_recipient(self, caller: Address, asset: Asset, recipient: Address) -> None:
        """
        Make a token reject transfers to recipient (blacklisting tokens).

        Raises:
            UnauthorizedError: If caller is not the owner
        """
        async with self._transaction("blockRecipient") as state:
            if caller != self.owner:
                raise UnauthorizedError(caller, "owner")
            state.vault.block(asset, recipient)
        logger.info(f"Transfers of {asset} to {recipient} now revert")

    async def unblock_recipient(self, caller: Address, asset: Asset, recipient: Address) -> None:
        async with self._transaction("unblockRecipient") as state:
            if caller != self.owner:
                raise UnauthorizedError(caller, "owner")
            state.vault.unblock(asset, recipient)
