"""
Iceberg Protocol Pool Node
Main node orchestrator: proving artifacts, ledger, swap operator, event
store and JSON-RPC API.
"""

from __future__ import annotations
import argparse
import asyncio
import logging
import sys
import time
from dataclasses import dataclass, field
from typing import List, Optional, Union

from iceberg import __version__
from iceberg.aggregator.mock import MinimumFillExecutor, MockAggregator
from iceberg.aggregator.oneinch import OneInchClient
from iceberg.api.server import APIServer
from iceberg.constants import PROTOCOL_VERSION
from iceberg.core.asset import asset_from_address
from iceberg.core.types import Address, parse_amount
from iceberg.crypto.field import to_hex32
from iceberg.errors import ArtifactMissingError, IcebergError, InvalidParameterError
from iceberg.node.config import IcebergConfig, setup_logging
from iceberg.protocol.ledger import Ledger
from iceberg.protocol.swap import SwapOperator
from iceberg.storage.events import EventStore
from iceberg.zk.artifacts import ArtifactStore
from iceberg.zk.circuit import withdraw_circuit
from iceberg.zk.prover import (
    NativeProver,
    WithdrawProver,
    generate_native_keys,
    load_native_prover,
    load_snarkjs_prover,
)

logger = logging.getLogger(__name__)


@dataclass
class NodeStatus:
    """Node status information."""
    started: bool = False
    start_time: float = 0.0
    events_synced: int = 0
    last_sync_error: Optional[str] = None


@dataclass
class IcebergNode:
    """
    Iceberg pool node.

    Coordinates:
    - Withdraw circuit keys (loaded with integrity checks, or generated)
    - The ledger and its verifier
    - The swap operator and its aggregator
    - Event persistence
    - The JSON-RPC API
    """
    config: IcebergConfig

    prover: Optional[WithdrawProver] = None
    ledger: Optional[Ledger] = None
    aggregator: Optional[Union[MockAggregator, OneInchClient]] = None
    operator: Optional[SwapOperator] = None
    event_store: Optional[EventStore] = None
    api: Optional[APIServer] = None

    status: NodeStatus = field(default_factory=NodeStatus)

    _tasks: List[asyncio.Task] = field(default_factory=list)
    _running: bool = False

    async def start(self) -> None:
        """
        Start the node.

        Raises:
            InvalidParameterError: If the configuration does not validate
            ArtifactMissingError, ArtifactIntegrityError, ArtifactMismatchError:
                If the proving artifacts cannot be used
        """
        if self._running:
            return

        errors = self.config.validate()
        if errors:
            raise InvalidParameterError("config", "; ".join(errors))

        logger.info(f"Starting Iceberg node: {self.config.name}")
        logger.info(f"Chain id: {self.config.ledger.chain_id}, protocol version: {PROTOCOL_VERSION}")

        self.config.data_path.mkdir(parents=True, exist_ok=True)

        self.prover = await self._load_prover()
        self.aggregator = self._build_aggregator()
        self.ledger = self._build_ledger()
        await self._register_swap_configs()

        self.operator = SwapOperator(
            ledger=self.ledger,
            aggregator=self.aggregator,
            operator=self.ledger.operator,
            chain_id=self.config.ledger.chain_id,
            slippage_bps=self.config.aggregator.slippage_bps,
        )

        if self.config.storage.persist_events:
            self.event_store = EventStore(str(self.config.events_db_path))
            await self.event_store.connect()

        self._running = True
        self.status.started = True
        self.status.start_time = time.time()

        if self.event_store is not None:
            self._tasks.append(asyncio.create_task(self._sync_loop()))

        if self.config.api.enabled:
            self.api = APIServer(
                node=self,
                host=self.config.api.host,
                port=self.config.api.port,
                max_batch_size=self.config.api.max_batch_size,
            )
            await self.api.start()

        logger.info("Node started successfully")

    async def stop(self) -> None:
        """Stop the node."""
        if not self._running:
            return

        logger.info("Stopping node...")
        self._running = False

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        if self.api:
            await self.api.stop()

        if self.event_store:
            try:
                await self.event_store.sync(self.ledger)
            finally:
                await self.event_store.close()

        self.status.started = False
        logger.info("Node stopped")

    # ==========================================================================
    # Components
    # ==========================================================================

    async def _load_prover(self) -> WithdrawProver:
        """Load integrity-checked keys, generating them when allowed."""
        cfg = self.config.prover
        store = ArtifactStore(cfg.artifact_dir)
        circuit = withdraw_circuit(self.config.ledger.depth)

        if cfg.backend == "snarkjs":
            return load_snarkjs_prover(store, cfg.snarkjs_binary, cfg.timeout_sec)

        try:
            return load_native_prover(store, circuit)
        except ArtifactMissingError:
            if not cfg.generate_keys:
                raise
            logger.warning(f"No proving keys in {cfg.artifact_dir}, running setup (this takes a while)")

        loop = asyncio.get_running_loop()
        pk, vk = await loop.run_in_executor(None, generate_native_keys, store, circuit)
        return WithdrawProver(NativeProver(pk, circuit), vk)

    def _build_aggregator(self) -> Union[MockAggregator, OneInchClient]:
        cfg = self.config.aggregator
        if cfg.backend == "mock":
            return MockAggregator()
        return OneInchClient(
            chain_id=self.config.ledger.chain_id,
            api_key=cfg.resolved_api_key(),
            base_url=cfg.base_url,
            timeout=cfg.timeout_sec,
        )

    def _build_ledger(self) -> Ledger:
        cfg = self.config.ledger
        executor = self.aggregator if isinstance(self.aggregator, MockAggregator) else MinimumFillExecutor()
        return Ledger(
            verifier=self.prover.verifier,
            executor=executor,
            owner=Address.parse(cfg.owner),
            operator=Address.parse(cfg.operator),
            pool_address=Address.parse(cfg.pool_address),
            depth=cfg.depth,
        )

    async def _register_swap_configs(self) -> None:
        for entry in self.config.ledger.swap_configs:
            config = await self.ledger.add_swap_config(
                caller=self.ledger.owner,
                token_in=asset_from_address(entry.token_in),
                fixed_amount=parse_amount(entry.fixed_amount),
            )
            logger.info(f"Swap config {config.config_id}: {config.fixed_amount} of {config.token_in}")

    # ==========================================================================
    # Background tasks
    # ==========================================================================

    async def _sync_loop(self) -> None:
        """Copy new ledger events into the event store."""
        while self._running:
            try:
                self.status.events_synced += await self.event_store.sync(self.ledger)
                self.status.last_sync_error = None
            except IcebergError as e:
                self.status.last_sync_error = e.message
                logger.error(f"Event sync failed: {e}")
            await asyncio.sleep(self.config.storage.sync_interval_sec)

    # ==========================================================================
    # Status
    # ==========================================================================

    async def get_status(self) -> dict:
        """Snapshot for the iceberg_status RPC."""
        ledger = self.ledger
        return {
            "name": self.config.name,
            "version": __version__,
            "started": self.status.started,
            "uptimeSeconds": int(time.time() - self.status.start_time) if self.status.started else 0,
            "chainId": self.config.ledger.chain_id,
            "blockNumber": await ledger.block_number(),
            "leafCount": await ledger.leaf_count(),
            "root": to_hex32(await ledger.get_root()),
            "swapConfigs": await ledger.next_swap_config_id() - 1,
            "aggregator": self.config.aggregator.backend,
            "prover": self.prover.backend.name,
            "eventsSynced": self.status.events_synced,
            "lastSyncError": self.status.last_sync_error,
        }


# ==============================================================================
# CLI
# ==============================================================================

async def run_node(config: IcebergConfig) -> None:
    node = IcebergNode(config)
    await node.start()
    try:
        await asyncio.Event().wait()
    finally:
        await node.stop()


def main():
    parser = argparse.ArgumentParser(description="Iceberg privacy pool node")
    parser.add_argument("--config", metavar="PATH", help="JSON configuration file")
    parser.add_argument("--local", action="store_true", help="Local pool with mock aggregator")
    parser.add_argument("--write-config", metavar="PATH", help="Write the selected configuration and exit")
    args = parser.parse_args()

    if args.config:
        config = IcebergConfig.load(args.config)
    elif args.local:
        config = IcebergConfig.default_local()
    else:
        config = IcebergConfig.default_arbitrum()

    setup_logging(config.log)

    if args.write_config:
        config.save(args.write_config)
        return

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Config: {error}")
        sys.exit(1)

    try:
        asyncio.run(run_node(config))
    except KeyboardInterrupt:
        print("\nShutting down...")
    except IcebergError as e:
        logger.error(f"Node failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
