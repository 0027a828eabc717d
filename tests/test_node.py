"""
Iceberg Protocol Node Tests
Startup wiring from configuration and shutdown.
"""

import pytest

from iceberg.aggregator.mock import MockAggregator
from iceberg.core.asset import NATIVE
from iceberg.errors import ArtifactMissingError, InvalidParameterError
from iceberg.node.config import IcebergConfig, SwapConfigEntry
from iceberg.node.node import IcebergNode
from iceberg.protocol.commitment import derive
from iceberg.storage.events import EventStore
from iceberg.zk.artifacts import ArtifactStore
from iceberg.zk.circuit import withdraw_circuit

from conftest import USDC

pytestmark = pytest.mark.timeout(600)


@pytest.fixture
def local_config(tmp_path, groth16_keys) -> IcebergConfig:
    """Local profile with the session keys on disk and no HTTP listener."""
    pk, vk = groth16_keys
    artifact_dir = tmp_path / "artifacts"
    ArtifactStore(str(artifact_dir)).save_native_keys(pk, vk, withdraw_circuit().fingerprint())

    config = IcebergConfig.default_local()
    config.prover.artifact_dir = str(artifact_dir)
    config.prover.generate_keys = False
    config.storage.data_dir = str(tmp_path / "data")
    config.api.enabled = False
    config.ledger.swap_configs.append(SwapConfigEntry(token_in=USDC.address.checksum, fixed_amount="1000000"))
    return config


class TestIcebergNode:
    """Node lifecycle."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, local_config):
        """A started node exposes a wired ledger and operator."""
        node = IcebergNode(local_config)
        await node.start()
        try:
            assert isinstance(node.aggregator, MockAggregator)
            assert node.operator.ledger is node.ledger
            assert node.ledger.verifier is node.prover.verifier
            assert (await node.ledger.get_swap_config(2)).token_in == USDC

            status = await node.get_status()
            assert status["started"] is True
            assert status["chainId"] == local_config.ledger.chain_id
            assert status["swapConfigs"] == 2
            assert status["leafCount"] == 0
            assert status["prover"] == "native"
        finally:
            await node.stop()

        assert node.status.started is False
        assert local_config.events_db_path.exists()

    @pytest.mark.asyncio
    async def test_without_event_store(self, local_config):
        """Event persistence can be switched off."""
        local_config.storage.persist_events = False
        node = IcebergNode(local_config)
        await node.start()
        await node.stop()
        assert node.event_store is None
        assert not local_config.events_db_path.exists()

    @pytest.mark.asyncio
    async def test_restart_forgets_old_ledger(self, local_config, depositor_address):
        """A restarted node has a fresh ledger; its event index drops the old deposits."""
        stale = derive("abc123")
        node = IcebergNode(local_config)
        await node.start()
        try:
            await node.ledger.fund(NATIVE, depositor_address, 10 ** 18)
            await node.ledger.insert(stale.commitment, 1, depositor_address)
        finally:
            await node.stop()

        async with EventStore(str(local_config.events_db_path)) as store:
            assert await store.find_deposit(stale.commitment) is not None

        node = IcebergNode(local_config)
        await node.start()
        try:
            await node.event_store.sync(node.ledger)
            assert await node.event_store.find_deposit(stale.commitment) is None
            assert await node.event_store.ledger_id() == await node.ledger.instance_id()
            assert await node.ledger.leaf_count() == 0
        finally:
            await node.stop()

    @pytest.mark.asyncio
    async def test_missing_keys(self, local_config, tmp_path):
        """Without keys and without permission to generate them, startup fails."""
        local_config.prover.artifact_dir = str(tmp_path / "empty")
        with pytest.raises(ArtifactMissingError):
            await IcebergNode(local_config).start()

    @pytest.mark.asyncio
    async def test_invalid_config(self, local_config):
        """Invalid configuration is refused before anything starts."""
        local_config.ledger.depth = 0
        node = IcebergNode(local_config)
        with pytest.raises(InvalidParameterError):
            await node.start()
        assert node.ledger is None
