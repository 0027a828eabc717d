"""
Iceberg Protocol Event Store Tests
"""

import aiosqlite
import pytest

from iceberg.constants import (
    DEFAULT_NATIVE_DENOMINATION,
    EVENT_DEPOSIT,
    EVENT_SWAP_RESULT_RECORDED,
    EVENT_WITHDRAWAL,
)
from iceberg.core.asset import NATIVE
from iceberg.errors import InternalError
from iceberg.protocol.commitment import derive
from iceberg.protocol.events import DepositEvent
from iceberg.storage.events import SCHEMA_VERSION, EventStore

from conftest import POOL, RECIPIENT, USDC, make_ledger, stub_proof


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "data" / "events.db")


def deposit_event(passphrase, leaf_index, block_number):
    return DepositEvent(
        commitment=derive(passphrase).commitment,
        leaf_index=leaf_index,
        swap_config_id=1,
        timestamp=1_700_000_000,
        block_number=block_number,
    )


class TestEventStore:
    """SQLite event index."""

    @pytest.mark.asyncio
    async def test_add_and_find(self, db_path):
        """Stored deposits are found by commitment."""
        async with EventStore(db_path) as store:
            added = await store.add_events([deposit_event("a", 0, 1), deposit_event("b", 1, 2)])
            assert added == 2

            found = await store.find_deposit(derive("b").commitment)
            assert found == deposit_event("b", 1, 2)
            assert await store.find_deposit(derive("c").commitment) is None

    @pytest.mark.asyncio
    async def test_duplicates_ignored(self, db_path):
        """Re-adding an event stores nothing new."""
        async with EventStore(db_path) as store:
            await store.add_events([deposit_event("a", 0, 1)])
            assert await store.add_events([deposit_event("a", 0, 1)]) == 0
            assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_block_range(self, db_path):
        """get_logs filters by inclusive block range in block order."""
        async with EventStore(db_path) as store:
            await store.add_events([deposit_event("c", 2, 7), deposit_event("a", 0, 3), deposit_event("b", 1, 5)])
            logs = await store.get_logs(EVENT_DEPOSIT, 4)
            assert [e.leaf_index for e in logs] == [1, 2]
            logs = await store.get_logs(EVENT_DEPOSIT, 0, 5)
            assert [e.leaf_index for e in logs] == [0, 1]

    @pytest.mark.asyncio
    async def test_persistent(self, db_path):
        """Events and sync position survive reopening."""
        async with EventStore(db_path) as store:
            await store.add_events([deposit_event("a", 0, 1)])
            await store.set_last_block(9)

        async with EventStore(db_path) as store:
            assert await store.count(EVENT_DEPOSIT) == 1
            assert await store.last_block() == 9

    @pytest.mark.asyncio
    async def test_schema_version(self, db_path):
        """Databases from another schema version are refused."""
        async with EventStore(db_path):
            pass
        async with aiosqlite.connect(db_path) as conn:
            await conn.execute("UPDATE schema_info SET value = ? WHERE key = 'version'", (str(SCHEMA_VERSION + 1),))
            await conn.commit()

        store = EventStore(db_path)
        with pytest.raises(InternalError):
            await store.connect()
        await store.close()

    @pytest.mark.asyncio
    async def test_sync_from_ledger(self, db_path, ledger, mock_aggregator, operator_address, depositor_address):
        """sync copies every event kind and only new blocks."""
        note = derive("abc123")
        await ledger.insert(note.commitment, 1, depositor_address)
        payload = await mock_aggregator.build_execution(NATIVE, USDC, DEFAULT_NATIVE_DENOMINATION, POOL)
        await ledger.record_swap(operator_address, note.nullifier_hash, 1, USDC, payload.calldata)

        async with EventStore(db_path) as store:
            assert await store.sync(ledger) == 2
            assert await store.last_block() == await ledger.block_number()
            assert await store.sync(ledger) == 0

            proof = stub_proof(await ledger.get_root(), note.nullifier_hash, RECIPIENT)
            await ledger.withdraw(note.nullifier_hash, RECIPIENT, proof)
            assert await store.sync(ledger) == 1

            assert await store.count(EVENT_DEPOSIT) == 1
            assert await store.count(EVENT_SWAP_RESULT_RECORDED) == 1
            withdrawals = await store.get_logs(EVENT_WITHDRAWAL)
            assert withdrawals[0].recipient == RECIPIENT
            assert withdrawals[0].amount == 500_000

    @pytest.mark.asyncio
    async def test_restarted_ledger_replaces_index(self, db_path, ledger, stub_verifier, mock_aggregator,
                                                   operator_address, depositor_address):
        """Syncing from a new ledger instance drops the previous ledger's events."""
        for passphrase in ("old-1", "old-2", "old-3"):
            await ledger.insert(derive(passphrase).commitment, 1, depositor_address)
        async with EventStore(db_path) as store:
            assert await store.sync(ledger) == 3
            assert await store.ledger_id() == await ledger.instance_id()

        restarted = make_ledger(stub_verifier, mock_aggregator, operator_address)
        await restarted.add_swap_config(operator_address, NATIVE, DEFAULT_NATIVE_DENOMINATION)
        await restarted.fund(NATIVE, depositor_address, 10 ** 18)
        await restarted.insert(derive("abc123").commitment, 1, depositor_address)
        assert await restarted.block_number() < await ledger.block_number()

        async with EventStore(db_path) as store:
            assert await store.sync(restarted) == 1
            assert await store.find_deposit(derive("old-1").commitment) is None
            found = await store.find_deposit(derive("abc123").commitment)
            assert found.leaf_index == 0
            assert await store.count() == 1
            assert await store.last_block() == await restarted.block_number()
            assert await store.ledger_id() == await restarted.instance_id()

    @pytest.mark.asyncio
    async def test_same_ledger_kept_across_reopen(self, db_path, ledger, depositor_address):
        """Reopening the store and syncing the same ledger keeps the index."""
        await ledger.insert(derive("abc123").commitment, 1, depositor_address)
        async with EventStore(db_path) as store:
            await store.sync(ledger)

        await ledger.insert(derive("later").commitment, 1, depositor_address)
        async with EventStore(db_path) as store:
            assert await store.sync(ledger) == 1
            assert await store.count(EVENT_DEPOSIT) == 2
