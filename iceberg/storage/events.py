"""
Iceberg Protocol Event Store

SQLite index of ledger events, so a client can map its commitment to a leaf
index without rescanning the whole log every time.
The index follows one ledger instance at a time.
"""

from __future__ import annotations
import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional, TYPE_CHECKING

import aiosqlite

from iceberg.constants import EVENT_DEPOSIT, EVENT_SWAP_RESULT_RECORDED, EVENT_WITHDRAWAL
from iceberg.crypto.field import to_hex32
from iceberg.errors import InternalError
from iceberg.protocol.events import DepositEvent, LedgerEvent, event_from_dict

if TYPE_CHECKING:
    from iceberg.client.wallet import LedgerReader

logger = logging.getLogger(__name__)


# Schema version for migrations
SCHEMA_VERSION = 1


CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_info (
    key TEXT PRIMARY KEY,
    value TEXT
);

-- One row per event; (name, event_key) is unique because every event kind
-- fires at most once per commitment or nullifier hash
CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    block_number INTEGER NOT NULL,
    event_key TEXT NOT NULL,
    leaf_index INTEGER,
    raw_data TEXT NOT NULL,
    UNIQUE (name, event_key)
);

CREATE TABLE IF NOT EXISTS sync_state (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    last_block INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_block ON events(name, block_number);
"""


def event_key(event: LedgerEvent) -> str:
    if event.name == EVENT_DEPOSIT:
        return to_hex32(event.commitment)
    return to_hex32(event.nullifier_hash)


class EventStore:
    """
    aiosqlite-backed event index.

    Usage:
        async with EventStore("events.db") as store:
            await store.sync(ledger)
            event = await store.find_deposit(commitment)
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None

    async def connect(self) -> None:
        """Open the database and create the schema."""
        if self._conn is not None:
            return

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(self.db_path)
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.executescript(CREATE_TABLES_SQL)

        async with self._conn.execute("SELECT value FROM schema_info WHERE key = 'version'") as cursor:
            row = await cursor.fetchone()
        if row is None:
            await self._conn.execute(
                "INSERT INTO schema_info (key, value) VALUES ('version', ?)",
                (str(SCHEMA_VERSION),)
            )
            await self._conn.execute("INSERT INTO sync_state (id, last_block) VALUES (1, 0)")
        elif int(row[0]) != SCHEMA_VERSION:
            raise InternalError(
                f"Event store schema {row[0]} is not supported",
                {"path": self.db_path, "expected": SCHEMA_VERSION},
            )
        await self._conn.commit()
        logger.info(f"Connected to event store: {self.db_path}")

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("Closed event store")

    async def __aenter__(self) -> "EventStore":
        await self.connect()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def _db(self) -> aiosqlite.Connection:
        if self._conn is None:
            await self.connect()
        return self._conn

    # =========================================================================
    # Writes
    # =========================================================================

    async def add_events(self, events: Iterable[LedgerEvent]) -> int:
        """
        Store events, ignoring ones already present.

        Returns:
            Number of new rows
        """
        conn = await self._db()
        added = 0
        for event in events:
            cursor = await conn.execute(
                """INSERT OR IGNORE INTO events
                   (name, block_number, event_key, leaf_index, raw_data)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    event.name,
                    event.block_number,
                    event_key(event),
                    getattr(event, "leaf_index", None),
                    json.dumps(event.to_dict()),
                )
            )
            added += cursor.rowcount
            await cursor.close()
        await conn.commit()
        return added

    async def last_block(self) -> int:
        conn = await self._db()
        async with conn.execute("SELECT last_block FROM sync_state WHERE id = 1") as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def set_last_block(self, block_number: int) -> None:
        conn = await self._db()
        await conn.execute("UPDATE sync_state SET last_block = ? WHERE id = 1", (block_number,))
        await conn.commit()

    async def ledger_id(self) -> Optional[str]:
        """Instance id of the ledger the stored events came from."""
        conn = await self._db()
        async with conn.execute("SELECT value FROM schema_info WHERE key = 'ledger_id'") as cursor:
            row = await cursor.fetchone()
        return row[0] if row else None

    async def reset(self, ledger_id: str) -> None:
        """Drop every event and follow another ledger from block 0."""
        conn = await self._db()
        await conn.execute("DELETE FROM events")
        await conn.execute("UPDATE sync_state SET last_block = 0 WHERE id = 1")
        await conn.execute(
            "INSERT OR REPLACE INTO schema_info (key, value) VALUES ('ledger_id', ?)",
            (ledger_id,)
        )
        await conn.commit()

    async def sync(self, ledger: "LedgerReader") -> int:
        """
        Pull every event after the last synced block up to the ledger head.

        A ledger with another instance id than the stored events (a node
        restarted with a fresh ledger) replaces the whole index.

        Returns:
            Number of new events stored
        """
        current = await ledger.instance_id()
        bound = await self.ledger_id()
        if bound != current:
            if bound is not None:
                logger.warning(
                    f"Event store followed ledger {bound[:8]}, now {current[:8]}: "
                    f"dropping {await self.count()} events"
                )
            await self.reset(current)

        start = await self.last_block() + 1
        head = await ledger.block_number()
        if head < start:
            return 0

        added = 0
        for name in (EVENT_DEPOSIT, EVENT_SWAP_RESULT_RECORDED, EVENT_WITHDRAWAL):
            added += await self.add_events(await ledger.get_logs(name, start, head))
        await self.set_last_block(head)
        logger.debug(f"Event store synced blocks {start}..{head} (+{added})")
        return added

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_logs(
        self,
        name: str,
        from_block: int = 0,
        to_block: Optional[int] = None,
    ) -> List[LedgerEvent]:
        conn = await self._db()
        sql = "SELECT raw_data FROM events WHERE name = ? AND block_number >= ?"
        params: list = [name, from_block]
        if to_block is not None:
            sql += " AND block_number <= ?"
            params.append(to_block)
        sql += " ORDER BY block_number, id"

        async with conn.execute(sql, params) as cursor:
            rows = await cursor.fetchall()
        return [event_from_dict(json.loads(row[0])) for row in rows]

    async def find_deposit(self, commitment: int) -> Optional[DepositEvent]:
        conn = await self._db()
        async with conn.execute(
            "SELECT raw_data FROM events WHERE name = ? AND event_key = ?",
            (EVENT_DEPOSIT, to_hex32(commitment))
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return DepositEvent.from_dict(json.loads(row[0]))

    async def count(self, name: Optional[str] = None) -> int:
        conn = await self._db()
        if name is None:
            sql, params = "SELECT COUNT(*) FROM events", ()
        else:
            sql, params = "SELECT COUNT(*) FROM events WHERE name = ?", (name,)
        async with conn.execute(sql, params) as cursor:
            row = await cursor.fetchone()
        return row[0]
