"""Versioned SQLite object store for vecdex.

Each store is a SQLite file holding one table per named collection. SQLite
table names are case-insensitive, so collections are stored under an
encoded table name and listed in a catalog table that keeps the exact name.
The schema version lives in ``PRAGMA user_version``; creating a collection
reopens the connection and runs the DDL inside an upgrade transaction that
also bumps the version. All engine calls run on a single worker thread, so
store operations are awaited one at a time and never overlap.
"""

import asyncio
import enum
import json
import logging
import sqlite3
from collections.abc import AsyncIterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

import numpy as np

from vecdex.config import Config, get_config
from vecdex.errors import (
    CollectionMissingError,
    InsertError,
    NotInitializedError,
    StoreOpenError,
)

logger = logging.getLogger(__name__)

INITIAL_VERSION = 1

CATALOG_TABLE = "vecdex_collections"

CATALOG_SQL = f"""
CREATE TABLE IF NOT EXISTS {CATALOG_TABLE} (
    name TEXT PRIMARY KEY,
    table_name TEXT NOT NULL UNIQUE
)
"""

COLLECTION_SQL = """
CREATE TABLE {table} (
    key INTEGER PRIMARY KEY AUTOINCREMENT,
    value TEXT NOT NULL
)
"""


class StoreState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    OPENING = "opening"
    READY = "ready"
    UPGRADING = "upgrading"
    FAILED = "failed"


@dataclass(frozen=True)
class SchemaChange:
    """A request to create a collection, optionally with a field index."""

    collection: str
    index: str | None = None


def next_version(current_version: int, change: SchemaChange | None) -> int:
    """Return the store version after applying ``change``.

    Any schema change needs its own upgrade, so it moves the version up by
    exactly one; no change leaves it where it is.
    """
    if change is None:
        return current_version
    return current_version + 1


def table_name(collection: str) -> str:
    """Return the SQLite table backing a collection.

    The hex encoding keeps names that differ only in case apart and never
    collides with SQLite's reserved ``sqlite_`` prefix.
    """
    return "c_" + collection.encode("utf-8").hex()


def quote_identifier(name: str) -> str:
    """Quote a name for use as a SQLite identifier."""
    return '"' + name.replace('"', '""') + '"'


def json_path_literal(field: str) -> str:
    """SQL string literal of the JSON path selecting a top-level record field.

    Index expressions cannot take bound parameters, so the path is inlined.
    """
    path = '$."' + field.replace('"', '\\"') + '"'
    return "'" + path.replace("'", "''") + "'"


def _json_default(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_record(record: dict[str, Any]) -> str:
    """Serialize a record to JSON, converting numpy values to plain ones."""
    return json.dumps(record, default=_json_default)


def decode_record(value: str) -> dict[str, Any]:
    return json.loads(value)


def _read_catalog(conn: sqlite3.Connection) -> dict[str, str]:
    return {row[0]: row[1] for row in conn.execute(f"SELECT name, table_name FROM {CATALOG_TABLE}")}


class Database:
    """Async wrapper around a versioned SQLite store of named collections."""

    def __init__(self, config: Config | None = None):
        self.config = config or get_config()
        self._conn: sqlite3.Connection | None = None
        self._name: str | None = None
        self._version = INITIAL_VERSION
        self._state = StoreState.UNINITIALIZED
        self._collections: dict[str, str] = {}
        self._opening: asyncio.Future | None = None
        self._upgrading: asyncio.Future | None = None
        self._executor: ThreadPoolExecutor | None = None

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def version(self) -> int:
        return self._version

    @property
    def state(self) -> StoreState:
        return self._state

    def collection_names(self) -> frozenset[str]:
        """Return the names of the collections in the open store."""
        return frozenset(self._collections)

    async def _run(self, func, *args):
        """Hand a blocking engine call to the store's worker thread."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="vecdex-db")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    async def _settle(self) -> None:
        """Wait until no schema upgrade is in progress."""
        while self._upgrading is not None:
            await asyncio.shield(self._upgrading)

    def _require_ready(self) -> sqlite3.Connection:
        if self._state is not StoreState.READY or self._conn is None:
            raise NotInitializedError("Database not initialized")
        return self._conn

    def _require_collection(self, name: str) -> str:
        self._require_ready()
        if name not in self._collections:
            raise CollectionMissingError(f"Collection {name!r} does not exist", collection=name)
        return self._collections[name]

    # --- Engine calls (worker thread) ---

    def _connect(self, name: str) -> sqlite3.Connection:
        self.config.ensure_store_dir()
        return sqlite3.connect(str(self.config.store_path(name)), isolation_level=None)

    def _open(self, name: str) -> tuple[sqlite3.Connection, int, dict[str, str]]:
        conn = self._connect(name)
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            version = conn.execute("PRAGMA user_version").fetchone()[0]
            if version == 0:
                conn.execute("BEGIN IMMEDIATE")
                conn.execute(CATALOG_SQL)
                conn.execute(f"PRAGMA user_version = {INITIAL_VERSION}")
                conn.execute("COMMIT")
                version = INITIAL_VERSION
            collections = _read_catalog(conn)
        except sqlite3.Error:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            conn.close()
            raise
        return conn, version, collections

    def _upgrade(
        self, change: SchemaChange, version: int
    ) -> tuple[sqlite3.Connection, int, dict[str, str]]:
        self._conn.close()
        self._conn = None
        conn = self._connect(self._name)
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("BEGIN IMMEDIATE")
            exists = conn.execute(
                f"SELECT 1 FROM {CATALOG_TABLE} WHERE name = ?", (change.collection,)
            ).fetchone()
            if exists:
                # Created by another connection since this one last looked.
                conn.execute("ROLLBACK")
                version = conn.execute("PRAGMA user_version").fetchone()[0]
            else:
                table = table_name(change.collection)
                conn.execute(COLLECTION_SQL.format(table=quote_identifier(table)))
                if change.index:
                    index_name = quote_identifier(f"{table}__by_{change.index.encode('utf-8').hex()}")
                    conn.execute(
                        f"CREATE INDEX {index_name} ON {quote_identifier(table)} "
                        f"(json_extract(value, {json_path_literal(change.index)}))"
                    )
                conn.execute(
                    f"INSERT INTO {CATALOG_TABLE} (name, table_name) VALUES (?, ?)",
                    (change.collection, table),
                )
                conn.execute(f"PRAGMA user_version = {version}")
                conn.execute("COMMIT")
            collections = _read_catalog(conn)
        except sqlite3.Error:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            conn.close()
            raise
        return conn, version, collections

    def _insert(self, table: str, payload: str) -> int:
        cursor = self._conn.execute(
            f"INSERT INTO {quote_identifier(table)} (value) VALUES (?)", (payload,)
        )
        return cursor.lastrowid

    def _select_all(self, table: str) -> list[dict[str, Any]]:
        rows = self._conn.execute(
            f"SELECT value FROM {quote_identifier(table)} ORDER BY key"
        ).fetchall()
        return [decode_record(row[0]) for row in rows]

    def _close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # --- Lifecycle ---

    async def initialize_db(self, name: str) -> None:
        """Open the named store, creating it at version 1 if needed.

        Returns immediately if the store is already open.
        """
        if self._state in (StoreState.READY, StoreState.UPGRADING):
            return
        if self._opening is not None:
            # Another caller is already opening; share its outcome.
            error = await asyncio.shield(self._opening)
            if error is not None:
                raise StoreOpenError(str(error)) from error
            return

        self._state = StoreState.OPENING
        opening = asyncio.get_running_loop().create_future()
        self._opening = opening
        error = None
        try:
            conn, version, collections = await self._run(self._open, name)
        except (sqlite3.Error, OSError) as exc:
            self._state = StoreState.FAILED
            logger.error("Failed to open store %r: %s", name, exc)
            error = StoreOpenError(f"Database initialization failed for {name!r}: {exc}")
            raise error from exc
        else:
            self._conn = conn
            self._name = name
            self._version = version
            self._collections = collections
            self._state = StoreState.READY
        finally:
            opening.set_result(error)
            self._opening = None

        logger.info(
            "Opened store %r at %s (version %d, %d collections)",
            name, self.config.store_path(name), version, len(collections),
        )

    async def make_object_store(self, name: str, index: str | None = None) -> None:
        """Create a collection, upgrading the store to the next version.

        Creating a collection that already exists does nothing. A call made
        while another upgrade runs waits for it to finish first.

        Args:
            name: Collection name.
            index: Optional record field to build a secondary index on.
        """
        await self._settle()
        self._require_ready()
        if name in self._collections:
            logger.info("Collection %r already exists", name)
            return

        change = SchemaChange(collection=name, index=index)
        target = next_version(self._version, change)
        logger.info("Creating collection %r in version %d", name, target)

        self._state = StoreState.UPGRADING
        upgrading = asyncio.get_running_loop().create_future()
        self._upgrading = upgrading
        try:
            conn, version, collections = await self._run(self._upgrade, change, target)
        except (sqlite3.Error, OSError) as exc:
            self._state = StoreState.FAILED
            logger.error("Failed to upgrade store %r to version %d: %s", self._name, target, exc)
            raise StoreOpenError(f"Failed to create new version {target}: {exc}") from exc
        else:
            self._conn = conn
            self._collections = collections
            self._version = version
            self._state = StoreState.READY
        finally:
            upgrading.set_result(None)
            self._upgrading = None

    async def close(self) -> None:
        """Close the connection and stop the worker thread.

        The store can be initialized again afterwards.
        """
        await self._settle()
        if self._executor is not None:
            await self._run(self._close)
            self._executor.shutdown(wait=False)
            self._executor = None
        self._state = StoreState.UNINITIALIZED
        self._collections = {}

    # --- Records ---

    async def add_to_db(self, name: str, record: dict[str, Any]) -> int:
        """Insert a record into a collection.

        Returns:
            The key the store assigned to the record.
        """
        await self._settle()
        table = self._require_collection(name)
        try:
            payload = encode_record(record)
            key = await self._run(self._insert, table, payload)
        except (sqlite3.Error, TypeError, ValueError) as exc:
            logger.error("Failed to add record to %r: %s", name, exc)
            raise InsertError(f"Failed to add record to {name!r}: {exc}") from exc
        logger.debug("Added record %d to %r", key, name)
        return key

    async def get_all_from_db(self, name: str) -> list[dict[str, Any]]:
        """Read every record of a collection in insertion order."""
        await self._settle()
        table = self._require_collection(name)
        return await self._run(self._select_all, table)

    async def db_generator(self, name: str) -> AsyncIterator[dict[str, Any]]:
        """Stream the records of a collection one cursor step at a time."""
        await self._settle()
        table = self._require_collection(name)
        cursor = await self._run(
            self._conn.execute, f"SELECT value FROM {quote_identifier(table)} ORDER BY key"
        )
        try:
            while True:
                row = await self._run(cursor.fetchone)
                if row is None:
                    break
                yield decode_record(row[0])
        finally:
            await self._run(cursor.close)
