"""
Verification record persistence.

Persisted layout: one logical table keyed by ``final_digest`` with
secondary indexes on ``original_digest``, ``signer_address`` and
``transaction_id``.

The schema version is tracked in the database. Opening a database
written with an older schema version destructively rebuilds the table;
prior records are not migrated.

Writes are upserts: re-storing the same ``final_digest`` is idempotent
because identical artifact bytes always re-derive identical records.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import closing
from functools import partial
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, TypeVar

import anyio
import anyio.to_thread

from walletsign.app.schemas.records import VerificationRecord

logger = logging.getLogger("walletsign.record_store")

SCHEMA_VERSION = 3

TABLE_NAME = "signed_documents"

_COLUMNS = (
    "final_digest",
    "original_digest",
    "signature",
    "signer_address",
    "signed_at",
    "transaction_id",
    "block_number",
    "network_id",
)

T = TypeVar("T")


class StoreAccessFailure(RuntimeError):
    """Raised when the record store cannot be read, written or indexed."""


class RecordStore(Protocol):
    """Interface consumed by the artifact generator and the verifier."""

    async def put(self, record: VerificationRecord) -> None:
        ...

    async def get(self, final_digest: str) -> Optional[VerificationRecord]:
        ...

    async def get_by_transaction_id(
        self, transaction_id: str
    ) -> Optional[VerificationRecord]:
        ...

    async def list_all(self) -> List[VerificationRecord]:
        ...

    async def clear_all(self) -> None:
        ...


# ----------------------------------------------------------------------
# In-memory store
# ----------------------------------------------------------------------

class InMemoryRecordStore:
    """
    Process-local store.

    Records vanish with the process; suitable for tests and ephemeral
    deployments.
    """

    def __init__(self) -> None:
        self._records: Dict[str, VerificationRecord] = {}

    async def put(self, record: VerificationRecord) -> None:
        self._records[record.final_digest] = record

    async def get(self, final_digest: str) -> Optional[VerificationRecord]:
        return self._records.get(final_digest)

    async def get_by_transaction_id(
        self, transaction_id: str
    ) -> Optional[VerificationRecord]:
        for record in self._records.values():
            if record.transaction_id == transaction_id:
                return record
        return None

    async def list_all(self) -> List[VerificationRecord]:
        return list(self._records.values())

    async def clear_all(self) -> None:
        self._records.clear()


# ----------------------------------------------------------------------
# SQLite store
# ----------------------------------------------------------------------

class SqliteRecordStore:
    """
    SQLite-backed store.

    Every operation opens its own connection and runs in a worker
    thread, so concurrent requests never share a cursor.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._initialized = False
        self._init_lock = anyio.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Create or rebuild the schema. Idempotent and serialized per store."""
        async with self._init_lock:
            await self._run(self._init_schema)
            self._initialized = True

    async def put(self, record: VerificationRecord) -> None:
        await self._ensure_initialized()
        await self._run(partial(self._put, record))
        logger.info(
            "record_stored",
            extra={
                "final_digest": record.final_digest,
                "on_chain": record.is_on_chain,
            },
        )

    async def get(self, final_digest: str) -> Optional[VerificationRecord]:
        await self._ensure_initialized()
        return await self._run(
            partial(self._fetch_one, "final_digest", final_digest)
        )

    async def get_by_transaction_id(
        self, transaction_id: str
    ) -> Optional[VerificationRecord]:
        await self._ensure_initialized()
        return await self._run(
            partial(self._fetch_one, "transaction_id", transaction_id)
        )

    async def list_all(self) -> List[VerificationRecord]:
        await self._ensure_initialized()
        return await self._run(self._fetch_all)

    async def clear_all(self) -> None:
        await self._ensure_initialized()
        await self._run(self._clear)
        logger.warning("records_cleared", extra={"db_path": str(self.db_path)})

    # ------------------------------------------------------------------
    # Internal helpers (worker thread)
    # ------------------------------------------------------------------

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    async def _run(self, fn: Callable[[], T]) -> T:
        try:
            return await anyio.to_thread.run_sync(fn)
        except sqlite3.Error as exc:
            logger.exception(
                "record_store_access_failed",
                extra={"db_path": str(self.db_path)},
            )
            raise StoreAccessFailure(
                f"Record store access failed: {exc}"
            ) from exc
        except OSError as exc:
            raise StoreAccessFailure(
                f"Record store location is not usable: {exc}"
            ) from exc

    def _connect(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        with closing(self._connect()) as conn, conn:
            current = conn.execute("PRAGMA user_version").fetchone()[0]

            if current == SCHEMA_VERSION:
                return

            if current > SCHEMA_VERSION:
                raise sqlite3.DatabaseError(
                    f"database schema version {current} is newer than "
                    f"supported version {SCHEMA_VERSION}"
                )

            logger.warning(
                "record_store_schema_rebuild",
                extra={"from_version": current, "to_version": SCHEMA_VERSION},
            )

            conn.execute(f"DROP TABLE IF EXISTS {TABLE_NAME}")
            conn.execute(
                f"""
                CREATE TABLE {TABLE_NAME} (
                    final_digest TEXT PRIMARY KEY,
                    original_digest TEXT NOT NULL,
                    signature TEXT NOT NULL,
                    signer_address TEXT NOT NULL,
                    signed_at TEXT NOT NULL,
                    transaction_id TEXT,
                    block_number TEXT,
                    network_id TEXT
                )
                """
            )
            for column in ("original_digest", "signer_address", "transaction_id"):
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_{column} "
                    f"ON {TABLE_NAME}({column})"
                )
            conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")

    def _put(self, record: VerificationRecord) -> None:
        placeholders = ", ".join("?" for _ in _COLUMNS)
        values = tuple(getattr(record, column) for column in _COLUMNS)

        with closing(self._connect()) as conn, conn:
            conn.execute(
                f"INSERT OR REPLACE INTO {TABLE_NAME} "
                f"({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                values,
            )

    def _fetch_one(self, column: str, value: str) -> Optional[VerificationRecord]:
        with closing(self._connect()) as conn:
            row = conn.execute(
                f"SELECT {', '.join(_COLUMNS)} FROM {TABLE_NAME} "
                f"WHERE {column} = ? LIMIT 1",
                (value,),
            ).fetchone()
        return self._to_record(row) if row is not None else None

    def _fetch_all(self) -> List[VerificationRecord]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                f"SELECT {', '.join(_COLUMNS)} FROM {TABLE_NAME} "
                "ORDER BY signed_at"
            ).fetchall()
        return [self._to_record(row) for row in rows]

    def _clear(self) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute(f"DELETE FROM {TABLE_NAME}")

    @staticmethod
    def _to_record(row: sqlite3.Row) -> VerificationRecord:
        return VerificationRecord(**{column: row[column] for column in _COLUMNS})
