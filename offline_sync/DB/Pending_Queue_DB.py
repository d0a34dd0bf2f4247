# Pending_Queue_DB.py
# Description: SQLite library holding the local record table and the pending-operation queue.
#
"""
Pending_Queue_DB.py
-------------------

Local persistence for an offline-first client. Two tables live here:

- `records`: the local copy of every synced entity (id, version token, tombstone
  flag and a JSON payload).
- `pending_operations`: the FIFO queue of local mutations waiting to be pushed.
  `position` is an AUTOINCREMENT key, so insertion order is push order and a
  replaced entry keeps its place. `record_id` is UNIQUE: a new local mutation for
  a record that already has a pending entry is folded into that entry
  (coalescing) instead of queued a second time.

Local writes (`insert_record`, `update_record`, `delete_record`) change the
record table and enqueue in one transaction. Sync-side writes
(`upsert_remote_record`, `purge_record`, `merge_pulled`) never enqueue.

Connections are thread-local and every multi-step change runs inside
`transaction()`, so a resolution is either fully applied or not at all.
"""
# Imports
import json
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union
#
# Third-Party Libraries
from loguru import logger
#
# Local Imports
from offline_sync.Sync.sync_models import OperationKind, PendingOperation, Record
#
########################################################################################################################
#
# Functions:

# --- Custom Exceptions ---
class PendingQueueDBError(Exception):
    """Base exception for PendingQueueDB related errors."""
    pass


class SchemaError(PendingQueueDBError):
    """Exception for schema version mismatches or migration failures."""
    pass


class InputError(ValueError):
    """Custom exception for input validation errors."""
    pass


# --- Database Class ---
class PendingQueueDB:
    """
    Manages the SQLite database backing the local record table and the pending queue.

    Attributes:
        db_path (Path): The absolute path to the SQLite database file, or Path(":memory:").
        db_path_str (str): String form of the path used for connecting.
        client_id (str): Identifier of this client instance, used in log messages.
    """
    _CURRENT_SCHEMA_VERSION = 1
    _SCHEMA_NAME = "offline_sync_queue_schema"

    _FULL_SCHEMA_SQL_V1 = """
PRAGMA foreign_keys = ON;

CREATE TABLE IF NOT EXISTS db_schema_version(
  schema_name TEXT PRIMARY KEY NOT NULL,
  version INTEGER NOT NULL
);
INSERT OR IGNORE INTO db_schema_version(schema_name, version) VALUES('offline_sync_queue_schema', 0);

CREATE TABLE IF NOT EXISTS records(
  id TEXT PRIMARY KEY NOT NULL,
  version TEXT,
  deleted INTEGER NOT NULL DEFAULT 0,
  payload_json TEXT NOT NULL DEFAULT '{}',
  last_modified TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS pending_operations(
  position INTEGER PRIMARY KEY AUTOINCREMENT,
  record_id TEXT NOT NULL UNIQUE,
  kind TEXT NOT NULL CHECK(kind IN ('insert', 'update', 'delete')),
  record_json TEXT NOT NULL,
  enqueued_at TEXT NOT NULL
);

UPDATE db_schema_version
   SET version = 1
 WHERE schema_name = 'offline_sync_queue_schema'
   AND version < 1;
"""

    def __init__(self, db_path: Union[str, Path], client_id: str):
        """
        Initializes the PendingQueueDB instance and applies the schema if needed.

        Args:
            db_path: Path to the SQLite database file or ":memory:".
            client_id: A unique identifier for this client instance. Must not be empty.

        Raises:
            ValueError: If `client_id` is empty or None.
            PendingQueueDBError: If the directory cannot be created or initialization fails.
            SchemaError: If the on-disk schema cannot be used by this code.
        """
        if isinstance(db_path, Path):
            self.is_memory_db = False
            self.db_path = db_path.resolve()
        else:
            self.is_memory_db = (db_path == ':memory:')
            self.db_path = Path(db_path).resolve() if not self.is_memory_db else Path(":memory:")
        self.db_path_str = str(self.db_path) if not self.is_memory_db else ':memory:'

        if not client_id:
            raise ValueError("Client ID cannot be empty or None.")
        self.client_id = client_id

        if not self.is_memory_db:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise PendingQueueDBError(f"Failed to create database directory {self.db_path.parent}: {e}")

        logger.info(f"Initializing PendingQueueDB for path: {self.db_path_str} [Client ID: {self.client_id}]")
        self._local = threading.local()
        try:
            self._initialize_schema()
        except (PendingQueueDBError, sqlite3.Error) as e:
            logger.critical(f"FATAL: DB Initialization failed for {self.db_path_str}: {e}")
            self.close_connection()
            raise PendingQueueDBError(f"Database initialization failed: {e}") from e

    # --- Connection Management ---
    def _get_thread_connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, 'conn', None)
        if conn:
            try:
                conn.execute("SELECT 1")
            except (sqlite3.ProgrammingError, sqlite3.OperationalError):
                logger.warning(f"Thread-local connection for {self.db_path_str} was closed or became unusable. Reopening.")
                conn = None

        if not conn:
            try:
                # isolation_level=None: transactions are opened explicitly by transaction().
                conn = sqlite3.connect(self.db_path_str, check_same_thread=False, timeout=15,
                                       isolation_level=None)
                conn.row_factory = sqlite3.Row
                if not self.is_memory_db:
                    conn.execute("PRAGMA journal_mode=WAL;")
                conn.execute("PRAGMA foreign_keys = ON;")
                self._local.conn = conn
                logger.debug(f"Opened SQLite connection to {self.db_path_str} for thread {threading.get_ident()}")
            except sqlite3.Error as e:
                logger.error(f"Failed to connect to database {self.db_path_str}: {e}")
                self._local.conn = None
                raise PendingQueueDBError(f"Failed to connect to database '{self.db_path_str}': {e}") from e
        return self._local.conn

    def get_connection(self) -> sqlite3.Connection:
        return self._get_thread_connection()

    def close_connection(self):
        """Closes the current thread's connection, rolling back any open transaction first."""
        conn = getattr(self._local, 'conn', None)
        if conn is not None:
            try:
                if conn.in_transaction:
                    logger.warning(f"Connection to {self.db_path_str} is in an uncommitted transaction during close. Rolling back.")
                    conn.rollback()
                conn.close()
                logger.debug(f"Closed connection for thread {threading.get_ident()} to {self.db_path_str}.")
            except sqlite3.Error as e:
                logger.warning(f"Error during SQLite connection close for {self.db_path_str}: {e}")
            finally:
                self._local.conn = None

    # --- Query Execution ---
    def execute_query(self, query: str, params: Optional[Union[tuple, Dict[str, Any]]] = None) -> sqlite3.Cursor:
        """
        Executes a single SQL statement on the thread's connection.

        Raises:
            PendingQueueDBError: For any SQLite error, including constraint violations.
        """
        conn = self.get_connection()
        try:
            return conn.execute(query, params or ())
        except sqlite3.IntegrityError as e:
            logger.warning(f"Integrity constraint violation: {query[:200]}... Error: {e}")
            raise PendingQueueDBError(f"Database constraint violation: {e}") from e
        except sqlite3.Error as e:
            logger.error(f"Query execution failed: {query[:200]}... Error: {e}")
            raise PendingQueueDBError(f"Query execution failed: {e}") from e

    # --- Transaction Context ---
    def transaction(self) -> 'TransactionContextManager':
        """
        Returns a context manager for database transactions.

        Usage:
            with db.transaction():
                db.remove(record_id)
                db.upsert_remote_record(record)
        """
        return TransactionContextManager(self)

    # --- Schema Initialization ---
    def _get_db_version(self, conn: sqlite3.Connection) -> int:
        try:
            cursor = conn.execute("SELECT version FROM db_schema_version WHERE schema_name = ? LIMIT 1",
                                  (self._SCHEMA_NAME,))
            result = cursor.fetchone()
            return result['version'] if result else 0
        except sqlite3.Error as e:
            if "no such table" in str(e).lower():
                return 0
            raise SchemaError(f"Could not determine schema version for '{self._SCHEMA_NAME}': {e}") from e

    def _initialize_schema(self):
        conn = self.get_connection()
        current_version = self._get_db_version(conn)
        target_version = self._CURRENT_SCHEMA_VERSION
        logger.debug(f"Checking DB schema '{self._SCHEMA_NAME}'. Current version: {current_version}. Code supports: {target_version}")

        if current_version == target_version:
            return
        if current_version > target_version:
            raise SchemaError(f"Database schema '{self._SCHEMA_NAME}' version ({current_version}) is newer "
                              f"than supported by code ({target_version}).")
        try:
            conn.executescript(self._FULL_SCHEMA_SQL_V1)
        except sqlite3.Error as e:
            raise SchemaError(f"DB schema V{target_version} setup failed for '{self._SCHEMA_NAME}': {e}") from e

        final_version = self._get_db_version(conn)
        if final_version != target_version:
            raise SchemaError(f"Schema version update check failed. Expected {target_version}, got: {final_version}")
        logger.info(f"Database schema '{self._SCHEMA_NAME}' initialized to version {final_version} for {self.db_path_str}.")

    # --- Internal Helpers ---
    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> Record:
        payload = json.loads(row['payload_json'] or '{}')
        return Record.model_validate({**payload, 'id': row['id'], 'version': row['version'],
                                      'deleted': bool(row['deleted'])})

    @staticmethod
    def _row_to_operation(row: sqlite3.Row) -> PendingOperation:
        return PendingOperation(kind=OperationKind(row['kind']),
                                record=Record.model_validate_json(row['record_json']),
                                position=row['position'])

    def _write_record_row(self, record: Record) -> None:
        self.execute_query(
            """
            INSERT INTO records(id, version, deleted, payload_json, last_modified)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
              version = excluded.version,
              deleted = excluded.deleted,
              payload_json = excluded.payload_json,
              last_modified = excluded.last_modified
            """,
            (record.id, record.version, 1 if record.deleted else 0, json.dumps(record.payload()), self._now_iso()),
        )

    # --- Local Record API (enqueues) ---
    def insert_record(self, payload: Dict[str, Any], record_id: Optional[str] = None) -> Record:
        """
        Creates a record locally and queues an insert for it.

        Args:
            payload: Domain fields of the new record. Reserved fields are ignored.
            record_id: Optional client-chosen id; a UUID4 is generated when omitted.
        """
        record_id = record_id or str(uuid.uuid4())
        if self.get_record(record_id) is not None:
            raise InputError(f"Record '{record_id}' already exists.")
        fields = {k: v for k, v in payload.items() if k not in ('id', 'version', 'deleted')}
        record = Record.model_validate({**fields, 'id': record_id})
        with self.transaction():
            self._write_record_row(record)
            self.enqueue(OperationKind.INSERT, record)
        return record

    def update_record(self, record_id: str, changes: Dict[str, Any]) -> Record:
        current = self.get_record(record_id)
        if current is None or current.deleted:
            raise InputError(f"Cannot update missing record '{record_id}'.")
        fields = {k: v for k, v in changes.items() if k not in ('id', 'version', 'deleted')}
        record = current.with_fields(**fields)
        with self.transaction():
            self._write_record_row(record)
            self.enqueue(OperationKind.UPDATE, record)
        return record

    def delete_record(self, record_id: str) -> None:
        current = self.get_record(record_id)
        if current is None:
            raise InputError(f"Cannot delete missing record '{record_id}'.")
        with self.transaction():
            self.execute_query("DELETE FROM records WHERE id = ?", (record_id,))
            self.enqueue(OperationKind.DELETE, current)

    def get_record(self, record_id: str) -> Optional[Record]:
        row = self.execute_query("SELECT * FROM records WHERE id = ?", (record_id,)).fetchone()
        return self._row_to_record(row) if row else None

    def list_records(self, filters: Optional[Dict[str, Any]] = None, include_deleted: bool = False) -> List[Record]:
        """Lists local records whose payload fields equal every value in `filters`."""
        rows = self.execute_query("SELECT * FROM records ORDER BY last_modified, id").fetchall()
        records = [self._row_to_record(row) for row in rows]
        filters = filters or {}
        return [
            r for r in records
            if (include_deleted or not r.deleted)
            and all(r.model_dump().get(key) == value for key, value in filters.items())
        ]

    # --- Queue API ---
    def enqueue(self, kind: OperationKind, record: Record) -> Optional[PendingOperation]:
        """
        Queues a local mutation, folding it into an existing entry for the same record.

        Returns:
            The resulting pending operation, or None when the mutations cancel out
            (an insert followed by a delete never reaches the server).

        Raises:
            InputError: for sequences that cannot happen locally (e.g. updating a deleted record).
        """
        kind = OperationKind(kind)
        with self.transaction():
            existing = self.get_pending(record.id)
            if existing is None:
                self.execute_query(
                    "INSERT INTO pending_operations(record_id, kind, record_json, enqueued_at) VALUES (?, ?, ?, ?)",
                    (record.id, kind.value, record.model_dump_json(), self._now_iso()),
                )
                return self.get_pending(record.id)

            merged_kind = self._coalesce(existing.kind, kind, record.id)
            if merged_kind is None:
                self.remove(record.id)
                return None
            return self.replace(record.id, PendingOperation(kind=merged_kind, record=record))

    @staticmethod
    def _coalesce(existing: OperationKind, incoming: OperationKind, record_id: str) -> Optional[OperationKind]:
        if existing == OperationKind.INSERT:
            if incoming == OperationKind.UPDATE:
                return OperationKind.INSERT
            if incoming == OperationKind.DELETE:
                return None
        elif existing == OperationKind.UPDATE:
            if incoming in (OperationKind.UPDATE, OperationKind.DELETE):
                return incoming
        elif existing == OperationKind.DELETE:
            if incoming == OperationKind.INSERT:
                return OperationKind.UPDATE
            if incoming == OperationKind.DELETE:
                return OperationKind.DELETE
        raise InputError(f"Cannot queue '{incoming.value}' after pending '{existing.value}' for record '{record_id}'.")

    def enumerate_pending(self) -> List[PendingOperation]:
        rows = self.execute_query("SELECT * FROM pending_operations ORDER BY position").fetchall()
        return [self._row_to_operation(row) for row in rows]

    def get_pending(self, record_id: str) -> Optional[PendingOperation]:
        row = self.execute_query("SELECT * FROM pending_operations WHERE record_id = ?", (record_id,)).fetchone()
        return self._row_to_operation(row) if row else None

    def pending_count(self) -> int:
        return self.execute_query("SELECT COUNT(*) AS total FROM pending_operations").fetchone()['total']

    def remove(self, record_id: str) -> bool:
        cursor = self.execute_query("DELETE FROM pending_operations WHERE record_id = ?", (record_id,))
        logger.debug(f"Removed pending operation for record '{record_id}' (rows={cursor.rowcount}).")
        return cursor.rowcount > 0

    def replace(self, record_id: str, operation: PendingOperation) -> PendingOperation:
        """Replaces the pending entry for `record_id` in place, keeping its queue position."""
        if operation.record.id != record_id:
            raise InputError(f"Replacement for '{record_id}' carries record '{operation.record.id}'.")
        cursor = self.execute_query(
            "UPDATE pending_operations SET kind = ?, record_json = ? WHERE record_id = ?",
            (operation.kind.value, operation.record.model_dump_json(), record_id),
        )
        if cursor.rowcount == 0:
            raise InputError(f"No pending operation to replace for record '{record_id}'.")
        logger.debug(f"Replaced pending operation for record '{record_id}' with '{operation.kind.value}'.")
        return self.get_pending(record_id)

    # --- Sync-side API (never enqueues) ---
    def upsert_remote_record(self, record: Record) -> None:
        self._write_record_row(record)

    def purge_record(self, record_id: str) -> None:
        self.execute_query("DELETE FROM records WHERE id = ?", (record_id,))

    def accept_pushed(self, operation: PendingOperation, server_record: Record) -> None:
        """
        Settles a pending operation the server accepted.

        If the entry changed locally while the push was in flight, it stays queued
        with the server's new version so the next push does not conflict.
        """
        with self.transaction():
            current = self.get_pending(operation.record_id)
            if current is not None and current.record == operation.record:
                self.remove(operation.record_id)
            elif current is not None:
                refreshed = current.record.with_fields(version=server_record.version)
                self.replace(operation.record_id, PendingOperation(kind=current.kind, record=refreshed))
                self._write_record_row(refreshed)
                return

            if operation.kind == OperationKind.DELETE or server_record.deleted:
                self.purge_record(operation.record_id)
            else:
                self._write_record_row(server_record)

    def merge_pulled(self, records: Iterable[Record]) -> int:
        """
        Merges pulled records into the local table in one transaction.

        Tombstones remove the local row; records with a pending local operation are
        left untouched so the local change still gets pushed.

        Returns:
            The number of records written or purged.
        """
        merged = 0
        with self.transaction():
            for record in records:
                if self.get_pending(record.id) is not None:
                    logger.debug(f"Skipping pulled record '{record.id}': a local change is pending.")
                    continue
                if record.deleted:
                    self.purge_record(record.id)
                else:
                    self._write_record_row(record)
                merged += 1
        return merged


class TransactionContextManager:
    def __init__(self, db_instance: PendingQueueDB):
        self.db = db_instance
        self.conn: Optional[sqlite3.Connection] = None
        self.is_outermost_transaction = False

    def __enter__(self) -> sqlite3.Connection:
        self.conn = self.db.get_connection()
        if not self.conn.in_transaction:
            self.conn.execute("BEGIN")
            self.is_outermost_transaction = True
        return self.conn

    def __exit__(self, exc_type, exc_val, exc_tb):
        if not self.is_outermost_transaction:
            # Nested blocks leave commit/rollback to the outermost block.
            return False
        if exc_type:
            logger.error(f"Transaction failed, rolling back on thread {threading.get_ident()}: {exc_type.__name__} - {exc_val}")
            try:
                self.conn.rollback()
            except sqlite3.Error as rb_err:
                logger.critical(f"Rollback FAILED on thread {threading.get_ident()}: {rb_err}")
            return False
        try:
            self.conn.commit()
        except sqlite3.Error as commit_err:
            logger.error(f"Commit FAILED on thread {threading.get_ident()}, attempting rollback: {commit_err}")
            try:
                self.conn.rollback()
            except sqlite3.Error as rb_err:
                logger.critical(f"Rollback after failed commit also FAILED: {rb_err}")
            raise PendingQueueDBError(f"Commit failed: {commit_err}") from commit_err
        return False

#
# End of Pending_Queue_DB.py
########################################################################################################################
