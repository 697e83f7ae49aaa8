"""
Persistence Store
-----------------
SQLite-backed macro storage, run log and full-text document index.

Design:
- Schema version table for migrations
- Hard fail on downgrade (db.version > code.version)
- Auto-migrate forward (db.version < code.version)
- Macros are upserted by name and loaded whole; runs are append-only
- Documents are indexed with FTS5 and searched by MATCH

Usage:
    from infra.store import Store

    store = Store("followme.db")
    store.initialize()

    store.save_macro("cleanup", [{"kind": "shell", "command": "ls"}])
    macro = store.get_macro("cleanup")
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

from core.types import Macro, MacroStep
from infra.logging import get_logger

# Current schema version - increment on any schema change
SCHEMA_VERSION = 1

# Forward migrations keyed by the version they upgrade to. A version with
# no entry only needs its version row recorded.
MIGRATIONS: Dict[int, str] = {}

DEFAULT_DB_NAME = "follow_me_gpt.db"


class StoreError(Exception):
    """Store-specific errors."""
    pass


class SchemaMismatchError(StoreError):
    """Schema version mismatch (downgrade attempted)."""
    pass


class MigrationFailedError(StoreError):
    """Migration failed mid-way."""
    pass


def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def _to_jsonable(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, list):
        return [_to_jsonable(v) for v in value]
    return value


class Store:
    """
    SQLite store with schema versioning.

    Thread-safe: one connection guarded by a lock.
    """

    def __init__(self, db_path: str = DEFAULT_DB_NAME):
        self._db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._logger = get_logger("infra.store")
        self._initialized = False
        self._in_transaction = False

    @property
    def db_path(self) -> Path:
        return self._db_path

    def initialize(self) -> None:
        """
        Initialize the database.

        - Creates database if not exists
        - Checks schema version
        - Runs migrations if needed (forward only)
        - Hard fails on downgrade
        """
        self._logger.info(f"Initializing store at {self._db_path}")

        if str(self._db_path) != ":memory:":
            self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if str(self._db_path) != ":memory:":
            self._conn.execute("PRAGMA journal_mode = WAL")

        db_version = self._get_schema_version()

        if db_version is None:
            self._logger.info("Creating new store schema")
            self._create_schema()
            self._set_schema_version(SCHEMA_VERSION)
        elif db_version < SCHEMA_VERSION:
            self._logger.info(f"Migrating store from v{db_version} to v{SCHEMA_VERSION}")
            self._migrate(db_version, SCHEMA_VERSION)
        elif db_version > SCHEMA_VERSION:
            raise SchemaMismatchError(
                f"Database schema version ({db_version}) is newer than code version ({SCHEMA_VERSION}). "
                f"Downgrade is not supported. Please update the code or use a different database."
            )

        self._initialized = True
        self._logger.info("Store initialized")

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
            self._initialized = False

    def __enter__(self) -> "Store":
        if not self._initialized:
            self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def _get_schema_version(self) -> Optional[int]:
        try:
            cursor = self._conn.execute(
                "SELECT version FROM schema_version ORDER BY id DESC LIMIT 1"
            )
            row = cursor.fetchone()
            return row["version"] if row else None
        except sqlite3.OperationalError:
            # Table doesn't exist
            return None

    def _set_schema_version(self, version: int) -> None:
        self._conn.execute(
            "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
            (version, datetime.now(timezone.utc).isoformat())
        )
        self._conn.commit()

    def _create_schema(self) -> None:
        """Create the initial schema (v1)."""
        schema_sql = """
        CREATE TABLE IF NOT EXISTS schema_version (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            version INTEGER NOT NULL,
            applied_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS macros (
            name TEXT PRIMARY KEY,
            steps TEXT NOT NULL,
            updated_at INTEGER NOT NULL
        );

        CREATE TABLE IF NOT EXISTS tags (
            file TEXT NOT NULL,
            tag TEXT NOT NULL,
            updated_at INTEGER NOT NULL,
            PRIMARY KEY (file, tag)
        );

        CREATE TABLE IF NOT EXISTS runs (
            id TEXT PRIMARY KEY,
            prompt TEXT,
            plan TEXT,
            result TEXT,
            created_at INTEGER NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_runs_created ON runs(created_at);

        CREATE VIRTUAL TABLE IF NOT EXISTS fts_docs USING fts5(path, content);
        """
        self._conn.executescript(schema_sql)
        self._conn.commit()

    def _migrate(self, from_version: int, to_version: int) -> None:
        """Run forward migrations in version order."""
        for version in range(from_version + 1, to_version + 1):
            if version in MIGRATIONS:
                self._logger.info(f"Applying migration to v{version}")
                try:
                    self._conn.executescript(MIGRATIONS[version])
                    self._set_schema_version(version)
                except sqlite3.Error as e:
                    raise MigrationFailedError(
                        f"Migration to v{version} failed: {e}. "
                        f"Database is at v{version - 1}. Manual intervention required."
                    ) from e
            else:
                self._set_schema_version(version)

    def _require(self) -> sqlite3.Connection:
        if not self._initialized or self._conn is None:
            raise StoreError("Store not initialized. Call initialize() first.")
        return self._conn

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """
        Explicit transaction. Nested calls join the outer transaction.

        Usage:
            with store.transaction():
                store.save_macro(...)
                store.log_run(...)
        """
        conn = self._require()
        with self._lock:
            if self._in_transaction:
                yield
                return

            self._in_transaction = True
            try:
                yield
                conn.commit()
            except Exception as e:
                conn.rollback()
                self._logger.error(f"Transaction rolled back: {e}")
                raise
            finally:
                self._in_transaction = False

    def _commit(self) -> None:
        if not self._in_transaction:
            self._conn.commit()

    # ===== Macros =====

    def save_macro(self, name: str, steps: List[Any]) -> None:
        """Create or overwrite a macro by name."""
        conn = self._require()
        payload = json.dumps(_to_jsonable(steps))
        with self._lock:
            conn.execute(
                """
                INSERT INTO macros (name, steps, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET steps=excluded.steps, updated_at=excluded.updated_at
                """,
                (name, payload, _now_ms())
            )
            self._commit()
        self._logger.info(f"Saved macro '{name}' ({len(steps)} steps)")

    def load_macros(self) -> List[Macro]:
        conn = self._require()
        with self._lock:
            rows = conn.execute(
                "SELECT name, steps, updated_at FROM macros ORDER BY name"
            ).fetchall()
        return [self._row_to_macro(row) for row in rows]

    def get_macro(self, name: str) -> Optional[Macro]:
        conn = self._require()
        with self._lock:
            row = conn.execute(
                "SELECT name, steps, updated_at FROM macros WHERE name = ?", (name,)
            ).fetchone()
        return self._row_to_macro(row) if row else None

    def delete_macro(self, name: str) -> bool:
        conn = self._require()
        with self._lock:
            cursor = conn.execute("DELETE FROM macros WHERE name = ?", (name,))
            self._commit()
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_macro(row: sqlite3.Row) -> Macro:
        return Macro(
            name=row["name"],
            steps=[MacroStep.from_dict(s) for s in json.loads(row["steps"])],
            updated_at=datetime.fromtimestamp(row["updated_at"] / 1000, tz=timezone.utc),
        )

    # ===== Runs =====

    def log_run(self, run_id: str, prompt: str, plan: Any, result: Any) -> None:
        """Append a run record. Run ids are unique; re-logging an id fails."""
        conn = self._require()
        with self._lock:
            conn.execute(
                "INSERT INTO runs (id, prompt, plan, result, created_at) VALUES (?, ?, ?, ?, ?)",
                (
                    run_id,
                    prompt,
                    json.dumps(_to_jsonable(plan), default=str),
                    json.dumps(_to_jsonable(result), default=str),
                    _now_ms(),
                )
            )
            self._commit()
        self._logger.debug(f"Logged run {run_id}")

    def get_run(self, run_id: str) -> Optional[Dict[str, Any]]:
        conn = self._require()
        with self._lock:
            row = conn.execute(
                "SELECT id, prompt, plan, result, created_at FROM runs WHERE id = ?", (run_id,)
            ).fetchone()
        if not row:
            return None
        return {
            "id": row["id"],
            "prompt": row["prompt"],
            "plan": json.loads(row["plan"]) if row["plan"] else None,
            "result": json.loads(row["result"]) if row["result"] else None,
            "created_at": row["created_at"],
        }

    def list_runs(self, limit: int = 20) -> List[Dict[str, Any]]:
        conn = self._require()
        with self._lock:
            rows = conn.execute(
                "SELECT id, prompt, created_at FROM runs ORDER BY created_at DESC LIMIT ?", (limit,)
            ).fetchall()
        return [dict(row) for row in rows]

    # ===== Full-text index =====

    def index_document(self, path: str, content: str) -> None:
        conn = self._require()
        with self._lock:
            conn.execute("INSERT INTO fts_docs (path, content) VALUES (?, ?)", (path, content))
            self._commit()

    def search_documents(self, query: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Ranked hits: [{path, snippet}]. Malformed FTS queries raise StoreError."""
        conn = self._require()
        try:
            with self._lock:
                rows = conn.execute(
                    """
                    SELECT path, snippet(fts_docs, 1, '[', ']', '...', 10) AS snippet
                    FROM fts_docs WHERE fts_docs MATCH ? ORDER BY rank LIMIT ?
                    """,
                    (query, limit)
                ).fetchall()
        except sqlite3.OperationalError as e:
            raise StoreError(f"Search failed: {e}") from e
        return [{"path": row["path"], "snippet": row["snippet"]} for row in rows]

    # ===== Tags =====

    def add_tag(self, file: str, tag: str) -> None:
        conn = self._require()
        with self._lock:
            conn.execute(
                """
                INSERT INTO tags (file, tag, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(file, tag) DO UPDATE SET updated_at=excluded.updated_at
                """,
                (file, tag, _now_ms())
            )
            self._commit()

    def get_tags(self, file: str) -> List[str]:
        conn = self._require()
        with self._lock:
            rows = conn.execute(
                "SELECT tag FROM tags WHERE file = ? ORDER BY tag", (file,)
            ).fetchall()
        return [row["tag"] for row in rows]
