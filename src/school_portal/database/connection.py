"""Connection management for the School Portal store.

A ``Database`` owns one thread-safe pool of SQLite connections (WAL mode,
foreign keys on) and is handed to every repository at construction time.
Multi-statement work goes through ``Database.transaction()``, which takes a
single pooled connection, runs ``BEGIN IMMEDIATE`` and commits or rolls back
as a unit.
"""

import sqlite3
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Iterator, Optional

from school_portal.config import Settings
from school_portal.errors import StorageError
from school_portal.logutils import get_logger

from .sqlutils import NOW_SQL

logger = get_logger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"
VIEWS_PATH = Path(__file__).parent / "views.sql"

# Named batch procedures run by scheduled jobs. SQLite has no stored
# procedures, so each name maps to the statement it stands for.
PROCEDURES = {
    "batch_update_expired_notifications": f"""
        UPDATE notifications
        SET status = 'expired', updated_at = {NOW_SQL}
        WHERE status = 'active'
          AND expires_at IS NOT NULL
          AND expires_at <= {NOW_SQL}
    """,
    "expire_stale_invites": f"""
        UPDATE invites
        SET status = 'expired', updated_at = {NOW_SQL}
        WHERE status = 'pending'
          AND expires_at <= {NOW_SQL}
    """,
}


class ConnectionPool:
    """Thread-safe SQLite connection pool.

    Connections are created lazily up to ``pool_size``; callers beyond that
    wait up to ``timeout`` seconds for one to be returned.
    """

    def __init__(self, db_path: Path, pool_size: int = 5, timeout: float = 30.0):
        self._db_path = self._validate_path(db_path)
        self._pool_size = pool_size
        self._timeout = timeout
        self._idle: Queue = Queue(maxsize=pool_size)
        self._created = 0
        self._lock = threading.Lock()

    @property
    def db_path(self) -> Path:
        return self._db_path

    @staticmethod
    def _validate_path(db_path: Path) -> Path:
        """Reject traversal and system locations for the database file."""
        if ".." in Path(db_path).parts:
            raise ValueError(f"Invalid database path: {db_path}")
        resolved = Path(db_path).resolve()
        if str(resolved).startswith(("/etc", "/proc", "/sys")):
            raise ValueError(f"Invalid database path: {db_path}")
        return resolved

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,  # connections move between threads via the pool
            timeout=self._timeout,
            isolation_level=None,  # explicit BEGIN/COMMIT only
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA busy_timeout = 5000")
        conn.execute("PRAGMA synchronous = NORMAL")
        return conn

    def get_connection(self) -> sqlite3.Connection:
        """Take a connection from the pool.

        Raises:
            StorageError: if none becomes available within the timeout.
        """
        try:
            conn = self._idle.get_nowait()
        except Empty:
            with self._lock:
                if self._created < self._pool_size:
                    self._created += 1
                    logger.debug("Opening new pooled connection", extra={"extra_data": {"open": self._created}})
                    try:
                        return self._create_connection()
                    except sqlite3.Error:
                        self._created -= 1
                        raise
            try:
                conn = self._idle.get(block=True, timeout=self._timeout)
            except Empty:
                logger.error(
                    "Connection pool exhausted",
                    extra={"extra_data": {"timeout": self._timeout, "pool_size": self._pool_size}},
                )
                raise StorageError(f"Connection pool exhausted after {self._timeout}s")

        try:
            conn.execute("SELECT 1")
        except sqlite3.Error:
            logger.debug("Replacing dead pooled connection")
            conn = self._create_connection()
        return conn

    def return_connection(self, conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.rollback()
        try:
            self._idle.put_nowait(conn)
        except Full:
            conn.close()
            with self._lock:
                self._created -= 1

    def close_all(self) -> None:
        while True:
            try:
                conn = self._idle.get_nowait()
            except Empty:
                break
            conn.close()
            with self._lock:
                self._created -= 1


class Database:
    """Handle on one store: the pool plus schema and procedure helpers.

    Example:
        db = Database(Path("school_portal.db"))
        db.initialize()
        with db.transaction() as conn:
            conn.execute("UPDATE classes SET is_active = 0 WHERE id = ?", (class_id,))
    """

    def __init__(self, db_path: Path, pool_size: int = 5, timeout: float = 30.0):
        self._pool = ConnectionPool(Path(db_path), pool_size, timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(settings.database_path, settings.pool_size, settings.pool_timeout)

    @property
    def path(self) -> Path:
        return self._pool.db_path

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Borrow a connection in autocommit mode for single statements."""
        conn = self._pool.get_connection()
        try:
            yield conn
        finally:
            self._pool.return_connection(conn)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the block in one write transaction on one connection."""
        with self.connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def call_procedure(self, name: str) -> int:
        """Run a named batch procedure and return the number of rows touched."""
        try:
            statement = PROCEDURES[name]
        except KeyError:
            raise ValueError(f"Unknown procedure: {name}") from None

        with self.transaction() as conn:
            cursor = conn.execute(statement)
            return cursor.rowcount

    def initialize(self, force: bool = False) -> Path:
        """Create tables, triggers and views (idempotent unless ``force``)."""
        if force and self.path.exists():
            logger.info("Removing existing database", extra={"extra_data": {"path": str(self.path)}})
            self._pool.close_all()
            self.path.unlink()
            for suffix in ("-wal", "-shm"):
                Path(f"{self.path}{suffix}").unlink(missing_ok=True)

        with self.connection() as conn:
            conn.executescript(SCHEMA_PATH.read_text())
            conn.executescript(VIEWS_PATH.read_text())

        logger.info("Database initialized", extra={"extra_data": {"path": str(self.path)}})
        return self.path

    def verify(self) -> dict:
        """Describe tables, views and row counts."""
        if not self.path.exists():
            return {"exists": False, "tables": [], "error": "Database file not found"}

        with self.connection() as conn:
            tables = [
                row["name"]
                for row in conn.execute(
                    "SELECT name FROM sqlite_master WHERE type = 'table' "
                    "AND name NOT LIKE 'sqlite_%' ORDER BY name"
                )
            ]
            views = [
                row["name"]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'view' ORDER BY name")
            ]
            # Names come from sqlite_master, never from callers.
            counts = {
                table: conn.execute(f'SELECT COUNT(*) AS cnt FROM "{table}"').fetchone()["cnt"]
                for table in tables
            }

        return {"exists": True, "path": str(self.path), "tables": tables, "views": views, "row_counts": counts}

    def acquire_lease(self, name: str, ttl_seconds: int) -> Optional[str]:
        """Take the named lease if it is free or stale; return the holder token."""
        holder = str(uuid.uuid4())
        with self.transaction() as conn:
            cursor = conn.execute(
                f"""
                INSERT INTO job_leases (name, holder, acquired_at, expires_at)
                VALUES (?, ?, {NOW_SQL}, strftime('%Y-%m-%d %H:%M:%f', 'now', ?))
                ON CONFLICT(name) DO UPDATE SET
                    holder = excluded.holder,
                    acquired_at = excluded.acquired_at,
                    expires_at = excluded.expires_at
                WHERE job_leases.expires_at <= {NOW_SQL}
                """,
                (name, holder, f"+{int(ttl_seconds)} seconds"),
            )
            return holder if cursor.rowcount == 1 else None

    def release_lease(self, name: str, holder: str) -> None:
        with self.connection() as conn:
            conn.execute("DELETE FROM job_leases WHERE name = ? AND holder = ?", (name, holder))

    def close(self) -> None:
        self._pool.close_all()
