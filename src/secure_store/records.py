"""
src/secure_store/records.py - Persistent Record Store

SQLite storage for user credentials, per-file ownership records and the
audit journal.

Every call goes through a bounded retry loop: a locked or busy database is
retried up to max_attempts times, then surfaces as PersistenceError.
"""

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .errors import AlreadyExistsError, PersistenceError


logger = logging.getLogger(__name__)


@dataclass
class UserRecord:
    """Stored credentials of one user."""
    username: str
    password_hash: str
    salt: str
    created_at: str


@dataclass
class OwnershipRecord:
    """Owner and key salt of one stored file."""
    path: str
    owner: str
    salt: str
    created_at: str


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class RecordStore:
    """
    SQLite-backed record store.

    Features:
    - Users keyed by username
    - Ownership records keyed by root-relative path
    - Append-only audit journal
    - Bounded retry on transient failures
    """

    def __init__(self, db_path: Path, max_attempts: int = 3, timeout: float = 5.0):
        """
        Initialize record store.

        Args:
            db_path: SQLite database file
            max_attempts: Attempts per call before PersistenceError
            timeout: Seconds SQLite waits on a locked database per attempt
        """
        self.db_path = db_path
        self.max_attempts = max_attempts
        self.timeout = timeout
        self._conn: Optional[sqlite3.Connection] = None

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.init_schema()

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.row_factory = sqlite3.Row
            self._conn = conn
        return self._conn

    @contextmanager
    def _transaction(self):
        """Commit on success, roll back on failure."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def _with_retry(self, operation: str, fn: Callable[[sqlite3.Connection], Any]) -> Any:
        """
        Run fn inside a transaction, retrying transient failures.

        Raises:
            PersistenceError: After max_attempts transient failures, or on
                any non-transient database error
        """
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                with self._transaction() as conn:
                    return fn(conn)
            except sqlite3.IntegrityError:
                raise
            except sqlite3.OperationalError as e:
                last_error = e
                logger.warning("%s failed (attempt %d/%d): %s",
                               operation, attempt, self.max_attempts, e)
                self._reset_connection()
            except sqlite3.Error as e:
                raise PersistenceError(f"{operation} failed: {e}")

        raise PersistenceError(
            f"{operation} failed after {self.max_attempts} attempts: {last_error}"
        )

    def _reset_connection(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            except sqlite3.Error as e:
                logger.debug("Closing stale connection failed: %s", e)
            self._conn = None

    def init_schema(self) -> None:
        """Create tables if they do not exist. Safe to call repeatedly."""
        def create(conn):
            conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                username TEXT PRIMARY KEY,
                password_hash TEXT NOT NULL,
                salt TEXT NOT NULL,
                created_at TEXT NOT NULL
            );""")
            conn.execute("""
            CREATE TABLE IF NOT EXISTS file_keys (
                path TEXT PRIMARY KEY,
                owner TEXT NOT NULL,
                salt TEXT NOT NULL,
                created_at TEXT NOT NULL
            );""")
            conn.execute("""
            CREATE TABLE IF NOT EXISTS audit_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                event_id TEXT NOT NULL UNIQUE,
                timestamp TEXT NOT NULL,
                actor TEXT NOT NULL,
                action TEXT NOT NULL,
                path TEXT,
                outcome TEXT NOT NULL,
                severity TEXT NOT NULL,
                details TEXT NOT NULL,
                checksum TEXT NOT NULL
            );""")
            conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_audit_path
            ON audit_log(path);""")

        self._with_retry("init_schema", create)

    # ------------------------------- Users -------------------------------
    def create_user(self, username: str, password_hash: str, salt: str) -> UserRecord:
        """
        Insert a user.

        Raises:
            AlreadyExistsError: If the username is taken
        """
        record = UserRecord(username, password_hash, salt, _now())
        try:
            self._with_retry("create_user", lambda conn: conn.execute(
                "INSERT INTO users (username, password_hash, salt, created_at) VALUES (?, ?, ?, ?)",
                (record.username, record.password_hash, record.salt, record.created_at)
            ))
        except sqlite3.IntegrityError:
            raise AlreadyExistsError(f"User '{username}' already exists")
        return record

    def get_user(self, username: str) -> Optional[UserRecord]:
        row = self._with_retry("get_user", lambda conn: conn.execute(
            "SELECT * FROM users WHERE username = ?", (username,)
        ).fetchone())
        return UserRecord(**dict(row)) if row else None

    def user_exists(self, username: str) -> bool:
        return self.get_user(username) is not None

    # ------------------------- Ownership records --------------------------
    def put_file_key(self, path: str, owner: str, salt: str) -> OwnershipRecord:
        """
        Store the ownership record of a newly created file.

        A record left behind by a deleted file at the same path is replaced.
        """
        record = OwnershipRecord(path, owner, salt, _now())
        self._with_retry("put_file_key", lambda conn: conn.execute(
            "INSERT OR REPLACE INTO file_keys (path, owner, salt, created_at) VALUES (?, ?, ?, ?)",
            (record.path, record.owner, record.salt, record.created_at)
        ))
        return record

    def get_file_key(self, path: str) -> Optional[OwnershipRecord]:
        row = self._with_retry("get_file_key", lambda conn: conn.execute(
            "SELECT * FROM file_keys WHERE path = ?", (path,)
        ).fetchone())
        return OwnershipRecord(**dict(row)) if row else None

    # ---------------------------- Audit journal ----------------------------
    def append_audit(self, event: Dict[str, Any]) -> None:
        """Insert one audit event (write-once)."""
        columns = ("event_id", "timestamp", "actor", "action", "path",
                   "outcome", "severity", "details", "checksum")
        self._with_retry("append_audit", lambda conn: conn.execute(
            f"INSERT INTO audit_log ({', '.join(columns)}) VALUES ({', '.join('?' * len(columns))})",
            tuple(event[column] for column in columns)
        ))

    def list_audit(self, path: Optional[str] = None, actor: Optional[str] = None,
                   limit: int = 100) -> List[Dict[str, Any]]:
        """
        Audit events, oldest first, optionally filtered.

        Args:
            path: Only events for this path key
            actor: Only events by this actor
            limit: Maximum number of (most recent) events
        """
        clauses, params = [], []
        if path is not None:
            clauses.append("path = ?")
            params.append(path)
        if actor is not None:
            clauses.append("actor = ?")
            params.append(actor)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        rows = self._with_retry("list_audit", lambda conn: conn.execute(
            f"SELECT * FROM (SELECT * FROM audit_log {where} ORDER BY id DESC LIMIT ?) ORDER BY id ASC",
            (*params, limit)
        ).fetchall())
        return [dict(row) for row in rows]

    def close(self) -> None:
        self._reset_connection()
