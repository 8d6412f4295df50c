"""SQLite-backed outbox for collected events."""

import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

from ..exceptions import OutboxError
from ..models import OutboundEvent
from .base import BaseSink

logger = logging.getLogger(__name__)


class EventOutbox:
    """
    Durable FIFO of event records awaiting delivery.

    Records are ``pending`` until dequeued, ``processing`` until acked,
    and deleted on ack. Records left ``processing`` by a crashed shipper
    are returned to ``pending`` by :meth:`requeue_unacked`.
    """

    def __init__(self, db_path: Union[str, Path], table_name: str = "outbox"):
        """
        Initialize the outbox.

        Args:
            db_path: Path to the SQLite database file
            table_name: Name of the table for this outbox
        """
        self.db_path = Path(db_path)
        self.table_name = table_name
        self._lock = threading.Lock()
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._closed = False

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a thread-local database connection."""
        if getattr(self._local, "conn", None) is None:
            self._local.conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
                isolation_level=None,  # Autocommit mode
            )
            self._local.conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn.execute("PRAGMA synchronous=NORMAL")
            self._connections.append(self._local.conn)
        return self._local.conn

    def _init_db(self) -> None:
        conn = self._get_connection()
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.table_name} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                kind TEXT NOT NULL,
                path TEXT NOT NULL,
                payload TEXT NOT NULL,
                status TEXT DEFAULT 'pending',
                created_at REAL NOT NULL,
                updated_at REAL NOT NULL
            )
        """)
        conn.execute(f"""
            CREATE INDEX IF NOT EXISTS idx_{self.table_name}_status
            ON {self.table_name}(status)
        """)

    def _check_open(self) -> None:
        if self._closed:
            raise OutboxError("Outbox is closed")

    def enqueue(self, record: dict) -> int:
        """
        Append an event record.

        Args:
            record: Event record as produced by ``OutboundEvent.to_dict``

        Returns:
            The ID of the stored record
        """
        self._check_open()
        now = time.time()
        try:
            with self._lock:
                cursor = self._get_connection().execute(
                    f"INSERT INTO {self.table_name} (kind, path, payload, status, created_at, updated_at) "
                    f"VALUES (?, ?, ?, 'pending', ?, ?)",
                    (record.get("type", ""), record.get("path", ""), json.dumps(record), now, now),
                )
                return cursor.lastrowid
        except sqlite3.Error as e:
            raise OutboxError(f"Failed to enqueue record: {e}") from e

    def dequeue(self, batch_size: int = 1) -> List[Tuple[int, Any]]:
        """
        Claim the oldest pending records.

        Records are marked ``processing`` until acked or nacked.

        Args:
            batch_size: Maximum number of records to claim

        Returns:
            List of (id, record) tuples
        """
        self._check_open()
        now = time.time()

        with self._lock:
            conn = self._get_connection()
            conn.execute("BEGIN")
            try:
                rows = conn.execute(
                    f"SELECT id, payload FROM {self.table_name} WHERE status = 'pending' ORDER BY id LIMIT ?",
                    (batch_size,),
                ).fetchall()

                if rows:
                    ids = [row[0] for row in rows]
                    placeholders = ",".join("?" * len(ids))
                    conn.execute(
                        f"UPDATE {self.table_name} SET status = 'processing', updated_at = ? WHERE id IN ({placeholders})",
                        [now] + ids,
                    )

                conn.execute("COMMIT")
                return [(row[0], json.loads(row[1])) for row in rows]
            except Exception:
                conn.execute("ROLLBACK")
                raise

    def ack(self, ids: List[int]) -> None:
        """Delete delivered records."""
        self._check_open()
        if not ids:
            return

        with self._lock:
            placeholders = ",".join("?" * len(ids))
            self._get_connection().execute(
                f"DELETE FROM {self.table_name} WHERE id IN ({placeholders})",
                ids,
            )

    def nack(self, ids: List[int]) -> None:
        """Return claimed records to the pending state."""
        self._check_open()
        if not ids:
            return

        with self._lock:
            placeholders = ",".join("?" * len(ids))
            self._get_connection().execute(
                f"UPDATE {self.table_name} SET status = 'pending', updated_at = ? WHERE id IN ({placeholders})",
                [time.time()] + ids,
            )

    def requeue_unacked(self) -> int:
        """
        Return all ``processing`` records to ``pending`` (crash recovery).

        Returns:
            Number of records requeued
        """
        self._check_open()
        with self._lock:
            cursor = self._get_connection().execute(
                f"UPDATE {self.table_name} SET status = 'pending', updated_at = ? WHERE status = 'processing'",
                (time.time(),),
            )
            return cursor.rowcount

    def size(self) -> int:
        """Number of pending records."""
        self._check_open()
        with self._lock:
            cursor = self._get_connection().execute(
                f"SELECT COUNT(*) FROM {self.table_name} WHERE status = 'pending'"
            )
            return cursor.fetchone()[0]

    def close(self) -> None:
        if self._closed:
            return

        self._closed = True

        # Connections opened by other threads are closed here too
        with self._lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local.conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class OutboxSink(BaseSink):
    """Sink that appends events to an :class:`EventOutbox`."""

    def __init__(self, db_path: Union[str, Path] = "data/outbox.db", outbox: Optional[EventOutbox] = None):
        self.outbox = outbox or EventOutbox(db_path)
        requeued = self.outbox.requeue_unacked()
        if requeued:
            logger.info(f"Requeued {requeued} unacked outbox records")

    def publish(self, event: OutboundEvent) -> None:
        self.outbox.enqueue(event.to_dict())

    def close(self) -> None:
        self.outbox.close()
