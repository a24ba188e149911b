"""
SQLite Event Store - Append-only license history with idempotency

The event store is the durable half of the ledger: every draft, bid,
allocation and collection is a row here, and the registry is rebuilt from
these rows on start-up. It provides:
- Append-only semantics (events never modified or deleted)
- Idempotency via command_id (same command = same events)
- Optimistic locking via stream versioning
- Deterministic replay in insertion order
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from decaying_license.kernel.errors import (
    CommandIdempotencyViolation,
    EventStoreError,
    StreamVersionConflict,
)
from decaying_license.kernel.events import Event
from decaying_license.kernel.logging import get_logger
from decaying_license.kernel.metrics import (
    events_appended_total,
    events_loaded_total,
    stream_version_conflicts_total,
)
from decaying_license.kernel.retry import retry_on_sqlite_lock

logger = get_logger(__name__)

_EVENT_COLUMNS = (
    "event_id, stream_id, stream_type, version, "
    "command_id, event_type, occurred_at, actor_id, payload_json"
)


class SQLiteEventStore:
    """
    SQLite-based event store with append-only semantics

    Uses WAL mode for crash safety. The seq column records global insertion
    order, which is the order projections replay in - timestamps alone cannot
    order several events written by one command in the same instant.

    Schema:
    - events table: append-only event log
    - Unique constraints: event_id, (stream_id, version)
    - Indices: stream_id, event_type, command_id
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize event store with SQLite database

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        """Create tables and indices if they don't exist"""
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    event_id TEXT NOT NULL UNIQUE,
                    stream_id TEXT NOT NULL,
                    stream_type TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    command_id TEXT NOT NULL,
                    event_type TEXT NOT NULL,
                    occurred_at TEXT NOT NULL,
                    actor_id TEXT,
                    payload_json TEXT NOT NULL,

                    UNIQUE(stream_id, version)
                )
            """)

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_stream "
                "ON events(stream_id, version)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_command ON events(command_id)"
            )

            conn.commit()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections"""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @retry_on_sqlite_lock()
    def append(
        self,
        stream_id: str,
        expected_version: int,
        events: list[Event],
    ) -> list[Event]:
        """
        Append events to a stream with optimistic locking

        All events land in one transaction or none do.

        Args:
            stream_id: License stream identifier
            expected_version: Expected current stream version
            events: Events to append (sequential versions)

        Returns:
            The appended events, or the previously stored events when the
            command was already processed for this stream

        Raises:
            StreamVersionConflict: If stream version doesn't match expected
            EventStoreError: On other database errors
        """
        if not events:
            return []

        # A replayed command returns what it wrote the first time
        first_command_id = events[0].command_id
        existing = [
            e for e in self._get_events_by_command_id(first_command_id)
            if e.stream_id == stream_id
        ]
        if existing:
            logger.info(
                "Command already applied to stream, returning stored events",
                stream_id=stream_id,
                command_id=first_command_id,
                event_count=len(existing),
            )
            return existing

        with self._connect() as conn:
            try:
                current_version = self._get_stream_version(conn, stream_id)
                if current_version != expected_version:
                    raise StreamVersionConflict(stream_id, expected_version, current_version)

                conn.executemany(
                    f"INSERT INTO events ({_EVENT_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    [
                        (
                            event.event_id,
                            event.stream_id,
                            event.stream_type,
                            event.version,
                            event.command_id,
                            event.event_type,
                            event.occurred_at.isoformat(),
                            event.actor_id,
                            json.dumps(event.payload),
                        )
                        for event in events
                    ],
                )
                conn.commit()

            except StreamVersionConflict:
                stream_version_conflicts_total.labels(
                    stream_type=events[0].stream_type
                ).inc()
                raise

            except sqlite3.IntegrityError as e:
                conn.rollback()
                error_msg = str(e).lower()

                if "stream_id" in error_msg and "version" in error_msg:
                    stream_version_conflicts_total.labels(
                        stream_type=events[0].stream_type
                    ).inc()
                    current = self._get_stream_version(conn, stream_id)
                    raise StreamVersionConflict(stream_id, expected_version, current) from e

                if "event_id" in error_msg:
                    # Same events raced in through another connection
                    stored = self._get_events_by_command_id(first_command_id)
                    if stored:
                        return stored
                    raise CommandIdempotencyViolation(first_command_id) from e

                raise EventStoreError(f"Failed to append events: {e}") from e

            except sqlite3.OperationalError:
                conn.rollback()
                raise

            except sqlite3.Error as e:
                conn.rollback()
                raise EventStoreError(f"Unexpected error appending events: {e}") from e

        for event in events:
            events_appended_total.labels(
                stream_type=event.stream_type, event_type=event.event_type
            ).inc()
        logger.debug(
            "Events appended",
            stream_id=stream_id,
            event_count=len(events),
            new_version=events[-1].version,
        )
        return events

    @retry_on_sqlite_lock()
    def load_stream(self, stream_id: str) -> list[Event]:
        """
        Load all events for a stream in version order

        Args:
            stream_id: License stream identifier

        Returns:
            List of events (empty if stream doesn't exist)
        """
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_EVENT_COLUMNS} FROM events "
                "WHERE stream_id = ? ORDER BY version ASC",
                (stream_id,),
            )
            events = [self._row_to_event(row) for row in cursor.fetchall()]

        if events:
            events_loaded_total.labels(stream_type=events[0].stream_type).inc(len(events))
        return events

    @retry_on_sqlite_lock()
    def load_all_events(self, limit: int | None = None) -> list[Event]:
        """
        Load every event in insertion order (for projection rebuilding)

        Args:
            limit: Maximum number of events to return, or None for all
        """
        query = f"SELECT {_EVENT_COLUMNS} FROM events ORDER BY seq ASC"
        params: tuple = ()
        if limit:
            query += " LIMIT ?"
            params = (limit,)

        with self._connect() as conn:
            cursor = conn.execute(query, params)
            events = [self._row_to_event(row) for row in cursor.fetchall()]

        for event in events:
            events_loaded_total.labels(stream_type=event.stream_type).inc()
        return events

    def get_stream_version(self, stream_id: str) -> int:
        """Current version of a stream (0 if stream doesn't exist)"""
        with self._connect() as conn:
            return self._get_stream_version(conn, stream_id)

    def _get_stream_version(self, conn: sqlite3.Connection, stream_id: str) -> int:
        cursor = conn.execute(
            "SELECT MAX(version) FROM events WHERE stream_id = ?",
            (stream_id,),
        )
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def _get_events_by_command_id(self, command_id: str) -> list[Event]:
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_EVENT_COLUMNS} FROM events "
                "WHERE command_id = ? ORDER BY seq ASC",
                (command_id,),
            )
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def _row_to_event(self, row: sqlite3.Row) -> Event:
        return Event(
            event_id=row["event_id"],
            stream_id=row["stream_id"],
            stream_type=row["stream_type"],
            version=row["version"],
            command_id=row["command_id"],
            event_type=row["event_type"],
            occurred_at=datetime.fromisoformat(row["occurred_at"]),
            actor_id=row["actor_id"],
            payload=json.loads(row["payload_json"]),
        )

    def count_events(self) -> int:
        """Get total number of events in store"""
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]

