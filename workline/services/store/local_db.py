"""
Local SQLite Work Store

Durable table of work items plus the append-only work event log.

Each method opens its own short-lived connection, so methods may be
called from executor threads. Async callers go through `run()`, which
keeps blocking SQLite I/O off the event loop.
"""

import asyncio
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable

from workline.common.exceptions import StoreError
from workline.common.logging_setup import get_service_logger
from workline.common.models import EventKind, WorkEvent, WorkItem, WorkState
from workline.common.timestamp import utc_now_iso

logger = get_service_logger("store")

DEFAULT_DB_PATH = Path("data/workline.db")

SAMPLE_ITEMS = [
    ("LAV001", "Standard job", 30),
    ("LAV002", "Quick job", 15),
    ("LAV003", "Long job", 120),
    ("TEST01", "Short test", 5),
    ("PROD01", "Base production", 60),
]


def _row_to_item(row: sqlite3.Row) -> WorkItem:
    return WorkItem(
        id=row["id"],
        code=row["code"],
        name=row["name"],
        duration=row["duration"],
        state=WorkState(row["state"]),
        created_at=row["created_at"],
    )


def _row_to_event(row: sqlite3.Row) -> WorkEvent:
    return WorkEvent(
        id=row["id"],
        work_id=row["work_id"],
        code=row["work_code"],
        name=row["work_name"],
        duration=row["work_duration"],
        kind=EventKind(row["kind"]),
        occurred_at=row["occurred_at"],
        note=row["note"],
    )


class WorkStore:
    """
    SQLite database for work items and their event history.

    Features:
    - Automatic table creation
    - FIFO selection of queued items
    - Redundant item data on every event row
    """

    def __init__(self, db_path: Path | str | None = None):
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_db()
        except (OSError, sqlite3.Error) as e:
            raise StoreError(
                f"cannot open database {self.db_path}: {e}",
                operation="init",
                recoverable=False,
            )

    def _init_db(self) -> None:
        """Initialize database schema"""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS work_items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    code TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    duration INTEGER NOT NULL CHECK (duration > 0),
                    state TEXT NOT NULL DEFAULT 'CONFIGURED'
                        CHECK (state IN ('CONFIGURED', 'QUEUED', 'DISPATCHED')),
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS work_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    work_id INTEGER NOT NULL
                        REFERENCES work_items(id) ON DELETE CASCADE,

                    -- Copied from the item at write time
                    work_code TEXT NOT NULL,
                    work_name TEXT NOT NULL,
                    work_duration INTEGER NOT NULL,

                    kind TEXT NOT NULL CHECK (kind IN (
                        'DISPATCHED', 'ACCEPTED', 'STARTED',
                        'COMPLETED', 'REJECTED', 'CANCELED'
                    )),
                    occurred_at TEXT NOT NULL,
                    note TEXT
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_items_state_created
                ON work_items(state, created_at)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_events_work_id
                ON work_events(work_id)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_events_occurred_at
                ON work_events(occurred_at)
            """)

            conn.commit()

        logger.info(f"Database initialized: {self.db_path}")

    @contextmanager
    def _get_connection(self):
        """Get database connection with context manager"""
        conn = sqlite3.connect(str(self.db_path), timeout=10.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield conn
        finally:
            conn.close()

    async def run(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking store method in a thread to avoid blocking the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    def ping(self) -> None:
        """
        Verify the database answers a query.

        Raises:
            StoreError: database unreachable
        """
        try:
            with self._get_connection() as conn:
                conn.execute("SELECT 1").fetchone()
        except sqlite3.Error as e:
            raise StoreError(str(e), operation="ping", recoverable=False)

    # -------------------------------------------------------------------
    # Work items
    # -------------------------------------------------------------------

    def create_item(self, code: str, name: str, duration: int) -> WorkItem:
        """
        Insert a new item in CONFIGURED state.

        Raises:
            StoreError: invalid fields or duplicate code
        """
        code = (code or "").strip()
        name = (name or "").strip()
        if not code or not name:
            raise StoreError("code and name are required", operation="create_item")
        if code.isdigit():
            # find_item resolves all-digit identities as row ids
            raise StoreError(
                f"code '{code}' must contain a non-digit character",
                operation="create_item",
            )
        if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            raise StoreError(
                f"duration must be a positive integer, got {duration!r}",
                operation="create_item",
            )

        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    INSERT INTO work_items (code, name, duration, state, created_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (code, name, duration, WorkState.CONFIGURED.value, utc_now_iso()))
                conn.commit()
                item_id = cursor.lastrowid
        except sqlite3.IntegrityError:
            raise StoreError(f"code '{code}' already exists", operation="create_item")
        except sqlite3.Error as e:
            raise StoreError(str(e), operation="create_item")

        logger.info(f"Created work item {code} - {name} ({duration}s)")
        return self.get_item(item_id)

    def get_item(self, item_id: int) -> WorkItem | None:
        """Get an item by row id"""
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM work_items WHERE id = ?", (item_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(str(e), operation="get_item")
        return _row_to_item(row) if row else None

    def get_item_by_code(self, code: str) -> WorkItem | None:
        """Get an item by its short code"""
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM work_items WHERE code = ?", (code,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(str(e), operation="get_item_by_code")
        return _row_to_item(row) if row else None

    def find_item(self, identity: str | int) -> WorkItem | None:
        """
        Resolve the identity carried by a device event or CLI argument.

        Numeric identities are row ids, anything else is a code.
        """
        if isinstance(identity, int):
            return self.get_item(identity)

        identity = str(identity).strip()
        if identity.isdigit():
            return self.get_item(int(identity))
        return self.get_item_by_code(identity)

    def list_items(self, state: WorkState | None = None) -> list[WorkItem]:
        """List items, newest first"""
        try:
            with self._get_connection() as conn:
                if state is None:
                    rows = conn.execute(
                        "SELECT * FROM work_items ORDER BY created_at DESC, id DESC"
                    ).fetchall()
                else:
                    rows = conn.execute(
                        "SELECT * FROM work_items WHERE state = ? "
                        "ORDER BY created_at DESC, id DESC",
                        (state.value,),
                    ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(str(e), operation="list_items")
        return [_row_to_item(row) for row in rows]

    def next_queued(self) -> WorkItem | None:
        """Oldest QUEUED item, or None"""
        try:
            with self._get_connection() as conn:
                row = conn.execute("""
                    SELECT * FROM work_items
                    WHERE state = ?
                    ORDER BY created_at ASC, id ASC
                    LIMIT 1
                """, (WorkState.QUEUED.value,)).fetchone()
        except sqlite3.Error as e:
            raise StoreError(str(e), operation="next_queued")
        return _row_to_item(row) if row else None

    def set_state(self, item_id: int, state: WorkState) -> bool:
        """Set an item's state. Returns False if the item does not exist."""
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "UPDATE work_items SET state = ? WHERE id = ?",
                    (state.value, item_id),
                )
                conn.commit()
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StoreError(str(e), operation="set_state")

    def queue_item(self, item_id: int) -> bool:
        """
        Operator transition CONFIGURED -> QUEUED.

        Returns False if the item is missing or not CONFIGURED.
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "UPDATE work_items SET state = ? WHERE id = ? AND state = ?",
                    (WorkState.QUEUED.value, item_id, WorkState.CONFIGURED.value),
                )
                conn.commit()
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StoreError(str(e), operation="queue_item")

    def count_by_state(self) -> dict[str, int]:
        """Item counts per state (every state present, zero if empty)"""
        counts = {state.value: 0 for state in WorkState}
        try:
            with self._get_connection() as conn:
                rows = conn.execute(
                    "SELECT state, COUNT(*) AS count FROM work_items GROUP BY state"
                ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(str(e), operation="count_by_state")
        for row in rows:
            counts[row["state"]] = row["count"]
        return counts

    # -------------------------------------------------------------------
    # Work events
    # -------------------------------------------------------------------

    def append_event(
        self,
        item: WorkItem,
        kind: EventKind,
        note: str | None = None,
    ) -> int:
        """Insert an event row for `item`"""
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    INSERT INTO work_events (
                        work_id, work_code, work_name, work_duration,
                        kind, occurred_at, note
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (
                    item.id,
                    item.code,
                    item.name,
                    item.duration,
                    kind.value,
                    utc_now_iso(),
                    note,
                ))
                conn.commit()
                return cursor.lastrowid
        except sqlite3.Error as e:
            raise StoreError(str(e), operation="append_event")

    def mark_dispatched(self, item: WorkItem, note: str | None = None) -> int:
        """Set DISPATCHED and append the DISPATCHED event in one commit"""
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "UPDATE work_items SET state = ? WHERE id = ?",
                    (WorkState.DISPATCHED.value, item.id),
                )
                cursor.execute("""
                    INSERT INTO work_events (
                        work_id, work_code, work_name, work_duration,
                        kind, occurred_at, note
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (
                    item.id,
                    item.code,
                    item.name,
                    item.duration,
                    EventKind.DISPATCHED.value,
                    utc_now_iso(),
                    note,
                ))
                conn.commit()
                return cursor.lastrowid
        except sqlite3.Error as e:
            raise StoreError(str(e), operation="mark_dispatched")

    def list_events(
        self,
        limit: int = 100,
        work_id: int | None = None,
    ) -> list[WorkEvent]:
        """Most recent events first"""
        try:
            with self._get_connection() as conn:
                if work_id is None:
                    rows = conn.execute(
                        "SELECT * FROM work_events ORDER BY id DESC LIMIT ?",
                        (limit,),
                    ).fetchall()
                else:
                    rows = conn.execute(
                        "SELECT * FROM work_events WHERE work_id = ? "
                        "ORDER BY id DESC LIMIT ?",
                        (work_id, limit),
                    ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(str(e), operation="list_events")
        return [_row_to_event(row) for row in rows]

    def last_event(self) -> WorkEvent | None:
        events = self.list_events(limit=1)
        return events[0] if events else None

    # -------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------

    def reset(self) -> None:
        """Delete all items and events"""
        try:
            with self._get_connection() as conn:
                conn.execute("DELETE FROM work_events")
                conn.execute("DELETE FROM work_items")
                conn.commit()
        except sqlite3.Error as e:
            raise StoreError(str(e), operation="reset")
        logger.warning("Work store reset")

    def seed_samples(self) -> list[WorkItem]:
        """Insert the sample items that are not already present"""
        created = []
        for code, name, duration in SAMPLE_ITEMS:
            if self.get_item_by_code(code) is None:
                created.append(self.create_item(code, name, duration))
        return created
