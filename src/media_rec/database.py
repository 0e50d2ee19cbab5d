"""
SQLite-backed catalog and interaction log.

The engine only reads through SqliteCatalog and SqliteInteractionLog;
save_items() and append_interactions() exist for seeding and ingestion.
"""

import sqlite3
import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Sequence

from .config import DB_PATH
from .models import ContentItem, InteractionKind, InteractionRecord, MediaType, WatchStatus
from .stores import ItemFilter
from .utils import retry_with_backoff

logger = logging.getLogger(__name__)

# Keep IN (...) lists well under SQLite's bound-parameter limit
QUERY_CHUNK_SIZE = 500

_ATTRIBUTE_FIELDS = {
    'genre': 'genre_ids',
    'director': 'director_ids',
    'actor': 'actor_ids',
}

_ORDER_SQL = {
    'id': " ORDER BY c.id",
    'rating': " ORDER BY c.average_rating DESC, c.id",
}

_store_retry = retry_with_backoff(max_retries=3, exceptions=(sqlite3.Error,))


def parse_timestamp_naive(timestamp_str: str) -> datetime:
    """
    Parse ISO format timestamp string to naive datetime.

    Stored timestamps may or may not carry an offset; the engine always
    compares naive datetimes.
    """
    dt = datetime.fromisoformat(timestamp_str)
    return dt.replace(tzinfo=None) if dt.tzinfo else dt


def format_timestamp(ts: datetime | None) -> str | None:
    if ts is None:
        return None
    return ts.replace(tzinfo=None).isoformat()


@dataclass
class _ThreadSlot:
    conn: sqlite3.Connection
    depth: int = 0  # nesting of open get_db() contexts on the owning thread


class ConnectionPool:
    """
    One SQLite connection per live thread (SQLite threading requirement).

    Slots belonging to threads that have exited are closed whenever the pool
    is touched, so short-lived worker threads do not leave connections behind.
    """

    def __init__(self, db_path):
        self._db_path = db_path
        self._lock = threading.Lock()
        self._slots: dict[int, _ThreadSlot] = {}

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA busy_timeout = 5000")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        return conn

    def _close_dead_slots(self) -> None:
        # Caller holds self._lock
        alive = {t.ident for t in threading.enumerate()}
        dead = [thread_id for thread_id in self._slots if thread_id not in alive]
        for thread_id in dead:
            slot = self._slots.pop(thread_id)
            try:
                slot.conn.close()
            except sqlite3.Error as e:
                logger.warning(f"Error closing connection for exited thread {thread_id}: {e}")
        if dead:
            logger.debug(f"Closed {len(dead)} connections of exited threads, {len(self._slots)} open")

    def _slot(self) -> _ThreadSlot:
        thread_id = threading.get_ident()
        with self._lock:
            self._close_dead_slots()
            slot = self._slots.get(thread_id)
            if slot is None:
                slot = _ThreadSlot(self._connect())
                self._slots[thread_id] = slot
            return slot

    @contextmanager
    def transaction(self, read_only: bool = False):
        """
        Yield the calling thread's connection.

        Only the outermost context on a thread commits (unless read_only) or
        rolls back; nested contexts share its transaction.
        """
        slot = self._slot()
        outermost = slot.depth == 0
        slot.depth += 1
        try:
            yield slot.conn
            if outermost and not read_only:
                slot.conn.commit()
        except Exception:
            if outermost:
                slot.conn.rollback()
            raise
        finally:
            slot.depth -= 1

    def open_threads(self) -> list[int]:
        """Ids of threads currently holding a connection."""
        with self._lock:
            self._close_dead_slots()
            return sorted(self._slots)

    def close_all(self):
        with self._lock:
            for thread_id, slot in self._slots.items():
                try:
                    slot.conn.close()
                except sqlite3.Error as e:
                    logger.warning(f"Error closing connection for thread {thread_id}: {e}")
            self._slots.clear()
        logger.info("Connection pool closed")


_pool: ConnectionPool | None = None
_pool_lock = threading.Lock()


def _get_pool() -> ConnectionPool:
    global _pool
    if _pool is None:
        with _pool_lock:
            if _pool is None:
                _pool = ConnectionPool(DB_PATH)
    return _pool


def get_db(read_only: bool = False):
    """Transaction context over the calling thread's pooled connection."""
    return _get_pool().transaction(read_only=read_only)


def close_pool():
    """Close the connection pool. Call on application shutdown."""
    global _pool
    if _pool is not None:
        _pool.close_all()
        _pool = None


def init_db() -> None:
    DB_PATH.parent.mkdir(exist_ok=True, parents=True)
    with get_db() as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS content_items (
                id TEXT PRIMARY KEY,
                media_type TEXT NOT NULL,
                title TEXT,
                genre_ids TEXT,     -- JSON list
                director_ids TEXT,  -- JSON list
                actor_ids TEXT,     -- JSON list
                average_rating REAL DEFAULT 0,
                release_date TEXT
            );

            -- One row per (item, attribute) for set-intersection filters
            CREATE TABLE IF NOT EXISTS item_attributes (
                item_id TEXT NOT NULL,
                attr TEXT NOT NULL,
                value_id TEXT NOT NULL,
                PRIMARY KEY (item_id, attr, value_id)
            );

            CREATE TABLE IF NOT EXISTS interactions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                content_id TEXT NOT NULL,
                kind TEXT NOT NULL,
                value REAL,
                status TEXT,
                timestamp TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_item_attributes_lookup ON item_attributes(attr, value_id);
            CREATE INDEX IF NOT EXISTS idx_content_items_rating ON content_items(average_rating);
            CREATE INDEX IF NOT EXISTS idx_interactions_user ON interactions(user_id);
            CREATE INDEX IF NOT EXISTS idx_interactions_content ON interactions(content_id, kind);
        """)
    logger.debug(f"Initialized database at {DB_PATH}")


def load_json(val) -> list:
    """Decode a JSON id-list column; NULL or malformed values decode as []."""
    if not val:
        return []
    try:
        decoded = json.loads(val)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Ignoring malformed id list {val[:50]!r}: {e}")
        return []
    if not isinstance(decoded, list):
        logger.warning(f"Expected a JSON list, got {type(decoded).__name__}")
        return []
    return decoded


def _chunks(values: list, size: int = QUERY_CHUNK_SIZE):
    for i in range(0, len(values), size):
        yield values[i:i + size]


def save_items(items: Iterable[ContentItem]) -> int:
    """Insert or replace catalog items. Returns the number written."""
    count = 0
    with get_db() as conn:
        for item in items:
            conn.execute("""
                INSERT OR REPLACE INTO content_items
                (id, media_type, title, genre_ids, director_ids, actor_ids, average_rating, release_date)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                item.id,
                item.media_type.value,
                item.title,
                json.dumps(sorted(item.genre_ids)),
                json.dumps(sorted(item.director_ids)),
                json.dumps(sorted(item.actor_ids)),
                item.average_rating,
                item.release_date.isoformat() if item.release_date else None,
            ))

            conn.execute("DELETE FROM item_attributes WHERE item_id = ?", (item.id,))
            conn.executemany(
                "INSERT INTO item_attributes (item_id, attr, value_id) VALUES (?, ?, ?)",
                [
                    (item.id, attr, value_id)
                    for attr, field_name in _ATTRIBUTE_FIELDS.items()
                    for value_id in sorted(getattr(item, field_name))
                ],
            )
            count += 1
    logger.debug(f"Saved {count} catalog items")
    return count


def append_interactions(records: Iterable[InteractionRecord]) -> int:
    """Append records to the interaction log. Returns the number written."""
    rows = [
        (
            r.user_id,
            r.content_id,
            InteractionKind(r.kind).value,
            r.value,
            WatchStatus(r.status).value if r.status is not None else None,
            format_timestamp(r.timestamp),
        )
        for r in records
    ]
    with get_db() as conn:
        conn.executemany("""
            INSERT INTO interactions (user_id, content_id, kind, value, status, timestamp)
            VALUES (?, ?, ?, ?, ?, ?)
        """, rows)
    logger.debug(f"Appended {len(rows)} interactions")
    return len(rows)


def _row_to_item(row) -> ContentItem:
    return ContentItem(
        id=row['id'],
        media_type=MediaType(row['media_type']),
        title=row['title'] or "",
        genre_ids=load_json(row['genre_ids']),
        director_ids=load_json(row['director_ids']),
        actor_ids=load_json(row['actor_ids']),
        average_rating=row['average_rating'] or 0.0,
        release_date=date.fromisoformat(row['release_date']) if row['release_date'] else None,
    )


def _row_to_record(row) -> InteractionRecord:
    return InteractionRecord(
        user_id=row['user_id'],
        content_id=row['content_id'],
        kind=InteractionKind(row['kind']),
        value=row['value'],
        status=WatchStatus(row['status']) if row['status'] else None,
        timestamp=parse_timestamp_naive(row['timestamp']) if row['timestamp'] else None,
    )


def _kind_clause(kinds: Sequence[InteractionKind] | None) -> tuple[str, list]:
    if kinds is None:
        return "", []
    values = [InteractionKind(k).value for k in kinds]
    return f" AND kind IN ({','.join('?' * len(values))})", values


def _completed_clause(since: datetime | None) -> tuple[str, list]:
    where = "kind = ? AND status = ?"
    params: list = [InteractionKind.LIST_STATUS.value, WatchStatus.COMPLETED.value]
    if since is not None:
        # Untimestamped completions only count for the unbounded window
        where += " AND timestamp IS NOT NULL AND timestamp >= ?"
        params.append(format_timestamp(since))
    return where, params


class SqliteCatalog:
    """CatalogService over the content_items table."""

    @_store_retry
    def get_item_by_id(self, item_id: str) -> ContentItem | None:
        with get_db(read_only=True) as conn:
            row = conn.execute("SELECT * FROM content_items WHERE id = ?", (item_id,)).fetchone()
        return _row_to_item(row) if row else None

    @_store_retry
    def get_items_by_ids(self, item_ids: Iterable[str]) -> list[ContentItem]:
        ids = list(dict.fromkeys(item_ids))
        found: dict[str, ContentItem] = {}
        with get_db(read_only=True) as conn:
            for chunk in _chunks(ids):
                placeholders = ','.join('?' * len(chunk))
                for row in conn.execute(f"SELECT * FROM content_items WHERE id IN ({placeholders})", chunk):
                    found[row['id']] = _row_to_item(row)
        return [found[i] for i in ids if i in found]

    @_store_retry
    def query_items(self, item_filter: ItemFilter, limit: int | None = None) -> list[ContentItem]:
        clauses: list[str] = []
        params: list = []

        for attr, field_name in _ATTRIBUTE_FIELDS.items():
            wanted = getattr(item_filter, field_name)
            if wanted is None:
                continue
            if not wanted:
                # Intersection with an empty set never matches
                return []
            clauses.append(f"""
                EXISTS (SELECT 1 FROM item_attributes a
                        WHERE a.item_id = c.id AND a.attr = ?
                        AND a.value_id IN ({','.join('?' * len(wanted))}))
            """)
            params.extend([attr, *sorted(wanted)])

        if item_filter.min_rating is not None:
            clauses.append("c.average_rating >= ?")
            params.append(item_filter.min_rating)
        if item_filter.media_type is not None:
            clauses.append("c.media_type = ?")
            params.append(MediaType(item_filter.media_type).value)
        if item_filter.exclude_ids:
            clauses.append(f"c.id NOT IN ({','.join('?' * len(item_filter.exclude_ids))})")
            params.extend(sorted(item_filter.exclude_ids))

        sql = "SELECT c.* FROM content_items c"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += _ORDER_SQL[item_filter.order_by]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        with get_db(read_only=True) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_item(row) for row in rows]

    @_store_retry
    def get_all_genres(self) -> set[str]:
        with get_db(read_only=True) as conn:
            rows = conn.execute(
                "SELECT DISTINCT value_id FROM item_attributes WHERE attr = 'genre'"
            ).fetchall()
        return {row['value_id'] for row in rows}


class SqliteInteractionLog:
    """InteractionLogStore over the append-only interactions table."""

    @_store_retry
    def get_user_interactions(
        self, user_id: str, kinds: Sequence[InteractionKind] | None = None
    ) -> list[InteractionRecord]:
        kind_sql, kind_params = _kind_clause(kinds)
        with get_db(read_only=True) as conn:
            rows = conn.execute(
                f"SELECT * FROM interactions WHERE user_id = ?{kind_sql} ORDER BY id",
                [user_id, *kind_params],
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    @_store_retry
    def get_interactions_for_items(
        self, item_ids: Iterable[str], kinds: Sequence[InteractionKind] | None = None
    ) -> list[InteractionRecord]:
        ids = list(dict.fromkeys(item_ids))
        kind_sql, kind_params = _kind_clause(kinds)
        records = []
        with get_db(read_only=True) as conn:
            for chunk in _chunks(ids):
                placeholders = ','.join('?' * len(chunk))
                rows = conn.execute(
                    f"SELECT * FROM interactions WHERE content_id IN ({placeholders}){kind_sql} ORDER BY id",
                    [*chunk, *kind_params],
                ).fetchall()
                records.extend(_row_to_record(row) for row in rows)
        return records

    @_store_retry
    def count_completed_since(self, item_id: str, since: datetime | None) -> int:
        where, params = _completed_clause(since)
        with get_db(read_only=True) as conn:
            return conn.execute(
                f"SELECT COUNT(*) FROM interactions WHERE content_id = ? AND {where}",
                [item_id, *params],
            ).fetchone()[0]

    @_store_retry
    def count_completed_by_item(self, since: datetime | None) -> dict[str, int]:
        where, params = _completed_clause(since)
        with get_db(read_only=True) as conn:
            rows = conn.execute(
                f"SELECT content_id, COUNT(*) AS n FROM interactions WHERE {where} GROUP BY content_id",
                params,
            ).fetchall()
        return {row['content_id']: row['n'] for row in rows}
