"""SQLite record store for listings.

Reads wrap ``sqlite3.Error`` in :class:`StoreError`; callers treat that as
fatal for the request.
"""

import logging
import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from listings_search.core.schemas import ListingRecord

logger = logging.getLogger(__name__)

_LISTINGS_TABLE = """
CREATE TABLE IF NOT EXISTS listings (
    id              TEXT    PRIMARY KEY,
    title           TEXT    NOT NULL DEFAULT '',
    description     TEXT    NOT NULL DEFAULT '',
    address         TEXT    NOT NULL DEFAULT '',
    city            TEXT    NOT NULL DEFAULT '',
    state           TEXT    NOT NULL DEFAULT '',
    price           INTEGER NOT NULL CHECK (price >= 0),
    property_type   TEXT    NOT NULL DEFAULT '',
    bedrooms        INTEGER NOT NULL DEFAULT 0 CHECK (bedrooms >= 0),
    available_from  TEXT    NOT NULL,
    available_to    TEXT    NOT NULL,
    amenities       TEXT,
    images          TEXT,
    contact_name    TEXT    NOT NULL DEFAULT '',
    contact_email   TEXT    NOT NULL DEFAULT '',
    contact_phone   TEXT    NOT NULL DEFAULT '',
    owner_id        TEXT,
    created_at      TEXT    NOT NULL,
    updated_at      TEXT    NOT NULL
);
"""

_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_listings_created_at ON listings(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_listings_price ON listings(price)",
    "CREATE INDEX IF NOT EXISTS idx_listings_availability ON listings(available_from, available_to)",
)

_COLUMNS = (
    "id", "title", "description", "address", "city", "state", "price",
    "property_type", "bedrooms", "available_from", "available_to", "amenities",
    "images", "contact_name", "contact_email", "contact_phone", "owner_id",
    "created_at", "updated_at",
)

# Newest first; rowid breaks ties between equal timestamps.
_ORDER_BY = "ORDER BY created_at DESC, rowid DESC"

# Largest value SQLite can bind as an INTEGER.
SQLITE_MAX_INT = 2**63 - 1


class StoreError(RuntimeError):
    """The record store could not answer a query."""


@dataclass(frozen=True)
class StorePredicate:
    """A conjunctive SQL WHERE expression with its bound parameters.

    An empty clause list matches every row.
    """

    clauses: tuple[str, ...] = ()
    params: tuple[Any, ...] = field(default_factory=tuple)

    @property
    def where_sql(self) -> str:
        if not self.clauses:
            return ""
        return "WHERE " + " AND ".join(self.clauses)


def _casefold(value: str | None) -> str | None:
    return value.casefold() if value is not None else None


def connect(path: str | Path) -> sqlite3.Connection:
    """Open a connection to an existing database file.

    Registers ``CASEFOLD(text)``, a Unicode-aware replacement for SQLite's
    ASCII-only ``LOWER()``.
    """
    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.create_function("CASEFOLD", 1, _casefold, deterministic=True)
    return conn


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = connect(path)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_LISTINGS_TABLE)
    for stmt in _INDEXES:
        conn.execute(stmt)
    conn.commit()
    return conn


def _check_availability(record: ListingRecord) -> None:
    if record.available_from > record.available_to:
        msg = (
            f"available_from ({record.available_from}) must not be after "
            f"available_to ({record.available_to})"
        )
        raise ValueError(msg)


def _row_values(record: ListingRecord) -> tuple[Any, ...]:
    values = record.model_dump()
    values["available_from"] = record.available_from.isoformat()
    values["available_to"] = record.available_to.isoformat()
    values["created_at"] = record.created_at.isoformat()
    values["updated_at"] = record.updated_at.isoformat()
    return tuple(values[col] for col in _COLUMNS)


def _to_record(row: sqlite3.Row) -> ListingRecord:
    data = dict(row)
    data["created_at"] = datetime.fromisoformat(data["created_at"])
    data["updated_at"] = datetime.fromisoformat(data["updated_at"])
    return ListingRecord.model_validate(data)


def insert_listing(conn: sqlite3.Connection, record: ListingRecord) -> bool:
    """Insert a listing.

    Returns True if a new row was inserted, False if the id already exists.
    """
    _check_availability(record)
    placeholders = ", ".join("?" for _ in _COLUMNS)
    try:
        conn.execute(
            f"INSERT INTO listings ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
            _row_values(record),
        )
        conn.commit()
        return True
    except sqlite3.IntegrityError:
        return False


def get_listing(conn: sqlite3.Connection, listing_id: str) -> ListingRecord | None:
    """Fetch a single listing by id, or None if it does not exist."""
    try:
        row = conn.execute(
            "SELECT * FROM listings WHERE id = ?", (listing_id,),
        ).fetchone()
    except sqlite3.Error as e:
        raise StoreError(f"get_listing failed: {e}") from e
    return _to_record(row) if row is not None else None


def update_listing(conn: sqlite3.Connection, record: ListingRecord) -> bool:
    """Replace every column of an existing listing (``created_at`` is kept).

    Returns True if a row was updated, False if the id is unknown.
    """
    _check_availability(record)
    columns = [c for c in _COLUMNS if c not in ("id", "created_at")]
    values = dict(zip(_COLUMNS, _row_values(record)))
    assignments = ", ".join(f"{c} = ?" for c in columns)
    cursor = conn.execute(
        f"UPDATE listings SET {assignments} WHERE id = ?",
        (*(values[c] for c in columns), record.id),
    )
    conn.commit()
    return cursor.rowcount > 0


def delete_listing(conn: sqlite3.Connection, listing_id: str) -> bool:
    """Delete a listing. Returns True if a row was removed."""
    cursor = conn.execute("DELETE FROM listings WHERE id = ?", (listing_id,))
    conn.commit()
    return cursor.rowcount > 0


def count_listings(conn: sqlite3.Connection, predicate: StorePredicate) -> int:
    """Count listings matching the predicate."""
    sql = f"SELECT COUNT(*) FROM listings {predicate.where_sql}"
    try:
        row = conn.execute(sql, predicate.params).fetchone()
    except sqlite3.Error as e:
        raise StoreError(f"count_listings failed: {e}") from e
    return int(row[0])


def find_listings(
    conn: sqlite3.Connection,
    predicate: StorePredicate,
    skip: int = 0,
    take: int | None = None,
) -> list[ListingRecord]:
    """Fetch one page of matching listings, newest first.

    ``take`` of None returns every row after ``skip``. Both are clamped to
    what SQLite can bind; an offset that large is past every row anyway.
    """
    skip = min(skip, SQLITE_MAX_INT)
    limit = -1 if take is None else min(take, SQLITE_MAX_INT)
    sql = f"SELECT * FROM listings {predicate.where_sql} {_ORDER_BY} LIMIT ? OFFSET ?"
    params: Sequence[Any] = (*predicate.params, limit, skip)
    try:
        rows = conn.execute(sql, params).fetchall()
    except sqlite3.Error as e:
        raise StoreError(f"find_listings failed: {e}") from e
    logger.debug("find_listings: %d rows (skip=%d, take=%s)", len(rows), skip, take)
    return [_to_record(r) for r in rows]
