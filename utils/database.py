"""
SQLite storage for operator settings and encrypted detection records.

Rows in the detections table carry only the metadata needed for lookup and
lifecycle checks in plaintext (id, timestamp, status, sync status). Everything
else lives in the encrypted payload written by utils.skimguard.vault.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable

from config import DB_PATH as CONFIGURED_DB_PATH
from utils.logging import get_logger

logger = get_logger('database')

# Database file location
if CONFIGURED_DB_PATH:
    DB_PATH = Path(CONFIGURED_DB_PATH)
    DB_DIR = DB_PATH.parent
else:
    DB_DIR = Path(__file__).parent.parent / 'instance'
    DB_PATH = DB_DIR / 'skimguard.db'

# Thread-local storage for connections
_local = threading.local()

_DETECTION_COLUMNS = (
    'id', 'timestamp', 'status', 'sync_status', 'encrypted',
    'payload', 'iv', 'integrity_hash', 'revision', 'created_at', 'updated_at',
)


def get_db_path() -> Path:
    """Get the database file path, creating directory if needed."""
    DB_DIR.mkdir(parents=True, exist_ok=True)
    return DB_PATH


def get_connection() -> sqlite3.Connection:
    """Get a thread-local database connection."""
    if not hasattr(_local, 'connection') or _local.connection is None:
        db_path = get_db_path()
        _local.connection = sqlite3.connect(str(db_path), check_same_thread=False, timeout=10)
        _local.connection.row_factory = sqlite3.Row
    return _local.connection


@contextmanager
def get_db():
    """Context manager for database operations."""
    conn = get_connection()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise


@contextmanager
def write_transaction():
    """
    Context manager holding the database write lock for its whole body.

    Reads done inside see the latest committed state and no other writer
    can interleave before commit.
    """
    conn = get_connection()
    conn.execute('BEGIN IMMEDIATE')
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def close_db() -> None:
    """Close this thread's connection, if open."""
    conn = getattr(_local, 'connection', None)
    if conn is not None:
        conn.close()
        _local.connection = None


def init_db() -> None:
    """Initialize the database schema."""
    db_path = get_db_path()
    logger.info(f"Initializing database at {db_path}")

    with get_db() as conn:
        # Settings table for key-value storage
        conn.execute('''
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                value_type TEXT DEFAULT 'string',
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        # Detection records. encrypted=0 marks legacy plaintext payloads.
        conn.execute('''
            CREATE TABLE IF NOT EXISTS detections (
                id TEXT PRIMARY KEY,
                timestamp INTEGER NOT NULL,
                status TEXT NOT NULL DEFAULT 'PENDING',
                sync_status TEXT NOT NULL DEFAULT 'PENDING',
                encrypted INTEGER NOT NULL DEFAULT 1,
                payload TEXT NOT NULL,
                iv TEXT,
                integrity_hash TEXT,
                revision INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        conn.execute('''
            CREATE INDEX IF NOT EXISTS idx_detections_timestamp
            ON detections(timestamp)
        ''')

        conn.execute('''
            CREATE INDEX IF NOT EXISTS idx_detections_sync
            ON detections(sync_status, timestamp)
        ''')


# =============================================================================
# Settings Functions
# =============================================================================

def _decode_setting(value: str, value_type: str, default: Any = None) -> Any:
    if value_type == 'json':
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return default
    if value_type == 'int':
        return int(value)
    if value_type == 'float':
        return float(value)
    if value_type == 'bool':
        return value.lower() in ('true', '1', 'yes')
    return value


def _encode_setting(value: Any) -> tuple[str, str]:
    # bool first: bool is a subclass of int
    if isinstance(value, bool):
        return ('true' if value else 'false'), 'bool'
    if isinstance(value, int):
        return str(value), 'int'
    if isinstance(value, float):
        return str(value), 'float'
    if isinstance(value, (dict, list)):
        return json.dumps(value), 'json'
    return str(value), 'string'


def get_setting(key: str, default: Any = None) -> Any:
    """
    Get a setting value by key.

    Args:
        key: Setting key
        default: Default value if not found

    Returns:
        Setting value, converted back to the type it was stored with
    """
    with get_db() as conn:
        row = conn.execute(
            'SELECT value, value_type FROM settings WHERE key = ?',
            (key,)
        ).fetchone()

    if row is None:
        return default
    return _decode_setting(row['value'], row['value_type'], default)


def set_setting(key: str, value: Any) -> None:
    """Set a setting value. Complex types are stored as JSON."""
    str_value, value_type = _encode_setting(value)
    with get_db() as conn:
        conn.execute('''
            INSERT INTO settings (key, value, value_type, updated_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                value_type = excluded.value_type,
                updated_at = CURRENT_TIMESTAMP
        ''', (key, str_value, value_type))


# =============================================================================
# Detection Functions
# =============================================================================

def _row_to_dict(row: sqlite3.Row | None) -> dict | None:
    if row is None:
        return None
    return {key: row[key] for key in _DETECTION_COLUMNS}


def insert_detection_row(
    conn: sqlite3.Connection,
    record_id: str,
    timestamp: int,
    status: str,
    sync_status: str,
    payload: str,
    iv: str | None,
    integrity_hash: str | None,
    encrypted: bool = True
) -> None:
    """
    Insert a detection row.

    Raises:
        sqlite3.IntegrityError: If a row with this ID already exists
    """
    conn.execute('''
        INSERT INTO detections
            (id, timestamp, status, sync_status, encrypted, payload, iv, integrity_hash)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
    ''', (record_id, timestamp, status, sync_status, 1 if encrypted else 0,
          payload, iv, integrity_hash))


def replace_detection_row(
    conn: sqlite3.Connection,
    record_id: str,
    status: str,
    sync_status: str,
    payload: str,
    iv: str | None,
    integrity_hash: str | None,
    encrypted: bool = True
) -> bool:
    """Overwrite the mutable columns of an existing row. False if missing."""
    cursor = conn.execute('''
        UPDATE detections SET
            status = ?,
            sync_status = ?,
            encrypted = ?,
            payload = ?,
            iv = ?,
            integrity_hash = ?,
            revision = revision + 1,
            updated_at = CURRENT_TIMESTAMP
        WHERE id = ?
    ''', (status, sync_status, 1 if encrypted else 0, payload, iv,
          integrity_hash, record_id))
    return cursor.rowcount > 0


def fetch_detection_row(conn: sqlite3.Connection, record_id: str) -> dict | None:
    """Fetch one detection row by ID using an open connection."""
    row = conn.execute(
        'SELECT * FROM detections WHERE id = ?',
        (record_id,)
    ).fetchone()
    return _row_to_dict(row)


def get_detection_row(record_id: str) -> dict | None:
    """Get one detection row by ID."""
    with get_db() as conn:
        return fetch_detection_row(conn, record_id)


def _detection_filter(
    sync_statuses: Iterable[str] | None,
    statuses: Iterable[str] | None
) -> tuple[str, list[Any]] | None:
    """WHERE clause for optional sync/lifecycle status filters. None matches nothing."""
    clauses = []
    params: list[Any] = []
    for column, values in (('sync_status', sync_statuses), ('status', statuses)):
        if values is None:
            continue
        values = list(values)
        if not values:
            return None
        clauses.append(f'{column} IN ({",".join("?" * len(values))})')
        params.extend(values)
    where = f' WHERE {" AND ".join(clauses)}' if clauses else ''
    return where, params


def get_detection_rows(
    sync_statuses: Iterable[str] | None = None,
    statuses: Iterable[str] | None = None,
    limit: int | None = None,
    newest_first: bool = True
) -> list[dict]:
    """
    Get detection rows, optionally filtered by sync and lifecycle status.

    Args:
        sync_statuses: Only return rows in these sync states
        statuses: Only return rows in these lifecycle states
        limit: Maximum number of rows, applied after filtering
        newest_first: Order by timestamp descending
    """
    where = _detection_filter(sync_statuses, statuses)
    if where is None:
        return []
    clause, params = where

    query = 'SELECT * FROM detections' + clause
    query += ' ORDER BY timestamp DESC, id DESC' if newest_first else ' ORDER BY timestamp ASC, id ASC'

    if limit is not None:
        query += ' LIMIT ?'
        params.append(limit)

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
    return [_row_to_dict(row) for row in rows]


def set_detection_sync_status(record_id: str, sync_status: str, revision: int | None = None) -> bool:
    """
    Update only the sync status of a record.

    With a revision, the update applies only if the row has not been
    rewritten since that revision was read. Returns False if nothing changed.
    """
    query = '''
        UPDATE detections
        SET sync_status = ?, updated_at = CURRENT_TIMESTAMP
        WHERE id = ?
    '''
    params: list[Any] = [sync_status, record_id]
    if revision is not None:
        query += ' AND revision = ?'
        params.append(revision)

    with get_db() as conn:
        cursor = conn.execute(query, params)
        return cursor.rowcount > 0


def count_detections(
    sync_statuses: Iterable[str] | None = None,
    statuses: Iterable[str] | None = None
) -> int:
    where = _detection_filter(sync_statuses, statuses)
    if where is None:
        return 0
    clause, params = where
    with get_db() as conn:
        return conn.execute('SELECT COUNT(*) FROM detections' + clause, params).fetchone()[0]


def delete_all_detections() -> int:
    """Remove every detection record. Returns the number deleted."""
    with get_db() as conn:
        cursor = conn.execute('DELETE FROM detections')
        return cursor.rowcount
