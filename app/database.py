"""
KBPC Local Store
Single-writer key-value area on top of a local SQLite file.

[Technical points]
1. One row per store key, JSON payload in a TEXT column (catalogs, members, branches).
2. get() never raises: missing / corrupt / unreadable payloads fall back to the caller's default.
3. set() is a full overwrite inside one transaction: on capacity or SQLite failure nothing is written.
4. set_many() writes several keys atomically (catalog + members during a cascade, backup restore).
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from typing import Any, Dict, List, Optional

import app_config

logger = logging.getLogger(__name__)

# [Settings] store location (user-local)
USER_DATA_DIR = app_config.APP_DATA_DIR
DB_PATH = os.path.join(USER_DATA_DIR, "kbpc_local.db")

# None -> use config "max_value_bytes"
MAX_VALUE_BYTES: Optional[int] = None

# -----------------------------------------------------------
# Store keys
# -----------------------------------------------------------
KEYS = {
    "USERS": "kbpc_db_users",
    "BRANCHES": "kbpc_db_branches",
    "POSITIONS": "kbpc_db_positions",
    "BELTS": "kbpc_db_belts",
    "SEED": "kbpc_db_remote_seed",
    "NIA_SEQ": "kbpc_db_nia_seq",
}

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS kv_store (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
"""


class StoreCapacityError(Exception):
    """Serialized value is larger than the configured quota."""


def _get_columns(cur: sqlite3.Cursor, table_name: str) -> List[str]:
    """[Helper] current column names of a table"""
    cur.execute(f"PRAGMA table_info({table_name})")
    return [row[1] for row in cur.fetchall()]


def _ensure_column(cur: sqlite3.Cursor, table: str, column: str, col_type: str) -> None:
    """Add a missing column at startup so older store files keep working."""
    cols = _get_columns(cur, table)
    if column in cols:
        return
    cur.execute(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}")


def _apply_sqlite_pragmas(conn: sqlite3.Connection) -> None:
    """Contention / durability pragmas. Failure of any of them is not fatal."""
    for pragma in (
        "PRAGMA journal_mode = WAL",
        "PRAGMA synchronous = NORMAL",
        "PRAGMA busy_timeout = 30000",
        "PRAGMA temp_store = MEMORY",
    ):
        try:
            conn.execute(pragma)
        except sqlite3.Error:
            # some filesystems refuse WAL; the store still works in rollback-journal mode
            pass


def get_connection() -> sqlite3.Connection:
    os.makedirs(os.path.dirname(DB_PATH) or ".", exist_ok=True)
    conn = sqlite3.connect(DB_PATH, check_same_thread=False, timeout=30.0)
    _apply_sqlite_pragmas(conn)
    conn.execute(_SCHEMA)
    return conn


def init_db() -> None:
    """
    [System init]
    Create the store file and table, heal missing columns of older files.
    """
    conn = get_connection()
    try:
        c = conn.cursor()
        _ensure_column(c, "kv_store", "updated_at", "DATETIME")
        conn.commit()
    finally:
        conn.close()


def _max_value_bytes() -> int:
    if MAX_VALUE_BYTES is not None:
        return int(MAX_VALUE_BYTES)
    return int(app_config.get_setting("max_value_bytes") or 5_000_000)


def _serialize(key: str, value: Any) -> str:
    payload = json.dumps(value, ensure_ascii=False)
    size = len(payload.encode("utf-8"))
    limit = _max_value_bytes()
    if size > limit:
        raise StoreCapacityError(f"{key}: {size} bytes > quota {limit}")
    return payload


# -----------------------------------------------------------
# Public API
# -----------------------------------------------------------
def get(key: str, default: Any = None) -> Any:
    """Stored value for key, or default on missing key / corrupt payload / read failure."""
    try:
        conn = get_connection()
    except (sqlite3.Error, OSError) as e:
        logger.warning("store open failed (%s): %s", key, e)
        return default
    try:
        row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        return json.loads(row[0])
    except (sqlite3.Error, ValueError, TypeError) as e:
        logger.warning("store read failed (%s), using default: %s", key, e)
        return default
    finally:
        conn.close()


def has(key: str) -> bool:
    try:
        conn = get_connection()
    except (sqlite3.Error, OSError):
        return False
    try:
        return conn.execute("SELECT 1 FROM kv_store WHERE key = ?", (key,)).fetchone() is not None
    except sqlite3.Error:
        return False
    finally:
        conn.close()


def set(key: str, value: Any) -> bool:  # noqa: A001 (store vocabulary)
    """Full overwrite of key. False means nothing was written."""
    return set_many({key: value})


def set_many(items: Dict[str, Any]) -> bool:
    """
    Write every key in one transaction.
    Either all values are replaced or (capacity / SQLite failure) none is.
    """
    try:
        payloads = [(k, _serialize(k, v)) for k, v in items.items()]
    except StoreCapacityError as e:
        logger.warning("store write rejected, capacity exceeded: %s", e)
        return False
    except (TypeError, ValueError) as e:
        logger.warning("store write rejected, value not serializable: %s", e)
        return False

    try:
        conn = get_connection()
    except (sqlite3.Error, OSError) as e:
        logger.warning("store open failed: %s", e)
        return False
    try:
        cur = conn.cursor()
        for k, payload in payloads:
            cur.execute(
                "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP",
                (k, payload),
            )
        conn.commit()
        return True
    except sqlite3.Error as e:
        conn.rollback()
        logger.warning("store write failed (%s): %s", ", ".join(items), e)
        return False
    finally:
        conn.close()


def delete(key: str) -> bool:
    try:
        conn = get_connection()
    except (sqlite3.Error, OSError):
        return False
    try:
        conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        conn.commit()
        return True
    except sqlite3.Error as e:
        conn.rollback()
        logger.warning("store delete failed (%s): %s", key, e)
        return False
    finally:
        conn.close()


def clear_all() -> bool:
    """Drop every stored key (database reset)."""
    try:
        conn = get_connection()
    except (sqlite3.Error, OSError):
        return False
    try:
        conn.execute("DELETE FROM kv_store")
        conn.commit()
        return True
    except sqlite3.Error as e:
        conn.rollback()
        logger.warning("store reset failed: %s", e)
        return False
    finally:
        conn.close()


def list_keys() -> List[Dict[str, Any]]:
    """[Health check] key, payload size and last update of each stored key"""
    conn = get_connection()
    try:
        rows = conn.execute(
            "SELECT key, LENGTH(value), updated_at FROM kv_store ORDER BY key"
        ).fetchall()
        return [{"key": r[0], "bytes": int(r[1] or 0), "updated_at": r[2]} for r in rows]
    finally:
        conn.close()


if __name__ == "__main__":
    init_db()
    print(f"✅ store ready: {DB_PATH}")
