from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from ..logging import get_logger
from ..paths import find_project_root, var_dir


LOG = get_logger("store-db")


DEFAULT_DB_FOLDER = "scanlog"
DEFAULT_DB_FILENAME = "scanlog.sqlite3"

SCAN_HISTORY_LIMIT = 1000


SCHEMA_SQL = """
-- 1) Append-only scan log
CREATE TABLE IF NOT EXISTS scans (
  id                INTEGER PRIMARY KEY AUTOINCREMENT,
  code              TEXT NOT NULL CHECK(length(code) > 0),
  client_timestamp  TEXT,
  description       TEXT,
  scanned_at        TEXT DEFAULT (datetime('now')),
  created_at        TEXT DEFAULT (datetime('now'))
);

-- 2) Product master
CREATE TABLE IF NOT EXISTS products (
  part_num          TEXT PRIMARY KEY,
  part_description  TEXT NOT NULL,
  created_at        TEXT DEFAULT (datetime('now')),
  updated_at        TEXT
);

CREATE INDEX IF NOT EXISTS idx_scans_created ON scans(created_at);
CREATE INDEX IF NOT EXISTS idx_scans_code    ON scans(code);
"""

# updated_at stays NULL until the first conflict, so the RETURNING clause
# tells an insert from an overwrite without a separate existence check.
UPSERT_PRODUCT_SQL = """
INSERT INTO products (part_num, part_description)
VALUES (?, ?)
ON CONFLICT(part_num) DO UPDATE SET
    part_description = excluded.part_description,
    updated_at = datetime('now')
RETURNING updated_at IS NULL AS inserted;
"""


class ScanDatabase:
    """SQLite-backed scan log and product master.

    - Places DB under `<project-root>/var/scanlog/scanlog.sqlite3` unless
      `db_path` is given.
    - Ensures schema on first use.
    - Provides a context-managed connection method.
    """

    def __init__(self, root_dir: Optional[str] = None, *, db_path: Optional[str] = None) -> None:
        if db_path:
            self.db_path = os.path.abspath(db_path)
            os.makedirs(os.path.dirname(self.db_path), exist_ok=True)
        else:
            root = find_project_root(root_dir)
            db_folder = os.path.join(var_dir(root), DEFAULT_DB_FOLDER)
            os.makedirs(db_folder, exist_ok=True)
            self.db_path = os.path.join(db_folder, DEFAULT_DB_FILENAME)
        LOG.info(f"Scan DB path: {self.db_path}")
        self._ensure_schema()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path, timeout=10.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self.connect() as conn:
            cur = conn.cursor()
            try:
                cur.execute("PRAGMA journal_mode=WAL;")
                cur.execute("PRAGMA synchronous=NORMAL;")
            except sqlite3.OperationalError:
                # Non-fatal; continue with schema creation
                pass
            LOG.info("Ensuring scan DB schema is present…")
            self._migrate_scans_add_description(conn)
            self._migrate_products_add_updated_at(conn)
            cur.executescript(SCHEMA_SQL)
            conn.commit()
            LOG.info("Scan DB schema ensured.")

    @staticmethod
    def _table_columns(conn: sqlite3.Connection, table: str) -> List[str]:
        cur = conn.cursor()
        cur.execute(f"PRAGMA table_info({table});")
        return [row[1] for row in cur.fetchall()]

    def _migrate_scans_add_description(self, conn: sqlite3.Connection) -> None:
        """Older scan logs were created before enrichment existed."""
        columns = self._table_columns(conn, "scans")
        if not columns or "description" in columns:
            return
        LOG.info("Migrating scans table to add description column")
        conn.execute("ALTER TABLE scans ADD COLUMN description TEXT;")
        conn.commit()

    def _migrate_products_add_updated_at(self, conn: sqlite3.Connection) -> None:
        columns = self._table_columns(conn, "products")
        if not columns or "updated_at" in columns:
            return
        LOG.info("Migrating products table to add updated_at column")
        conn.execute("ALTER TABLE products ADD COLUMN updated_at TEXT;")
        conn.commit()

    # --------------- Scan log ---------------
    def insert_scan(self, code: str, client_timestamp: Optional[str], description: Optional[str]) -> Dict[str, Any]:
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO scans (code, client_timestamp, description)
                VALUES (?, ?, ?)
                RETURNING id, code, client_timestamp, description, scanned_at, created_at;
                """,
                (code, client_timestamp, description),
            )
            row = cur.fetchone()
            conn.commit()
            return dict(row)

    def fetch_scans(self, *, limit: int = SCAN_HISTORY_LIMIT) -> List[Dict[str, Any]]:
        """Return the newest scans first, capped at SCAN_HISTORY_LIMIT."""
        limit = max(1, min(int(limit), SCAN_HISTORY_LIMIT))
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT id, code, client_timestamp, description, scanned_at, created_at
                FROM scans
                ORDER BY created_at DESC, id DESC
                LIMIT ?;
                """,
                (limit,),
            )
            return self._rows_to_dicts(cur.fetchall())

    def fetch_scan_stats(self) -> Dict[str, int]:
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) AS total FROM scans;")
            total = int(cur.fetchone()["total"])
            cur.execute("SELECT COUNT(*) AS today FROM scans WHERE date(created_at) = date('now');")
            today = int(cur.fetchone()["today"])
        return {"total": total, "today": today}

    # --------------- Product master ---------------
    def get_product(self, part_num: str) -> Optional[Dict[str, Any]]:
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT part_num, part_description, created_at, updated_at FROM products WHERE part_num = ?;",
                (part_num,),
            )
            return self._row_to_dict(cur.fetchone())

    def upsert_product(self, part_num: str, part_description: str) -> bool:
        """Insert or overwrite one product; returns True when the key was new."""
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(UPSERT_PRODUCT_SQL, (part_num, part_description))
            inserted = bool(cur.fetchone()["inserted"])
            conn.commit()
            return inserted

    def upsert_products(self, rows: Sequence[Tuple[str, str]]) -> Tuple[int, int]:
        """Upsert a chunk inside one transaction; returns (inserted, updated).

        Any failure rolls the whole chunk back and re-raises.
        """
        inserted = 0
        updated = 0
        with self.connect() as conn:
            cur = conn.cursor()
            try:
                conn.execute("BEGIN IMMEDIATE;")
                for part_num, part_description in rows:
                    cur.execute(UPSERT_PRODUCT_SQL, (part_num, part_description))
                    if cur.fetchone()["inserted"]:
                        inserted += 1
                    else:
                        updated += 1
                conn.commit()
            except Exception:
                LOG.exception(f"Product chunk of {len(rows)} row(s) failed; rolling back")
                try:
                    conn.rollback()
                except sqlite3.OperationalError:
                    pass
                raise
        return inserted, updated

    def count_products(self) -> int:
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) AS total FROM products;")
            return int(cur.fetchone()["total"])

    # --------------- Query helpers ---------------
    @staticmethod
    def _rows_to_dicts(rows: Sequence[sqlite3.Row]) -> List[Dict[str, Any]]:
        return [dict(row) for row in rows]

    @staticmethod
    def _row_to_dict(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
        return dict(row) if row is not None else None
