from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..domain.models import ImportStats, ScanValidationError, StorageError
from ..logging import get_logger
from .db import SCAN_HISTORY_LIMIT, ScanDatabase
from .importer import DEFAULT_CHUNK_SIZE, ProductImporter


LOG = get_logger("store-service")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ScanService:
    """Server-side operations on the scan log and product master.

    Wraps ScanDatabase so callers only see ScanValidationError and
    StorageError. Used directly by the HTTP API and as the local backend of
    a capture pipeline.
    """

    def __init__(self, db: Optional[ScanDatabase] = None, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.db = db or ScanDatabase()
        self.chunk_size = chunk_size

    def init_database(self) -> str:
        """Ensure the database exists and return its path."""
        LOG.info("Scan database initialized.")
        return self.db.db_path

    def lookup_description(self, code: str) -> Optional[str]:
        """Product description for an exact part number, or None.

        A failed lookup is logged and treated like a miss so enrichment never
        blocks saving a scan.
        """
        try:
            product = self.db.get_product(code)
        except sqlite3.Error as exc:
            LOG.warning(f"Product lookup for {code!r} failed: {exc}")
            return None
        if product is None:
            LOG.debug(f"No product master entry for {code!r}")
            return None
        return product["part_description"]

    def record_scan(self, code: Any, timestamp: Optional[str] = None) -> Tuple[Dict[str, Any], Optional[str]]:
        """Validate, enrich and append one scan; returns (record, description)."""
        if not isinstance(code, str) or not code.strip():
            raise ScanValidationError("Barcode is required")
        code = code.strip()
        client_ts = timestamp.strip() if isinstance(timestamp, str) and timestamp.strip() else utc_now_iso()

        description = self.lookup_description(code)
        try:
            record = self.db.insert_scan(code, client_ts, description)
        except sqlite3.Error as exc:
            LOG.error(f"Saving scan {code!r} failed: {exc}")
            raise StorageError(f"Failed to save scan: {exc}") from exc
        LOG.info(f"Saved scan id={record['id']} code={code!r} description={description!r}")
        return record, description

    def list_scans(self, limit: int = SCAN_HISTORY_LIMIT) -> List[Dict[str, Any]]:
        try:
            return self.db.fetch_scans(limit=limit)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to fetch scans: {exc}") from exc

    def scan_stats(self) -> Dict[str, int]:
        try:
            return self.db.fetch_scan_stats()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to count scans: {exc}") from exc

    def get_product(self, part_num: str) -> Optional[Dict[str, Any]]:
        try:
            return self.db.get_product(part_num)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to read product: {exc}") from exc

    def product_count(self) -> int:
        try:
            return self.db.count_products()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to count products: {exc}") from exc

    def upsert_chunk(self, rows: Sequence[Tuple[str, str]]) -> Tuple[int, int]:
        try:
            return self.db.upsert_products(rows)
        except sqlite3.Error as exc:
            raise StorageError(f"Product chunk failed: {exc}") from exc

    def import_products(self, rows: Any) -> ImportStats:
        """Upsert product rows in chunks; a failed chunk only costs its own rows."""
        if not isinstance(rows, (list, tuple)) or not rows:
            raise ScanValidationError("Invalid products data")
        importer = ProductImporter(self.upsert_chunk, chunk_size=self.chunk_size)
        return importer.import_products(rows)
