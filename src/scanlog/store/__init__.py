"""Scan log and product master storage.

Modules:
- db: SQLite location, schema, scan inserts and the product upsert
- csvparse: product-list CSV parsing
- importer: chunked, failure-tolerant product import
- service: validation, enrichment and error mapping over the DB
- api: Starlette JSON API
"""

from .db import ScanDatabase
from .importer import ProductImporter
from .service import ScanService
from .api import create_app

__all__ = [
    "ScanDatabase",
    "ProductImporter",
    "ScanService",
    "create_app",
]
