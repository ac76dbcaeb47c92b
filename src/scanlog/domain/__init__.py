"""Storage-independent rules: data types, product-number pattern, dedup gate."""

from .dedup import DEDUP_WINDOW_SEC, DedupGate
from .models import (
    ImportStats,
    Product,
    ScanRecord,
    ScanValidationError,
    StorageError,
    SubmitResult,
    SubmitStatus,
)
from .pattern import PRODUCT_NUMBER_RX, extract_product_number

__all__ = [
    "DEDUP_WINDOW_SEC",
    "DedupGate",
    "ImportStats",
    "Product",
    "ScanRecord",
    "ScanValidationError",
    "StorageError",
    "SubmitResult",
    "SubmitStatus",
    "PRODUCT_NUMBER_RX",
    "extract_product_number",
]
