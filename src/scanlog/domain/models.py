from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class ScanValidationError(ValueError):
    """Input rejected before any lookup or write (empty code, bad product list)."""


class StorageError(RuntimeError):
    """The backing store (SQLite file or remote API) could not complete a request."""


@dataclass(frozen=True)
class ScanRecord:
    id: int
    code: str
    client_timestamp: Optional[str]
    description: Optional[str]
    scanned_at: Optional[str]
    created_at: Optional[str]

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "ScanRecord":
        return cls(
            id=int(row["id"]),
            code=str(row["code"]),
            client_timestamp=row.get("client_timestamp"),
            description=row.get("description"),
            scanned_at=row.get("scanned_at"),
            created_at=row.get("created_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Product:
    part_num: str
    part_description: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class ImportStats:
    total: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failed_chunks: int = 0

    @property
    def partial(self) -> bool:
        return self.skipped > 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
        }


class SubmitStatus(str, Enum):
    SAVED = "saved"
    DUPLICATE = "duplicate"
    INVALID = "invalid"
    FAILED = "failed"


_CATEGORIES = {
    SubmitStatus.SAVED: "ok",
    SubmitStatus.DUPLICATE: "duplicate",
    SubmitStatus.INVALID: "validation",
    SubmitStatus.FAILED: "connectivity",
}


@dataclass
class SubmitResult:
    status: SubmitStatus
    code: str
    record: Optional[ScanRecord] = None
    description: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is SubmitStatus.SAVED

    @property
    def category(self) -> str:
        """Message category for the presentation layer."""
        return _CATEGORIES[self.status]
