from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from scanlog.domain import ScanValidationError, StorageError, SubmitStatus
from scanlog.pipeline import ScanPipeline
from scanlog.store import ScanDatabase, ScanService


def _service(root: Path) -> ScanService:
    (root / "README.md").write_text("test marker", encoding="utf-8")
    return ScanService(ScanDatabase(root_dir=str(root)))


def _scan_count(svc: ScanService) -> int:
    return svc.scan_stats()["total"]


def test_rapid_camera_repeat_persists_once(tmp_path: Path) -> None:
    svc = _service(tmp_path)
    pipeline = ScanPipeline(svc)

    first = pipeline.submit("4901234567894", continuous=True, now=100.0)
    second = pipeline.submit("4901234567894", continuous=True, now=100.4)

    assert first.status is SubmitStatus.SAVED
    assert second.status is SubmitStatus.DUPLICATE
    assert second.category == "duplicate"
    assert _scan_count(svc) == 1


def test_camera_repeat_after_window_persists_twice(tmp_path: Path) -> None:
    svc = _service(tmp_path)
    pipeline = ScanPipeline(svc)

    pipeline.submit("4901234567894", continuous=True, now=100.0)
    again = pipeline.submit("4901234567894", continuous=True, now=101.0)

    assert again.status is SubmitStatus.SAVED
    assert _scan_count(svc) == 2


def test_manual_repeat_always_persists(tmp_path: Path) -> None:
    svc = _service(tmp_path)
    pipeline = ScanPipeline(svc)

    pipeline.submit("12-345", continuous=False, now=5.0)
    pipeline.submit("12-345", continuous=False, now=5.0)

    assert _scan_count(svc) == 2
    assert pipeline.saved == 2


def test_missing_product_still_saves_scan(tmp_path: Path) -> None:
    svc = _service(tmp_path)
    result = ScanPipeline(svc).submit("00-999", "2024-05-01T10:00:00.000Z")

    assert result.ok
    assert result.description is None
    assert result.record is not None
    assert result.record.code == "00-999"
    assert result.record.description is None
    assert result.record.client_timestamp == "2024-05-01T10:00:00.000Z"


def test_known_product_enriches_scan(tmp_path: Path) -> None:
    svc = _service(tmp_path)
    svc.db.upsert_product("12-345", "Hex bolt M8")

    result = ScanPipeline(svc).submit(" 12-345 ")

    assert result.description == "Hex bolt M8"
    assert result.record.code == "12-345"
    assert result.record.description == "Hex bolt M8"
    assert result.record.client_timestamp


def test_blank_code_is_rejected_before_storage(tmp_path: Path) -> None:
    svc = _service(tmp_path)
    pipeline = ScanPipeline(svc)

    result = pipeline.submit("   ", continuous=True, now=0.0)

    assert result.status is SubmitStatus.INVALID
    assert result.category == "validation"
    assert pipeline.gate.last is None
    assert _scan_count(svc) == 0


class _FailingBackend:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc
        self.calls: List[str] = []

    def record_scan(self, code: str, timestamp: Optional[str] = None) -> Tuple[Dict[str, Any], Optional[str]]:
        self.calls.append(code)
        raise self.exc


def test_storage_failure_is_reported_not_raised() -> None:
    backend = _FailingBackend(StorageError("Cannot reach server"))
    result = ScanPipeline(backend).submit("A", continuous=True, now=0.0)

    assert result.status is SubmitStatus.FAILED
    assert result.category == "connectivity"
    assert "Cannot reach server" in result.error
    assert backend.calls == ["A"]


def test_backend_validation_error_maps_to_invalid() -> None:
    backend = _FailingBackend(ScanValidationError("Barcode is required"))
    result = ScanPipeline(backend).submit("A")

    assert result.status is SubmitStatus.INVALID
    assert result.error == "Barcode is required"
