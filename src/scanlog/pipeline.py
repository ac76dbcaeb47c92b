from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, Tuple

from .domain.dedup import DEDUP_WINDOW_SEC, DedupGate
from .domain.models import ScanRecord, ScanValidationError, StorageError, SubmitResult, SubmitStatus
from .logging import get_logger


LOG = get_logger("scan-pipeline")


class ScanBackend(Protocol):
    def record_scan(self, code: str, timestamp: Optional[str] = None) -> Tuple[Dict[str, Any], Optional[str]]:
        ...


class ScanPipeline:
    """Validate → dedup → enrich + persist for one capture session.

    The backend (ScanService locally, ScanApiClient remotely) does the
    enrichment lookup and the single-row append. The pipeline owns the
    session's DedupGate and never raises for expected outcomes: every
    submission ends in a SubmitResult.
    """

    def __init__(self, backend: ScanBackend, *, window_sec: float = DEDUP_WINDOW_SEC) -> None:
        self.backend = backend
        self.gate = DedupGate(window_sec)
        self.saved = 0

    def submit(
        self,
        code: Optional[str],
        timestamp: Optional[str] = None,
        continuous: bool = False,
        now: Optional[float] = None,
    ) -> SubmitResult:
        cleaned = code.strip() if isinstance(code, str) else ""
        if not cleaned:
            return SubmitResult(SubmitStatus.INVALID, code="", error="Barcode is required")

        if not self.gate.admit(cleaned, continuous, now):
            LOG.debug(f"Suppressed repeat read of {cleaned!r}")
            return SubmitResult(SubmitStatus.DUPLICATE, code=cleaned)

        try:
            row, description = self.backend.record_scan(cleaned, timestamp)
        except ScanValidationError as exc:
            return SubmitResult(SubmitStatus.INVALID, code=cleaned, error=str(exc))
        except StorageError as exc:
            LOG.error(f"Scan {cleaned!r} not saved: {exc}")
            return SubmitResult(SubmitStatus.FAILED, code=cleaned, error=str(exc))

        self.saved += 1
        record = ScanRecord.from_mapping(row) if row else None
        LOG.info(f"Saved {cleaned!r} ({description or 'no description'})")
        return SubmitResult(SubmitStatus.SAVED, code=cleaned, record=record, description=description)

    def end_session(self) -> None:
        self.gate.reset()
