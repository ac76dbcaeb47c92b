from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from .domain.models import ScanValidationError, StorageError
from .logging import get_logger


class ScanApiClient:
    """Thin client for a remote scanlog server with session, timeouts, and logging.

    Speaks the same `record_scan` / chunk-sink interface as ScanService so a
    capture pipeline or an import can target either one.
    """

    def __init__(self, base_url: str, *, timeout: int = 30, verify_tls: bool = True) -> None:
        self.base = base_url.rstrip("/")
        self.timeout = int(timeout)
        self.verify = bool(verify_tls)
        self.log = get_logger("api-client")
        self.s = requests.Session()
        self.s.headers.update({"Accept": "application/json"})

    # ---------- helpers ----------
    def _url(self, path: str) -> str:
        return f"{self.base}{path}"

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = self._url(path)
        try:
            r = self.s.request(method, url, timeout=self.timeout, verify=self.verify, **kwargs)
        except requests.RequestException as e:
            self.log.error(f"{method} {path} failed: {e}")
            raise StorageError(f"Cannot reach server at {self.base}: {e}") from e
        try:
            body = r.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if 400 <= r.status_code < 500:
            raise ScanValidationError(body.get("error") or f"HTTP {r.status_code}")
        if r.status_code >= 500 or body.get("success") is False:
            detail = body.get("details") or body.get("error") or r.text[:200]
            self.log.error(f"{method} {path} returned {r.status_code}: {detail}")
            raise StorageError(f"Server error {r.status_code}: {detail}")
        return body

    # ---------- scans ----------
    def record_scan(self, code: str, timestamp: Optional[str] = None) -> Tuple[Dict[str, Any], Optional[str]]:
        payload: Dict[str, Any] = {"code": code}
        if timestamp:
            payload["timestamp"] = timestamp
        body = self._request("POST", "/scans", json=payload)
        return body.get("data") or {}, body.get("description")

    def fetch_scans(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        params = {"limit": int(limit)} if limit else None
        body = self._request("GET", "/scans", params=params)
        return list(body.get("scans") or [])

    def scan_stats(self) -> Dict[str, int]:
        body = self._request("GET", "/scans/stats")
        return {"total": int(body.get("total", 0)), "today": int(body.get("today", 0))}

    # ---------- products ----------
    def import_chunk(self, rows: Sequence[Tuple[str, str]]) -> Tuple[int, int]:
        """POST one chunk to /products/import; returns (inserted, updated)."""
        products = [{"partNum": p, "partDescription": d} for p, d in rows]
        self.log.info(f"POST products/import: {len(products)} row(s)")
        body = self._request("POST", "/products/import", json={"products": products})
        return int(body.get("inserted", 0)), int(body.get("updated", 0))

    def product_count(self) -> int:
        body = self._request("GET", "/products/stats")
        return int(body.get("total", 0))
