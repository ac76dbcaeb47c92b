from __future__ import annotations

import sqlite3
from pathlib import Path

from starlette.testclient import TestClient

from scanlog.store import ScanDatabase, ScanService, create_app


def _client(root: Path) -> TestClient:
    (root / "README.md").write_text("test marker", encoding="utf-8")
    app = create_app(root_dir=str(root), db_path=str(root / "scanlog.sqlite3"), allow_origins=["*"])
    return TestClient(app)


def test_scan_is_enriched_after_product_import(tmp_path: Path) -> None:
    client = _client(tmp_path)

    first = client.post("/scans", json={"code": "4901234567894"})
    assert first.status_code == 200
    payload = first.json()
    assert payload["success"] is True
    assert payload["data"]["code"] == "4901234567894"
    assert payload["data"]["description"] is None
    assert payload["description"] is None
    assert payload["data"]["client_timestamp"]

    imported = client.post(
        "/products/import",
        json={"products": [{"partNum": "4901234567894", "partDescription": "Widget"}]},
    )
    assert imported.status_code == 200
    assert imported.json() == {
        "success": True,
        "message": "1 products imported successfully",
        "total": 1,
        "inserted": 1,
        "updated": 0,
        "skipped": 0,
    }

    second = client.post("/scans", json={"code": "4901234567894", "timestamp": "2024-06-01T09:30:00.000Z"})
    assert second.status_code == 200
    second_payload = second.json()
    assert second_payload["description"] == "Widget"
    assert second_payload["data"]["description"] == "Widget"
    assert second_payload["data"]["client_timestamp"] == "2024-06-01T09:30:00.000Z"

    history = client.get("/scans")
    assert history.status_code == 200
    scans = history.json()["scans"]
    assert [s["id"] for s in scans] == [second_payload["data"]["id"], payload["data"]["id"]]

    stats = client.get("/scans/stats")
    assert stats.json() == {"success": True, "total": 2, "today": 2}


def test_post_scan_validation_errors(tmp_path: Path) -> None:
    client = _client(tmp_path)

    for body in ({}, {"code": ""}, {"code": "   "}, {"code": 42}, ["code"]):
        resp = client.post("/scans", json=body)
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Barcode is required"}

    malformed = client.post("/scans", content=b"{not json", headers={"content-type": "application/json"})
    assert malformed.status_code == 400
    assert malformed.json()["success"] is False

    assert client.get("/scans").json()["scans"] == []


def test_import_validation_and_stats(tmp_path: Path) -> None:
    client = _client(tmp_path)

    for body in ({}, {"products": []}, {"products": "x"}):
        resp = client.post("/products/import", json=body)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid products data"

    resp = client.post(
        "/products/import",
        json={
            "products": [
                {"partNum": "00-001", "partDescription": "A"},
                {"partNum": "00-002", "partDescription": ""},
                {"partNum": "00-001", "partDescription": "B"},
            ]
        },
    )
    body = resp.json()
    assert (body["total"], body["inserted"], body["updated"], body["skipped"]) == (3, 1, 1, 1)

    stats = client.get("/products/stats")
    assert stats.status_code == 200
    assert stats.json()["total"] == 1

    detail = client.get("/products/00-001")
    assert detail.json()["product"]["part_description"] == "B"
    assert client.get("/products/99-999").status_code == 404


def test_history_limit_is_clamped(tmp_path: Path) -> None:
    client = _client(tmp_path)
    for code in ("a", "b", "c"):
        client.post("/scans", json={"code": code})

    assert [s["code"] for s in client.get("/scans", params={"limit": 2}).json()["scans"]] == ["c", "b"]
    assert len(client.get("/scans", params={"limit": "abc"}).json()["scans"]) == 3


def test_storage_failure_returns_500_with_details(tmp_path: Path) -> None:
    (tmp_path / "README.md").write_text("test marker", encoding="utf-8")
    svc = ScanService(ScanDatabase(root_dir=str(tmp_path)))

    def broken_insert(*_args, **_kwargs):
        raise sqlite3.OperationalError("database is locked")

    svc.db.insert_scan = broken_insert
    client = TestClient(create_app(service=svc))

    resp = client.post("/scans", json={"code": "12-345"})
    assert resp.status_code == 500
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "Failed to save scan"
    assert "database is locked" in body["details"]


def test_failing_import_chunk_is_reported_as_skipped(tmp_path: Path) -> None:
    (tmp_path / "README.md").write_text("test marker", encoding="utf-8")
    svc = ScanService(ScanDatabase(root_dir=str(tmp_path)), chunk_size=2)
    real_upsert = svc.db.upsert_products
    calls = {"n": 0}

    def flaky(rows):
        calls["n"] += 1
        if calls["n"] == 1:
            raise sqlite3.OperationalError("disk I/O error")
        return real_upsert(rows)

    svc.db.upsert_products = flaky
    client = TestClient(create_app(service=svc))

    products = [{"partNum": f"00-00{i}", "partDescription": f"d{i}"} for i in range(5)]
    body = client.post("/products/import", json={"products": products}).json()

    assert body["success"] is True
    assert (body["total"], body["inserted"], body["updated"], body["skipped"]) == (5, 3, 0, 2)


def test_health(tmp_path: Path) -> None:
    client = _client(tmp_path)
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
