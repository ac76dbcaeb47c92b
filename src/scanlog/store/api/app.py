from __future__ import annotations

import json
from typing import Any, List, Optional

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from ...config import load_db_path
from ...domain.models import ScanValidationError, StorageError
from ...logging import get_logger
from ...paths import find_project_root
from ..db import SCAN_HISTORY_LIMIT, ScanDatabase
from ..service import ScanService


LOG = get_logger("store-api")


def _parse_int(value: Optional[str], *, default: int, minimum: int, maximum: int) -> int:
    try:
        parsed = int(value) if value is not None else default
    except (TypeError, ValueError):
        parsed = default
    if parsed < minimum:
        return minimum
    if parsed > maximum:
        return maximum
    return parsed


def _client_error(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def _server_error(message: str, exc: Exception) -> JSONResponse:
    return JSONResponse({"success": False, "error": message, "details": str(exc)}, status_code=500)


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ScanValidationError("Request body must be valid JSON") from exc


def create_app(
    root_dir: Optional[str] = None,
    *,
    db_path: Optional[str] = None,
    service: Optional[ScanService] = None,
    allow_origins: Optional[List[str]] = None,
) -> Starlette:
    """Create a Starlette app exposing the scan log and product master API."""

    if service is None:
        project_root = find_project_root(root_dir)
        db = ScanDatabase(root_dir=project_root, db_path=db_path or load_db_path(project_root))
        service = ScanService(db)
    svc = service

    async def health(_: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "db_path": svc.db.db_path})

    async def list_scans(request: Request) -> JSONResponse:
        limit = _parse_int(
            request.query_params.get("limit"),
            default=SCAN_HISTORY_LIMIT,
            minimum=1,
            maximum=SCAN_HISTORY_LIMIT,
        )
        try:
            scans = svc.list_scans(limit)
        except StorageError as exc:
            LOG.exception("GET /scans failed")
            return _server_error("Failed to fetch scans", exc)
        return JSONResponse({"success": True, "scans": scans})

    async def create_scan(request: Request) -> JSONResponse:
        try:
            body = await _json_body(request)
            if not isinstance(body, dict):
                raise ScanValidationError("Barcode is required")
            record, description = svc.record_scan(body.get("code"), body.get("timestamp"))
        except ScanValidationError as exc:
            return _client_error(str(exc))
        except StorageError as exc:
            LOG.exception("POST /scans failed")
            return _server_error("Failed to save scan", exc)
        return JSONResponse(
            {
                "success": True,
                "message": "Scan saved successfully",
                "data": record,
                "description": description,
            }
        )

    async def scan_stats(_: Request) -> JSONResponse:
        try:
            stats = svc.scan_stats()
        except StorageError as exc:
            LOG.exception("GET /scans/stats failed")
            return _server_error("Failed to get scan stats", exc)
        return JSONResponse({"success": True, **stats})

    async def import_products(request: Request) -> JSONResponse:
        try:
            body = await _json_body(request)
            products = body.get("products") if isinstance(body, dict) else None
            stats = await run_in_threadpool(svc.import_products, products)
        except ScanValidationError as exc:
            return _client_error(str(exc))
        except StorageError as exc:
            LOG.exception("POST /products/import failed")
            return _server_error("Failed to import products", exc)
        return JSONResponse(
            {
                "success": True,
                "message": f"{stats.inserted + stats.updated} products imported successfully",
                **stats.to_dict(),
            }
        )

    async def product_stats(_: Request) -> JSONResponse:
        try:
            total = svc.product_count()
        except StorageError as exc:
            LOG.exception("GET /products/stats failed")
            return _server_error("Failed to get product stats", exc)
        return JSONResponse({"success": True, "total": total, "message": f"{total} products in database"})

    async def product_detail(request: Request) -> JSONResponse:
        part_num = request.path_params["part_num"]
        try:
            product = svc.get_product(part_num)
        except StorageError as exc:
            LOG.exception("GET /products/{part_num} failed")
            return _server_error("Failed to get product", exc)
        if product is None:
            return _client_error("Product not found", status_code=404)
        return JSONResponse({"success": True, "product": product})

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/scans", list_scans, methods=["GET"]),
        Route("/scans", create_scan, methods=["POST"]),
        Route("/scans/stats", scan_stats, methods=["GET"]),
        Route("/products/import", import_products, methods=["POST"]),
        Route("/products/stats", product_stats, methods=["GET"]),
        Route("/products/{part_num:str}", product_detail, methods=["GET"]),
    ]

    app = Starlette(debug=False, routes=routes)

    origins = allow_origins or ["http://localhost:3000", "http://127.0.0.1:3000"]
    if "*" in origins:
        cors_allow_origins = ["*"]
    else:
        cors_allow_origins = origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.service = svc
    return app


__all__ = ["create_app"]
