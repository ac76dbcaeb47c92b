from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Optional, Sequence

from ..capture import BarcodeReader, OcrReader, CaptureSession, open_camera
from ..client import ScanApiClient
from ..config import load_capture_settings, load_db_path, load_server_url
from ..domain.models import ImportStats, ScanValidationError, StorageError, SubmitResult, SubmitStatus
from ..logging import get_logger
from ..paths import expand_abs, find_project_root
from ..pipeline import ScanPipeline
from ..store import ProductImporter, ScanDatabase, ScanService
from ..store.csvparse import read_product_csv

LOG = get_logger("cli-main")

REMOTE_CHUNK_DELAY_SEC = 0.1


def _local_service() -> ScanService:
    root = find_project_root(os.getcwd())
    return ScanService(ScanDatabase(root_dir=root, db_path=load_db_path(root)))


def _remote_client(ns: argparse.Namespace) -> Optional[ScanApiClient]:
    if not ns.server:
        return None
    url = load_server_url(os.getcwd()) if ns.server == "env" else ns.server
    LOG.info(f"Using remote server: {url}")
    return ScanApiClient(url, timeout=ns.timeout)


def _add_backend_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--server",
        nargs="?",
        const="env",
        help="Send to a scanlog server instead of the local DB (URL, or no value to use SCANLOG_SERVER_URL)",
    )
    p.add_argument("--timeout", type=int, default=30, help="HTTP timeout in seconds for server requests")


def _print_result(result: SubmitResult) -> None:
    if result.status is SubmitStatus.SAVED:
        desc = f" – {result.description}" if result.description else ""
        # Terminal bell stands in for the device vibration on save.
        print(f"\aSaved: {result.code}{desc}", flush=True)
    elif result.status is SubmitStatus.DUPLICATE:
        LOG.debug(f"Duplicate read suppressed: {result.code}")
    else:
        print(f"Error ({result.category}): {result.error}", file=sys.stderr, flush=True)


def _print_stats(stats: ImportStats) -> None:
    out = stats.to_dict()
    out["partial"] = stats.partial
    print(json.dumps(out, ensure_ascii=False))


def _handle_init(_: argparse.Namespace) -> int:
    svc = _local_service()
    path = svc.init_database()
    LOG.info(f"Scan DB ready at: {path}")
    print(path)
    return 0


def _handle_serve(ns: argparse.Namespace) -> int:
    from ..store.api import create_app
    import uvicorn

    allow_origins = ns.allow_origins
    if allow_origins and len(allow_origins) == 1 and allow_origins[0] == "*":
        allow_origins = ["*"]

    app = create_app(root_dir=os.getcwd(), db_path=ns.db_path, allow_origins=allow_origins)
    uvicorn.run(app, host=ns.host, port=ns.port, log_level=ns.log_level)
    return 0


def _handle_submit(ns: argparse.Namespace) -> int:
    backend = _remote_client(ns) or _local_service()
    pipeline = ScanPipeline(backend)
    result = pipeline.submit(ns.code, ns.timestamp, continuous=False)
    _print_result(result)
    if result.ok and result.record is not None:
        print(json.dumps(result.record.to_dict(), ensure_ascii=False))
        return 0
    return 2 if result.status is SubmitStatus.INVALID else 1


def _handle_history(ns: argparse.Namespace) -> int:
    client = _remote_client(ns)
    try:
        scans = client.fetch_scans(ns.limit) if client else _local_service().list_scans(ns.limit)
    except (StorageError, ScanValidationError) as exc:
        LOG.error(f"Could not load scan history: {exc}")
        return 1
    for row in scans:
        print(json.dumps(row, ensure_ascii=False))
    return 0


def _handle_stats(ns: argparse.Namespace) -> int:
    client = _remote_client(ns)
    try:
        if client:
            out = {"scans": client.scan_stats(), "products": client.product_count()}
        else:
            svc = _local_service()
            out = {"scans": svc.scan_stats(), "products": svc.product_count()}
    except (StorageError, ScanValidationError) as exc:
        LOG.error(f"Could not load stats: {exc}")
        return 1
    print(json.dumps(out, ensure_ascii=False))
    return 0


def _handle_import(ns: argparse.Namespace) -> int:
    path = expand_abs(ns.file)
    if not os.path.isfile(path):
        LOG.error(f"CSV file not found: {path}")
        return 2
    rows = read_product_csv(path, encoding=ns.encoding)
    if not rows:
        LOG.error("No product rows found in CSV")
        return 2
    LOG.info(f"Read {len(rows)} product row(s) from {path}")

    def _progress(stats: ImportStats, done: int, total_chunks: int) -> None:
        LOG.info(
            f"Chunk {done}/{total_chunks}: inserted={stats.inserted} updated={stats.updated} skipped={stats.skipped}"
        )

    client = _remote_client(ns)
    if client:
        sink = client.import_chunk
        delay = REMOTE_CHUNK_DELAY_SEC
    else:
        sink = _local_service().upsert_chunk
        delay = 0.0
    importer = ProductImporter(sink, chunk_size=ns.chunk_size, chunk_delay_sec=delay, progress=_progress)
    stats = importer.import_products(rows)
    _print_stats(stats)
    if stats.partial:
        LOG.warning(f"Partial import: {stats.skipped} row(s) skipped in {stats.failed_chunks} failed chunk(s)")
        return 1
    return 0


def _handle_scan(ns: argparse.Namespace) -> int:
    settings = load_capture_settings(os.getcwd())
    camera = settings.camera if ns.camera is None else ns.camera
    backend = _remote_client(ns) or _local_service()
    pipeline = ScanPipeline(backend)

    if ns.mode == "ocr":
        reader = OcrReader(lang=settings.tess_lang)
        interval = settings.ocr_interval_sec if ns.interval is None else ns.interval
    else:
        reader = BarcodeReader()
        interval = 0.1 if ns.interval is None else ns.interval

    session = CaptureSession(
        lambda: open_camera(camera),
        reader,
        pipeline,
        interval_sec=interval,
        on_result=_print_result,
    )
    LOG.info(f"Scanning ({ns.mode}) from camera {camera}. Press Ctrl+C to stop.")
    try:
        session.run()
    except KeyboardInterrupt:
        LOG.info("Scan interrupted by user. Exiting.")
    except Exception as exc:
        LOG.error(f"Capture failed: {exc}")
        return 1
    print(f"Session scans saved: {pipeline.saved}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    provided = list(argv) if argv is not None else sys.argv[1:]
    LOG.debug(f"CLI invoked with arguments: {provided}")

    parser = argparse.ArgumentParser(
        prog="scanlog",
        description="Barcode/OCR scan logging with a product master.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_cmd = subparsers.add_parser("init", help="Create/ensure the scan DB schema exists")
    init_cmd.set_defaults(handler=_handle_init)

    serve = subparsers.add_parser("serve", help="Run the JSON API server.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8001)
    serve.add_argument("--log-level", default="info")
    serve.add_argument("--db-path", help="SQLite file (default: SCANLOG_DB_PATH or var/scanlog/)")
    serve.add_argument(
        "--allow-origin",
        action="append",
        dest="allow_origins",
        help="Allowed CORS origin (can be provided multiple times, use '*' for any).",
    )
    serve.set_defaults(handler=_handle_serve)

    submit = subparsers.add_parser("submit", help="Record one manually entered code.")
    submit.add_argument("code")
    submit.add_argument("--timestamp", help="ISO-8601 capture time (default: now)")
    _add_backend_args(submit)
    submit.set_defaults(handler=_handle_submit)

    history = subparsers.add_parser("history", help="Print recent scans, newest first, as JSON lines.")
    history.add_argument("--limit", type=int, default=50)
    _add_backend_args(history)
    history.set_defaults(handler=_handle_history)

    stats = subparsers.add_parser("stats", help="Print scan and product counts.")
    _add_backend_args(stats)
    stats.set_defaults(handler=_handle_stats)

    imp = subparsers.add_parser("import-csv", help="Upsert a partNum,partDescription CSV into the product master.")
    imp.add_argument("file")
    imp.add_argument("--chunk-size", type=int, default=100)
    imp.add_argument("--encoding", default="utf-8")
    _add_backend_args(imp)
    imp.set_defaults(handler=_handle_import)

    scan = subparsers.add_parser("scan", help="Scan codes from a camera until Ctrl+C.")
    scan.add_argument("--mode", choices=["barcode", "ocr"], default="barcode")
    scan.add_argument("--camera", type=int, help="Camera index (default: SCANLOG_CAMERA or 0)")
    scan.add_argument("--interval", type=float, help="Seconds between sampled frames")
    _add_backend_args(scan)
    scan.set_defaults(handler=_handle_scan)

    args = parser.parse_args(provided)
    code = args.handler(args)
    LOG.debug(f"Subcommand '{args.command}' finished with exit code {code}.")
    return code


if __name__ == "__main__":
    sys.exit(main())
