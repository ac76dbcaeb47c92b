import os
from dataclasses import dataclass
from typing import Dict, Optional

from .logging import get_logger

log = get_logger("config")

DEFAULT_SERVER_URL = "http://127.0.0.1:8001"
DEFAULT_OCR_INTERVAL_SEC = 1.0
DEFAULT_TESS_LANG = "eng"


def _find_upwards(start_dir: str, filename: str) -> Optional[str]:
    """Return first matching file found when walking up from start_dir.

    This makes running tools from subdirectories (e.g., `src/`) still find
    the project-level `.env`.
    """
    d = os.path.abspath(start_dir or ".")
    while True:
        candidate = os.path.join(d, filename)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(d)
        if parent == d:
            return None
        d = parent


def _read_dotenv(dotenv_dir: str) -> Dict[str, str]:
    """Minimal .env reader (no external dependencies).

    - Reads key=value pairs, ignores comments (#/;) and blank lines.
    - Trims single/double quotes around the value.
    - Returns mapping; does not mutate environment.
    """
    env: Dict[str, str] = {}
    path = _find_upwards(dotenv_dir, ".env")
    if not path:
        log.debug(f"No .env found starting from: {os.path.abspath(dotenv_dir)}")
        return env
    try:
        with open(path, "r", encoding="utf-8") as f:
            for raw in f:
                line = raw.strip()
                if not line or line.startswith("#") or line.startswith(";"):
                    continue
                if "=" not in line:
                    continue
                k, v = line.split("=", 1)
                k = k.strip()
                v = v.strip()
                if (v.startswith('"') and v.endswith('"')) or (v.startswith("'") and v.endswith("'")):
                    v = v[1:-1]
                env[k] = v.strip()
        log.debug(f"Loaded {len(env)} key(s) from .env at {path}")
    except OSError as e:
        log.warning(f"Failed reading .env: {e}")
    return env


def _lookup(key: str, dotenv_dir: str) -> Optional[str]:
    v = os.environ.get(key)
    if v and v.strip():
        return v.strip()
    v = _read_dotenv(dotenv_dir).get(key)
    return v.strip() if v and v.strip() else None


def load_db_path(dotenv_dir: str) -> Optional[str]:
    """Explicit SQLite file location, or None to use var/scanlog under the project root."""
    v = _lookup("SCANLOG_DB_PATH", dotenv_dir)
    if v:
        log.info("Using SCANLOG_DB_PATH override")
    return v


def load_server_url(dotenv_dir: str, fallback: str = DEFAULT_SERVER_URL) -> str:
    return (_lookup("SCANLOG_SERVER_URL", dotenv_dir) or fallback).rstrip("/")


@dataclass
class CaptureSettings:
    camera: int
    ocr_interval_sec: float
    tess_lang: str


def load_capture_settings(dotenv_dir: str) -> CaptureSettings:
    """Camera index, OCR sampling interval and Tesseract language."""
    camera_raw = _lookup("SCANLOG_CAMERA", dotenv_dir)
    interval_raw = _lookup("SCANLOG_OCR_INTERVAL", dotenv_dir)
    try:
        camera = int(camera_raw) if camera_raw is not None else 0
    except ValueError:
        log.warning(f"Ignoring invalid SCANLOG_CAMERA={camera_raw!r}")
        camera = 0
    try:
        interval = float(interval_raw) if interval_raw is not None else DEFAULT_OCR_INTERVAL_SEC
    except ValueError:
        log.warning(f"Ignoring invalid SCANLOG_OCR_INTERVAL={interval_raw!r}")
        interval = DEFAULT_OCR_INTERVAL_SEC
    if interval <= 0:
        interval = DEFAULT_OCR_INTERVAL_SEC
    lang = _lookup("SCANLOG_TESS_LANG", dotenv_dir) or DEFAULT_TESS_LANG
    return CaptureSettings(camera=camera, ocr_interval_sec=interval, tess_lang=lang)
