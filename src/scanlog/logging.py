import logging
import os
from typing import Optional


_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


def _coerce_level(value: Optional[str]) -> int:
    if isinstance(value, str):
        return _LEVELS.get(value.upper().strip(), logging.INFO)
    if isinstance(value, int):
        return value
    return logging.INFO


def get_logger(name: str) -> logging.Logger:
    """Return a configured stream logger with consistent formatting.

    - Honors LOG_LEVEL (default INFO) and LOG_FILE (optional path).
    - Loggers are namespaced under ``scanlog.`` so uvicorn output stays separate.
    """
    logger = logging.getLogger(f"scanlog.{name}")
    if getattr(logger, "_scanlog_configured", False):
        return logger

    level = _coerce_level(os.environ.get("LOG_LEVEL", "INFO"))
    logger.setLevel(level)

    fmt = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = logging.Formatter(fmt=fmt, datefmt=datefmt)

    sh = logging.StreamHandler()
    sh.setLevel(level)
    sh.setFormatter(formatter)
    logger.addHandler(sh)

    log_file = os.environ.get("LOG_FILE")
    if log_file:
        try:
            fh = logging.FileHandler(log_file, encoding="utf-8")
            fh.setLevel(level)
            fh.setFormatter(formatter)
            logger.addHandler(fh)
        except OSError:
            logger.warning("LOG_FILE could not be opened; continuing without file logging")

    logger.propagate = False
    setattr(logger, "_scanlog_configured", True)
    return logger
