"""
scanlog – barcode / OCR scan logging with a product master.

Shared foundations (config, logging, paths) live at the package root; the
domain rules, storage layer, capture sessions and HTTP API live in
subpackages.
"""

__all__ = [
    "config",
    "logging",
    "paths",
]
