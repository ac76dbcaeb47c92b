from __future__ import annotations

from typing import Any, List

import numpy as np

from ..domain.pattern import extract_product_number
from ..logging import get_logger


LOG = get_logger("capture-readers")

BIN_THR_PCT = (5, 95)
OCR_WHITELIST = "0123456789-"


def _to_gray(frame: Any) -> np.ndarray:
    import cv2

    if frame.ndim == 3:
        return cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    return frame


def decode_barcodes(frame: Any) -> List[str]:
    """Decoded payloads of every barcode visible in the frame, in decoder order."""
    from pyzbar import pyzbar

    codes: List[str] = []
    for symbol in pyzbar.decode(_to_gray(frame)):
        data = (symbol.data or b"").decode("utf-8", errors="ignore").strip()
        if data and data not in codes:
            codes.append(data)
    return codes


def prepare_for_ocr(frame: Any) -> np.ndarray:
    """Contrast-stretch, denoise and binarise a frame for Tesseract."""
    import cv2

    g = _to_gray(frame)
    lo, hi = np.percentile(g, BIN_THR_PCT)
    if hi > lo:
        g = np.clip((g - lo) * (255.0 / (hi - lo)), 0, 255).astype(np.uint8)
    g = cv2.medianBlur(g, 3)
    thr = cv2.adaptiveThreshold(g, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 31, 9)
    if (thr == 255).mean() > 0.96 or (thr == 0).mean() > 0.96:
        _, thr = cv2.threshold(g, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    return thr


def recognize_text(frame: Any, *, lang: str = "eng", psm: int = 6) -> str:
    import pytesseract

    config = f"--oem 1 --psm {psm} -c tessedit_char_whitelist={OCR_WHITELIST}"
    return pytesseract.image_to_string(prepare_for_ocr(frame), config=config, lang=lang).strip()


class BarcodeReader:
    """Frame → decoded barcode strings."""

    def __call__(self, frame: Any) -> List[str]:
        return decode_barcodes(frame)


class OcrReader:
    """Frame → at most one product number read by OCR."""

    def __init__(self, lang: str = "eng") -> None:
        self.lang = lang

    def __call__(self, frame: Any) -> List[str]:
        text = recognize_text(frame, lang=self.lang)
        match = extract_product_number(text)
        if match:
            LOG.debug(f"OCR matched {match!r}")
        elif text:
            LOG.debug(f"OCR text without product number: {text!r}")
        return [match] if match else []
