from __future__ import annotations

import re
from typing import Optional

# Two digits, a hyphen, three digits; no digit may touch either end.
PRODUCT_NUMBER_RX = re.compile(r"(?<!\d)\d{2}-\d{3}(?!\d)")

_DASHES = str.maketrans({"‐": "-", "‑": "-", "‒": "-", "–": "-", "—": "-", "−": "-"})


def extract_product_number(text: Optional[str]) -> Optional[str]:
    """Return the first product number (``NN-NNN``) found in OCR text.

    Lines are searched top to bottom and each line left to right. A candidate
    embedded in a longer digit run (``123-4567``) is not a match.
    """
    if not text:
        return None
    for line in text.translate(_DASHES).splitlines():
        m = PRODUCT_NUMBER_RX.search(line)
        if m:
            return m.group(0)
    return None
