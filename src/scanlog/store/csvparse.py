from __future__ import annotations

import csv
import io
from typing import Iterable, List, Tuple

from ..logging import get_logger


LOG = get_logger("store-csv")


def parse_product_csv(text: str) -> List[Tuple[str, str]]:
    """Parse a product list exported as ``partNum,partDescription`` CSV.

    The first row is a header and is ignored. Columns past the second are
    ignored. Rows where either field is empty after trimming are dropped.
    """
    if text.startswith("\ufeff"):
        text = text[1:]
    reader = csv.reader(io.StringIO(text))
    rows: List[Tuple[str, str]] = []
    dropped = 0
    for index, record in enumerate(reader):
        if index == 0:
            continue
        if not record or not any(cell.strip() for cell in record):
            continue
        part_num = record[0].strip()
        description = record[1].strip() if len(record) > 1 else ""
        if not part_num or not description:
            dropped += 1
            continue
        rows.append((part_num, description))
    if dropped:
        LOG.info(f"Dropped {dropped} CSV row(s) with an empty field")
    LOG.debug(f"Parsed {len(rows)} product row(s) from CSV")
    return rows


def read_product_csv(path: str, *, encoding: str = "utf-8") -> List[Tuple[str, str]]:
    with open(path, "r", encoding=encoding, newline="") as f:
        return parse_product_csv(f.read())


def to_api_products(rows: Iterable[Tuple[str, str]]) -> List[dict]:
    """Shape parsed rows as the ``products`` array of POST /products/import."""
    return [{"partNum": part_num, "partDescription": description} for part_num, description in rows]
