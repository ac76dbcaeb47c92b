from __future__ import annotations

import time
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

from ..domain.models import ImportStats
from ..logging import get_logger


LOG = get_logger("store-import")

DEFAULT_CHUNK_SIZE = 100

ChunkSink = Callable[[Sequence[Tuple[str, str]]], Tuple[int, int]]
ProgressCallback = Callable[[ImportStats, int, int], None]


def normalize_row(row: Any) -> Optional[Tuple[str, str]]:
    """Return ``(part_num, description)`` or None for a malformed row.

    Accepts 2-sequences and mappings with ``partNum``/``partDescription``
    (the JSON import shape) or ``part_num``/``part_description``.
    """
    if isinstance(row, Mapping):
        part_num = row.get("partNum", row.get("part_num"))
        description = row.get("partDescription", row.get("part_description"))
    elif isinstance(row, (list, tuple)) and len(row) >= 2:
        part_num, description = row[0], row[1]
    else:
        return None
    if isinstance(part_num, bool) or not isinstance(part_num, (str, int)) or not isinstance(description, str):
        return None
    part_num = str(part_num).strip()
    description = description.strip()
    if not part_num or not description:
        return None
    return part_num, description


def chunked(rows: Sequence[Tuple[str, str]], size: int) -> List[Sequence[Tuple[str, str]]]:
    return [rows[i : i + size] for i in range(0, len(rows), size)]


class ProductImporter:
    """Chunked product-master import with per-chunk failure isolation.

    Chunks go to ``sink`` one after another. A chunk whose sink call raises
    is counted as skipped in full and the import moves on; nothing is
    retried. ``inserted + updated + skipped == total`` always holds.
    """

    def __init__(
        self,
        sink: ChunkSink,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_delay_sec: float = 0.0,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.sink = sink
        self.chunk_size = int(chunk_size)
        self.chunk_delay_sec = max(0.0, float(chunk_delay_sec))
        self.progress = progress

    def import_products(self, rows: Sequence[Any]) -> ImportStats:
        stats = ImportStats(total=len(rows))
        valid: List[Tuple[str, str]] = []
        for row in rows:
            normalized = normalize_row(row)
            if normalized is None:
                stats.skipped += 1
            else:
                valid.append(normalized)
        if stats.skipped:
            LOG.info(f"Skipping {stats.skipped} malformed product row(s)")

        chunks = chunked(valid, self.chunk_size)
        LOG.info(f"Importing {len(valid)} product(s) in {len(chunks)} chunk(s) of up to {self.chunk_size}")
        for index, chunk in enumerate(chunks):
            if index and self.chunk_delay_sec:
                time.sleep(self.chunk_delay_sec)
            try:
                inserted, updated = self.sink(chunk)
            except Exception as exc:
                stats.skipped += len(chunk)
                stats.failed_chunks += 1
                LOG.warning(f"Chunk {index + 1}/{len(chunks)} failed ({exc}); skipped {len(chunk)} row(s)")
            else:
                # The sink owns the chunk; anything it neither inserted nor updated is skipped.
                inserted = max(0, int(inserted))
                updated = max(0, int(updated))
                if inserted + updated > len(chunk):
                    LOG.warning(f"Chunk {index + 1} reported more rows than it was sent; clamping")
                    updated = max(0, len(chunk) - inserted)
                    inserted = min(inserted, len(chunk))
                stats.inserted += inserted
                stats.updated += updated
                stats.skipped += len(chunk) - inserted - updated
                LOG.debug(f"Chunk {index + 1}/{len(chunks)}: +{inserted} inserted, {updated} updated")
            if self.progress is not None:
                self.progress(stats, index + 1, len(chunks))

        LOG.info(
            f"Import finished: total={stats.total} inserted={stats.inserted} "
            f"updated={stats.updated} skipped={stats.skipped}"
        )
        return stats
