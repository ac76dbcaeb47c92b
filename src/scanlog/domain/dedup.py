from __future__ import annotations

import time
from typing import Optional, Tuple

DEDUP_WINDOW_SEC = 1.0


class DedupGate:
    """Suppress identical camera reads that arrive within the window.

    One gate belongs to one capture session. Only continuous-capture scans
    are gated and only they update the remembered ``(code, time)`` pair;
    manual entries always pass.
    """

    def __init__(self, window_sec: float = DEDUP_WINDOW_SEC) -> None:
        self.window_sec = float(window_sec)
        self.last: Optional[Tuple[str, float]] = None

    def admit(self, code: str, continuous: bool, now: Optional[float] = None) -> bool:
        if not continuous:
            return True
        ts = time.monotonic() if now is None else float(now)
        if self.last is not None:
            last_code, last_ts = self.last
            if last_code == code and (ts - last_ts) < self.window_sec:
                return False
        self.last = (code, ts)
        return True

    def reset(self) -> None:
        self.last = None
