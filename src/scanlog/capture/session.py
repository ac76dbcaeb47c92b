from __future__ import annotations

import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, ContextManager, List, Optional, Protocol

from ..domain.models import SubmitResult
from ..logging import get_logger
from ..pipeline import ScanPipeline
from ..store.service import utc_now_iso


LOG = get_logger("capture-session")

DEFAULT_QUEUE_SIZE = 32
_DONE = object()


class FrameSource(Protocol):
    def read(self) -> Any:
        ...


FrameReader = Callable[[Any], List[str]]


@dataclass(frozen=True)
class CaptureEvent:
    code: str
    captured_at: float  # clock() reading, used for the dedup window
    timestamp: str  # wall-clock ISO-8601, stored as the client timestamp


class CaptureSession:
    """One camera capture session: a producer thread feeding a single consumer.

    The producer opens the frame source through ``source_factory`` (a context
    manager, so the device is released on stop, on error and on teardown),
    runs ``reader`` on a frame every ``interval_sec`` and queues each decoded
    code. The consumer submits queued codes to the pipeline one at a time as
    continuous-capture scans.

    A frame source returning None ends the session.
    """

    def __init__(
        self,
        source_factory: Callable[[], ContextManager[FrameSource]],
        reader: FrameReader,
        pipeline: ScanPipeline,
        *,
        interval_sec: float = 0.0,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        on_result: Optional[Callable[[SubmitResult], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source_factory = source_factory
        self.reader = reader
        self.pipeline = pipeline
        self.interval_sec = max(0.0, float(interval_sec))
        self.queue_size = queue_size
        self.on_result = on_result
        self.clock = clock
        self.results: List[SubmitResult] = []
        self._stop = threading.Event()
        self._events: "queue.Queue[Any]" = queue.Queue(maxsize=queue_size)
        self._error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    # ---------- producer ----------
    def _put(self, item: Any) -> bool:
        while True:
            try:
                self._events.put(item, timeout=0.1)
                return True
            except queue.Full:
                if self._stop.is_set():
                    return False

    def _produce(self) -> None:
        try:
            with self.source_factory() as source:
                while not self._stop.is_set():
                    frame = source.read()
                    if frame is None:
                        LOG.info("Frame source exhausted; ending capture")
                        break
                    codes = self.reader(frame)
                    if self._stop.is_set():
                        if codes:
                            LOG.debug(f"Discarding {len(codes)} read(s) that finished after stop")
                        break
                    captured_at = self.clock()
                    timestamp = utc_now_iso()
                    for code in codes:
                        if not self._put(CaptureEvent(code, captured_at, timestamp)):
                            break
                    if self.interval_sec and self._stop.wait(self.interval_sec):
                        break
        except Exception as exc:
            LOG.exception("Capture producer failed")
            self._error = exc
        finally:
            self._put(_DONE)

    # ---------- consumer ----------
    def _consume(self, producer: threading.Thread) -> None:
        while True:
            try:
                item = self._events.get(timeout=0.1)
            except queue.Empty:
                if not producer.is_alive():
                    return
                continue
            if item is _DONE:
                return
            if self._stop.is_set():
                continue
            result = self.pipeline.submit(item.code, item.timestamp, continuous=True, now=item.captured_at)
            self.results.append(result)
            if self.on_result is not None:
                self.on_result(result)

    def run(self) -> List[SubmitResult]:
        """Capture until the source ends or stop() is called; returns all submit results."""
        self._stop.clear()
        return self._run()

    def _run(self) -> List[SubmitResult]:
        self._error = None
        self._events = queue.Queue(maxsize=self.queue_size)
        producer = threading.Thread(target=self._produce, name="capture-producer", daemon=True)
        LOG.info("Capture session started")
        producer.start()
        try:
            self._consume(producer)
        finally:
            self._stop.set()
            producer.join(timeout=5.0)
            self.pipeline.end_session()
            LOG.info(f"Capture session ended ({self.pipeline.saved} saved)")
        if self._error is not None:
            raise self._error
        return self.results

    # ---------- background use ----------
    def _run_background(self) -> None:
        try:
            self._run()
        except Exception as exc:
            self._error = exc

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("Capture session already running")
        self._stop.clear()
        self._thread = threading.Thread(target=self._run_background, name="capture-session", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        if self._error is not None:
            error, self._error = self._error, None
            raise error

    def __enter__(self) -> "CaptureSession":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
