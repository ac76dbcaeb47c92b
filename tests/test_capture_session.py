from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

import pytest

from scanlog.capture import CaptureSession, OcrReader
from scanlog.capture import readers as readers_mod
from scanlog.domain import SubmitStatus
from scanlog.pipeline import ScanPipeline


class FakeCamera:
    def __init__(self, frames: Optional[List[Any]] = None, *, endless: Any = None) -> None:
        self.frames = list(frames or [])
        self.endless = endless
        self.opened = False
        self.released = False
        self.reads = 0

    def read(self) -> Any:
        self.reads += 1
        if self.endless is not None:
            return self.endless
        return self.frames.pop(0) if self.frames else None


def factory_for(camera: FakeCamera):
    @contextmanager
    def _open() -> Iterator[FakeCamera]:
        camera.opened = True
        try:
            yield camera
        finally:
            camera.released = True

    return _open


class MemoryBackend:
    def __init__(self) -> None:
        self.saved: List[str] = []

    def record_scan(self, code: str, timestamp: Optional[str] = None) -> Tuple[Dict[str, Any], Optional[str]]:
        self.saved.append(code)
        row = {
            "id": len(self.saved),
            "code": code,
            "client_timestamp": timestamp,
            "description": None,
            "scanned_at": None,
            "created_at": None,
        }
        return row, None


def ticking_clock(*values: float):
    it = iter(values)
    return lambda: next(it)


def frame_as_codes(frame: Any) -> List[str]:
    return [frame] if frame else []


def test_repeat_frames_within_window_are_suppressed() -> None:
    camera = FakeCamera(["A", "A", "", "B"])
    backend = MemoryBackend()
    session = CaptureSession(
        factory_for(camera),
        frame_as_codes,
        ScanPipeline(backend),
        clock=ticking_clock(0.0, 0.2, 0.4, 0.6),
    )

    results = session.run()

    assert [r.status for r in results] == [SubmitStatus.SAVED, SubmitStatus.DUPLICATE, SubmitStatus.SAVED]
    assert backend.saved == ["A", "B"]
    assert camera.opened and camera.released
    assert results[0].record.client_timestamp


def test_repeat_after_window_is_saved_again() -> None:
    backend = MemoryBackend()
    session = CaptureSession(
        factory_for(FakeCamera(["A", "A"])),
        frame_as_codes,
        ScanPipeline(backend),
        clock=ticking_clock(0.0, 1.5),
    )

    session.run()

    assert backend.saved == ["A", "A"]


def test_ocr_frames_go_through_pattern_and_dedup(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(readers_mod, "recognize_text", lambda frame, lang="eng": frame)
    backend = MemoryBackend()
    results = []
    session = CaptureSession(
        factory_for(FakeCamera(["noise only", "lot 12-345 ok", "12-345", "123-4567", "98-765"])),
        OcrReader(),
        ScanPipeline(backend),
        clock=ticking_clock(0.0, 0.1, 0.2, 0.3, 0.4),
        on_result=results.append,
    )

    session.run()

    assert backend.saved == ["12-345", "98-765"]
    assert [r.status for r in results] == [SubmitStatus.SAVED, SubmitStatus.DUPLICATE, SubmitStatus.SAVED]


def test_reader_error_releases_camera_and_propagates() -> None:
    camera = FakeCamera(["A", "boom", "C"])
    backend = MemoryBackend()

    def reader(frame: Any) -> List[str]:
        if frame == "boom":
            raise RuntimeError("decoder crashed")
        return [frame]

    session = CaptureSession(factory_for(camera), reader, ScanPipeline(backend), clock=ticking_clock(0.0, 5.0))

    with pytest.raises(RuntimeError, match="decoder crashed"):
        session.run()

    assert camera.released
    assert backend.saved == ["A"]


def test_dedup_memory_is_dropped_when_session_ends() -> None:
    pipeline = ScanPipeline(MemoryBackend())
    CaptureSession(factory_for(FakeCamera(["A"])), frame_as_codes, pipeline, clock=ticking_clock(0.0)).run()

    assert pipeline.gate.last is None


def test_background_session_stops_and_releases_camera() -> None:
    camera = FakeCamera(endless="A")
    backend = MemoryBackend()
    first_result = threading.Event()
    session = CaptureSession(
        factory_for(camera),
        frame_as_codes,
        ScanPipeline(backend),
        interval_sec=0.01,
        on_result=lambda _r: first_result.set(),
    )

    with session:
        assert first_result.wait(timeout=5.0)

    assert session.stopped
    assert camera.released
    assert backend.saved[0] == "A"
    reads_after_stop = camera.reads
    time.sleep(0.05)
    assert camera.reads == reads_after_stop


def test_read_finishing_after_stop_is_discarded() -> None:
    camera = FakeCamera(endless="A")
    backend = MemoryBackend()
    entered = threading.Event()
    release = threading.Event()

    def slow_reader(frame: Any) -> List[str]:
        entered.set()
        release.wait(timeout=5.0)
        return [frame]

    session = CaptureSession(factory_for(camera), slow_reader, ScanPipeline(backend))
    session.start()
    assert entered.wait(timeout=5.0)
    stopper = threading.Thread(target=session.stop)
    stopper.start()
    # Let stop() set the flag before the in-flight read returns
    while not session.stopped:
        time.sleep(0.001)
    release.set()
    stopper.join(timeout=5.0)

    assert backend.saved == []
    assert camera.released
