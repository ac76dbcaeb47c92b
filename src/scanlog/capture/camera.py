from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional

from ..logging import get_logger


LOG = get_logger("capture-camera")


class CameraError(RuntimeError):
    pass


class OpenCVCamera:
    """A cv2.VideoCapture device that is only held between open() and release()."""

    def __init__(self, device: int = 0, *, width: Optional[int] = None, height: Optional[int] = None) -> None:
        self.device = device
        self.width = width
        self.height = height
        self._cap: Any = None

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    def open(self) -> "OpenCVCamera":
        import cv2

        cap = cv2.VideoCapture(self.device)
        if not cap.isOpened():
            cap.release()
            raise CameraError(f"Could not open camera {self.device}")
        if self.width:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        if self.height:
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self._cap = cap
        LOG.info(f"Camera {self.device} opened")
        return self

    def read(self) -> Any:
        """Return the next BGR frame, or None when the device yields nothing."""
        if self._cap is None:
            raise CameraError("Camera is not open")
        ok, frame = self._cap.read()
        return frame if ok else None

    def release(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            LOG.info(f"Camera {self.device} released")


@contextmanager
def open_camera(device: int = 0, **kwargs: Any) -> Iterator[OpenCVCamera]:
    camera = OpenCVCamera(device, **kwargs).open()
    try:
        yield camera
    finally:
        camera.release()
