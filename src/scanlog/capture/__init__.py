"""Camera capture: scoped device access, frame readers and capture sessions."""

from .camera import CameraError, OpenCVCamera, open_camera
from .readers import BarcodeReader, OcrReader
from .session import CaptureEvent, CaptureSession

__all__ = [
    "CameraError",
    "OpenCVCamera",
    "open_camera",
    "BarcodeReader",
    "OcrReader",
    "CaptureEvent",
    "CaptureSession",
]
