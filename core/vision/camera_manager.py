"""OpenCV camera frame source for the session loop and enrollment."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional, Protocol

import cv2
import numpy as np


logger = logging.getLogger(__name__)


class CameraError(RuntimeError):
    """Raised when the camera cannot be opened or read."""


class CameraProvider(Protocol):
    def open(self, index: int) -> cv2.VideoCapture:
        ...


class DefaultCameraProvider:
    def open(self, index: int) -> cv2.VideoCapture:
        capture = cv2.VideoCapture(index)
        if not capture or not capture.isOpened():
            raise CameraError(f"Cannot open camera index {index}")
        return capture


@dataclass
class CameraConfig:
    index: int = 0
    width: Optional[int] = None
    height: Optional[int] = None
    warmup_frames: int = 3
    buffer_size: Optional[int] = 2
    low_light_threshold: float = 80.0


def frame_brightness(frame: np.ndarray) -> float:
    """Mean luma in 0..255; BGR frames are converted to grayscale first."""
    if frame.ndim == 3 and frame.shape[2] >= 3:
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    else:
        gray = frame
    return float(np.mean(gray))


class CameraFrameSource:
    """Lazily opened capture device; ``read`` reopens after ``stop``."""

    def __init__(
        self,
        index: int = 0,
        provider: Optional[CameraProvider] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        warmup_frames: int = 3,
        buffer_size: Optional[int] = 2,
        low_light_threshold: float = 80.0,
    ):
        self.config = CameraConfig(
            index=index,
            width=width,
            height=height,
            warmup_frames=warmup_frames,
            buffer_size=buffer_size,
            low_light_threshold=low_light_threshold,
        )
        self.provider = provider or DefaultCameraProvider()
        self._capture: Optional[cv2.VideoCapture] = None
        self._lock = threading.Lock()
        self.brightness: Optional[float] = None

    @property
    def low_light(self) -> Optional[bool]:
        if self.brightness is None:
            return None
        return self.brightness < self.config.low_light_threshold

    def _open(self) -> cv2.VideoCapture:
        capture = self._capture
        if capture is not None and capture.isOpened():
            return capture
        capture = self.provider.open(self.config.index)
        self._configure(capture)
        self._capture = capture
        return capture

    def _configure(self, capture: cv2.VideoCapture) -> None:
        try:
            if self.config.width:
                capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
            if self.config.height:
                capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)
            if self.config.buffer_size is not None and hasattr(cv2, "CAP_PROP_BUFFERSIZE"):
                capture.set(cv2.CAP_PROP_BUFFERSIZE, self.config.buffer_size)
            logger.info(
                "[Camera] Ready: %sx%s @ %.2f fps",
                int(capture.get(cv2.CAP_PROP_FRAME_WIDTH)),
                int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT)),
                capture.get(cv2.CAP_PROP_FPS) or 0,
            )
            for _ in range(max(0, self.config.warmup_frames)):
                capture.read()
                time.sleep(0.05)
        except cv2.error as exc:
            logger.warning("[Camera] Unable to configure camera: %s", exc)

    def read(self) -> np.ndarray:
        with self._lock:
            capture = self._open()
            ok, frame = capture.read()
        if not ok or frame is None:
            raise CameraError("Unable to read frame from camera")
        self.brightness = frame_brightness(frame)
        return frame

    def stop(self) -> None:
        with self._lock:
            capture = self._capture
            self._capture = None
        if capture is not None:
            capture.release()
            logger.info("[Camera] Released camera %s", self.config.index)

    def is_open(self) -> bool:
        capture = self._capture
        return capture is not None and capture.isOpened()
