"""dlib-backed descriptor oracle built on the ``face_recognition`` package."""
from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

import cv2
import numpy as np


logger = logging.getLogger(__name__)

FaceBox = Tuple[int, int, int, int]


class OracleError(RuntimeError):
    """Raised when the face detector cannot process a frame."""


def _box_area(box: FaceBox) -> int:
    top, right, bottom, left = box
    return max(0, bottom - top) * max(0, right - left)


class FaceRecognitionOracle:
    """Turns one BGR frame into a 128-d descriptor of its largest face.

    ``face_recognition`` is imported on first use so the HTTP layer and the
    tests can run without dlib installed.
    """

    def __init__(self, model: str = "hog", num_jitters: int = 1, upsample: int = 1):
        self.model = model
        self.num_jitters = max(1, int(num_jitters))
        self.upsample = max(0, int(upsample))
        self._backend: Any = None

    def _library(self) -> Any:
        if self._backend is None:
            try:
                import face_recognition
            except ImportError as exc:
                raise OracleError(
                    "face_recognition is not installed; install the 'oracle' extra"
                ) from exc

            self._backend = face_recognition
            logger.info("[Oracle] face_recognition loaded (model=%s)", self.model)
        return self._backend

    def detect(self, frame: Optional[np.ndarray]) -> Optional[np.ndarray]:
        """Return the descriptor of the largest face, or None when no face is found."""
        if frame is None or not isinstance(frame, np.ndarray) or frame.size == 0:
            return None
        library = self._library()
        try:
            rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            boxes = library.face_locations(
                rgb, number_of_times_to_upsample=self.upsample, model=self.model
            )
            if not boxes:
                return None
            largest = max(boxes, key=_box_area)
            encodings = library.face_encodings(
                rgb, known_face_locations=[largest], num_jitters=self.num_jitters
            )
        except (cv2.error, RuntimeError, ValueError, TypeError) as exc:
            raise OracleError(f"Face detection failed: {exc}") from exc
        if not encodings:
            return None
        return np.asarray(encodings[0], dtype=np.float64)
