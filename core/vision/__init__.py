"""Camera and face-detector adapters for the session loop."""

from .camera_manager import CameraError, CameraFrameSource, frame_brightness
from .oracle import FaceRecognitionOracle, OracleError

__all__ = [
    "CameraError",
    "CameraFrameSource",
    "frame_brightness",
    "FaceRecognitionOracle",
    "OracleError",
]
