"""
Camera capture with failure classification.

Wraps OpenCV VideoCapture; a failed open is reported as permission denied,
no device or device busy so the user gets an actionable message.
"""
import logging
import os
import sys
import time
from pathlib import Path
from typing import Optional, Union

import cv2
import numpy as np

from .errors import CameraBusyError, CameraError, CameraNotFoundError, CameraPermissionError

logger = logging.getLogger(__name__)

FIRST_FRAME_ATTEMPTS = 5
FIRST_FRAME_RETRY_S = 0.03

PERMISSION_MESSAGE = "Camera permission denied - allow camera access and restart"
NOT_FOUND_MESSAGE = "No camera detected"
BUSY_MESSAGE = "Camera is in use by another application - close it and try again"


def device_node(source: Union[int, str]) -> Optional[Path]:
    """Return the V4L2 device node for a camera index on Linux."""
    if isinstance(source, int) and sys.platform.startswith("linux"):
        return Path(f"/dev/video{source}")
    return None


def classify_open_failure(source: Union[int, str], opened: bool) -> CameraError:
    """
    Work out why a camera could not be used.

    Args:
        source: Camera index or stream URL
        opened: Whether VideoCapture reported the device as opened

    Returns:
        The matching CameraError subclass instance
    """
    node = device_node(source)
    if node is not None:
        if not node.exists():
            return CameraNotFoundError(NOT_FOUND_MESSAGE, f"{node} does not exist")
        if not os.access(node, os.R_OK | os.W_OK):
            return CameraPermissionError(PERMISSION_MESSAGE, f"no read/write access to {node}")
        return CameraBusyError(BUSY_MESSAGE, f"{node} exists but yields no frames")

    if opened:
        return CameraBusyError(BUSY_MESSAGE, f"camera {source!r} opened but yields no frames")
    return CameraNotFoundError(NOT_FOUND_MESSAGE, f"camera {source!r} could not be opened")


class CameraManager:
    """
    Manages webcam capture using OpenCV VideoCapture.

    Attributes:
        source: Camera index or stream URL.
        width: Requested capture width in pixels.
        height: Requested capture height in pixels.
        fps: Requested frames per second.
    """

    def __init__(self, source: Union[int, str] = 0, width: int = 640, height: int = 360, fps: int = 30):
        self.source = source
        self.width = width
        self.height = height
        self.fps = fps

        self._capture: Optional[cv2.VideoCapture] = None
        self._frame_count = 0

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    def open(self) -> None:
        """
        Open the camera and check that it delivers frames.

        Raises:
            CameraError: A subclass describing why the camera is unusable.
        """
        if self._capture is not None:
            logger.warning("Camera already open, closing first")
            self.close()

        logger.info(f"Opening camera {self.source!r} at {self.width}x{self.height}...")
        capture = cv2.VideoCapture(self.source)
        if not capture.isOpened():
            capture.release()
            raise classify_open_failure(self.source, opened=False)

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        capture.set(cv2.CAP_PROP_FPS, self.fps)
        capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)  # Minimize latency

        for _ in range(FIRST_FRAME_ATTEMPTS):
            ok, _ = capture.read()
            if ok:
                break
            time.sleep(FIRST_FRAME_RETRY_S)
        else:
            capture.release()
            raise classify_open_failure(self.source, opened=True)

        self._capture = capture
        self._frame_count = 0
        actual_w = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        actual_h = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        logger.info(f"Camera opened: {actual_w}x{actual_h}")

    def close(self) -> None:
        """Close the camera and release resources."""
        if self._capture is not None:
            logger.info("Closing camera")
            self._capture.release()
            self._capture = None

    def read_frame(self) -> Optional[np.ndarray]:
        """
        Read a single BGR frame.

        Returns:
            The frame, or None if the read failed.

        Raises:
            CameraError: If camera is not open.
        """
        if self._capture is None:
            raise CameraError("Camera is not open")

        ok, frame = self._capture.read()
        if not ok or frame is None:
            logger.warning("Failed to read frame from camera")
            return None

        self._frame_count += 1
        return frame

    def blank_frame(self) -> np.ndarray:
        return np.zeros((self.height, self.width, 3), dtype=np.uint8)

    def __enter__(self) -> "CameraManager":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
