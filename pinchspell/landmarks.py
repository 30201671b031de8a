"""
Hand landmark detection using the MediaPipe Hand Landmarker.
"""
import asyncio
import logging
import time
from pathlib import Path
from typing import List, Optional, Tuple

import cv2
import numpy as np

from .camera import CameraManager
from .config import MediaPipeConfig
from .types import HandLandmarkList

logger = logging.getLogger(__name__)

HAND_CONNECTIONS = [
    (0, 1), (1, 2), (2, 3), (3, 4),  # Thumb
    (0, 5), (5, 6), (6, 7), (7, 8),  # Index
    (0, 9), (9, 10), (10, 11), (11, 12),  # Middle
    (0, 13), (13, 14), (14, 15), (15, 16),  # Ring
    (0, 17), (17, 18), (18, 19), (19, 20),  # Pinky
    (5, 9), (9, 13), (13, 17)  # Palm
]


class HandsTracker:
    """Hand landmark tracker using the MediaPipe Tasks HandLandmarker."""

    def __init__(self, model_path: Path, max_num_hands: int = 2, min_detection_conf: float = 0.5,
                 min_presence_conf: float = 0.5, min_tracking_conf: float = 0.5):
        """
        Initialize the hands tracker.

        Args:
            model_path: Path to a hand_landmarker .task file
            max_num_hands: Maximum number of hands to detect
            min_detection_conf: Minimum confidence for hand detection
            min_presence_conf: Minimum confidence for hand presence
            min_tracking_conf: Minimum confidence for hand tracking
        """
        # mediapipe stays optional at import time; the loader preflight reports it missing
        import mediapipe as mp
        from mediapipe.tasks import python as mp_python
        from mediapipe.tasks.python import vision as mp_vision

        self._mp = mp
        options = mp_vision.HandLandmarkerOptions(
            base_options=mp_python.BaseOptions(model_asset_path=str(model_path)),
            running_mode=mp_vision.RunningMode.VIDEO,
            num_hands=max_num_hands,
            min_hand_detection_confidence=min_detection_conf,
            min_hand_presence_confidence=min_presence_conf,
            min_tracking_confidence=min_tracking_conf
        )
        self._landmarker = mp_vision.HandLandmarker.create_from_options(options)
        self._last_timestamp_ms = 0
        logger.info(f"HandLandmarker created from {model_path} (max {max_num_hands} hands)")

    def process(self, frame_bgr: np.ndarray) -> List[HandLandmarkList]:
        """
        Process a frame and return hand landmarks.

        Args:
            frame_bgr: Input frame in BGR format

        Returns:
            One list of 21 (x, y) coordinates in [0..1] range per detected hand
        """
        if self._landmarker is None:
            raise RuntimeError("HandsTracker is closed")

        frame_rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        mp_image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=np.ascontiguousarray(frame_rgb))

        # VIDEO mode needs strictly increasing timestamps
        timestamp_ms = max(int(time.monotonic() * 1000), self._last_timestamp_ms + 1)
        self._last_timestamp_ms = timestamp_ms
        result = self._landmarker.detect_for_video(mp_image, timestamp_ms)

        return [[(lm.x, lm.y) for lm in hand] for hand in result.hand_landmarks]

    def close(self) -> None:
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None


def create_tracker(model_path: Path, cfg: MediaPipeConfig, hand_mode: str) -> HandsTracker:
    """Build a tracker for the given hand mode ("one" or "two")."""
    return HandsTracker(
        model_path,
        max_num_hands=1 if hand_mode == "one" else 2,
        min_detection_conf=cfg.min_detection_confidence,
        min_presence_conf=cfg.min_presence_confidence,
        min_tracking_conf=cfg.min_tracking_confidence
    )


class CameraHandSource:
    """Live hand pose source: one camera frame plus its detected hands per call."""

    def __init__(self, camera: CameraManager, tracker: HandsTracker):
        self.camera = camera
        self.tracker = tracker

    def _detect_blocking(self) -> Tuple[Optional[np.ndarray], List[HandLandmarkList]]:
        frame = self.camera.read_frame()
        if frame is None:
            return None, []
        return frame, self.tracker.process(frame)

    async def detect(self) -> Tuple[Optional[np.ndarray], List[HandLandmarkList]]:
        return await asyncio.to_thread(self._detect_blocking)

    def close(self) -> None:
        self.tracker.close()
        self.camera.close()


def draw_landmarks(frame: np.ndarray, landmarks: HandLandmarkList, mirrored: bool = True) -> np.ndarray:
    """
    Draw a hand skeleton on the frame.

    Args:
        frame: Frame to draw on (already mirrored when ``mirrored`` is True)
        landmarks: List of (x, y) coordinates in [0..1] range
        mirrored: Flip x so the skeleton matches a mirrored frame

    Returns:
        Frame with landmarks drawn
    """
    height, width = frame.shape[:2]
    points = [(int(((1 - x) if mirrored else x) * width), int(y * height)) for x, y in landmarks]

    for start, end in HAND_CONNECTIONS:
        cv2.line(frame, points[start], points[end], (0, 255, 0), 2)
    for px, py in points:
        cv2.circle(frame, (px, py), 3, (0, 0, 255), -1)

    return frame
