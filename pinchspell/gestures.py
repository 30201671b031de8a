"""
Gesture classification: turns hand landmarks into a cursor and a pinch flag.
"""
import math
from typing import List, Optional, Sequence, Tuple

from .types import FrameSignal, HandLandmarkList, HandSignal

# MediaPipe hand landmark indices
THUMB_TIP = 4
INDEX_TIP = 8
NUM_LANDMARKS = 21

DEFAULT_PINCH_THRESHOLD = 0.05


def cursor_from_landmarks(landmarks: HandLandmarkList, viewport: Tuple[int, int]) -> Tuple[float, float]:
    """
    Map the index fingertip to screen pixels.

    The horizontal axis is mirrored so the cursor follows a selfie-view feed.

    Args:
        landmarks: 21 normalized (x, y) points
        viewport: (width, height) in pixels

    Returns:
        (x, y) cursor position in pixels
    """
    width, height = viewport
    tip_x, tip_y = landmarks[INDEX_TIP]
    return ((1.0 - tip_x) * width, tip_y * height)


def pinch_distance(landmarks: HandLandmarkList) -> float:
    """Euclidean distance between index tip and thumb tip in normalized space."""
    ix, iy = landmarks[INDEX_TIP]
    tx, ty = landmarks[THUMB_TIP]
    return math.hypot(ix - tx, iy - ty)


class GestureClassifier:
    """
    Derives one (cursor, pinch) signal per detected hand.

    Each hand is classified independently; the classifier holds no state
    between frames and knows nothing about the puzzle.
    """

    def __init__(self, pinch_threshold: float = DEFAULT_PINCH_THRESHOLD):
        self.pinch_threshold = pinch_threshold

    def classify_hand(self, landmarks: HandLandmarkList, viewport: Tuple[int, int]) -> Optional[HandSignal]:
        if len(landmarks) < NUM_LANDMARKS:
            return None
        x, y = cursor_from_landmarks(landmarks, viewport)
        return HandSignal(x=x, y=y, pinching=pinch_distance(landmarks) < self.pinch_threshold)

    def classify(self, hands: Sequence[HandLandmarkList], viewport: Tuple[int, int]) -> FrameSignal:
        """
        Classify every hand of one detection frame.

        Args:
            hands: Landmark sets as returned by the detector (may be empty)
            viewport: (width, height) in pixels

        Returns:
            FrameSignal; hand_presence is False and hands is empty when nothing was detected
        """
        signals: List[HandSignal] = []
        kept: List[HandLandmarkList] = []
        for landmarks in hands:
            signal = self.classify_hand(landmarks, viewport)
            if signal is None:
                continue
            signals.append(signal)
            kept.append(list(landmarks))

        return FrameSignal(hand_presence=bool(signals), hands=signals, landmarks=kept)
