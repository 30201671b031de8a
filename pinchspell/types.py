"""
Type definitions for the gesture spelling game.
"""
from dataclasses import dataclass, field
from typing import Any, List, Literal, Optional, Protocol, Sequence, Tuple, runtime_checkable


HandMode = Literal["one", "two"]

# One hand: 21 (x, y) landmark points normalized to [0..1]
HandLandmarkList = List[Tuple[float, float]]


@dataclass(frozen=True)
class Point:
    """A position in screen pixels."""
    x: float
    y: float


@dataclass(frozen=True)
class Rect:
    """Axis-aligned screen rectangle (edges inclusive)."""
    left: float
    top: float
    right: float
    bottom: float

    def contains(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.top <= y <= self.bottom


@dataclass(frozen=True)
class Word:
    """A target word with its hint data."""
    word: str
    translation: str
    phonetic: str


@dataclass
class HandSignal:
    """Cursor position and pinch flag derived from one detected hand."""
    x: float
    y: float
    pinching: bool


@dataclass
class FrameSignal:
    """Everything the classifier derives from one detection frame."""
    hand_presence: bool
    hands: List[HandSignal] = field(default_factory=list)
    landmarks: List[HandLandmarkList] = field(default_factory=list)


@dataclass
class CapabilityStatus:
    """Snapshot of hand tracking availability for the presentation layer."""
    is_camera_active: bool = False
    is_model_loaded: bool = False
    hand_presence: bool = False
    cursor_position: Point = Point(0.0, 0.0)
    is_pinching: bool = False
    status_message: str = ""
    loading_progress: int = 0


@runtime_checkable
class WordSourceProto(Protocol):
    """Supplies puzzle words."""

    def get_next_word(self) -> Word:
        ...

    def shuffle_string(self, word: str) -> Sequence[str]:
        """Return a permutation of the word's characters."""
        ...


@runtime_checkable
class AudioProto(Protocol):
    """Plays word pronunciations."""

    def speak(self, text: str) -> None:
        ...


@runtime_checkable
class HandPoseSourceProto(Protocol):
    """A live per-frame hand detector."""

    async def detect(self) -> Tuple[Optional[Any], List[HandLandmarkList]]:
        """Grab one frame and return it with the detected hands."""
        ...

    def close(self) -> None:
        ...
