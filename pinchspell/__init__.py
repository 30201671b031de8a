"""
PinchSpell - gesture-controlled word spelling game

Reads webcam frames, detects hand landmarks using MediaPipe, and turns
pinch gestures into letter-tile drag, drop and confirm actions.
"""

__version__ = "0.1.0"
__author__ = "PinchSpell Team"

from .types import Word, HandSignal, FrameSignal, CapabilityStatus, Point, Rect
from .config import load_config, Cfg
from .audio_mock import MockAudio
from .gestures import GestureClassifier, cursor_from_landmarks, pinch_distance
from .game import GameMode, GameEvent, GameStateMachine
from .puzzle import PuzzleState, Slot, Tile, ConfirmResult
from .controller import InteractionController, EdgeFlags
from .loader import ResilientCapabilityLoader, LoadCapabilityState, StageResult
from .words import WordBank, shuffle_string

__all__ = [
    "Word",
    "HandSignal",
    "FrameSignal",
    "CapabilityStatus",
    "Point",
    "Rect",
    "load_config",
    "Cfg",
    "MockAudio",
    "GestureClassifier",
    "cursor_from_landmarks",
    "pinch_distance",
    "GameMode",
    "GameEvent",
    "GameStateMachine",
    "PuzzleState",
    "Slot",
    "Tile",
    "ConfirmResult",
    "InteractionController",
    "EdgeFlags",
    "ResilientCapabilityLoader",
    "LoadCapabilityState",
    "StageResult",
    "WordBank",
    "shuffle_string",
]
