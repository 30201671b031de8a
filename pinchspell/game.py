"""
Top-level game mode state machine.
"""
import logging
from enum import Enum, auto
from typing import Callable, Dict, List, Tuple

from .errors import InvalidTransitionError

logger = logging.getLogger(__name__)


class GameMode(Enum):
    """Top-level game mode."""
    INIT = auto()
    LOADING = auto()
    WAITING_FOR_HANDS = auto()
    PLAYING = auto()
    SUCCESS = auto()
    GAME_OVER = auto()  # reserved, nothing transitions here


class GameEvent(Enum):
    """Inputs that move the game between modes."""
    SELECT_MODE = auto()
    CAPABILITY_READY = auto()
    HAND_DETECTED = auto()
    SOLVED = auto()
    NEXT_WORD = auto()


TRANSITIONS: Dict[Tuple[GameMode, GameEvent], GameMode] = {
    (GameMode.INIT, GameEvent.SELECT_MODE): GameMode.LOADING,
    (GameMode.LOADING, GameEvent.SELECT_MODE): GameMode.LOADING,
    (GameMode.LOADING, GameEvent.CAPABILITY_READY): GameMode.WAITING_FOR_HANDS,
    (GameMode.WAITING_FOR_HANDS, GameEvent.HAND_DETECTED): GameMode.PLAYING,
    (GameMode.PLAYING, GameEvent.SOLVED): GameMode.SUCCESS,
    (GameMode.SUCCESS, GameEvent.NEXT_WORD): GameMode.PLAYING,
}

Listener = Callable[[GameMode, GameEvent, GameMode], None]


class GameStateMachine:
    """Table-driven game mode machine. Exactly one mode is active at a time."""

    def __init__(self, initial: GameMode = GameMode.INIT):
        self._mode = initial
        self._listeners: List[Listener] = []

    @property
    def mode(self) -> GameMode:
        return self._mode

    def can(self, event: GameEvent) -> bool:
        return (self._mode, event) in TRANSITIONS

    def fire(self, event: GameEvent) -> GameMode:
        """
        Apply an event.

        Raises:
            InvalidTransitionError: if the current mode has no transition for the event
        """
        key = (self._mode, event)
        if key not in TRANSITIONS:
            raise InvalidTransitionError(f"{event.name} is not valid in mode {self._mode.name}")

        previous = self._mode
        self._mode = TRANSITIONS[key]
        logger.debug(f"Game mode {previous.name} --{event.name}--> {self._mode.name}")
        for listener in list(self._listeners):
            listener(previous, event, self._mode)
        return self._mode

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)
