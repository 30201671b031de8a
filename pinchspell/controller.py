"""
Interaction controller: converts per-hand (cursor, pinch) signals into game actions.
"""
import logging
import random
import time
from dataclasses import dataclass, field, fields
from typing import Callable, Dict, Optional, Set, Tuple

from .config import Cfg
from .game import GameEvent, GameMode, GameStateMachine
from .layout import PuzzleLayout
from .puzzle import PuzzleState
from .types import AudioProto, HandSignal, WordSourceProto

logger = logging.getLogger(__name__)


@dataclass
class EdgeFlags:
    """One-shot action flags; each is set at most once per pinch session."""
    confirm: bool = False
    next_word: bool = False
    remove: bool = False
    toggle_hint: bool = False
    play_audio: bool = False

    def reset(self) -> None:
        for f in fields(self):
            setattr(self, f.name, False)


@dataclass
class HandSession:
    """Pinch session of one hand: the tile it holds and its one-shot flags."""
    held_tile_id: Optional[str] = None
    flags: EdgeFlags = field(default_factory=EdgeFlags)


class InteractionController:
    """
    Gesture-to-action state machine.

    Called once per detected hand per frame with that hand's index. While
    pinching, the priority is: drag the held tile, grab a loose tile, take a
    tile out of a slot, confirm a full row, then the hint controls. Releasing
    the pinch drops the tile that hand holds and re-arms its one-shot actions.
    """

    def __init__(self, cfg: Cfg, machine: GameStateMachine, word_source: WordSourceProto,
                 audio: AudioProto, viewport: Tuple[int, int],
                 rng: Optional[random.Random] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.cfg = cfg
        self.machine = machine
        self.word_source = word_source
        self.audio = audio
        self.viewport = viewport
        self.rng = rng or random.Random()
        self.clock = clock

        self.puzzle: Optional[PuzzleState] = None
        self.sessions: Dict[int, HandSession] = {}
        self.score = 0

    @property
    def layout(self) -> Optional[PuzzleLayout]:
        return self.puzzle.layout if self.puzzle else None

    # ------------------------------------------------------------- round flow

    def start_game(self) -> None:
        """Build a fresh round and enter PLAYING."""
        event = GameEvent.HAND_DETECTED if self.machine.mode is GameMode.WAITING_FOR_HANDS else GameEvent.NEXT_WORD
        if not self.machine.can(event):
            logger.debug(f"start_game ignored in mode {self.machine.mode.name}")
            return

        word = self.word_source.get_next_word()
        chars = list(self.word_source.shuffle_string(word.word))
        layout = PuzzleLayout.for_viewport(self.cfg.layout, self.viewport, len(word.word))
        self.puzzle = PuzzleState(word, chars, layout, rng=self.rng, wrong_flash_s=self.cfg.game.wrong_flash_s)
        for session in self.sessions.values():
            session.held_tile_id = None
        self.machine.fire(event)
        logger.info(f"New word: {word.word} ({len(word.word)} letters)")

    def next_word(self) -> None:
        if self.machine.mode is GameMode.SUCCESS:
            self.start_game()

    def on_hand_presence(self, present: bool) -> None:
        if present and self.machine.mode is GameMode.WAITING_FOR_HANDS:
            self.start_game()

    def tick(self, now: Optional[float] = None) -> None:
        """Expire time-limited feedback such as the wrong-answer flash."""
        if self.puzzle is not None:
            self.puzzle.expire_flashes(self.clock() if now is None else now)

    # --------------------------------------------------------- gesture input

    def session(self, hand_index: int = 0) -> HandSession:
        if hand_index not in self.sessions:
            session = HandSession()
            # a hand first seen on the success screen must release before it can move on
            session.flags.next_word = self.machine.mode is GameMode.SUCCESS
            self.sessions[hand_index] = session
        return self.sessions[hand_index]

    @property
    def held_tile_ids(self) -> Set[str]:
        return {s.held_tile_id for s in self.sessions.values() if s.held_tile_id is not None}

    def on_hand_detected(self, signal: HandSignal, hand_index: int = 0) -> None:
        """
        Handle one hand's signal for the current frame.

        Each hand index owns its pinch session, so an open hand never ends
        another hand's drag or re-arms its one-shot actions. In SUCCESS a new
        pinch moves on to the next word; the pinch that solved the word is
        marked as already used so the success screen stays up until it is
        released.
        """
        mode = self.machine.mode
        session = self.session(hand_index)

        if mode is GameMode.SUCCESS:
            if not signal.pinching:
                session.flags.reset()
            elif not session.flags.next_word:
                session.flags.next_word = True
                self.next_word()
            return

        if mode is not GameMode.PLAYING or self.puzzle is None:
            return

        if signal.pinching:
            self._on_pinch(session, signal.x, signal.y)
        else:
            self._on_release(session, signal.x, signal.y)

    def end_absent_hands(self, hand_count: int) -> None:
        """Close the sessions of hands that were not detected this frame; held tiles drop where they are."""
        for index in [i for i in self.sessions if i >= hand_count]:
            session = self.sessions.pop(index)
            if session.held_tile_id is not None and self.puzzle is not None:
                tile = self.puzzle.tiles.get(session.held_tile_id)
                if tile is not None:
                    self._drop(session, tile.position.x, tile.position.y)

    def _on_pinch(self, session: HandSession, x: float, y: float) -> None:
        puzzle = self.puzzle
        layout = puzzle.layout
        flags = session.flags

        if session.held_tile_id is not None:
            puzzle.move_tile(session.held_tile_id, x, y)
            return

        tile = puzzle.tile_at(x, y, layout.sizes.tile_hit_radius, exclude=self.held_tile_ids)
        if tile is not None:
            session.held_tile_id = tile.id
            logger.debug(f"Grabbed {tile.id} '{tile.char}'")
            return

        slot_index = layout.slot_index_at(x, y)
        if slot_index is not None and not flags.remove:
            slot = puzzle.slots[slot_index]
            if slot.occupying_tile_id is not None and not slot.locked:
                flags.remove = True
                puzzle.remove_from_slot(slot_index)
                logger.debug(f"Removed tile from slot {slot_index}")
                return

        if puzzle.all_filled():
            if not flags.confirm:
                flags.confirm = True
                self._confirm_spelling()
            return

        if layout.translation_rect().contains(x, y):
            if not flags.toggle_hint:
                flags.toggle_hint = True
                if puzzle.toggle_translation_hint():
                    logger.info(f"Hint: {puzzle.word.translation} {puzzle.word.phonetic}")
        elif layout.pronunciation_rect().contains(x, y):
            if not flags.play_audio:
                flags.play_audio = True
                self.audio.speak(puzzle.word.word)

    def _on_release(self, session: HandSession, x: float, y: float) -> None:
        if session.held_tile_id is not None:
            self._drop(session, x, y)
        session.flags.reset()

    def _drop(self, session: HandSession, x: float, y: float) -> None:
        placed = self.puzzle.drop_tile(session.held_tile_id, x, y, self.puzzle.layout.sizes.drop_snap_radius)
        logger.debug(f"Dropped {session.held_tile_id} ({'placed' if placed else 'returned'})")
        session.held_tile_id = None

    def _confirm_spelling(self) -> None:
        attempt = self.puzzle.spelled()
        result = self.puzzle.confirm(self.clock())
        if result is None:
            return

        if result.solved:
            self.machine.fire(GameEvent.SOLVED)
            self.score += self.cfg.game.score_per_word
            # pinches still held on the solve frame must not skip the success screen
            for session in self.sessions.values():
                session.flags.next_word = True
            logger.info(f"Solved '{self.puzzle.word.word}' - score {self.score}")
            self.audio.speak(self.puzzle.word.word)
        else:
            logger.info(f"Wrong spelling '{attempt}': locked {result.locked}, "
                        f"returned {len(result.returned_tile_ids)} tiles")
