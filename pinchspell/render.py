"""
OpenCV presentation layer. Reads game state, never mutates it.
"""
from typing import Optional

import cv2
import numpy as np

from .config import Cfg
from .controller import InteractionController
from .game import GameMode
from .landmarks import draw_landmarks
from .loader import LoadCapabilityState
from .types import FrameSignal, Rect

FONT = cv2.FONT_HERSHEY_SIMPLEX
WHITE = (255, 255, 255)
GREEN = (0, 200, 0)
RED = (0, 0, 255)
YELLOW = (87, 221, 255)
TEAL = (196, 205, 78)
DARK = (40, 40, 40)


def _ascii(text: str) -> str:
    return text if text.isascii() else ""


def _put_centered(canvas: np.ndarray, text: str, y: int, scale: float, color, thickness: int = 2) -> None:
    (w, _), _ = cv2.getTextSize(text, FONT, scale, thickness)
    cv2.putText(canvas, text, ((canvas.shape[1] - w) // 2, y), FONT, scale, color, thickness)


def _draw_box(canvas: np.ndarray, rect: Rect, color, thickness: int = 2) -> None:
    cv2.rectangle(canvas, (int(rect.left), int(rect.top)), (int(rect.right), int(rect.bottom)), color, thickness)


class Renderer:
    """Draws the camera feed and the puzzle on a viewport-sized canvas."""

    def __init__(self, cfg: Cfg):
        self.cfg = cfg
        self.size = (cfg.display.width, cfg.display.height)

    def draw(self, frame: Optional[np.ndarray], controller: InteractionController,
             load_state: LoadCapabilityState, signal: FrameSignal, now: float) -> np.ndarray:
        width, height = self.size
        if frame is None:
            canvas = np.zeros((height, width, 3), dtype=np.uint8)
        else:
            canvas = cv2.flip(cv2.resize(frame, (width, height)), 1)
            canvas = cv2.addWeighted(canvas, 0.6, np.zeros_like(canvas), 0.4, 0)

        if self.cfg.display.show_landmarks:
            for landmarks in signal.landmarks:
                draw_landmarks(canvas, landmarks, mirrored=True)

        mode = controller.machine.mode
        if mode in (GameMode.INIT, GameMode.LOADING):
            self._draw_loading(canvas, mode, load_state)
        elif mode is GameMode.WAITING_FOR_HANDS:
            _put_centered(canvas, "Ready? Raise your hand in front of the camera", height // 2, 1.0, WHITE)
        elif controller.puzzle is not None:
            self._draw_puzzle(canvas, controller, now)

        cv2.putText(canvas, f"Score: {controller.score}", (20, 40), FONT, 1.0, YELLOW, 2)
        for hand in signal.hands:
            cv2.circle(canvas, (int(hand.x), int(hand.y)), 14 if hand.pinching else 20,
                       GREEN if hand.pinching else WHITE, -1 if hand.pinching else 2)
        return canvas

    def _draw_loading(self, canvas: np.ndarray, mode: GameMode, state: LoadCapabilityState) -> None:
        width, height = self.size
        title = "PinchSpell" if mode is GameMode.INIT else "Loading hand tracking..."
        _put_centered(canvas, title, height // 3, 1.5, YELLOW, 3)
        _put_centered(canvas, state.status_message, height // 2, 0.7, TEAL if state.is_ready else WHITE)

        bar = Rect(width * 0.2, height * 0.55, width * 0.8, height * 0.55 + 10)
        _draw_box(canvas, bar, DARK, -1)
        filled = Rect(bar.left, bar.top, bar.left + (bar.right - bar.left) * state.progress / 100, bar.bottom)
        _draw_box(canvas, filled, TEAL, -1)
        _put_centered(canvas, f"{state.progress}%", int(bar.bottom) + 30, 0.6, WHITE, 1)
        if mode is GameMode.INIT:
            _put_centered(canvas, "Press 1 for one hand, 2 for two hands", int(height * 0.75), 0.8, WHITE)

    def _draw_puzzle(self, canvas: np.ndarray, controller: InteractionController, now: float) -> None:
        puzzle = controller.puzzle
        layout = puzzle.layout
        success = controller.machine.mode is GameMode.SUCCESS
        wrong = puzzle.wrong_message_active(now)

        for slot in puzzle.slots:
            rect = layout.slot_rect(slot.index)
            color = GREEN if success or slot.locked else (RED if wrong else WHITE)
            _draw_box(canvas, rect, color, 3)
            if slot.assigned_letter:
                c = layout.slot_center(slot.index)
                cv2.putText(canvas, slot.assigned_letter.upper(), (int(c.x) - 14, int(c.y) + 14), FONT, 1.3, color, 3)

        if success:
            word = puzzle.word
            _put_centered(canvas, word.word.upper(), int(layout.slot_y) + layout.sizes.slot_width + 80, 1.6, YELLOW, 3)
            _put_centered(canvas, _ascii(word.translation), int(layout.slot_y) + layout.sizes.slot_width + 120, 0.9, WHITE)
            _put_centered(canvas, "Pinch or press N for the next word", self.size[1] - 60, 0.8, WHITE)
            return

        status = "Wrong - try again" if wrong else (
            "All filled - pinch to confirm" if puzzle.all_filled()
            else "Pinch to drag letters; pinch a placed letter to take it out")
        _put_centered(canvas, status, 40, 0.8, RED if wrong else WHITE)

        half = layout.sizes.tile_size / 2
        for tile in puzzle.loose_tiles():
            p = tile.position
            rect = Rect(p.x - half, p.y - half, p.x + half, p.y + half)
            flashing = tile.id in puzzle.flashing_tile_ids
            _draw_box(canvas, rect, YELLOW if tile.id in controller.held_tile_ids else DARK, -1)
            _draw_box(canvas, rect, RED if flashing else WHITE, 2)
            cv2.putText(canvas, tile.char.upper(), (int(p.x) - 12, int(p.y) + 12), FONT, 1.1, WHITE, 2)

        _draw_box(canvas, layout.translation_rect(), TEAL, 2)
        _draw_box(canvas, layout.pronunciation_rect(), TEAL, 2)
        t, pr = layout.translation_rect(), layout.pronunciation_rect()
        cv2.putText(canvas, "Hint", (int(t.left) + 10, int(t.bottom) - 15), FONT, 0.7, WHITE, 2)
        cv2.putText(canvas, "Say it", (int(pr.left) + 10, int(pr.bottom) - 15), FONT, 0.7, WHITE, 2)
        if puzzle.show_translation_hint:
            hint = _ascii(puzzle.word.translation) or "(see console)"
            _put_centered(canvas, f"Hint: {hint}", int(layout.slot_y) + layout.sizes.slot_width + 60, 0.8, TEAL)
