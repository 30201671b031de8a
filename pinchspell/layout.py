"""
Screen geometry of the puzzle: slot row, tile scatter and hint controls.
"""
import math
import random
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .config import LayoutConfig, LayoutSizes
from .types import Point, Rect

# Scatter ring around the slot row
SCATTER_CENTER_OFFSET_Y = 60
SCATTER_MIN_RADIUS = 180.0
SCATTER_RADIUS_SPREAD = 100.0
SCATTER_ANGLE_JITTER = 1.2  # radians, full width
SCATTER_MAX_ROTATION = 12.0  # degrees either way


@dataclass
class ScatteredTile:
    """Initial placement of one tile."""
    char: str
    position: Point
    rotation: float


class PuzzleLayout:
    """Slot and control geometry for a word of a given length on one viewport."""

    def __init__(self, sizes: LayoutSizes, viewport: Tuple[int, int], word_length: int,
                 hint_size: Tuple[int, int] = (120, 48), hint_margin: int = 20):
        self.sizes = sizes
        self.width, self.height = viewport
        self.word_length = word_length
        self.hint_size = hint_size
        self.hint_margin = hint_margin

    @classmethod
    def for_viewport(cls, cfg: LayoutConfig, viewport: Tuple[int, int], word_length: int) -> "PuzzleLayout":
        """Pick narrow or wide sizes from the viewport width."""
        sizes = cfg.narrow if viewport[0] < cfg.narrow_breakpoint_px else cfg.wide
        return cls(sizes, viewport, word_length,
                   hint_size=(cfg.hint_button_width, cfg.hint_button_height),
                   hint_margin=cfg.hint_margin)

    @property
    def slot_pitch(self) -> float:
        return self.sizes.slot_width + self.sizes.slot_gap

    @property
    def start_x(self) -> float:
        return (self.width - self.word_length * self.slot_pitch) / 2

    @property
    def slot_y(self) -> float:
        return self.height / 2 - self.sizes.slot_offset_y

    def slot_center(self, index: int) -> Point:
        half = self.sizes.slot_width / 2
        return Point(self.start_x + index * self.slot_pitch + half, self.slot_y + half)

    def slot_rect(self, index: int) -> Rect:
        left = self.start_x + index * self.slot_pitch
        return Rect(left, self.slot_y, left + self.sizes.slot_width, self.slot_y + self.sizes.slot_width)

    def slot_index_at(self, x: float, y: float) -> Optional[int]:
        """
        Return the slot column under a point, or None.

        The column is the nearest one horizontally; the row band is widened
        by the hit margin above and below.
        """
        if self.word_length == 0:
            return None
        index = round((x - self.start_x - self.sizes.slot_width / 2) / self.slot_pitch)
        if index < 0 or index >= self.word_length:
            return None
        margin = self.sizes.slot_hit_margin
        if y < self.slot_y - margin or y > self.slot_y + self.sizes.slot_width + margin:
            return None
        return index

    def nearest_slot(self, x: float, y: float) -> Tuple[Optional[int], float]:
        """Return (index, distance) of the slot whose center is closest to the point."""
        best: Optional[int] = None
        best_dist = math.inf
        for i in range(self.word_length):
            c = self.slot_center(i)
            d = math.hypot(x - c.x, y - c.y)
            if d < best_dist:
                best, best_dist = i, d
        return best, best_dist

    def scatter_tiles(self, chars: Sequence[str], rng: Optional[random.Random] = None) -> List[ScatteredTile]:
        """Spread tiles on a jittered ring around the slot row, slightly tilted."""
        rng = rng or random.Random()
        cx = self.width / 2
        cy = self.height / 2 - SCATTER_CENTER_OFFSET_Y
        n = len(chars)
        placed = []
        for i, char in enumerate(chars):
            angle = (2 * math.pi * i) / n + (rng.random() - 0.5) * SCATTER_ANGLE_JITTER
            r = SCATTER_MIN_RADIUS + rng.random() * SCATTER_RADIUS_SPREAD
            rotation = (rng.random() - 0.5) * 2 * SCATTER_MAX_ROTATION
            placed.append(ScatteredTile(
                char=char,
                position=Point(cx + r * math.cos(angle), cy + r * math.sin(angle)),
                rotation=rotation
            ))
        return placed

    def _hint_rect(self, row_from_bottom: int) -> Rect:
        w, h = self.hint_size
        right = self.width - self.hint_margin
        bottom = self.height - self.hint_margin - row_from_bottom * (h + self.hint_margin / 2)
        return Rect(right - w, bottom - h, right, bottom)

    def translation_rect(self) -> Rect:
        """Translation hint button, above the pronunciation button."""
        return self._hint_rect(1)

    def pronunciation_rect(self) -> Rect:
        """Pronunciation button in the bottom-right corner."""
        return self._hint_rect(0)
