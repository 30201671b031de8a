"""
Puzzle state for one round: target word, letter slots and draggable tiles.
"""
import math
import random
from dataclasses import dataclass, field
from typing import Collection, Dict, List, Optional, Sequence

from .errors import PuzzleInvariantError
from .layout import PuzzleLayout
from .types import Point, Word


@dataclass
class Slot:
    """One character position of the target word."""
    index: int
    assigned_letter: Optional[str] = None
    locked: bool = False
    occupying_tile_id: Optional[str] = None

    @property
    def empty(self) -> bool:
        return self.assigned_letter is None


@dataclass
class Tile:
    """A draggable letter. ``position`` is the tile center in screen pixels."""
    id: str
    char: str
    position: Point
    origin_position: Point
    rotation: float
    origin_rotation: float
    placed_slot_index: Optional[int] = None

    @property
    def placed(self) -> bool:
        return self.placed_slot_index is not None

    def return_to_origin(self) -> None:
        self.position = self.origin_position
        self.rotation = self.origin_rotation


@dataclass
class ConfirmResult:
    """Outcome of checking a fully filled slot row."""
    solved: bool
    locked: List[int] = field(default_factory=list)
    returned_tile_ids: List[str] = field(default_factory=list)


class PuzzleState:
    """
    Round state: the word, its slots, its tiles and transient feedback.

    All mutation goes through the methods below; each keeps the
    tile/slot placement one-to-one and never touches a locked slot.
    """

    def __init__(self, word: Word, chars: Sequence[str], layout: PuzzleLayout,
                 rng: Optional[random.Random] = None, wrong_flash_s: float = 1.2):
        if sorted(chars) != sorted(word.word):
            raise ValueError(f"Tile letters {list(chars)} are not a permutation of {word.word!r}")

        self.word = word
        self.layout = layout
        self.wrong_flash_s = wrong_flash_s
        self.slots: List[Slot] = [Slot(index=i) for i in range(len(word.word))]
        self.tiles: Dict[str, Tile] = {}
        for i, scattered in enumerate(layout.scatter_tiles(chars, rng)):
            tile_id = f"tile-{i}"
            self.tiles[tile_id] = Tile(
                id=tile_id,
                char=scattered.char,
                position=scattered.position,
                origin_position=scattered.position,
                rotation=scattered.rotation,
                origin_rotation=scattered.rotation
            )

        self.show_translation_hint = False
        self.flashing_tile_ids: set = set()
        self._flash_until: Optional[float] = None

    # ------------------------------------------------------------------ queries

    def loose_tiles(self) -> List[Tile]:
        return [t for t in self.tiles.values() if not t.placed]

    def tile_at(self, x: float, y: float, radius: float, exclude: Collection[str] = ()) -> Optional[Tile]:
        """First loose tile, not in ``exclude``, whose center lies strictly within ``radius`` of the point."""
        for tile in self.loose_tiles():
            if tile.id not in exclude and math.hypot(x - tile.position.x, y - tile.position.y) < radius:
                return tile
        return None

    def all_filled(self) -> bool:
        return all(not slot.empty for slot in self.slots)

    def spelled(self) -> str:
        return "".join(slot.assigned_letter or "" for slot in self.slots)

    def wrong_message_active(self, now: float) -> bool:
        return self._flash_until is not None and now < self._flash_until

    # ---------------------------------------------------------------- mutations

    def move_tile(self, tile_id: str, x: float, y: float) -> None:
        tile = self.tiles.get(tile_id)
        if tile is None or tile.placed:
            return
        tile.position = Point(x, y)

    def drop_tile(self, tile_id: str, x: float, y: float, snap_radius: float) -> bool:
        """
        Resolve a released tile.

        The tile snaps into the nearest slot when it is within ``snap_radius``
        of that slot's center and the slot is unlocked and empty. Otherwise it
        goes back to its origin position and rotation.

        Returns:
            True if the tile was placed
        """
        tile = self.tiles.get(tile_id)
        if tile is None or tile.placed:
            return False

        index, dist = self.layout.nearest_slot(x, y)
        if index is not None and dist <= snap_radius:
            slot = self.slots[index]
            if not slot.locked and slot.empty:
                slot.assigned_letter = tile.char
                slot.occupying_tile_id = tile.id
                tile.placed_slot_index = index
                tile.position = self.layout.slot_center(index)
                return True

        tile.return_to_origin()
        return False

    def remove_from_slot(self, index: int) -> bool:
        """Take the tile out of an unlocked, occupied slot and leave it loose at the slot center."""
        if index < 0 or index >= len(self.slots):
            return False
        slot = self.slots[index]
        if slot.locked or slot.occupying_tile_id is None:
            return False

        tile = self.tiles[slot.occupying_tile_id]
        slot.assigned_letter = None
        slot.occupying_tile_id = None
        tile.placed_slot_index = None
        tile.position = self.layout.slot_center(index)
        return True

    def confirm(self, now: float) -> Optional[ConfirmResult]:
        """
        Check the spelled word against the target.

        Does nothing (returns None) unless every slot is filled. On a miss,
        correct slots are locked and every wrong tile is sent back to its
        origin and flashed for ``wrong_flash_s`` seconds.
        """
        if not self.all_filled():
            return None

        target = self.word.word
        if self.spelled() == target:
            return ConfirmResult(solved=True, locked=[s.index for s in self.slots if s.locked])

        result = ConfirmResult(solved=False)
        for slot in self.slots:
            if slot.assigned_letter == target[slot.index]:
                slot.locked = True
                result.locked.append(slot.index)
                continue

            slot.locked = False
            tile = self.tiles[slot.occupying_tile_id]
            slot.assigned_letter = None
            slot.occupying_tile_id = None
            tile.placed_slot_index = None
            tile.return_to_origin()
            result.returned_tile_ids.append(tile.id)

        self.flashing_tile_ids = set(result.returned_tile_ids)
        self._flash_until = now + self.wrong_flash_s
        return result

    def expire_flashes(self, now: float) -> None:
        if self._flash_until is not None and now >= self._flash_until:
            self.flashing_tile_ids = set()
            self._flash_until = None

    def toggle_translation_hint(self) -> bool:
        self.show_translation_hint = not self.show_translation_hint
        return self.show_translation_hint

    def check_invariants(self) -> None:
        """
        Verify slot locking and the one-to-one tile/slot placement.

        Raises:
            PuzzleInvariantError: describing the first inconsistency found
        """
        target = self.word.word
        occupied = {}
        for slot in self.slots:
            if slot.locked and slot.assigned_letter != target[slot.index]:
                raise PuzzleInvariantError(f"slot {slot.index} locked on wrong letter")
            if (slot.assigned_letter is None) != (slot.occupying_tile_id is None):
                raise PuzzleInvariantError(f"slot {slot.index} letter/tile mismatch")
            if slot.occupying_tile_id is not None:
                tile = self.tiles[slot.occupying_tile_id]
                if tile.placed_slot_index != slot.index:
                    raise PuzzleInvariantError(f"tile {tile.id} not linked to slot {slot.index}")
                if tile.char != slot.assigned_letter:
                    raise PuzzleInvariantError(f"slot {slot.index} letter differs from tile")
                occupied[tile.id] = slot.index
        placed = {t.id: t.placed_slot_index for t in self.tiles.values() if t.placed}
        if placed != occupied:
            raise PuzzleInvariantError("placed tiles and occupied slots differ")
