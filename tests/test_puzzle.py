"""
Test cases for puzzle layout and round state.
"""
import random
import unittest
from collections import Counter

from pinchspell.config import load_config
from pinchspell.errors import PuzzleInvariantError
from pinchspell.layout import PuzzleLayout
from pinchspell.puzzle import PuzzleState
from pinchspell.types import Point, Word

VIEWPORT = (1280, 720)
CAT = Word("cat", "猫", "/kæt/")


class TestPuzzleLayout(unittest.TestCase):
    """Test slot geometry."""

    def setUp(self):
        self.cfg = load_config()
        self.layout = PuzzleLayout.for_viewport(self.cfg.layout, VIEWPORT, 3)

    def test_slot_row_is_centered(self):
        """Test that the slot row is centered horizontally above the middle."""
        self.assertEqual(self.layout.slot_pitch, 95)
        self.assertAlmostEqual(self.layout.start_x, 497.5)
        self.assertAlmostEqual(self.layout.slot_y, 260)
        self.assertEqual(self.layout.slot_center(0), Point(537.5, 300))
        self.assertEqual(self.layout.slot_center(2), Point(727.5, 300))

    def test_narrow_viewport_uses_small_sizes(self):
        layout = PuzzleLayout.for_viewport(self.cfg.layout, (600, 800), 3)
        self.assertEqual(layout.sizes.tile_size, 48)
        self.assertEqual(layout.sizes.drop_snap_radius, 50)

    def test_slot_index_at(self):
        """Test column rounding and the widened row band."""
        c = self.layout.slot_center(1)
        self.assertEqual(self.layout.slot_index_at(c.x, c.y), 1)
        self.assertEqual(self.layout.slot_index_at(c.x + 40, c.y), 1)
        self.assertEqual(self.layout.slot_index_at(c.x, self.layout.slot_y - 15), 1)
        self.assertIsNone(self.layout.slot_index_at(c.x, self.layout.slot_y - 30))
        self.assertIsNone(self.layout.slot_index_at(100, c.y))

    def test_nearest_slot(self):
        c = self.layout.slot_center(2)
        index, dist = self.layout.nearest_slot(c.x + 3, c.y + 4)
        self.assertEqual(index, 2)
        self.assertAlmostEqual(dist, 5.0)

    def test_scatter_is_a_ring_around_the_row(self):
        """Test that scattered tiles keep their letters and sit on the ring."""
        tiles = self.layout.scatter_tiles(list("planet"), random.Random(5))
        self.assertEqual([t.char for t in tiles], list("planet"))
        for t in tiles:
            dx = t.position.x - 640
            dy = t.position.y - 300
            r = (dx * dx + dy * dy) ** 0.5
            self.assertGreaterEqual(r, 180 - 1e-6)
            self.assertLessEqual(r, 280 + 1e-6)
            self.assertLessEqual(abs(t.rotation), 12)

    def test_hint_buttons_bottom_right(self):
        pron = self.layout.pronunciation_rect()
        trans = self.layout.translation_rect()
        self.assertEqual(pron.right, 1260)
        self.assertEqual(pron.bottom, 700)
        self.assertLess(trans.bottom, pron.top)


class TestPuzzleState(unittest.TestCase):
    """Test tile and slot mutations."""

    def setUp(self):
        self.cfg = load_config()
        self.layout = PuzzleLayout.for_viewport(self.cfg.layout, VIEWPORT, 3)
        self.puzzle = PuzzleState(CAT, ["t", "a", "c"], self.layout, rng=random.Random(1))
        self.snap = self.layout.sizes.drop_snap_radius

    def _tile(self, char):
        return next(t for t in self.puzzle.tiles.values() if t.char == char)

    def _place(self, char, index):
        c = self.layout.slot_center(index)
        self.assertTrue(self.puzzle.drop_tile(self._tile(char).id, c.x, c.y, self.snap))

    def test_round_setup(self):
        """Test that tiles are a permutation of the word and every slot starts empty."""
        self.assertEqual(Counter(t.char for t in self.puzzle.tiles.values()), Counter("cat"))
        self.assertEqual(sorted(self.puzzle.tiles), ["tile-0", "tile-1", "tile-2"])
        self.assertTrue(all(s.empty and not s.locked for s in self.puzzle.slots))
        self.assertEqual(len(self.puzzle.loose_tiles()), 3)

    def test_chars_must_be_permutation(self):
        with self.assertRaises(ValueError):
            PuzzleState(CAT, ["c", "x", "t"], self.layout)

    def test_drop_within_snap_radius(self):
        """Test that a tile dropped near a slot snaps to its center."""
        tile = self._tile("c")
        c = self.layout.slot_center(0)
        self.assertTrue(self.puzzle.drop_tile(tile.id, c.x + 30, c.y + 30, self.snap))
        self.assertEqual(tile.position, c)
        self.assertEqual(self.puzzle.slots[0].assigned_letter, "c")
        self.assertEqual(self.puzzle.slots[0].occupying_tile_id, tile.id)
        self.puzzle.check_invariants()

    def test_drop_outside_snap_radius_returns_to_origin(self):
        tile = self._tile("c")
        self.puzzle.move_tile(tile.id, 100, 100)
        tile.rotation = 0.0
        self.assertFalse(self.puzzle.drop_tile(tile.id, 100, 100, self.snap))
        self.assertEqual(tile.position, tile.origin_position)
        self.assertEqual(tile.rotation, tile.origin_rotation)
        self.assertTrue(all(s.empty for s in self.puzzle.slots))

    def test_drop_on_occupied_slot_returns_to_origin(self):
        self._place("c", 0)
        tile = self._tile("a")
        c = self.layout.slot_center(0)
        self.assertFalse(self.puzzle.drop_tile(tile.id, c.x, c.y, self.snap))
        self.assertEqual(tile.position, tile.origin_position)
        self.assertEqual(self.puzzle.slots[0].assigned_letter, "c")
        self.puzzle.check_invariants()

    def test_remove_from_slot(self):
        """Test that removal leaves the tile loose at the slot center."""
        self._place("t", 1)
        tile = self._tile("t")
        self.assertTrue(self.puzzle.remove_from_slot(1))
        self.assertTrue(self.puzzle.slots[1].empty)
        self.assertFalse(tile.placed)
        self.assertEqual(tile.position, self.layout.slot_center(1))
        self.assertFalse(self.puzzle.remove_from_slot(1))
        self.puzzle.check_invariants()

    def test_tile_at_ignores_placed_tiles(self):
        self._place("c", 0)
        c = self.layout.slot_center(0)
        self.assertIsNone(self.puzzle.tile_at(c.x, c.y, 52))
        loose = self._tile("a")
        self.assertIs(self.puzzle.tile_at(loose.position.x + 10, loose.position.y, 52), loose)

    def test_confirm_requires_full_row(self):
        self._place("c", 0)
        self.assertIsNone(self.puzzle.confirm(now=0.0))

    def test_confirm_correct(self):
        self._place("c", 0)
        self._place("a", 1)
        self._place("t", 2)
        result = self.puzzle.confirm(now=0.0)
        self.assertTrue(result.solved)
        self.assertEqual(self.puzzle.spelled(), "cat")

    def test_partial_confirm_locks_correct_letters(self):
        """Test that a wrong attempt locks matching slots and returns the rest."""
        self._place("c", 0)
        self._place("t", 1)
        self._place("a", 2)
        result = self.puzzle.confirm(now=10.0)

        self.assertFalse(result.solved)
        self.assertEqual(result.locked, [0])
        self.assertTrue(self.puzzle.slots[0].locked)
        self.assertTrue(self.puzzle.slots[1].empty and self.puzzle.slots[2].empty)
        for char in "ta":
            tile = self._tile(char)
            self.assertFalse(tile.placed)
            self.assertEqual(tile.position, tile.origin_position)
        self.assertEqual(self.puzzle.flashing_tile_ids, {self._tile("t").id, self._tile("a").id})
        self.puzzle.check_invariants()

    def test_locked_slots_survive_later_confirms(self):
        """Test that a locked slot stays locked and cannot be changed."""
        self._place("c", 0)
        self._place("t", 1)
        self._place("a", 2)
        self.puzzle.confirm(now=0.0)

        self.assertFalse(self.puzzle.remove_from_slot(0))
        self._place("t", 1)
        self._place("a", 2)
        self.puzzle.confirm(now=5.0)
        self.assertTrue(self.puzzle.slots[0].locked)
        self.assertEqual(self.puzzle.slots[0].assigned_letter, "c")

        self._place("a", 1)
        self._place("t", 2)
        self.assertTrue(self.puzzle.confirm(now=6.0).solved)
        self.puzzle.check_invariants()

    def test_drop_on_locked_slot_returns_to_origin(self):
        self._place("c", 0)
        self._place("t", 1)
        self._place("a", 2)
        self.puzzle.confirm(now=0.0)
        tile = self._tile("a")
        c = self.layout.slot_center(0)
        self.assertFalse(self.puzzle.drop_tile(tile.id, c.x, c.y, self.snap))
        self.assertEqual(tile.position, tile.origin_position)

    def test_wrong_flash_expires(self):
        self._place("c", 0)
        self._place("t", 1)
        self._place("a", 2)
        self.puzzle.confirm(now=10.0)

        self.assertTrue(self.puzzle.wrong_message_active(11.0))
        self.puzzle.expire_flashes(11.0)
        self.assertTrue(self.puzzle.flashing_tile_ids)
        self.puzzle.expire_flashes(11.5)
        self.assertFalse(self.puzzle.flashing_tile_ids)
        self.assertFalse(self.puzzle.wrong_message_active(11.5))

    def test_toggle_translation_hint(self):
        self.assertTrue(self.puzzle.toggle_translation_hint())
        self.assertFalse(self.puzzle.toggle_translation_hint())

    def test_inconsistent_lock_is_reported(self):
        """Test that a slot locked on the wrong letter is rejected."""
        self._place("t", 0)
        self.puzzle.slots[0].locked = True
        with self.assertRaises(PuzzleInvariantError):
            self.puzzle.check_invariants()

    def test_unlinked_tile_is_reported(self):
        self._place("c", 0)
        self._tile("c").placed_slot_index = None
        with self.assertRaises(PuzzleInvariantError):
            self.puzzle.check_invariants()

    def test_random_operations_keep_invariants(self):
        """Test that arbitrary drops, removals and confirms never break placement."""
        rng = random.Random(42)
        puzzle = PuzzleState(Word("planet", "行星", "/ˈplænɪt/"), list("tenalp"),
                             PuzzleLayout.for_viewport(self.cfg.layout, VIEWPORT, 6), rng=rng)
        layout = puzzle.layout
        ids = list(puzzle.tiles)
        for step in range(300):
            op = rng.random()
            if op < 0.6:
                index = rng.randrange(6)
                c = layout.slot_center(index)
                puzzle.drop_tile(rng.choice(ids), c.x + rng.uniform(-60, 60), c.y + rng.uniform(-60, 60),
                                 layout.sizes.drop_snap_radius)
            elif op < 0.85:
                puzzle.remove_from_slot(rng.randrange(6))
            else:
                puzzle.confirm(now=float(step))
            puzzle.check_invariants()


if __name__ == '__main__':
    unittest.main()
