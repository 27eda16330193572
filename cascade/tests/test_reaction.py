"""
Tests for reaction trees and id allocation.
"""

import pytest

from ..engine_core import (
    Command,
    IdAllocator,
    OrbEngine,
    OrbSnapshot,
    Position,
    ReactionFactory,
    ReactionKind,
    Side,
)


class TestIdAllocator:

    def test_ids_increase(self):
        allocator = IdAllocator()
        assert allocator.last_id is None
        assert [allocator.next_id() for _ in range(3)] == [0, 1, 2]
        assert allocator.last_id == 2
        assert allocator.peek() == 3
        assert allocator.issued == 3

    def test_custom_start(self):
        allocator = IdAllocator(start=100)
        assert allocator.next_id() == 100

    def test_negative_start(self):
        with pytest.raises(ValueError):
            IdAllocator(start=-1)

    def test_engines_have_independent_id_spaces(self):
        """Two sessions never share a counter."""
        a, b = OrbEngine(), OrbEngine()
        tree_a = a.initialize("▲1|▼1")
        tree_b = b.initialize("▲1|▼1")

        assert [r.reaction_id for r in tree_a.walk()] == [r.reaction_id for r in tree_b.walk()]


class TestReactionTree:

    @pytest.fixture
    def react(self):
        return ReactionFactory(IdAllocator())

    def test_walk_is_preorder(self, react):
        a = react.sleep(10)
        b = react.delete_orb(1, Position(0, 0))
        inner = react.parallel([b])
        tree = react.sequence([a, inner])

        assert [r.reaction_id for r in tree.walk()] == [
            tree.reaction_id, a.reaction_id, inner.reaction_id, b.reaction_id,
        ]
        assert tree.leaves() == [a, b]
        assert not tree.is_leaf and a.is_leaf

    def test_to_dict(self, react):
        orb = OrbSnapshot(orb_id=4, position=Position(1, 2), side=Side.TWO, count=1)
        tree = react.sequence([react.create_orb(orb), react.finish_game(Side.TWO)])

        data = tree.to_dict()

        assert data["kind"] == "sequence"
        assert data["children"][0] == {
            "id": 0, "kind": "create_orb", "orb_id": 4, "position": [1, 2], "side": 2,
        }
        assert data["children"][1]["winner"] == 2
        assert "children" not in data["children"][0]

    def test_count_kinds_and_find(self, react):
        tree = react.parallel([react.sleep(1), react.sleep(2), react.move_orb(1, Position(0, 1))])

        kinds = tree.count_kinds()
        assert kinds[ReactionKind.SLEEP] == 2
        assert kinds[ReactionKind.PARALLEL] == 1
        assert [s.duration_ms for s in tree.find(ReactionKind.SLEEP)] == [1, 2]

    def test_reactions_are_immutable(self, react):
        pause = react.sleep(5)
        with pytest.raises(AttributeError):
            pause.duration_ms = 6


class TestEngineIds:
    """Ids handed out by the engine are unique and increase across commands."""

    def test_tree_ids_unique(self):
        engine = OrbEngine()
        engine.initialize("  |  |  |  |\n  |  |▲3|  |\n  |  |▲3|  |\n  |  |  |  |▼1")
        orb = engine.orb_at(Position(2, 2))

        tree = engine.run_command(Command.increment(orb.orb_id, Side.ONE))

        ids = [r.reaction_id for r in tree.walk()]
        assert len(ids) == len(set(ids))
        assert max(ids) < engine.allocator.peek()

    def test_ids_increase_across_commands(self):
        engine = OrbEngine()
        first = engine.initialize("▲1|  |  |  |▼1")
        second = engine.run_command(Command.create(Position(3, 3), Side.ONE))

        assert min(r.reaction_id for r in second.walk()) > max(r.reaction_id for r in first.walk())
        orb_ids = [o.orb_id for o in engine.orbs]
        assert orb_ids == sorted(orb_ids)

    def test_proton_ids_unique_across_board(self):
        from ..presets import PRESETS

        engine = OrbEngine()
        engine.initialize(PRESETS["heavy"])
        proton_ids = [pid for orb in engine.orbs for pid in orb.proton_ids]

        assert len(proton_ids) == len(set(proton_ids))
