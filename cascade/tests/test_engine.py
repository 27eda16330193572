"""
Tests for the orb engine.

Tests:
- Layout initialization and validation
- Create and increment commands
- Detonation, cascade rounds and game finish
- Board invariants after every command
"""

import pytest

from ..config import GameConfig
from ..engine_core import (
    CENTER_SLOT,
    CellOccupied,
    Command,
    CommandType,
    CreateOrb,
    CreateProton,
    DeleteOrb,
    FinishGame,
    InvalidCommand,
    InvalidLayout,
    InvariantViolation,
    MoveOrb,
    MoveProton,
    Orb,
    OrbEngine,
    OrbNotFound,
    Parallel,
    Position,
    Proton,
    ReactionKind,
    Sequence,
    Side,
    Sleep,
    proton_slots,
)
from .conftest import board


def increment_at(engine: OrbEngine, row: int, col: int, side: Side = Side.ONE):
    orb = engine.orb_at(Position(row, col))
    assert orb is not None, f"no orb at ({row},{col})"
    return engine.run_command(Command.increment(orb.orb_id, side))


class TestInitialize:
    """Tests for initial layouts."""

    def test_initialize_from_notation(self, engine):
        """Notation text creates one orb per filled cell."""
        tree = engine.initialize(board("""
            ▲3|  |
              |▼1|
        """))

        assert isinstance(tree, Parallel)
        assert len(tree.reactions) == 2
        assert engine.orb_at(Position(0, 0)).count == 3
        assert engine.orb_at(Position(1, 1)).side == Side.TWO

    def test_initialize_from_tuples(self, engine):
        """(position, count, side) tuples are accepted."""
        engine.initialize([((0, 0), 2, 1), (Position(4, 4), 1, Side.TWO)])

        assert engine.orb_at(Position(0, 0)).count == 2
        assert engine.orb_at(Position(0, 0)).side == Side.ONE
        assert engine.orb_at(Position(4, 4)).side == Side.TWO

    def test_creation_tree_shape(self, engine):
        """Each orb: create, protons appear at the centre, then spread out."""
        tree = engine.initialize([((2, 2), 3, Side.ONE)])
        creation = tree.reactions[0]

        assert isinstance(creation, Sequence)
        create_orb, appear, spread = creation.reactions
        assert isinstance(create_orb, CreateOrb)
        assert all(isinstance(r, CreateProton) and r.slot == CENTER_SLOT for r in appear.reactions)
        assert [r.slot for r in spread.reactions] == [Position(0, 0), Position(2, 0), Position(2, 2)]

    def test_empty_layout(self, engine):
        """An empty layout yields an empty parallel group and no winner."""
        tree = engine.initialize("")

        assert tree.reactions == ()
        assert engine.orbs == []
        assert not engine.is_game_finished()

    def test_out_of_bounds_rejected(self):
        """Orbs outside the board are rejected."""
        engine = OrbEngine(board_size=2)
        with pytest.raises(InvalidLayout):
            engine.initialize([((2, 0), 1, Side.ONE)])

    def test_duplicate_cell_rejected(self, engine):
        with pytest.raises(InvalidLayout):
            engine.initialize([((1, 1), 1, Side.ONE), ((1, 1), 2, Side.TWO)])

    def test_count_above_capacity_rejected(self, engine):
        with pytest.raises(InvalidLayout):
            engine.initialize("▲5|  ")

    def test_unknown_side_rejected(self, engine):
        with pytest.raises(InvalidLayout):
            engine.initialize([((0, 0), 1, 3)])

    def test_non_numeric_count_rejected(self, engine):
        with pytest.raises(InvalidLayout):
            engine.initialize([((0, 0), "three", 1)])

    def test_reinitialize_replaces_board(self, engine):
        engine.initialize("▲1|▼1")
        engine.initialize("  |  |▼2")

        assert [orb.position for orb in engine.orbs] == [Position(0, 2)]


class TestCreate:
    """Tests for the create command."""

    def test_create_on_empty_cell(self, engine):
        """A create adds one orb and returns its creation tree."""
        engine.initialize("")
        tree = engine.run_command(Command.create(Position(2, 2), Side.ONE))

        assert isinstance(tree, Sequence)
        assert [r.kind for r in tree.reactions] == [
            ReactionKind.CREATE_ORB, ReactionKind.PARALLEL, ReactionKind.PARALLEL,
        ]
        orb = engine.orb_at(Position(2, 2))
        assert orb.side == Side.ONE
        assert orb.count == 1
        assert len(orb.proton_ids) == 1

    def test_create_with_count(self, engine):
        engine.initialize("")
        engine.run_command(Command.create(Position(0, 4), Side.TWO, count=3))

        orb = engine.orb_at(Position(0, 4))
        assert orb.count == 3
        assert len(orb.proton_ids) == 3

    def test_create_on_occupied_cell(self, engine):
        """Creating on an occupied cell fails and leaves the board unchanged."""
        engine.initialize("▲1|")
        before = engine.board_as_string(with_ids=True)

        with pytest.raises(CellOccupied) as exc_info:
            engine.run_command(Command.create(Position(0, 0), Side.TWO))

        assert exc_info.value.board == before
        assert engine.board_as_string(with_ids=True) == before

    def test_create_off_board(self, engine):
        engine.initialize("")
        with pytest.raises(InvalidCommand):
            engine.run_command(Command.create(Position(5, 0), Side.ONE))

    def test_create_bad_count(self, engine):
        engine.initialize("")
        with pytest.raises(InvalidCommand):
            engine.run_command(Command.create(Position(0, 0), Side.ONE, count=5))

    def test_command_without_side(self, engine):
        """A command needs a side from itself or from the caller."""
        engine.initialize("")
        command = Command(command_type=CommandType.CREATE, position=Position(0, 0))

        with pytest.raises(InvalidCommand):
            engine.run_command(command)

        engine.run_command(command, acting_side=Side.TWO)
        assert engine.orb_at(Position(0, 0)).side == Side.TWO


class TestIncrement:
    """Tests for growth below the detonation threshold."""

    def test_growth_relayouts_protons(self, engine):
        """Existing protons move; the new one appears at the centre and moves out."""
        engine.initialize("▲1|  |  |  |▼1")
        before = engine.orb_at(Position(0, 0))

        tree = increment_at(engine, 0, 0)

        assert isinstance(tree, Parallel)
        moved, added = tree.reactions
        assert isinstance(moved, MoveProton)
        assert moved.proton_id == before.proton_ids[0]
        assert moved.slot == Position(0, 1)
        assert isinstance(added, Sequence)
        appear, spread = added.reactions
        assert isinstance(appear, CreateProton) and appear.slot == CENTER_SLOT
        assert isinstance(spread, MoveProton) and spread.slot == Position(2, 1)

        after = engine.orb_at(Position(0, 0))
        assert after.orb_id == before.orb_id
        assert after.count == 2
        assert after.proton_ids[0] == before.proton_ids[0]

    def test_stale_orb_id(self, engine):
        engine.initialize("▲1|")
        with pytest.raises(OrbNotFound) as exc_info:
            engine.run_command(Command.increment(999, Side.ONE))
        assert "Orb not found: 999" in str(exc_info.value)

    def test_to_hint_is_informational(self, engine):
        """The engine uses its own count, not the UI's `to`."""
        engine.initialize("▲1|  |  |  |▼1")
        orb = engine.orb_at(Position(0, 0))

        engine.run_command(Command.increment(orb.orb_id, Side.ONE, to=4))

        assert engine.get_orb(orb.orb_id).count == 2

    def test_threshold_three_detonates_at_three(self, engine, lone_three):
        engine.initialize(lone_three)
        tree = increment_at(engine, 2, 2)

        assert isinstance(tree.reactions[0], DeleteOrb)
        assert engine.orb_at(Position(2, 2)) is None

    def test_threshold_four_grows_to_four_first(self, lone_three):
        """With threshold 4 an orb fills up before it explodes."""
        engine = OrbEngine(config=GameConfig(pre_detonation_threshold=4))
        engine.initialize(lone_three)

        tree = increment_at(engine, 2, 2)
        assert isinstance(tree, Parallel)
        assert engine.orb_at(Position(2, 2)).count == 4

        tree = increment_at(engine, 2, 2)
        assert isinstance(tree.reactions[0], DeleteOrb)
        assert engine.orb_at(Position(2, 2)) is None


class TestDetonation:
    """Tests for detonation and cascades."""

    def test_single_detonation_without_collision(self, engine, lone_three):
        """Four neighbours receive a count-1 orb; no cascade round runs."""
        engine.initialize(lone_three)
        origin = engine.orb_at(Position(2, 2))

        tree = increment_at(engine, 2, 2)

        delete, spawn = tree.reactions
        assert delete.orb_id == origin.orb_id
        appear, protons, travel = spawn.reactions
        assert all(isinstance(r, CreateOrb) and r.orb.position == Position(2, 2) for r in appear.reactions)
        assert len(protons.reactions) == 4
        assert all(isinstance(r, MoveOrb) for r in travel.reactions)
        assert [r.position for r in travel.reactions] == [
            Position(1, 2), Position(3, 2), Position(2, 1), Position(2, 3),
        ]

        kinds = tree.count_kinds()
        assert kinds[ReactionKind.SLEEP] == 0
        assert kinds[ReactionKind.FINISH_GAME] == 0
        assert len(engine.orbs) == 5
        assert not engine.is_game_finished()

    def test_corner_detonation_spawns_two(self, engine):
        engine.initialize(board("""
            ▲3|  |  |  |
              |  |  |  |
              |  |  |  |
              |  |  |  |
              |  |  |  |▼1
        """))

        tree = increment_at(engine, 0, 0)

        travel = tree.reactions[1].reactions[2]
        assert [r.position for r in travel.reactions] == [Position(1, 0), Position(0, 1)]

    def test_spawned_orbs_have_movement_numbers(self, engine, lone_three):
        engine.initialize(lone_three)
        increment_at(engine, 2, 2)

        spawned = [orb for orb in engine.orbs if orb.side == Side.ONE]
        seqs = [orb.movement_seq for orb in spawned]
        assert None not in seqs
        assert seqs == sorted(seqs)
        assert engine.orb_at(Position(4, 4)).movement_seq is None

    def test_capture_finishes_game(self, engine, capture_layout):
        """Landing on the last opponent orb merges it away and ends the game."""
        engine.initialize(capture_layout)
        victim = engine.orb_at(Position(1, 2))

        tree = increment_at(engine, 2, 2)

        assert [r.kind for r in tree.reactions] == [
            ReactionKind.DELETE_ORB,
            ReactionKind.SEQUENCE,
            ReactionKind.SLEEP,
            ReactionKind.PARALLEL,
            ReactionKind.FINISH_GAME,
        ]
        finish = tree.reactions[-1]
        assert isinstance(finish, FinishGame)
        assert finish.winner == Side.ONE
        assert tree.reactions[2].duration_ms == 300

        captured = engine.orb_at(Position(1, 2))
        assert captured.side == Side.ONE
        assert captured.count == 2
        assert captured.orb_id != victim.orb_id
        with pytest.raises(OrbNotFound):
            engine.get_orb(victim.orb_id)
        assert engine.winner() == Side.ONE

    def test_stack_at_capacity_detonates(self, engine):
        """A spawned orb landing on an own 3 makes a stack of 4 that explodes."""
        engine.initialize(board("""
              |  |  |  |
              |  |▲3|  |
              |  |▲3|  |
              |  |  |  |
              |  |  |  |▼1
        """))

        tree = increment_at(engine, 2, 2)

        kinds = tree.count_kinds()
        assert kinds[ReactionKind.SLEEP] == 1
        assert kinds[ReactionKind.DELETE_ORB] == 3
        assert engine.orb_at(Position(1, 2)) is None
        assert {orb.position for orb in engine.orbs if orb.side == Side.ONE} == {
            Position(3, 2), Position(2, 1), Position(2, 3),
            Position(0, 2), Position(2, 2), Position(1, 1), Position(1, 3),
        }
        assert all(orb.count == 1 for orb in engine.orbs)

    def test_two_round_cascade(self, engine):
        """Each round is preceded by a sleep."""
        engine.initialize(board("""
              |  |▲3|  |
              |  |▲3|  |
              |  |▲3|  |
              |  |  |  |
              |  |  |  |▼1
        """))

        tree = increment_at(engine, 2, 2)

        sleeps = tree.find(ReactionKind.SLEEP)
        assert len(sleeps) == 2
        assert all(isinstance(s, Sleep) for s in sleeps)
        assert engine.orb_at(Position(0, 2)) is None
        assert engine.orb_at(Position(1, 2)).count == 1

    def test_round_limit(self):
        engine = OrbEngine(config=GameConfig(max_cascade_rounds=1))
        engine.initialize(board("""
              |  |▲3|  |
              |  |▲3|  |
              |  |▲3|  |
              |  |  |  |
              |  |  |  |▼1
        """))

        with pytest.raises(InvariantViolation):
            increment_at(engine, 2, 2)

    def test_leftover_stacks_settle_when_game_is_over(self, engine):
        """A one-sided board still resolves its stacks before FinishGame."""
        engine.initialize(board("""
              |  |  |  |
              |  |  |  |
              |  |▲3|  |
              |  |▲3|  |
              |  |  |  |
        """))

        tree = increment_at(engine, 2, 2)

        assert tree.reactions[-1].kind == ReactionKind.FINISH_GAME
        assert tree.reactions[-2].kind == ReactionKind.PARALLEL
        assert tree.reactions[-3].kind == ReactionKind.SLEEP
        assert engine.orb_at(Position(3, 2)).count == 4
        engine.check_invariants()

    def test_acting_side_owns_spawned_orbs(self, engine):
        """Orbs spawned by a side-2 detonation belong to side 2."""
        engine.initialize(board("""
              |  |  |  |
              |  |  |  |
              |  |▼3|  |
              |  |  |  |
            ▲1|  |  |  |
        """))

        increment_at(engine, 2, 2, side=Side.TWO)

        assert {orb.side for orb in engine.orbs if orb.position != Position(4, 0)} == {Side.TWO}


class TestMergeResolution:
    """Which orb is oldest and which survives when a stack merges."""

    CELL = Position(2, 2)

    def stacked(self, engine, count, movement_seq=None):
        protons = [Proton(engine.allocator.next_id(), slot) for slot in proton_slots(count)]
        return Orb(
            orb_id=engine.allocator.next_id(),
            position=self.CELL,
            side=Side.ONE,
            count=count,
            protons=protons,
            movement_seq=movement_seq,
        )

    def test_oldest_is_first_unmoved_orb(self, engine):
        moved = self.stacked(engine, 1, movement_seq=1)
        first = self.stacked(engine, 1)
        second = self.stacked(engine, 1)

        assert OrbEngine._oldest([moved, first, second]) is first

    def test_oldest_has_smallest_movement_number_when_all_moved(self, engine):
        late = self.stacked(engine, 1, movement_seq=9)
        early = self.stacked(engine, 1, movement_seq=4)
        middle = self.stacked(engine, 1, movement_seq=7)

        assert OrbEngine._oldest([late, early, middle]) is early

    def test_survivor_has_fewest_protons_among_the_rest(self, engine):
        """The oldest is excluded even when it is the smallest; ties go to the first."""
        oldest = self.stacked(engine, 1)
        big = self.stacked(engine, 3, movement_seq=10)
        small = self.stacked(engine, 2, movement_seq=11)
        also_small = self.stacked(engine, 2, movement_seq=12)

        stack = [oldest, big, small, also_small]
        assert OrbEngine._survivor(stack, OrbEngine._oldest(stack)) is small

    def test_survivor_falls_back_to_oldest(self, engine):
        lone = self.stacked(engine, 2)
        assert OrbEngine._survivor([lone], lone) is lone

    def test_merge_reuses_survivor_protons(self, engine):
        oldest = self.stacked(engine, 1)
        survivor = self.stacked(engine, 1, movement_seq=20)
        other = self.stacked(engine, 1, movement_seq=21)
        kept_id = survivor.protons[0].proton_id

        tree, merged = engine._merge_stack([oldest, survivor, other], total=3)

        assert merged.orb_id == survivor.orb_id
        assert merged.count == 3
        assert merged.protons[0].proton_id == kept_id
        assert [p.slot for p in merged.protons] == list(proton_slots(3))

        assert isinstance(tree, Parallel)
        deletes = [r.orb_id for r in tree.reactions if isinstance(r, DeleteOrb)]
        assert deletes == [oldest.orb_id, other.orb_id]
        moves = [r for r in tree.reactions if isinstance(r, MoveProton)]
        assert [r.proton_id for r in moves] == [kept_id]
        created = tree.find(ReactionKind.CREATE_PROTON)
        assert len(created) == 2
        assert all(r.slot == CENTER_SLOT and r.orb_id == survivor.orb_id for r in created)
        assert kept_id not in {r.proton_id for r in created}

    def test_moved_orb_merges_again(self, engine):
        """A merged orb is older than the next spawn landing on it, so the spawn survives."""
        engine.initialize(board("""
              |  |  |  |
              |▲3|▼1|▲3|
              |  |  |  |
              |  |  |  |▼1
        """))
        target = engine.orb_at(Position(1, 2))

        increment_at(engine, 1, 1)
        first_merge = engine.orb_at(Position(1, 2))
        with pytest.raises(OrbNotFound):
            engine.get_orb(target.orb_id)
        assert first_merge.side == Side.ONE
        assert first_merge.count == 2

        increment_at(engine, 1, 3)
        second_merge = engine.orb_at(Position(1, 2))
        with pytest.raises(OrbNotFound):
            engine.get_orb(first_merge.orb_id)
        assert second_merge.count == 3
        assert second_merge.movement_seq > first_merge.movement_seq
        engine.check_invariants()


class TestInvariants:
    """Board properties that hold after every command."""

    PRESSES = [(1, 3), (2, 3), (0, 0), (4, 2), (3, 3), (2, 2)]

    def test_invariants_hold_through_a_game(self, engine):
        """Capacity, single occupancy and proton uniqueness after each move."""
        from ..presets import PRESETS

        engine.initialize(PRESETS["thing"])
        side = Side.ONE
        for row, col in self.PRESSES:
            orb = engine.orb_at(Position(row, col))
            if orb is None:
                engine.run_command(Command.create(Position(row, col), side))
            elif orb.side == side:
                engine.run_command(Command.increment(orb.orb_id, side))
            else:
                continue
            cells = [o.position for o in engine.orbs]
            assert len(cells) == len(set(cells))
            assert all(1 <= o.count <= 4 for o in engine.orbs)
            assert all(len(o.proton_ids) == o.count for o in engine.orbs)
            engine.check_invariants()
            side = side.opponent

    def test_finish_detection(self, engine):
        engine.initialize("")
        assert not engine.is_game_finished()
        assert engine.winner() is None

        engine.run_command(Command.create(Position(0, 0), Side.TWO))
        assert engine.is_game_finished()
        assert engine.winner() == Side.TWO

        engine.run_command(Command.create(Position(4, 4), Side.ONE))
        assert not engine.is_game_finished()

    def test_check_invariants_detects_shared_cell(self, engine):
        engine.initialize("▲1|▼1")
        second = engine._orbs[engine.orb_at(Position(0, 1)).orb_id]
        second.position = Position(0, 0)

        with pytest.raises(InvariantViolation):
            engine.check_invariants()
