"""
Orb Engine - The single point of board mutation.

All board changes go through initialize() and run_command(). Each call:
- Validates its input against the current board
- Mutates the board synchronously
- Returns a complete reaction tree describing the visual effects

Detonation/cascade algorithm:
1. Remove the detonating orb
2. Spawn a count-1 orb for the acting side in every in-bounds neighbour
3. Loop:
   - exactly one side left on the board -> FinishGame, stop
   - no cell holds two or more orbs -> stop
   - otherwise resolve every colliding cell (merge or detonate the stack),
     preceded by a Sleep so rounds stay visually distinct
"""

from __future__ import annotations
from dataclasses import replace
from typing import Iterable

from ..config import GameConfig
from ..trace import TraceCategory, get_tracer
from .command import Command, CommandType
from .errors import (
    CellOccupied, EngineError, InvalidCommand, InvalidLayout,
    InvariantViolation, OrbNotFound,
)
from .ids import IdAllocator
from .notation import format_board, parse_layout
from .reaction import Reaction, ReactionFactory
from .state import (
    CENTER_SLOT, LayoutEntry, Orb, OrbSnapshot, Position, Proton, Side,
    proton_slots,
)


tracer = get_tracer(__name__)


class OrbEngine:
    """
    Owns the board for one game session.

    Usage:
        engine = OrbEngine(board_size=5)
        tree = engine.initialize(parse_layout(text))
        tree = engine.run_command(Command.create(Position(0, 0), Side.ONE))

    The engine holds its own IdAllocator; two engines never share ids
    unless a caller passes the same allocator to both.
    """

    def __init__(
        self,
        board_size: int | None = None,
        config: GameConfig | None = None,
        allocator: IdAllocator | None = None,
    ):
        config = config or GameConfig()
        if board_size is not None and board_size != config.board_size:
            config = config.with_overrides(board_size=board_size)
        self.config = config
        self.allocator = allocator or IdAllocator()
        self.react = ReactionFactory(self.allocator)
        self._orbs: dict[int, Orb] = {}

    @property
    def board_size(self) -> int:
        return self.config.board_size

    # =========================================================================
    # Read access
    # =========================================================================

    @property
    def orbs(self) -> list[OrbSnapshot]:
        """Snapshots of all live orbs, in board iteration order."""
        return [orb.snapshot() for orb in self._orbs.values()]

    def get_orb(self, orb_id: int) -> OrbSnapshot:
        orb = self._orbs.get(orb_id)
        if orb is None:
            raise OrbNotFound(orb_id, board=self.board_as_string(with_ids=True))
        return orb.snapshot()

    def orb_at(self, position: Position) -> OrbSnapshot | None:
        for orb in self._orbs.values():
            if orb.position == position:
                return orb.snapshot()
        return None

    def sides(self) -> set[Side]:
        return {orb.side for orb in self._orbs.values()}

    def is_game_finished(self) -> bool:
        """True iff exactly one side has orbs on the board."""
        return len(self.sides()) == 1

    def winner(self) -> Side | None:
        sides = self.sides()
        if len(sides) == 1:
            return next(iter(sides))
        return None

    def board_as_string(self, with_ids: bool = False) -> str:
        return format_board(self.orbs, self.board_size, with_ids=with_ids)

    # =========================================================================
    # Commands
    # =========================================================================

    def initialize(self, layout: str | Iterable[LayoutEntry | tuple]) -> Reaction:
        """
        Replace the board with `layout`.

        Accepts board notation text, LayoutEntry objects, or
        (position, count, side) tuples. Returns a Parallel group with one
        creation tree per orb.
        """
        if isinstance(layout, str):
            entries = parse_layout(layout)
        else:
            entries = [self._coerce_entry(entry) for entry in layout]

        seen: set[Position] = set()
        for entry in entries:
            if not entry.position.in_bounds(self.board_size):
                raise InvalidLayout(
                    f"Position {entry.position} is outside a {self.board_size}x{self.board_size} board"
                )
            if entry.position in seen:
                raise InvalidLayout(f"Two orbs at {entry.position}")
            if not 1 <= entry.count <= self.config.capacity:
                raise InvalidLayout(f"Count {entry.count} at {entry.position} is not in [1,{self.config.capacity}]")
            seen.add(entry.position)

        self._orbs = {}
        trees = []
        for entry in entries:
            orb = self._new_orb(entry.position, entry.side, entry.count)
            self._orbs[orb.orb_id] = orb
            trees.append(self._creation_tree(orb))

        tracer.trace(TraceCategory.STATE, "initialized %d orbs", len(entries))
        return self.react.parallel(trees)

    def run_command(self, command: Command, acting_side: Side | None = None) -> Reaction:
        """
        Apply a command and return its reaction tree.

        The acting side is `acting_side` when given, otherwise
        `command.side`. Engine errors abort the command and carry a board
        snapshot.
        """
        side = acting_side if acting_side is not None else command.side
        if side is None:
            raise InvalidCommand(f"No acting side for {command.describe()}")

        if tracer.enabled():
            tracer.trace(TraceCategory.STATE, "before %s\n%s", command.describe(), self.board_as_string(with_ids=True))

        if command.command_type is CommandType.CREATE:
            tree = self._create(command, side)
        elif command.command_type is CommandType.INCREMENT:
            tree = self._increment(command, side)
        else:
            raise InvalidCommand(f"Invalid command: {command.command_type}")

        self.check_invariants()

        if tracer.enabled():
            tracer.trace(TraceCategory.STATE, "after %s\n%s", command.describe(), self.board_as_string(with_ids=True))
        return tree

    def _create(self, command: Command, side: Side) -> Reaction:
        position = command.position
        if position is None or not position.in_bounds(self.board_size):
            raise InvalidCommand(f"Create position {position} is outside the board", board=self.board_as_string())
        if not 1 <= command.count <= self.config.capacity:
            raise InvalidCommand(f"Create count {command.count} is not in [1,{self.config.capacity}]")

        occupant = self.orb_at(position)
        if occupant is not None:
            raise CellOccupied(
                f"Cell {position} already holds orb {occupant.orb_id}",
                board=self.board_as_string(with_ids=True),
            )

        orb = self._new_orb(position, side, command.count)
        self._orbs[orb.orb_id] = orb
        tracer.trace(TraceCategory.ORBS, "created orb %d at %s", orb.orb_id, position)
        return self._creation_tree(orb)

    def _increment(self, command: Command, side: Side) -> Reaction:
        orb = self._orbs.get(command.orb_id)
        if orb is None:
            raise OrbNotFound(command.orb_id, board=self.board_as_string(with_ids=True))

        if orb.count < self.config.pre_detonation_threshold:
            tracer.trace(TraceCategory.ORBS, "grow orb %d: %d -> %d", orb.orb_id, orb.count, orb.count + 1)
            return self.react.parallel(self._relayout(orb, orb.count + 1))

        tracer.trace(TraceCategory.ORBS, "detonate orb %d at %s", orb.orb_id, orb.position)
        return self._detonate(orb, side)

    # =========================================================================
    # Orb construction
    # =========================================================================

    def _new_orb(self, position: Position, side: Side, count: int, movement_seq: int | None = None) -> Orb:
        orb_id = self.allocator.next_id()
        protons = [Proton(self.allocator.next_id(), slot) for slot in proton_slots(count)]
        return Orb(
            orb_id=orb_id,
            position=position,
            side=side,
            count=count,
            protons=protons,
            movement_seq=movement_seq,
        )

    def _creation_tree(self, orb: Orb) -> Reaction:
        return self.react.sequence([
            self.react.create_orb(orb.snapshot()),
            self.react.parallel([
                self.react.create_proton(orb.orb_id, p.proton_id, CENTER_SLOT)
                for p in orb.protons
            ]),
            self.react.parallel([
                self.react.move_proton(orb.orb_id, p.proton_id, p.slot)
                for p in orb.protons
            ]),
        ])

    def _relayout(self, orb: Orb, count: int) -> list[Reaction]:
        """
        Resize `orb` to `count` protons in place.

        Existing protons move to their new slots; extra protons are
        created at the centre and then moved out.
        """
        if count < len(orb.protons):
            raise InvariantViolation(
                f"Orb {orb.orb_id} cannot shrink from {len(orb.protons)} to {count} protons",
                board=self.board_as_string(with_ids=True),
            )

        reactions: list[Reaction] = []
        protons: list[Proton] = []
        for idx, slot in enumerate(proton_slots(count)):
            if idx < len(orb.protons):
                proton = Proton(orb.protons[idx].proton_id, slot)
                reactions.append(self.react.move_proton(orb.orb_id, proton.proton_id, slot))
            else:
                proton = Proton(self.allocator.next_id(), slot)
                reactions.append(self.react.sequence([
                    self.react.create_proton(orb.orb_id, proton.proton_id, CENTER_SLOT),
                    self.react.move_proton(orb.orb_id, proton.proton_id, slot),
                ]))
            protons.append(proton)

        orb.protons = protons
        orb.count = count
        return reactions

    # =========================================================================
    # Detonation and cascade
    # =========================================================================

    def _detonate(self, orb: Orb, side: Side) -> Reaction:
        reactions: list[Reaction] = [self.react.delete_orb(orb.orb_id, orb.position)]
        del self._orbs[orb.orb_id]

        spawned, spawn_tree = self._spawn(orb.position, side)
        for new_orb in spawned:
            self._orbs[new_orb.orb_id] = new_orb
        reactions.append(spawn_tree)

        reactions.extend(self._cascade(side))
        return self.react.sequence(reactions)

    def _spawn(self, origin: Position, side: Side) -> tuple[list[Orb], Reaction]:
        """
        Create count-1 orbs for every neighbour of `origin`.

        The new orbs are returned, not inserted. They appear at the origin
        cell and then travel to their own cells.
        """
        spawned = []
        for target in origin.neighbors(self.board_size):
            orb_id = self.allocator.next_id()
            protons = [Proton(self.allocator.next_id(), slot) for slot in proton_slots(1)]
            spawned.append(Orb(
                orb_id=orb_id,
                position=target,
                side=side,
                count=1,
                protons=protons,
                movement_seq=self.allocator.next_id(),
            ))

        tree = self.react.sequence([
            self.react.parallel([
                self.react.create_orb(replace(orb.snapshot(), position=origin))
                for orb in spawned
            ]),
            self.react.parallel([
                self.react.create_proton(orb.orb_id, p.proton_id, p.slot)
                for orb in spawned
                for p in orb.protons
            ]),
            self.react.parallel([
                self.react.move_orb(orb.orb_id, orb.position)
                for orb in spawned
            ]),
        ])
        return spawned, tree

    def _cascade(self, side: Side) -> list[Reaction]:
        reactions: list[Reaction] = []
        rounds = 0

        while True:
            collisions = self._collisions()

            if self.is_game_finished():
                winner = self.winner()
                tracer.trace(TraceCategory.STATE, "game finished, winner side %d", winner.value)
                if collisions:
                    # the winner's leftover stacks collapse without detonating
                    reactions.append(self.react.sleep(self.config.cascade_delay_ms))
                    reactions.append(self.react.parallel(self._resolve_round(collisions, side, settle=True)))
                reactions.append(self.react.finish_game(winner))
                break

            if not collisions:
                break

            rounds += 1
            if rounds > self.config.max_cascade_rounds:
                raise InvariantViolation(
                    f"Cascade did not settle after {self.config.max_cascade_rounds} rounds",
                    board=self.board_as_string(with_ids=True),
                )

            round_reactions = self._resolve_round(collisions, side)
            reactions.append(self.react.sleep(self.config.cascade_delay_ms))
            reactions.append(self.react.parallel(round_reactions))

        return reactions

    def _collisions(self) -> list[list[Orb]]:
        """Orb stacks of two or more on the same cell, in board order."""
        cells: dict[Position, list[Orb]] = {}
        for orb in self._orbs.values():
            cells.setdefault(orb.position, []).append(orb)
        return [stack for stack in cells.values() if len(stack) >= 2]

    def _resolve_round(self, collisions: list[list[Orb]], side: Side, settle: bool = False) -> list[Reaction]:
        """
        Resolve every colliding cell against the current board.

        With `settle`, stacks never detonate: they merge with the count
        capped at capacity. Used once the game is over.

        The next board is built from the old one: losers filtered out,
        survivors replaced, spawned orbs appended.
        """
        removed: set[int] = set()
        survivors: dict[int, Orb] = {}
        spawned: list[Orb] = []
        reactions: list[Reaction] = []

        for stack in collisions:
            total = sum(orb.count for orb in stack)
            if total >= self.config.capacity and not settle:
                tree, new_orbs = self._detonate_stack(stack, side)
                removed.update(orb.orb_id for orb in stack)
                spawned.extend(new_orbs)
            else:
                tree, survivor = self._merge_stack(stack, min(total, self.config.capacity))
                removed.update(orb.orb_id for orb in stack if orb.orb_id != survivor.orb_id)
                survivors[survivor.orb_id] = survivor
            reactions.append(tree)

        next_orbs = {
            orb_id: survivors.get(orb_id, orb)
            for orb_id, orb in self._orbs.items()
            if orb_id not in removed
        }
        for orb in spawned:
            next_orbs[orb.orb_id] = orb
        self._orbs = next_orbs
        return reactions

    def _detonate_stack(self, stack: list[Orb], side: Side) -> tuple[Reaction, list[Orb]]:
        origin = stack[0].position
        tracer.trace(
            TraceCategory.MERGE,
            "stack at %s (%s) detonates",
            origin, ", ".join(str(orb.orb_id) for orb in stack),
        )
        deletes = [self.react.delete_orb(orb.orb_id, orb.position) for orb in stack]
        spawned, spawn_tree = self._spawn(origin, side)
        return self.react.parallel([*deletes, spawn_tree]), spawned

    def _merge_stack(self, stack: list[Orb], total: int) -> tuple[Reaction, Orb]:
        oldest = self._oldest(stack)
        chosen = self._survivor(stack, oldest)
        losers = [orb for orb in stack if orb is not chosen]

        survivor = Orb(
            orb_id=chosen.orb_id,
            position=chosen.position,
            side=chosen.side,
            count=chosen.count,
            protons=[Proton(p.proton_id, p.slot) for p in chosen.protons],
            movement_seq=self.allocator.next_id(),
        )
        tracer.trace(
            TraceCategory.MERGE,
            "merge at %s: oldest=%d survivor=%d losers=[%s] total=%d",
            survivor.position, oldest.orb_id, survivor.orb_id,
            ", ".join(str(orb.orb_id) for orb in losers), total,
        )

        deletes = [self.react.delete_orb(orb.orb_id, orb.position) for orb in losers]
        relayout = self._relayout(survivor, total)
        return self.react.parallel([*deletes, *relayout]), survivor

    @staticmethod
    def _oldest(stack: list[Orb]) -> Orb:
        """First never-moved orb, else the one with the smallest movement number."""
        for orb in stack:
            if orb.movement_seq is None:
                return orb
        return min(stack, key=lambda orb: orb.movement_seq)

    @staticmethod
    def _survivor(stack: list[Orb], oldest: Orb) -> Orb:
        """Fewest protons among the non-oldest orbs; first one wins ties."""
        others = [orb for orb in stack if orb is not oldest]
        if not others:
            return oldest
        return min(others, key=lambda orb: orb.count)

    # =========================================================================
    # Invariants
    # =========================================================================

    def check_invariants(self) -> None:
        """Raise InvariantViolation unless the board is settled and consistent."""
        occupied: dict[Position, int] = {}
        proton_ids: set[int] = set()

        for orb in self._orbs.values():
            if orb.count != len(orb.protons):
                raise self._violation(f"Orb {orb.orb_id} count {orb.count} != {len(orb.protons)} protons")
            if not 1 <= orb.count <= self.config.capacity:
                raise self._violation(f"Orb {orb.orb_id} count {orb.count} out of range")
            if not orb.position.in_bounds(self.board_size):
                raise self._violation(f"Orb {orb.orb_id} at {orb.position} is off the board")
            if orb.position in occupied:
                raise self._violation(
                    f"Orbs {occupied[orb.position]} and {orb.orb_id} share cell {orb.position}"
                )
            occupied[orb.position] = orb.orb_id
            for proton in orb.protons:
                if proton.proton_id in proton_ids:
                    raise self._violation(f"Proton {proton.proton_id} appears twice")
                proton_ids.add(proton.proton_id)

    def _violation(self, message: str) -> EngineError:
        return InvariantViolation(message, board=self.board_as_string(with_ids=True))

    @staticmethod
    def _coerce_entry(entry: LayoutEntry | tuple) -> LayoutEntry:
        if isinstance(entry, LayoutEntry):
            return entry
        try:
            position, count, side = entry
        except (TypeError, ValueError):
            raise InvalidLayout(f"Layout entry must be (position, count, side), got {entry!r}") from None
        if not isinstance(position, Position):
            position = Position(*position)
        if not isinstance(side, Side):
            try:
                side = Side(side)
            except ValueError:
                raise InvalidLayout(f"Unknown side {side!r}") from None
        try:
            count = int(count)
        except (TypeError, ValueError):
            raise InvalidLayout(f"Count must be an integer, got {count!r}") from None
        return LayoutEntry(position=position, count=count, side=side)
