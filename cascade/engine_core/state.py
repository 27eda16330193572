"""
Board State - Positions, sides, orbs and protons.

Design principles:
- Orbs and protons are owned by the engine; nothing else holds references
- Everything handed out of the engine is a frozen snapshot
- The proton layout table is fixed and shared by engine and renderer
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum


class Side(Enum):
    """The two players."""
    ONE = 1
    TWO = 2

    @property
    def opponent(self) -> Side:
        return Side.TWO if self is Side.ONE else Side.ONE

    @property
    def marker(self) -> str:
        """Board notation marker for this side."""
        return SIDE_MARKERS[self]

    @staticmethod
    def from_marker(marker: str) -> Side:
        for side, value in SIDE_MARKERS.items():
            if value == marker:
                return side
        raise ValueError(f"Unknown side marker: {marker!r}")


SIDE_MARKERS = {
    Side.ONE: "▲",
    Side.TWO: "▼",
}


@dataclass(frozen=True, order=True)
class Position:
    """
    A (row, col) pair.

    Used for board cells (bounded by the board size) and for proton
    slots inside an orb's local 3x3 grid.
    """
    row: int
    col: int

    def in_bounds(self, board_size: int) -> bool:
        return 0 <= self.row < board_size and 0 <= self.col < board_size

    def neighbors(self, board_size: int) -> list[Position]:
        """In-bounds orthogonal neighbours: up, down, left, right."""
        candidates = [
            Position(self.row - 1, self.col),
            Position(self.row + 1, self.col),
            Position(self.row, self.col - 1),
            Position(self.row, self.col + 1),
        ]
        return [p for p in candidates if p.in_bounds(board_size)]

    def as_tuple(self) -> tuple[int, int]:
        return (self.row, self.col)

    def __str__(self) -> str:
        return f"({self.row},{self.col})"


CENTER_SLOT = Position(1, 1)

# count -> slot positions within the orb's local 3x3 grid
PROTON_LAYOUT: dict[int, tuple[Position, ...]] = {
    1: (Position(1, 1),),
    2: (Position(0, 1), Position(2, 1)),
    3: (Position(0, 0), Position(2, 0), Position(2, 2)),
    4: (Position(0, 0), Position(0, 2), Position(2, 0), Position(2, 2)),
}


def proton_slots(count: int) -> tuple[Position, ...]:
    """Slot positions for an orb holding `count` protons."""
    try:
        return PROTON_LAYOUT[count]
    except KeyError:
        raise ValueError(f"Invalid proton count: {count}") from None


@dataclass
class Proton:
    """A sub-marker inside an orb."""
    proton_id: int
    slot: Position


@dataclass
class Orb:
    """
    A player-owned marker on one cell.

    `movement_seq` is only set on orbs produced by a detonation or a
    merge. It orders orbs by age when several land on the same cell.
    """
    orb_id: int
    position: Position
    side: Side
    count: int
    protons: list[Proton] = field(default_factory=list)
    movement_seq: int | None = None

    def snapshot(self) -> OrbSnapshot:
        return OrbSnapshot(
            orb_id=self.orb_id,
            position=self.position,
            side=self.side,
            count=self.count,
            proton_ids=tuple(p.proton_id for p in self.protons),
            movement_seq=self.movement_seq,
        )


@dataclass(frozen=True)
class OrbSnapshot:
    """Read-only copy of an orb, safe to hand to reactions and callers."""
    orb_id: int
    position: Position
    side: Side
    count: int
    proton_ids: tuple[int, ...] = ()
    movement_seq: int | None = None


@dataclass(frozen=True)
class LayoutEntry:
    """One orb of an initial board layout."""
    position: Position
    count: int
    side: Side
