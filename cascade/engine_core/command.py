"""
Commands - Inputs accepted by the engine.

Commands represent:
1. Placing a new orb on an empty cell (create)
2. Growing or detonating an existing orb (increment)

All board changes flow through commands.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum

from .state import Position, Side


class CommandType(Enum):
    """Types of commands."""
    CREATE = "create"
    INCREMENT = "increment"


@dataclass(frozen=True)
class Command:
    """
    A command to be applied to the board.

    Different command types use different fields:
    - CREATE: position, side, count
    - INCREMENT: orb_id, side, to

    `to` is the next proton count as observed by the UI. It is kept for
    logging only; the engine decides between growth and detonation from
    its own authoritative count.
    """
    command_type: CommandType
    side: Side | None = None
    position: Position | None = None
    count: int = 1
    orb_id: int | None = None
    to: int | None = None

    @classmethod
    def create(cls, position: Position, side: Side, count: int = 1) -> Command:
        """Factory for create command."""
        return cls(
            command_type=CommandType.CREATE,
            side=side,
            position=position,
            count=count,
        )

    @classmethod
    def increment(cls, orb_id: int, side: Side | None = None, to: int | None = None) -> Command:
        """Factory for increment command."""
        return cls(
            command_type=CommandType.INCREMENT,
            side=side,
            orb_id=orb_id,
            to=to,
        )

    def describe(self) -> str:
        if self.command_type is CommandType.CREATE:
            return f"create {self.position} side={self.side.value if self.side else None} count={self.count}"
        return f"increment orb={self.orb_id} side={self.side.value if self.side else None} to={self.to}"
