"""
Reaction Trees - The engine's description of every visual effect.

A command returns one reaction tree:
- Leaves are effects (create/move/delete orb, create/move proton,
  finish game, sleep)
- Sequence children run strictly one after another
- Parallel children start together; the group ends when all have ended

Reactions are immutable. Each one carries a unique id drawn from the
engine's allocator, so a runner can track completions by id.
"""

from __future__ import annotations
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Iterator

from .ids import IdAllocator
from .state import OrbSnapshot, Position, Side


class ReactionKind(str, Enum):
    """Tag for each reaction variant."""
    CREATE_ORB = "create_orb"
    MOVE_ORB = "move_orb"
    DELETE_ORB = "delete_orb"
    CREATE_PROTON = "create_proton"
    MOVE_PROTON = "move_proton"
    FINISH_GAME = "finish_game"
    SLEEP = "sleep"
    SEQUENCE = "sequence"
    PARALLEL = "parallel"


@dataclass(frozen=True)
class Reaction:
    """Base class for all reactions."""
    reaction_id: int

    kind: ClassVar[ReactionKind]

    @property
    def children(self) -> tuple[Reaction, ...]:
        return ()

    @property
    def is_leaf(self) -> bool:
        return not isinstance(self, (Sequence, Parallel))

    def walk(self) -> Iterator[Reaction]:
        """Pre-order traversal of this tree."""
        stack: list[Reaction] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def leaves(self) -> list[Reaction]:
        return [r for r in self.walk() if r.is_leaf]

    def count_kinds(self) -> Counter:
        """Number of nodes per ReactionKind in this tree."""
        return Counter(r.kind for r in self.walk())

    def find(self, kind: ReactionKind) -> list[Reaction]:
        return [r for r in self.walk() if r.kind == kind]

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation (used by the API and trace output)."""
        data: dict[str, Any] = {"id": self.reaction_id, "kind": self.kind.value}
        data.update(self._payload())
        if not self.is_leaf:
            data["children"] = [child.to_dict() for child in self.children]
        return data

    def _payload(self) -> dict[str, Any]:
        return {}


# =============================================================================
# Leaf reactions
# =============================================================================

@dataclass(frozen=True)
class CreateOrb(Reaction):
    """An orb appears at orb.position with no protons yet."""
    orb: OrbSnapshot

    kind: ClassVar[ReactionKind] = ReactionKind.CREATE_ORB

    def _payload(self) -> dict[str, Any]:
        return {
            "orb_id": self.orb.orb_id,
            "position": list(self.orb.position.as_tuple()),
            "side": self.orb.side.value,
        }


@dataclass(frozen=True)
class MoveOrb(Reaction):
    orb_id: int
    position: Position

    kind: ClassVar[ReactionKind] = ReactionKind.MOVE_ORB

    def _payload(self) -> dict[str, Any]:
        return {"orb_id": self.orb_id, "position": list(self.position.as_tuple())}


@dataclass(frozen=True)
class DeleteOrb(Reaction):
    orb_id: int
    position: Position

    kind: ClassVar[ReactionKind] = ReactionKind.DELETE_ORB

    def _payload(self) -> dict[str, Any]:
        return {"orb_id": self.orb_id, "position": list(self.position.as_tuple())}


@dataclass(frozen=True)
class CreateProton(Reaction):
    orb_id: int
    proton_id: int
    slot: Position

    kind: ClassVar[ReactionKind] = ReactionKind.CREATE_PROTON

    def _payload(self) -> dict[str, Any]:
        return {
            "orb_id": self.orb_id,
            "proton_id": self.proton_id,
            "slot": list(self.slot.as_tuple()),
        }


@dataclass(frozen=True)
class MoveProton(Reaction):
    orb_id: int
    proton_id: int
    slot: Position

    kind: ClassVar[ReactionKind] = ReactionKind.MOVE_PROTON

    def _payload(self) -> dict[str, Any]:
        return {
            "orb_id": self.orb_id,
            "proton_id": self.proton_id,
            "slot": list(self.slot.as_tuple()),
        }


@dataclass(frozen=True)
class FinishGame(Reaction):
    """Only one side is left on the board."""
    winner: Side

    kind: ClassVar[ReactionKind] = ReactionKind.FINISH_GAME

    def _payload(self) -> dict[str, Any]:
        return {"winner": self.winner.value}


@dataclass(frozen=True)
class Sleep(Reaction):
    """Completes once duration_ms has elapsed."""
    duration_ms: int

    kind: ClassVar[ReactionKind] = ReactionKind.SLEEP

    def _payload(self) -> dict[str, Any]:
        return {"duration_ms": self.duration_ms}


# =============================================================================
# Composites
# =============================================================================

@dataclass(frozen=True)
class Sequence(Reaction):
    reactions: tuple[Reaction, ...]

    kind: ClassVar[ReactionKind] = ReactionKind.SEQUENCE

    @property
    def children(self) -> tuple[Reaction, ...]:
        return self.reactions


@dataclass(frozen=True)
class Parallel(Reaction):
    reactions: tuple[Reaction, ...]

    kind: ClassVar[ReactionKind] = ReactionKind.PARALLEL

    @property
    def children(self) -> tuple[Reaction, ...]:
        return self.reactions


class ReactionFactory:
    """
    Builds reactions with ids from the engine's allocator.

    Usage:
        react = ReactionFactory(allocator)
        tree = react.sequence([react.create_orb(orb), react.sleep(300)])
    """

    def __init__(self, allocator: IdAllocator):
        self.allocator = allocator

    def _id(self) -> int:
        return self.allocator.next_id()

    def create_orb(self, orb: OrbSnapshot) -> CreateOrb:
        return CreateOrb(reaction_id=self._id(), orb=orb)

    def move_orb(self, orb_id: int, position: Position) -> MoveOrb:
        return MoveOrb(reaction_id=self._id(), orb_id=orb_id, position=position)

    def delete_orb(self, orb_id: int, position: Position) -> DeleteOrb:
        return DeleteOrb(reaction_id=self._id(), orb_id=orb_id, position=position)

    def create_proton(self, orb_id: int, proton_id: int, slot: Position) -> CreateProton:
        return CreateProton(reaction_id=self._id(), orb_id=orb_id, proton_id=proton_id, slot=slot)

    def move_proton(self, orb_id: int, proton_id: int, slot: Position) -> MoveProton:
        return MoveProton(reaction_id=self._id(), orb_id=orb_id, proton_id=proton_id, slot=slot)

    def finish_game(self, winner: Side) -> FinishGame:
        return FinishGame(reaction_id=self._id(), winner=winner)

    def sleep(self, duration_ms: int) -> Sleep:
        return Sleep(reaction_id=self._id(), duration_ms=duration_ms)

    def sequence(self, reactions: list[Reaction]) -> Sequence:
        return Sequence(reaction_id=self._id(), reactions=tuple(reactions))

    def parallel(self, reactions: list[Reaction]) -> Parallel:
        return Parallel(reaction_id=self._id(), reactions=tuple(reactions))
