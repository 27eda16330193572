"""
Board Mirror - Headless replay target for reaction trees.

The mirror plays the role of the UI: it starts empty, applies every leaf
reaction in the order the runner delivers them, and keeps screen
coordinates for orbs and protons. After a tree has been replayed the
mirror must describe the same board as the engine.

Integrity failures (unknown orb, duplicate proton, ...) raise
ReplayIntegrityError instead of being skipped.
"""

from __future__ import annotations
from dataclasses import dataclass, field

from ..config import GameConfig
from ..engine_core.errors import ReplayIntegrityError
from ..engine_core.notation import format_board
from ..engine_core.reaction import (
    CreateOrb, CreateProton, DeleteOrb, FinishGame, MoveOrb, MoveProton,
    Reaction, ReactionKind,
)
from ..engine_core.state import OrbSnapshot, Position, Side
from ..presentation import orb_screen_position, proton_screen_position
from ..trace import TraceCategory, get_tracer
from .runner import Completion, ReactionHandler


tracer = get_tracer(__name__)


@dataclass
class MirrorProton:
    proton_id: int
    slot: Position
    screen: tuple[float, float]


@dataclass
class MirrorOrb:
    orb_id: int
    position: Position
    side: Side
    screen: tuple[float, float]
    protons: list[MirrorProton] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.protons)

    def get_proton(self, proton_id: int) -> MirrorProton | None:
        for proton in self.protons:
            if proton.proton_id == proton_id:
                return proton
        return None


class BoardMirror(ReactionHandler):
    """
    Applies leaf reactions to an in-memory board.

    `defer` lists reaction kinds whose completion is left to the caller
    (the way an animated renderer would finish a move only when its
    animation ends).
    """

    def __init__(
        self,
        board_size: int,
        config: GameConfig | None = None,
        defer: set[ReactionKind] | frozenset[ReactionKind] = frozenset(),
    ):
        self.board_size = board_size
        self.config = config or GameConfig(board_size=board_size)
        self.defer = frozenset(defer)
        self.orbs: dict[int, MirrorOrb] = {}
        self.winner: Side | None = None
        self.applied: list[Reaction] = []

    def apply(self, reaction: Reaction) -> Completion:
        if isinstance(reaction, CreateOrb):
            self._create_orb(reaction)
        elif isinstance(reaction, MoveOrb):
            self._move_orb(reaction)
        elif isinstance(reaction, DeleteOrb):
            self._delete_orb(reaction)
        elif isinstance(reaction, CreateProton):
            self._create_proton(reaction)
        elif isinstance(reaction, MoveProton):
            self._move_proton(reaction)
        elif isinstance(reaction, FinishGame):
            self.winner = reaction.winner
        else:
            raise ReplayIntegrityError(
                f"Invalid reaction for the mirror: {reaction.kind.value}",
                reaction_id=reaction.reaction_id,
            )

        self.applied.append(reaction)
        if reaction.kind in self.defer:
            return Completion.DEFERRED
        return Completion.IMMEDIATE

    def reset(self) -> None:
        self.orbs.clear()
        self.winner = None
        self.applied.clear()

    # =========================================================================
    # Leaf handlers
    # =========================================================================

    def _create_orb(self, reaction: CreateOrb) -> None:
        orb = reaction.orb
        if orb.orb_id in self.orbs:
            raise self._integrity(reaction, f"Orb already exists: {orb.orb_id}")
        self.orbs[orb.orb_id] = MirrorOrb(
            orb_id=orb.orb_id,
            position=orb.position,
            side=orb.side,
            screen=orb_screen_position(orb.position, self.board_size, self.config),
        )

    def _move_orb(self, reaction: MoveOrb) -> None:
        orb = self._require_orb(reaction, reaction.orb_id)
        tracer.trace("INFO:ORBS", "move orb %d %s -> %s", orb.orb_id, orb.position, reaction.position)
        orb.position = reaction.position
        orb.screen = orb_screen_position(reaction.position, self.board_size, self.config)

    def _delete_orb(self, reaction: DeleteOrb) -> None:
        self._require_orb(reaction, reaction.orb_id)
        tracer.trace("INFO:ORBS", "delete orb %d at %s", reaction.orb_id, reaction.position)
        del self.orbs[reaction.orb_id]

    def _create_proton(self, reaction: CreateProton) -> None:
        orb = self._require_orb(reaction, reaction.orb_id)
        if orb.get_proton(reaction.proton_id) is not None:
            raise self._integrity(reaction, f"Proton already exists: {reaction.proton_id}")
        orb.protons.append(MirrorProton(
            proton_id=reaction.proton_id,
            slot=reaction.slot,
            screen=proton_screen_position(reaction.slot, self.config),
        ))

    def _move_proton(self, reaction: MoveProton) -> None:
        orb = self._require_orb(reaction, reaction.orb_id)
        proton = orb.get_proton(reaction.proton_id)
        if proton is None:
            raise self._integrity(reaction, f"Proton not found: {reaction.proton_id}")
        proton.slot = reaction.slot
        proton.screen = proton_screen_position(reaction.slot, self.config)

    def _require_orb(self, reaction: Reaction, orb_id: int) -> MirrorOrb:
        orb = self.orbs.get(orb_id)
        if orb is None:
            known = ", ".join(str(i) for i in self.orbs)
            raise self._integrity(reaction, f"Orb not found: {orb_id}, orbs: [{known}]")
        return orb

    def _integrity(self, reaction: Reaction, message: str) -> ReplayIntegrityError:
        tracer.trace(TraceCategory.ERROR, "%s\n%s", message, self.as_string(with_ids=True))
        return ReplayIntegrityError(
            message,
            reaction_id=reaction.reaction_id,
            board=self.as_string(with_ids=True),
        )

    # =========================================================================
    # Views
    # =========================================================================

    def snapshots(self) -> list[OrbSnapshot]:
        return [
            OrbSnapshot(
                orb_id=orb.orb_id,
                position=orb.position,
                side=orb.side,
                count=orb.count,
                proton_ids=tuple(p.proton_id for p in orb.protons),
            )
            for orb in self.orbs.values()
        ]

    def as_string(self, with_ids: bool = False) -> str:
        return format_board(self.snapshots(), self.board_size, with_ids=with_ids)

    def board_view(self) -> dict[Position, tuple[Side, int]]:
        """Cell -> (side, count); comparable with the engine's board."""
        return {orb.position: (orb.side, orb.count) for orb in self.orbs.values()}

    def proton_slots(self, orb_id: int) -> dict[int, Position]:
        orb = self.orbs[orb_id]
        return {p.proton_id: p.slot for p in orb.protons}
