"""
Engine Core - Deterministic board state and reaction-tree generation.

The engine is the runtime that:
1. Owns the board (orbs and protons)
2. Accepts create/increment commands
3. Resolves detonations and cascades synchronously
4. Returns a reaction tree describing every visual effect
"""

from .ids import IdAllocator
from .state import (
    Side, Position, Proton, Orb, OrbSnapshot, LayoutEntry,
    PROTON_LAYOUT, CENTER_SLOT, proton_slots,
)
from .command import Command, CommandType
from .reaction import (
    Reaction, ReactionKind, ReactionFactory,
    CreateOrb, MoveOrb, DeleteOrb, CreateProton, MoveProton,
    FinishGame, Sleep, Sequence, Parallel,
)
from .errors import (
    EngineError, InvalidLayout, InvalidCommand, CellOccupied,
    OrbNotFound, InvariantViolation, ReplayIntegrityError,
)
from .notation import parse_layout, format_board, layout_size
from .engine import OrbEngine

__all__ = [
    "IdAllocator",
    "Side",
    "Position",
    "Proton",
    "Orb",
    "OrbSnapshot",
    "LayoutEntry",
    "PROTON_LAYOUT",
    "CENTER_SLOT",
    "proton_slots",
    "Command",
    "CommandType",
    "Reaction",
    "ReactionKind",
    "ReactionFactory",
    "CreateOrb",
    "MoveOrb",
    "DeleteOrb",
    "CreateProton",
    "MoveProton",
    "FinishGame",
    "Sleep",
    "Sequence",
    "Parallel",
    "EngineError",
    "InvalidLayout",
    "InvalidCommand",
    "CellOccupied",
    "OrbNotFound",
    "InvariantViolation",
    "ReplayIntegrityError",
    "parse_layout",
    "format_board",
    "layout_size",
    "OrbEngine",
]
