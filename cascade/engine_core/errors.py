"""
Engine Errors - Failures raised while computing or replaying reaction trees.

Errors raised inside run_command() abort the command. They carry a text
snapshot of the board so the failure can be diagnosed from the report
alone. None of these are retried anywhere.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for engine failures."""

    error_code = "ENGINE_ERROR"

    def __init__(self, message: str, board: str | None = None):
        self.message = message
        self.board = board
        super().__init__(message)

    def __str__(self) -> str:
        if self.board:
            return f"{self.message}\n{self.board}"
        return self.message


class InvalidLayout(EngineError):
    """Initial layout has colliding, out-of-bounds or malformed entries."""
    error_code = "INVALID_LAYOUT"


class InvalidCommand(EngineError):
    """Command is malformed (bad position, count or missing side)."""
    error_code = "INVALID_COMMAND"


class CellOccupied(EngineError):
    """Create command targets a cell that already holds an orb."""
    error_code = "CELL_OCCUPIED"


class OrbNotFound(EngineError):
    """A stale orb id was referenced."""
    error_code = "ORB_NOT_FOUND"

    def __init__(self, orb_id: int, board: str | None = None):
        self.orb_id = orb_id
        super().__init__(f"Orb not found: {orb_id}", board=board)


class InvariantViolation(EngineError):
    """Internal consistency failure. Indicates a bug, not user error."""
    error_code = "INVARIANT_VIOLATION"


class ReplayIntegrityError(InvariantViolation):
    """A reaction could not be applied during replay (id race, double creation)."""
    error_code = "REPLAY_INTEGRITY"

    def __init__(self, message: str, reaction_id: int | None = None, board: str | None = None):
        self.reaction_id = reaction_id
        super().__init__(message, board=board)
