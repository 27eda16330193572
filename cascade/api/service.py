"""
API Service - Business logic layer between the HTTP API and the engine.

The service:
1. Translates API requests into session calls
2. Manages sessions
3. Maps engine errors to ErrorResponse objects
4. Formats sessions and reaction trees for clients

This layer is framework-agnostic (can be used with FastAPI, Flask, etc.)
"""

from __future__ import annotations
from dataclasses import dataclass, field

from ..config import GameConfig
from ..engine_core.command import Command
from ..engine_core.errors import EngineError
from ..engine_core.reaction import Reaction
from ..engine_core.state import Position, Side
from ..session import GameSession, ReplayMode, SessionManager
from ..trace import TraceCategory, get_tracer
from .schemas import (
    CommandKind,
    CommandRequest,
    CommandResponse,
    CreateSessionRequest,
    ErrorCode,
    ErrorResponse,
    OrbInfo,
    ReactionNode,
    ReplayCompleteResponse,
    ReplayModeName,
    SessionResponse,
    SessionStatus,
)


tracer = get_tracer(__name__)


@dataclass
class APIService:
    """
    Main API service.

    Usage:
        service = APIService()

        # Create session
        session_response = service.create_session(CreateSessionRequest(layout="duel"))

        # Tap a cell
        result = service.press(session_response.session_id, row=1, col=3)
    """
    config: GameConfig = field(default_factory=GameConfig.from_env)
    session_manager: SessionManager = field(default=None)

    def __post_init__(self):
        if self.session_manager is None:
            self.session_manager = SessionManager(self.config)

    # =========================================================================
    # Sessions
    # =========================================================================

    def create_session(self, request: CreateSessionRequest) -> SessionResponse | ErrorResponse:
        try:
            session = self.session_manager.create_session(
                board_size=request.board_size,
                layout=request.layout,
                replay_mode=ReplayMode(request.replay_mode.value),
            )
        except EngineError as exc:
            return self._engine_error(exc)
        except ValueError as exc:
            return ErrorResponse(error=str(exc), error_code=ErrorCode.VALIDATION_ERROR)
        return self.session_to_response(session)

    def get_session(self, session_id: str) -> SessionResponse | ErrorResponse:
        session = self.session_manager.get_session(session_id)
        if not session:
            return self._not_found(session_id)
        return self.session_to_response(session)

    def end_session(self, session_id: str) -> bool:
        return self.session_manager.end_session(session_id)

    def list_sessions(self) -> list[str]:
        return self.session_manager.list_active_sessions()

    # =========================================================================
    # Commands
    # =========================================================================

    def press(self, session_id: str, row: int, col: int) -> CommandResponse | ErrorResponse:
        session = self.session_manager.get_session(session_id)
        if not session:
            return self._not_found(session_id)

        reason = self._rejection(session)
        try:
            tree = session.press(row, col)
        except EngineError as exc:
            return self._engine_error(exc)
        if tree is None and reason is None:
            reason = "cell is off the board or holds an opponent orb"
        return self._command_response(session, tree, reason)

    def submit_command(self, session_id: str, request: CommandRequest) -> CommandResponse | ErrorResponse:
        session = self.session_manager.get_session(session_id)
        if not session:
            return self._not_found(session_id)

        side = Side(request.side) if request.side is not None else None
        if request.kind is CommandKind.CREATE:
            if request.row is None or request.col is None:
                return ErrorResponse(
                    error="create needs row and col",
                    error_code=ErrorCode.VALIDATION_ERROR,
                )
            command = Command.create(Position(request.row, request.col), side, count=request.count)
        else:
            if request.orb_id is None:
                return ErrorResponse(
                    error="increment needs orb_id",
                    error_code=ErrorCode.VALIDATION_ERROR,
                )
            command = Command.increment(request.orb_id, side, to=request.to)

        reason = self._rejection(session)
        try:
            tree = session.submit(command)
        except EngineError as exc:
            return self._engine_error(exc)
        return self._command_response(session, tree, reason)

    def complete_replay(self, session_id: str, reaction_id: int) -> ReplayCompleteResponse | ErrorResponse:
        session = self.session_manager.get_session(session_id)
        if not session:
            return self._not_found(session_id)
        try:
            acknowledged = session.acknowledge(reaction_id)
        except EngineError as exc:
            return self._engine_error(exc)
        return ReplayCompleteResponse(
            session_id=session_id,
            acknowledged=acknowledged,
            session=self.session_to_response(session),
        )

    def restart(self, session_id: str) -> CommandResponse | ErrorResponse:
        session = self.session_manager.get_session(session_id)
        if not session:
            return self._not_found(session_id)
        try:
            tree = session.restart()
        except EngineError as exc:
            return self._engine_error(exc)
        reason = "replay in progress" if tree is None else None
        return self._command_response(session, tree, reason)

    # =========================================================================
    # Conversion helpers
    # =========================================================================

    def session_to_response(self, session: GameSession) -> SessionResponse:
        return SessionResponse(
            session_id=session.session_id,
            status=SessionStatus(session.state.value),
            board_size=session.board_size,
            generation=session.generation,
            current_side=session.current_side.value,
            winner=session.winner.value if session.winner is not None else None,
            replay_mode=ReplayModeName(session.replay_mode.value),
            pending_tree_id=session.pending_tree_id,
            turns_played=session.turns_played,
            orbs=[
                OrbInfo(
                    orb_id=orb.orb_id,
                    row=orb.position.row,
                    col=orb.position.col,
                    side=orb.side.value,
                    count=orb.count,
                    proton_ids=list(orb.proton_ids),
                )
                for orb in session.orbs()
            ],
            board=session.board_as_string(),
            created_at=session.created_at,
        )

    def _command_response(
        self,
        session: GameSession,
        tree: Reaction | None,
        reason: str | None,
    ) -> CommandResponse:
        return CommandResponse(
            session_id=session.session_id,
            accepted=tree is not None,
            reason=None if tree is not None else reason,
            tree=ReactionNode.model_validate(tree.to_dict()) if tree is not None else None,
            session=self.session_to_response(session),
        )

    @staticmethod
    def _rejection(session: GameSession) -> str | None:
        """Reason a session would ignore a command right now, if any."""
        if session.is_busy():
            return "replay in progress"
        if session.winner is not None:
            return "game is finished"
        if not session.is_active() or session.last_error:
            return f"session is {session.state.value}"
        return None

    @staticmethod
    def _not_found(session_id: str) -> ErrorResponse:
        return ErrorResponse(
            error="Session not found",
            error_code=ErrorCode.SESSION_NOT_FOUND,
            details={"session_id": session_id},
        )

    @staticmethod
    def _engine_error(exc: EngineError) -> ErrorResponse:
        tracer.trace(TraceCategory.ERROR, "%s: %s", exc.error_code, exc.message)
        try:
            code = ErrorCode(exc.error_code)
        except ValueError:
            code = ErrorCode.INTERNAL_ERROR
        details = {"board": exc.board} if exc.board else None
        return ErrorResponse(error=exc.message, error_code=code, details=details)
