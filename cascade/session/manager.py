"""
Session Manager - Creates and manages game sessions.

LIFECYCLE:
1. Create session -> engine from the session cache, initial layout replayed
2. During game:
   - A player presses a cell (or a raw command arrives)
   - The engine computes the reaction tree
   - The tree is replayed; no other command is accepted until it finishes
3. Game ends when one side owns every orb (FinishGame)
4. Restart -> new generation, fresh engine and id space, same layout
5. End session -> removed from memory

Sessions are in-memory only. Nothing is persisted.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
import time
import uuid

from ..config import GameConfig
from ..engine_core.command import Command
from ..engine_core.engine import OrbEngine
from ..engine_core.errors import EngineError, InvariantViolation, ReplayIntegrityError
from ..engine_core.reaction import FinishGame, Reaction
from ..engine_core.state import OrbSnapshot, Position, Side
from ..presets import resolve_layout
from ..replay import BoardMirror, ReactionRunner
from ..trace import TraceCategory, get_tracer
from .cache import SessionCache


tracer = get_tracer(__name__)


class SessionState(Enum):
    """State of a game session."""
    CREATED = "created"  # Engine ready, initial layout not replayed yet
    READY = "ready"  # Waiting for the next command
    REPLAYING = "replaying"  # A reaction tree is still being played back
    FINISHED = "finished"  # One side owns the board
    FAILED = "failed"  # Engine or replay error; only restart is possible
    ENDED = "ended"  # Session closed


class ReplayMode(Enum):
    """Who finishes the replay of a tree."""
    IMMEDIATE = "immediate"  # Server-side mirror plays it to the end at once
    CLIENT = "client"  # Client animates it and acknowledges completion


@dataclass
class GameSession:
    """
    One play-through of a game.

    Contains:
    - The engine for the current generation (from the session cache)
    - A board mirror and runner that replay every tree
    - Turn tracking (whose side acts next)
    - The gate: at most one tree in flight
    """
    session_id: str
    config: GameConfig
    layout: str
    replay_mode: ReplayMode = ReplayMode.IMMEDIATE
    created_at: float = field(default_factory=time.time)

    state: SessionState = SessionState.CREATED
    generation: int = 0
    current_side: Side = Side.ONE
    winner: Side | None = None
    pending_tree_id: int | None = None
    last_error: str | None = None
    turns_played: int = 0

    cache: SessionCache = field(default=None)
    engine: OrbEngine = field(default=None)
    mirror: BoardMirror = field(default=None)
    runner: ReactionRunner = field(default=None)

    def __post_init__(self):
        if self.cache is None:
            self.cache = SessionCache(self.config)
        self.engine = self.cache.get_or_create(self.board_size, self.generation)
        self.mirror = BoardMirror(self.board_size, self.config)
        self.runner = ReactionRunner(self.mirror)

    @property
    def board_size(self) -> int:
        return self.config.board_size

    def is_busy(self) -> bool:
        """True while a reaction tree has not finished replaying."""
        return self.pending_tree_id is not None

    def is_active(self) -> bool:
        return self.state in {
            SessionState.CREATED,
            SessionState.READY,
            SessionState.REPLAYING,
            SessionState.FINISHED,
            SessionState.FAILED,
        }

    def orbs(self) -> list[OrbSnapshot]:
        return self.engine.orbs

    def board_as_string(self, with_ids: bool = False) -> str:
        return self.engine.board_as_string(with_ids=with_ids)

    # =========================================================================
    # Commands
    # =========================================================================

    def start(self) -> Reaction:
        """Initialize the engine from the session layout and replay it."""
        layout = resolve_layout(self.layout)
        tree = self.engine.initialize(layout)
        self._begin_replay(tree)
        return tree

    def press(self, row: int, col: int) -> Reaction | None:
        """
        Handle a tap on a board cell for the side whose turn it is.

        Empty cell -> create a count-1 orb. Own orb -> increment it.
        Opponent orb, off-board cell, busy session or finished game ->
        ignored (None).
        The turn passes to the other side only when a command ran.
        """
        if not self._accepting("press"):
            return None

        tracer.trace(TraceCategory.INTERACTION, "press (%d,%d) side %d", row, col, self.current_side.value)
        position = Position(row, col)
        if not position.in_bounds(self.board_size):
            tracer.trace(TraceCategory.INTERACTION, "ignored: %s is off the board", position)
            return None
        orb = self.engine.orb_at(position)

        if orb is None:
            command = Command.create(position, self.current_side, count=1)
        elif orb.side != self.current_side:
            tracer.trace(TraceCategory.INTERACTION, "ignored: orb %d belongs to side %d", orb.orb_id, orb.side.value)
            return None
        else:
            command = Command.increment(orb.orb_id, self.current_side, to=orb.count + 1)

        tree = self.submit(command)
        if tree is not None:
            self.current_side = self.current_side.opponent
        return tree

    def submit(self, command: Command) -> Reaction | None:
        """
        Run a raw command. Returns None when the session is not accepting.

        The acting side is the command's side, or the side to move.
        Input errors (occupied cell, stale orb id, ...) propagate and leave
        the board untouched. Invariant violations also mark the session
        FAILED.
        """
        if not self._accepting(command.describe()):
            return None

        side = self.current_side if command.side is None else command.side
        try:
            tree = self.engine.run_command(command, side)
        except InvariantViolation as exc:
            self._fail(exc)
            raise

        self.turns_played += 1
        self._begin_replay(tree)
        return tree

    def acknowledge(self, reaction_id: int) -> bool:
        """
        Client signal that the tree `reaction_id` finished replaying.

        Returns False when no tree is pending. Acknowledging a different
        tree than the pending one is an integrity error.
        """
        if self.pending_tree_id is None:
            return False
        if reaction_id != self.pending_tree_id:
            raise ReplayIntegrityError(
                f"Tree {reaction_id} is not the pending tree {self.pending_tree_id}",
                reaction_id=reaction_id,
            )
        # the server-side mirror catches up with the client's animation
        try:
            if self.runner.is_running and not self.runner.run_to_completion():
                raise ReplayIntegrityError(
                    f"Tree {reaction_id} has not finished replaying on the server",
                    reaction_id=reaction_id,
                )
        except EngineError as exc:
            self._fail(exc)
            raise
        self.pending_tree_id = None
        self._settle_state()
        return True

    def restart(self) -> Reaction | None:
        """
        Start over with a new generation: fresh engine, fresh ids.

        Rejected (None) while a tree is in flight.
        """
        if self.is_busy() and self.state != SessionState.FAILED:
            tracer.trace(TraceCategory.INTERACTION, "restart rejected: replay in progress")
            return None

        self.generation += 1
        self.engine = self.cache.get_or_create(self.board_size, self.generation)
        self.mirror.reset()
        self.runner.reset()
        self.pending_tree_id = None
        self.current_side = Side.ONE
        self.winner = None
        self.last_error = None
        self.turns_played = 0
        self.state = SessionState.CREATED
        tracer.trace(TraceCategory.INTERACTION, "restart generation %d", self.generation)
        return self.start()

    # =========================================================================
    # Replay
    # =========================================================================

    def _accepting(self, what: str) -> bool:
        if self.state in (SessionState.ENDED, SessionState.FAILED, SessionState.FINISHED):
            tracer.trace(TraceCategory.INTERACTION, "%s rejected: session %s", what, self.state.value)
            return False
        if self.is_busy():
            tracer.trace(TraceCategory.INTERACTION, "%s rejected: replay in progress", what)
            return False
        return True

    def _begin_replay(self, tree: Reaction) -> None:
        finish = tree.find(FinishGame.kind)
        if finish:
            self.winner = finish[-1].winner

        self.pending_tree_id = tree.reaction_id
        self.state = SessionState.REPLAYING
        try:
            self.runner.start(tree, on_done=self._on_replay_done)
            if self.replay_mode == ReplayMode.IMMEDIATE:
                self.runner.run_to_completion()
        except EngineError as exc:
            self._fail(exc)
            raise

    def _on_replay_done(self) -> None:
        if self.replay_mode == ReplayMode.IMMEDIATE:
            self.pending_tree_id = None
            self._settle_state()

    def _settle_state(self) -> None:
        self.state = SessionState.FINISHED if self.winner is not None else SessionState.READY

    def _fail(self, exc: Exception) -> None:
        self.state = SessionState.FAILED
        self.last_error = str(exc)
        tracer.trace(TraceCategory.ERROR, "session %s failed: %s", self.session_id, exc)


class SessionManager:
    """
    Manages game sessions.

    Responsibilities:
    - Create sessions (each with its own session cache)
    - Track active sessions
    - Clean up ended sessions

    No persistence - sessions are in-memory only.
    """

    def __init__(self, config: GameConfig | None = None):
        self.config = config or GameConfig()
        self._sessions: dict[str, GameSession] = {}

    def create_session(
        self,
        board_size: int | None = None,
        layout: str | None = None,
        replay_mode: ReplayMode = ReplayMode.IMMEDIATE,
    ) -> GameSession:
        """
        Create and start a new game session.

        Args:
            board_size: Board size (defaults to the manager config)
            layout: Preset name or board notation (defaults to config)
            replay_mode: Who completes replays

        Returns:
            Session with the initial layout already submitted for replay
        """
        config = self.config
        if board_size is not None:
            config = config.with_overrides(board_size=board_size)

        session = GameSession(
            session_id=str(uuid.uuid4()),
            config=config,
            layout=layout if layout is not None else config.initial_layout,
            replay_mode=replay_mode,
        )
        session.start()
        self._sessions[session.session_id] = session
        return session

    def get_session(self, session_id: str) -> GameSession | None:
        return self._sessions.get(session_id)

    def end_session(self, session_id: str) -> bool:
        """Remove a session. Returns False if it did not exist."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.state = SessionState.ENDED
        session.pending_tree_id = None
        session.cache.clear()
        return True

    def list_active_sessions(self) -> list[str]:
        return [
            sid for sid, session in self._sessions.items()
            if session.is_active()
        ]

    def cleanup_stale_sessions(self, max_age_seconds: int = 3600) -> int:
        """End finished or failed sessions older than max_age_seconds."""
        now = time.time()
        stale = [
            sid for sid, session in self._sessions.items()
            if now - session.created_at > max_age_seconds
            and session.state in (SessionState.FINISHED, SessionState.FAILED)
        ]
        for sid in stale:
            self.end_session(sid)
        return len(stale)
