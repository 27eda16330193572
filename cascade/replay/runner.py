"""
Reaction Runner - Explicit scheduler for reaction trees.

The runner walks a tree produced by the engine:
- Sequence: children start one at a time, each after the previous completes
- Parallel: children start together; a completion counter tracks the group
- Sleep: completes when the runner's clock passes its due time
- Other leaves: handed to a ReactionHandler, which either completes them
  immediately or defers completion to a later complete(reaction_id) call

Work is processed from a task queue, so handlers may call complete()
from inside apply() without recursion. Any handler error halts the
runner; nothing is skipped.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from collections import deque
from enum import Enum
from typing import Callable
import heapq

from ..engine_core.errors import ReplayIntegrityError
from ..engine_core.reaction import Parallel, Reaction, Sequence, Sleep
from ..trace import TraceCategory, get_tracer


tracer = get_tracer(__name__)


class Completion(Enum):
    """How a handler finishes a leaf."""
    IMMEDIATE = "immediate"  # Done as soon as apply() returns
    DEFERRED = "deferred"  # Done when someone calls runner.complete(id)


class RunnerState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class ReactionHandler(ABC):
    """
    Applies leaf reactions (everything except Sequence, Parallel, Sleep).

    Implementations mutate UI or mirror state and report how the leaf
    completes.
    """

    @abstractmethod
    def apply(self, reaction: Reaction) -> Completion:
        """Apply one leaf reaction."""
        pass


class VirtualClock:
    """Millisecond clock advanced explicitly by the caller."""

    def __init__(self, now_ms: int = 0):
        self.now_ms = now_ms
        self._timers: list[tuple[int, int, int]] = []  # (due, order, reaction_id)
        self._order = 0

    def schedule(self, delay_ms: int, reaction_id: int) -> None:
        heapq.heappush(self._timers, (self.now_ms + delay_ms, self._order, reaction_id))
        self._order += 1

    def next_due(self) -> int | None:
        return self._timers[0][0] if self._timers else None

    def advance(self, ms: int) -> list[int]:
        """Move time forward and return reaction ids whose timers expired."""
        if ms < 0:
            raise ValueError(f"Cannot move the clock backwards ({ms} ms)")
        self.now_ms += ms
        expired = []
        while self._timers and self._timers[0][0] <= self.now_ms:
            expired.append(heapq.heappop(self._timers)[2])
        return expired

    def clear(self) -> None:
        self._timers.clear()

    @property
    def pending(self) -> int:
        return len(self._timers)


class ReactionRunner:
    """
    Plays one reaction tree at a time.

    Usage:
        runner = ReactionRunner(BoardMirror(board_size=5))
        runner.start(tree, on_done=lambda: print("replay finished"))
        runner.run_to_completion()
    """

    def __init__(self, handler: ReactionHandler, clock: VirtualClock | None = None):
        self.handler = handler
        self.clock = clock or VirtualClock()
        self.state = RunnerState.IDLE
        self.error: Exception | None = None
        self.root: Reaction | None = None
        self.completed: list[int] = []

        self._on_done: Callable[[], None] | None = None
        self._parent: dict[int, Reaction] = {}
        self._cursor: dict[int, int] = {}
        self._remaining: dict[int, int] = {}
        self._in_flight: dict[int, Reaction] = {}
        self._tasks: deque[tuple[str, Reaction]] = deque()
        self._draining = False

    # =========================================================================
    # Public API
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self.state == RunnerState.RUNNING

    @property
    def in_flight(self) -> list[int]:
        """Ids of started leaves (and sleeps) that have not completed."""
        return list(self._in_flight)

    def start(self, tree: Reaction, on_done: Callable[[], None] | None = None) -> None:
        if self.state == RunnerState.RUNNING:
            raise ReplayIntegrityError(
                f"Runner is still replaying tree {self.root.reaction_id}",
                reaction_id=tree.reaction_id,
            )
        if self.state == RunnerState.FAILED:
            raise ReplayIntegrityError("Runner halted after an error", reaction_id=tree.reaction_id)

        self.root = tree
        self.state = RunnerState.RUNNING
        self.completed = []
        self._on_done = on_done
        self._parent.clear()
        self._cursor.clear()
        self._remaining.clear()
        self._in_flight.clear()
        self.clock.clear()

        tracer.trace(TraceCategory.APPLY, "replay tree %d", tree.reaction_id)
        self._tasks.append(("start", tree))
        self._drain()

    def complete(self, reaction_id: int) -> None:
        """Signal that a deferred leaf has finished."""
        self._ensure_usable(reaction_id)
        reaction = self._in_flight.get(reaction_id)
        if reaction is None:
            raise self._halt(ReplayIntegrityError(
                f"Reaction {reaction_id} is not in flight", reaction_id=reaction_id,
            ))
        if isinstance(reaction, Sleep):
            raise self._halt(ReplayIntegrityError(
                f"Sleep {reaction_id} completes on the clock, not by signal",
                reaction_id=reaction_id,
            ))
        self._tasks.append(("finish", reaction))
        self._drain()

    def advance(self, ms: int) -> None:
        """Move the clock forward, completing any expired sleeps."""
        for reaction_id in self.clock.advance(ms):
            reaction = self._in_flight.get(reaction_id)
            if reaction is not None:
                self._tasks.append(("finish", reaction))
        self._drain()

    def run_to_completion(self) -> bool:
        """
        Fast-forward through sleeps until the tree is done.

        Returns False when the tree is blocked on deferred leaves that only
        an external complete() call can finish.
        """
        while self.state == RunnerState.RUNNING:
            due = self.clock.next_due()
            if due is None:
                return False
            self.advance(max(0, due - self.clock.now_ms))
        return self.state == RunnerState.DONE

    def reset(self) -> None:
        """Drop all replay state, including a failure."""
        self.state = RunnerState.IDLE
        self.error = None
        self.root = None
        self._tasks.clear()
        self._parent.clear()
        self._cursor.clear()
        self._remaining.clear()
        self._in_flight.clear()
        self.clock.clear()

    # =========================================================================
    # Scheduling
    # =========================================================================

    def _drain(self) -> None:
        if self._draining:
            return
        self._draining = True
        try:
            while self._tasks and self.state == RunnerState.RUNNING:
                action, reaction = self._tasks.popleft()
                if action == "start":
                    self._start(reaction)
                else:
                    self._finish(reaction)
        except Exception as exc:
            raise self._halt(exc)
        finally:
            self._draining = False

    def _start(self, reaction: Reaction) -> None:
        if isinstance(reaction, Sequence):
            if not reaction.reactions:
                self._tasks.append(("finish", reaction))
                return
            self._cursor[reaction.reaction_id] = 0
            self._enqueue_child(reaction, reaction.reactions[0])
        elif isinstance(reaction, Parallel):
            if not reaction.reactions:
                self._tasks.append(("finish", reaction))
                return
            self._remaining[reaction.reaction_id] = len(reaction.reactions)
            for child in reaction.reactions:
                self._enqueue_child(reaction, child)
        elif isinstance(reaction, Sleep):
            self._in_flight[reaction.reaction_id] = reaction
            self.clock.schedule(reaction.duration_ms, reaction.reaction_id)
        else:
            self._in_flight[reaction.reaction_id] = reaction
            tracer.trace("INFO:APPLY", "%s %d", reaction.kind.value, reaction.reaction_id)
            completion = self.handler.apply(reaction)
            if completion == Completion.IMMEDIATE:
                self._tasks.append(("finish", reaction))

    def _enqueue_child(self, parent: Reaction, child: Reaction) -> None:
        if child.reaction_id in self._parent:
            raise ReplayIntegrityError(
                f"Reaction {child.reaction_id} appears twice in the tree",
                reaction_id=child.reaction_id,
            )
        self._parent[child.reaction_id] = parent
        self._tasks.append(("start", child))

    def _finish(self, reaction: Reaction) -> None:
        self._in_flight.pop(reaction.reaction_id, None)
        self.completed.append(reaction.reaction_id)
        parent = self._parent.pop(reaction.reaction_id, None)

        if parent is None:
            if reaction is not self.root:
                raise ReplayIntegrityError(
                    f"Reaction {reaction.reaction_id} finished without a parent",
                    reaction_id=reaction.reaction_id,
                )
            self.state = RunnerState.DONE
            tracer.trace("INFO:APPLY:DONE", "tree %d finished", reaction.reaction_id)
            if self._on_done is not None:
                self._on_done()
            return

        if isinstance(parent, Sequence):
            idx = self._cursor[parent.reaction_id] + 1
            if idx == len(parent.reactions):
                del self._cursor[parent.reaction_id]
                self._tasks.append(("finish", parent))
            else:
                self._cursor[parent.reaction_id] = idx
                self._enqueue_child(parent, parent.reactions[idx])
        else:
            remaining = self._remaining[parent.reaction_id] - 1
            if remaining == 0:
                del self._remaining[parent.reaction_id]
                self._tasks.append(("finish", parent))
            else:
                self._remaining[parent.reaction_id] = remaining

    # =========================================================================
    # Failure handling
    # =========================================================================

    def _ensure_usable(self, reaction_id: int | None = None) -> None:
        if self.state == RunnerState.FAILED:
            raise ReplayIntegrityError("Runner halted after an error", reaction_id=reaction_id)
        if self.state != RunnerState.RUNNING:
            raise ReplayIntegrityError("No tree is being replayed", reaction_id=reaction_id)

    def _halt(self, exc: Exception) -> Exception:
        if self.state != RunnerState.FAILED:
            self.state = RunnerState.FAILED
            self.error = exc
            self._tasks.clear()
            tracer.trace(TraceCategory.ERROR, "replay halted: %s", exc)
        return exc
