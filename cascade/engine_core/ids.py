"""
Id Allocation - Unique, strictly increasing ids for orbs, protons and reactions.

One allocator belongs to one engine instance. There is no process-wide
counter: independent sessions (tests, parallel games, restarts) each get
their own id space.
"""

from __future__ import annotations


class IdAllocator:
    """
    Monotonic integer id source.

    Ids are never reused. Orbs, protons, reactions and movement
    sequence numbers all draw from the same allocator, so a larger id
    always means "allocated later" within a session.
    """

    def __init__(self, start: int = 0):
        if start < 0:
            raise ValueError(f"Id allocator start must be >= 0, got {start}")
        self._next = start
        self._issued = 0

    def next_id(self) -> int:
        """Allocate the next id."""
        value = self._next
        self._next += 1
        self._issued += 1
        return value

    def peek(self) -> int:
        """Return the id that the next call to next_id() will produce."""
        return self._next

    @property
    def last_id(self) -> int | None:
        """The most recently issued id, or None if nothing was issued yet."""
        if self._issued == 0:
            return None
        return self._next - 1

    @property
    def issued(self) -> int:
        return self._issued

    def __repr__(self) -> str:
        return f"IdAllocator(next={self._next}, issued={self._issued})"
