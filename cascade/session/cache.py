"""
Session Cache - Engines keyed by (board size, game generation).

A restart bumps the generation; the cache then hands out a brand-new
engine with its own id allocator and an empty board. Older generations
for the same board size are evicted so abandoned games are released.
"""

from __future__ import annotations

from ..config import GameConfig
from ..engine_core.engine import OrbEngine
from ..engine_core.ids import IdAllocator
from ..trace import TraceCategory, get_tracer


tracer = get_tracer(__name__)


class SessionCache:
    """
    Lookup-or-create store for engines.

    Usage:
        cache = SessionCache()
        engine = cache.get_or_create(board_size=5, generation=0)
        assert cache.get_or_create(5, 0) is engine
        fresh = cache.get_or_create(5, 1)  # restart: new ids, empty board
    """

    def __init__(self, config: GameConfig | None = None):
        self.config = config or GameConfig()
        self._engines: dict[tuple[int, int], OrbEngine] = {}

    def get_or_create(self, board_size: int, generation: int) -> OrbEngine:
        key = (board_size, generation)
        engine = self._engines.get(key)
        if engine is not None:
            return engine

        self.evict(board_size, before_generation=generation)
        config = self.config.with_overrides(board_size=board_size)
        engine = OrbEngine(config=config, allocator=IdAllocator())
        self._engines[key] = engine
        tracer.trace(TraceCategory.STATE, "new engine for size %d generation %d", board_size, generation)
        return engine

    def evict(self, board_size: int, before_generation: int) -> int:
        """Drop engines for `board_size` older than `before_generation`."""
        stale = [
            key for key in self._engines
            if key[0] == board_size and key[1] < before_generation
        ]
        for key in stale:
            del self._engines[key]
        return len(stale)

    def clear(self) -> None:
        self._engines.clear()

    def __contains__(self, key: tuple[int, int]) -> bool:
        return key in self._engines

    def __len__(self) -> int:
        return len(self._engines)
