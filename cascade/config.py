"""
Configuration - Game rules, presentation constants and tracing settings.

Every setting has a default; `GameConfig.from_env()` overrides them from
CASCADE_* environment variables:

    CASCADE_BOARD_SIZE=5
    CASCADE_PRE_DETONATION_THRESHOLD=3
    CASCADE_CASCADE_DELAY_MS=300
    CASCADE_MAX_CASCADE_ROUNDS=1000
    CASCADE_INITIAL_LAYOUT=heavy
    CASCADE_TRACE=MERGE,ORBS      (empty or "*" means every category)
"""

from __future__ import annotations
from dataclasses import dataclass, fields, replace
import os

from .constants import (
    ANIMATION, BOARD, CAPACITY, CASCADE_DELAY_MS, DEFAULT_BOARD_SIZE, ORB,
    PRE_DETONATION_THRESHOLD,
)


class ConfigError(ValueError):
    """Raised when a configuration value is out of range."""


@dataclass(frozen=True)
class GameConfig:
    """
    Settings for one game.

    `pre_detonation_threshold` is the proton count at which an increment
    detonates the orb instead of growing it. Allowed values are
    capacity - 1 (default: an orb at 3 explodes on the next tap) and
    capacity (an orb must be full before it explodes).
    """
    # Rules
    board_size: int = DEFAULT_BOARD_SIZE
    capacity: int = CAPACITY
    pre_detonation_threshold: int = PRE_DETONATION_THRESHOLD
    cascade_delay_ms: int = CASCADE_DELAY_MS
    max_cascade_rounds: int = 1000
    initial_layout: str = "heavy"

    # Presentation
    cell_size: float = BOARD["cell_size"]
    gap: float = BOARD["gap"]
    padding: float = BOARD["padding"]
    border_radius: float = BOARD["border_radius"]
    orb_size: float = ORB["size"]
    proton_ratio: float = ORB["proton_ratio"]
    ball_gap: float = ORB["ball_gap"]

    # Animation durations (consumed by the renderer only)
    proton_animation_ms: int = ANIMATION["proton"]
    orb_animation_ms: int = ANIMATION["orb"]

    # Tracing allow-list; None traces every category
    trace_categories: tuple[str, ...] | None = None

    def __post_init__(self):
        if self.board_size < 1:
            raise ConfigError(f"board_size must be >= 1, got {self.board_size}")
        if self.capacity != CAPACITY:
            raise ConfigError(f"capacity is fixed at {CAPACITY}, got {self.capacity}")
        if self.pre_detonation_threshold not in (self.capacity - 1, self.capacity):
            raise ConfigError(
                "pre_detonation_threshold must be capacity - 1 or capacity, "
                f"got {self.pre_detonation_threshold}"
            )
        if self.cascade_delay_ms < 0:
            raise ConfigError(f"cascade_delay_ms must be >= 0, got {self.cascade_delay_ms}")
        if self.max_cascade_rounds < 1:
            raise ConfigError(f"max_cascade_rounds must be >= 1, got {self.max_cascade_rounds}")
        if self.proton_ratio <= 0:
            raise ConfigError(f"proton_ratio must be > 0, got {self.proton_ratio}")

    @property
    def proton_size(self) -> float:
        return self.orb_size / self.proton_ratio

    def with_overrides(self, **kwargs) -> GameConfig:
        """Return a copy with some fields replaced (validated again)."""
        return replace(self, **kwargs)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> GameConfig:
        """Build a config from CASCADE_* environment variables."""
        env = os.environ if environ is None else environ
        overrides: dict = {}

        for f in fields(cls):
            if f.name == "trace_categories":
                continue
            key = f"CASCADE_{f.name.upper()}"
            raw = env.get(key)
            if raw is None or raw == "":
                continue
            try:
                if f.type in ("int", int):
                    overrides[f.name] = int(raw)
                elif f.type in ("float", float):
                    overrides[f.name] = float(raw)
                else:
                    overrides[f.name] = raw
            except ValueError:
                raise ConfigError(f"{key} must be a number, got {raw!r}") from None

        trace = env.get("CASCADE_TRACE")
        if trace is not None and trace.strip() not in ("", "*"):
            overrides["trace_categories"] = tuple(
                part.strip().upper() for part in trace.split(",") if part.strip()
            )

        return cls(**overrides)


DEFAULT_CONFIG = GameConfig()
