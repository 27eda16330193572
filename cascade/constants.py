"""
Game Constants - Fixed rule values and presentation defaults.

Kept free of imports so both the engine and the configuration layer can
depend on it.
"""

# Rules
CAPACITY = 4
PRE_DETONATION_THRESHOLD = 3
DEFAULT_BOARD_SIZE = 5
CASCADE_DELAY_MS = 300

# Board geometry (pixels)
BOARD = {
    "gap": 10,
    "cell_size": 40,
    "padding": 6,
    "border_radius": 10,
}

# Orb geometry (pixels)
ORB = {
    "size": 30,
    "proton_ratio": 5,
    "ball_gap": 3,
}

# Animation durations (ms)
ANIMATION = {
    "proton": 300,
    "orb": 600,
}
