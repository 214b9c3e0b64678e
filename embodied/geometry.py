"""
geometry.py - Orientation conventions and direction tables.

Yaw is in radians with 0 facing north (-Z) and positive values turning
toward west (-X). The forward unit vector for a yaw is
(-sin(yaw), -cos(yaw)), so vector_to_yaw(dx, dz) = atan2(-dx, -dz).
Pitch is positive when looking up.
"""

import math
from typing import Dict, List, Optional, Tuple

from integration.world_client import Position

# Absolute headings
DIRECTION_YAWS: Dict[str, float] = {
    "north": 0.0,
    "south": math.pi,
    "east": -math.pi / 2,
    "west": math.pi / 2,
    "northeast": -math.pi / 4,
    "northwest": math.pi / 4,
    "southeast": -3 * math.pi / 4,
    "southwest": 3 * math.pi / 4,
}

# Headings relative to the current yaw
RELATIVE_YAWS: Dict[str, float] = {
    "forward": 0.0,
    "back": math.pi,
    "left": math.pi / 2,
    "right": -math.pi / 2,
}

DIRECTION_ALIASES: Dict[str, str] = {
    "n": "north", "s": "south", "e": "east", "w": "west",
    "ne": "northeast", "nw": "northwest", "se": "southeast", "sw": "southwest",
    "north_east": "northeast", "north_west": "northwest",
    "south_east": "southeast", "south_west": "southwest",
    "forwards": "forward", "ahead": "forward", "backward": "back",
    "backwards": "back", "behind": "back",
    "random": "explore", "wander": "explore",
    "jump": "up", "ascend": "up", "descend": "down",
    "escape": "flee", "run": "flee",
}

CARDINAL_OFFSETS: Dict[str, Tuple[int, int]] = {
    "north": (0, -1),
    "south": (0, 1),
    "east": (1, 0),
    "west": (-1, 0),
}

EIGHT_DIRECTIONS: List[Tuple[str, int, int]] = [
    ("north", 0, -1), ("northeast", 1, -1), ("east", 1, 0), ("southeast", 1, 1),
    ("south", 0, 1), ("southwest", -1, 1), ("west", -1, 0), ("northwest", -1, -1),
]


def normalize_angle(angle: float) -> float:
    """Wrap an angle into (-pi, pi]."""
    return math.atan2(math.sin(angle), math.cos(angle))


def angle_difference(target: float, current: float) -> float:
    """Signed shortest rotation from current to target."""
    return normalize_angle(target - current)


def yaw_to_vector(yaw: float) -> Tuple[float, float]:
    return -math.sin(yaw), -math.cos(yaw)


def vector_to_yaw(dx: float, dz: float) -> float:
    return math.atan2(-dx, -dz)


def yaw_towards(origin: Position, target: Position) -> float:
    return vector_to_yaw(target.x - origin.x, target.z - origin.z)


def pitch_towards(eye: Position, target: Position) -> float:
    horizontal = math.hypot(target.x - eye.x, target.z - eye.z)
    return math.atan2(target.y - eye.y, horizontal)


def canonical_direction(name: str) -> Optional[str]:
    """
    Resolve a direction name or alias.

    Args:
        name: Direction such as 'North', 'ne', 'forward', 'up'

    Returns:
        Canonical name, or None if it is not a direction
    """
    key = name.strip().lower().replace(" ", "_").replace("-", "_")
    key = DIRECTION_ALIASES.get(key, key)
    if key in DIRECTION_YAWS or key in RELATIVE_YAWS or key in ("explore", "up", "down", "flee"):
        return key
    return None


def snap_to_cardinal(yaw: float) -> Tuple[int, int]:
    """Unit (dx, dz) of the cardinal direction nearest to a yaw."""
    dx, dz = yaw_to_vector(yaw)
    if abs(dx) > abs(dz):
        return (1 if dx > 0 else -1), 0
    return 0, (1 if dz > 0 else -1)


def target_along(origin: Position, yaw: float, distance: float) -> Position:
    """Point reached by travelling a distance along a yaw."""
    dx, dz = yaw_to_vector(yaw)
    return Position(origin.x + dx * distance, origin.y, origin.z + dz * distance)
