"""
perception.py - Layered spatial perception for the embodied agent.

This module builds an immutable per-tick snapshot of the agent's
surroundings:
- Grid: three 3x3 layers (above head, head level, feet level)
- Scan: rays of up to 5 blocks front/back/left/right/up/down
- Semantic summary: underground/sky/cave/water flags, escape path,
  visible threats, nearest resources and the brightest direction

Building a snapshot is a pure read of world state. Unloaded cells are
reported as None and left out of every aggregate.
"""

import math
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from integration.blocks import (
    FUNCTIONAL_BLOCKS, LOG_BLOCKS, ORE_BLOCKS, STONE_FAMILY, is_hostile,
    is_liquid, is_solid, is_water,
)
from integration.world_client import Position, WorldClient
from utils.config import PerceptionConfig
from .fov import VisibilityFilter, block_focus, entity_focus
from .geometry import EIGHT_DIRECTIONS, snap_to_cardinal

logger = logging.getLogger(__name__)

Cell = Tuple[int, int, int]

GRID_CELLS = ("nw", "n", "ne", "w", "center", "e", "sw", "s", "se")

# (dx, dz) per cell; north is -Z
CELL_OFFSETS: Dict[str, Tuple[int, int]] = {
    "nw": (-1, -1), "n": (0, -1), "ne": (1, -1),
    "w": (-1, 0), "center": (0, 0), "e": (1, 0),
    "sw": (-1, 1), "s": (0, 1), "se": (1, 1),
}

# Layer heights relative to the feet block
LAYER_OFFSETS = {"above": 2, "current": 1, "below": 0}


@dataclass(frozen=True)
class BlockObservation:
    """A sampled block with its distance from the agent."""
    name: str
    position: Cell
    distance: float


@dataclass(frozen=True)
class SpatialGrid:
    """Three 3x3 layers of observations, cells ordered as GRID_CELLS."""
    above: Tuple[Optional[BlockObservation], ...]
    current: Tuple[Optional[BlockObservation], ...]
    below: Tuple[Optional[BlockObservation], ...]

    def cell(self, layer: str, name: str) -> Optional[BlockObservation]:
        return getattr(self, layer)[GRID_CELLS.index(name)]


@dataclass(frozen=True)
class DirectionalScan:
    """Consecutive known blocks along six rays."""
    front: Tuple[BlockObservation, ...]
    back: Tuple[BlockObservation, ...]
    left: Tuple[BlockObservation, ...]
    right: Tuple[BlockObservation, ...]
    up: Tuple[BlockObservation, ...]
    down: Tuple[BlockObservation, ...]


class EscapeKind(Enum):
    CLEAR = "clear"
    BLOCKED = "blocked"
    NEEDS_BUILDING = "needs_building"


@dataclass(frozen=True)
class EscapePath:
    """Classification of the vertical column above the agent."""
    kind: EscapeKind
    obstacles: Tuple[str, ...]
    blocks_to_surface: int


class ThreatLevel(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class Threat:
    entity_id: int
    entity_type: str
    distance: float
    level: ThreatLevel


@dataclass(frozen=True)
class ResourceSighting:
    name: str
    position: Cell
    distance: float
    remembered: bool = False


@dataclass(frozen=True)
class NearestResources:
    tree: Optional[ResourceSighting] = None
    ore: Optional[ResourceSighting] = None
    functional: Optional[ResourceSighting] = None


@dataclass(frozen=True)
class BrightDirection:
    """Direction of the brightest sky-lit cell found by the sweep."""
    direction: str
    distance: int
    light: int
    has_liquid_in_path: bool


@dataclass(frozen=True)
class SemanticSummary:
    is_underground: bool
    can_see_sky: bool
    in_cave: bool
    in_water: bool
    escape_path: Optional[EscapePath]
    threats: Tuple[Threat, ...]
    nearest_resources: NearestResources
    brightest_direction: Optional[BrightDirection]


@dataclass(frozen=True)
class SpatialSnapshot:
    """Immutable perception result for one tick."""
    position: Tuple[float, float, float]
    facing: Tuple[int, int]
    grid: SpatialGrid
    scan: DirectionalScan
    semantic: SemanticSummary
    timestamp: float = field(default=0.0, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data form for the decision layer."""
        return _plain(asdict(self))


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def threat_level(distance: float) -> ThreatLevel:
    """Bucket a hostile's distance into a threat level."""
    if distance < 5:
        return ThreatLevel.CRITICAL
    if distance < 10:
        return ThreatLevel.HIGH
    if distance < 20:
        return ThreatLevel.MEDIUM
    return ThreatLevel.LOW


def classify_escape(column: List[Optional[BlockObservation]], y: float, sea_level: int = 62) -> EscapePath:
    """
    Classify the column above the head.

    Args:
        column: Observations from feet+2 upward (None for unloaded)
        y: Agent feet height
        sea_level: Height treated as the surface

    Returns:
        BLOCKED when a solid block sits in one of the first two cells,
        CLEAR when no known cell is solid, NEEDS_BUILDING otherwise
    """
    solid = [obs for obs in column if obs is not None and is_solid(obs.name)]
    obstacles = tuple(obs.name for obs in solid[:3])
    blocks_to_surface = max(0, sea_level - math.floor(y))

    first_two = [obs for obs in column[:2] if obs is not None]
    if any(is_solid(obs.name) for obs in first_two):
        kind = EscapeKind.BLOCKED
    elif not solid:
        kind = EscapeKind.CLEAR
    else:
        kind = EscapeKind.NEEDS_BUILDING
    return EscapePath(kind, obstacles, blocks_to_surface)


class SpatialPerception:
    """
    Spatial perception builder.

    Usage:
        perception = SpatialPerception(client, VisibilityFilter(client))
        snapshot = perception.build()
        if snapshot.semantic.escape_path:
            ...
    """

    def __init__(
        self,
        client: WorldClient,
        visibility: Optional[VisibilityFilter] = None,
        config: Optional[PerceptionConfig] = None,
        landmarks=None
    ):
        """
        Initialize the perception builder.

        Args:
            client: World client for block, light and entity queries
            visibility: FOV/LOS filter (created if omitted)
            config: Perception settings
            landmarks: Optional LandmarkMemory for functional-block recall
        """
        self.client = client
        self.config = config or PerceptionConfig()
        self.visibility = visibility or VisibilityFilter(client, self.config)
        self.landmarks = landmarks
        self.last_snapshot: Optional[SpatialSnapshot] = None

    def build(self) -> Optional[SpatialSnapshot]:
        """
        Build a snapshot from the current position and facing.

        Returns:
            SpatialSnapshot, or None before the agent has a position
        """
        pos = self.client.get_position()
        if pos is None:
            return None
        facing = snap_to_cardinal(self.client.get_yaw())

        grid = self.build_grid(pos)
        scan = self.build_scan(pos, facing)
        semantic = self.build_semantic(pos, grid, scan)

        snapshot = SpatialSnapshot(
            position=(round(pos.x, 3), round(pos.y, 3), round(pos.z, 3)),
            facing=facing,
            grid=grid,
            scan=scan,
            semantic=semantic,
            timestamp=self.client.now(),
        )
        self.last_snapshot = snapshot
        return snapshot

    def observe(self, x: int, y: int, z: int, origin: Position) -> Optional[BlockObservation]:
        block = self.client.get_block_at(x, y, z)
        if block is None:
            return None
        distance = round(block.center.distance_to(origin), 2)
        return BlockObservation(block.name, (x, y, z), distance)

    def build_grid(self, pos: Position) -> SpatialGrid:
        bx, by, bz = pos.block_tuple()
        layers = {}
        for layer, dy in LAYER_OFFSETS.items():
            layers[layer] = tuple(
                self.observe(bx + CELL_OFFSETS[cell][0], by + dy, bz + CELL_OFFSETS[cell][1], pos)
                for cell in GRID_CELLS
            )
        return SpatialGrid(**layers)

    def build_scan(self, pos: Position, facing: Tuple[int, int]) -> DirectionalScan:
        bx, by, bz = pos.block_tuple()
        fx, fz = facing
        # Right of a facing (fx, fz) is (-fz, fx) with north = -Z
        rays = {
            "front": (fx, 0, fz),
            "back": (-fx, 0, -fz),
            "left": (fz, 0, -fx),
            "right": (-fz, 0, fx),
        }
        length = self.config.scan_length
        scan = {}
        for name, (dx, _, dz) in rays.items():
            scan[name] = self._ray(pos, [(bx + dx * i, by + 1, bz + dz * i) for i in range(1, length + 1)])
        scan["up"] = self._ray(pos, [(bx, by + 1 + i, bz) for i in range(1, length + 1)])
        scan["down"] = self._ray(pos, [(bx, by - i, bz) for i in range(1, length + 1)])
        return DirectionalScan(**scan)

    def _ray(self, pos: Position, cells: List[Cell]) -> Tuple[BlockObservation, ...]:
        observations = (self.observe(x, y, z, pos) for x, y, z in cells)
        return tuple(obs for obs in observations if obs is not None)

    def build_semantic(self, pos: Position, grid: SpatialGrid, scan: DirectionalScan) -> SemanticSummary:
        bx, by, bz = pos.block_tuple()
        eye_y = math.floor(pos.y + self.config.eye_height)
        is_underground = eye_y < self.config.surface_y

        sky = self.client.get_sky_light(bx, by + 3, bz)
        can_see_sky = sky == 15

        neighbours = [grid.cell("current", name) for name in ("n", "s", "e", "w")]
        neighbours += [grid.cell("above", "center"), grid.cell("below", "center")]
        stone_count = sum(1 for obs in neighbours if obs is not None and obs.name in STONE_FAMILY)
        in_cave = stone_count >= 4

        feet = grid.cell("below", "center")
        head = grid.cell("current", "center")
        in_water = any(obs is not None and is_water(obs.name) for obs in (feet, head))

        escape_path = None
        if is_underground and not can_see_sky:
            column = [self.observe(bx, by + i, bz, pos) for i in range(2, 2 + self.config.scan_length)]
            escape_path = classify_escape(column, pos.y, self.config.sea_level)

        brightest = None
        if is_underground or in_cave:
            brightest = self.find_brightest_direction(pos)

        return SemanticSummary(
            is_underground=is_underground,
            can_see_sky=can_see_sky,
            in_cave=in_cave,
            in_water=in_water,
            escape_path=escape_path,
            threats=tuple(self.find_threats(pos)),
            nearest_resources=self.find_resources(pos),
            brightest_direction=brightest,
        )

    def find_threats(self, pos: Position) -> List[Threat]:
        """Visible hostiles within range, nearest first."""
        threats = []
        for entity in self.client.get_nearby_entities(self.config.threat_radius):
            if not is_hostile(entity.name):
                continue
            if not self.visibility.is_perceivable(entity_focus(entity), allow_memory=False):
                continue
            distance = round(entity.position.distance_to(pos), 2)
            threats.append(Threat(entity.entity_id, entity.name, distance, threat_level(distance)))
        threats.sort(key=lambda t: (t.distance, t.entity_id))
        return threats

    def find_resources(self, pos: Position) -> NearestResources:
        tree = self._nearest_sighting(LOG_BLOCKS, pos)
        ore = self._nearest_sighting(ORE_BLOCKS, pos)

        functional = None
        if self.landmarks is not None:
            landmark = self.landmarks.nearest(pos)
            if landmark is not None and self.visibility.is_perceivable(landmark.center, allow_memory=True):
                functional = ResourceSighting(
                    landmark.name, landmark.position,
                    round(landmark.distance_to(pos), 2), remembered=True,
                )
        if functional is None:
            functional = self._nearest_sighting(FUNCTIONAL_BLOCKS, pos)
        return NearestResources(tree=tree, ore=ore, functional=functional)

    def _nearest_sighting(self, names, pos: Position) -> Optional[ResourceSighting]:
        for block in self.client.find_blocks(names, self.config.resource_radius, count=10):
            if self.visibility.is_perceivable(block_focus(block), allow_memory=True):
                return ResourceSighting(
                    block.name, (block.x, block.y, block.z),
                    round(block.center.distance_to(pos), 2),
                )
        return None

    def find_brightest_direction(self, pos: Position) -> Optional[BrightDirection]:
        """
        Sweep eight directions for the brightest sky-lit cell.

        Only cells with sky-light of at least brightness_min_light count.
        Directions with liquid in the first few cells are used only when
        no dry direction has light.
        """
        bx, by, bz = pos.block_tuple()
        best_safe: Optional[BrightDirection] = None
        best_unsafe: Optional[BrightDirection] = None

        for name, dx, dz in EIGHT_DIRECTIONS:
            has_liquid = self._liquid_in_path(bx, by, bz, dx, dz)
            found: Optional[BrightDirection] = None
            for distance in range(1, self.config.brightness_range + 1):
                for y_offset in range(3):
                    light = self.client.get_sky_light(bx + dx * distance, by + 1 + y_offset, bz + dz * distance)
                    if light is None or light < self.config.brightness_min_light:
                        continue
                    if found is None or light > found.light:
                        found = BrightDirection(name, distance, light, has_liquid)
            if found is None:
                continue
            if has_liquid:
                if _brighter(found, best_unsafe):
                    best_unsafe = found
            elif _brighter(found, best_safe):
                best_safe = found

        return best_safe or best_unsafe

    def _liquid_in_path(self, bx: int, by: int, bz: int, dx: int, dz: int) -> bool:
        for distance in range(1, self.config.liquid_check_range + 1):
            for y_offset in range(-2, 2):
                block = self.client.get_block_at(bx + dx * distance, by + y_offset, bz + dz * distance)
                if block is not None and is_liquid(block.name):
                    return True
        return False


def _brighter(candidate: BrightDirection, current: Optional[BrightDirection]) -> bool:
    if current is None:
        return True
    if candidate.light != current.light:
        return candidate.light > current.light
    return candidate.distance < current.distance
