"""
pathfinder.py - Grid navigator used as the pathfinding delegate.

This module provides the general-purpose navigator the motion
controller hands goals to:
- A* over the voxel grid (walk, step up, drop down, dig through)
- Movement settings (dig cost, sprint/parkour switches)
- Path following driven by physics ticks, digging obstructions on the way

The navigator never blocks: set_goal() plans and returns, then each
physics tick steers the agent along the path until the goal is reached
or stop() is called.
"""

import asyncio
import math
import logging
from dataclasses import dataclass
from heapq import heappop, heappush
from typing import Callable, Dict, List, Optional, Set, Tuple

from integration import events
from integration.blocks import UNBREAKABLE_BLOCKS, is_liquid, is_solid
from integration.world_client import DisconnectedError, Position, WorldClient
from .geometry import angle_difference

logger = logging.getLogger(__name__)

Cell = Tuple[int, int, int]


@dataclass
class Movements:
    """Movement settings for path planning."""
    dig_cost: float = 5.0
    allow_sprinting: bool = False
    allow_parkour: bool = False
    can_dig: bool = True
    allow_1x1_towers: bool = False
    max_drop_down: int = 3


@dataclass
class Goal:
    """Target point with an acceptance radius."""
    x: float
    y: float
    z: float
    range: float = 1.0
    ignore_y: bool = False

    @property
    def position(self) -> Position:
        return Position(self.x, self.y, self.z)

    def distance_from(self, pos: Position) -> float:
        if self.ignore_y:
            return pos.horizontal_distance_to(self.position)
        return pos.distance_to(self.position)

    def is_reached(self, pos: Position) -> bool:
        return self.distance_from(pos) <= self.range


@dataclass
class PathNode:
    """A node in the pathfinding graph."""
    x: int
    y: int
    z: int
    g_cost: float = 0.0  # Cost from start
    h_cost: float = 0.0  # Heuristic cost to goal
    parent: Optional['PathNode'] = None

    @property
    def f_cost(self) -> float:
        """Total estimated cost."""
        return self.g_cost + self.h_cost

    @property
    def cell(self) -> Cell:
        return (self.x, self.y, self.z)

    def __lt__(self, other: 'PathNode') -> bool:
        return self.f_cost < other.f_cost


class GridNavigator:
    """
    Pathfinding delegate over the voxel grid.

    Usage:
        navigator = GridNavigator(client)
        navigator.set_goal(Goal(10, 64, 5, range=1.0), Movements(dig_cost=5))
        while navigator.is_moving():
            await client.sleep(0.05)
    """

    # Never walked on or through
    DANGEROUS_BLOCKS = {
        "lava", "flowing_lava", "fire", "soul_fire", "cactus", "magma_block",
        "sweet_berry_bush", "powder_snow",
    }

    WAYPOINT_TOLERANCE = 0.3
    FORWARD_CONE = math.radians(35)

    def __init__(
        self,
        client: WorldClient,
        steer: Optional[Callable[[float], None]] = None,
        max_iterations: int = 4000
    ):
        """
        Initialize the navigator.

        Args:
            client: World client for block queries and controls
            steer: Callback receiving the desired yaw each tick
                (defaults to setting the orientation directly)
            max_iterations: A* expansion budget per plan
        """
        self.client = client
        self.max_iterations = max_iterations
        self._steer = steer or (lambda yaw: client.set_orientation(yaw, 0.0))

        self.goal: Optional[Goal] = None
        self.movements = Movements()
        self.path: List[Cell] = []
        self.reached = False
        self.last_failure: Optional[str] = None

        self._dig_task: Optional[asyncio.Task] = None
        self._subscribed = False

    # Delegate interface

    def set_goal(self, goal: Goal, movements: Optional[Movements] = None) -> bool:
        """
        Plan a path to the goal and start following it.

        Returns:
            True if a path was found (or the goal is already reached)
        """
        self.stop()
        self.movements = movements or Movements()
        self.goal = goal
        self.reached = False
        self.last_failure = None

        pos = self.client.get_position()
        if pos is None:
            self.last_failure = "no_position"
            self.goal = None
            return False
        if goal.is_reached(pos):
            self.reached = True
            self.goal = None
            return True

        path = self.find_path(pos.block_tuple(), goal, self.movements)
        if path is None:
            logger.debug(f"No path to ({goal.x:.1f}, {goal.y:.1f}, {goal.z:.1f})")
            self.last_failure = "no_path"
            self.goal = None
            return False

        self.path = path
        if not self._subscribed:
            self.client.bus.subscribe(events.PHYSICS_TICK, self._on_tick)
            self._subscribed = True
        return True

    def is_moving(self) -> bool:
        return self.goal is not None

    def stop(self) -> None:
        """Clear the goal and release controls."""
        if self._dig_task is not None and not self._dig_task.done():
            self._dig_task.cancel()
        self._dig_task = None
        self.goal = None
        self.path = []
        self.client.clear_controls()

    # Planning

    def find_path(
        self,
        start: Cell,
        goal: Goal,
        movements: Optional[Movements] = None,
        max_iterations: Optional[int] = None
    ) -> Optional[List[Cell]]:
        """
        Find a path using the A* algorithm.

        Args:
            start: Starting feet cell
            goal: Goal to reach
            movements: Movement settings
            max_iterations: Maximum node expansions

        Returns:
            Feet cells to visit (start excluded), or None if no path found
        """
        movements = movements or self.movements
        budget = max_iterations or self.max_iterations
        goal_cell = (math.floor(goal.x), math.floor(goal.y), math.floor(goal.z))

        start_node = PathNode(*start)
        start_node.h_cost = self._heuristic(start, goal_cell, goal.ignore_y)

        open_set: List[Tuple[float, int, PathNode]] = [(start_node.f_cost, 0, start_node)]
        best_g: Dict[Cell, float] = {start: 0.0}
        closed_set: Set[Cell] = set()
        counter = 1
        iterations = 0

        while open_set and iterations < budget:
            iterations += 1
            _, _, current = heappop(open_set)
            if current.cell in closed_set:
                continue

            if goal.is_reached(Position(current.x + 0.5, current.y, current.z + 0.5)):
                return self._reconstruct_path(current)

            closed_set.add(current.cell)

            for cell, move_cost in self._get_neighbors(current.cell, movements):
                if cell in closed_set:
                    continue
                new_g_cost = current.g_cost + move_cost
                if new_g_cost >= best_g.get(cell, float('inf')):
                    continue
                best_g[cell] = new_g_cost
                neighbor = PathNode(*cell, g_cost=new_g_cost, parent=current)
                neighbor.h_cost = self._heuristic(cell, goal_cell, goal.ignore_y)
                heappush(open_set, (neighbor.f_cost, counter, neighbor))
                counter += 1

        return None

    def _get_neighbors(self, cell: Cell, movements: Movements) -> List[Tuple[Cell, float]]:
        """Reachable cells from a feet cell with their movement cost."""
        x, y, z = cell
        neighbors = []
        head_clear = self._passable(x, y + 2, z)

        for dx, dz in ((1, 0), (-1, 0), (0, 1), (0, -1)):
            nx, nz = x + dx, z + dz

            if self._is_walkable(nx, y, nz):
                neighbors.append(((nx, y, nz), 1.0))
                continue

            if head_clear and self._is_walkable(nx, y + 1, nz):
                neighbors.append(((nx, y + 1, nz), 1.5))
                continue

            if self._passable(nx, y, nz) and self._passable(nx, y + 1, nz):
                for drop in range(1, movements.max_drop_down + 1):
                    if self._is_walkable(nx, y - drop, nz):
                        neighbors.append(((nx, y - drop, nz), 1.0 + 0.5 * drop))
                        break
                    if not self._passable(nx, y - drop, nz):
                        break
                continue

            if movements.can_dig and self._stands_on(nx, y, nz):
                to_dig = [cy for cy in (y, y + 1) if not self._passable(nx, cy, nz)]
                if all(self._diggable(nx, cy, nz) for cy in to_dig):
                    neighbors.append(((nx, y, nz), 1.0 + movements.dig_cost * len(to_dig)))

        return neighbors

    def _passable(self, x: int, y: int, z: int) -> bool:
        block = self.client.get_block_at(x, y, z)
        if block is None:
            return False
        return not is_solid(block.name) and block.name not in self.DANGEROUS_BLOCKS

    def _stands_on(self, x: int, y: int, z: int) -> bool:
        below = self.client.get_block_at(x, y - 1, z)
        return below is not None and is_solid(below.name) and below.name not in self.DANGEROUS_BLOCKS

    def _diggable(self, x: int, y: int, z: int) -> bool:
        block = self.client.get_block_at(x, y, z)
        return block is not None and block.name not in UNBREAKABLE_BLOCKS and not is_liquid(block.name)

    def _is_walkable(self, x: int, y: int, z: int) -> bool:
        """Feet and head cells free, solid ground below."""
        return self._passable(x, y, z) and self._passable(x, y + 1, z) and self._stands_on(x, y, z)

    def _heuristic(self, a: Cell, b: Cell, ignore_y: bool = False) -> float:
        """Manhattan distance with vertical movement weighted double."""
        dy = 0 if ignore_y else abs(a[1] - b[1])
        return abs(a[0] - b[0]) + abs(a[2] - b[2]) + dy * 2

    def _reconstruct_path(self, node: PathNode) -> List[Cell]:
        path = []
        current = node
        while current.parent is not None:
            path.append(current.cell)
            current = current.parent
        path.reverse()
        return path

    # Following

    def _on_tick(self, payload) -> None:
        if self.goal is None:
            return
        if self._dig_task is not None and not self._dig_task.done():
            return

        pos = self.client.get_position()
        if pos is None:
            return
        if self.goal.is_reached(pos):
            self._finish(reached=True)
            return

        while self.path and self._at_waypoint(pos, self.path[0]):
            self.path.pop(0)
        if not self.path:
            self._finish(reached=self.goal.is_reached(pos))
            return

        wx, wy, wz = self.path[0]
        obstruction = self._first_obstruction(pos, (wx, wy, wz))
        if obstruction is not None:
            if self.movements.can_dig and self._diggable(*obstruction):
                self.client.clear_controls()
                self._start_dig(obstruction)
                return

        desired = math.atan2(-(wx + 0.5 - pos.x), -(wz + 0.5 - pos.z))
        self._steer(desired)
        # Hold forward until the heading is close enough to avoid orbiting
        facing = abs(angle_difference(desired, self.client.get_yaw())) <= self.FORWARD_CONE
        self.client.set_control("forward", facing)
        self.client.set_control("sprint", self.movements.allow_sprinting)
        self.client.set_control("jump", wy > pos.block_y)

    def _at_waypoint(self, pos: Position, cell: Cell) -> bool:
        close = math.hypot(pos.x - (cell[0] + 0.5), pos.z - (cell[2] + 0.5)) <= self.WAYPOINT_TOLERANCE
        return close and abs(pos.y - cell[1]) < 0.6

    def _first_obstruction(self, pos: Position, waypoint: Cell) -> Optional[Cell]:
        wx, wy, wz = waypoint
        cells = [(wx, wy + 1, wz), (wx, wy, wz)]
        if wy > pos.block_y:
            cells.insert(0, (pos.block_x, pos.block_y + 2, pos.block_z))
        for cell in cells:
            block = self.client.get_block_at(*cell)
            if block is not None and is_solid(block.name):
                return cell
        return None

    def _start_dig(self, cell: Cell) -> None:
        logger.debug(f"Digging path obstruction at {cell}")
        loop = asyncio.get_running_loop()
        self._dig_task = loop.create_task(self.client.dig_block(*cell))
        self._dig_task.add_done_callback(self._dig_done)

    def _dig_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if isinstance(error, DisconnectedError):
            self.goal = None
        elif error is not None:
            logger.warning(f"Path dig failed: {error}")

    def _finish(self, reached: bool) -> None:
        self.reached = reached
        self.goal = None
        self.path = []
        self.client.clear_controls()
