"""
motion.py - Motion controller for the embodied agent.

This module turns motion intents into control signals:
- Direct short-range walk with periodic stuck sampling, vegetation
  clearing and timed jumps
- Delegated pathfinding with bad-path, stall and timeout detection
- Symbolic directions (absolute, relative, explore) with alternate
  headings and a manual walk-with-jump fallback
- Jump, descend and emergency flee

Every motion returns a MotionResult and reports its outcome to the
stuck detector. Control states are released on every exit path.
"""

import math
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from integration.blocks import (
    INSTANT_BREAK_BLOCKS, is_hostile, is_solid, should_dig_block,
)
from integration.world_client import DisconnectedError, Position
from .fov import block_focus
from .geometry import (
    DIRECTION_YAWS, RELATIVE_YAWS, canonical_direction, normalize_angle,
    target_along, vector_to_yaw, yaw_to_vector, yaw_towards,
)
from .pathfinder import Goal, Movements

logger = logging.getLogger(__name__)


class Termination(Enum):
    """Why a motion ended."""
    SUCCESS = "success"
    TIMEOUT = "timeout"
    BAD_PATH = "bad_path"
    STUCK = "stuck"
    DISCONNECTED = "disconnected"


@dataclass
class MotionResult:
    """Outcome of one motion request."""
    reached: bool
    distance_moved: float
    remaining_distance: float
    termination_reason: Termination
    message: str = ""
    height_delta: float = 0.0

    @property
    def blocked(self) -> bool:
        return self.termination_reason in (Termination.STUCK, Termination.BAD_PATH)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reached": self.reached,
            "distance_moved": round(self.distance_moved, 2),
            "remaining_distance": round(self.remaining_distance, 2),
            "termination_reason": self.termination_reason.value,
            "message": self.message,
            "height_delta": round(self.height_delta, 2),
        }


class MotionController:
    """
    Executes direction, coordinate and block-target motion requests.

    Usage:
        result = await session.motion.move("north")
        result = await session.motion.move_to(10, 64, -3)
        if result.blocked:
            await session.recovery.recover()
    """

    # Alternate headings tried when a named direction is blocked
    ALTERNATE_OFFSETS = (math.pi / 4, -math.pi / 4, math.pi / 2, -math.pi / 2)

    def __init__(self, session):
        """
        Initialize the motion controller.

        Args:
            session: AgentSession providing client, look smoother,
                navigator, stuck detector and configuration
        """
        self.session = session
        self.client = session.client
        self.config = session.config.motion
        self.look = session.look
        self.navigator = session.navigator

    # Public intents

    async def move(self, intent: str) -> MotionResult:
        """
        Resolve and execute a free-form motion intent.

        Accepts "x y z" or "x z" coordinates, "~dx ~dz" relative offsets,
        direction names and block names.
        """
        coordinates = self._parse_coordinates(intent)
        if coordinates is not None:
            return await self.move_to(*coordinates)
        if canonical_direction(intent) is not None:
            return await self.move_direction(intent)
        return await self.move_to_block(intent)

    async def move_to(self, x: float, y: Optional[float], z: float) -> MotionResult:
        """Go to a coordinate, walking directly when it is close and level."""
        pos = self._require_position()
        ignore_y = y is None
        target = Position(x, pos.y if ignore_y else y, z)
        horizontal = pos.horizontal_distance_to(target)

        if horizontal <= self.config.direct_walk_range and abs(target.y - pos.y) < 1.0:
            result = await self.walk_direct(x, z)
        else:
            result = await self.navigate(target.x, target.y, target.z, ignore_y=ignore_y)
        return self._report(f"{x:.1f} {target.y:.1f} {z:.1f}", result)

    async def move_to_block(self, name: str, stop_distance: float = 2.0) -> MotionResult:
        """Go next to the nearest perceivable block of a type."""
        pos = self._require_position()
        visibility = self.session.visibility
        for block in self.client.find_blocks([name], self.session.config.perception.resource_radius):
            if visibility.is_perceivable(block_focus(block), allow_memory=True):
                result = await self.navigate(block.x + 0.5, block.y, block.z + 0.5, stop_distance=stop_distance)
                return self._report(name, result)

        return self._report(name, MotionResult(
            False, 0.0, 0.0, Termination.STUCK, f"no visible {name} nearby",
        ), blocked=False)

    async def move_direction(self, name: str) -> MotionResult:
        """
        Walk in a named direction.

        The primary heading is tried first; if it yields less than a block
        of progress the alternate headings are tried, then a manual
        walk-with-jump. Total failure is reported as a blocked move.
        """
        direction = canonical_direction(name)
        if direction is None:
            return MotionResult(False, 0.0, 0.0, Termination.STUCK, f"unknown direction: {name}")

        if direction == "up":
            return self._report(direction, await self.jump())
        if direction == "down":
            return self._report(direction, await self.descend())
        if direction == "flee":
            return self._report(direction, await self.emergency_flee())

        yaw = self._resolve_yaw(direction)
        start = self._require_position()

        result = await self._heading_walk(yaw)
        if result.distance_moved >= 1.0:
            return self._report(direction, self._direction_result(start, True, f"moved {direction}", result))
        if result.termination_reason == Termination.DISCONNECTED:
            return self._report(direction, result)

        for offset in self.ALTERNATE_OFFSETS:
            logger.debug(f"Heading {direction} blocked, trying offset {math.degrees(offset):+.0f}")
            result = await self._heading_walk(yaw + offset)
            if result.termination_reason == Termination.DISCONNECTED:
                return self._report(direction, result)
            if self._require_position().horizontal_distance_to(start) >= self.config.alternate_min_progress:
                return self._report(direction, self._direction_result(
                    start, True, f"moved {direction} via alternate heading", result))

        manual = await self._manual_walk(yaw)
        if manual.termination_reason == Termination.DISCONNECTED:
            return self._report(direction, manual)
        if self._require_position().horizontal_distance_to(start) > 2.0:
            return self._report(direction, self._direction_result(
                start, True, f"moved {direction} by jumping", manual))

        return self._report(direction, self._direction_result(
            start, False, f"blocked moving {direction}", manual, Termination.STUCK))

    # Direct walk

    async def walk_direct(
        self,
        x: float,
        z: float,
        stop_distance: Optional[float] = None,
        timeout: Optional[float] = None
    ) -> MotionResult:
        """
        Walk straight toward a point without the pathfinder.

        Args:
            x, z: Target point
            stop_distance: Arrival radius
            timeout: Maximum session time to spend

        Returns:
            MotionResult; a target already within the arrival radius
            succeeds immediately without moving
        """
        cfg = self.config
        stop_distance = cfg.stop_distance if stop_distance is None else stop_distance
        timeout = cfg.walk_timeout if timeout is None else timeout

        start = self._require_position()
        target = Position(x, start.y, z)
        remaining = start.horizontal_distance_to(target)
        if remaining <= stop_distance:
            return MotionResult(True, 0.0, remaining, Termination.SUCCESS, "already there")

        deadline = self.client.now() + timeout
        sample_time = self.client.now()
        sample_pos = start
        stuck_samples = 0
        pos = start

        try:
            with self.look.navigation():
                self.look.snap(yaw_towards(start, target), 0.0)
                self.client.set_control("forward", True)
                while True:
                    await self.client.sleep(cfg.tick_interval)
                    pos = self._require_position()
                    remaining = pos.horizontal_distance_to(target)
                    if remaining <= stop_distance:
                        return self._result(start, pos, target, True, Termination.SUCCESS, "arrived")
                    if self.client.now() >= deadline:
                        return self._result(start, pos, target, False, Termination.TIMEOUT, "walk timed out")

                    yaw = yaw_towards(pos, target)
                    self.look.snap(yaw, 0.0)
                    self.client.set_control("jump", False)

                    if self.client.now() - sample_time < cfg.stuck_sample_interval:
                        continue
                    moved = pos.horizontal_distance_to(sample_pos)
                    sample_time, sample_pos = self.client.now(), pos
                    if moved >= cfg.min_sample_displacement:
                        continue

                    stuck_samples += 1
                    if stuck_samples >= cfg.max_stuck_samples:
                        return self._result(start, pos, target, False, Termination.STUCK, "no progress while walking")
                    cleared = await self._clear_instant_break(pos, yaw)
                    if not cleared and stuck_samples >= cfg.jump_after_stuck_samples:
                        self.client.set_control("jump", True)
                    self.client.set_control("forward", True)
        except DisconnectedError:
            return self._result(start, pos, target, False, Termination.DISCONNECTED, "world link lost")
        finally:
            self.client.clear_controls()

    async def _clear_instant_break(self, pos: Position, yaw: float) -> bool:
        """Break vegetation in the walking path at feet, head or above."""
        dx, dz = yaw_to_vector(yaw)
        for y_offset in (0, 1, 2):
            block = self.client.get_block_at(pos.x + dx * 0.8, pos.y + y_offset, pos.z + dz * 0.8)
            if block is not None and block.name in INSTANT_BREAK_BLOCKS:
                logger.debug(f"Clearing {block.name} at ({block.x}, {block.y}, {block.z})")
                self.client.clear_controls()
                await self.client.dig_block(block.x, block.y, block.z)
                return True
        return False

    # Delegated pathfinding

    async def navigate(
        self,
        x: float,
        y: float,
        z: float,
        stop_distance: Optional[float] = None,
        ignore_y: bool = False,
        timeout: Optional[float] = None
    ) -> MotionResult:
        """
        Hand a goal to the pathfinding delegate and supervise it.

        Aborts with BAD_PATH when the horizontal distance grows beyond the
        initial distance plus a margin, with STUCK when no progress is made
        within the stall timeout after a bounded number of break-or-jump
        cycles, and with TIMEOUT at the deadline.
        """
        cfg = self.config
        stop_distance = cfg.stop_distance if stop_distance is None else stop_distance
        timeout = cfg.path_timeout if timeout is None else timeout

        start = self._require_position()
        target = Position(x, y, z)
        goal = Goal(x, y, z, range=max(stop_distance, 1.0), ignore_y=ignore_y)
        initial_horizontal = start.horizontal_distance_to(target)
        if goal.is_reached(start):
            return MotionResult(True, 0.0, goal.distance_from(start), Termination.SUCCESS, "already there")

        movements = self._movements(start)
        pos = start
        try:
            with self.look.navigation():
                if not self.navigator.set_goal(goal, movements):
                    if self.navigator.reached:
                        return self._result(start, start, target, True, Termination.SUCCESS, "already there", ignore_y)
                    return self._result(start, start, target, False, Termination.STUCK, "no path found", ignore_y)

                now = self.client.now()
                deadline = now + timeout
                best = goal.distance_from(start)
                last_progress = now
                unstick_cycles = 0

                while True:
                    await self.client.sleep(cfg.tick_interval)
                    pos = self._require_position()
                    now = self.client.now()
                    remaining = goal.distance_from(pos)

                    if goal.is_reached(pos):
                        return self._result(start, pos, target, True, Termination.SUCCESS, "arrived", ignore_y)
                    if pos.horizontal_distance_to(target) > initial_horizontal + cfg.bad_path_margin:
                        logger.info(f"Bad path: {pos.horizontal_distance_to(target):.1f} from target "
                                    f"(started at {initial_horizontal:.1f})")
                        return self._result(start, pos, target, False, Termination.BAD_PATH,
                                            "path leads away from target", ignore_y)
                    if now >= deadline:
                        return self._result(start, pos, target, False, Termination.TIMEOUT,
                                            "pathfinding timed out", ignore_y)

                    if not self.navigator.is_moving():
                        moved = pos.distance_to(start)
                        if remaining <= goal.range + 0.5 and moved > 0.5:
                            return self._result(start, pos, target, True, Termination.SUCCESS,
                                                "pathfinder stopped near target", ignore_y)
                        if unstick_cycles >= cfg.max_unstick_cycles:
                            return self._result(start, pos, target, False, Termination.STUCK,
                                                "pathfinder stopped", ignore_y)
                        unstick_cycles += 1
                        if not await self._unstick(pos, goal, movements):
                            return self._result(start, pos, target, False, Termination.STUCK,
                                                "no path found", ignore_y)
                        last_progress = self.client.now()
                        continue

                    if best - remaining > cfg.progress_threshold:
                        best = remaining
                        last_progress = now
                    elif now - last_progress >= cfg.stall_timeout:
                        if unstick_cycles >= cfg.max_unstick_cycles:
                            return self._result(start, pos, target, False, Termination.STUCK,
                                                "no progress toward target", ignore_y)
                        unstick_cycles += 1
                        logger.debug(f"Pathfinding stalled, unstick cycle {unstick_cycles}")
                        if not await self._unstick(pos, goal, movements):
                            return self._result(start, pos, target, False, Termination.STUCK,
                                                "no path found", ignore_y)
                        last_progress = self.client.now()
        except DisconnectedError:
            return self._result(start, pos, target, False, Termination.DISCONNECTED, "world link lost", ignore_y)
        finally:
            self.navigator.stop()
            self.client.clear_controls()

    def _movements(self, pos: Position) -> Movements:
        underground = pos.y + self.session.config.perception.eye_height < self.session.config.perception.surface_y
        return Movements(
            dig_cost=self.config.dig_cost_underground if underground else self.config.dig_cost_surface,
            allow_sprinting=False,
            allow_parkour=False,
            can_dig=True,
            allow_1x1_towers=False,
        )

    async def _unstick(self, pos: Position, goal: Goal, movements: Movements) -> bool:
        """Break the block ahead or jump, then re-issue the goal."""
        self.navigator.stop()
        yaw = yaw_towards(pos, goal.position)
        dx, dz = yaw_to_vector(yaw)
        front_x, front_z = pos.x + dx * 0.8, pos.z + dz * 0.8

        broke = False
        for y_offset in (1, 0):
            block = self.client.get_block_at(front_x, pos.y + y_offset, front_z)
            if block is None or not is_solid(block.name):
                continue
            held = self.client.get_held_item()
            allowed, _ = should_dig_block(block.name, held.name if held else None)
            if allowed and await self.client.dig_block(block.x, block.y, block.z):
                broke = True
        if not broke:
            self.look.snap(yaw, 0.0)
            self.client.set_control("forward", True)
            self.client.set_control("jump", True)
            await self.client.sleep(0.3)
            self.client.clear_controls()

        return self.navigator.set_goal(goal, movements) or self.navigator.reached

    # Direction helpers

    def _resolve_yaw(self, direction: str) -> float:
        if direction in DIRECTION_YAWS:
            return DIRECTION_YAWS[direction]
        if direction in RELATIVE_YAWS:
            return normalize_angle(self.client.get_yaw() + RELATIVE_YAWS[direction])
        return self.session.rng.uniform(-math.pi, math.pi)

    async def _heading_walk(self, yaw: float) -> MotionResult:
        pos = self._require_position()
        target = target_along(pos, yaw, self.config.direction_distance)
        return await self.navigate(target.x, pos.y, target.z, stop_distance=1.0, ignore_y=True)

    async def _manual_walk(self, yaw: float) -> MotionResult:
        """Walk a heading for a fixed time, jumping periodically."""
        cfg = self.config
        start = self._require_position()
        pos = start
        try:
            with self.look.navigation():
                self.look.snap(yaw, 0.0)
                self.client.set_control("forward", True)
                elapsed = 0.0
                last_jump = -cfg.manual_jump_interval
                while elapsed < cfg.manual_walk_duration:
                    jump = elapsed - last_jump >= cfg.manual_jump_interval
                    self.client.set_control("jump", jump)
                    if jump:
                        last_jump = elapsed
                    await self.client.sleep(cfg.tick_interval)
                    elapsed += cfg.tick_interval
                pos = self._require_position()
        except DisconnectedError:
            return MotionResult(False, pos.distance_to(start), 0.0, Termination.DISCONNECTED, "world link lost")
        finally:
            self.client.clear_controls()
        moved = pos.horizontal_distance_to(start)
        return MotionResult(moved > 2.0, moved, 0.0, Termination.SUCCESS if moved > 2.0 else Termination.STUCK,
                            "manual walk", pos.y - start.y)

    def _direction_result(
        self,
        start: Position,
        reached: bool,
        message: str,
        last: MotionResult,
        termination: Termination = Termination.SUCCESS
    ) -> MotionResult:
        pos = self._require_position()
        return MotionResult(
            reached=reached,
            distance_moved=pos.horizontal_distance_to(start),
            remaining_distance=last.remaining_distance,
            termination_reason=termination,
            message=message,
            height_delta=pos.y - start.y,
        )

    # Vertical and reflex motions

    async def jump(self) -> MotionResult:
        """Jump once and report the peak height gained."""
        start = self._require_position()
        peak = start.y
        try:
            self.client.set_control("jump", True)
            await self.client.sleep(self.config.tick_interval)
            self.client.set_control("jump", False)
            for _ in range(20):
                await self.client.sleep(self.config.tick_interval)
                pos = self._require_position()
                peak = max(peak, pos.y)
                if self.client.is_on_ground():
                    break
        except DisconnectedError:
            return MotionResult(False, 0.0, 0.0, Termination.DISCONNECTED, "world link lost")
        finally:
            self.client.clear_controls()
        pos = self._require_position()
        gained = peak - start.y
        if gained > 0.5:
            return MotionResult(True, pos.distance_to(start), 0.0, Termination.SUCCESS,
                                f"jumped {gained:.1f} blocks", pos.y - start.y)
        return MotionResult(False, pos.distance_to(start), 0.0, Termination.STUCK,
                            "no room to jump", pos.y - start.y)

    async def descend(self) -> MotionResult:
        """Dig the block underfoot and drop down."""
        start = self._require_position()
        below = self.client.get_block_at(start.x, start.y - 1, start.z)
        if below is None:
            return MotionResult(False, 0.0, 0.0, Termination.STUCK, "ground below is not loaded")

        try:
            if is_solid(below.name):
                held = self.client.get_held_item()
                allowed, reason = should_dig_block(below.name, held.name if held else None)
                if not allowed:
                    return MotionResult(False, 0.0, 0.0, Termination.STUCK, reason)
                await self.client.dig_block(below.x, below.y, below.z)

            for _ in range(30):
                await self.client.sleep(self.config.tick_interval)
                if self.client.is_on_ground() and self._require_position().y < start.y - 0.5:
                    break
        except DisconnectedError:
            return MotionResult(False, 0.0, 0.0, Termination.DISCONNECTED, "world link lost")
        finally:
            self.client.clear_controls()

        pos = self._require_position()
        dropped = start.y - pos.y
        if dropped > 0.5:
            return MotionResult(True, pos.distance_to(start), 0.0, Termination.SUCCESS,
                                f"descended {dropped:.1f} blocks", -dropped)
        return MotionResult(False, pos.distance_to(start), 0.0, Termination.STUCK, "could not descend", -dropped)

    async def emergency_flee(self, duration: Optional[float] = None) -> MotionResult:
        """Sprint away from the nearest hostile (or a random heading)."""
        duration = self.config.flee_duration if duration is None else duration
        start = self._require_position()

        hostiles = [e for e in self.client.get_nearby_entities(16.0) if is_hostile(e.name)]
        if hostiles:
            nearest = min(hostiles, key=lambda e: e.position.distance_to(start))
            yaw = vector_to_yaw(start.x - nearest.position.x, start.z - nearest.position.z)
        else:
            yaw = self.session.rng.uniform(-math.pi, math.pi)

        pos = start
        try:
            self.look.snap(yaw, 0.0)
            for control in ("forward", "sprint"):
                self.client.set_control(control, True)
            elapsed = 0.0
            while elapsed < duration:
                blocked = self._blocked_ahead(yaw)
                self.client.set_control("jump", blocked)
                await self.client.sleep(self.config.tick_interval)
                elapsed += self.config.tick_interval
            pos = self._require_position()
        except DisconnectedError:
            return MotionResult(False, 0.0, 0.0, Termination.DISCONNECTED, "world link lost")
        finally:
            self.client.clear_controls()

        moved = pos.horizontal_distance_to(start)
        if moved > 1.0:
            return MotionResult(True, moved, 0.0, Termination.SUCCESS, f"fled {moved:.1f} blocks", pos.y - start.y)
        return MotionResult(False, moved, 0.0, Termination.STUCK, "could not flee", pos.y - start.y)

    def _blocked_ahead(self, yaw: float) -> bool:
        pos = self.client.get_position()
        if pos is None:
            return False
        dx, dz = yaw_to_vector(yaw)
        block = self.client.get_block_at(pos.x + dx * 0.8, pos.y, pos.z + dz * 0.8)
        return block is not None and is_solid(block.name)

    # Bookkeeping

    def _require_position(self) -> Position:
        pos = self.client.get_position()
        if pos is None or not self.client.is_connected():
            raise DisconnectedError("no agent position")
        return pos

    def _result(
        self,
        start: Position,
        pos: Position,
        target: Position,
        reached: bool,
        termination: Termination,
        message: str,
        ignore_y: bool = True
    ) -> MotionResult:
        remaining = pos.horizontal_distance_to(target) if ignore_y else pos.distance_to(target)
        return MotionResult(reached, pos.distance_to(start), remaining, termination, message, pos.y - start.y)

    def _report(self, intent: str, result: MotionResult, blocked: Optional[bool] = None) -> MotionResult:
        """Feed a finished motion to the stuck detector and movement log."""
        pos = self.client.get_position()
        if pos is not None and result.termination_reason != Termination.DISCONNECTED:
            self.session.stuck.record_move(
                pos,
                succeeded=result.reached,
                blocked=result.blocked if blocked is None else blocked,
            )
        self.session.movement_log.log_motion(intent, result.to_dict())
        logger.info(f"Move '{intent}': {result.termination_reason.value} "
                    f"(moved {result.distance_moved:.1f}, remaining {result.remaining_distance:.1f})")
        return result

    def _parse_coordinates(self, intent: str) -> Optional[Tuple[float, Optional[float], float]]:
        parts = intent.replace(",", " ").split()
        if len(parts) not in (2, 3):
            return None
        pos = self.client.get_position()
        axes = ("x", "y", "z") if len(parts) == 3 else ("x", "z")
        values = []
        try:
            for axis, part in zip(axes, parts):
                if part.startswith("~"):
                    if pos is None:
                        return None
                    offset = float(part[1:]) if len(part) > 1 else 0.0
                    values.append(getattr(pos, axis) + offset)
                else:
                    values.append(float(part))
        except ValueError:
            return None
        if len(values) == 3:
            return values[0], values[1], values[2]
        return values[0], None, values[1]
