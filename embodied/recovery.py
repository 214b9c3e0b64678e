"""
recovery.py - Ordered recovery strategies for a stuck agent.

Strategies, tried in order until one proves net progress:
1. LiquidEscape: swim up and forward, then walk to the nearest shore
2. HorizontalClear: dig feet and head cells sideways near the surface
3. Pillar: jump and place blocks beneath toward a target height
4. Staircase: dig forward-and-up toward open space
5. JumpSpam: randomized-heading jump bursts

Every strategy measures its own position and height change. Individual
sub-steps (a broken block, a placed block) never count as success.
"""

import math
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from integration.blocks import (
    PILLAR_BLOCKS, UNBREAKABLE_BLOCKS, is_air, is_liquid, is_solid,
)
from integration.world_client import DisconnectedError, Position, WorldClient
from utils.config import RecoveryConfig
from .errors import EngineError
from .geometry import CARDINAL_OFFSETS, DIRECTION_YAWS, EIGHT_DIRECTIONS
from .mining import equip_for_block
from .stuck import StuckPhase

logger = logging.getLogger(__name__)


@dataclass
class StrategyOutcome:
    """Result of one strategy attempt with its measured progress."""
    strategy: str
    success: bool
    message: str
    horizontal_delta: float = 0.0
    vertical_delta: float = 0.0

    @property
    def measured_delta(self) -> Dict[str, float]:
        return {
            "horizontal": round(self.horizontal_delta, 2),
            "vertical": round(self.vertical_delta, 2),
        }


@dataclass
class RecoveryReport:
    success: bool
    phase: StuckPhase
    attempts: int
    outcomes: List[StrategyOutcome] = field(default_factory=list)
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "phase": self.phase.value,
            "attempts": self.attempts,
            "message": self.message,
            "strategies": [
                {"strategy": o.strategy, "success": o.success, "message": o.message, **o.measured_delta}
                for o in self.outcomes
            ],
        }


class RecoveryContext:
    """What a strategy may use during one recovery run."""

    def __init__(self, session):
        self.session = session
        self.client: WorldClient = session.client
        self.config: RecoveryConfig = session.config.recovery
        self.motion = session.motion
        self.look = session.look
        self.rng = session.rng

    def position(self) -> Position:
        pos = self.client.get_position()
        if pos is None:
            raise DisconnectedError("no agent position")
        return pos

    def in_liquid(self) -> bool:
        pos = self.position()
        for y_offset in (0, 1):
            block = self.client.get_block_at(pos.x, pos.y + y_offset, pos.z)
            if block is not None and is_liquid(block.name):
                return True
        return False

    def solid(self, x: int, y: int, z: int) -> bool:
        block = self.client.get_block_at(x, y, z)
        return block is not None and is_solid(block.name)

    def passable(self, x: int, y: int, z: int) -> bool:
        block = self.client.get_block_at(x, y, z)
        return block is not None and not is_solid(block.name)

    async def dig(self, x: int, y: int, z: int) -> bool:
        """Dig a solid block with the best carried tool; False if not allowed."""
        block = self.client.get_block_at(x, y, z)
        if block is None or block.name in UNBREAKABLE_BLOCKS:
            return False
        if not is_solid(block.name):
            return True
        allowed, reason = await equip_for_block(self.client, block.name)
        if not allowed:
            logger.debug(f"Cannot dig {block.name}: {reason}")
            return False
        return await self.client.dig_block(block.x, block.y, block.z)

    async def wait_until(self, predicate: Callable[[], bool], timeout: float, step: float = 0.05) -> bool:
        elapsed = 0.0
        while elapsed < timeout:
            if predicate():
                return True
            await self.client.sleep(step)
            elapsed += step
        return predicate()


class RecoveryStrategy:
    """
    Base class for recovery strategies.

    Subclasses implement run() and verify(); attempt() measures the net
    position and height change around run() and releases controls.
    Height is compared on the block grid once the agent has landed, so a
    jump still in the air never counts as a gain.
    """

    name = "strategy"

    def applies(self, ctx: RecoveryContext) -> bool:
        return True

    async def attempt(self, ctx: RecoveryContext) -> StrategyOutcome:
        start = ctx.position()
        try:
            message = await self.run(ctx)
        finally:
            ctx.client.clear_controls()
        await ctx.wait_until(lambda: ctx.client.is_on_ground() or ctx.in_liquid(), ctx.config.settle_timeout)
        end = ctx.position()
        horizontal = start.horizontal_distance_to(end)
        vertical = float(end.floored().y - start.floored().y)
        success = self.verify(ctx, horizontal, vertical)
        return StrategyOutcome(self.name, success, message, horizontal, vertical)

    async def run(self, ctx: RecoveryContext) -> str:
        """Perform the strategy; returns a short description."""
        raise NotImplementedError

    def verify(self, ctx: RecoveryContext, horizontal: float, vertical: float) -> bool:
        """Decide success from measured net progress only."""
        raise NotImplementedError


class LiquidEscape(RecoveryStrategy):
    """Swim up and forward, then head for walkable shore."""

    name = "liquid_escape"
    SWIM_POLL = 0.2

    def applies(self, ctx: RecoveryContext) -> bool:
        return ctx.in_liquid()

    async def run(self, ctx: RecoveryContext) -> str:
        client = ctx.client
        client.set_control("jump", True)
        client.set_control("forward", True)
        elapsed = 0.0
        while elapsed < ctx.config.swim_timeout and ctx.in_liquid():
            await client.sleep(self.SWIM_POLL)
            elapsed += self.SWIM_POLL
        client.clear_controls()

        shore = self.find_shore(ctx)
        if shore is None:
            return "surfaced, no shore found" if not ctx.in_liquid() else "still in liquid"
        result = await ctx.motion.walk_direct(shore.x, shore.z, stop_distance=0.5, timeout=5.0)
        return f"swam to shore ({result.termination_reason.value})"

    def find_shore(self, ctx: RecoveryContext) -> Optional[Position]:
        """Nearest standable dry cell along the eight directions."""
        pos = ctx.position()
        bx, by, bz = pos.block_tuple()
        for distance in range(1, ctx.config.shore_search_range + 1):
            for _, dx, dz in EIGHT_DIRECTIONS:
                x, z = bx + dx * distance, bz + dz * distance
                for y in (by, by + 1):
                    if self._standable(ctx, x, y, z):
                        return Position(x + 0.5, y, z + 0.5)
        return None

    @staticmethod
    def _standable(ctx: RecoveryContext, x: int, y: int, z: int) -> bool:
        ground = ctx.client.get_block_at(x, y - 1, z)
        if ground is None or not is_solid(ground.name):
            return False
        for cell_y in (y, y + 1):
            block = ctx.client.get_block_at(x, cell_y, z)
            if block is None or is_solid(block.name) or is_liquid(block.name):
                return False
        return True

    def verify(self, ctx: RecoveryContext, horizontal: float, vertical: float) -> bool:
        return not ctx.in_liquid() and (horizontal > 1.0 or vertical > 0.5)


class HorizontalClear(RecoveryStrategy):
    """Dig sideways at feet and head level, then step into the gap."""

    name = "horizontal_clear"
    DIRECTIONS = ("east", "west", "south", "north")

    def applies(self, ctx: RecoveryContext) -> bool:
        pos = ctx.position()
        perception = ctx.session.config.perception
        if pos.y < perception.surface_y:
            return False
        light = ctx.client.get_sky_light(pos.x, pos.y + 2, pos.z)
        return light is not None and light >= perception.brightness_min_light

    async def run(self, ctx: RecoveryContext) -> str:
        start = ctx.position()
        for direction in self.DIRECTIONS:
            dx, dz = CARDINAL_OFFSETS[direction]
            reach = await self._clear(ctx, start, dx, dz)
            if reach == 0:
                continue
            bx, _, bz = start.block_tuple()
            await ctx.motion.walk_direct(bx + dx * reach + 0.5, bz + dz * reach + 0.5, stop_distance=0.3)
            if ctx.position().horizontal_distance_to(start) > 1.5:
                return f"cleared {reach} blocks {direction}"
        return "no direction could be cleared"

    async def _clear(self, ctx: RecoveryContext, start: Position, dx: int, dz: int) -> int:
        """Dig feet and head cells outward; returns how far the gap reaches."""
        bx, by, bz = start.block_tuple()
        reach = 0
        for distance in range(1, ctx.config.clear_depth + 1):
            x, z = bx + dx * distance, bz + dz * distance
            for y in (by, by + 1):
                block = ctx.client.get_block_at(x, y, z)
                if block is None or is_liquid(block.name):
                    return reach
                if is_air(block.name) or not is_solid(block.name):
                    continue
                if not await ctx.dig(x, y, z):
                    return reach
            if not (ctx.passable(x, by, z) and ctx.passable(x, by + 1, z)):
                return reach
            reach = distance
        return reach

    def verify(self, ctx: RecoveryContext, horizontal: float, vertical: float) -> bool:
        return horizontal > 1.5


class Pillar(RecoveryStrategy):
    """Jump and place a block beneath, repeatedly."""

    name = "pillar"

    def applies(self, ctx: RecoveryContext) -> bool:
        return self._material(ctx) is not None

    def _material(self, ctx: RecoveryContext) -> Optional[str]:
        for name in PILLAR_BLOCKS:
            if ctx.client.count_item(name) >= ctx.config.min_pillar_blocks:
                return name
        return None

    async def run(self, ctx: RecoveryContext) -> str:
        client = ctx.client
        placed = 0
        for _ in range(ctx.config.pillar_height):
            pos = ctx.position()
            bx, by, bz = pos.block_tuple()
            if placed and client.get_sky_light(bx, by + 1, bz) == 15:
                return f"reached open sky after {placed} blocks"

            if ctx.solid(bx, by + 2, bz) and not await ctx.dig(bx, by + 2, bz):
                return f"ceiling cannot be dug after {placed} blocks"

            material = self._material(ctx) or next(
                (name for name in PILLAR_BLOCKS if client.count_item(name) > 0), None)
            if material is None or not await client.equip(material):
                return f"ran out of blocks after {placed}"

            client.set_control("jump", True)
            rose = await ctx.wait_until(lambda: ctx.position().y >= by + 1.0, timeout=0.6)
            client.set_control("jump", False)
            if not rose:
                return f"could not jump after {placed} blocks"
            if not await client.place_block((bx, by - 1, bz), (0, 1, 0)):
                return f"placement failed after {placed} blocks"
            placed += 1
            await ctx.wait_until(client.is_on_ground, timeout=1.0)
        return f"placed {placed} blocks"

    def verify(self, ctx: RecoveryContext, horizontal: float, vertical: float) -> bool:
        return vertical > 0.0


class Staircase(RecoveryStrategy):
    """Dig forward-and-up, biased toward the direction with most open space."""

    name = "staircase"

    def choose_direction(self, ctx: RecoveryContext) -> str:
        bx, by, bz = ctx.position().block_tuple()
        best, best_score = "north", -1
        for name, (dx, dz) in CARDINAL_OFFSETS.items():
            score = 0
            for i in range(1, 4):
                for y in (by + i, by + i + 1):
                    if ctx.passable(bx + dx * i, y, bz + dz * i):
                        score += 1
            if score > best_score:
                best, best_score = name, score
        return best

    async def run(self, ctx: RecoveryContext) -> str:
        client = ctx.client
        direction = self.choose_direction(ctx)
        dx, dz = CARDINAL_OFFSETS[direction]
        yaw = DIRECTION_YAWS[direction]

        steps = 0
        for _ in range(ctx.config.staircase_steps):
            bx, by, bz = ctx.position().block_tuple()
            fx, fz = bx + dx, bz + dz
            for cell in ((bx, by + 2, bz), (fx, by + 1, fz), (fx, by + 2, fz)):
                if ctx.solid(*cell) and not await ctx.dig(*cell):
                    return f"stair blocked after {steps} steps"

            if not ctx.solid(fx, by, fz):
                material = next((name for name in PILLAR_BLOCKS if client.count_item(name) > 0), None)
                if material is not None and await client.equip(material):
                    await client.place_block((fx, by - 1, fz), (0, 1, 0))

            ctx.look.snap(yaw, 0.0)
            client.set_control("forward", True)
            client.set_control("jump", True)
            await client.sleep(0.5)
            client.clear_controls()
            await ctx.wait_until(client.is_on_ground, timeout=1.0)
            steps += 1
        return f"climbed {steps} steps {direction}"

    def verify(self, ctx: RecoveryContext, horizontal: float, vertical: float) -> bool:
        return vertical > 0.0 or horizontal > 2.0


class JumpSpam(RecoveryStrategy):
    """Jump bursts on random headings."""

    name = "jump_spam"

    async def run(self, ctx: RecoveryContext) -> str:
        client = ctx.client
        for _ in range(ctx.config.jump_bursts):
            ctx.look.snap(float(ctx.rng.uniform(-math.pi, math.pi)), 0.0)
            client.set_control("forward", True)
            client.set_control("jump", True)
            await client.sleep(0.3)
            client.clear_controls()
            await client.sleep(0.1)
        return f"{ctx.config.jump_bursts} jump bursts"

    def verify(self, ctx: RecoveryContext, horizontal: float, vertical: float) -> bool:
        return horizontal > 3.0 or vertical > 1.0


DEFAULT_STRATEGIES = (LiquidEscape, HorizontalClear, Pillar, Staircase, JumpSpam)


class RecoveryEngine:
    """
    Runs the strategies in order under the stuck detector's budget.

    Usage:
        report = await session.recovery.recover()
        if report.phase == StuckPhase.EXHAUSTED:
            ...  # surface to the decision layer
    """

    def __init__(self, session, strategies: Optional[List[RecoveryStrategy]] = None):
        self.session = session
        self.strategies = strategies if strategies is not None else [cls() for cls in DEFAULT_STRATEGIES]

    async def recover(self) -> RecoveryReport:
        """
        Run one recovery attempt.

        Returns:
            RecoveryReport; success only when a strategy verified progress
        """
        stuck = self.session.stuck
        if not stuck.begin_recovery():
            message = "recovery budget exhausted" if stuck.phase == StuckPhase.EXHAUSTED else "already recovering"
            return RecoveryReport(False, stuck.phase, stuck.state.recovery_attempts, message=message)

        attempts = stuck.state.recovery_attempts
        logger.info(f"Recovery attempt {attempts}/{stuck.config.max_attempts}")
        outcomes: List[StrategyOutcome] = []
        success = False
        try:
            with self.session.look.suppressed("recovery"):
                ctx = RecoveryContext(self.session)
                for strategy in self.strategies:
                    if not strategy.applies(ctx):
                        continue
                    outcome = await self._attempt(strategy, ctx)
                    outcomes.append(outcome)
                    self.session.movement_log.log_recovery(outcome.strategy, outcome.success, outcome.measured_delta)
                    logger.info(f"Strategy {outcome.strategy}: {'ok' if outcome.success else 'failed'} "
                                f"({outcome.message}; h={outcome.horizontal_delta:.1f}, v={outcome.vertical_delta:.1f})")
                    if outcome.success:
                        success = True
                        break
        finally:
            self.session.client.clear_controls()
            phase = stuck.finish_recovery(success)

        message = f"recovered via {outcomes[-1].strategy}" if success else "no strategy made progress"
        return RecoveryReport(success, phase, attempts, outcomes, message)

    async def _attempt(self, strategy: RecoveryStrategy, ctx: RecoveryContext) -> StrategyOutcome:
        start = ctx.position()
        try:
            return await strategy.attempt(ctx)
        except EngineError as e:
            end = ctx.position()
            return StrategyOutcome(strategy.name, False, str(e),
                                   start.horizontal_distance_to(end), end.y - start.y)
