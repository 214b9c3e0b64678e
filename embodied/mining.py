"""
mining.py - Mining sub-protocol.

Steps for one mine request:
- Select the best perceivable candidate of the requested block type
- Check the capability precondition (tool) before touching anything
- Orient and approach to tool reach
- Break the block and verify the block state changed
- Search for the dropped items, approach them and compare inventory

Success means the block state changed. Collection is reported
separately in the outcome data.
"""

import logging
from typing import Dict, List, Optional, Tuple

from integration.blocks import (
    FUNCTIONAL_BLOCKS, LEAF_BLOCKS, LOG_BLOCKS, best_tool, get_properties, is_solid,
    normalize, should_dig_block,
)
from integration.world_client import Block, DisconnectedError, Entity, Position, WorldClient
from .errors import CapabilityMissingError, EngineError, NotFoundError, UnreachableError
from .fov import block_focus
from .geometry import pitch_towards, yaw_towards
from .motion import MotionResult, Termination
from .outcome import ActionOutcome, measure_delta

logger = logging.getLogger(__name__)


async def equip_for_block(client: WorldClient, block_name: str) -> Tuple[bool, str]:
    """
    Equip the best carried tool for a block and re-check the dig rule.

    Returns:
        Tuple of (allowed, reason) for the item held afterwards
    """
    held = client.get_held_item()
    held_name = held.name if held else None
    tool = best_tool(block_name, client.inventory_counts().keys())
    if tool is not None and tool != held_name and await client.equip(tool):
        held_name = tool
    return should_dig_block(block_name, held_name)


def is_enclosed(client: WorldClient, block: Block) -> bool:
    """True when every face of the block touches a solid block or leaves."""
    for dx, dy, dz in ((1, 0, 0), (-1, 0, 0), (0, 1, 0), (0, -1, 0), (0, 0, 1), (0, 0, -1)):
        neighbor = client.get_block_at(block.x + dx, block.y + dy, block.z + dz)
        if neighbor is None:
            return False
        if not (is_solid(neighbor.name) or neighbor.name in LEAF_BLOCKS):
            return False
    return True


class MiningProtocol:
    """
    Mines one block of a requested type.

    Usage:
        outcome = await MiningProtocol(session).mine("oak_log")
    """

    def __init__(self, session):
        self.session = session
        self.client = session.client
        self.config = session.config.mining

    async def mine(self, block_name: str) -> ActionOutcome:
        """
        Mine the best candidate block.

        Raises:
            NotFoundError: No perceivable candidate
            CapabilityMissingError: Held tools cannot harvest the block
            UnreachableError: Still out of reach after the approach
            EngineError: The dig did not change the block
        """
        name = normalize(block_name)
        start = self._position()
        before = self.client.inventory_counts()

        block = self.select_candidate(name, start)
        if block is None:
            raise NotFoundError(f"no visible {name} within {self.config.search_radius:.0f} blocks")

        allowed, reason = await equip_for_block(self.client, name)
        if not allowed:
            raise CapabilityMissingError(reason)

        await self.approach(block)
        eye = self._position().offset(0, self.session.config.perception.eye_height, 0)
        distance = eye.distance_to(block.center)
        if distance > self.config.max_reach:
            raise UnreachableError(f"{name} is {distance:.1f} blocks away after approach")

        allowed, reason = await equip_for_block(self.client, name)
        if not allowed:
            raise CapabilityMissingError(reason)

        self._face(block.center)
        logger.info(f"Mining {name} at ({block.x}, {block.y}, {block.z})")
        await self.client.dig_block(block.x, block.y, block.z)

        after_dig = self.client.get_block_at(block.x, block.y, block.z)
        if after_dig is None or after_dig.name == name:
            raise EngineError(f"{name} at ({block.x}, {block.y}, {block.z}) did not break")
        if name in FUNCTIONAL_BLOCKS:
            self.session.landmarks.forget((block.x, block.y, block.z))

        await self.collect_drops(block, before)
        after = self.client.inventory_counts()
        delta = measure_delta(start, self._position(), before, after)
        gained = {item: count for item, count in delta["inventory"].items() if count > 0}
        total = sum(gained.values())

        message = f"mined {name}, collected {total}" if total else "broke block, nothing collected"
        return ActionOutcome(
            success=True,
            message=message,
            measured_delta=delta,
            data={
                "block": name,
                "position": [block.x, block.y, block.z],
                "block_changed": True,
                "collected": total,
                "items": gained,
            },
        )

    def select_candidate(self, name: str, pos: Position) -> Optional[Block]:
        """
        Pick the best perceivable block of a type.

        Logs prefer the agent's own level over canopy positions and fully
        enclosed logs are rejected.
        """
        visibility = self.session.visibility
        candidates = [
            block for block in self.client.find_blocks([name], self.config.search_radius, self.config.max_candidates)
            if visibility.is_perceivable(block_focus(block))
        ]
        if name in LOG_BLOCKS:
            candidates = [block for block in candidates if not is_enclosed(self.client, block)]
        if not candidates:
            return None

        def score(block: Block) -> Tuple[float, Tuple[int, int, int]]:
            distance = block.center.distance_to(pos)
            if name in LOG_BLOCKS:
                distance += 2.0 * abs(block.y - pos.block_y)
            return distance, (block.x, block.y, block.z)

        return min(candidates, key=score)

    async def approach(self, block: Block) -> None:
        """Walk or path until the block is within tool reach."""
        motion = self.session.motion
        eye_height = self.session.config.perception.eye_height
        pos = self._position()
        if pos.offset(0, eye_height, 0).distance_to(block.center) <= self.config.reach:
            return

        if pos.horizontal_distance_to(block.center) <= self.session.config.motion.direct_walk_range + 1.0:
            result = await motion.walk_direct(
                block.x + 0.5, block.z + 0.5, stop_distance=self.config.reach - 2.0,
            )
        else:
            result = await motion.navigate(
                block.x + 0.5, block.y, block.z + 0.5, stop_distance=self.config.reach - 1.0,
            )
        self._check(result)

    async def collect_drops(self, block: Block, before: Dict[str, int]) -> int:
        """
        Find and approach the items dropped by a broken block.

        Drops are searched for actively rather than awaited as events.

        Returns:
            Number of items gained
        """
        drop_names = {drop for drop, _ in get_properties(block.name).drops}
        if not drop_names:
            return 0

        deadline = self.client.now() + self.config.collect_timeout
        while self.client.now() < deadline:
            gained = self._gained(before)
            drops = self._find_drops(block.center, drop_names)
            if gained and not drops:
                return gained
            if not drops:
                await self.client.sleep(0.1)
                continue

            pos = self._position()
            item = min(drops, key=lambda entity: entity.position.distance_to(pos))
            await self._approach_item(item, pos)
            await self.client.sleep(0.1)

        # Final sweep for items still settling
        await self.client.sleep(0.25)
        return self._gained(before)

    def _find_drops(self, origin: Position, names) -> List[Entity]:
        found = []
        for entity in self.client.get_nearby_entities(self.config.drop_search_radius * 2):
            if not entity.is_item or entity.item_name not in names:
                continue
            if entity.position.distance_to(origin) <= self.config.drop_search_radius:
                found.append(entity)
        return found

    async def _approach_item(self, item: Entity, pos: Position) -> None:
        target = item.position
        if pos.distance_to(target) <= self.config.pickup_reach and abs(target.y - pos.y) < 1.0:
            result = await self.session.motion.walk_direct(target.x, target.z, stop_distance=0.3, timeout=1.0)
        elif abs(target.y - pos.y) >= 1.0:
            # Fell into a gap or landed above
            result = await self.session.motion.navigate(target.x, target.y, target.z, stop_distance=1.0, timeout=4.0)
        else:
            result = await self.session.motion.walk_direct(target.x, target.z, stop_distance=0.5, timeout=2.0)
        self._check(result)

    def _gained(self, before: Dict[str, int]) -> int:
        after = self.client.inventory_counts()
        return sum(max(0, count - before.get(name, 0)) for name, count in after.items())

    def _face(self, target: Position) -> None:
        pos = self._position()
        eye = pos.offset(0, self.session.config.perception.eye_height, 0)
        self.session.look.snap(yaw_towards(pos, target), pitch_towards(eye, target))

    def _position(self) -> Position:
        pos = self.client.get_position()
        if pos is None:
            raise DisconnectedError("no agent position")
        return pos

    @staticmethod
    def _check(result: MotionResult) -> None:
        if result.termination_reason == Termination.DISCONNECTED:
            raise DisconnectedError(result.message)

