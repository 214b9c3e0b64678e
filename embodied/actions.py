"""
actions.py - Place, attack, dig-up, wait and equip protocols.

Each protocol returns an ActionOutcome or raises an EngineError that the
executor converts into one.
"""

import logging
from typing import List, Optional, Tuple

from integration.blocks import (
    FUNCTIONAL_BLOCKS, is_hostile, is_solid, normalize, tool_info,
)
from integration.world_client import DisconnectedError, Entity, Position
from .errors import BlockedError, CapabilityMissingError, InvalidRequestError, NotFoundError
from .fov import entity_focus
from .geometry import CARDINAL_OFFSETS, pitch_towards, snap_to_cardinal, yaw_towards
from .mining import equip_for_block
from .motion import Termination
from .outcome import ActionOutcome, measure_delta

logger = logging.getLogger(__name__)

Cell = Tuple[int, int, int]


class ActionProtocols:
    """
    Physical actions other than motion and mining.

    Usage:
        outcome = await session.actions.place("crafting_table")
        outcome = await session.actions.attack("zombie")
    """

    ATTACK_SEARCH_RADIUS = 16.0
    ATTACK_RANGE = 3.0
    MAX_SWINGS = 10
    SWING_INTERVAL = 0.5
    MAX_WAIT = 30.0

    def __init__(self, session):
        self.session = session
        self.client = session.client

    # Placement

    async def place(self, block_name: str) -> ActionOutcome:
        """
        Place a block from the inventory.

        Functional blocks go on the ground in front of the agent and are
        remembered as landmarks; building blocks go under the agent.
        """
        name = normalize(block_name)
        if not name:
            raise InvalidRequestError("place needs a block name")
        if self.client.count_item(name) == 0:
            raise CapabilityMissingError(f"no {name} in inventory")
        if not await self.client.equip(name):
            raise CapabilityMissingError(f"cannot hold {name}")

        with self.session.look.suppressed("place"):
            if name in FUNCTIONAL_BLOCKS:
                return await self._place_in_front(name)
            return await self._place_beneath(name)

    async def _place_in_front(self, name: str) -> ActionOutcome:
        pos = self._position()
        target = self._find_spot(pos)
        if target is None:
            raise BlockedError(f"no free ground near the agent for {name}")

        tx, ty, tz = target
        center = Position(tx + 0.5, ty + 0.5, tz + 0.5)
        eye = pos.offset(0, self.session.config.perception.eye_height, 0)
        self.session.look.snap(yaw_towards(pos, center), pitch_towards(eye, center))

        if not await self.client.place_block((tx, ty - 1, tz), (0, 1, 0)):
            raise BlockedError(f"could not place {name} at {target}")
        placed = self.client.get_block_at(tx, ty, tz)
        if placed is None or placed.name != name:
            raise BlockedError(f"{name} did not appear at {target}")

        self.session.landmarks.record(name, target)
        logger.info(f"Placed {name} at {target}")
        return ActionOutcome(True, f"placed {name}", data={"block": name, "position": list(target)})

    def _find_spot(self, pos: Position) -> Optional[Cell]:
        """Free cell on solid ground, preferring two blocks ahead."""
        bx, by, bz = pos.block_tuple()
        facing = snap_to_cardinal(self.client.get_yaw())
        headings: List[Tuple[int, int]] = [facing] + [d for d in CARDINAL_OFFSETS.values() if d != facing]
        for dx, dz in headings:
            for distance in (2, 1):
                x, z = bx + dx * distance, bz + dz * distance
                ground = self.client.get_block_at(x, by - 1, z)
                cell = self.client.get_block_at(x, by, z)
                if ground is None or cell is None:
                    continue
                if is_solid(ground.name) and not is_solid(cell.name):
                    return x, by, z
        return None

    async def _place_beneath(self, name: str) -> ActionOutcome:
        client = self.client
        start = self._position()
        bx, by, bz = start.block_tuple()
        above = client.get_block_at(bx, by + 2, bz)
        if above is None or is_solid(above.name):
            raise BlockedError("no headroom to jump and place")

        client.set_control("jump", True)
        try:
            rose = False
            for _ in range(12):
                await client.sleep(0.05)
                if self._position().y >= by + 1.0:
                    rose = True
                    break
        finally:
            client.set_control("jump", False)
        if not rose:
            raise BlockedError("could not jump to place beneath")
        if not await client.place_block((bx, by - 1, bz), (0, 1, 0)):
            raise BlockedError(f"could not place {name} beneath")

        for _ in range(20):
            if client.is_on_ground():
                break
            await client.sleep(0.05)
        end = self._position()
        return ActionOutcome(
            success=end.y > start.y,
            message=f"placed {name} beneath",
            measured_delta=measure_delta(start, end),
            data={"block": name, "position": [bx, by, bz]},
        )

    # Combat

    async def attack(self, target: str) -> ActionOutcome:
        """Approach and hit the nearest perceivable matching entity."""
        wanted = normalize(target)
        if not wanted:
            raise InvalidRequestError("attack needs a target")
        entity = self._find_entity(wanted)
        if entity is None:
            raise NotFoundError(f"no visible {wanted} nearby")

        await self._equip_weapon()
        swings = 0
        with self.session.look.suppressed("attack"):
            while swings < self.MAX_SWINGS:
                current = self._entity(entity.entity_id)
                if current is None:
                    return ActionOutcome(True, f"defeated {entity.name} in {swings} hits",
                                         data={"target": entity.name, "swings": swings})

                pos = self._position()
                if current.position.distance_to(pos) > self.ATTACK_RANGE:
                    result = await self.session.motion.walk_direct(
                        current.position.x, current.position.z,
                        stop_distance=self.ATTACK_RANGE - 0.5, timeout=2.0,
                    )
                    if result.termination_reason == Termination.DISCONNECTED:
                        raise DisconnectedError(result.message)

                focus = entity_focus(current)
                pos = self._position()
                eye = pos.offset(0, self.session.config.perception.eye_height, 0)
                self.session.look.snap(yaw_towards(pos, focus), pitch_towards(eye, focus))
                await self.client.attack(current.entity_id)
                swings += 1
                await self.client.sleep(self.SWING_INTERVAL)

        if self._entity(entity.entity_id) is None:
            return ActionOutcome(True, f"defeated {entity.name} in {swings} hits",
                                 data={"target": entity.name, "swings": swings})
        return ActionOutcome(False, f"{entity.name} survived {swings} hits",
                             data={"target": entity.name, "swings": swings})

    def _find_entity(self, wanted: str) -> Optional[Entity]:
        pos = self._position()
        visibility = self.session.visibility
        matches = [
            entity for entity in self.client.get_nearby_entities(self.ATTACK_SEARCH_RADIUS)
            if not entity.is_item
            and (entity.name == wanted or (wanted in ("hostile", "mob") and is_hostile(entity.name)))
            and visibility.is_perceivable(entity_focus(entity))
        ]
        if not matches:
            return None
        return min(matches, key=lambda e: (e.position.distance_to(pos), e.entity_id))

    def _entity(self, entity_id: int) -> Optional[Entity]:
        for entity in self.client.get_nearby_entities(self.ATTACK_SEARCH_RADIUS * 2):
            if entity.entity_id == entity_id:
                return entity
        return None

    async def _equip_weapon(self) -> None:
        rank = {"sword": 2, "axe": 1}
        best, best_rank = None, 0
        for item in self.client.inventory_counts():
            tool, _ = tool_info(item)
            if rank.get(tool, 0) > best_rank:
                best, best_rank = item, rank[tool]
        if best is not None:
            await self.client.equip(best)

    # Digging and utility

    async def dig_up(self) -> ActionOutcome:
        """Open headroom by breaking the head-level and overhead blocks."""
        pos = self._position()
        bx, by, bz = pos.block_tuple()
        dug = []
        with self.session.look.suppressed("dig_up"):
            for y in (by + 1, by + 2):
                block = self.client.get_block_at(bx, y, bz)
                if block is None or not is_solid(block.name):
                    continue
                allowed, reason = await equip_for_block(self.client, block.name)
                if not allowed:
                    raise CapabilityMissingError(reason)
                self.session.look.snap(self.client.get_yaw(), 1.5)
                if await self.client.dig_block(bx, y, bz):
                    dug.append(block.name)

        clear = True
        for y in (by + 1, by + 2):
            block = self.client.get_block_at(bx, y, bz)
            if block is None or is_solid(block.name):
                clear = False
        if not dug:
            message = "headroom already clear" if clear else "nothing could be dug"
        else:
            message = f"dug {', '.join(dug)}"
        return ActionOutcome(clear, message, data={"dug": dug})

    async def wait(self, seconds: float) -> ActionOutcome:
        if seconds < 0:
            raise InvalidRequestError("wait needs a non-negative duration")
        seconds = min(seconds, self.MAX_WAIT)
        await self.client.sleep(seconds)
        return ActionOutcome(True, f"waited {seconds:.1f}s")

    async def equip(self, item_name: str) -> ActionOutcome:
        name = normalize(item_name)
        if not name:
            raise InvalidRequestError("equip needs an item name")
        if self.client.count_item(name) == 0:
            raise CapabilityMissingError(f"no {name} in inventory")
        if not await self.client.equip(name):
            raise CapabilityMissingError(f"cannot hold {name}")
        return ActionOutcome(True, f"holding {name}", data={"item": name})

    def _position(self) -> Position:
        pos = self.client.get_position()
        if pos is None:
            raise DisconnectedError("no agent position")
        return pos
