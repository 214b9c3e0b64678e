"""
sim_world.py - In-memory voxel world for dry runs and testing.

This module provides a simplified world session that:
- Stores a sparse block map (anything unset is air)
- Moves the agent kinematically from its control states (walk, sprint,
  jump, gravity, swimming) with per-block collision
- Breaks and places blocks, drops items and picks them up on contact
- Publishes physics ticks and world notifications on the event bus

Time only advances through sleep(), so tests run instantly and
deterministically. Every sleeping caller advances the shared clock, so
a single coroutine should drive the simulation at a time.

Usage:
    world = SimulatedWorld(spawn=Position(0.5, 64, 0.5))
    world.fill(-8, 63, -8, 8, 63, 8, "grass_block")
    await world.connect()
    world.set_control("forward", True)
    await world.sleep(1.0)
"""

import asyncio
import math
import logging
import numpy as np
from typing import Dict, Iterable, List, Optional, Set, Tuple

from . import events
from .blocks import (
    FUNCTIONAL_BLOCKS, LOG_BLOCKS, PILLAR_BLOCKS, STONE_FAMILY, BLOCK_PROPERTIES,
    UNBREAKABLE_BLOCKS, can_harvest, dig_time, get_properties, is_air,
    is_liquid, is_solid, is_transparent, is_water, normalize, tool_info,
)
from .events import EventBus
from .world_client import (
    CONTROLS, Block, ClientConfig, ConnectionState, DisconnectedError, Entity,
    Item, Position, WorldClient,
)

logger = logging.getLogger(__name__)

Cell = Tuple[int, int, int]

PLACEABLE_BLOCKS = set(PILLAR_BLOCKS) | FUNCTIONAL_BLOCKS | LOG_BLOCKS | STONE_FAMILY | {
    name for name in BLOCK_PROPERTIES if not name.endswith("_ore")
}


class SimulatedWorld(WorldClient):
    """
    Mock world session implementing the WorldClient surface.

    Physics is intentionally coarse: the agent is a point column 1.8
    blocks tall, full blocks collide, everything in NON_SOLID_BLOCKS is
    passable, and sky-light is 15 for any cell with no opaque block above
    it in its column.
    """

    TICK = 0.05
    BODY_HEIGHT = 1.8
    WALK_SPEED = 4.3
    SPRINT_SPEED = 5.6
    SNEAK_SPEED = 1.3
    SWIM_SPEED = 2.0
    JUMP_VELOCITY = 10.0
    SWIM_UP_SPEED = 3.0
    GRAVITY = 32.0
    TERMINAL_VELOCITY = 40.0
    PICKUP_RADIUS = 1.5
    PICKUP_DELAY = 0.25
    ATTACK_REACH = 4.0
    INVENTORY_SLOTS = 36
    STACK_SIZE = 64

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        bus: Optional[EventBus] = None,
        spawn: Optional[Position] = None,
        seed: Optional[int] = None,
        world_top: int = 320
    ):
        """
        Initialize the simulated world.

        Args:
            config: Client configuration
            bus: Event bus (created if omitted)
            spawn: Agent spawn position
            seed: Random seed for item scatter
            world_top: Highest Y considered for sky-light
        """
        super().__init__(config, bus)
        self.spawn = spawn or Position(0.5, 64.0, 0.5)
        self.world_top = world_top
        self._rng = np.random.default_rng(seed)

        self._blocks: Dict[Cell, str] = {}
        self._unloaded: Set[Cell] = set()

        self._position: Optional[Position] = None
        self._vy = 0.0
        self._yaw = 0.0
        self._pitch = 0.0
        self._on_ground = False
        self._controls = {control: False for control in CONTROLS}

        self._slots: List[Optional[Item]] = [None] * self.INVENTORY_SLOTS
        self._held_slot: Optional[int] = None

        self._health = 20.0
        self._on_fire = False

        self._entities: Dict[int, Entity] = {}
        self._next_entity_id = 1

        self._time = 0.0
        self._pending = 0.0
        self.ticks = 0

    # Scene construction

    def set_block(self, x: int, y: int, z: int, name: str) -> None:
        """Set a block; 'air' removes it."""
        name = normalize(name)
        if is_air(name):
            self._blocks.pop((x, y, z), None)
        else:
            self._blocks[(x, y, z)] = name

    def fill(self, x1: int, y1: int, z1: int, x2: int, y2: int, z2: int, name: str) -> None:
        """Fill an inclusive box with one block type."""
        for x in range(min(x1, x2), max(x1, x2) + 1):
            for y in range(min(y1, y2), max(y1, y2) + 1):
                for z in range(min(z1, z2), max(z1, z2) + 1):
                    self.set_block(x, y, z, name)

    def unload(self, x: int, y: int, z: int) -> None:
        """Mark a cell as not loaded (queries return None)."""
        self._unloaded.add((x, y, z))

    def teleport(self, position: Position) -> None:
        self._position = position.copy()
        self._vy = 0.0
        self._update_ground()

    def give(self, name: str, count: int = 1) -> None:
        """Add items to the inventory, stacking where possible."""
        name = normalize(name)
        remaining = count
        for slot, item in enumerate(self._slots):
            if remaining <= 0:
                break
            if item is not None and item.name == name and item.count < self.STACK_SIZE:
                added = min(remaining, self.STACK_SIZE - item.count)
                item.count += added
                remaining -= added
        for slot, item in enumerate(self._slots):
            if remaining <= 0:
                break
            if item is None:
                added = min(remaining, self.STACK_SIZE)
                self._slots[slot] = Item(name, added, slot)
                remaining -= added
        if remaining > 0:
            logger.warning(f"Inventory full, dropped {remaining} {name}")

    def remove_item(self, name: str, count: int = 1) -> int:
        """Remove up to count items. Returns how many were removed."""
        name = normalize(name)
        removed = 0
        for slot, item in enumerate(self._slots):
            if item is None or item.name != name or removed >= count:
                continue
            taken = min(item.count, count - removed)
            item.count -= taken
            removed += taken
            if item.count <= 0:
                self._slots[slot] = None
                if self._held_slot == slot:
                    self._held_slot = None
        return removed

    def spawn_entity(self, entity_type: str, position: Position, health: float = 20.0, **metadata) -> Entity:
        entity = Entity(
            entity_id=self._next_entity_id,
            entity_type=normalize(entity_type),
            position=position.copy(),
            metadata={"health": health, **metadata},
        )
        self._next_entity_id += 1
        self._entities[entity.entity_id] = entity
        self.bus.publish(events.ENTITY_SPAWN, entity)
        return entity

    def spawn_item(self, name: str, position: Position, count: int = 1) -> Entity:
        """Drop an item entity; it settles onto the first solid block below."""
        resting = position.copy()
        cell_y = math.floor(resting.y)
        while cell_y > -64 and not self._solid_cell(math.floor(resting.x), cell_y - 1, math.floor(resting.z)):
            cell_y -= 1
        resting.y = float(cell_y)
        return self.spawn_entity(
            "item", resting, health=1.0, item=normalize(name), count=count,
            pickup_at=self._time + self.PICKUP_DELAY,
        )

    def remove_entity(self, entity_id: int) -> None:
        entity = self._entities.pop(entity_id, None)
        if entity is not None:
            self.bus.publish(events.ENTITY_GONE, entity)

    def apply_damage(self, amount: float, source: str = "generic") -> None:
        """Reduce health and publish the health change."""
        if self._position is None:
            return
        previous = self._health
        self._health = max(0.0, self._health - amount)
        self.bus.publish(events.HEALTH, {
            "health": self._health, "previous": previous, "source": source,
            "time": self.now(),
        })
        if self._health <= 0:
            self.bus.publish(events.DEATH, {"position": self._position.copy(), "time": self.now()})
            self._respawn()

    def set_on_fire(self, burning: bool) -> None:
        self._on_fire = burning

    def block_name(self, x: int, y: int, z: int) -> str:
        return self._blocks.get((x, y, z), "air")

    # Connection

    async def connect(self) -> bool:
        logger.info(f"[DRY RUN] Simulated session for {self.config.username}")
        self._state = ConnectionState.PLAYING
        self._respawn()
        return True

    async def disconnect(self) -> None:
        if self._state == ConnectionState.DISCONNECTED:
            return
        self.drop_link()

    def drop_link(self) -> None:
        """Lose the connection immediately (usable from tick handlers)."""
        self._state = ConnectionState.DISCONNECTED
        for control in CONTROLS:
            self._controls[control] = False
        logger.info("[DRY RUN] Simulated session disconnected")
        self.bus.publish(events.DISCONNECT, {"time": self.now()})

    def _respawn(self) -> None:
        self._position = self.spawn.copy()
        self._vy = 0.0
        self._health = 20.0
        self._on_fire = False
        self._update_ground()
        self.bus.publish(events.RESPAWN, {"position": self._position.copy(), "time": self.now()})

    # Agent state

    def get_position(self) -> Optional[Position]:
        return self._position.copy() if self._position is not None else None

    def get_yaw(self) -> float:
        return self._yaw

    def get_pitch(self) -> float:
        return self._pitch

    def get_health(self) -> float:
        return self._health

    def is_on_fire(self) -> bool:
        return self._on_fire

    def is_on_ground(self) -> bool:
        return self._on_ground

    def get_control(self, control: str) -> bool:
        return self._controls[control]

    # World queries

    def get_block_at(self, x: float, y: float, z: float) -> Optional[Block]:
        cell = (math.floor(x), math.floor(y), math.floor(z))
        if cell in self._unloaded:
            return None
        return Block(cell[0], cell[1], cell[2], self._blocks.get(cell, "air"))

    def get_sky_light(self, x: float, y: float, z: float) -> Optional[int]:
        bx, by, bz = math.floor(x), math.floor(y), math.floor(z)
        if (bx, by, bz) in self._unloaded:
            return None
        for cy in range(by + 1, self.world_top):
            name = self._blocks.get((bx, cy, bz))
            if name is not None and not is_transparent(name):
                return 0
        return 15

    def get_nearby_entities(self, radius: float = 32.0) -> List[Entity]:
        if self._position is None:
            return []
        return [
            entity for entity in self._entities.values()
            if entity.position.distance_to(self._position) <= radius
        ]

    def find_blocks(
        self,
        names: Iterable[str],
        max_distance: float = 32.0,
        count: int = 10
    ) -> List[Block]:
        if self._position is None:
            return []
        wanted = {normalize(name) for name in names}
        found = []
        for cell, name in self._blocks.items():
            if name not in wanted or cell in self._unloaded:
                continue
            block = Block(cell[0], cell[1], cell[2], name)
            distance = block.center.distance_to(self._position)
            if distance <= max_distance:
                found.append((distance, cell, block))
        found.sort(key=lambda entry: (entry[0], entry[1]))
        return [block for _, _, block in found[:count]]

    def get_inventory(self) -> List[Item]:
        return [Item(item.item_id, item.count, item.slot) for item in self._slots if item is not None]

    def get_held_item(self) -> Optional[Item]:
        if self._held_slot is None:
            return None
        return self._slots[self._held_slot]

    # Controls

    def set_control(self, control: str, state: bool) -> None:
        if control not in self._controls:
            raise ValueError(f"Unknown control: {control}")
        self._controls[control] = bool(state) and self.is_connected()

    def set_orientation(self, yaw: float, pitch: float) -> None:
        self._yaw = math.atan2(math.sin(yaw), math.cos(yaw))
        self._pitch = max(-math.pi / 2, min(math.pi / 2, pitch))

    # World actions

    async def dig_block(self, x: int, y: int, z: int) -> bool:
        self.require_connection()
        cell = (x, y, z)
        name = self._blocks.get(cell, "air")
        if cell in self._unloaded or is_air(name) or is_liquid(name) or name in UNBREAKABLE_BLOCKS:
            return False

        held = self.get_held_item()
        held_name = held.name if held else None
        await self.sleep(dig_time(name, held_name))
        if self._blocks.get(cell) != name:
            return False

        del self._blocks[cell]
        self.bus.publish(events.BLOCK_BROKEN, {"name": name, "position": cell, "time": self.now()})

        if can_harvest(name, held_name):
            for drop, count in get_properties(name).drops:
                scatter = self._rng.uniform(-0.2, 0.2, size=2)
                self.spawn_item(drop, Position(x + 0.5 + scatter[0], y + 0.25, z + 0.5 + scatter[1]), count)
        return True

    async def place_block(self, reference: Cell, face: Cell) -> bool:
        self.require_connection()
        held = self.get_held_item()
        if held is None or held.name not in PLACEABLE_BLOCKS:
            return False
        if not self._solid_cell(*reference):
            return False

        target = (reference[0] + face[0], reference[1] + face[1], reference[2] + face[2])
        if target in self._unloaded or self._solid_cell(*target):
            return False
        if target in self._body_cells():
            return False

        self._blocks[target] = held.name
        self.remove_item(held.name, 1)
        self.bus.publish(events.BLOCK_PLACED, {"name": held.name, "position": target, "time": self.now()})
        return True

    async def equip(self, item_name: str) -> bool:
        self.require_connection()
        name = normalize(item_name)
        for slot, item in enumerate(self._slots):
            if item is not None and item.name == name:
                self._held_slot = slot
                return True
        return False

    async def attack(self, entity_id: int) -> bool:
        self.require_connection()
        entity = self._entities.get(entity_id)
        if entity is None or self._position is None:
            return False
        eye = self._position.offset(0, 1.62, 0)
        if entity.position.distance_to(eye) > self.ATTACK_REACH:
            return False

        held = self.get_held_item()
        tool, _ = tool_info(held.name if held else None)
        damage = {"sword": 6.0, "axe": 5.0}.get(tool, 1.0)
        entity.metadata["health"] = entity.metadata.get("health", 20.0) - damage
        if entity.metadata["health"] <= 0:
            self.remove_entity(entity_id)
        return True

    # Time

    def now(self) -> float:
        return self._time + self._pending

    async def sleep(self, seconds: float) -> None:
        self.require_connection()
        self._pending += max(0.0, seconds)
        while self._pending >= self.TICK - 1e-9:
            self._pending -= self.TICK
            self._time += self.TICK
            self._step(self.TICK)
            if not self.is_connected():
                raise DisconnectedError("world link lost during tick")
            await asyncio.sleep(0)
        await asyncio.sleep(0)

    # Physics

    def _step(self, dt: float) -> None:
        """Advance the agent and item pickup by one tick."""
        if self._position is None:
            return
        self.ticks += 1
        self.bus.publish(events.PHYSICS_TICK, {"time": self._time, "dt": dt})
        if not self.is_connected():
            return

        pos = self._position
        in_water = self._in_water()

        fx, fz = -math.sin(self._yaw), -math.cos(self._yaw)
        rx, rz = math.cos(self._yaw), -math.sin(self._yaw)
        mx = mz = 0.0
        if self._controls["forward"]:
            mx, mz = mx + fx, mz + fz
        if self._controls["back"]:
            mx, mz = mx - fx, mz - fz
        if self._controls["right"]:
            mx, mz = mx + rx, mz + rz
        if self._controls["left"]:
            mx, mz = mx - rx, mz - rz

        norm = math.hypot(mx, mz)
        if norm > 0:
            if in_water:
                speed = self.SWIM_SPEED
            elif self._controls["sneak"]:
                speed = self.SNEAK_SPEED
            elif self._controls["sprint"]:
                speed = self.SPRINT_SPEED
            else:
                speed = self.WALK_SPEED
            step = speed * dt / norm
            self._move_axis(mx * step, 0.0)
            self._move_axis(0.0, mz * step)

        if in_water:
            if self._controls["jump"]:
                self._vy = self.SWIM_UP_SPEED
            else:
                self._vy = max(self._vy - 6.0 * dt, -2.0)
        elif self._on_ground and self._controls["jump"]:
            self._vy = self.JUMP_VELOCITY
        elif self._on_ground:
            self._vy = 0.0

        if not (self._on_ground and self._vy == 0.0):
            if not in_water:
                self._vy = max(self._vy - self.GRAVITY * dt, -self.TERMINAL_VELOCITY)
            self._move_vertical(self._vy * dt)

        self._update_ground()
        self._collect_items(pos)

    def _move_axis(self, dx: float, dz: float) -> None:
        pos = self._position
        nx, nz = pos.x + dx, pos.z + dz
        if not self._body_blocked(nx, pos.y, nz):
            pos.x, pos.z = nx, nz

    def _move_vertical(self, dy: float) -> None:
        pos = self._position
        new_y = pos.y + dy
        bx, bz = math.floor(pos.x), math.floor(pos.z)
        if dy < 0:
            # Highest cell whose top is at or below the feet
            cell = math.floor(pos.y) - 1
            while cell + 1 >= new_y:
                if self._solid_cell(bx, cell, bz):
                    new_y = float(cell + 1)
                    self._vy = 0.0
                    break
                cell -= 1
        elif dy > 0:
            top = pos.y + self.BODY_HEIGHT
            cell = math.ceil(top - 1e-9)
            while cell < new_y + self.BODY_HEIGHT:
                if self._solid_cell(bx, cell, bz):
                    new_y = cell - self.BODY_HEIGHT
                    self._vy = 0.0
                    break
                cell += 1
        pos.y = new_y

    def _update_ground(self) -> None:
        pos = self._position
        if pos is None:
            self._on_ground = False
            return
        resting = abs(pos.y - round(pos.y)) < 1e-6
        self._on_ground = resting and self._solid_cell(
            math.floor(pos.x), round(pos.y) - 1, math.floor(pos.z)
        )
        if self._on_ground:
            pos.y = float(round(pos.y))

    def _collect_items(self, pos: Position) -> None:
        for entity in list(self._entities.values()):
            if not entity.is_item or entity.metadata.get("pickup_at", 0.0) > self._time:
                continue
            near = min(
                entity.position.distance_to(pos),
                entity.position.distance_to(pos.offset(0, 1, 0)),
            )
            if near <= self.PICKUP_RADIUS:
                name = entity.metadata["item"]
                count = entity.metadata.get("count", 1)
                self.give(name, count)
                del self._entities[entity.entity_id]
                self.bus.publish(events.ITEM_PICKUP, {
                    "item": name, "count": count, "entity_id": entity.entity_id,
                    "time": self._time,
                })

    def _in_water(self) -> bool:
        pos = self._position
        feet = self._blocks.get((pos.block_x, pos.block_y, pos.block_z), "air")
        head = self._blocks.get((pos.block_x, math.floor(pos.y + 1), pos.block_z), "air")
        return is_water(feet) or is_water(head)

    def _solid_cell(self, x: int, y: int, z: int) -> bool:
        return is_solid(self._blocks.get((x, y, z), "air"))

    def _body_cells(self) -> Set[Cell]:
        pos = self._position
        if pos is None:
            return set()
        bx, bz = pos.block_x, pos.block_z
        low = math.floor(pos.y)
        high = math.floor(pos.y + self.BODY_HEIGHT - 1e-6)
        return {(bx, cy, bz) for cy in range(low, high + 1)}

    def _body_blocked(self, x: float, y: float, z: float) -> bool:
        bx, bz = math.floor(x), math.floor(z)
        low = math.floor(y)
        high = math.floor(y + self.BODY_HEIGHT - 1e-6)
        return any(self._solid_cell(bx, cy, bz) for cy in range(low, high + 1))
