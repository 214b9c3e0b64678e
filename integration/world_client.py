"""
world_client.py - World link abstraction for the embodied agent.

This module provides the capability surface the engine uses to read and
act on a live voxel-world session. The rest of the code base interacts
with this interface rather than with protocol-level details.

Implementations can be backed by:
- A WebSocket bridge to an external Node.js Mineflayer client
- A Python protocol client
- The in-memory SimulatedWorld (dry runs and tests)

Every implementation publishes world notifications on its EventBus and
raises DisconnectedError once the link is lost.
"""

import math
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .blocks import normalize
from .events import EventBus

logger = logging.getLogger(__name__)

# Movement control states understood by every client
CONTROLS = ("forward", "back", "left", "right", "jump", "sprint", "sneak")


class DisconnectedError(Exception):
    """Raised when the world link is lost. Never retried locally."""


class ConnectionState(IntEnum):
    """Connection state for the world link."""
    DISCONNECTED = 0
    CONNECTING = 1
    CONNECTED = 2
    PLAYING = 3
    ERROR = 4


@dataclass
class Position:
    """3D position in the world with derived block coordinates."""
    x: float
    y: float
    z: float

    def to_tuple(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)

    @property
    def block_x(self) -> int:
        return math.floor(self.x)

    @property
    def block_y(self) -> int:
        return math.floor(self.y)

    @property
    def block_z(self) -> int:
        return math.floor(self.z)

    def block_tuple(self) -> Tuple[int, int, int]:
        return (self.block_x, self.block_y, self.block_z)

    def floored(self) -> 'Position':
        return Position(self.block_x, self.block_y, self.block_z)

    def offset(self, dx: float = 0.0, dy: float = 0.0, dz: float = 0.0) -> 'Position':
        return Position(self.x + dx, self.y + dy, self.z + dz)

    def copy(self) -> 'Position':
        return Position(self.x, self.y, self.z)

    def distance_to(self, other: 'Position') -> float:
        """Calculate Euclidean distance to another position."""
        return math.sqrt(
            (self.x - other.x) ** 2 +
            (self.y - other.y) ** 2 +
            (self.z - other.z) ** 2
        )

    def horizontal_distance_to(self, other: 'Position') -> float:
        """Distance in the XZ plane, ignoring height."""
        return math.hypot(self.x - other.x, self.z - other.z)


@dataclass
class Block:
    """Block information."""
    x: int
    y: int
    z: int
    block_id: str  # e.g., "stone" or "minecraft:stone"
    block_state: Dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return normalize(self.block_id)

    @property
    def position(self) -> Position:
        return Position(self.x, self.y, self.z)

    @property
    def center(self) -> Position:
        return Position(self.x + 0.5, self.y + 0.5, self.z + 0.5)


@dataclass
class Entity:
    """Entity information."""
    entity_id: int
    entity_type: str  # e.g., "zombie", "item", "player"
    position: Position
    velocity: Optional[Position] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return normalize(self.entity_type)

    @property
    def is_item(self) -> bool:
        return self.name == "item"

    @property
    def item_name(self) -> Optional[str]:
        """Name of the dropped item for item entities."""
        return self.metadata.get("item") if self.is_item else None


@dataclass
class Item:
    """Inventory item information."""
    item_id: str  # e.g., "cobblestone"
    count: int
    slot: int
    nbt: Optional[Dict] = None

    @property
    def name(self) -> str:
        return normalize(self.item_id)


@dataclass
class ClientConfig:
    """Configuration for the world link."""
    host: str = "localhost"
    port: int = 25565
    username: str = "agent"

    # Safety settings
    dry_run: bool = True
    max_actions_per_second: float = 20.0

    @property
    def server_key(self) -> str:
        """Stable key identifying the server, used for per-server files."""
        return f"{self.host}_{self.port}".replace(":", "_").replace("/", "_")


class WorldClient(ABC):
    """
    Capability surface over a live world session.

    Reads are synchronous snapshots of the client's cached state. Actions
    that take game time (digging, placing, waiting) are coroutines. All
    timing goes through now()/sleep() so deadlines follow the session
    clock rather than the host wall clock.

    Usage:
        client = SimulatedWorld()
        await client.connect()
        client.set_control("forward", True)
        await client.sleep(0.5)
        client.clear_controls()
    """

    def __init__(self, config: Optional[ClientConfig] = None, bus: Optional[EventBus] = None):
        """
        Initialize the client.

        Args:
            config: Client configuration
            bus: Event bus for world notifications (created if omitted)
        """
        self.config = config or ClientConfig()
        self.bus = bus or EventBus()
        self._state = ConnectionState.DISCONNECTED

    # Connection

    @abstractmethod
    async def connect(self) -> bool:
        """Connect to the world. Returns True when playing."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the link and publish a disconnect notification."""

    def is_connected(self) -> bool:
        """Check if client is connected and playing."""
        return self._state == ConnectionState.PLAYING

    def require_connection(self) -> None:
        """Raise DisconnectedError unless the link is up."""
        if not self.is_connected():
            raise DisconnectedError("world link is not connected")

    # Agent state

    @abstractmethod
    def get_position(self) -> Optional[Position]:
        """Current feet position, or None before spawn."""

    @abstractmethod
    def get_yaw(self) -> float:
        """Yaw in radians (0 faces -Z, positive turns toward -X)."""

    @abstractmethod
    def get_pitch(self) -> float:
        """Pitch in radians (positive looks up)."""

    @abstractmethod
    def get_health(self) -> float:
        """Current health (0-20)."""

    @abstractmethod
    def is_on_fire(self) -> bool:
        """Whether the agent is burning."""

    @abstractmethod
    def is_on_ground(self) -> bool:
        """Whether the agent stands on a solid block."""

    # World queries

    @abstractmethod
    def get_block_at(self, x: float, y: float, z: float) -> Optional[Block]:
        """
        Get the block containing a point.

        Args:
            x, y, z: World coordinates (floored to the block grid)

        Returns:
            Block, or None if the chunk is not loaded
        """

    @abstractmethod
    def get_sky_light(self, x: float, y: float, z: float) -> Optional[int]:
        """Sky-light level (0-15) of a block, or None if not loaded."""

    @abstractmethod
    def get_nearby_entities(self, radius: float = 32.0) -> List[Entity]:
        """Entities within a radius of the agent."""

    @abstractmethod
    def find_blocks(
        self,
        names: Iterable[str],
        max_distance: float = 32.0,
        count: int = 10
    ) -> List[Block]:
        """Nearest loaded blocks whose name is in names, closest first."""

    @abstractmethod
    def get_inventory(self) -> List[Item]:
        """Non-empty inventory slots."""

    @abstractmethod
    def get_held_item(self) -> Optional[Item]:
        """Item in the main hand, or None."""

    def count_item(self, name: str) -> int:
        """Total count of an item across all slots."""
        name = normalize(name)
        return sum(item.count for item in self.get_inventory() if item.name == name)

    def inventory_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for item in self.get_inventory():
            counts[item.name] = counts.get(item.name, 0) + item.count
        return counts

    # Controls

    @abstractmethod
    def set_control(self, control: str, state: bool) -> None:
        """Set a movement control state (one of CONTROLS)."""

    def clear_controls(self) -> None:
        """Release every movement control."""
        for control in CONTROLS:
            self.set_control(control, False)

    @abstractmethod
    def set_orientation(self, yaw: float, pitch: float) -> None:
        """Apply a yaw/pitch immediately."""

    async def look(self, yaw: float, pitch: float) -> None:
        self.require_connection()
        self.set_orientation(yaw, pitch)

    async def look_at(self, target: Position) -> None:
        """Turn the head toward a point."""
        pos = self.get_position()
        if pos is None:
            return
        eye_y = pos.y + 1.62
        dx = target.x - pos.x
        dy = target.y - eye_y
        dz = target.z - pos.z
        yaw = math.atan2(-dx, -dz)
        pitch = math.atan2(dy, math.hypot(dx, dz))
        await self.look(yaw, pitch)

    # World actions

    @abstractmethod
    async def dig_block(self, x: int, y: int, z: int) -> bool:
        """Break a block with the held item. Returns True if it broke."""

    @abstractmethod
    async def place_block(
        self,
        reference: Tuple[int, int, int],
        face: Tuple[int, int, int]
    ) -> bool:
        """
        Place the held block against a reference block.

        Args:
            reference: Solid block to place against
            face: Unit offset from the reference to the new block

        Returns:
            True if the block now exists
        """

    @abstractmethod
    async def equip(self, item_name: str) -> bool:
        """Move an inventory item to the main hand."""

    @abstractmethod
    async def attack(self, entity_id: int) -> bool:
        """Swing at an entity. Returns True if the swing connected."""

    # Time

    @abstractmethod
    def now(self) -> float:
        """Monotonic session time in seconds."""

    @abstractmethod
    async def sleep(self, seconds: float) -> None:
        """Suspend for a duration of session time."""
