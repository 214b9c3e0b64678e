"""
landmarks.py - Memory of functional blocks the agent has placed.

Placed crafting tables, furnaces, chests and similar blocks are
remembered per server so they can be recalled from long range. The
memory is loaded at session start, written on a debounce timer after
each change, and flushed at shutdown.
"""

import os
import json
import time
import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Tuple

from integration.world_client import Position
from utils.config import LandmarkConfig

logger = logging.getLogger(__name__)


@dataclass
class Landmark:
    """A remembered placed block."""
    name: str
    position: Tuple[int, int, int]
    placed_at: float

    @property
    def center(self) -> Position:
        x, y, z = self.position
        return Position(x + 0.5, y + 0.5, z + 0.5)

    def distance_to(self, pos: Position) -> float:
        return self.center.distance_to(pos)


class LandmarkMemory:
    """
    Per-server placed-block memory backed by a JSON file.

    Usage:
        memory = LandmarkMemory(config, server_key="localhost_25565")
        memory.load()
        memory.record("crafting_table", (10, 64, -3))
        table = memory.recall("crafting_table", position)
        memory.flush()
    """

    def __init__(self, config: Optional[LandmarkConfig] = None, server_key: str = "default"):
        self.config = config or LandmarkConfig()
        self.server_key = server_key
        self.landmarks: List[Landmark] = []
        self.dirty = False
        self._flush_handle: Optional[asyncio.TimerHandle] = None

    @property
    def path(self) -> str:
        return os.path.join(self.config.directory, f"{self.server_key}.json")

    def load(self) -> int:
        """
        Load remembered landmarks for this server.

        Returns:
            Number of landmarks loaded
        """
        if not os.path.exists(self.path):
            self.landmarks = []
            return 0
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load landmarks from {self.path}: {e}")
            self.landmarks = []
            return 0

        self.landmarks = [
            Landmark(entry["name"], tuple(entry["position"]), entry.get("placed_at", 0.0))
            for entry in data.get("landmarks", [])
        ]
        logger.info(f"Loaded {len(self.landmarks)} landmarks for {self.server_key}")
        return len(self.landmarks)

    def record(self, name: str, position: Tuple[int, int, int]) -> Landmark:
        """Remember a placed block, replacing any same-type entry nearby."""
        landmark = Landmark(name, tuple(position), time.time())
        center = landmark.center
        self.landmarks = [
            existing for existing in self.landmarks
            if existing.name != name or existing.distance_to(center) > self.config.dedupe_radius
        ]
        self.landmarks.append(landmark)
        logger.debug(f"Landmark recorded: {name} at {position}")
        self.mark_dirty()
        return landmark

    def forget(self, position: Tuple[int, int, int]) -> bool:
        """Drop the landmark at a position (e.g. after it was broken)."""
        position = tuple(position)
        kept = [landmark for landmark in self.landmarks if landmark.position != position]
        if len(kept) == len(self.landmarks):
            return False
        self.landmarks = kept
        self.mark_dirty()
        return True

    def recall(self, name: str, origin: Position) -> Optional[Landmark]:
        """Nearest remembered landmark of a type."""
        matches = [landmark for landmark in self.landmarks if landmark.name == name]
        if not matches:
            return None
        return min(matches, key=lambda landmark: landmark.distance_to(origin))

    def nearest(self, origin: Position) -> Optional[Landmark]:
        if not self.landmarks:
            return None
        return min(self.landmarks, key=lambda landmark: landmark.distance_to(origin))

    def mark_dirty(self) -> None:
        """Schedule a debounced flush on the running event loop."""
        self.dirty = True
        if self._flush_handle is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._flush_handle = loop.call_later(self.config.flush_debounce, self._debounced_flush)

    def _debounced_flush(self) -> None:
        self._flush_handle = None
        self.flush()

    def flush(self) -> bool:
        """
        Write the memory to disk if it changed.

        Returns:
            True if a file was written
        """
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        if not self.dirty:
            return False

        data: Dict = {
            "server": self.server_key,
            "landmarks": [asdict(landmark) for landmark in self.landmarks],
        }
        try:
            os.makedirs(self.config.directory, exist_ok=True)
            with open(self.path, 'w') as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.error(f"Failed to save landmarks to {self.path}: {e}")
            return False

        self.dirty = False
        logger.info(f"Saved {len(self.landmarks)} landmarks for {self.server_key}")
        return True
