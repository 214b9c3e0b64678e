"""
fov.py - Field-of-view and line-of-sight filtering.

This module decides whether a point is perceivable by the agent:
- FOV test: horizontal bearing within the half-angle of the facing yaw
- LOS test: fixed-step ray march from the eye, blocked by opaque blocks
- Memory exception: distant remembered landmarks bypass both tests

The memory exception is opt-in per call and is never used for hostile
entities.
"""

import math
import logging
import numpy as np
from typing import Callable, Iterable, List, Optional, TypeVar

from integration.blocks import is_transparent
from integration.world_client import Block, Entity, Position, WorldClient
from utils.config import PerceptionConfig
from .geometry import angle_difference, vector_to_yaw

logger = logging.getLogger(__name__)

T = TypeVar("T")


def entity_focus(entity: Entity) -> Position:
    """Point used when testing an entity's visibility."""
    if entity.is_item:
        return entity.position.offset(0, 0.25, 0)
    return entity.position.offset(0, 1.0, 0)


def block_focus(block: Block) -> Position:
    return block.center


class VisibilityFilter:
    """
    FOV/LOS filter bound to a world client.

    Usage:
        visibility = VisibilityFilter(client)
        if visibility.is_perceivable(block.center, allow_memory=True):
            ...
    """

    def __init__(self, client: WorldClient, config: Optional[PerceptionConfig] = None):
        """
        Initialize the filter.

        Args:
            client: World client for position, facing and block lookups
            config: Perception settings (half-angle, step, memory range)
        """
        self.client = client
        self.config = config or PerceptionConfig()
        self.half_angle = math.radians(self.config.fov_half_angle_deg)

    def eye_position(self) -> Optional[Position]:
        pos = self.client.get_position()
        if pos is None:
            return None
        return pos.offset(0, self.config.eye_height, 0)

    def in_field_of_view(
        self,
        target: Position,
        eye: Optional[Position] = None,
        yaw: Optional[float] = None
    ) -> bool:
        """
        Check the horizontal bearing of a target against the facing yaw.

        Targets directly above or below the eye are always in view.
        """
        eye = eye or self.eye_position()
        if eye is None:
            return False
        yaw = self.client.get_yaw() if yaw is None else yaw
        dx, dz = target.x - eye.x, target.z - eye.z
        if math.hypot(dx, dz) < 1e-6:
            return True
        bearing = vector_to_yaw(dx, dz)
        return abs(angle_difference(bearing, yaw)) <= self.half_angle

    def has_line_of_sight(self, target: Position, eye: Optional[Position] = None) -> bool:
        """
        Ray-march from the eye to the target.

        Samples every `los_step` blocks; the sight line is blocked by any
        sampled block outside the transparent set. Samples inside the
        target's own cell and unloaded cells are skipped.
        """
        eye = eye or self.eye_position()
        if eye is None:
            return False
        start = np.array(eye.to_tuple())
        end = np.array(target.to_tuple())
        distance = float(np.linalg.norm(end - start))
        if distance < 1.0:
            return True

        target_cell = tuple(np.floor(end).astype(int))
        steps = int(distance / self.config.los_step)
        fractions = np.arange(1, steps + 1) * (self.config.los_step / distance)
        samples = start + np.outer(fractions[fractions < 1.0], end - start)

        seen = set()
        for cell in np.floor(samples).astype(int):
            key = (int(cell[0]), int(cell[1]), int(cell[2]))
            if key == target_cell or key in seen:
                continue
            seen.add(key)
            block = self.client.get_block_at(*key)
            if block is None:
                continue
            if not is_transparent(block.name):
                return False
        return True

    def is_perceivable(self, target: Position, allow_memory: bool = False) -> bool:
        """
        Combined FOV and LOS test.

        Args:
            target: Point to test
            allow_memory: Let targets beyond the memory range bypass both
                tests (landmark and resource recall only)

        Returns:
            True if the agent can perceive the target
        """
        eye = self.eye_position()
        if eye is None:
            return False
        if allow_memory and eye.distance_to(target) >= self.config.memory_range:
            return True
        return self.in_field_of_view(target, eye) and self.has_line_of_sight(target, eye)

    def filter_perceivable(
        self,
        candidates: Iterable[T],
        focus: Callable[[T], Position],
        allow_memory: bool = False
    ) -> List[T]:
        """Keep only the candidates whose focus point is perceivable."""
        return [c for c in candidates if self.is_perceivable(focus(c), allow_memory)]
