"""
look.py - Continuous yaw/pitch smoothing and ambient idle looks.

The smoother runs on physics ticks, independent of any motion call, and
eases the camera toward a target orientation:
- Fast profile while navigating
- Slow profile while idle

Navigation, recovery and actions suppress ambient idle looks so they do
not fight over camera control.
"""

import math
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from integration import events
from integration.world_client import Position, WorldClient
from utils.config import LookConfig
from .fov import VisibilityFilter, entity_focus
from .geometry import angle_difference, normalize_angle, pitch_towards, yaw_towards

logger = logging.getLogger(__name__)

HALF_PI = math.pi / 2


class LookSmoother:
    """
    Interpolates the agent's orientation toward a target.

    Usage:
        look = LookSmoother(client)
        look.start()
        with look.navigation():
            look.set_target(yaw, 0.0)
    """

    def __init__(
        self,
        client: WorldClient,
        config: Optional[LookConfig] = None,
        visibility: Optional[VisibilityFilter] = None
    ):
        self.client = client
        self.config = config or LookConfig()
        self.visibility = visibility or VisibilityFilter(client)

        self._target_yaw: Optional[float] = None
        self._target_pitch: Optional[float] = None
        self._navigating = 0
        self._suppressions = 0
        self._running = False
        self._last_ambient_time = 0.0
        self.ambient_target_id: Optional[int] = None

    def start(self) -> None:
        if self._running:
            return
        self.client.bus.subscribe(events.PHYSICS_TICK, self._on_tick)
        self._running = True

    def stop(self) -> None:
        if not self._running:
            return
        self.client.bus.unsubscribe(events.PHYSICS_TICK, self._on_tick)
        self._running = False

    @property
    def is_navigating(self) -> bool:
        return self._navigating > 0

    @property
    def ambient_suppressed(self) -> bool:
        return self._suppressions > 0 or self._navigating > 0

    @property
    def target(self):
        return self._target_yaw, self._target_pitch

    def set_target(self, yaw: float, pitch: Optional[float] = None) -> None:
        """Ease toward a yaw (and pitch, if given) over the next ticks."""
        self._target_yaw = normalize_angle(yaw)
        if pitch is not None:
            self._target_pitch = max(-HALF_PI, min(HALF_PI, pitch))
        elif self._target_pitch is None:
            self._target_pitch = self.client.get_pitch()

    def look_at(self, target: Position) -> None:
        pos = self.client.get_position()
        if pos is None:
            return
        eye = pos.offset(0, 1.62, 0)
        self.set_target(yaw_towards(pos, target), pitch_towards(eye, target))

    def snap(self, yaw: float, pitch: float = 0.0) -> None:
        """Apply an orientation now and hold it as the target."""
        pitch = max(-HALF_PI, min(HALF_PI, pitch))
        self.client.set_orientation(yaw, pitch)
        self._target_yaw = normalize_angle(yaw)
        self._target_pitch = pitch

    @contextmanager
    def navigation(self) -> Iterator[None]:
        """Use the fast profile and hold off ambient looks."""
        self._navigating += 1
        self.ambient_target_id = None
        try:
            yield
        finally:
            self._navigating -= 1

    @contextmanager
    def suppressed(self, reason: str = "") -> Iterator[None]:
        """Hold off ambient looks (recovery, actions)."""
        self._suppressions += 1
        self.ambient_target_id = None
        if reason:
            logger.debug(f"Ambient look suppressed: {reason}")
        try:
            yield
        finally:
            self._suppressions -= 1

    def step(self, dt: float) -> None:
        """Advance the orientation by dt seconds of smoothing."""
        if self._target_yaw is None:
            return
        if self.is_navigating:
            factor, max_step = self.config.navigating_factor, self.config.navigating_max_step
        else:
            factor, max_step = self.config.idle_factor, self.config.idle_max_step
        frames = max(1.0, dt / self.config.frame_interval)

        yaw = self._ease(self.client.get_yaw(), self._target_yaw, factor, max_step, frames, wrap=True)
        pitch = self._ease(self.client.get_pitch(), self._target_pitch, factor, max_step, frames, wrap=False)
        self.client.set_orientation(yaw, max(-HALF_PI, min(HALF_PI, pitch)))

    def _ease(
        self,
        current: float,
        target: float,
        factor: float,
        max_step: float,
        frames: float,
        wrap: bool
    ) -> float:
        diff = angle_difference(target, current) if wrap else target - current
        if abs(diff) < self.config.snap_threshold:
            return target
        moved = diff * (1.0 - (1.0 - factor) ** frames)
        limit = max_step * frames
        moved = max(-limit, min(limit, moved))
        return current + moved

    def _on_tick(self, payload) -> None:
        dt = payload.get("dt", self.config.frame_interval) if payload else self.config.frame_interval
        now = payload.get("time", 0.0) if payload else 0.0
        if not self.ambient_suppressed and now - self._last_ambient_time >= self.config.ambient_interval:
            self._last_ambient_time = now
            self.choose_ambient_target()
        self.step(dt)

    def choose_ambient_target(self) -> Optional[int]:
        """
        Pick something visible to glance at while idle.

        Returns:
            Entity id of the chosen target, or None
        """
        if self.ambient_suppressed:
            return None
        pos = self.client.get_position()
        if pos is None:
            return None
        visible = [
            entity for entity in self.client.get_nearby_entities(self.config.ambient_radius)
            if not entity.is_item and self.visibility.is_perceivable(entity_focus(entity))
        ]
        if not visible:
            self.ambient_target_id = None
            return None
        visible.sort(key=lambda e: (e.position.distance_to(pos), e.entity_id))
        chosen = visible[0]
        self.look_at(entity_focus(chosen))
        self.ambient_target_id = chosen.entity_id
        return chosen.entity_id
