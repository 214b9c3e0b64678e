"""
health.py - Damage classification and reflex escape.

Each health decrease is classified from the blocks the agent occupies,
its burning state and nearby hostiles. Environmental damage, critical
health or a burst of damage events triggers an escape that runs
immediately, outside the action executor, and is rate-limited.
"""

import math
import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Deque, Dict, Optional, Tuple

from integration import events
from integration.blocks import is_hostile, is_lava, is_solid, is_water
from integration.world_client import DisconnectedError

logger = logging.getLogger(__name__)


class DamageSource(Enum):
    DROWNING = "drowning"
    LAVA = "lava"
    FIRE = "fire"
    SUFFOCATION = "suffocation"
    MOB = "mob"
    UNKNOWN = "unknown"


ENVIRONMENTAL_SOURCES = {
    DamageSource.DROWNING, DamageSource.LAVA, DamageSource.FIRE, DamageSource.SUFFOCATION,
}


@dataclass
class HealthEvent:
    """One classified health decrease."""
    damage_amount: float
    source_class: DamageSource
    timestamp: float
    health_after: float
    attacker: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "damage_amount": round(self.damage_amount, 2),
            "source_class": self.source_class.value,
            "timestamp": round(self.timestamp, 2),
            "health_after": round(self.health_after, 2),
            "attacker": self.attacker,
        }


@dataclass
class HealthSummary:
    """Health alert state published with each tick report."""
    health: float
    last_source: Optional[str]
    recent_damage: float
    recent_events: int
    is_escaping: bool
    alert: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "health": round(self.health, 2),
            "last_source": self.last_source,
            "recent_damage": round(self.recent_damage, 2),
            "recent_events": self.recent_events,
            "is_escaping": self.is_escaping,
            "alert": self.alert,
        }


class HealthMonitor:
    """
    Subscribes to health events and runs the reflex escape.

    Usage:
        monitor = HealthMonitor(session)
        monitor.start()
        ...
        summary = monitor.summary()
    """

    def __init__(self, session):
        self.session = session
        self.client = session.client
        self.config = session.config.health
        self.history: Deque[HealthEvent] = deque(maxlen=self.config.history_size)

        self.is_escaping = False
        self.escape_count = 0
        self._last_health = self.client.get_health()
        self._spawn_time = self.client.now()
        self._last_escape_time = -math.inf
        self._escape_task: Optional[asyncio.Task] = None
        self._running = False

    def start(self) -> None:
        if self._running:
            return
        bus = self.client.bus
        bus.subscribe(events.HEALTH, self.on_health)
        bus.subscribe(events.RESPAWN, self.on_respawn)
        bus.subscribe(events.DEATH, self.on_death)
        self._running = True

    def stop(self) -> None:
        if not self._running:
            return
        bus = self.client.bus
        bus.unsubscribe(events.HEALTH, self.on_health)
        bus.unsubscribe(events.RESPAWN, self.on_respawn)
        bus.unsubscribe(events.DEATH, self.on_death)
        if self._escape_task is not None and not self._escape_task.done():
            self._escape_task.cancel()
        self._running = False

    # Event handlers

    def on_respawn(self, payload) -> None:
        self._spawn_time = self.client.now()
        self._last_health = self.client.get_health()
        self.history.clear()

    def on_death(self, payload) -> None:
        logger.warning(f"Agent died at {payload.get('position') if payload else 'unknown position'}")

    def on_health(self, payload) -> Optional[HealthEvent]:
        """
        Handle a health update.

        Returns:
            The classified HealthEvent, or None if health did not drop or
            the damage fell inside the spawn grace period
        """
        health = float(payload.get("health", self.client.get_health()))
        previous = payload.get("previous")
        previous = self._last_health if previous is None else float(previous)
        self._last_health = health

        damage = previous - health
        if damage <= 0:
            return None
        now = self.client.now()
        if now - self._spawn_time < self.config.spawn_grace:
            logger.debug(f"Ignoring {damage:.1f} damage during spawn grace")
            return None

        source, attacker = self.classify(damage)
        event = HealthEvent(damage, source, now, health, attacker)
        self.history.append(event)
        logger.info(f"Took {damage:.1f} damage from {source.value} (health {health:.1f})")
        self.client.bus.publish(events.DAMAGE, event.to_dict())

        reason = self.escape_reason(event)
        if reason is not None:
            self.trigger_escape(event, reason)
        return event

    # Classification

    def classify(self, damage: float) -> Tuple[DamageSource, Optional[str]]:
        """Attribute damage to the environment or the nearest hostile."""
        pos = self.client.get_position()
        if pos is None:
            return DamageSource.UNKNOWN, None
        feet = self.client.get_block_at(pos.x, pos.y, pos.z)
        head = self.client.get_block_at(pos.x, pos.y + 1, pos.z)
        feet_name = feet.name if feet else None
        head_name = head.name if head else None

        if is_water(head_name) and (not is_water(feet_name) or 1.0 <= damage <= 2.0):
            return DamageSource.DROWNING, None
        if is_lava(feet_name) or is_lava(head_name):
            return DamageSource.LAVA, None
        if self.client.is_on_fire():
            return DamageSource.FIRE, None
        if head_name is not None and is_solid(head_name):
            return DamageSource.SUFFOCATION, None

        hostiles = [
            entity for entity in self.client.get_nearby_entities(self.config.mob_radius)
            if is_hostile(entity.name)
        ]
        if hostiles:
            nearest = min(hostiles, key=lambda e: (e.position.distance_to(pos), e.entity_id))
            return DamageSource.MOB, nearest.name
        return DamageSource.UNKNOWN, None

    def recent_events(self, now: Optional[float] = None):
        now = self.client.now() if now is None else now
        return [event for event in self.history if now - event.timestamp <= self.config.rapid_window]

    def escape_reason(self, event: HealthEvent) -> Optional[str]:
        if event.source_class in ENVIRONMENTAL_SOURCES:
            return event.source_class.value
        if event.health_after <= self.config.critical_health:
            return "critical health"
        if len(self.recent_events(event.timestamp)) >= self.config.rapid_count:
            return "rapid damage"
        return None

    # Reflex

    def trigger_escape(self, event: HealthEvent, reason: str) -> bool:
        """
        Start the escape reflex without waiting for the action lock.

        Returns:
            False when an escape is running or the cooldown has not passed
        """
        now = self.client.now()
        if self.is_escaping or now - self._last_escape_time < self.config.escape_cooldown:
            return False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No event loop for escape ({reason})")
            return False

        logger.warning(f"Emergency escape: {reason}")
        self.is_escaping = True
        self._last_escape_time = now
        self.escape_count += 1
        self._escape_task = loop.create_task(self.escape(event.source_class))
        return True

    async def escape(self, source: DamageSource) -> None:
        client = self.client
        self.is_escaping = True
        self.session.navigator.stop()
        try:
            with self.session.look.suppressed("escape"):
                if source == DamageSource.DROWNING:
                    client.set_control("jump", True)
                    client.set_control("forward", True)
                    await client.sleep(self.config.swim_up_duration)
                else:
                    await self.session.motion.emergency_flee(self.config.sprint_duration)
        except DisconnectedError:
            logger.warning("World link lost during escape")
        finally:
            client.clear_controls()
            self.is_escaping = False

    def summary(self) -> HealthSummary:
        recent = self.recent_events()
        last = self.history[-1].source_class.value if self.history else None
        health = self.client.get_health()
        return HealthSummary(
            health=health,
            last_source=last,
            recent_damage=sum(event.damage_amount for event in recent),
            recent_events=len(recent),
            is_escaping=self.is_escaping,
            alert=health <= self.config.critical_health or len(recent) >= self.config.rapid_count,
        )
