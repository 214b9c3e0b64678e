"""
events.py - Internal event bus for world notifications.

World-library callbacks (damage, pickups, spawns, physics ticks) are
published here as plain topic/payload pairs so the engine subsystems
never depend on the callback shape of a particular client library.

Handlers are called synchronously in subscription order. A failing
handler is logged and does not stop delivery to the others.
"""

import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

# Topics published by world clients and engine subsystems
PHYSICS_TICK = "physics_tick"
HEALTH = "health"
DAMAGE = "damage"
ITEM_PICKUP = "item_pickup"
BLOCK_PLACED = "block_placed"
BLOCK_BROKEN = "block_broken"
ENTITY_SPAWN = "entity_spawn"
ENTITY_GONE = "entity_gone"
DEATH = "death"
RESPAWN = "respawn"
DISCONNECT = "disconnect"
STUCK_CHANGED = "stuck_changed"


class EventBus:
    """
    Minimal publish/subscribe channel.

    Usage:
        bus = EventBus()
        bus.subscribe(HEALTH, lambda payload: print(payload))
        bus.publish(HEALTH, {"health": 18.0})
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable[[Any], None]]] = {}

    def subscribe(self, topic: str, handler: Callable[[Any], None]) -> None:
        """
        Register a handler for a topic.

        Args:
            topic: Event topic (e.g., 'health', 'item_pickup')
            handler: Callback receiving the event payload
        """
        self._handlers.setdefault(topic, []).append(handler)

    def unsubscribe(self, topic: str, handler: Callable[[Any], None]) -> None:
        """Remove a previously registered handler (no-op if absent)."""
        handlers = self._handlers.get(topic, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, topic: str, payload: Any = None) -> None:
        """Deliver a payload to every handler subscribed to the topic."""
        for handler in list(self._handlers.get(topic, [])):
            try:
                handler(payload)
            except Exception as e:
                logger.error(f"Error in '{topic}' handler: {e}")

    def handler_count(self, topic: str) -> int:
        return len(self._handlers.get(topic, []))
