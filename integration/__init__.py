"""
Integration module for the embodied agent.

This module provides the world link and its vocabulary:
- WorldClient: Abstract capability surface over a live world session
- SimulatedWorld: In-memory world for dry runs and tests
- EventBus: Channel for world notifications
- blocks: Block categories and harvesting rules
"""

from .events import EventBus
from .world_client import (
    WorldClient,
    ClientConfig,
    ConnectionState,
    DisconnectedError,
    Position,
    Block,
    Entity,
    Item,
)
from .sim_world import SimulatedWorld

__all__ = [
    'EventBus',
    'WorldClient',
    'ClientConfig',
    'ConnectionState',
    'DisconnectedError',
    'Position',
    'Block',
    'Entity',
    'Item',
    'SimulatedWorld',
]
