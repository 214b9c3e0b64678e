"""Shared fixtures: a flat simulated world and a factory for started sessions."""

import pytest

from embodied import AgentSession
from integration import Position, SimulatedWorld
from utils import EngineConfig


def flat_world(spawn: Position = None, radius: int = 16) -> SimulatedWorld:
    """A grass plane at y=63 with the agent standing on it."""
    world = SimulatedWorld(spawn=spawn or Position(0.5, 64.0, 0.5), seed=0)
    world.fill(-radius, 63, -radius, radius, 63, radius, "grass_block")
    return world


def sealed_box(world: SimulatedWorld, x: int = 0, y: int = 64, z: int = 0) -> None:
    """Surround the body cells at (x, y, z) with bedrock on every side."""
    world.fill(x - 1, y - 1, z - 1, x + 1, y + 2, z + 1, "bedrock")
    world.set_block(x, y, z, "air")
    world.set_block(x, y + 1, z, "air")


@pytest.fixture
def world():
    return flat_world()


@pytest.fixture
def config(tmp_path):
    config = EngineConfig()
    config.landmarks.directory = str(tmp_path / "landmarks")
    return config


@pytest.fixture
def make_session(config):
    """Returns a coroutine function building and starting a session."""
    async def factory(world: SimulatedWorld, seed: int = 0) -> AgentSession:
        session = AgentSession(world, config, seed=seed)
        assert await session.start()
        return session
    return factory
