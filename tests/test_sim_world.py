"""Tests for the simulated world used by dry runs."""

import asyncio

import pytest

from conftest import flat_world
from integration import DisconnectedError, Position, SimulatedWorld, events


def _connected(world: SimulatedWorld) -> SimulatedWorld:
    asyncio.run(world.connect())
    return world


# ---------------------------------------------------------------------------
# Movement physics
# ---------------------------------------------------------------------------

class TestMovement:

    def test_walks_north_at_walking_speed(self):
        world = flat_world()

        async def scenario():
            await world.connect()
            world.set_control("forward", True)
            await world.sleep(1.0)

        asyncio.run(scenario())
        pos = world.get_position()
        assert world.ticks == 20
        assert pos.z == pytest.approx(0.5 - 4.3, abs=1e-3)
        assert pos.x == pytest.approx(0.5)
        assert pos.y == 64.0

    def test_wall_stops_walking(self):
        world = flat_world()
        world.fill(-1, 64, -2, 1, 65, -2, "stone")

        async def scenario():
            await world.connect()
            world.set_control("forward", True)
            await world.sleep(1.0)

        asyncio.run(scenario())
        pos = world.get_position()
        assert -1.0 <= pos.z < -0.7

    def test_jump_rises_and_lands(self):
        world = flat_world()

        async def scenario():
            await world.connect()
            world.set_control("jump", True)
            await world.sleep(0.15)
            peak = world.get_position().y
            world.set_control("jump", False)
            await world.sleep(1.0)
            return peak

        peak = asyncio.run(scenario())
        assert peak > 64.5
        assert world.get_position().y == 64.0
        assert world.is_on_ground()

    def test_controls_ignored_while_disconnected(self):
        world = flat_world()
        world.set_control("forward", True)
        assert world.get_control("forward") is False


# ---------------------------------------------------------------------------
# Blocks and items
# ---------------------------------------------------------------------------

class TestBlocks:

    def test_dig_with_pickaxe_drops_and_collects(self):
        world = flat_world()
        world.set_block(0, 64, -1, "stone")
        pickups = []
        world.bus.subscribe(events.ITEM_PICKUP, pickups.append)

        async def scenario():
            await world.connect()
            world.give("wooden_pickaxe")
            await world.equip("wooden_pickaxe")
            broke = await world.dig_block(0, 64, -1)
            await world.sleep(0.5)
            return broke

        assert asyncio.run(scenario())
        assert world.block_name(0, 64, -1) == "air"
        assert world.count_item("cobblestone") == 1
        assert pickups and pickups[0]["item"] == "cobblestone"

    def test_dig_by_hand_drops_nothing(self):
        world = flat_world()
        world.set_block(0, 64, -1, "stone")

        async def scenario():
            await world.connect()
            return await world.dig_block(0, 64, -1)

        assert asyncio.run(scenario())
        assert world.block_name(0, 64, -1) == "air"
        assert not [e for e in world.get_nearby_entities() if e.is_item]

    def test_bedrock_cannot_be_dug(self):
        world = flat_world()
        world.set_block(0, 64, -1, "bedrock")

        async def scenario():
            await world.connect()
            return await world.dig_block(0, 64, -1)

        assert asyncio.run(scenario()) is False
        assert world.block_name(0, 64, -1) == "bedrock"

    def test_place_block_rules(self):
        world = flat_world()

        async def scenario():
            await world.connect()
            world.give("dirt", 2)
            await world.equip("dirt")
            placed = await world.place_block((0, 63, -2), (0, 1, 0))
            into_body = await world.place_block((0, 63, 0), (0, 1, 0))
            against_air = await world.place_block((5, 70, 5), (0, 1, 0))
            return placed, into_body, against_air

        placed, into_body, against_air = asyncio.run(scenario())
        assert placed
        assert world.block_name(0, 64, -2) == "dirt"
        assert world.count_item("dirt") == 1
        assert not into_body
        assert not against_air

    def test_sky_light(self):
        world = flat_world()
        assert world.get_sky_light(0, 64, 0) == 15
        world.set_block(0, 70, 0, "stone")
        world.set_block(1, 70, 1, "glass")
        assert world.get_sky_light(0, 64, 0) == 0
        assert world.get_sky_light(1, 64, 1) == 15

    def test_unloaded_cells(self):
        world = flat_world()
        world.unload(2, 64, 2)
        assert world.get_block_at(2, 64, 2) is None
        assert world.get_sky_light(2, 64, 2) is None

    def test_find_blocks_nearest_first(self):
        world = _connected(flat_world())
        world.set_block(5, 64, 0, "oak_log")
        world.set_block(2, 64, 0, "oak_log")
        world.set_block(40, 64, 0, "oak_log")

        found = world.find_blocks(["oak_log"], max_distance=32)
        assert [(b.x, b.y, b.z) for b in found] == [(2, 64, 0), (5, 64, 0)]


# ---------------------------------------------------------------------------
# Connection and health
# ---------------------------------------------------------------------------

class TestSession:

    def test_drop_link_fails_sleep(self):
        world = flat_world()
        seen = []
        world.bus.subscribe(events.DISCONNECT, seen.append)

        async def scenario():
            await world.connect()
            world.drop_link()
            await world.sleep(0.1)

        with pytest.raises(DisconnectedError):
            asyncio.run(scenario())
        assert len(seen) == 1
        assert not world.is_connected()

    def test_damage_publishes_health_and_death(self):
        world = _connected(flat_world())
        health, deaths, respawns = [], [], []
        world.bus.subscribe(events.HEALTH, health.append)
        world.bus.subscribe(events.DEATH, deaths.append)
        world.bus.subscribe(events.RESPAWN, respawns.append)

        world.apply_damage(4)
        assert health[-1]["health"] == 16.0
        assert health[-1]["previous"] == 20.0

        world.teleport(Position(5.5, 64, 5.5))
        world.apply_damage(30)
        assert len(deaths) == 1
        assert len(respawns) == 1
        assert world.get_health() == 20.0
        assert world.get_position().to_tuple() == (0.5, 64.0, 0.5)
