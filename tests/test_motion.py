"""Tests for the motion controller."""

import asyncio

import pytest

from conftest import sealed_box
from embodied import StuckPhase, Termination
from integration import Position, SimulatedWorld


def _corridor_world() -> SimulatedWorld:
    """A one-block corridor running east from the spawn, walled in bedrock."""
    world = SimulatedWorld(spawn=Position(0.5, 64.0, 0.5))
    world.fill(-1, 63, 0, 12, 63, 0, "stone")
    world.fill(-1, 64, -1, 12, 66, -1, "bedrock")
    world.fill(-1, 64, 1, 12, 66, 1, "bedrock")
    world.fill(-1, 64, 0, -1, 66, 0, "bedrock")
    return world


def _long_detour_world() -> SimulatedWorld:
    """A wall between the agent and a target just behind it, open only far east."""
    world = SimulatedWorld(spawn=Position(0.5, 64.0, 0.5))
    world.fill(-14, 63, -6, 14, 63, 3, "stone")
    world.fill(-14, 64, -1, 12, 66, -1, "bedrock")
    return world


# ---------------------------------------------------------------------------
# Direct walk
# ---------------------------------------------------------------------------

class TestWalkDirect:

    def test_target_inside_stop_radius_is_immediate(self, world, make_session):
        async def scenario():
            session = await make_session(world)
            ticks = world.ticks
            result = await session.motion.walk_direct(0.8, 0.5)
            return result, world.ticks - ticks

        result, ticks = asyncio.run(scenario())
        assert result.reached
        assert result.termination_reason == Termination.SUCCESS
        assert result.distance_moved == 0.0
        assert ticks == 0

    def test_walks_to_nearby_point(self, world, make_session):
        async def scenario():
            session = await make_session(world)
            return await session.motion.walk_direct(3.5, 0.5)

        result = asyncio.run(scenario())
        assert result.reached
        assert world.get_position().horizontal_distance_to(Position(3.5, 64, 0.5)) <= 0.8
        assert not world.get_control("forward")

    def test_wall_reports_stuck(self, world, make_session):
        world.fill(2, 64, -3, 2, 66, 3, "bedrock")

        async def scenario():
            session = await make_session(world)
            return await session.motion.walk_direct(5.5, 0.5, timeout=10.0)

        result = asyncio.run(scenario())
        assert not result.reached
        assert result.termination_reason == Termination.STUCK
        assert world.get_position().x < 2.0
        assert not world.get_control("jump")

    def test_clears_grass_in_the_way(self, world, make_session):
        world.fill(2, 64, -3, 2, 64, 3, "stone")
        world.fill(2, 65, -3, 2, 65, 3, "oak_leaves")

        async def scenario():
            session = await make_session(world)
            return await session.motion.walk_direct(4.5, 0.5, timeout=10.0)

        result = asyncio.run(scenario())
        assert result.reached
        assert world.block_name(2, 65, 0) == "air"

    def test_timeout(self, world, make_session):
        async def scenario():
            session = await make_session(world)
            return await session.motion.walk_direct(12.5, 0.5, timeout=0.5)

        result = asyncio.run(scenario())
        assert result.termination_reason == Termination.TIMEOUT
        assert 1.0 < result.distance_moved < 3.0


# ---------------------------------------------------------------------------
# Delegated pathfinding
# ---------------------------------------------------------------------------

class TestNavigate:

    def test_navigates_around_obstacle(self, world, make_session):
        world.fill(3, 64, -2, 3, 66, 2, "bedrock")

        async def scenario():
            session = await make_session(world)
            return await session.motion.move_to(6.5, 64, 0.5)

        result = asyncio.run(scenario())
        assert result.reached
        assert world.get_position().distance_to(Position(6.5, 64, 0.5)) <= 1.5

    def test_path_leading_away_is_a_bad_path(self, make_session):
        world = _long_detour_world()

        async def scenario():
            session = await make_session(world)
            return await session.motion.navigate(0.5, 64, -2.5)

        result = asyncio.run(scenario())
        assert result.termination_reason == Termination.BAD_PATH
        assert not result.reached
        assert world.now() < 15.0

    def test_no_path_is_stuck(self, world, make_session):
        sealed_box(world)

        async def scenario():
            session = await make_session(world)
            return await session.motion.navigate(8.5, 64, 0.5)

        result = asyncio.run(scenario())
        assert result.termination_reason == Termination.STUCK
        assert result.message == "no path found"


# ---------------------------------------------------------------------------
# Named directions
# ---------------------------------------------------------------------------

class TestDirections:

    def test_moves_north(self, world, make_session):
        async def scenario():
            session = await make_session(world)
            return await session.motion.move("north")

        result = asyncio.run(scenario())
        assert result.reached
        assert world.get_position().z < -5.0

    def test_blocked_heading_uses_alternate(self, make_session):
        world = _corridor_world()

        async def scenario():
            session = await make_session(world)
            return await session.motion.move("north")

        result = asyncio.run(scenario())
        assert result.reached
        assert "alternate" in result.message
        assert world.get_position().x > 2.5

    def test_blocked_everywhere(self, world, make_session):
        sealed_box(world)

        async def scenario():
            session = await make_session(world)
            first = await session.motion.move("north")
            phase_after_first = session.stuck.phase
            second = await session.motion.move("south")
            return first, phase_after_first, second, session.stuck.phase

        first, phase_after_first, second, phase = asyncio.run(scenario())
        assert not first.reached
        assert first.termination_reason == Termination.STUCK
        assert first.message == "blocked moving north"
        assert phase_after_first == StuckPhase.NORMAL
        assert phase == StuckPhase.STUCK

    def test_jump(self, world, make_session):
        async def scenario():
            session = await make_session(world)
            return await session.motion.move("up")

        result = asyncio.run(scenario())
        assert result.reached
        assert world.get_position().y == 64.0

    def test_jump_without_headroom(self, world, make_session):
        world.set_block(0, 66, 0, "stone")

        async def scenario():
            session = await make_session(world)
            return await session.motion.jump()

        result = asyncio.run(scenario())
        assert not result.reached
        assert result.message == "no room to jump"

    def test_descend(self, world, make_session):
        world.set_block(0, 62, 0, "stone")

        async def scenario():
            session = await make_session(world)
            return await session.motion.move("down")

        result = asyncio.run(scenario())
        assert result.reached
        assert result.height_delta == pytest.approx(-1.0)
        assert world.block_name(0, 63, 0) == "air"

    def test_descend_refuses_stone_without_pickaxe(self, world, make_session):
        world.set_block(0, 63, 0, "stone")

        async def scenario():
            session = await make_session(world)
            return await session.motion.descend()

        result = asyncio.run(scenario())
        assert not result.reached
        assert "pickaxe" in result.message
        assert world.block_name(0, 63, 0) == "stone"

    def test_flees_away_from_hostile(self, world, make_session):
        world.spawn_entity("zombie", Position(0.5, 64, -3.5))

        async def scenario():
            session = await make_session(world)
            return await session.motion.emergency_flee(2.0)

        result = asyncio.run(scenario())
        assert result.reached
        assert world.get_position().z > 5.0


# ---------------------------------------------------------------------------
# Intent parsing and block targets
# ---------------------------------------------------------------------------

class TestIntents:

    def test_parse_coordinates(self, world, make_session):
        async def scenario():
            session = await make_session(world)
            parse = session.motion._parse_coordinates
            return (
                parse("10, 64, -3"),
                parse("~2 ~-1"),
                parse("oak_log"),
                parse("1 2 3 4"),
            )

        absolute, relative, name, too_many = asyncio.run(scenario())
        assert absolute == (10.0, 64.0, -3.0)
        assert relative == (2.5, None, -0.5)
        assert name is None
        assert too_many is None

    def test_move_to_block(self, world, make_session):
        world.set_block(5, 64, -5, "crafting_table")

        async def scenario():
            session = await make_session(world)
            return await session.motion.move("crafting_table")

        result = asyncio.run(scenario())
        assert result.reached
        assert world.get_position().distance_to(Position(5.5, 64, -4.5)) <= 2.5

    def test_missing_block_is_not_a_blocked_move(self, world, make_session):
        async def scenario():
            session = await make_session(world)
            result = await session.motion.move("diamond_ore")
            return result, session.stuck.state.consecutive_blocked_moves

        result, blocked_moves = asyncio.run(scenario())
        assert not result.reached
        assert "no visible" in result.message
        assert blocked_moves == 0

    def test_moves_are_logged(self, world, make_session):
        async def scenario():
            session = await make_session(world)
            await session.motion.move("2.5 0.5")
            return session.movement_log.stats

        stats = asyncio.run(scenario())
        assert stats["moves"] == 1
        assert stats["moves_succeeded"] == 1
