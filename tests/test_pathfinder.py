"""Tests for the grid navigator (A* planning and tick-driven following)."""

import asyncio

from conftest import flat_world, sealed_box
from embodied.pathfinder import Goal, GridNavigator, Movements


def _navigator(world):
    world.teleport(world.spawn)
    return GridNavigator(world)


class TestGoal:

    def test_reached_within_range(self):
        from integration import Position
        goal = Goal(5.5, 64, 0.5, range=1.0)
        assert goal.is_reached(Position(4.7, 64, 0.5))
        assert not goal.is_reached(Position(4.0, 64, 0.5))

    def test_ignore_y(self):
        from integration import Position
        goal = Goal(5.5, 80, 0.5, range=1.0, ignore_y=True)
        assert goal.is_reached(Position(5.0, 64, 0.5))


class TestPlanning:

    def test_straight_path_on_flat_ground(self):
        navigator = _navigator(flat_world())
        path = navigator.find_path((0, 64, 0), Goal(5.5, 64, 0.5, range=0.5))
        assert path[-1] == (5, 64, 0)
        assert len(path) == 5

    def test_path_goes_around_a_wall(self):
        world = flat_world()
        world.fill(2, 64, -3, 2, 66, 3, "bedrock")
        navigator = _navigator(world)

        path = navigator.find_path((0, 64, 0), Goal(4.5, 64, 0.5, range=0.5))

        assert path is not None
        assert all(cell[0] != 2 or abs(cell[2]) > 3 for cell in path)

    def test_steps_up_one_block(self):
        world = flat_world()
        world.fill(2, 64, -3, 6, 64, 3, "dirt")
        navigator = _navigator(world)

        path = navigator.find_path((0, 64, 0), Goal(4.5, 65, 0.5, range=0.5))

        assert (2, 65, 0) in path

    def test_digs_through_breakable_wall(self):
        world = flat_world()
        world.fill(2, 64, -16, 2, 66, 16, "stone")
        navigator = _navigator(world)

        path = navigator.find_path((0, 64, 0), Goal(4.5, 64, 0.5, range=0.5), Movements(dig_cost=5))
        assert (2, 64, 0) in path
        assert navigator.find_path((0, 64, 0), Goal(4.5, 64, 0.5, range=0.5), Movements(can_dig=False)) is None

    def test_no_path_out_of_bedrock(self):
        world = flat_world()
        sealed_box(world)
        navigator = _navigator(world)
        assert navigator.find_path((0, 64, 0), Goal(6.5, 64, 0.5)) is None

    def test_set_goal_reports_failure(self):
        world = flat_world()
        sealed_box(world)
        navigator = _navigator(world)
        assert not navigator.set_goal(Goal(6.5, 64, 0.5))
        assert navigator.last_failure == "no_path"
        assert not navigator.is_moving()

    def test_set_goal_already_reached(self):
        navigator = _navigator(flat_world())
        assert navigator.set_goal(Goal(0.5, 64, 0.5))
        assert navigator.reached
        assert not navigator.is_moving()


class TestFollowing:

    def test_follows_path_to_goal(self):
        world = flat_world()
        navigator = GridNavigator(world)

        async def scenario():
            await world.connect()
            assert navigator.set_goal(Goal(5.5, 64, 3.5, range=1.0))
            for _ in range(200):
                if not navigator.is_moving():
                    break
                await world.sleep(0.05)

        asyncio.run(scenario())
        assert navigator.reached
        assert Goal(5.5, 64, 3.5, range=1.0).is_reached(world.get_position())
        assert not world.get_control("forward")

    def test_digs_obstruction_while_following(self):
        world = flat_world()
        world.fill(2, 64, -16, 2, 66, 16, "dirt")
        navigator = GridNavigator(world)

        async def scenario():
            await world.connect()
            assert navigator.set_goal(Goal(4.5, 64, 0.5, range=0.8), Movements(dig_cost=1))
            for _ in range(400):
                if not navigator.is_moving():
                    break
                await world.sleep(0.05)

        asyncio.run(scenario())
        assert navigator.reached
        assert world.block_name(2, 64, 0) == "air"
        assert world.block_name(2, 65, 0) == "air"

    def test_stop_releases_controls(self):
        world = flat_world()
        navigator = GridNavigator(world)

        async def scenario():
            await world.connect()
            navigator.set_goal(Goal(8.5, 64, 0.5))
            await world.sleep(0.2)
            navigator.stop()

        asyncio.run(scenario())
        assert not navigator.is_moving()
        assert not world.get_control("forward")
