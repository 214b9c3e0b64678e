"""Tests for layered spatial perception."""

import json

from conftest import flat_world
from embodied.landmarks import LandmarkMemory
from embodied.perception import (
    BlockObservation, EscapeKind, SpatialPerception, ThreatLevel,
    classify_escape, threat_level,
)
from integration import Position, SimulatedWorld
from utils import LandmarkConfig


def _perception(world, landmarks=None) -> SpatialPerception:
    if world.get_position() is None:
        world.teleport(world.spawn)
    return SpatialPerception(world, landmarks=landmarks)


def _obs(name: str, y: int) -> BlockObservation:
    return BlockObservation(name, (0, y, 0), float(y))


def _cave_world() -> SimulatedWorld:
    """A stone mass with a two-block pocket for the agent at y=30."""
    world = SimulatedWorld(spawn=Position(0.5, 30.0, 0.5))
    world.fill(-3, 26, -3, 3, 36, 3, "stone")
    world.set_block(0, 30, 0, "air")
    world.set_block(0, 31, 0, "air")
    world.teleport(world.spawn)
    return world


def _pocket_world() -> SimulatedWorld:
    """A pocket deep in stone with a lit shaft to the north behind water."""
    world = SimulatedWorld(spawn=Position(0.5, 30.0, 0.5))
    world.fill(-17, 26, -17, 17, 40, 17, "stone")
    world.set_block(0, 30, 0, "air")
    world.set_block(0, 31, 0, "air")
    world.fill(0, 31, -3, 0, 40, -3, "air")
    world.set_block(0, 29, -1, "water")
    world.teleport(world.spawn)
    return world


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

class TestClassifyEscape:

    def test_clear_column(self):
        path = classify_escape([_obs("air", 66), _obs("air", 67), None], 64)
        assert path.kind == EscapeKind.CLEAR
        assert path.obstacles == ()

    def test_solid_in_first_two_cells_blocks(self):
        path = classify_escape([_obs("air", 32), _obs("stone", 33)], 30)
        assert path.kind == EscapeKind.BLOCKED
        assert path.obstacles == ("stone",)
        assert path.blocks_to_surface == 32

    def test_solid_higher_up_needs_building(self):
        column = [_obs("air", 32), _obs("air", 33), _obs("dirt", 34), _obs("stone", 35)]
        path = classify_escape(column, 30)
        assert path.kind == EscapeKind.NEEDS_BUILDING
        assert path.obstacles == ("dirt", "stone")

    def test_threat_buckets(self):
        assert threat_level(4.9) == ThreatLevel.CRITICAL
        assert threat_level(5.0) == ThreatLevel.HIGH
        assert threat_level(15) == ThreatLevel.MEDIUM
        assert threat_level(25) == ThreatLevel.LOW


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------

class TestSnapshot:

    def test_no_position_gives_no_snapshot(self):
        assert SpatialPerception(SimulatedWorld()).build() is None

    def test_surface_snapshot(self):
        world = flat_world()
        snapshot = _perception(world).build()

        assert snapshot.position == (0.5, 64.0, 0.5)
        assert snapshot.facing == (0, -1)
        assert snapshot.grid.cell("below", "center").name == "air"
        assert snapshot.scan.down[0].name == "grass_block"
        assert not snapshot.semantic.is_underground
        assert snapshot.semantic.can_see_sky
        assert not snapshot.semantic.in_cave
        assert snapshot.semantic.escape_path is None
        assert snapshot.semantic.brightest_direction is None

    def test_unloaded_cells_are_none(self):
        world = flat_world()
        world.unload(1, 65, 0)
        snapshot = _perception(world).build()
        assert snapshot.grid.cell("current", "e") is None

    def test_front_scan_follows_facing(self):
        world = flat_world()
        world.set_block(0, 65, -3, "stone")
        snapshot = _perception(world).build()
        assert [obs.name for obs in snapshot.scan.front][:3] == ["air", "air", "stone"]
        assert snapshot.scan.front[2].position == (0, 65, -3)

    def test_cave_snapshot(self):
        snapshot = _perception(_cave_world()).build()
        semantic = snapshot.semantic

        assert semantic.is_underground
        assert not semantic.can_see_sky
        assert semantic.in_cave
        assert semantic.escape_path.kind == EscapeKind.BLOCKED
        assert semantic.escape_path.blocks_to_surface == 32
        assert semantic.brightest_direction.direction == "north"
        assert semantic.brightest_direction.distance == 4
        assert semantic.brightest_direction.light == 15
        assert not semantic.brightest_direction.has_liquid_in_path

    def test_repeated_builds_are_equal(self):
        world = _cave_world()
        world.spawn_entity("zombie", Position(0.5, 30, -2.5))
        perception = _perception(world)

        first = perception.build()
        second = perception.build()

        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_snapshot_is_plain_data(self):
        snapshot = _perception(_cave_world()).build()
        data = snapshot.to_dict()
        json.dumps(data)
        assert data["semantic"]["escape_path"]["kind"] == "blocked"


class TestBrightestDirection:

    def test_dry_direction_beats_nearer_one_with_liquid(self):
        world = _pocket_world()
        world.fill(6, 31, 0, 6, 40, 0, "air")
        perception = _perception(world)

        bright = perception.find_brightest_direction(world.get_position())

        assert bright.direction == "east"
        assert bright.distance == 6
        assert not bright.has_liquid_in_path

    def test_falls_back_to_liquid_direction(self):
        world = _pocket_world()
        perception = _perception(world)

        bright = perception.find_brightest_direction(world.get_position())

        assert bright.direction == "north"
        assert bright.distance == 3
        assert bright.light == 15
        assert bright.has_liquid_in_path


class TestThreatsAndResources:

    def test_only_visible_hostiles_are_threats(self):
        world = flat_world()
        world.teleport(world.spawn)
        ahead = world.spawn_entity("zombie", Position(0.5, 64, -6.5))
        world.spawn_entity("skeleton", Position(0.5, 64, 6.5))
        world.spawn_entity("cow", Position(2.5, 64, -3.5))

        threats = _perception(world).build().semantic.threats

        assert [t.entity_id for t in threats] == [ahead.entity_id]
        assert threats[0].level == ThreatLevel.HIGH

    def test_nearest_visible_tree(self):
        world = flat_world()
        world.fill(2, 64, -6, 2, 67, -6, "oak_log")
        resources = _perception(world).build().semantic.nearest_resources
        assert resources.tree.name == "oak_log"
        assert resources.tree.position == (2, 64, -6)
        assert resources.ore is None

    def test_remembered_landmark_behind_agent(self, tmp_path):
        world = flat_world()
        memory = LandmarkMemory(LandmarkConfig(directory=str(tmp_path)))
        memory.record("crafting_table", (0, 64, 25))

        resources = _perception(world, memory).build().semantic.nearest_resources

        assert resources.functional.name == "crafting_table"
        assert resources.functional.remembered

    def test_nearby_landmark_behind_agent_is_not_seen(self, tmp_path):
        world = flat_world()
        memory = LandmarkMemory(LandmarkConfig(directory=str(tmp_path)))
        memory.record("crafting_table", (0, 64, 5))

        resources = _perception(world, memory).build().semantic.nearest_resources

        assert resources.functional is None
