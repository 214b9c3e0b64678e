"""Tests for damage classification and the escape reflex."""

import asyncio

import pytest

from embodied import DamageSource
from integration import Position, events


async def _past_grace(world, make_session):
    session = await make_session(world)
    await world.sleep(6.0)
    return session


async def _wait_for_escape(session, world):
    for _ in range(100):
        if not session.health.is_escaping:
            return
        await world.sleep(0.05)


class TestClassification:

    @pytest.mark.parametrize("setup,expected", [
        (lambda w: w.set_block(0, 65, 0, "water"), DamageSource.DROWNING),
        (lambda w: w.set_block(0, 64, 0, "lava"), DamageSource.LAVA),
        (lambda w: w.set_on_fire(True), DamageSource.FIRE),
        (lambda w: w.set_block(0, 65, 0, "stone"), DamageSource.SUFFOCATION),
        (lambda w: None, DamageSource.UNKNOWN),
    ])
    def test_environment(self, world, make_session, setup, expected):
        async def scenario():
            session = await make_session(world)
            setup(world)
            return session.health.classify(1.0)

        source, attacker = asyncio.run(scenario())
        assert source == expected
        assert attacker is None

    def test_nearest_hostile_is_the_attacker(self, world, make_session):
        world.spawn_entity("cow", Position(1.5, 64, 0.5))
        world.spawn_entity("skeleton", Position(6.5, 64, 0.5))
        world.spawn_entity("zombie", Position(3.5, 64, 0.5))

        async def scenario():
            session = await make_session(world)
            return session.health.classify(3.0)

        assert asyncio.run(scenario()) == (DamageSource.MOB, "zombie")

    def test_hostile_out_of_range_is_unknown(self, world, make_session):
        world.spawn_entity("zombie", Position(12.5, 64, 0.5))

        async def scenario():
            session = await make_session(world)
            return session.health.classify(3.0)

        assert asyncio.run(scenario()) == (DamageSource.UNKNOWN, None)


class TestHealthEvents:

    def test_spawn_grace(self, world, make_session):
        async def scenario():
            session = await make_session(world)
            world.apply_damage(4.0)
            return session.health

        monitor = asyncio.run(scenario())
        assert len(monitor.history) == 0
        assert monitor.escape_count == 0

    def test_healing_is_not_an_event(self, world, make_session):
        async def scenario():
            session = await _past_grace(world, make_session)
            return session.health.on_health({"health": 20.0, "previous": 15.0})

        assert asyncio.run(scenario()) is None

    def test_mob_damage_without_escape(self, world, make_session):
        world.spawn_entity("zombie", Position(3.5, 64, 0.5))
        published = []
        world.bus.subscribe(events.DAMAGE, published.append)

        async def scenario():
            session = await _past_grace(world, make_session)
            world.apply_damage(2.0)
            monitor = session.health
            await session.shutdown()
            return monitor

        monitor = asyncio.run(scenario())
        assert [p["source_class"] for p in published] == ["mob"]
        event = monitor.history[-1]
        assert event.source_class == DamageSource.MOB
        assert event.attacker == "zombie"
        assert event.damage_amount == 2.0
        assert event.health_after == 18.0
        assert monitor.escape_count == 0

    def test_drowning_escape_and_cooldown(self, world, make_session):
        world.set_block(0, 65, 0, "water")

        async def scenario():
            session = await _past_grace(world, make_session)
            world.apply_damage(1.0)
            world.apply_damage(1.0)
            count_during = session.health.escape_count
            escaping = session.health.is_escaping
            await _wait_for_escape(session, world)
            controls = world.get_control("jump"), world.get_control("forward")
            await session.shutdown()
            return session.health, count_during, escaping, controls

        monitor, count_during, escaping, controls = asyncio.run(scenario())
        assert monitor.history[-1].source_class == DamageSource.DROWNING
        assert count_during == 1
        assert escaping
        assert not monitor.is_escaping
        assert controls == (False, False)

    def test_rapid_damage_flees(self, world, make_session):
        async def scenario():
            session = await _past_grace(world, make_session)
            start = world.get_position()
            for _ in range(3):
                world.apply_damage(1.0)
            reason = session.health.escape_reason(session.health.history[-1])
            await _wait_for_escape(session, world)
            moved = world.get_position().horizontal_distance_to(start)
            await session.shutdown()
            return session.health, reason, moved

        monitor, reason, moved = asyncio.run(scenario())
        assert reason == "rapid damage"
        assert monitor.escape_count == 1
        assert moved > 1.0

    def test_critical_health(self, world, make_session):
        async def scenario():
            session = await _past_grace(world, make_session)
            world.apply_damage(9.0)
            monitor = session.health
            reason = monitor.escape_reason(monitor.history[-1])
            summary = monitor.summary()
            await session.shutdown()
            return reason, summary

        reason, summary = asyncio.run(scenario())
        assert reason == "critical health"
        assert summary.alert
        assert summary.health == 11.0
        assert summary.last_source == "unknown"
        assert summary.to_dict()["recent_events"] == 1

    def test_death_resets_history(self, world, make_session):
        async def scenario():
            session = await _past_grace(world, make_session)
            world.apply_damage(25.0)
            monitor = session.health
            await session.shutdown()
            return monitor

        monitor = asyncio.run(scenario())
        assert len(monitor.history) == 0
        assert world.get_health() == 20.0
