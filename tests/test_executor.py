"""Tests for the action executor's single-flight gate and error mapping."""

import asyncio
from unittest.mock import AsyncMock

from conftest import sealed_box
from embodied import ActionRequest, ErrorKind, StuckPhase
from integration import events


# ---------------------------------------------------------------------------
# Single flight
# ---------------------------------------------------------------------------

class TestSingleFlight:

    def test_concurrent_physical_action_is_busy(self, world, make_session):
        async def scenario():
            session = await make_session(world)
            first, second = await asyncio.gather(
                session.execute(ActionRequest("move", "5 64 0.5")),
                session.execute(ActionRequest("move", "5 64 0.5")),
            )
            return first, second, session.executor.busy

        first, second, busy = asyncio.run(scenario())
        assert first.success
        assert second.error_kind == ErrorKind.BUSY
        assert second.message == "busy with move"
        assert second.measured_delta == {}
        assert not busy

    def test_wait_is_not_gated(self, world, make_session):
        async def scenario():
            session = await make_session(world)
            return await asyncio.gather(
                session.execute(ActionRequest("move", "5 64 0.5")),
                session.execute(ActionRequest("wait", parameters={"seconds": 0.1})),
            )

        move, wait = asyncio.run(scenario())
        assert move.success
        assert wait.success

    def test_token_released_after_unexpected_error(self, world, make_session):
        async def scenario():
            session = await make_session(world)
            session.mining.mine = AsyncMock(side_effect=RuntimeError("boom"))
            outcome = await session.execute(ActionRequest("mine", "stone"))
            return outcome, session.executor.busy, session.executor.current

        outcome, busy, current = asyncio.run(scenario())
        assert outcome.error_kind == ErrorKind.FAILED
        assert outcome.message == "unexpected error: boom"
        assert not busy
        assert current is None


# ---------------------------------------------------------------------------
# Request validation and error mapping
# ---------------------------------------------------------------------------

class TestRequests:

    def test_unknown_kind(self, world, make_session):
        async def scenario():
            session = await make_session(world)
            return await session.execute(ActionRequest("fly", "up"))

        outcome = asyncio.run(scenario())
        assert outcome.error_kind == ErrorKind.INVALID_REQUEST
        assert outcome.message == "unknown action: fly"

    def test_move_needs_target(self, world, make_session):
        async def scenario():
            session = await make_session(world)
            return await session.execute(ActionRequest("move"))

        outcome = asyncio.run(scenario())
        assert outcome.error_kind == ErrorKind.INVALID_REQUEST

    def test_successful_move_reports_measured_delta(self, world, make_session):
        async def scenario():
            session = await make_session(world)
            return await session.execute(ActionRequest("move", "2.5 0.5")), session

        outcome, session = asyncio.run(scenario())
        assert outcome.success
        assert set(outcome.measured_delta) == {"horizontal", "vertical", "inventory"}
        assert outcome.measured_delta["horizontal"] > 1.0
        assert outcome.data["motion"]["termination_reason"] == "success"
        assert outcome.to_dict()["error"] is None
        assert session.movement_log.stats["actions_succeeded"] == 1

    def test_lost_link_mid_move(self, world, make_session):
        def drop_on_second_tick(payload):
            if world.ticks >= 2 and world.is_connected():
                world.drop_link()

        async def scenario():
            session = await make_session(world)
            world.bus.subscribe(events.PHYSICS_TICK, drop_on_second_tick)
            first = await session.execute(ActionRequest("move", "north"))
            later = await session.execute(ActionRequest("wait", "1"))
            return first, later, session

        first, later, session = asyncio.run(scenario())
        assert first.error_kind == ErrorKind.DISCONNECTED
        assert later.error_kind == ErrorKind.DISCONNECTED
        assert session.disconnected
        assert not session.executor.busy


# ---------------------------------------------------------------------------
# Recovery escalation
# ---------------------------------------------------------------------------

class TestRecoveryEscalation:

    def test_stuck_move_escalates_to_recovery(self, world, make_session):
        sealed_box(world)

        async def scenario():
            session = await make_session(world)
            first = await session.execute(ActionRequest("move", "north"))
            second = await session.execute(ActionRequest("move", "south"))
            return first, second

        first, second = asyncio.run(scenario())
        assert first.error_kind == ErrorKind.BLOCKED
        assert "recovery" not in first.data
        assert second.error_kind == ErrorKind.BLOCKED
        assert second.data["recovery"]["success"] is False
        assert second.data["recovery"]["attempts"] == 1

    def test_exhausted_budget_and_reset(self, world, make_session):
        async def scenario():
            session = await make_session(world)
            session.recovery.strategies = []
            outcomes = [await session.execute(ActionRequest("recover")) for _ in range(5)]
            phase = session.stuck.phase
            reset = await session.execute(ActionRequest("recover", parameters={"reset": True}))
            return outcomes, phase, reset

        outcomes, phase, reset = asyncio.run(scenario())
        assert all(o.error_kind == ErrorKind.BLOCKED for o in outcomes)
        assert outcomes[-1].message == "recovery exhausted after 5 attempts"
        assert phase == StuckPhase.EXHAUSTED
        assert reset.message == "no strategy made progress"
        assert reset.data["attempts"] == 1
        assert reset.data["phase"] == "stuck"
