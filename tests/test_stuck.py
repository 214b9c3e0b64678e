"""Tests for the stuck phase machine and detector."""

import pytest

from embodied.stuck import StuckDetector, StuckPhase, StuckSignals, next_phase
from integration import EventBus, Position, events
from utils import RecoveryConfig


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 0.0):
        self.time = start

    def __call__(self) -> float:
        return self.time


def _signals(**overrides) -> StuckSignals:
    values = dict(
        consecutive_blocked_moves=0,
        elapsed_since_success=0.0,
        displacement=0.0,
        recovery_attempts=0,
    )
    values.update(overrides)
    return StuckSignals(**values)


def _detector(clock=None, bus=None) -> StuckDetector:
    return StuckDetector(RecoveryConfig(), clock=clock or FakeClock(), bus=bus)


HERE = Position(0.5, 64, 0.5)


# ---------------------------------------------------------------------------
# Pure transitions
# ---------------------------------------------------------------------------

class TestNextPhase:

    @pytest.mark.parametrize("blocked,expected", [
        (0, StuckPhase.NORMAL),
        (1, StuckPhase.NORMAL),
        (2, StuckPhase.STUCK),
    ])
    def test_blocked_moves_threshold(self, blocked, expected):
        signals = _signals(consecutive_blocked_moves=blocked)
        assert next_phase(StuckPhase.NORMAL, signals, RecoveryConfig()) == expected

    def test_stall_needs_small_displacement(self):
        limits = RecoveryConfig()
        stalled = _signals(elapsed_since_success=30.0, displacement=1.9)
        wandering = _signals(elapsed_since_success=30.0, displacement=2.0)
        recent = _signals(elapsed_since_success=29.0, displacement=0.0)
        assert next_phase(StuckPhase.NORMAL, stalled, limits) == StuckPhase.STUCK
        assert next_phase(StuckPhase.NORMAL, wandering, limits) == StuckPhase.NORMAL
        assert next_phase(StuckPhase.NORMAL, recent, limits) == StuckPhase.NORMAL

    def test_ordinary_move_does_not_leave_stuck(self):
        assert next_phase(StuckPhase.STUCK, _signals(), RecoveryConfig()) == StuckPhase.STUCK

    def test_recovery_transitions(self):
        limits = RecoveryConfig()
        assert next_phase(StuckPhase.STUCK, _signals(begin_recovery=True), limits) == StuckPhase.RECOVERING
        assert next_phase(StuckPhase.RECOVERING, _signals(recovered=True, recovery_attempts=1),
                          limits) == StuckPhase.NORMAL
        assert next_phase(StuckPhase.RECOVERING, _signals(recovered=False, recovery_attempts=1),
                          limits) == StuckPhase.STUCK
        assert next_phase(StuckPhase.RECOVERING, _signals(recovered=False, recovery_attempts=5),
                          limits) == StuckPhase.EXHAUSTED

    def test_begin_with_spent_budget_is_exhausted(self):
        signals = _signals(begin_recovery=True, recovery_attempts=5)
        assert next_phase(StuckPhase.STUCK, signals, RecoveryConfig()) == StuckPhase.EXHAUSTED

    def test_exhausted_is_sticky(self):
        for signals in (_signals(recovered=True), _signals(begin_recovery=True), _signals()):
            assert next_phase(StuckPhase.EXHAUSTED, signals, RecoveryConfig()) == StuckPhase.EXHAUSTED


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------

class TestStuckDetector:

    def test_two_blocked_moves_enter_stuck(self):
        detector = _detector()
        assert detector.record_move(HERE, succeeded=False, blocked=True) == StuckPhase.NORMAL
        assert detector.record_move(HERE, succeeded=False, blocked=True) == StuckPhase.STUCK

    def test_success_resets_blocked_count(self):
        detector = _detector()
        detector.record_move(HERE, succeeded=False, blocked=True)
        detector.record_move(HERE, succeeded=True, blocked=False)
        assert detector.state.consecutive_blocked_moves == 0
        assert detector.record_move(HERE, succeeded=False, blocked=True) == StuckPhase.NORMAL

    def test_success_while_stuck_keeps_phase(self):
        detector = _detector()
        detector.record_move(HERE, succeeded=False, blocked=True)
        detector.record_move(HERE, succeeded=False, blocked=True)
        assert detector.record_move(HERE.offset(5, 0, 0), succeeded=True, blocked=False) == StuckPhase.STUCK

    def test_unblocked_failure_does_not_count(self):
        detector = _detector()
        for _ in range(3):
            detector.record_move(HERE, succeeded=False, blocked=False)
        assert detector.state.consecutive_blocked_moves == 0
        assert detector.phase == StuckPhase.NORMAL

    def test_stall_without_displacement(self):
        clock = FakeClock()
        detector = _detector(clock)
        clock.time = 31.0
        assert detector.record_move(HERE.offset(0.5, 0, 0), succeeded=False, blocked=False) == StuckPhase.STUCK

    def test_stall_with_displacement_is_not_stuck(self):
        clock = FakeClock()
        detector = _detector(clock)
        clock.time = 10.0
        detector.record_move(HERE, succeeded=False, blocked=False)
        clock.time = 31.0
        assert detector.record_move(HERE.offset(10, 0, 0), succeeded=False, blocked=False) == StuckPhase.NORMAL

    def test_recovery_cycle(self):
        detector = _detector()
        detector.record_move(HERE, succeeded=False, blocked=True)
        detector.record_move(HERE, succeeded=False, blocked=True)

        assert detector.begin_recovery()
        assert detector.phase == StuckPhase.RECOVERING
        assert detector.state.is_in_recovery_mode
        assert detector.state.recovery_attempts == 1
        assert not detector.begin_recovery()

        assert detector.finish_recovery(True) == StuckPhase.NORMAL
        assert detector.state.recovery_attempts == 0
        assert not detector.state.is_in_recovery_mode

    def test_budget_exhaustion(self):
        detector = _detector()
        phases = []
        for _ in range(5):
            assert detector.begin_recovery()
            phases.append(detector.finish_recovery(False))

        assert phases[:4] == [StuckPhase.STUCK] * 4
        assert phases[4] == StuckPhase.EXHAUSTED
        assert not detector.begin_recovery()
        assert detector.state.recovery_attempts == 5

    def test_acknowledge_clears_exhausted(self):
        detector = _detector()
        for _ in range(5):
            detector.begin_recovery()
            detector.finish_recovery(False)

        detector.acknowledge()

        assert detector.phase == StuckPhase.NORMAL
        assert detector.state.recovery_attempts == 0
        assert detector.begin_recovery()

    def test_respawn_resets_state(self):
        bus = EventBus()
        detector = _detector(bus=bus)
        for _ in range(5):
            detector.begin_recovery()
            detector.finish_recovery(False)

        bus.publish(events.RESPAWN, {"position": HERE})

        assert detector.phase == StuckPhase.NORMAL
        assert detector.state.recovery_attempts == 0

    def test_phase_changes_are_published(self):
        bus = EventBus()
        changes = []
        bus.subscribe(events.STUCK_CHANGED, changes.append)
        detector = _detector(bus=bus)

        detector.record_move(HERE, succeeded=False, blocked=True)
        detector.record_move(HERE, succeeded=False, blocked=True)
        detector.record_move(HERE, succeeded=False, blocked=True)

        assert changes == [{"previous": "normal", "phase": "stuck"}]

    def test_state_is_plain_data(self):
        detector = _detector()
        detector.record_move(HERE, succeeded=False, blocked=True)
        state = detector.state.to_dict()
        assert state["phase"] == "normal"
        assert state["consecutive_blocked_moves"] == 1
        assert state["history_size"] == 1
