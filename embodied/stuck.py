"""
stuck.py - Stuck detection state machine.

Phases:
- NORMAL: moves are succeeding
- STUCK: repeated blocked moves, or no displacement within the stall window
- RECOVERING: a recovery run is in progress
- EXHAUSTED: the recovery budget is spent; cleared only by acknowledge()
  or a respawn
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, Optional, Tuple

from integration import events
from integration.events import EventBus
from integration.world_client import Position
from utils.config import RecoveryConfig

logger = logging.getLogger(__name__)


class StuckPhase(Enum):
    NORMAL = "normal"
    STUCK = "stuck"
    RECOVERING = "recovering"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class StuckSignals:
    """Inputs to one phase transition."""
    consecutive_blocked_moves: int
    elapsed_since_success: float
    displacement: float
    recovery_attempts: int
    begin_recovery: bool = False
    recovered: Optional[bool] = None


def next_phase(phase: StuckPhase, signals: StuckSignals, limits: RecoveryConfig) -> StuckPhase:
    """
    Compute the next phase.

    A successful ordinary move never leaves STUCK; only a verified
    recovery does.
    """
    if phase == StuckPhase.EXHAUSTED:
        return phase

    if signals.recovered is not None:
        if signals.recovered:
            return StuckPhase.NORMAL
        if signals.recovery_attempts >= limits.max_attempts:
            return StuckPhase.EXHAUSTED
        return StuckPhase.STUCK

    if signals.begin_recovery:
        if phase == StuckPhase.RECOVERING:
            return phase
        if signals.recovery_attempts >= limits.max_attempts:
            return StuckPhase.EXHAUSTED
        return StuckPhase.RECOVERING

    if phase == StuckPhase.NORMAL:
        if signals.consecutive_blocked_moves >= limits.blocked_moves_threshold:
            return StuckPhase.STUCK
        stalled = signals.elapsed_since_success >= limits.stall_timeout
        if stalled and signals.displacement < limits.min_displacement:
            return StuckPhase.STUCK
    return phase


@dataclass
class StuckState:
    consecutive_blocked_moves: int = 0
    recovery_attempts: int = 0
    is_in_recovery_mode: bool = False
    last_successful_move_time: float = 0.0
    position_history: Deque[Tuple[float, Position]] = field(default_factory=lambda: deque(maxlen=10))
    phase: StuckPhase = StuckPhase.NORMAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "consecutive_blocked_moves": self.consecutive_blocked_moves,
            "recovery_attempts": self.recovery_attempts,
            "is_in_recovery_mode": self.is_in_recovery_mode,
            "last_successful_move_time": round(self.last_successful_move_time, 2),
            "history_size": len(self.position_history),
        }


class StuckDetector:
    """
    Tracks move outcomes and drives the stuck phase machine.

    Usage:
        detector = StuckDetector(config, clock=client.now, bus=client.bus)
        detector.record_move(position, succeeded=False, blocked=True)
        if detector.phase == StuckPhase.STUCK:
            ...
    """

    def __init__(
        self,
        config: Optional[RecoveryConfig] = None,
        clock: Optional[Callable[[], float]] = None,
        bus: Optional[EventBus] = None
    ):
        self.config = config or RecoveryConfig()
        self._clock = clock or (lambda: 0.0)
        self.bus = bus
        self.state = StuckState(position_history=deque(maxlen=self.config.history_size))
        self.state.last_successful_move_time = self._clock()
        if bus is not None:
            bus.subscribe(events.RESPAWN, self._on_respawn)

    @property
    def phase(self) -> StuckPhase:
        return self.state.phase

    def displacement(self) -> float:
        """Largest distance between the latest position and any in history."""
        history = self.state.position_history
        if len(history) < 2:
            return 0.0
        latest = history[-1][1]
        return max(pos.distance_to(latest) for _, pos in history)

    def record_move(self, position: Position, succeeded: bool, blocked: bool) -> StuckPhase:
        """
        Record one move outcome.

        Args:
            position: Agent position after the move
            succeeded: Whether the move reached its target
            blocked: Whether the move was blocked (stuck or bad path)

        Returns:
            Phase after the transition
        """
        state = self.state
        now = self._clock()
        state.position_history.append((now, position.copy()))
        if succeeded:
            state.consecutive_blocked_moves = 0
            state.last_successful_move_time = now
        elif blocked:
            state.consecutive_blocked_moves += 1
        return self._advance(StuckSignals(
            consecutive_blocked_moves=state.consecutive_blocked_moves,
            elapsed_since_success=now - state.last_successful_move_time,
            displacement=self.displacement(),
            recovery_attempts=state.recovery_attempts,
        ))

    def begin_recovery(self) -> bool:
        """
        Enter RECOVERING and consume one attempt.

        Returns:
            False when already recovering or the budget is spent
        """
        if self.phase in (StuckPhase.RECOVERING, StuckPhase.EXHAUSTED):
            return False
        phase = self._advance(self._signals(begin_recovery=True))
        if phase != StuckPhase.RECOVERING:
            return False
        self.state.recovery_attempts += 1
        self.state.is_in_recovery_mode = True
        return True

    def finish_recovery(self, success: bool) -> StuckPhase:
        """Close a recovery run; success resets the whole state."""
        self.state.is_in_recovery_mode = False
        phase = self._advance(self._signals(recovered=success))
        if success:
            self._reset()
        return phase

    def acknowledge(self) -> None:
        """Clear EXHAUSTED (or any phase) on explicit request."""
        self._reset()
        self._set_phase(StuckPhase.NORMAL)

    def _on_respawn(self, payload) -> None:
        logger.debug("Respawn: clearing stuck state")
        self.acknowledge()

    def _reset(self) -> None:
        state = self.state
        state.consecutive_blocked_moves = 0
        state.recovery_attempts = 0
        state.is_in_recovery_mode = False
        state.last_successful_move_time = self._clock()
        state.position_history.clear()

    def _signals(self, **overrides) -> StuckSignals:
        state = self.state
        values = dict(
            consecutive_blocked_moves=state.consecutive_blocked_moves,
            elapsed_since_success=self._clock() - state.last_successful_move_time,
            displacement=self.displacement(),
            recovery_attempts=state.recovery_attempts,
        )
        values.update(overrides)
        return StuckSignals(**values)

    def _advance(self, signals: StuckSignals) -> StuckPhase:
        self._set_phase(next_phase(self.phase, signals, self.config))
        return self.phase

    def _set_phase(self, phase: StuckPhase) -> None:
        previous = self.state.phase
        if phase == previous:
            return
        self.state.phase = phase
        logger.info(f"Stuck phase: {previous.value} -> {phase.value}")
        if self.bus is not None:
            self.bus.publish(events.STUCK_CHANGED, {"previous": previous.value, "phase": phase.value})
