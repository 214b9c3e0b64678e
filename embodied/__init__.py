"""
Embodied motion and recovery engine.

This module provides the agent's physical layer:
- AgentSession: Context object wiring every subsystem to one world client
- SpatialPerception / VisibilityFilter: Per-tick snapshots and FOV/LOS tests
- MotionController / GridNavigator / LookSmoother: Motion and orientation
- StuckDetector / RecoveryEngine: Stuck phases and ordered recovery
- ActionExecutor: Single-flight gate for physical actions
- HealthMonitor: Damage classification and reflex escape
"""

from .errors import (
    ErrorKind,
    EngineError,
    CapabilityMissingError,
    UnreachableError,
    BlockedError,
    NotFoundError,
    InvalidRequestError,
)
from .outcome import ActionRequest, ActionOutcome
from .fov import VisibilityFilter
from .perception import SpatialPerception, SpatialSnapshot, EscapeKind, ThreatLevel
from .look import LookSmoother
from .pathfinder import GridNavigator, Goal, Movements
from .motion import MotionController, MotionResult, Termination
from .stuck import StuckDetector, StuckPhase, next_phase
from .recovery import RecoveryEngine, RecoveryStrategy, StrategyOutcome
from .mining import MiningProtocol
from .actions import ActionProtocols
from .executor import ActionExecutor
from .health import HealthMonitor, HealthEvent, DamageSource
from .landmarks import LandmarkMemory, Landmark
from .session import AgentSession, TickReport

__all__ = [
    'ErrorKind',
    'EngineError',
    'CapabilityMissingError',
    'UnreachableError',
    'BlockedError',
    'NotFoundError',
    'InvalidRequestError',
    'ActionRequest',
    'ActionOutcome',
    'VisibilityFilter',
    'SpatialPerception',
    'SpatialSnapshot',
    'EscapeKind',
    'ThreatLevel',
    'LookSmoother',
    'GridNavigator',
    'Goal',
    'Movements',
    'MotionController',
    'MotionResult',
    'Termination',
    'StuckDetector',
    'StuckPhase',
    'next_phase',
    'RecoveryEngine',
    'RecoveryStrategy',
    'StrategyOutcome',
    'MiningProtocol',
    'ActionProtocols',
    'ActionExecutor',
    'HealthMonitor',
    'HealthEvent',
    'DamageSource',
    'LandmarkMemory',
    'Landmark',
    'AgentSession',
    'TickReport',
]
