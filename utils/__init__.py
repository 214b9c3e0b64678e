"""
Utilities module for the embodied motion engine.

This module provides common utilities:
- Configuration management
- Movement and action logging
- Random seed management
"""

from .movement_log import MovementLogger, LogEntry
from .config import (
    set_seed,
    load_config,
    save_config,
    EngineConfig,
    MotionConfig,
    LookConfig,
    PerceptionConfig,
    RecoveryConfig,
    MiningConfig,
    HealthConfig,
    LandmarkConfig,
)

__all__ = [
    'MovementLogger',
    'LogEntry',
    'set_seed',
    'load_config',
    'save_config',
    'EngineConfig',
    'MotionConfig',
    'LookConfig',
    'PerceptionConfig',
    'RecoveryConfig',
    'MiningConfig',
    'HealthConfig',
    'LandmarkConfig',
]
