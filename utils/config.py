"""
config.py - Configuration management for the embodied motion engine.

This module provides utilities for:
- Loading configuration from YAML/JSON files
- Typed configuration sections for each engine subsystem
- Random seed management for reproducible dry runs
"""

import os
import json
import random
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np
import yaml

from integration.world_client import ClientConfig

logger = logging.getLogger(__name__)


def set_seed(seed: int) -> None:
    """
    Set random seed for reproducibility.

    Sets seed for:
    - NumPy random
    - Python random

    Args:
        seed: Random seed value
    """
    np.random.seed(seed)
    random.seed(seed)
    os.environ['PYTHONHASHSEED'] = str(seed)


def load_config(path: str) -> Optional[Dict]:
    """
    Load configuration from a YAML or JSON file.

    Args:
        path: Path to configuration file

    Returns:
        Configuration dictionary, or None if file not found
    """
    if not os.path.exists(path):
        logger.warning(f"Config file not found: {path}")
        return None

    with open(path, 'r') as f:
        if path.endswith('.yaml') or path.endswith('.yml'):
            return yaml.safe_load(f) or {}
        return json.load(f)


def save_config(config: Dict, path: str) -> None:
    """
    Save configuration to a file.

    Args:
        config: Configuration dictionary
        path: Path to save to
    """
    Path(path).parent.mkdir(parents=True, exist_ok=True)

    with open(path, 'w') as f:
        if path.endswith('.yaml') or path.endswith('.yml'):
            yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
        else:
            json.dump(config, f, indent=2)


@dataclass
class MotionConfig:
    """Direct walk, delegated pathfinding and direction resolution."""
    stop_distance: float = 0.8
    walk_timeout: float = 3.0
    tick_interval: float = 0.05
    stuck_sample_interval: float = 0.5
    min_sample_displacement: float = 0.1
    jump_after_stuck_samples: int = 2
    max_stuck_samples: int = 5
    direct_walk_range: float = 3.0

    path_timeout: float = 15.0
    bad_path_margin: float = 5.0
    progress_threshold: float = 0.5
    stall_timeout: float = 4.0
    max_unstick_cycles: int = 3
    dig_cost_underground: float = 15.0
    dig_cost_surface: float = 5.0

    direction_distance: float = 10.0
    alternate_min_progress: float = 2.0
    manual_walk_duration: float = 2.0
    manual_jump_interval: float = 0.3
    flee_duration: float = 2.0


@dataclass
class LookConfig:
    """Look smoothing profiles (rates are per 16 ms frame)."""
    frame_interval: float = 0.016
    navigating_factor: float = 0.20
    navigating_max_step: float = 0.084
    idle_factor: float = 0.08
    idle_max_step: float = 0.025
    snap_threshold: float = 0.01
    ambient_interval: float = 3.0
    ambient_radius: float = 16.0


@dataclass
class PerceptionConfig:
    """Spatial perception and visibility filtering."""
    fov_half_angle_deg: float = 70.0
    los_step: float = 0.5
    eye_height: float = 1.62
    memory_range: float = 20.0
    surface_y: int = 60
    sea_level: int = 62
    threat_radius: float = 32.0
    resource_radius: float = 32.0
    scan_length: int = 5
    brightness_range: int = 16
    brightness_min_light: int = 10
    liquid_check_range: int = 8


@dataclass
class RecoveryConfig:
    """Stuck detection thresholds and recovery strategy bounds."""
    max_attempts: int = 5
    blocked_moves_threshold: int = 2
    stall_timeout: float = 30.0
    min_displacement: float = 2.0
    history_size: int = 10
    swim_timeout: float = 10.0
    shore_search_range: int = 10
    clear_depth: int = 3
    pillar_height: int = 5
    min_pillar_blocks: int = 3
    staircase_steps: int = 5
    jump_bursts: int = 10
    settle_timeout: float = 2.0


@dataclass
class MiningConfig:
    """Mining candidate search, reach and drop collection."""
    search_radius: float = 32.0
    max_candidates: int = 10
    reach: float = 4.5
    max_reach: float = 5.5
    pickup_reach: float = 2.5
    drop_search_radius: float = 10.0
    collect_timeout: float = 3.0


@dataclass
class HealthConfig:
    """Damage classification and reflex escape."""
    spawn_grace: float = 5.0
    history_size: int = 10
    rapid_window: float = 5.0
    rapid_count: int = 3
    critical_health: float = 12.0
    escape_cooldown: float = 2.0
    mob_radius: float = 8.0
    swim_up_duration: float = 1.5
    sprint_duration: float = 1.0


@dataclass
class LandmarkConfig:
    """Placed-block memory persistence."""
    directory: str = "data/landmarks"
    flush_debounce: float = 30.0
    dedupe_radius: float = 2.0


@dataclass
class EngineConfig:
    """
    Complete engine configuration.

    Usage:
        config = EngineConfig.from_file('config.yaml')
        config.motion.walk_timeout = 5.0
        config.save('config_modified.yaml')
    """
    client: ClientConfig = field(default_factory=ClientConfig)
    motion: MotionConfig = field(default_factory=MotionConfig)
    look: LookConfig = field(default_factory=LookConfig)
    perception: PerceptionConfig = field(default_factory=PerceptionConfig)
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    mining: MiningConfig = field(default_factory=MiningConfig)
    health: HealthConfig = field(default_factory=HealthConfig)
    landmarks: LandmarkConfig = field(default_factory=LandmarkConfig)
    log_dir: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'EngineConfig':
        """Build a config from nested dictionaries, ignoring unknown keys."""
        config = cls()
        for key, value in (data or {}).items():
            if not hasattr(config, key):
                logger.warning(f"Ignoring unknown config section: {key}")
                continue
            section = getattr(config, key)
            if isinstance(value, dict) and hasattr(section, '__dataclass_fields__'):
                _apply_section(section, key, value)
            else:
                setattr(config, key, value)
        return config

    @classmethod
    def from_file(cls, path: str) -> 'EngineConfig':
        """Load configuration from a YAML or JSON file."""
        return cls.from_dict(load_config(path))

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to nested dictionaries."""
        return asdict(self)

    def save(self, path: str) -> None:
        """Save configuration to file."""
        save_config(self.to_dict(), path)


def _apply_section(section: Any, name: str, values: Dict[str, Any]) -> None:
    known = {f.name for f in fields(section)}
    for key, value in values.items():
        if key in known:
            setattr(section, key, value)
        else:
            logger.warning(f"Ignoring unknown config key: {name}.{key}")
