"""Tests for configuration loading and saving."""

import random

import numpy as np
import pytest

from utils import EngineConfig, load_config, save_config, set_seed


class TestEngineConfig:

    def test_defaults(self):
        config = EngineConfig()
        assert config.motion.stop_distance == 0.8
        assert config.motion.walk_timeout == 3.0
        assert config.mining.reach == 4.5
        assert config.recovery.max_attempts == 5
        assert config.health.critical_health == 12.0
        assert config.log_dir is None

    def test_from_dict_ignores_unknown_keys(self):
        config = EngineConfig.from_dict({
            "motion": {"walk_timeout": 5.0, "teleport": True},
            "recovery": {"pillar_height": 8},
            "weather": {"rain": False},
            "log_dir": "logs",
        })
        assert config.motion.walk_timeout == 5.0
        assert not hasattr(config.motion, "teleport")
        assert config.recovery.pillar_height == 8
        assert not hasattr(config, "weather")
        assert config.log_dir == "logs"

    def test_from_dict_none(self):
        assert EngineConfig.from_dict(None) == EngineConfig()

    @pytest.mark.parametrize("filename", ["engine.yaml", "engine.json"])
    def test_save_and_load(self, tmp_path, filename):
        config = EngineConfig()
        config.client.username = "digger"
        config.health.escape_cooldown = 4.0
        path = str(tmp_path / "configs" / filename)
        config.save(path)

        loaded = EngineConfig.from_file(path)
        assert loaded.client.username == "digger"
        assert loaded.health.escape_cooldown == 4.0
        assert loaded == config


class TestHelpers:

    def test_missing_file(self, tmp_path):
        assert load_config(str(tmp_path / "absent.yaml")) is None

    def test_empty_yaml_is_empty_dict(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(str(path)) == {}

    def test_save_config_creates_parents(self, tmp_path):
        path = str(tmp_path / "a" / "b" / "c.json")
        save_config({"motion": {"stop_distance": 1.0}}, path)
        assert load_config(path) == {"motion": {"stop_distance": 1.0}}

    def test_set_seed(self):
        set_seed(7)
        first = (random.random(), np.random.rand())
        set_seed(7)
        assert (random.random(), np.random.rand()) == first
