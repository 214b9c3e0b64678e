"""Tests for the command-line entry points."""

import asyncio
import json
from argparse import Namespace

import yaml

from main import run_demo, run_observe


def _args(tmp_path, **overrides) -> Namespace:
    config_path = tmp_path / "engine.yaml"
    config_path.write_text(yaml.safe_dump({"landmarks": {"directory": str(tmp_path / "landmarks")}}))
    values = {"config": str(config_path), "log_dir": None, "seed": 3}
    values.update(overrides)
    return Namespace(**values)


def test_demo_runs(tmp_path, capsys):
    assert asyncio.run(run_demo(_args(tmp_path, log_dir=str(tmp_path / "logs")))) == 0

    output = capsys.readouterr().out
    assert "Session Summary" in output
    assert list((tmp_path / "logs").glob("*.jsonl"))


def test_observe_prints_snapshot(tmp_path, capsys):
    assert asyncio.run(run_observe(_args(tmp_path))) == 0

    report = json.loads(capsys.readouterr().out)
    assert report["snapshot"]["semantic"]["is_underground"] is False
    assert report["disconnected"] is False
