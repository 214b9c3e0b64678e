#!/usr/bin/env python3
"""
main.py - Main entry point for the embodied motion engine.

This script provides CLI access to:
1. A scripted dry-run session against the simulated world
2. A single perception snapshot printed as JSON

Usage:
    python main.py demo                         Run the scripted demo
    python main.py demo --seed 7 --log-dir logs Seeded demo with JSONL logs
    python main.py observe                      Print one snapshot
    python main.py observe --config engine.yaml Use a configuration file
"""

import argparse
import asyncio
import json
import logging
import sys

from embodied import ActionRequest, AgentSession
from integration import Position, SimulatedWorld
from utils import EngineConfig, set_seed

logger = logging.getLogger(__name__)


def build_demo_world(world: SimulatedWorld) -> None:
    """Lay out a small test area around the spawn point."""
    world.fill(-20, 60, -20, 20, 62, 20, "stone")
    world.fill(-20, 63, -20, 20, 63, 20, "grass_block")

    # Tree to the north
    world.fill(2, 64, -6, 2, 67, -6, "oak_log")
    world.fill(1, 68, -7, 3, 68, -5, "oak_leaves")
    world.set_block(2, 69, -6, "oak_leaves")

    # Stone outcrop to the east
    world.fill(6, 64, -1, 8, 65, 1, "stone")
    world.set_block(7, 64, 3, "coal_ore")

    # Pond to the south-west
    world.fill(-6, 63, 4, -4, 63, 6, "water")

    world.spawn_entity("zombie", Position(-12.5, 64, -12.5))


def load_engine_config(args) -> EngineConfig:
    config = EngineConfig.from_file(args.config) if args.config else EngineConfig()
    if args.log_dir:
        config.log_dir = args.log_dir
    return config


def print_outcome(request: ActionRequest, outcome) -> None:
    status = "✓" if outcome.success else f"✗ {outcome.error_kind.value if outcome.error_kind else 'failed'}"
    target = f" {request.target}" if request.target else ""
    print(f"{request.kind}{target:<20} {status:<22} {outcome.message}")


async def run_demo(args) -> int:
    """Run a scripted sequence of actions in the simulated world."""
    print("=" * 60)
    print("Embodied Motion Engine - Dry-Run Demo")
    print("=" * 60)

    config = load_engine_config(args)
    world = SimulatedWorld(config.client, seed=args.seed)
    build_demo_world(world)
    world.give("wooden_pickaxe")
    world.give("dirt", 16)
    world.give("crafting_table")

    session = AgentSession(world, config, seed=args.seed)
    if not await session.start():
        print("Error: could not start session")
        return 1

    script = [
        ActionRequest("move", "north"),
        ActionRequest("mine", "oak_log"),
        ActionRequest("place", "crafting_table"),
        ActionRequest("move", "3 64 -2"),
        ActionRequest("move", "east"),
        ActionRequest("mine", "stone"),
        ActionRequest("dig_up"),
        ActionRequest("wait", parameters={"seconds": 1.0}),
        ActionRequest("recover"),
    ]

    try:
        for request in script:
            outcome = await session.execute(request)
            print_outcome(request, outcome)
            if session.disconnected:
                break

        report = session.observe()
        semantic = report.snapshot.semantic if report.snapshot else None
        print("\n" + "=" * 60)
        print("Final State")
        print("=" * 60)
        pos = world.get_position()
        print(f"Position: ({pos.x:.1f}, {pos.y:.1f}, {pos.z:.1f})")
        print(f"Inventory: {world.inventory_counts()}")
        print(f"Stuck phase: {report.stuck['phase']}")
        if semantic is not None:
            print(f"Underground: {semantic.is_underground}  Sky: {semantic.can_see_sky}  "
                  f"Threats: {len(semantic.threats)}")
        print(f"Landmarks: {[(lm.name, lm.position) for lm in session.landmarks.landmarks]}")
    finally:
        await session.shutdown()

    summary = session.movement_log.get_summary()
    print("\n" + "=" * 60)
    print("Session Summary")
    print("=" * 60)
    print(f"Moves: {summary['moves']} ({summary['moves_succeeded']} reached)")
    print(f"Actions: {summary['actions']} ({summary['actions_succeeded']} succeeded)")
    print(f"Blocks mined: {summary['blocks_mined']}")
    print(f"Items collected: {summary['items_collected']}")
    return 0


async def run_observe(args) -> int:
    """Print one perception snapshot of the demo world as JSON."""
    config = load_engine_config(args)
    world = SimulatedWorld(config.client, seed=args.seed)
    build_demo_world(world)

    session = AgentSession(world, config, seed=args.seed)
    if not await session.start():
        print("Error: could not start session")
        return 1
    try:
        report = session.observe()
        print(json.dumps(report.to_dict(), indent=2))
    finally:
        await session.shutdown()
    return 0


def main():
    """Main entry point with subcommand support."""
    parser = argparse.ArgumentParser(
        description="Embodied motion engine - dry-run demo and perception snapshot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py demo                         Run the scripted demo
  python main.py demo --log-level DEBUG       Show pathfinding and recovery detail
  python main.py observe                      Print one snapshot as JSON
        """
    )
    parser.add_argument('--config', type=str, default=None,
                        help='Path to YAML or JSON configuration file')
    parser.add_argument('--log-level', type=str, default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level')
    parser.add_argument('--seed', type=int, default=None,
                        help='Random seed')
    parser.add_argument('--log-dir', type=str, default=None,
                        help='Directory for JSONL movement logs')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')
    subparsers.add_parser('demo', help='Run a scripted dry-run session')
    subparsers.add_parser('observe', help='Print one perception snapshot as JSON')

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    if args.seed is not None:
        set_seed(args.seed)

    if args.command == 'demo':
        return asyncio.run(run_demo(args))
    if args.command == 'observe':
        return asyncio.run(run_observe(args))

    parser.print_help()
    print("\n💡 Quick start:")
    print("  Demo:     python main.py demo")
    print("  Snapshot: python main.py observe")
    return 0


if __name__ == "__main__":
    sys.exit(main())
