"""
movement_log.py - Movement and action logging for live sessions.

This module provides logging functionality for:
- Motion outcomes (reached, distance moved, termination reason)
- Action outcomes (kind, success, error kind)
- Recovery attempts and their measured progress
- Per-session counters and outcome distributions

Records are kept in memory and, when a log directory is given, appended
as JSON lines (one file per session) for later analysis.
"""

import json
import os
import time
import logging
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field
from pathlib import Path
from datetime import datetime

logger = logging.getLogger(__name__)


@dataclass
class LogEntry:
    """A single log entry."""
    timestamp: float
    category: str
    data: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "category": self.category, **self.data}


class MovementLogger:
    """
    Logger for motion, action and recovery outcomes.

    Usage:
        movement_log = MovementLogger(log_dir="logs")
        movement_log.log_motion("north", result.to_dict())
        print(movement_log.get_summary())
    """

    MAX_ENTRIES = 1000

    def __init__(
        self,
        log_dir: Optional[str] = None,
        session_name: Optional[str] = None
    ):
        """
        Initialize the logger.

        Args:
            log_dir: Directory for JSONL files (memory only if None)
            session_name: Name for this session's file
        """
        if session_name is None:
            session_name = datetime.now().strftime("session_%Y%m%d_%H%M%S")
        self.session_name = session_name

        self.log_path: Optional[str] = None
        if log_dir:
            Path(log_dir).mkdir(parents=True, exist_ok=True)
            self.log_path = os.path.join(log_dir, f"{session_name}.jsonl")

        self.entries: List[LogEntry] = []
        self.outcome_counts: Dict[str, Dict[str, int]] = {}

        self.stats = {
            'moves': 0,
            'moves_succeeded': 0,
            'moves_blocked': 0,
            'distance_moved': 0.0,
            'actions': 0,
            'actions_succeeded': 0,
            'recoveries': 0,
            'recoveries_succeeded': 0,
            'blocks_mined': 0,
            'items_collected': 0,
            'start_time': time.time(),
        }

    def log_motion(self, intent: str, result: Dict[str, Any]) -> None:
        """
        Log a motion outcome.

        Args:
            intent: Motion intent (direction name, coordinates or block)
            result: Serialized motion result
        """
        self.stats['moves'] += 1
        if result.get('reached'):
            self.stats['moves_succeeded'] += 1
        if result.get('termination_reason') in ('stuck', 'bad_path'):
            self.stats['moves_blocked'] += 1
        self.stats['distance_moved'] += float(result.get('distance_moved', 0.0))
        self._record('motion', {'intent': intent, **result})
        self._count('motion', str(result.get('termination_reason')))

    def log_action(self, kind: str, outcome: Dict[str, Any]) -> None:
        """Log an action outcome returned by the executor."""
        self.stats['actions'] += 1
        if outcome.get('success'):
            self.stats['actions_succeeded'] += 1
        data = outcome.get('data') or {}
        if kind == 'mine' and data.get('block_changed'):
            self.stats['blocks_mined'] += 1
        self.stats['items_collected'] += int(data.get('collected', 0) or 0)
        self._record('action', {'kind': kind, **outcome})
        self._count(kind, 'success' if outcome.get('success') else str(outcome.get('error') or 'failed'))

    def log_recovery(self, strategy: str, success: bool, delta: Dict[str, float]) -> None:
        """Log one recovery strategy attempt and its measured progress."""
        self.stats['recoveries'] += 1
        if success:
            self.stats['recoveries_succeeded'] += 1
        self._record('recovery', {'strategy': strategy, 'success': success, **delta})
        self._count('recovery', f"{strategy}:{'ok' if success else 'failed'}")

    def get_distribution(self, category: str) -> Dict[str, float]:
        """
        Get the outcome distribution for a category.

        Args:
            category: 'motion', 'recovery' or an action kind

        Returns:
            Dictionary mapping outcome label to frequency
        """
        counts = self.outcome_counts.get(category, {})
        total = sum(counts.values())
        if total == 0:
            return {}
        return {label: count / total for label, count in counts.items()}

    def get_summary(self) -> Dict[str, Any]:
        """Get session counters and outcome distributions."""
        summary = {key: value for key, value in self.stats.items() if key != 'start_time'}
        summary['runtime_seconds'] = time.time() - self.stats['start_time']
        summary['distributions'] = {
            category: self.get_distribution(category) for category in self.outcome_counts
        }
        return summary

    def _count(self, category: str, label: str) -> None:
        bucket = self.outcome_counts.setdefault(category, {})
        bucket[label] = bucket.get(label, 0) + 1

    def _record(self, category: str, data: Dict[str, Any]) -> None:
        entry = LogEntry(timestamp=time.time(), category=category, data=data)
        self.entries.append(entry)
        if len(self.entries) > self.MAX_ENTRIES:
            self.entries = self.entries[-self.MAX_ENTRIES // 2:]

        if self.log_path is None:
            return
        try:
            with open(self.log_path, 'a') as f:
                f.write(json.dumps(entry.to_dict(), default=str) + "\n")
        except OSError as e:
            logger.error(f"Failed to write movement log: {e}")
