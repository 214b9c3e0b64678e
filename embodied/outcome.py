"""
outcome.py - Action request and outcome records.

Outcomes are values: every physical action returns one, including
failures, so the decision layer never has to handle exceptions.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from integration.world_client import Position
from .errors import ErrorKind


@dataclass
class ActionRequest:
    """
    A discrete action requested by the decision layer.

    Attributes:
        kind: 'move', 'mine', 'place', 'attack', 'recover', 'dig_up',
            'wait' or 'equip'
        target: Direction, coordinate string, block/entity/item name
        parameters: Extra arguments (e.g. {'seconds': 2.0} for wait)
    """
    kind: str
    target: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ActionOutcome:
    success: bool
    message: str
    measured_delta: Dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[ErrorKind] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, **data) -> 'ActionOutcome':
        return cls(False, message, error_kind=kind, data=data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "measured_delta": self.measured_delta,
            "error": self.error_kind.value if self.error_kind else None,
            "data": self.data,
        }


def measure_delta(
    start: Optional[Position],
    end: Optional[Position],
    before: Optional[Dict[str, int]] = None,
    after: Optional[Dict[str, int]] = None
) -> Dict[str, Any]:
    """
    Net position change and inventory change between two observations.

    Returns:
        Dictionary with 'horizontal', 'vertical' and 'inventory' keys;
        inventory lists only items whose count changed
    """
    delta: Dict[str, Any] = {"horizontal": 0.0, "vertical": 0.0, "inventory": {}}
    if start is not None and end is not None:
        delta["horizontal"] = round(start.horizontal_distance_to(end), 2)
        delta["vertical"] = round(end.y - start.y, 2)
    if before is not None and after is not None:
        changed = {}
        for name in set(before) | set(after):
            diff = after.get(name, 0) - before.get(name, 0)
            if diff:
                changed[name] = diff
        delta["inventory"] = changed
    return delta
