"""
session.py - Agent session wiring the engine together.

The session owns one world client and every subsystem built on it. It is
passed by reference to the subsystems instead of a global controller.
"""

import logging
import numpy as np
from dataclasses import dataclass
from typing import Any, Dict, Optional

from integration import events
from integration.world_client import WorldClient
from utils.config import EngineConfig
from utils.movement_log import MovementLogger
from .actions import ActionProtocols
from .executor import ActionExecutor
from .fov import VisibilityFilter
from .health import HealthMonitor, HealthSummary
from .landmarks import LandmarkMemory
from .look import LookSmoother
from .mining import MiningProtocol
from .motion import MotionController
from .outcome import ActionOutcome, ActionRequest
from .pathfinder import GridNavigator
from .perception import SpatialPerception, SpatialSnapshot
from .recovery import RecoveryEngine
from .stuck import StuckDetector

logger = logging.getLogger(__name__)


@dataclass
class TickReport:
    """Per-tick data for the decision and observability layers."""
    snapshot: Optional[SpatialSnapshot]
    stuck: Dict[str, Any]
    health: HealthSummary
    busy: bool
    disconnected: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
            "stuck": self.stuck,
            "health": self.health.to_dict(),
            "busy": self.busy,
            "disconnected": self.disconnected,
        }


class AgentSession:
    """
    Explicit context object for one agent in one world session.

    Usage:
        session = AgentSession(SimulatedWorld(), EngineConfig())
        await session.start()
        outcome = await session.execute(ActionRequest("move", "north"))
        report = session.observe()
        await session.shutdown()
    """

    def __init__(
        self,
        client: WorldClient,
        config: Optional[EngineConfig] = None,
        seed: Optional[int] = None
    ):
        """
        Build every subsystem around a world client.

        Args:
            client: World link
            config: Engine configuration
            seed: Seed for randomized headings
        """
        self.client = client
        self.config = config or EngineConfig()
        self.bus = client.bus
        self.rng = np.random.default_rng(seed)
        self.disconnected = False

        self.landmarks = LandmarkMemory(self.config.landmarks, client.config.server_key)
        self.visibility = VisibilityFilter(client, self.config.perception)
        self.perception = SpatialPerception(client, self.visibility, self.config.perception, self.landmarks)
        self.look = LookSmoother(client, self.config.look, self.visibility)
        self.navigator = GridNavigator(client, steer=self.look.set_target)
        self.stuck = StuckDetector(self.config.recovery, clock=client.now, bus=self.bus)
        self.movement_log = MovementLogger(self.config.log_dir)

        self.motion = MotionController(self)
        self.recovery = RecoveryEngine(self)
        self.mining = MiningProtocol(self)
        self.actions = ActionProtocols(self)
        self.health = HealthMonitor(self)
        self.executor = ActionExecutor(self)

        self.bus.subscribe(events.DISCONNECT, self._on_disconnect)

    async def start(self) -> bool:
        """Connect, load landmark memory and start the background subscribers."""
        connected = self.client.is_connected() or await self.client.connect()
        if not connected:
            logger.error("Failed to connect to world")
            return False
        self.disconnected = False
        self.landmarks.load()
        self.look.start()
        self.health.start()
        logger.info(f"Session started for {self.client.config.username}")
        return True

    async def shutdown(self) -> None:
        """Stop subscribers, flush landmark memory and disconnect."""
        self.look.stop()
        self.health.stop()
        self.navigator.stop()
        self.landmarks.flush()
        if self.client.is_connected():
            self.disconnected = True
            await self.client.disconnect()
        logger.info(f"Session summary: {self.movement_log.get_summary()}")

    async def execute(self, request: ActionRequest) -> ActionOutcome:
        return await self.executor.execute(request)

    def observe(self) -> TickReport:
        """Snapshot, stuck flags and health alert for this tick."""
        return TickReport(
            snapshot=self.perception.build(),
            stuck=self.stuck.state.to_dict(),
            health=self.health.summary(),
            busy=self.executor.busy,
            disconnected=self.disconnected,
        )

    def mark_disconnected(self, reason: str = "") -> None:
        if not self.disconnected:
            logger.error(f"World link lost{': ' + reason if reason else ''}")
        self.disconnected = True
        self.navigator.stop()

    def _on_disconnect(self, payload) -> None:
        self.mark_disconnected("disconnect event")
