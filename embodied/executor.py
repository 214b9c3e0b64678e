"""
executor.py - Action executor and single-flight guard.

All physical actions (move, mine, place, attack, recover, dig_up) pass
through one token. A request arriving while another is in flight gets a
Busy outcome without touching the world. The token is released on every
exit path. Errors are converted into outcomes here so the decision layer
never sees an exception.
"""

import logging
from typing import Awaitable, Callable, Dict, Optional

from integration.world_client import DisconnectedError
from .errors import EngineError, ErrorKind, InvalidRequestError
from .motion import Termination
from .outcome import ActionOutcome, ActionRequest, measure_delta
from .stuck import StuckPhase

logger = logging.getLogger(__name__)

PHYSICAL_KINDS = {"move", "mine", "place", "attack", "recover", "dig_up"}

_MOTION_ERRORS = {
    Termination.STUCK: ErrorKind.BLOCKED,
    Termination.BAD_PATH: ErrorKind.BLOCKED,
    Termination.TIMEOUT: ErrorKind.TIMEOUT,
}


class ActionExecutor:
    """
    Runs action requests one at a time.

    Usage:
        outcome = await session.executor.execute(ActionRequest("mine", "oak_log"))
        if outcome.error_kind == ErrorKind.BUSY:
            ...
    """

    def __init__(self, session):
        self.session = session
        self.client = session.client
        self.current: Optional[ActionRequest] = None
        self._busy = False
        self._handlers: Dict[str, Callable[[ActionRequest], Awaitable[ActionOutcome]]] = {
            "move": self._move,
            "mine": self._mine,
            "place": self._place,
            "attack": self._attack,
            "recover": self._recover,
            "dig_up": self._dig_up,
            "wait": self._wait,
            "equip": self._equip,
        }

    @property
    def busy(self) -> bool:
        return self._busy

    async def execute(self, request: ActionRequest) -> ActionOutcome:
        """
        Execute one request.

        Returns:
            ActionOutcome; Busy when a physical action is already in flight,
            Disconnected once the world link has been lost
        """
        if self.session.disconnected or not self.client.is_connected():
            return ActionOutcome.failure(ErrorKind.DISCONNECTED, "world link lost")

        kind = (request.kind or "").lower()
        handler = self._handlers.get(kind)
        if handler is None:
            return ActionOutcome.failure(ErrorKind.INVALID_REQUEST, f"unknown action: {request.kind}")

        if kind not in PHYSICAL_KINDS:
            return await self._run(kind, request, handler)

        # No await between the check and the claim
        if self._busy:
            logger.debug(f"Rejecting {kind}: busy with {self.current.kind}")
            return ActionOutcome.failure(ErrorKind.BUSY, f"busy with {self.current.kind}")
        self._busy = True
        self.current = request
        try:
            return await self._run(kind, request, handler)
        finally:
            self._busy = False
            self.current = None

    async def _run(
        self,
        kind: str,
        request: ActionRequest,
        handler: Callable[[ActionRequest], Awaitable[ActionOutcome]]
    ) -> ActionOutcome:
        start = self.client.get_position()
        before = self.client.inventory_counts()
        try:
            outcome = await handler(request)
        except DisconnectedError as e:
            self.session.mark_disconnected(str(e))
            outcome = ActionOutcome.failure(ErrorKind.DISCONNECTED, f"world link lost: {e}")
        except EngineError as e:
            outcome = ActionOutcome.failure(e.kind, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error during {kind}")
            outcome = ActionOutcome.failure(ErrorKind.FAILED, f"unexpected error: {e}")

        if not outcome.measured_delta:
            end = self.client.get_position()
            outcome.measured_delta = measure_delta(start, end, before, self.client.inventory_counts())
        self.session.movement_log.log_action(kind, outcome.to_dict())
        if outcome.success:
            status = "ok"
        else:
            status = outcome.error_kind.value if outcome.error_kind else "failed"
        logger.info(f"Action {kind} {request.target or ''}: {status} - {outcome.message}")
        return outcome

    # Handlers

    async def _move(self, request: ActionRequest) -> ActionOutcome:
        if not request.target:
            raise InvalidRequestError("move needs a target")
        motion = self.session.motion
        result = await motion.move(request.target)
        if result.termination_reason == Termination.DISCONNECTED:
            raise DisconnectedError(result.message)

        data = {"motion": result.to_dict()}
        if not result.reached and self.session.stuck.phase == StuckPhase.STUCK:
            report = await self.session.recovery.recover()
            data["recovery"] = report.to_dict()
            if report.success:
                result = await motion.move(request.target)
                if result.termination_reason == Termination.DISCONNECTED:
                    raise DisconnectedError(result.message)
                data["motion"] = result.to_dict()

        if result.reached:
            return ActionOutcome(True, result.message, data=data)
        kind = _MOTION_ERRORS.get(result.termination_reason, ErrorKind.FAILED)
        return ActionOutcome(False, result.message, error_kind=kind, data=data)

    async def _mine(self, request: ActionRequest) -> ActionOutcome:
        if not request.target:
            raise InvalidRequestError("mine needs a block name")
        return await self.session.mining.mine(request.target)

    async def _place(self, request: ActionRequest) -> ActionOutcome:
        return await self.session.actions.place(request.target or "")

    async def _attack(self, request: ActionRequest) -> ActionOutcome:
        return await self.session.actions.attack(request.target or "hostile")

    async def _recover(self, request: ActionRequest) -> ActionOutcome:
        stuck = self.session.stuck
        if request.parameters.get("reset"):
            stuck.acknowledge()
        report = await self.session.recovery.recover()
        if report.success:
            return ActionOutcome(True, report.message, data=report.to_dict())
        if report.phase == StuckPhase.EXHAUSTED:
            message = f"recovery exhausted after {report.attempts} attempts"
        else:
            message = report.message
        return ActionOutcome(False, message, error_kind=ErrorKind.BLOCKED, data=report.to_dict())

    async def _dig_up(self, request: ActionRequest) -> ActionOutcome:
        return await self.session.actions.dig_up()

    async def _wait(self, request: ActionRequest) -> ActionOutcome:
        seconds = request.parameters.get("seconds", request.target or 1.0)
        try:
            seconds = float(seconds)
        except (TypeError, ValueError):
            raise InvalidRequestError(f"invalid wait duration: {seconds}")
        return await self.session.actions.wait(seconds)

    async def _equip(self, request: ActionRequest) -> ActionOutcome:
        return await self.session.actions.equip(request.target or "")
