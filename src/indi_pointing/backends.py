"""
Motion backends.

A backend advances the PointingStateMachine once per poll. The simulated
backend integrates the slew in time; the status backend asks the mount
(through an injected reader coroutine, the transport lives elsewhere) for its
status code and reported position.
"""

from __future__ import annotations
import logging
from typing import Awaitable, Callable, NamedTuple, Optional, Union

from .pointing import PointingStateMachine
from .positions import EquatorialPosition, MotionState
from .status_codes import ExternalStatusCode

logger = logging.getLogger(__name__)


class StatusReport(NamedTuple):
    """One status read from a real mount."""

    code: Union[int, str, ExternalStatusCode]
    position: Optional[EquatorialPosition] = None


StatusReader = Callable[[], Awaitable[StatusReport]]


class SimulatedBackend:
    """Time-integrated slew, no hardware."""

    name = "simulator"

    async def step(self, machine: PointingStateMachine, elapsed: float) -> MotionState:
        return machine.tick(elapsed)


class StatusCodeBackend:
    """
    Real-mount backend driven by status codes.

    Args:
        read_status: Coroutine function returning a StatusReport. Errors it
            raises propagate to the caller, as does InvalidStatusCode for an
            unknown code; in both cases the machine keeps its previous state.
    """

    name = "status"

    def __init__(self, read_status: StatusReader) -> None:
        self.read_status = read_status

    async def step(self, machine: PointingStateMachine, elapsed: float) -> MotionState:
        report = await self.read_status()
        state = machine.apply_status(report.code)
        if report.position is not None:
            machine.set_position(report.position)
        return state
