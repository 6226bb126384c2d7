"""
Pointing State Machine

Owns the current and target equatorial position and the canonical motion
state of the mount. Simulated backends advance it with `tick()`, real
backends feed it mount status codes with `apply_status()`.

The machine is not thread-safe; it is meant to be owned by a single polling
task (the INDI driver's event loop).
"""

from __future__ import annotations
import logging
import math
from datetime import timedelta
from enum import Enum
from typing import Callable, List, Optional, Tuple, Union

from .exceptions import AdvisoryRejection
from .positions import EquatorialPosition, MotionState
from .status_codes import ExternalStatusCode, StatusCodeMapper, parse_status_code

logger = logging.getLogger(__name__)

# Simulated slew rate shared by both axes, degrees/s
SLEW_RATE = 3.0

MUST_UNPARK = "Please unpark the mount before issuing any motion commands."

Notify = Callable[[int, str], None]


class UnparkPolicy(Enum):
    """State entered when a parked mount is unparked."""

    IDLE = "idle"
    TRACKING = "tracking"


_UNPARK_STATES = {
    UnparkPolicy.IDLE: MotionState.IDLE,
    UnparkPolicy.TRACKING: MotionState.TRACKING,
}


def _log_event(level: int, message: str) -> None:
    logger.log(level, message)


def _step_axis(
    current: float, target: float, budget: float, scale: float
) -> Tuple[float, bool]:
    """
    Moves one axis toward its target by at most `budget` degrees.

    `scale` converts axis units to degrees (15 for RA hours, 1 for Dec).
    Returns the new axis value and whether the axis locked onto the target.
    """
    delta = target - current
    if abs(delta) * scale <= budget:
        return target, True
    step = budget / scale
    return (current + step if delta > 0 else current - step), False


def transition_messages(
    previous: Optional[MotionState], current: MotionState
) -> List[str]:
    """
    One-shot messages for a change of motion state between two polls.

    The caller keeps `previous` from its last poll so that each message is
    emitted once per transition rather than on every tick.
    """
    if current is previous:
        return []
    if current is MotionState.SLEWING:
        return ["Slewing started"]
    if current is MotionState.TRACKING:
        return ["Tracking started"]
    messages = []
    if previous is MotionState.SLEWING:
        messages.append("Slewing stopped")
    if previous is MotionState.TRACKING:
        messages.append("Tracking stopped")
    return messages


class PointingStateMachine:
    """
    Mount pointing state machine with a time-stepped slew integrator.

    Attributes:
        current (EquatorialPosition): Where the mount points now.
        target (EquatorialPosition): Where the last goto asked it to point.
        state (MotionState): Canonical motion state.
        slew_rate (float): Simulated slew speed in degrees/s, both axes.
        unpark_policy (UnparkPolicy): State entered by `unpark()`.
        notify (callable): Event sink, called as notify(level, message).
    """

    def __init__(
        self,
        initial: Optional[EquatorialPosition] = None,
        slew_rate: float = SLEW_RATE,
        unpark_policy: Union[UnparkPolicy, str] = UnparkPolicy.IDLE,
        notify: Optional[Notify] = None,
    ) -> None:
        if not slew_rate > 0:
            raise ValueError(f"Slew rate must be positive, got {slew_rate}")
        self.current = initial or EquatorialPosition(0.0, 90.0)
        self.target = self.current
        self.state = MotionState.IDLE
        self.slew_rate = float(slew_rate)
        self.unpark_policy = UnparkPolicy(unpark_policy)
        self.notify: Notify = notify or _log_event
        self.last_status_code: Optional[ExternalStatusCode] = None

    def __repr__(self):
        return (
            f"PointingStateMachine(state={self.state.name}, "
            f"current=({self.current.ra:.6f}h, {self.current.dec:.6f}), "
            f"target=({self.target.ra:.6f}h, {self.target.dec:.6f}))"
        )

    @property
    def is_parked(self) -> bool:
        return self.state is MotionState.PARKED

    def set_parked(self, parked: bool) -> None:
        """Marks the mount parked or releases it according to the unpark policy."""
        if parked:
            if not self.is_parked:
                self.state = MotionState.PARKED
                self.notify(logging.INFO, "Mount parked.")
        elif self.is_parked:
            self.state = _UNPARK_STATES[self.unpark_policy]
            self.notify(logging.INFO, "Mount unparked.")

    def goto(self, target: EquatorialPosition) -> None:
        """
        Starts (or retargets) a slew.

        Raises:
            AdvisoryRejection: If the mount is parked.
            ValueError: If the declination is outside [-90, 90].
        """
        if self.is_parked:
            raise AdvisoryRejection(MUST_UNPARK)
        if not (math.isfinite(target.ra) and -90.0 <= target.dec <= 90.0):
            raise ValueError(f"Invalid goto target: {target!r}")

        self.target = EquatorialPosition(target.ra % 24.0, target.dec)
        self.state = MotionState.SLEWING
        self.notify(logging.INFO, f"Slewing to {self.target}")

    def unpark(self) -> bool:
        """Returns False (and changes nothing) if the mount was not parked."""
        if not self.is_parked:
            self.notify(logging.INFO, "Mount is already unparked.")
            return False
        self.set_parked(False)
        return True

    def park(self) -> bool:
        self.set_parked(True)
        return True

    def abort(self) -> bool:
        """Stops any motion where it stands."""
        self.state = MotionState.IDLE
        self.notify(logging.INFO, "Motion aborted.")
        return True

    def reject_motion_if_parked(self) -> bool:
        """Guard for manual motion: True (and a warning) when the mount is parked."""
        if self.is_parked:
            self.notify(logging.WARNING, MUST_UNPARK)
            return True
        return False

    def set_position(self, position: EquatorialPosition) -> None:
        """Adopts a position reported by the mount."""
        self.current = position

    def tick(self, elapsed: Union[float, timedelta]) -> MotionState:
        """
        Advances a slew by `elapsed` time at the configured slew rate.

        Each axis snaps onto its target once the remaining distance fits in
        this tick's budget. When both axes are locked the mount is tracking.
        Outside of SLEWING nothing moves.

        Args:
            elapsed: Seconds (or a timedelta) since the previous tick.

        Returns:
            MotionState: The state after the tick.
        """
        seconds = (
            elapsed.total_seconds() if isinstance(elapsed, timedelta) else float(elapsed)
        )
        if not (math.isfinite(seconds) and seconds >= 0):
            raise ValueError(
                f"Elapsed time must be finite and not negative, got {seconds}"
            )
        if self.state is not MotionState.SLEWING:
            return self.state

        budget = self.slew_rate * seconds
        ra, ra_locked = _step_axis(self.current.ra, self.target.ra, budget, 15.0)
        dec, dec_locked = _step_axis(self.current.dec, self.target.dec, budget, 1.0)
        self.current = EquatorialPosition(ra, dec)

        if ra_locked and dec_locked:
            self.state = MotionState.TRACKING
            self.notify(logging.INFO, "Telescope slew is complete. Tracking...")
        return self.state

    def apply_status(self, code) -> MotionState:
        """
        Sets the state from a mount status code.

        Raises:
            InvalidStatusCode: If the code is unknown; the state is unchanged.
        """
        status = parse_status_code(code)
        state = StatusCodeMapper.map(status, owner=self)
        if self.last_status_code is not None and status is not self.last_status_code:
            logger.info(
                "Mount status changed from %s to %s",
                StatusCodeMapper.describe(self.last_status_code),
                StatusCodeMapper.describe(status),
            )
        self.last_status_code = status
        self.state = state
        return state
