"""
Mount status code vocabulary.

Real mounts report their own motion status (the 10micron `Gstat` field of
the `#:Ginfo#` reply). The codes are mapped onto the canonical MotionState
here so that the rest of the controller never sees vendor numbers.
"""

from __future__ import annotations
import logging
from enum import IntEnum
from typing import Any, Dict, Optional, Union

from .exceptions import InvalidStatusCode
from .positions import MotionState

logger = logging.getLogger(__name__)


class ExternalStatusCode(IntEnum):
    """Mount status codes (10micron command protocol 2.14)."""

    TRACKING = 0
    STOPPED = 1
    PARKING = 2
    UNPARKING = 3
    SLEWING_TO_HOME = 4
    PARKED = 5
    SLEWING_OR_STOPPING = 6
    NOT_TRACKING_AND_NOT_MOVING = 7
    MOTORS_TOO_COLD = 8
    TRACKING_OUTSIDE_LIMITS = 9
    FOLLOWING_SATELLITE = 10
    NEED_USEROK = 11
    UNKNOWN_STATUS = 98
    ERROR = 99


# Codes without a motion meaning map to IDLE.
STATUS_STATES: Dict[ExternalStatusCode, MotionState] = {
    ExternalStatusCode.TRACKING: MotionState.TRACKING,
    ExternalStatusCode.STOPPED: MotionState.IDLE,
    ExternalStatusCode.PARKING: MotionState.PARKING,
    ExternalStatusCode.UNPARKING: MotionState.TRACKING,
    ExternalStatusCode.SLEWING_TO_HOME: MotionState.SLEWING,
    ExternalStatusCode.PARKED: MotionState.PARKED,
    ExternalStatusCode.SLEWING_OR_STOPPING: MotionState.SLEWING,
    ExternalStatusCode.NOT_TRACKING_AND_NOT_MOVING: MotionState.IDLE,
    ExternalStatusCode.MOTORS_TOO_COLD: MotionState.IDLE,
    ExternalStatusCode.TRACKING_OUTSIDE_LIMITS: MotionState.TRACKING,
    ExternalStatusCode.FOLLOWING_SATELLITE: MotionState.TRACKING,
    ExternalStatusCode.NEED_USEROK: MotionState.IDLE,
    ExternalStatusCode.UNKNOWN_STATUS: MotionState.IDLE,
    ExternalStatusCode.ERROR: MotionState.IDLE,
}


def parse_status_code(raw: Union[int, str, ExternalStatusCode]) -> ExternalStatusCode:
    """
    Converts a raw status value into an ExternalStatusCode.

    Args:
        raw: An integer, an ExternalStatusCode, or a numeric string as read
            from the mount (a trailing '#' terminator is accepted).

    Returns:
        ExternalStatusCode: The recognized code.

    Raises:
        InvalidStatusCode: If the value is not numeric or not in the vocabulary.
    """
    if isinstance(raw, ExternalStatusCode):
        return raw
    if isinstance(raw, bool):
        raise InvalidStatusCode(raw)
    if isinstance(raw, str):
        text = raw.strip().rstrip("#").strip()
        try:
            value = int(text)
        except ValueError:
            raise InvalidStatusCode(raw) from None
    elif isinstance(raw, int):
        value = raw
    else:
        raise InvalidStatusCode(raw)

    try:
        return ExternalStatusCode(value)
    except ValueError:
        raise InvalidStatusCode(raw) from None


class StatusCodeMapper:
    """Maps mount status codes onto MotionState."""

    @staticmethod
    def map(
        code: Union[int, str, ExternalStatusCode], owner: Optional[Any] = None
    ) -> MotionState:
        """
        Returns the MotionState for a status code.

        When the code is PARKED and an `owner` exposing `is_parked` and
        `set_parked()` is given, the owner is marked parked unless it already is.
        """
        status = parse_status_code(code)
        state = STATUS_STATES[status]
        if status is ExternalStatusCode.PARKED and owner is not None:
            if not owner.is_parked:
                logger.debug("Marking mount parked from status report")
                owner.set_parked(True)
        return state

    @staticmethod
    def describe(code: Union[int, str, ExternalStatusCode]) -> str:
        status = parse_status_code(code)
        return f"{status.name.lower().replace('_', ' ')} ({status.value})"
