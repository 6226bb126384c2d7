"""
Value types shared by the pointing controller.

All positions are immutable; the state machine replaces them instead of
mutating them in place.
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from enum import Enum

import ephem


class MotionState(Enum):
    """Canonical motion state of the mount."""

    IDLE = "Idle"
    SLEWING = "Slewing"
    TRACKING = "Tracking"
    PARKING = "Parking"
    PARKED = "Parked"


def format_hours(hours: float) -> str:
    """Sexagesimal H:MM:SS.ss representation of an hour angle."""
    return str(ephem.hours(math.radians(hours * 15.0)))


def format_degrees(degrees: float) -> str:
    """Sexagesimal D:MM:SS.s representation of an angle in degrees."""
    return str(ephem.degrees(math.radians(degrees)))


@dataclass(frozen=True)
class EquatorialPosition:
    """Right ascension in hours [0, 24) and declination in degrees [-90, 90]."""

    ra: float
    dec: float

    def __str__(self) -> str:
        return f"RA: {format_hours(self.ra)} - DEC: {format_degrees(self.dec)}"


@dataclass(frozen=True)
class GeodeticLocation:
    """
    Observer location.

    Longitude may follow either the [0, 360) or the [-180, 180) convention;
    the transform normalizes it before use.
    """

    latitude: float
    longitude: float
    elevation: float = 0.0


@dataclass(frozen=True)
class HorizontalPosition:
    """Azimuth from north increasing eastward [0, 360) and altitude [-90, 90]."""

    azimuth: float
    altitude: float

    def __str__(self) -> str:
        return f"AZ <{format_degrees(self.azimuth)}> ALT <{format_degrees(self.altitude)}>"
