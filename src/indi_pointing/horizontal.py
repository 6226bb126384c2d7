"""
Equatorial <-> Horizontal coordinate transform.

The rotation produces azimuth measured from the south point increasing
westward (the classical hour-angle convention). Published azimuth is measured
from north increasing eastward, so every result goes through
`south_to_north_azimuth` before leaving this module.
"""

from __future__ import annotations
import math
from datetime import datetime, timezone
from typing import Optional

import ephem
import numpy as np

from .exceptions import MalformedTransformInput
from .positions import EquatorialPosition, GeodeticLocation, HorizontalPosition


def normalize_longitude(longitude: float) -> float:
    """Maps a longitude in degrees into (-180, 180]."""
    lon = math.fmod(longitude, 360.0)
    if lon > 180.0:
        lon -= 360.0
    elif lon <= -180.0:
        lon += 360.0
    return lon


def south_to_north_azimuth(az_south: float) -> float:
    """Re-bases an azimuth from south/westward to north/eastward."""
    return (az_south + 180.0) % 360.0


def north_to_south_azimuth(az_north: float) -> float:
    """Inverse of `south_to_north_azimuth`."""
    return (az_north - 180.0) % 360.0


def _ephem_date(when: Optional[datetime]) -> ephem.Date:
    # ephem reads the datetime fields as UTC and ignores tzinfo
    if when is None:
        when = datetime.now(timezone.utc)
    if when.tzinfo is not None:
        when = when.astimezone(timezone.utc).replace(tzinfo=None)
    return ephem.Date(when)


def julian_date(when: Optional[datetime] = None) -> float:
    """Julian date of `when` (UTC; naive datetimes are taken as UTC)."""
    return ephem.julian_date(_ephem_date(when))


def local_sidereal_time(when: Optional[datetime], longitude: float) -> float:
    """Local apparent sidereal time in hours at the given longitude."""
    observer = ephem.Observer()
    observer.lon = math.radians(normalize_longitude(longitude))
    observer.date = _ephem_date(when)
    return math.degrees(float(observer.sidereal_time())) / 15.0


def check_location(loc: GeodeticLocation) -> None:
    """Fails fast on a location the surrounding layer should never produce."""
    if not (math.isfinite(loc.latitude) and math.isfinite(loc.longitude)):
        raise MalformedTransformInput(f"Non-finite location: {loc}")
    if not -90.0 <= loc.latitude <= 90.0:
        raise MalformedTransformInput(f"Latitude out of range: {loc.latitude}")
    if not -360.0 <= loc.longitude <= 360.0:
        raise MalformedTransformInput(f"Longitude out of range: {loc.longitude}")


def _rotation(latitude_deg: float) -> np.ndarray:
    """Rotation from (hour angle, dec) to (south azimuth, alt) about the E-W axis."""
    phi = math.radians(latitude_deg)
    s, c = math.sin(phi), math.cos(phi)
    return np.array([[s, 0.0, -c], [0.0, 1.0, 0.0], [c, 0.0, s]])


def equatorial_to_horizontal(
    eq: EquatorialPosition,
    loc: GeodeticLocation,
    when: Optional[datetime] = None,
) -> HorizontalPosition:
    """
    Converts an equatorial position to horizontal coordinates.

    Args:
        eq: Position of date (RA hours, Dec degrees).
        loc: Observer location.
        when: UTC instant, defaults to now.

    Returns:
        HorizontalPosition: Azimuth from north (eastward) and altitude.

    Raises:
        MalformedTransformInput: For an out-of-range location or coordinates.
    """
    check_location(loc)
    if not (math.isfinite(eq.ra) and math.isfinite(eq.dec)):
        raise MalformedTransformInput(f"Non-finite coordinates: {eq!r}")

    ra_deg = eq.ra * 15.0
    lst_deg = local_sidereal_time(when, loc.longitude) * 15.0
    ha = math.radians(lst_deg - ra_deg)
    dec = math.radians(eq.dec)

    eq_vec = np.array(
        [math.cos(dec) * math.cos(ha), math.cos(dec) * math.sin(ha), math.sin(dec)]
    )
    x, y, z = _rotation(loc.latitude) @ eq_vec

    alt = math.degrees(math.asin(float(np.clip(z, -1.0, 1.0))))
    az_south = math.degrees(math.atan2(y, x)) % 360.0
    return HorizontalPosition(south_to_north_azimuth(az_south), alt)


def horizontal_to_equatorial(
    hz: HorizontalPosition,
    loc: GeodeticLocation,
    when: Optional[datetime] = None,
) -> EquatorialPosition:
    """Inverse of `equatorial_to_horizontal`, used for Alt/Az goto requests."""
    check_location(loc)
    az = math.radians(north_to_south_azimuth(hz.azimuth))
    alt = math.radians(hz.altitude)

    hz_vec = np.array(
        [math.cos(alt) * math.cos(az), math.cos(alt) * math.sin(az), math.sin(alt)]
    )
    x, y, z = _rotation(loc.latitude).T @ hz_vec

    dec = math.degrees(math.asin(float(np.clip(z, -1.0, 1.0))))
    ha_deg = math.degrees(math.atan2(y, x))
    lst_deg = local_sidereal_time(when, loc.longitude) * 15.0
    return EquatorialPosition(((lst_deg - ha_deg) / 15.0) % 24.0, dec)
