import math
import unittest
from datetime import datetime, timedelta, timezone

import ephem

from indi_pointing.exceptions import MalformedTransformInput
from indi_pointing.horizontal import (
    equatorial_to_horizontal,
    horizontal_to_equatorial,
    julian_date,
    local_sidereal_time,
    normalize_longitude,
    north_to_south_azimuth,
    south_to_north_azimuth,
)
from indi_pointing.positions import (
    EquatorialPosition,
    GeodeticLocation,
    HorizontalPosition,
)

WHEN = datetime(2024, 3, 15, 21, 30, 0)


def angle_diff(a, b):
    return abs((a - b + 180.0) % 360.0 - 180.0)


class TestHorizontalTransform(unittest.TestCase):
    """
    Tests for the equatorial to horizontal transform.

    Methodology:
        Targets are placed relative to the local sidereal time at a fixed
        instant, so expected altitudes and azimuths follow from geometry.
    """

    def test_normalize_longitude(self):
        self.assertAlmostEqual(normalize_longitude(350.0), -10.0)
        self.assertAlmostEqual(normalize_longitude(-190.0), 170.0)
        self.assertAlmostEqual(normalize_longitude(180.0), 180.0)
        self.assertAlmostEqual(normalize_longitude(-180.0), 180.0)
        self.assertAlmostEqual(normalize_longitude(20.0), 20.0)

    def test_azimuth_rebase(self):
        self.assertAlmostEqual(south_to_north_azimuth(0.0), 180.0)
        self.assertAlmostEqual(south_to_north_azimuth(270.0), 90.0)
        self.assertAlmostEqual(north_to_south_azimuth(south_to_north_azimuth(33.0)), 33.0)

    def test_julian_date(self):
        self.assertAlmostEqual(julian_date(datetime(2000, 1, 1, 12, 0, 0)), 2451545.0)

    def test_aware_datetime(self):
        aware = datetime(2024, 3, 15, 22, 30, tzinfo=timezone(timedelta(hours=1)))
        self.assertAlmostEqual(julian_date(aware), julian_date(WHEN))

    def test_transit_at_equator(self):
        """
        Due-south transit seen from latitude 0.

        Expected Results:
            A star on the meridian at dec -30 sits at alt 60, az 180.
        """
        loc = GeodeticLocation(0.0, 0.0)
        lst = local_sidereal_time(WHEN, 0.0)
        hz = equatorial_to_horizontal(EquatorialPosition(lst, -30.0), loc, WHEN)
        self.assertAlmostEqual(hz.altitude, 60.0, places=6)
        self.assertAlmostEqual(hz.azimuth, 180.0, places=6)

    def test_transit_altitude(self):
        """On the meridian alt = 90 - |lat - dec| at any latitude."""
        for lat, dec in ((50.0, 20.0), (-33.0, -60.0), (10.0, 45.0)):
            loc = GeodeticLocation(lat, 19.8)
            lst = local_sidereal_time(WHEN, 19.8)
            hz = equatorial_to_horizontal(EquatorialPosition(lst, dec), loc, WHEN)
            self.assertAlmostEqual(hz.altitude, 90.0 - abs(lat - dec), places=6)
            expected_az = 180.0 if dec < lat else 0.0
            self.assertLess(angle_diff(hz.azimuth, expected_az), 1e-6)

    def test_western_hour_angle(self):
        """A star past the meridian is in the west."""
        loc = GeodeticLocation(50.0, 20.0)
        lst = local_sidereal_time(WHEN, 20.0)
        hz = equatorial_to_horizontal(EquatorialPosition(lst - 3.0, 10.0), loc, WHEN)
        self.assertGreater(hz.azimuth, 180.0)
        self.assertLess(hz.azimuth, 360.0)

    def test_longitude_equivalence(self):
        """Longitude 350 is the same place as -10."""
        eq = EquatorialPosition(5.5, 22.0)
        a = equatorial_to_horizontal(eq, GeodeticLocation(40.0, 350.0), WHEN)
        b = equatorial_to_horizontal(eq, GeodeticLocation(40.0, -10.0), WHEN)
        self.assertAlmostEqual(a.altitude, b.altitude, places=9)
        self.assertAlmostEqual(a.azimuth, b.azimuth, places=9)

    def test_agrees_with_ephem(self):
        """
        Cross-check against ephem's own apparent place.

        Description:
            Refraction is disabled and the body is given coordinates of date,
            so the two differ only by nutation and aberration.
        """
        lat, lon = 50.1822, 19.7925
        lst = local_sidereal_time(WHEN, lon)
        eq = EquatorialPosition((lst - 2.0) % 24.0, 30.0)
        hz = equatorial_to_horizontal(eq, GeodeticLocation(lat, lon), WHEN)

        obs = ephem.Observer()
        obs.lat = math.radians(lat)
        obs.lon = math.radians(lon)
        obs.date = ephem.Date(WHEN)
        obs.pressure = 0
        star = ephem.FixedBody()
        star._ra = math.radians(eq.ra * 15.0)
        star._dec = math.radians(eq.dec)
        star._epoch = obs.date
        star.compute(obs)

        self.assertLess(angle_diff(hz.azimuth, math.degrees(star.az)), 0.1)
        self.assertLess(abs(hz.altitude - math.degrees(star.alt)), 0.1)

    def test_inverse(self):
        loc = GeodeticLocation(50.0, 20.0)
        eq = EquatorialPosition(7.25, 35.0)
        hz = equatorial_to_horizontal(eq, loc, WHEN)
        back = horizontal_to_equatorial(hz, loc, WHEN)
        self.assertAlmostEqual(back.ra, eq.ra, places=6)
        self.assertAlmostEqual(back.dec, eq.dec, places=6)

    def test_inverse_of_zenith(self):
        loc = GeodeticLocation(50.0, 20.0)
        eq = horizontal_to_equatorial(HorizontalPosition(0.0, 90.0), loc, WHEN)
        self.assertAlmostEqual(eq.dec, 50.0, places=6)

    def test_malformed_input(self):
        eq = EquatorialPosition(1.0, 1.0)
        for loc in (
            GeodeticLocation(91.0, 0.0),
            GeodeticLocation(0.0, 400.0),
            GeodeticLocation(float("nan"), 0.0),
        ):
            with self.assertRaises(MalformedTransformInput):
                equatorial_to_horizontal(eq, loc, WHEN)
        with self.assertRaises(MalformedTransformInput):
            equatorial_to_horizontal(
                EquatorialPosition(float("inf"), 0.0), GeodeticLocation(0.0, 0.0), WHEN
            )


if __name__ == "__main__":
    unittest.main()
