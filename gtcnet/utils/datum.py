"""Geodetic datums, and conversions between geodetic and cartesian (body-fixed) coordinates.

Geodetic coordinates are ordered as [longitude, latitude, height], with angles in degrees and height in meters above
the ellipsoid.

References:
1. B. Hofmann-Wellenhof et al. GNSS - Global Navigation Satellite Systems, 2008, Section 10.2.1.
"""
from typing import Dict, NamedTuple

import numpy as np

# Iterations of the fixed-point latitude solve in `cartesian_to_geodetic`, enough for sub-millimeter accuracy.
NUM_LATITUDE_ITERATIONS = 10


class Datum(NamedTuple):
    """A reference ellipsoid.

    Args:
        name: name of the datum, e.g. "WGS84".
        semi_major_axis: equatorial radius, in meters.
        semi_minor_axis: polar radius, in meters.
    """

    name: str
    semi_major_axis: float
    semi_minor_axis: float

    @classmethod
    def from_name(cls, name: str) -> "Datum":
        """Returns one of the named datums (case-insensitive)."""
        try:
            return NAMED_DATUMS[name.upper()]
        except KeyError:
            raise ValueError(f"Unknown datum {name}. Supported datums are {sorted(NAMED_DATUMS)}.") from None

    @property
    def eccentricity_squared(self) -> float:
        a = self.semi_major_axis
        b = self.semi_minor_axis
        return 1.0 - (b * b) / (a * a)

    def _radius_of_curvature(self, lat_rad: float) -> float:
        """Prime vertical radius of curvature at a geodetic latitude."""
        return self.semi_major_axis / np.sqrt(1.0 - self.eccentricity_squared * np.sin(lat_rad) ** 2)

    def geodetic_to_cartesian(self, lon_lat_height: np.ndarray) -> np.ndarray:
        """Converts [lon, lat, height] to cartesian [x, y, z], of shape (3,)."""
        lon = np.deg2rad(lon_lat_height[0])
        lat = np.deg2rad(lon_lat_height[1])
        height = lon_lat_height[2]

        n = self._radius_of_curvature(lat)
        x = (n + height) * np.cos(lat) * np.cos(lon)
        y = (n + height) * np.cos(lat) * np.sin(lon)
        z = (n * (1.0 - self.eccentricity_squared) + height) * np.sin(lat)
        return np.array([x, y, z])

    def cartesian_to_geodetic(self, xyz: np.ndarray) -> np.ndarray:
        """Converts cartesian [x, y, z] to [lon, lat, height], of shape (3,)."""
        x, y, z = xyz
        e2 = self.eccentricity_squared
        p = np.hypot(x, y)
        lon = np.arctan2(y, x)

        lat = np.arctan2(z, p * (1.0 - e2))
        for _ in range(NUM_LATITUDE_ITERATIONS):
            n = self._radius_of_curvature(lat)
            lat = np.arctan2(z + e2 * n * np.sin(lat), p)

        n = self._radius_of_curvature(lat)
        if abs(np.cos(lat)) > 1e-12:
            height = p / np.cos(lat) - n
        else:
            # At the poles, measure height along the polar axis.
            height = abs(z) - self.semi_minor_axis
        return np.array([np.rad2deg(lon), np.rad2deg(lat), height])


NAMED_DATUMS: Dict[str, Datum] = {
    "WGS84": Datum("WGS84", 6378137.0, 6356752.314245),
    "D_MOON": Datum("D_MOON", 1737400.0, 1737400.0),
    "D_MARS": Datum("D_MARS", 3396190.0, 3396190.0),
}
