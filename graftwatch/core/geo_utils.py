"""
GraftWatch - Geospatial Utilities
Great-circle math on a spherical Earth and map viewport boxes.
"""

import math
from dataclasses import dataclass
from typing import Tuple

# Mean Earth radius (km); the proximity filter is defined on this sphere
EARTH_RADIUS_KM = 6371.0


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance in kilometers between two points given in
    decimal degrees.
    """
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = math.radians(lng2 - lng1)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def destination_point(
    lat: float,
    lng: float,
    distance_km: float,
    bearing_degrees: float
) -> Tuple[float, float]:
    """
    Point reached by travelling ``distance_km`` from (lat, lng) along the
    initial bearing (0 = north, 90 = east). Longitude is wrapped to
    [-180, 180).
    """
    delta = distance_km / EARTH_RADIUS_KM
    theta = math.radians(bearing_degrees)
    phi1 = math.radians(lat)

    sin_phi2 = math.sin(phi1) * math.cos(delta) + math.cos(phi1) * math.sin(delta) * math.cos(theta)
    phi2 = math.asin(sin_phi2)
    lambda2 = math.radians(lng) + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * sin_phi2,
    )

    dest_lng = (math.degrees(lambda2) + 540) % 360 - 180
    return math.degrees(phi2), dest_lng


@dataclass(frozen=True)
class BoundingBox:
    """Map viewport in degrees; edges are inclusive."""
    west: float
    south: float
    east: float
    north: float

    def contains(self, lat: float, lng: float) -> bool:
        if not self.south <= lat <= self.north:
            return False
        if self.west <= self.east:
            return self.west <= lng <= self.east
        # Viewport crossing the antimeridian
        return lng >= self.west or lng <= self.east
