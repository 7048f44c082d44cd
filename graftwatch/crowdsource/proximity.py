"""
Proximity filtering of reports

Pure functions re-applied to every fresh snapshot; there is no spatial
index, a linear scan is enough at the expected volume.
"""

from typing import Iterable, List, Optional, Tuple

from graftwatch.core.config import settings
from graftwatch.core.geo_utils import BoundingBox, haversine_distance
from graftwatch.crowdsource.models import Report


def distance_km(report: Report, origin_lat: float, origin_lng: float) -> Optional[float]:
    """Great-circle distance from the origin, or None without a location."""
    if report.location is None:
        return None
    return haversine_distance(origin_lat, origin_lng, report.location.lat, report.location.lng)


def nearby_with_distance(
    reports: Iterable[Report],
    origin_lat: float,
    origin_lng: float,
    radius_km: Optional[float] = None
) -> List[Tuple[Report, float]]:
    """
    Approved reports strictly inside ``radius_km``, nearest first, paired
    with their distance.
    """
    radius = settings.nearby_radius_km if radius_km is None else radius_km
    matches = []
    for report in reports:
        if not report.is_public:
            continue
        distance = distance_km(report, origin_lat, origin_lng)
        if distance is not None and distance < radius:
            matches.append((report, distance))
    matches.sort(key=lambda pair: pair[1])
    return matches


def filter_nearby(
    reports: Iterable[Report],
    origin_lat: float,
    origin_lng: float,
    radius_km: Optional[float] = None
) -> List[Report]:
    """
    Subset of approved reports within ``radius_km`` of the origin.

    The boundary is exclusive: a report exactly ``radius_km`` away is left
    out. Reports without a location never match.

    Args:
        reports: Reports from the latest snapshot
        origin_lat, origin_lng: Reference point in decimal degrees
        radius_km: Search radius (default from settings, 50 km)

    Returns:
        Matching reports sorted by ascending distance
    """
    return [report for report, _ in nearby_with_distance(reports, origin_lat, origin_lng, radius_km)]


def filter_by_type(reports: Iterable[Report], corruption_type: Optional[str]) -> List[Report]:
    """Keep one corruption type; a blank type keeps everything."""
    if not corruption_type:
        return list(reports)
    return [r for r in reports if r.corruption_type == corruption_type]


def reports_in_bbox(reports: Iterable[Report], bbox: BoundingBox) -> List[Report]:
    """Reports whose location falls inside the map viewport."""
    return [
        r for r in reports
        if r.location is not None and bbox.contains(r.location.lat, r.location.lng)
    ]
