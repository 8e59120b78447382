"""
Spatial queries over the in-memory working set of asset records.

Every function here is pure: inputs are never mutated and each call returns a
new list. Distances are great-circle (haversine) metres on a spherical Earth.
"""

import math
from typing import Iterable, List, Optional, Sequence

from .constants import KILOMETER_DISPLAY_THRESHOLD_M
from .models import (
    AssetRecord,
    Coordinate,
    MachineCategory,
    OperatingState,
    RecordFilter,
    Viewport,
    ViewportBounds,
)

EARTH_RADIUS_M = 6_371_000


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance between two coordinates, in metres."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(b.longitude - a.longitude)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    # Clamp against rounding just above 1.0 for antipodal points
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(min(1.0, h)))


def viewport_bounds(viewport: Viewport) -> ViewportBounds:
    return viewport.bounds


def filter_by_category(
    records: Iterable[AssetRecord], category: Optional[MachineCategory] = None
) -> List[AssetRecord]:
    if category is None:
        return list(records)
    return [r for r in records if r.category == category]


def filter_by_operating_state(
    records: Iterable[AssetRecord], state: Optional[OperatingState] = None
) -> List[AssetRecord]:
    if state is None:
        return list(records)
    return [r for r in records if r.operating_state == state]


def sort_by_distance(records: Iterable[AssetRecord], origin: Coordinate) -> List[AssetRecord]:
    """Copy of ``records`` ordered nearest first. Equal distances keep input order."""
    return sorted(records, key=lambda r: distance_meters(r.coordinate, origin))


def visible_records(
    records: Sequence[AssetRecord],
    viewport: Viewport,
    filters: Optional[RecordFilter] = None,
    reference: Optional[Coordinate] = None,
) -> List[AssetRecord]:
    """Records inside the viewport that match ``filters``, nearest to ``reference`` first.

    ``reference`` defaults to the viewport centre. Bounds are inclusive on
    every edge and do not wrap at the antimeridian.
    """
    bounds = viewport_bounds(viewport)
    inside = [r for r in records if bounds.contains(r.latitude, r.longitude)]

    if filters is not None:
        inside = filter_by_category(inside, filters.category)
        inside = filter_by_operating_state(inside, filters.operating_state)

    return sort_by_distance(inside, reference or viewport.center)


def records_within_radius(
    records: Iterable[AssetRecord], center: Coordinate, radius_meters: float
) -> List[AssetRecord]:
    """Records no further than ``radius_meters`` from ``center``, in input order."""
    return [r for r in records if distance_meters(center, r.coordinate) <= radius_meters]


def format_distance(meters: float) -> str:
    """Display text: whole metres below 500 m, kilometres with one decimal above."""
    if meters >= KILOMETER_DISPLAY_THRESHOLD_M:
        return f"{meters / 1000:.1f} km"
    return f"{int(meters)} m"
