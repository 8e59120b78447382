import os
import sys

import pytest

# Add src to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from vendmap.models import (
    AssetRecord,
    Coordinate,
    MachineCategory,
    OperatingState,
    RecordFilter,
    Viewport,
)
from vendmap.spatial import (
    distance_meters,
    filter_by_category,
    filter_by_operating_state,
    format_distance,
    records_within_radius,
    sort_by_distance,
    viewport_bounds,
    visible_records,
)

TOKYO = Coordinate(35.6895, 139.6917)
METERS_PER_DEGREE = 6_371_000 * 3.141592653589793 / 180


def make_record(record_id, lat, lon, category=MachineCategory.BEVERAGE, state=OperatingState.OPERATING):
    return AssetRecord(
        id=record_id,
        latitude=lat,
        longitude=lon,
        description=f"Machine {record_id}",
        category=category,
        operating_state=state,
    )


def tokyo_viewport(span=0.05):
    return Viewport(center=TOKYO, latitude_delta=span, longitude_delta=span)


class TestDistance:
    def test_one_degree_along_meridian(self):
        assert distance_meters(Coordinate(0, 0), Coordinate(1, 0)) == pytest.approx(METERS_PER_DEGREE, rel=1e-9)

    def test_one_degree_along_equator(self):
        assert distance_meters(Coordinate(0, 0), Coordinate(0, 1)) == pytest.approx(METERS_PER_DEGREE, rel=1e-9)

    def test_same_point_is_zero(self):
        assert distance_meters(TOKYO, TOKYO) == 0

    def test_symmetric(self):
        osaka = Coordinate(34.6937, 135.5023)
        assert distance_meters(TOKYO, osaka) == pytest.approx(distance_meters(osaka, TOKYO))
        # Roughly 400 km apart
        assert 390_000 < distance_meters(TOKYO, osaka) < 410_000

    def test_antipodal_points(self):
        d = distance_meters(Coordinate(0, 0), Coordinate(0, 180))
        assert d == pytest.approx(METERS_PER_DEGREE * 180, rel=1e-9)


class TestViewportBounds:
    def test_bounds_are_center_plus_minus_half_span(self):
        bounds = viewport_bounds(Viewport(center=TOKYO, latitude_delta=0.05, longitude_delta=0.02))
        assert bounds.north == pytest.approx(35.7145)
        assert bounds.south == pytest.approx(35.6645)
        assert bounds.east == pytest.approx(139.7017)
        assert bounds.west == pytest.approx(139.6817)

    def test_zero_span_contains_only_the_center(self):
        bounds = viewport_bounds(Viewport(center=TOKYO, latitude_delta=0, longitude_delta=0))
        assert bounds.contains(TOKYO.latitude, TOKYO.longitude)
        assert not bounds.contains(TOKYO.latitude + 1e-9, TOKYO.longitude)


class TestVisibleRecords:
    def test_viewport_containment(self):
        inside = make_record("a", 35.70, 139.70)
        outside = make_record("b", 35.80, 139.70)

        result = visible_records([inside, outside], tokyo_viewport())

        assert result == [inside]

    def test_edges_are_inclusive(self):
        viewport = tokyo_viewport()
        bounds = viewport.bounds
        corners = [
            make_record("ne", bounds.north, bounds.east),
            make_record("sw", bounds.south, bounds.west),
        ]

        assert len(visible_records(corners, viewport)) == 2

    def test_category_and_state_filters_compose(self):
        match = make_record("a", 35.69, 139.69, MachineCategory.FOOD, OperatingState.OPERATING)
        wrong_state = make_record("b", 35.69, 139.69, MachineCategory.FOOD, OperatingState.OUT_OF_ORDER)
        wrong_category = make_record("c", 35.69, 139.69, MachineCategory.BEVERAGE, OperatingState.MAINTENANCE)
        filters = RecordFilter(category=MachineCategory.FOOD, operating_state=OperatingState.OPERATING)

        result = visible_records([match, wrong_state, wrong_category], tokyo_viewport(), filters)

        assert result == [match]

    def test_sorted_nearest_first(self):
        at_center = make_record("0m", TOKYO.latitude, TOKYO.longitude)
        near = make_record("50m", TOKYO.latitude + 50 / METERS_PER_DEGREE, TOKYO.longitude)
        far = make_record("900m", TOKYO.latitude + 900 / METERS_PER_DEGREE, TOKYO.longitude)

        result = visible_records([far, at_center, near], tokyo_viewport())

        assert [r.id for r in result] == ["0m", "50m", "900m"]
        assert distance_meters(TOKYO, result[1].coordinate) == pytest.approx(50, abs=0.01)
        assert distance_meters(TOKYO, result[2].coordinate) == pytest.approx(900, abs=0.01)

    def test_explicit_reference_point(self):
        west = make_record("w", TOKYO.latitude, 139.68)
        east = make_record("e", TOKYO.latitude, 139.70)

        result = visible_records([west, east], tokyo_viewport(), reference=Coordinate(TOKYO.latitude, 139.71))

        assert [r.id for r in result] == ["e", "w"]

    def test_empty_working_set(self):
        filters = RecordFilter(category=MachineCategory.ICE, operating_state=OperatingState.MAINTENANCE)
        assert visible_records([], tokyo_viewport()) == []
        assert visible_records([], tokyo_viewport(), filters) == []

    def test_input_is_not_mutated(self):
        records = [make_record("far", 35.70, 139.70), make_record("near", TOKYO.latitude, TOKYO.longitude)]
        before = list(records)

        visible_records(records, tokyo_viewport())

        assert records == before

    def test_does_not_wrap_at_antimeridian(self):
        viewport = Viewport(center=Coordinate(0, 179.99), latitude_delta=0.05, longitude_delta=0.05)
        across = make_record("x", 0, -179.99)

        assert visible_records([across], viewport) == []


class TestFilters:
    records = [
        make_record("a", 35.0, 139.0, MachineCategory.BEVERAGE, OperatingState.OPERATING),
        make_record("b", 35.0, 139.0, MachineCategory.TOBACCO, OperatingState.MAINTENANCE),
    ]

    def test_no_category_passes_everything_through(self):
        result = filter_by_category(self.records, None)
        assert result == self.records
        assert result is not self.records

    def test_no_state_passes_everything_through(self):
        result = filter_by_operating_state(self.records, None)
        assert result == self.records
        assert result is not self.records

    def test_filter_by_category(self):
        assert [r.id for r in filter_by_category(self.records, MachineCategory.TOBACCO)] == ["b"]

    def test_filter_by_state(self):
        assert [r.id for r in filter_by_operating_state(self.records, OperatingState.OPERATING)] == ["a"]

    def test_empty_input(self):
        assert filter_by_category([], MachineCategory.FOOD) == []
        assert filter_by_operating_state([], None) == []


class TestSortAndRadius:
    def test_ties_keep_input_order(self):
        first = make_record("first", 35.7, 139.7)
        second = make_record("second", 35.7, 139.7)

        assert [r.id for r in sort_by_distance([first, second], TOKYO)] == ["first", "second"]
        assert [r.id for r in sort_by_distance([second, first], TOKYO)] == ["second", "first"]

    def test_sort_empty(self):
        assert sort_by_distance([], TOKYO) == []

    def test_records_within_radius(self):
        near = make_record("near", TOKYO.latitude + 100 / METERS_PER_DEGREE, TOKYO.longitude)
        far = make_record("far", TOKYO.latitude + 2000 / METERS_PER_DEGREE, TOKYO.longitude)

        assert records_within_radius([far, near], TOKYO, 500) == [near]


class TestFormatDistance:
    @pytest.mark.parametrize(
        "meters,expected",
        [(0, "0 m"), (49.6, "49 m"), (499.9, "499 m"), (500, "0.5 km"), (1234, "1.2 km"), (15_000, "15.0 km")],
    )
    def test_format(self, meters, expected):
        assert format_distance(meters) == expected
