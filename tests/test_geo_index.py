"""
Unit tests for the geo index
"""
import math
import threading

import pytest

from civic_triage.models import GeoPoint
from civic_triage.services.geo_index import GeoGrid, GeoIndex, haversine_distance, is_valid_location

MAIN_ST = GeoPoint(latitude=12.90, longitude=77.60)


def offset_north(point: GeoPoint, meters: float) -> GeoPoint:
    return GeoPoint(latitude=point.latitude + meters / 111194.93, longitude=point.longitude)


class TestHaversine:
    """Test great-circle distance"""

    def test_zero_distance(self):
        assert haversine_distance(MAIN_ST, MAIN_ST) == 0.0

    def test_one_degree_latitude(self):
        a = GeoPoint(latitude=0.0, longitude=0.0)
        b = GeoPoint(latitude=1.0, longitude=0.0)
        assert haversine_distance(a, b) == pytest.approx(111195, rel=1e-3)

    def test_symmetric(self):
        other = GeoPoint(latitude=12.9005, longitude=77.6002)
        assert haversine_distance(MAIN_ST, other) == pytest.approx(haversine_distance(other, MAIN_ST))

    def test_across_antimeridian(self):
        east = GeoPoint(latitude=0.0, longitude=179.9999)
        west = GeoPoint(latitude=0.0, longitude=-179.9999)
        assert haversine_distance(east, west) == pytest.approx(22.2, abs=0.5)

    @pytest.mark.parametrize("lat,lon,expected", [
        (12.9, 77.6, True),
        (90.0, 180.0, True),
        (-90.0, -180.0, True),
        (90.1, 0.0, False),
        (0.0, -180.5, False),
        (None, 77.6, False),
        (float("nan"), 77.6, False),
        (12.9, float("inf"), False),
    ])
    def test_is_valid_location(self, lat, lon, expected):
        assert is_valid_location(lat, lon) is expected


class TestGeoGrid:
    """Test grid cell helpers"""

    def test_cell_size_must_be_positive(self):
        with pytest.raises(ValueError):
            GeoGrid(0)

    def test_cells_within_contains_own_cell(self):
        grid = GeoGrid(150)
        assert grid.cell_of(MAIN_ST) in grid.cells_within(MAIN_ST, 150)

    def test_cells_within_is_sorted_and_small(self):
        grid = GeoGrid(150)
        cells = grid.cells_within(MAIN_ST, 150)
        assert cells == sorted(cells)
        assert 4 <= len(cells) <= 16

    @pytest.mark.parametrize("bearing", range(0, 360, 45))
    def test_point_inside_radius_has_its_cell_covered(self, bearing):
        grid = GeoGrid(150)
        theta = math.radians(bearing)
        nearby = GeoPoint(
            latitude=MAIN_ST.latitude + 140 * math.cos(theta) / 111194.93,
            longitude=MAIN_ST.longitude + 140 * math.sin(theta) / (111194.93 * math.cos(math.radians(MAIN_ST.latitude)))
        )

        assert haversine_distance(MAIN_ST, nearby) < 150
        assert grid.cell_of(nearby) in grid.cells_within(MAIN_ST, 150)

    def test_points_inside_radius_cross_cell_boundaries(self):
        grid = GeoGrid(150)
        north = offset_north(MAIN_ST, 140)
        south = offset_north(MAIN_ST, -140)

        assert haversine_distance(MAIN_ST, north) < 150
        assert {grid.cell_of(north), grid.cell_of(south)} != {grid.cell_of(MAIN_ST)}
        assert grid.cell_of(north) in grid.cells_within(MAIN_ST, 150)
        assert grid.cell_of(south) in grid.cells_within(MAIN_ST, 150)

    def test_antimeridian_wraps(self):
        grid = GeoGrid(150)
        east = GeoPoint(latitude=0.0, longitude=179.9999)
        west = GeoPoint(latitude=0.0, longitude=-179.9999)
        assert grid.cell_of(west) in grid.cells_within(east, 150)
        assert grid.cell_of(east) in grid.cells_within(west, 150)

    def test_area_key_is_stable(self):
        grid = GeoGrid(1000)
        assert grid.area_key(MAIN_ST) == grid.area_key(GeoPoint(latitude=12.90001, longitude=77.60001))


class TestGeoIndex:
    """Test radius queries and index maintenance"""

    @pytest.fixture
    def index(self):
        return GeoIndex(cell_size_m=150, default_radius_m=150)

    def test_empty_query(self, index):
        assert index.query_radius(MAIN_ST) == set()

    def test_insert_and_query_same_point(self, index):
        index.insert("c1", MAIN_ST)

        assert index.query_radius(MAIN_ST) == {"c1"}
        assert "c1" in index
        assert len(index) == 1

    def test_radius_boundary(self, index):
        index.insert("near", offset_north(MAIN_ST, 100))
        index.insert("far", offset_north(MAIN_ST, 200))

        assert index.query_radius(MAIN_ST, 150) == {"near"}
        assert index.query_radius(MAIN_ST, 250) == {"near", "far"}

    def test_point_just_inside_radius(self, index):
        index.insert("edge", offset_north(MAIN_ST, 149.5))
        assert index.query_radius(MAIN_ST, 150) == {"edge"}

    def test_remove(self, index):
        index.insert("c1", MAIN_ST)

        assert index.remove("c1") is True
        assert index.query_radius(MAIN_ST) == set()
        assert index.remove("c1") is False

    def test_reinsert_moves_entry(self, index):
        index.insert("c1", MAIN_ST)
        moved = offset_north(MAIN_ST, 1000)
        index.insert("c1", moved)

        assert index.query_radius(MAIN_ST) == set()
        assert index.query_radius(moved) == {"c1"}
        assert index.location_of("c1") == moved
        assert len(index) == 1

    def test_query_across_antimeridian(self, index):
        index.insert("west", GeoPoint(latitude=0.0, longitude=-179.9999))
        assert index.query_radius(GeoPoint(latitude=0.0, longitude=179.9999)) == {"west"}

    def test_high_latitude_query(self, index):
        north = GeoPoint(latitude=78.22, longitude=15.65)
        east_100m = GeoPoint(latitude=78.22, longitude=15.65 + 100 / (111194.93 * 0.2045))
        index.insert("svalbard", east_100m)

        assert haversine_distance(north, east_100m) < 150
        assert index.query_radius(north) == {"svalbard"}

    def test_existing_snapshot_unaffected_by_writes(self, index):
        index.insert("c1", MAIN_ST)
        snapshot = index._snapshot

        index.insert("c2", MAIN_ST)
        index.remove("c1")

        assert set(snapshot.points) == {"c1"}
        assert index.query_radius(MAIN_ST) == {"c2"}

    def test_concurrent_reads_during_writes(self, index):
        errors = []
        stop = threading.Event()

        def writer():
            for i in range(300):
                index.insert(f"c{i}", MAIN_ST)
            stop.set()

        def reader():
            while not stop.is_set():
                try:
                    found = index.query_radius(MAIN_ST)
                    assert all(cid.startswith("c") for cid in found)
                except Exception as e:  # pragma: no cover - reported below
                    errors.append(e)

        threads = [threading.Thread(target=writer)] + [threading.Thread(target=reader) for _ in range(3)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(index.query_radius(MAIN_ST)) == 300

    def test_clear(self, index):
        index.insert("c1", MAIN_ST)
        index.clear()
        assert len(index) == 0
