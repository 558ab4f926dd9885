"""
Grid-bucketed spatial index over open complaint locations
"""
import math
import threading
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from civic_triage.config import settings
from civic_triage.models import GeoPoint
from civic_triage.logging_config import logger

EARTH_RADIUS_METERS = 6371000.0
METERS_PER_DEGREE_LAT = EARTH_RADIUS_METERS * math.pi / 180.0

CellKey = Tuple[int, int]


def haversine_distance(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two points in meters"""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    delta_lat = math.radians(b.latitude - a.latitude)
    delta_lon = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1) * math.cos(lat2) * math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(max(0.0, 1 - h)))

    return EARTH_RADIUS_METERS * c


def is_valid_location(latitude: Optional[float], longitude: Optional[float]) -> bool:
    """True if both coordinates are finite and inside the lat/lon ranges"""
    if latitude is None or longitude is None:
        return False
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError):
        return False
    if math.isnan(lat) or math.isnan(lon) or math.isinf(lat) or math.isinf(lon):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


class GeoGrid:
    """
    Fixed-size lat/lon grid.

    Cells are square in degrees, sized so a cell is ``cell_size_m`` tall.
    Columns get narrower in meters away from the equator, so neighbourhood
    lookups widen the column span by latitude.
    """

    def __init__(self, cell_size_m: float):
        if cell_size_m <= 0:
            raise ValueError("cell_size_m must be positive")
        self.cell_size_m = cell_size_m
        self.cell_deg = cell_size_m / METERS_PER_DEGREE_LAT
        self.rows = int(math.ceil(180.0 / self.cell_deg))
        # Columns tile 360 degrees exactly
        self.columns = int(math.ceil(360.0 / self.cell_deg))
        self.col_deg = 360.0 / self.columns

    def _row(self, latitude: float) -> int:
        return min(int(math.floor((latitude + 90.0) / self.cell_deg)), self.rows - 1)

    def _column(self, longitude: float) -> int:
        return int(math.floor((longitude + 180.0) / self.col_deg)) % self.columns

    def cell_of(self, point: GeoPoint) -> CellKey:
        return self._row(point.latitude), self._column(point.longitude)

    def cells_within(self, point: GeoPoint, radius_m: float) -> List[CellKey]:
        """
        All cells intersecting the bounding box of a circle, in sorted order

        Args:
            point: Circle centre
            radius_m: Circle radius in meters

        Returns:
            Sorted list of cell keys
        """
        delta_lat = radius_m / METERS_PER_DEGREE_LAT
        min_lat = max(-90.0, point.latitude - delta_lat)
        max_lat = min(90.0, point.latitude + delta_lat)

        # Widest column span is at the latitude furthest from the equator
        extreme_lat = max(abs(min_lat), abs(max_lat))
        cos_lat = max(math.cos(math.radians(extreme_lat)), 1e-9)
        delta_lon = radius_m / (METERS_PER_DEGREE_LAT * cos_lat)

        first_row, last_row = self._row(min_lat), self._row(max_lat)

        if 2 * delta_lon >= 360.0:
            columns: Iterable[int] = range(self.columns)
        else:
            first_col = int(math.floor((point.longitude - delta_lon + 180.0) / self.col_deg))
            last_col = int(math.floor((point.longitude + delta_lon + 180.0) / self.col_deg))
            span = min(last_col - first_col + 1, self.columns)
            columns = {(first_col + offset) % self.columns for offset in range(span)}

        return sorted((row, col) for row in range(first_row, last_row + 1) for col in columns)

    def area_key(self, point: GeoPoint) -> str:
        row, col = self.cell_of(point)
        return f"{row}:{col}"


class _IndexSnapshot:
    """Immutable view of the index; replaced wholesale on every write"""

    __slots__ = ("points", "cells")

    def __init__(self, points: Mapping[str, GeoPoint], cells: Mapping[CellKey, FrozenSet[str]]):
        self.points = points
        self.cells = cells


class GeoIndex:
    """Radius-query index over open complaints"""

    def __init__(self, cell_size_m: float = 150.0, default_radius_m: float = 150.0):
        """
        Initialize geo index

        Args:
            cell_size_m: Grid cell size used for bucketing
            default_radius_m: Radius used when a query does not give one
        """
        self.grid = GeoGrid(cell_size_m)
        self.default_radius_m = default_radius_m
        self._write_lock = threading.Lock()
        self._snapshot = _IndexSnapshot({}, {})
        logger.info(f"Geo index initialized with cell size {cell_size_m}m, default radius {default_radius_m}m")

    @classmethod
    def from_settings(cls) -> "GeoIndex":
        return cls(
            cell_size_m=settings.GEO_CELL_SIZE_METERS,
            default_radius_m=settings.DEDUP_RADIUS_METERS
        )

    def insert(self, complaint_id: str, location: GeoPoint) -> None:
        """Insert or move a complaint's indexed location"""
        with self._write_lock:
            current = self._snapshot
            points: Dict[str, GeoPoint] = dict(current.points)
            cells: Dict[CellKey, FrozenSet[str]] = dict(current.cells)

            previous = points.get(complaint_id)
            if previous is not None:
                self._discard_from_cell(cells, self.grid.cell_of(previous), complaint_id)

            cell = self.grid.cell_of(location)
            cells[cell] = cells.get(cell, frozenset()) | {complaint_id}
            points[complaint_id] = location

            self._snapshot = _IndexSnapshot(points, cells)

        logger.debug(f"Indexed complaint {complaint_id} in cell {cell}")

    def remove(self, complaint_id: str) -> bool:
        """Remove a complaint from the index; returns False if it was absent"""
        with self._write_lock:
            current = self._snapshot
            previous = current.points.get(complaint_id)
            if previous is None:
                return False

            points = dict(current.points)
            cells = dict(current.cells)
            del points[complaint_id]
            self._discard_from_cell(cells, self.grid.cell_of(previous), complaint_id)

            self._snapshot = _IndexSnapshot(points, cells)

        logger.debug(f"Removed complaint {complaint_id} from geo index")
        return True

    @staticmethod
    def _discard_from_cell(cells: Dict[CellKey, FrozenSet[str]], cell: CellKey, complaint_id: str) -> None:
        remaining = cells.get(cell, frozenset()) - {complaint_id}
        if remaining:
            cells[cell] = remaining
        else:
            cells.pop(cell, None)

    def query_radius(self, location: GeoPoint, radius_m: Optional[float] = None) -> Set[str]:
        """
        Find indexed complaints within a radius

        Args:
            location: Query centre
            radius_m: Radius in meters (default radius if not provided)

        Returns:
            Set of complaint ids; empty when nothing is nearby
        """
        radius = self.default_radius_m if radius_m is None else radius_m
        snapshot = self._snapshot

        found: Set[str] = set()
        for cell in self.grid.cells_within(location, radius):
            for complaint_id in snapshot.cells.get(cell, ()):
                if haversine_distance(location, snapshot.points[complaint_id]) <= radius:
                    found.add(complaint_id)

        return found

    def location_of(self, complaint_id: str) -> Optional[GeoPoint]:
        return self._snapshot.points.get(complaint_id)

    def clear(self) -> None:
        with self._write_lock:
            self._snapshot = _IndexSnapshot({}, {})

    def __contains__(self, complaint_id: object) -> bool:
        return complaint_id in self._snapshot.points

    def __len__(self) -> int:
        return len(self._snapshot.points)
