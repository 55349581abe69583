"""Candidate stop index and CTA stop reference data loader."""

import csv
import io
import logging
import math
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .cta import TRAIN_LINE_COLUMNS, TRAIN_LINE_META, is_finite
from .models import CandidateStop, Mode, TrainLine

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3958.8


class CandidateStopIndex:
    """Indexes candidate stops by id and by route/direction membership."""

    def __init__(self, stops: Iterable[CandidateStop] = ()):
        """
        Initialize the index.

        Args:
            stops: Candidate stops, usually already annotated with distance.
        """
        self.stops: Dict[str, CandidateStop] = {}
        self.stops_by_route_direction: Dict[Tuple[str, str], Set[str]] = {}
        self.stations_by_line: Dict[str, Set[str]] = {}
        for stop in stops:
            self.add(stop)

    def add(self, stop: CandidateStop) -> None:
        """Index one stop, keeping the nearer record when an id repeats."""
        stop_id = stop.lookup_id
        existing = self.stops.get(stop_id)
        if existing is not None and _distance_order(existing) <= _distance_order(stop):
            return
        if existing is not None:
            self._remove_memberships(existing)
        self.stops[stop_id] = stop

        for pair in stop.route_directions:
            self.stops_by_route_direction.setdefault(pair, set()).add(stop_id)
        for line in stop.lines:
            self.stations_by_line.setdefault(line.name.lower(), set()).add(stop_id)

    def _remove_memberships(self, stop: CandidateStop) -> None:
        stop_id = stop.lookup_id
        for pair in stop.route_directions:
            members = self.stops_by_route_direction.get(pair)
            if members is not None:
                members.discard(stop_id)
                if not members:
                    del self.stops_by_route_direction[pair]
        for line in stop.lines:
            members = self.stations_by_line.get(line.name.lower())
            if members is not None:
                members.discard(stop_id)
                if not members:
                    del self.stations_by_line[line.name.lower()]

    def __len__(self) -> int:
        return len(self.stops)

    def __contains__(self, stop_id) -> bool:
        return str(stop_id) in self.stops

    def __iter__(self):
        return iter(self.stops.values())

    def find(self, stop_id) -> Optional[CandidateStop]:
        return self.stops.get(str(stop_id))

    def get(self, stop_id) -> CandidateStop:
        """Get a stop by id; raises ValueError if unknown."""
        stop = self.find(stop_id)
        if stop is None:
            raise ValueError(f"Stop {stop_id} not found")
        return stop

    def stops_for_route_direction(self, route: str, direction: str) -> List[CandidateStop]:
        """All bus stops serving route/direction, nearest first."""
        stop_ids = self.stops_by_route_direction.get((route, direction), set())
        return sorted((self.stops[stop_id] for stop_id in stop_ids), key=_distance_order)

    def stations_for_line(self, line_name: str) -> List[CandidateStop]:
        """All stations served by a rail line (e.g. "Red"), nearest first."""
        stop_ids = self.stations_by_line.get(line_name.lower(), set())
        return sorted((self.stops[stop_id] for stop_id in stop_ids), key=_distance_order)

    def distance_by_id(self) -> Dict[str, float]:
        """Lookup id -> distance, for stops whose distance is known."""
        return {
            stop_id: stop.distance_miles
            for stop_id, stop in self.stops.items()
            if is_finite(stop.distance_miles)
        }


def _distance_order(stop: CandidateStop) -> float:
    return stop.distance_miles if is_finite(stop.distance_miles) else math.inf


def _to_number(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _is_true(value) -> bool:
    return str(value).strip().upper() in ("TRUE", "1")


def _location(row: dict) -> Tuple[Optional[float], Optional[float]]:
    """Coordinates from latitude/longitude, POINT_Y/POINT_X or a "(lat, lon)" Location column."""
    latitude = _to_number(row.get("latitude") or row.get("LATITUDE") or row.get("POINT_Y"))
    longitude = _to_number(row.get("longitude") or row.get("LONGITUDE") or row.get("POINT_X"))
    if latitude is None or longitude is None:
        location = (row.get("Location") or row.get("LOCATION") or "").strip("() ")
        if "," in location:
            lat_text, lon_text = location.split(",", 1)
            latitude, longitude = _to_number(lat_text), _to_number(lon_text)
    return latitude, longitude


def parse_train_stops(csv_content: str) -> List[CandidateStop]:
    """Parse the CTA "L" stops CSV into one CandidateStop per platform row."""
    reader = csv.DictReader(io.StringIO(csv_content))
    stops: List[CandidateStop] = []

    for row in reader:
        stop_id = (row.get("STOP_ID") or "").strip()
        latitude, longitude = _location(row)
        if not stop_id or latitude is None or longitude is None:
            continue

        lines = []
        for column, code in TRAIN_LINE_COLUMNS.items():
            if _is_true(row.get(column, "")):
                name, color = TRAIN_LINE_META[code]
                lines.append(TrainLine(code=code, name=name, color=color))

        stops.append(
            CandidateStop(
                stop_id=stop_id,
                station_id=(row.get("MAP_ID") or "").strip() or None,
                display_name=row.get("STATION_DESCRIPTIVE_NAME") or row.get("STATION_NAME") or "",
                latitude=latitude,
                longitude=longitude,
                mode=Mode.TRAIN,
                lines=lines,
                direction_id=(row.get("DIRECTION_ID") or "").strip() or None,
            )
        )

    logger.debug(f"Parsed {len(stops)} train platforms")
    return stops


def parse_bus_stops(csv_content: str) -> List[CandidateStop]:
    """
    Parse the CTA bus stops CSV.

    Rows sharing a STOP_ID are merged; ROUTESSTPG lists the routes stopping
    there and DIR the direction, giving (route, direction) membership pairs.
    """
    reader = csv.DictReader(io.StringIO(csv_content))
    grouped: Dict[str, dict] = {}

    for row in reader:
        stop_id = (row.get("STOP_ID") or row.get("SYSTEMSTOP") or "").strip()
        if not stop_id:
            continue
        latitude, longitude = _location(row)
        if latitude is None or longitude is None:
            continue

        entry = grouped.get(stop_id)
        if entry is None:
            name = row.get("PUBLIC_NAM") or f"{row.get('STREET', '')} & {row.get('CROSS_ST', '')}"
            entry = {"name": name.strip(), "latitude": latitude, "longitude": longitude, "pairs": set()}
            grouped[stop_id] = entry

        direction = (row.get("DIR") or "").strip()
        for route in (row.get("ROUTESSTPG") or "").split(","):
            route = route.strip()
            if route and direction:
                entry["pairs"].add((route, direction))

    stops = [
        CandidateStop(
            stop_id=stop_id,
            display_name=entry["name"],
            latitude=entry["latitude"],
            longitude=entry["longitude"],
            mode=Mode.BUS,
            route_directions=frozenset(entry["pairs"]),
        )
        for stop_id, entry in grouped.items()
    ]
    logger.debug(f"Parsed {len(stops)} bus stops")
    return stops


def load_from_files(train_path: Optional[str] = None, bus_path: Optional[str] = None) -> List[CandidateStop]:
    """Load candidate stops from local CTA CSV exports."""
    stops: List[CandidateStop] = []
    if train_path:
        with open(train_path, "r", encoding="utf-8") as f:
            stops.extend(parse_train_stops(f.read()))
    if bus_path:
        with open(bus_path, "r", encoding="utf-8") as f:
            stops.extend(parse_bus_stops(f.read()))
    logger.info(f"Loaded {len(stops)} candidate stops")
    return stops


def haversine_miles(from_lat: float, from_lon: float, to_lat: float, to_lon: float) -> float:
    """Great-circle distance in miles."""
    d_lat = math.radians(to_lat - from_lat)
    d_lon = math.radians(to_lon - from_lon)
    lat1 = math.radians(from_lat)
    lat2 = math.radians(to_lat)

    a = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def with_distance(stops: Iterable[CandidateStop], latitude: float, longitude: float) -> List[CandidateStop]:
    """Copies of the stops with distance_miles from the given location; nearest first."""
    annotated = []
    for stop in stops:
        if stop.has_position:
            distance = haversine_miles(latitude, longitude, stop.latitude, stop.longitude)
            annotated.append(replace(stop, distance_miles=distance))
    return sorted(annotated, key=_distance_order)


def within_radius(
    stops: Iterable[CandidateStop],
    latitude: float,
    longitude: float,
    radius_miles: float,
) -> List[CandidateStop]:
    return [stop for stop in with_distance(stops, latitude, longitude) if stop.distance_miles <= radius_miles]


def _unique_by_lookup_id(stops: Iterable[CandidateStop]) -> List[CandidateStop]:
    return sorted(CandidateStopIndex(stops), key=_distance_order)


def select_nearest_bus_stops_by_route_direction(stops: Iterable[CandidateStop]) -> List[CandidateStop]:
    """Keep only the nearest stop for each (route, direction) pair."""
    nearest: Dict[Tuple[str, str], CandidateStop] = {}
    for stop in sorted(stops, key=_distance_order):
        for pair in stop.route_directions:
            if pair not in nearest:
                nearest[pair] = stop
    return _unique_by_lookup_id(nearest.values())


def select_nearest_train_stops_by_line_direction(
    stops: Iterable[CandidateStop],
    limit_per_line_direction: int = 2,
) -> List[CandidateStop]:
    """Keep up to `limit_per_line_direction` nearest platforms per (line, direction)."""
    counts: Dict[Tuple[str, str], int] = {}
    selected: List[CandidateStop] = []

    for stop in sorted(stops, key=_distance_order):
        direction_id = stop.direction_id or "UNKNOWN"
        for line in stop.lines:
            key = (line.code, direction_id)
            if counts.get(key, 0) >= limit_per_line_direction:
                continue
            counts[key] = counts.get(key, 0) + 1
            selected.append(stop)

    return _unique_by_lookup_id(selected)
