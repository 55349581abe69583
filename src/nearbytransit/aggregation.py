"""Merge arrivals into rider-facing display stops."""

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .config import DEFAULT_POLICY
from .cta import is_finite
from .models import Arrival, CandidateStop, DisplayStop, Mode
from .route_keys import ReducedRoutes, allowed_combinations

logger = logging.getLogger(__name__)

DEFAULT_MAX_CLOSEST_ARRIVALS = DEFAULT_POLICY.arrivals_per_display_key


def _check_cap(max_closest_arrivals) -> int:
    if isinstance(max_closest_arrivals, bool) or not isinstance(max_closest_arrivals, int) or max_closest_arrivals < 1:
        raise ValueError(f"max_closest_arrivals must be a positive integer, got {max_closest_arrivals!r}")
    return max_closest_arrivals


def _is_allowed(arrival: Arrival, allowed) -> bool:
    return (arrival.route, arrival.heading_key, str(arrival.group_stop_id)) in allowed


def _cap_per_key(arrivals: Iterable[Arrival], cap: int) -> List[Arrival]:
    """Keep the `cap` earliest arrivals per (route, heading), then sort everything by time."""
    by_key: Dict[Tuple[str, str], List[Arrival]] = {}
    for arrival in arrivals:
        by_key.setdefault((arrival.route, arrival.heading_key), []).append(arrival)

    kept = []
    for key_arrivals in by_key.values():
        kept.extend(sorted(key_arrivals, key=Arrival.sort_time)[:cap])
    return sorted(kept, key=Arrival.sort_time)


def _distance_order(stop: DisplayStop) -> float:
    return stop.distance_miles if is_finite(stop.distance_miles) else math.inf


def build_train_stops_from_arrivals(
    stations: Sequence[CandidateStop],
    arrivals: Iterable[Arrival],
    reduced: ReducedRoutes,
    max_closest_arrivals: int = DEFAULT_MAX_CLOSEST_ARRIVALS,
) -> List[DisplayStop]:
    """
    Group train arrivals into one display stop per station.

    Args:
        stations: Candidate stations (for name, location and distance).
        arrivals: Train arrivals from the prediction client.
        reduced: Route-key reducer output; only (route, destination, station)
            combinations listed there are kept.
        max_closest_arrivals: Arrivals kept per (route, destination).

    Returns:
        Display stops sorted by distance; stations without a location are dropped.

    Raises:
        TypeError: If `reduced` is not a reducer mapping.
        ValueError: If `max_closest_arrivals` is not a positive integer.
    """
    allowed = allowed_combinations(reduced)
    cap = _check_cap(max_closest_arrivals)
    station_by_id = {station.lookup_id: station for station in stations}

    by_station: Dict[str, List[Arrival]] = {}
    for arrival in arrivals:
        if arrival.mode != Mode.TRAIN or arrival.group_stop_id is None:
            continue
        if not _is_allowed(arrival, allowed):
            continue
        by_station.setdefault(str(arrival.group_stop_id), []).append(arrival)

    stops: List[DisplayStop] = []
    for station_id, station_arrivals in by_station.items():
        station = station_by_id.get(station_id)
        latitude, longitude = _station_position(station, station_arrivals)
        if latitude is None or longitude is None:
            logger.debug(f"Dropping station {station_id}: no usable location")
            continue

        distance = station.distance_miles if station is not None and is_finite(station.distance_miles) else math.inf
        name = station.display_name if station is not None and station.display_name else station_arrivals[0].stop_name
        stops.append(
            DisplayStop(
                mode=Mode.TRAIN,
                stop_id=station_id,
                display_name=name,
                latitude=latitude,
                longitude=longitude,
                distance_miles=distance,
                predictions=_cap_per_key(station_arrivals, cap),
            )
        )

    return sorted(stops, key=_distance_order)


def _station_position(
    station: Optional[CandidateStop],
    arrivals: Sequence[Arrival],
) -> Tuple[Optional[float], Optional[float]]:
    if station is not None and station.has_position:
        return station.latitude, station.longitude
    for arrival in arrivals:
        if is_finite(arrival.stop_latitude) and is_finite(arrival.stop_longitude):
            return arrival.stop_latitude, arrival.stop_longitude
    return None, None


def build_bus_stops_from_arrivals(
    stops: Sequence[CandidateStop],
    arrivals: Iterable[Arrival],
    reduced: ReducedRoutes,
    max_closest_arrivals: int = DEFAULT_MAX_CLOSEST_ARRIVALS,
) -> List[DisplayStop]:
    """
    Group bus arrivals by stop name, merging direction-paired stop ids.

    Two stop ids at the same corner (one per direction) share a name and
    become one display stop placed at their midpoint, at the smaller of
    their distances.

    Raises:
        TypeError: If `reduced` is not a reducer mapping.
        ValueError: If `max_closest_arrivals` is not a positive integer.
    """
    allowed = allowed_combinations(reduced)
    cap = _check_cap(max_closest_arrivals)
    stop_by_id = {stop.lookup_id: stop for stop in stops}

    groups: Dict[str, dict] = {}
    for arrival in arrivals:
        if arrival.mode != Mode.BUS or arrival.stop_id is None:
            continue
        if not _is_allowed(arrival, allowed):
            continue

        stop_id = str(arrival.stop_id)
        candidate = stop_by_id.get(stop_id)
        name = (arrival.stop_name or (candidate.display_name if candidate else "") or "").strip()
        if not name:
            continue
        key = name.upper()

        group = groups.setdefault(key, {"name": name, "members": {}, "arrivals": []})
        group["members"].setdefault(stop_id, _member_position(candidate, arrival))
        group["arrivals"].append(arrival)

    display_stops: List[DisplayStop] = []
    for key, group in groups.items():
        positions = [
            (latitude, longitude)
            for latitude, longitude, _ in group["members"].values()
            if latitude is not None and longitude is not None
        ]
        if not positions:
            logger.debug(f"Dropping bus stop {group['name']}: no usable location")
            continue

        distances = [distance for _, _, distance in group["members"].values() if distance is not None]
        display_stops.append(
            DisplayStop(
                mode=Mode.BUS,
                stop_id=f"bus:{key}",
                display_name=group["name"],
                latitude=sum(lat for lat, _ in positions) / len(positions),
                longitude=sum(lon for _, lon in positions) / len(positions),
                distance_miles=min(distances) if distances else math.inf,
                predictions=_cap_per_key(group["arrivals"], cap),
            )
        )

    return sorted(display_stops, key=_distance_order)


def _member_position(
    candidate: Optional[CandidateStop],
    arrival: Arrival,
) -> Tuple[Optional[float], Optional[float], Optional[float]]:
    """(latitude, longitude, distance) of one physical stop."""
    distance = candidate.distance_miles if candidate is not None and is_finite(candidate.distance_miles) else None
    if candidate is not None and candidate.has_position:
        return candidate.latitude, candidate.longitude, distance
    if is_finite(arrival.stop_latitude) and is_finite(arrival.stop_longitude):
        return arrival.stop_latitude, arrival.stop_longitude, distance
    return None, None, distance


def build_display_stops(
    mode: Mode,
    stops: Sequence[CandidateStop],
    arrivals: Iterable[Arrival],
    reduced: ReducedRoutes,
    max_closest_arrivals: int = DEFAULT_MAX_CLOSEST_ARRIVALS,
) -> List[DisplayStop]:
    """Dispatch to the bus or train aggregator."""
    if mode == Mode.TRAIN:
        return build_train_stops_from_arrivals(stops, arrivals, reduced, max_closest_arrivals)
    if mode == Mode.BUS:
        return build_bus_stops_from_arrivals(stops, arrivals, reduced, max_closest_arrivals)
    raise ValueError(f"Unknown mode: {mode!r}")
