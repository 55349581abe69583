"""Build the nested route/direction view model for display stops."""

import math
from typing import Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from .config import DEFAULT_POLICY, DEFAULT_WALK_SPEED_MPH
from .formatting import (
    compact_clock,
    distance_only_text,
    eta_timing_class,
    walking_away_text,
    walking_minutes_from_miles,
)
from .models import (
    Arrival,
    DisplayStop,
    Mode,
    ViewDestination,
    ViewDirection,
    ViewEta,
    ViewRoute,
    ViewStop,
)
from .route_keys import natural_key

T = TypeVar("T")

STOP_CATEGORIES = {Mode.TRAIN: "Station", Mode.BUS: "Bus Stop"}
TYPE_LABELS = {Mode.TRAIN: "Line", Mode.BUS: "Bus"}


def normalize_etas(
    arrivals: Iterable[Arrival],
    walk_minutes: Optional[int],
    limit: int = DEFAULT_POLICY.etas_per_view_group,
) -> List[ViewEta]:
    """The `limit` earliest arrivals as ETA entries; arrivals without a time sort last."""
    etas = []
    for arrival in sorted(arrivals, key=Arrival.sort_time)[:limit]:
        minutes = arrival.get_eta_minutes()
        etas.append(
            ViewEta(
                minutes=minutes,
                descriptor="now" if minutes is not None and minutes <= 0 else "later",
                clock_text=compact_clock(arrival.arrival_time),
                timing_class=eta_timing_class(minutes, walk_minutes),
                sort_time=arrival.sort_time(),
            )
        )
    return etas


def _sorted_by_name(items: List[T], name: Callable[[T], str], first_time: Callable[[T], float]) -> List[T]:
    """Natural name order, ties broken by the earliest ETA."""
    return sorted(items, key=lambda item: (natural_key(name(item)), first_time(item)))


def _first_eta_time(etas: Sequence[ViewEta]) -> float:
    return etas[0].sort_time if etas else math.inf


def _group(arrivals: Iterable[Arrival], key: Callable[[Arrival], str]) -> Dict[str, List[Arrival]]:
    grouped: Dict[str, List[Arrival]] = {}
    for arrival in arrivals:
        grouped.setdefault(key(arrival), []).append(arrival)
    return grouped


def _bus_direction(arrival: Arrival) -> str:
    return (arrival.direction or "").strip() or "Inbound"


def _train_destination(arrival: Arrival) -> str:
    return (arrival.destination or arrival.direction or "").strip() or "Unknown destination"


def group_bus_arrivals(arrivals: Iterable[Arrival], walk_minutes: Optional[int], limit: int) -> List[ViewDirection]:
    """Direction -> route -> ETAs."""
    directions = []
    for direction, direction_arrivals in _group(arrivals, _bus_direction).items():
        routes = [
            ViewRoute(route=route, type_label=TYPE_LABELS[Mode.BUS], etas=normalize_etas(route_arrivals, walk_minutes, limit))
            for route, route_arrivals in _group(direction_arrivals, lambda a: str(a.route)).items()
        ]
        routes = _sorted_by_name(routes, lambda r: r.route, lambda r: _first_eta_time(r.etas))
        directions.append(ViewDirection(direction=direction, routes=routes))

    return _sorted_by_name(
        directions,
        lambda d: d.direction,
        lambda d: _first_eta_time(d.routes[0].etas) if d.routes else math.inf,
    )


def group_train_arrivals(arrivals: Iterable[Arrival], walk_minutes: Optional[int], limit: int) -> List[ViewRoute]:
    """Route -> destination -> ETAs."""
    routes = []
    for route, route_arrivals in _group(arrivals, lambda a: str(a.route)).items():
        destinations = [
            ViewDestination(direction=destination, etas=normalize_etas(destination_arrivals, walk_minutes, limit))
            for destination, destination_arrivals in _group(route_arrivals, _train_destination).items()
        ]
        destinations = _sorted_by_name(destinations, lambda d: d.direction, lambda d: _first_eta_time(d.etas))
        routes.append(ViewRoute(route=route, type_label=TYPE_LABELS[Mode.TRAIN], destinations=destinations))

    return _sorted_by_name(
        routes,
        lambda r: r.route,
        lambda r: _first_eta_time(r.destinations[0].etas) if r.destinations else math.inf,
    )


def build_view_stop(
    stop: DisplayStop,
    walk_speed_mph: float = DEFAULT_WALK_SPEED_MPH,
    etas_per_group: int = DEFAULT_POLICY.etas_per_view_group,
) -> ViewStop:
    """Build the render model for one display stop."""
    walk_minutes = walking_minutes_from_miles(stop.distance_miles, walk_speed_mph)
    view = ViewStop(
        stop_id=stop.stop_id,
        mode=stop.mode,
        stop_name=stop.display_name,
        stop_category=STOP_CATEGORIES.get(stop.mode, "Stop"),
        distance_text=distance_only_text(stop.distance_miles),
        walk_text=walking_away_text(stop.distance_miles, walk_speed_mph),
        walk_minutes=walk_minutes,
    )

    if stop.mode == Mode.TRAIN:
        view.routes = group_train_arrivals(stop.predictions, walk_minutes, etas_per_group)
    elif stop.mode == Mode.BUS:
        view.directions = group_bus_arrivals(stop.predictions, walk_minutes, etas_per_group)
    else:
        raise ValueError(f"Unknown mode: {stop.mode!r}")
    return view


def build_upcoming_stops(
    nearby_stops: Iterable[DisplayStop],
    walk_speed_mph: float = DEFAULT_WALK_SPEED_MPH,
    etas_per_group: int = DEFAULT_POLICY.etas_per_view_group,
) -> List[ViewStop]:
    """
    Build view stops for every display stop that has predictions, nearest first.

    Args:
        nearby_stops: Display stops from the aggregator (bus and train mixed).
        walk_speed_mph: Rider walking speed used for walk times and timing classes.
        etas_per_group: ETAs kept per route/direction or route/destination.

    Returns:
        List of ViewStop.
    """
    with_predictions = [stop for stop in nearby_stops if stop.predictions]
    with_predictions.sort(key=lambda stop: stop.distance_miles if stop.distance_miles is not None else math.inf)
    return [build_view_stop(stop, walk_speed_mph, etas_per_group) for stop in with_predictions]
