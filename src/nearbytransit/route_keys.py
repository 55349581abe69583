"""Reduce arrivals to the distinct stops serving each route key.

The reduced mapping is the dedup key used everywhere downstream: the
prediction client picks the nearest stops per key from it, and the
aggregator uses it as an allow-list of (route, heading, stop) combinations.
"""

import logging
import math
import re
import unicodedata
from collections.abc import Mapping
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .models import Arrival, Mode, RouteKey, RouteKeyStop

logger = logging.getLogger(__name__)

ReducedRoutes = Dict[RouteKey, List[RouteKeyStop]]

_DIGITS = re.compile(r"(\d+)")


def natural_key(value) -> tuple:
    """
    Sort key comparing text case- and accent-insensitively, digits numerically.

    "9" < "36" < "147", "Howard" == "howard".
    """
    text = unicodedata.normalize("NFKD", str(value if value is not None else ""))
    text = "".join(ch for ch in text if not unicodedata.combining(ch)).casefold()
    # re.split with a capture group alternates text, digits, text, ...
    return tuple(int(part) if index % 2 else part for index, part in enumerate(_DIGITS.split(text)))


def _timestamp_order(timestamp: Optional[float]) -> float:
    return timestamp if timestamp is not None else math.inf


def distinct_routes(arrivals: Iterable[Arrival], mode: Mode) -> ReducedRoutes:
    """
    Map each route key to the distinct stops that serve it.

    Arrivals of another mode, or missing a route, heading or stop id, are
    skipped. Each stop appears once per key with the earliest timestamp seen,
    so the result does not depend on input order.
    """
    grouped: Dict[RouteKey, Dict[str, RouteKeyStop]] = {}
    skipped = 0

    for arrival in arrivals:
        if arrival.mode != mode:
            continue
        key = RouteKey.for_arrival(arrival)
        stop_id = arrival.group_stop_id
        if key is None or stop_id is None:
            skipped += 1
            continue

        timestamp = arrival.sort_time()
        timestamp = None if math.isinf(timestamp) else timestamp
        stops = grouped.setdefault(key, {})
        existing = stops.get(str(stop_id))
        if existing is None:
            stops[str(stop_id)] = RouteKeyStop(
                stop_name=arrival.stop_name,
                stop_id=str(stop_id),
                arrival_timestamp=timestamp,
            )
        elif _timestamp_order(timestamp) < _timestamp_order(existing.arrival_timestamp):
            existing.arrival_timestamp = timestamp

    if skipped:
        logger.debug(f"Skipped {skipped} {mode.value} arrivals without a complete route key")

    reduced: ReducedRoutes = {}
    for key in sorted(grouped, key=lambda k: (natural_key(k.route), natural_key(k.heading), k.route, k.heading)):
        reduced[key] = sorted(
            grouped[key].values(),
            key=lambda stop: (_timestamp_order(stop.arrival_timestamp), natural_key(stop.stop_id)),
        )
    return reduced


def distinct_bus_routes(arrivals: Iterable[Arrival]) -> ReducedRoutes:
    """Reduce bus arrivals by (route, direction)."""
    return distinct_routes(arrivals, Mode.BUS)


def distinct_train_routes(arrivals: Iterable[Arrival]) -> ReducedRoutes:
    """Reduce train arrivals by (route, destination)."""
    return distinct_routes(arrivals, Mode.TRAIN)


def allowed_combinations(reduced) -> Set[Tuple[str, str, str]]:
    """
    Flatten reduced routes into a set of (route, heading, stop_id) tuples.

    Raises:
        TypeError: If `reduced` is not a mapping of RouteKey to stop lists.
    """
    if not isinstance(reduced, Mapping):
        raise TypeError(
            f"reduced routes must be a mapping of RouteKey to stop lists, got {type(reduced).__name__}"
        )

    allowed = set()
    for key, stops in reduced.items():
        if not isinstance(key, RouteKey):
            raise TypeError(f"reduced routes keys must be RouteKey instances, got {key!r}")
        for stop in stops:
            allowed.add((key.route, key.heading, str(stop.stop_id)))
    return allowed
