"""Configuration for nearbytransit: endpoints and arrival retention policy."""

import logging
import os
from dataclasses import dataclass, fields

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost"
TRAIN_ENDPOINT = "/api/train"
BUS_ENDPOINT = "/api/bus"

REQUEST_TIMEOUT_SECONDS = 10
MAX_TRAIN_WORKERS = 8

DEFAULT_WALK_SPEED_MPH = 2.0

ENV_PREFIX = "NEARBYTRANSIT_"


def base_url_from_env() -> str:
    """Return the proxy base URL, honouring CTA_PROXY_BASE."""
    value = os.environ.get("CTA_PROXY_BASE", "").strip()
    return value or DEFAULT_BASE_URL


@dataclass(frozen=True)
class ArrivalPolicy:
    """
    How many stops and arrivals are kept at each stage of a refresh.

    Attributes:
        train_stations_per_key: Nearest stations kept per (route, destination).
        bus_stops_per_key: Nearest stops kept per (route, direction).
        arrivals_per_selected_stop: Arrivals kept per selected stop and key
            when predictions are fetched.
        arrivals_per_display_key: Arrivals kept per key on a display stop.
        etas_per_view_group: ETAs shown per route/destination in the view.
        bus_batch_size: Stop ids per Bus Tracker request (API limit is 10).
        bus_top: Maximum predictions requested per bus batch.
        train_lines_per_direction: Stations queried per line and direction
            before any prediction is fetched.
    """
    train_stations_per_key: int = 1
    bus_stops_per_key: int = 2
    arrivals_per_selected_stop: int = 3
    arrivals_per_display_key: int = 2
    etas_per_view_group: int = 2
    bus_batch_size: int = 10
    bus_top: int = 40
    train_lines_per_direction: int = 2

    def __post_init__(self):
        for field in fields(self):
            value = getattr(self, field.name)
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"{field.name} must be a positive integer, got {value!r}")
        if self.bus_batch_size > 10:
            raise ValueError("bus_batch_size cannot exceed the Bus Tracker limit of 10")

    @classmethod
    def from_env(cls) -> "ArrivalPolicy":
        """
        Build a policy from NEARBYTRANSIT_* environment variables.

        e.g. NEARBYTRANSIT_BUS_STOPS_PER_KEY=1. Unset variables keep their
        defaults; malformed values are ignored with a warning.
        """
        overrides = {}
        for field in fields(cls):
            raw = os.environ.get(ENV_PREFIX + field.name.upper())
            if raw is None:
                continue
            try:
                overrides[field.name] = int(raw)
            except ValueError:
                logger.warning(f"Ignoring non-integer {ENV_PREFIX}{field.name.upper()}={raw!r}")
        return cls(**overrides)


DEFAULT_POLICY = ArrivalPolicy()
