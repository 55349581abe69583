"""Shared builders for nearbytransit tests."""

import sys
from datetime import timedelta
from pathlib import Path

# Add src to path so we can import nearbytransit
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from nearbytransit.cta import now
from nearbytransit.models import Arrival, CandidateStop, Mode


def minutes_from_now(minutes: float):
    return now() + timedelta(minutes=minutes)


def make_bus_arrival(stop_id, route, direction, minutes=0, stop_name="Stop", destination="", **extra):
    return Arrival(
        mode=Mode.BUS,
        stop_id=stop_id,
        route=route,
        direction=direction,
        arrival_time=minutes_from_now(minutes),
        prediction_time=now(),
        vehicle_id="bus-1",
        stop_name=stop_name,
        destination=destination,
        eta_minutes=minutes,
        **extra,
    )


def make_train_arrival(station_id, route, destination, minutes=0, stop_name="Station", **extra):
    return Arrival(
        mode=Mode.TRAIN,
        station_id=station_id,
        stop_id=station_id,
        route=route,
        direction=destination,
        destination=destination,
        arrival_time=minutes_from_now(minutes),
        prediction_time=now(),
        vehicle_id="train-1",
        stop_name=stop_name,
        eta_minutes=minutes,
        **extra,
    )


def bus_stop(stop_id, distance, name="Stop", latitude=41.98, longitude=-87.66, pairs=()):
    return CandidateStop(
        stop_id=str(stop_id),
        display_name=name,
        latitude=latitude,
        longitude=longitude,
        mode=Mode.BUS,
        distance_miles=distance,
        route_directions=frozenset(pairs),
    )


def train_station(station_id, distance, name="Station", latitude=41.99, longitude=-87.66, lines=()):
    return CandidateStop(
        stop_id=str(station_id),
        station_id=str(station_id),
        display_name=name,
        latitude=latitude,
        longitude=longitude,
        mode=Mode.TRAIN,
        distance_miles=distance,
        lines=list(lines),
    )


class JsonResponse:
    """Minimal stand-in for a requests.Response."""

    def __init__(self, payload):
        self.payload = payload

    def json(self):
        return self.payload
