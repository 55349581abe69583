"""Normalise raw Bus Tracker and Train Tracker records into Arrival objects.

Upstream quirks are absorbed here: everything downstream only sees the
unified Arrival shape. None of these functions raise on malformed input.
"""

import logging
import math
from typing import Optional

from .cta import minutes_until, parse_bus_api_date, parse_train_api_date, train_display_from_route
from .models import Arrival, Mode

logger = logging.getLogger(__name__)

DUE_SENTINEL = "DUE"


def parse_int_id(value) -> Optional[int]:
    """Parse a stop or station id; None when it is not an integer."""
    text = str(value if value is not None else "").strip()
    try:
        return int(text)
    except ValueError:
        return None


def parse_optional_number(value) -> Optional[float]:
    """Parse a number, returning None for blanks and anything non-finite."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if math.isfinite(parsed) else None


def parse_delay_flag(value) -> bool:
    """Both feeds encode delays differently ("1", "true", True); default to False."""
    if isinstance(value, bool):
        return value
    normalized = str(value if value is not None else "").strip().lower()
    return normalized in ("1", "true")


def normalized_string(value, fallback: str = "") -> str:
    normalized = str(value if value is not None else "").strip()
    return normalized or fallback


def _as_record(value) -> dict:
    if isinstance(value, dict):
        return value
    logger.debug(f"Ignoring non-object prediction record: {value!r}")
    return {}


def arrival_from_bus_prediction(
    prediction: dict,
    stop_latitude=None,
    stop_longitude=None,
    fallback_stop_name: str = "",
) -> Arrival:
    """
    Build an Arrival from one Bus Tracker `prd` record.

    Args:
        prediction: Raw record (stpid, rt, rtdir, prdtm, tmstmp, vid, dly, stpnm, des, prdctdn).
        stop_latitude: Static latitude of the queried stop, if known.
        stop_longitude: Static longitude of the queried stop, if known.
        fallback_stop_name: Name used when the record has no stpnm.

    Returns:
        Arrival with mode BUS.
    """
    prediction = _as_record(prediction)
    arrival_time = parse_bus_api_date(prediction.get("prdtm"))
    countdown = parse_optional_number(prediction.get("prdctdn"))
    if countdown is not None:
        eta_minutes = max(0, countdown)
    elif normalized_string(prediction.get("prdctdn")).upper() == DUE_SENTINEL:
        eta_minutes = 0
    else:
        eta_minutes = minutes_until(arrival_time)

    return Arrival(
        mode=Mode.BUS,
        stop_id=parse_int_id(prediction.get("stpid")),
        route=normalized_string(prediction.get("rt"), "Bus"),
        direction=normalized_string(prediction.get("rtdir"), "Inbound"),
        arrival_time=arrival_time,
        prediction_time=parse_bus_api_date(prediction.get("tmstmp")),
        vehicle_id=normalized_string(prediction.get("vid")) or None,
        is_delayed=parse_delay_flag(prediction.get("dly")),
        stop_name=normalized_string(prediction.get("stpnm"), fallback_stop_name or ""),
        stop_latitude=parse_optional_number(stop_latitude),
        stop_longitude=parse_optional_number(stop_longitude),
        destination=normalized_string(prediction.get("des")),
        eta_minutes=eta_minutes,
    )


def arrival_from_train_eta(
    eta: dict,
    fallback_stop_id=None,
    fallback_station_id=None,
    fallback_stop_name: str = "",
    stop_latitude=None,
    stop_longitude=None,
) -> Arrival:
    """
    Build an Arrival from one Train Tracker `eta` record.

    The feed's route code is translated to the line name ("Brn" -> "Brown")
    and the destination doubles as the direction.
    """
    eta = _as_record(eta)
    route_name, route_color = train_display_from_route(eta.get("rt"))
    destination = normalized_string(eta.get("destNm"), "Unknown destination")
    raw_station_id = eta.get("staId")
    if raw_station_id in (None, ""):
        raw_station_id = fallback_station_id if fallback_station_id not in (None, "") else fallback_stop_id
    raw_stop_id = eta.get("staId")
    if raw_stop_id in (None, ""):
        raw_stop_id = fallback_stop_id

    return Arrival(
        mode=Mode.TRAIN,
        station_id=parse_int_id(raw_station_id),
        stop_id=parse_int_id(raw_stop_id),
        route=normalized_string(route_name, "Train"),
        direction=destination,
        arrival_time=parse_train_api_date(eta.get("arrT")),
        prediction_time=parse_train_api_date(eta.get("prdt")),
        vehicle_id=normalized_string(eta.get("rn")) or None,
        is_delayed=parse_delay_flag(eta.get("isDly")),
        stop_name=normalized_string(eta.get("staNm"), fallback_stop_name or ""),
        stop_latitude=parse_optional_number(stop_latitude),
        stop_longitude=parse_optional_number(stop_longitude),
        latitude=parse_optional_number(eta.get("lat")),
        longitude=parse_optional_number(eta.get("lon")),
        heading=parse_optional_number(eta.get("heading")),
        destination=destination,
        route_color=route_color,
    )
