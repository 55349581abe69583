"""Rider-facing text and timing helpers."""

import math
from datetime import datetime
from typing import Optional

from .config import DEFAULT_WALK_SPEED_MPH
from .cta import format_clock, is_finite

FEET_PER_MILE = 5280
# One extra minute per 500 ft approximates crossings and boarding.
FEET_PER_PENALTY_MINUTE = 500
FEET_DISPLAY_LIMIT_MILES = 0.6

ETA_TOO_FAR = "eta-too-far"
ETA_NEAR = "eta-near"
ETA_NORMAL = "eta-normal"


def walking_minutes_from_miles(miles, walk_speed_mph: float = DEFAULT_WALK_SPEED_MPH) -> Optional[int]:
    """Walking time to a stop, including the crossing penalty; None if distance is unknown."""
    if not is_finite(miles) or not is_finite(walk_speed_mph) or walk_speed_mph <= 0:
        return None
    feet = miles * FEET_PER_MILE
    base_minutes = math.ceil(miles / walk_speed_mph * 60)
    extra_minutes = math.ceil(feet / FEET_PER_PENALTY_MINUTE)
    return max(0, base_minutes + extra_minutes)


def eta_timing_class(eta_minutes, walk_minutes) -> str:
    """Classify an ETA against the walk to the stop."""
    if not is_finite(eta_minutes) or not is_finite(walk_minutes):
        return ETA_NORMAL
    if eta_minutes <= 0 or eta_minutes < walk_minutes:
        return ETA_TOO_FAR
    if 1 <= eta_minutes - walk_minutes <= 3:
        return ETA_NEAR
    return ETA_NORMAL


def eta_value_text(minutes) -> str:
    if minutes is None:
        return "unknown time"
    if minutes <= 0:
        return "now"
    return str(minutes)


def eta_unit_text(minutes) -> str:
    if minutes is None or minutes <= 0:
        return ""
    return "min"


def compact_clock(moment: Optional[datetime]) -> str:
    """"12:05 PM" -> "12:05PM"."""
    return "".join(format_clock(moment).split())


def distance_only_text(miles) -> str:
    if not is_finite(miles):
        return ""
    if miles < FEET_DISPLAY_LIMIT_MILES:
        return f"{round(miles * FEET_PER_MILE)} ft"
    return f"{miles:.2f} mi"


def walking_away_text(miles, walk_speed_mph: float = DEFAULT_WALK_SPEED_MPH) -> str:
    walk_minutes = walking_minutes_from_miles(miles, walk_speed_mph)
    if walk_minutes is None:
        return ""
    return "1 min away" if walk_minutes == 1 else f"{walk_minutes} min walk"


def distance_with_walk_text(miles, walk_speed_mph: float = DEFAULT_WALK_SPEED_MPH) -> str:
    if not is_finite(miles):
        return ""
    return f"{distance_only_text(miles)}, {walking_away_text(miles, walk_speed_mph)}"
