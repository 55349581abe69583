"""CTA feed constants and low-level parsing helpers."""

import math
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

CTA_TIMEZONE = ZoneInfo("America/Chicago")

# Train Tracker route codes -> (display name, color)
TRAIN_LINE_META: Dict[str, Tuple[str, str]] = {
    "RED": ("Red", "#d7263d"),
    "BLUE": ("Blue", "#2074d4"),
    "G": ("Green", "#009b3a"),
    "BRN": ("Brown", "#7b4b2a"),
    "P": ("Purple", "#522398"),
    "Y": ("Yellow", "#f4c300"),
    "PNK": ("Pink", "#e27ea6"),
    "O": ("Orange", "#f47b20"),
}

# Alternate spellings seen in the feed and in the stops CSV
TRAIN_ROUTE_ALIASES: Dict[str, str] = {
    "GREEN": "G",
    "BROWN": "BRN",
    "PURPLE": "P",
    "PEXP": "P",
    "YELLOW": "Y",
    "PINK": "PNK",
    "ORG": "O",
    "ORANGE": "O",
}

# Column names of the line flags in the CTA "L" stops CSV
TRAIN_LINE_COLUMNS: Dict[str, str] = {
    "RED": "RED",
    "BLUE": "BLUE",
    "G": "G",
    "BRN": "BRN",
    "P": "P",
    "Y": "Y",
    "Pnk": "PNK",
    "O": "O",
}

BUS_DATE_PATTERN = re.compile(r"^(\d{4})(\d{2})(\d{2})\s(\d{2}):(\d{2})(?::(\d{2}))?$")


def train_display_from_route(code) -> Tuple[str, Optional[str]]:
    """
    Translate a Train Tracker route code to its display name and color.

    Unknown codes are returned unchanged with no color.
    """
    raw = str(code if code is not None else "").strip()
    key = raw.upper()
    key = TRAIN_ROUTE_ALIASES.get(key, key)
    if key in TRAIN_LINE_META:
        return TRAIN_LINE_META[key]
    return raw, None


def parse_train_api_date(value) -> Optional[datetime]:
    """Parse an ISO-8601 Train Tracker timestamp (local CTA time)."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=CTA_TIMEZONE)
    return parsed


def parse_bus_api_date(value) -> Optional[datetime]:
    """Parse a Bus Tracker timestamp such as "20300101 12:05" or "20300101 12:05:30"."""
    if not value:
        return None
    match = BUS_DATE_PATTERN.match(str(value).strip())
    if not match:
        return None
    year, month, day, hour, minute, second = match.groups()
    try:
        return datetime(
            int(year),
            int(month),
            int(day),
            int(hour),
            int(minute),
            int(second or 0),
            tzinfo=CTA_TIMEZONE,
        )
    except ValueError:
        return None


def now() -> datetime:
    """Current time in CTA local time."""
    return datetime.now(timezone.utc).astimezone(CTA_TIMEZONE)


def minutes_until(moment: Optional[datetime], reference: Optional[datetime] = None) -> Optional[int]:
    """Whole minutes (rounded up, never negative) until `moment`."""
    if not isinstance(moment, datetime):
        return None
    reference = reference or now()
    seconds = (moment - reference).total_seconds()
    return max(0, math.ceil(seconds / 60))


def format_clock(moment: Optional[datetime]) -> str:
    """Format a time as "12:05 PM" in CTA local time."""
    if not isinstance(moment, datetime):
        return "Unknown time"
    if moment.tzinfo is not None:
        moment = moment.astimezone(CTA_TIMEZONE)
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{hour}:{moment.minute:02d} {suffix}"


def chunk(items: Sequence, size: int) -> List[list]:
    """Split `items` into consecutive lists of at most `size` elements."""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def as_list(value) -> list:
    """Feeds return a bare object instead of a one-element array; normalise both."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def epoch_seconds(moment: Optional[datetime]) -> Optional[float]:
    if not isinstance(moment, datetime):
        return None
    return moment.timestamp()


def is_finite(value) -> bool:
    """True for real, finite numbers; bools are not numbers here."""
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)
