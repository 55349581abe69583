"""Data models for nearby CTA arrivals."""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from .cta import epoch_seconds, is_finite, minutes_until


class Mode(str, Enum):
    """Transit mode; every mode-specific rule dispatches on this tag."""
    BUS = "bus"
    TRAIN = "train"


@dataclass(frozen=True)
class TrainLine:
    """A CTA rail line as listed in the stops reference data."""
    code: str  # e.g. "BRN"
    name: str  # e.g. "Brown"
    color: str


@dataclass
class Arrival:
    """A single predicted vehicle arrival, normalised from either feed."""
    mode: Mode
    stop_id: Optional[int]
    route: str
    direction: str
    arrival_time: Optional[datetime] = None
    prediction_time: Optional[datetime] = None
    station_id: Optional[int] = None  # Train only
    vehicle_id: Optional[str] = None
    is_delayed: bool = False
    stop_name: str = ""
    stop_latitude: Optional[float] = None
    stop_longitude: Optional[float] = None
    latitude: Optional[float] = None  # Live vehicle position (train)
    longitude: Optional[float] = None
    heading: Optional[float] = None
    destination: str = ""
    eta_minutes: Optional[float] = None  # Whole minutes are stored as int
    route_color: Optional[str] = None

    def __post_init__(self):
        if not is_finite(self.eta_minutes):
            self.eta_minutes = None
        else:
            eta = max(0, self.eta_minutes)
            self.eta_minutes = int(eta) if float(eta).is_integer() else eta
        if self.mode == Mode.BUS:
            self.station_id = None

    @property
    def heading_key(self) -> str:
        """Direction for buses, destination for trains."""
        if self.mode == Mode.TRAIN:
            return self.destination or self.direction
        return self.direction

    @property
    def group_stop_id(self) -> Optional[int]:
        """Station id for trains, stop id for buses."""
        if self.mode == Mode.TRAIN and self.station_id is not None:
            return self.station_id
        return self.stop_id

    def get_eta_minutes(self) -> Optional[float]:
        """Minutes until arrival, recomputed from arrival_time when no countdown was given."""
        if self.eta_minutes is not None:
            return self.eta_minutes
        return minutes_until(self.arrival_time)

    def sort_time(self) -> float:
        """Epoch seconds of arrival_time; unknown times sort last."""
        value = epoch_seconds(self.arrival_time)
        return value if value is not None else math.inf


@dataclass
class CandidateStop:
    """A static stop or station, annotated with its distance from the rider."""
    stop_id: str
    display_name: str
    latitude: Optional[float]
    longitude: Optional[float]
    mode: Mode
    distance_miles: Optional[float] = None
    station_id: Optional[str] = None  # Train Tracker map id
    lines: List[TrainLine] = field(default_factory=list)
    route_directions: FrozenSet[Tuple[str, str]] = frozenset()
    direction_id: Optional[str] = None  # Train platform direction (N/S/E/W)

    @property
    def lookup_id(self) -> str:
        """Id the prediction API is queried with."""
        return str(self.station_id if self.station_id else self.stop_id)

    @property
    def has_position(self) -> bool:
        return is_finite(self.latitude) and is_finite(self.longitude)


@dataclass(frozen=True, order=True)
class RouteKey:
    """(route, direction) for buses or (route, destination) for trains."""
    mode: Mode
    route: str
    heading: str

    @classmethod
    def for_arrival(cls, arrival: Arrival) -> Optional["RouteKey"]:
        route = (arrival.route or "").strip()
        heading = (arrival.heading_key or "").strip()
        if not route or not heading:
            return None
        return cls(arrival.mode, route, heading)


@dataclass
class RouteKeyStop:
    """One distinct stop serving a route key, with its earliest arrival."""
    stop_name: str
    stop_id: str
    arrival_timestamp: Optional[float]


@dataclass
class PredictionResult:
    """Output of one prediction fetch for a single mode."""
    arrivals: List[Arrival]
    predictions_by_stop: Dict[str, List[Arrival]]
    selected_stop_ids: Set[str]


@dataclass
class DisplayStop:
    """A rider-facing stop after merging physical stops."""
    mode: Mode
    stop_id: str
    display_name: str
    latitude: float
    longitude: float
    distance_miles: float
    predictions: List[Arrival] = field(default_factory=list)


@dataclass
class ViewEta:
    minutes: Optional[int]
    descriptor: str  # "now" or "later"
    clock_text: str
    timing_class: str
    sort_time: float


@dataclass
class ViewDestination:
    direction: str
    etas: List[ViewEta]


@dataclass
class ViewRoute:
    route: str
    type_label: str
    etas: List[ViewEta] = field(default_factory=list)  # Bus
    destinations: List[ViewDestination] = field(default_factory=list)  # Train


@dataclass
class ViewDirection:
    direction: str
    routes: List[ViewRoute]


@dataclass
class ViewStop:
    """Final render model; `routes` is used for trains, `directions` for buses."""
    stop_id: str
    mode: Mode
    stop_name: str
    stop_category: str
    distance_text: str
    walk_text: str
    walk_minutes: Optional[int]
    routes: List[ViewRoute] = field(default_factory=list)
    directions: List[ViewDirection] = field(default_factory=list)


@dataclass
class ApiResponseEvent:
    """One upstream response (or failure) seen by the prediction client."""
    mode: Mode
    url: str
    payload: Optional[dict] = None
    error: Optional[str] = None


@dataclass
class NearbySnapshot:
    """Complete result of one refresh pass."""
    stops: List[DisplayStop]
    view: List[ViewStop]
    last_updated: datetime
