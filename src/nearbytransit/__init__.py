"""nearbytransit - Nearest upcoming CTA bus and train arrivals around a location."""

__version__ = "0.1.0"

from .models import (
    Arrival,
    CandidateStop,
    DisplayStop,
    Mode,
    NearbySnapshot,
    PredictionResult,
    RouteKey,
    RouteKeyStop,
    ViewStop,
)
from .config import ArrivalPolicy
from .client import CTAClient, ApiResponseObserver, fetch_bus_predictions, fetch_train_predictions
from .route_keys import distinct_bus_routes, distinct_train_routes
from .aggregation import build_bus_stops_from_arrivals, build_train_stops_from_arrivals
from .view import build_upcoming_stops
from .stops import CandidateStopIndex
from .tracker import NearbyArrivalsTracker

__all__ = [
    "NearbyArrivalsTracker",
    "CTAClient",
    "ApiResponseObserver",
    "ArrivalPolicy",
    "CandidateStopIndex",
    "fetch_train_predictions",
    "fetch_bus_predictions",
    "distinct_bus_routes",
    "distinct_train_routes",
    "build_train_stops_from_arrivals",
    "build_bus_stops_from_arrivals",
    "build_upcoming_stops",
    "Arrival",
    "CandidateStop",
    "DisplayStop",
    "Mode",
    "NearbySnapshot",
    "PredictionResult",
    "RouteKey",
    "RouteKeyStop",
    "ViewStop",
]
