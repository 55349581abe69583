"""Main nearby arrivals tracker."""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from .aggregation import build_bus_stops_from_arrivals, build_train_stops_from_arrivals
from .client import CTAClient
from .config import DEFAULT_POLICY, DEFAULT_WALK_SPEED_MPH, ArrivalPolicy
from .cta import CTA_TIMEZONE
from .models import CandidateStop, DisplayStop, Mode, NearbySnapshot
from .route_keys import distinct_bus_routes, distinct_train_routes
from .stops import (
    CandidateStopIndex,
    select_nearest_bus_stops_by_route_direction,
    select_nearest_train_stops_by_line_direction,
    within_radius,
)
from .view import build_upcoming_stops

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_MILES = 0.5


class NearbyArrivalsTracker:
    """
    Finds the nearest upcoming bus and train arrivals around a location.

    One call to get_nearby_arrivals is one refresh pass:
    - Annotate candidate stops with distance and keep those within the radius
    - Query only the nearest stops per route/direction
    - Fetch predictions and keep the nearest stops per route key
    - Merge into display stops and build the view model
    """

    def __init__(
        self,
        client: Optional[CTAClient] = None,
        policy: Optional[ArrivalPolicy] = None,
        walk_speed_mph: float = DEFAULT_WALK_SPEED_MPH,
    ):
        """
        Initialize the tracker.

        Args:
            client: Prediction client. A default CTAClient is created if omitted.
            policy: Retention caps; the client's policy is used when omitted.
            walk_speed_mph: Walking speed for walk times in the view model.
        """
        self.policy = policy or (client.policy if client is not None else DEFAULT_POLICY)
        self.client = client or CTAClient(policy=self.policy)
        self.walk_speed_mph = walk_speed_mph

    def candidate_stops(
        self,
        latitude: float,
        longitude: float,
        stops: Iterable[CandidateStop],
        radius_miles: float = DEFAULT_RADIUS_MILES,
    ) -> CandidateStopIndex:
        """
        Stops within the radius worth querying.

        Bus stops are reduced to the nearest per (route, direction); train
        platforms to the nearest few per (line, direction).
        """
        nearby = within_radius(stops, latitude, longitude, radius_miles)
        bus = [stop for stop in nearby if stop.mode == Mode.BUS]
        train = [stop for stop in nearby if stop.mode == Mode.TRAIN]

        selected = select_nearest_bus_stops_by_route_direction(bus)
        selected += select_nearest_train_stops_by_line_direction(train, self.policy.train_lines_per_direction)
        logger.debug(f"{len(nearby)} stops within {radius_miles} mi; querying {len(selected)}")
        return CandidateStopIndex(selected)

    def get_display_stops(self, index: CandidateStopIndex) -> List[DisplayStop]:
        """Fetch predictions for indexed stops and merge them into display stops."""
        train_stops = [stop for stop in index if stop.mode == Mode.TRAIN]
        bus_stops = [stop for stop in index if stop.mode == Mode.BUS]
        display_stops: List[DisplayStop] = []

        if train_stops:
            train_data = self.client.fetch_train_predictions(train_stops)
            display_stops += build_train_stops_from_arrivals(
                train_stops,
                train_data.arrivals,
                distinct_train_routes(train_data.arrivals),
                self.policy.arrivals_per_display_key,
            )

        if bus_stops:
            bus_data = self.client.fetch_bus_predictions(bus_stops)
            display_stops += build_bus_stops_from_arrivals(
                bus_stops,
                bus_data.arrivals,
                distinct_bus_routes(bus_data.arrivals),
                self.policy.arrivals_per_display_key,
            )

        display_stops.sort(key=lambda stop: stop.distance_miles)
        return display_stops

    def get_nearby_arrivals(
        self,
        latitude: float,
        longitude: float,
        stops: Iterable[CandidateStop],
        radius_miles: float = DEFAULT_RADIUS_MILES,
    ) -> NearbySnapshot:
        """
        Run one complete refresh pass.

        Args:
            latitude: Rider latitude.
            longitude: Rider longitude.
            stops: All candidate bus stops and train platforms (see stops.load_from_files).
            radius_miles: Search radius.

        Returns:
            NearbySnapshot with display stops, view model and timestamp.
        """
        index = self.candidate_stops(latitude, longitude, stops, radius_miles)
        if not len(index):
            logger.info(f"No stops within {radius_miles} mi of ({latitude}, {longitude})")

        display_stops = self.get_display_stops(index)
        view = build_upcoming_stops(display_stops, self.walk_speed_mph, self.policy.etas_per_view_group)
        logger.info(f"Built {len(view)} upcoming stops")

        return NearbySnapshot(
            stops=display_stops,
            view=view,
            last_updated=datetime.now(CTA_TIMEZONE),
        )

    def cleanup(self) -> None:
        """Release resources held by the client."""
        if self.client:
            self.client.close()
        logger.info("Cleaned up tracker resources")
