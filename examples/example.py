"""Example usage of NearbyArrivalsTracker."""

import logging
import sys
from pathlib import Path

# Add src to path so we can import nearbytransit
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from nearbytransit.client import ApiResponseObserver, CTAClient
from nearbytransit.stops import load_from_files
from nearbytransit.tracker import NearbyArrivalsTracker

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

USAGE = "usage: example.py TRAIN_STOPS_CSV BUS_STOPS_CSV LATITUDE LONGITUDE [RADIUS_MILES]"


class FailureLogger(ApiResponseObserver):
    """Log upstream failures as they happen."""

    def on_api_response(self, event):
        if event.error:
            logger.warning(f"{event.mode.value} request failed: {event.url}")


def print_nearby_arrivals(train_csv: str, bus_csv: str, latitude: float, longitude: float, radius: float):
    """
    Fetch and display upcoming arrivals near a location.

    Args:
        train_csv: Path to the CTA "L" stops CSV.
        bus_csv: Path to the CTA bus stops CSV.
        latitude: Rider latitude.
        longitude: Rider longitude.
        radius: Search radius in miles.
    """
    print(f"\n{'='*70}")
    print(f"Upcoming arrivals near ({latitude}, {longitude})")
    print(f"{'='*70}\n")

    tracker = NearbyArrivalsTracker(client=CTAClient(observer=FailureLogger()))
    try:
        stops = load_from_files(train_csv, bus_csv)
        snapshot = tracker.get_nearby_arrivals(latitude, longitude, stops, radius_miles=radius)
    finally:
        tracker.cleanup()

    print(f"Last updated: {snapshot.last_updated.strftime('%H:%M:%S')}\n")
    if not snapshot.view:
        print("  No arrivals found")
        return

    for stop in snapshot.view:
        print(f"{stop.stop_name} [{stop.stop_category}] - {stop.distance_text}, {stop.walk_text}")
        print("-" * 70)
        for route in stop.routes:
            for destination in route.destinations:
                times = ", ".join(f"{eta.minutes} min ({eta.clock_text})" for eta in destination.etas)
                print(f"  {route.route} Line to {destination.direction}: {times}")
        for direction in stop.directions:
            print(f"  {direction.direction}:")
            for route in direction.routes:
                times = ", ".join(f"{eta.minutes} min ({eta.clock_text})" for eta in route.etas)
                print(f"    #{route.route}: {times}")
        print()


if __name__ == "__main__":
    if len(sys.argv) not in (5, 6):
        print(USAGE)
        sys.exit(2)

    try:
        lat, lon = float(sys.argv[3]), float(sys.argv[4])
        radius_miles = float(sys.argv[5]) if len(sys.argv) == 6 else 0.5
    except ValueError:
        print(USAGE)
        sys.exit(2)

    try:
        print_nearby_arrivals(sys.argv[1], sys.argv[2], lat, lon, radius_miles)
    except OSError as e:
        logger.error(f"Failed to load stop data: {e}")
        sys.exit(1)
