"""Tests for display stop aggregation."""

import math
import unittest

from helpers import bus_stop, make_bus_arrival, make_train_arrival, train_station

from nearbytransit.aggregation import (
    build_bus_stops_from_arrivals,
    build_display_stops,
    build_train_stops_from_arrivals,
)
from nearbytransit.models import Mode, RouteKey, RouteKeyStop
from nearbytransit.route_keys import distinct_bus_routes, distinct_train_routes


class TestTrainAggregation(unittest.TestCase):
    """Test grouping train arrivals by station."""

    def setUp(self):
        self.stations = [
            train_station("40880", 0.3, name="Thorndale", latitude=41.990, longitude=-87.659),
            train_station("41380", 0.5, name="Bryn Mawr", latitude=41.983, longitude=-87.658),
        ]
        self.arrivals = [
            make_train_arrival(40880, "Red", "Howard", minutes=7),
            make_train_arrival(40880, "Red", "Howard", minutes=2),
            make_train_arrival(40880, "Red", "Howard", minutes=12),
            make_train_arrival(40880, "Red", "95th/Dan Ryan", minutes=4),
            make_train_arrival(41380, "Red", "Howard", minutes=1),
        ]

    def test_groups_by_station_and_caps_per_destination(self):
        reduced = distinct_train_routes(self.arrivals)
        stops = build_train_stops_from_arrivals(self.stations, self.arrivals, reduced)

        self.assertEqual([stop.stop_id for stop in stops], ["40880", "41380"])
        thorndale = stops[0]
        self.assertEqual(thorndale.mode, Mode.TRAIN)
        self.assertEqual(thorndale.display_name, "Thorndale")
        self.assertEqual((thorndale.latitude, thorndale.longitude), (41.990, -87.659))
        self.assertEqual(thorndale.distance_miles, 0.3)
        # Two earliest Howard arrivals plus the one 95th arrival, in time order
        self.assertEqual([a.eta_minutes for a in thorndale.predictions], [2, 4, 7])

    def test_only_allowed_combinations_survive(self):
        reduced = {
            RouteKey(Mode.TRAIN, "Red", "Howard"): [RouteKeyStop("Thorndale", "40880", None)],
        }
        stops = build_train_stops_from_arrivals(self.stations, self.arrivals, reduced)

        self.assertEqual(len(stops), 1)
        self.assertEqual({a.destination for a in stops[0].predictions}, {"Howard"})

    def test_falls_back_to_arrival_stop_coordinates(self):
        arrivals = [make_train_arrival(40900, "Red", "Howard", stop_name="Howard", stop_latitude=42.019, stop_longitude=-87.672)]
        stops = build_train_stops_from_arrivals([], arrivals, distinct_train_routes(arrivals))

        self.assertEqual(len(stops), 1)
        self.assertEqual(stops[0].display_name, "Howard")
        self.assertEqual((stops[0].latitude, stops[0].longitude), (42.019, -87.672))
        self.assertTrue(math.isinf(stops[0].distance_miles))

    def test_station_without_location_is_dropped(self):
        arrivals = [make_train_arrival(40900, "Red", "Howard")]
        stops = build_train_stops_from_arrivals([], arrivals, distinct_train_routes(arrivals))
        self.assertEqual(stops, [])

    def test_rejects_bad_inputs(self):
        reduced = distinct_train_routes(self.arrivals)
        with self.assertRaises(TypeError):
            build_train_stops_from_arrivals(self.stations, self.arrivals, [("Red", "Howard", "40880")])
        with self.assertRaises(ValueError):
            build_train_stops_from_arrivals(self.stations, self.arrivals, reduced, max_closest_arrivals=0)
        with self.assertRaises(ValueError):
            build_train_stops_from_arrivals(self.stations, self.arrivals, reduced, max_closest_arrivals=1.5)


class TestBusAggregation(unittest.TestCase):
    """Test grouping bus arrivals by stop name."""

    def setUp(self):
        self.stops = [
            bus_stop("1001", 0.2, name="Sheridan & Winthrop", latitude=41.990, longitude=-87.656),
            bus_stop("1002", 0.25, name="Sheridan & Winthrop", latitude=41.992, longitude=-87.658),
            bus_stop("1003", 0.4, name="Broadway & Thorndale", latitude=41.990, longitude=-87.660),
        ]
        self.arrivals = [
            make_bus_arrival(1001, "147", "Northbound", minutes=3, stop_name="Sheridan & Winthrop"),
            make_bus_arrival(1002, "147", "Southbound", minutes=6, stop_name="SHERIDAN & WINTHROP"),
            make_bus_arrival(1003, "36", "Southbound", minutes=2, stop_name="Broadway & Thorndale"),
        ]

    def test_merges_direction_pairs_by_name(self):
        stops = build_bus_stops_from_arrivals(self.stops, self.arrivals, distinct_bus_routes(self.arrivals))

        self.assertEqual([stop.stop_id for stop in stops], ["bus:SHERIDAN & WINTHROP", "bus:BROADWAY & THORNDALE"])
        merged = stops[0]
        self.assertEqual(merged.mode, Mode.BUS)
        self.assertEqual(merged.display_name, "Sheridan & Winthrop")
        self.assertAlmostEqual(merged.latitude, 41.991, places=6)
        self.assertAlmostEqual(merged.longitude, -87.657, places=6)
        self.assertEqual(merged.distance_miles, 0.2)
        self.assertEqual([(a.route, a.direction) for a in merged.predictions], [("147", "Northbound"), ("147", "Southbound")])

    def test_caps_arrivals_per_route_direction(self):
        arrivals = [
            make_bus_arrival(1001, "147", "Northbound", minutes=m, stop_name="Sheridan & Winthrop")
            for m in (9, 3, 6)
        ]
        stops = build_bus_stops_from_arrivals(self.stops, arrivals, distinct_bus_routes(arrivals), max_closest_arrivals=2)
        self.assertEqual([a.eta_minutes for a in stops[0].predictions], [3, 6])

    def test_disallowed_stop_is_excluded(self):
        reduced = distinct_bus_routes(self.arrivals[:1])
        stops = build_bus_stops_from_arrivals(self.stops, self.arrivals, reduced)

        self.assertEqual(len(stops), 1)
        self.assertEqual(len(stops[0].predictions), 1)
        self.assertEqual((stops[0].latitude, stops[0].longitude), (41.990, -87.656))

    def test_nameless_arrival_uses_candidate_name(self):
        arrivals = [make_bus_arrival(1003, "36", "Southbound", stop_name="")]
        stops = build_bus_stops_from_arrivals(self.stops, arrivals, distinct_bus_routes(arrivals))
        self.assertEqual(stops[0].display_name, "Broadway & Thorndale")

    def test_dispatch_by_mode(self):
        reduced = distinct_bus_routes(self.arrivals)
        self.assertEqual(
            build_display_stops(Mode.BUS, self.stops, self.arrivals, reduced),
            build_bus_stops_from_arrivals(self.stops, self.arrivals, reduced),
        )
        # Train aggregation ignores bus arrivals entirely
        self.assertEqual(build_display_stops(Mode.TRAIN, self.stops, self.arrivals, reduced), [])


if __name__ == "__main__":
    unittest.main()
