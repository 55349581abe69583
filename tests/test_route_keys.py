"""Tests for the route-key reducer."""

import random
import unittest

from helpers import make_bus_arrival, make_train_arrival

from nearbytransit.models import Mode, RouteKey
from nearbytransit.route_keys import (
    allowed_combinations,
    distinct_bus_routes,
    distinct_train_routes,
    natural_key,
)


class TestDistinctTrainRoutes(unittest.TestCase):

    def test_reduces_to_route_and_destination(self):
        arrivals = [
            make_train_arrival(30170, "Red", "Howard", minutes=3),
            make_train_arrival(30170, "Red", "Howard", minutes=8),
            make_train_arrival(30170, "Red", "95th/Dan Ryan", minutes=6, stop_name="Granville"),
        ]

        grouped = distinct_train_routes(arrivals)

        howard = RouteKey(Mode.TRAIN, "Red", "Howard")
        southbound = RouteKey(Mode.TRAIN, "Red", "95th/Dan Ryan")
        self.assertEqual(set(grouped), {howard, southbound})

        self.assertEqual(len(grouped[howard]), 1)
        self.assertEqual(grouped[howard][0].stop_id, "30170")
        self.assertEqual(grouped[howard][0].stop_name, "Station")
        self.assertEqual(grouped[howard][0].arrival_timestamp, arrivals[0].arrival_time.timestamp())

        self.assertEqual(grouped[southbound][0].stop_name, "Granville")

    def test_ignores_bus_arrivals(self):
        arrivals = [make_bus_arrival(1001, "147", "Northbound", minutes=4)]
        self.assertEqual(distinct_train_routes(arrivals), {})


class TestDistinctBusRoutes(unittest.TestCase):

    def test_reduces_to_route_direction_stop(self):
        arrivals = [
            make_bus_arrival(1001, "147", "Northbound", minutes=4, stop_name="Sheridan & Winthrop"),
            make_bus_arrival(1001, "147", "Northbound", minutes=8, stop_name="Sheridan & Winthrop"),
            make_bus_arrival(1002, "147", "Southbound", minutes=6, stop_name="Sheridan & Winthrop"),
        ]

        reduced = distinct_bus_routes(arrivals)
        northbound = reduced[RouteKey(Mode.BUS, "147", "Northbound")]
        southbound = reduced[RouteKey(Mode.BUS, "147", "Southbound")]

        self.assertEqual([stop.stop_id for stop in northbound], ["1001"])
        self.assertEqual([stop.stop_id for stop in southbound], ["1002"])
        self.assertEqual(northbound[0].stop_name, "Sheridan & Winthrop")

    def test_skips_incomplete_arrivals(self):
        arrivals = [
            make_bus_arrival(None, "147", "Northbound", minutes=4),
            make_bus_arrival(1001, "", "Northbound", minutes=4),
            make_bus_arrival(1001, "147", " ", minutes=4),
        ]
        self.assertEqual(distinct_bus_routes(arrivals), {})

    def test_keeps_earliest_timestamp_regardless_of_order(self):
        arrivals = [
            make_bus_arrival(1001, "147", "Northbound", minutes=9),
            make_bus_arrival(1002, "147", "Northbound", minutes=5),
            make_bus_arrival(1001, "147", "Northbound", minutes=2),
            make_bus_arrival(1003, "36", "Southbound", minutes=7),
        ]
        expected = distinct_bus_routes(arrivals)

        shuffled = list(arrivals)
        for seed in range(5):
            random.Random(seed).shuffle(shuffled)
            self.assertEqual(distinct_bus_routes(shuffled), expected)

        northbound = expected[RouteKey(Mode.BUS, "147", "Northbound")]
        self.assertEqual(northbound[0].stop_id, "1001")
        self.assertEqual(northbound[0].arrival_timestamp, arrivals[2].arrival_time.timestamp())
        self.assertEqual([stop.stop_id for stop in northbound], ["1001", "1002"])

    def test_keys_are_sorted_naturally(self):
        arrivals = [
            make_bus_arrival(1, "147", "Southbound"),
            make_bus_arrival(2, "36", "Northbound"),
            make_bus_arrival(3, "9", "Northbound"),
            make_bus_arrival(4, "147", "Northbound"),
        ]
        keys = [(key.route, key.heading) for key in distinct_bus_routes(arrivals)]
        self.assertEqual(
            keys,
            [("9", "Northbound"), ("36", "Northbound"), ("147", "Northbound"), ("147", "Southbound")],
        )


class TestAllowedCombinations(unittest.TestCase):

    def test_flattens_reduced_routes(self):
        reduced = distinct_bus_routes(
            [
                make_bus_arrival(1001, "147", "Northbound"),
                make_bus_arrival(1002, "147", "Northbound"),
            ]
        )
        self.assertEqual(
            allowed_combinations(reduced),
            {("147", "Northbound", "1001"), ("147", "Northbound", "1002")},
        )

    def test_rejects_non_mapping(self):
        with self.assertRaises(TypeError):
            allowed_combinations([("147", "Northbound", "1001")])

    def test_rejects_string_keys(self):
        with self.assertRaises(TypeError):
            allowed_combinations({'{"route": "147"}': []})


class TestNaturalKey(unittest.TestCase):

    def test_numbers_compare_numerically(self):
        self.assertLess(natural_key("9"), natural_key("36"))
        self.assertLess(natural_key("X9"), natural_key("X49"))

    def test_case_and_accents_ignored(self):
        self.assertEqual(natural_key("Howard"), natural_key("howard"))
        self.assertEqual(natural_key("Café"), natural_key("cafe"))


if __name__ == "__main__":
    unittest.main()
