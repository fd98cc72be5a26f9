from datetime import date

import pytest

from awardroute.services.itinerary_composer import (
    build_segment_pool,
    compose_itineraries,
    compose_routes,
    filter_date_window,
    prune_flights,
)
from awardroute.services.route_finder import BackboneOnly, explode_alliances

DAY = "2025-06-01"


@pytest.fixture
def inbound(flight):
    # JFK-BOS lands 09:15
    return flight("AA100", "2025-06-01T08:00:00Z", "2025-06-01T09:15:00Z")


@pytest.mark.parametrize(
    "departs_at,accepted",
    [
        ("2025-06-01T09:55:00Z", False),  # 40 minutes
        ("2025-06-01T10:00:00Z", True),  # 45 minutes
        ("2025-06-02T09:15:00Z", True),  # exactly 24 hours
        ("2025-06-02T09:16:00Z", False),
    ],
)
def test_connection_window(flight, group, inbound, departs_at, accepted):
    onward = flight("BA200", departs_at, "2025-06-02T22:00:00Z", duration=420)
    flight_map = {}

    result = compose_itineraries(
        [("JFK", "BOS"), ("BOS", "LHR")],
        [[group("JFK", "BOS", DAY, "OW", [inbound])],
         [group("BOS", "LHR", departs_at[:10], "OW", [onward])]],
        [[], []],
        flight_map,
    )

    if accepted:
        assert result == {DAY: [[inbound.fingerprint, onward.fingerprint]]}
    else:
        assert result == {}


def test_first_leg_pins_the_date(flight, group):
    d1 = flight("AA1", "2025-06-01T08:00:00Z", "2025-06-01T15:00:00Z")
    d2 = flight("AA1", "2025-06-02T08:00:00Z", "2025-06-02T15:00:00Z")

    result = compose_itineraries(
        [("JFK", "LHR")],
        [[group("JFK", "LHR", "2025-06-01", "OW", [d1]),
          group("JFK", "LHR", "2025-06-02", "OW", [d2])]],
        [[]],
        {},
    )

    assert result == {"2025-06-01": [[d1.fingerprint]], "2025-06-02": [[d2.fingerprint]]}


def test_alliance_filter(flight, group):
    f = flight("BA1", "2025-06-01T08:00:00Z", "2025-06-01T15:00:00Z")
    avail = [[group("JFK", "LHR", DAY, "OW", [f])]]

    assert compose_itineraries([("JFK", "LHR")], avail, [["SA"]], {}) == {}
    assert compose_itineraries([("JFK", "LHR")], avail, [["OW"]], {}) == {DAY: [[f.fingerprint]]}


def test_no_airport_is_visited_twice(flight, group):
    out = flight("AA1", "2025-06-01T08:00:00Z", "2025-06-01T09:00:00Z")
    back = flight("AA2", "2025-06-01T11:00:00Z", "2025-06-01T12:00:00Z")

    result = compose_itineraries(
        [("JFK", "BOS"), ("BOS", "JFK")],
        [[group("JFK", "BOS", DAY, "OW", [out])], [group("BOS", "JFK", DAY, "OW", [back])]],
        [[], []],
        {},
    )

    assert result == {}


def test_later_leg_cannot_return_to_the_first_origin(flight, group):
    first = flight("AA1", "2025-06-01T08:00:00Z", "2025-06-01T09:00:00Z")
    second = flight("AA2", "2025-06-01T11:00:00Z", "2025-06-01T13:00:00Z")
    third = flight("AA3", "2025-06-01T15:00:00Z", "2025-06-01T18:00:00Z")

    result = compose_itineraries(
        [("JFK", "BOS"), ("BOS", "ORD"), ("ORD", "JFK")],
        [
            [group("JFK", "BOS", DAY, "OW", [first])],
            [group("BOS", "ORD", DAY, "OW", [second])],
            [group("ORD", "JFK", DAY, "OW", [third])],
        ],
        [[], [], []],
        {},
    )

    assert result == {}


def test_missing_segment_yields_nothing(flight, group):
    f = flight("AA1", "2025-06-01T08:00:00Z", "2025-06-01T09:00:00Z")
    result = compose_itineraries(
        [("JFK", "BOS"), ("BOS", "LHR")],
        [[group("JFK", "BOS", DAY, "OW", [f])], []],
        [[], []],
        {},
    )
    assert result == {}


def test_same_flight_from_two_groups_is_interned_once(flight, group):
    a = flight("BA1", "2025-06-01T08:00:00Z", "2025-06-01T15:00:00Z", j=2)
    b = flight("BA1", "2025-06-01T08:00:00Z", "2025-06-01T15:00:00Z", j=2)
    flight_map = {}

    result = compose_itineraries(
        [("JFK", "LHR")],
        [[group("JFK", "LHR", DAY, "OW", [a]), group("JFK", "LHR", DAY, "OW", [b])]],
        [[]],
        flight_map,
    )

    assert a.fingerprint == b.fingerprint
    assert list(flight_map) == [a.fingerprint]
    assert result == {DAY: [[a.fingerprint]]}


def test_compose_routes_merges_alliance_variants(flight, group):
    f = flight("BA1", "2025-06-01T08:00:00Z", "2025-06-01T15:00:00Z")
    skeleton = BackboneOnly("JFK", None, None, "LHR", ("OW", "SA"), 3451)
    routes = explode_alliances(skeleton)
    pool = build_segment_pool([
        group("JFK", "LHR", DAY, "OW", [f]),
        group("JFK", "LHR", DAY, "SA", [f]),
    ])
    flight_map = {}

    itineraries = compose_routes(routes, pool, flight_map)

    assert itineraries == {"JFK-LHR": {DAY: [[f.fingerprint]]}}
    assert flight_map == {f.fingerprint: f}


def test_build_segment_pool(group):
    pool = build_segment_pool([
        group("JFK", "LHR", DAY, "OW", []),
        group("JFK", "LHR", "2025-06-02", "OW", []),
        group("BOS", "LHR", DAY, "SA", []),
    ])
    assert {k: len(v) for k, v in pool.items()} == {"JFK-LHR": 2, "BOS-LHR": 1}


def test_filter_date_window_and_prune(flight):
    early = flight("BA1", "2025-05-31T23:00:00Z", "2025-06-01T07:00:00Z")
    inside = flight("BA2", "2025-06-01T08:00:00Z", "2025-06-01T15:00:00Z")
    late = flight("BA3", "2025-06-03T08:00:00Z", "2025-06-03T15:00:00Z")
    flights = {f.fingerprint: f for f in (early, inside, late)}
    itineraries = {
        "JFK-LHR": {
            "2025-05-31": [[early.fingerprint]],
            "2025-06-01": [[inside.fingerprint]],
            "2025-06-03": [[late.fingerprint]],
        },
        "EWR-LHR": {"2025-06-03": [[late.fingerprint]]},
    }

    kept = filter_date_window(itineraries, flights, date(2025, 6, 1), date(2025, 6, 2))

    assert kept == {"JFK-LHR": {"2025-06-01": [[inside.fingerprint]]}}
    assert prune_flights(kept, flights) == {inside.fingerprint: inside}


def test_filter_date_window_skips_unknown_flights():
    kept = filter_date_window({"JFK-LHR": {DAY: [["missing"]]}}, {}, date(2025, 6, 1), date(2025, 6, 1))
    assert kept == {}
