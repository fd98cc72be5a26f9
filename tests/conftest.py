from datetime import datetime

import pytest

from awardroute.domain import (
    Airport,
    AvailabilityFlight,
    AvailabilityGroup,
    BackbonePath,
    FeederRoute,
    ReliabilityRule,
)
from awardroute.services.availability_client import AvailabilityResponse
from awardroute.services.cache_service import CacheService
from awardroute.services.reference_store import ReferenceStore


class FakeReferenceStore(ReferenceStore):
    """In-memory reference data with call counters."""

    def __init__(self, airports=(), paths=(), feeders=(), rules=()):
        self.airports = {a.iata: a for a in airports}
        self.paths = list(paths)
        self.feeders = list(feeders)
        self.rules = list(rules)
        self.airport_calls = 0
        self.path_calls = 0
        self.feeder_calls = 0
        self.rule_calls = 0

    async def get_airports(self, codes):
        self.airport_calls += 1
        return {code: self.airports.get(code) for code in codes}

    async def get_backbone_paths(self, origin_region, destination_region, max_distance):
        self.path_calls += 1
        return [
            p for p in self.paths
            if p.origin_region == origin_region
            and p.destination_region == destination_region
            and p.total_distance <= max_distance
        ]

    async def get_feeder_routes(self, pairs):
        self.feeder_calls += 1
        result = {pair: [] for pair in pairs}
        for f in self.feeders:
            if (f.origin, f.destination) in result:
                result[(f.origin, f.destination)].append(f)
        return result

    async def get_reliability_rules(self):
        self.rule_calls += 1
        return list(self.rules)


class FakeRedis:
    """Enough of redis.asyncio.Redis for CacheService."""

    def __init__(self):
        self.data = {}
        self.sets = {}
        self.expiry = {}

    async def ping(self):
        return True

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiry[key] = ex
        return True

    async def sadd(self, key, *values):
        self.sets.setdefault(key, set()).update(values)
        return len(values)

    async def expire(self, key, seconds):
        self.expiry[key] = seconds
        return True

    async def aclose(self):
        pass


def _airport(iata, lat, lon, region):
    return Airport(iata=iata, latitude=lat, longitude=lon, region=region)


AIRPORTS = [
    _airport("JFK", 40.6413, -73.7781, "NA"),
    _airport("BOS", 42.3656, -71.0096, "NA"),
    _airport("YYZ", 43.6777, -79.6248, "NA"),
    _airport("ORD", 41.9742, -87.9073, "NA"),
    _airport("LHR", 51.4700, -0.4543, "EU"),
    _airport("DUB", 53.4264, -6.2499, "EU"),
    _airport("CDG", 49.0097, 2.5479, "EU"),
]


def _path(origin, destination, distance, h1=None, h2=None, alliances=("OW",)):
    return BackbonePath(
        origin=origin,
        destination=destination,
        h1=h1,
        h2=h2,
        alliances=tuple(alliances),
        total_distance=distance,
        origin_region="NA",
        destination_region="EU",
    )


# JFK-LHR great-circle distance is about 3440 miles, so the distance cap is about 6880.
PATHS = [
    _path("JFK", "LHR", 3451),
    _path("JFK", "LHR", 4100, h1="YYZ", alliances=("SA", "OW")),
    _path("BOS", "LHR", 5000, h1="YYZ", alliances=("SA",)),
    _path("BOS", "LHR", 6800, h1="ORD", alliances=("SA",)),
    _path("JFK", "DUB", 3180),
    _path("BOS", "DUB", 2990),
    _path("BOS", "CDG", 3440, alliances=("ST",)),
    # Revisits JFK once the JFK-BOS feeder is prepended
    _path("BOS", "LHR", 3900, h1="JFK"),
]

FEEDERS = [
    FeederRoute("JFK", "BOS", ("OW",), 300),
    FeederRoute("JFK", "BOS", ("ST",), 300),
    FeederRoute("DUB", "LHR", ("OW",), 280),
]


@pytest.fixture
def store():
    return FakeReferenceStore(airports=AIRPORTS, paths=PATHS, feeders=FEEDERS)


@pytest.fixture
def fake_store_cls():
    return FakeReferenceStore


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return CacheService(client=fake_redis)


def make_flight(number, departs_at, arrives_at, duration=None, y=0, w=0, j=0, f=0):
    if duration is None:
        dep = datetime.fromisoformat(departs_at.replace("Z", "+00:00"))
        arr = datetime.fromisoformat(arrives_at.replace("Z", "+00:00"))
        duration = int((arr - dep).total_seconds() // 60)
    return AvailabilityFlight(
        flight_number=number,
        total_duration=duration,
        aircraft="789",
        departs_at=departs_at,
        arrives_at=arrives_at,
        y_count=y,
        w_count=w,
        j_count=j,
        f_count=f,
    )


@pytest.fixture
def flight():
    return make_flight


@pytest.fixture
def group():
    def _group(origin, destination, day, alliance, flights):
        return AvailabilityGroup(origin, destination, day, alliance, list(flights))
    return _group


@pytest.fixture
def rule():
    def _rule(code, min_count=1, exemption="", ffp_programs=()):
        return ReliabilityRule(code=code, min_count=min_count, exemption=exemption, ffp_programs=tuple(ffp_programs))
    return _rule


class FakeAvailabilityClient:
    """Stands in for AvailabilityClient; answers from canned groups per query identifier."""

    def __init__(self, responses=None, errors=None, limits=None):
        self.responses = responses or {}
        self.errors = errors or {}
        self.limits = limits or {}
        self.calls = []

    async def search(self, route_id, start_date, end_date, api_key, cabin=None, carriers=None,
                     seats=1, rules=None):
        self.calls.append(route_id)
        if route_id in self.errors:
            raise self.errors[route_id]
        remaining, reset = self.limits.get(route_id, (900, 60))
        return AvailabilityResponse(
            groups=list(self.responses.get(route_id, [])),
            call_count=1,
            rate_limit_remaining=remaining,
            rate_limit_reset=reset,
        )

    async def close(self):
        pass


# Query identifiers the world above produces for JFK-LHR at four stops
INTERIOR_QUERY = "BOS/JFK-BOS/DUB/YYZ"
TERMINAL_QUERY = "DUB/JFK/YYZ-LHR"


@pytest.fixture
def availability():
    """Provider answers for JFK-LHR on 2025-06-01: one direct, one via DUB, plus noise."""
    ba1 = make_flight("BA1", "2025-06-01T08:00:00Z", "2025-06-01T15:00:00Z", j=4)
    ba3 = make_flight("BA3", "2025-06-01T18:00:00Z", "2025-06-02T01:00:00Z")
    ba5 = make_flight("BA5", "2025-06-04T08:00:00Z", "2025-06-04T15:00:00Z", j=4)
    aa200 = make_flight("AA200", "2025-06-01T08:00:00Z", "2025-06-01T14:30:00Z", j=4)
    ba830 = make_flight("BA830", "2025-06-01T16:00:00Z", "2025-06-01T17:15:00Z", j=4)
    return {
        TERMINAL_QUERY: [
            AvailabilityGroup("JFK", "LHR", "2025-06-01", "OW", [ba1, ba3]),
            AvailabilityGroup("JFK", "LHR", "2025-06-04", "OW", [ba5]),
            AvailabilityGroup("DUB", "LHR", "2025-06-01", "OW", [ba830]),
        ],
        INTERIOR_QUERY: [
            AvailabilityGroup("JFK", "DUB", "2025-06-01", "OW", [aa200]),
        ],
    }


@pytest.fixture
def fake_client_cls():
    return FakeAvailabilityClient
