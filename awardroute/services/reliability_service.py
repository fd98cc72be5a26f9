"""Reliability scoring - unreliable-award detection, itinerary gating and cabin percentages."""

import logging
import math
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from awardroute.config import settings
from awardroute.domain import CABINS, AvailabilityFlight, ReliabilityRule
from awardroute.services.reference_store import ReferenceStore

logger = logging.getLogger(__name__)

Rules = Mapping[str, ReliabilityRule]


def effective_threshold(rules: Rules, flight: AvailabilityFlight, cabin: str) -> int:
    """Seat count a cabin needs for this flight's carrier (1 when the carrier has no rule)."""
    rule = rules.get(flight.carrier)
    return rule.threshold(cabin) if rule else 1


def is_unreliable(flight: AvailabilityFlight, rules: Rules) -> bool:
    """True when every cabin is below its threshold."""
    return all(flight.seats(cabin) < effective_threshold(rules, flight, cabin) for cabin in CABINS)


def is_reliable_itinerary(
    flights: list[AvailabilityFlight],
    rules: Rules,
    min_reliability_percent: float,
) -> bool:
    unreliable = sum(f.total_duration for f in flights if is_unreliable(f, rules))
    if unreliable == 0:
        return True
    total = sum(f.total_duration for f in flights)
    if total == 0:
        return False
    return unreliable / total * 100 <= 100 - min_reliability_percent


def filter_reliable(
    itineraries: dict[str, dict[str, list[list[str]]]],
    flights: Mapping[str, AvailabilityFlight],
    rules: Rules,
    min_reliability_percent: float | None = None,
) -> dict[str, dict[str, list[list[str]]]]:
    """
    Drop itineraries whose unreliable share of flight time is too large.

    Itineraries referencing a flight missing from `flights` are dropped.
    Empty dates and routes are removed.
    """
    if min_reliability_percent is None:
        min_reliability_percent = settings.default_min_reliability_percent

    kept: dict[str, dict[str, list[list[str]]]] = {}
    dropped = 0
    for route_key, by_date in itineraries.items():
        for day, items in by_date.items():
            survivors = []
            for itinerary in items:
                if not all(fp in flights for fp in itinerary):
                    dropped += 1
                    continue
                if is_reliable_itinerary([flights[fp] for fp in itinerary], rules, min_reliability_percent):
                    survivors.append(itinerary)
                else:
                    dropped += 1
            if survivors:
                kept.setdefault(route_key, {})[day] = survivors
    if dropped:
        logger.info(f"Reliability filter ({min_reliability_percent}%) dropped {dropped} itineraries")
    return kept


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def cabin_percentages(
    flights: list[AvailabilityFlight],
    rules: Rules | None = None,
    min_reliability_percent: float = 100,
) -> dict[str, int]:
    """
    Per-cabin availability for an itinerary, as {"y", "w", "j", "f"} percentages.

    Y is all-or-nothing across flights. W/J/F are the share of total flight
    time flown on flights with seats in that cabin. When rules are given and
    min_reliability_percent is below 100, a flight longer than
    (100 - min_reliability_percent)% of the total counts as having no seats
    in any cabin where it is under the reliability threshold.
    """
    total = sum(f.total_duration for f in flights)
    counts = [{cabin: f.seats(cabin) for cabin in CABINS} for f in flights]

    if rules and min_reliability_percent < 100:
        limit = (100 - min_reliability_percent) / 100 * total
        for flight, seats in zip(flights, counts):
            if flight.total_duration <= limit:
                continue
            for cabin in CABINS:
                if seats[cabin] < effective_threshold(rules, flight, cabin):
                    seats[cabin] = 0

    result = {"y": 100 if flights and all(c["Y"] > 0 for c in counts) else 0}
    for cabin in ("W", "J", "F"):
        covered = sum(f.total_duration for f, c in zip(flights, counts) if c[cabin] > 0)
        result[cabin.lower()] = _round_half_up(covered / total * 100) if total and covered else 0
    return result


@dataclass(frozen=True)
class _Snapshot:
    rules: Rules
    loaded_at: float


class ReliabilityRepository:
    """
    Process-level holder of the carrier reliability table.

    The table is small and changes rarely, so it is reloaded only when the
    snapshot is older than the TTL. A failed reload keeps the previous
    snapshot (or an empty table on first load).
    """

    def __init__(self, ttl_seconds: int | None = None, clock=time.monotonic):
        self._ttl = settings.reliability_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._snapshot: _Snapshot | None = None

    def is_stale(self) -> bool:
        return self._snapshot is None or self._clock() - self._snapshot.loaded_at >= self._ttl

    async def refresh_if_stale(self, store: ReferenceStore) -> Rules:
        if not self.is_stale():
            return self._snapshot.rules
        try:
            rules = build_rule_map(await store.get_reliability_rules())
        except Exception as e:
            logger.error(f"Failed to load reliability table: {e}")
            rules = self._snapshot.rules if self._snapshot else MappingProxyType({})
        self._snapshot = _Snapshot(rules=rules, loaded_at=self._clock())
        logger.debug(f"Reliability table loaded: {len(rules)} carriers")
        return rules

    def invalidate(self):
        self._snapshot = None


def build_rule_map(rules: Iterable[ReliabilityRule]) -> Rules:
    return MappingProxyType({rule.code.upper(): rule for rule in rules})


reliability_repository = ReliabilityRepository()
