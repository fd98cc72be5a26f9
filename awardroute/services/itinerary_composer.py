"""Itinerary composer - depth-first assembly of concrete flights along macro-route legs."""

import logging
from collections.abc import Iterable
from datetime import date

from awardroute.config import settings
from awardroute.domain import AvailabilityFlight, AvailabilityGroup
from awardroute.services.route_finder import MacroRoute

logger = logging.getLogger(__name__)

# route key -> travel date -> itineraries (each an ordered list of flight fingerprints)
Itineraries = dict[str, dict[str, list[list[str]]]]


def build_segment_pool(groups: Iterable[AvailabilityGroup]) -> dict[str, list[AvailabilityGroup]]:
    """Bucket availability groups by their 'origin-destination' segment key."""
    pool: dict[str, list[AvailabilityGroup]] = {}
    for group in groups:
        pool.setdefault(group.segment_key, []).append(group)
    return pool


def compose_itineraries(
    segments: list[tuple[str, str]],
    segment_avail: list[list[AvailabilityGroup]],
    alliances: list[list[str]],
    flight_map: dict[str, AvailabilityFlight],
    min_connection_minutes: int | None = None,
    max_connection_minutes: int | None = None,
) -> dict[str, list[list[str]]]:
    """
    Every valid flight sequence along `segments`, keyed by first-leg date.

    The first leg is pinned to each date it has availability for; later legs
    may fall on any date as long as each connection is within the window.
    An airport is never visited twice and a leg with an allowed-alliance
    list only accepts groups of those alliances. Flights are interned into
    `flight_map` by fingerprint.
    """
    min_gap = settings.min_connection_minutes if min_connection_minutes is None else min_connection_minutes
    max_gap = settings.max_connection_minutes if max_connection_minutes is None else max_connection_minutes

    results: dict[str, list[list[str]]] = {}
    if not segments or any(not avail for avail in segment_avail):
        return results

    def dfs(idx: int, path: list[str], used: set[str], prev: AvailabilityFlight | None, day: str):
        if idx == len(segments):
            results.setdefault(day, []).append(list(path))
            return
        origin, destination = segments[idx]
        allowed = alliances[idx] if idx < len(alliances) else []

        if destination in used:
            return

        for group in segment_avail[idx]:
            if group.origin != origin or group.destination != destination:
                continue
            if idx == 0 and group.date != day:
                continue
            if allowed and group.alliance not in allowed:
                continue
            for flight in group.flights:
                if prev is not None:
                    gap = (flight.departure - prev.arrival).total_seconds() / 60
                    if gap < min_gap or gap > max_gap:
                        continue
                fingerprint = flight.fingerprint
                flight_map.setdefault(fingerprint, flight)
                added = {origin, destination} - used
                used |= added
                path.append(fingerprint)
                dfs(idx + 1, path, used, flight, day)
                path.pop()
                used -= added

    first_dates = dict.fromkeys(g.date for g in segment_avail[0])
    for day in first_dates:
        dfs(0, [], set(), None, day)
        if day in results:
            results[day] = _dedupe(results[day])
    return results


def _dedupe(itineraries: list[list[str]]) -> list[list[str]]:
    seen: set[tuple[str, ...]] = set()
    unique = []
    for itinerary in itineraries:
        key = tuple(itinerary)
        if key not in seen:
            seen.add(key)
            unique.append(itinerary)
    return unique


def compose_routes(
    routes: Iterable[MacroRoute],
    segment_pool: dict[str, list[AvailabilityGroup]],
    flight_map: dict[str, AvailabilityFlight],
) -> Itineraries:
    """Compose every macro-route against the shared segment pool, merged by route key."""
    output: Itineraries = {}
    for route in routes:
        if len(route.legs) < 1:
            continue
        segments = [(leg.origin, leg.destination) for leg in route.legs]
        segment_avail = [segment_pool.get(f"{o}-{d}", []) for o, d in segments]
        alliances = [leg.allowed_alliances for leg in route.legs]

        composed = compose_itineraries(segments, segment_avail, alliances, flight_map)
        if not composed:
            continue
        by_date = output.setdefault(route.key, {})
        for day, itineraries in composed.items():
            by_date.setdefault(day, []).extend(itineraries)

    for by_date in output.values():
        for day in by_date:
            by_date[day] = _dedupe(by_date[day])
    logger.debug(f"Composed itineraries for {len(output)} route keys, {len(flight_map)} distinct flights")
    return output


def filter_date_window(
    itineraries: Itineraries,
    flights: dict[str, AvailabilityFlight],
    start_date: date,
    end_date: date,
) -> Itineraries:
    """Keep itineraries whose first flight departs within [start_date, end_date]; drop empty keys."""
    kept: Itineraries = {}
    for route_key, by_date in itineraries.items():
        for day, items in by_date.items():
            survivors = []
            for itinerary in items:
                first = flights.get(itinerary[0]) if itinerary else None
                if first is None or not first.departs_at:
                    continue
                if start_date <= first.departure.date() <= end_date:
                    survivors.append(itinerary)
            if survivors:
                kept.setdefault(route_key, {})[day] = survivors
    return kept


def prune_flights(
    itineraries: Itineraries,
    flights: dict[str, AvailabilityFlight],
) -> dict[str, AvailabilityFlight]:
    """Drop flights no surviving itinerary references."""
    used = {
        fingerprint
        for by_date in itineraries.values()
        for items in by_date.values()
        for itinerary in items
        for fingerprint in itinerary
    }
    return {fp: flight for fp, flight in flights.items() if fp in used}
