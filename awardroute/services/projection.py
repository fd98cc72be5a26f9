"""Result projection - flatten, filter, sort and paginate composed itineraries."""

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field

from awardroute.config import settings
from awardroute.domain import AvailabilityFlight
from awardroute.services.reliability_service import Rules, cabin_percentages

logger = logging.getLogger(__name__)

SORT_KEYS = ("duration", "departure", "arrival", "y", "w", "j", "f")

# Natural direction per sort key: True means ascending is better.
_ASCENDING = {
    "duration": True,
    "departure": True,
    "arrival": False,
    "y": False,
    "w": False,
    "j": False,
    "f": False,
}


@dataclass
class FlatItinerary:
    route: str
    date: str
    itinerary: list[str]

    @property
    def airports(self) -> list[str]:
        return self.route.split("-")

    @property
    def stops(self) -> int:
        return len(self.airports) - 2

    def to_dict(self) -> dict:
        return {"route": self.route, "date": self.date, "itinerary": self.itinerary}


@dataclass
class ProjectionFilters:
    stops: list[int] | None = None
    include_airlines: list[str] | None = None
    exclude_airlines: list[str] | None = None
    max_duration: int | None = None
    min_y_percent: float | None = None
    min_w_percent: float | None = None
    min_j_percent: float | None = None
    min_f_percent: float | None = None
    # Epoch milliseconds, same scale as the filter metadata
    dep_time_min: int | None = None
    dep_time_max: int | None = None
    arr_time_min: int | None = None
    arr_time_max: int | None = None
    include_origin: list[str] | None = None
    include_destination: list[str] | None = None
    include_connection: list[str] | None = None
    exclude_origin: list[str] | None = None
    exclude_destination: list[str] | None = None
    exclude_connection: list[str] | None = None
    search: str | None = None
    sort_by: str = "duration"
    sort_order: str | None = None
    page: int = 1
    page_size: int = field(default_factory=lambda: settings.page_size)


@dataclass
class ProjectionResult:
    items: list[FlatItinerary]
    flights: dict[str, AvailabilityFlight]
    total: int
    page: int
    page_size: int


def flatten_itineraries(itineraries: Mapping[str, Mapping[str, list[list[str]]]]) -> list[FlatItinerary]:
    """{route: {date: [itinerary]}} -> [{route, date, itinerary}], in insertion order."""
    return [
        FlatItinerary(route=route, date=day, itinerary=list(itinerary))
        for route, by_date in itineraries.items()
        for day, items in by_date.items()
        for itinerary in items
    ]


def epoch_ms(flight_time) -> int:
    return int(flight_time.timestamp() * 1000)


def total_duration(flights: list[AvailabilityFlight]) -> int:
    """Flight time plus non-negative layovers, in minutes."""
    total = 0
    for i, flight in enumerate(flights):
        total += flight.total_duration
        if i > 0:
            layover = round((flight.departure - flights[i - 1].arrival).total_seconds() / 60)
            total += max(0, layover)
    return total


def _upper_set(codes: list[str] | None) -> set[str] | None:
    return {c.strip().upper() for c in codes if c.strip()} if codes else None


class _Evaluated:
    """An itinerary with the derived values filters and sorts look at."""

    __slots__ = ("item", "flights", "duration", "departure", "arrival", "percentages")

    def __init__(self, item: FlatItinerary, flights: list[AvailabilityFlight], rules: Rules | None,
                 min_reliability_percent: float):
        self.item = item
        self.flights = flights
        self.duration = total_duration(flights)
        self.departure = epoch_ms(flights[0].departure)
        self.arrival = epoch_ms(flights[-1].arrival)
        self.percentages = cabin_percentages(flights, rules, min_reliability_percent)

    def value(self, key: str) -> float:
        if key == "duration":
            return self.duration
        if key == "departure":
            return self.departure
        if key == "arrival":
            return self.arrival
        return self.percentages[key]


def _matches(e: _Evaluated, f: ProjectionFilters) -> bool:
    item = e.item
    airports = item.airports
    carriers = {flight.carrier for flight in e.flights}

    if f.stops is not None and item.stops not in f.stops:
        return False

    include = _upper_set(f.include_airlines)
    if include is not None and not carriers <= include:
        return False
    exclude = _upper_set(f.exclude_airlines)
    if exclude is not None and carriers & exclude:
        return False

    if f.max_duration is not None and e.duration > f.max_duration:
        return False

    for cabin, minimum in (("y", f.min_y_percent), ("w", f.min_w_percent),
                           ("j", f.min_j_percent), ("f", f.min_f_percent)):
        if minimum is not None and e.percentages[cabin] < minimum:
            return False

    if f.dep_time_min is not None and e.departure < f.dep_time_min:
        return False
    if f.dep_time_max is not None and e.departure > f.dep_time_max:
        return False
    if f.arr_time_min is not None and e.arrival < f.arr_time_min:
        return False
    if f.arr_time_max is not None and e.arrival > f.arr_time_max:
        return False

    origin, destination, connections = {airports[0]}, {airports[-1]}, set(airports[1:-1])
    for selected, codes in ((origin, f.include_origin), (destination, f.include_destination),
                            (connections, f.include_connection)):
        wanted = _upper_set(codes)
        if wanted is not None and not selected & wanted:
            return False
    for selected, codes in ((origin, f.exclude_origin), (destination, f.exclude_destination),
                            (connections, f.exclude_connection)):
        unwanted = _upper_set(codes)
        if unwanted is not None and selected & unwanted:
            return False

    if f.search:
        haystack = [item.route.lower(), item.date.lower()]
        haystack += [flight.flight_number.lower() for flight in e.flights]
        for term in f.search.lower().split():
            if not any(term in text for text in haystack):
                return False
    return True


def project(
    itineraries: Mapping[str, Mapping[str, list[list[str]]]],
    flights: Mapping[str, AvailabilityFlight],
    filters: ProjectionFilters | None = None,
    rules: Rules | None = None,
    min_reliability_percent: float = 100,
) -> ProjectionResult:
    """
    Filter, sort and paginate composed itineraries.

    Itineraries referencing unknown flights are skipped. Duration and
    departure sort ascending by default, arrival and cabin percentages
    descending; `sort_order` overrides that, and total duration breaks ties.
    """
    start = time.monotonic()
    filters = filters or ProjectionFilters()
    sort_by = filters.sort_by if filters.sort_by in SORT_KEYS else "duration"
    if filters.sort_order in ("asc", "desc"):
        ascending = filters.sort_order == "asc"
    else:
        ascending = _ASCENDING[sort_by]

    evaluated = []
    for item in flatten_itineraries(itineraries):
        if not item.itinerary or not all(fp in flights for fp in item.itinerary):
            continue
        e = _Evaluated(item, [flights[fp] for fp in item.itinerary], rules, min_reliability_percent)
        if _matches(e, filters):
            evaluated.append(e)

    evaluated.sort(key=lambda e: (e.value(sort_by) if ascending else -e.value(sort_by), e.duration))

    page = max(1, filters.page)
    page_size = max(1, filters.page_size)
    window = evaluated[(page - 1) * page_size:page * page_size]
    items = [e.item for e in window]
    page_flights = {fp: flights[fp] for item in items for fp in item.itinerary}

    elapsed_ms = int((time.monotonic() - start) * 1000)
    logger.debug(f"Projected {len(evaluated)} itineraries (page {page}) in {elapsed_ms}ms")
    return ProjectionResult(
        items=items,
        flights=page_flights,
        total=len(evaluated),
        page=page,
        page_size=page_size,
    )


def build_filter_metadata(
    itineraries: Mapping[str, Mapping[str, list[list[str]]]],
    flights: Mapping[str, AvailabilityFlight],
) -> dict:
    """Distinct stops/carriers/airports and observed duration and time ranges, for filter widgets."""
    stops: set[int] = set()
    airlines: set[str] = set()
    origins: set[str] = set()
    destinations: set[str] = set()
    connections: set[str] = set()
    durations: list[int] = []
    departures: list[int] = []
    arrivals: list[int] = []

    for route, by_date in itineraries.items():
        airports = route.split("-")
        stops.add(len(airports) - 2)
        origins.add(airports[0])
        destinations.add(airports[-1])
        connections.update(airports[1:-1])

        for items in by_date.values():
            for itinerary in items:
                legs = [flights[fp] for fp in itinerary if fp in flights]
                if not legs:
                    continue
                airlines.update(flight.carrier for flight in legs)
                durations.append(total_duration(legs))
                departures.append(epoch_ms(legs[0].departure))
                arrivals.append(epoch_ms(legs[-1].arrival))

    now = int(time.time() * 1000)
    return {
        "stops": sorted(stops),
        "airlines": sorted(airlines),
        "airports": {
            "origins": sorted(origins),
            "destinations": sorted(destinations),
            "connections": sorted(connections),
        },
        "duration": {"min": min(durations, default=0), "max": max(durations, default=0)},
        "departure": {"min": min(departures, default=now), "max": max(departures, default=now)},
        "arrival": {"min": min(arrivals, default=now), "max": max(arrivals, default=now)},
        "cabinClasses": {cabin: {"min": 0, "max": 100} for cabin in ("y", "w", "j", "f")},
    }
