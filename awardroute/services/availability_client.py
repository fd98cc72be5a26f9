"""Award availability provider client - paged search, normalized into per-alliance groups."""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

import httpx

from awardroute.config import settings
from awardroute.data.alliances import get_alliance, supported_carriers
from awardroute.domain import AvailabilityFlight, AvailabilityGroup, ReliabilityRule
from awardroute.exceptions import UpstreamError, ValidationError

logger = logging.getLogger(__name__)

# Provider cabin names to cabin letters
CABIN_MAP = {
    "economy": "Y",
    "premium": "W",
    "business": "J",
    "first": "F",
}

_FLIGHT_NUMBER_RE = re.compile(r"^([A-Z]{2,3})(0*)(\d+)$", re.IGNORECASE)


def normalize_flight_number(flight_number: str) -> str:
    """Strip leading zeros after the carrier prefix: BA015 -> BA15."""
    match = _FLIGHT_NUMBER_RE.match(flight_number.strip())
    if not match:
        return flight_number.strip()
    prefix, _, number = match.groups()
    return f"{prefix.upper()}{int(number)}"


def parse_route_id(route_id: str) -> tuple[list[str], list[str]]:
    """
    Split a query identifier into origin and destination airport lists.

    'JFK/EWR-LHR/CDG' -> (['JFK', 'EWR'], ['LHR', 'CDG']). Middle sections,
    if present, are both origins and destinations.
    """
    sections = [s for s in route_id.split("-") if s]
    if len(sections) < 2:
        raise ValidationError(f"Invalid route id: {route_id}")
    origins = sections[0].split("/")
    destinations = sections[-1].split("/")
    for middle in sections[1:-1]:
        codes = middle.split("/")
        origins.extend(codes)
        destinations = codes + destinations
    return origins, destinations


def _parse_int_header(response: httpx.Response, name: str) -> int | None:
    value = response.headers.get(name)
    if value is None:
        return None
    try:
        return int(float(value))
    except ValueError:
        return None


@dataclass
class AvailabilityResponse:
    groups: list[AvailabilityGroup] = field(default_factory=list)
    call_count: int = 0
    rate_limit_remaining: int | None = None
    rate_limit_reset: int | None = None

    def to_dict(self) -> dict:
        return {
            "groups": [g.to_dict() for g in self.groups],
            "call_count": self.call_count,
            "rate_limit_remaining": self.rate_limit_remaining,
            "rate_limit_reset": self.rate_limit_reset,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AvailabilityResponse":
        return cls(
            groups=[AvailabilityGroup.from_dict(g) for g in data.get("groups", [])],
            call_count=int(data.get("call_count") or 0),
            rate_limit_remaining=data.get("rate_limit_remaining"),
            rate_limit_reset=data.get("rate_limit_reset"),
        )


class AvailabilityClient:
    """Adapter for the partner availability search API."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=settings.availability_base_url,
                timeout=settings.availability_timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def search(
        self,
        route_id: str,
        start_date: str,
        end_date: str,
        api_key: str,
        cabin: str | None = None,
        carriers: str | None = None,
        seats: int = 1,
        rules: Mapping[str, ReliabilityRule] | None = None,
    ) -> AvailabilityResponse:
        """
        Fetch and normalize availability for one query group.

        Raises UpstreamError when the first page fails (429 carries
        retry_after); later page failures just end pagination.
        """
        if not api_key:
            raise ValidationError("API key is required")

        origins, destinations = parse_route_id(route_id)
        try:
            padded_end = date.fromisoformat(end_date[:10]) + timedelta(
                days=settings.availability_end_date_padding_days
            )
        except ValueError as e:
            raise ValidationError(f"Invalid endDate format: {end_date}") from e

        params: dict[str, Any] = {
            "origin_airport": ",".join(origins),
            "destination_airport": ",".join(destinations),
            "start_date": start_date[:10],
            "end_date": padded_end.isoformat(),
            "take": settings.availability_page_size,
            "include_trips": "true",
            "only_direct_flights": "true",
            "include_filtered": "false",
            "disable_live_filtering": "true",
            "carriers": carriers or ",".join(supported_carriers()),
        }
        if cabin:
            params["cabin"] = cabin
        headers = {"accept": "application/json", "Partner-Authorization": api_key}

        client = await self._get_client()
        result = AvailabilityResponse()

        try:
            resp = await client.get("/search", params=params, headers=headers)
        except httpx.RequestError as e:
            raise UpstreamError(f"Availability request failed for {route_id}: {e}") from e
        result.call_count += 1

        if resp.status_code == 429:
            retry_after = _parse_int_header(resp, "Retry-After")
            raise UpstreamError(
                "Rate limit exceeded. Please try again later.",
                status_code=429,
                retry_after=retry_after,
            )
        if resp.is_error:
            raise UpstreamError(
                f"Availability API error for {route_id}: {resp.status_code}",
                status_code=resp.status_code,
            )

        pages = [resp.json()]
        last = resp
        has_more = bool(pages[0].get("hasMore"))
        for page in range(1, settings.availability_max_pages + 1):
            if not has_more:
                break
            try:
                resp = await client.get(
                    "/search",
                    params={**params, "skip": page * settings.availability_page_size},
                    headers=headers,
                )
            except httpx.RequestError as e:
                logger.warning(f"Availability page {page} failed for {route_id}: {e}")
                break
            result.call_count += 1
            if resp.is_error:
                logger.warning(f"Availability page {page} for {route_id} returned {resp.status_code}")
                break
            data = resp.json()
            pages.append(data)
            has_more = bool(data.get("hasMore"))
            last = resp

        result.rate_limit_remaining = _parse_int_header(last, "x-ratelimit-remaining")
        result.rate_limit_reset = _parse_int_header(last, "x-ratelimit-reset")
        result.groups = normalize_pages(pages, cabin=cabin, seats=seats, rules=rules or {})
        logger.info(
            f"Availability {route_id}: {len(result.groups)} groups from "
            f"{result.call_count} provider calls"
        )
        return result

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None


def _count_multiplier(rule: ReliabilityRule | None, cabin: str, source: str) -> int:
    if rule is None or source not in rule.ffp_programs:
        return 1
    return rule.threshold(cabin) or 1


def normalize_pages(
    pages: list[dict],
    cabin: str | None = None,
    seats: int = 1,
    rules: Mapping[str, ReliabilityRule] | None = None,
) -> list[AvailabilityGroup]:
    """
    Turn raw provider pages into AvailabilityGroups.

    Nonstop trips with enough seats are merged per (origin, destination,
    date, flight number). Each contributing record adds to its cabin's
    count, scaled by the carrier's min_count when the record comes from
    one of the carrier's own programs. Flights from carriers outside the
    alliance table are dropped.
    """
    rules = rules or {}
    seen_ids: set[str] = set()
    merged: dict[tuple[str, str, str, str], dict] = {}

    for page in pages:
        for item in page.get("data") or []:
            item_id = item.get("ID")
            if item_id in seen_ids:
                continue
            if item_id is not None:
                seen_ids.add(item_id)

            route = item.get("Route") or {}
            origin = route.get("OriginAirport", "")
            destination = route.get("DestinationAirport", "")
            day = item.get("Date", "")

            for trip in item.get("AvailabilityTrips") or []:
                if trip.get("Stops") != 0:
                    continue
                remaining = trip.get("RemainingSeats")
                if not isinstance(remaining, (int, float)) or remaining < seats:
                    continue
                trip_cabin = (trip.get("Cabin") or "").lower()
                if cabin and trip_cabin != cabin.lower():
                    continue
                letter = CABIN_MAP.get(trip_cabin)
                source = trip.get("Source") or item.get("Source") or ""
                aircraft = trip.get("Aircraft") or []
                aircraft = aircraft[0] if isinstance(aircraft, list) and aircraft else ""

                for raw_number in re.split(r",\s*", trip.get("FlightNumbers") or ""):
                    if not raw_number:
                        continue
                    number = normalize_flight_number(raw_number)
                    key = (origin, destination, day, number)
                    entry = merged.get(key)
                    if entry is None:
                        entry = {
                            "flight_number": number,
                            "total_duration": trip.get("TotalDuration") or 0,
                            "aircraft": aircraft,
                            "departs_at": trip.get("DepartsAt") or "",
                            "arrives_at": trip.get("ArrivesAt") or "",
                            "distance": route.get("Distance"),
                            "Y": 0, "W": 0, "J": 0, "F": 0,
                        }
                        merged[key] = entry
                    else:
                        if len(aircraft) > len(entry["aircraft"]):
                            entry["aircraft"] = aircraft
                        departs = trip.get("DepartsAt") or ""
                        if departs and (not entry["departs_at"] or departs < entry["departs_at"]):
                            entry["departs_at"] = departs
                        arrives = trip.get("ArrivesAt") or ""
                        if arrives and (not entry["arrives_at"] or arrives > entry["arrives_at"]):
                            entry["arrives_at"] = arrives

                    if letter and (trip.get("MileageCost") or 0) > 0:
                        rule = rules.get(number[:2].upper())
                        entry[letter] += _count_multiplier(rule, letter, source)

    groups: dict[tuple[str, str, str, str], AvailabilityGroup] = {}
    for (origin, destination, day, number), entry in merged.items():
        alliance = get_alliance(number[:2])
        if alliance is None:
            continue
        flight = AvailabilityFlight(
            flight_number=number,
            total_duration=int(entry["total_duration"]),
            aircraft=entry["aircraft"],
            departs_at=entry["departs_at"],
            arrives_at=entry["arrives_at"],
            y_count=entry["Y"],
            w_count=entry["W"],
            j_count=entry["J"],
            f_count=entry["F"],
            distance=entry["distance"],
        )
        key = (origin, destination, day, alliance)
        if key not in groups:
            groups[key] = AvailabilityGroup(origin, destination, day, alliance)
        groups[key].flights.append(flight)

    return list(groups.values())


availability_client = AvailabilityClient()
