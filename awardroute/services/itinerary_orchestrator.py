"""Itinerary orchestrator - route search, availability fan-out, composition, reliability and caching."""

import functools
import logging
import time
from dataclasses import dataclass, field
from datetime import date

from awardroute.config import settings
from awardroute.domain import AvailabilityFlight, AvailabilityGroup
from awardroute.exceptions import UpstreamError, ValidationError
from awardroute.services.availability_client import AvailabilityClient, AvailabilityResponse, availability_client
from awardroute.services.cache_service import CacheService, cache_service
from awardroute.services.itinerary_composer import (
    Itineraries,
    build_segment_pool,
    compose_routes,
    filter_date_window,
    prune_flights,
)
from awardroute.services.projection import flatten_itineraries
from awardroute.services.reference_store import ReferenceStore
from awardroute.services.reliability_service import (
    ReliabilityRepository,
    Rules,
    filter_reliable,
    reliability_repository,
)
from awardroute.services.request_context import RequestContext
from awardroute.services.route_finder import clamp_max_stop, create_full_route_path
from awardroute.services.task_pool import run_pool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchParams:
    origin: str
    destination: str
    start_date: date
    end_date: date
    max_stop: int = 4
    api_key: str | None = None
    cabin: str | None = None
    carriers: str | None = None
    min_reliability_percent: float = settings.default_min_reliability_percent
    seats: int = 1


@dataclass
class ComposedResult:
    itineraries: Itineraries
    flights: dict[str, AvailabilityFlight]
    min_rate_limit_remaining: int | None = None
    min_rate_limit_reset: int | None = None
    total_provider_calls: int = 0
    rules: Rules = field(default_factory=dict)
    cached: bool = False

    def to_cache(self) -> dict:
        return {
            "itineraries": [item.to_dict() for item in flatten_itineraries(self.itineraries)],
            "flights": {fp: flight.to_dict() for fp, flight in self.flights.items()},
            "minRateLimitRemaining": self.min_rate_limit_remaining,
            "minRateLimitReset": self.min_rate_limit_reset,
            "totalSeatsAeroHttpRequests": self.total_provider_calls,
        }

    @classmethod
    def from_cache(cls, data: dict, rules: Rules | None = None) -> "ComposedResult":
        itineraries: Itineraries = {}
        for item in data.get("itineraries", []):
            itineraries.setdefault(item["route"], {}).setdefault(item["date"], []).append(item["itinerary"])
        return cls(
            itineraries=itineraries,
            flights={fp: AvailabilityFlight.from_dict(f) for fp, f in data.get("flights", {}).items()},
            min_rate_limit_remaining=data.get("minRateLimitRemaining"),
            min_rate_limit_reset=data.get("minRateLimitReset"),
            total_provider_calls=int(data.get("totalSeatsAeroHttpRequests") or 0),
            rules=rules or {},
            cached=True,
        )


class ItineraryOrchestrator:
    """Coordinates the full build: skeletons -> query groups -> availability -> itineraries."""

    def __init__(
        self,
        client: AvailabilityClient = availability_client,
        cache: CacheService = cache_service,
        repository: ReliabilityRepository = reliability_repository,
    ):
        self._client = client
        self._cache = cache
        self._repository = repository

    def cache_key(self, params: SearchParams) -> str:
        return self._cache.itinerary_key(
            params.origin,
            params.destination,
            clamp_max_stop(params.max_stop),
            params.start_date.isoformat(),
            params.end_date.isoformat(),
            params.cabin,
            params.carriers,
            params.min_reliability_percent,
            params.seats,
        )

    async def get_cached(self, store: ReferenceStore, params: SearchParams) -> ComposedResult | None:
        data = await self._cache.get_itineraries(self.cache_key(params))
        if data is None:
            return None
        rules = await self._repository.refresh_if_stale(store)
        return ComposedResult.from_cache(data, rules)

    async def build(self, store: ReferenceStore, params: SearchParams) -> ComposedResult:
        """Cached result when present, otherwise compose and store it."""
        cached = await self.get_cached(store, params)
        if cached is not None:
            logger.info(f"Itinerary cache hit for {params.origin}->{params.destination}")
            return cached

        result = await self.compose(RequestContext.create(store, self._repository), params)
        await self._cache.set_itineraries(self.cache_key(params), result.to_cache())
        return result

    async def compose(self, ctx: RequestContext, params: SearchParams) -> ComposedResult:
        if params.start_date > params.end_date:
            raise ValidationError("startDate must not be after endDate")
        api_key = params.api_key or settings.availability_api_key
        if not api_key:
            raise ValidationError("API key is required")

        start_time = time.monotonic()

        # 1. Skeletons and consolidated query groups
        path = await create_full_route_path(ctx.store, params.origin, params.destination, params.max_stop)
        rules = await ctx.load_rules()
        logger.info(f"Running {len(path.query_params)} availability queries for {params.origin}->{params.destination}")

        # 2. Availability fan-out
        tasks = [
            functools.partial(self._search_with_cache, route_id, params, api_key, rules)
            for route_id in path.query_params
        ]
        results = await run_pool(tasks, settings.max_concurrent_queries)

        groups: list[AvailabilityGroup] = []
        rate_limited: UpstreamError | None = None
        failures = 0
        for route_id, result in zip(path.query_params, results):
            if isinstance(result, BaseException):
                failures += 1
                logger.warning(f"Availability query failed for {route_id}: {result}")
                if isinstance(result, UpstreamError) and result.status_code == 429:
                    rate_limited = result
                continue
            ctx.rate_limits.record(result.rate_limit_remaining, result.rate_limit_reset, result.call_count)
            groups.extend(result.groups)

        if rate_limited is not None and failures == len(results):
            raise rate_limited
        fetched_at = time.monotonic()

        # 3. Composition and pruning
        flight_map: dict[str, AvailabilityFlight] = {}
        itineraries = compose_routes(path.routes, build_segment_pool(groups), flight_map)
        itineraries = filter_date_window(itineraries, flight_map, params.start_date, params.end_date)
        itineraries = filter_reliable(itineraries, flight_map, rules, params.min_reliability_percent)
        flights = prune_flights(itineraries, flight_map)

        done = time.monotonic()
        logger.info(
            f"Composed {sum(len(v) for d in itineraries.values() for v in d.values())} itineraries "
            f"over {len(itineraries)} routes; fetch {int((fetched_at - start_time) * 1000)}ms, "
            f"build {int((done - fetched_at) * 1000)}ms"
        )

        return ComposedResult(
            itineraries=itineraries,
            flights=flights,
            min_rate_limit_remaining=ctx.rate_limits.min_remaining,
            min_rate_limit_reset=ctx.rate_limits.min_reset,
            total_provider_calls=ctx.rate_limits.total_calls,
            rules=rules,
        )

    async def _search_with_cache(
        self,
        route_id: str,
        params: SearchParams,
        api_key: str,
        rules: Rules,
    ) -> AvailabilityResponse:
        """Check cache first, then the provider."""
        await self._cache.add_route_id(route_id)
        start, end = params.start_date.isoformat(), params.end_date.isoformat()
        key = self._cache.availability_key(route_id, start, end, params.cabin, params.carriers, params.seats)

        cached = await self._cache.get_availability(key)
        if cached is not None:
            response = AvailabilityResponse.from_dict(cached)
            # No provider calls were made for this request.
            response.call_count = 0
            response.rate_limit_remaining = None
            response.rate_limit_reset = None
            return response

        response = await self._client.search(
            route_id,
            start,
            end,
            api_key,
            cabin=params.cabin,
            carriers=params.carriers,
            seats=params.seats,
            rules=rules,
        )
        await self._cache.set_availability(key, response.to_dict())
        return response


itinerary_orchestrator = ItineraryOrchestrator()
