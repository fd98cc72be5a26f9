"""Reference store - airports, backbone paths, feeder routes and reliability rules."""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable

from sqlalchemy import select, tuple_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from awardroute import models
from awardroute.config import settings
from awardroute.database import async_session_factory
from awardroute.domain import Airport, BackbonePath, FeederRoute, ReliabilityRule, to_alliance_tuple
from awardroute.exceptions import UpstreamError

logger = logging.getLogger(__name__)

Pair = tuple[str, str]


class ReferenceStore(ABC):
    """Read-only lookups the route finder and reliability filter depend on."""

    @abstractmethod
    async def get_airports(self, codes: Iterable[str]) -> dict[str, Airport | None]:
        """Batch lookup by IATA code; unknown codes map to None."""

    @abstractmethod
    async def get_backbone_paths(
        self, origin_region: str, destination_region: str, max_distance: float
    ) -> list[BackbonePath]:
        """Backbone paths between two regions no longer than max_distance."""

    @abstractmethod
    async def get_feeder_routes(self, pairs: Iterable[Pair]) -> dict[Pair, list[FeederRoute]]:
        """Feeder routes for each (origin, destination) pair; every pair gets a key."""

    @abstractmethod
    async def get_reliability_rules(self) -> list[ReliabilityRule]:
        """The full carrier reliability table."""


class SqlReferenceStore(ReferenceStore):
    """Reference store backed by the relational database.

    Each lookup opens its own session so concurrent lookups never share one.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession] = async_session_factory):
        self._session_factory = session_factory

    async def get_airports(self, codes: Iterable[str]) -> dict[str, Airport | None]:
        unique = sorted({c.upper() for c in codes})
        if not unique:
            return {}
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(models.Airport).where(models.Airport.iata.in_(unique))
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise UpstreamError(f"Airport lookup failed: {e}") from e

        found: dict[str, Airport | None] = {code: None for code in unique}
        for a in rows:
            found[a.iata.upper()] = Airport(
                iata=a.iata.upper(),
                latitude=float(a.latitude),
                longitude=float(a.longitude),
                region=a.region,
                name=a.name,
            )
        return found

    async def get_backbone_paths(
        self, origin_region: str, destination_region: str, max_distance: float
    ) -> list[BackbonePath]:
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(models.BackbonePath)
                    .where(
                        models.BackbonePath.origin_region == origin_region,
                        models.BackbonePath.destination_region == destination_region,
                        models.BackbonePath.total_distance <= max_distance,
                    )
                    .limit(10000)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise UpstreamError(f"Backbone path lookup failed: {e}") from e

        return [
            BackbonePath(
                origin=p.origin,
                destination=p.destination,
                h1=p.h1 or None,
                h2=p.h2 or None,
                alliances=to_alliance_tuple(p.alliance),
                total_distance=float(p.total_distance),
                origin_region=p.origin_region,
                destination_region=p.destination_region,
            )
            for p in rows
        ]

    async def get_feeder_routes(self, pairs: Iterable[Pair]) -> dict[Pair, list[FeederRoute]]:
        unique = sorted(set(pairs))
        routes: dict[Pair, list[FeederRoute]] = {pair: [] for pair in unique}
        if not unique:
            return routes
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(models.FeederRoute).where(
                        tuple_(models.FeederRoute.origin, models.FeederRoute.destination).in_(unique)
                    )
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise UpstreamError(f"Feeder route lookup failed: {e}") from e

        for r in rows:
            routes.setdefault((r.origin, r.destination), []).append(
                FeederRoute(
                    origin=r.origin,
                    destination=r.destination,
                    alliances=to_alliance_tuple(r.alliance),
                    distance=float(r.distance),
                )
            )
        return routes

    async def get_reliability_rules(self) -> list[ReliabilityRule]:
        try:
            async with self._session_factory() as db:
                result = await db.execute(select(models.ReliabilityRule))
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise UpstreamError(f"Reliability table lookup failed: {e}") from e

        return [
            ReliabilityRule(
                code=r.code.upper(),
                min_count=r.min_count or 1,
                exemption=(r.exemption or "").upper(),
                ffp_programs=tuple(r.ffp_program or ()),
            )
            for r in rows
        ]


class CachedReferenceStore(ReferenceStore):
    """Request-scoped memo over another store.

    Lookups already answered during this request are served from memory;
    the rest go to the wrapped store, at most `limit` at a time.
    """

    def __init__(self, store: ReferenceStore, limit: int | None = None):
        self._store = store
        self._semaphore = asyncio.Semaphore(limit or settings.max_concurrent_lookups)
        self._airports: dict[str, Airport | None] = {}
        self._paths: dict[tuple[str, str, float], list[BackbonePath]] = {}
        self._feeders: dict[Pair, list[FeederRoute]] = {}

    async def get_airports(self, codes: Iterable[str]) -> dict[str, Airport | None]:
        wanted = [c.upper() for c in codes]
        missing = [c for c in dict.fromkeys(wanted) if c not in self._airports]
        if missing:
            async with self._semaphore:
                fetched = await self._store.get_airports(missing)
            for code in missing:
                self._airports[code] = fetched.get(code)
            logger.debug(f"Airport cache miss for {missing}")
        return {code: self._airports[code] for code in wanted}

    async def get_backbone_paths(
        self, origin_region: str, destination_region: str, max_distance: float
    ) -> list[BackbonePath]:
        key = (origin_region, destination_region, max_distance)
        if key not in self._paths:
            async with self._semaphore:
                self._paths[key] = await self._store.get_backbone_paths(
                    origin_region, destination_region, max_distance
                )
        return self._paths[key]

    async def get_feeder_routes(self, pairs: Iterable[Pair]) -> dict[Pair, list[FeederRoute]]:
        wanted = list(dict.fromkeys(pairs))
        missing = [p for p in wanted if p not in self._feeders]
        if missing:
            async with self._semaphore:
                fetched = await self._store.get_feeder_routes(missing)
            for pair in missing:
                self._feeders[pair] = fetched.get(pair, [])
        return {pair: self._feeders[pair] for pair in wanted}

    async def get_reliability_rules(self) -> list[ReliabilityRule]:
        return await self._store.get_reliability_rules()
