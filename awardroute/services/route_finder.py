"""Route skeleton finder - backbone paths extended with feeder legs, per origin/destination pair."""

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass
from enum import Enum

from awardroute.config import settings
from awardroute.domain import Airport, FeederRoute
from awardroute.exceptions import AirportNotFoundError, AwardRouteError, NoRouteError, ValidationError
from awardroute.services.geo import haversine_distance
from awardroute.services.query_groups import build_query_groups
from awardroute.services.reference_store import CachedReferenceStore, ReferenceStore

logger = logging.getLogger(__name__)

Alliances = tuple[str, ...]


class CaseType(str, Enum):
    BACKBONE_ONLY = "case1"
    FEEDER_BACKBONE = "case2A"
    BACKBONE_FEEDER = "case2B"
    FEEDER_BACKBONE_FEEDER = "case3"
    FEEDER_ONLY = "case4"


class RouteSkeleton:
    """
    Base for the five skeleton shapes.

    Subclasses carry only the airports and alliance sets they use and
    describe themselves as ordered sections; each section is a run of
    airports flown under one alliance set (empty means unconstrained).
    Everything else (slots, legs, stops) derives from the sections.
    """

    case: CaseType
    cumulative_distance: float

    def sections(self) -> list[tuple[tuple[str | None, ...], Alliances]]:
        raise NotImplementedError

    def slots(self) -> tuple[str | None, ...]:
        """The six positional slots (O, A, h1, h2, B, D)."""
        raise NotImplementedError

    def alliance_slots(self) -> tuple[Alliances, Alliances, Alliances]:
        """Alliance sets aligned to (feeder-in, backbone, feeder-out)."""
        raise NotImplementedError

    @property
    def airports(self) -> list[str]:
        return [code for code in self.slots() if code]

    @property
    def stops(self) -> int:
        return len(self.airports)

    def is_valid(self, max_stop: int, max_distance: float) -> bool:
        codes = self.airports
        return (
            len(codes) <= max_stop + 2
            and len(set(codes)) == len(codes)
            and self.cumulative_distance <= max_distance
        )


@dataclass(frozen=True)
class FeederOnly(RouteSkeleton):
    origin: str
    destination: str
    feeder: Alliances
    cumulative_distance: float
    case = CaseType.FEEDER_ONLY

    def sections(self):
        return [((self.origin, self.destination), self.feeder)]

    def slots(self):
        return (None, self.origin, None, None, self.destination, None)

    def alliance_slots(self):
        return (self.feeder, (), ())


@dataclass(frozen=True)
class BackboneOnly(RouteSkeleton):
    origin: str
    h1: str | None
    h2: str | None
    destination: str
    backbone: Alliances
    cumulative_distance: float
    case = CaseType.BACKBONE_ONLY

    def sections(self):
        return [((self.origin, self.h1, self.h2, self.destination), self.backbone)]

    def slots(self):
        return (None, self.origin, self.h1, self.h2, self.destination, None)

    def alliance_slots(self):
        return ((), self.backbone, ())


@dataclass(frozen=True)
class FeederBackbone(RouteSkeleton):
    origin: str
    backbone_origin: str
    h1: str | None
    h2: str | None
    destination: str
    feeder_in: Alliances
    backbone: Alliances
    cumulative_distance: float
    case = CaseType.FEEDER_BACKBONE

    def sections(self):
        return [
            ((self.origin, self.backbone_origin), self.feeder_in),
            ((self.backbone_origin, self.h1, self.h2, self.destination), self.backbone),
        ]

    def slots(self):
        return (self.origin, self.backbone_origin, self.h1, self.h2, self.destination, None)

    def alliance_slots(self):
        return (self.feeder_in, self.backbone, ())


@dataclass(frozen=True)
class BackboneFeeder(RouteSkeleton):
    origin: str
    h1: str | None
    h2: str | None
    backbone_destination: str
    destination: str
    backbone: Alliances
    feeder_out: Alliances
    cumulative_distance: float
    case = CaseType.BACKBONE_FEEDER

    def sections(self):
        return [
            ((self.origin, self.h1, self.h2, self.backbone_destination), self.backbone),
            ((self.backbone_destination, self.destination), self.feeder_out),
        ]

    def slots(self):
        return (None, self.origin, self.h1, self.h2, self.backbone_destination, self.destination)

    def alliance_slots(self):
        return ((), self.backbone, self.feeder_out)


@dataclass(frozen=True)
class FeederBackboneFeeder(RouteSkeleton):
    origin: str
    backbone_origin: str
    h1: str | None
    h2: str | None
    backbone_destination: str
    destination: str
    feeder_in: Alliances
    backbone: Alliances
    feeder_out: Alliances
    cumulative_distance: float
    case = CaseType.FEEDER_BACKBONE_FEEDER

    def sections(self):
        return [
            ((self.origin, self.backbone_origin), self.feeder_in),
            ((self.backbone_origin, self.h1, self.h2, self.backbone_destination), self.backbone),
            ((self.backbone_destination, self.destination), self.feeder_out),
        ]

    def slots(self):
        return (
            self.origin, self.backbone_origin, self.h1, self.h2,
            self.backbone_destination, self.destination,
        )

    def alliance_slots(self):
        return (self.feeder_in, self.backbone, self.feeder_out)


@dataclass(frozen=True)
class Leg:
    origin: str
    destination: str
    alliance: str | None

    @property
    def allowed_alliances(self) -> list[str]:
        return [self.alliance] if self.alliance else []


@dataclass(frozen=True)
class MacroRoute:
    """A skeleton pinned to a single alliance (or none) per section."""

    case: CaseType
    slots: tuple[str | None, ...]
    alliances: tuple[str | None, str | None, str | None]
    legs: tuple[Leg, ...]
    cumulative_distance: float

    @property
    def airports(self) -> list[str]:
        return [code for code in self.slots if code]

    @property
    def key(self) -> str:
        return "-".join(self.airports)

    def to_dict(self) -> dict:
        o, a, h1, h2, b, d = self.slots
        all1, all2, all3 = self.alliances
        return {
            "O": o,
            "A": a,
            "h1": h1,
            "h2": h2,
            "B": b,
            "D": d,
            "all1": [all1] if all1 else [],
            "all2": [all2] if all2 else [],
            "all3": [all3] if all3 else [],
            "cumulativeDistance": self.cumulative_distance,
            "caseType": self.case.value,
        }


@dataclass
class FullRoutePath:
    routes: list[MacroRoute]
    query_params: list[str]

    def to_dict(self) -> dict:
        return {
            "routes": [r.to_dict() for r in self.routes],
            "queryParamsArr": self.query_params,
        }


def split_codes(value: str) -> list[str]:
    """'JFK/EWR' -> ['JFK', 'EWR'], de-duplicated, order kept."""
    codes = [c.strip().upper() for c in value.split("/") if c.strip()]
    return list(dict.fromkeys(codes))


def clamp_max_stop(max_stop: int | None) -> int:
    if max_stop is None:
        return settings.max_stop_limit
    return max(0, min(settings.max_stop_limit, max_stop))


def explode_alliances(skeleton: RouteSkeleton) -> list[MacroRoute]:
    """One MacroRoute per combination of single alliances across the skeleton's sections."""
    sections = skeleton.sections()
    choices = [alliances or (None,) for _, alliances in sections]
    section_to_slot = _section_slot_index(skeleton)

    exploded = []
    for combo in itertools.product(*choices):
        legs = []
        for (codes, _), alliance in zip(sections, combo):
            run = [c for c in codes if c]
            legs.extend(Leg(src, dst, alliance) for src, dst in zip(run, run[1:]))
        slot_alliances: list[str | None] = [None, None, None]
        for section_idx, slot_idx in enumerate(section_to_slot):
            slot_alliances[slot_idx] = combo[section_idx]
        exploded.append(
            MacroRoute(
                case=skeleton.case,
                slots=skeleton.slots(),
                alliances=tuple(slot_alliances),
                legs=tuple(legs),
                cumulative_distance=skeleton.cumulative_distance,
            )
        )
    return exploded


def _section_slot_index(skeleton: RouteSkeleton) -> list[int]:
    # Skeletons without a feeder-in start at the backbone slot; FeederOnly keeps its feeder in all1.
    first = 0 if isinstance(skeleton, (FeederOnly, FeederBackbone, FeederBackboneFeeder)) else 1
    return list(range(first, first + len(skeleton.sections())))


async def find_route_skeletons(
    store: ReferenceStore,
    origin: str,
    destination: str,
    max_stop: int,
) -> list[RouteSkeleton]:
    """
    Enumerate skeletons for one origin/destination pair.

    Raises AirportNotFoundError if either endpoint is unknown and
    NoRouteError if no candidate survives the stop, distance and
    uniqueness filters.
    """
    airports = await store.get_airports([origin, destination])
    origin_ap: Airport | None = airports.get(origin)
    dest_ap: Airport | None = airports.get(destination)
    missing = [code for code, ap in ((origin, origin_ap), (destination, dest_ap)) if ap is None]
    if missing:
        raise AirportNotFoundError(missing)

    direct_distance = haversine_distance(
        origin_ap.latitude, origin_ap.longitude, dest_ap.latitude, dest_ap.longitude
    )
    max_distance = 2 * direct_distance

    paths, direct = await asyncio.gather(
        store.get_backbone_paths(origin_ap.region, dest_ap.region, max_distance),
        store.get_feeder_routes([(origin, destination)]),
    )

    candidates: list[RouteSkeleton] = []

    # Case 4: a feeder straight from origin to destination
    for f in direct.get((origin, destination), []):
        candidates.append(FeederOnly(origin, destination, f.alliances, f.distance))

    ends_at_dest = [p for p in paths if p.destination == destination]
    starts_at_origin = [p for p in paths if p.origin == origin]

    # Case 1
    for p in ends_at_dest:
        if p.origin == origin:
            candidates.append(
                BackboneOnly(origin, p.h1, p.h2, destination, p.alliances, p.total_distance)
            )

    case_2a = [p for p in ends_at_dest if p.origin != origin]
    case_2b = [p for p in starts_at_origin if p.destination != destination]
    case_3 = [p for p in paths if p.origin != origin and p.destination != destination]

    pairs = [(origin, p.origin) for p in case_2a]
    pairs += [(p.destination, destination) for p in case_2b]
    for p in case_3:
        pairs.append((origin, p.origin))
        pairs.append((p.destination, destination))
    feeders: dict[tuple[str, str], list[FeederRoute]] = {}
    if pairs:
        feeders = await store.get_feeder_routes(pairs)

    for p in case_2a:
        for f in feeders.get((origin, p.origin), []):
            candidates.append(
                FeederBackbone(
                    origin, p.origin, p.h1, p.h2, destination,
                    f.alliances, p.alliances, p.total_distance + f.distance,
                )
            )

    for p in case_2b:
        for f in feeders.get((p.destination, destination), []):
            candidates.append(
                BackboneFeeder(
                    origin, p.h1, p.h2, p.destination, destination,
                    p.alliances, f.alliances, p.total_distance + f.distance,
                )
            )

    for p in case_3:
        lefts = feeders.get((origin, p.origin), [])
        rights = feeders.get((p.destination, destination), [])
        for left, right in itertools.product(lefts, rights):
            candidates.append(
                FeederBackboneFeeder(
                    origin, p.origin, p.h1, p.h2, p.destination, destination,
                    left.alliances, p.alliances, right.alliances,
                    p.total_distance + left.distance + right.distance,
                )
            )

    skeletons = [s for s in candidates if s.is_valid(max_stop, max_distance)]
    if not skeletons:
        raise NoRouteError(f"No valid route found for {origin}-{destination} with maxStop {max_stop}")

    logger.debug(
        f"{origin}-{destination}: {len(skeletons)} of {len(candidates)} candidates kept "
        f"(maxDistance {max_distance})"
    )
    return skeletons


async def find_macro_routes(
    store: ReferenceStore,
    origins: list[str],
    destinations: list[str],
    max_stop: int,
) -> list[MacroRoute]:
    """
    Exploded macro-routes for every origin x destination pair.

    Pairs run concurrently and fail independently; an error is raised
    only when every pair failed.
    """
    pairs = [(o, d) for o in origins for d in destinations]
    if not pairs:
        raise ValidationError("Origin or destination cannot be empty")

    if not isinstance(store, CachedReferenceStore):
        store = CachedReferenceStore(store)

    # One batched airport lookup up front; each pair then hits the memo.
    await store.get_airports(origins + destinations)

    results = await asyncio.gather(
        *(find_route_skeletons(store, o, d, max_stop) for o, d in pairs),
        return_exceptions=True,
    )

    routes: list[MacroRoute] = []
    last_error: Exception | None = None
    for (o, d), result in zip(pairs, results):
        if isinstance(result, Exception):
            logger.warning(f"Route search failed for {o}->{d}: {result}")
            last_error = result
            continue
        for skeleton in result:
            routes.extend(explode_alliances(skeleton))

    if not routes:
        if len(pairs) == 1 and isinstance(last_error, AwardRouteError):
            raise last_error
        raise NoRouteError(
            f"No valid route found for any origin-destination pair: {last_error}"
        ) from last_error
    return routes


async def create_full_route_path(
    store: ReferenceStore,
    origin: str,
    destination: str,
    max_stop: int | None = None,
) -> FullRoutePath:
    """Macro-routes plus the consolidated availability query identifiers."""
    start = time.monotonic()
    origins = split_codes(origin)
    destinations = split_codes(destination)
    if not origins or not destinations:
        raise ValidationError("Origin or destination cannot be empty")

    routes = await find_macro_routes(store, origins, destinations, clamp_max_stop(max_stop))
    groups = build_query_groups(
        [(leg.origin, leg.destination) for r in routes for leg in r.legs],
        destinations,
    )
    query_params = [g.identifier for g in groups]

    elapsed_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        f"Route path {origin}->{destination}: {len(routes)} routes, "
        f"{len(query_params)} query groups in {elapsed_ms}ms"
    )
    return FullRoutePath(routes=routes, query_params=query_params)
