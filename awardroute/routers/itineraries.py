"""Itinerary router - build, project and describe composed award itineraries."""

from fastapi import APIRouter, Depends, Query

from awardroute.config import settings
from awardroute.dependencies import get_orchestrator, get_reference_store, to_http_exception
from awardroute.schemas.search import BuildItinerariesRequest
from awardroute.services.itinerary_orchestrator import ItineraryOrchestrator, SearchParams
from awardroute.services.projection import ProjectionFilters, build_filter_metadata, project
from awardroute.services.reference_store import ReferenceStore

router = APIRouter()


def _split_list(value: str | None) -> list[str] | None:
    if not value:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


def _to_params(req: BuildItinerariesRequest) -> SearchParams:
    min_reliability = req.min_reliability_percent
    if min_reliability is None:
        min_reliability = settings.default_min_reliability_percent
    return SearchParams(
        origin=req.origin,
        destination=req.destination,
        start_date=req.start_date,
        end_date=req.end_date,
        max_stop=req.max_stop,
        api_key=req.api_key,
        cabin=req.cabin,
        carriers=req.carriers,
        min_reliability_percent=min_reliability,
        seats=req.seats,
    )


def projection_filters(
    stops: str | None = Query(None, description="Comma-separated stop counts"),
    include_airlines: str | None = Query(None, alias="includeAirlines"),
    exclude_airlines: str | None = Query(None, alias="excludeAirlines"),
    max_duration: int | None = Query(None, alias="maxDuration", ge=0),
    min_y_percent: float | None = Query(None, alias="minYPercent", ge=0, le=100),
    min_w_percent: float | None = Query(None, alias="minWPercent", ge=0, le=100),
    min_j_percent: float | None = Query(None, alias="minJPercent", ge=0, le=100),
    min_f_percent: float | None = Query(None, alias="minFPercent", ge=0, le=100),
    dep_time_min: int | None = Query(None, alias="depTimeMin", description="Epoch milliseconds"),
    dep_time_max: int | None = Query(None, alias="depTimeMax"),
    arr_time_min: int | None = Query(None, alias="arrTimeMin"),
    arr_time_max: int | None = Query(None, alias="arrTimeMax"),
    include_origin: str | None = Query(None, alias="includeOrigin"),
    include_destination: str | None = Query(None, alias="includeDestination"),
    include_connection: str | None = Query(None, alias="includeConnection"),
    exclude_origin: str | None = Query(None, alias="excludeOrigin"),
    exclude_destination: str | None = Query(None, alias="excludeDestination"),
    exclude_connection: str | None = Query(None, alias="excludeConnection"),
    search: str | None = Query(None),
    sort_by: str = Query("duration", alias="sortBy", pattern="^(duration|departure|arrival|y|w|j|f)$"),
    sort_order: str | None = Query(None, alias="sortOrder", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, alias="pageSize", ge=1, le=500),
) -> ProjectionFilters:
    stop_values = _split_list(stops)
    return ProjectionFilters(
        stops=[int(s) for s in stop_values if s.isdigit()] if stop_values else None,
        include_airlines=_split_list(include_airlines),
        exclude_airlines=_split_list(exclude_airlines),
        max_duration=max_duration,
        min_y_percent=min_y_percent,
        min_w_percent=min_w_percent,
        min_j_percent=min_j_percent,
        min_f_percent=min_f_percent,
        dep_time_min=dep_time_min,
        dep_time_max=dep_time_max,
        arr_time_min=arr_time_min,
        arr_time_max=arr_time_max,
        include_origin=_split_list(include_origin),
        include_destination=_split_list(include_destination),
        include_connection=_split_list(include_connection),
        exclude_origin=_split_list(exclude_origin),
        exclude_destination=_split_list(exclude_destination),
        exclude_connection=_split_list(exclude_connection),
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        page_size=page_size or settings.page_size,
    )


@router.post("/build")
async def build_itineraries(
    req: BuildItinerariesRequest,
    filters: ProjectionFilters = Depends(projection_filters),
    store: ReferenceStore = Depends(get_reference_store),
    orchestrator: ItineraryOrchestrator = Depends(get_orchestrator),
):
    """Compose (or load cached) itineraries, then filter, sort and paginate them."""
    params = _to_params(req)
    try:
        result = await orchestrator.build(store, params)
    except Exception as e:
        raise to_http_exception(e) from e

    projected = project(
        result.itineraries,
        result.flights,
        filters,
        rules=result.rules,
        min_reliability_percent=params.min_reliability_percent,
    )
    return {
        "itineraries": [item.to_dict() for item in projected.items],
        "flights": {fp: flight.to_dict() for fp, flight in projected.flights.items()},
        "total": projected.total,
        "page": projected.page,
        "pageSize": projected.page_size,
        "minRateLimitRemaining": result.min_rate_limit_remaining,
        "minRateLimitReset": result.min_rate_limit_reset,
        "totalSeatsAeroHttpRequests": result.total_provider_calls,
        "filterMetadata": build_filter_metadata(result.itineraries, result.flights),
        "cached": result.cached,
    }


@router.post("/filter-metadata")
async def filter_metadata(
    req: BuildItinerariesRequest,
    store: ReferenceStore = Depends(get_reference_store),
    orchestrator: ItineraryOrchestrator = Depends(get_orchestrator),
):
    """Filter widget metadata, from the cached result when there is one."""
    try:
        result = await orchestrator.build(store, _to_params(req))
    except Exception as e:
        raise to_http_exception(e) from e
    return {
        "filterMetadata": build_filter_metadata(result.itineraries, result.flights),
        "cached": result.cached,
    }
