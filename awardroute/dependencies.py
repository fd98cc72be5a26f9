import logging

from fastapi import HTTPException

from awardroute.exceptions import (
    AirportNotFoundError,
    AwardRouteError,
    NoRouteError,
    UpstreamError,
    ValidationError,
)
from awardroute.services.itinerary_orchestrator import ItineraryOrchestrator, itinerary_orchestrator
from awardroute.services.reference_store import ReferenceStore, SqlReferenceStore
from awardroute.services.reliability_service import ReliabilityRepository, reliability_repository

logger = logging.getLogger(__name__)

_reference_store = SqlReferenceStore()


def get_reference_store() -> ReferenceStore:
    """Reference store dependency; tests override this with an in-memory store."""
    return _reference_store


def to_http_exception(e: Exception) -> HTTPException:
    """Map engine errors onto HTTP status codes."""
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, (AirportNotFoundError, NoRouteError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, UpstreamError):
        if e.status_code == 429:
            headers = {"Retry-After": str(e.retry_after)} if e.retry_after is not None else None
            return HTTPException(status_code=429, detail=str(e), headers=headers)
        return HTTPException(status_code=502, detail=str(e))
    if isinstance(e, AwardRouteError):
        return HTTPException(status_code=400, detail=str(e))
    logger.exception(f"Unhandled error: {e}")
    return HTTPException(status_code=500, detail=f"Internal server error: {e}")


def get_orchestrator() -> ItineraryOrchestrator:
    return itinerary_orchestrator


def get_reliability_repository() -> ReliabilityRepository:
    return reliability_repository
