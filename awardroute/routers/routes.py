"""Route path router - skeleton search and consolidated availability query groups."""

from fastapi import APIRouter, Depends

from awardroute.dependencies import get_reference_store, to_http_exception
from awardroute.schemas.search import FullRoutePathRequest
from awardroute.services.reference_store import ReferenceStore
from awardroute.services.route_finder import create_full_route_path

router = APIRouter()


@router.post("/full-path")
async def full_route_path(
    req: FullRoutePathRequest,
    store: ReferenceStore = Depends(get_reference_store),
):
    """Macro-routes for every origin/destination pair plus the query identifiers to fetch."""
    try:
        path = await create_full_route_path(store, req.origin, req.destination, req.max_stop)
    except Exception as e:
        raise to_http_exception(e) from e
    return path.to_dict()
