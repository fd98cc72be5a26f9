from fastapi import APIRouter, Depends

from awardroute.dependencies import get_reference_store, get_reliability_repository
from awardroute.services.reference_store import ReferenceStore
from awardroute.services.reliability_service import ReliabilityRepository

router = APIRouter()


@router.get("")
async def list_reliability_rules(
    store: ReferenceStore = Depends(get_reference_store),
    repository: ReliabilityRepository = Depends(get_reliability_repository),
):
    """Current carrier reliability table (served from the in-process snapshot)."""
    rules = await repository.refresh_if_stale(store)
    return [rule.to_dict() for rule in sorted(rules.values(), key=lambda r: r.code)]
