"""Per-request state: memoized reference lookups, reliability snapshot, provider quota accounting."""

from dataclasses import dataclass, field

from awardroute.services.reference_store import CachedReferenceStore, ReferenceStore
from awardroute.services.reliability_service import ReliabilityRepository, Rules, reliability_repository


@dataclass
class RateLimitTracker:
    """Lowest remaining quota and earliest reset seen across concurrent provider calls."""

    min_remaining: int | None = None
    min_reset: int | None = None
    total_calls: int = 0

    def record(self, remaining: int | None, reset: int | None, calls: int = 0):
        if remaining is not None and (self.min_remaining is None or remaining < self.min_remaining):
            self.min_remaining = remaining
        if reset is not None and (self.min_reset is None or reset < self.min_reset):
            self.min_reset = reset
        self.total_calls += calls


@dataclass
class RequestContext:
    store: CachedReferenceStore
    repository: ReliabilityRepository = reliability_repository
    rules: Rules = field(default_factory=dict)
    rate_limits: RateLimitTracker = field(default_factory=RateLimitTracker)

    @classmethod
    def create(
        cls,
        store: ReferenceStore,
        repository: ReliabilityRepository | None = None,
    ) -> "RequestContext":
        if not isinstance(store, CachedReferenceStore):
            store = CachedReferenceStore(store)
        return cls(store=store, repository=repository or reliability_repository)

    async def load_rules(self) -> Rules:
        self.rules = await self.repository.refresh_if_stale(self.store)
        return self.rules
