"""Error taxonomy for route search and itinerary composition."""


class AwardRouteError(Exception):
    """Base error for the composition engine."""


class ValidationError(AwardRouteError):
    """Raised when inputs are malformed, before any lookup happens."""


class AirportNotFoundError(AwardRouteError):
    """Raised when an endpoint IATA code does not resolve."""

    def __init__(self, codes: list[str]):
        self.codes = codes
        super().__init__(f"Origin or destination airport not found: {', '.join(codes)}")


class NoRouteError(AwardRouteError):
    """Raised when no route skeleton satisfies the stop/distance constraints."""


class UpstreamError(AwardRouteError):
    """Raised when the reference store or the availability provider fails."""

    def __init__(self, message: str, status_code: int | None = None, retry_after: int | None = None):
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(message)
