from awardroute.models.reference import Airport, BackbonePath, FeederRoute, ReliabilityRule

__all__ = [
    "Airport",
    "BackbonePath",
    "FeederRoute",
    "ReliabilityRule",
]
