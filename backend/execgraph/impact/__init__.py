"""Impact radius engine and its result cache."""

from execgraph.impact.cache import ImpactRadiusCache
from execgraph.impact.engine import ImpactRadiusEngine
from execgraph.impact.schemas import Direction, ImpactRadiusRequest, ImpactRadiusResult, NormalizedImpactOptions

__all__ = [
    "Direction",
    "ImpactRadiusCache",
    "ImpactRadiusEngine",
    "ImpactRadiusRequest",
    "ImpactRadiusResult",
    "NormalizedImpactOptions",
]
