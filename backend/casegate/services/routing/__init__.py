"""
Routing: classify a dispute and decide where it may be brought.
"""

from casegate.services.routing.engine import RoutingEngine, routing_engine
from casegate.services.routing.types import (
    AlternativeRoute,
    BlockType,
    Prerequisite,
    RoutingDecision,
    RoutingStatus,
    TimeLimit,
)

__all__ = [
    "RoutingEngine",
    "routing_engine",
    "AlternativeRoute",
    "BlockType",
    "Prerequisite",
    "RoutingDecision",
    "RoutingStatus",
    "TimeLimit",
]
