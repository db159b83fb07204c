"""
Node identifiers and routing tables.

Every graph is described by a routing table: for each node, an ordered list
of (predicate, target) pairs. The first predicate that holds for the state
after the node ran picks the next node. Order is load-bearing.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from langgraph.graph import END


class NodeId(str, Enum):
    """Identifiers of every node across all task graphs."""

    CLARIFICATION = "clarification"
    PLANNING = "planning"
    EXECUTION = "execution"
    VALIDATION = "validation"
    SEARCH_PHARMACIES = "search_pharmacies"
    CALL_PHARMACIES = "call_pharmacies"
    RESEARCH_DESTINATION = "research_destination"
    GENERATE_ITINERARY = "generate_itinerary"
    CONFIRM_ITINERARY = "confirm_itinerary"
    REFINE_ITINERARY = "refine_itinerary"


# Sentinel target that ends the run for this turn
TERMINATE = END

Predicate = Callable[[Any], bool]


@dataclass(frozen=True)
class Route:
    """Go to `target` when `predicate(state)` holds."""

    predicate: Predicate
    target: NodeId | str

    @property
    def target_name(self) -> str:
        if isinstance(self.target, NodeId):
            return self.target.value
        return self.target


RoutingTable = dict[NodeId, list[Route]]


def select_route(routes: list[Route], state: Any) -> str | None:
    """Name of the first matching route's target, or None when nothing matches."""
    for route in routes:
        if route.predicate(state):
            return route.target_name
    return None
