"""
Phase nodes for the task graphs.

Every node is an async function `(state, deps) -> dict` returning a partial
state update. The graph builder binds the dependencies.
"""

from task_orchestrator.orchestration.nodes.clarification import clarification
from task_orchestrator.orchestration.nodes.deps import NodeDeps
from task_orchestrator.orchestration.nodes.execution import execution
from task_orchestrator.orchestration.nodes.medicine import (
    call_pharmacies,
    search_pharmacies,
)
from task_orchestrator.orchestration.nodes.planning import planning
from task_orchestrator.orchestration.nodes.travel import (
    confirm_itinerary,
    generate_itinerary,
    refine_itinerary,
    research_destination,
)
from task_orchestrator.orchestration.nodes.validation import validation

__all__ = [
    "NodeDeps",
    "call_pharmacies",
    "clarification",
    "confirm_itinerary",
    "execution",
    "generate_itinerary",
    "planning",
    "refine_itinerary",
    "research_destination",
    "search_pharmacies",
    "validation",
]
