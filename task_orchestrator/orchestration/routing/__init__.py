"""
Routing tables and conditions for the task graphs.
"""

from task_orchestrator.orchestration.routing.conditions import (
    always,
    awaiting_confirmation,
    has_error,
    has_pharmacies,
    has_sufficient_info,
    needs_human_input,
    phase_is,
    plan_exhausted,
    refinement_requested,
    standard_routes,
)
from task_orchestrator.orchestration.routing.table import (
    TERMINATE,
    NodeId,
    Route,
    RoutingTable,
    select_route,
)

__all__ = [
    "TERMINATE",
    "NodeId",
    "Route",
    "RoutingTable",
    "always",
    "awaiting_confirmation",
    "has_error",
    "has_pharmacies",
    "has_sufficient_info",
    "needs_human_input",
    "phase_is",
    "plan_exhausted",
    "refinement_requested",
    "select_route",
    "standard_routes",
]
