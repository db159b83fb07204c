"""
Core components of the orchestration engine.
"""

from task_orchestrator.orchestration.core.engine import (
    StateMachine,
    error_update,
)
from task_orchestrator.orchestration.core.graph_builder import (
    build_generic_graph,
    build_graph,
    build_medicine_graph,
    build_travel_graph,
)
from task_orchestrator.orchestration.core.graph_cache import GraphCache, GraphInstance

__all__ = [
    "GraphCache",
    "GraphInstance",
    "StateMachine",
    "build_generic_graph",
    "build_graph",
    "build_medicine_graph",
    "build_travel_graph",
    "error_update",
]
