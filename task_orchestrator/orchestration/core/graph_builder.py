"""
Graph builder for the task workflows.

Each builder binds the phase nodes to their dependencies and wires them
with a routing table. The flows are:

    generic:   clarification ↺ -> planning -> execution ↺ -> validation
               -> (planning | END)
    medicine:  clarification ↺ -> planning -> execution ↺ -> search_pharmacies
               -> (call_pharmacies | validation) -> validation
               -> (planning | END)
    travel:    clarification ↺ -> planning -> execution ↺
               -> research_destination -> generate_itinerary
               -> confirm_itinerary <-> refine_itinerary -> validation -> END

A travel task resumed while a confirmation is outstanding enters at
confirm_itinerary instead of clarification.
"""

from functools import partial

from langgraph.checkpoint.memory import MemorySaver

from task_orchestrator.orchestration.core.engine import NodeFunction, StateMachine
from task_orchestrator.orchestration.nodes import (
    NodeDeps,
    call_pharmacies,
    clarification,
    confirm_itinerary,
    execution,
    generate_itinerary,
    planning,
    refine_itinerary,
    research_destination,
    search_pharmacies,
    validation,
)
from task_orchestrator.orchestration.routing import (
    NodeId,
    Route,
    RoutingTable,
    always,
    awaiting_confirmation,
    has_pharmacies,
    has_sufficient_info,
    phase_is,
    plan_exhausted,
    refinement_requested,
    standard_routes,
)
from task_orchestrator.orchestration.states import (
    STATE_CLASSES,
    AgentState,
    MedicineState,
    Phase,
    TaskType,
    TravelState,
)
from task_orchestrator.utils.logging import get_logger

logger = get_logger(__name__)


def _bind(deps: NodeDeps, **nodes) -> dict[NodeId, NodeFunction]:
    return {NodeId[name.upper()]: partial(func, deps=deps) for name, func in nodes.items()}


def core_nodes(deps: NodeDeps) -> dict[NodeId, NodeFunction]:
    """The four phase nodes shared by every graph."""
    return _bind(
        deps,
        clarification=clarification,
        planning=planning,
        execution=execution,
        validation=validation,
    )


def core_routes(after_execution: NodeId) -> RoutingTable:
    """
    Routes for the shared phase nodes.

    Args:
        after_execution: Node to run once the plan is exhausted
    """
    return {
        NodeId.CLARIFICATION: standard_routes(
            has_sufficient_info, NodeId.PLANNING, fallback=NodeId.CLARIFICATION
        ),
        NodeId.PLANNING: standard_routes(always, NodeId.EXECUTION),
        NodeId.EXECUTION: standard_routes(
            plan_exhausted, after_execution, fallback=NodeId.EXECUTION
        ),
        NodeId.VALIDATION: standard_routes(phase_is(Phase.PLANNING), NodeId.PLANNING),
    }


def build_generic_graph(
    state_cls: type[AgentState],
    deps: NodeDeps,
    checkpointer: MemorySaver | None = None,
) -> StateMachine:
    """
    Create the clarify/plan/execute/validate graph for any task type.

    Args:
        state_cls: State model of the task type
        deps: Node dependencies
        checkpointer: In-process saver (optional)

    Returns:
        Compiled state machine
    """
    return StateMachine(
        state_cls,
        core_nodes(deps),
        core_routes(after_execution=NodeId.VALIDATION),
        entry=NodeId.CLARIFICATION,
        checkpointer=checkpointer,
        name=state_cls.TASK_TYPE.value if state_cls.TASK_TYPE else "generic",
    )


def build_medicine_graph(
    deps: NodeDeps, checkpointer: MemorySaver | None = None
) -> StateMachine:
    """
    Create the medicine search graph.

    After the plan runs, pharmacies are searched and called. With no
    pharmacies found the task goes straight to validation.
    """
    nodes = core_nodes(deps)
    nodes.update(
        _bind(deps, search_pharmacies=search_pharmacies, call_pharmacies=call_pharmacies)
    )

    routes = core_routes(after_execution=NodeId.SEARCH_PHARMACIES)
    routes[NodeId.SEARCH_PHARMACIES] = standard_routes(
        has_pharmacies, NodeId.CALL_PHARMACIES, fallback=NodeId.VALIDATION
    )
    routes[NodeId.CALL_PHARMACIES] = standard_routes(always, NodeId.VALIDATION)

    return StateMachine(
        MedicineState,
        nodes,
        routes,
        entry=NodeId.CLARIFICATION,
        checkpointer=checkpointer,
        name="medicine",
    )


def build_travel_graph(
    deps: NodeDeps, checkpointer: MemorySaver | None = None
) -> StateMachine:
    """
    Create the travel planning graph.

    After the plan runs, the destination is researched and an itinerary is
    generated and confirmed with the user, with refinement rounds as asked.
    """
    nodes = core_nodes(deps)
    nodes.update(
        _bind(
            deps,
            research_destination=research_destination,
            generate_itinerary=generate_itinerary,
            confirm_itinerary=confirm_itinerary,
            refine_itinerary=refine_itinerary,
        )
    )

    routes = core_routes(after_execution=NodeId.RESEARCH_DESTINATION)
    routes[NodeId.RESEARCH_DESTINATION] = standard_routes(
        always, NodeId.GENERATE_ITINERARY
    )
    routes[NodeId.GENERATE_ITINERARY] = standard_routes(always, NodeId.CONFIRM_ITINERARY)
    routes[NodeId.CONFIRM_ITINERARY] = standard_routes(
        refinement_requested, NodeId.REFINE_ITINERARY, fallback=NodeId.VALIDATION
    )
    routes[NodeId.REFINE_ITINERARY] = standard_routes(always, NodeId.CONFIRM_ITINERARY)

    entry = [
        Route(awaiting_confirmation, NodeId.CONFIRM_ITINERARY),
        Route(always, NodeId.CLARIFICATION),
    ]
    return StateMachine(
        TravelState,
        nodes,
        routes,
        entry=entry,
        checkpointer=checkpointer,
        name="travel",
    )


def build_graph(
    task_type: TaskType | str,
    deps: NodeDeps,
    checkpointer: MemorySaver | None = None,
) -> StateMachine:
    """
    Create the graph for a task type.

    Args:
        task_type: Task domain
        deps: Node dependencies
        checkpointer: In-process saver (optional)

    Returns:
        Compiled state machine

    Raises:
        ValueError: If the task type is unknown
    """
    task_type = TaskType(task_type)
    logger.info(f"Building {task_type.value} graph")
    if task_type == TaskType.MEDICINE:
        return build_medicine_graph(deps, checkpointer)
    if task_type == TaskType.TRAVEL:
        return build_travel_graph(deps, checkpointer)
    return build_generic_graph(STATE_CLASSES[task_type], deps, checkpointer)
