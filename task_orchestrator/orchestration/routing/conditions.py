"""
Routing conditions for the task graphs.

Each condition is a predicate over the state produced by the node that just
ran. Graph definitions combine them into routing tables.
"""

from task_orchestrator.orchestration.routing.table import (
    TERMINATE,
    NodeId,
    Predicate,
    Route,
)
from task_orchestrator.orchestration.states.agent_state import AgentState
from task_orchestrator.orchestration.states.workflow_stages import Phase


def has_error(state: AgentState) -> bool:
    """
    Check if the state has an error.

    Args:
        state: Current agent state

    Returns:
        True if the last node recorded an error
    """
    return bool(state.error)


def needs_human_input(state: AgentState) -> bool:
    return state.requires_human_input


def has_sufficient_info(state: AgentState) -> bool:
    return state.has_sufficient_info


def plan_exhausted(state: AgentState) -> bool:
    """True when the step cursor has reached the end of the plan (or no plan exists)."""
    return state.plan_exhausted


def phase_is(*phases: Phase) -> Predicate:
    """Build a predicate matching any of the given phases."""

    def predicate(state: AgentState) -> bool:
        return state.current_phase in phases

    predicate.__name__ = "phase_is_" + "_or_".join(phase.value for phase in phases)
    return predicate


def always(state: AgentState) -> bool:
    return True


def has_pharmacies(state) -> bool:
    return bool(state.pharmacies)


def awaiting_confirmation(state) -> bool:
    """Travel task resumed while an itinerary confirmation is outstanding."""
    return state.awaiting_refinement or state.skip_to_confirmation


def refinement_requested(state) -> bool:
    """The user asked for changes to the proposed itinerary."""
    return state.current_phase == Phase.REFINEMENT and bool(state.refinement_feedback)


def standard_routes(
    success: Predicate,
    advance_to: NodeId,
    fallback: NodeId | str = TERMINATE,
) -> list[Route]:
    """
    The ordering shared by every phase node.

    An error always terminates, then success advances, then a pending
    question for the user terminates, then the fallback applies. A node that
    finished its work and also asked a question still advances.

    Args:
        success: Predicate for "this node finished its work"
        advance_to: Node to run on success
        fallback: Node to run otherwise (TERMINATE ends the turn)

    Returns:
        Ordered routes for the node
    """
    return [
        Route(has_error, TERMINATE),
        Route(success, advance_to),
        Route(needs_human_input, TERMINATE),
        Route(always, fallback),
    ]
