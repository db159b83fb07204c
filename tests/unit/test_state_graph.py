"""
Unit tests for the state machine engine and routing tables.
"""

import pytest

from task_orchestrator.orchestration.core.engine import StateMachine, error_update
from task_orchestrator.orchestration.routing import (
    TERMINATE,
    NodeId,
    Route,
    always,
    awaiting_confirmation,
    has_error,
    phase_is,
    select_route,
    standard_routes,
)
from task_orchestrator.orchestration.states import (
    MedicineState,
    TravelState,
    ai_message,
    human_message,
)
from task_orchestrator.orchestration.states.workflow_stages import Phase


async def to_planning(state):
    return {"has_sufficient_info": True, "current_phase": Phase.PLANNING}


async def finish(state):
    return {
        "current_phase": Phase.COMPLETE,
        "final_response": "done",
        "messages": ai_message("done"),
    }


async def explode(state):
    raise RuntimeError("tool backend unavailable")


def two_node_machine(first=to_planning, second=finish, **kwargs) -> StateMachine:
    nodes = {NodeId.CLARIFICATION: first, NodeId.PLANNING: second}
    routes = {
        NodeId.CLARIFICATION: standard_routes(
            lambda state: state.has_sufficient_info, NodeId.PLANNING
        ),
        NodeId.PLANNING: [Route(always, TERMINATE)],
    }
    return StateMachine(MedicineState, nodes, routes, NodeId.CLARIFICATION, **kwargs)


def test_error_update():
    assert error_update(ValueError("bad")) == {"error": "bad", "current_phase": Phase.ERROR}
    assert error_update(KeyError())["error"] == "KeyError"
    assert error_update("plain")["error"] == "plain"


def test_missing_routes_rejected():
    nodes = {NodeId.CLARIFICATION: to_planning, NodeId.PLANNING: finish}
    routes = {NodeId.CLARIFICATION: [Route(always, NodeId.PLANNING)]}
    with pytest.raises(ValueError, match="Nodes without routes: planning"):
        StateMachine(MedicineState, nodes, routes, NodeId.CLARIFICATION)


def test_unknown_target_rejected():
    nodes = {NodeId.CLARIFICATION: to_planning}
    routes = {NodeId.CLARIFICATION: [Route(always, NodeId.VALIDATION)]}
    with pytest.raises(ValueError, match="unknown nodes: validation"):
        StateMachine(MedicineState, nodes, routes, NodeId.CLARIFICATION)


def test_unknown_entry_rejected():
    nodes = {NodeId.CLARIFICATION: to_planning}
    routes = {NodeId.CLARIFICATION: [Route(always, TERMINATE)]}
    with pytest.raises(ValueError, match="Unknown entry node"):
        StateMachine(MedicineState, nodes, routes, NodeId.PLANNING)


@pytest.mark.asyncio
async def test_run_follows_routes(medicine_state):
    result = await two_node_machine().run(medicine_state(), "task-1")

    assert isinstance(result, MedicineState)
    assert result.current_phase == Phase.COMPLETE
    assert result.final_response == "done"
    assert [message.role for message in result.messages] == ["human", "ai"]


@pytest.mark.asyncio
async def test_node_exception_becomes_error_state(medicine_state):
    result = await two_node_machine(first=explode).run(medicine_state(), "task-1")

    assert result.current_phase == Phase.ERROR
    assert result.error == "tool backend unavailable"
    assert result.final_response is None


@pytest.mark.asyncio
async def test_unknown_update_fields_are_dropped(medicine_state):
    async def sloppy(state):
        return {"has_sufficient_info": True, "not_a_field": 1}

    result = await two_node_machine(first=sloppy).run(medicine_state(), "task-1")
    assert result.current_phase == Phase.COMPLETE
    assert not hasattr(result, "not_a_field")


@pytest.mark.asyncio
async def test_recursion_limit_yields_error_state(medicine_state):
    async def spin(state):
        return {"current_phase": Phase.CLARIFICATION}

    nodes = {NodeId.CLARIFICATION: spin}
    routes = {
        NodeId.CLARIFICATION: standard_routes(
            lambda state: False, NodeId.CLARIFICATION, fallback=NodeId.CLARIFICATION
        )
    }
    machine = StateMachine(
        MedicineState, nodes, routes, NodeId.CLARIFICATION, recursion_limit=5
    )
    result = await machine.run(medicine_state(), "task-1")

    assert result.current_phase == Phase.ERROR
    assert result.error == "Stopped after 5 steps without finishing"


@pytest.mark.asyncio
async def test_each_run_starts_from_supplied_state(medicine_state):
    machine = two_node_machine()
    await machine.run(medicine_state("first"), "task-1")
    second = await machine.run(medicine_state("second"), "task-1")

    assert [message.content for message in second.messages] == ["second", "done"]


@pytest.mark.asyncio
async def test_stream_yields_each_node(medicine_state):
    machine = two_node_machine()
    seen = [
        (node, state.current_phase)
        async for node, _update, state in machine.stream(medicine_state(), "task-1")
    ]
    assert seen == [
        ("clarification", Phase.PLANNING),
        ("planning", Phase.COMPLETE),
    ]


@pytest.mark.asyncio
async def test_conditional_entry(travel_state):
    async def confirm(state):
        return {"current_phase": Phase.COMPLETE, "skip_to_confirmation": False}

    nodes = {NodeId.CLARIFICATION: to_planning, NodeId.CONFIRM_ITINERARY: confirm}
    routes = {
        NodeId.CLARIFICATION: [Route(always, TERMINATE)],
        NodeId.CONFIRM_ITINERARY: [Route(always, TERMINATE)],
    }
    entry = [
        Route(awaiting_confirmation, NodeId.CONFIRM_ITINERARY),
        Route(always, NodeId.CLARIFICATION),
    ]
    machine = StateMachine(TravelState, nodes, routes, entry, name="travel")

    resumed = await machine.run(travel_state(skip_to_confirmation=True), "task-2")
    assert resumed.current_phase == Phase.COMPLETE

    fresh = await machine.run(travel_state(), "task-2")
    assert fresh.current_phase == Phase.PLANNING


def test_select_route_first_match_wins():
    routes = [
        Route(phase_is(Phase.ERROR), TERMINATE),
        Route(phase_is(Phase.PLANNING, Phase.EXECUTION), NodeId.EXECUTION),
        Route(always, NodeId.VALIDATION),
    ]
    assert select_route(routes, MedicineState(current_phase=Phase.EXECUTION)) == "execution"
    assert select_route(routes, MedicineState()) == "validation"
    assert select_route([], MedicineState()) is None


def test_standard_routes_ordering():
    routes = standard_routes(lambda state: state.has_sufficient_info, NodeId.PLANNING)

    errored = MedicineState(error="boom", has_sufficient_info=True)
    assert select_route(routes, errored) == TERMINATE

    # Finished work advances even with a pending question
    done_and_asking = MedicineState(has_sufficient_info=True, requires_human_input=True)
    assert select_route(routes, done_and_asking) == "planning"

    asking = MedicineState(requires_human_input=True)
    assert select_route(routes, asking) == TERMINATE


def test_has_error_ignores_stale_error_phase():
    assert has_error(MedicineState(error="boom"))
    assert not has_error(MedicineState(current_phase=Phase.ERROR))
    assert not has_error(MedicineState(messages=human_message("hi")))
