"""
Unit tests for the turn-by-turn orchestrator.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from task_orchestrator.data.models import TaskStatus
from task_orchestrator.orchestration.core.graph_builder import build_graph
from task_orchestrator.orchestration.core.graph_cache import GraphCache
from task_orchestrator.orchestration.states import (
    ExecutionStep,
    HumanInputRequest,
    Location,
    MedicineState,
    TaskType,
    ai_message,
    human_message,
)
from task_orchestrator.orchestration.states.workflow_stages import Phase
from task_orchestrator.orchestration.workflow import (
    HELP_TEXT,
    Orchestrator,
    calculate_progress,
    extract_response,
)
from task_orchestrator.services.guest_service import GuestService
from task_orchestrator.utils.error_handling import ErrorCategory, LLMError
from tests.fakes import FakeTool


@pytest.fixture
def graph_cache(deps):
    return GraphCache(lambda task_type: build_graph(task_type, deps))


@pytest.fixture
def orchestrator(repository, fake_llm, registry, graph_cache, test_config):
    return Orchestrator(
        repository=repository,
        llm=fake_llm,
        registry=registry,
        graph_cache=graph_cache,
        guest_service=GuestService(repository),
        config=test_config,
    )


def script_medicine_run(fake_llm):
    fake_llm.script(
        "information extraction",
        '{"medicineName": "paracetamol", "location": "Indiranagar"}',
    )
    fake_llm.script("information gathering", "SUFFICIENT_INFO")
    fake_llm.script("validation", "VALID")
    fake_llm.script("final response", "Paracetamol is in stock at MedPlus for ₹30.")


# Progress and response text


def test_calculate_progress():
    plan = [ExecutionStep(id=f"s{n}", name="Search") for n in range(4)]
    assert calculate_progress(MedicineState()) == 10
    assert calculate_progress(MedicineState(current_phase=Phase.EXECUTION)) == 60
    assert (
        calculate_progress(
            MedicineState(
                current_phase=Phase.EXECUTION, execution_plan=plan, current_step_index=2
            )
        )
        == 75
    )
    assert calculate_progress(MedicineState(current_phase=Phase.COMPLETE)) == 100
    assert calculate_progress(MedicineState(current_phase=Phase.ERROR)) == 0


def test_extract_response_precedence():
    question = HumanInputRequest(message="Which city?")
    assert extract_response(MedicineState(final_response="Done", human_input_request=question)) == "Done"
    assert extract_response(MedicineState(human_input_request=question)) == "Which city?"
    assert extract_response(MedicineState(messages=ai_message("Searching..."))) == "Searching..."
    assert (
        extract_response(MedicineState(current_phase=Phase.ERROR, error="boom")) == "boom"
    )
    assert extract_response(
        MedicineState(current_phase=Phase.PLANNING, messages=human_message("hi"))
    ) == "Creating a plan for your request..."


# Handling messages


@pytest.mark.asyncio
async def test_unknown_intent_returns_help(orchestrator, fake_llm, repository):
    fake_llm.script("intent classification", "unknown")

    response = await orchestrator.handle("user-1", "hello there")

    assert response.response == HELP_TEXT
    assert response.requires_input is True
    assert response.task_id is None
    assert repository.tasks == {}
    assert fake_llm.purposes() == ["intent classification"]


@pytest.mark.asyncio
async def test_medicine_task_runs_to_completion(orchestrator, fake_llm, repository, call_tool):
    script_medicine_run(fake_llm)

    response = await orchestrator.handle("user-1", "find paracetamol near Indiranagar")

    assert response.is_complete is True
    assert response.requires_input is False
    assert response.progress == 100
    assert response.response == "Paracetamol is in stock at MedPlus for ₹30."
    assert len(call_tool.calls) == 2

    task = repository.get_task(response.task_id)
    assert task.status == TaskStatus.COMPLETED
    assert task.phase == Phase.COMPLETE
    assert task.gathered_info["selectedPharmacy"]["id"] == "p2"
    assert task.execution_plan[0]["status"] == "completed"


@pytest.mark.asyncio
async def test_clarification_spans_two_turns(orchestrator, fake_llm, repository):
    fake_llm.script(
        "information extraction",
        '{"medicineName": "paracetamol"}',
        '{"location": "Indiranagar"}',
    )
    fake_llm.script("information gathering", "Where are you located?", "SUFFICIENT_INFO")
    fake_llm.script("validation", "VALID")
    fake_llm.script("final response", "Found it.")

    first = await orchestrator.handle("user-1", "find paracetamol")

    assert first.requires_input is True
    assert first.response == "Where are you located?"
    assert first.progress == 10
    assert first.input_request.type == "clarification"
    task = repository.get_task(first.task_id)
    assert task.status == TaskStatus.IN_PROGRESS
    assert task.gathered_info["medicineName"] == "paracetamol"

    second = await orchestrator.handle("user-1", "Indiranagar", session_id=first.session_id)

    assert second.task_id == first.task_id
    assert second.session_id == first.session_id
    assert second.is_complete is True
    assert second.response == "Found it."


@pytest.mark.asyncio
async def test_first_turn_seeds_detected_location(orchestrator, fake_llm):
    orchestrator.location_service = MagicMock()
    orchestrator.location_service.detect = AsyncMock(
        return_value=Location(lat=12.97, lng=77.59, address="Bengaluru")
    )
    fake_llm.script("information extraction", '{"medicineName": "paracetamol"}')
    fake_llm.script("information gathering", "SUFFICIENT_INFO")
    fake_llm.script("validation", "VALID")
    fake_llm.script("final response", "Found it.")
    browser = {"lat": 12.97, "lng": 77.59}

    response = await orchestrator.handle("user-1", "find paracetamol", location=browser)

    orchestrator.location_service.detect.assert_awaited_once_with(browser)
    assert response.is_complete is True


@pytest.mark.asyncio
async def test_failed_task_returns_apology(orchestrator, fake_llm, registry, repository):
    script_medicine_run(fake_llm)
    registry.register(FakeTool("geocoding", result={"error": True, "message": "no token"}))
    registry.register(FakeTool("web_search", result={"success": False, "error": "quota"}))

    response = await orchestrator.handle("user-1", "find paracetamol near Indiranagar")

    assert response.response.startswith("I encountered an error")
    assert "quota" in response.response
    assert response.requires_input is True
    task = repository.get_task(response.task_id)
    assert task.status == TaskStatus.IN_PROGRESS
    assert task.phase == Phase.CLARIFICATION
    assert task.gathered_info["error"] == "quota"
    assert repository.find_active_by_session(response.session_id).task_id == task.task_id


@pytest.mark.asyncio
async def test_turn_timeout_keeps_task_active(repository, fake_llm, registry, test_config):
    async def slow_run(state, thread_id):
        await asyncio.sleep(1)

    machine = MagicMock()
    machine.run = slow_run
    test_config.agents.timeout_seconds = 0.05
    orchestrator = Orchestrator(
        repository, fake_llm, registry, GraphCache(lambda task_type: machine), config=test_config
    )

    response = await orchestrator.handle("user-1", "find paracetamol")

    assert "Timed out after 0.05 seconds" in response.response
    assert response.requires_input is True
    task = repository.get_task(response.task_id)
    assert task.status == TaskStatus.IN_PROGRESS
    assert task.phase == Phase.CLARIFICATION



@pytest.mark.asyncio
async def test_timed_out_turn_resumes_same_task(orchestrator, fake_llm, repository):
    script_medicine_run(fake_llm)
    fake_llm.script(
        "validation",
        LLMError("deadline exceeded", ErrorCategory.TIMEOUT, recoverable=True),
        "VALID",
    )

    first = await orchestrator.handle("user-1", "find paracetamol near Indiranagar")

    assert first.requires_input is True
    assert first.response.startswith("I encountered an error")
    task = repository.get_task(first.task_id)
    assert task.status == TaskStatus.IN_PROGRESS
    assert task.execution_plan[0]["status"] == "completed"

    second = await orchestrator.handle("user-1", "any luck?", session_id=first.session_id)

    assert second.task_id == first.task_id
    assert second.is_complete is True
    assert repository.get_task(first.task_id).status == TaskStatus.COMPLETED
    assert "intent classification" not in fake_llm.purposes()


@pytest.mark.asyncio
async def test_continue_errored_task_asks_question(orchestrator, fake_llm, repository):
    fake_llm.script("information extraction", '{"medicineName": "paracetamol"}')
    fake_llm.script(
        "information gathering",
        LLMError("deadline exceeded", ErrorCategory.TIMEOUT, recoverable=True),
        "Where are you located?",
    )
    first = await orchestrator.handle("user-1", "find paracetamol")
    assert first.response.startswith("I encountered an error")

    response = await orchestrator.continue_task(first.task_id, "paracetamol please")

    assert response.task_id == first.task_id
    assert response.requires_input is True
    assert response.response == "Where are you located?"
    assert response.input_request.type == "clarification"

@pytest.mark.asyncio
async def test_handle_failure_is_apology(orchestrator, repository, monkeypatch):
    orchestrator.config.system.environment = "production"
    monkeypatch.setattr(
        repository,
        "find_active_by_session",
        MagicMock(side_effect=RuntimeError("table missing")),
    )

    response = await orchestrator.handle("user-1", "find paracetamol")

    assert response.response == (
        "I encountered an error processing your request. Please try again."
    )
    assert response.requires_input is True


# Continuing tasks


@pytest.mark.asyncio
async def test_continue_task_not_found(orchestrator):
    response = await orchestrator.continue_task("missing", "yes")
    assert response.response == "Task not found"
    assert response.is_complete is True
    assert response.requires_input is False


@pytest.mark.asyncio
async def test_continue_task_prefers_selected_option(orchestrator, fake_llm, repository):
    fake_llm.script("information extraction", "{}")
    fake_llm.script("information gathering", "Which medicine?")
    first = await orchestrator.handle("user-1", "I need medicine")

    await orchestrator.continue_task(first.task_id, "typed text", selected_option="Aspirin")

    extraction_calls = [
        call for call in fake_llm.calls if call["purpose"] == "information extraction"
    ]
    assert extraction_calls[-1]["user"] == "Aspirin"


@pytest.mark.asyncio
async def test_travel_confirmation_accepted(orchestrator, fake_llm, repository):
    session = repository.create_session("user-1")
    task = repository.create_task(session.session_id, TaskType.TRAVEL)
    repository.update_task(
        task.task_id,
        phase=Phase.REFINEMENT,
        gathered_info={
            "destination": "Goa",
            "numberOfDays": 2,
            "awaitingRefinement": True,
            "itinerary": [{"dayNumber": 1, "theme": "Beaches", "estimatedCost": 100}],
        },
    )
    fake_llm.script("validation", "VALID")
    fake_llm.script("final response", "Enjoy Goa!")

    response = await orchestrator.continue_task(task.task_id, "Looks great!")

    assert response.is_complete is True
    assert response.response == "Enjoy Goa!"
    assert "information gathering" not in fake_llm.purposes()
    stored = repository.get_task(task.task_id)
    assert stored.gathered_info["awaitingRefinement"] is False
    assert stored.gathered_info["userConfirmed"] is True


# Streaming


@pytest.mark.asyncio
async def test_stream_frames(orchestrator, fake_llm):
    script_medicine_run(fake_llm)

    frames = [
        frame
        async for frame in orchestrator.handle_stream(
            "user-1", "find paracetamol near Indiranagar"
        )
    ]

    assert frames[0]["message"] == "Session initialized"
    assert frames[0]["data"]["phase"] is None
    assert frames[1]["message"] == "Task medicine"
    assert frames[1]["data"]["phase"] == "clarification"
    assert frames[1]["data"]["taskId"]
    progress = [frame for frame in frames if frame["type"] == "progress"]
    assert all(
        set(frame["data"]) >= {"phase", "stepIndex", "totalSteps", "progress"}
        for frame in progress
    )
    nodes = [frame["node"] for frame in progress[2:]]
    assert nodes == [
        "clarification",
        "planning",
        "execution",
        "search_pharmacies",
        "call_pharmacies",
        "validation",
    ]
    terminal = [frame for frame in frames if frame["type"] in ("complete", "error")]
    assert terminal == [frames[-1]]
    assert frames[-1]["type"] == "complete"
    assert frames[-1]["data"]["isComplete"] is True
    assert frames[-1]["data"]["progress"] == 100



def stalled_machine(closed: list):
    async def stream(state, thread_id):
        try:
            yield "clarification", {}, state
            await asyncio.sleep(5)
            yield "planning", {}, state
        finally:
            closed.append(thread_id)

    machine = MagicMock()
    machine.stream = stream
    return machine


@pytest.mark.asyncio
async def test_stream_deadline_ends_turn(repository, fake_llm, registry, test_config):
    closed = []
    test_config.agents.timeout_seconds = 0.05
    orchestrator = Orchestrator(
        repository,
        fake_llm,
        registry,
        GraphCache(lambda task_type: stalled_machine(closed)),
        config=test_config,
    )

    frames = [frame async for frame in orchestrator.handle_stream("user-1", "find aspirin")]

    assert [frame.get("node") for frame in frames[:-1]] == [
        "session",
        "task",
        "clarification",
    ]
    assert frames[-1]["type"] == "error"
    assert frames[-1]["data"]["requiresInput"] is True
    task_id = frames[-1]["data"]["taskId"]
    assert closed == [task_id]
    assert repository.get_task(task_id).status == TaskStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_stream_disconnect_closes_graph_stream(repository, fake_llm, registry, test_config):
    closed = []
    orchestrator = Orchestrator(
        repository,
        fake_llm,
        registry,
        GraphCache(lambda task_type: stalled_machine(closed)),
        config=test_config,
    )

    stream = orchestrator.handle_stream("user-1", "find aspirin")
    async for frame in stream:
        if frame.get("node") == "clarification":
            break
    await stream.aclose()

    assert len(closed) == 1
    task = repository.get_task(closed[0])
    assert task.progress == 0
    assert task.gathered_info in (None, {})

@pytest.mark.asyncio
async def test_stream_guest_session_frame(orchestrator, fake_llm):
    fake_llm.script("intent classification", "neither")
    guest = orchestrator.guest_service.create()

    frames = [
        frame
        async for frame in orchestrator.handle_stream(
            guest.user_id, "hello", session_id=guest.session_id, guest=guest
        )
    ]

    assert frames[0]["type"] == "session"
    assert frames[0]["sessionToken"] == guest.session_token
    assert frames[0]["isNewGuestSession"] is True
    assert frames[-1]["type"] == "complete"
    assert frames[-1]["message"] == HELP_TEXT
    assert frames[-1]["data"]["sessionId"] == guest.session_id


@pytest.mark.asyncio
async def test_stream_failure_yields_error_frame(orchestrator, repository, monkeypatch):
    monkeypatch.setattr(
        repository,
        "get_or_create_active_session",
        MagicMock(side_effect=RuntimeError("table missing")),
    )

    frames = [frame async for frame in orchestrator.handle_stream("user-1", "hi")]

    assert len(frames) == 1
    assert frames[0]["type"] == "error"


# Users, sessions and inspection


def test_resolve_user(orchestrator, repository):
    user = repository.create_user("a@example.com", "A")
    assert orchestrator.resolve_user(user.user_id) == (user.user_id, None, None)

    user_id, session_id, guest = orchestrator.resolve_user(None)
    assert guest.is_new_session
    assert repository.get_user(user_id).is_guest
    assert repository.get_session(session_id).user_id == user_id

    again = orchestrator.resolve_user(None, guest.session_token)
    assert again[0] == user_id
    assert again[2].is_new_session is False


def test_resolve_user_without_guests(orchestrator):
    orchestrator.guest_service = None
    assert orchestrator.resolve_user(None) is None
    assert orchestrator.resolve_user("external") == ("external", None, None)


@pytest.mark.asyncio
async def test_end_session_drops_cached_graphs(orchestrator, fake_llm, graph_cache):
    fake_llm.script("information gathering", "Which medicine?")
    response = await orchestrator.handle("user-1", "need medicine")
    assert len(graph_cache) == 1

    assert orchestrator.end_session(response.session_id) is True
    assert len(graph_cache) == 0
    assert orchestrator.end_session("missing") is False


@pytest.mark.asyncio
async def test_get_task_and_progress(orchestrator, fake_llm):
    script_medicine_run(fake_llm)
    response = await orchestrator.handle("user-1", "find paracetamol near Indiranagar")

    details = orchestrator.get_task(response.task_id)
    assert details["taskType"] == "medicine"
    assert details["status"] == "completed"
    assert details["steps"][0]["toolName"] == "web_search"

    progress = orchestrator.get_progress(response.task_id)
    assert progress["isComplete"] is True
    assert progress["completedSteps"] == 1

    assert orchestrator.get_task("missing") is None
    assert orchestrator.get_progress("missing")["phase"] == "unknown"
