"""Tests for Lambda handler."""

import json
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from task_orchestrator.orchestration.core.graph_builder import build_graph
from task_orchestrator.orchestration.core.graph_cache import GraphCache
from task_orchestrator.orchestration.workflow import HELP_TEXT, ChatResponse, Orchestrator
from task_orchestrator.services.guest_service import GuestService

os.environ["GEMINI_API_KEY"] = "test-key"
os.environ["DYNAMODB_TABLE_NAME"] = "test-table"
os.environ["DYNAMODB_ENDPOINT"] = "http://localhost:8000"


@pytest.fixture
def orchestrator(repository, fake_llm, registry, deps, test_config):
    return Orchestrator(
        repository=repository,
        llm=fake_llm,
        registry=registry,
        graph_cache=GraphCache(lambda task_type: build_graph(task_type, deps)),
        guest_service=GuestService(repository),
        config=test_config,
    )


@pytest.fixture
def mock_orchestrator():
    orchestrator = MagicMock()
    orchestrator.resolve_user.return_value = ("123", None, None)
    orchestrator.handle = AsyncMock(
        return_value=ChatResponse(session_id="s1", task_id="t1", response="Hi", progress=10)
    )
    orchestrator.continue_task = AsyncMock(
        return_value=ChatResponse(session_id="s1", task_id="t1", response="Thanks")
    )
    return orchestrator


def parse_sse(body: str) -> list[dict]:
    frames = [chunk for chunk in body.split("\n\n") if chunk]
    assert all(frame.startswith("data: ") for frame in frames)
    return [json.loads(frame[len("data: ") :]) for frame in frames]


def test_route_chat():
    from handler import route_event

    event = {
        "action": "chat",
        "userId": "USER#123",
        "message": "Hello",
        "sessionId": "s1",
        "location": {"lat": 12.9, "lng": 77.6},
    }
    action, params = route_event(event)
    assert action == "chat"
    assert params["user_id"] == "123"
    assert params["message"] == "Hello"
    assert params["session_id"] == "s1"
    assert params["location"] == {"lat": 12.9, "lng": 77.6}


def test_route_continue_task():
    from handler import route_event

    event = {
        "action": "continue_task",
        "taskId": "t1",
        "userInput": "yes",
        "selectedOption": "Looks great!",
    }
    action, params = route_event(event)
    assert action == "continue_task"
    assert params["user_id"] is None
    assert params["task_id"] == "t1"
    assert params["user_input"] == "yes"
    assert params["selected_option"] == "Looks great!"


def test_route_unknown_action():
    from handler import route_event

    action, params = route_event({})
    assert action == "unknown"


def test_extract_user_id():
    from handler import _extract_user_id

    assert _extract_user_id("USER#123") == "123"
    assert _extract_user_id("123") == "123"


def test_handlers_registered():
    from handler import _HANDLERS

    assert set(_HANDLERS) == {
        "chat",
        "chat_stream",
        "continue_task",
        "get_task",
        "get_progress",
        "end_session",
    }


def test_sse_frame():
    from handler import sse_frame

    assert sse_frame({"type": "progress"}) == 'data: {"type": "progress"}\n\n'


@pytest.mark.asyncio
async def test_unknown_action(mock_orchestrator):
    from handler import async_handler

    result = await async_handler({"action": "plan_trip"}, mock_orchestrator)
    assert result == {"status": "error", "error": "Unknown action: plan_trip"}


@pytest.mark.asyncio
async def test_chat(mock_orchestrator):
    from handler import async_handler

    result = await async_handler(
        {"action": "chat", "userId": "USER#123", "message": "Hello"}, mock_orchestrator
    )

    assert result["status"] == "ok"
    assert result["data"]["response"] == "Hi"
    assert result["data"]["taskId"] == "t1"
    assert "sessionToken" not in result["data"]
    mock_orchestrator.handle.assert_awaited_once_with(
        user_id="123", message="Hello", session_id=None, location=None
    )
    mock_orchestrator.graph_cache.sweep.assert_called_once()


@pytest.mark.asyncio
async def test_chat_missing_user_context(mock_orchestrator):
    from handler import async_handler

    mock_orchestrator.resolve_user.return_value = None

    result = await async_handler({"action": "chat", "message": "Hi"}, mock_orchestrator)
    assert result == {"status": "error", "error": "Missing user context"}


@pytest.mark.asyncio
async def test_chat_as_guest_returns_token(orchestrator, fake_llm):
    from handler import async_handler

    fake_llm.script("intent classification", "unknown")

    result = await async_handler({"action": "chat", "message": "Hello"}, orchestrator)

    assert result["status"] == "ok"
    assert result["data"]["response"] == HELP_TEXT
    token = result["data"]["sessionToken"]
    assert orchestrator.guest_service.validate(token) is not None


@pytest.mark.asyncio
async def test_chat_stream_body(orchestrator, fake_llm):
    from handler import async_handler

    fake_llm.script("intent classification", "unknown")

    result = await async_handler(
        {"action": "chat_stream", "message": "Hello"}, orchestrator
    )

    assert result["status"] == "ok"
    assert result["contentType"] == "text/event-stream"
    frames = parse_sse(result["body"])
    assert frames[0]["type"] == "session"
    assert frames[0]["isNewGuestSession"] is True
    assert frames[-1]["type"] == "complete"


@pytest.mark.asyncio
async def test_chat_stream_failure(mock_orchestrator):
    from handler import async_handler

    mock_orchestrator.resolve_user.side_effect = RuntimeError("boom")

    result = await async_handler(
        {"action": "chat_stream", "userId": "USER#123", "message": "Hi"},
        mock_orchestrator,
    )
    assert parse_sse(result["body"]) == [{"type": "error", "message": "Stream failed"}]


@pytest.mark.asyncio
async def test_continue_task_requires_task_id(mock_orchestrator):
    from handler import async_handler

    result = await async_handler({"action": "continue_task"}, mock_orchestrator)
    assert result == {"status": "error", "error": "No taskId provided"}


@pytest.mark.asyncio
async def test_continue_task(mock_orchestrator):
    from handler import async_handler

    result = await async_handler(
        {"action": "continue_task", "taskId": "t1", "userInput": "yes"}, mock_orchestrator
    )
    assert result["data"]["response"] == "Thanks"
    mock_orchestrator.continue_task.assert_awaited_once_with("t1", "yes", None)


@pytest.mark.asyncio
async def test_get_task_not_found(orchestrator):
    from handler import async_handler

    result = await async_handler({"action": "get_task", "taskId": "nope"}, orchestrator)
    assert result == {"status": "error", "error": "Task not found"}


@pytest.mark.asyncio
async def test_get_progress_unknown_task(orchestrator):
    from handler import async_handler

    result = await async_handler({"action": "get_progress", "taskId": "nope"}, orchestrator)
    assert result["data"]["phase"] == "unknown"


@pytest.mark.asyncio
async def test_end_session_ends_guest(orchestrator, repository):
    from handler import async_handler

    guest = orchestrator.guest_service.create()

    result = await async_handler(
        {
            "action": "end_session",
            "sessionId": guest.session_id,
            "sessionToken": guest.session_token,
        },
        orchestrator,
    )

    assert result == {"status": "ok", "data": {"ended": True}}
    assert orchestrator.guest_service.validate(guest.session_token) is None
    assert not repository.get_session(guest.session_id).is_active


@pytest.mark.asyncio
async def test_handler_errors_become_error_status(mock_orchestrator):
    from handler import async_handler

    mock_orchestrator.handle.side_effect = RuntimeError("boom")

    result = await async_handler(
        {"action": "chat", "userId": "USER#1", "message": "Hi"}, mock_orchestrator
    )
    assert result == {"status": "error", "error": "boom"}


def test_sync_handler_uses_shared_orchestrator(mock_orchestrator):
    import handler

    with patch.object(handler, "get_orchestrator", return_value=mock_orchestrator):
        result = handler.handler({"action": "continue_task"}, None)

    assert result == {"status": "error", "error": "No taskId provided"}
