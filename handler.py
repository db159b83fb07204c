"""
AWS Lambda handler for the task orchestrator.

Entry point for backend calls via lambda.invoke(). Routes events by the
"action" field to the orchestrator.
"""

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any

from task_orchestrator.config import initialize_config
from task_orchestrator.orchestration.workflow import Orchestrator, create_orchestrator
from task_orchestrator.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

_orchestrator: Orchestrator | None = None


def _extract_user_id(user_id_raw: str) -> str:
    """Extract user ID from USER#123 format."""
    if user_id_raw.startswith("USER#"):
        return user_id_raw[5:]
    return user_id_raw


def get_orchestrator() -> Orchestrator:
    """Orchestrator shared by every invocation of this process."""
    global _orchestrator
    if _orchestrator is None:
        config = initialize_config()
        setup_logging(config.system.log_level, config.system.log_file)
        _orchestrator = create_orchestrator(config)
    return _orchestrator


def route_event(event: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    """Parse event and extract action + parameters."""
    action = event.get("action", "unknown")
    params: dict[str, Any] = {}

    user_id_raw = event.get("userId") or ""
    params["user_id"] = _extract_user_id(user_id_raw) if user_id_raw else None

    params["message"] = event.get("message", "")
    params["session_id"] = event.get("sessionId")
    params["session_token"] = event.get("sessionToken")
    params["location"] = event.get("location")

    # Task-specific fields
    params["task_id"] = event.get("taskId")
    params["user_input"] = event.get("userInput", "")
    params["selected_option"] = event.get("selectedOption")

    return action, params


def sse_frame(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, default=str)}\n\n"


async def _handle_chat(orchestrator: Orchestrator, params: dict[str, Any]) -> dict[str, Any]:
    caller = orchestrator.resolve_user(params["user_id"], params["session_token"])
    if caller is None:
        return {"status": "error", "error": "Missing user context"}
    user_id, guest_session_id, guest = caller

    response = await orchestrator.handle(
        user_id=user_id,
        message=params["message"],
        session_id=guest_session_id or params["session_id"],
        location=params["location"],
    )
    data = response.to_wire()
    if guest is not None:
        data["sessionToken"] = guest.session_token
    return {"status": "ok", "data": data}


async def stream_chat(
    orchestrator: Orchestrator, params: dict[str, Any]
) -> AsyncIterator[str]:
    """SSE frames for a streamed chat turn."""
    try:
        caller = orchestrator.resolve_user(params["user_id"], params["session_token"])
        if caller is None:
            yield sse_frame({"type": "error", "message": "Missing user context"})
            return
        user_id, guest_session_id, guest = caller

        async for frame in orchestrator.handle_stream(
            user_id=user_id,
            message=params["message"],
            session_id=guest_session_id or params["session_id"],
            location=params["location"],
            guest=guest,
        ):
            yield sse_frame(frame)
    except Exception as e:
        logger.error(f"Stream error: {e!s}")
        yield sse_frame({"type": "error", "message": "Stream failed"})


async def _handle_chat_stream(
    orchestrator: Orchestrator, params: dict[str, Any]
) -> dict[str, Any]:
    frames = [frame async for frame in stream_chat(orchestrator, params)]
    return {"status": "ok", "contentType": "text/event-stream", "body": "".join(frames)}


async def _handle_continue_task(
    orchestrator: Orchestrator, params: dict[str, Any]
) -> dict[str, Any]:
    if not params["task_id"]:
        return {"status": "error", "error": "No taskId provided"}
    response = await orchestrator.continue_task(
        params["task_id"], params["user_input"], params["selected_option"]
    )
    return {"status": "ok", "data": response.to_wire()}


async def _handle_get_task(
    orchestrator: Orchestrator, params: dict[str, Any]
) -> dict[str, Any]:
    task = orchestrator.get_task(params["task_id"]) if params["task_id"] else None
    if task is None:
        return {"status": "error", "error": "Task not found"}
    return {"status": "ok", "data": task}


async def _handle_get_progress(
    orchestrator: Orchestrator, params: dict[str, Any]
) -> dict[str, Any]:
    return {"status": "ok", "data": orchestrator.get_progress(params["task_id"] or "")}


async def _handle_end_session(
    orchestrator: Orchestrator, params: dict[str, Any]
) -> dict[str, Any]:
    if params["session_token"] and orchestrator.guest_service is not None:
        orchestrator.guest_service.end(params["session_token"])
    if not params["session_id"]:
        return {"status": "ok", "data": {"ended": False}}
    ended = orchestrator.end_session(params["session_id"])
    return {"status": "ok", "data": {"ended": ended}}


# Action handlers map
_HANDLERS = {
    "chat": _handle_chat,
    "chat_stream": _handle_chat_stream,
    "continue_task": _handle_continue_task,
    "get_task": _handle_get_task,
    "get_progress": _handle_get_progress,
    "end_session": _handle_end_session,
}


def _maintain(orchestrator: Orchestrator) -> None:
    # Each invocation runs on a fresh loop, so expiry is applied per event
    orchestrator.graph_cache.sweep()
    if orchestrator.guest_service is not None:
        orchestrator.guest_service.cleanup_expired()


async def async_handler(
    event: dict[str, Any], orchestrator: Orchestrator | None = None
) -> dict[str, Any]:
    """Main async handler."""
    action, params = route_event(event)

    handler_fn = _HANDLERS.get(action)
    if not handler_fn:
        return {"status": "error", "error": f"Unknown action: {action}"}

    try:
        orchestrator = orchestrator or get_orchestrator()
        _maintain(orchestrator)
        return await handler_fn(orchestrator, params)
    except Exception as e:
        logger.error(f"Error handling {action}: {e}")
        return {"status": "error", "error": str(e)}


def handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    """Lambda entry point (sync wrapper)."""
    return asyncio.run(async_handler(event))
