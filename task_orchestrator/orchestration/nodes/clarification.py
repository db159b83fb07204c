"""
Clarification node.

Extracts structured fields from the latest user message, merges them into
the gathered info and asks the LLM whether enough is known to plan. The
node either advances to planning or pauses with a follow-up question.
"""

from typing import Any

from task_orchestrator.orchestration.nodes.deps import NodeDeps
from task_orchestrator.orchestration.states.agent_state import (
    AgentState,
    GatheredInfo,
    HumanInputRequest,
    ai_message,
    clear_pause,
    merge_gathered_info,
    pause_for_input,
)
from task_orchestrator.orchestration.states.workflow_stages import Phase, TaskType
from task_orchestrator.prompts.templates import (
    INFO_GATHERING,
    INFORMATION_EXTRACTION,
    render_template,
)
from task_orchestrator.utils.error_handling import LLMError
from task_orchestrator.utils.helpers import to_json
from task_orchestrator.utils.logging import TaskLogger

SUFFICIENT_TOKEN = "SUFFICIENT_INFO"

# Used when the model claims sufficiency while a required field is missing
FOLLOW_UP_QUESTIONS = {
    "medicineName": "Which medicine are you looking for?",
    "location": "Where are you located? An area, address or city is enough.",
    "destination": "Where would you like to travel?",
    "travelDates": "When are you planning to travel, and for how many days?",
}


async def extract_information(
    state: AgentState, deps: NodeDeps, user_input: str | None
) -> GatheredInfo:
    """
    Extract known fields from one user message.

    Blank values are dropped. An empty message or a failed extraction call
    yields an empty update.
    """
    info_cls = state.info_cls()
    if not user_input or not user_input.strip():
        return info_cls()

    system = render_template(
        INFORMATION_EXTRACTION,
        taskType=state.TASK_TYPE.value,
        gatheredInfo=to_json(state.gathered_info.to_mapping(), indent=2),
    )
    try:
        raw = await deps.llm.complete_json(
            system, user_input, default={}, purpose="information extraction"
        )
    except LLMError as e:
        TaskLogger.for_state(state).warning(f"Information extraction failed: {e!s}")
        return info_cls()
    return info_cls.from_mapping(raw, drop_blank=True)


async def detect_location(state: AgentState, deps: NodeDeps, info: Any) -> Any:
    """Location for medicine tasks that have none yet, or None."""
    if state.TASK_TYPE != TaskType.MEDICINE or deps.location_service is None:
        return None
    if getattr(state, "location", None) is not None or info.location is not None:
        return None
    location = await deps.location_service.detect()
    if location is not None:
        TaskLogger.for_state(state).info("Location auto-detected in clarification")
    return location


async def clarification(state: AgentState, deps: NodeDeps) -> dict[str, Any]:
    """
    Gather the information a task needs before planning.

    Args:
        state: Current task state
        deps: Injected node dependencies

    Returns:
        Update advancing to planning, or pausing with a clarification request
    """
    task_logger = TaskLogger.for_state(state, agent_type=state.TASK_TYPE.value)

    extracted = await extract_information(state, deps, state.latest_user_message())
    merged = merge_gathered_info(state.gathered_info, extracted)

    location = await detect_location(state, deps, merged)
    if location is not None:
        location_update = state.info_update(location=location)
        extracted = merge_gathered_info(extracted, location_update)
        merged = merge_gathered_info(merged, location_update)

    reply = await deps.llm.complete(
        render_template(
            INFO_GATHERING[state.TASK_TYPE],
            gatheredInfo=to_json(merged.to_mapping(), indent=2),
        ),
        state.latest_user_message() or "",
        purpose="information gathering",
    )
    task_logger.debug(f"Clarification response: {reply}")

    missing = merged.missing_fields
    if SUFFICIENT_TOKEN in reply and not missing:
        task_logger.info("Sufficient info gathered, moving to planning")
        return clear_pause(
            has_sufficient_info=True,
            current_phase=Phase.PLANNING,
            gathered_info=extracted,
        )

    if SUFFICIENT_TOKEN in reply or not reply:
        first_missing = missing[0] if missing else ""
        reply = FOLLOW_UP_QUESTIONS.get(first_missing, "Could you tell me a bit more?")
        task_logger.warning(f"Using canned follow-up question, missing: {missing}")

    task_logger.info("Need more info, requesting clarification")
    return pause_for_input(
        HumanInputRequest(type="clarification", message=reply),
        has_sufficient_info=False,
        gathered_info=extracted,
        messages=ai_message(reply),
    )
