"""
Validation node.

Asks the LLM whether the execution results answer the user's request and
produces the final response. Only a reply whose leading token is VALID or
NEEDS_REFINEMENT is acted on; any other reply passes through to the final
response so a task never stalls on an ambiguous verdict.
"""

import re
from enum import Enum
from typing import Any

from task_orchestrator.orchestration.nodes.deps import NodeDeps
from task_orchestrator.orchestration.serialization.checkpoint import fold_gathered_info
from task_orchestrator.orchestration.states.agent_state import (
    AgentState,
    HumanInputRequest,
    ai_message,
    clear_pause,
    pause_for_input,
)
from task_orchestrator.orchestration.states.workflow_stages import (
    Phase,
    StepStatus,
    TaskType,
)
from task_orchestrator.prompts.templates import (
    FINAL_RESPONSE,
    VALIDATION,
    render_template,
)
from task_orchestrator.utils.error_handling import LLMError
from task_orchestrator.utils.helpers import to_json
from task_orchestrator.utils.logging import TaskLogger

DEFAULT_REFINEMENT_REASON = "Results need improvement"
CONFIRMATION_OPTIONS = ["Looks good!", "Make changes", "Start over"]

_VALID = re.compile(r"VALID\b")
_NEEDS_REFINEMENT = re.compile(r"NEEDS_REFINEMENT\b")
_REASON = re.compile(r"NEEDS_REFINEMENT\s*:\s*(.+)", re.IGNORECASE | re.DOTALL)


class Verdict(str, Enum):
    VALID = "valid"
    NEEDS_REFINEMENT = "needs_refinement"
    AMBIGUOUS = "ambiguous"


def parse_verdict(reply: str) -> tuple[Verdict, str | None]:
    """
    Classify a validation reply by its leading token.

    Args:
        reply: Raw model reply

    Returns:
        (verdict, refinement reason or None)
    """
    text = reply.strip()
    upper = text.upper()
    if _NEEDS_REFINEMENT.match(upper):
        match = _REASON.search(text)
        reason = match.group(1).strip() if match else ""
        return Verdict.NEEDS_REFINEMENT, reason or DEFAULT_REFINEMENT_REASON
    if _VALID.match(upper):
        return Verdict.VALID, None
    return Verdict.AMBIGUOUS, None


def build_results(state: AgentState) -> dict[str, Any]:
    """Completed step results and gathered info handed to the final response."""
    plan = state.execution_plan or []
    completed = [step for step in plan if step.status == StepStatus.COMPLETED]
    return {
        "gatheredInfo": fold_gathered_info(state),
        "executionResults": [
            {"name": step.name, "result": step.result} for step in completed
        ],
        "completedSteps": len(completed),
        "totalSteps": len(plan),
    }


def format_medicine_results(state: AgentState) -> str:
    medicine = state.gathered_info.get("medicineName", "the medicine")
    lines = [
        "## Medicine Search Results",
        "",
        f"I searched for **{medicine}** near your location.",
        "",
    ]

    call_results = list(getattr(state, "call_results", None) or [])
    available = [call for call in call_results if call.availability == "available"]
    unavailable = [call for call in call_results if call.availability == "unavailable"]
    if available:
        lines.append("### Available at:")
        for call in available:
            price = call.price if call.price is not None else "N/A"
            lines.append(f"- **{call.pharmacy_name}** - ₹{price}")
        lines.append("")
    if unavailable:
        lines.append("### Not available at:")
        lines.extend(f"- {call.pharmacy_name}" for call in unavailable)
        lines.append("")
    if not call_results:
        lines += ["I couldn't confirm availability at any pharmacy.", ""]

    lines += [
        "---",
        "*Note: These are simulated results. Please confirm availability "
        "directly with the pharmacy.*",
    ]
    return "\n".join(lines)


def format_travel_results(state: AgentState) -> str:
    info = state.gathered_info
    destination = info.get("destination", "your destination")
    lines = [
        f"## Your Trip to {destination}",
        "",
        "I've created a travel itinerary based on your preferences.",
        "",
    ]
    if info.get("startDate") and info.get("endDate"):
        lines += [f"**Dates:** {info.get('startDate')} to {info.get('endDate')}", ""]
    if info.get("budgetMax") is not None:
        currency = info.get("currency", "USD")
        lines += [
            f"**Budget:** {info.get('budgetMin', 0)} - {info.get('budgetMax')} {currency}",
            "",
        ]
    total = info.get("totalEstimatedCost")
    if total is not None:
        lines += [f"**Total Estimated Cost:** ${total}", ""]
    lines += [
        "The detailed itinerary includes activities, dining recommendations, "
        "and practical tips.",
        "",
        "---",
        "*Note: This is a simulated itinerary. Please verify and book directly "
        "with providers.*",
    ]
    return "\n".join(lines)


def fallback_response(state: AgentState) -> str:
    if state.TASK_TYPE == TaskType.MEDICINE:
        return format_medicine_results(state)
    return format_travel_results(state)


async def generate_final_response(state: AgentState, deps: NodeDeps) -> str:
    """
    User-facing summary of the task results.

    Falls back to a formatted summary when the LLM call fails.
    """
    system = render_template(
        FINAL_RESPONSE,
        taskType=state.TASK_TYPE.value,
        results=to_json(build_results(state), indent=2),
        originalRequest=state.first_user_message() or "User request",
    )
    try:
        response = await deps.llm.complete(
            system, "Write the final response.", purpose="final response"
        )
    except LLMError as e:
        TaskLogger.for_state(state).warning(f"Failed to generate final response: {e!s}")
        return fallback_response(state)
    return response or fallback_response(state)


def has_confirmation_loop(state: AgentState) -> bool:
    return "awaiting_refinement" in type(state).model_fields


async def complete(state: AgentState, deps: NodeDeps) -> dict[str, Any]:
    final_response = await generate_final_response(state, deps)
    return clear_pause(
        current_phase=Phase.COMPLETE,
        final_response=final_response,
        messages=ai_message(final_response),
    )


def refine(state: AgentState, reason: str) -> dict[str, Any]:
    """Update sending the task back for another round."""
    count = state.refinement_count + 1
    feedback = state.info_update(validation_feedback=reason)

    if has_confirmation_loop(state):
        return pause_for_input(
            HumanInputRequest(
                type="confirmation",
                message=(
                    f"Here's what I've planned so far. {reason}\n\n"
                    "Would you like to proceed or make changes?"
                ),
                options=CONFIRMATION_OPTIONS,
            ),
            current_phase=Phase.REFINEMENT,
            awaiting_refinement=True,
            refinement_count=count,
            gathered_info=feedback,
            messages=ai_message(
                f"I've created an initial plan. {reason}\n\n"
                "Would you like me to adjust anything?"
            ),
        )

    return {
        "current_phase": Phase.PLANNING,
        "refinement_count": count,
        "gathered_info": feedback,
        "messages": ai_message(f"Refining results... {reason}"),
    }


async def validation(state: AgentState, deps: NodeDeps) -> dict[str, Any]:
    """
    Validate the results and finish the task.

    Args:
        state: Current task state
        deps: Injected node dependencies

    Returns:
        Update completing the task, or sending it back for refinement
    """
    task_logger = TaskLogger.for_state(state, agent_type=state.TASK_TYPE.value)

    plan_json = to_json([step.to_wire() for step in state.execution_plan or []], indent=2)
    info_json = to_json(fold_gathered_info(state), indent=2)
    budget = deps.config.agents.validation_char_budget
    if len(plan_json) + len(info_json) > budget:
        task_logger.warning(
            f"Results exceed {budget} characters, skipping validation call"
        )
        return await complete(state, deps)

    reply = await deps.llm.complete(
        render_template(
            VALIDATION,
            taskType=state.TASK_TYPE.value,
            executionPlan=plan_json,
            gatheredInfo=info_json,
        ),
        "Validate these results.",
        purpose="validation",
    )
    task_logger.log_llm_output("validation", reply)

    verdict, reason = parse_verdict(reply)
    if verdict == Verdict.NEEDS_REFINEMENT:
        if state.refinement_count >= deps.config.agents.max_retries:
            task_logger.info(
                f"Refinement limit reached ({state.refinement_count}), accepting results"
            )
            return await complete(state, deps)
        task_logger.info(f"Validation needs refinement: {reason}")
        return refine(state, reason)

    if verdict == Verdict.VALID:
        task_logger.info("Validation passed, task complete")
    else:
        task_logger.info("Validation reply was not a verdict, completing anyway")
    return await complete(state, deps)
