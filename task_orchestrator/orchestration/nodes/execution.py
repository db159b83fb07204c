"""
Execution node.

Dispatches the plan step at the cursor to its tool. A contiguous run of
same-tool steps is handed to the step runner as one batch; anything else
runs inline. Failed steps are recorded and skipped, never retried, so the
cursor always advances.
"""

from typing import Any

from task_orchestrator.orchestration.nodes.deps import NodeDeps
from task_orchestrator.orchestration.parallel import (
    StepOutcome,
    apply_outcomes,
    find_batch,
    run_step,
    run_steps,
)
from task_orchestrator.orchestration.states.agent_state import (
    AgentState,
    ChatMessage,
    ExecutionStep,
    ai_message,
)
from task_orchestrator.orchestration.states.workflow_stages import Phase
from task_orchestrator.utils.logging import TaskLogger


def _data(result: Any) -> dict[str, Any]:
    if isinstance(result, dict) and isinstance(result.get("data"), dict):
        return result["data"]
    return {}


def extract_info(tool_name: str, result: Any) -> dict[str, Any]:
    """Gathered-info keys contributed by one successful tool result."""
    data = _data(result)
    if tool_name == "web_search":
        results = data.get("results")
        return {"searchResults": results} if results else {}
    if tool_name == "geocoding":
        return {"geocodingResult": data, "nearbyPlaces": data.get("nearbyPlaces")}
    if tool_name == "call_pharmacy":
        return {"callResult": data}
    if tool_name == "book_activity":
        return {"bookingResult": data}
    return {}


def summarize_result(tool_name: str, result: Any) -> str:
    data = _data(result)
    if tool_name == "web_search":
        return f"Found {len(data.get('results') or [])} results."
    if tool_name == "geocoding":
        places = len(data.get("nearbyPlaces") or [])
        return f"Found {places} nearby places." if places else "Location identified."
    if tool_name == "call_pharmacy":
        if data.get("status") == "success" and data.get("availability") == "available":
            return "Medicine is available!"
        if data.get("status") == "success":
            return "Medicine not available at this pharmacy."
        return "Could not reach pharmacy."
    if tool_name == "book_activity":
        if data.get("status") == "confirmed":
            return "Booking confirmed!"
        return "Booking could not be completed."
    return ""


def outcome_message(outcome: StepOutcome) -> str:
    name = outcome.step.name
    if outcome.succeeded:
        return f"Completed: {name}. {summarize_result(outcome.step.tool_name, outcome.result)}".strip()
    if outcome.result is not None:
        return f'Step "{name}" encountered an issue. Continuing...'
    return f'Step "{name}" failed. Continuing with next step...'


def merge_outcome_info(outcomes: list[StepOutcome]) -> dict[str, Any]:
    """
    Gathered info from a batch, in plan order.

    Search results from several steps of one batch are concatenated; other
    keys take the value of the last step that produced them.
    """
    merged: dict[str, Any] = {}
    for outcome in outcomes:
        if not outcome.succeeded:
            continue
        for key, value in extract_info(outcome.step.tool_name, outcome.result).items():
            if key == "searchResults" and key in merged:
                merged[key] = merged[key] + list(value)
            else:
                merged[key] = value
    return merged


async def execution(state: AgentState, deps: NodeDeps) -> dict[str, Any]:
    """
    Run the next step, or the next batch of steps, of the plan.

    Args:
        state: Current task state
        deps: Injected node dependencies

    Returns:
        Update with the merged plan, the advanced cursor and step messages;
        phase moves to validation once the plan is exhausted
    """
    task_logger = TaskLogger.for_state(state, agent_type=state.TASK_TYPE.value)
    plan = state.execution_plan or []

    if not plan:
        task_logger.warning("No execution plan to execute")
        return {"current_phase": Phase.VALIDATION}
    if state.plan_exhausted:
        task_logger.info("All execution steps completed")
        return {"current_phase": Phase.VALIDATION}

    async def invoke(step: ExecutionStep) -> Any:
        task_logger.log_tool_call(step.tool_name, step.tool_args)
        return await deps.registry.invoke(step.tool_name, step.tool_args)

    indices = find_batch(plan, state.current_step_index, deps.config.agents.batch_cap)
    if len(indices) > 1:
        task_logger.step("execution", Phase.EXECUTION.value, f"batch of {len(indices)}")
        outcomes = await run_steps(
            [(index, plan[index]) for index in indices],
            invoke,
            cap=deps.config.agents.batch_cap,
        )
    else:
        index = state.current_step_index
        task_logger.step("execution", Phase.EXECUTION.value, plan[index].name)
        outcomes = [await run_step(index, plan[index], invoke)]

    next_index = state.current_step_index + len(outcomes)
    messages: list[ChatMessage] = []
    for outcome in outcomes:
        messages += ai_message(outcome_message(outcome))

    update: dict[str, Any] = {
        "execution_plan": apply_outcomes(plan, outcomes),
        "current_step_index": next_index,
        "current_phase": Phase.VALIDATION if next_index >= len(plan) else Phase.EXECUTION,
        "messages": messages,
    }
    info = merge_outcome_info(outcomes)
    if info:
        update["gathered_info"] = state.info_cls().from_mapping(info)
    return update
