"""
Planning node.

Asks the LLM for a step-by-step execution plan built from the tools the
task type may use. A missing or malformed plan degrades to a single web
search step rather than failing the task.
"""

from typing import Any

from task_orchestrator.orchestration.nodes.deps import NodeDeps
from task_orchestrator.orchestration.states.agent_state import (
    AgentState,
    ExecutionStep,
    ai_message,
)
from task_orchestrator.orchestration.states.workflow_stages import (
    Phase,
    StepStatus,
    TaskType,
)
from task_orchestrator.prompts.templates import PLANNING, render_template
from task_orchestrator.utils.error_handling import PlanParseError, handle_errors
from task_orchestrator.utils.helpers import to_json
from task_orchestrator.utils.logging import TaskLogger

DEFAULT_TOOL = "web_search"


def default_query(state: AgentState) -> str:
    """Search query for the fallback step, derived from what is known."""
    info = state.gathered_info
    if state.TASK_TYPE == TaskType.MEDICINE:
        medicine = info.get("medicineName")
        if medicine:
            location = info.get("location")
            where = location.describe() if hasattr(location, "describe") else ""
            return f"{medicine} pharmacy near {where}" if where else f"{medicine} pharmacy"
    elif state.TASK_TYPE == TaskType.TRAVEL:
        destination = info.get("destination")
        if destination:
            return f"things to do in {destination}"
    return state.first_user_message() or "search query"


def default_plan(state: AgentState, offset: int = 0) -> list[ExecutionStep]:
    return [
        ExecutionStep(
            id=f"step_{offset + 1}",
            name="Search for information",
            description="Search the web for relevant information",
            tool_name=DEFAULT_TOOL,
            tool_args={"query": default_query(state), "maxResults": 5},
        )
    ]


@handle_errors(error_cls=PlanParseError)
def parse_plan(raw: Any, offset: int = 0, taken: set[str] | None = None) -> list[ExecutionStep]:
    """
    Convert the model's plan JSON into execution steps.

    Args:
        raw: Parsed JSON (expected `{"steps": [...]}`)
        offset: Number of steps already in the plan, used for default ids
        taken: Step ids already in use

    Returns:
        Pending steps with defaults filled in

    Raises:
        PlanParseError: If the reply holds no usable steps
    """
    if not isinstance(raw, dict) or not isinstance(raw.get("steps"), list):
        raise PlanParseError("Plan reply has no steps list")

    taken = set(taken or ())
    steps = []
    for item in raw["steps"]:
        if not isinstance(item, dict):
            continue
        number = offset + len(steps) + 1
        step_id = str(item.get("id") or f"step_{number}")
        if step_id in taken:
            step_id = f"{step_id}_{number}"
        taken.add(step_id)
        tool_args = item.get("toolArgs")
        steps.append(
            ExecutionStep(
                id=step_id,
                name=item.get("name") or f"Step {number}",
                description=item.get("description") or "",
                tool_name=item.get("toolName") or DEFAULT_TOOL,
                tool_args=tool_args if isinstance(tool_args, dict) else {},
                status=StepStatus.PENDING,
            )
        )
    if not steps:
        raise PlanParseError("Plan reply has no usable steps")
    return steps


def has_pending_steps(state: AgentState) -> bool:
    plan = state.execution_plan or []
    return any(
        step.status == StepStatus.PENDING for step in plan[state.current_step_index :]
    )


async def planning(state: AgentState, deps: NodeDeps) -> dict[str, Any]:
    """
    Create the execution plan.

    A plan that still has pending steps past the cursor is kept. Otherwise
    new steps are appended after the existing ones, so the cursor never
    moves backwards.

    Args:
        state: Current task state
        deps: Injected node dependencies

    Returns:
        Update with the plan and phase set to execution
    """
    task_logger = TaskLogger.for_state(state, agent_type=state.TASK_TYPE.value)

    if has_pending_steps(state):
        task_logger.info("Resuming existing execution plan")
        return {"current_phase": Phase.EXECUTION}

    existing = list(state.execution_plan or [])
    system = render_template(
        PLANNING,
        taskType=state.TASK_TYPE.value,
        gatheredInfo=to_json(state.gathered_info.to_mapping(), indent=2),
        availableTools=deps.registry.describe_for_agent(state.TASK_TYPE),
    )
    request = state.latest_user_message() or state.first_user_message() or ""
    raw = await deps.llm.complete_json(
        system, request, default={}, purpose="planning"
    )

    try:
        steps = parse_plan(raw, offset=len(existing), taken={step.id for step in existing})
    except PlanParseError as e:
        task_logger.warning(f"{e!s}, using default plan")
        steps = default_plan(state, offset=len(existing))

    task_logger.info(f"Created execution plan with {len(steps)} steps")
    return {
        "execution_plan": existing + steps,
        "current_step_index": max(state.current_step_index, len(existing)),
        "current_phase": Phase.EXECUTION,
        "messages": ai_message(
            f"I've created a plan with {len(steps)} steps. Starting execution..."
        ),
    }
