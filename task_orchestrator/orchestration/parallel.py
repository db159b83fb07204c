"""
Concurrency-limited execution of plan steps.

A batch is a contiguous run of pending steps that call the same tool, capped
at a fixed size. Steps in a batch run on a bounded pool of workers; each
worker claims the next unclaimed index until the batch is drained. Outcomes
are sorted by plan index before they are merged, so the merged plan never
depends on which tool call finished first.

Treating same-tool neighbours as independent is a heuristic. Plans carry no
explicit step dependencies, so a step that needs an earlier step's output
must use a different tool or it may be batched with that step.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel

from task_orchestrator.orchestration.states.agent_state import ExecutionStep
from task_orchestrator.orchestration.states.workflow_stages import StepStatus
from task_orchestrator.tools.base import error_message, is_error_payload
from task_orchestrator.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_BATCH_CAP = 3

StepInvoker = Callable[[ExecutionStep], Awaitable[Any]]


class StepOutcome(BaseModel):
    """Result of running one plan step."""

    index: int
    step: ExecutionStep
    status: StepStatus
    result: Any = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == StepStatus.COMPLETED

    def apply(self) -> ExecutionStep:
        """The step updated with this outcome."""
        return self.step.model_copy(
            update={"status": self.status, "result": self.result, "error": self.error}
        )


def find_batch(
    plan: list[ExecutionStep] | None, start: int, cap: int = DEFAULT_BATCH_CAP
) -> list[int]:
    """
    Indices of the batch beginning at `start`.

    Args:
        plan: Execution plan
        start: Index of the first step
        cap: Maximum batch size

    Returns:
        Contiguous indices of pending steps sharing the tool of the step at
        `start`; empty when `start` is past the end of the plan
    """
    if not plan or start >= len(plan) or cap <= 0:
        return []

    tool_name = plan[start].tool_name
    indices = [start]
    for index in range(start + 1, min(len(plan), start + cap)):
        step = plan[index]
        if step.tool_name != tool_name or step.status != StepStatus.PENDING:
            break
        indices.append(index)
    return indices


async def run_step(index: int, step: ExecutionStep, invoke: StepInvoker) -> StepOutcome:
    """
    Run one step, converting any failure into a failed outcome.

    A raised exception or a tool-reported error payload both fail the step.
    """
    try:
        result = await invoke(step)
    except Exception as e:
        logger.warning(f"Step {step.id} ({step.tool_name}) raised: {e!s}")
        return StepOutcome(index=index, step=step, status=StepStatus.FAILED, error=str(e))

    if is_error_payload(result):
        message = error_message(result)
        logger.warning(f"Step {step.id} ({step.tool_name}) reported: {message}")
        return StepOutcome(
            index=index,
            step=step,
            status=StepStatus.FAILED,
            result=result,
            error=message,
        )

    return StepOutcome(index=index, step=step, status=StepStatus.COMPLETED, result=result)


async def run_steps(
    steps: list[tuple[int, ExecutionStep]],
    invoke: StepInvoker,
    cap: int = DEFAULT_BATCH_CAP,
) -> list[StepOutcome]:
    """
    Run a batch of independent steps on a bounded worker pool.

    Args:
        steps: (plan index, step) pairs in plan order
        invoke: Coroutine function running one step's tool
        cap: Maximum number of concurrent workers

    Returns:
        One outcome per step, sorted by plan index
    """
    if not steps:
        return []

    outcomes: list[StepOutcome] = []
    next_slot = 0

    async def worker(worker_id: int) -> None:
        nonlocal next_slot
        while next_slot < len(steps):
            index, step = steps[next_slot]
            next_slot += 1
            logger.debug(f"Worker {worker_id} running step {index} ({step.tool_name})")
            outcomes.append(await run_step(index, step, invoke))

    workers = min(max(cap, 1), len(steps))
    await asyncio.gather(*(worker(n) for n in range(workers)))

    outcomes.sort(key=lambda outcome: outcome.index)
    failed = sum(1 for outcome in outcomes if not outcome.succeeded)
    logger.info(
        f"Batch of {len(outcomes)} steps finished on {workers} workers "
        f"({failed} failed)"
    )
    return outcomes


def apply_outcomes(
    plan: list[ExecutionStep], outcomes: list[StepOutcome]
) -> list[ExecutionStep]:
    """Return a new plan with each outcome written over the step at its index."""
    updated = list(plan)
    for outcome in sorted(outcomes, key=lambda outcome: outcome.index):
        updated[outcome.index] = outcome.apply()
    return updated
