"""
Checkpoint system for task state.

A checkpoint is the subset of the agent state stored on the task row: the
phase, the gathered info (with domain-specific fields folded into it), the
execution plan and a progress figure. Everything else is rebuilt from the
checkpoint when a task resumes.
"""

from typing import Any

from pydantic import BaseModel, Field

from task_orchestrator.data.repository import TaskRepository
from task_orchestrator.orchestration.states.agent_state import AgentState, ExecutionStep
from task_orchestrator.orchestration.states.workflow_stages import (
    Phase,
    TaskType,
    phase_rank,
)
from task_orchestrator.utils.helpers import safe_serialize
from task_orchestrator.utils.logging import get_logger

logger = get_logger(__name__)


class Checkpoint(BaseModel):
    """Persisted snapshot of a task."""

    task_id: str
    session_id: str
    task_type: TaskType
    phase: Phase = Phase.CLARIFICATION
    gathered_info: dict[str, Any] = Field(default_factory=dict)
    execution_plan: list[dict[str, Any]] | None = None
    progress: int = 0


def fold_gathered_info(state: AgentState) -> dict[str, Any]:
    """
    Flatten the state's gathered info and fold in its domain fields.

    Args:
        state: State to fold

    Returns:
        camelCase mapping stored as the task's gathered info
    """
    folded = state.gathered_info.to_mapping()
    for attribute, key in state.FOLDED_FIELDS.items():
        value = getattr(state, attribute, None)
        if value is None and attribute not in state.CLEARABLE_FIELDS:
            continue
        folded[key] = safe_serialize(value)
    return folded


def resume_index(plan: list[ExecutionStep] | None) -> int:
    """Index of the first step that has not finished, or the plan length."""
    if not plan:
        return 0
    for index, step in enumerate(plan):
        if not step.status.is_terminal:
            return index
    return len(plan)



def resume_phase(phase: Phase | str, plan: list[ExecutionStep] | None) -> Phase:
    """
    Phase a stored task resumes in.

    An ERROR snapshot resumes in execution when it has a plan and in
    clarification otherwise.
    """
    phase = Phase(phase)
    if phase != Phase.ERROR:
        return phase
    return Phase.EXECUTION if plan else Phase.CLARIFICATION

class TaskCheckpointer:
    """Writes and reads task checkpoints through a repository."""

    def __init__(self, repository: TaskRepository):
        self.repository = repository

    def persist(self, task_id: str, state: AgentState, progress: int) -> bool:
        """
        Persist a task's checkpoint.

        Failures are logged and swallowed; the in-memory result of the turn
        is still returned to the user.

        Args:
            task_id: Task to update
            state: State at the end of the run
            progress: Progress figure to store

        Returns:
            True if every write succeeded
        """
        try:
            self.repository.update_phase(task_id, state.current_phase)
            self.repository.merge_gathered_info(task_id, fold_gathered_info(state))
            if state.execution_plan:
                self.repository.update_execution_plan(
                    task_id, [step.to_wire() for step in state.execution_plan]
                )
            self.repository.update_progress(task_id, progress)
        except Exception as e:
            logger.error(f"Failed to persist task {task_id}: {e!s}")
            return False

        logger.debug(f"Persisted task {task_id} at phase {state.current_phase.value}")
        return True

    def restore(self, task_id: str) -> Checkpoint | None:
        """
        Load a task's checkpoint.

        Returns:
            The checkpoint, or None if the task does not exist or cannot be read
        """
        try:
            task = self.repository.get_task(task_id)
        except Exception as e:
            logger.error(f"Failed to restore task {task_id}: {e!s}")
            return None
        if task is None:
            return None

        return Checkpoint(
            task_id=task.task_id,
            session_id=task.session_id,
            task_type=task.task_type,
            phase=task.phase,
            gathered_info=task.gathered_info or {},
            execution_plan=task.execution_plan,
            progress=task.progress,
        )

    @staticmethod
    def build_state(
        state_cls: type[AgentState],
        checkpoint: Checkpoint,
        session_id: str | None = None,
    ) -> AgentState:
        """
        Rebuild an agent state from a checkpoint.

        Folded domain fields are lifted back onto the state, the pending
        question is cleared, an ERROR phase is mapped back to a resumable
        one, and the step cursor is placed on the first unfinished step.

        Args:
            state_cls: Domain state class for the task type
            checkpoint: Stored snapshot
            session_id: Session to attach (defaults to the checkpoint's)

        Returns:
            State ready to receive the next user message
        """
        stored = dict(checkpoint.gathered_info)
        lifted = {
            attribute: stored[key]
            for attribute, key in state_cls.FOLDED_FIELDS.items()
            if stored.get(key) is not None
        }

        plan = None
        if checkpoint.execution_plan:
            plan = [ExecutionStep.model_validate(step) for step in checkpoint.execution_plan]

        phase = resume_phase(checkpoint.phase, plan)
        return state_cls(
            session_id=session_id or checkpoint.session_id,
            task_id=checkpoint.task_id,
            current_phase=phase,
            has_sufficient_info=phase_rank(phase) > phase_rank(Phase.CLARIFICATION),
            gathered_info=state_cls.info_cls().from_mapping(stored),
            execution_plan=plan,
            current_step_index=resume_index(plan),
            requires_human_input=False,
            human_input_request=None,
            **lifted,
        )
