"""
Read-only projections of stored tasks for inspection endpoints.
"""

from collections import Counter
from typing import Any

from task_orchestrator.data.models import Task, TaskStatus
from task_orchestrator.orchestration.states.workflow_stages import StepStatus


def step_summaries(plan: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    """Id, name, tool and status of every stored plan step."""
    return [
        {
            "id": step.get("id"),
            "name": step.get("name"),
            "toolName": step.get("toolName"),
            "status": step.get("status", StepStatus.PENDING.value),
        }
        for step in plan or []
    ]


def step_counts(plan: list[dict[str, Any]] | None) -> dict[str, int]:
    counts = Counter(step["status"] for step in step_summaries(plan))
    return {status.value: counts.get(status.value, 0) for status in StepStatus}


def task_details(task: Task) -> dict[str, Any]:
    """Wire projection of a task with its step list."""
    return {
        "taskId": task.task_id,
        "sessionId": task.session_id,
        "taskType": task.task_type.value,
        "status": task.status.value,
        "phase": task.phase.value,
        "progress": task.progress,
        "gatheredInfo": task.gathered_info,
        "steps": step_summaries(task.execution_plan),
        "createdAt": task.created_at.isoformat(),
        "completedAt": task.completed_at.isoformat() if task.completed_at else None,
    }


def progress_summary(task: Task | None) -> dict[str, Any]:
    """
    Progress figures for a task.

    A missing task yields phase "unknown" and zero counts.
    """
    if task is None:
        return {
            "phase": "unknown",
            "progress": 0,
            "completedSteps": 0,
            "totalSteps": 0,
            "isComplete": False,
        }

    counts = step_counts(task.execution_plan)
    return {
        "phase": task.phase.value,
        "progress": task.progress,
        "completedSteps": counts[StepStatus.COMPLETED.value],
        "failedSteps": counts[StepStatus.FAILED.value],
        "totalSteps": sum(counts.values()),
        "isComplete": task.status == TaskStatus.COMPLETED,
    }
