"""
Serialization of task state for persistence and recovery.
"""

from task_orchestrator.orchestration.serialization.checkpoint import (
    Checkpoint,
    TaskCheckpointer,
    fold_gathered_info,
    resume_index,
    resume_phase,
)

__all__ = [
    "Checkpoint",
    "TaskCheckpointer",
    "fold_gathered_info",
    "resume_index",
    "resume_phase",
]
