"""
Phase definitions for the orchestration state machine.

Phases are stored on every task row and drive both routing and the progress
figure reported to the user.
"""

from enum import Enum


class Phase(str, Enum):
    """Named stages of task progress."""

    CLARIFICATION = "clarification"
    PLANNING = "planning"
    EXECUTION = "execution"
    REFINEMENT = "refinement"
    VALIDATION = "validation"
    COMPLETE = "complete"
    ERROR = "error"


# Ordered sequence used for progress and "has this task moved past X" checks
PHASE_ORDER = [
    Phase.CLARIFICATION,
    Phase.PLANNING,
    Phase.EXECUTION,
    Phase.REFINEMENT,
    Phase.VALIDATION,
    Phase.COMPLETE,
]


def phase_rank(phase: Phase | str) -> int:
    """Position of a phase in PHASE_ORDER; error and unknown phases rank -1."""
    try:
        return PHASE_ORDER.index(Phase(phase))
    except ValueError:
        return -1


class StepStatus(str, Enum):
    """Lifecycle of one execution step."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.COMPLETED, StepStatus.FAILED)


class TaskType(str, Enum):
    """Task domains the orchestrator can run."""

    MEDICINE = "medicine"
    TRAVEL = "travel"


class Intent(str, Enum):
    """Result of intent classification."""

    MEDICINE = "medicine"
    TRAVEL = "travel"
    UNKNOWN = "unknown"
