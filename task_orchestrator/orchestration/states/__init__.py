"""
State definitions for the orchestration state machine.
"""

from task_orchestrator.orchestration.states.agent_state import (
    AgentState,
    ChatMessage,
    ExecutionStep,
    GatheredInfo,
    HumanInputRequest,
    ai_message,
    append_messages,
    clear_pause,
    dedupe_by,
    human_message,
    merge_dict,
    merge_gathered_info,
    pause_for_input,
    union,
)
from task_orchestrator.orchestration.states.medicine_state import (
    CallResult,
    Location,
    MedicineInfo,
    MedicineState,
    Pharmacy,
)
from task_orchestrator.orchestration.states.travel_state import (
    Budget,
    ItineraryDay,
    TravelInfo,
    TravelState,
    trip_duration,
)
from task_orchestrator.orchestration.states.workflow_stages import (
    PHASE_ORDER,
    Intent,
    Phase,
    StepStatus,
    TaskType,
    phase_rank,
)

STATE_CLASSES: dict[TaskType, type[AgentState]] = {
    TaskType.MEDICINE: MedicineState,
    TaskType.TRAVEL: TravelState,
}

__all__ = [
    "PHASE_ORDER",
    "STATE_CLASSES",
    "AgentState",
    "Budget",
    "CallResult",
    "ChatMessage",
    "ExecutionStep",
    "GatheredInfo",
    "HumanInputRequest",
    "Intent",
    "ItineraryDay",
    "Location",
    "MedicineInfo",
    "MedicineState",
    "Phase",
    "Pharmacy",
    "StepStatus",
    "TaskType",
    "TravelInfo",
    "TravelState",
    "ai_message",
    "append_messages",
    "clear_pause",
    "dedupe_by",
    "human_message",
    "merge_dict",
    "merge_gathered_info",
    "pause_for_input",
    "phase_rank",
    "trip_duration",
    "union",
]
