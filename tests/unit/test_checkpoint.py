"""
Unit tests for task checkpoints: folding, persisting and restoring state.
"""

from unittest.mock import MagicMock

from task_orchestrator.orchestration.serialization import (
    Checkpoint,
    TaskCheckpointer,
    fold_gathered_info,
    resume_index,
    resume_phase,
)
from task_orchestrator.orchestration.states import (
    ExecutionStep,
    HumanInputRequest,
    ItineraryDay,
    MedicineInfo,
    MedicineState,
    Pharmacy,
    StepStatus,
    TaskType,
    TravelInfo,
    TravelState,
)
from task_orchestrator.orchestration.states.workflow_stages import Phase


def steps(*statuses: StepStatus) -> list[ExecutionStep]:
    return [
        ExecutionStep(id=f"step_{n}", name=f"Step {n}", status=status)
        for n, status in enumerate(statuses, start=1)
    ]


def paused_travel_state(task_id: str) -> TravelState:
    return TravelState(
        session_id="session-1",
        task_id=task_id,
        current_phase=Phase.REFINEMENT,
        gathered_info=TravelInfo(destination="Goa", number_of_days=2),
        itinerary=[ItineraryDay(day_number=1, theme="Beaches", estimated_cost=120)],
        awaiting_refinement=True,
        refinement_count=2,
        requires_human_input=True,
        human_input_request=HumanInputRequest(type="confirmation", message="OK?"),
        execution_plan=steps(StepStatus.COMPLETED, StepStatus.FAILED),
        current_step_index=2,
    )


def test_fold_includes_domain_fields():
    folded = fold_gathered_info(paused_travel_state("task-2"))

    assert folded["destination"] == "Goa"
    assert folded["awaitingRefinement"] is True
    assert folded["refinementCount"] == 2
    assert folded["itinerary"][0]["dayNumber"] == 1
    # Clearable fields are written even when unset
    assert "refinementFeedback" in folded
    assert folded["refinementFeedback"] is None
    assert "richPlan" not in folded


def test_fold_medicine_state():
    state = MedicineState(
        gathered_info=MedicineInfo(medicine_name="aspirin"),
        pharmacies=[Pharmacy(id="p1", name="Apollo")],
    )
    folded = fold_gathered_info(state)
    assert folded["medicineName"] == "aspirin"
    assert folded["pharmacies"][0]["id"] == "p1"
    assert "selectedPharmacy" not in folded


def test_resume_index():
    assert resume_index(None) == 0
    assert resume_index(steps(StepStatus.COMPLETED, StepStatus.PENDING)) == 1
    assert resume_index(steps(StepStatus.FAILED, StepStatus.IN_PROGRESS)) == 1
    assert resume_index(steps(StepStatus.COMPLETED, StepStatus.FAILED)) == 2


def test_persist_and_restore_round_trip(repository):
    task = repository.create_task("session-1", TaskType.TRAVEL)
    checkpointer = TaskCheckpointer(repository)

    assert checkpointer.persist(task.task_id, paused_travel_state(task.task_id), 75)

    checkpoint = checkpointer.restore(task.task_id)
    assert checkpoint.phase == Phase.REFINEMENT
    assert checkpoint.progress == 75
    assert len(checkpoint.execution_plan) == 2

    state = TaskCheckpointer.build_state(TravelState, checkpoint)
    assert isinstance(state, TravelState)
    assert state.session_id == "session-1"
    assert state.awaiting_refinement is True
    assert state.refinement_count == 2
    assert state.itinerary[0].theme == "Beaches"
    assert state.gathered_info.destination == "Goa"
    assert state.has_sufficient_info is True
    assert state.requires_human_input is False
    assert state.human_input_request is None
    assert state.current_step_index == 2


def test_persist_marks_task_in_progress(repository):
    task = repository.create_task("session-1", TaskType.MEDICINE)
    state = MedicineState(task_id=task.task_id, current_phase=Phase.CLARIFICATION)

    TaskCheckpointer(repository).persist(task.task_id, state, 10)

    stored = repository.get_task(task.task_id)
    assert stored.status.value == "in_progress"
    assert stored.progress == 10
    assert stored.execution_plan is None


def test_build_state_in_clarification_is_not_sufficient():
    checkpoint = Checkpoint(
        task_id="task-1",
        session_id="session-1",
        task_type=TaskType.MEDICINE,
        gathered_info={"medicineName": "aspirin", "urgency": "high"},
    )
    state = TaskCheckpointer.build_state(MedicineState, checkpoint, session_id="other")

    assert state.session_id == "other"
    assert state.has_sufficient_info is False
    assert state.gathered_info.medicine_name == "aspirin"
    assert state.execution_plan is None


def test_persist_swallows_storage_errors():
    repository = MagicMock()
    repository.update_phase.side_effect = RuntimeError("throttled")

    assert not TaskCheckpointer(repository).persist("task-1", MedicineState(), 30)


def test_restore_missing_or_unreadable(repository):
    assert TaskCheckpointer(repository).restore("missing") is None

    broken = MagicMock()
    broken.get_task.side_effect = RuntimeError("timeout")
    assert TaskCheckpointer(broken).restore("task-1") is None


def test_resume_phase():
    plan = steps(StepStatus.COMPLETED)
    assert resume_phase(Phase.VALIDATION, plan) == Phase.VALIDATION
    assert resume_phase("error", plan) == Phase.EXECUTION
    assert resume_phase(Phase.ERROR, None) == Phase.CLARIFICATION


def test_build_state_from_error_checkpoint():
    checkpoint = Checkpoint(
        task_id="task-1",
        session_id="session-1",
        task_type=TaskType.MEDICINE,
        phase=Phase.ERROR,
        gathered_info={"medicineName": "aspirin"},
    )
    state = TaskCheckpointer.build_state(MedicineState, checkpoint)

    assert state.current_phase == Phase.CLARIFICATION
    assert state.has_sufficient_info is False
    assert state.error is None
