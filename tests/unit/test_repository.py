"""Tests for the task repositories."""

from unittest.mock import MagicMock

import pytest

from task_orchestrator.data.models import (
    Session,
    SessionStatus,
    Task,
    TaskStatus,
    User,
)
from task_orchestrator.data.repository import DynamoDBTaskRepository, clamp_progress
from task_orchestrator.orchestration.states import Phase, TaskType


@pytest.fixture
def mock_db():
    return MagicMock()


@pytest.fixture
def repo(mock_db):
    return DynamoDBTaskRepository(mock_db)


def stored(entity, entity_type: str) -> dict:
    return {
        "PK": entity.pk,
        "SK": entity.sk,
        "Data": entity.model_dump(mode="json", exclude={"pk", "sk", "gsi1pk", "gsi1sk"}),
        "EntityType": entity_type,
        "Version": 1,
    }


def test_create_user(repo, mock_db):
    user = repo.create_user("test@example.com", "Test")
    mock_db.put_item.assert_called_once()
    item = mock_db.put_item.call_args[0][0]
    assert item["PK"] == f"USER#{user.user_id}"
    assert item["SK"] == "PROFILE"
    assert item["EntityType"] == "User"
    assert "pk" not in item["Data"]


def test_get_user(repo, mock_db):
    user = User(user_id="123", email="test@example.com", name="Test")
    mock_db.get_item.return_value = stored(user, "User")

    loaded = repo.get_user("123")

    assert loaded.user_id == "123"
    mock_db.get_item.assert_called_with("USER#123", "PROFILE")


def test_get_user_not_found(repo, mock_db):
    mock_db.get_item.return_value = None
    assert repo.get_user("999") is None


def test_create_guest(repo, mock_db):
    guest = repo.create_guest()
    assert guest.is_guest
    assert guest.email.endswith("@guest.local")
    assert guest.name.startswith("Guest_")


def test_create_session_item_keys(repo, mock_db):
    session = repo.create_session("123")
    item = mock_db.put_item.call_args[0][0]
    assert item["PK"] == f"SESSION#{session.session_id}"
    assert item["SK"] == "METADATA"
    assert item["GSI1PK"] == "USER#123#SESSION"
    assert item["EntityType"] == "Session"


def test_find_latest_active_session_skips_ended(repo, mock_db):
    ended = Session(session_id="s2", user_id="123", status=SessionStatus.COMPLETED)
    active = Session(session_id="s1", user_id="123")
    mock_db.query_gsi1.return_value = [stored(ended, "Session"), stored(active, "Session")]

    assert repo.find_latest_active_session("123").session_id == "s1"
    mock_db.query_gsi1.assert_called_with("USER#123#SESSION", scan_forward=False)


def test_end_session(repo, mock_db):
    mock_db.get_item.return_value = stored(Session(session_id="s1", user_id="123"), "Session")

    ended = repo.end_session("s1")

    assert ended.status == SessionStatus.COMPLETED
    assert ended.ended_at is not None
    pk, sk, updates = mock_db.update_item.call_args[0]
    assert (pk, sk) == ("SESSION#s1", "METADATA")
    assert updates["Data"]["status"] == "completed"


def test_create_task_item_keys(repo, mock_db):
    task = repo.create_task("s1", TaskType.MEDICINE)
    item = mock_db.put_item.call_args[0][0]
    assert item["PK"] == f"TASK#{task.task_id}"
    assert item["GSI1PK"] == "SESSION#s1#TASK"
    assert item["Data"]["task_type"] == "medicine"
    assert item["Data"]["status"] == "pending"


def test_update_phase_starts_pending_task(repo, mock_db):
    task = Task(task_id="t1", session_id="s1", task_type=TaskType.TRAVEL)
    mock_db.get_item.return_value = stored(task, "Task")

    updated = repo.update_phase("t1", Phase.PLANNING)

    assert updated.phase == Phase.PLANNING
    assert updated.status == TaskStatus.IN_PROGRESS
    updates = mock_db.update_item.call_args[0][2]
    assert updates["Data"]["phase"] == "planning"
    assert "UpdatedAt" in updates


def test_update_missing_task(repo, mock_db):
    mock_db.get_item.return_value = None
    assert repo.update_progress("missing", 50) is None
    mock_db.update_item.assert_not_called()


def test_clamp_progress():
    assert clamp_progress(-5) == 0
    assert clamp_progress(42.7) == 42
    assert clamp_progress(250) == 100


# In-memory flows


def test_get_or_create_active_session(repository):
    first = repository.get_or_create_active_session("u1")
    assert repository.get_or_create_active_session("u1").session_id == first.session_id

    repository.end_session(first.session_id)
    second = repository.get_or_create_active_session("u1")
    assert second.session_id != first.session_id


def test_get_or_create_task_reuses_active_task(repository):
    task = repository.get_or_create_task("s1", TaskType.MEDICINE)
    assert repository.get_or_create_task("s1", TaskType.MEDICINE).task_id == task.task_id
    assert repository.get_or_create_task("s1", TaskType.TRAVEL).task_id != task.task_id


def test_find_active_by_session_newest_first(repository):
    older = repository.create_task("s1", TaskType.MEDICINE)
    newer = repository.create_task("s1", TaskType.TRAVEL)
    assert repository.find_active_by_session("s1").task_id == newer.task_id

    repository.complete_task(newer.task_id)
    assert repository.find_active_by_session("s1").task_id == older.task_id


def test_complete_task(repository):
    task = repository.create_task("s1", TaskType.MEDICINE)
    completed = repository.complete_task(task.task_id)
    assert completed.status == TaskStatus.COMPLETED
    assert completed.phase == Phase.COMPLETE
    assert completed.progress == 100
    assert completed.completed_at is not None


def test_fail_task_records_error(repository):
    task = repository.create_task("s1", TaskType.TRAVEL)
    repository.merge_gathered_info(task.task_id, {"destination": "Goa"})

    failed = repository.fail_task(task.task_id, "Timed out after 120 seconds")

    assert failed.status == TaskStatus.FAILED
    assert failed.phase == Phase.ERROR
    assert failed.gathered_info == {
        "destination": "Goa",
        "error": "Timed out after 120 seconds",
    }
    assert repository.fail_task("missing") is None


def test_merge_gathered_info_is_shallow(repository):
    task = repository.create_task("s1", TaskType.MEDICINE)
    repository.merge_gathered_info(task.task_id, {"a": {"x": 1}, "b": 2})
    merged = repository.merge_gathered_info(task.task_id, {"a": {"y": 2}})
    assert merged.gathered_info == {"a": {"y": 2}, "b": 2}
