"""
Repositories for users, sessions and tasks.

`TaskRepository` defines the access patterns used by the orchestrator.
`DynamoDBTaskRepository` maps them onto the single-table design; the
in-memory implementation in `task_orchestrator.data.memory` serves tests
and local runs.
"""

from abc import ABC, abstractmethod
from typing import Any

from task_orchestrator.data.dynamodb import DynamoDBClient
from task_orchestrator.data.models import (
    EntityType,
    Session,
    SessionStatus,
    Task,
    TaskStatus,
    User,
)
from task_orchestrator.orchestration.states.workflow_stages import Phase, TaskType
from task_orchestrator.utils.helpers import generate_id, utc_now, utc_now_iso
from task_orchestrator.utils.logging import get_logger

logger = get_logger(__name__)


def clamp_progress(progress: float) -> int:
    return int(min(100, max(0, progress)))


def new_guest() -> User:
    guest_id = generate_id()
    return User(
        user_id=guest_id,
        email=f"guest_{guest_id}@guest.local",
        name=f"Guest_{guest_id[:8]}",
        is_guest=True,
    )


class TaskRepository(ABC):
    """Storage access patterns for the orchestrator."""

    # --- Users ---

    @abstractmethod
    def create_user(self, email: str, name: str) -> User: ...

    @abstractmethod
    def get_user(self, user_id: str) -> User | None: ...

    @abstractmethod
    def create_guest(self) -> User: ...

    # --- Sessions ---

    @abstractmethod
    def create_session(self, user_id: str) -> Session: ...

    @abstractmethod
    def get_session(self, session_id: str) -> Session | None: ...

    @abstractmethod
    def find_latest_active_session(self, user_id: str) -> Session | None: ...

    @abstractmethod
    def end_session(
        self, session_id: str, status: SessionStatus = SessionStatus.COMPLETED
    ) -> Session | None: ...

    def get_or_create_active_session(self, user_id: str) -> Session:
        """Latest active session of the user, creating one if there is none."""
        existing = self.find_latest_active_session(user_id)
        if existing is not None:
            logger.debug(f"Found existing session {existing.session_id} for {user_id}")
            return existing
        session = self.create_session(user_id)
        logger.info(f"Created new session {session.session_id} for {user_id}")
        return session

    # --- Tasks ---

    @abstractmethod
    def create_task(self, session_id: str, task_type: TaskType) -> Task: ...

    @abstractmethod
    def get_task(self, task_id: str) -> Task | None: ...

    @abstractmethod
    def list_session_tasks(self, session_id: str) -> list[Task]:
        """Tasks of a session, newest first."""

    @abstractmethod
    def update_task(self, task_id: str, **changes: Any) -> Task | None:
        """Overwrite the given task attributes and bump `updated_at`."""

    def find_active_by_session(self, session_id: str) -> Task | None:
        """Newest pending or in-progress task of a session."""
        for task in self.list_session_tasks(session_id):
            if task.is_active:
                return task
        return None

    def find_active_by_session_and_type(
        self, session_id: str, task_type: TaskType
    ) -> Task | None:
        for task in self.list_session_tasks(session_id):
            if task.is_active and task.task_type == TaskType(task_type):
                return task
        return None

    def get_or_create_task(self, session_id: str, task_type: TaskType) -> Task:
        existing = self.find_active_by_session_and_type(session_id, task_type)
        if existing is not None:
            logger.debug(f"Found existing task {existing.task_id}")
            return existing
        task = self.create_task(session_id, task_type)
        logger.info(f"Created new {task.task_type.value} task {task.task_id}")
        return task

    def update_phase(self, task_id: str, phase: Phase) -> Task | None:
        task = self.get_task(task_id)
        if task is None:
            return None
        changes: dict[str, Any] = {"phase": Phase(phase)}
        if task.status == TaskStatus.PENDING:
            changes["status"] = TaskStatus.IN_PROGRESS
        return self.update_task(task_id, **changes)

    def merge_gathered_info(self, task_id: str, info: dict[str, Any]) -> Task | None:
        """Shallow-merge new keys over the stored gathered info."""
        task = self.get_task(task_id)
        if task is None:
            return None
        return self.update_task(task_id, gathered_info={**task.gathered_info, **info})

    def update_execution_plan(
        self, task_id: str, plan: list[dict[str, Any]]
    ) -> Task | None:
        return self.update_task(task_id, execution_plan=plan)

    def update_progress(self, task_id: str, progress: float) -> Task | None:
        return self.update_task(task_id, progress=clamp_progress(progress))

    def complete_task(self, task_id: str) -> Task | None:
        logger.info(f"Task {task_id} completed")
        return self.update_task(
            task_id,
            status=TaskStatus.COMPLETED,
            phase=Phase.COMPLETE,
            progress=100,
            completed_at=utc_now(),
        )

    def fail_task(self, task_id: str, error: str | None = None) -> Task | None:
        task = self.get_task(task_id)
        if task is None:
            return None
        logger.info(f"Task {task_id} failed: {error}")
        return self.update_task(
            task_id,
            status=TaskStatus.FAILED,
            phase=Phase.ERROR,
            completed_at=utc_now(),
            gathered_info={**task.gathered_info, "error": error},
        )


class DynamoDBTaskRepository(TaskRepository):
    """Task repository on the DynamoDB single table."""

    def __init__(self, db: DynamoDBClient):
        self.db = db

    # --- Helpers ---

    @staticmethod
    def _data(entity: Any) -> dict[str, Any]:
        return entity.model_dump(mode="json", exclude={"pk", "sk", "gsi1pk", "gsi1sk"})

    def _to_item(self, entity: Any, entity_type: EntityType) -> dict[str, Any]:
        """Convert a domain model to a DynamoDB item."""
        data = self._data(entity)
        now = utc_now_iso()
        return {
            "PK": entity.pk,
            "SK": entity.sk,
            "GSI1PK": entity.gsi1pk,
            "GSI1SK": entity.gsi1sk,
            "EntityType": entity_type.value,
            "Version": 1,
            "Data": data,
            "Metadata": {"createdAt": now, "updatedAt": now},
        }

    # --- Users ---

    def create_user(self, email: str, name: str) -> User:
        user = User(user_id=generate_id(), email=email, name=name)
        self.db.put_item(self._to_item(user, EntityType.USER))
        return user

    def get_user(self, user_id: str) -> User | None:
        item = self.db.get_item(f"USER#{user_id}", "PROFILE")
        if not item:
            return None
        return User.model_validate(item["Data"])

    def create_guest(self) -> User:
        user = new_guest()
        self.db.put_item(self._to_item(user, EntityType.USER))
        logger.info(f"Created guest user {user.user_id}")
        return user

    # --- Sessions ---

    def create_session(self, user_id: str) -> Session:
        session = Session(session_id=generate_id(), user_id=user_id)
        self.db.put_item(self._to_item(session, EntityType.SESSION))
        return session

    def get_session(self, session_id: str) -> Session | None:
        item = self.db.get_item(f"SESSION#{session_id}", "METADATA")
        if not item:
            return None
        return Session.model_validate(item["Data"])

    def find_latest_active_session(self, user_id: str) -> Session | None:
        items = self.db.query_gsi1(f"USER#{user_id}#SESSION", scan_forward=False)
        for item in items:
            session = Session.model_validate(item["Data"])
            if session.is_active:
                return session
        return None

    def end_session(
        self, session_id: str, status: SessionStatus = SessionStatus.COMPLETED
    ) -> Session | None:
        session = self.get_session(session_id)
        if session is None:
            return None
        ended = session.model_copy(update={"status": status, "ended_at": utc_now()})
        self.db.update_item(ended.pk, ended.sk, {"Data": self._data(ended)})
        logger.info(f"Session {session_id} ended ({status.value})")
        return ended

    # --- Tasks ---

    def create_task(self, session_id: str, task_type: TaskType) -> Task:
        task = Task(
            task_id=generate_id(), session_id=session_id, task_type=TaskType(task_type)
        )
        self.db.put_item(self._to_item(task, EntityType.TASK))
        return task

    def get_task(self, task_id: str) -> Task | None:
        item = self.db.get_item(f"TASK#{task_id}", "METADATA")
        if not item:
            return None
        return Task.model_validate(item["Data"])

    def list_session_tasks(self, session_id: str) -> list[Task]:
        items = self.db.query_gsi1(f"SESSION#{session_id}#TASK", scan_forward=False)
        return [Task.model_validate(item["Data"]) for item in items]

    def update_task(self, task_id: str, **changes: Any) -> Task | None:
        task = self.get_task(task_id)
        if task is None:
            logger.warning(f"Cannot update missing task {task_id}")
            return None
        updated = task.model_copy(update={**changes, "updated_at": utc_now()})
        self.db.update_item(
            updated.pk,
            updated.sk,
            {"Data": self._data(updated), "UpdatedAt": utc_now_iso()},
        )
        return updated
