"""
In-memory task repository for tests and local runs.
"""

from typing import Any

from task_orchestrator.data.models import Session, SessionStatus, Task, User
from task_orchestrator.data.repository import TaskRepository, new_guest
from task_orchestrator.orchestration.states.workflow_stages import TaskType
from task_orchestrator.utils.helpers import generate_id, utc_now


class InMemoryRepository(TaskRepository):
    """Keeps users, sessions and tasks in dictionaries."""

    def __init__(self):
        self.users: dict[str, User] = {}
        self.sessions: dict[str, Session] = {}
        self.tasks: dict[str, Task] = {}

    def create_user(self, email: str, name: str) -> User:
        user = User(user_id=generate_id(), email=email, name=name)
        self.users[user.user_id] = user
        return user

    def get_user(self, user_id: str) -> User | None:
        return self.users.get(user_id)

    def create_guest(self) -> User:
        user = new_guest()
        self.users[user.user_id] = user
        return user

    def create_session(self, user_id: str) -> Session:
        session = Session(session_id=generate_id(), user_id=user_id)
        self.sessions[session.session_id] = session
        return session

    def get_session(self, session_id: str) -> Session | None:
        return self.sessions.get(session_id)

    def find_latest_active_session(self, user_id: str) -> Session | None:
        active = [
            session
            for session in self.sessions.values()
            if session.user_id == user_id and session.is_active
        ]
        # Insertion order breaks created_at ties
        return active[-1] if active else None

    def end_session(
        self, session_id: str, status: SessionStatus = SessionStatus.COMPLETED
    ) -> Session | None:
        session = self.sessions.get(session_id)
        if session is None:
            return None
        ended = session.model_copy(update={"status": status, "ended_at": utc_now()})
        self.sessions[session_id] = ended
        return ended

    def create_task(self, session_id: str, task_type: TaskType) -> Task:
        task = Task(
            task_id=generate_id(), session_id=session_id, task_type=TaskType(task_type)
        )
        self.tasks[task.task_id] = task
        return task

    def get_task(self, task_id: str) -> Task | None:
        return self.tasks.get(task_id)

    def list_session_tasks(self, session_id: str) -> list[Task]:
        tasks = [task for task in self.tasks.values() if task.session_id == session_id]
        return list(reversed(tasks))

    def update_task(self, task_id: str, **changes: Any) -> Task | None:
        task = self.tasks.get(task_id)
        if task is None:
            return None
        updated = task.model_copy(update={**changes, "updated_at": utc_now()})
        self.tasks[task_id] = updated
        return updated
