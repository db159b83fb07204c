"""
Storage models for users, sessions and tasks.

Each model includes DynamoDB key generation (pk, sk, gsi1pk, gsi1sk)
matching the single-table design access patterns.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, computed_field

from task_orchestrator.orchestration.states.workflow_stages import Phase, TaskType
from task_orchestrator.utils.helpers import utc_now


class EntityType(str, Enum):
    USER = "User"
    SESSION = "Session"
    TASK = "Task"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)


class User(BaseModel):
    """User entity. PK=USER#id, SK=PROFILE."""

    user_id: str
    email: str
    name: str
    is_guest: bool = False
    created_at: datetime = Field(default_factory=utc_now)

    @computed_field
    @property
    def pk(self) -> str:
        return f"USER#{self.user_id}"

    @computed_field
    @property
    def sk(self) -> str:
        return "PROFILE"

    @computed_field
    @property
    def gsi1pk(self) -> str:
        return f"EMAIL#{self.email}"

    @computed_field
    @property
    def gsi1sk(self) -> str:
        return f"USER#{self.user_id}"


class Session(BaseModel):
    """Session entity. PK=SESSION#id, SK=METADATA; GSI1 lists a user's sessions."""

    session_id: str
    user_id: str
    status: SessionStatus = SessionStatus.ACTIVE
    intent_type: TaskType | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    ended_at: datetime | None = None

    @computed_field
    @property
    def pk(self) -> str:
        return f"SESSION#{self.session_id}"

    @computed_field
    @property
    def sk(self) -> str:
        return "METADATA"

    @computed_field
    @property
    def gsi1pk(self) -> str:
        return f"USER#{self.user_id}#SESSION"

    @computed_field
    @property
    def gsi1sk(self) -> str:
        return self.created_at.isoformat()

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE


class Task(BaseModel):
    """
    Task entity. PK=TASK#id, SK=METADATA; GSI1 lists a session's tasks.

    `gathered_info` and `execution_plan` hold the persisted checkpoint in
    wire form (camelCase keys).
    """

    task_id: str
    session_id: str
    task_type: TaskType
    status: TaskStatus = TaskStatus.PENDING
    phase: Phase = Phase.CLARIFICATION
    progress: int = 0
    gathered_info: dict[str, Any] = Field(default_factory=dict)
    execution_plan: list[dict[str, Any]] | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None

    @computed_field
    @property
    def pk(self) -> str:
        return f"TASK#{self.task_id}"

    @computed_field
    @property
    def sk(self) -> str:
        return "METADATA"

    @computed_field
    @property
    def gsi1pk(self) -> str:
        return f"SESSION#{self.session_id}#TASK"

    @computed_field
    @property
    def gsi1sk(self) -> str:
        return self.created_at.isoformat()

    @property
    def is_active(self) -> bool:
        return self.status.is_active
