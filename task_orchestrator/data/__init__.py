"""
Storage for users, sessions and task checkpoints.
"""

from task_orchestrator.data.dynamodb import DynamoDBClient
from task_orchestrator.data.memory import InMemoryRepository
from task_orchestrator.data.models import (
    Session,
    SessionStatus,
    Task,
    TaskStatus,
    User,
)
from task_orchestrator.data.repository import DynamoDBTaskRepository, TaskRepository

__all__ = [
    "DynamoDBClient",
    "DynamoDBTaskRepository",
    "InMemoryRepository",
    "Session",
    "SessionStatus",
    "Task",
    "TaskRepository",
    "TaskStatus",
    "User",
]
