"""
Utility modules for the Task Orchestrator.
"""

from task_orchestrator.config import LogLevel
from task_orchestrator.utils.error_handling import (
    APIError,
    ErrorCategory,
    LLMError,
    OrchestratorError,
    PlanParseError,
    ResourceNotFoundError,
    ToolError,
    ToolNotFoundError,
    ValidationError,
    categorize_error,
    handle_errors,
    retry_async,
    safe_execute,
    with_retry,
)
from task_orchestrator.utils.helpers import (
    generate_id,
    safe_serialize,
    to_json,
    truncate_text,
)
from task_orchestrator.utils.json_parsing import extract_json, parse_json_response
from task_orchestrator.utils.logging import TaskLogger, get_logger, setup_logging

__all__ = [
    "APIError",
    "ErrorCategory",
    "LLMError",
    "LogLevel",
    "OrchestratorError",
    "PlanParseError",
    "ResourceNotFoundError",
    "TaskLogger",
    "ToolError",
    "ToolNotFoundError",
    "ValidationError",
    "categorize_error",
    "extract_json",
    "generate_id",
    "get_logger",
    "handle_errors",
    "parse_json_response",
    "retry_async",
    "safe_execute",
    "safe_serialize",
    "setup_logging",
    "to_json",
    "truncate_text",
    "with_retry",
]
