"""
Logging framework for the Task Orchestrator.

This module configures loguru for the whole package and provides a
task-scoped logger that carries session, task, and agent context on every
record emitted by phase nodes.
"""

import json
import os
import sys
from typing import Any

from loguru import logger

from task_orchestrator.config import LogLevel


def get_logger(name: str):
    """
    Get a logger instance for the specified module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Configured logger instance with the module name attached
    """
    return logger.bind(name=name)


def setup_logging(
    log_level: LogLevel | str = LogLevel.INFO, log_file: str | None = None
):
    """
    Set up the logging configuration for the application.

    Args:
        log_level: The logging level to use (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path to write logs to
    """
    if isinstance(log_level, str):
        log_level = LogLevel(log_level.upper())

    logger.remove()

    logger.add(
        sys.stderr,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        level=log_level.value,
        colorize=True,
    )

    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        logger.add(
            log_file,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
                "{name}:{function}:{line} - {message} | {extra}"
            ),
            level=log_level.value,
            rotation="10 MB",
            compression="zip",
        )

    logger.info(f"Logging initialized with level {log_level.value}")


class TaskLogger:
    """
    Logger bound to one task, so every record from a node run can be
    correlated by session and task id.
    """

    def __init__(
        self,
        session_id: str | None = None,
        task_id: str | None = None,
        agent_type: str | None = None,
    ):
        self.session_id = session_id
        self.task_id = task_id
        self.agent_type = agent_type
        self.logger = logger.bind(
            session_id=session_id, task_id=task_id, agent_type=agent_type
        )

    @classmethod
    def for_state(cls, state: Any, agent_type: str | None = None) -> "TaskLogger":
        """Build a logger from anything carrying session_id/task_id attributes."""
        return cls(
            session_id=getattr(state, "session_id", None),
            task_id=getattr(state, "task_id", None),
            agent_type=agent_type,
        )

    def debug(self, message: str, **kwargs):
        self.logger.debug(message, **kwargs)

    def info(self, message: str, **kwargs):
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs):
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        self.logger.error(message, **kwargs)

    def step(self, node: str, phase: str, detail: str | None = None):
        """
        Log entry into a phase node.

        Args:
            node: Node identifier
            phase: Phase the node belongs to
            detail: Optional detail such as the step being executed
        """
        suffix = f": {detail}" if detail else ""
        self.logger.info(f"Agent step [{phase}] {node}{suffix}", node=node, phase=phase)

    def log_tool_call(self, tool_name: str, args: dict[str, Any] | None = None):
        """Log an outbound tool invocation."""
        self.debug(
            f"Tool call: {tool_name}",
            tool_name=tool_name,
            args=self._safe_json(args),
        )

    def log_llm_output(self, purpose: str, response: Any):
        """Log the raw text returned by the LLM for one node call."""
        self.debug(f"LLM response ({purpose})", response=self._safe_json(response))

    def _safe_json(self, obj: Any) -> str | None:
        """
        Safely convert an object to JSON, handling conversion errors.

        Args:
            obj: Object to convert to JSON

        Returns:
            JSON string or None if conversion fails
        """
        if obj is None:
            return None

        try:
            return json.dumps(obj, default=str)
        except (TypeError, ValueError) as e:
            self.warning(f"Failed to serialize object to JSON: {e!s}")
            return str(obj)
