"""
Base class for tools invoked from execution plans.

Every tool declares a pydantic input schema and returns a JSON-compatible
payload in one of three shapes:

    {"success": True, "data": ...}                      tool succeeded
    {"success": False, "error": "...", "details": ...}  tool reported a failure
    {"error": True, "message": "...", "tool": "..."}    tool raised
"""

import time
from abc import ABC, abstractmethod
from typing import Any, ClassVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from task_orchestrator.utils.error_handling import ToolError
from task_orchestrator.utils.helpers import safe_serialize, truncate_text
from task_orchestrator.utils.logging import get_logger

logger = get_logger(__name__)


def is_error_payload(result: Any) -> bool:
    """True when a tool result reports a failure in either error shape."""
    if not isinstance(result, dict):
        return False
    return result.get("error") is True or result.get("success") is False


def error_message(result: Any) -> str:
    """Human readable message from an error payload."""
    if isinstance(result, dict):
        message = result.get("message") or result.get("error")
        if isinstance(message, str):
            return message
    return "Tool reported an error"


class BaseTool(ABC):
    """
    A named, schema-validated tool.

    Subclasses implement `_run`, which receives the validated input model and
    returns a payload built with `success()` or `failure()`.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    args_schema: ClassVar[type[BaseModel]]

    async def invoke(self, args: dict[str, Any] | None) -> dict[str, Any]:
        """
        Validate the arguments and run the tool.

        Args:
            args: Raw tool arguments from the execution plan

        Returns:
            Result payload; exceptions are converted to an error payload
        """
        start = time.monotonic()
        logger.debug(f"Tool {self.name} start", tool=self.name, args=args)
        try:
            parsed = self.args_schema.model_validate(args or {})
            result = await self._run(parsed)
        except PydanticValidationError as e:
            logger.warning(f"Tool {self.name} rejected input: {e!s}")
            return {"error": True, "message": f"Invalid input: {e!s}", "tool": self.name}
        except ToolError as e:
            logger.warning(f"Tool {self.name} reported: {e!s}")
            return {"error": True, "message": str(e), "tool": e.tool_name}
        except Exception as e:
            logger.error(f"Tool {self.name} failed: {e!s}")
            return {"error": True, "message": str(e), "tool": self.name}

        duration = time.monotonic() - start
        logger.debug(
            f"Tool {self.name} complete in {duration:.2f}s: "
            f"{truncate_text(str(result), 200)}"
        )
        return result

    @abstractmethod
    async def _run(self, args: Any) -> dict[str, Any]:
        """Run the tool with validated input."""

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.args_schema.model_json_schema(),
        }

    @staticmethod
    def success(data: Any) -> dict[str, Any]:
        return {"success": True, "data": safe_serialize(data)}

    @staticmethod
    def failure(message: str, details: Any = None) -> dict[str, Any]:
        return {"success": False, "error": message, "details": safe_serialize(details)}
