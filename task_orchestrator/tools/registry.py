"""
Tool registry for the orchestration core.

The registry is an explicit instance built once at process start and passed
to the orchestrator and phase nodes, so tests can inject fake tool sets.
"""

from collections.abc import Awaitable, Callable
from typing import Any

from task_orchestrator.config import OrchestratorConfig
from task_orchestrator.orchestration.states.workflow_stages import TaskType
from task_orchestrator.tools.base import BaseTool
from task_orchestrator.utils.error_handling import ToolNotFoundError
from task_orchestrator.utils.logging import get_logger

logger = get_logger(__name__)

ToolCallable = Callable[[dict[str, Any]], Awaitable[Any]]

# Tools each agent type may plan with
AGENT_TOOLS: dict[TaskType, list[str]] = {
    TaskType.MEDICINE: ["web_search", "geocoding", "call_pharmacy"],
    TaskType.TRAVEL: ["web_search", "geocoding", "book_activity"],
}


class ToolRegistry:
    """
    Maps tool names to tools and scopes them per agent type.

    Any object exposing `name`, `description` and an async `invoke(args)`
    can be registered.
    """

    def __init__(self, agent_tools: dict[TaskType, list[str]] | None = None):
        self._tools: dict[str, BaseTool] = {}
        self._agent_tools = agent_tools if agent_tools is not None else AGENT_TOOLS

    def register(self, tool: BaseTool) -> None:
        """
        Register a tool, replacing any tool with the same name.

        Args:
            tool: The tool instance to register
        """
        if tool.name in self._tools:
            logger.warning(f"Tool {tool.name} already registered, overwriting")
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def get_or_raise(self, name: str) -> BaseTool:
        """
        Get a tool by name.

        Raises:
            ToolNotFoundError: If no tool is registered under that name
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def has(self, name: str) -> bool:
        return name in self._tools

    def remove(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def clear(self) -> None:
        self._tools.clear()

    def names(self) -> list[str]:
        return list(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def tool_names_for_agent(self, agent_type: TaskType | str) -> list[str]:
        return list(self._agent_tools.get(TaskType(agent_type), []))

    def tools_for_agent(self, agent_type: TaskType | str) -> list[BaseTool]:
        """Registered tools available to an agent type, in configured order."""
        names = self.tool_names_for_agent(agent_type)
        if not names:
            logger.warning(f"No tools configured for agent type: {agent_type}")
        return [self._tools[name] for name in names if name in self._tools]

    def describe_for_agent(self, agent_type: TaskType | str) -> str:
        """Plain-text tool list used in planning prompts."""
        return "\n".join(
            f"- {tool.name}: {tool.description}"
            for tool in self.tools_for_agent(agent_type)
        )

    async def invoke(self, name: str, args: dict[str, Any] | None) -> Any:
        """
        Invoke a tool by name.

        Raises:
            ToolNotFoundError: If no tool is registered under that name
        """
        return await self.get_or_raise(name).invoke(args or {})


def create_default_registry(config: OrchestratorConfig) -> ToolRegistry:
    """
    Build the registry with the standard tool set.

    Args:
        config: Configuration supplying API keys and tool defaults

    Returns:
        Registry holding web_search, geocoding, call_pharmacy and book_activity
    """
    from task_orchestrator.tools.booking_simulator import BookingSimulatorTool
    from task_orchestrator.tools.call_simulator import CallSimulatorTool
    from task_orchestrator.tools.geocoding import GeocodingTool
    from task_orchestrator.tools.web_search import WebSearchTool
    from task_orchestrator.utils.rate_limiting import (
        DEFAULT_RATE_LIMITS,
        RateLimitManager,
    )

    manager = RateLimitManager(DEFAULT_RATE_LIMITS)
    registry = ToolRegistry()
    registry.register(
        WebSearchTool(
            api_key=config.api.firecrawl_api_key,
            default_max_results=config.tools.web_search_max_results,
            timeout_seconds=config.tools.web_search_timeout,
            manager=manager,
        )
    )
    registry.register(
        GeocodingTool(
            access_token=config.api.mapbox_access_token,
            timeout_seconds=config.tools.geocoding_timeout,
            manager=manager,
        )
    )
    registry.register(
        CallSimulatorTool(
            min_delay=config.tools.call_min_delay,
            max_delay=config.tools.call_max_delay,
        )
    )
    registry.register(
        BookingSimulatorTool(
            confirmation_rate=config.tools.booking_confirmation_rate,
            min_delay=config.tools.booking_min_delay,
            max_delay=config.tools.booking_max_delay,
        )
    )
    logger.info(f"Tool registry initialized with {len(registry)} tools")
    return registry
