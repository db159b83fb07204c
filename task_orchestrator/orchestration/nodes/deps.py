"""
Dependencies injected into phase nodes.
"""

from dataclasses import dataclass

from task_orchestrator.agents.llm import LLMClient
from task_orchestrator.config import OrchestratorConfig
from task_orchestrator.services.location_service import LocationService
from task_orchestrator.tools.registry import ToolRegistry


@dataclass
class NodeDeps:
    """Everything a node needs besides the state."""

    llm: LLMClient
    registry: ToolRegistry
    config: OrchestratorConfig
    location_service: LocationService | None = None
