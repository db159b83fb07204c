"""
Tools invoked by execution plan steps.
"""

from task_orchestrator.tools.base import BaseTool, error_message, is_error_payload
from task_orchestrator.tools.booking_simulator import BookingSimulatorTool
from task_orchestrator.tools.call_simulator import CallSimulatorTool
from task_orchestrator.tools.geocoding import GeocodingTool, haversine_distance
from task_orchestrator.tools.registry import (
    AGENT_TOOLS,
    ToolRegistry,
    create_default_registry,
)
from task_orchestrator.tools.web_search import WebSearchTool

__all__ = [
    "AGENT_TOOLS",
    "BaseTool",
    "BookingSimulatorTool",
    "CallSimulatorTool",
    "GeocodingTool",
    "ToolRegistry",
    "WebSearchTool",
    "create_default_registry",
    "error_message",
    "haversine_distance",
    "is_error_payload",
]
