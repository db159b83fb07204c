"""
Pytest configuration for the Task Orchestrator tests.
"""

from typing import Any

import pytest

from task_orchestrator.config import (
    AgentConfig,
    APIConfig,
    LLMConfig,
    LogLevel,
    OrchestratorConfig,
    SystemConfig,
    ToolConfig,
)
from task_orchestrator.data.memory import InMemoryRepository
from task_orchestrator.orchestration.nodes import NodeDeps
from task_orchestrator.orchestration.states import (
    MedicineState,
    TravelState,
    human_message,
)
from task_orchestrator.tools.registry import ToolRegistry
from task_orchestrator.utils.logging import setup_logging
from tests.fakes import FakeLLM, FakeTool, search_results


@pytest.fixture(scope="session", autouse=True)
def setup_test_logging():
    """Set up logging for tests."""
    setup_logging(LogLevel.DEBUG)


@pytest.fixture
def test_config():
    """Test orchestrator configuration."""
    return OrchestratorConfig(
        llm=LLMConfig(api_key="test-key"),
        api=APIConfig(
            aws_region="ap-south-1",
            dynamodb_table_name="task-orchestrator-test",
        ),
        agents=AgentConfig(timeout_seconds=10),
        tools=ToolConfig(call_min_delay=0, call_max_delay=0),
        system=SystemConfig(log_level=LogLevel.DEBUG, environment="test"),
    )


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def web_search_tool():
    return FakeTool("web_search", result=search_results(3))


@pytest.fixture
def geocoding_tool():
    return FakeTool(
        "geocoding",
        result={
            "success": True,
            "data": {
                "location": {"lat": 12.97, "lng": 77.59, "address": "Indiranagar"},
                "nearbyPlaces": [
                    {"id": "p1", "name": "Apollo Pharmacy", "address": "100 Ft Rd"},
                    {"id": "p2", "name": "MedPlus", "address": "CMH Rd", "distance": 800},
                ],
            },
        },
    )


@pytest.fixture
def call_tool():
    prices = {"p1": 45.0, "p2": 30.0}

    def answer(args: dict[str, Any]) -> dict[str, Any]:
        return {
            "success": True,
            "data": {
                "status": "success",
                "availability": "available",
                "price": prices.get(args["pharmacyId"], 50.0),
                "quantity": args.get("quantity"),
            },
        }

    return FakeTool("call_pharmacy", handler=answer)


@pytest.fixture
def registry(web_search_tool, geocoding_tool, call_tool):
    registry = ToolRegistry()
    for tool in (web_search_tool, geocoding_tool, call_tool, FakeTool("book_activity")):
        registry.register(tool)
    return registry


@pytest.fixture
def deps(fake_llm, registry, test_config):
    return NodeDeps(llm=fake_llm, registry=registry, config=test_config)


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def medicine_state():
    def build(message: str = "find paracetamol", **fields: Any) -> MedicineState:
        return MedicineState(
            session_id="session-1",
            task_id="task-1",
            messages=human_message(message),
            **fields,
        )

    return build


@pytest.fixture
def travel_state():
    def build(message: str = "plan a trip to Goa", **fields: Any) -> TravelState:
        return TravelState(
            session_id="session-1",
            task_id="task-2",
            messages=human_message(message),
            **fields,
        )

    return build
