"""
Unit tests for the pharmacy search and call nodes.
"""

import pytest

from task_orchestrator.orchestration.core.graph_builder import build_medicine_graph
from task_orchestrator.orchestration.nodes import call_pharmacies, search_pharmacies
from task_orchestrator.orchestration.nodes.medicine import (
    GEOCODED_DISTANCE,
    GEOCODED_PHONE,
    WEB_SEARCH_PHONE,
    geocoding_args,
    select_pharmacy,
)
from task_orchestrator.orchestration.states import (
    Location,
    MedicineInfo,
    MedicineState,
    Pharmacy,
)
from task_orchestrator.orchestration.states.workflow_stages import Phase
from tests.fakes import FakeTool


@pytest.fixture
def located_state(medicine_state):
    def build(**fields):
        return medicine_state(
            gathered_info=MedicineInfo(
                medicine_name="paracetamol", location=Location(address="Indiranagar")
            ),
            **fields,
        )

    return build


PHARMACIES = [
    Pharmacy(id="p1", name="Apollo Pharmacy", phone="+91 1"),
    Pharmacy(id="p2", name="MedPlus", phone="+91 2"),
]


def test_geocoding_args_prefers_coordinates(medicine_state):
    state = medicine_state(location=Location(lat=12.9, lng=77.6))
    args = geocoding_args(state)
    assert args["coordinates"] == {"lat": 12.9, "lng": 77.6}
    assert "address" not in args


@pytest.mark.asyncio
async def test_search_via_geocoding(deps, geocoding_tool, web_search_tool, located_state):
    update = await search_pharmacies(located_state(), deps)
    pharmacies = update["pharmacies"]

    assert geocoding_tool.calls[0]["address"] == "Indiranagar"
    assert geocoding_tool.calls[0]["searchType"] == "pharmacy"
    assert [pharmacy.id for pharmacy in pharmacies] == ["p1", "p2"]
    assert pharmacies[0].phone == GEOCODED_PHONE
    assert pharmacies[0].distance == GEOCODED_DISTANCE
    assert pharmacies[1].distance == 800
    assert update["gathered_info"].pharmacies_found == 2
    assert web_search_tool.calls == []


@pytest.mark.asyncio
async def test_search_falls_back_to_web(deps, registry, web_search_tool, located_state):
    registry.register(
        FakeTool("geocoding", result={"success": True, "data": {"nearbyPlaces": []}})
    )

    update = await search_pharmacies(located_state(), deps)

    assert web_search_tool.calls[0]["query"] == "paracetamol pharmacy near Indiranagar"
    assert [pharmacy.name for pharmacy in update["pharmacies"]] == [
        "Result 1",
        "Result 2",
        "Result 3",
    ]
    assert update["pharmacies"][0].phone == WEB_SEARCH_PHONE
    assert update["gathered_info"].web_search_fallback is True


@pytest.mark.asyncio
async def test_search_error_when_every_source_fails(deps, registry, located_state):
    registry.register(FakeTool("geocoding", result={"error": True, "message": "no token"}))
    registry.register(FakeTool("web_search", result={"success": False, "error": "quota"}))

    update = await search_pharmacies(located_state(), deps)
    assert update == {"error": "quota", "current_phase": Phase.ERROR}


@pytest.mark.asyncio
async def test_call_pharmacies_selects_cheapest(deps, call_tool, located_state):
    update = await call_pharmacies(located_state(pharmacies=PHARMACIES), deps)

    assert [call["pharmacyId"] for call in call_tool.calls] == ["p1", "p2"]
    assert call_tool.calls[0]["medicineName"] == "paracetamol"
    assert call_tool.calls[0]["quantity"] == 1
    assert update["selected_pharmacy"].id == "p2"
    assert update["selected_pharmacy"].price == 30.0
    assert [result.status for result in update["call_results"]] == ["success", "success"]
    assert update["gathered_info"].available_count == 2
    assert update["messages"][0].content == "Called 2 pharmacies. 2 have paracetamol in stock."


@pytest.mark.asyncio
async def test_call_pharmacies_respects_call_limit(deps, call_tool, located_state):
    deps.config.agents.max_pharmacy_calls = 1

    update = await call_pharmacies(located_state(pharmacies=PHARMACIES), deps)

    assert len(call_tool.calls) == 1
    assert update["gathered_info"].calls_made == 1
    assert update["pharmacies"][1].availability == "unknown"
    assert update["selected_pharmacy"].id == "p1"


@pytest.mark.asyncio
async def test_failed_call_counts_as_unanswered(deps, registry, located_state):
    def answer(args):
        if args["pharmacyId"] == "p2":
            raise ConnectionError("line dropped")
        return {
            "success": True,
            "data": {"status": "success", "availability": "unavailable"},
        }

    registry.register(FakeTool("call_pharmacy", handler=answer))

    update = await call_pharmacies(located_state(pharmacies=PHARMACIES), deps)
    first, second = update["call_results"]

    assert first.availability == "unavailable"
    assert second.status == "no_answer"
    assert second.notes == "Call failed"
    assert update["selected_pharmacy"] is None


def test_select_pharmacy_ignores_unavailable():
    pharmacies = [
        Pharmacy(id="a", name="A", availability="unavailable", price=1.0),
        Pharmacy(id="b", name="B", availability="available", price=20.0),
        Pharmacy(id="c", name="C", availability="available", price=15.0),
    ]
    assert select_pharmacy(pharmacies).id == "c"
    assert select_pharmacy([]) is None


@pytest.mark.asyncio
async def test_medicine_graph_runs_end_to_end(deps, fake_llm, medicine_state):
    fake_llm.script(
        "information extraction",
        '{"medicineName": "paracetamol", "location": "Indiranagar"}',
    )
    fake_llm.script("information gathering", "SUFFICIENT_INFO")
    fake_llm.script("validation", "VALID")
    fake_llm.script("final response", "MedPlus has paracetamol for ₹30.")
    machine = build_medicine_graph(deps)

    result = await machine.run(medicine_state("find paracetamol near Indiranagar"), "task-1")

    assert isinstance(result, MedicineState)
    assert result.error is None
    assert result.current_phase == Phase.COMPLETE
    assert result.gathered_info.medicine_name == "paracetamol"
    assert len(result.call_results) == 2
    assert result.selected_pharmacy.id == "p2"
    assert result.final_response == "MedPlus has paracetamol for ₹30."
