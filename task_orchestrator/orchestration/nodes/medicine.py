"""
Medicine search nodes.

After the generic plan has run, the medicine graph finds pharmacies near
the user (geocoding first, web search as the fallback) and calls them to
check stock and price.
"""

from typing import Any

from task_orchestrator.orchestration.nodes.deps import NodeDeps
from task_orchestrator.orchestration.parallel import StepOutcome, run_steps
from task_orchestrator.orchestration.states.agent_state import (
    ExecutionStep,
    ai_message,
)
from task_orchestrator.orchestration.states.medicine_state import (
    CallResult,
    MedicineState,
    Pharmacy,
)
from task_orchestrator.orchestration.states.workflow_stages import Phase
from task_orchestrator.tools.base import error_message, is_error_payload
from task_orchestrator.utils.helpers import utc_now_iso
from task_orchestrator.utils.logging import TaskLogger

GEOCODED_PHONE = "+91 98765 43210"
GEOCODED_DISTANCE = 1000
WEB_SEARCH_PHONE = "+91 XXXXX XXXXX"
WEB_SEARCH_DISTANCE = 2000


def geocoding_args(state: MedicineState) -> dict[str, Any]:
    location = state.resolved_location()
    args: dict[str, Any] = {"radius": state.search_radius, "searchType": "pharmacy"}
    if location is not None and location.has_coordinates:
        args["coordinates"] = {"lat": location.lat, "lng": location.lng}
    else:
        args["address"] = search_address(state)
    return args


def search_address(state: MedicineState) -> str:
    location = state.resolved_location()
    if location is not None and location.describe():
        return location.describe()
    return state.gathered_info.get("userAddress", "")


def pharmacies_from_places(places: list[dict[str, Any]]) -> list[Pharmacy]:
    return [
        Pharmacy(
            id=place.get("id") or f"pharmacy_{index}",
            name=place.get("name") or "Pharmacy",
            address=place.get("address") or "",
            phone=place.get("phone") or GEOCODED_PHONE,
            distance=place.get("distance") or GEOCODED_DISTANCE,
            open_now=place.get("openNow"),
        )
        for index, place in enumerate(places)
    ]


def pharmacies_from_search(results: list[dict[str, Any]]) -> list[Pharmacy]:
    return [
        Pharmacy(
            id=item.get("id") or f"pharmacy_{index + 1}",
            name=item.get("title") or "Pharmacy",
            address=item.get("description") or item.get("url") or "See search results",
            phone=WEB_SEARCH_PHONE,
            distance=item.get("distance") or WEB_SEARCH_DISTANCE,
            open_now=item.get("openNow"),
        )
        for index, item in enumerate(results)
    ]


async def search_via_web(state: MedicineState, deps: NodeDeps) -> list[Pharmacy] | str:
    """
    Pharmacies found by web search.

    Returns:
        The pharmacies, or an error message when the search failed
    """
    address = search_address(state) or "area"
    query = f"{state.resolved_medicine()} pharmacy near {address}"
    TaskLogger.for_state(state).info(f"Trying web search fallback: {query}")

    result = await deps.registry.invoke(
        "web_search",
        {"query": query, "maxResults": 10, "location": address, "category": "pharmacy"},
    )
    if is_error_payload(result):
        return error_message(result)
    return pharmacies_from_search((result.get("data") or {}).get("results") or [])


async def search_pharmacies(state: MedicineState, deps: NodeDeps) -> dict[str, Any]:
    """
    Find pharmacies near the user.

    Args:
        state: Current medicine state
        deps: Injected node dependencies

    Returns:
        Update with the pharmacies found, or an error when every source failed
    """
    task_logger = TaskLogger.for_state(state, agent_type="medicine")

    result = await deps.registry.invoke("geocoding", geocoding_args(state))
    data = (result.get("data") if isinstance(result, dict) else None) or {}
    places = data.get("nearbyPlaces") or []

    if not is_error_payload(result) and places:
        pharmacies = pharmacies_from_places(places)
        task_logger.info(f"Found {len(pharmacies)} pharmacies via geocoding")
        info = state.info_update(
            pharmacies_found=len(pharmacies), geocoding_result=data.get("location")
        )
    else:
        found = await search_via_web(state, deps)
        if isinstance(found, str):
            task_logger.error(f"Pharmacy search failed: {found}")
            return {"error": found, "current_phase": Phase.ERROR}
        pharmacies = found
        task_logger.info(f"Web search fallback found {len(pharmacies)} results")
        info = state.info_update(
            pharmacies_found=len(pharmacies), web_search_fallback=True
        )

    return {"pharmacies": pharmacies, "gathered_info": info}


def call_result(pharmacy: Pharmacy, outcome: StepOutcome) -> CallResult:
    """Call result for one pharmacy; a failed call counts as unanswered."""
    if not outcome.succeeded:
        return CallResult(
            pharmacy_id=pharmacy.id,
            pharmacy_name=pharmacy.name,
            status="no_answer",
            availability="unknown",
            notes="Call failed",
            timestamp=utc_now_iso(),
        )
    data = outcome.result.get("data") or {}
    return CallResult(
        pharmacy_id=pharmacy.id,
        pharmacy_name=pharmacy.name,
        status=data.get("status") or "no_answer",
        availability=data.get("availability") or "unknown",
        price=data.get("price"),
        quantity=data.get("quantity"),
        notes=data.get("notes") or "",
        transcript=data.get("transcript"),
        timestamp=data.get("timestamp") or utc_now_iso(),
    )


def select_pharmacy(pharmacies: list[Pharmacy]) -> Pharmacy | None:
    """Cheapest pharmacy with the medicine in stock."""
    available = [pharmacy for pharmacy in pharmacies if pharmacy.availability == "available"]
    if not available:
        return None
    return min(available, key=lambda pharmacy: pharmacy.price or 0)


async def call_pharmacies(state: MedicineState, deps: NodeDeps) -> dict[str, Any]:
    """
    Call the nearest pharmacies to check stock.

    Calls run on the step runner, capped at `max_pharmacy_calls` pharmacies.

    Args:
        state: Current medicine state
        deps: Injected node dependencies

    Returns:
        Update with call results, refreshed pharmacies and the selected one
    """
    task_logger = TaskLogger.for_state(state, agent_type="medicine")
    to_call = state.pharmacies[: deps.config.agents.max_pharmacy_calls]
    quantity = state.preferences.get("quantity") or state.gathered_info.quantity or 1

    steps = [
        (
            index,
            ExecutionStep(
                id=f"call_{pharmacy.id}",
                name=f"Call {pharmacy.name}",
                tool_name="call_pharmacy",
                tool_args={
                    "pharmacyId": pharmacy.id,
                    "pharmacyName": pharmacy.name,
                    "phoneNumber": pharmacy.phone,
                    "medicineName": state.resolved_medicine(),
                    "quantity": quantity,
                },
            ),
        )
        for index, pharmacy in enumerate(to_call)
    ]

    async def invoke(step: ExecutionStep) -> Any:
        return await deps.registry.invoke(step.tool_name, step.tool_args)

    outcomes = await run_steps(steps, invoke, cap=deps.config.agents.batch_cap)
    results = [call_result(to_call[outcome.index], outcome) for outcome in outcomes]

    by_id = {result.pharmacy_id: result for result in results}
    pharmacies = [
        pharmacy.model_copy(
            update={
                "availability": by_id[pharmacy.id].availability,
                "price": by_id[pharmacy.id].price,
            }
        )
        if pharmacy.id in by_id
        else pharmacy
        for pharmacy in state.pharmacies
    ]
    selected = select_pharmacy(pharmacies)
    available_count = sum(1 for pharmacy in pharmacies if pharmacy.availability == "available")

    task_logger.info(
        f"Called {len(results)} pharmacies, {available_count} have stock"
    )
    return {
        "pharmacies": pharmacies,
        "call_results": results,
        "selected_pharmacy": selected,
        "gathered_info": state.info_update(
            calls_made=len(results),
            available_count=available_count,
            pharmacies=pharmacies,
            call_results=results,
            selected_pharmacy=selected,
        ),
        "messages": ai_message(
            f"Called {len(results)} pharmacies. "
            f"{available_count} have {state.resolved_medicine()} in stock."
        ),
    }
