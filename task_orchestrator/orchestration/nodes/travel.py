"""
Travel planning nodes.

Research the destination, generate a day-by-day itinerary and run the
confirmation loop: the itinerary is shown to the user, who either accepts
it or asks for changes that are fed back into generation.
"""

import re
from datetime import date, timedelta
from typing import Any

from task_orchestrator.orchestration.nodes.deps import NodeDeps
from task_orchestrator.orchestration.parallel import run_steps
from task_orchestrator.orchestration.states.agent_state import (
    ExecutionStep,
    HumanInputRequest,
    ai_message,
    pause_for_input,
)
from task_orchestrator.orchestration.states.travel_state import (
    ItineraryDay,
    TravelState,
    trip_duration,
)
from task_orchestrator.orchestration.states.workflow_stages import Phase
from task_orchestrator.prompts.templates import (
    ITINERARY_FEEDBACK,
    ITINERARY_GENERATION,
    render_template,
)
from task_orchestrator.utils.helpers import parse_date, to_json, truncate_text
from task_orchestrator.utils.logging import TaskLogger

MAX_DESCRIPTION_CHARS = 500
DEFAULT_TRIP_DAYS = 2
DEFAULT_DAY_COST = 100

RESEARCH_QUERIES = {
    "activities": ("things to do in {destination}", "activity", 10),
    "restaurants": ("best restaurants in {destination}", "restaurant", 5),
    "hotels": ("hotels in {destination}", "hotel", 5),
}

CONFIRMATION_OPTIONS = ["Looks great!", "Make changes", "More activities", "Simpler plan"]

ACCEPT_KEYWORDS = re.compile(
    r"\b(good|great|proceed|ok|okay|yes|confirm|perfect|looks)\b", re.IGNORECASE
)

RESEARCH_FIELDS = ("id", "title", "description", "url", "address", "phone", "rating", "priceRange")


async def research_destination(state: TravelState, deps: NodeDeps) -> dict[str, Any]:
    """
    Search for activities, restaurants and hotels at the destination.

    The three searches run as one batch on the step runner. A failed search
    contributes an empty list.

    Args:
        state: Current travel state
        deps: Injected node dependencies

    Returns:
        Update with research results and their counts
    """
    task_logger = TaskLogger.for_state(state, agent_type="travel")
    destination = state.resolved_destination()

    steps = [
        (
            index,
            ExecutionStep(
                id=f"research_{key}",
                name=f"Research {key}",
                tool_name="web_search",
                tool_args={
                    "query": query.format(destination=destination),
                    "category": category,
                    "maxResults": max_results,
                },
            ),
        )
        for index, (key, (query, category, max_results)) in enumerate(
            RESEARCH_QUERIES.items()
        )
    ]

    async def invoke(step: ExecutionStep) -> Any:
        return await deps.registry.invoke(step.tool_name, step.tool_args)

    outcomes = await run_steps(steps, invoke, cap=deps.config.agents.batch_cap)

    research: dict[str, list[dict[str, Any]]] = {}
    for key, outcome in zip(RESEARCH_QUERIES, outcomes, strict=True):
        data = outcome.result.get("data") if outcome.succeeded else None
        research[key] = list((data or {}).get("results") or [])

    task_logger.info(
        f"Research complete: {len(research['activities'])} activities, "
        f"{len(research['restaurants'])} restaurants, {len(research['hotels'])} hotels"
    )
    return {
        "research_results": research,
        "gathered_info": state.info_update(
            activities_found=len(research["activities"]),
            restaurants_found=len(research["restaurants"]),
            hotels_found=len(research["hotels"]),
        ),
    }


def trim_research(research: dict[str, Any]) -> dict[str, Any]:
    """Keep only short descriptive fields so the prompt stays small."""
    trimmed: dict[str, Any] = {}
    for key, value in research.items():
        if not isinstance(value, list):
            trimmed[key] = value
            continue
        items = []
        for item in value:
            if not isinstance(item, dict):
                items.append(item)
                continue
            kept = {field: item.get(field) for field in RESEARCH_FIELDS}
            if isinstance(kept["description"], str):
                kept["description"] = truncate_text(
                    kept["description"], MAX_DESCRIPTION_CHARS, suffix="…"
                )
            items.append(kept)
        trimmed[key] = items
    return trimmed


def budget_text(state: TravelState) -> str:
    budget = state.budget
    if budget is not None:
        return f"{budget.min:g}-{budget.max:g} {budget.currency}"
    if state.gathered_info.budget_max is not None:
        return f"up to {state.gathered_info.budget_max:g}"
    return "flexible"


def _joined(primary: list[str] | None, fallback: list[str] | None, default: str) -> str:
    return ", ".join(primary or []) or ", ".join(fallback or []) or default


def trip_dates(state: TravelState) -> tuple[date, date, int]:
    """Start date, end date and number of days, with defaults filled in."""
    info = state.gathered_info
    start = parse_date(state.start_date or info.start_date) or date.today()
    days = trip_duration(state) or DEFAULT_TRIP_DAYS
    end = parse_date(state.end_date or info.end_date) or start + timedelta(days=days)
    return start, end, days


def default_itinerary(start: date, days: int) -> list[ItineraryDay]:
    itinerary = []
    for index in range(days):
        if index == 0:
            theme = "Arrival & Exploration"
        elif index == days - 1:
            theme = "Departure Day"
        else:
            theme = f"Day {index + 1} Adventures"
        itinerary.append(
            ItineraryDay(
                day_number=index + 1,
                date=(start + timedelta(days=index)).isoformat(),
                theme=theme,
                activities=[
                    {
                        "id": f"act_{index}_1",
                        "name": "Morning Activity",
                        "description": "Explore local attractions",
                        "location": "City Center",
                        "duration": 180,
                        "cost": 50,
                        "currency": "USD",
                        "category": "sightseeing",
                    }
                ],
                accommodation=(
                    {
                        "id": f"acc_{index}",
                        "name": "Recommended Hotel",
                        "type": "hotel",
                        "address": "Central Location",
                        "pricePerNight": 100,
                        "currency": "USD",
                    }
                    if index < days - 1
                    else None
                ),
                meals=[
                    {
                        "id": f"meal_{index}_1",
                        "type": "lunch",
                        "restaurantName": "Local Restaurant",
                        "cuisine": "Local",
                        "estimatedCost": 25,
                    }
                ],
                estimated_cost=200,
            )
        )
    return itinerary


def parse_itinerary(raw: Any, start: date) -> list[ItineraryDay]:
    """
    Itinerary days from the model's JSON.

    Dates are recomputed from the start date; missing fields get defaults.
    Returns an empty list when the JSON holds no days.
    """
    days = raw.get("itinerary") if isinstance(raw, dict) else None
    if not isinstance(days, list):
        return []

    itinerary = []
    for index, day in enumerate(item for item in days if isinstance(item, dict)):
        itinerary.append(
            ItineraryDay(
                day_number=day.get("dayNumber") or index + 1,
                date=(start + timedelta(days=index)).isoformat(),
                theme=day.get("theme") or f"Day {index + 1}",
                activities=day.get("activities") or [],
                accommodation=day.get("accommodation") or None,
                meals=day.get("meals") or [],
                transportation=day.get("transportation") or [],
                estimated_cost=day.get("estimatedCost") or DEFAULT_DAY_COST,
                notes=day.get("notes"),
            )
        )
    return itinerary


async def build_itinerary(
    state: TravelState, deps: NodeDeps, feedback: str | None = None
) -> dict[str, Any]:
    """
    Ask the LLM for an itinerary and build the state update.

    Args:
        state: Current travel state
        deps: Injected node dependencies
        feedback: The user's requested changes to the current itinerary

    Returns:
        Update with the itinerary, tips and cost figures
    """
    task_logger = TaskLogger.for_state(state, agent_type="travel")
    info = state.gathered_info
    start, end, days = trip_dates(state)

    feedback_text = ""
    if feedback:
        feedback_text = render_template(
            ITINERARY_FEEDBACK,
            feedback=feedback,
            currentItinerary=to_json(state.itinerary or [], indent=2),
        )

    system = render_template(
        ITINERARY_GENERATION,
        destination=state.resolved_destination() or "the destination",
        startDate=start.isoformat(),
        endDate=end.isoformat(),
        days=days,
        budget=budget_text(state),
        travelStyle=_joined(
            state.preferences.get("travel_style"), info.travel_style, "general"
        ),
        interests=_joined(
            state.preferences.get("interests"),
            info.interests,
            "sightseeing, local cuisine",
        ),
        numberOfTravelers=info.number_of_travelers or state.number_of_travelers,
        researchResults=to_json(trim_research(state.research_results), indent=2),
        feedback=feedback_text,
    )
    raw = await deps.llm.complete_json(
        system, "Create the itinerary.", default={}, purpose="itinerary generation"
    )

    itinerary = parse_itinerary(raw, start)
    if not itinerary:
        task_logger.warning(
            f"Using default {days}-day itinerary, response had no itinerary JSON"
        )
        itinerary = default_itinerary(start, days)

    tips = raw.get("tips") if isinstance(raw, dict) else None
    total = sum(day.estimated_cost for day in itinerary)
    task_logger.info(f"Generated {len(itinerary)}-day itinerary")
    return {
        "itinerary": itinerary,
        "rich_plan": {"tips": tips if isinstance(tips, list) else []},
        "gathered_info": state.info_update(
            itinerary_days=len(itinerary), total_estimated_cost=total
        ),
    }


async def generate_itinerary(state: TravelState, deps: NodeDeps) -> dict[str, Any]:
    """Generate the first itinerary from the research results."""
    return await build_itinerary(state, deps)


def _names(items: list[dict[str, Any]], *keys: str) -> str:
    names = []
    for item in items:
        for key in keys:
            if item.get(key):
                names.append(str(item[key]))
                break
    return ", ".join(names)


def format_itinerary_summary(itinerary: list[ItineraryDay] | None) -> str:
    """Markdown summary shown when asking the user to confirm."""
    if not itinerary:
        return "No itinerary generated yet."

    lines = []
    for day in itinerary:
        lines.append(f"**Day {day.day_number}: {day.theme}**")
        if day.activities:
            lines.append(f"  Activities: {_names(day.activities, 'name')}")
        if day.meals:
            lines.append(f"  Dining: {_names(day.meals, 'restaurantName', 'venue', 'name')}")
        lines.append(f"  Est. Cost: ${day.estimated_cost:g}")
        lines.append("")

    total = sum(day.estimated_cost for day in itinerary)
    lines.append(f"**Total Estimated Cost: ${total:g}**")
    return "\n".join(lines)


def is_acceptance(feedback: str) -> bool:
    """Keyword check for "the user accepted the itinerary"."""
    return ACCEPT_KEYWORDS.search(feedback) is not None


async def confirm_itinerary(state: TravelState, deps: NodeDeps) -> dict[str, Any]:
    """
    Ask the user to confirm the itinerary, or act on their answer.

    Args:
        state: Current travel state
        deps: Injected node dependencies (unused, kept for a uniform signature)

    Returns:
        Update pausing for confirmation, accepting the itinerary, or
        requesting a refinement
    """
    task_logger = TaskLogger.for_state(state, agent_type="travel")

    if state.refinement_feedback:
        if is_acceptance(state.refinement_feedback):
            task_logger.info("Itinerary accepted")
            return {
                "awaiting_refinement": False,
                "skip_to_confirmation": False,
                "refinement_feedback": None,
                "current_phase": Phase.VALIDATION,
                "gathered_info": state.info_update(user_confirmed=True),
            }
        task_logger.info("Itinerary changes requested")
        return {
            "awaiting_refinement": False,
            "skip_to_confirmation": False,
            "current_phase": Phase.REFINEMENT,
        }

    summary = format_itinerary_summary(state.itinerary)
    message = (
        f"Here's your travel itinerary:\n\n{summary}\n\n"
        "Would you like me to proceed with this plan or make any changes?"
    )
    return pause_for_input(
        HumanInputRequest(type="confirmation", message=message, options=CONFIRMATION_OPTIONS),
        awaiting_refinement=True,
        skip_to_confirmation=False,
        current_phase=Phase.REFINEMENT,
        messages=ai_message(message),
    )


async def refine_itinerary(state: TravelState, deps: NodeDeps) -> dict[str, Any]:
    """Regenerate the itinerary with the user's requested changes."""
    update = await build_itinerary(state, deps, feedback=state.refinement_feedback)
    return {
        **update,
        "refinement_feedback": None,
        "refinement_count": state.refinement_count + 1,
        "current_phase": Phase.REFINEMENT,
    }
