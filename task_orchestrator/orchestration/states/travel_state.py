"""
State for travel planning tasks.

Extends the base agent state with trip details, destination research, the
generated itinerary, and the confirmation loop flags.
"""

from typing import Annotated, Any, ClassVar

from pydantic import BaseModel, Field, field_validator

from task_orchestrator.orchestration.states.agent_state import (
    AgentState,
    GatheredInfo,
    WireModel,
    dedupe_by,
    merge_dict,
    merge_gathered_info,
    union,
)
from task_orchestrator.orchestration.states.workflow_stages import TaskType
from task_orchestrator.utils.helpers import parse_date


class Budget(WireModel):
    min: float = 0
    max: float = 0
    currency: str = "USD"


class TravelPreferences(BaseModel):
    travel_style: list[str] = Field(default_factory=list)
    interests: list[str] = Field(default_factory=list)
    pace: str = "moderate"
    dietary_restrictions: list[str] = Field(default_factory=list)
    accessibility_needs: list[str] = Field(default_factory=list)


class ItineraryDay(WireModel):
    day_number: int
    date: str | None = None
    theme: str | None = None
    activities: list[dict[str, Any]] = Field(default_factory=list)
    accommodation: dict[str, Any] | None = None
    meals: list[dict[str, Any]] = Field(default_factory=list)
    transportation: list[dict[str, Any]] = Field(default_factory=list)
    estimated_cost: float = 0
    notes: list[str] = Field(default_factory=list)

    @field_validator("notes", mode="before")
    @classmethod
    def coerce_notes(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value


def _split_list(value: Any) -> Any:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


class TravelInfo(GatheredInfo):
    """Gathered info for travel tasks."""

    destination: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    number_of_days: int | None = None
    budget_min: float | None = None
    budget_max: float | None = None
    currency: str | None = None
    travel_style: list[str] | None = None
    interests: list[str] | None = None
    number_of_travelers: int | None = None
    special_requirements: str | None = None

    activities_found: int | None = None
    restaurants_found: int | None = None
    hotels_found: int | None = None
    itinerary_days: int | None = None
    total_estimated_cost: float | None = None
    user_confirmed: bool | None = None

    # Folded domain fields
    awaiting_refinement: bool | None = None
    refinement_feedback: str | None = None
    itinerary: list[ItineraryDay] | None = None
    rich_plan: dict[str, Any] | None = None
    research_results: dict[str, Any] | None = None

    @field_validator("travel_style", "interests", mode="before")
    @classmethod
    def coerce_list(cls, value: Any) -> Any:
        return _split_list(value)

    @property
    def missing_fields(self) -> list[str]:
        missing = []
        if not self.destination:
            missing.append("destination")
        if not self.start_date and not self.number_of_days:
            missing.append("travelDates")
        return missing


def merge_travel_preferences(current: dict | None, update: dict | None) -> dict:
    """Merge preferences, unioning the list-valued style and interest keys."""
    merged = {**(current or {}), **(update or {})}
    for key in ("travel_style", "interests"):
        merged[key] = union((current or {}).get(key), (update or {}).get(key))
    return merged


class TravelState(AgentState):
    """State threaded through the travel graph."""

    FOLDED_FIELDS: ClassVar[dict[str, str]] = {
        **AgentState.FOLDED_FIELDS,
        "awaiting_refinement": "awaitingRefinement",
        "refinement_feedback": "refinementFeedback",
        "itinerary": "itinerary",
        "rich_plan": "richPlan",
        "research_results": "researchResults",
        "destination": "destination",
    }
    CLEARABLE_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {"awaiting_refinement", "refinement_feedback"}
    )
    TASK_TYPE: ClassVar[TaskType] = TaskType.TRAVEL

    gathered_info: Annotated[TravelInfo, merge_gathered_info] = Field(
        default_factory=TravelInfo
    )

    destination: str | None = None
    destination_country: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    flexible_dates: bool = False
    budget: Budget | None = None
    preferences: Annotated[dict[str, Any], merge_travel_preferences] = Field(
        default_factory=lambda: TravelPreferences().model_dump()
    )
    number_of_travelers: int = 1
    itinerary: list[ItineraryDay] | None = None
    rich_plan: dict[str, Any] | None = None
    bookings: Annotated[list[dict[str, Any]], dedupe_by("id")] = Field(
        default_factory=list
    )
    awaiting_refinement: bool = False
    refinement_feedback: str | None = None
    skip_to_confirmation: bool = False
    research_results: Annotated[dict[str, Any], merge_dict] = Field(
        default_factory=dict
    )

    def resolved_destination(self) -> str | None:
        return self.destination or self.gathered_info.destination


def trip_duration(state: TravelState) -> int | None:
    """
    Number of days in the trip.

    Uses the whole days between start and end date when both parse, else the
    gathered number of days, else None.
    """
    info = state.gathered_info
    start = parse_date(state.start_date or info.start_date)
    end = parse_date(state.end_date or info.end_date)
    if start and end:
        days = (end - start).days
        if days > 0:
            return days
    if info.number_of_days:
        return info.number_of_days
    return None
