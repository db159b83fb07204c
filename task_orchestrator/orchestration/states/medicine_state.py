"""
State for medicine search tasks.

Extends the base agent state with the medicine being searched, the user's
location, discovered pharmacies, and the outcome of each pharmacy call.
"""

from typing import Annotated, Any, ClassVar, Literal

from pydantic import Field, field_validator

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

Availability = Literal["available", "unavailable", "unknown"]
CallStatus = Literal["success", "no_answer", "not_available", "busy"]


class Location(WireModel):
    lat: float | None = None
    lng: float | None = None
    address: str = ""
    city: str | None = None
    state: str | None = None
    country: str | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    def describe(self) -> str:
        if self.address:
            return self.address
        if self.has_coordinates:
            return f"{self.lat}, {self.lng}"
        return ""


class Pharmacy(WireModel):
    id: str
    name: str
    address: str = ""
    phone: str = ""
    distance: float = 0
    availability: Availability = "unknown"
    price: float | None = None
    open_now: bool | None = None
    rating: float | None = None


class CallResult(WireModel):
    pharmacy_id: str
    pharmacy_name: str = ""
    status: CallStatus = "no_answer"
    availability: Availability = "unknown"
    price: float | None = None
    quantity: int | None = None
    notes: str = ""
    transcript: str | None = None
    timestamp: str | None = None


def _coerce_location(value: Any) -> Any:
    if isinstance(value, str):
        return {"address": value}
    return value


class MedicineInfo(GatheredInfo):
    """Gathered info for medicine tasks."""

    medicine_name: str | None = None
    location: Location | None = None
    urgency: str | None = None
    brand_preference: str | None = None
    quantity: int | None = None
    max_price: float | None = None

    pharmacies_found: int | None = None
    available_count: int | None = None
    calls_made: int | None = None
    web_search_fallback: bool | None = None
    pharmacies: list[Pharmacy] | None = None
    call_results: list[CallResult] | None = None
    selected_pharmacy: Pharmacy | None = None

    @field_validator("location", mode="before")
    @classmethod
    def coerce_location(cls, value: Any) -> Any:
        return _coerce_location(value)

    @property
    def missing_fields(self) -> list[str]:
        missing = []
        if not self.medicine_name:
            missing.append("medicineName")
        if self.location is None or not self.location.describe():
            missing.append("location")
        return missing


class MedicineState(AgentState):
    """State threaded through the medicine graph."""

    FOLDED_FIELDS: ClassVar[dict[str, str]] = {
        **AgentState.FOLDED_FIELDS,
        "pharmacies": "pharmacies",
        "call_results": "callResults",
        "selected_pharmacy": "selectedPharmacy",
    }
    TASK_TYPE: ClassVar[TaskType] = TaskType.MEDICINE

    gathered_info: Annotated[MedicineInfo, merge_gathered_info] = Field(
        default_factory=MedicineInfo
    )

    medicine_name: str | None = None
    medicine_alternatives: Annotated[list[str], union] = Field(default_factory=list)
    location: Location | None = None
    search_radius: int = 5000
    preferences: Annotated[dict[str, Any], merge_dict] = Field(default_factory=dict)
    pharmacies: Annotated[list[Pharmacy], dedupe_by("id")] = Field(
        default_factory=list
    )
    call_results: Annotated[list[CallResult], dedupe_by("pharmacy_id")] = Field(
        default_factory=list
    )
    selected_pharmacy: Pharmacy | None = None

    @field_validator("location", mode="before")
    @classmethod
    def coerce_location(cls, value: Any) -> Any:
        return _coerce_location(value)

    def resolved_location(self) -> Location | None:
        """Top-level location if set, otherwise the gathered one."""
        return self.location or self.gathered_info.location

    def resolved_medicine(self) -> str | None:
        return self.medicine_name or self.gathered_info.medicine_name
