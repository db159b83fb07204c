"""
Base agent state for the orchestration state machine.

This module defines the record threaded through every phase node: the
generic fields shared by all task types, the typed `GatheredInfo` model with
its explicit `extra` map, the execution step model, and the reducers that
LangGraph applies when a node's partial update is folded into the state.
"""

from typing import Annotated, Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from task_orchestrator.orchestration.states.workflow_stages import (
    Phase,
    StepStatus,
    TaskType,
)
from task_orchestrator.utils.helpers import is_blank


class WireModel(BaseModel):
    """Model serialised with camelCase keys on the wire and in storage."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ExecutionStep(WireModel):
    """One tool invocation in an execution plan."""

    id: str
    name: str
    description: str = ""
    tool_name: str = "web_search"
    tool_args: dict[str, Any] = Field(default_factory=dict)
    status: StepStatus = StepStatus.PENDING
    result: Any = None
    error: str | None = None


class HumanInputRequest(WireModel):
    """Question shown to the user while the machine is paused."""

    type: Literal["clarification", "confirmation", "selection"] = "clarification"
    message: str
    options: list[str] | None = None
    required: bool = True


class ChatMessage(BaseModel):
    role: Literal["human", "ai"]
    content: str


class GatheredInfo(WireModel):
    """
    Typed view of everything learned about a task.

    Known keys are typed fields. Keys produced by extraction that no field
    covers are kept in `extra`. Persisted as a flat camelCase mapping.
    """

    # Tool-derived results shared by every domain
    search_results: list[dict[str, Any]] | None = None
    geocoding_result: dict[str, Any] | None = None
    nearby_places: list[dict[str, Any]] | None = None
    call_result: dict[str, Any] | None = None
    booking_result: dict[str, Any] | None = None
    validation_feedback: str | None = None

    extra: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def _alias_map(cls) -> dict[str, str]:
        aliases = {}
        for name, field_info in cls.model_fields.items():
            if name == "extra":
                continue
            aliases[field_info.alias or name] = name
            aliases[name] = name
        return aliases

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None, drop_blank: bool = False):
        """
        Build an instance from a flat mapping (camelCase or snake_case keys).

        Args:
            data: Flat key/value mapping
            drop_blank: Skip None and empty values (used for LLM extraction)

        Returns:
            Instance whose fields_set contains exactly the keys provided
        """
        aliases = cls._alias_map()
        known: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in (data or {}).items():
            if drop_blank and is_blank(value):
                continue
            if key == "extra" and isinstance(value, dict):
                extra.update(value)
            elif key in aliases:
                known[aliases[key]] = value
            else:
                extra[key] = value

        try:
            cls.model_validate(known)
            valid = known
        except PydanticValidationError:
            # Keep values that fit their field, park the rest in extra
            valid = {}
            for name, value in known.items():
                try:
                    cls.model_validate({name: value})
                    valid[name] = value
                except PydanticValidationError:
                    extra[cls.model_fields[name].alias or name] = value

        if extra:
            valid = {**valid, "extra": extra}
        return cls.model_validate(valid)

    def to_mapping(self) -> dict[str, Any]:
        """Flatten to the camelCase mapping stored in the checkpoint."""
        data = self.model_dump(
            mode="json", by_alias=True, exclude={"extra"}, exclude_none=True
        )
        return {**self.extra, **data}

    @property
    def missing_fields(self) -> list[str]:
        """Required keys (camelCase) that are still unknown."""
        return []

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a value by camelCase/snake_case name, falling back to extra."""
        name = self._alias_map().get(key)
        if name is not None:
            value = getattr(self, name)
            return default if value is None else value
        return self.extra.get(key, default)


def merge_gathered_info(current: Any, update: Any) -> Any:
    """
    Merge-overwrite reducer for gathered info.

    Only fields explicitly set on the update overwrite; everything else
    persists. `extra` is merged key by key. The info is never replaced
    wholesale.
    """
    if update is None:
        return current
    if current is None:
        return update
    cls = type(current) if isinstance(current, GatheredInfo) else GatheredInfo
    if not isinstance(current, GatheredInfo):
        current = cls.from_mapping(current)
    if not isinstance(update, GatheredInfo):
        update = cls.from_mapping(update)

    changes: dict[str, Any] = {}
    extra = dict(current.extra)
    for name in update.model_fields_set:
        if name == "extra":
            continue
        value = getattr(update, name)
        if name in cls.model_fields:
            changes[name] = value
        else:
            extra[type(update).model_fields[name].alias or name] = value
    extra.update(update.extra)

    merged = current.model_copy(update=changes)
    merged.extra = extra
    return merged


def append_messages(current: list | None, update: list | None) -> list:
    """Append-only reducer for the conversation transcript."""
    return list(current or []) + list(update or [])


def _item_key(item: Any, key: str) -> Any:
    if isinstance(item, dict):
        return item.get(key, item.get(to_camel(key)))
    return getattr(item, key, None)


def dedupe_by(key: str):
    """
    Build an accumulate-and-deduplicate reducer keyed on one attribute.

    A later item with an existing key replaces the earlier one in place, so
    first-seen order is kept and merging a set with itself is a no-op.
    """

    def reducer(current: list | None, update: list | None) -> list:
        merged: dict[Any, Any] = {}
        for item in list(current or []) + list(update or []):
            merged[_item_key(item, key)] = item
        return list(merged.values())

    reducer.__name__ = f"dedupe_by_{key}"
    return reducer


def union(current: list | None, update: list | None) -> list:
    """Set-union reducer preserving first-seen order."""
    return list(dict.fromkeys(list(current or []) + list(update or [])))


def merge_dict(current: dict | None, update: dict | None) -> dict:
    """Shallow merge-overwrite reducer for plain dict fields."""
    return {**(current or {}), **(update or {})}


class AgentState(BaseModel):
    """
    State shared by every task type.

    Fields without a reducer are replaced wholesale by node updates.
    """

    # Domain fields folded into gatheredInfo on persist, keyed by attribute
    FOLDED_FIELDS: ClassVar[dict[str, str]] = {"refinement_count": "refinementCount"}
    # Folded fields written even when None, so a cleared value is persisted
    CLEARABLE_FIELDS: ClassVar[frozenset[str]] = frozenset()
    TASK_TYPE: ClassVar[TaskType | None] = None

    session_id: str = ""
    task_id: str = ""
    current_phase: Phase = Phase.CLARIFICATION
    has_sufficient_info: bool = False
    gathered_info: Annotated[GatheredInfo, merge_gathered_info] = Field(
        default_factory=GatheredInfo
    )
    messages: Annotated[list[ChatMessage], append_messages] = Field(
        default_factory=list
    )
    execution_plan: list[ExecutionStep] | None = None
    current_step_index: int = 0
    error: str | None = None
    requires_human_input: bool = False
    human_input_request: HumanInputRequest | None = None
    final_response: str | None = None
    refinement_count: int = 0

    @classmethod
    def info_cls(cls) -> type[GatheredInfo]:
        """The GatheredInfo subclass this state carries."""
        return cls.model_fields["gathered_info"].annotation

    @property
    def plan_length(self) -> int:
        return len(self.execution_plan or [])

    @property
    def plan_exhausted(self) -> bool:
        return self.current_step_index >= self.plan_length

    def latest_user_message(self) -> str | None:
        for message in reversed(self.messages):
            if message.role == "human":
                return message.content
        return None

    def first_user_message(self) -> str | None:
        for message in self.messages:
            if message.role == "human":
                return message.content
        return None

    def latest_ai_message(self) -> str | None:
        for message in reversed(self.messages):
            if message.role == "ai":
                return message.content
        return None

    def info_update(self, **fields: Any) -> GatheredInfo:
        """Build a partial gathered-info update of this state's info type."""
        return self.info_cls()(**fields)


def ai_message(content: str) -> list[ChatMessage]:
    """Messages update holding one AI message."""
    return [ChatMessage(role="ai", content=content)]


def human_message(content: str) -> list[ChatMessage]:
    """Messages update holding one human message."""
    return [ChatMessage(role="human", content=content)]


def pause_for_input(request: HumanInputRequest, **updates: Any) -> dict[str, Any]:
    """Partial update that pauses the machine with a question for the user."""
    return {
        "requires_human_input": True,
        "human_input_request": request,
        **updates,
    }


def clear_pause(**updates: Any) -> dict[str, Any]:
    """Partial update that clears any pending human-input request."""
    return {"requires_human_input": False, "human_input_request": None, **updates}
