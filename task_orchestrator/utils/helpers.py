"""
Helper utilities for the Task Orchestrator.

General purpose functions shared by nodes, tools, and storage.
"""

import json
import uuid
from datetime import UTC, date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel


def generate_id(prefix: str = "") -> str:
    """
    Generate a unique ID with an optional prefix.

    Args:
        prefix: Optional prefix for the ID

    Returns:
        A unique ID string
    """
    unique_id = str(uuid.uuid4())
    if prefix:
        return f"{prefix}-{unique_id}"
    return unique_id


def utc_now() -> datetime:
    return datetime.now(UTC)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def safe_serialize(obj: Any) -> Any:
    """
    Safely serialize an object to a JSON-compatible format.

    Args:
        obj: Object to serialize

    Returns:
        JSON-compatible representation of the object
    """
    if obj is None or isinstance(obj, str | bool | int | float):
        return obj

    if isinstance(obj, Enum):
        return obj.value

    if isinstance(obj, Decimal):
        return int(obj) if obj == obj.to_integral_value() else float(obj)

    if isinstance(obj, datetime | date | time):
        return obj.isoformat()

    if isinstance(obj, BaseModel):
        return safe_serialize(obj.model_dump(by_alias=True))

    if isinstance(obj, list | tuple | set):
        return [safe_serialize(item) for item in obj]

    if isinstance(obj, dict):
        return {str(k): safe_serialize(v) for k, v in obj.items()}

    return safe_serialize(obj.__dict__) if hasattr(obj, "__dict__") else str(obj)


def to_json(obj: Any, indent: int | None = None) -> str:
    """Dump any state fragment to JSON via safe_serialize."""
    return json.dumps(safe_serialize(obj), indent=indent, ensure_ascii=False)


def truncate_text(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """
    Truncate text to a maximum length, adding a suffix if truncated.

    Args:
        text: Text to truncate
        max_length: Maximum length
        suffix: Suffix to add if truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text

    return text[: max_length - len(suffix)] + suffix


def parse_date(value: Any) -> date | None:
    """Parse an ISO date or datetime string, returning None when it is not one."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def is_blank(value: Any) -> bool:
    """True for None, empty/whitespace strings, and empty containers."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, list | dict | tuple | set):
        return len(value) == 0
    return False
