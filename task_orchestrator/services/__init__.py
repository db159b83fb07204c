"""
Services used by the orchestrator and the handler.
"""

from task_orchestrator.services.guest_service import GuestService, GuestSession
from task_orchestrator.services.location_service import LocationService
from task_orchestrator.services.task_service import (
    progress_summary,
    step_summaries,
    task_details,
)

__all__ = [
    "GuestService",
    "GuestSession",
    "LocationService",
    "progress_summary",
    "step_summaries",
    "task_details",
]
