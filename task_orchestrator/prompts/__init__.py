"""
Prompt templates used by the phase nodes and intent classifier.
"""

from task_orchestrator.prompts.templates import (
    FINAL_RESPONSE,
    INFO_GATHERING,
    INFORMATION_EXTRACTION,
    INTENT_CLASSIFICATION,
    ITINERARY_FEEDBACK,
    ITINERARY_GENERATION,
    PLANNING,
    VALIDATION,
    render_template,
)

__all__ = [
    "FINAL_RESPONSE",
    "INFORMATION_EXTRACTION",
    "INFO_GATHERING",
    "INTENT_CLASSIFICATION",
    "ITINERARY_FEEDBACK",
    "ITINERARY_GENERATION",
    "PLANNING",
    "VALIDATION",
    "render_template",
]
