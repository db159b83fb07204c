"""
LLM access and intent classification.
"""

from task_orchestrator.agents.intent import (
    classify_intent,
    hybrid_classify_intent,
    quick_classify_intent,
)
from task_orchestrator.agents.llm import LLMClient

__all__ = [
    "LLMClient",
    "classify_intent",
    "hybrid_classify_intent",
    "quick_classify_intent",
]
