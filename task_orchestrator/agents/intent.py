"""
Intent classification for new conversations.

A keyword pass catches the common phrasings without a model call; anything
it misses goes to the LLM. Classification never raises: a failed model call
yields `Intent.UNKNOWN`.
"""

from task_orchestrator.agents.llm import LLMClient
from task_orchestrator.orchestration.states.workflow_stages import Intent
from task_orchestrator.prompts.templates import INTENT_CLASSIFICATION
from task_orchestrator.utils.logging import get_logger

logger = get_logger(__name__)

MEDICINE_KEYWORDS = [
    "medicine",
    "pharmacy",
    "drug",
    "medication",
    "paracetamol",
    "aspirin",
    "tablet",
    "pill",
    "prescription",
    "antibiotics",
    "pain relief",
    "cough syrup",
    "find medicine",
    "buy medicine",
    "need medicine",
]

TRAVEL_KEYWORDS = [
    "travel",
    "trip",
    "itinerary",
    "vacation",
    "holiday",
    "flight",
    "hotel",
    "destination",
    "visit",
    "tour",
    "plan trip",
    "going to",
    "want to go",
    "bali",
    "paris",
    "tokyo",
    "beach",
    "adventure",
]


def quick_classify_intent(message: str) -> Intent | None:
    """
    Classify by keyword, medicine keywords taking precedence.

    Returns:
        The matched intent, or None when no keyword matches
    """
    lowered = message.lower()
    if any(keyword in lowered for keyword in MEDICINE_KEYWORDS):
        return Intent.MEDICINE
    if any(keyword in lowered for keyword in TRAVEL_KEYWORDS):
        return Intent.TRAVEL
    return None


async def classify_intent(llm: LLMClient, message: str, max_tokens: int = 100) -> Intent:
    """
    Ask the LLM which domain a message belongs to.

    Args:
        llm: Client used for the classification call
        message: The user's message
        max_tokens: Output token limit for the call

    Returns:
        MEDICINE or TRAVEL when the reply names one, otherwise UNKNOWN
    """
    try:
        reply = await llm.complete(
            INTENT_CLASSIFICATION,
            message,
            temperature=0,
            max_tokens=max_tokens,
            purpose="intent classification",
        )
    except Exception as e:
        logger.error(f"Intent classification failed: {e!s}")
        return Intent.UNKNOWN

    content = reply.lower().strip()
    logger.debug(f"Intent classification result: {content}")
    if "medicine" in content:
        return Intent.MEDICINE
    if "travel" in content:
        return Intent.TRAVEL
    return Intent.UNKNOWN


async def hybrid_classify_intent(
    llm: LLMClient, message: str, max_tokens: int = 100
) -> Intent:
    """Keyword classification first, falling back to the LLM."""
    quick = quick_classify_intent(message)
    if quick is not None:
        logger.debug(f"Quick intent classification matched: {quick.value}")
        return quick
    return await classify_intent(llm, message, max_tokens=max_tokens)
