"""Mode-aware workflow trigger detection.

Decides, from the chat mode and the user's message, whether a session should
run the academic 8-phase workflow or stay in free conversation.

Casual mode never triggers the workflow. In formal mode the query is scored
against three keyword tiers and compared with a threshold that is stricter on
the first message of a session.
"""

from dataclasses import dataclass

from makalah.config import (
    ACADEMIC_KEYWORDS,
    FIRST_MESSAGE_TRIGGER_THRESHOLD,
    FOLLOW_UP_TRIGGER_THRESHOLD,
    MEDIUM_ACADEMIC_KEYWORDS,
    MEDIUM_KEYWORD_WEIGHT,
    STRONG_ACADEMIC_KEYWORDS,
    STRONG_KEYWORD_WEIGHT,
    WEAK_ACADEMIC_KEYWORDS,
    WEAK_KEYWORD_WEIGHT,
    ChatMode,
    WorkflowType,
)


@dataclass(frozen=True)
class TriggerDecision:
    """Outcome of workflow trigger detection.

    Attributes:
        should_trigger: Whether to start the academic workflow
        workflow_type: Workflow type to start
        confidence: Keyword score in [0, 1]
        reasoning: Explanation of how the score was reached
    """

    should_trigger: bool
    workflow_type: WorkflowType
    confidence: float
    reasoning: str


def _contains_any(text: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in text for keyword in keywords)


def detect_workflow_trigger(
    chat_mode: ChatMode | str | None,
    user_query: str,
    is_first_message: bool,
) -> TriggerDecision:
    """Score a user query for academic intent.

    Args:
        chat_mode: Session chat mode
        user_query: The user's message
        is_first_message: Whether this is the first message of the session

    Returns:
        TriggerDecision for the session
    """
    if chat_mode == ChatMode.CASUAL:
        return TriggerDecision(
            should_trigger=False,
            workflow_type=WorkflowType.FREE_CONVERSATION,
            confidence=1.0,
            reasoning="Casual mode selected - free conversation without workflow constraints",
        )

    if chat_mode != ChatMode.FORMAL:
        return TriggerDecision(
            should_trigger=False,
            workflow_type=WorkflowType.FREE_CONVERSATION,
            confidence=0.0,
            reasoning="No clear workflow trigger detected",
        )

    query = user_query.lower()
    confidence = 0.0
    reasoning = "Formal mode detected. "

    if _contains_any(query, STRONG_ACADEMIC_KEYWORDS):
        confidence += STRONG_KEYWORD_WEIGHT
        reasoning += "Strong academic keywords detected. "
    if _contains_any(query, MEDIUM_ACADEMIC_KEYWORDS):
        confidence += MEDIUM_KEYWORD_WEIGHT
        reasoning += "Medium academic keywords detected. "
    if _contains_any(query, WEAK_ACADEMIC_KEYWORDS):
        confidence += WEAK_KEYWORD_WEIGHT
        reasoning += "Weak academic keywords detected. "

    threshold = FIRST_MESSAGE_TRIGGER_THRESHOLD if is_first_message else FOLLOW_UP_TRIGGER_THRESHOLD
    percent = round(confidence * 100)

    if confidence >= threshold:
        return TriggerDecision(
            should_trigger=True,
            workflow_type=WorkflowType.ACADEMIC_8_PHASE,
            confidence=min(1.0, confidence),
            reasoning=reasoning + f"Confidence {percent}% exceeds threshold.",
        )

    return TriggerDecision(
        should_trigger=False,
        workflow_type=WorkflowType.FREE_CONVERSATION,
        confidence=confidence,
        reasoning=reasoning + f"Confidence {percent}% below threshold.",
    )


def should_trigger_workflow(chat_mode: ChatMode | str | None, user_query: str) -> bool:
    """Quick keyword check: formal mode plus any academic keyword."""
    if chat_mode != ChatMode.FORMAL:
        return False
    query = user_query.lower()
    return _contains_any(query, ACADEMIC_KEYWORDS)
