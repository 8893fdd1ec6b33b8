"""
Confirmation escalation and routing.

Decides whether a classification is certain enough to dispatch, and turns a
human choice into a final, level 3 result. Routing ties the classifier and
the escalation together and yields the pipeline id the content pipelines
should run.
"""

import logging
import re
from typing import Callable, List, Optional, Sequence, Union

from rapidfuzz import fuzz

from .intent import classify, get_alternatives, get_intent, needs_confirmation
from .types import ClassificationResult, EscalationDecision, Intent, RoutingDecision

logger = logging.getLogger(__name__)

CHOICE_THRESHOLD = 0.8
CONFIRMED_REASON = "Confirmed by user"
OVERRIDE_REASON = "Chosen explicitly"

Chooser = Callable[[EscalationDecision], Optional[Intent]]


def escalate(result: ClassificationResult) -> EscalationDecision:
    """
    Decide whether the user has to pick the intent.

    Confirmed (level 3) results are final and never escalated again.
    """
    if result.level == 3 or not needs_confirmation(result):
        return EscalationDecision(result=result, needs_confirmation=False, options=[result.intent])

    options = [result.intent] + get_alternatives(result)
    logger.debug("Escalating %s (%.2f): offering %s", result.intent.key, result.confidence, [o.key for o in options])
    return EscalationDecision(result=result, needs_confirmation=True, options=options)


def confirm(choice: Union[Intent, str]) -> ClassificationResult:
    """
    Build the final result for an intent the user picked.

    Args:
        choice: The chosen intent, its key or its pipeline id
    """
    intent = choice if isinstance(choice, Intent) else get_intent(choice)
    return ClassificationResult(intent=intent, confidence=1.0, level=3, reason=CONFIRMED_REASON)


def manual_override(choice: Union[Intent, str]) -> ClassificationResult:
    """Result for input sent straight to a pipeline, skipping classification."""
    intent = choice if isinstance(choice, Intent) else get_intent(choice)
    return ClassificationResult(intent=intent, confidence=1.0, level=3, reason=OVERRIDE_REASON)


def _normalize(text: str) -> str:
    return re.sub(r"[^\w\s-]", "", text.lower()).replace("_", "-").strip()


def _aliases(intent: Intent) -> List[str]:
    return [intent.key, intent.pipeline_id, intent.label]


def _alias_score(answer: str, alias: str) -> float:
    query = _normalize(answer)
    target = _normalize(alias)
    if not query or not target:
        return 0.0
    if query == target:
        return 1.0

    score = fuzz.ratio(query, target) / 100.0
    if len(query) >= 3 and query in target:
        score = max(score, len(query) / len(target) + 0.5)
    return min(score, 0.99)


def match_choice(answer: str, options: Sequence[Intent], threshold: float = CHOICE_THRESHOLD) -> Optional[Intent]:
    """
    Resolve a typed answer to one of the offered intents.

    Accepts a 1-based option number, a key, a pipeline id, or something close
    enough to a label ("read later", "summary").

    Returns:
        The matching intent, or None if nothing matches well enough
    """
    answer = answer.strip()
    if not answer:
        return None

    if answer.isdigit():
        index = int(answer)
        return options[index - 1] if 1 <= index <= len(options) else None

    best: Optional[Intent] = None
    best_score = 0.0
    for intent in options:
        score = max(_alias_score(answer, alias) for alias in _aliases(intent))
        if score > best_score:
            best, best_score = intent, score

    return best if best_score >= threshold else None


def route(text: Optional[str], chooser: Optional[Chooser] = None) -> Optional[RoutingDecision]:
    """
    Classify the input and pick the pipeline to run.

    Args:
        text: The user's input
        chooser: Asked to pick an option when the classification is uncertain.
            Returning None means the user dismissed the question.

    Returns:
        None for empty input. Otherwise a RoutingDecision whose pipeline_id is
        None when the user dismissed the confirmation.
    """
    result = classify(text)
    if result is None:
        return None
    assert text is not None

    decision = escalate(result)
    if not decision.needs_confirmation:
        return RoutingDecision(text=text, result=result, pipeline_id=result.intent.pipeline_id)

    if chooser is None:
        logger.info("Routing uncertain result %s (%.2f) without confirmation", result.intent.key, result.confidence)
        return RoutingDecision(text=text, result=result, pipeline_id=result.intent.pipeline_id)

    chosen = chooser(decision)
    if chosen is None:
        logger.info("Confirmation dismissed; nothing dispatched")
        return RoutingDecision(text=text, result=result, pipeline_id=None)

    confirmed = confirm(chosen)
    return RoutingDecision(text=text, result=confirmed, pipeline_id=confirmed.intent.pipeline_id, confirmed=True)
