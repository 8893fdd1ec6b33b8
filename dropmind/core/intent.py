"""
Intent classification waterfall.

Free-form input is classified in two stages. Stage 1 matches links with
deterministic rules; when it finds nothing, stage 2 looks at the length and
keywords of the text. Results below the confirmation threshold should be
confirmed by the user before any pipeline runs.
"""

import logging
import re
from typing import Dict, List, Optional

from .debug_log import get_debug_logger
from .timing import timer
from .types import ClassificationResult, Intent

logger = logging.getLogger(__name__)

CONFIRMATION_THRESHOLD = 0.85


class UnknownIntentError(KeyError):
    """Raised when a key or pipeline id is not in the intent catalog."""

    pass


BOOKMARK = Intent(key="bookmark", label="📌 Bookmark", color_hint="#f59e0b", pipeline_id="bookmark")
READ_LATER = Intent(key="read-later", label="📖 Read later", color_hint="#06b6d4", pipeline_id="read_later")
DEEP_SUMMARY = Intent(key="deep-summary", label="📝 Deep summary", color_hint="#3b82f6", pipeline_id="deep_summary")
INSPIRATION = Intent(key="inspiration", label="💡 Inspiration", color_hint="#a78bfa", pipeline_id="inspiration")
ARTICLE_FORMAT = Intent(key="article-format", label="✍️ Article format", color_hint="#10b981", pipeline_id="article_format")
STUDY_PACK = Intent(key="study-pack", label="🎓 Study pack", color_hint="#f472b6", pipeline_id="study_pack")
TODO = Intent(key="todo", label="📋 To-do", color_hint="#fb923c", pipeline_id="todo")
MEETING = Intent(key="meeting", label="🗓️ Meeting notes", color_hint="#38bdf8", pipeline_id="meeting")

INTENTS: Dict[str, Intent] = {
    intent.key: intent for intent in (BOOKMARK, READ_LATER, DEEP_SUMMARY, INSPIRATION, ARTICLE_FORMAT, STUDY_PACK, TODO, MEETING)
}

ALTERNATIVES: Dict[str, List[Intent]] = {
    BOOKMARK.key: [READ_LATER, DEEP_SUMMARY, INSPIRATION],
    READ_LATER.key: [BOOKMARK, DEEP_SUMMARY, INSPIRATION],
    DEEP_SUMMARY.key: [ARTICLE_FORMAT, INSPIRATION, BOOKMARK],
    INSPIRATION.key: [DEEP_SUMMARY, ARTICLE_FORMAT, TODO],
    ARTICLE_FORMAT.key: [DEEP_SUMMARY, INSPIRATION],
    STUDY_PACK.key: [DEEP_SUMMARY, BOOKMARK],
    TODO.key: [INSPIRATION, DEEP_SUMMARY],
    MEETING.key: [DEEP_SUMMARY, TODO],
}
DEFAULT_ALTERNATIVES = [DEEP_SUMMARY, BOOKMARK]
MAX_ALTERNATIVES = 3

# --- Stage 1: link rules ---

# Hosts must start the input, follow whitespace or follow the "//" of a scheme
_HOST_START = r"(?:^|(?<=[\s/]))"

YOUTUBE_PATTERN = re.compile(
    rf"{_HOST_START}(?:www\.|m\.)?(?:youtube\.com/(?:watch\?v=|embed/|shorts/)|youtu\.be/)([\w-]{{11}})",
    re.IGNORECASE,
)
BILIBILI_PATTERN = re.compile(rf"{_HOST_START}(?:www\.|m\.)?bilibili\.com/video/", re.IGNORECASE)
PDF_PATTERN = re.compile(r"^https?://\S+\.pdf(?:\?\S*)?$", re.IGNORECASE)
SOCIAL_PATTERN = re.compile(rf"{_HOST_START}(?:www\.|mobile\.)?(?:twitter\.com|x\.com)/", re.IGNORECASE)
URL_PATTERN = re.compile(r"^https?://\S+$", re.IGNORECASE)
ARTICLE_DOMAIN_PATTERN = re.compile(
    r"medium\.com|substack\.com|zhihu\.com/p/|mp\.weixin\.qq\.com|dev\.to|hackernoon\.com|paulgraham\.com|[/.]blog\.",
    re.IGNORECASE,
)
ARTICLE_PATH_PATTERN = re.compile(r"/(?:blog|article|post|story|p|entry|news)/", re.IGNORECASE)

# --- Stage 2: text heuristics ---

SHORT_TEXT_LIMIT = 100
LONG_TEXT_LIMIT = 800

ACTION_VERB_PATTERN = re.compile(r"[做去看写发送完成检查确认提交创建删除修改更新回复联系购买预约安排]")
IMPERATIVE_OPENER_PATTERN = re.compile(r"^(?:请|帮我|记得|别忘了|需要|要|去)")
# Upper-case TODO only, as a standalone token; the English phrases are whole words in any case
TODO_KEYWORD_PATTERN = re.compile(
    r"(?<![A-Za-z])TODO(?![A-Za-z])|待办|提醒|截止|明天|下周|今天要"
    r"|(?i:\b(?:deadline|remind me|don't forget|tomorrow|next week)\b)"
)
MEETING_KEYWORD_PATTERN = re.compile(r"会议|meeting|讨论|决定|参会|纪要|action item|跟进|follow up", re.IGNORECASE)
THOUGHT_KEYWORD_PATTERN = re.compile(r"想到|觉得|思考|感觉|也许|可能|如果|假设|idea|thought|maybe", re.IGNORECASE)


def get_intent(name: str) -> Intent:
    """
    Look up an intent by catalog key or pipeline id.

    Raises:
        UnknownIntentError: If nothing in the catalog matches
    """
    if name in INTENTS:
        return INTENTS[name]
    for intent in INTENTS.values():
        if intent.pipeline_id == name:
            return intent
    raise UnknownIntentError(f"Unknown intent: {name}")


def _result(intent: Intent, confidence: float, level: int, reason: str) -> ClassificationResult:
    return ClassificationResult(intent=intent, confidence=confidence, level=level, reason=reason)


def rule_match(text: str) -> Optional[ClassificationResult]:
    """
    Stage 1: deterministic link rules, first match wins.

    Returns None when the input is not a recognized link, so the caller can
    fall through to the heuristics.
    """
    trimmed = text.strip()

    if YOUTUBE_PATTERN.search(trimmed):
        return _result(STUDY_PACK, 0.98, 1, "YouTube URL detected")

    if BILIBILI_PATTERN.search(trimmed):
        return _result(STUDY_PACK, 0.95, 1, "Bilibili URL detected")

    if PDF_PATTERN.match(trimmed):
        return _result(DEEP_SUMMARY, 0.92, 1, "PDF URL detected")

    if SOCIAL_PATTERN.search(trimmed):
        return _result(BOOKMARK, 0.90, 1, "Twitter/X URL detected")

    if URL_PATTERN.match(trimmed):
        if ARTICLE_DOMAIN_PATTERN.search(trimmed) or ARTICLE_PATH_PATTERN.search(trimmed):
            return _result(READ_LATER, 0.90, 1, "Article-like URL -> read later")
        return _result(BOOKMARK, 0.90, 1, "Generic URL -> bookmark")

    return None


def heuristic_classify(text: str) -> ClassificationResult:
    """Stage 2: classify plain text by its length and keywords."""
    trimmed = text.strip()
    length = len(trimmed)

    if length < SHORT_TEXT_LIMIT:
        is_imperative = bool(IMPERATIVE_OPENER_PATTERN.search(trimmed)) and bool(ACTION_VERB_PATTERN.search(trimmed))
        if is_imperative or TODO_KEYWORD_PATTERN.search(trimmed):
            return _result(TODO, 0.88, 2, "Short text with action words -> todo")
        return _result(INSPIRATION, 0.90, 2, "Short text -> inspiration")

    if length < LONG_TEXT_LIMIT:
        if MEETING_KEYWORD_PATTERN.search(trimmed):
            return _result(MEETING, 0.85, 2, "Medium text with meeting keywords")
        if THOUGHT_KEYWORD_PATTERN.search(trimmed):
            return _result(INSPIRATION, 0.82, 2, "Medium text with thought keywords")
        return _result(DEEP_SUMMARY, 0.80, 2, "Medium text -> deep summary")

    if length >= LONG_TEXT_LIMIT:
        return _result(ARTICLE_FORMAT, 0.92, 2, f"Long text (>={LONG_TEXT_LIMIT} chars) -> article format")

    return _result(DEEP_SUMMARY, 0.70, 2, "Fallback -> deep summary")


@timer
def classify(text: Optional[str]) -> Optional[ClassificationResult]:
    """
    Classify free-form input.

    Args:
        text: Typed text, a link or a finished transcript

    Returns:
        ClassificationResult, or None when the input is empty or blank
    """
    if not text or not text.strip():
        return None

    result = rule_match(text) or heuristic_classify(text)
    logger.debug("Classified input as %s (%.2f, level %d): %s", result.intent.key, result.confidence, result.level, result.reason)

    debug_logger = get_debug_logger()
    if debug_logger.is_enabled():
        debug_logger.log_classification(text, result)

    return result


def needs_confirmation(result: ClassificationResult) -> bool:
    """True when the result is too uncertain to dispatch without asking the user."""
    return result.confidence < CONFIRMATION_THRESHOLD


def get_alternatives(result: ClassificationResult) -> List[Intent]:
    """
    Suggested alternatives to offer next to the classified intent.

    Returns up to three intents, never including the classified one.
    """
    candidates = ALTERNATIVES.get(result.intent.key, DEFAULT_ALTERNATIVES)
    return [intent for intent in candidates if intent.key != result.intent.key][:MAX_ALTERNATIVES]
