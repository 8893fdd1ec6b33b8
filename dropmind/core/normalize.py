"""
Transcript normalization pipeline.

Turns noisy dictation into clean, structured text by running a fixed,
ordered list of pure string transforms:

1. filler removal
2. self-correction resolution
3. punctuation normalization
4. structurization (steps, sequences, numbered lists)
5. final cleanup

Order matters: later stages assume the cleanup done by earlier ones. Every
stage is total over strings and never raises.
"""

import re
from typing import Callable, List, Tuple

from .timing import stage_timer, timer

# --- Stage 1 vocabularies ---

FILLER_ZH = [
    "嗯", "啊", "呃", "额", "哦", "噢", "唔",
    "那个", "就是", "就是说", "然后呢", "然后",
    "对吧", "对不对", "你知道吗", "你知道的",
    "怎么说呢", "我觉得吧", "反正就是",
    "基本上", "其实吧", "说白了就是",
    "等一下", "稍等", "我想想",
    "所以说", "也就是说", "换句话说",
]  # fmt: skip

# "i mean" is a stage 2 correction marker, not a filler
FILLER_EN = [
    "um", "uh", "uhh", "umm", "hmm", "hm",
    "like", "you know", "basically",
    "actually", "literally", "right",
    "so yeah", "kind of", "sort of",
    "well", "anyway", "anyways",
]  # fmt: skip

DISFLUENCY_GLYPHS = "嗯啊呃额哦噢唔"

# Characters that delimit a standalone Chinese filler
_ZH_BOUNDARY = r"[，,。.！!？?、\s]"


def _alternation(words: List[str]) -> str:
    # Longest first so "就是说" wins over "就是"
    return "|".join(re.escape(w) for w in sorted(words, key=len, reverse=True))


FILLER_ZH_PATTERN = re.compile(rf"(?:^|(?<={_ZH_BOUNDARY}))(?:{_alternation(FILLER_ZH)})(?={_ZH_BOUNDARY}|$)")
FILLER_EN_PATTERN = re.compile(rf"\b(?:{_alternation(FILLER_EN)})\b[,.]?\s*", re.IGNORECASE)
REPEATED_GLYPH_PATTERN = re.compile(rf"([{DISFLUENCY_GLYPHS}])\1+")

# --- Stage 2 retraction patterns ---

# A clause runs back to the nearest comma or sentence boundary
_ZH_CLAUSE = r"[^，。！？,.!?\n]+"
_ZH_SENTENCE = r"[^。！？.!?\n]+"
_EN_CLAUSE = r"[^,.!?\n]+"
_EN_SENTENCE = r"[^.!?\n]+"

SELF_CORRECTION_PATTERNS: List[Tuple[str, re.Pattern]] = [
    # 明天开会，不对不对，应该是后天 -> 后天
    ("zh_double_negation", re.compile(rf"(?:{_ZH_CLAUSE}[，,]\s*)?(?:不对不对|不是不是)[，,]?\s*(?:应该是|是)?\s*")),
    # A，不，B -> B
    ("zh_bu", re.compile(rf"{_ZH_CLAUSE}[，,]\s*不[，,]\s*")),
    # A，哦不对，B -> B
    ("zh_oh_budui", re.compile(rf"{_ZH_CLAUSE}[，,]\s*哦?\s*不对[，,]?\s*")),
    # A，我说错了，B -> B
    ("zh_said_wrong", re.compile(rf"{_ZH_SENTENCE}[，,]\s*(?:我说错了|说反了|说错了)[，,]?\s*")),
    # ship on monday, no wait, I mean tuesday -> tuesday
    ("en_no_wait", re.compile(rf"(?:{_EN_CLAUSE},?\s*)?\b(?:no,?\s+wait|wait,?\s+no)\b,?\s*(?:I mean\b,?\s*)?", re.IGNORECASE)),
    ("en_sorry_meant", re.compile(rf"(?:{_EN_CLAUSE},?\s*)?\bsorry,?\s+I meant\b,?\s*", re.IGNORECASE)),
    # A, I said that wrong, B -> B
    ("en_said_wrong", re.compile(rf"{_EN_SENTENCE},\s*(?:I said that wrong|I got that wrong|scratch that)\b[,.]?\s*", re.IGNORECASE)),
    # Tuesday, no, Wednesday -> Wednesday
    ("en_no", re.compile(rf"{_EN_CLAUSE},\s*no,\s*", re.IGNORECASE)),
    # A, I mean B -> B
    ("en_i_mean", re.compile(rf"{_EN_CLAUSE},\s*I mean\b,?\s*", re.IGNORECASE)),
    # red I mean blue -> blue (without a comma only the word before is retracted)
    ("en_bare_i_mean", re.compile(r"\b[\w']+[ \t]+I mean\b,?\s*", re.IGNORECASE)),
]

# --- Stage 3 punctuation ---

COMMA_RUN_PATTERN = re.compile(r"([，,])[，,]+")
PERIOD_RUN_PATTERN = re.compile(r"([。.])[。.]+")
FULLWIDTH_COMMA_SPACE_PATTERN = re.compile(r"，[ \t]+")
LEADING_SEPARATOR_PATTERN = re.compile(r"^[，,、；;\s]+")
TRAILING_SEPARATOR_PATTERN = re.compile(r"[，,、；;:：\s]+$")
WHITESPACE_RUN_PATTERN = re.compile(r"\s{2,}")
SENTENCE_START_PATTERN = re.compile(r"([.!?]\s+)([a-z])")
# Closing quotes and brackets after the mark still count as terminated
TERMINAL_PATTERN = re.compile(r"[。！？.!?][\"'”’」』)）\]]*$")
CJK_PATTERN = re.compile(r"[\u4e00-\u9fff]")

TERMINAL_CJK = "。"
TERMINAL_LATIN = "."

# --- Stage 4 markers ---

_ZH_NUMERALS = "一二三四五六七八九十"
_EN_NUMBER_WORDS = "one|two|three|four|five|six|seven|eight|nine|ten"

ORDINAL_PATTERN = re.compile(
    rf"(?:第[{_ZH_NUMERALS}\d]+|\b(?:firstly|secondly|thirdly|fourthly|fifthly|step (?:{_EN_NUMBER_WORDS}|\d+))\b)",
    re.IGNORECASE,
)

SEQUENCE_WORDS_ZH = ["首先", "其次", "再次", "然后", "接着", "最后", "另外", "此外"]
SEQUENCE_WORDS_EN = ["first", "next", "then", "after that", "afterwards", "finally", "lastly"]

# A marker starts the text or follows whitespace or a separator, and has content after it
NUMBERED_ITEM_PATTERN = re.compile(r"(?<![^\s,，;；:：。!?！？])(\d{1,2})[.、．](?!\d)\s*(?=\S)")

# --- Stage 5 ---

BLANK_LINES_PATTERN = re.compile(r"\n{3,}")
ORPHAN_SEPARATOR_PATTERN = re.compile(r"^[，,、；;][ \t]*", re.MULTILINE)

# Inserted before a marker unless it already starts the text or a line
_NOT_AT_LINE_START = r"(?<=[^\n])"


def remove_fillers(text: str) -> str:
    """Drop filler words in both vocabularies and runs of repeated disfluency glyphs."""
    text = FILLER_ZH_PATTERN.sub("", text)
    text = FILLER_EN_PATTERN.sub(" ", text)
    return REPEATED_GLYPH_PATTERN.sub("", text)


def resolve_self_corrections(text: str) -> str:
    """Keep only the corrected part of "A, no wait, B" style retractions."""
    for _name, pattern in SELF_CORRECTION_PATTERNS:
        text = pattern.sub("", text)
    return text


def normalize_punctuation(text: str) -> str:
    """
    Tidy punctuation and whitespace and make sure the text ends a sentence.

    The terminal mark follows the script of the last character: 。 for CJK,
    . for everything else.
    """
    text = COMMA_RUN_PATTERN.sub(r"\1", text)
    text = PERIOD_RUN_PATTERN.sub(r"\1", text)
    text = FULLWIDTH_COMMA_SPACE_PATTERN.sub("，", text)
    text = LEADING_SEPARATOR_PATTERN.sub("", text)
    text = WHITESPACE_RUN_PATTERN.sub(" ", text)
    text = SENTENCE_START_PATTERN.sub(lambda m: m.group(1) + m.group(2).upper(), text)

    text = text.strip()
    if text and not TERMINAL_PATTERN.search(text):
        text = TRAILING_SEPARATOR_PATTERN.sub("", text)
        if not text:
            return ""
        terminal = TERMINAL_CJK if CJK_PATTERN.match(text[-1]) else TERMINAL_LATIN
        text += terminal
    return text


def _sequence_pattern(words: List[str]) -> re.Pattern:
    zh = [w for w in words if CJK_PATTERN.match(w)]
    en = [w for w in words if not CJK_PATTERN.match(w)]
    parts = []
    if zh:
        parts.append(_alternation(zh))
    if en:
        parts.append(rf"\b(?:{_alternation(en)})\b")
    return re.compile("|".join(parts), re.IGNORECASE)


def _break_before(text: str, pattern: re.Pattern) -> str:
    return re.sub(rf"{_NOT_AT_LINE_START}(?={pattern.pattern})", "\n", text, flags=pattern.flags)


def _sequence_words_present(text: str) -> List[str]:
    lowered = text.lower()
    present = [w for w in SEQUENCE_WORDS_ZH if w in text]
    present += [w for w in SEQUENCE_WORDS_EN if re.search(rf"\b{re.escape(w)}\b", lowered)]
    return present


def _break_numbered_item(match: re.Match) -> str:
    marker = f"{match.group(1)}. "
    start = match.start()
    if start == 0 or match.string[start - 1] == "\n":
        return marker
    return "\n" + marker


def structurize(text: str) -> str:
    """
    Put enumerated steps, sequence words and numbered items on their own lines.

    Each family only applies when it occurs at least twice, so a lone "then"
    or "第一" stays inline.
    """
    if len(ORDINAL_PATTERN.findall(text)) >= 2:
        text = _break_before(text, ORDINAL_PATTERN)

    present = _sequence_words_present(text)
    if len(present) >= 2:
        text = _break_before(text, _sequence_pattern(present))

    if len(NUMBERED_ITEM_PATTERN.findall(text)) >= 2:
        text = NUMBERED_ITEM_PATTERN.sub(_break_numbered_item, text)

    return text


def final_cleanup(text: str) -> str:
    """Limit blank lines, trim every line and drop separators orphaned at a line start."""
    text = BLANK_LINES_PATTERN.sub("\n\n", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    text = ORPHAN_SEPARATOR_PATTERN.sub("", text)
    return text.strip()


Stage = Tuple[str, Callable[[str], str]]

PIPELINE_STAGES: List[Stage] = [
    ("remove_fillers", remove_fillers),
    ("resolve_self_corrections", resolve_self_corrections),
    ("normalize_punctuation", normalize_punctuation),
    ("structurize", structurize),
    ("final_cleanup", final_cleanup),
]


def run_stages(raw: str) -> List[Tuple[str, str]]:
    """
    Run the pipeline and return the text after each stage.

    Useful for inspecting where a transcript changed; an empty or blank input
    yields an empty list.
    """
    if not raw or not raw.strip():
        return []

    trace = []
    text = raw
    for name, stage in PIPELINE_STAGES:
        with stage_timer(f"clean_text.{name}"):
            text = stage(text)
        trace.append((name, text))
    return trace


@timer
def clean_text(raw: str) -> str:
    """
    Normalize a raw transcript.

    Args:
        raw: Transcript text as recognized, possibly with interim fragments

    Returns:
        Cleaned text, or "" for empty or whitespace-only input
    """
    trace = run_stages(raw)
    return trace[-1][1] if trace else ""
