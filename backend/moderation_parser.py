"""Video Content Moderator - Moderation Text Parser
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Recovers structure from the free-form moderation text the LLM returns:
  - a 1-10 risk score (explicit rating patterns, then keyword scoring)
  - a list of timestamped, categorized issues

Issue extraction has two independent strategies:
  Fast path: parse the JSON array under "KEY TIMESTAMPS:"
  Fallback:  per-category regex over "<HEADER>: YES ..." sections

Nothing in here raises for bad input. Garbled or partial LLM output is
expected and degrades to heuristic defaults.
"""

import json
import re
import logging
from dataclasses import dataclass, field
from typing import Optional

from categories import ModerationCategory
from severity import calculate_severity
from transcript import format_number

logger = logging.getLogger(__name__)

# Input truncation limit (ReDoS prevention)
MAX_MODERATION_TEXT_LENGTH = 200_000

MIN_RISK_SCORE = 1
MAX_RISK_SCORE = 10
DEFAULT_RISK_SCORE = 2

MAX_DESCRIPTION_LENGTH = 100
ELLIPSIS = "..."

# Tried in order; a match outside [1, 10] falls through to the next one
RISK_SCORE_PATTERNS = [
    re.compile(r"RISK RATING:.*?(\d+)", re.IGNORECASE | re.DOTALL),
    re.compile(r"rate.*?(\d+).*?out of 10", re.IGNORECASE),
    re.compile(r"(\d+)/10", re.IGNORECASE),
]

# (keywords, score) checked in order when no explicit rating is found
RISK_KEYWORD_SCORES = [
    (["not suitable", "high risk", "severe violation"], 8),
    (["potentially problematic", "medium risk", "borderline"], 5),
]

KEY_TIMESTAMPS_JSON_PATTERN = re.compile(
    r"KEY TIMESTAMPS:.*?(\[\s*\{.*?\}\s*\])", re.IGNORECASE | re.DOTALL
)

TIMESTAMP_PATTERN = re.compile(r"\[(\d+\.?\d*)-(\d+\.?\d*)\]")
TIMESTAMP_TOKEN_PATTERN = re.compile(r"\s*\[\d+\.?\d*-\d+\.?\d*\]\s*")
LEADING_TERMINATOR_PATTERN = re.compile(r"^\.\s*")

# Section runs from "<HEADER>: YES" to the next "N. " list marker, OVERALL, or end of text
SECTION_PATTERNS = {
    category: re.compile(
        rf"{re.escape(category.header)}:\s*YES.*?(?=\d\.\s|OVERALL|\Z)",
        re.IGNORECASE | re.DOTALL,
    )
    for category in ModerationCategory
}


@dataclass
class ModerationReport:
    """Parsed view of one LLM moderation response."""
    raw_text: str
    risk_score: int
    issues: list[dict] = field(default_factory=list)

    def as_response(self) -> dict:
        """Wire shape returned by the moderation endpoint."""
        return {
            "text": self.raw_text,
            "moderationScore": self.risk_score,
            "keyTimestamps": self.issues,
        }


# ------------------------------------------------------------------ #
#  Risk score                                                        #
# ------------------------------------------------------------------ #

def extract_risk_score(text: str) -> int:
    """Pull a 1-10 risk rating out of LLM text, estimating one from keywords if needed."""
    text = (text or "")[:MAX_MODERATION_TEXT_LENGTH]

    for pattern in RISK_SCORE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        score = int(match.group(1))
        if MIN_RISK_SCORE <= score <= MAX_RISK_SCORE:
            return score
        logger.debug(f"Ignoring out-of-range rating {score} from pattern {pattern.pattern!r}")

    text_lower = text.lower()
    for keywords, score in RISK_KEYWORD_SCORES:
        if any(keyword in text_lower for keyword in keywords):
            return score
    return DEFAULT_RISK_SCORE


# ------------------------------------------------------------------ #
#  Issues: JSON fast path                                            #
# ------------------------------------------------------------------ #

def _reject_constant(name: str):
    raise ValueError(f"non-finite number {name} is not valid JSON")


def extract_json_timestamps(text: str) -> Optional[list]:
    """
    Parse the first JSON array of objects following "KEY TIMESTAMPS:".

    Returns the parsed list verbatim, or None when there is no such array
    or it is not valid JSON (caller should then use the regex fallback).
    """
    match = KEY_TIMESTAMPS_JSON_PATTERN.search((text or "")[:MAX_MODERATION_TEXT_LENGTH])
    if not match:
        return None
    try:
        parsed = json.loads(match.group(1), parse_constant=_reject_constant)
    except ValueError as e:
        logger.warning(f"Failed to parse KEY TIMESTAMPS JSON: {e}")
        return None
    if not isinstance(parsed, list):
        return None
    return parsed


# ------------------------------------------------------------------ #
#  Issues: per-category regex fallback                               #
# ------------------------------------------------------------------ #

def _describe_occurrence(section: str, match: re.Match) -> str:
    """Sentence around a bracketed timestamp, minus the timestamp token."""
    context_start = max(0, section.rfind(".", 0, match.start()))
    context_end = section.find(".", match.end())
    description = section[context_start:context_end if context_end > 0 else None].strip()

    description = LEADING_TERMINATOR_PATTERN.sub("", description)
    description = TIMESTAMP_TOKEN_PATTERN.sub(" ", description, count=1).strip()

    if len(description) > MAX_DESCRIPTION_LENGTH:
        description = description[:MAX_DESCRIPTION_LENGTH - len(ELLIPSIS)] + ELLIPSIS
    return description


def extract_section_issues(text: str, category: ModerationCategory) -> list[dict]:
    """Issues cited inside one category's YES section; empty when the section is absent or NO."""
    section_match = SECTION_PATTERNS[category].search(text)
    if not section_match:
        return []

    section = section_match.group(0)
    severity = calculate_severity(section, category.code)

    issues = []
    for match in TIMESTAMP_PATTERN.finditer(section):
        start, end = float(match.group(1)), float(match.group(2))
        if start > end:
            start, end = end, start
        issues.append({
            "timestamp": f"{format_number(start)}-{format_number(end)}",
            "issue": _describe_occurrence(section, match),
            "category": category.code,
            "severity": severity,
        })
    return issues


def extract_category_timestamps(text: str) -> list[dict]:
    """Regex fallback: walk the five category sections in their fixed order."""
    text = (text or "")[:MAX_MODERATION_TEXT_LENGTH]
    issues = []
    for category in ModerationCategory:
        issues.extend(extract_section_issues(text, category))
    return issues


def extract_key_timestamps(text: str) -> list:
    """Issue list from LLM text: JSON fast path first, regex fallback otherwise."""
    try:
        structured = extract_json_timestamps(text)
        if structured is not None:
            return structured
        return extract_category_timestamps(text)
    except Exception as e:
        logger.error(f"Error extracting timestamps: {e}")
        return []


# ------------------------------------------------------------------ #
#  Main entry point                                                  #
# ------------------------------------------------------------------ #

def parse_moderation_text(text) -> ModerationReport:
    """Build a ModerationReport from raw LLM output. Never raises."""
    if not isinstance(text, str):
        text = ""

    try:
        risk_score = extract_risk_score(text)
    except Exception as e:
        logger.error(f"Error extracting risk score: {e}")
        risk_score = DEFAULT_RISK_SCORE

    issues = extract_key_timestamps(text)

    logger.info(f"Parsed moderation text: risk_score={risk_score}, issues={len(issues)}")
    return ModerationReport(raw_text=text, risk_score=risk_score, issues=issues)
