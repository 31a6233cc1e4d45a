"""
Seek bar <-> issue synchronization

Pure helpers behind the results page's video tab: where issue markers sit
on the seek bar, what a hovered issue's tooltip shows, and where a click seeks.
Issue lists may come verbatim from the LLM, so every helper tolerates
malformed entries.
"""

import math
import re
from typing import Optional

from categories import category_info

_LEADING_NUMBER = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def _parse_float(value) -> Optional[float]:
    """Lenient number parse: reads the leading number of a string, like a browser would."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None
    match = _LEADING_NUMBER.match(value)
    return float(match.group(1)) if match else None


def parse_timestamp_range(timestamp) -> Optional[tuple[float, float]]:
    """Split "start-end" into floats; None when either side is unreadable."""
    if not isinstance(timestamp, str):
        return None
    parts = timestamp.split("-")
    if len(parts) < 2:
        return None
    start, end = _parse_float(parts[0]), _parse_float(parts[1])
    if start is None or end is None:
        return None
    return start, end


def issue_range(issue) -> Optional[tuple[float, float]]:
    if not isinstance(issue, dict):
        return None
    return parse_timestamp_range(issue.get("timestamp"))


def _percent(seconds: float, duration: float) -> float:
    return max(0.0, min(100.0, seconds / duration * 100))


def build_seek_markers(issues: list, duration: float) -> list[dict]:
    """One seek bar segment per issue, positioned as a percentage of the video duration."""
    if not duration or not math.isfinite(duration) or duration <= 0:
        return []

    markers = []
    for index, issue in enumerate(issues or []):
        bounds = issue_range(issue)
        if bounds is None:
            continue
        start, end = bounds
        left = _percent(start, duration)
        right = _percent(end, duration)
        markers.append({
            "index": index,
            "timestamp": issue.get("timestamp"),
            "start": start,
            "end": end,
            "left": round(left, 4),
            "width": round(max(0.0, right - left), 4),
            "category": issue.get("category"),
            **category_info(issue.get("category")),
        })
    return markers


def tooltip_for(issue: dict) -> dict:
    """Tooltip content for a hovered issue."""
    return {
        "issue": issue.get("issue", ""),
        "category": issue.get("category", ""),
        "label": category_info(issue.get("category"))["label"],
        "severity": issue.get("severity", 0),
    }


def seek_target(timestamp) -> Optional[float]:
    """Where clicking an issue seeks the video: the start of its range."""
    if isinstance(timestamp, str):
        return _parse_float(timestamp.split("-")[0])
    return None


def format_time(seconds) -> str:
    """Seconds to MM:SS"""
    value = _parse_float(seconds)
    if value is None or value < 0:
        return "00:00"
    minutes = int(value // 60)
    secs = int(value % 60)
    return f"{minutes:02d}:{secs:02d}"


def utterance_has_issue(utterance, issues: list) -> bool:
    """True when any issue's range overlaps the utterance's span."""
    for issue in issues or []:
        bounds = issue_range(issue)
        if bounds and utterance.start_time <= bounds[1] and utterance.end_time >= bounds[0]:
            return True
    return False
