"""
Severity Estimator
Assigns a 1-10 severity to an extracted issue from keywords in the
surrounding LLM text, falling back to a per-category default.
"""

from categories import ModerationCategory, UNKNOWN_CATEGORY_SEVERITY

# Checked in this order, first hit wins
HIGH_SEVERITY_TERMS = ["severe", "extreme", "very problematic", "highly"]
MID_SEVERITY_TERMS = ["moderate", "concerning", "problematic"]
LOW_SEVERITY_TERMS = ["mild", "slight", "minor", "borderline"]

HIGH_SEVERITY_SCORE = 8
HIGH_SEVERITY_SCORE_GRAVE = 9     # Explicit content and hate speech
MID_SEVERITY_SCORE = 6
LOW_SEVERITY_SCORE = 4

GRAVE_CATEGORIES = {ModerationCategory.EXPLICIT.code, ModerationCategory.HATE_SPEECH.code}


def default_severity(category: str) -> int:
    """Severity for a category when the text carries no intensity keywords."""
    member = ModerationCategory.from_code(category)
    if member is None:
        return UNKNOWN_CATEGORY_SEVERITY
    return member.default_severity


def calculate_severity(text: str, category: str) -> int:
    """
    Estimate severity of an issue from the text of its category section.

    Matching is case-insensitive substring containment. Note that
    "very problematic" also contains "problematic", so the high tier must
    be checked before the mid tier.
    """
    text_lower = (text or "").lower()

    if any(term in text_lower for term in HIGH_SEVERITY_TERMS):
        return HIGH_SEVERITY_SCORE_GRAVE if category in GRAVE_CATEGORIES else HIGH_SEVERITY_SCORE
    if any(term in text_lower for term in MID_SEVERITY_TERMS):
        return MID_SEVERITY_SCORE
    if any(term in text_lower for term in LOW_SEVERITY_TERMS):
        return LOW_SEVERITY_SCORE

    return default_severity(category)
