"""
Moderation Categories - the closed set of concerns the LLM is asked about

Each category knows the section header the moderation prompt uses for it,
the severity assigned when no keyword heuristic fires, and how the results
page displays it.
"""

from enum import Enum


class ModerationCategory(Enum):
    # code, section header, default severity, label, text color, background, icon
    HATE_SPEECH = ("HATE_SPEECH", "HATE SPEECH", 7, "Hate Speech", "#DC2626", "#FEE2E2", "⚠️")
    EXPLICIT = ("EXPLICIT", "EXPLICIT CONTENT", 7, "Explicit Content", "#DB2777", "#FCE7F3", "🔞")
    HARASSMENT = ("HARASSMENT", "HARASSMENT", 6, "Harassment", "#F97316", "#FFEDD5", "👊")
    MISINFORMATION = ("MISINFORMATION", "MISINFORMATION", 5, "Misinformation", "#EAB308", "#FEF3C7", "❓")
    GUIDELINES = ("GUIDELINES", "COMMUNITY GUIDELINES", 4, "Policy Violation", "#3B82F6", "#DBEAFE", "📜")

    def __init__(self, code, header, default_severity, label, color, bg_color, icon):
        self.code = code
        self.header = header
        self.default_severity = default_severity
        self.label = label
        self.color = color
        self.bg_color = bg_color
        self.icon = icon

    @classmethod
    def from_code(cls, code) -> "ModerationCategory | None":
        """Look up a category by its wire code (e.g. "HATE_SPEECH")."""
        for category in cls:
            if category.code == code:
                return category
        return None


# Severity used for codes outside the fixed set
UNKNOWN_CATEGORY_SEVERITY = 5

UNKNOWN_CATEGORY_INFO = {
    "label": "Issue",
    "color": "#6B7280",
    "bg_color": "#F3F4F6",
    "icon": "⚠️",
}


def category_info(code) -> dict:
    """Display info for a category code; unknown codes get a generic entry."""
    category = ModerationCategory.from_code(code)
    if category is None:
        return dict(UNKNOWN_CATEGORY_INFO)
    return {
        "label": category.label,
        "color": category.color,
        "bg_color": category.bg_color,
        "icon": category.icon,
    }
