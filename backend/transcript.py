"""
Transcript data model and formatter

The inference service returns timed utterances with emotion and sentiment
scores. These models validate that payload and render it as the plain-text
block that gets embedded in the moderation prompt.
"""

import math
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ScoredLabel(BaseModel):
    label: str
    confidence: float = Field(0.0, ge=0.0, le=1.0)


class Utterance(BaseModel):
    model_config = ConfigDict(extra="allow")

    text: str = ""
    start_time: float = Field(0.0, ge=0.0)
    end_time: float = Field(0.0, ge=0.0)
    emotions: list[ScoredLabel] = []
    sentiments: list[ScoredLabel] = []

    @model_validator(mode="after")
    def check_time_order(self):
        if self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")
        return self

    def dominant_emotions(self, limit: int = 2) -> list[ScoredLabel]:
        """Highest-confidence emotions first; ties keep the service's order."""
        return sorted(self.emotions, key=lambda e: e.confidence, reverse=True)[:limit]

    def top_sentiment(self) -> Optional[ScoredLabel]:
        return max(self.sentiments, key=lambda s: s.confidence, default=None)


class InferenceResult(BaseModel):
    """What the inference service hands back for one video."""
    model_config = ConfigDict(extra="allow")

    utterances: list[Utterance] = []


def format_number(value) -> str:
    """
    Render seconds the way the results UI shows them: integral values lose
    their fractional part (0.0 -> "0"), everything else uses the shortest
    round-trip form (2.36 -> "2.36").
    """
    if value is None:
        return "0"
    value = float(value)
    if math.isfinite(value) and value.is_integer():
        return str(int(value))
    return repr(value)


def _format_score(score: Optional[ScoredLabel]) -> str:
    if score is None:
        return "unknown (0.0%)"
    return f"{score.label} ({score.confidence * 100:.1f}%)"


def format_utterance(index: int, utterance: Utterance) -> str:
    """Render one utterance paragraph; index is 1-based."""
    emotions = ", ".join(_format_score(e) for e in utterance.dominant_emotions(2))
    return (
        f"Utterance {index} ({format_number(utterance.start_time)}s - "
        f"{format_number(utterance.end_time)}s): \"{utterance.text}\"\n"
        f"- Dominant emotions: {emotions}\n"
        f"- Sentiment: {_format_score(utterance.top_sentiment())}"
    )


def format_transcript(utterances: list[Utterance]) -> str:
    """Render utterances as prompt-ready text, one paragraph each."""
    return "\n\n".join(
        format_utterance(i, utterance) for i, utterance in enumerate(utterances, start=1)
    )
