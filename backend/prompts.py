"""
Moderation prompts

Two layers of prompt text:
  1. The transcript prompt: formatted utterances plus the five questions,
     sent as the `prompt` field of a moderation request.
  2. The moderation template: wraps whatever prompt arrives at the
     moderation endpoint in the fixed expert instructions whose section
     layout the parser relies on (numbered category headers, OVERALL,
     RISK RATING, KEY TIMESTAMPS).
"""

from transcript import Utterance, format_transcript

TRANSCRIPT_PROMPT_TEMPLATE = """As a content moderation AI, analyze this video transcript data for any problematic content:

{transcript}

Please evaluate if this content contains any of the following:
1. Hate speech or discrimination
2. Explicit or violent content
3. Harassment or bullying
4. Misinformation
5. Content that violates community guidelines

For each category, provide a YES/NO determination and brief explanation.
Then provide an overall assessment on whether this content is suitable for social media platforms.
Rate the overall content risk on a scale of 1-10 (1 being completely safe, 10 being highly problematic)."""

MODERATION_PROMPT_TEMPLATE = """You are an AI content moderation expert.

Analyze the following video transcript data for policy violations and harmful content.
The transcript includes timestamps for each utterance. Your task is to identify problematic content
and associate it with the specific timestamps where it occurs.

{transcript}

Provide a detailed analysis with the following structure:

1. HATE SPEECH: [YES/NO] - Followed by a brief explanation of why.
   If YES, include the exact timestamps where hate speech occurs in format: [start_time-end_time].

2. EXPLICIT CONTENT: [YES/NO] - Analyze for sexual, violent, or disturbing content.
   If YES, include the exact timestamps where explicit content occurs in format: [start_time-end_time].

3. HARASSMENT: [YES/NO] - Determine if there's targeted negativity, bullying, or mockery.
   If YES, include the exact timestamps where harassment occurs in format: [start_time-end_time].

4. MISINFORMATION: [YES/NO] - Check for obviously false claims presented as facts.
   If YES, include the exact timestamps where misinformation occurs in format: [start_time-end_time].

5. COMMUNITY GUIDELINES: [YES/NO] - Assess compliance with typical platform policies.
   If YES, include the exact timestamps of any violations in format: [start_time-end_time].

OVERALL ASSESSMENT: Provide a final judgment on whether this content is suitable for social media platforms.

RISK RATING: Rate the content on a scale of 1-10 (1 being completely safe, 10 being highly problematic).

KEY TIMESTAMPS: Provide a JSON-formatted list of problematic moments in the video with this format:
[
  {{
    "timestamp": "start_time-end_time",
    "issue": "Brief description of the issue",
    "category": "HATE_SPEECH|EXPLICIT|HARASSMENT|MISINFORMATION|GUIDELINES",
    "severity": 1-10
  }}
]"""


def build_transcript_prompt(utterances: list[Utterance]) -> str:
    """Request prompt for a transcript: formatted utterances plus the five questions."""
    return TRANSCRIPT_PROMPT_TEMPLATE.format(transcript=format_transcript(utterances))


def build_moderation_prompt(transcript_text: str) -> str:
    """Wrap transcript text in the fixed moderation instructions. No validation is done on the text."""
    return MODERATION_PROMPT_TEMPLATE.format(transcript=transcript_text)
