import pytest
import sys
from pathlib import Path

# Add backend directory to path so imports work
backend_path = Path(__file__).parent.parent
sys.path.append(str(backend_path))


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def sample_utterance_payload():
    return {
        "text": "Oh my god, he's lost to this totally",
        "start_time": 0.0,
        "end_time": 2.36,
        "emotions": [
            {"label": "surprise", "confidence": 0.612},
            {"label": "joy", "confidence": 0.204},
            {"label": "neutral", "confidence": 0.101},
        ],
        "sentiments": [
            {"label": "negative", "confidence": 0.734},
            {"label": "neutral", "confidence": 0.2},
        ],
    }


@pytest.fixture
def sample_inference_payload(sample_utterance_payload):
    return {
        "utterances": [
            sample_utterance_payload,
            {
                "text": "Anyway, let's get back to the match.",
                "start_time": 2.36,
                "end_time": 5.0,
                "emotions": [{"label": "neutral", "confidence": 0.9}],
                "sentiments": [{"label": "neutral", "confidence": 0.8}],
            },
        ]
    }


@pytest.fixture
def regex_moderation_text():
    """LLM answer with category sections and no KEY TIMESTAMPS JSON."""
    return (
        "1. HATE SPEECH: NO. Nothing discriminatory at [4.0-5.0].\n"
        "2. EXPLICIT CONTENT: NO.\n"
        "3. HARASSMENT: YES. The speaker directs mockery [0.0-2.36] at the player.\n"
        "4. MISINFORMATION: NO.\n"
        "5. COMMUNITY GUIDELINES: NO.\n"
        "OVERALL ASSESSMENT: The content is mostly suitable for social media platforms.\n"
        "RISK RATING: 3"
    )


@pytest.fixture
def json_moderation_text():
    """LLM answer with a well-formed KEY TIMESTAMPS block."""
    return (
        "1. HATE SPEECH: YES [9.0-10.0] slur used.\n"
        "OVERALL ASSESSMENT: Not suitable.\n"
        "RISK RATING: 8\n"
        "KEY TIMESTAMPS:\n"
        '[{"timestamp": "1.5-3.0", "issue": "Slur aimed at the audience", '
        '"category": "HATE_SPEECH", "severity": 9}, '
        '{"timestamp": "12-14", "issue": "Crude gesture", '
        '"category": "EXPLICIT", "severity": 5}]'
    )
