"""
Analysis pipeline: inference service -> transcript -> LLM -> parsed report.

The two stages are awaited one after the other; the typed InferenceResult
is the only thing passed between them.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Callable, Optional

from inference_client import InferenceClient, parse_inference_result
from llm_client import ModerationLLM
from moderation_parser import ModerationReport, parse_moderation_text
from prompts import build_moderation_prompt, build_transcript_prompt
from transcript import InferenceResult

logger = logging.getLogger(__name__)


class AnalysisInProgressError(Exception):
    """An analysis for this session is already running."""


@dataclass
class VideoSource:
    """A video to analyze: a YouTube URL or an uploaded file."""
    youtube_url: Optional[str] = None
    filename: Optional[str] = None
    content: Optional[bytes] = None
    content_type: Optional[str] = None

    @property
    def is_upload(self) -> bool:
        return self.content is not None

    def describe(self) -> str:
        return f"upload {self.filename}" if self.is_upload else f"url {self.youtube_url}"


@dataclass
class AnalysisResult:
    inference: InferenceResult
    moderation: ModerationReport


async def request_inference(client: InferenceClient, source: VideoSource) -> dict:
    """Send the source to the inference service and return its raw payload."""
    if source.is_upload:
        return await client.predict_upload(source.filename or "video", source.content, source.content_type)
    return await client.predict_youtube(source.youtube_url)


async def moderate_prompt(llm: ModerationLLM, prompt: str) -> ModerationReport:
    """Wrap the prompt in the moderation template, ask the LLM, parse its answer."""
    text = await llm.generate(build_moderation_prompt(prompt))
    return parse_moderation_text(text)


class AnalysisPipeline:
    """
    Runs inference then moderation for one video.

    Args:
        inference_client_factory: returns a fresh InferenceClient per run
        llm: the moderation LLM
    """

    def __init__(self, inference_client_factory: Callable[[], InferenceClient], llm: ModerationLLM):
        self.inference_client_factory = inference_client_factory
        self.llm = llm
        self._in_flight: set[str] = set()

    def is_running(self, session_id: str) -> bool:
        return session_id in self._in_flight

    async def run_inference(self, source: VideoSource) -> InferenceResult:
        async with self.inference_client_factory() as client:
            payload = await request_inference(client, source)
        return parse_inference_result(payload)

    async def moderate_transcript(self, inference: InferenceResult) -> ModerationReport:
        return await moderate_prompt(self.llm, build_transcript_prompt(inference.utterances))

    @asynccontextmanager
    async def reserve(self, session_id: str):
        """
        Hold the session's single in-flight slot for the duration of the block.

        The slot is claimed before the first await, so callers can charge
        quota inside the block without a second request slipping past.

        Raises:
            AnalysisInProgressError: the session already has a run in flight
        """
        if session_id in self._in_flight:
            raise AnalysisInProgressError(f"Analysis already running for {session_id}")
        self._in_flight.add(session_id)
        try:
            yield
        finally:
            self._in_flight.discard(session_id)

    async def run(self, source: VideoSource) -> AnalysisResult:
        logger.info(f"Analyzing {source.describe()}")
        inference = await self.run_inference(source)
        logger.info(f"Inference returned {len(inference.utterances)} utterance(s)")
        moderation = await self.moderate_transcript(inference)
        return AnalysisResult(inference=inference, moderation=moderation)

    async def analyze(self, session_id: str, source: VideoSource) -> AnalysisResult:
        """
        Full analysis for one session.

        Raises:
            AnalysisInProgressError: the session already has a run in flight
            InferenceServiceError / LLMError: an upstream stage failed
        """
        async with self.reserve(session_id):
            return await self.run(source)
