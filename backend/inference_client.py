"""
Inference Service Client
Forwards a video (upload or YouTube URL) to the external sentiment/emotion
inference service and returns its timed utterances.
"""

import httpx
import logging
from typing import Optional

from pydantic import ValidationError

from transcript import InferenceResult

logger = logging.getLogger(__name__)

PREDICT_PATH = "/predict"
DEFAULT_TIMEOUT = 120.0


class InferenceServiceError(Exception):
    """The inference service failed or returned something unusable."""


class InferenceClient:
    """
    Thin async client for the inference service's /predict route.
    Upstream failures are not retried.
    """

    def __init__(self, base_url: str, timeout: float = DEFAULT_TIMEOUT, client: Optional[httpx.AsyncClient] = None):
        """Initialize with the service base URL (no trailing /predict)."""
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "InferenceClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def predict_url(self) -> str:
        return f"{self.base_url}{PREDICT_PATH}"

    async def predict_youtube(self, youtube_url: str) -> dict:
        """Ask the service to fetch and analyze a YouTube video."""
        return await self._post(json={"youtubeUrl": youtube_url})

    async def predict_upload(self, filename: str, content: bytes, content_type: Optional[str] = None) -> dict:
        """Forward an uploaded video file as multipart field 'video'."""
        files = {"video": (filename, content, content_type or "application/octet-stream")}
        return await self._post(files=files)

    async def _post(self, **kwargs) -> dict:
        try:
            response = await self.client.post(self.predict_url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Inference service request failed: {e!r}")
            raise InferenceServiceError(f"Inference request failed: {e}") from e

        if response.status_code < 200 or response.status_code >= 300:
            logger.error(f"Inference service error: {response.status_code}")
            raise InferenceServiceError(f"API responded with status: {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise InferenceServiceError("Inference service returned invalid JSON") from e

        if not isinstance(payload, dict):
            raise InferenceServiceError("Inference service returned an unexpected payload")
        return payload

    async def close(self) -> None:
        await self.client.aclose()


def parse_inference_result(payload: dict) -> InferenceResult:
    """
    Validate a service payload into an InferenceResult.
    Accepts both {utterances: [...]} and the proxied {analysis: {utterances: [...]}}.
    """
    if isinstance(payload, dict) and isinstance(payload.get("analysis"), dict):
        payload = payload["analysis"]
    try:
        return InferenceResult.model_validate(payload)
    except ValidationError as e:
        raise InferenceServiceError(f"Malformed inference payload: {e.error_count()} error(s)") from e
