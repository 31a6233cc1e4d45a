"""
Video Content Moderator - Backend API
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

FastAPI server for video sentiment inference and LLM content moderation.
"""

import os
import logging
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

import time
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import AnyUrl, BaseModel, Field, TypeAdapter, ValidationError
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import Optional
import uvicorn

from inference_client import InferenceClient, InferenceServiceError
from llm_client import LLMError, ModerationLLM
from pipeline import AnalysisInProgressError, AnalysisPipeline, VideoSource, moderate_prompt, request_inference
from quota_db import QuotaDatabase
from report import DEFAULT_TAB, generate_report_html, get_risk_level
from transcript import Utterance

VERSION = "1.0.0"

ALLOWED_VIDEO_EXTENSIONS = (".mp4", ".mov", ".avi")
_url_adapter = TypeAdapter(AnyUrl)

app = FastAPI(
    title="Video Content Moderator API",
    description="Runs sentiment/emotion inference on videos and moderates the transcript with an LLM",
    version=VERSION
)


# Error bodies are {"error": "..."} throughout
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


# Security headers middleware
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Attach security headers (X-Content-Type-Options, X-Frame-Options, etc.)."""
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"
    return response


# Per-IP rate limiting middleware
_rate_limit_store: dict[str, list[float]] = {}
RATE_LIMIT_WINDOW = 60  # seconds
RATE_LIMIT_CLEANUP_THRESHOLD = 200
RATE_LIMITS = {
    "/analyze": 5,                # full pipeline, slow and expensive
    "/sentiment-inference": 10,
    "/moderation": 15,
    "/health": 60,
}
DEFAULT_RATE_LIMIT = 30  # For unlisted endpoints


def _cleanup_rate_limit_store(now: float) -> None:
    """Drop keys whose newest request fell out of the window."""
    cutoff = now - RATE_LIMIT_WINDOW
    stale_keys = [
        k for k, v in _rate_limit_store.items()
        if not v or v[-1] < cutoff
    ]
    for k in stale_keys:
        del _rate_limit_store[k]


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    """Enforce per-IP, per-endpoint rate limits using a sliding window."""
    client_ip = request.client.host if request.client else "unknown"
    path = request.url.path.rstrip("/")
    limit = RATE_LIMITS.get(path, DEFAULT_RATE_LIMIT)
    key = f"{client_ip}:{path}"

    now = time.time()
    timestamps = _rate_limit_store.get(key, [])
    # Remove old timestamps outside the window
    timestamps = [t for t in timestamps if now - t < RATE_LIMIT_WINDOW]

    if len(timestamps) >= limit:
        return JSONResponse(
            status_code=429,
            content={"error": f"Rate limit exceeded. Max {limit} requests per minute for {path}."}
        )

    timestamps.append(now)
    _rate_limit_store[key] = timestamps

    if len(_rate_limit_store) > RATE_LIMIT_CLEANUP_THRESHOLD:
        _cleanup_rate_limit_store(now)

    return await call_next(request)


# CORS for the web frontend (comma separated ALLOWED_ORIGINS)
_allowed_origins = [o.strip() for o in os.environ.get("ALLOWED_ORIGINS", "").split(",") if o.strip()]
if _allowed_origins:
    logger.info(f"CORS: Locked to {len(_allowed_origins)} origin(s)")
else:
    _allowed_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
    logger.warning("CORS: No ALLOWED_ORIGINS set - allowing localhost:3000 only (dev mode).")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
)

# Initialize components
gemini_api_key = os.environ.get("GEMINI_API_KEY")
anthropic_api_key = os.environ.get("ANTHROPIC_API_KEY")
openai_api_key = os.environ.get("OPENAI_API_KEY")
inference_api_url = os.environ.get("INFERENCE_API_URL", "http://127.0.0.1:8001")
inference_timeout = float(os.environ.get("INFERENCE_TIMEOUT", "120"))

llm = ModerationLLM(
    gemini_api_key=gemini_api_key,
    anthropic_api_key=anthropic_api_key,
    openai_api_key=openai_api_key,
    provider=os.environ.get("LLM_PROVIDER", "auto"),
    model=os.environ.get("LLM_MODEL") or None,
)

quota_db = QuotaDatabase(
    db_path=os.environ.get("QUOTA_DB_PATH") or None,
    default_monthly_limit=int(os.environ.get("MONTHLY_QUOTA", "100")),
)
# API_KEYS="secret1:user1,secret2:user2"
for _entry in os.environ.get("API_KEYS", "").split(","):
    _secret, _, _user_id = _entry.strip().partition(":")
    if _secret and _user_id:
        quota_db.add_key(_secret, _user_id)


def make_inference_client() -> InferenceClient:
    return InferenceClient(inference_api_url, timeout=inference_timeout)


pipeline = AnalysisPipeline(make_inference_client, llm)

# Startup validation - log feature availability
_features = {
    "llm_moderation": llm.is_enabled,
    "llm_provider": llm.provider,
    "llm_model": llm.model,
    "inference_service": inference_api_url,
    "api_keys": str(len(quota_db.api_keys)),
}
logger.info("=== Feature Availability ===")
for feature, enabled in _features.items():
    if isinstance(enabled, str):
        logger.info(f"  {feature}: {enabled}")
    else:
        status = "ENABLED" if enabled else "DISABLED"
        logger.info(f"  {feature}: {status}")
if not llm.is_enabled:
    logger.warning("No LLM configured. Set GEMINI_API_KEY, ANTHROPIC_API_KEY or OPENAI_API_KEY to enable moderation.")
if not quota_db.api_keys:
    logger.warning("No API keys registered. Set API_KEYS or QUOTA_DB_PATH to accept inference requests.")


# Request/Response models
class ModerationRequest(BaseModel):
    prompt: Optional[str] = Field(None, max_length=200_000)


class ModerationResponse(BaseModel):
    text: str
    moderationScore: int
    keyTimestamps: list


class ReportRequest(BaseModel):
    moderation: dict = Field(default_factory=dict)
    utterances: list[Utterance] = Field(default_factory=list)
    video_url: Optional[str] = Field(None, max_length=2048)
    duration: Optional[float] = Field(None, ge=0)


def require_user(request: Request) -> str:
    """Resolve the Bearer API key to a user id (401 when absent or unknown)."""
    api_key = request.headers.get("Authorization", "").replace("Bearer ", "", 1).strip()
    if not api_key:
        raise HTTPException(status_code=401, detail="API key required")
    user_id = quota_db.lookup_user(api_key)
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return user_id


async def require_quota(user_id: str) -> None:
    if not await quota_db.check_and_update_quota(user_id, True):
        raise HTTPException(status_code=429, detail="Monthly quota exceeded")


async def read_video_source(request: Request) -> VideoSource:
    """Read a YouTube URL (JSON body) or an uploaded video (multipart field 'video')."""
    content_type = request.headers.get("content-type", "")

    if "application/json" in content_type:
        try:
            body = await request.json()
        except ValueError:
            body = None
        youtube_url = body.get("youtubeUrl") if isinstance(body, dict) else None
        if not youtube_url:
            raise HTTPException(status_code=400, detail="YouTube URL is required")
        try:
            _url_adapter.validate_python(youtube_url)
        except ValidationError:
            raise HTTPException(status_code=400, detail="Invalid YouTube URL format")
        return VideoSource(youtube_url=youtube_url)

    form = await request.form()
    uploaded = form.get("video")
    if not isinstance(uploaded, UploadFile):
        raise HTTPException(status_code=400, detail="Video file is required")

    try:
        filename = (uploaded.filename or "").lower()
        if not filename.endswith(ALLOWED_VIDEO_EXTENSIONS):
            raise HTTPException(
                status_code=400,
                detail="Unsupported file format. Please upload MP4, MOV, or AVI."
            )
        content = await uploaded.read()
    finally:
        await uploaded.close()

    return VideoSource(filename=uploaded.filename, content=content, content_type=uploaded.content_type)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": VERSION
    }


@app.post("/moderation", response_model=ModerationResponse)
async def moderate(request: ModerationRequest):
    """
    Moderate a transcript prompt.

    Wraps the prompt in the moderation template, sends it to the LLM and
    parses the answer into a risk score and timestamped issues. Garbled
    LLM output degrades to defaults; only upstream failures return 500.
    """
    if not request.prompt or not request.prompt.strip():
        raise HTTPException(status_code=400, detail="Prompt is required")

    try:
        report = await moderate_prompt(llm, request.prompt)
    except LLMError as e:
        logger.error(f"Moderation LLM error: {e}")
        raise HTTPException(status_code=500, detail="Failed to process with LLM")

    return report.as_response()


@app.post("/sentiment-inference")
async def sentiment_inference(request: Request):
    """
    Forward a video to the inference service.

    Accepts JSON {youtubeUrl} or multipart form data with a 'video' file.
    Requires a Bearer API key and consumes one unit of monthly quota.
    """
    user_id = require_user(request)
    await require_quota(user_id)
    source = await read_video_source(request)

    try:
        async with make_inference_client() as client:
            analysis = await request_inference(client, source)
    except InferenceServiceError as e:
        logger.error(f"Analysis error: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    await quota_db.record_upload(user_id, analyzed=True)
    return {"analysis": analysis}


@app.post("/analyze")
async def analyze_video(request: Request):
    """
    Run the full pipeline for one video.

    This endpoint:
    1. Sends the video to the inference service
    2. Formats the utterances into a transcript prompt
    3. Asks the LLM to moderate it
    4. Returns the analysis, the parsed moderation and the risk band
    """
    user_id = require_user(request)

    # Claim the in-flight slot before charging quota
    try:
        async with pipeline.reserve(user_id):
            await require_quota(user_id)
            source = await read_video_source(request)
            result = await pipeline.run(source)
    except AnalysisInProgressError:
        raise HTTPException(status_code=409, detail="Analysis already in progress")
    except (InferenceServiceError, LLMError) as e:
        logger.error(f"Analysis pipeline error: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    await quota_db.record_upload(user_id, analyzed=True)
    return {
        "analysis": result.inference.model_dump(),
        "moderation": result.moderation.as_response(),
        "riskLevel": get_risk_level(result.moderation.risk_score),
    }


@app.get("/quota")
async def get_quota(request: Request):
    """Current month's usage for the caller's API key"""
    user_id = require_user(request)
    return quota_db.get_usage(user_id)


@app.post("/report", response_class=HTMLResponse)
async def get_full_report(request: ReportRequest, tab: str = Query(DEFAULT_TAB, max_length=20)):
    """Render the tabbed results page for a moderation result"""
    return generate_report_html(
        request.moderation,
        request.utterances,
        request.video_url,
        active_tab=tab,
        duration=request.duration,
    )


if __name__ == "__main__":
    logger.info("Video Content Moderator API")
    logger.info("Starting server at http://127.0.0.1:8000")
    logger.info("API docs: http://127.0.0.1:8000/docs")
    uvicorn.run(app, host="127.0.0.1", port=8000)
