import asyncio

import pytest
from unittest.mock import patch, AsyncMock, MagicMock
from httpx import AsyncClient, ASGITransport

import main
from main import app, _rate_limit_store
from inference_client import InferenceServiceError
from llm_client import LLMError
from quota_db import QuotaDatabase

AUTH = {"Authorization": "Bearer sk-test"}

LLM_TEXT = (
    "1. HATE SPEECH: NO.\n"
    "3. HARASSMENT: YES. The commentator directs mockery [0.0-2.36] at the player.\n"
    "OVERALL ASSESSMENT: Mostly fine.\nRISK RATING: 4"
)


@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture(autouse=True)
def clean_state():
    _rate_limit_store.clear()
    db = QuotaDatabase(default_monthly_limit=5)
    db.add_key("sk-test", "tester")
    with patch.object(main, "quota_db", db):
        yield db
    _rate_limit_store.clear()


def make_inference_factory(payload=None, error=None):
    instance = AsyncMock()
    if error:
        instance.predict_youtube.side_effect = error
        instance.predict_upload.side_effect = error
    else:
        instance.predict_youtube.return_value = payload
        instance.predict_upload.return_value = payload
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=instance)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    return factory, instance


class TestHealthEndpoint:
    @pytest.mark.asyncio
    async def test_health_returns_ok(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data

    @pytest.mark.asyncio
    async def test_health_has_security_headers(self, client):
        response = await client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"


class TestModerationEndpoint:
    @pytest.mark.asyncio
    async def test_moderation_parses_llm_text(self, client):
        with patch.object(main.llm, "generate", new_callable=AsyncMock, return_value=LLM_TEXT) as mock_generate:
            response = await client.post("/moderation", json={"prompt": "Utterance 1 ..."})

        assert response.status_code == 200
        data = response.json()
        assert data["text"] == LLM_TEXT
        assert data["moderationScore"] == 4
        assert data["keyTimestamps"] == [{
            "timestamp": "0-2.36",
            "issue": "The commentator directs mockery at the player",
            "category": "HARASSMENT",
            "severity": 6,
        }]
        assert "Utterance 1 ..." in mock_generate.await_args.args[0]

    @pytest.mark.asyncio
    async def test_missing_prompt(self, client):
        response = await client.post("/moderation", json={})
        assert response.status_code == 400
        assert response.json() == {"error": "Prompt is required"}

    @pytest.mark.asyncio
    async def test_blank_prompt(self, client):
        response = await client.post("/moderation", json={"prompt": "   "})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_no_body(self, client):
        response = await client.post("/moderation")
        assert response.status_code == 400
        assert "error" in response.json()

    @pytest.mark.asyncio
    async def test_llm_failure_is_500(self, client):
        with patch.object(main.llm, "generate", new_callable=AsyncMock, side_effect=LLMError("quota")):
            response = await client.post("/moderation", json={"prompt": "x"})
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to process with LLM"}

    @pytest.mark.asyncio
    async def test_garbage_llm_output_still_200(self, client):
        with patch.object(main.llm, "generate", new_callable=AsyncMock, return_value="KEY TIMESTAMPS: [{"):
            response = await client.post("/moderation", json={"prompt": "x"})
        assert response.status_code == 200
        assert response.json()["moderationScore"] == 2
        assert response.json()["keyTimestamps"] == []

    @pytest.mark.asyncio
    async def test_nan_in_key_timestamps_uses_section_fallback(self, client):
        text = LLM_TEXT + '\nKEY TIMESTAMPS: [{"timestamp": "0-2.36", "issue": "x", "category": "HARASSMENT", "severity": NaN}]'
        with patch.object(main.llm, "generate", new_callable=AsyncMock, return_value=text):
            response = await client.post("/moderation", json={"prompt": "x"})
        assert response.status_code == 200
        issues = response.json()["keyTimestamps"]
        assert len(issues) == 1
        assert issues[0]["severity"] == 6
        assert issues[0]["issue"] != "x"


class TestSentimentInferenceEndpoint:
    @pytest.mark.asyncio
    async def test_requires_api_key(self, client):
        response = await client.post("/sentiment-inference", json={"youtubeUrl": "https://youtu.be/abc"})
        assert response.status_code == 401
        assert response.json() == {"error": "API key required"}

    @pytest.mark.asyncio
    async def test_rejects_unknown_key(self, client):
        response = await client.post(
            "/sentiment-inference",
            json={"youtubeUrl": "https://youtu.be/abc"},
            headers={"Authorization": "Bearer sk-wrong"},
        )
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid API key"}

    @pytest.mark.asyncio
    async def test_quota_exceeded(self, client, clean_state):
        clean_state.api_keys["sk-test"]["used"] = 5
        response = await client.post("/sentiment-inference", json={"youtubeUrl": "https://youtu.be/abc"}, headers=AUTH)
        assert response.status_code == 429
        assert response.json() == {"error": "Monthly quota exceeded"}

    @pytest.mark.asyncio
    async def test_youtube_url(self, client, clean_state, sample_inference_payload):
        factory, instance = make_inference_factory(sample_inference_payload)
        with patch("main.make_inference_client", factory):
            response = await client.post(
                "/sentiment-inference", json={"youtubeUrl": "https://youtu.be/abc"}, headers=AUTH
            )
        assert response.status_code == 200
        assert response.json() == {"analysis": sample_inference_payload}
        instance.predict_youtube.assert_awaited_once_with("https://youtu.be/abc")
        assert clean_state.get_usage("tester")["used"] == 1
        assert clean_state.uploads[0]["user_id"] == "tester"

    @pytest.mark.asyncio
    async def test_missing_youtube_url(self, client):
        response = await client.post("/sentiment-inference", json={}, headers=AUTH)
        assert response.status_code == 400
        assert response.json() == {"error": "YouTube URL is required"}

    @pytest.mark.asyncio
    async def test_invalid_youtube_url(self, client):
        response = await client.post("/sentiment-inference", json={"youtubeUrl": "not a url"}, headers=AUTH)
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid YouTube URL format"}

    @pytest.mark.asyncio
    async def test_file_upload(self, client):
        factory, instance = make_inference_factory({"utterances": []})
        with patch("main.make_inference_client", factory):
            response = await client.post(
                "/sentiment-inference",
                files={"video": ("Clip.MP4", b"VIDEOBYTES", "video/mp4")},
                headers=AUTH,
            )
        assert response.status_code == 200
        instance.predict_upload.assert_awaited_once_with("Clip.MP4", b"VIDEOBYTES", "video/mp4")

    @pytest.mark.asyncio
    async def test_unsupported_file_type(self, client):
        response = await client.post(
            "/sentiment-inference",
            files={"video": ("notes.txt", b"hello", "text/plain")},
            headers=AUTH,
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Unsupported file format. Please upload MP4, MOV, or AVI."}

    @pytest.mark.asyncio
    async def test_missing_file(self, client):
        response = await client.post("/sentiment-inference", data={"other": "x"}, headers=AUTH)
        assert response.status_code == 400
        assert response.json() == {"error": "Video file is required"}

    @pytest.mark.asyncio
    async def test_upstream_failure(self, client, clean_state):
        factory, _ = make_inference_factory(error=InferenceServiceError("API responded with status: 503"))
        with patch("main.make_inference_client", factory):
            response = await client.post(
                "/sentiment-inference", json={"youtubeUrl": "https://youtu.be/abc"}, headers=AUTH
            )
        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}
        assert clean_state.uploads == []


class TestAnalyzeEndpoint:
    @pytest.mark.asyncio
    async def test_full_pipeline(self, client, sample_inference_payload):
        factory, _ = make_inference_factory(sample_inference_payload)
        llm = MagicMock()
        llm.generate = AsyncMock(return_value=LLM_TEXT)
        with patch.object(main.pipeline, "inference_client_factory", factory), \
                patch.object(main.pipeline, "llm", llm):
            response = await client.post("/analyze", json={"youtubeUrl": "https://youtu.be/abc"}, headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert len(data["analysis"]["utterances"]) == 2
        assert data["moderation"]["moderationScore"] == 4
        assert data["moderation"]["keyTimestamps"][0]["category"] == "HARASSMENT"
        assert data["riskLevel"] == {"level": "Medium Risk", "color": "orange"}

    @pytest.mark.asyncio
    async def test_in_progress_is_409(self, client):
        main.pipeline._in_flight.add("tester")
        try:
            response = await client.post("/analyze", json={"youtubeUrl": "https://youtu.be/abc"}, headers=AUTH)
        finally:
            main.pipeline._in_flight.discard("tester")
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_in_progress_does_not_charge_quota(self, client, clean_state):
        main.pipeline._in_flight.add("tester")
        try:
            response = await client.post("/analyze", json={"youtubeUrl": "https://youtu.be/abc"}, headers=AUTH)
        finally:
            main.pipeline._in_flight.discard("tester")
        assert response.status_code == 409
        assert clean_state.get_usage("tester")["used"] == 0

    @pytest.mark.asyncio
    async def test_concurrent_requests_charge_quota_once(self, client, clean_state, sample_inference_payload):
        gate = asyncio.Event()
        factory, instance = make_inference_factory()

        async def slow_predict(url):
            await gate.wait()
            return sample_inference_payload

        instance.predict_youtube.side_effect = slow_predict
        llm = MagicMock()
        llm.generate = AsyncMock(return_value=LLM_TEXT)
        body = {"youtubeUrl": "https://youtu.be/abc"}
        with patch.object(main.pipeline, "inference_client_factory", factory), \
                patch.object(main.pipeline, "llm", llm):
            first = asyncio.create_task(client.post("/analyze", json=body, headers=AUTH))
            for _ in range(200):
                if instance.predict_youtube.await_count:
                    break
                await asyncio.sleep(0.01)
            assert main.pipeline.is_running("tester")

            second = await client.post("/analyze", json=body, headers=AUTH)
            gate.set()
            first_response = await first

        assert second.status_code == 409
        assert first_response.status_code == 200
        assert clean_state.get_usage("tester")["used"] == 1

    @pytest.mark.asyncio
    async def test_llm_failure_is_500(self, client, sample_inference_payload):
        factory, _ = make_inference_factory(sample_inference_payload)
        llm = MagicMock()
        llm.generate = AsyncMock(side_effect=LLMError("down"))
        with patch.object(main.pipeline, "inference_client_factory", factory), \
                patch.object(main.pipeline, "llm", llm):
            response = await client.post("/analyze", json={"youtubeUrl": "https://youtu.be/abc"}, headers=AUTH)
        assert response.status_code == 500


class TestQuotaEndpoint:
    @pytest.mark.asyncio
    async def test_usage(self, client):
        response = await client.get("/quota", headers=AUTH)
        assert response.status_code == 200
        assert response.json()["used"] == 0
        assert response.json()["limit"] == 5

    @pytest.mark.asyncio
    async def test_requires_key(self, client):
        response = await client.get("/quota")
        assert response.status_code == 401


class TestReportEndpoint:
    @pytest.mark.asyncio
    async def test_report_html(self, client, sample_utterance_payload):
        response = await client.post("/report?tab=sentiment", json={
            "moderation": {"text": LLM_TEXT, "moderationScore": 4, "keyTimestamps": []},
            "utterances": [sample_utterance_payload],
            "video_url": "https://example.com/video.mp4",
        })
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert 'data-tab="sentiment" class="tab active"' in response.text

    @pytest.mark.asyncio
    @pytest.mark.parametrize("score", ["Infinity", "-Infinity", "NaN"])
    async def test_report_non_finite_score_shows_medium(self, client, score):
        body = '{"moderation": {"text": "", "moderationScore": %s, "keyTimestamps": []}}' % score
        response = await client.post(
            "/report", content=body, headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 200
        assert "Medium Risk" in response.text
        assert "5/10" in response.text

    @pytest.mark.asyncio
    async def test_report_rejects_bad_utterances(self, client):
        response = await client.post("/report", json={"utterances": [{"start_time": -1}]})
        assert response.status_code == 400
