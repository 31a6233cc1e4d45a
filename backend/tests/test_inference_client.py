import json

import httpx
import pytest
from unittest.mock import AsyncMock, patch

from inference_client import InferenceClient, InferenceServiceError, parse_inference_result
from transcript import InferenceResult


def make_client(handler) -> InferenceClient:
    transport = httpx.MockTransport(handler)
    return InferenceClient("http://inference.test/", client=httpx.AsyncClient(transport=transport))


class TestInferenceClientContextManager:
    @pytest.mark.asyncio
    async def test_async_context_manager_closes(self):
        async with InferenceClient("http://inference.test") as client:
            assert client.client is not None
        assert client.client.is_closed

    def test_predict_url_strips_trailing_slash(self):
        client = InferenceClient("http://inference.test/")
        assert client.predict_url == "http://inference.test/predict"


class TestPredict:
    @pytest.mark.asyncio
    async def test_youtube_posts_json(self, sample_inference_payload):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=sample_inference_payload)

        async with make_client(handler) as client:
            payload = await client.predict_youtube("https://youtu.be/abc")

        assert seen["url"] == "http://inference.test/predict"
        assert seen["body"] == {"youtubeUrl": "https://youtu.be/abc"}
        assert payload == sample_inference_payload

    @pytest.mark.asyncio
    async def test_upload_posts_multipart_video_field(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["content_type"] = request.headers["content-type"]
            seen["body"] = request.read()
            return httpx.Response(200, json={"utterances": []})

        async with make_client(handler) as client:
            await client.predict_upload("clip.mp4", b"VIDEOBYTES", "video/mp4")

        assert seen["content_type"].startswith("multipart/form-data")
        assert b'name="video"; filename="clip.mp4"' in seen["body"]
        assert b"VIDEOBYTES" in seen["body"]

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self):
        async with make_client(lambda request: httpx.Response(502)) as client:
            with pytest.raises(InferenceServiceError, match="status: 502"):
                await client.predict_youtube("https://youtu.be/abc")

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self):
        async with make_client(lambda request: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(InferenceServiceError, match="invalid JSON"):
                await client.predict_youtube("https://youtu.be/abc")

    @pytest.mark.asyncio
    async def test_non_object_payload_raises(self):
        async with make_client(lambda request: httpx.Response(200, json=[1, 2])) as client:
            with pytest.raises(InferenceServiceError):
                await client.predict_youtube("https://youtu.be/abc")

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        async with InferenceClient("http://inference.test") as client:
            with patch.object(client.client, "post", new_callable=AsyncMock, side_effect=httpx.ConnectError("refused")):
                with pytest.raises(InferenceServiceError):
                    await client.predict_youtube("https://youtu.be/abc")


class TestParseInferenceResult:
    def test_plain_payload(self, sample_inference_payload):
        result = parse_inference_result(sample_inference_payload)
        assert isinstance(result, InferenceResult)
        assert len(result.utterances) == 2

    def test_proxied_payload(self, sample_inference_payload):
        result = parse_inference_result({"analysis": sample_inference_payload})
        assert result.utterances[0].end_time == 2.36

    def test_malformed_payload(self):
        with pytest.raises(InferenceServiceError):
            parse_inference_result({"utterances": [{"start_time": 5, "end_time": 1}]})

    def test_empty_payload(self):
        assert parse_inference_result({}).utterances == []
