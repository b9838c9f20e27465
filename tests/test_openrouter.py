import json
import sys
import unittest
from pathlib import Path
from unittest.mock import patch

import httpx

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from visionmcp.images import NormalizedImage
from visionmcp.models import DEFAULT_PROMPT, AnalysisFailure, AnalysisOptions, AnalysisSuccess, TokenUsage
from visionmcp.openrouter import VisionClient, supports_vision
from visionmcp.schemas import ModelInfo

MODEL = "vendor/vision-model"
IMAGE = NormalizedImage(base64_data="iVBORw0KGgo=", mime_type="image/png", byte_size=8)


def _completion(content, **extra) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}], **extra}


class _Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, response=None, exc=None) -> None:
        self.response = response
        self.exc = exc
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            if isinstance(self.exc, httpx.RequestError):
                self.exc.request = request
            raise self.exc
        return self.response

    @property
    def body(self) -> dict:
        return json.loads(self.requests[-1].content)


class _TrackingStream(httpx.AsyncByteStream):
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.read_started = False

    async def __aiter__(self):
        self.read_started = True
        yield self.data


def _client(handler) -> VisionClient:
    return VisionClient(
        "sk-test",
        MODEL,
        "https://api.example/v1",
        transport=httpx.MockTransport(handler),
    )


class TestRequestConstruction(unittest.IsolatedAsyncioTestCase):
    async def test_text_request_shape(self) -> None:
        rec = _Recorder(httpx.Response(200, json=_completion("a cat")))
        client = _client(rec)
        result = await client.analyze(IMAGE, "What is this?")
        await client.aclose()

        self.assertIsInstance(result, AnalysisSuccess)
        request = rec.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(request.url.path, "/v1/chat/completions")
        self.assertEqual(request.headers["authorization"], "Bearer sk-test")
        body = rec.body
        self.assertEqual(body["model"], MODEL)
        self.assertEqual(body["max_tokens"], 4000)
        self.assertEqual(body["temperature"], 0.1)
        self.assertNotIn("response_format", body)
        content = body["messages"][0]["content"]
        self.assertEqual(body["messages"][0]["role"], "user")
        self.assertEqual([part["type"] for part in content], ["text", "image_url"])
        self.assertEqual(content[0]["text"], "What is this?")
        self.assertEqual(content[1]["image_url"]["url"], "data:image/png;base64,iVBORw0KGgo=")

    async def test_json_format_and_clamped_tokens(self) -> None:
        rec = _Recorder(httpx.Response(200, json=_completion("{}")))
        client = _client(rec)
        await client.analyze(IMAGE, "x", AnalysisOptions(format="json", max_tokens=20000, temperature=0))
        body = rec.body
        self.assertEqual(body["response_format"], {"type": "json_object"})
        self.assertEqual(body["max_tokens"], 8000)
        self.assertEqual(body["temperature"], 0.0)

    async def test_non_positive_max_tokens_uses_default(self) -> None:
        rec = _Recorder(httpx.Response(200, json=_completion("ok")))
        await _client(rec).analyze(IMAGE, "x", AnalysisOptions(max_tokens=0))
        self.assertEqual(rec.body["max_tokens"], 4000)

    async def test_blank_prompt_falls_back_to_default(self) -> None:
        for prompt in (None, "", "   "):
            rec = _Recorder(httpx.Response(200, json=_completion("ok")))
            await _client(rec).analyze(IMAGE, prompt)
            self.assertEqual(rec.body["messages"][0]["content"][0]["text"], DEFAULT_PROMPT)


class TestPreflightGuards(unittest.IsolatedAsyncioTestCase):
    async def _assert_local_failure(self, image: NormalizedImage, prompt: str, expected: str) -> None:
        rec = _Recorder(httpx.Response(200, json=_completion("ok")))
        result = await _client(rec).analyze(image, prompt)
        self.assertIsInstance(result, AnalysisFailure)
        self.assertIn(expected, result.message)
        self.assertEqual(rec.requests, [])

    async def test_empty_image(self) -> None:
        await self._assert_local_failure(
            NormalizedImage("", "image/png", 0), "x", "No image data provided"
        )

    async def test_missing_mime(self) -> None:
        await self._assert_local_failure(
            NormalizedImage("AAAA", "", 3), "x", "No MIME type provided"
        )

    async def test_oversized_payload(self) -> None:
        with patch("visionmcp.openrouter.MAX_IMAGE_CHARS", 4):
            await self._assert_local_failure(IMAGE, "x", "Image data too large")

    async def test_prompt_too_long(self) -> None:
        await self._assert_local_failure(IMAGE, "p" * 10_001, "Prompt too long: 10001 characters")

    async def test_prompt_at_limit_is_sent(self) -> None:
        rec = _Recorder(httpx.Response(200, json=_completion("ok")))
        result = await _client(rec).analyze(IMAGE, "p" * 10_000)
        self.assertIsInstance(result, AnalysisSuccess)


class TestResponseHandling(unittest.IsolatedAsyncioTestCase):
    async def _analyze(self, response: httpx.Response, fmt: str = "text"):
        return await _client(_Recorder(response)).analyze(IMAGE, "x", AnalysisOptions(format=fmt))

    async def test_no_choices(self) -> None:
        result = await self._analyze(httpx.Response(200, json={"choices": []}))
        self.assertEqual(result, AnalysisFailure(message="No response from model"))

    async def test_empty_content(self) -> None:
        for payload in (_completion(""), _completion(None), {"choices": [{}]}):
            result = await self._analyze(httpx.Response(200, json=payload))
            self.assertIsInstance(result, AnalysisFailure)
            self.assertEqual(result.message, "Empty response from model")

    async def test_json_content_is_parsed_and_pretty_printed(self) -> None:
        result = await self._analyze(httpx.Response(200, json=_completion('{"a":1}')), fmt="json")
        self.assertIsInstance(result, AnalysisSuccess)
        self.assertEqual(result.structured, {"a": 1})
        self.assertEqual(result.text, '{\n  "a": 1\n}')

    async def test_unparseable_json_falls_back_to_text(self) -> None:
        with self.assertLogs("visionmcp.openrouter", level="WARNING"):
            result = await self._analyze(httpx.Response(200, json=_completion("not json")), fmt="json")
        self.assertIsInstance(result, AnalysisSuccess)
        self.assertEqual(result.structured, {"analysis": "not json"})
        self.assertEqual(result.text, "not json")

    async def test_fenced_json_is_parsed(self) -> None:
        content = '```json\n{"ok": true}\n```'
        result = await self._analyze(httpx.Response(200, json=_completion(content)), fmt="json")
        self.assertEqual(result.structured, {"ok": True})

    async def test_text_mode_wraps_content(self) -> None:
        result = await self._analyze(httpx.Response(200, json=_completion('{"a":1}')))
        self.assertEqual(result.text, '{"a":1}')
        self.assertEqual(result.structured, {"analysis": '{"a":1}'})
        self.assertEqual(result.model_used, MODEL)
        self.assertIsNone(result.token_usage)

    async def test_content_parts_are_joined(self) -> None:
        parts = [{"type": "text", "text": "two "}, {"type": "text", "text": "cats"}]
        result = await self._analyze(httpx.Response(200, json=_completion(parts)))
        self.assertEqual(result.text, "two cats")

    async def test_usage_and_model_are_mapped(self) -> None:
        payload = _completion(
            "ok",
            model="vendor/vision-model-0613",
            usage={"prompt_tokens": 11, "completion_tokens": 5, "total_tokens": 16},
        )
        result = await self._analyze(httpx.Response(200, json=payload))
        self.assertEqual(result.token_usage, TokenUsage(prompt=11, completion=5, total=16))
        self.assertEqual(result.model_used, "vendor/vision-model-0613")

    async def test_error_body_in_success_response(self) -> None:
        payload = {"error": {"message": "Rate limit exceeded", "code": 429}}
        result = await self._analyze(httpx.Response(200, json=payload))
        self.assertEqual(result.message, "OpenRouter API Error: Rate limit exceeded")

    async def test_non_json_success_body(self) -> None:
        result = await self._analyze(httpx.Response(200, text="<html>oops</html>"))
        self.assertEqual(result.message, "Malformed response from model")


class TestErrorMapping(unittest.IsolatedAsyncioTestCase):
    async def _failure(self, response=None, exc=None) -> AnalysisFailure:
        result = await _client(_Recorder(response, exc)).analyze(IMAGE, "x")
        self.assertIsInstance(result, AnalysisFailure)
        return result

    async def test_nested_error_message(self) -> None:
        result = await self._failure(httpx.Response(401, json={"error": {"message": "Invalid API key", "code": 401}}))
        self.assertEqual(result.message, "OpenRouter API Error: Invalid API key")
        self.assertEqual(result.status_code, 401)

    async def test_top_level_message(self) -> None:
        result = await self._failure(httpx.Response(500, json={"message": "boom"}))
        self.assertEqual(result.message, "OpenRouter API Error: boom")

    async def test_opaque_body(self) -> None:
        result = await self._failure(httpx.Response(502, text="Bad gateway"))
        self.assertEqual(result.message, "HTTP 502: Bad gateway")

    async def test_empty_body_uses_reason_phrase(self) -> None:
        result = await self._failure(httpx.Response(503))
        self.assertEqual(result.message, "HTTP 503: Service Unavailable")

    async def test_timeout(self) -> None:
        result = await self._failure(exc=httpx.ReadTimeout("slow"))
        self.assertEqual(result.message, "Request timed out after 120s")

    async def test_network_error(self) -> None:
        result = await self._failure(exc=httpx.ConnectError("connection refused"))
        self.assertEqual(result.message, "Network error: connection refused")

    async def test_unexpected_exception_message_is_verbatim(self) -> None:
        result = await self._failure(exc=RuntimeError("something odd"))
        self.assertEqual(result.message, "something odd")

    async def test_exception_without_message(self) -> None:
        result = await self._failure(exc=RuntimeError())
        self.assertEqual(result.message, "Unknown error occurred")

    async def test_oversized_response_is_rejected_before_reading(self) -> None:
        stream = _TrackingStream(b"{}")
        response = httpx.Response(200, headers={"content-length": str(60 * 1024 * 1024)}, stream=stream)
        result = await self._failure(response)
        self.assertTrue(result.message.startswith("Response body too large"))
        self.assertEqual(result.status_code, 200)
        self.assertFalse(stream.read_started)


class TestCatalog(unittest.IsolatedAsyncioTestCase):
    CATALOG = {
        "data": [
            {"id": "vendor/vision-model", "architecture": {"modality": "text+image->text"}},
            {"id": "vendor/text-only", "architecture": {"modality": "text->text"}},
        ]
    }

    async def test_validate_model_with_vision_signal(self) -> None:
        rec = _Recorder(httpx.Response(200, json=self.CATALOG))
        self.assertTrue(await _client(rec).validate_model("vendor/vision-model"))
        self.assertEqual(rec.requests[0].url.path, "/v1/models")

    async def test_validate_model_warns_without_vision_signal(self) -> None:
        rec = _Recorder(httpx.Response(200, json=self.CATALOG))
        with self.assertLogs("visionmcp.openrouter", level="WARNING") as logs:
            self.assertTrue(await _client(rec).validate_model("vendor/text-only"))
        self.assertTrue(any("may not support vision" in line for line in logs.output))

    async def test_validate_model_missing(self) -> None:
        rec = _Recorder(httpx.Response(200, json=self.CATALOG))
        self.assertFalse(await _client(rec).validate_model("vendor/unknown"))

    async def test_validate_model_catalog_failure(self) -> None:
        rec = _Recorder(httpx.Response(500, text="down"))
        self.assertFalse(await _client(rec).validate_model("vendor/vision-model"))

    async def test_connection_check(self) -> None:
        self.assertTrue(await _client(_Recorder(httpx.Response(200, json={"data": []}))).test_connection())
        self.assertFalse(await _client(_Recorder(httpx.Response(401, json={}))).test_connection())
        self.assertFalse(await _client(_Recorder(exc=httpx.ConnectError("refused"))).test_connection())

    def test_supports_vision_signals(self) -> None:
        cases = [
            ({"id": "x/a", "architecture": {"modality": "text+image->text"}}, True),
            ({"id": "x/a", "architecture": {"input_modalities": ["text", "image"]}}, True),
            ({"id": "x/a", "capabilities": {"vision": True}}, True),
            ({"id": "openai/gpt-4o-mini"}, True),
            ({"id": "google/gemini-2.0-flash"}, True),
            ({"id": "meta-llama/llama-3.2-11b-vision-instruct"}, True),
            ({"id": "x/a", "architecture": {"modality": "text->text"}}, False),
            ({"id": "mistralai/mistral-7b"}, False),
        ]
        for raw, expected in cases:
            with self.subTest(raw=raw):
                self.assertEqual(supports_vision(ModelInfo.model_validate(raw)), expected)
