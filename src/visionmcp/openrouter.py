"""Async client for the OpenRouter (OpenAI-compatible) chat-completions API.

:meth:`VisionClient.analyze` is the only entry point used per tool call.  It
never raises: every failure, local or remote, comes back as an
:class:`~visionmcp.models.AnalysisFailure` whose message is the most specific
one available.
"""
from __future__ import annotations

import json
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from .errors import UpstreamError
from .images import NormalizedImage
from .models import (
    DEFAULT_PROMPT,
    DEFAULT_TEMPERATURE,
    AnalysisFailure,
    AnalysisOptions,
    AnalysisRequest,
    AnalysisResult,
    AnalysisSuccess,
    TokenUsage,
    clamp_max_tokens,
)
from .schemas import ChatCompletion, ModelInfo, ModelList, parse_error_body

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
REQUEST_TIMEOUT = 120.0
MAX_BODY_BYTES = 50 * 1024 * 1024
MAX_IMAGE_CHARS = 20 * 1024 * 1024
MAX_PROMPT_CHARS = 10_000
UNKNOWN_ERROR = "Unknown error occurred"

_VISION_ID_HINTS = (
    "vision",
    "claude-3",
    "gpt-4o",
    "gpt-4-vision",
    "gemini",
    "llama-3.2-90b-vision",
    "llama-3.2-11b-vision",
)


class VisionClient:
    """Thin wrapper over one pooled :class:`httpx.AsyncClient`.

    The underlying client is configured once (base URL, bearer auth, timeout)
    and only read afterwards, so a single instance is shared by every
    concurrent tool call.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout: float = REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "X-Title": "visionmcp",
            },
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        request = self._client.build_request(method, path, **kwargs)
        try:
            response = await self._client.send(request, stream=True)
            try:
                declared = response.headers.get("content-length", "")
                if declared.isdigit() and int(declared) > MAX_BODY_BYTES:
                    raise UpstreamError(
                        f"Response body too large: {declared} bytes. Maximum allowed is 50MB.",
                        status_code=response.status_code,
                    )
                await response.aread()
            finally:
                await response.aclose()
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise UpstreamError(f"Request timed out after {self.timeout:g}s") from exc
        except httpx.HTTPStatusError as exc:
            body = _json_or_none(exc.response)
            raise UpstreamError(
                _status_message(exc.response, body),
                status_code=exc.response.status_code,
                body=body,
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Network error: {exc}") from exc
        return response

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def build_request(
        self,
        image: NormalizedImage,
        prompt_text: str | None,
        options: AnalysisOptions,
    ) -> AnalysisRequest:
        """Validate inputs locally and assemble the chat-completion request.

        Raises :class:`ValueError` for payloads the upstream would reject anyway.
        """
        if not image.base64_data:
            raise ValueError("No image data provided")
        if not image.mime_type:
            raise ValueError("No MIME type provided")
        if len(image.base64_data) > MAX_IMAGE_CHARS:
            raise ValueError(
                f"Image data too large: {len(image.base64_data)} characters. "
                "Maximum allowed is 20MB."
            )
        prompt = prompt_text if prompt_text and prompt_text.strip() else DEFAULT_PROMPT
        if len(prompt) > MAX_PROMPT_CHARS:
            raise ValueError(
                f"Prompt too long: {len(prompt)} characters. Maximum allowed is {MAX_PROMPT_CHARS}."
            )
        temperature = DEFAULT_TEMPERATURE if options.temperature is None else float(options.temperature)
        return AnalysisRequest(
            model=self.model,
            prompt_text=prompt,
            image_data_url=image.data_url,
            max_tokens=clamp_max_tokens(options.max_tokens),
            temperature=temperature,
            want_structured_json=options.wants_json,
        )

    async def analyze(
        self,
        image: NormalizedImage,
        prompt_text: str | None = None,
        options: AnalysisOptions | None = None,
    ) -> AnalysisResult:
        options = options or AnalysisOptions()
        try:
            request = self.build_request(image, prompt_text, options)
            body = json.dumps(request.to_payload()).encode("utf-8")
            if len(body) > MAX_BODY_BYTES:
                raise ValueError(
                    f"Request body too large: {len(body)} bytes. Maximum allowed is 50MB."
                )
            log.debug(
                "Sending request to upstream: model=%s image_chars=%d prompt_chars=%d max_tokens=%d",
                request.model,
                len(image.base64_data),
                len(request.prompt_text),
                request.max_tokens,
            )
            response = await self._request(
                "POST",
                "/chat/completions",
                content=body,
                headers={"Content-Type": "application/json"},
            )
            result = self._parse_completion(_json_or_none(response), request)
        except Exception as exc:  # noqa: BLE001
            log.error("Failed to analyze image: %s", exc)
            return AnalysisFailure(
                message=_failure_message(exc),
                status_code=getattr(exc, "status_code", None),
            )
        log.info(
            "Image analysis completed: model=%s usage=%s",
            result.model_used,
            result.token_usage,
        )
        return result

    def _parse_completion(self, payload: Any, request: AnalysisRequest) -> AnalysisSuccess:
        try:
            completion = ChatCompletion.model_validate(payload)
        except ValidationError as exc:
            raise UpstreamError("Malformed response from model") from exc

        if not completion.choices:
            envelope = parse_error_body(payload)
            detail = envelope.best_message() if envelope else None
            if detail:
                raise UpstreamError(f"OpenRouter API Error: {detail}", body=payload)
            raise UpstreamError("No response from model")

        message = completion.choices[0].message
        content = message.text() if message else ""
        if not content:
            raise UpstreamError("Empty response from model")

        if request.want_structured_json:
            try:
                structured = json.loads(_strip_code_fence(content))
                text = json.dumps(structured, indent=2, ensure_ascii=False)
            except ValueError:
                log.warning("Model ignored the JSON output format; returning raw text")
                text = content
                structured = {"analysis": content}
        else:
            text = content
            structured = {"analysis": content}

        usage = None
        if completion.usage is not None:
            usage = TokenUsage(
                prompt=completion.usage.prompt_tokens,
                completion=completion.usage.completion_tokens,
                total=completion.usage.total_tokens,
            )
        return AnalysisSuccess(
            text=text,
            structured=structured,
            model_used=completion.model or request.model,
            token_usage=usage,
        )

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def list_models(self) -> list[ModelInfo]:
        response = await self._request("GET", "/models")
        try:
            return ModelList.model_validate(response.json()).data
        except (ValueError, ValidationError) as exc:
            raise UpstreamError("Malformed model catalog response") from exc

    async def validate_model(self, model_id: str) -> bool:
        """Return True when *model_id* is listed in the upstream catalog.

        A missing vision signal only logs a warning; some capable models do not
        advertise it.
        """
        log.debug("Validating model: %s", model_id)
        try:
            models = await self.list_models()
        except UpstreamError as exc:
            log.error("Failed to validate model %s: %s", model_id, exc)
            return False
        info = next((m for m in models if m.id == model_id), None)
        if info is None:
            log.warning("Model not found: %s", model_id)
            return False
        vision = supports_vision(info)
        if not vision:
            log.warning("Model may not support vision: %s", model_id)
        log.debug("Model validation completed: %s, supports vision: %s", model_id, vision)
        return True

    async def test_connection(self) -> bool:
        try:
            response = await self._request("GET", "/models")
        except UpstreamError as exc:
            log.error("Failed to connect to upstream API: %s", exc)
            return False
        return response.status_code == 200


def supports_vision(info: ModelInfo) -> bool:
    arch = info.architecture
    if arch is not None:
        modality = (arch.modality or "").lower()
        if "vision" in modality or "image" in modality:
            return True
        if "image" in [m.lower() for m in arch.input_modalities]:
            return True
    if info.capabilities and info.capabilities.get("vision"):
        return True
    model_id = info.id.lower()
    return any(hint in model_id for hint in _VISION_ID_HINTS)


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _status_message(response: httpx.Response, body: Any) -> str:
    envelope = parse_error_body(body)
    detail = envelope.best_message() if envelope else None
    if detail:
        return f"OpenRouter API Error: {detail}"
    raw = response.text[:300].strip() or response.reason_phrase
    return f"HTTP {response.status_code}: {raw}"


def _failure_message(exc: Exception) -> str:
    return str(exc) or UNKNOWN_ERROR


def _strip_code_fence(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```") and cleaned.endswith("```") and "\n" in cleaned:
        cleaned = "\n".join(cleaned.splitlines()[1:-1]).strip()
    return cleaned
