"""Tool schemas and dispatch for the MCP server.

Each tool call runs the same pipeline: parse arguments, normalise the image,
check type and size, build the prompt, call the upstream model, render text.
Nothing raises out of :meth:`ToolDispatcher.call`; failures come back as an
error-flagged :class:`ToolResponse`.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from .errors import ImageProcessingError, ToolInputError
from .images import INPUT_KINDS, ImageInput, ImageNormalizer, NormalizedImage, parse_image_input
from .mime import is_supported_mime
from .models import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_PROMPT,
    AnalysisFailure,
    AnalysisOptions,
    AnalysisResult,
)
from .openrouter import VisionClient
from .prompts import (
    MOBILE_FOCUS_AREAS,
    MOBILE_PLATFORMS,
    WEBPAGE_FOCUS_AREAS,
    build_mobile_prompt,
    build_webpage_prompt,
)

log = logging.getLogger(__name__)

ACQUIRE_TIMEOUT = 30.0
ANALYZE_TIMEOUT = 120.0
OUTPUT_FORMATS = ("text", "json")

_IMAGE_PROPERTIES: dict[str, Any] = {
    "type": {
        "type": "string",
        "enum": list(INPUT_KINDS),
        "description": "The type of image input",
    },
    "data": {
        "type": "string",
        "description": "The image data (base64 string, file path, or URL)",
    },
    "mimeType": {
        "type": "string",
        "description": "MIME type of the image (base64 input only; detected from content when omitted)",
    },
}

_MAX_TOKENS_PROPERTY: dict[str, Any] = {
    "type": "number",
    "description": f"Maximum tokens in response (default: {DEFAULT_MAX_TOKENS}, capped at 8000)",
}

TOOL_SCHEMAS: list[dict[str, Any]] = [
    {
        "name": "analyze_image",
        "description": (
            "Analyze images using OpenRouter's vision models. Supports various input formats "
            "including base64, file paths, and URLs."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                **_IMAGE_PROPERTIES,
                "prompt": {"type": "string", "description": "Custom prompt for image analysis (optional)"},
                "format": {
                    "type": "string",
                    "enum": list(OUTPUT_FORMATS),
                    "description": "Output format (default: text)",
                },
                "maxTokens": _MAX_TOKENS_PROPERTY,
                "temperature": {
                    "type": "number",
                    "minimum": 0,
                    "maximum": 2,
                    "description": "Sampling temperature (default: 0.1)",
                },
            },
            "required": ["type", "data"],
        },
    },
    {
        "name": "analyze_webpage_screenshot",
        "description": (
            "Specialized tool for analyzing webpage screenshots. Extracts content, layout "
            "information, and interactive elements from web pages."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                **_IMAGE_PROPERTIES,
                "focusArea": {
                    "type": "string",
                    "enum": list(WEBPAGE_FOCUS_AREAS),
                    "description": "Specific area to focus on (optional)",
                },
                "includeAccessibility": {
                    "type": "boolean",
                    "description": "Include accessibility analysis (default: true)",
                },
                "format": {
                    "type": "string",
                    "enum": list(OUTPUT_FORMATS),
                    "description": "Output format (default: json for structured webpage analysis)",
                },
                "maxTokens": _MAX_TOKENS_PROPERTY,
            },
            "required": ["type", "data"],
        },
    },
    {
        "name": "analyze_mobile_app_screenshot",
        "description": (
            "Specialized tool for analyzing mobile app screenshots. Provides insights into UI "
            "design, user experience, platform conventions, and app functionality."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                **_IMAGE_PROPERTIES,
                "platform": {
                    "type": "string",
                    "enum": list(MOBILE_PLATFORMS),
                    "description": "Mobile platform (default: auto-detect)",
                },
                "focusArea": {
                    "type": "string",
                    "enum": list(MOBILE_FOCUS_AREAS),
                    "description": "Specific area to focus on (optional)",
                },
                "includeUXHeuristics": {
                    "type": "boolean",
                    "description": "Include UX heuristic evaluation (default: true)",
                },
                "format": {
                    "type": "string",
                    "enum": list(OUTPUT_FORMATS),
                    "description": "Output format (default: json for structured mobile analysis)",
                },
                "maxTokens": _MAX_TOKENS_PROPERTY,
            },
            "required": ["type", "data"],
        },
    },
]


@dataclass(frozen=True)
class ToolResponse:
    text: str
    is_error: bool = False

    def to_mcp(self) -> dict[str, Any]:
        return {"content": [{"type": "text", "text": self.text}], "isError": self.is_error}


class ToolDispatcher:
    def __init__(
        self,
        normalizer: ImageNormalizer,
        client: VisionClient,
        *,
        max_image_size: int,
        acquire_timeout: float = ACQUIRE_TIMEOUT,
        analyze_timeout: float = ANALYZE_TIMEOUT,
    ) -> None:
        self.normalizer = normalizer
        self.client = client
        self.max_image_size = max_image_size
        self.acquire_timeout = acquire_timeout
        self.analyze_timeout = analyze_timeout
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[AnalysisResult]]] = {
            "analyze_image": self._analyze_image,
            "analyze_webpage_screenshot": self._analyze_webpage,
            "analyze_mobile_app_screenshot": self._analyze_mobile_app,
        }

    @property
    def tool_names(self) -> list[str]:
        return list(self._handlers)

    async def call(self, name: str, arguments: Any) -> ToolResponse:
        handler = self._handlers.get(name)
        if handler is None:
            return ToolResponse(f"Error: Unknown tool: {name}", is_error=True)
        if not isinstance(arguments, dict) or not arguments:
            return ToolResponse("Error: Arguments are required", is_error=True)
        try:
            result = await handler(arguments)
        except Exception as exc:  # noqa: BLE001
            log.error("Tool call failed for %s: %s", name, exc)
            return ToolResponse(f"Error: {exc}", is_error=True)
        if isinstance(result, AnalysisFailure):
            log.error("Tool call failed for %s: %s", name, result.message)
            return ToolResponse(f"Error: {result.message}", is_error=True)
        log.info("%s completed: model=%s usage=%s", name, result.model_used, result.token_usage)
        return ToolResponse(result.text or "No analysis available")

    # ------------------------------------------------------------------
    # Shared pipeline
    # ------------------------------------------------------------------

    async def prepare_image(self, image_input: ImageInput) -> NormalizedImage:
        """Normalise *image_input* and enforce the type and size limits."""
        try:
            image = await asyncio.wait_for(
                self.normalizer.normalize(image_input), timeout=self.acquire_timeout
            )
        except asyncio.TimeoutError as exc:
            raise ImageProcessingError(
                f"Image acquisition timed out after {self.acquire_timeout:g}s"
            ) from exc
        if not is_supported_mime(image.mime_type):
            raise ToolInputError(f"Unsupported image type: {image.mime_type}")
        if image.byte_size > self.max_image_size:
            raise ToolInputError(
                f"Image size {image.byte_size} exceeds maximum allowed size {self.max_image_size}"
            )
        return image

    async def _run(
        self,
        image_input: ImageInput,
        prompt: str,
        options: AnalysisOptions,
    ) -> AnalysisResult:
        image = await self.prepare_image(image_input)
        try:
            return await asyncio.wait_for(
                self.client.analyze(image, prompt, options), timeout=self.analyze_timeout
            )
        except asyncio.TimeoutError:
            return AnalysisFailure(f"Image analysis timed out after {self.analyze_timeout:g}s")

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    async def _analyze_image(self, args: dict[str, Any]) -> AnalysisResult:
        image_input = _image_input(args)
        prompt = _str_arg(args, "prompt") or DEFAULT_PROMPT
        options = AnalysisOptions(
            format=_enum_arg(args, "format", OUTPUT_FORMATS, "text"),
            max_tokens=_int_arg(args, "maxTokens"),
            temperature=_temperature_arg(args),
        )
        log.info("Starting image analysis for type: %s", args.get("type"))
        return await self._run(image_input, prompt, options)

    async def _analyze_webpage(self, args: dict[str, Any]) -> AnalysisResult:
        image_input = _image_input(args)
        focus_area = _enum_arg(args, "focusArea", WEBPAGE_FOCUS_AREAS, None)
        fmt = _enum_arg(args, "format", OUTPUT_FORMATS, "json")
        prompt = build_webpage_prompt(
            focus_area=focus_area,
            include_accessibility=_bool_arg(args, "includeAccessibility", True),
            fmt=fmt,
        )
        options = AnalysisOptions(format=fmt, max_tokens=_int_arg(args, "maxTokens"))
        log.info(
            "Starting webpage screenshot analysis for type: %s, focus: %s",
            args.get("type"),
            focus_area,
        )
        return await self._run(image_input, prompt, options)

    async def _analyze_mobile_app(self, args: dict[str, Any]) -> AnalysisResult:
        image_input = _image_input(args)
        platform = _enum_arg(args, "platform", MOBILE_PLATFORMS, "auto-detect")
        focus_area = _enum_arg(args, "focusArea", MOBILE_FOCUS_AREAS, None)
        fmt = _enum_arg(args, "format", OUTPUT_FORMATS, "json")
        prompt = build_mobile_prompt(
            platform=platform,
            focus_area=focus_area,
            include_ux_heuristics=_bool_arg(args, "includeUXHeuristics", True),
            fmt=fmt,
        )
        options = AnalysisOptions(format=fmt, max_tokens=_int_arg(args, "maxTokens"))
        log.info(
            "Starting mobile app screenshot analysis for type: %s, platform: %s, focus: %s",
            args.get("type"),
            platform,
            focus_area,
        )
        return await self._run(image_input, prompt, options)


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------

def _image_input(args: dict[str, Any]) -> ImageInput:
    return parse_image_input(args.get("type"), args.get("data"), args.get("mimeType"))


def _str_arg(args: dict[str, Any], key: str) -> str | None:
    value = args.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ToolInputError(f"Argument '{key}' must be a string")
    return value.strip() or None


def _enum_arg(args: dict[str, Any], key: str, allowed: tuple[str, ...], default: Any) -> Any:
    value = args.get(key)
    if value is None or value == "":
        return default
    if value not in allowed:
        raise ToolInputError(f"Invalid {key}: {value} (expected one of: {', '.join(allowed)})")
    return value


def _bool_arg(args: dict[str, Any], key: str, default: bool) -> bool:
    value = args.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ToolInputError(f"Argument '{key}' must be a boolean")
    return value


def _int_arg(args: dict[str, Any], key: str) -> int | None:
    value = args.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ToolInputError(f"Argument '{key}' must be a number")
    return int(value)


def _temperature_arg(args: dict[str, Any]) -> float | None:
    value = args.get("temperature")
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ToolInputError("Argument 'temperature' must be a number")
    if not 0 <= value <= 2:
        raise ToolInputError(f"Invalid temperature: {value} (expected 0 to 2)")
    return float(value)
