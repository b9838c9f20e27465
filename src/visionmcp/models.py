from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Union

OutputFormat = Literal["text", "json"]

DEFAULT_PROMPT = (
    "Analyze this image in detail. Describe what you see, including objects, "
    "people, text, and any notable features."
)
DEFAULT_MAX_TOKENS = 4000
MAX_TOKENS_CEILING = 8000
DEFAULT_TEMPERATURE = 0.1


@dataclass(frozen=True)
class AnalysisOptions:
    format: OutputFormat = "text"
    max_tokens: int | None = None
    temperature: float | None = None

    @property
    def wants_json(self) -> bool:
        return self.format == "json"


@dataclass(frozen=True)
class AnalysisRequest:
    model: str
    prompt_text: str
    image_data_url: str
    max_tokens: int
    temperature: float
    want_structured_json: bool

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [{
                "role": "user",
                "content": [
                    {"type": "text", "text": self.prompt_text},
                    {"type": "image_url", "image_url": {"url": self.image_data_url}},
                ],
            }],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if self.want_structured_json:
            payload["response_format"] = {"type": "json_object"}
        return payload


@dataclass(frozen=True)
class TokenUsage:
    prompt: int | None
    completion: int | None
    total: int | None


@dataclass(frozen=True)
class AnalysisSuccess:
    text: str
    structured: Any
    model_used: str
    token_usage: TokenUsage | None = None
    ok: Literal[True] = True


@dataclass(frozen=True)
class AnalysisFailure:
    message: str
    status_code: int | None = None
    ok: Literal[False] = False


AnalysisResult = Union[AnalysisSuccess, AnalysisFailure]


def clamp_max_tokens(requested: int | None) -> int:
    if requested is None or requested <= 0:
        return DEFAULT_MAX_TOKENS
    return min(int(requested), MAX_TOKENS_CEILING)
