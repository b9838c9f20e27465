"""Wire shapes of the OpenAI-compatible upstream API.

Every field the upstream may omit is optional here; nothing downstream
indexes into raw dicts.
"""
from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError


class _Wire(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ChoiceMessage(_Wire):
    role: Optional[str] = None
    content: Union[str, list[Any], None] = None

    def text(self) -> str:
        """Return message content as plain text (joins text parts if given a list)."""
        if isinstance(self.content, str):
            return self.content
        if isinstance(self.content, list):
            parts = [
                str(part.get("text", ""))
                for part in self.content
                if isinstance(part, dict) and part.get("type") == "text"
            ]
            return "".join(parts)
        return ""


class Choice(_Wire):
    index: Optional[int] = None
    message: Optional[ChoiceMessage] = None
    finish_reason: Optional[str] = None


class Usage(_Wire):
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class ChatCompletion(_Wire):
    id: Optional[str] = None
    model: Optional[str] = None
    choices: list[Choice] = []
    usage: Optional[Usage] = None


class ErrorDetail(_Wire):
    message: Optional[str] = None
    code: Union[int, str, None] = None


class ErrorEnvelope(_Wire):
    error: Union[ErrorDetail, str, None] = None
    message: Optional[str] = None

    def best_message(self) -> str | None:
        if isinstance(self.error, ErrorDetail) and self.error.message:
            return self.error.message
        if isinstance(self.error, str) and self.error:
            return self.error
        return self.message or None


class Architecture(_Wire):
    modality: Optional[str] = None
    input_modalities: list[str] = []


class ModelInfo(_Wire):
    id: str
    name: Optional[str] = None
    architecture: Optional[Architecture] = None
    capabilities: Optional[dict[str, Any]] = None


class ModelList(_Wire):
    data: list[ModelInfo] = []


def parse_error_body(body: Any) -> ErrorEnvelope | None:
    if not isinstance(body, dict):
        return None
    try:
        return ErrorEnvelope.model_validate(body)
    except ValidationError:
        return None
