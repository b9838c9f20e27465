from __future__ import annotations

from typing import Any


class VisionMCPError(RuntimeError):
    pass


class ConfigError(VisionMCPError):
    pass


class ToolInputError(VisionMCPError):
    pass


class ImageProcessingError(VisionMCPError):
    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class UpstreamError(VisionMCPError):
    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
