from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import ConfigError
from .openrouter import DEFAULT_BASE_URL

CONFIG_PATH = Path.home() / ".config" / "visionmcp" / "config.yml"

DEFAULT_MODEL = "anthropic/claude-3.5-sonnet"
DEFAULT_MAX_IMAGE_SIZE = 10 * 1024 * 1024
LOG_LEVELS = ("debug", "info", "warning", "error")

# Environment variable -> config key.
_ENV_KEYS = {
    "OPENROUTER_API_KEY": "api_key",
    "OPENROUTER_MODEL": "model",
    "OPENROUTER_BASE_URL": "base_url",
    "MAX_IMAGE_SIZE": "max_image_size",
    "LOG_LEVEL": "log_level",
}


@dataclass(frozen=True)
class AppConfig:
    api_key: str = ""
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    max_image_size: int = DEFAULT_MAX_IMAGE_SIZE  # bytes, decoded
    log_level: str = "info"


def _validate(cfg: dict[str, Any]) -> dict[str, Any]:
    defaults = AppConfig().__dict__.copy()
    merged = {**defaults, **{k: v for k, v in cfg.items() if k in defaults}}
    merged["api_key"] = str(merged.get("api_key") or "").strip()
    for key in ("model", "base_url"):
        value = merged.get(key)
        if not isinstance(value, str) or not value.strip():
            merged[key] = defaults[key]
        else:
            merged[key] = value.strip()
    raw_size = merged.get("max_image_size")
    if isinstance(raw_size, str) and raw_size.strip().isdigit():
        raw_size = int(raw_size.strip())
    merged["max_image_size"] = (
        int(raw_size)
        if isinstance(raw_size, int) and not isinstance(raw_size, bool) and raw_size > 0
        else defaults["max_image_size"]
    )
    level = str(merged.get("log_level") or "").strip().lower()
    if level == "warn":
        level = "warning"
    merged["log_level"] = level if level in LOG_LEVELS else defaults["log_level"]
    return merged


def _read_file(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    return raw if isinstance(raw, dict) else {}


def load_config(
    environ: Mapping[str, str] | None = None,
    path: Path | None = None,
) -> AppConfig:
    """Merge defaults, the optional YAML file, and the environment.

    Raises :class:`ConfigError` when no API key is configured.
    """
    env = os.environ if environ is None else environ
    if path is None:
        path = Path(env["VISIONMCP_CONFIG"]).expanduser() if env.get("VISIONMCP_CONFIG") else CONFIG_PATH
    cfg = _read_file(path)
    for env_key, cfg_key in _ENV_KEYS.items():
        value = env.get(env_key)
        if value is not None and value.strip():
            cfg[cfg_key] = value
    merged = _validate(cfg)
    if not merged["api_key"]:
        raise ConfigError("OPENROUTER_API_KEY environment variable is required")
    return AppConfig(**merged)


def setup_logging(level: str = "info") -> None:
    """Send log records to stderr; stdout carries the MCP protocol stream."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
