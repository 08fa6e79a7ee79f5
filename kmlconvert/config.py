"""Runtime configuration read from the process environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


DEFAULT_MODEL = "gemini-3-flash-preview"
DEFAULT_TEMPERATURE = 0.1
DEFAULT_MAX_SOURCE_CHARS = 50_000
DEFAULT_REQUEST_TIMEOUT = 120.0

_TRUTHY = {"1", "true", "yes", "on"}


def _read_float(source: Mapping[str, str], key: str, default: float) -> float:
    raw = source.get(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None


def _read_int(source: Mapping[str, str], key: str, default: int) -> int:
    raw = source.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    """Converter settings. ``api_key`` may be absent; the client checks it per request."""

    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    temperature: float = DEFAULT_TEMPERATURE
    max_source_chars: int = DEFAULT_MAX_SOURCE_CHARS
    json_mode: bool = False
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    log_level: str = "INFO"

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        api_key = (source.get("GEMINI_API_KEY", "") or source.get("API_KEY", "")).strip() or None
        model = source.get("KMLCONVERT_MODEL", "").strip() or DEFAULT_MODEL
        temperature = _read_float(source, "KMLCONVERT_TEMPERATURE", DEFAULT_TEMPERATURE)
        max_source_chars = _read_int(source, "KMLCONVERT_MAX_SOURCE_CHARS", DEFAULT_MAX_SOURCE_CHARS)
        request_timeout = _read_float(source, "KMLCONVERT_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT)
        json_mode = source.get("KMLCONVERT_JSON_MODE", "").strip().lower() in _TRUTHY
        log_level = source.get("KMLCONVERT_LOG_LEVEL", "").strip().upper() or "INFO"

        if not 0.0 <= temperature <= 2.0:
            raise ValueError("KMLCONVERT_TEMPERATURE must be between 0 and 2")
        if max_source_chars < 1:
            raise ValueError("KMLCONVERT_MAX_SOURCE_CHARS must be >= 1")
        if request_timeout <= 0:
            raise ValueError("KMLCONVERT_REQUEST_TIMEOUT must be positive")

        return cls(
            api_key=api_key,
            model=model,
            temperature=temperature,
            max_source_chars=max_source_chars,
            json_mode=json_mode,
            request_timeout=request_timeout,
            log_level=log_level,
        )
