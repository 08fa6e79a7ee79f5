"""Gemini-backed KML to GeoJSON conversion client."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol, runtime_checkable

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from kmlconvert.config import Settings
from kmlconvert.errors import ErrorKind, ServiceError

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = (
    "You are a specialized geospatial data engineer. Your task is to convert KML data to valid GeoJSON. "
    "Output ONLY the raw JSON string. Do not include markdown formatting, explanations, "
    "or any text other than the GeoJSON object itself."
)

_AUTH_ERRORS = (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied)


@runtime_checkable
class Converter(Protocol):
    """Anything that turns KML text into raw response text."""

    async def convert(self, source_text: str) -> str:
        ...


def build_prompt(source_text: str, max_chars: int) -> str:
    snippet = source_text[:max_chars]
    return (
        "Convert the following KML file content into a standard, valid GeoJSON format.\n"
        "Ensure all coordinates and properties (like name, description, timestamps) are preserved.\n"
        "Return ONLY the JSON object string.\n\n"
        f"KML Content snippet (first {max_chars} chars):\n"
        f"{snippet}"
    )


def _classify(exc: Exception) -> ServiceError:
    if isinstance(exc, _AUTH_ERRORS):
        return ServiceError(ErrorKind.AUTH_REJECTED, detail=str(exc))
    if isinstance(exc, google_exceptions.InvalidArgument) and "api key" in str(exc).lower():
        return ServiceError(ErrorKind.AUTH_REJECTED, detail=str(exc))
    return ServiceError(ErrorKind.SERVICE_UNAVAILABLE, detail=str(exc))


def _response_text(response: Any) -> str:
    # The SDK raises ValueError from .text when the candidate has no parts (e.g. blocked).
    try:
        return response.text or ""
    except ValueError:
        return ""


class GeminiConverter:
    """Single-shot Gemini conversion. Failures are classified, never retried."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._model: Any | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    def _get_model(self) -> Any:
        if self._model is None:
            genai.configure(api_key=self._settings.api_key)
            self._model = genai.GenerativeModel(self._settings.model, system_instruction=SYSTEM_INSTRUCTION)
        return self._model

    async def convert(self, source_text: str) -> str:
        if not self._settings.has_credential:
            raise ServiceError(ErrorKind.MISSING_CREDENTIAL)

        max_chars = self._settings.max_source_chars
        if len(source_text) > max_chars:
            logger.info("Truncating KML source from %d to %d chars", len(source_text), max_chars)
        prompt = build_prompt(source_text, max_chars)

        generation_config = genai.types.GenerationConfig(
            temperature=self._settings.temperature,
            response_mime_type="application/json" if self._settings.json_mode else None,
        )
        # Sync call in a worker thread: the SDK's cached client must not be bound
        # to one event loop. retry=None means exactly one attempt.
        request_options = {"timeout": self._settings.request_timeout, "retry": None}
        logger.debug("Sending %d-char prompt to %s", len(prompt), self._settings.model)
        try:
            response = await asyncio.to_thread(
                self._get_model().generate_content,
                prompt,
                generation_config=generation_config,
                request_options=request_options,
            )
        except google_exceptions.GoogleAPIError as exc:
            logger.warning("Gemini request failed: %s", exc)
            raise _classify(exc) from exc
        except (ConnectionError, TimeoutError) as exc:
            logger.warning("Gemini transport failure: %s", exc)
            raise ServiceError(ErrorKind.SERVICE_UNAVAILABLE, detail=str(exc)) from exc

        text = _response_text(response)
        if not text.strip():
            raise ServiceError(ErrorKind.EMPTY_RESPONSE)
        return text
