"""Isolate and validate the GeoJSON object inside a raw model response."""

from __future__ import annotations

import json

from kmlconvert.errors import ErrorKind, FormatError


def _reject_constant(token: str) -> None:
    raise ValueError(f"Non-standard JSON constant {token!r}")


def sanitize(raw_text: str) -> str:
    """Return the text between the first ``{`` and the last ``}`` (inclusive).

    The slice is returned exactly as the service produced it, never
    re-serialized, once it parses as strict JSON.
    """
    start = raw_text.find("{")
    end = raw_text.rfind("}")
    # A "}" that only appears before the first "{" bounds no object, so it is
    # NoStructuredObjectFound rather than a parse failure of a reversed slice.
    if start == -1 or end == -1 or end < start:
        raise FormatError(ErrorKind.NO_STRUCTURED_OBJECT_FOUND)

    candidate = raw_text[start : end + 1]
    try:
        json.loads(candidate, parse_constant=_reject_constant)
    except ValueError as exc:
        raise FormatError(ErrorKind.MALFORMED_DOCUMENT, detail=str(exc)) from exc
    return candidate
