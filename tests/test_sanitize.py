from __future__ import annotations

import json

import pytest

from kmlconvert.errors import ErrorKind, FormatError
from kmlconvert.sanitize import sanitize


def test_prose_around_object_is_trimmed() -> None:
    raw = 'Sure! Here\'s your GeoJSON: {"type":"FeatureCollection","features":[]} Hope that helps!'

    assert sanitize(raw) == '{"type":"FeatureCollection","features":[]}'


def test_code_fences_are_trimmed_and_text_is_not_reserialized() -> None:
    body = '{\n  "type": "FeatureCollection",\n  "features": [ ]\n}'
    raw = f"```json\n{body}\n```"

    result = sanitize(raw)

    assert result == body
    assert json.loads(result)["type"] == "FeatureCollection"


@pytest.mark.parametrize(
    "raw",
    [
        "Sorry, I cannot convert this file.",
        "only an opening { brace",
        "only a closing } brace",
        "} backwards {",
        "",
    ],
)
def test_missing_braces_fail_with_no_structured_object(raw: str) -> None:
    with pytest.raises(FormatError) as exc_info:
        sanitize(raw)

    assert exc_info.value.kind is ErrorKind.NO_STRUCTURED_OBJECT_FOUND


def test_unparseable_candidate_fails_with_malformed_document_and_detail() -> None:
    with pytest.raises(FormatError) as exc_info:
        sanitize('{"type": "FeatureCollection", "features": [}')

    assert exc_info.value.kind is ErrorKind.MALFORMED_DOCUMENT
    assert exc_info.value.detail


def test_non_standard_constants_are_rejected() -> None:
    with pytest.raises(FormatError) as exc_info:
        sanitize('{"type": "Feature", "properties": {"elevation": NaN}}')

    assert exc_info.value.kind is ErrorKind.MALFORMED_DOCUMENT


def test_sanitize_is_idempotent() -> None:
    raw = 'noise {"type":"Feature","properties":{"name":"a {b}"},"geometry":null} trailing'

    once = sanitize(raw)

    assert sanitize(once) == once


def test_prose_object_before_payload_is_included_in_candidate() -> None:
    # The bracket scan spans from the first "{" anywhere in the text.
    raw = 'Example {"a": 1}. Result: {"type":"FeatureCollection","features":[]}'

    with pytest.raises(FormatError) as exc_info:
        sanitize(raw)

    assert exc_info.value.kind is ErrorKind.MALFORMED_DOCUMENT
