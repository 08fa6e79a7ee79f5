"""End-to-end orchestrator tests with deterministic fake converters."""

from __future__ import annotations

import asyncio
import io
import json
import zipfile

import pytest

from kmlconvert.errors import ErrorKind, ServiceError
from kmlconvert.pipeline import SourceFile, run_conversion
from kmlconvert.state import ConversionStatus, ResultStateMachine

_RIDGE_KML = """<?xml version="1.0" encoding="UTF-8"?>
<kml xmlns="http://www.opengis.net/kml/2.2"><Document>
  <Placemark><name>Ridge Loop</name>
    <LineString><coordinates>-122.10,37.40,0 -122.12,37.42,0</coordinates></LineString>
  </Placemark>
</Document></kml>
"""

_RIDGE_GEOJSON = json.dumps(
    {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {"name": "Ridge Loop"},
                "geometry": {"type": "LineString", "coordinates": [[-122.10, 37.40], [-122.12, 37.42]]},
            }
        ],
    }
)


class _FakeConverter:
    def __init__(self, response: str | Exception) -> None:
        self._response = response
        self.calls: list[str] = []

    async def convert(self, source_text: str) -> str:
        self.calls.append(source_text)
        if isinstance(self._response, Exception):
            raise self._response
        return self._response


def _kmz(members: dict[str, str]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, text in members.items():
            zf.writestr(name, text)
    return buf.getvalue()


def _selected(name: str) -> ResultStateMachine:
    machine = ResultStateMachine()
    machine.select(name)
    return machine


@pytest.mark.asyncio
async def test_plain_kml_converts_to_named_geojson() -> None:
    machine = _selected("trails.kml")
    converter = _FakeConverter(f"Here it is:\n```json\n{_RIDGE_GEOJSON}\n```")

    attempt = await run_conversion(machine, SourceFile("trails.kml", _RIDGE_KML.encode("utf-8")), converter)

    assert attempt.status is ConversionStatus.SUCCESS
    assert attempt.output_name == "trails.json"
    assert attempt.result_document == _RIDGE_GEOJSON
    assert json.loads(attempt.result_document)["features"][0]["properties"]["name"] == "Ridge Loop"
    assert converter.calls == [_RIDGE_KML]


@pytest.mark.asyncio
async def test_kmz_member_text_is_sent_to_converter() -> None:
    machine = _selected("trails.kmz")
    converter = _FakeConverter(_RIDGE_GEOJSON)
    data = _kmz({"images/pin.png": "png", "doc.kml": _RIDGE_KML})

    attempt = await run_conversion(machine, SourceFile("trails.kmz", data), converter)

    assert attempt.status is ConversionStatus.SUCCESS
    assert attempt.output_name == "trails.json"
    assert converter.calls == [_RIDGE_KML]


@pytest.mark.asyncio
async def test_kmz_without_kml_ends_in_no_annotation_entry() -> None:
    machine = _selected("parks.kmz")
    converter = _FakeConverter(_RIDGE_GEOJSON)

    attempt = await run_conversion(machine, SourceFile("parks.kmz", _kmz({"readme.txt": "hi"})), converter)

    assert attempt.status is ConversionStatus.ERROR
    assert attempt.error_kind is ErrorKind.NO_ANNOTATION_ENTRY
    assert attempt.result_document is None
    assert converter.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("data", [b"", b"   \n\t"])
async def test_blank_kml_ends_in_empty_file(data: bytes) -> None:
    machine = _selected("empty.kml")
    converter = _FakeConverter(_RIDGE_GEOJSON)

    attempt = await run_conversion(machine, SourceFile("empty.kml", data), converter)

    assert attempt.error_kind is ErrorKind.EMPTY_FILE
    assert converter.calls == []


@pytest.mark.asyncio
async def test_service_error_kind_and_message_are_recorded() -> None:
    machine = _selected("trails.kml")
    converter = _FakeConverter(ServiceError(ErrorKind.MISSING_CREDENTIAL))

    attempt = await run_conversion(machine, SourceFile("trails.kml", b"<kml/>"), converter)

    assert attempt.status is ConversionStatus.ERROR
    assert attempt.error_kind is ErrorKind.MISSING_CREDENTIAL
    assert "GEMINI_API_KEY" in attempt.error_message


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("response", "kind"),
    [
        ("I could not convert that.", ErrorKind.NO_STRUCTURED_OBJECT_FOUND),
        ('{"type": "FeatureCollection", "features": [', ErrorKind.NO_STRUCTURED_OBJECT_FOUND),
        ('{"type": "FeatureCollection",, }', ErrorKind.MALFORMED_DOCUMENT),
    ],
)
async def test_bad_responses_discard_partial_output(response: str, kind: ErrorKind) -> None:
    machine = _selected("trails.kml")

    attempt = await run_conversion(machine, SourceFile("trails.kml", b"<kml/>"), _FakeConverter(response))

    assert attempt.error_kind is kind
    assert attempt.result_document is None
    assert attempt.output_name is None


@pytest.mark.asyncio
async def test_unexpected_exception_still_reaches_error_state() -> None:
    machine = _selected("trails.kml")

    attempt = await run_conversion(machine, SourceFile("trails.kml", b"<kml/>"), _FakeConverter(KeyError("boom")))

    assert attempt.status is ConversionStatus.ERROR
    assert attempt.error_kind is ErrorKind.UNEXPECTED
    assert attempt.error_message == "An error occurred during conversion."


@pytest.mark.asyncio
async def test_reset_during_flight_discards_late_result() -> None:
    machine = _selected("old.kml")
    release = asyncio.Event()

    class _SlowConverter:
        async def convert(self, source_text: str) -> str:
            await release.wait()
            return _RIDGE_GEOJSON

    task = asyncio.create_task(run_conversion(machine, SourceFile("old.kml", b"<kml/>"), _SlowConverter()))
    await asyncio.sleep(0)
    assert machine.status is ConversionStatus.LOADING

    fresh = machine.select("new.kml")
    release.set()
    result = await task

    assert result is fresh
    assert machine.current.status is ConversionStatus.IDLE
    assert machine.current.source_name == "new.kml"
