"""Conversion orchestrator: read, extract, convert, sanitize, record."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from kmlconvert.archive import extract, is_archive_name
from kmlconvert.client import Converter
from kmlconvert.errors import USER_MESSAGES, ConversionError, ErrorKind
from kmlconvert.sanitize import sanitize
from kmlconvert.state import ConversionAttempt, ResultStateMachine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceFile:
    name: str
    data: bytes


async def read_source_text(source: SourceFile) -> str:
    if is_archive_name(source.name):
        entry = await asyncio.to_thread(extract, source.data)
        return entry.content
    text = source.data.decode("utf-8-sig", errors="replace")
    if not text.strip():
        raise ConversionError(ErrorKind.EMPTY_FILE)
    return text


async def run_conversion(
    machine: ResultStateMachine,
    source: SourceFile,
    converter: Converter,
) -> Optional[ConversionAttempt]:
    """Drive the current attempt from Idle to Success or Error.

    Returns the machine's current attempt afterwards, which is a newer one
    (or None) when the machine was reset while this run was in flight.
    """
    attempt_id = machine.start()
    try:
        text = await read_source_text(source)
        raw = await converter.convert(text)
        document = sanitize(raw)
    except ConversionError as exc:
        logger.info("Conversion of %s failed: %s [%s]", source.name, exc, exc.kind.value)
        machine.fail(attempt_id, exc.kind, str(exc))
    except Exception:
        logger.exception("Unexpected failure converting %s", source.name)
        machine.fail(attempt_id, ErrorKind.UNEXPECTED, USER_MESSAGES[ErrorKind.UNEXPECTED])
    else:
        if machine.succeed(attempt_id, document):
            logger.info("Converted %s (%d chars of GeoJSON)", source.name, len(document))
    return machine.current
