"""In-memory KMZ extraction."""

from __future__ import annotations

import io
import logging
import zipfile
import zlib
from dataclasses import dataclass

from kmlconvert.errors import ErrorKind, ExtractionError

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".kmz"
ANNOTATION_SUFFIX = ".kml"


@dataclass(frozen=True)
class ExtractedEntry:
    entry_name: str
    content: str


def is_archive_name(name: str) -> bool:
    return name.lower().endswith(ARCHIVE_SUFFIX)


def extract(container: bytes) -> ExtractedEntry:
    """Return the first ``.kml`` member of a KMZ archive, decoded as text.

    Members are visited in the archive's own (central directory) order and
    directory entries are ignored. Nothing is written to disk.
    """
    try:
        zf = zipfile.ZipFile(io.BytesIO(container))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as exc:
        raise ExtractionError(ErrorKind.CORRUPT_ARCHIVE, detail=str(exc)) from exc

    with zf:
        member = next(
            (
                info
                for info in zf.infolist()
                if not info.is_dir() and info.filename.lower().endswith(ANNOTATION_SUFFIX)
            ),
            None,
        )
        if member is None:
            logger.info("KMZ archive has %d entries, none ending in %s", len(zf.infolist()), ANNOTATION_SUFFIX)
            raise ExtractionError(ErrorKind.NO_ANNOTATION_ENTRY)

        try:
            raw = zf.read(member)
        except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError, EOFError) as exc:
            raise ExtractionError(ErrorKind.CORRUPT_ENTRY, detail=f"{member.filename}: {exc}") from exc

    try:
        content = raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ExtractionError(ErrorKind.CORRUPT_ENTRY, detail=f"{member.filename}: {exc.reason}") from exc

    logger.debug("Extracted %s (%d chars) from KMZ archive", member.filename, len(content))
    return ExtractedEntry(entry_name=member.filename, content=content)
