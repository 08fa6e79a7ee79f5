"""Lifecycle of a single conversion attempt."""

from __future__ import annotations

import itertools
import logging
import re
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import PurePath
from typing import Optional

from kmlconvert.archive import is_archive_name
from kmlconvert.errors import ErrorKind

logger = logging.getLogger(__name__)

OUTPUT_SUFFIX = ".json"

_SOURCE_SUFFIX_RE = re.compile(r"\.(kml|kmz)$", re.IGNORECASE)


class ConversionStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class InvalidTransition(RuntimeError):
    """Raised when the caller drives the state machine out of order."""


def output_name_for(source_name: str) -> str:
    if _SOURCE_SUFFIX_RE.search(source_name):
        return _SOURCE_SUFFIX_RE.sub(OUTPUT_SUFFIX, source_name)
    return f"{PurePath(source_name).stem}{OUTPUT_SUFFIX}"


@dataclass(frozen=True)
class ConversionAttempt:
    attempt_id: int
    source_name: str
    source_is_archive: bool
    status: ConversionStatus = ConversionStatus.IDLE
    result_document: Optional[str] = None
    output_name: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    def __post_init__(self) -> None:
        has_result = self.result_document is not None
        has_error = self.error_message is not None
        if self.status is ConversionStatus.SUCCESS:
            ok = has_result and not has_error
        elif self.status is ConversionStatus.ERROR:
            ok = has_error and not has_result
        else:
            ok = not has_result and not has_error
        if not ok:
            raise ValueError(f"inconsistent attempt fields for status {self.status.value}")

    @property
    def is_terminal(self) -> bool:
        return self.status in (ConversionStatus.SUCCESS, ConversionStatus.ERROR)


class ResultStateMachine:
    """Idle -> Loading -> Success | Error, with reset to Idle from anywhere.

    Every attempt carries an id from a monotonically increasing counter.
    Completions are applied only when their id still names the current,
    loading attempt, so a result that arrives after a reset is dropped.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._current: Optional[ConversionAttempt] = None

    @property
    def current(self) -> Optional[ConversionAttempt]:
        return self._current

    @property
    def status(self) -> ConversionStatus:
        return self._current.status if self._current else ConversionStatus.IDLE

    def select(self, source_name: str) -> ConversionAttempt:
        self._current = ConversionAttempt(
            attempt_id=next(self._ids),
            source_name=source_name,
            source_is_archive=is_archive_name(source_name),
        )
        return self._current

    def clear(self) -> None:
        self._current = None

    def start(self) -> int:
        if self._current is None:
            raise InvalidTransition("no file selected")
        if self._current.status is not ConversionStatus.IDLE:
            raise InvalidTransition(f"cannot start from {self._current.status.value}")
        self._current = replace(self._current, status=ConversionStatus.LOADING)
        return self._current.attempt_id

    def succeed(self, attempt_id: int, document: str) -> bool:
        if not self._accepts(attempt_id):
            return False
        self._current = replace(
            self._current,
            status=ConversionStatus.SUCCESS,
            result_document=document,
            output_name=output_name_for(self._current.source_name),
        )
        return True

    def fail(self, attempt_id: int, kind: ErrorKind, message: str) -> bool:
        if not self._accepts(attempt_id):
            return False
        self._current = replace(
            self._current,
            status=ConversionStatus.ERROR,
            error_kind=kind,
            error_message=message,
        )
        return True

    def _accepts(self, attempt_id: int) -> bool:
        current = self._current
        if current is None or current.attempt_id != attempt_id or current.status is not ConversionStatus.LOADING:
            logger.debug("Discarding stale completion for attempt %s", attempt_id)
            return False
        return True
