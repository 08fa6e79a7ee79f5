"""Error taxonomy shared by the conversion pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    NO_ANNOTATION_ENTRY = "NoAnnotationEntry"
    CORRUPT_ARCHIVE = "CorruptArchive"
    CORRUPT_ENTRY = "CorruptEntry"
    EMPTY_FILE = "EmptyFile"
    MISSING_CREDENTIAL = "MissingCredential"
    AUTH_REJECTED = "AuthRejected"
    SERVICE_UNAVAILABLE = "ServiceUnavailable"
    EMPTY_RESPONSE = "EmptyResponse"
    NO_STRUCTURED_OBJECT_FOUND = "NoStructuredObjectFound"
    MALFORMED_DOCUMENT = "MalformedDocument"
    UNEXPECTED = "Unexpected"


USER_MESSAGES = {
    ErrorKind.NO_ANNOTATION_ENTRY: "No KML file found inside the KMZ archive.",
    ErrorKind.CORRUPT_ARCHIVE: "Failed to extract KMZ file. The archive is damaged or not a zip file.",
    ErrorKind.CORRUPT_ENTRY: "The KML file inside the KMZ archive could not be read as text.",
    ErrorKind.EMPTY_FILE: "Could not read file: it is empty.",
    ErrorKind.MISSING_CREDENTIAL: "No Gemini API key configured. Set GEMINI_API_KEY and restart the app.",
    ErrorKind.AUTH_REJECTED: "The Gemini API key was rejected. Check the key and its permissions.",
    ErrorKind.SERVICE_UNAVAILABLE: "The conversion service is temporarily unavailable. Try again later.",
    ErrorKind.EMPTY_RESPONSE: "The conversion service returned an empty response. Try again.",
    ErrorKind.NO_STRUCTURED_OBJECT_FOUND: (
        "The AI did not return a valid JSON object. Try again or check if the file is a valid KML."
    ),
    ErrorKind.MALFORMED_DOCUMENT: "The AI returned invalid GeoJSON. Try again.",
    ErrorKind.UNEXPECTED: "An error occurred during conversion.",
}


class ConversionError(Exception):
    """A classified, user-facing failure of one conversion attempt."""

    def __init__(self, kind: ErrorKind, message: Optional[str] = None, *, detail: Optional[str] = None) -> None:
        self.kind = kind
        self.message = message or USER_MESSAGES[kind]
        self.detail = detail
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message} ({self.detail})"
        return self.message


class ExtractionError(ConversionError):
    """Raised by the KMZ extractor."""


class ServiceError(ConversionError):
    """Raised by the conversion client."""


class FormatError(ConversionError):
    """Raised when the service response is not a parseable JSON object."""
