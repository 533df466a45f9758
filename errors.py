# errors.py
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    UNAVAILABLE = "unavailable"
    PRIVATE = "private"
    PROTECTED = "protected"
    UNSUPPORTED = "unsupported"
    GEO_BLOCKED = "geo_blocked"
    FORMAT_UNAVAILABLE = "format_unavailable"


class ExtractionError(Exception):
    """Raised by an extractor when the collaborator could not do its job."""

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        self.kind = kind


MESSAGES = {
    ErrorKind.UNAVAILABLE: "This video is not available for download.",
    ErrorKind.PRIVATE: "This video is private and cannot be downloaded.",
    ErrorKind.PROTECTED: "The video may be protected or the URL invalid. Please try again.",
    ErrorKind.UNSUPPORTED: "This URL is not supported.",
    ErrorKind.GEO_BLOCKED: "This video is not available in the server's region.",
    ErrorKind.FORMAT_UNAVAILABLE: "The requested quality is not available for this video.",
}

METADATA_FAILED = ("Could not fetch video information. "
                   "The URL may be invalid or the video unavailable.")
PROBE_FAILED = "Error while validating the URL. Please try again."
DOWNLOAD_FAILED = "Download failed. Please try again."
UNKNOWN_ERROR = "An unknown error occurred."

# last resort when the collaborator gives no structured kind;
# yt-dlp message wording changes silently break these
_TEXT_PATTERNS = (
    ("could not extract functions", ErrorKind.PROTECTED),
    ("video unavailable", ErrorKind.UNAVAILABLE),
    ("requested format is not available", ErrorKind.FORMAT_UNAVAILABLE),
    ("private", ErrorKind.PRIVATE),
    ("unsupported url", ErrorKind.UNSUPPORTED),
)


def classify_text(text: str) -> Optional[ErrorKind]:
    lowered = (text or "").lower()
    for needle, kind in _TEXT_PATTERNS:
        if needle in lowered:
            return kind
    return None


def translate_error(exc: BaseException, fallback: Optional[str] = None) -> str:
    """Turn a collaborator failure into the message shown to the user."""
    kind = getattr(exc, "kind", None) or classify_text(str(exc))
    if kind:
        return MESSAGES[kind]
    if fallback:
        return fallback
    return str(exc) or UNKNOWN_ERROR
