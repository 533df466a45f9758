import pytest

from errors import (
    MESSAGES,
    PROBE_FAILED,
    UNKNOWN_ERROR,
    ErrorKind,
    ExtractionError,
    classify_text,
    translate_error,
)


def test_structured_kind_beats_text():
    exc = ExtractionError("Video unavailable", ErrorKind.GEO_BLOCKED)
    assert translate_error(exc) == MESSAGES[ErrorKind.GEO_BLOCKED]


@pytest.mark.parametrize("text, kind", [
    ("[youtube] abc: Video unavailable", ErrorKind.UNAVAILABLE),
    ("Private video. Sign in if you've been granted access", ErrorKind.PRIVATE),
    ("Could not extract functions", ErrorKind.PROTECTED),
    ("Requested format is not available. Use --list-formats", ErrorKind.FORMAT_UNAVAILABLE),
    ("Unsupported URL: https://example.com", ErrorKind.UNSUPPORTED),
    ("HTTP Error 503", None),
])
def test_classify_text(text, kind):
    assert classify_text(text) == kind


def test_plain_exceptions_are_classified_by_text():
    assert translate_error(RuntimeError("This video is private")) == MESSAGES[ErrorKind.PRIVATE]


def test_fallback_used_when_nothing_matches():
    assert translate_error(ExtractionError("HTTP Error 503"), PROBE_FAILED) == PROBE_FAILED


def test_raw_text_when_no_fallback():
    assert translate_error(ExtractionError("HTTP Error 503")) == "HTTP Error 503"
    assert translate_error(ExtractionError("")) == UNKNOWN_ERROR
