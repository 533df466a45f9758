import pytest

from platforms import (
    AUDIO_SELECTOR,
    DEFAULT_VIDEO_SELECTOR,
    FALLBACK_FORMATS,
    STANDARD_FORMATS,
    detect_platform,
    effective_format,
    formats_for,
    resolve_selector,
)


@pytest.mark.parametrize("url, platform", [
    ("https://www.youtube.com/watch?v=abc", "youtube"),
    ("https://m.youtube.com/watch?v=abc", "youtube"),
    ("https://youtu.be/abc", "youtube"),
    ("https://www.tiktok.com/@user/video/123", "tiktok"),
    ("https://vm.tiktok.com/ZM123/", "tiktok"),
    ("https://www.instagram.com/reel/abc/", "instagram"),
    ("https://www.facebook.com/watch/?v=1", "facebook"),
    ("https://fb.watch/abc/", "facebook"),
    ("https://twitter.com/user/status/1", "twitter"),
    ("https://x.com/user/status/1", "twitter"),
    ("https://box.com/file", "unknown"),
    ("https://myblog.example.com/post/youtube.com", "unknown"),
    ("not-a-url", "unknown"),
    ("", "unknown"),
])
def test_detect_platform(url, platform):
    assert detect_platform(url) == platform


def test_audio_request_wins():
    assert resolve_selector("https://youtu.be/a", "mp3", itag="22") == AUDIO_SELECTOR
    assert resolve_selector("https://youtu.be/a", "mp4", quality="Audio MP3") == AUDIO_SELECTOR


def test_explicit_itag_is_used():
    assert resolve_selector("https://youtu.be/a", "mp4", itag="best[height<=480]") == "best[height<=480]"


def test_best_itag_falls_back_to_platform_default():
    assert resolve_selector("https://youtu.be/a", "mp4", itag="best") == DEFAULT_VIDEO_SELECTOR


@pytest.mark.parametrize("url", [
    "https://www.tiktok.com/@u/video/1",
    "https://www.instagram.com/reel/a/",
    "https://x.com/u/status/1",
])
def test_limited_platforms_use_plain_best(url):
    assert resolve_selector(url, "mp4") == "best"


def test_effective_format():
    assert effective_format("mp4") == "mp4"
    assert effective_format("mp3") == "mp3"
    assert effective_format("mp4", "Audio MP3") == "mp3"


def test_formats_for():
    assert formats_for(True) == STANDARD_FORMATS
    assert formats_for(False) == FALLBACK_FORMATS
    assert {f.type for f in formats_for(True)} == {"video", "audio"}


def test_video_tiers_cap_resolution():
    tiers = [f.itag for f in STANDARD_FORMATS if f.type == "video" and f.itag != "best"]
    assert tiers == ["best[height<=720]", "best[height<=480]", "best[height<=360]"]
