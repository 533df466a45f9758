# platforms.py
from typing import List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel

# platform -> hostnames it is served from (subdomains match too)
PLATFORM_HOSTS = {
    "youtube": ("youtube.com", "youtu.be"),
    "tiktok": ("tiktok.com",),
    "instagram": ("instagram.com",),
    "facebook": ("facebook.com", "fb.watch"),
    "twitter": ("twitter.com", "x.com"),
}

SUPPORTED_PLATFORM_NAMES = ["YouTube", "TikTok", "Instagram", "Facebook", "Twitter"]

# the only platform whose formats are fully handled end to end
FULLY_SUPPORTED = "youtube"

# these hosts expose few formats; height filters often fail on them
_LIMITED_FORMAT_PLATFORMS = {"tiktok", "instagram", "twitter", "facebook"}

AUDIO_SELECTOR = "bestaudio/best"
DEFAULT_VIDEO_SELECTOR = "best[height<=720]/best"


class FormatOption(BaseModel):
    itag: str
    quality: str
    container: str
    type: str  # video | audio

STANDARD_FORMATS = [
    FormatOption(itag="best", quality="Best quality", container="mp4", type="video"),
    FormatOption(itag="best[height<=720]", quality="720p HD", container="mp4", type="video"),
    FormatOption(itag="best[height<=480]", quality="480p Standard", container="mp4", type="video"),
    FormatOption(itag="best[height<=360]", quality="360p Fast", container="mp4", type="video"),
    FormatOption(itag="bestaudio", quality="Audio MP3", container="mp3", type="audio"),
]

# offered when metadata could not be fetched
FALLBACK_FORMATS = [STANDARD_FORMATS[0], STANDARD_FORMATS[-1]]


def url_hostname(url: str) -> Optional[str]:
    try:
        host = urlparse(url.strip()).hostname
    except ValueError:
        return None
    return host.lower() if host else None


def detect_platform(url: str) -> str:
    """Return the platform name for ``url`` or ``"unknown"``."""
    host = url_hostname(url)
    if not host:
        return "unknown"
    for platform, domains in PLATFORM_HOSTS.items():
        for domain in domains:
            if host == domain or host.endswith("." + domain):
                return platform
    return "unknown"


def is_audio_request(format: str, quality: Optional[str] = None) -> bool:
    return format == "mp3" or bool(quality and "audio" in quality.lower())


def effective_format(format: str, quality: Optional[str] = None) -> str:
    """The container actually delivered: an "Audio" quality turns an mp4 request into mp3."""
    return "mp3" if is_audio_request(format, quality) else "mp4"


def resolve_selector(url: str, format: str, quality: Optional[str] = None,
                     itag: Optional[str] = None) -> str:
    """
    Pick the yt-dlp format selector for a request.

    Audio wins over everything, then an explicit selector token, then a
    per-platform default.
    """
    if is_audio_request(format, quality):
        return AUDIO_SELECTOR
    if itag and itag != "best":
        return itag
    if detect_platform(url) in _LIMITED_FORMAT_PLATFORMS:
        return "best"
    return DEFAULT_VIDEO_SELECTOR


def formats_for(metadata_ok: bool) -> List[FormatOption]:
    return list(STANDARD_FORMATS if metadata_ok else FALLBACK_FORMATS)
