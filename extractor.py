# extractor.py
import os
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Callable, Optional

import yt_dlp
from yt_dlp.utils import DownloadError, GeoRestrictedError, UnsupportedError

from errors import ErrorKind, ExtractionError, classify_text
from platforms import is_audio_request
from settings import settings

logger = logging.getLogger(__name__)

REFERER = "https://www.google.com/"
CHUNK_SIZE = 64 * 1024
MP3_BITRATE = "192"

ProgressCallback = Callable[[int], None]


@dataclass
class MediaInfo:
    title: Optional[str] = None
    thumbnail: Optional[str] = None
    duration: Optional[int] = None


class Extractor(ABC):
    """
    Anything that understands platform URLs and can fetch metadata or bytes.

    Every method raises ExtractionError on failure.
    """

    @abstractmethod
    async def fetch_metadata(self, url: str) -> MediaInfo:
        ...

    @abstractmethod
    async def probe(self, url: str, selector: str) -> None:
        """Check that ``selector`` resolves for ``url`` without downloading."""

    @abstractmethod
    def stream(self, url: str, format: str, selector: str) -> AsyncIterator[bytes]:
        ...

    @abstractmethod
    async def download(self, url: str, format: str, selector: str, dest_dir: Path,
                       basename: str, on_progress: Optional[ProgressCallback] = None) -> Path:
        ...


def _clean_message(text: str) -> str:
    text = (text or "").strip()
    if text.startswith("ERROR:"):
        text = text[len("ERROR:"):].strip()
    return text


def to_extraction_error(exc: BaseException) -> ExtractionError:
    """Map a yt-dlp exception onto ExtractionError, keeping a structured kind when possible."""
    if isinstance(exc, ExtractionError):
        return exc
    cause = exc
    if isinstance(exc, DownloadError) and exc.exc_info and exc.exc_info[1] is not None:
        cause = exc.exc_info[1]
    message = _clean_message(str(exc))
    if isinstance(cause, GeoRestrictedError):
        return ExtractionError(message, ErrorKind.GEO_BLOCKED)
    if isinstance(cause, UnsupportedError):
        return ExtractionError(message, ErrorKind.UNSUPPORTED)
    return ExtractionError(message, classify_text(message))


def find_output_file(dest_dir: Path, basename: str) -> Optional[Path]:
    files = [p for p in dest_dir.glob(f"{basename}.*") if p.is_file() and not p.name.endswith(".part")]
    if not files:
        return None
    return max(files, key=lambda p: p.stat().st_size)


class YtDlpExtractor(Extractor):
    def __init__(self, cookies_file: str = "", user_agent: str = "",
                 ytdlp_binary: str = "yt-dlp", ffmpeg_binary: str = "ffmpeg"):
        self.cookies_file = cookies_file
        self.user_agent = user_agent
        self.ytdlp_binary = ytdlp_binary
        self.ffmpeg_binary = ffmpeg_binary

    @classmethod
    def from_settings(cls) -> "YtDlpExtractor":
        return cls(
            cookies_file=settings.ytdlp_cookies_file,
            user_agent=settings.ytdlp_user_agent,
            ytdlp_binary=settings.ytdlp_binary,
            ffmpeg_binary=settings.ffmpeg_binary,
        )

    # ---------- options ----------
    def base_opts(self) -> dict:
        headers = {"Referer": REFERER}
        if self.user_agent:
            headers["User-Agent"] = self.user_agent
        opts = {
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
            "nocheckcertificate": True,
            "http_headers": headers,
        }
        if self.cookies_file:
            opts["cookiefile"] = self.cookies_file
        return opts

    def download_opts(self, format: str, selector: str, dest_dir: Path, basename: str,
                      on_progress: Optional[ProgressCallback] = None) -> dict:
        opts = self.base_opts()
        opts["outtmpl"] = str(dest_dir / f"{basename}.%(ext)s")
        opts["format"] = selector
        if is_audio_request(format):
            opts["postprocessors"] = [{
                "key": "FFmpegExtractAudio",
                "preferredcodec": "mp3",
                "preferredquality": MP3_BITRATE,
            }]
        else:
            opts["merge_output_format"] = "mp4"
        if on_progress:
            opts["progress_hooks"] = [_progress_hook(on_progress)]
        return opts

    def stream_command(self, selector: str, url: str) -> list:
        cmd = [
            self.ytdlp_binary,
            "--quiet", "--no-warnings", "--no-playlist", "--no-check-certificates",
            "--add-header", f"Referer:{REFERER}",
            "-f", selector,
            "-o", "-",
        ]
        if self.user_agent:
            cmd += ["--user-agent", self.user_agent]
        if self.cookies_file:
            cmd += ["--cookies", self.cookies_file]
        cmd.append(url)
        return cmd

    def transcode_command(self) -> list:
        return [
            self.ffmpeg_binary, "-loglevel", "error",
            "-i", "pipe:0", "-vn",
            "-codec:a", "libmp3lame", "-b:a", f"{MP3_BITRATE}k",
            "-f", "mp3", "pipe:1",
        ]

    # ---------- blocking yt-dlp calls (run in a worker thread) ----------
    def _extract_info(self, opts: dict, url: str, download: bool) -> dict:
        try:
            with yt_dlp.YoutubeDL(opts) as ydl:
                info = ydl.extract_info(url, download=download)
        except Exception as e:
            raise to_extraction_error(e) from e
        if not isinstance(info, dict):
            raise ExtractionError("No media information returned", ErrorKind.UNAVAILABLE)
        return info

    # ---------- Extractor interface ----------
    async def fetch_metadata(self, url: str) -> MediaInfo:
        opts = self.base_opts()
        opts["skip_download"] = True
        info = await asyncio.to_thread(self._extract_info, opts, url, False)
        duration = info.get("duration")
        return MediaInfo(
            title=info.get("title"),
            thumbnail=info.get("thumbnail"),
            duration=int(duration) if duration is not None else None,
        )

    async def probe(self, url: str, selector: str) -> None:
        # with "format" set, yt-dlp resolves the selector and raises
        # "Requested format is not available" when nothing matches
        opts = self.base_opts()
        opts["skip_download"] = True
        opts["format"] = selector
        await asyncio.to_thread(self._extract_info, opts, url, False)

    async def download(self, url: str, format: str, selector: str, dest_dir: Path,
                       basename: str, on_progress: Optional[ProgressCallback] = None) -> Path:
        dest_dir.mkdir(parents=True, exist_ok=True)
        opts = self.download_opts(format, selector, dest_dir, basename, on_progress)
        await asyncio.to_thread(self._extract_info, opts, url, True)
        found = find_output_file(dest_dir, basename)
        if not found:
            raise ExtractionError("No output file produced")
        return found

    async def stream(self, url: str, format: str, selector: str) -> AsyncIterator[bytes]:
        procs = []
        try:
            try:
                if is_audio_request(format):
                    read_fd, write_fd = os.pipe()
                    try:
                        source = await asyncio.create_subprocess_exec(
                            *self.stream_command(selector, url),
                            stdout=write_fd, stderr=asyncio.subprocess.PIPE,
                        )
                        procs.append(source)
                        sink = await asyncio.create_subprocess_exec(
                            *self.transcode_command(),
                            stdin=read_fd, stdout=asyncio.subprocess.PIPE,
                            stderr=asyncio.subprocess.DEVNULL,
                        )
                        procs.append(sink)
                    finally:
                        os.close(read_fd)
                        os.close(write_fd)
                else:
                    source = await asyncio.create_subprocess_exec(
                        *self.stream_command(selector, url),
                        stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE,
                    )
                    procs.append(source)
                    sink = source
            except FileNotFoundError as e:
                raise ExtractionError(f"Executable not found: {e.filename}") from e

            while True:
                chunk = await sink.stdout.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk

            stderr = await source.stderr.read()
            if await source.wait() != 0:
                message = _clean_message(stderr.decode("utf-8", "replace")) or "yt-dlp stream failed"
                raise ExtractionError(message, classify_text(message))
            if sink is not source and await sink.wait() != 0:
                raise ExtractionError("Audio conversion failed")
        finally:
            # kill everything before the first await; a cancelled client
            # disconnect may not let us past it
            for proc in procs:
                if proc.returncode is None:
                    try:
                        proc.kill()
                    except ProcessLookupError:
                        pass
            await asyncio.gather(*(proc.wait() for proc in procs), return_exceptions=True)


def _progress_hook(on_progress: ProgressCallback):
    def hook(d):
        if d.get("status") != "downloading":
            return
        total = d.get("total_bytes") or d.get("total_bytes_estimate") or 0
        downloaded = d.get("downloaded_bytes") or 0
        if total:
            on_progress(int(min(100, max(0, downloaded * 100 / total))))
    return hook
