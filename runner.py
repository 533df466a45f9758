# runner.py
# ------------------------------------------------------------------------------------
#  Background worker for one download job:
#    pending -> processing -> completed | failed
#  The runner is the only writer to its job while it runs and talks to the
#  outside world exclusively through JobStore updates.
# ------------------------------------------------------------------------------------

import re
import asyncio
import logging
from pathlib import Path
from typing import Optional

from errors import DOWNLOAD_FAILED, METADATA_FAILED, PROBE_FAILED, UNKNOWN_ERROR, translate_error
from extractor import Extractor
from job_store import JobStatus, JobStore
from platforms import effective_format, resolve_selector

logger = logging.getLogger(__name__)

PROGRESS_STARTED = 10
PROGRESS_METADATA = 30
PROGRESS_PROBED = 50
PROGRESS_DOWNLOADED = 95

CONTENT_TYPES = {"mp3": "audio/mpeg", "mp4": "video/mp4"}

_TITLE_STRIP_RE = re.compile(r"[^\w\s-]")


def clean_title(title: Optional[str]) -> str:
    cleaned = _TITLE_STRIP_RE.sub("", title or "")
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned or "video"


def _advance(store: JobStore, job_id: str, progress: int) -> None:
    # progress never moves backwards and never changes after a terminal status
    job = store.get(job_id)
    if job and not job.is_terminal and progress > job.progress:
        store.update(job_id, progress=progress)


def _fail(store: JobStore, job_id: str, message: str) -> None:
    logger.info("job %s failed: %s", job_id, message)
    store.update(job_id, status=JobStatus.FAILED, error=message)


def _complete(store: JobStore, job_id: str, download_url: str) -> None:
    logger.info("job %s completed", job_id)
    store.update(job_id, status=JobStatus.COMPLETED, progress=100, download_url=download_url)


async def _download_to_disk(store: JobStore, extractor: Extractor, job_id: str, url: str,
                            fmt: str, selector: str, download_dir: Path) -> Path:
    def on_progress(pct: int):
        # called from the yt-dlp worker thread
        span = PROGRESS_DOWNLOADED - PROGRESS_PROBED
        _advance(store, job_id, PROGRESS_PROBED + pct * span // 100)

    path = await extractor.download(url, fmt, selector, download_dir, job_id, on_progress)
    _advance(store, job_id, PROGRESS_DOWNLOADED)
    return path


async def _upload_to_r2(job_id: str, path: Path, fmt: str) -> str:
    import r2_client

    key = r2_client.download_key(job_id, path.suffix)
    try:
        await asyncio.to_thread(r2_client.upload_file, path, key, content_type=CONTENT_TYPES[fmt])
    finally:
        path.unlink(missing_ok=True)
    return key


async def run_download_job(job_id: str, store: JobStore, extractor: Extractor,
                           storage: str = "stream", download_dir: Optional[Path] = None):
    """Drive one job to a terminal status. Never raises."""
    job = store.get(job_id)
    if not job:
        logger.warning("job %s vanished before the runner started", job_id)
        return

    url = job.url
    fmt = effective_format(job.format, job.quality)
    selector = resolve_selector(url, job.format, job.quality, job.itag)

    store.update(job_id, status=JobStatus.PROCESSING, progress=PROGRESS_STARTED)
    logger.info("job %s processing platform=%s selector=%s storage=%s",
                job_id, job.platform, selector, storage)

    try:
        # 1) Metadata
        try:
            info = await extractor.fetch_metadata(url)
        except Exception as e:
            logger.warning("job %s metadata fetch failed: %s", job_id, e)
            _fail(store, job_id, translate_error(e, METADATA_FAILED))
            return
        store.update(job_id, title=clean_title(info.title))
        _advance(store, job_id, PROGRESS_METADATA)

        # 2) Can the requested selector actually be served?
        try:
            await extractor.probe(url, selector)
        except Exception as e:
            logger.warning("job %s probe failed for %s: %s", job_id, selector, e)
            _fail(store, job_id, translate_error(e, PROBE_FAILED))
            return
        _advance(store, job_id, PROGRESS_PROBED)

        # 3) Artifact
        if storage == "stream":
            # bytes are pulled through the extractor when the file is requested
            _complete(store, job_id, url)
            return

        try:
            path = await _download_to_disk(store, extractor, job_id, url, fmt, selector,
                                           Path(download_dir or "downloads"))
            if storage == "r2":
                locator = await _upload_to_r2(job_id, path, fmt)
            else:
                locator = str(path)
        except Exception as e:
            logger.warning("job %s download failed: %s", job_id, e)
            _fail(store, job_id, translate_error(e, DOWNLOAD_FAILED))
            return
        _complete(store, job_id, locator)

    except Exception:
        logger.exception("job %s crashed", job_id)
        current = store.get(job_id)
        if current and not current.is_terminal:
            _fail(store, job_id, UNKNOWN_ERROR)
