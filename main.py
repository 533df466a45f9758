# main.py
# ------------------------------------------------------------------------------------
#  FastAPI service for MediaGrab:
#  - POST /api/validate          -> detect platform, fetch metadata, list formats
#  - POST /api/download          -> create a job and run it in the background
#  - GET  /api/download/{id}     -> poll status (pending|processing|completed|failed)
#  - GET  /api/downloads/recent  -> most recent jobs
#  - GET  /api/file/{id}         -> stream live (yt-dlp), local file, or R2 object
#  - GET  /debug/config          -> runtime config (only when DEBUG)
#  Jobs live in an in-memory JobStore; nothing survives a restart.
# ------------------------------------------------------------------------------------

import asyncio
import logging
from pathlib import Path
from typing import List, Literal, Optional, Union
from urllib.parse import quote, urlparse

import uvicorn
from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator

from errors import ExtractionError, translate_error
from extractor import Extractor, YtDlpExtractor
from job_store import Job, JobStatus, JobStore
from logging_config import configure_logging
from platforms import (
    FULLY_SUPPORTED,
    SUPPORTED_PLATFORM_NAMES,
    FormatOption,
    detect_platform,
    effective_format,
    formats_for,
    resolve_selector,
    url_hostname,
)
from runner import CONTENT_TYPES, clean_title, run_download_job
from settings import settings

logger = logging.getLogger(__name__)

STORAGE_MODES = {"stream", "local", "r2"}
STREAM_FAILED = "Failed to stream file."
MAX_RECENT = 50

# ---------- Schemas ----------
class ValidateRequest(BaseModel):
    url: Optional[str] = None

class ValidateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_valid: bool = Field(alias="isValid")
    platform: str
    title: Optional[str] = None
    thumbnail: Optional[str] = None
    duration: Optional[int] = None
    formats: List[FormatOption] = []
    supported: bool

class DownloadRequest(BaseModel):
    url: str = Field(..., description="Page URL on a supported platform")
    format: Literal["mp4", "mp3"] = Field(..., description="Container to deliver")
    quality: Optional[str] = Field(None, description="Quality label picked in the UI")
    itag: Optional[Union[int, str]] = Field(None, description="Format selector token")

    @field_validator("url")
    @classmethod
    def _must_be_http_url(cls, v: str) -> str:
        v = v.strip()
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("Please enter a valid URL")
        return v

    @field_validator("itag")
    @classmethod
    def _itag_as_text(cls, v):
        return None if v is None else str(v)

class DownloadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    download_id: str = Field(alias="downloadId")

# ---------- Dependencies ----------
def get_store(request: Request) -> JobStore:
    return request.app.state.store

def get_extractor(request: Request) -> Extractor:
    return request.app.state.extractor

# ---------- Helpers ----------
def content_disposition(filename: str) -> str:
    stem, _, ext = filename.rpartition(".")
    ascii_stem = stem.encode("ascii", "ignore").decode("ascii").strip() or "download"
    return f"attachment; filename=\"{ascii_stem}.{ext}\"; filename*=UTF-8''{quote(filename)}"

async def _validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return JSONResponse(status_code=400, content={"detail": message})


def create_app(store: Optional[JobStore] = None,
               extractor: Optional[Extractor] = None,
               storage: Optional[str] = None,
               download_dir: Optional[str] = None) -> FastAPI:
    configure_logging(settings.log_level)

    storage = (storage or settings.storage).lower()
    if storage not in STORAGE_MODES:
        raise ValueError(f"STORAGE must be one of {sorted(STORAGE_MODES)}, got {storage!r}")
    download_path = Path(download_dir or settings.download_dir)
    if storage != "stream":
        download_path.mkdir(parents=True, exist_ok=True)

    app = FastAPI(title="MediaGrab API", version="1.0.0")
    app.state.store = store if store is not None else JobStore()
    app.state.extractor = extractor if extractor is not None else YtDlpExtractor.from_settings()
    app.state.storage = storage
    app.state.download_dir = download_path

    # 🔴 In prod, tighten this list to your domains
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, _validation_error)

    # ---------- Health ----------
    @app.get("/api/health")
    def health():
        return {"status": "ok"}

    # ---------- Validate ----------
    @app.post("/api/validate", response_model=ValidateResponse)
    async def validate_url(payload: ValidateRequest, extractor: Extractor = Depends(get_extractor)):
        url = (payload.url or "").strip()
        if not url:
            raise HTTPException(status_code=400, detail="URL is required")

        platform = detect_platform(url)
        result = ValidateResponse(is_valid=platform != "unknown", platform=platform,
                                  supported=platform == FULLY_SUPPORTED)
        if not result.is_valid:
            return result

        try:
            info = await extractor.fetch_metadata(url)
        except ExtractionError as e:
            # still offer the basic choices; the job will surface the real error
            logger.warning("metadata lookup failed for %s (%s): %s", url, platform, e)
            result.formats = formats_for(False)
            return result

        result.title = info.title
        result.thumbnail = info.thumbnail
        result.duration = info.duration
        result.formats = formats_for(True)
        return result

    # ---------- Jobs ----------
    @app.post("/api/download", response_model=DownloadResponse)
    async def start_download(payload: DownloadRequest, background: BackgroundTasks,
                             request: Request, store: JobStore = Depends(get_store)):
        platform = detect_platform(payload.url)
        if platform == "unknown":
            host = url_hostname(payload.url) or payload.url
            raise HTTPException(status_code=400, detail={
                "error": f"This platform is not supported: {host}",
                "platform": platform,
                "supportedPlatforms": SUPPORTED_PLATFORM_NAMES,
            })

        job = store.create(
            url=payload.url,
            platform=platform,
            format=payload.format,
            quality=payload.quality,
            itag=payload.itag,
        )
        logger.info("job %s created platform=%s format=%s", job.id, platform, job.format)

        # 🔴 Background worker does the heavy lifting
        state = request.app.state
        background.add_task(run_download_job, job.id, store, state.extractor,
                            state.storage, state.download_dir)
        return DownloadResponse(download_id=job.id)

    @app.get("/api/download/{job_id}", response_model=Job)
    def get_download(job_id: str, store: JobStore = Depends(get_store)):
        job = store.get(job_id)
        if not job:
            raise HTTPException(status_code=404, detail="Download not found")
        return job

    @app.get("/api/downloads/recent", response_model=List[Job])
    def recent_downloads(limit: int = Query(settings.recent_limit, ge=1, le=MAX_RECENT),
                         store: JobStore = Depends(get_store)):
        return store.list_recent(limit)

    # ---------- Files ----------
    @app.get("/api/file/{job_id}")
    async def get_file(job_id: str, request: Request, store: JobStore = Depends(get_store),
                       extractor: Extractor = Depends(get_extractor)):
        job = store.get(job_id)
        if not job or job.status != JobStatus.COMPLETED:
            raise HTTPException(status_code=404, detail="Download not ready")

        fmt = effective_format(job.format, job.quality)
        media_type = CONTENT_TYPES[fmt]
        headers = {"Content-Disposition": content_disposition(f"{clean_title(job.title)}.{fmt}")}
        storage = request.app.state.storage

        if storage == "local":
            file_path = Path(job.download_url or "")
            if not file_path.is_file():
                raise HTTPException(status_code=404, detail="File not found")
            return FileResponse(file_path, media_type=media_type, headers=headers)

        if storage == "r2":
            from r2_client import get_object_stream
            try:
                body, _ = await asyncio.to_thread(get_object_stream, job.download_url)
            except Exception:
                raise HTTPException(status_code=404, detail="File not found")

            def iter_chunks():
                for chunk in iter(lambda: body.read(1024 * 1024), b""):
                    yield chunk

            return StreamingResponse(iter_chunks(), media_type=media_type, headers=headers)

        # stream: pull bytes through the extractor; the first chunk is awaited
        # before headers go out so start-up failures become a clean error
        selector = resolve_selector(job.url, job.format, job.quality, job.itag)
        chunks = extractor.stream(job.url, fmt, selector)
        try:
            first = await chunks.__anext__()
        except StopAsyncIteration:
            first = b""
        except ExtractionError as e:
            logger.warning("stream for job %s failed to start: %s", job_id, e)
            raise HTTPException(status_code=502, detail=translate_error(e, STREAM_FAILED))

        async def body():
            if first:
                yield first
            try:
                async for chunk in chunks:
                    yield chunk
            except ExtractionError as e:
                # headers are already sent; the client sees a truncated body
                logger.error("stream for job %s broke off: %s", job_id, e)
                raise

        return StreamingResponse(body(), media_type=media_type, headers=headers)

    # ---------- Index ----------
    @app.get("/")
    def index():
        return {"service": "mediagrab-api", "storage": storage, "public_base": settings.public_base_url}

    # ---------- Debug (hide in prod) ----------
    if settings.debug:
        @app.get("/debug/config")
        def debug_config():
            return {
                "STORAGE": storage,
                "DOWNLOAD_DIR": str(download_path),
                "YTDLP_BINARY": settings.ytdlp_binary,
                "FFMPEG_BINARY": settings.ffmpeg_binary,
                "YTDLP_COOKIES_FILE": bool(settings.ytdlp_cookies_file),
                "R2_ENDPOINT_URL": settings.r2_endpoint_url,
                "R2_BUCKET": settings.r2_bucket,
            }

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000)
