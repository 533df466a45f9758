# job_store.py
import uuid
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

TERMINAL_STATUSES = {JobStatus.COMPLETED, JobStatus.FAILED}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Job(BaseModel):
    """One download request and its tracked lifecycle (camelCase on the wire)."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    url: str
    platform: str
    format: Literal["mp4", "mp3"]
    quality: Optional[str] = None
    itag: Optional[str] = None
    title: Optional[str] = None
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    download_url: Optional[str] = Field(default=None, alias="downloadUrl")
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=_now, alias="createdAt")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class JobUpdate(BaseModel):
    """The only fields a runner may change after creation."""
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    title: Optional[str] = None
    status: Optional[JobStatus] = None
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    download_url: Optional[str] = Field(default=None, alias="downloadUrl")
    error: Optional[str] = None


class JobStore:
    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def create(self, url: str, platform: str, format: str,
               quality: Optional[str] = None, itag: Optional[str] = None) -> Job:
        job = Job(
            id=str(uuid.uuid4()),
            url=url,
            platform=platform,
            format=format,
            quality=quality,
            itag=itag,
        )
        with self._lock:
            self._jobs[job.id] = job
        return job

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def update(self, job_id: str, **kwargs) -> Optional[Job]:
        # unknown or mistyped fields raise pydantic.ValidationError here
        changes = JobUpdate(**kwargs).model_dump(exclude_unset=True)
        with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                return None
            job = job.model_copy(update=changes)
            self._jobs[job_id] = job
            return job

    def list_recent(self, n: int = 10) -> List[Job]:
        if n <= 0:
            return []
        with self._lock:
            jobs = list(self._jobs.values())
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[:n]
