import sys
from pathlib import Path

import pytest

# Ensure tests can import project modules regardless of how pytest is invoked.
ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)
if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)

from extractor import Extractor, MediaInfo  # noqa: E402
from job_store import JobStore  # noqa: E402


class FakeExtractor(Extractor):
    """In-memory stand-in for yt-dlp."""

    def __init__(self, title="Never Gonna Give You Up", metadata_error=None, probe_error=None,
                 download_error=None, stream_error=None, chunks=(b"abc", b"def"),
                 progress_steps=(25, 10, 80)):
        self.title = title
        self.metadata_error = metadata_error
        self.probe_error = probe_error
        self.download_error = download_error
        self.stream_error = stream_error
        self.chunks = chunks
        self.progress_steps = progress_steps
        self.calls = []

    async def fetch_metadata(self, url):
        self.calls.append(("fetch_metadata", url))
        if self.metadata_error:
            raise self.metadata_error
        return MediaInfo(title=self.title, thumbnail="https://i.ytimg.com/vi/abc/hqdefault.jpg",
                         duration=212)

    async def probe(self, url, selector):
        self.calls.append(("probe", url, selector))
        if self.probe_error:
            raise self.probe_error

    async def stream(self, url, format, selector):
        self.calls.append(("stream", url, format, selector))
        if self.stream_error:
            raise self.stream_error
        for chunk in self.chunks:
            yield chunk

    async def download(self, url, format, selector, dest_dir, basename, on_progress=None):
        self.calls.append(("download", url, format, selector))
        if on_progress:
            for pct in self.progress_steps:
                on_progress(pct)
        if self.download_error:
            raise self.download_error
        dest_dir.mkdir(parents=True, exist_ok=True)
        path = dest_dir / f"{basename}.{format}"
        path.write_bytes(b"".join(self.chunks))
        return path


class RecordingStore(JobStore):
    """JobStore that keeps every (status, progress) pair it ever held."""

    def __init__(self):
        super().__init__()
        self.history = {}

    def create(self, *args, **kwargs):
        job = super().create(*args, **kwargs)
        self.history[job.id] = [(job.status, job.progress)]
        return job

    def update(self, job_id, **kwargs):
        job = super().update(job_id, **kwargs)
        if job:
            self.history[job_id].append((job.status, job.progress))
        return job


@pytest.fixture
def fake_extractor():
    return FakeExtractor()


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def make_client(tmp_path):
    from fastapi.testclient import TestClient
    from main import create_app

    def _build(store=None, extractor=None, storage="stream"):
        app = create_app(
            store=store if store is not None else RecordingStore(),
            extractor=extractor if extractor is not None else FakeExtractor(),
            storage=storage,
            download_dir=str(tmp_path / "downloads"),
        )
        return TestClient(app)

    return _build
