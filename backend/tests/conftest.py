"""
Pytest configuration and fixtures for testing
"""

import os
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from clipflow.main import create_app
from clipflow.models.upload import CreateUploadSessionData, FileCategory
from clipflow.services.clip_pipeline import ClipPipelineService, get_clip_pipeline_service
from clipflow.services.clip_store import InMemoryClipStore
from clipflow.services.upload import (
    InMemoryUploadSessionStore,
    MultipartReconciler,
    UploadPlanService,
    UploadSessionService,
    get_multipart_reconciler,
    get_upload_plan_service,
    get_upload_session_service,
)
from clipflow.services.video_processing import RetryPolicy, SegmentStitcher, VideoSegmentExtractor

MB = 1024 * 1024


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now=None):
        self.now = now or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeStorage:
    """In-process stand-in for S3Service"""

    bucket = "test-bucket"
    url_expires = 3600
    enabled = True

    def __init__(self, clock):
        self.clock = clock
        self.open_uploads = {}
        self.completed = []
        self.aborted = []
        self.uploaded = []
        self.complete_error = None
        self.abort_error = None
        self.upload_error = None
        self._counter = 0

    def object_url(self, key, bucket=None):
        return f"https://{bucket or self.bucket}.s3.amazonaws.com/{key}"

    def is_storage_locator(self, locator):
        return locator.startswith("s3://") or ".s3.amazonaws.com/" in locator

    def generate_signed_read_url(self, locator, expires_in=None):
        return f"{locator}?signed=1"

    def generate_presigned_upload_url(self, key, content_type, content_length, expires_in=None):
        return f"https://signed.example/put/{key}"

    def generate_presigned_url(self, key, expires_in=None, bucket=None):
        return f"https://signed.example/get/{key}"

    def create_multipart_upload(self, key, content_type, metadata=None):
        self._counter += 1
        upload_id = f"upload-{self._counter}"
        self.open_uploads[upload_id] = {"key": key, "upload_id": upload_id, "initiated": self.clock()}
        return upload_id

    def generate_presigned_part_url(self, key, upload_id, part_number, expires_in=None):
        return f"https://signed.example/part/{upload_id}/{part_number}"

    def complete_multipart_upload(self, key, upload_id, parts):
        if self.complete_error is not None:
            raise self.complete_error
        self.completed.append((key, upload_id, list(parts)))
        self.open_uploads.pop(upload_id, None)
        return self.object_url(key)

    def abort_multipart_upload(self, key, upload_id):
        if self.abort_error is not None:
            raise self.abort_error
        self.aborted.append(upload_id)
        self.open_uploads.pop(upload_id, None)

    def list_multipart_uploads(self):
        return [dict(upload) for upload in self.open_uploads.values()]

    def upload_clip(self, local_path, project_id, clip_id, format="mp4"):
        if self.upload_error is not None:
            raise self.upload_error
        self.uploaded.append({
            "local_path": local_path,
            "project_id": project_id,
            "clip_id": clip_id,
            "format": format,
            "size": os.path.getsize(local_path),
        })
        return self.object_url(f"clips/{project_id}/{clip_id}.{format}")


class FakeRunner:
    """
    Records encoder invocations and writes a dummy output file

    `failures` are raised one per call before any success; `fail_if(args)`
    may return an exception to raise for a specific command.
    """

    def __init__(self, failures=None, fail_if=None):
        self.calls = []
        self.failures = list(failures or [])
        self.fail_if = fail_if

    def run(self, args, timeout=None, on_progress=None):
        self.calls.append(list(args))
        if self.fail_if is not None:
            error = self.fail_if(args)
            if error is not None:
                raise error
        if self.failures:
            raise self.failures.pop(0)
        with open(args[-1], "wb") as output:
            output.write(b"\x00" * 2048)
        if on_progress is not None:
            on_progress(1.0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage(clock):
    return FakeStorage(clock)


@pytest.fixture
def session_store():
    return InMemoryUploadSessionStore()


@pytest.fixture
def session_service(session_store, storage, clock):
    return UploadSessionService(session_store, storage, ttl_seconds=86400, clock=clock)


@pytest.fixture
def plan_service(storage, session_service):
    return UploadPlanService(storage, session_service, chunked_threshold=100 * MB)


@pytest.fixture
def reconciler(session_store, storage, clock):
    return MultipartReconciler(session_store, storage, ttl_seconds=86400, clock=clock)


@pytest.fixture
def create_session(session_service, storage):
    """Factory opening a remote multipart upload plus its session"""

    def _create(owner_id="owner-1", total_chunks=3, chunk_size=5 * MB, file_size=None, expires_in=None):
        key = f"uploads/{owner_id}/videos/multipart/test.mp4"
        upload_id = storage.create_multipart_upload(key, "video/mp4")
        return session_service.create_session(CreateUploadSessionData(
            owner_id=owner_id,
            file_name="test.mp4",
            file_size=file_size or total_chunks * chunk_size,
            mime_type="video/mp4",
            file_category=FileCategory.VIDEO,
            total_chunks=total_chunks,
            chunk_size=chunk_size,
            backend_upload_id=upload_id,
            bucket=storage.bucket,
            key=key,
            expires_in=expires_in,
        ))

    return _create


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def retry_policy(sleeps):
    return RetryPolicy(max_retries=2, base_delay=2.0, max_delay=30.0, sleep=sleeps.append)


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return str(path)


@pytest.fixture
def extractor(runner, storage, work_dir, retry_policy):
    return VideoSegmentExtractor(runner, storage, work_dir=work_dir, retry_policy=retry_policy)


@pytest.fixture
def stitcher(extractor, runner, work_dir):
    return SegmentStitcher(extractor, runner, work_dir=work_dir)


@pytest.fixture
def clip_store():
    return InMemoryClipStore()


@pytest.fixture
def enqueued():
    return []


@pytest.fixture
def pipeline(stitcher, clip_store, work_dir, enqueued, clock):
    def enqueue(payload):
        enqueued.append(payload)
        return f"task-{len(enqueued)}"

    return ClipPipelineService(stitcher, clip_store, work_dir=work_dir, enqueue=enqueue, clock=clock)


@pytest.fixture
def client(plan_service, session_service, reconciler, pipeline):
    """Create a test client for FastAPI app with in-process services"""
    app = create_app(include_debug=True)
    app.dependency_overrides[get_upload_plan_service] = lambda: plan_service
    app.dependency_overrides[get_upload_session_service] = lambda: session_service
    app.dependency_overrides[get_multipart_reconciler] = lambda: reconciler
    app.dependency_overrides[get_clip_pipeline_service] = lambda: pipeline
    return TestClient(app)


@pytest.fixture
def sample_extraction_job():
    """Composite job as produced by the theme analysis step"""
    return {
        "clip_id": "clip-123",
        "project_id": "project-1",
        "owner_id": "owner-1",
        "source_locator": "s3://test-bucket/uploads/owner-1/videos/source.mp4",
        "segments": [
            {"start_time": "00:00:00,000", "end_time": "00:00:10,000", "purpose": "hook", "sequence_order": 1},
            {"start_time": "00:00:30,000", "end_time": "00:00:40,000", "purpose": "payoff", "sequence_order": 2},
        ],
        "quality": "low",
        "output_format": "mp4",
        "include_fades": False,
    }
