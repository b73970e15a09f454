"""
Clip pipeline orchestration
Runs one extraction job end to end and keeps its clip record current.
"""

import os
import shutil
import tempfile
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from clipflow.config.base import settings
from clipflow.models.clip import ClipRecord, ClipStatus, ClipSubmission, ExtractionJob
from clipflow.services.clip_store import InMemoryClipStore, RedisClipStore
from clipflow.services.video_processing import SegmentStitcher, get_segment_stitcher
from clipflow.services.video_processing.core import validate_time_range
from clipflow.utils.errors import ClipflowError, NotFoundError, ValidationError
from clipflow.utils.logger import get_logger, PerformanceLogger

logger = get_logger(__name__)

# Takes the JSON-ready job payload, returns the queued task id
Enqueue = Callable[[Dict[str, Any]], Optional[str]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClipPipelineService:
    def __init__(
        self,
        stitcher: SegmentStitcher,
        clip_store,
        work_dir: Optional[str] = None,
        enqueue: Optional[Enqueue] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.stitcher = stitcher
        self.clip_store = clip_store
        self.work_dir = work_dir or settings.CLIP_WORK_DIR
        self.enqueue = enqueue
        self.clock = clock

    @staticmethod
    def validate(job: ExtractionJob) -> None:
        if not job.segments:
            raise ValidationError("Extraction job has no segments", details={"clip_id": job.clip_id})
        for segment in job.segments:
            validate_time_range(segment.start_time, segment.end_time)

    def _new_record(self, job: ExtractionJob) -> ClipRecord:
        return ClipRecord(
            clip_id=job.clip_id,
            project_id=job.project_id,
            owner_id=job.owner_id,
            status=ClipStatus.PENDING,
            is_composite=job.is_composite,
            segment_count=len(job.segments),
            created_at=self.clock(),
        )

    def get_clip(self, clip_id: str) -> ClipRecord:
        record = self.clip_store.get(clip_id)
        if record is None:
            raise NotFoundError(f"Clip not found: {clip_id}", details={"clip_id": clip_id})
        return record

    def submit(self, job: ExtractionJob) -> ClipSubmission:
        """
        Record a PENDING clip and hand the job to the worker queue

        Without a queue the caller runs the job itself (see run_in_process).
        """
        self.validate(job)
        self.clip_store.save(self._new_record(job))

        task_id = None
        if self.enqueue is not None:
            task_id = self.enqueue(job.model_dump(mode="json"))
            logger.info(f"Queued clip {job.clip_id} ({len(job.segments)} segments), task: {task_id}")
        else:
            logger.info(f"Accepted clip {job.clip_id} ({len(job.segments)} segments) for in-process run")

        return ClipSubmission(
            clip_id=job.clip_id,
            status=ClipStatus.PENDING,
            task_id=task_id,
            segments=job.segments,
        )

    def run(self, job: ExtractionJob) -> ClipRecord:
        """
        Produce the clip for one job

        Raises:
            ClipflowError: any stage failure, after the clip is marked FAILED
        """
        if self.clip_store.get(job.clip_id) is None:
            self.clip_store.save(self._new_record(job))

        job_dir = None
        perf = PerformanceLogger("clip_pipeline")
        perf.start(f"clip {job.clip_id}")
        try:
            self.validate(job)
            self.clip_store.update(
                job.clip_id,
                status=ClipStatus.PROCESSING,
                processing_started_at=self.clock(),
                processing_error=None,
                is_composite=job.is_composite,
                segment_count=len(job.segments),
            )
            logger.info(f"Processing clip {job.clip_id}: {len(job.segments)} segments, "
                        f"quality={job.quality.value}, format={job.output_format.value}")

            os.makedirs(self.work_dir, exist_ok=True)
            job_dir = tempfile.mkdtemp(prefix=f"job_{job.clip_id}_", dir=self.work_dir)

            if job.is_composite:
                result = self.stitcher.stitch(
                    job.source_locator,
                    job.segments,
                    job.output_format,
                    job.quality,
                    job.include_fades,
                    job.project_id,
                    job.clip_id,
                    work_dir=job_dir,
                )
                locator, file_size, duration = result.output_locator, result.file_size, result.total_duration
            else:
                segment = job.segments[0]
                result = self.stitcher.extractor.extract(
                    job.source_locator,
                    segment.start_time,
                    segment.end_time,
                    job.quality,
                    job.output_format,
                    job.include_fades,
                    job.project_id,
                    job.clip_id,
                    work_dir=job_dir,
                )
                locator, file_size, duration = result.output_locator, result.file_size, result.duration
        except Exception as e:
            message = e.message if isinstance(e, ClipflowError) else str(e)
            self.clip_store.update(
                job.clip_id,
                status=ClipStatus.FAILED,
                processing_error=message,
                processing_completed_at=self.clock(),
            )
            logger.error(f"Clip {job.clip_id} failed: {message}")
            raise
        finally:
            if job_dir is not None:
                shutil.rmtree(job_dir, ignore_errors=True)

        record = self.clip_store.update(
            job.clip_id,
            status=ClipStatus.COMPLETED,
            video_url=locator,
            file_size=file_size,
            duration=duration,
            processing_completed_at=self.clock(),
        )
        perf.end(f"{file_size} bytes, {duration:.2f}s")
        perf.metric("clip_output_size", file_size, "bytes")
        logger.info(f"Clip {job.clip_id} completed: {locator}")
        return record

    @property
    def runs_in_process(self) -> bool:
        return self.enqueue is None

    def run_in_process(self, job: ExtractionJob) -> Optional[ClipRecord]:
        """Background-task entry point; a stage failure is already on the clip record"""
        try:
            return self.run(job)
        except ClipflowError as e:
            logger.warning(f"In-process clip {job.clip_id} ended as FAILED ({e.error_code})")
            return None


# Global service instances
_clip_store = None
_pipeline_service = None


def get_clip_store():
    global _clip_store
    if _clip_store is None:
        if settings.SESSION_STORE == "redis":
            from clipflow.services.upload import get_redis_service
            _clip_store = RedisClipStore(get_redis_service())
        else:
            _clip_store = InMemoryClipStore()
    return _clip_store


def _enqueue_clip_task(payload: Dict[str, Any]) -> str:
    from worker.worker import clip_task_time_limits, process_clip_task
    soft_limit, hard_limit = clip_task_time_limits(len(payload["segments"]))
    return process_clip_task.apply_async(
        args=[payload], soft_time_limit=soft_limit, time_limit=hard_limit
    ).id


def get_clip_pipeline_service() -> ClipPipelineService:
    """
    Pipeline wired for the configured store

    The Celery worker only sees clips and sessions through Redis, so the memory
    store runs jobs inside the API process instead of queueing them.
    """
    global _pipeline_service
    if _pipeline_service is None:
        queued = settings.SESSION_STORE == "redis"
        _pipeline_service = ClipPipelineService(
            get_segment_stitcher(),
            get_clip_store(),
            enqueue=_enqueue_clip_task if queued else None,
        )
        if not queued:
            logger.warning("SESSION_STORE=memory: clip jobs run in the API process, not the worker")
    return _pipeline_service
