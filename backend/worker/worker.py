"""
Celery worker for clip extraction and upload session housekeeping
"""

import math
from datetime import datetime, timezone
from typing import Dict, Tuple

from celery import Celery

from clipflow.config.base import settings
from clipflow.models.clip import ExtractionJob
from clipflow.services.clip_pipeline import get_clip_pipeline_service
from clipflow.services.upload import (
    get_multipart_reconciler,
    get_redis_service,
    get_s3_service,
    get_upload_session_service,
)
from clipflow.services.video_processing import backoff_delay
from clipflow.utils.logger import get_logger

logger = get_logger(__name__)

# Room for the upload, cleanup and bookkeeping after the last encoder run
CLIP_TASK_OVERHEAD = 300
# Between the soft limit (pipeline marks the clip FAILED, cleans up) and the hard kill
HARD_LIMIT_GRACE = 120


def clip_task_time_limits(segment_count: int) -> Tuple[int, int]:
    """
    Soft and hard Celery time limits for a clip job

    Every cut may use all of its encoder attempts plus backoff; a composite adds
    both concatenation strategies, each one encoder run.
    """
    attempts = settings.ENCODER_MAX_RETRIES + 1
    backoff = sum(
        backoff_delay(n, settings.ENCODER_RETRY_BASE_DELAY, settings.ENCODER_RETRY_MAX_DELAY)
        for n in range(1, attempts)
    )
    per_segment = attempts * settings.ENCODER_TIMEOUT + backoff
    concat = 2 * settings.ENCODER_TIMEOUT if segment_count > 1 else 0
    soft = int(math.ceil(max(1, segment_count) * per_segment + concat + CLIP_TASK_OVERHEAD))
    return soft, soft + HARD_LIMIT_GRACE


# Create Celery app
celery_app = Celery(
    "clipflow-worker",
    broker=settings.BROKER_URL,
    backend=settings.RESULT_BACKEND
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # Default for a one-segment job; process_clip_task gets per-job limits at enqueue time
    task_soft_time_limit=clip_task_time_limits(1)[0],
    task_time_limit=clip_task_time_limits(1)[1],
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=10,
)

if settings.SESSION_STORE != "redis":
    logger.warning(f"SESSION_STORE={settings.SESSION_STORE} is private to each process; "
                   "housekeeping here will not see the API's sessions")


@celery_app.task(bind=True)
def process_clip_task(self, job: Dict) -> Dict:
    """
    Background task for one extraction job

    Args:
        job: ExtractionJob payload as produced by ClipPipelineService.submit

    Returns:
        Dict of the completed clip record
    """
    extraction_job = ExtractionJob.model_validate(job)
    logger.info(f"Starting clip task {self.request.id} for clip {extraction_job.clip_id}")

    record = get_clip_pipeline_service().run(extraction_job)
    return record.model_dump(mode="json")


@celery_app.task
def sweep_expired_sessions_task() -> Dict:
    count = get_upload_session_service().sweep_expired()
    return {"expired": count}


@celery_app.task
def reconcile_multipart_uploads_task() -> Dict:
    report = get_multipart_reconciler().reconcile()
    return {
        "inspected": report.inspected,
        "aborted": report.aborted,
        "failed": report.failed,
    }


@celery_app.task
def purge_old_sessions_task() -> Dict:
    count = get_upload_session_service().purge_old_sessions()
    return {"deleted": count}


@celery_app.task
def health_check_task() -> Dict:
    """Health check task for worker monitoring"""
    return {
        "status": "healthy",
        "worker": "clipflow-worker",
        "storage_enabled": get_s3_service().enabled,
        "redis_available": get_redis_service().is_available() if settings.SESSION_STORE == "redis" else None,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# Periodic housekeeping
celery_app.conf.beat_schedule = {
    "sweep-expired-upload-sessions": {
        "task": "worker.worker.sweep_expired_sessions_task",
        "schedule": float(settings.SWEEP_INTERVAL),
    },
    "reconcile-multipart-uploads": {
        "task": "worker.worker.reconcile_multipart_uploads_task",
        "schedule": float(settings.RECONCILE_INTERVAL),
    },
    "purge-old-upload-sessions": {
        "task": "worker.worker.purge_old_sessions_task",
        "schedule": 86400.0,
    },
}

# Task routing
celery_app.conf.task_routes = {
    "worker.worker.process_clip_task": {"queue": "clips"},
    "worker.worker.sweep_expired_sessions_task": {"queue": "maintenance"},
    "worker.worker.reconcile_multipart_uploads_task": {"queue": "maintenance"},
    "worker.worker.purge_old_sessions_task": {"queue": "maintenance"},
    "worker.worker.health_check_task": {"queue": "health"},
}

if __name__ == "__main__":
    celery_app.start()
