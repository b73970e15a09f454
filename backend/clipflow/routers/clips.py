"""
Clip extraction endpoints
"""

from fastapi import APIRouter, BackgroundTasks, Depends

from clipflow.models.clip import ClipRecord, ClipSubmission, ExtractionJob
from clipflow.services.clip_pipeline import ClipPipelineService, get_clip_pipeline_service

router = APIRouter(prefix="/clips", tags=["Clips"])


@router.post("", response_model=ClipSubmission, status_code=202)
def submit_clip(
    job: ExtractionJob,
    background_tasks: BackgroundTasks,
    pipeline: ClipPipelineService = Depends(get_clip_pipeline_service),
):
    """Queue an extraction job; poll GET /clips/{clip_id} for the result"""
    submission = pipeline.submit(job)
    if pipeline.runs_in_process:
        background_tasks.add_task(pipeline.run_in_process, job)
    return submission


@router.get("/{clip_id}", response_model=ClipRecord)
def get_clip(
    clip_id: str,
    pipeline: ClipPipelineService = Depends(get_clip_pipeline_service),
):
    return pipeline.get_clip(clip_id)
