"""
Upload plan and resumable upload session endpoints
"""

from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Query

from clipflow.models.upload import (
    AbortRequest,
    ChunkReport,
    MultipartUploadPlan,
    PartUploadUrl,
    SingleUploadPlan,
    UploadConfig,
    UploadProgress,
    UploadSession,
    UploadSessionStatus,
)
from clipflow.services.upload import (
    UploadPlanService,
    UploadSessionService,
    get_upload_plan_service,
    get_upload_session_service,
)
from clipflow.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/uploads", tags=["Uploads"])


@router.post("/plan", response_model=Union[MultipartUploadPlan, SingleUploadPlan])
def create_upload_plan(
    config: UploadConfig,
    plans: UploadPlanService = Depends(get_upload_plan_service),
):
    """Single presigned PUT below the chunking threshold, multipart session above it"""
    return plans.issue(config)


@router.get("/sessions", response_model=List[UploadSession])
def list_upload_sessions(
    owner_id: str,
    status: Optional[UploadSessionStatus] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    sessions: UploadSessionService = Depends(get_upload_session_service),
):
    return sessions.list_sessions(owner_id, status, limit, offset)


@router.get("/sessions/{session_id}", response_model=UploadProgress)
def get_upload_progress(
    session_id: str,
    sessions: UploadSessionService = Depends(get_upload_session_service),
):
    return sessions.get_progress(session_id)


@router.get("/sessions/{session_id}/chunks/{chunk_number}/url", response_model=PartUploadUrl)
def reissue_part_url(
    session_id: str,
    chunk_number: int,
    plans: UploadPlanService = Depends(get_upload_plan_service),
):
    """Fresh part URL for resuming after the original one expired"""
    return plans.issue_part_url(session_id, chunk_number)


@router.put("/sessions/{session_id}/chunks/{chunk_number}", response_model=UploadProgress)
def report_chunk(
    session_id: str,
    chunk_number: int,
    report: ChunkReport,
    sessions: UploadSessionService = Depends(get_upload_session_service),
):
    sessions.report_chunk(session_id, chunk_number, report.checksum_tag, report.size)
    return sessions.get_progress(session_id)


@router.post("/sessions/{session_id}/complete", response_model=UploadSession)
def complete_upload(
    session_id: str,
    sessions: UploadSessionService = Depends(get_upload_session_service),
):
    return sessions.finalize(session_id)


@router.post("/sessions/{session_id}/abort", response_model=UploadSession)
def abort_upload(
    session_id: str,
    request: Optional[AbortRequest] = None,
    sessions: UploadSessionService = Depends(get_upload_session_service),
):
    return sessions.abort_upload(session_id, request.reason if request else None)
