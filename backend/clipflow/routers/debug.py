"""
Debug endpoints for development and testing
These endpoints should NOT be included in production deployments
"""

from fastapi import APIRouter, Depends

from clipflow.services.upload import (
    MultipartReconciler,
    UploadSessionService,
    get_multipart_reconciler,
    get_upload_session_service,
)
from clipflow.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/debug", tags=["Debug"])


@router.post("/sweep-expired")
def sweep_expired_sessions(sessions: UploadSessionService = Depends(get_upload_session_service)):
    """Run the upload session expiry sweep now instead of waiting for beat"""
    count = sessions.sweep_expired()
    logger.info(f"Manual expiry sweep marked {count} sessions")
    return {"expired": count}


@router.post("/reconcile")
def reconcile_multipart_uploads(reconciler: MultipartReconciler = Depends(get_multipart_reconciler)):
    report = reconciler.reconcile()
    return {
        "inspected": report.inspected,
        "aborted": report.aborted,
        "failed": report.failed,
        "aborted_upload_ids": report.aborted_upload_ids,
    }
