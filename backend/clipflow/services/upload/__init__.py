"""
Resumable upload package
Chunk sizing, upload plans, session lifecycle and multipart reconciliation
"""

from .chunking import calculate_chunk_plan
from .plan import UploadPlanService, MAX_FILE_SIZES, ALLOWED_MIME_TYPES
from .reconciler import MultipartReconciler, ReconciliationReport
from .sessions import UploadSessionService
from .store import (
    UploadSessionStore,
    InMemoryUploadSessionStore,
    RedisUploadSessionStore,
)

from clipflow.config.base import settings
from clipflow.services.redis_service import RedisService
from clipflow.services.s3_service import S3Service
from clipflow.utils.logger import get_logger

logger = get_logger(__name__)

# Global service instances
_s3_service = None
_redis_service = None
_session_store = None
_session_service = None
_plan_service = None
_reconciler = None


def get_s3_service() -> S3Service:
    global _s3_service
    if _s3_service is None:
        _s3_service = S3Service()
    return _s3_service


def get_redis_service() -> RedisService:
    global _redis_service
    if _redis_service is None:
        _redis_service = RedisService()
    return _redis_service


def get_session_store() -> UploadSessionStore:
    """Store selected by SESSION_STORE (memory | redis)"""
    global _session_store
    if _session_store is None:
        if settings.SESSION_STORE == "redis":
            _session_store = RedisUploadSessionStore(get_redis_service())
        else:
            _session_store = InMemoryUploadSessionStore()
        logger.info(f"Upload session store: {type(_session_store).__name__}")
    return _session_store


def get_upload_session_service() -> UploadSessionService:
    global _session_service
    if _session_service is None:
        _session_service = UploadSessionService(get_session_store(), get_s3_service())
    return _session_service


def get_upload_plan_service() -> UploadPlanService:
    global _plan_service
    if _plan_service is None:
        _plan_service = UploadPlanService(get_s3_service(), get_upload_session_service())
    return _plan_service


def get_multipart_reconciler() -> MultipartReconciler:
    global _reconciler
    if _reconciler is None:
        _reconciler = MultipartReconciler(get_session_store(), get_s3_service())
    return _reconciler


__all__ = [
    'calculate_chunk_plan',
    'UploadPlanService',
    'MAX_FILE_SIZES',
    'ALLOWED_MIME_TYPES',
    'MultipartReconciler',
    'ReconciliationReport',
    'UploadSessionService',
    'UploadSessionStore',
    'InMemoryUploadSessionStore',
    'RedisUploadSessionStore',
    'get_s3_service',
    'get_redis_service',
    'get_session_store',
    'get_upload_session_service',
    'get_upload_plan_service',
    'get_multipart_reconciler',
]
