"""
Error taxonomy shared by the upload and clip pipelines
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class ClipflowError(Exception):
    """Base exception carrying a stable error code and structured details"""

    error_code = "CLIPFLOW_ERROR"
    status_code = 500

    def __init__(self, message: str, error_code: Optional[str] = None, details: Dict[str, Any] = None):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(ClipflowError):
    """Malformed request; never retried"""

    error_code = "VALIDATION_ERROR"
    status_code = 400


class SessionStateError(ValidationError):
    """Mutation attempted on an upload session in a terminal state"""

    error_code = "INVALID_SESSION_STATE"
    status_code = 409


class NotFoundError(ClipflowError):
    error_code = "NOT_FOUND"
    status_code = 404


class ExpiredSessionError(ClipflowError):
    """Upload session is past its TTL; the client should restart the upload"""

    error_code = "SESSION_EXPIRED"
    status_code = 410


class IncompleteUploadError(ClipflowError):
    error_code = "INCOMPLETE_UPLOAD"
    status_code = 409


class UpstreamStorageError(ClipflowError):
    """Object storage call failed (network, permission, missing upload)"""

    error_code = "UPSTREAM_STORAGE_ERROR"
    status_code = 502


class EncodingFailure(ClipflowError):
    """External encoder failed; `retryable` marks resource-pressure failures"""

    error_code = "ENCODING_FAILED"

    def __init__(self, message: str, retryable: bool = False, error_code: Optional[str] = None,
                 details: Dict[str, Any] = None):
        super().__init__(message, error_code, details)
        self.retryable = retryable


class StitchingFailure(ClipflowError):
    """Both concatenation strategies failed"""

    error_code = "STITCHING_FAILED"
