"""
Aborts remote multipart uploads that no live session will ever complete
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from clipflow.config.base import settings
from clipflow.models.upload import UploadSessionStatus
from clipflow.services.upload.sessions import utcnow
from clipflow.services.upload.store import UploadSessionStore
from clipflow.utils.errors import UpstreamStorageError
from clipflow.utils.logger import get_logger

logger = get_logger(__name__)

ABANDONED_STATES = (
    UploadSessionStatus.ABORTED,
    UploadSessionStatus.EXPIRED,
    UploadSessionStatus.FAILED,
)


@dataclass
class ReconciliationReport:
    inspected: int = 0
    aborted: int = 0
    failed: int = 0
    aborted_upload_ids: List[str] = field(default_factory=list)


class MultipartReconciler:
    def __init__(
        self,
        store: UploadSessionStore,
        storage,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.storage = storage
        self.ttl_seconds = ttl_seconds or settings.UPLOAD_SESSION_TTL
        self.clock = clock

    def _should_abort(self, upload: dict, now: datetime) -> Optional[str]:
        session = self.store.find_by_upload_id(upload["upload_id"])

        if session is None:
            initiated = upload.get("initiated")
            if initiated is None:
                return None
            if initiated.tzinfo is None:
                initiated = initiated.replace(tzinfo=timezone.utc)
            # A plan may open the remote upload a moment before its session is stored
            if now - initiated > timedelta(seconds=self.ttl_seconds):
                return "no session"
            return None

        if session.status in ABANDONED_STATES:
            return f"session {session.session_id} is {session.status.value}"
        if session.status != UploadSessionStatus.COMPLETED and session.expires_at < now:
            return f"session {session.session_id} is past expiry"
        return None

    def reconcile(self) -> ReconciliationReport:
        now = self.clock()
        report = ReconciliationReport()

        for upload in self.storage.list_multipart_uploads():
            report.inspected += 1
            reason = self._should_abort(upload, now)
            if reason is None:
                continue

            try:
                self.storage.abort_multipart_upload(upload["key"], upload["upload_id"])
            except UpstreamStorageError as e:
                report.failed += 1
                logger.warning(f"Could not abort multipart upload {upload['upload_id']} ({reason}): {e.message}")
                continue

            report.aborted += 1
            report.aborted_upload_ids.append(upload["upload_id"])
            logger.info(f"Aborted orphaned multipart upload {upload['upload_id']} for {upload['key']}: {reason}")

        logger.info(f"Reconciled multipart uploads: {report.inspected} inspected, "
                    f"{report.aborted} aborted, {report.failed} failed")
        return report
