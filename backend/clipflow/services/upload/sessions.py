"""
Upload session state machine

    INITIALIZING -> UPLOADING -> COMPLETED | ABORTED | FAILED
    INITIALIZING | UPLOADING -> EXPIRED once now > expires_at

Expiry is cooperative: sessions are flipped when touched or by sweep_expired().
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from clipflow.config.base import settings
from clipflow.models.upload import (
    ChunkInfo,
    CreateUploadSessionData,
    OPEN_STATES,
    UploadProgress,
    UploadSession,
    UploadSessionStatus,
)
from clipflow.services.upload.store import UploadSessionStore
from clipflow.utils.errors import (
    ExpiredSessionError,
    IncompleteUploadError,
    NotFoundError,
    SessionStateError,
    UpstreamStorageError,
    ValidationError,
)
from clipflow.utils.logger import get_logger

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadSessionService:
    """Orchestrates session bookkeeping and the remote multipart lifecycle"""

    def __init__(
        self,
        store: UploadSessionStore,
        storage=None,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.storage = storage
        self.ttl_seconds = ttl_seconds or settings.UPLOAD_SESSION_TTL
        self.clock = clock

    def create_session(self, data: CreateUploadSessionData) -> UploadSession:
        now = self.clock()
        session = UploadSession(
            session_id=f"session_{uuid.uuid4()}",
            owner_id=data.owner_id,
            file_name=data.file_name,
            file_size=data.file_size,
            mime_type=data.mime_type,
            file_category=data.file_category,
            total_chunks=data.total_chunks,
            chunk_size=data.chunk_size,
            backend_upload_id=data.backend_upload_id,
            bucket=data.bucket,
            key=data.key,
            chunks=[ChunkInfo(chunk_number=n) for n in range(1, data.total_chunks + 1)],
            status=UploadSessionStatus.INITIALIZING,
            expires_at=now + timedelta(seconds=data.expires_in or self.ttl_seconds),
            created_at=now,
            updated_at=now,
            metadata=data.metadata,
        )
        self.store.create(session)
        logger.info(f"Created upload session: {session.session_id} for owner: {data.owner_id} "
                    f"({data.total_chunks} chunks of {data.chunk_size} bytes)")
        return session

    def get_session(self, session_id: str) -> UploadSession:
        session = self.store.get(session_id)
        if session is None:
            raise NotFoundError(f"Upload session not found: {session_id}", details={"session_id": session_id})

        if session.status == UploadSessionStatus.EXPIRED:
            raise ExpiredSessionError(f"Upload session has expired: {session_id}",
                                      details={"session_id": session_id})

        if session.expires_at < self.clock() and session.status in OPEN_STATES:
            self.store.transition(session_id, UploadSessionStatus.EXPIRED, OPEN_STATES)
            logger.info(f"Marked session as expired: {session_id}")
            raise ExpiredSessionError(f"Upload session has expired: {session_id}",
                                      details={"session_id": session_id,
                                               "expires_at": session.expires_at.isoformat()})

        return session

    def get_open_session(self, session_id: str) -> UploadSession:
        session = self.get_session(session_id)
        if session.status not in OPEN_STATES:
            raise SessionStateError(
                f"Upload session {session_id} is {session.status.value}",
                details={"session_id": session_id, "status": session.status.value},
            )
        return session

    @staticmethod
    def _require_all_chunks(session: UploadSession) -> None:
        if session.all_chunks_completed():
            return
        missing = [c.chunk_number for c in session.chunks if not (c.is_completed and c.checksum_tag)]
        raise IncompleteUploadError(
            f"Upload session {session.session_id} is missing {len(missing)} of {session.total_chunks} chunks",
            details={"session_id": session.session_id, "missing_chunks": missing[:50]},
        )

    def report_chunk(self, session_id: str, chunk_number: int, checksum_tag: str, size: int) -> UploadSession:
        """Record one uploaded part; re-reporting a part overwrites it"""
        session = self.get_open_session(session_id)

        if chunk_number < 1 or chunk_number > session.total_chunks:
            raise ValidationError(
                f"Invalid chunk number: {chunk_number}. Must be between 1 and {session.total_chunks}",
                details={"session_id": session_id, "chunk_number": chunk_number},
            )
        if size < 0:
            raise ValidationError(f"Invalid chunk size: {size}", details={"chunk_number": chunk_number})

        written = self.store.put_chunk(session_id, ChunkInfo(
            chunk_number=chunk_number,
            checksum_tag=checksum_tag,
            size=size,
            uploaded_at=self.clock(),
            is_completed=True,
        ))
        if not written:
            # Aborted, expired or failed after the status check above
            self.get_open_session(session_id)
            raise SessionStateError(f"Upload session {session_id} closed before chunk {chunk_number} was recorded",
                                    details={"session_id": session_id, "chunk_number": chunk_number})
        self.store.transition(session_id, UploadSessionStatus.UPLOADING, [UploadSessionStatus.INITIALIZING])

        updated = self.store.get(session_id)
        logger.info(f"Updated chunk {chunk_number} for session {session_id}. "
                    f"Progress: {len(updated.completed_chunks())}/{updated.total_chunks}")
        return updated

    def complete(self, session_id: str, final_locator: str) -> UploadSession:
        """Mark the session COMPLETED; local bookkeeping only"""
        session = self.get_open_session(session_id)
        self._require_all_chunks(session)
        return self._mark_completed(session_id, final_locator)

    def _mark_completed(self, session_id: str, final_locator: str) -> UploadSession:
        updated = self.store.transition(
            session_id,
            UploadSessionStatus.COMPLETED,
            OPEN_STATES,
            final_locator=final_locator,
            completed_at=self.clock(),
        )
        if updated is None:
            raise SessionStateError(f"Upload session {session_id} changed state during completion",
                                    details={"session_id": session_id})
        logger.info(f"Completed upload session: {session_id}")
        return updated

    def finalize(self, session_id: str) -> UploadSession:
        """Complete the remote multipart upload, then the local session"""
        session = self.get_open_session(session_id)
        self._require_all_chunks(session)

        try:
            final_locator = self.storage.complete_multipart_upload(
                session.key, session.backend_upload_id, self.completed_parts(session)
            )
        except UpstreamStorageError as e:
            if e.details.get("code") == "NoSuchUpload":
                self.fail(session_id, f"Remote multipart upload no longer exists: {e.message}")
            raise

        # No expiry check past this point: the remote object already exists
        return self._mark_completed(session_id, final_locator)

    def abort(self, session_id: str, reason: Optional[str] = None) -> UploadSession:
        """Mark ABORTED locally; the remote multipart upload is not touched"""
        self.get_session(session_id)

        reason = reason or "Upload aborted by user"
        updated = self.store.transition(session_id, UploadSessionStatus.ABORTED, OPEN_STATES,
                                        error_message=reason)
        if updated is None:
            current = self.store.get(session_id)
            raise SessionStateError(
                f"Upload session {session_id} is {current.status.value}",
                details={"session_id": session_id, "status": current.status.value},
            )
        logger.info(f"Aborted upload session: {session_id}. Reason: {reason}")
        return updated

    def abort_upload(self, session_id: str, reason: Optional[str] = None) -> UploadSession:
        """
        Abort locally, then ask the backend to drop its parts

        A remote failure leaves the session ABORTED with the multipart upload
        still open; the reconciliation sweep removes it later.
        """
        session = self.abort(session_id, reason)
        try:
            self.storage.abort_multipart_upload(session.key, session.backend_upload_id)
        except UpstreamStorageError:
            logger.error(f"Remote abort failed for session {session_id}; left for reconciliation")
            raise
        return session

    def fail(self, session_id: str, message: str) -> Optional[UploadSession]:
        updated = self.store.transition(session_id, UploadSessionStatus.FAILED, OPEN_STATES,
                                        error_message=message)
        if updated is not None:
            logger.error(f"Upload session {session_id} failed: {message}")
        return updated

    def get_progress(self, session_id: str) -> UploadProgress:
        session = self.get_session(session_id)
        completed = session.completed_chunks()
        uploaded_size = sum(chunk.size for chunk in completed)

        return UploadProgress(
            session_id=session.session_id,
            status=session.status,
            total_chunks=session.total_chunks,
            completed_chunks=len(completed),
            progress_percentage=round(uploaded_size / session.file_size * 100),
            total_file_size=session.file_size,
            uploaded_size=uploaded_size,
            chunks=session.chunks,
            final_locator=session.final_locator,
            error_message=session.error_message,
            created_at=session.created_at,
            completed_at=session.completed_at,
            expires_at=session.expires_at,
        )

    def list_sessions(self, owner_id: str, status: Optional[UploadSessionStatus] = None,
                      limit: int = 20, offset: int = 0) -> List[UploadSession]:
        return self.store.list_by_owner(owner_id, status, limit, offset)

    @staticmethod
    def completed_parts(session: UploadSession) -> List[Tuple[int, str]]:
        """(part_number, checksum_tag) pairs ordered by part number"""
        return sorted(
            (chunk.chunk_number, chunk.checksum_tag)
            for chunk in session.chunks
            if chunk.is_completed and chunk.checksum_tag
        )

    def sweep_expired(self) -> int:
        """Flip every open session past its expiry to EXPIRED"""
        count = 0
        for session_id in self.store.expired_ids(self.clock()):
            if self.store.transition(session_id, UploadSessionStatus.EXPIRED, OPEN_STATES) is not None:
                count += 1

        logger.info(f"Marked {count} sessions as expired")
        return count

    def purge_old_sessions(self, retention_days: Optional[int] = None) -> int:
        """Delete terminal sessions that expired more than retention_days ago"""
        retention_days = retention_days if retention_days is not None else settings.UPLOAD_SESSION_RETENTION_DAYS
        cutoff = self.clock() - timedelta(days=retention_days)

        count = 0
        for session_id in self.store.expired_ids(cutoff):
            session = self.store.get(session_id)
            if session is not None and session.status.is_terminal and self.store.delete(session_id):
                count += 1

        logger.info(f"Deleted {count} old upload sessions")
        return count
