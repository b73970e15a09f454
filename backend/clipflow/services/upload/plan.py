"""
Upload plans: single presigned PUT for small files, multipart session for large ones
"""

import os
import re
import time
import uuid
from typing import Dict, List, Optional, Union

from clipflow.config.base import settings
from clipflow.models.upload import (
    CreateUploadSessionData,
    FileCategory,
    MultipartUploadPlan,
    PartUploadUrl,
    SingleUploadPlan,
    UploadConfig,
)
from clipflow.services.upload.chunking import calculate_chunk_plan
from clipflow.services.upload.sessions import UploadSessionService
from clipflow.utils.errors import ValidationError
from clipflow.utils.logger import get_logger

logger = get_logger(__name__)

GB = 1024 * 1024 * 1024
MB = 1024 * 1024

MAX_FILE_SIZES: Dict[FileCategory, int] = {
    FileCategory.VIDEO: 20 * GB,
    FileCategory.AUDIO: 500 * MB,
    FileCategory.IMAGE: 50 * MB,
    FileCategory.DOCUMENT: 100 * MB,
    FileCategory.OTHER: 100 * MB,
}

# An empty list allows any MIME type
ALLOWED_MIME_TYPES: Dict[FileCategory, List[str]] = {
    FileCategory.VIDEO: [
        'video/mp4',
        'video/quicktime',
        'video/x-msvideo',
        'video/x-matroska',
        'video/x-ms-wmv',
        'video/webm',
    ],
    FileCategory.AUDIO: [
        'audio/mpeg',
        'audio/wav',
        'audio/mp3',
        'audio/mp4',
        'audio/x-m4a',
    ],
    FileCategory.IMAGE: [
        'image/jpeg',
        'image/png',
        'image/gif',
        'image/webp',
        'image/svg+xml',
    ],
    FileCategory.DOCUMENT: [
        'application/pdf',
        'text/plain',
        'application/msword',
        'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    ],
    FileCategory.OTHER: [],
}

UploadPlan = Union[SingleUploadPlan, MultipartUploadPlan]


def format_file_size(size: int) -> str:
    for unit in ("Bytes", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{round(size, 2)} {unit}"
        size = size / 1024
    return f"{size} GB"


def generate_file_id(owner_id: str, file_name: str) -> str:
    clean_name = re.sub(r"[^a-zA-Z0-9.-]", "_", file_name)
    return f"{owner_id}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}_{clean_name}"


class UploadPlanService:
    """Decides how a client uploads a file and issues the presigned URLs for it"""

    def __init__(self, storage, sessions: UploadSessionService, chunked_threshold: Optional[int] = None):
        self.storage = storage
        self.sessions = sessions
        self.chunked_threshold = chunked_threshold or settings.CHUNKED_UPLOAD_THRESHOLD

    def validate(self, config: UploadConfig) -> None:
        if config.file_size <= 0:
            raise ValidationError("File size must be greater than zero", details={"file_size": config.file_size})

        max_size = MAX_FILE_SIZES.get(config.file_category, MAX_FILE_SIZES[FileCategory.OTHER])
        if config.file_size > max_size:
            raise ValidationError(
                f"File size {format_file_size(config.file_size)} exceeds maximum allowed size "
                f"{format_file_size(max_size)} for {config.file_category.value} files",
                details={"file_size": config.file_size, "max_file_size": max_size},
            )

        allowed = ALLOWED_MIME_TYPES.get(config.file_category) or []
        if allowed and config.mime_type not in allowed:
            raise ValidationError(
                f"MIME type {config.mime_type} is not allowed for {config.file_category.value} files",
                details={"mime_type": config.mime_type, "allowed": allowed},
            )

    def use_multipart(self, config: UploadConfig) -> bool:
        if config.chunked is not None:
            return config.chunked
        return config.file_size > self.chunked_threshold

    def issue(self, config: UploadConfig) -> UploadPlan:
        self.validate(config)
        if self.use_multipart(config):
            return self._issue_multipart(config)
        return self._issue_single(config)

    def _issue_single(self, config: UploadConfig) -> SingleUploadPlan:
        file_id = config.file_id or generate_file_id(config.owner_id, config.file_name)
        key = f"uploads/{config.owner_id}/{config.file_category.value}s/{file_id}"
        expires_in = config.expires_in or self.storage.url_expires

        upload_url = self.storage.generate_presigned_upload_url(key, config.mime_type, config.file_size, expires_in)
        read_url = self.storage.generate_presigned_url(key, expires_in)

        logger.info(f"Issued single upload plan for {key} ({format_file_size(config.file_size)})")
        return SingleUploadPlan(
            file_id=file_id,
            key=key,
            upload_url=upload_url,
            read_url=read_url,
            file_url=self.storage.object_url(key),
            headers={
                'Content-Type': config.mime_type,
                'Content-Length': str(config.file_size),
            },
            expires_in=expires_in,
            max_file_size=config.file_size,
        )

    def _issue_multipart(self, config: UploadConfig) -> MultipartUploadPlan:
        chunk_size, total_chunks = calculate_chunk_plan(config.file_size, config.chunk_size)
        extension = os.path.splitext(config.file_name)[1].lower()
        key = f"uploads/{config.owner_id}/{config.file_category.value}s/multipart/{uuid.uuid4()}{extension}"
        expires_in = config.expires_in or self.storage.url_expires

        # Opens a remote multipart upload even if the client never sends a byte;
        # the reconciliation sweep aborts it if no session ever completes.
        upload_id = self.storage.create_multipart_upload(
            key, config.mime_type, {"owner_id": config.owner_id, "original_filename": config.file_name}
        )

        session = self.sessions.create_session(CreateUploadSessionData(
            owner_id=config.owner_id,
            file_name=config.file_name,
            file_size=config.file_size,
            mime_type=config.mime_type,
            file_category=config.file_category,
            total_chunks=total_chunks,
            chunk_size=chunk_size,
            backend_upload_id=upload_id,
            bucket=self.storage.bucket,
            key=key,
            metadata=config.metadata,
        ))

        part_urls = [
            PartUploadUrl(
                part_number=n,
                upload_url=self.storage.generate_presigned_part_url(key, upload_id, n, expires_in),
            )
            for n in range(1, total_chunks + 1)
        ]

        logger.info(f"Issued multipart plan {session.session_id}: {total_chunks} parts "
                    f"of {format_file_size(chunk_size)} for {key}")
        return MultipartUploadPlan(
            session_id=session.session_id,
            upload_id=upload_id,
            key=key,
            file_url=self.storage.object_url(key),
            chunk_size=chunk_size,
            total_chunks=total_chunks,
            part_urls=part_urls,
            expires_in=expires_in,
            expires_at=session.expires_at,
        )

    def issue_part_url(self, session_id: str, chunk_number: int) -> PartUploadUrl:
        """Fresh URL for one part of a live session, e.g. after the first one expired"""
        session = self.sessions.get_open_session(session_id)
        if chunk_number < 1 or chunk_number > session.total_chunks:
            raise ValidationError(
                f"Invalid chunk number: {chunk_number}. Must be between 1 and {session.total_chunks}",
                details={"session_id": session_id, "chunk_number": chunk_number},
            )
        return PartUploadUrl(
            part_number=chunk_number,
            upload_url=self.storage.generate_presigned_part_url(
                session.key, session.backend_upload_id, chunk_number
            ),
        )
