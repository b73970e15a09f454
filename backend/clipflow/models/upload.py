"""
Upload data models
"""

from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional, Dict, List, Any
from datetime import datetime


class FileCategory(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"
    IMAGE = "image"
    DOCUMENT = "document"
    OTHER = "other"


class UploadSessionStatus(str, Enum):
    INITIALIZING = "initializing"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self not in OPEN_STATES


# Statuses that still accept chunks and state changes
OPEN_STATES = (UploadSessionStatus.INITIALIZING, UploadSessionStatus.UPLOADING)


class ChunkInfo(BaseModel):
    chunk_number: int
    checksum_tag: str = ""
    size: int = 0
    uploaded_at: Optional[datetime] = None
    is_completed: bool = False


class UploadSession(BaseModel):
    session_id: str
    owner_id: str
    file_name: str
    file_size: int
    mime_type: str
    file_category: FileCategory
    total_chunks: int
    chunk_size: int
    backend_upload_id: str
    bucket: str
    key: str
    chunks: List[ChunkInfo] = Field(default_factory=list)
    status: UploadSessionStatus = UploadSessionStatus.INITIALIZING
    expires_at: datetime
    created_at: datetime
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    final_locator: Optional[str] = None
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def completed_chunks(self) -> List[ChunkInfo]:
        return [chunk for chunk in self.chunks if chunk.is_completed]

    def all_chunks_completed(self) -> bool:
        return bool(self.chunks) and all(
            chunk.is_completed and chunk.checksum_tag for chunk in self.chunks
        )


class CreateUploadSessionData(BaseModel):
    """Everything the session manager needs to open a session"""
    owner_id: str
    file_name: str
    file_size: int
    mime_type: str
    file_category: FileCategory
    total_chunks: int
    chunk_size: int
    backend_upload_id: str
    bucket: str
    key: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    expires_in: Optional[int] = None  # seconds, defaults to the configured TTL


class UploadConfig(BaseModel):
    """Client request for an upload plan"""
    owner_id: str
    file_name: str
    file_size: int
    mime_type: str
    file_category: FileCategory = FileCategory.VIDEO
    file_id: Optional[str] = None
    chunked: Optional[bool] = None  # explicit override of the size threshold
    chunk_size: Optional[int] = None
    expires_in: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class PartUploadUrl(BaseModel):
    part_number: int
    upload_url: str


class SingleUploadPlan(BaseModel):
    upload_type: str = "single"
    file_id: str
    key: str
    upload_url: str
    read_url: str
    file_url: str
    method: str = "PUT"
    headers: Dict[str, str] = Field(default_factory=dict)
    expires_in: int
    max_file_size: int


class MultipartUploadPlan(BaseModel):
    upload_type: str = "multipart"
    session_id: str
    upload_id: str
    key: str
    file_url: str
    chunk_size: int
    total_chunks: int
    part_urls: List[PartUploadUrl]
    expires_in: int
    expires_at: datetime


class ChunkReport(BaseModel):
    checksum_tag: str
    size: int


class AbortRequest(BaseModel):
    reason: Optional[str] = None


class UploadProgress(BaseModel):
    session_id: str
    status: UploadSessionStatus
    total_chunks: int
    completed_chunks: int
    progress_percentage: int
    total_file_size: int
    uploaded_size: int
    chunks: List[ChunkInfo]
    final_locator: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    expires_at: datetime
