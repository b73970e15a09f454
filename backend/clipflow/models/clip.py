"""
Clip extraction data models
"""

from enum import Enum
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Union
from datetime import datetime

from clipflow.utils.timecode import to_seconds


class QualityTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class OutputFormat(str, Enum):
    MP4 = "mp4"
    MOV = "mov"
    MKV = "mkv"


class ClipStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ClipSegment(BaseModel):
    """One source time range of a clip, in seconds"""
    start_time: float
    end_time: float
    purpose: str = "other"  # hook | build | payoff | other
    sequence_order: int = 1
    duration: Optional[float] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _parse_timecode(cls, value: Union[int, float, str]) -> float:
        return to_seconds(value)

    @property
    def effective_duration(self) -> float:
        """Caller-supplied duration when present, else end - start"""
        if self.duration is not None:
            return self.duration
        return self.end_time - self.start_time


class ExtractionJob(BaseModel):
    clip_id: str
    project_id: str
    owner_id: str
    source_locator: str
    segments: List[ClipSegment]
    quality: QualityTier = QualityTier.LOW
    output_format: OutputFormat = OutputFormat.MP4
    include_fades: bool = False

    @property
    def is_composite(self) -> bool:
        return len(self.segments) > 1


class ClipRecord(BaseModel):
    clip_id: str
    project_id: str
    owner_id: str
    status: ClipStatus = ClipStatus.PENDING
    video_url: Optional[str] = None
    file_size: Optional[int] = None
    duration: Optional[float] = None
    is_composite: bool = False
    segment_count: int = 1
    processing_error: Optional[str] = None
    created_at: datetime
    processing_started_at: Optional[datetime] = None
    processing_completed_at: Optional[datetime] = None


class ClipSubmission(BaseModel):
    """Response for a queued extraction job"""
    clip_id: str
    status: ClipStatus
    task_id: Optional[str] = None
    segments: List[ClipSegment] = Field(default_factory=list)
