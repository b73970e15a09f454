"""
Video processing core
Quality profiles, result containers and the degraded-retry policy shared by
segment extraction and stitching
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, TypeVar, Union

from clipflow.config.base import settings
from clipflow.models.clip import OutputFormat, QualityTier
from clipflow.utils.errors import EncodingFailure, ValidationError
from clipflow.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class QualityProfile:
    """Bitrate, resolution and framerate bundle for one quality tier"""
    tier: QualityTier
    video_bitrate: str
    audio_bitrate: str
    width: int
    height: int
    fps: int
    audio_rate: int = 44100


QUALITY_PROFILES: Dict[QualityTier, QualityProfile] = {
    QualityTier.LOW: QualityProfile(QualityTier.LOW, "500k", "64k", 854, 480, 24),
    QualityTier.MEDIUM: QualityProfile(QualityTier.MEDIUM, "1000k", "128k", 1280, 720, 30),
    QualityTier.HIGH: QualityProfile(QualityTier.HIGH, "2000k", "192k", 1920, 1080, 30),
}


def resolve_quality(quality: Union[QualityTier, str]) -> QualityTier:
    try:
        return QualityTier(quality)
    except ValueError:
        raise ValidationError(
            f"Unknown quality: {quality}",
            details={"quality": str(quality), "allowed": [q.value for q in QualityTier]},
        )


def resolve_format(output_format: Union[OutputFormat, str]) -> OutputFormat:
    try:
        return OutputFormat(output_format)
    except ValueError:
        raise ValidationError(
            f"Unsupported output format: {output_format}",
            details={"output_format": str(output_format), "allowed": [f.value for f in OutputFormat]},
        )


def get_quality_profile(quality: Union[QualityTier, str]) -> QualityProfile:
    return QUALITY_PROFILES[resolve_quality(quality)]


def validate_time_range(start_time: float, end_time: float) -> float:
    """Returns the range duration in seconds"""
    if start_time < 0:
        raise ValidationError(f"Start time must not be negative: {start_time}",
                              details={"start_time": start_time})
    if end_time <= start_time:
        raise ValidationError(
            f"End time {end_time} must be after start time {start_time}",
            details={"start_time": start_time, "end_time": end_time},
        )
    return end_time - start_time


@dataclass(frozen=True)
class EncodeParameters:
    quality: QualityTier
    include_fades: bool


@dataclass
class ExtractionResult:
    output_locator: str
    file_size: int
    duration: float


@dataclass
class StitchResult:
    output_locator: str
    file_size: int
    total_duration: float
    strategy: str


def attempt_parameters(attempt: int, requested: EncodeParameters) -> EncodeParameters:
    """
    Encoder parameters for a given attempt

    Attempt 0 uses the request as-is; every retry drops to the cheapest
    profile without fades to ease resource pressure.
    """
    if attempt <= 0:
        return requested
    return EncodeParameters(quality=QualityTier.LOW, include_fades=False)


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Exponential delay before retry number `attempt` (1-based)"""
    if attempt <= 0:
        return 0.0
    return min(max_delay, base_delay * 2 ** (attempt - 1))


class RetryPolicy:
    """Re-runs an encode on retryable failures with degraded parameters"""

    def __init__(
        self,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_retries = settings.ENCODER_MAX_RETRIES if max_retries is None else max_retries
        self.base_delay = settings.ENCODER_RETRY_BASE_DELAY if base_delay is None else base_delay
        self.max_delay = settings.ENCODER_RETRY_MAX_DELAY if max_delay is None else max_delay
        self.sleep = sleep

    def run(self, operation: Callable[[EncodeParameters], T], requested: EncodeParameters,
            label: str = "encode") -> T:
        attempt = 0
        while True:
            params = attempt_parameters(attempt, requested)
            try:
                return operation(params)
            except EncodingFailure as e:
                if not e.retryable:
                    raise
                if attempt >= self.max_retries:
                    raise EncodingFailure(
                        f"{label} failed after {attempt + 1} attempts: {e.message}",
                        retryable=False,
                        error_code="ENCODING_RETRIES_EXHAUSTED",
                        details={**e.details, "attempts": attempt + 1},
                    ) from e

                attempt += 1
                delay = backoff_delay(attempt, self.base_delay, self.max_delay)
                logger.warning(f"{label} attempt {attempt} failed ({e.message}); "
                               f"retrying at {QualityTier.LOW.value} quality without fades in {delay:.1f}s")
                self.sleep(delay)
