"""
Video Processing Package
FFmpeg segment extraction with degraded retries and composite stitching
"""

from .core import (
    QualityProfile,
    QUALITY_PROFILES,
    EncodeParameters,
    ExtractionResult,
    StitchResult,
    RetryPolicy,
    attempt_parameters,
    backoff_delay,
    get_quality_profile,
)
from .ffmpeg_encoder import FFmpegRunner, classify_failure
from .extractor import VideoSegmentExtractor
from .stitcher import (
    ConcatStrategy,
    ConcatDemuxerStrategy,
    FilterGraphConcatStrategy,
    SegmentStitcher,
)

# Global service instances
_runner = None
_extractor = None
_stitcher = None


def get_ffmpeg_runner() -> FFmpegRunner:
    global _runner
    if _runner is None:
        _runner = FFmpegRunner()
    return _runner


def get_segment_extractor() -> VideoSegmentExtractor:
    """Get singleton extractor wired to the shared S3 service"""
    global _extractor
    if _extractor is None:
        from clipflow.services.upload import get_s3_service
        _extractor = VideoSegmentExtractor(get_ffmpeg_runner(), get_s3_service())
    return _extractor


def get_segment_stitcher() -> SegmentStitcher:
    global _stitcher
    if _stitcher is None:
        _stitcher = SegmentStitcher(get_segment_extractor(), get_ffmpeg_runner())
    return _stitcher


__all__ = [
    'QualityProfile',
    'QUALITY_PROFILES',
    'EncodeParameters',
    'ExtractionResult',
    'StitchResult',
    'RetryPolicy',
    'attempt_parameters',
    'backoff_delay',
    'get_quality_profile',
    'FFmpegRunner',
    'classify_failure',
    'VideoSegmentExtractor',
    'ConcatStrategy',
    'ConcatDemuxerStrategy',
    'FilterGraphConcatStrategy',
    'SegmentStitcher',
    'get_ffmpeg_runner',
    'get_segment_extractor',
    'get_segment_stitcher',
]
