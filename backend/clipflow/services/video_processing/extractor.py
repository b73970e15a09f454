"""
Single-segment clip extraction
"""

import os
import uuid
from typing import Callable, Optional, Union

from clipflow.config.base import settings
from clipflow.models.clip import OutputFormat, QualityTier
from clipflow.services.video_processing.core import (
    EncodeParameters,
    ExtractionResult,
    RetryPolicy,
    get_quality_profile,
    resolve_format,
    resolve_quality,
    validate_time_range,
)
from clipflow.services.video_processing.ffmpeg_encoder import FFmpegRunner, build_extract_command
from clipflow.utils.logger import LoggerMixin

ProgressCallback = Callable[[float], None]


class VideoSegmentExtractor(LoggerMixin):
    """Cuts one time range out of a source video and stores the result"""

    def __init__(self, runner: FFmpegRunner, storage, work_dir: Optional[str] = None,
                 retry_policy: Optional[RetryPolicy] = None):
        self.runner = runner
        self.storage = storage
        self.work_dir = work_dir or settings.CLIP_WORK_DIR
        self.retry_policy = retry_policy or RetryPolicy()

    def prepare_input(self, source_locator: str) -> str:
        """Storage locators become pre-signed read URLs the encoder can stream"""
        if self.storage is not None and self.storage.is_storage_locator(source_locator):
            return self.storage.generate_signed_read_url(source_locator)
        return source_locator

    def extract_to_file(
        self,
        source_locator: str,
        start_time: float,
        end_time: float,
        output_path: str,
        quality: Union[QualityTier, str] = QualityTier.LOW,
        output_format: Union[OutputFormat, str] = OutputFormat.MP4,
        include_fades: bool = False,
        on_progress: Optional[ProgressCallback] = None,
        input_url: Optional[str] = None,
    ) -> EncodeParameters:
        """
        Encode [start_time, end_time) of the source into output_path

        Args:
            input_url: Already-prepared encoder input, skips prepare_input

        Returns:
            The parameters of the attempt that succeeded, which differ from
            the request after a degraded retry
        """
        duration = validate_time_range(start_time, end_time)
        requested = EncodeParameters(quality=resolve_quality(quality), include_fades=include_fades)
        output_format = resolve_format(output_format)
        input_url = input_url or self.prepare_input(source_locator)

        def encode(params: EncodeParameters) -> EncodeParameters:
            self.runner.run(
                build_extract_command(
                    input_url,
                    output_path,
                    start_time,
                    duration,
                    get_quality_profile(params.quality),
                    params.include_fades,
                    output_format,
                ),
                on_progress=on_progress,
            )
            return params

        used = self.retry_policy.run(encode, requested, label=f"Segment {start_time:.2f}-{end_time:.2f}s")
        self.logger.info(f"Extracted {duration:.2f}s segment to {output_path} at {used.quality.value} quality")
        return used

    def extract(
        self,
        source_locator: str,
        start_time: float,
        end_time: float,
        quality: Union[QualityTier, str] = QualityTier.LOW,
        output_format: Union[OutputFormat, str] = OutputFormat.MP4,
        include_fades: bool = False,
        project_id: str = "default",
        clip_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        work_dir: Optional[str] = None,
    ) -> ExtractionResult:
        duration = validate_time_range(start_time, end_time)
        output_format = resolve_format(output_format)
        resolve_quality(quality)
        clip_id = clip_id or str(uuid.uuid4())

        work_dir = work_dir or self.work_dir
        os.makedirs(work_dir, exist_ok=True)
        output_path = os.path.join(work_dir, f"{clip_id}_{uuid.uuid4().hex[:8]}.{output_format.value}")

        self.logger.info(f"Extracting clip {clip_id}: {start_time:.2f}s-{end_time:.2f}s "
                         f"from {source_locator}")
        try:
            self.extract_to_file(
                source_locator, start_time, end_time, output_path,
                quality, output_format, include_fades, on_progress,
            )
            file_size = os.path.getsize(output_path)
            output_locator = self.storage.upload_clip(output_path, project_id, clip_id, output_format.value)
        finally:
            if os.path.exists(output_path):
                os.remove(output_path)

        self.logger.info(f"Clip {clip_id} stored at {output_locator} ({file_size} bytes)")
        return ExtractionResult(output_locator=output_locator, file_size=file_size, duration=duration)
