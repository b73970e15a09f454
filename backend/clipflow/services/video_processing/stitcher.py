"""
Composite clip assembly
Segments are cut one by one, then joined by stream copy with a re-encoding
filter graph as fallback.
"""

import os
import shutil
import tempfile
import uuid
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Union

from clipflow.config.base import settings
from clipflow.models.clip import ClipSegment, OutputFormat, QualityTier
from clipflow.services.video_processing.core import (
    QualityProfile,
    StitchResult,
    get_quality_profile,
    resolve_format,
    resolve_quality,
    validate_time_range,
)
from clipflow.services.video_processing.extractor import ProgressCallback, VideoSegmentExtractor
from clipflow.services.video_processing.ffmpeg_encoder import (
    FFmpegRunner,
    build_concat_demuxer_command,
    build_filter_graph_concat_command,
    write_concat_manifest,
)
from clipflow.utils.errors import EncodingFailure, StitchingFailure, ValidationError
from clipflow.utils.logger import get_logger, LoggerMixin

logger = get_logger(__name__)


class ConcatStrategy(ABC):
    """Joins already-encoded segment files into one output file"""

    name = "concat"
    # Stream copy needs every segment encoded with the same profile
    requires_uniform_segments = False

    def __init__(self, runner: FFmpegRunner):
        self.runner = runner

    @abstractmethod
    def concat(self, segment_paths: Sequence[str], output_path: str,
               profile: QualityProfile, output_format: OutputFormat) -> None:
        pass


class ConcatDemuxerStrategy(ConcatStrategy):
    name = "concat_demuxer"
    requires_uniform_segments = True

    def concat(self, segment_paths, output_path, profile, output_format):
        manifest_path = os.path.join(os.path.dirname(output_path), "segments.txt")
        write_concat_manifest(manifest_path, segment_paths)
        self.runner.run(build_concat_demuxer_command(manifest_path, output_path, output_format))


class FilterGraphConcatStrategy(ConcatStrategy):
    name = "filter_graph"

    def concat(self, segment_paths, output_path, profile, output_format):
        self.runner.run(build_filter_graph_concat_command(segment_paths, output_path, profile, output_format))


class SegmentStitcher(LoggerMixin):
    def __init__(self, extractor: VideoSegmentExtractor, runner: FFmpegRunner,
                 strategies: Optional[List[ConcatStrategy]] = None, work_dir: Optional[str] = None):
        self.extractor = extractor
        self.strategies = strategies or [ConcatDemuxerStrategy(runner), FilterGraphConcatStrategy(runner)]
        self.work_dir = work_dir or settings.CLIP_WORK_DIR

    @staticmethod
    def order_segments(segments: Sequence[ClipSegment]) -> List[ClipSegment]:
        return sorted(segments, key=lambda s: s.sequence_order)

    def stitch(
        self,
        source_locator: str,
        segments: Sequence[ClipSegment],
        output_format: Union[OutputFormat, str] = OutputFormat.MP4,
        quality: Union[QualityTier, str] = QualityTier.LOW,
        include_fades: bool = False,
        project_id: str = "default",
        clip_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        work_dir: Optional[str] = None,
    ) -> StitchResult:
        if not segments:
            raise ValidationError("At least one segment is required")
        for segment in segments:
            validate_time_range(segment.start_time, segment.end_time)
        output_format = resolve_format(output_format)
        quality = resolve_quality(quality)
        clip_id = clip_id or str(uuid.uuid4())

        if len(segments) == 1:
            segment = segments[0]
            result = self.extractor.extract(
                source_locator, segment.start_time, segment.end_time, quality, output_format,
                include_fades, project_id, clip_id, on_progress, work_dir,
            )
            return StitchResult(
                output_locator=result.output_locator,
                file_size=result.file_size,
                total_duration=segment.effective_duration,
                strategy="single",
            )

        ordered = self.order_segments(segments)
        total_duration = sum(segment.effective_duration for segment in ordered)
        base_dir = work_dir or self.work_dir
        os.makedirs(base_dir, exist_ok=True)
        stitch_dir = tempfile.mkdtemp(prefix=f"stitch_{clip_id}_", dir=base_dir)

        self.logger.info(f"Stitching {len(ordered)} segments for clip {clip_id} "
                         f"({total_duration:.2f}s total)")
        try:
            input_url = self.extractor.prepare_input(source_locator)
            segment_paths = []
            qualities = set()
            for index, segment in enumerate(ordered):
                path = os.path.join(stitch_dir, f"segment_{index:03d}.{output_format.value}")
                used = self.extractor.extract_to_file(
                    source_locator, segment.start_time, segment.end_time, path,
                    quality, output_format, include_fades, on_progress, input_url=input_url,
                )
                qualities.add(used.quality)
                segment_paths.append(path)

            output_path = os.path.join(stitch_dir, f"stitched.{output_format.value}")
            strategy = self._concat(segment_paths, output_path, get_quality_profile(quality), output_format,
                                    uniform=len(qualities) == 1)

            file_size = os.path.getsize(output_path)
            output_locator = self.extractor.storage.upload_clip(
                output_path, project_id, clip_id, output_format.value
            )
        finally:
            shutil.rmtree(stitch_dir, ignore_errors=True)

        self.logger.info(f"Stitched clip {clip_id} with {strategy}: {output_locator} ({file_size} bytes)")
        return StitchResult(
            output_locator=output_locator,
            file_size=file_size,
            total_duration=total_duration,
            strategy=strategy,
        )

    def _concat(self, segment_paths: Sequence[str], output_path: str,
                profile: QualityProfile, output_format: OutputFormat, uniform: bool = True) -> str:
        """
        Try each strategy in turn; returns the name of the one that worked

        With `uniform` False (a segment was cut at a degraded profile) strategies
        that stream-copy are skipped.
        """
        failures = {}
        for strategy in self.strategies:
            if strategy.requires_uniform_segments and not uniform:
                logger.warning(f"Skipping {strategy.name}: segments were encoded at mixed quality")
                continue
            try:
                strategy.concat(segment_paths, output_path, profile, output_format)
                return strategy.name
            except (EncodingFailure, OSError) as e:
                message = e.message if isinstance(e, EncodingFailure) else str(e)
                failures[strategy.name] = message
                logger.warning(f"{strategy.name} concatenation failed: {message}")

        raise StitchingFailure(
            "All concatenation strategies failed: "
            + "; ".join(f"{name}: {message}" for name, message in failures.items()),
            details={"failures": failures, "segment_count": len(segment_paths)},
        )
