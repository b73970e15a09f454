"""
FFmpeg subprocess runner and command builders
"""

import re
import subprocess
import threading
from collections import deque
from typing import Callable, List, Optional, Sequence

from clipflow.config.base import settings
from clipflow.models.clip import OutputFormat
from clipflow.services.video_processing.core import QualityProfile
from clipflow.utils.errors import EncodingFailure
from clipflow.utils.logger import get_logger, PerformanceLogger

logger = get_logger(__name__)

RETRYABLE_MARKERS = (
    "killed",
    "signal",
    "out of memory",
    "cannot allocate memory",
    "timed out",
    "timeout",
    "resource temporarily unavailable",
)

MUXERS = {
    OutputFormat.MP4: "mp4",
    OutputFormat.MOV: "mov",
    OutputFormat.MKV: "matroska",
}

_PROGRESS_PATTERN = re.compile(r"time=(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")


def classify_failure(message: Optional[str], returncode: Optional[int] = None) -> bool:
    """True when the failure looks like resource pressure rather than bad input"""
    if returncode is not None and (returncode < 0 or returncode == 137):
        return True
    text = (message or "").lower()
    return any(marker in text for marker in RETRYABLE_MARKERS)


def parse_progress_time(line: str) -> Optional[float]:
    """Seconds of output written so far, from an ffmpeg `time=HH:MM:SS.xx` status line"""
    match = _PROGRESS_PATTERN.search(line)
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def _fmt_seconds(value: float) -> str:
    return f"{value:.3f}"


def fade_duration(duration: float) -> float:
    return min(1.0, duration / 4)


def _output_args(output_format: OutputFormat, output_path: str) -> List[str]:
    args = []
    if output_format in (OutputFormat.MP4, OutputFormat.MOV):
        args += ["-movflags", "+faststart"]
    return args + ["-f", MUXERS[output_format], output_path]


def _codec_args(profile: QualityProfile) -> List[str]:
    return [
        "-c:v", "libx264",
        "-preset", "fast",
        "-b:v", profile.video_bitrate,
        "-r", str(profile.fps),
        "-pix_fmt", "yuv420p",
        "-c:a", "aac",
        "-b:a", profile.audio_bitrate,
        "-ar", str(profile.audio_rate),
    ]


def build_extract_command(
    input_locator: str,
    output_path: str,
    start_time: float,
    duration: float,
    profile: QualityProfile,
    include_fades: bool,
    output_format: OutputFormat,
) -> List[str]:
    """Seek-and-duration cut re-encoded to the given profile"""
    video_filters = [f"scale=-2:{profile.height}"]
    audio_filters = []
    if include_fades:
        fade = fade_duration(duration)
        fade_out_start = _fmt_seconds(max(0.0, duration - fade))
        video_filters += [
            f"fade=t=in:st=0:d={_fmt_seconds(fade)}",
            f"fade=t=out:st={fade_out_start}:d={_fmt_seconds(fade)}",
        ]
        audio_filters += [
            f"afade=t=in:st=0:d={_fmt_seconds(fade)}",
            f"afade=t=out:st={fade_out_start}:d={_fmt_seconds(fade)}",
        ]

    args = [
        "-hide_banner", "-y",
        "-ss", _fmt_seconds(start_time),
        "-i", input_locator,
        "-t", _fmt_seconds(duration),
        "-vf", ",".join(video_filters),
    ]
    if audio_filters:
        args += ["-af", ",".join(audio_filters)]
    args += _codec_args(profile)
    args += ["-avoid_negative_ts", "make_zero"]
    return args + _output_args(output_format, output_path)


def build_concat_demuxer_command(manifest_path: str, output_path: str,
                                 output_format: OutputFormat) -> List[str]:
    """Stream-copy concatenation; only valid when inputs share codec parameters"""
    args = [
        "-hide_banner", "-y",
        "-f", "concat",
        "-safe", "0",
        "-i", manifest_path,
        "-c", "copy",
    ]
    return args + _output_args(output_format, output_path)


def build_filter_graph_concat_command(
    input_paths: Sequence[str],
    output_path: str,
    profile: QualityProfile,
    output_format: OutputFormat,
) -> List[str]:
    """Re-encoding concatenation with every input normalized to one profile"""
    args = ["-hide_banner", "-y"]
    for path in input_paths:
        args += ["-i", path]

    width, height = profile.width, profile.height
    chains = []
    pairs = ""
    for i in range(len(input_paths)):
        chains.append(
            f"[{i}:v]scale={width}:{height}:force_original_aspect_ratio=decrease,"
            f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2,setsar=1,"
            f"fps={profile.fps},format=yuv420p[v{i}]"
        )
        chains.append(
            f"[{i}:a]aresample={profile.audio_rate},"
            f"aformat=sample_fmts=fltp:channel_layouts=stereo[a{i}]"
        )
        pairs += f"[v{i}][a{i}]"
    chains.append(f"{pairs}concat=n={len(input_paths)}:v=1:a=1[vc][ac]")

    args += [
        "-filter_complex", ";".join(chains),
        "-map", "[vc]",
        "-map", "[ac]",
    ]
    args += _codec_args(profile)
    return args + _output_args(output_format, output_path)


def write_concat_manifest(manifest_path: str, segment_paths: Sequence[str]) -> None:
    with open(manifest_path, "w", encoding="utf-8") as manifest:
        for path in segment_paths:
            escaped = path.replace("'", "'\\''")
            manifest.write(f"file '{escaped}'\n")


class FFmpegRunner:
    """Blocking ffmpeg invocation with a wall-clock timeout"""

    def __init__(self, binary: Optional[str] = None, timeout: Optional[float] = None):
        self.binary = binary or settings.FFMPEG_PATH
        self.timeout = timeout or settings.ENCODER_TIMEOUT

    def run(
        self,
        args: Sequence[str],
        timeout: Optional[float] = None,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> None:
        """
        Run the encoder to completion

        Args:
            args: Arguments after the binary name
            timeout: Seconds before the process is killed
            on_progress: Called with seconds of output encoded so far

        Raises:
            EncodingFailure: non-zero exit, timeout or missing binary
        """
        timeout = timeout or self.timeout
        command = [self.binary, *args]
        logger.debug(f"Running encoder: {' '.join(command)}")

        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except FileNotFoundError as e:
            raise EncodingFailure(
                f"Encoder binary not found: {self.binary}",
                retryable=False,
                error_code="ENCODER_NOT_FOUND",
                details={"binary": self.binary},
            ) from e
        except OSError as e:
            raise EncodingFailure(
                f"Could not start encoder: {e}",
                retryable=classify_failure(str(e)),
                details={"binary": self.binary},
            ) from e

        timed_out = threading.Event()

        def _kill():
            timed_out.set()
            process.kill()

        timer = threading.Timer(timeout, _kill)
        timer.daemon = True
        perf = PerformanceLogger("ffmpeg")
        perf.start(f"encode ({len(args)} args)")
        tail = deque(maxlen=20)

        timer.start()
        try:
            for line in process.stderr:
                line = line.strip()
                if not line:
                    continue
                tail.append(line)
                if on_progress is not None:
                    seconds = parse_progress_time(line)
                    if seconds is not None:
                        on_progress(seconds)
            returncode = process.wait()
        finally:
            timer.cancel()
            if process.poll() is None:
                process.kill()
                process.wait()
            process.stderr.close()

        elapsed = perf.end(f"exit code {returncode}")

        if timed_out.is_set():
            raise EncodingFailure(
                f"Encoder timed out after {timeout}s",
                retryable=True,
                error_code="ENCODER_TIMEOUT",
                details={"timeout": timeout, "stderr_tail": list(tail)[-5:]},
            )

        if returncode != 0:
            last_lines = list(tail)[-5:]
            message = " | ".join(last_lines) or f"exit code {returncode}"
            retryable = classify_failure(message, returncode)
            logger.warning(f"Encoder exited with code {returncode} after {elapsed:.1f}s "
                           f"({'retryable' if retryable else 'fatal'}): {message}")
            raise EncodingFailure(
                f"Encoder exited with code {returncode}: {message}",
                retryable=retryable,
                details={"returncode": returncode, "stderr_tail": last_lines},
            )
