"""
Single-segment extraction
"""

import os

import pytest

from clipflow.models.clip import QualityTier
from clipflow.services.video_processing import EncodeParameters
from clipflow.utils.errors import EncodingFailure, UpstreamStorageError, ValidationError


def arg_after(args, flag):
    return args[args.index(flag) + 1]


def test_extract_uploads_clip_and_removes_local_file(extractor, runner, storage, work_dir):
    result = extractor.extract("https://cdn.example.com/source.mp4", 5, 15,
                               project_id="project-1", clip_id="clip-1")

    assert result.output_locator == "https://test-bucket.s3.amazonaws.com/clips/project-1/clip-1.mp4"
    assert result.file_size == 2048
    assert result.duration == 10
    assert len(runner.calls) == 1
    assert arg_after(runner.calls[0], "-ss") == "5.000"
    assert arg_after(runner.calls[0], "-i") == "https://cdn.example.com/source.mp4"
    assert storage.uploaded[0]["format"] == "mp4"
    assert os.listdir(work_dir) == []


def test_storage_locators_are_signed_before_encoding(extractor, runner):
    extractor.extract("s3://test-bucket/uploads/source.mp4", 0, 5, project_id="p", clip_id="c")

    assert arg_after(runner.calls[0], "-i") == "s3://test-bucket/uploads/source.mp4?signed=1"


@pytest.mark.parametrize("start,end", [(10, 10), (10, 5), (-1, 5)])
def test_invalid_range_is_rejected_before_encoding(extractor, runner, start, end):
    with pytest.raises(ValidationError):
        extractor.extract("source.mp4", start, end)
    assert runner.calls == []


def test_unknown_quality_and_format_are_rejected(extractor, runner):
    with pytest.raises(ValidationError):
        extractor.extract("source.mp4", 0, 5, quality="ultra")
    with pytest.raises(ValidationError):
        extractor.extract("source.mp4", 0, 5, output_format="avi")
    assert runner.calls == []


def test_retry_degrades_quality_and_drops_fades(extractor, runner, sleeps):
    runner.failures = [EncodingFailure("Killed", retryable=True)]

    result = extractor.extract("source.mp4", 0, 10, quality="high", include_fades=True,
                               project_id="p", clip_id="c")

    first, second = runner.calls
    assert arg_after(first, "-b:v") == "2000k"
    assert "fade" in arg_after(first, "-vf")
    assert arg_after(second, "-b:v") == "500k"
    assert "fade" not in arg_after(second, "-vf")
    assert "-af" not in second
    assert sleeps == [2.0]
    assert result.duration == 10


def test_fatal_failure_is_not_retried(extractor, runner, storage, work_dir):
    runner.failures = [EncodingFailure("Invalid data found when processing input", retryable=False)]

    with pytest.raises(EncodingFailure):
        extractor.extract("source.mp4", 0, 10, project_id="p", clip_id="c")

    assert len(runner.calls) == 1
    assert storage.uploaded == []
    assert os.listdir(work_dir) == []


def test_exhausted_retries_fail(extractor, runner):
    runner.failures = [EncodingFailure("Out of memory", retryable=True) for _ in range(3)]

    with pytest.raises(EncodingFailure) as exc_info:
        extractor.extract("source.mp4", 0, 10, project_id="p", clip_id="c")

    assert len(runner.calls) == 3
    assert exc_info.value.retryable is False


def test_upload_failure_still_cleans_up(extractor, storage, work_dir):
    storage.upload_error = UpstreamStorageError("bucket unavailable")

    with pytest.raises(UpstreamStorageError):
        extractor.extract("source.mp4", 0, 10, project_id="p", clip_id="c")

    assert os.listdir(work_dir) == []


def test_extract_to_file_writes_requested_path(extractor, runner, tmp_path):
    output = tmp_path / "segment.mov"

    used = extractor.extract_to_file("source.mp4", 2.5, 4.0, str(output), quality="medium", output_format="mov")

    assert used == EncodeParameters(QualityTier.MEDIUM, False)
    assert arg_after(runner.calls[0], "-t") == "1.500"
    assert output.exists()
    assert runner.calls[0][-1] == str(output)
    assert arg_after(runner.calls[0], "-f") == "mov"


def test_extract_to_file_reports_degraded_parameters(extractor, runner, tmp_path):
    runner.failures = [EncodingFailure("Cannot allocate memory", retryable=True)]

    used = extractor.extract_to_file("source.mp4", 0, 10, str(tmp_path / "segment.mp4"),
                                     quality="high", include_fades=True)

    assert used == EncodeParameters(QualityTier.LOW, False)
