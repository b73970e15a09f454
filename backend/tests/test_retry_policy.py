"""
Degraded retry policy for encoder runs
"""

import pytest

from clipflow.models.clip import QualityTier
from clipflow.services.video_processing import (
    EncodeParameters,
    RetryPolicy,
    attempt_parameters,
    backoff_delay,
    classify_failure,
)
from clipflow.utils.errors import EncodingFailure


REQUESTED = EncodeParameters(quality=QualityTier.HIGH, include_fades=True)


def test_first_attempt_uses_requested_parameters():
    assert attempt_parameters(0, REQUESTED) == REQUESTED


@pytest.mark.parametrize("attempt", [1, 2, 5])
def test_retries_degrade_to_low_quality_without_fades(attempt):
    assert attempt_parameters(attempt, REQUESTED) == EncodeParameters(QualityTier.LOW, False)


@pytest.mark.parametrize("attempt,expected", [(0, 0.0), (1, 2.0), (2, 4.0), (3, 8.0), (10, 30.0)])
def test_backoff_delay_is_exponential_and_capped(attempt, expected):
    assert backoff_delay(attempt, 2.0, 30.0) == expected


@pytest.mark.parametrize("message,returncode", [
    ("Killed", 1),
    ("received signal 15", 255),
    ("Out of memory", 1),
    ("av_malloc: Cannot allocate memory", 1),
    ("Connection timed out", 1),
    ("Resource temporarily unavailable", 1),
    ("", 137),
    ("", -9),
])
def test_resource_failures_are_retryable(message, returncode):
    assert classify_failure(message, returncode) is True


@pytest.mark.parametrize("message", [
    "Invalid data found when processing input",
    "No such file or directory",
    "Unknown encoder 'libx265'",
])
def test_input_failures_are_fatal(message):
    assert classify_failure(message, 1) is False


def test_policy_retries_retryable_failures_with_degraded_parameters(sleeps):
    seen = []

    def operation(params):
        seen.append(params)
        if len(seen) < 3:
            raise EncodingFailure("Killed", retryable=True)
        return "ok"

    policy = RetryPolicy(max_retries=2, base_delay=2.0, max_delay=30.0, sleep=sleeps.append)

    assert policy.run(operation, REQUESTED) == "ok"
    assert seen == [REQUESTED, EncodeParameters(QualityTier.LOW, False), EncodeParameters(QualityTier.LOW, False)]
    assert sleeps == [2.0, 4.0]


def test_policy_does_not_retry_fatal_failures(sleeps):
    calls = []

    def operation(params):
        calls.append(params)
        raise EncodingFailure("Invalid data found when processing input", retryable=False)

    policy = RetryPolicy(max_retries=2, sleep=sleeps.append)

    with pytest.raises(EncodingFailure) as exc_info:
        policy.run(operation, REQUESTED)

    assert len(calls) == 1
    assert sleeps == []
    assert exc_info.value.error_code == "ENCODING_FAILED"


def test_exhausted_retries_surface_a_fatal_failure(sleeps):
    calls = []

    def operation(params):
        calls.append(params)
        raise EncodingFailure("Out of memory", retryable=True)

    policy = RetryPolicy(max_retries=2, base_delay=1.0, max_delay=30.0, sleep=sleeps.append)

    with pytest.raises(EncodingFailure) as exc_info:
        policy.run(operation, REQUESTED, label="Segment")

    assert len(calls) == 3
    assert exc_info.value.retryable is False
    assert exc_info.value.error_code == "ENCODING_RETRIES_EXHAUSTED"
    assert exc_info.value.details["attempts"] == 3
    assert "Out of memory" in exc_info.value.message
