"""
Chunk plan sizing
"""

import math

import pytest

from clipflow.services.upload.chunking import calculate_chunk_plan

MB = 1024 * 1024
GB = 1024 * MB

LIMITS = dict(min_chunk_size=5 * MB, max_chunk_size=100 * MB, target_chunk_count=100)


def test_small_file_uses_minimum_chunk_size():
    assert calculate_chunk_plan(10 * MB, **LIMITS) == (5 * MB, 2)


def test_one_byte_file_is_one_chunk():
    assert calculate_chunk_plan(1, **LIMITS) == (5 * MB, 1)


def test_target_count_rounds_up_to_whole_megabytes():
    chunk_size, total_chunks = calculate_chunk_plan(1 * GB, **LIMITS)

    # 1 GiB / 100 = 10.24 MiB -> 11 MiB
    assert chunk_size == 11 * MB
    assert total_chunks == math.ceil(GB / (11 * MB))


def test_huge_file_is_clamped_to_maximum_chunk_size():
    assert calculate_chunk_plan(50 * GB, **LIMITS) == (100 * MB, 512)


def test_requested_chunk_size_is_rounded_and_clamped():
    assert calculate_chunk_plan(200 * MB, requested_chunk_size=int(7.5 * MB), **LIMITS)[0] == 8 * MB
    assert calculate_chunk_plan(200 * MB, requested_chunk_size=1, **LIMITS)[0] == 5 * MB
    assert calculate_chunk_plan(200 * MB, requested_chunk_size=500 * MB, **LIMITS)[0] == 100 * MB


def test_unaligned_maximum_is_never_exceeded():
    chunk_size, _ = calculate_chunk_plan(
        1 * GB, requested_chunk_size=20 * MB,
        min_chunk_size=5 * MB, max_chunk_size=int(10.5 * MB), target_chunk_count=100,
    )
    assert chunk_size == 10 * MB


@pytest.mark.parametrize("file_size", [1, 5 * MB, 5 * MB + 1, 333 * MB + 7, 3 * GB, 20 * GB])
def test_chunks_cover_the_file_exactly_once(file_size):
    chunk_size, total_chunks = calculate_chunk_plan(file_size, **LIMITS)

    assert 5 * MB <= chunk_size <= 100 * MB
    assert chunk_size % MB == 0
    assert chunk_size * total_chunks >= file_size
    assert chunk_size * (total_chunks - 1) < file_size
