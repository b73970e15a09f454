"""
Chunk sizing for multipart uploads
"""

import math
from typing import Optional, Tuple

from clipflow.config.base import settings

MB = 1024 * 1024


def calculate_chunk_plan(
    file_size: int,
    requested_chunk_size: Optional[int] = None,
    min_chunk_size: Optional[int] = None,
    max_chunk_size: Optional[int] = None,
    target_chunk_count: Optional[int] = None,
) -> Tuple[int, int]:
    """
    Pick a part size the storage backend accepts and the resulting part count

    Args:
        file_size: Total upload size in bytes
        requested_chunk_size: Caller preference, clamped like any other value

    Returns:
        (chunk_size, total_chunks)
    """
    min_chunk_size = min_chunk_size or settings.MIN_CHUNK_SIZE
    max_chunk_size = max_chunk_size or settings.MAX_CHUNK_SIZE
    target_chunk_count = target_chunk_count or settings.TARGET_CHUNK_COUNT

    if requested_chunk_size:
        chunk_size = requested_chunk_size
    else:
        chunk_size = math.ceil(file_size / target_chunk_count)

    chunk_size = max(min_chunk_size, min(chunk_size, max_chunk_size))
    chunk_size = math.ceil(chunk_size / MB) * MB
    if chunk_size > max_chunk_size:
        # Ceiling that is not MB-aligned: take the largest whole MB below it
        chunk_size = max(min_chunk_size, (max_chunk_size // MB) * MB)

    total_chunks = max(1, math.ceil(file_size / chunk_size))
    return chunk_size, total_chunks
