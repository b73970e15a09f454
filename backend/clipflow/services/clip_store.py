"""
Clip record persistence
"""

import threading
from typing import Dict, Optional

from clipflow.models.clip import ClipRecord
from clipflow.services.redis_service import RedisService
from clipflow.utils.logger import get_logger

logger = get_logger(__name__)


class InMemoryClipStore:
    """Thread-safe process-local clip records"""

    def __init__(self):
        self._records: Dict[str, ClipRecord] = {}
        self._lock = threading.RLock()

    def save(self, record: ClipRecord) -> None:
        with self._lock:
            self._records[record.clip_id] = record.model_copy(deep=True)

    def get(self, clip_id: str) -> Optional[ClipRecord]:
        with self._lock:
            record = self._records.get(clip_id)
            return record.model_copy(deep=True) if record else None

    def update(self, clip_id: str, **fields) -> Optional[ClipRecord]:
        with self._lock:
            record = self._records.get(clip_id)
            if record is None:
                return None
            updated = record.model_copy(update=fields, deep=True)
            self._records[clip_id] = updated
            return updated.model_copy(deep=True)


class RedisClipStore:
    """Clip records as JSON under clip:{clip_id}"""

    PREFIX = "clip"

    def __init__(self, redis_service: RedisService, ttl_seconds: Optional[int] = None):
        self.redis = redis_service
        self.ttl_seconds = ttl_seconds

    def _key(self, clip_id: str) -> str:
        return f"{self.PREFIX}:{clip_id}"

    def save(self, record: ClipRecord) -> None:
        self.redis.set_json(self._key(record.clip_id), record.model_dump(mode="json"), expire=self.ttl_seconds)

    def get(self, clip_id: str) -> Optional[ClipRecord]:
        data = self.redis.get_json(self._key(clip_id))
        return ClipRecord.model_validate(data) if data else None

    def update(self, clip_id: str, **fields) -> Optional[ClipRecord]:
        record = self.get(clip_id)
        if record is None:
            return None
        updated = record.model_copy(update=fields)
        self.save(updated)
        return updated
