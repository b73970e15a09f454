"""
Redis service backing the upload session and clip stores
"""

import json
from typing import Any, Dict, Optional

import redis

from clipflow.config.base import settings
from clipflow.utils.logger import get_logger

logger = get_logger(__name__)


class RedisService:
    def __init__(self, client: Optional[redis.Redis] = None):
        if client is not None:
            self.redis_client = client
            return

        self.redis_client = redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            password=settings.REDIS_PASSWORD or None,
            db=settings.REDIS_DB,
            decode_responses=True
        )
        logger.info(f"Using Redis at {settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}")

    @property
    def client(self) -> redis.Redis:
        return self.redis_client

    def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        """Get JSON object by key"""
        value = self.redis_client.get(key)
        if isinstance(value, bytes):
            value = value.decode('utf-8')
        return json.loads(value) if value else None

    def set_json(self, key: str, value: Dict[str, Any], expire: Optional[int] = None) -> bool:
        """Set JSON object with optional expiration"""
        return bool(self.redis_client.set(key, json.dumps(value, default=str), ex=expire))

    def is_available(self) -> bool:
        try:
            return bool(self.redis_client.ping())
        except redis.RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return False
