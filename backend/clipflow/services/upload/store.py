"""
Upload session stores

Both stores keep each chunk entry independently writable, so concurrent
reports for different parts of one session never overwrite each other, and
apply status changes as compare-and-set operations.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

import redis

from clipflow.models.upload import OPEN_STATES, ChunkInfo, UploadSession, UploadSessionStatus
from clipflow.services.redis_service import RedisService
from clipflow.utils.logger import get_logger

logger = get_logger(__name__)


class UploadSessionStore(ABC):
    """Keyed persistence for upload sessions"""

    @abstractmethod
    def create(self, session: UploadSession) -> None:
        pass

    @abstractmethod
    def get(self, session_id: str) -> Optional[UploadSession]:
        pass

    @abstractmethod
    def put_chunk(self, session_id: str, chunk: ChunkInfo) -> bool:
        """
        Overwrite the entry for chunk.chunk_number while the session is open

        Returns:
            False, without writing, if the session is missing or no longer
            INITIALIZING or UPLOADING
        """
        pass

    @abstractmethod
    def transition(
        self,
        session_id: str,
        status: UploadSessionStatus,
        allowed_from: Iterable[UploadSessionStatus],
        **fields,
    ) -> Optional[UploadSession]:
        """
        Set status (and extra fields) only if the current status is in allowed_from

        Returns:
            The updated session, or None if the session is missing or the
            current status does not allow the change
        """
        pass

    @abstractmethod
    def expired_ids(self, before: datetime) -> List[str]:
        """Ids of sessions whose expires_at is earlier than `before`"""
        pass

    @abstractmethod
    def list_by_owner(self, owner_id: str, status: Optional[UploadSessionStatus] = None,
                      limit: int = 20, offset: int = 0) -> List[UploadSession]:
        """Newest first"""
        pass

    @abstractmethod
    def find_by_upload_id(self, backend_upload_id: str) -> Optional[UploadSession]:
        pass

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        pass


class InMemoryUploadSessionStore(UploadSessionStore):
    """Thread-safe process-local store"""

    def __init__(self):
        self._sessions: Dict[str, UploadSession] = {}
        self._lock = threading.RLock()

    def create(self, session: UploadSession) -> None:
        with self._lock:
            self._sessions[session.session_id] = session.model_copy(deep=True)

    def get(self, session_id: str) -> Optional[UploadSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            return session.model_copy(deep=True) if session else None

    def put_chunk(self, session_id: str, chunk: ChunkInfo) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.status not in OPEN_STATES:
                return False
            session.chunks[chunk.chunk_number - 1] = chunk.model_copy()
            session.updated_at = datetime.now(timezone.utc)
            return True

    def transition(self, session_id, status, allowed_from, **fields):
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.status not in set(allowed_from):
                return None
            updated = session.model_copy(
                update={"status": status, "updated_at": datetime.now(timezone.utc), **fields},
                deep=True,
            )
            self._sessions[session_id] = updated
            return updated.model_copy(deep=True)

    def expired_ids(self, before: datetime) -> List[str]:
        with self._lock:
            return [sid for sid, s in self._sessions.items() if s.expires_at < before]

    def list_by_owner(self, owner_id, status=None, limit=20, offset=0):
        with self._lock:
            sessions = [
                s for s in self._sessions.values()
                if s.owner_id == owner_id and (status is None or s.status == status)
            ]
            sessions.sort(key=lambda s: s.created_at, reverse=True)
            return [s.model_copy(deep=True) for s in sessions[offset:offset + limit]]

    def find_by_upload_id(self, backend_upload_id: str) -> Optional[UploadSession]:
        with self._lock:
            for session in self._sessions.values():
                if session.backend_upload_id == backend_upload_id:
                    return session.model_copy(deep=True)
            return None

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None


class RedisUploadSessionStore(UploadSessionStore):
    """
    Redis layout:
        upload_session:{id}                  session JSON without chunks
        upload_session:{id}:chunks           hash chunk_number -> ChunkInfo JSON
        upload_sessions:expiry               zset id -> expires_at timestamp
        upload_sessions:owner:{owner_id}     zset id -> created_at timestamp
        upload_sessions:status:{status}      set of ids
        upload_sessions:upload_id:{handle}   backend upload id -> session id
    """

    PREFIX = "upload_session"
    INDEX_PREFIX = "upload_sessions"

    def __init__(self, redis_service: RedisService):
        self.redis = redis_service

    def _session_key(self, session_id: str) -> str:
        return f"{self.PREFIX}:{session_id}"

    def _chunks_key(self, session_id: str) -> str:
        return f"{self.PREFIX}:{session_id}:chunks"

    def _owner_key(self, owner_id: str) -> str:
        return f"{self.INDEX_PREFIX}:owner:{owner_id}"

    def _status_key(self, status: UploadSessionStatus) -> str:
        return f"{self.INDEX_PREFIX}:status:{status.value}"

    def _upload_id_key(self, backend_upload_id: str) -> str:
        return f"{self.INDEX_PREFIX}:upload_id:{backend_upload_id}"

    @property
    def _expiry_key(self) -> str:
        return f"{self.INDEX_PREFIX}:expiry"

    def create(self, session: UploadSession) -> None:
        body = session.model_dump_json(exclude={"chunks"})
        chunks = {str(c.chunk_number): c.model_dump_json() for c in session.chunks}

        pipe = self.redis.client.pipeline()
        pipe.set(self._session_key(session.session_id), body)
        if chunks:
            pipe.hset(self._chunks_key(session.session_id), mapping=chunks)
        pipe.zadd(self._expiry_key, {session.session_id: session.expires_at.timestamp()})
        pipe.zadd(self._owner_key(session.owner_id), {session.session_id: session.created_at.timestamp()})
        pipe.sadd(self._status_key(session.status), session.session_id)
        pipe.set(self._upload_id_key(session.backend_upload_id), session.session_id)
        pipe.execute()

    def _load(self, session_id: str, body: Optional[str]) -> Optional[UploadSession]:
        if not body:
            return None
        session = UploadSession.model_validate_json(body)
        raw_chunks = self.redis.client.hgetall(self._chunks_key(session_id))
        chunks = [ChunkInfo.model_validate_json(value) for value in raw_chunks.values()]
        session.chunks = sorted(chunks, key=lambda c: c.chunk_number)
        return session

    def get(self, session_id: str) -> Optional[UploadSession]:
        return self._load(session_id, self.redis.client.get(self._session_key(session_id)))

    def put_chunk(self, session_id: str, chunk: ChunkInfo) -> bool:
        key = self._session_key(session_id)

        # Watching the session body makes a concurrent transition abort and retry this write
        def apply(pipe: redis.client.Pipeline) -> bool:
            body = pipe.get(key)
            if not body or UploadSession.model_validate_json(body).status not in OPEN_STATES:
                return False
            pipe.multi()
            pipe.hset(self._chunks_key(session_id), str(chunk.chunk_number), chunk.model_dump_json())
            return True

        return self.redis.client.transaction(apply, key, value_from_callable=True)

    def transition(self, session_id, status, allowed_from, **fields):
        allowed = set(allowed_from)
        key = self._session_key(session_id)

        def apply(pipe: redis.client.Pipeline) -> Optional[str]:
            body = pipe.get(key)
            if not body:
                return None
            session = UploadSession.model_validate_json(body)
            if session.status not in allowed:
                return None
            previous = session.status
            updated = session.model_copy(
                update={"status": status, "updated_at": datetime.now(timezone.utc), **fields}
            )
            new_body = updated.model_dump_json(exclude={"chunks"})
            pipe.multi()
            pipe.set(key, new_body)
            pipe.srem(self._status_key(previous), session_id)
            pipe.sadd(self._status_key(status), session_id)
            return new_body

        new_body = self.redis.client.transaction(apply, key, value_from_callable=True)
        if new_body is None:
            return None
        logger.debug(f"Session {session_id} -> {status.value}")
        return self._load(session_id, new_body)

    def expired_ids(self, before: datetime) -> List[str]:
        return list(self.redis.client.zrangebyscore(self._expiry_key, "-inf", f"({before.timestamp()}"))

    def list_by_owner(self, owner_id, status=None, limit=20, offset=0):
        sessions = []
        skipped = 0
        for session_id in self.redis.client.zrevrange(self._owner_key(owner_id), 0, -1):
            session = self.get(session_id)
            if session is None or (status is not None and session.status != status):
                continue
            if skipped < offset:
                skipped += 1
                continue
            sessions.append(session)
            if len(sessions) >= limit:
                break
        return sessions

    def find_by_upload_id(self, backend_upload_id: str) -> Optional[UploadSession]:
        session_id = self.redis.client.get(self._upload_id_key(backend_upload_id))
        return self.get(session_id) if session_id else None

    def delete(self, session_id: str) -> bool:
        session = self.get(session_id)
        if session is None:
            return False
        pipe = self.redis.client.pipeline()
        pipe.delete(self._session_key(session_id), self._chunks_key(session_id),
                    self._upload_id_key(session.backend_upload_id))
        pipe.zrem(self._expiry_key, session_id)
        pipe.zrem(self._owner_key(session.owner_id), session_id)
        pipe.srem(self._status_key(session.status), session_id)
        pipe.execute()
        return True
