"""
Session bootstrap records and per-project generation locks.

Both live in a StateStore so a single-process deployment and a Redis-backed
multi-instance deployment share the same code path.
"""

import secrets
import string
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

from scriptvision.core.constants import SESSION_TTL_SECONDS
from scriptvision.core.exceptions import GenerationConflictError
from scriptvision.core.logging_config import get_logger
from scriptvision.pipelines.models import ScriptInput
from scriptvision.streaming.store import StateStore

logger = get_logger("streaming.sessions")

SESSIONS_NAMESPACE = "sessions"
GENERATING_NAMESPACE = "generating"

_SESSION_ALPHABET = string.ascii_lowercase + string.digits


def new_session_id() -> str:
    """session_{epoch ms}_{9 random base36 chars}"""
    suffix = "".join(secrets.choice(_SESSION_ALPHABET) for _ in range(9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


@dataclass
class Session:
    """Parameters stored by the bootstrap call, consumed by the stream call."""
    session_id: str
    request: ScriptInput
    user_id: str
    created_at: float
    last_accessed: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "request": self.request.to_dict(),
            "userId": self.user_id,
            "createdAt": self.created_at,
            "lastAccessed": self.last_accessed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            session_id=data["sessionId"],
            request=ScriptInput.from_dict(data["request"]),
            user_id=data["userId"],
            created_at=data["createdAt"],
            last_accessed=data["lastAccessed"],
        )


class SessionManager:
    """Creates, resolves and expires streaming sessions."""

    def __init__(self, store: StateStore, ttl_seconds: float = SESSION_TTL_SECONDS):
        self._store = store
        self.ttl_seconds = ttl_seconds

    async def create(self, request: ScriptInput, user_id: str) -> Session:
        now = self._store.now()
        session = Session(
            session_id=new_session_id(),
            request=request,
            user_id=user_id,
            created_at=now,
            last_accessed=now,
        )
        await self._store.set(SESSIONS_NAMESPACE, session.session_id, session.to_dict(), ttl=self.ttl_seconds)
        logger.info(f"Session {session.session_id} created for project {request.project_id}")
        return session

    async def get(self, session_id: str, touch: bool = True) -> Optional[Session]:
        """
        Resolve a session. Sessions idle for longer than the TTL are
        removed and reported as missing.
        """
        record = await self._store.get(SESSIONS_NAMESPACE, session_id)
        if record is None:
            return None

        session = Session.from_dict(record)
        now = self._store.now()
        if now - session.last_accessed > self.ttl_seconds:
            await self.delete(session_id)
            return None

        if touch:
            session.last_accessed = now
            await self._store.set(SESSIONS_NAMESPACE, session_id, session.to_dict(), ttl=self.ttl_seconds)
        return session

    async def delete(self, session_id: str) -> bool:
        return await self._store.delete(SESSIONS_NAMESPACE, session_id)

    async def cleanup_expired(self) -> int:
        """Remove sessions idle past the TTL. Returns the number removed."""
        stale = await self._store.list_stale(SESSIONS_NAMESPACE, self.ttl_seconds)
        for session_id in stale:
            await self._store.delete(SESSIONS_NAMESPACE, session_id)
        if stale:
            logger.info(f"Cleaned up {len(stale)} expired session(s)")
        return len(stale)

    async def count(self) -> int:
        return await self._store.count(SESSIONS_NAMESPACE)


class GenerationLockManager:
    """At most one active generation per project id."""

    def __init__(self, store: StateStore):
        self._store = store

    async def acquire(self, project_id: str, user_id: str, session_id: Optional[str] = None) -> bool:
        acquired = await self._store.set_if_absent(GENERATING_NAMESPACE, project_id, {
            "userId": user_id,
            "sessionId": session_id,
            "startedAt": self._store.now(),
        })
        if acquired:
            logger.info(f"Generation lock acquired for project {project_id}")
        else:
            logger.warning(f"Generation already in progress for project {project_id}")
        return acquired

    async def release(self, project_id: str) -> None:
        if await self._store.delete(GENERATING_NAMESPACE, project_id):
            logger.info(f"Generation lock released for project {project_id}")

    async def is_generating(self, project_id: str) -> bool:
        return await self._store.get(GENERATING_NAMESPACE, project_id) is not None

    async def active_count(self) -> int:
        return await self._store.count(GENERATING_NAMESPACE)

    async def release_stale(self, max_age: float) -> List[str]:
        """Release locks held longer than max_age seconds."""
        stale = await self._store.list_stale(GENERATING_NAMESPACE, max_age)
        for project_id in stale:
            logger.warning(f"Releasing stale generation lock for project {project_id}")
            await self._store.delete(GENERATING_NAMESPACE, project_id)
        return stale

    @asynccontextmanager
    async def hold(self, project_id: str, user_id: str) -> AsyncIterator[None]:
        """Hold the project lock for the duration of a block."""
        if not await self.acquire(project_id, user_id):
            raise GenerationConflictError(project_id)
        try:
            yield
        finally:
            await self.release(project_id)
