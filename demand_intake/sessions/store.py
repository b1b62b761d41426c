"""
Session stores keyed by sender id.

Both stores share one interface: ``get``, ``put``, ``delete``, ``keys`` and
``sweep_expired``. Mutual exclusion per sender is not the store's job; the
engine holds the sender's gate around every read-modify-write, and passes
that gate to ``sweep_expired`` as a guard so eviction re-reads each session
under it.
"""

import logging
from contextlib import nullcontext
from datetime import datetime, timedelta, timezone
from typing import AsyncContextManager, Callable, Collection, Optional, Protocol

from redis.asyncio import Redis

from demand_intake.config import settings
from demand_intake.schemas.session_schema import Session

logger = logging.getLogger(__name__)


def session_ttl() -> timedelta:
    return timedelta(minutes=settings.session.ttl_minutes)


def is_expired(session: Session, now: datetime) -> bool:
    return now - session.last_activity_at >= session_ttl()


SweepGuard = Callable[[str], AsyncContextManager]


async def _sweep(
    store: "SessionStore",
    now: datetime,
    skip: Collection[str],
    guard: Optional[SweepGuard],
) -> list[Session]:
    """Evict expired sessions one sender at a time.

    The read, the expiry check and the delete all happen inside ``guard(sender_id)``,
    so a turn that wrote the session in the meantime is seen and kept.
    """
    expired: list[Session] = []
    for sender_id in await store.keys():
        if sender_id in skip:
            continue
        async with (guard(sender_id) if guard else nullcontext()):
            session = await store.get(sender_id)
            if session is None or not is_expired(session, now):
                continue
            await store.delete(sender_id)
        expired.append(session)
    if expired:
        logger.info("Evicted %d expired session(s)", len(expired))
    return expired


class SessionStore(Protocol):
    async def get(self, sender_id: str) -> Optional[Session]:
        ...

    async def put(self, session: Session) -> None:
        ...

    async def delete(self, sender_id: str) -> None:
        ...

    async def keys(self) -> list[str]:
        ...

    async def sweep_expired(
        self, now: datetime, skip: Collection[str] = (), guard: Optional[SweepGuard] = None
    ) -> list[Session]:
        ...


class InMemorySessionStore:
    """Process-local store. Sessions are lost on restart."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    async def get(self, sender_id: str) -> Optional[Session]:
        session = self._sessions.get(sender_id)
        return session.model_copy(deep=True) if session else None

    async def put(self, session: Session) -> None:
        self._sessions[session.sender_id] = session.model_copy(deep=True)

    async def delete(self, sender_id: str) -> None:
        self._sessions.pop(sender_id, None)

    async def keys(self) -> list[str]:
        return list(self._sessions)

    async def sweep_expired(
        self, now: datetime, skip: Collection[str] = (), guard: Optional[SweepGuard] = None
    ) -> list[Session]:
        """Evict sessions idle past the hard TTL, leaving senders in ``skip`` alone."""
        return await _sweep(self, now, skip, guard)

    def __len__(self) -> int:
        return len(self._sessions)


class RedisSessionStore:
    """One JSON record per sender with a native expiry at the hard TTL."""

    def __init__(
        self,
        client: Optional[Redis] = None,
        redis_url: Optional[str] = None,
        prefix: Optional[str] = None,
    ) -> None:
        self._client = client or Redis.from_url(
            redis_url or settings.store.redis_url, decode_responses=True
        )
        self.prefix = prefix or settings.store.key_prefix

    def _key(self, sender_id: str) -> str:
        return f"{self.prefix}{sender_id}"

    async def get(self, sender_id: str) -> Optional[Session]:
        raw = await self._client.get(self._key(sender_id))
        if not raw:
            return None
        return Session.model_validate_json(raw)

    async def put(self, session: Session) -> None:
        remaining = session.last_activity_at + session_ttl() - datetime.now(timezone.utc)
        ttl_seconds = max(int(remaining.total_seconds()), 1)
        await self._client.set(
            self._key(session.sender_id), session.model_dump_json(), ex=ttl_seconds
        )

    async def delete(self, sender_id: str) -> None:
        await self._client.delete(self._key(sender_id))

    async def keys(self) -> list[str]:
        raw_keys = await self._client.keys(f"{self.prefix}*")
        return [k[len(self.prefix):] for k in raw_keys]

    async def sweep_expired(
        self, now: datetime, skip: Collection[str] = (), guard: Optional[SweepGuard] = None
    ) -> list[Session]:
        return await _sweep(self, now, skip, guard)

    async def close(self) -> None:
        await self._client.aclose()


def build_store() -> SessionStore:
    """Create the store selected by SESSION_STORE."""
    if settings.store.backend == "redis":
        logger.info("Using Redis session store at %s", settings.store.redis_url)
        return RedisSessionStore()
    return InMemorySessionStore()
