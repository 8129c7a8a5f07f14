"""
Shared Dependencies for Routers

One SyncCoordinator per browser session, created lazily on first use and
closed again once the session goes idle.
"""

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Tuple

from fastapi import Header, HTTPException

from bistro_cart.cart.identity import IdentityProvider
from bistro_cart.cart.remote import RemoteCartStore
from bistro_cart.cart.storage import CartBroadcast, KeyValueSurface, SessionCartStorage
from bistro_cart.cart.store import CartStore
from bistro_cart.cart.sync import SyncCoordinator
from bistro_cart.config import SyncConfig, get_sync_config
from bistro_cart.logging import get_logger, sanitize_id_for_logging

logger = get_logger(__name__)

SESSION_HEADER = "X-Session-ID"


@dataclass
class CartSession:
    """Everything kept alive for one browser session."""
    coordinator: SyncCoordinator
    identity: IdentityProvider
    storage: SessionCartStorage
    last_seen: float


class CartSessionRegistry:
    """
    Keeps the live coordinator (and its identity) for each session id.

    Sessions are kept in least-recently-used order. On every access, sessions
    idle for longer than session_ttl, and the oldest ones beyond max_sessions,
    are closed: pending remote writes drain and their broadcast subscriptions
    are dropped. The session cart itself stays in Redis until its own TTL.
    """

    def __init__(
        self,
        surface_factory: Callable[[], KeyValueSurface],
        remote_factory: Callable[[], Awaitable[RemoteCartStore]],
        config: Optional[SyncConfig] = None,
        broadcast: Optional[CartBroadcast] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._surface_factory = surface_factory
        self._remote_factory = remote_factory
        self._config = config
        self._broadcast = broadcast
        self._clock = clock
        self._sessions: "OrderedDict[str, CartSession]" = OrderedDict()
        self._lock = asyncio.Lock()

    @property
    def config(self) -> SyncConfig:
        return self._config or get_sync_config()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    async def session(self, session_id: str) -> CartSession:
        """Get the live session, opening it (and evicting idle ones) as needed."""
        async with self._lock:
            now = self._clock()
            session = self._sessions.get(session_id)
            if session is None:
                session = await self._open(session_id, now)
            else:
                session.last_seen = now
                self._sessions.move_to_end(session_id)
            expired = self._pop_expired(now)

        for expired_id, expired_session in expired:
            await self._close_session(expired_id, expired_session)
        return session

    async def get(self, session_id: str) -> SyncCoordinator:
        return (await self.session(session_id)).coordinator

    async def close(self) -> None:
        async with self._lock:
            sessions = list(self._sessions.items())
            self._sessions.clear()
        for session_id, session in sessions:
            await self._close_session(session_id, session)

    async def _open(self, session_id: str, now: float) -> CartSession:
        config = self.config
        identity = IdentityProvider()
        storage = SessionCartStorage(
            self._surface_factory(), session_id, broadcast=self._broadcast, ttl=config.session_ttl
        )
        remote = await self._remote_factory()
        coordinator = SyncCoordinator(
            store=CartStore(),
            storage=storage,
            remote=remote,
            identity=identity,
            config=config,
        )
        await coordinator.start()
        session = CartSession(coordinator=coordinator, identity=identity, storage=storage, last_seen=now)
        self._sessions[session_id] = session
        logger.info(f"Opened cart session {sanitize_id_for_logging(session_id)}")
        return session

    def _pop_expired(self, now: float) -> List[Tuple[str, CartSession]]:
        config = self.config
        expired = []
        while self._sessions:
            oldest_id, oldest = next(iter(self._sessions.items()))
            idle = now - oldest.last_seen > config.session_ttl
            if not idle and len(self._sessions) <= config.max_sessions:
                break
            self._sessions.popitem(last=False)
            expired.append((oldest_id, oldest))
        return expired

    async def _close_session(self, session_id: str, session: CartSession) -> None:
        await session.coordinator.close()
        session.storage.close()
        logger.info(f"Closed cart session {sanitize_id_for_logging(session_id)}")


async def _default_remote() -> RemoteCartStore:
    from bistro_cart.db import get_supabase
    client = await get_supabase()
    return RemoteCartStore(client, table=get_sync_config().remote_table)


def _default_surface() -> KeyValueSurface:
    from bistro_cart.db import get_redis
    return get_redis()


# ==================== LAZY SINGLETONS ====================

_registry: Optional[CartSessionRegistry] = None


def get_session_registry() -> CartSessionRegistry:
    """Get or create the process-wide CartSessionRegistry."""
    global _registry
    if _registry is None:
        _registry = CartSessionRegistry(_default_surface, _default_remote)
    return _registry


def require_session_id(x_session_id: Optional[str] = Header(None)) -> str:
    """Every cart request must name its browser session."""
    session_id = (x_session_id or "").strip()
    if not session_id:
        raise HTTPException(status_code=400, detail=f"{SESSION_HEADER} header is required")
    return session_id
