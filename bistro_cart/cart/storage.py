"""
Session-scoped cart persistence.

The cart snapshot is saved under a per-session key with a TTL (the session
lifetime), so it survives navigation but not much else. In production the
key-value surface is Upstash Redis; anything with async get/set/delete works.

CartBroadcast is the same-process notification channel: every save publishes
the new snapshot to the other adapters attached to the same session, which is
how independent views (navigation badge, cart page) converge without being
wired to each other.
"""
import json
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Protocol

from bistro_cart.config import DEFAULT_SESSION_TTL
from bistro_cart.db import RedisKeys
from bistro_cart.logging import get_logger, sanitize_id_for_logging
from .models import CartSnapshot
from .store import validate_snapshot

logger = get_logger(__name__)

ChangeCallback = Callable[[CartSnapshot], None]


class KeyValueSurface(Protocol):
    """The subset of the Upstash async client the adapter relies on."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> object: ...

    async def delete(self, *keys: str) -> int: ...


class CartBroadcast:
    """In-process fan-out of cart changes, keyed by session id."""

    def __init__(self):
        self._listeners: Dict[str, List[tuple[object, ChangeCallback]]] = defaultdict(list)

    def subscribe(self, session_id: str, origin: object, callback: ChangeCallback) -> Callable[[], None]:
        entry = (origin, callback)
        self._listeners[session_id].append(entry)

        def unsubscribe() -> None:
            listeners = self._listeners.get(session_id, [])
            if entry in listeners:
                listeners.remove(entry)
            if not listeners:
                self._listeners.pop(session_id, None)

        return unsubscribe

    def publish(self, session_id: str, origin: object, snapshot: CartSnapshot) -> int:
        """Deliver snapshot to every listener except the publisher. Returns delivery count."""
        delivered = 0
        for listener_origin, callback in list(self._listeners.get(session_id, [])):
            if listener_origin is origin:
                continue
            try:
                callback(snapshot)
                delivered += 1
            except Exception as e:
                logger.error(f"Cart change listener failed: {e}", exc_info=True)
        return delivered


_broadcast: Optional[CartBroadcast] = None


def get_cart_broadcast() -> CartBroadcast:
    """Get process-wide CartBroadcast singleton."""
    global _broadcast
    if _broadcast is None:
        _broadcast = CartBroadcast()
    return _broadcast


class SessionCartStorage:
    """
    Persistence adapter for one session's cart.

    Features:
    - load() rehydrates the provisional local cart at session start
    - save() after every local mutation, then notifies sibling adapters
    - corrupted stored data is dropped rather than propagated
    """

    def __init__(
        self,
        surface: KeyValueSurface,
        session_id: str,
        broadcast: Optional[CartBroadcast] = None,
        ttl: int = DEFAULT_SESSION_TTL,
    ):
        if not session_id:
            raise ValueError("session_id must be a non-empty string")
        self.surface = surface
        self.session_id = session_id
        self.broadcast = broadcast or get_cart_broadcast()
        self.ttl = ttl
        self._unsubscribers: List[Callable[[], None]] = []

    @property
    def key(self) -> str:
        return RedisKeys.session_cart_key(self.session_id)

    async def load(self) -> Optional[CartSnapshot]:
        """Read the session's cart; None when absent, corrupted, invalid or unreachable."""
        try:
            data = await self.surface.get(self.key)
        except Exception as e:
            logger.warning(
                f"Session cart unavailable for {sanitize_id_for_logging(self.session_id)}: {e}"
            )
            return None

        if not data:
            return None

        try:
            snapshot = CartSnapshot.from_dict(json.loads(data))
            validate_snapshot(snapshot)
            return snapshot
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            # Corrupted data - clear it and start empty
            logger.warning(
                f"Corrupted session cart for {sanitize_id_for_logging(self.session_id)}: {e}"
            )
            try:
                await self.surface.delete(self.key)
            except Exception as delete_error:
                logger.warning(f"Failed to drop corrupted session cart: {delete_error}")
            return None

    async def save(self, snapshot: CartSnapshot) -> bool:
        """
        Store the snapshot and notify sibling adapters.

        Returns:
            False if the write failed; the broadcast is sent either way.
        """
        saved = True
        try:
            await self.surface.set(self.key, json.dumps(snapshot.to_dict()), ex=self.ttl)
        except Exception as e:
            saved = False
            logger.warning(
                f"Failed to save session cart for {sanitize_id_for_logging(self.session_id)}: {e}"
            )
        self.broadcast.publish(self.session_id, self, snapshot)
        return saved

    def on_external_change(self, callback: ChangeCallback) -> Callable[[], None]:
        """Call callback with snapshots saved by other adapters of this session."""
        unsubscribe = self.broadcast.subscribe(self.session_id, self, callback)
        self._unsubscribers.append(unsubscribe)
        return unsubscribe

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
