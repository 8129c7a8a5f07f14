"""
Session identity.

The cart engine only needs to know whether a user identity is present and
what it is. Authentication itself happens elsewhere; whoever completes a
sign-in or sign-out calls sign_in()/sign_out() here and every subscriber is
awaited in registration order.
"""
from typing import Awaitable, Callable, List, Optional

from bistro_cart.logging import get_logger, sanitize_id_for_logging

logger = get_logger(__name__)

IdentityListener = Callable[[Optional[str], Optional[str]], Awaitable[None]]


class IdentityProvider:
    """Single nullable user id with change notifications."""

    def __init__(self, user_id: Optional[str] = None):
        self._user_id = user_id or None
        self._listeners: List[IdentityListener] = []

    @property
    def current(self) -> Optional[str]:
        return self._user_id

    @property
    def is_authenticated(self) -> bool:
        return self._user_id is not None

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """Register listener(new_user_id, old_user_id); returns unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def sign_in(self, user_id: str) -> None:
        if not user_id:
            raise ValueError("user_id must be a non-empty string")
        await self._set(user_id)

    async def sign_out(self) -> None:
        await self._set(None)

    async def _set(self, user_id: Optional[str]) -> None:
        old = self._user_id
        if old == user_id:
            return
        self._user_id = user_id
        logger.info(
            f"Identity changed: {sanitize_id_for_logging(old)} -> {sanitize_id_for_logging(user_id)}"
        )
        for listener in list(self._listeners):
            await listener(user_id, old)
