"""
Read-only cart views.

A CartReader follows one session's cart through its own persistence adapter:
it rehydrates from session storage once, then picks up every change broadcast
by whichever component mutated the cart. A navigation badge and the full cart
page can each hold a reader without knowing about each other.
"""
from typing import Callable, List, Optional

from bistro_cart.config import PricingConfig
from .models import EMPTY_CART, CartSnapshot
from .pricing import CartTotals, price_snapshot
from .storage import SessionCartStorage

ReaderCallback = Callable[[CartSnapshot], None]


class CartReader:
    """Independent, read-only view of a session cart."""

    def __init__(self, storage: SessionCartStorage, pricing: Optional[PricingConfig] = None):
        self._storage = storage
        self._pricing = pricing
        self._snapshot = EMPTY_CART
        self._callbacks: List[ReaderCallback] = []
        self._unsubscribe = storage.on_external_change(self._on_change)

    async def refresh(self) -> CartSnapshot:
        """Re-read session storage (e.g. on first render)."""
        snapshot = await self._storage.load()
        self._on_change(snapshot or EMPTY_CART)
        return self._snapshot

    @property
    def snapshot(self) -> CartSnapshot:
        return self._snapshot

    @property
    def item_count(self) -> int:
        return self._snapshot.item_count

    def totals(self) -> CartTotals:
        return price_snapshot(self._snapshot, self._pricing)

    def on_change(self, callback: ReaderCallback) -> None:
        self._callbacks.append(callback)

    def close(self) -> None:
        self._unsubscribe()
        self._callbacks.clear()

    def _on_change(self, snapshot: CartSnapshot) -> None:
        self._snapshot = snapshot
        for callback in list(self._callbacks):
            callback(snapshot)
