"""
Cart store - the in-session snapshot of the cart.

Every operation is a synchronous transition that swaps in a new immutable
CartSnapshot; the previous snapshot is never touched. Operations that change
nothing return the current snapshot object unchanged. Subscribers are told
about every effective change.
"""
from typing import Callable, List, Optional

from bistro_cart.errors import (
    ERROR_ITEM_ID_DUPLICATE,
    ERROR_ITEM_ID_INVALID,
    ERROR_ITEM_NAME_INVALID,
    ERROR_PRICE_NEGATIVE,
    ERROR_PROMO_BELOW_MINIMUM,
    ERROR_QUANTITY_BELOW_ONE,
    ERROR_QUANTITY_NOT_INT,
    PROMO_REASON_BELOW_MINIMUM,
    InvalidCartItemError,
    PromoRejectedError,
)
from bistro_cart.logging import get_logger
from bistro_cart.services.money import round_money, subtract
from .models import EMPTY_CART, CartSnapshot, ItemId, LineItem, PromoCode
from .pricing import calculate_subtotal

logger = get_logger(__name__)

Subscriber = Callable[[CartSnapshot], None]


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_item_id(item_id: ItemId) -> None:
    if _is_int(item_id):
        return
    if isinstance(item_id, str) and item_id.strip():
        return
    raise InvalidCartItemError("id", ERROR_ITEM_ID_INVALID)


def validate_line_item(item: LineItem) -> None:
    """Reject malformed items before they reach the snapshot."""
    validate_item_id(item.id)
    if not isinstance(item.name, str) or not item.name.strip():
        raise InvalidCartItemError("name", ERROR_ITEM_NAME_INVALID)
    if item.unit_price < 0:
        raise InvalidCartItemError("unit_price", ERROR_PRICE_NEGATIVE)
    if not _is_int(item.quantity):
        raise InvalidCartItemError("quantity", ERROR_QUANTITY_NOT_INT)


def validate_snapshot(snapshot: CartSnapshot) -> None:
    """
    Check a snapshot that did not come from a store transition
    (session storage, the remote record, a sibling view).

    Raises:
        InvalidCartItemError: malformed item, quantity below 1 or repeated id
    """
    seen = set()
    for item in snapshot.items:
        validate_line_item(item)
        if item.quantity < 1:
            raise InvalidCartItemError("quantity", ERROR_QUANTITY_BELOW_ONE)
        if item.id in seen:
            raise InvalidCartItemError("id", ERROR_ITEM_ID_DUPLICATE)
        seen.add(item.id)


class CartStore:
    """Holds the current CartSnapshot and applies transitions to it."""

    def __init__(self, snapshot: Optional[CartSnapshot] = None):
        self._snapshot = snapshot or EMPTY_CART
        self._subscribers: List[Subscriber] = []

    @property
    def snapshot(self) -> CartSnapshot:
        return self._snapshot

    # ==================== Observers ====================

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a change callback; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _commit(self, snapshot: CartSnapshot) -> CartSnapshot:
        if snapshot is self._snapshot:
            return snapshot
        self._snapshot = snapshot
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as e:
                # A broken reader must not undo or block the transition
                logger.error(f"Cart subscriber failed: {e}", exc_info=True)
        return snapshot

    # ==================== Transitions ====================

    def add_item(self, item: LineItem, quantity: Optional[int] = None) -> CartSnapshot:
        """
        Add an item, merging by id.

        The incoming quantity (argument, else item.quantity) is added to an
        existing line; anything below 1 counts as 1.
        """
        validate_line_item(item)
        if quantity is not None and not _is_int(quantity):
            raise InvalidCartItemError("quantity", ERROR_QUANTITY_NOT_INT)

        incoming = item.quantity if quantity is None else quantity
        incoming = max(incoming, 1)

        current = self._snapshot
        existing = current.find(item.id)
        if existing is not None:
            merged = existing.with_quantity(existing.quantity + incoming)
            items = tuple(merged if line.id == item.id else line for line in current.items)
        else:
            items = current.items + (item.with_quantity(incoming),)

        return self._commit(CartSnapshot(items=items, applied_promo=current.applied_promo))

    def update_quantity(self, item_id: ItemId, new_quantity: int) -> CartSnapshot:
        """Set a line's quantity; zero or below removes it. Unknown ids are ignored."""
        validate_item_id(item_id)
        if not _is_int(new_quantity):
            raise InvalidCartItemError("quantity", ERROR_QUANTITY_NOT_INT)

        if new_quantity <= 0:
            return self.remove_item(item_id)

        current = self._snapshot
        existing = current.find(item_id)
        if existing is None or existing.quantity == new_quantity:
            return current

        items = tuple(
            line.with_quantity(new_quantity) if line.id == item_id else line
            for line in current.items
        )
        return self._commit(CartSnapshot(items=items, applied_promo=current.applied_promo))

    def remove_item(self, item_id: ItemId) -> CartSnapshot:
        validate_item_id(item_id)
        current = self._snapshot
        if current.find(item_id) is None:
            return current
        items = tuple(line for line in current.items if line.id != item_id)
        return self._commit(CartSnapshot(items=items, applied_promo=current.applied_promo))

    def apply_promo(self, promo: PromoCode) -> CartSnapshot:
        """
        Apply a promo, replacing any current one.

        Raises:
            PromoRejectedError: subtotal is below the promo's minimum order
        """
        current = self._snapshot
        subtotal = calculate_subtotal(current.items)
        minimum = promo.minimum_order_subtotal
        if subtotal < minimum:
            shortfall = subtract(minimum, subtotal)
            raise PromoRejectedError(
                code=promo.code,
                reason=PROMO_REASON_BELOW_MINIMUM,
                message=ERROR_PROMO_BELOW_MINIMUM.format(minimum=round_money(minimum)),
                shortfall=shortfall,
                minimum_order=minimum,
            )
        if current.applied_promo == promo:
            return current
        return self._commit(CartSnapshot(items=current.items, applied_promo=promo))

    def remove_promo(self) -> CartSnapshot:
        current = self._snapshot
        if current.applied_promo is None:
            return current
        return self._commit(CartSnapshot(items=current.items, applied_promo=None))

    def clear(self) -> CartSnapshot:
        """Empty the cart and drop the promo (checkout or explicit user action)."""
        if self._snapshot.is_empty and self._snapshot.applied_promo is None:
            return self._snapshot
        return self._commit(EMPTY_CART)

    def replace(self, snapshot: CartSnapshot) -> CartSnapshot:
        """Swap in a snapshot loaded from storage or the remote record."""
        validate_snapshot(snapshot)
        if snapshot == self._snapshot:
            return self._snapshot
        return self._commit(snapshot)
