"""
Cart Router

Session cart endpoints. Every mutation commits to the session cart
immediately; remote sync for signed-in users happens in the background, so
responses never wait on the remote store.

Response format:
- Amounts are rounded to cents at this boundary only
- sync_state tells the front end whether the cart is mirrored remotely
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from bistro_cart.cart.models import CartSnapshot, ItemId, LineItem
from bistro_cart.cart.sync import SyncCoordinator
from bistro_cart.errors import InvalidCartItemError
from bistro_cart.logging import get_logger
from bistro_cart.services.money import to_float
from .deps import CartSessionRegistry, get_session_registry, require_session_id
from .models import AddToCartRequest, ApplyPromoRequest, IdentityRequest, UpdateCartItemRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["cart"])


async def get_coordinator(
    session_id: str = Depends(require_session_id),
    registry: CartSessionRegistry = Depends(get_session_registry),
) -> SyncCoordinator:
    return await registry.get(session_id)


def _format_cart_response(coordinator: SyncCoordinator) -> dict:
    snapshot = coordinator.snapshot
    promo = snapshot.applied_promo
    return {
        "items": [
            {
                **item.to_dict(),
                "unit_price": to_float(item.unit_price),
                "line_total": to_float(item.line_total),
            }
            for item in snapshot.items
        ],
        "item_count": snapshot.item_count,
        "applied_promo": {
            "code": promo.code,
            "description": promo.description,
            "discount_rate": to_float(promo.discount_rate),
        } if promo else None,
        "totals": coordinator.totals().to_dict(),
        "sync_state": coordinator.state.value,
    }


def _resolve_item_id(snapshot: CartSnapshot, raw_id: str) -> Optional[ItemId]:
    """Path params arrive as text; match them against int or str ids."""
    for item in snapshot.items:
        if str(item.id) == raw_id:
            return item.id
    return None


def _bad_item(error: InvalidCartItemError) -> HTTPException:
    return HTTPException(status_code=400, detail={"field": error.field, "reason": error.reason})


@router.get("/cart")
async def get_cart(coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Get the session cart with checkout totals."""
    return _format_cart_response(coordinator)


@router.post("/cart/add")
async def add_to_cart(request: AddToCartRequest, coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Add an item (merges with an existing line of the same id)."""
    try:
        item = LineItem(
            id=request.id,
            name=request.name,
            unit_price=request.price,
            image=request.image,
            image_alt=request.image_alt,
            customizations=tuple(request.customizations),
            special_requests=request.special_requests,
        )
        await coordinator.add_item(item, request.quantity)
    except InvalidCartItemError as e:
        raise _bad_item(e)
    return _format_cart_response(coordinator)


@router.patch("/cart/item")
async def update_cart_item(
    request: UpdateCartItemRequest, coordinator: SyncCoordinator = Depends(get_coordinator)
):
    """Update item quantity (0 = remove)."""
    try:
        await coordinator.update_quantity(request.id, request.quantity)
    except InvalidCartItemError as e:
        raise _bad_item(e)
    return _format_cart_response(coordinator)


@router.delete("/cart/item/{item_id}")
async def remove_cart_item(item_id: str, coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Remove an item; unknown ids are a no-op."""
    resolved = _resolve_item_id(coordinator.snapshot, item_id)
    if resolved is not None:
        await coordinator.remove_item(resolved)
    return _format_cart_response(coordinator)


@router.post("/cart/promo/apply")
async def apply_cart_promo(request: ApplyPromoRequest, coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Apply promo code to cart."""
    result = await coordinator.apply_promo(request.code)
    if not result.valid:
        raise HTTPException(
            status_code=400,
            detail={
                "reason": result.reason,
                "message": result.error_message,
                "shortfall": to_float(result.shortfall) if result.shortfall is not None else None,
            },
        )
    return _format_cart_response(coordinator)


@router.post("/cart/promo/remove")
async def remove_cart_promo(coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Remove promo code from cart."""
    await coordinator.remove_promo()
    return _format_cart_response(coordinator)


@router.delete("/cart")
async def clear_cart(coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Clear the cart (after checkout or on explicit request)."""
    await coordinator.clear()
    return _format_cart_response(coordinator)


@router.put("/cart/identity")
async def set_cart_identity(
    request: IdentityRequest,
    session_id: str = Depends(require_session_id),
    registry: CartSessionRegistry = Depends(get_session_registry),
):
    """Attach (sign-in) or detach (sign-out) a user identity for this session."""
    session = await registry.session(session_id)
    if request.user_id:
        await session.identity.sign_in(request.user_id)
    else:
        await session.identity.sign_out()
    return _format_cart_response(session.coordinator)
