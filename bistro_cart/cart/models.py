"""Cart models with Decimal-based pricing."""
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Optional, Tuple, Union

from bistro_cart.errors import (
    ERROR_CUSTOMIZATIONS_INVALID,
    ERROR_PRICE_NOT_NUMBER,
    ERROR_QUANTITY_NOT_INT,
    InvalidCartItemError,
)
from bistro_cart.services.money import ZERO, multiply, parse_decimal, to_decimal

ItemId = Union[int, str]


def _parse_quantity(value: Any) -> int:
    # 2.0 from JSON is a whole quantity; 2.7 is not
    if isinstance(value, bool):
        raise InvalidCartItemError("quantity", ERROR_QUANTITY_NOT_INT)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise InvalidCartItemError("quantity", ERROR_QUANTITY_NOT_INT)


@dataclass(frozen=True)
class LineItem:
    """Single menu item in the cart."""
    id: ItemId
    name: str
    unit_price: Decimal
    quantity: int = 1
    image: str = ""
    image_alt: str = ""
    customizations: Tuple[str, ...] = ()
    special_requests: Optional[str] = None

    def __post_init__(self):
        # Normalize numeric and sequence fields
        try:
            object.__setattr__(self, "unit_price", parse_decimal(self.unit_price))
        except ValueError:
            raise InvalidCartItemError("unit_price", ERROR_PRICE_NOT_NUMBER)
        customizations = self.customizations
        if customizations is None:
            customizations = ()
        if isinstance(customizations, str) or not all(isinstance(c, str) for c in customizations):
            raise InvalidCartItemError("customizations", ERROR_CUSTOMIZATIONS_INVALID)
        object.__setattr__(self, "customizations", tuple(customizations))

    @property
    def line_total(self) -> Decimal:
        """Price for all units, full precision."""
        return multiply(self.unit_price, self.quantity)

    def with_quantity(self, quantity: int) -> "LineItem":
        return replace(self, quantity=quantity)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
            "image": self.image,
            "image_alt": self.image_alt,
            "customizations": list(self.customizations),
            "special_requests": self.special_requests,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LineItem":
        """Create from dictionary (also accepts the browser client's camelCase keys)."""
        price = data["unit_price"] if "unit_price" in data else data["price"]
        return cls(
            id=data["id"],
            name=data["name"],
            unit_price=price,
            quantity=_parse_quantity(data.get("quantity", 1)),
            image=data.get("image") or "",
            image_alt=data.get("image_alt", data.get("imageAlt")) or "",
            customizations=tuple(data.get("customizations") or ()),
            special_requests=data.get("special_requests", data.get("specialRequests")),
        )


@dataclass(frozen=True)
class PromoCode:
    """Named discount rule with a minimum-order gate."""
    code: str
    discount_rate: Decimal
    description: str = ""
    minimum_order_subtotal: Decimal = ZERO

    def __post_init__(self):
        code = (self.code or "").strip().upper()
        if not code:
            raise ValueError("promo code cannot be empty")
        rate = parse_decimal(self.discount_rate)
        if rate < 0 or rate >= 1:
            raise ValueError(f"discount_rate for {code} must be in [0, 1)")
        minimum = parse_decimal(self.minimum_order_subtotal)
        if minimum < 0:
            raise ValueError(f"minimum_order_subtotal for {code} cannot be negative")
        object.__setattr__(self, "code", code)
        object.__setattr__(self, "discount_rate", rate)
        object.__setattr__(self, "minimum_order_subtotal", minimum)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "discount_rate": str(self.discount_rate),
            "description": self.description,
            "minimum_order_subtotal": str(self.minimum_order_subtotal),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PromoCode":
        rate = data["discount_rate"] if "discount_rate" in data else data["discount"]
        minimum = data.get("minimum_order_subtotal", data.get("minOrder", 0))
        return cls(
            code=data["code"],
            discount_rate=to_decimal(rate),
            description=data.get("description", ""),
            minimum_order_subtotal=to_decimal(minimum),
        )


@dataclass(frozen=True)
class CartSnapshot:
    """
    Immutable view of the cart at one point in time.

    Items keep insertion order. Every store transition produces a new
    snapshot, so readers compare by identity to detect changes.
    """
    items: Tuple[LineItem, ...] = field(default_factory=tuple)
    applied_promo: Optional[PromoCode] = None

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def item_count(self) -> int:
        """Total number of units in cart (navigation badge)."""
        return sum(item.quantity for item in self.items)

    def find(self, item_id: ItemId) -> Optional[LineItem]:
        return next((item for item in self.items if item.id == item_id), None)

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "items": [item.to_dict() for item in self.items],
            "applied_promo": self.applied_promo.to_dict() if self.applied_promo else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartSnapshot":
        """Create from dictionary."""
        items = tuple(LineItem.from_dict(item) for item in data.get("items") or [])
        promo_data = data.get("applied_promo", data.get("appliedPromo"))
        return cls(
            items=items,
            applied_promo=PromoCode.from_dict(promo_data) if promo_data else None,
        )


EMPTY_CART = CartSnapshot()
