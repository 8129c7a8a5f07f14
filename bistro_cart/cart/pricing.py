"""
Cart pricing calculator.

Pure functions over (items, applied promo, pricing config). Everything is
computed at full Decimal precision; CartTotals.rounded() is the only place
amounts are quantized to cents.

Calculation order:
1. subtotal = sum of unit_price * quantity
2. discount = subtotal * promo rate (cart-wide)
3. tax on the discounted subtotal
4. delivery fee waived at or above the free-delivery threshold
"""
from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Iterable, Optional

from bistro_cart.config import PricingConfig, get_pricing_config
from bistro_cart.services.money import ZERO, multiply, round_money, subtract, to_float
from .models import CartSnapshot, LineItem, PromoCode


@dataclass(frozen=True)
class CartTotals:
    """Checkout totals for one cart snapshot."""
    subtotal: Decimal = ZERO
    discount: Decimal = ZERO
    discounted_subtotal: Decimal = ZERO
    tax: Decimal = ZERO
    delivery_fee: Decimal = ZERO
    total: Decimal = ZERO

    def rounded(self) -> "CartTotals":
        """Quantize every amount to cents (half up) for display or charging."""
        return CartTotals(**{f.name: round_money(getattr(self, f.name)) for f in fields(self)})

    def to_dict(self) -> dict:
        """Rounded amounts as floats for JSON responses."""
        rounded = self.rounded()
        return {f.name: to_float(getattr(rounded, f.name)) for f in fields(rounded)}


def calculate_subtotal(items: Iterable[LineItem]) -> Decimal:
    """Sum of line totals before any promo."""
    return sum((item.line_total for item in items), ZERO)


def calculate_totals(
    items: Iterable[LineItem],
    promo: Optional[PromoCode] = None,
    config: Optional[PricingConfig] = None,
) -> CartTotals:
    """Derive checkout totals. Deterministic: same inputs, identical output."""
    config = config or get_pricing_config()
    items = tuple(items)

    if not items:
        # Nothing to deliver; an empty cart prices to all zeros
        return CartTotals()

    subtotal = calculate_subtotal(items)
    discount = multiply(subtotal, promo.discount_rate) if promo else ZERO
    discounted_subtotal = subtract(subtotal, discount)
    tax = multiply(discounted_subtotal, config.tax_rate)

    if discounted_subtotal >= config.free_delivery_threshold:
        delivery_fee = ZERO
    else:
        delivery_fee = config.flat_delivery_fee

    return CartTotals(
        subtotal=subtotal,
        discount=discount,
        discounted_subtotal=discounted_subtotal,
        tax=tax,
        delivery_fee=delivery_fee,
        total=discounted_subtotal + tax + delivery_fee,
    )


def price_snapshot(snapshot: CartSnapshot, config: Optional[PricingConfig] = None) -> CartTotals:
    """Shortcut for pricing a whole snapshot."""
    return calculate_totals(snapshot.items, snapshot.applied_promo, config)
