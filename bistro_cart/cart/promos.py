"""
Promo code catalog.

A closed table supplied by configuration; codes are never validated over the
network. Deployments can add or override codes with CART_PROMO_CODES, a JSON
object mapping code -> {"discount_rate", "description", "minimum_order_subtotal"}.
"""
import json
import os
from decimal import Decimal
from typing import Dict, Iterable, Mapping, Optional

from bistro_cart.logging import get_logger
from .models import PromoCode

logger = get_logger(__name__)


DEFAULT_PROMO_CODES = (
    PromoCode("SAVE10", Decimal("0.10"), "10% off your order", Decimal("20")),
    PromoCode("FIRST20", Decimal("0.20"), "20% off first order", Decimal("25")),
    PromoCode("WELCOME15", Decimal("0.15"), "15% off welcome offer", Decimal("15")),
)


def normalize_code(code: Optional[str]) -> str:
    """Codes are matched case-insensitively, ignoring surrounding whitespace."""
    return (code or "").strip().upper()


class PromoCatalog:
    """Lookup table of promo codes keyed by normalized code."""

    def __init__(self, promos: Iterable[PromoCode] = DEFAULT_PROMO_CODES):
        self._promos: Dict[str, PromoCode] = {}
        for promo in promos:
            self._promos[promo.code] = promo

    def __contains__(self, code: str) -> bool:
        return normalize_code(code) in self._promos

    def __len__(self) -> int:
        return len(self._promos)

    def lookup(self, code: str) -> Optional[PromoCode]:
        return self._promos.get(normalize_code(code))

    def codes(self) -> list[str]:
        return list(self._promos)

    @classmethod
    def from_mapping(cls, data: Mapping[str, dict], base: Iterable[PromoCode] = ()) -> "PromoCatalog":
        """Build a catalog from a code -> fields mapping, layered over base."""
        promos = {promo.code: promo for promo in base}
        for code, fields in data.items():
            promo = PromoCode.from_dict({**fields, "code": code})
            promos[promo.code] = promo
        return cls(promos.values())

    @classmethod
    def from_env(cls) -> "PromoCatalog":
        raw = os.environ.get("CART_PROMO_CODES", "").strip()
        if not raw:
            return cls()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"CART_PROMO_CODES is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise ValueError("CART_PROMO_CODES must be a JSON object")
        catalog = cls.from_mapping(data, base=DEFAULT_PROMO_CODES)
        logger.info(f"Loaded promo catalog with {len(catalog)} codes")
        return catalog


_catalog: Optional[PromoCatalog] = None


def get_promo_catalog() -> PromoCatalog:
    """Get PromoCatalog singleton."""
    global _catalog
    if _catalog is None:
        _catalog = PromoCatalog.from_env()
    return _catalog
