"""Cart package: models, store, pricing, persistence and the sync coordinator."""
from .models import CartSnapshot, LineItem, PromoCode
from .pricing import CartTotals, calculate_totals, price_snapshot
from .promos import PromoCatalog, get_promo_catalog
from .store import CartStore
from .sync import PromoValidationResult, SyncCoordinator, SyncState

__all__ = [
    "CartSnapshot",
    "LineItem",
    "PromoCode",
    "CartTotals",
    "calculate_totals",
    "price_snapshot",
    "PromoCatalog",
    "get_promo_catalog",
    "CartStore",
    "PromoValidationResult",
    "SyncCoordinator",
    "SyncState",
]
