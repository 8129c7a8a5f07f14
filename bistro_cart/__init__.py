"""
Bistro Cart

Shopping-cart state, sync and pricing engine for the restaurant ordering client:
- cart: snapshot store, pricing, promo catalog, session storage, remote sync
- db: Supabase (remote carts) and Upstash Redis (session carts) clients
- routers: FastAPI endpoints

Note: Imports are lazy so that loading the package does not open clients.
"""

__all__ = [
    "get_supabase",
    "get_redis",
    "SyncCoordinator",
    "calculate_totals",
]


def __getattr__(name):
    """Lazy attribute access for clean serverless loading."""
    if name == "get_supabase":
        from bistro_cart.db import get_supabase
        return get_supabase
    if name == "get_redis":
        from bistro_cart.db import get_redis
        return get_redis
    if name == "SyncCoordinator":
        from bistro_cart.cart.sync import SyncCoordinator
        return SyncCoordinator
    if name == "calculate_totals":
        from bistro_cart.cart.pricing import calculate_totals
        return calculate_totals
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
