"""
FastAPI Routers Package

All routers are included in api/index.py.
"""

from bistro_cart.routers.cart import router as cart_router

__all__ = [
    "cart_router",
]
