"""
Bistro Cart - Main FastAPI Application

Single entry point for the cart API.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bistro_cart.logging import get_logger
from bistro_cart.routers import cart_router
from bistro_cart.routers.deps import get_session_registry

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    # Startup
    yield
    # Shutdown: let pending remote writes finish
    await get_session_registry().close()
    logger.info("Cart sessions closed")


app = FastAPI(
    title="Bistro Cart API",
    description="Session cart with remote sync and checkout pricing",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(cart_router)


@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "ok", "service": "bistro-cart"}
