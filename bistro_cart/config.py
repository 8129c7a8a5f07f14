"""
Cart engine configuration.

Pricing constants and sync tuning are read from the environment once and
held in frozen objects, so every call site shares a single source of truth.
"""
import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from bistro_cart.services.money import parse_decimal


# Defaults (current deployment)
DEFAULT_TAX_RATE = "0.08"
DEFAULT_FREE_DELIVERY_THRESHOLD = "30.00"
DEFAULT_FLAT_DELIVERY_FEE = "3.99"

DEFAULT_REMOTE_TABLE = "carts"
DEFAULT_REMOTE_RETRY_ATTEMPTS = 3
DEFAULT_REMOTE_RETRY_WAIT = 0.2  # seconds, first backoff step
DEFAULT_SESSION_TTL = 86400  # 24 hours
DEFAULT_MAX_SESSIONS = 10000  # live sessions kept in one process


def _env_decimal(name: str, default: str) -> Decimal:
    raw = os.environ.get(name, default)
    try:
        return parse_decimal(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass(frozen=True)
class PricingConfig:
    """Flat-rate pricing constants used by the pricing calculator."""
    tax_rate: Decimal = Decimal(DEFAULT_TAX_RATE)
    free_delivery_threshold: Decimal = Decimal(DEFAULT_FREE_DELIVERY_THRESHOLD)
    flat_delivery_fee: Decimal = Decimal(DEFAULT_FLAT_DELIVERY_FEE)

    def __post_init__(self):
        for name in ("tax_rate", "free_delivery_threshold", "flat_delivery_fee"):
            value = parse_decimal(getattr(self, name))
            if value < 0:
                raise ValueError(f"{name} cannot be negative")
            object.__setattr__(self, name, value)

    @classmethod
    def from_env(cls) -> "PricingConfig":
        return cls(
            tax_rate=_env_decimal("CART_TAX_RATE", DEFAULT_TAX_RATE),
            free_delivery_threshold=_env_decimal(
                "CART_FREE_DELIVERY_THRESHOLD", DEFAULT_FREE_DELIVERY_THRESHOLD
            ),
            flat_delivery_fee=_env_decimal("CART_FLAT_DELIVERY_FEE", DEFAULT_FLAT_DELIVERY_FEE),
        )


@dataclass(frozen=True)
class SyncConfig:
    """Remote sync and session storage tuning."""
    remote_table: str = DEFAULT_REMOTE_TABLE
    retry_attempts: int = DEFAULT_REMOTE_RETRY_ATTEMPTS
    retry_wait: float = DEFAULT_REMOTE_RETRY_WAIT
    session_ttl: int = DEFAULT_SESSION_TTL
    max_sessions: int = DEFAULT_MAX_SESSIONS

    def __post_init__(self):
        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")
        if self.retry_wait < 0:
            raise ValueError("retry_wait cannot be negative")
        if self.session_ttl < 1:
            raise ValueError("session_ttl must be positive")
        if self.max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")

    @classmethod
    def from_env(cls) -> "SyncConfig":
        return cls(
            remote_table=os.environ.get("CART_REMOTE_TABLE", DEFAULT_REMOTE_TABLE),
            retry_attempts=_env_int("CART_REMOTE_RETRY_ATTEMPTS", DEFAULT_REMOTE_RETRY_ATTEMPTS),
            retry_wait=_env_float("CART_REMOTE_RETRY_WAIT", DEFAULT_REMOTE_RETRY_WAIT),
            session_ttl=_env_int("CART_SESSION_TTL", DEFAULT_SESSION_TTL),
            max_sessions=_env_int("CART_MAX_SESSIONS", DEFAULT_MAX_SESSIONS),
        )


# Loaded lazily so tests can tweak the environment first
_pricing_config: Optional[PricingConfig] = None
_sync_config: Optional[SyncConfig] = None


def get_pricing_config() -> PricingConfig:
    """Get PricingConfig singleton."""
    global _pricing_config
    if _pricing_config is None:
        _pricing_config = PricingConfig.from_env()
    return _pricing_config


def get_sync_config() -> SyncConfig:
    """Get SyncConfig singleton."""
    global _sync_config
    if _sync_config is None:
        _sync_config = SyncConfig.from_env()
    return _sync_config
