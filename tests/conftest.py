"""Pytest configuration and fixtures"""
import asyncio
import os
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from unittest.mock import AsyncMock, Mock

import pytest

# Set test environment variables
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test_key")
os.environ.setdefault("UPSTASH_REDIS_REST_URL", "https://test.upstash.io")
os.environ.setdefault("UPSTASH_REDIS_REST_TOKEN", "test_token")

from bistro_cart.cart.identity import IdentityProvider
from bistro_cart.cart.models import CartSnapshot, LineItem
from bistro_cart.cart.promos import PromoCatalog
from bistro_cart.cart.storage import CartBroadcast, SessionCartStorage
from bistro_cart.cart.store import CartStore
from bistro_cart.cart.sync import SyncCoordinator
from bistro_cart.config import PricingConfig, SyncConfig
from bistro_cart.errors import RemoteStoreError


class MemorySurface:
    """In-memory stand-in for the Upstash client (get/set/delete only)."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.expiry: Dict[str, Optional[int]] = {}
        self.fail_get = False
        self.fail_set = False

    async def get(self, key: str) -> Optional[str]:
        if self.fail_get:
            raise ConnectionError("redis down")
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        if self.fail_set:
            raise ConnectionError("redis down")
        self.data[key] = value
        self.expiry[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed


class FakeRemoteStore:
    """
    RemoteCartStore double keeping rows in a dict.

    read_failures / write_failures: number of upcoming calls that raise.
    read_gate: when set to an Event, get() waits for it before answering.
    """

    def __init__(self):
        self.rows: Dict[str, dict] = {}
        self.calls: List[Tuple[str, str, int]] = []
        self.read_failures = 0
        self.write_failures = 0
        self.read_gate: Optional[asyncio.Event] = None

    def seed(self, user_id: str, snapshot: CartSnapshot, version: int = 1) -> None:
        self.rows[user_id] = {**snapshot.to_dict(), "version": version}

    def snapshot_for(self, user_id: str) -> Optional[CartSnapshot]:
        row = self.rows.get(user_id)
        return CartSnapshot.from_dict(row) if row else None

    def ops(self) -> List[str]:
        return [op for op, _, _ in self.calls]

    def _maybe_fail_write(self) -> None:
        if self.write_failures > 0:
            self.write_failures -= 1
            raise RemoteStoreError("write refused")

    async def get(self, user_id: str) -> Optional[CartSnapshot]:
        self.calls.append(("get", user_id, 0))
        if self.read_gate is not None:
            await self.read_gate.wait()
        if self.read_failures > 0:
            self.read_failures -= 1
            raise RemoteStoreError("read refused")
        return self.snapshot_for(user_id)

    async def set(self, user_id: str, snapshot: CartSnapshot, version: int = 0) -> None:
        self.calls.append(("set", user_id, version))
        self._maybe_fail_write()
        self.rows[user_id] = {**snapshot.to_dict(), "version": version}

    async def patch(self, user_id: str, fields: dict, version: int = 0) -> bool:
        self.calls.append(("patch", user_id, version))
        self._maybe_fail_write()
        row = self.rows.get(user_id)
        if row is None:
            return False
        row.update(fields)
        row["version"] = version
        return True

    async def delete(self, user_id: str) -> None:
        self.calls.append(("delete", user_id, 0))
        self._maybe_fail_write()
        self.rows.pop(user_id, None)


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client"""
    client = Mock()

    # Mock table operations
    table_mock = Mock()
    table_mock.select.return_value = table_mock
    table_mock.update.return_value = table_mock
    table_mock.delete.return_value = table_mock
    table_mock.upsert.return_value = table_mock
    table_mock.eq.return_value = table_mock
    table_mock.limit.return_value = table_mock
    table_mock.execute = AsyncMock(return_value=Mock(data=[]))

    client.table.return_value = table_mock

    return client


@pytest.fixture
def pricing_config():
    """Current deployment pricing: 8% tax, free delivery from $30, else $3.99"""
    return PricingConfig()


@pytest.fixture
def sync_config():
    """No backoff and a single attempt so failures surface immediately"""
    return SyncConfig(retry_attempts=1, retry_wait=0)


@pytest.fixture
def broadcast():
    return CartBroadcast()


@pytest.fixture
def surface():
    return MemorySurface()


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def identity():
    return IdentityProvider()


@pytest.fixture
def storage(surface, broadcast):
    return SessionCartStorage(surface, "session-1", broadcast=broadcast)


@pytest.fixture
def coordinator(storage, remote, identity, pricing_config, sync_config):
    """Coordinator wired to in-memory storage and remote (call start() in the test)"""
    return SyncCoordinator(
        store=CartStore(),
        storage=storage,
        remote=remote,
        identity=identity,
        catalog=PromoCatalog(),
        pricing=pricing_config,
        config=sync_config,
    )


@pytest.fixture
def burger():
    """Sample line item"""
    return LineItem(id=1, name="Classic Burger", unit_price=Decimal("12.99"), image="/img/burger.jpg")


@pytest.fixture
def fries():
    """Sample line item"""
    return LineItem(id=2, name="Truffle Fries", unit_price=Decimal("8.99"))


@pytest.fixture
def salad():
    """Sample line item with a string id"""
    return LineItem(
        id="salad-7",
        name="Garden Salad",
        unit_price=Decimal("9.50"),
        customizations=("no onions",),
        special_requests="dressing on the side",
    )


@pytest.fixture
def session_registry(surface, remote, sync_config, broadcast):
    """Registry whose sessions share one in-memory Redis and one fake remote"""
    from bistro_cart.routers.deps import CartSessionRegistry

    async def remote_factory():
        return remote

    return CartSessionRegistry(lambda: surface, remote_factory, config=sync_config, broadcast=broadcast)
