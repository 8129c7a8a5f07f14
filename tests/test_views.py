"""Tests for read-only cart views"""
import pytest
from decimal import Decimal

from bistro_cart.cart.models import CartSnapshot
from bistro_cart.cart.storage import SessionCartStorage
from bistro_cart.cart.views import CartReader


@pytest.fixture
def reader(surface, broadcast, pricing_config):
    return CartReader(SessionCartStorage(surface, "session-1", broadcast=broadcast), pricing_config)


@pytest.mark.asyncio
async def test_reader_follows_coordinator(coordinator, reader, burger, fries):
    """A badge-style reader sees every change without being wired to the cart page."""
    await coordinator.start()
    seen = []
    reader.on_change(seen.append)

    await coordinator.add_item(burger, 2)
    await coordinator.add_item(fries)

    assert reader.snapshot == coordinator.snapshot
    assert reader.item_count == 3
    assert reader.totals().rounded().total == Decimal("37.77")
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_refresh_reads_session_storage(storage, reader, burger):
    await storage.save(CartSnapshot(items=(burger,)))
    reader.close()

    snapshot = await reader.refresh()

    assert snapshot.items == (burger,)
    assert reader.item_count == 1


@pytest.mark.asyncio
async def test_refresh_on_empty_session(reader):
    snapshot = await reader.refresh()

    assert snapshot.is_empty
    assert reader.totals().total == Decimal("0")


@pytest.mark.asyncio
async def test_closed_reader_stops_following(coordinator, reader, burger):
    await coordinator.start()
    reader.close()

    await coordinator.add_item(burger)

    assert reader.snapshot.is_empty
