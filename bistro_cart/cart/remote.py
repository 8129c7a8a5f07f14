"""
Remote cart store backed by Supabase.

One row per signed-in user in the `carts` table:
    user_id (pk) | items (jsonb) | applied_promo (jsonb) | version (int) | updated_at

The whole cart is one record, so a write never merges per-item deltas.
All methods use async/await with supabase-py v2; any client failure is
re-raised as RemoteStoreError.
"""
from datetime import datetime, timezone
from typing import Any, Optional

from supabase._async.client import AsyncClient

from bistro_cart.config import DEFAULT_REMOTE_TABLE
from bistro_cart.errors import ERROR_REMOTE_UNAVAILABLE, RemoteStoreError
from bistro_cart.logging import get_logger, sanitize_id_for_logging
from .models import CartSnapshot

logger = get_logger(__name__)


class RemoteCartStore:
    """Cart record operations keyed by user id."""

    def __init__(self, client: AsyncClient, table: str = DEFAULT_REMOTE_TABLE) -> None:
        self.client = client
        self.table = table

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def _fail(self, action: str, user_id: str, error: Exception) -> RemoteStoreError:
        logger.error(
            f"Remote cart {action} failed for user {sanitize_id_for_logging(user_id)}: {error}"
        )
        return RemoteStoreError(f"{ERROR_REMOTE_UNAVAILABLE}: {error}")

    async def get(self, user_id: str) -> Optional[CartSnapshot]:
        """Return the user's cart, or None when no record exists."""
        try:
            result = await (
                self.client.table(self.table)
                .select("items, applied_promo, version")
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise self._fail("read", user_id, e)

        if not result.data:
            return None
        try:
            return CartSnapshot.from_dict(result.data[0])
        except (KeyError, TypeError, ValueError) as e:
            # Unreadable record; treat it as a failed read so local state stays authoritative
            raise self._fail("decode", user_id, e)

    async def set(self, user_id: str, snapshot: CartSnapshot, version: int = 0) -> None:
        """Replace the whole record (upsert)."""
        row = {
            "user_id": user_id,
            **snapshot.to_dict(),
            "version": version,
            "updated_at": self._now(),
        }
        try:
            await self.client.table(self.table).upsert(row).execute()
        except Exception as e:
            raise self._fail("write", user_id, e)

    async def patch(self, user_id: str, fields: dict[str, Any], version: int = 0) -> bool:
        """
        Update some columns of an existing record.

        Returns:
            False when there was no record to update
        """
        update = {**fields, "version": version, "updated_at": self._now()}
        try:
            result = await (
                self.client.table(self.table)
                .update(update)
                .eq("user_id", user_id)
                .execute()
            )
        except Exception as e:
            raise self._fail("patch", user_id, e)
        return bool(result.data)

    async def delete(self, user_id: str) -> None:
        try:
            await self.client.table(self.table).delete().eq("user_id", user_id).execute()
        except Exception as e:
            raise self._fail("delete", user_id, e)
