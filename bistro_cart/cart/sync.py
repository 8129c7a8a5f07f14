"""
Sync coordinator - keeps the session cart and the remote cart record convergent.

States:
    ANONYMOUS    no user identity; the local store is the only owner
    SYNCING      identity resolved, remote read in flight
    SYNCED       every mutation is committed locally, then written remotely
    SYNC_FAILED  remote read failed; local changes are kept and the next
                 mutation retries the read before anything is written

Rules:
- Mutations commit to the CartStore first; remote writes are fire-and-forget
  and never roll back what the user sees.
- On sign-in a non-empty remote cart replaces the local one (remote wins,
  anonymous items are dropped). An empty remote cart is seeded from local.
- Remote writes go through one FIFO lock, so they land in issue order, and
  carry an increasing version stamp.
- A remote read whose identity is no longer current is discarded.
- A remote record that was never read is never overwritten: after a failed
  read the next mutation re-runs the read (remote wins or local seeds it).
"""
import asyncio
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Awaitable, Callable, Deque, List, Optional, Set, TypeVar

from pydantic import BaseModel
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from bistro_cart.config import PricingConfig, SyncConfig, get_sync_config
from bistro_cart.errors import (
    ERROR_PROMO_NOT_FOUND,
    PROMO_REASON_NOT_FOUND,
    InvalidCartItemError,
    PromoRejectedError,
    RemoteStoreError,
)
from bistro_cart.logging import get_logger, sanitize_id_for_logging, sanitize_code_for_logging
from .identity import IdentityProvider
from .models import CartSnapshot, ItemId, LineItem
from .pricing import CartTotals, price_snapshot
from .promos import PromoCatalog, get_promo_catalog, normalize_code
from .remote import RemoteCartStore
from .storage import SessionCartStorage
from .store import CartStore, validate_snapshot

logger = get_logger(__name__)

T = TypeVar("T")

# Upper bound for one backoff step between remote retries (seconds)
MAX_RETRY_WAIT = 2.0


class SyncState(str, Enum):
    ANONYMOUS = "anonymous"
    SYNCING = "syncing"
    SYNCED = "synced"
    SYNC_FAILED = "sync_failed"


class RemoteOp(str, Enum):
    PATCH_ITEMS = "patch_items"
    PATCH_PROMO = "patch_promo"
    SET = "set"
    DELETE = "delete"


@dataclass(frozen=True)
class SyncIssue:
    """A background sync failure kept for diagnostics."""
    kind: str  # "read" or "write"
    user_id: str
    operation: str
    error: str
    at: str


@dataclass(frozen=True)
class RemoteWrite:
    op: RemoteOp
    user_id: str
    snapshot: CartSnapshot
    version: int


class PromoValidationResult(BaseModel):
    """Result of applying a promo code to the session cart."""
    valid: bool
    code: Optional[str] = None
    description: Optional[str] = None
    discount_rate: Optional[Decimal] = None
    reason: Optional[str] = None  # not_found | below_minimum
    error_message: Optional[str] = None
    shortfall: Optional[Decimal] = None
    minimum_order: Optional[Decimal] = None


class SyncCoordinator:
    """Routes cart mutations to the local store and, when signed in, the remote record."""

    MAX_ISSUES = 50

    def __init__(
        self,
        store: CartStore,
        storage: SessionCartStorage,
        remote: RemoteCartStore,
        identity: IdentityProvider,
        catalog: Optional[PromoCatalog] = None,
        pricing: Optional[PricingConfig] = None,
        config: Optional[SyncConfig] = None,
    ):
        self._store = store
        self._storage = storage
        self._remote = remote
        self._identity = identity
        self._catalog = catalog or get_promo_catalog()
        self._pricing = pricing
        self._config = config or get_sync_config()

        self._state = SyncState.ANONYMOUS
        self._user_id: Optional[str] = None
        self._epoch = 0
        self._version = 0
        self._needs_full_write = False
        self._write_lock = asyncio.Lock()
        self._pending: Set[asyncio.Task] = set()
        self._issues: Deque[SyncIssue] = deque(maxlen=self.MAX_ISSUES)
        self._unsubscribers: List[Callable[[], None]] = []
        self._started = False

    # ==================== Read access ====================

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def snapshot(self) -> CartSnapshot:
        return self._store.snapshot

    @property
    def store(self) -> CartStore:
        return self._store

    @property
    def issues(self) -> List[SyncIssue]:
        return list(self._issues)

    def totals(self) -> CartTotals:
        return price_snapshot(self._store.snapshot, self._pricing)

    # ==================== Lifecycle ====================

    async def start(self) -> None:
        """Rehydrate from session storage, then reconcile if already signed in."""
        if self._started:
            return
        self._started = True

        seed = await self._storage.load()
        if seed is not None:
            self._store.replace(seed)

        self._unsubscribers.append(self._identity.subscribe(self._on_identity_change))
        self._unsubscribers.append(self._storage.on_external_change(self._on_external_change))

        if self._identity.current is not None:
            await self._on_identity_change(self._identity.current, None)

    async def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        await self.drain()

    async def drain(self) -> None:
        """Wait until every outstanding remote read and write has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ==================== Mutations ====================

    async def add_item(self, item: LineItem, quantity: Optional[int] = None) -> CartSnapshot:
        before = self._store.snapshot
        snapshot = self._store.add_item(item, quantity)
        await self._after_mutation(before, snapshot, RemoteOp.PATCH_ITEMS)
        return snapshot

    async def update_quantity(self, item_id: ItemId, new_quantity: int) -> CartSnapshot:
        before = self._store.snapshot
        snapshot = self._store.update_quantity(item_id, new_quantity)
        await self._after_mutation(before, snapshot, RemoteOp.PATCH_ITEMS)
        return snapshot

    async def remove_item(self, item_id: ItemId) -> CartSnapshot:
        before = self._store.snapshot
        snapshot = self._store.remove_item(item_id)
        await self._after_mutation(before, snapshot, RemoteOp.PATCH_ITEMS)
        return snapshot

    async def apply_promo(self, code: str) -> PromoValidationResult:
        """Look the code up in the catalog and apply it if the order qualifies."""
        normalized = normalize_code(code)
        promo = self._catalog.lookup(normalized)
        if promo is None:
            logger.info(f"Unknown promo code {sanitize_code_for_logging(normalized)}")
            return PromoValidationResult(
                valid=False,
                code=normalized or None,
                reason=PROMO_REASON_NOT_FOUND,
                error_message=ERROR_PROMO_NOT_FOUND,
            )

        before = self._store.snapshot
        try:
            snapshot = self._store.apply_promo(promo)
        except PromoRejectedError as e:
            return PromoValidationResult(
                valid=False,
                code=e.code,
                reason=e.reason,
                error_message=e.message,
                shortfall=e.shortfall,
                minimum_order=e.minimum_order,
            )

        await self._after_mutation(before, snapshot, RemoteOp.PATCH_PROMO)
        return PromoValidationResult(
            valid=True,
            code=promo.code,
            description=promo.description,
            discount_rate=promo.discount_rate,
            minimum_order=promo.minimum_order_subtotal,
        )

    async def remove_promo(self) -> CartSnapshot:
        before = self._store.snapshot
        snapshot = self._store.remove_promo()
        await self._after_mutation(before, snapshot, RemoteOp.PATCH_PROMO)
        return snapshot

    async def clear(self) -> CartSnapshot:
        """Empty the cart (successful checkout or explicit user action)."""
        before = self._store.snapshot
        snapshot = self._store.clear()
        await self._after_mutation(before, snapshot, RemoteOp.DELETE)
        return snapshot

    async def _after_mutation(self, before: CartSnapshot, after: CartSnapshot, op: RemoteOp) -> None:
        if after is before:
            return
        await self._storage.save(after)
        self._propagate(op, after)

    def _propagate(self, op: RemoteOp, snapshot: CartSnapshot) -> None:
        user_id = self._user_id
        if user_id is None or self._state == SyncState.SYNCING:
            # Anonymous, or the pending read will decide what the remote gets
            return
        if self._state == SyncState.SYNC_FAILED:
            # The remote record was never read; read it again instead of overwriting it
            self._state = SyncState.SYNCING
            self._spawn(self._reconcile(user_id, self._epoch))
            logger.info(f"Retrying remote cart read for user {sanitize_id_for_logging(user_id)}")
            return
        if op != RemoteOp.DELETE and self._needs_full_write:
            op = RemoteOp.SET
        self._enqueue(op, user_id, snapshot)

    def _on_external_change(self, snapshot: CartSnapshot) -> None:
        # Another view of this session already saved and propagated the change
        try:
            self._store.replace(snapshot)
        except InvalidCartItemError as e:
            logger.warning(f"Ignoring invalid cart from sibling view: {e}")

    # ==================== Identity ====================

    async def _on_identity_change(self, new_user_id: Optional[str], old_user_id: Optional[str]) -> None:
        self._epoch += 1
        if new_user_id is None:
            # Sign-out keeps the local cart for the rest of the session
            self._user_id = None
            self._state = SyncState.ANONYMOUS
            logger.info(f"Cart detached from user {sanitize_id_for_logging(old_user_id)}")
            return

        self._user_id = new_user_id
        self._state = SyncState.SYNCING
        self._spawn(self._reconcile(new_user_id, self._epoch))

    def _is_current(self, user_id: str, epoch: int) -> bool:
        return self._user_id == user_id and self._epoch == epoch

    async def _reconcile(self, user_id: str, epoch: int) -> None:
        try:
            remote = await self._with_retry(lambda: self._remote.get(user_id))
            if remote is not None:
                # A malformed remote record counts as a failed read
                validate_snapshot(remote)
        except (RemoteStoreError, InvalidCartItemError) as e:
            if not self._is_current(user_id, epoch):
                logger.debug(f"Dropping stale remote read failure for {sanitize_id_for_logging(user_id)}")
                return
            self._state = SyncState.SYNC_FAILED
            self._record("read", user_id, "get", e)
            logger.warning(
                f"Remote cart read failed for user {sanitize_id_for_logging(user_id)}; "
                f"continuing with local cart: {e}"
            )
            return

        if not self._is_current(user_id, epoch):
            logger.debug(f"Discarding stale remote cart for {sanitize_id_for_logging(user_id)}")
            return

        if remote is not None and not remote.is_empty:
            snapshot = self._store.replace(remote)
            self._state = SyncState.SYNCED
            await self._storage.save(snapshot)
            logger.info(
                f"Loaded remote cart for user {sanitize_id_for_logging(user_id)} "
                f"({len(snapshot.items)} items)"
            )
            return

        self._state = SyncState.SYNCED
        local = self._store.snapshot
        if not local.is_empty:
            self._enqueue(RemoteOp.SET, user_id, local)
            logger.info(f"Seeded remote cart for user {sanitize_id_for_logging(user_id)} from session")

    # ==================== Remote writes ====================

    def _next_version(self) -> int:
        # Microsecond clock keeps versions comparable across devices; +1 keeps them strictly increasing here
        self._version = max(self._version + 1, time.time_ns() // 1000)
        return self._version

    def _enqueue(self, op: RemoteOp, user_id: str, snapshot: CartSnapshot) -> None:
        write = RemoteWrite(op=op, user_id=user_id, snapshot=snapshot, version=self._next_version())
        self._spawn(self._run_write(write))

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _run_write(self, write: RemoteWrite) -> None:
        async with self._write_lock:
            try:
                await self._with_retry(lambda: self._apply_write(write))
            except RemoteStoreError as e:
                self._needs_full_write = True
                self._record("write", write.user_id, write.op.value, e)
                logger.warning(
                    f"Remote cart {write.op.value} failed for user "
                    f"{sanitize_id_for_logging(write.user_id)}; local cart kept: {e}"
                )
                return
            except Exception as e:
                self._needs_full_write = True
                self._record("write", write.user_id, write.op.value, e)
                logger.error(f"Unexpected remote cart write error: {e}", exc_info=True)
                return

            if write.op in (RemoteOp.SET, RemoteOp.DELETE):
                self._needs_full_write = False

    async def _apply_write(self, write: RemoteWrite) -> None:
        data = write.snapshot.to_dict()
        if write.op == RemoteOp.DELETE:
            await self._remote.delete(write.user_id)
            return
        if write.op == RemoteOp.SET:
            await self._remote.set(write.user_id, write.snapshot, write.version)
            return

        key = "items" if write.op == RemoteOp.PATCH_ITEMS else "applied_promo"
        matched = await self._remote.patch(write.user_id, {key: data[key]}, write.version)
        if not matched:
            # No record yet (first write, or cleared earlier): write the whole cart
            await self._remote.set(write.user_id, write.snapshot, write.version)

    async def _with_retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._config.retry_attempts),
            wait=wait_exponential(multiplier=self._config.retry_wait, max=MAX_RETRY_WAIT),
            retry=retry_if_exception_type(RemoteStoreError),
            reraise=True,
        ):
            with attempt:
                return await operation()

    def _record(self, kind: str, user_id: str, operation: str, error: Exception) -> None:
        self._issues.append(
            SyncIssue(
                kind=kind,
                user_id=user_id,
                operation=operation,
                error=str(error),
                at=datetime.now(timezone.utc).isoformat(),
            )
        )
