"""
CartStore: the single source of truth for the shopping cart shown to the UI.

The store decides once, at start(), whether the cart lives on the server
(signed-in shopper) or in durable client storage (anonymous shopper), and
hides that choice behind one set of async operations. Operations never
raise; failures become toasts on the store's Notifier and leave the visible
cart exactly as it was.

Mutations are serialised through one lock, so with a remote cart the state
shown after the last call is always the server's answer to that call.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from storefront.api.client import StorefrontClient
from storefront.api.models import CartLine, ProductSnapshot
from storefront.cart.backends import CartBackend, CartMode, LocalCartBackend, RemoteCartBackend
from storefront.errors import BackendError, StorageError, StorefrontError, UnauthorizedError
from storefront.notify import Notifier
from storefront.storage.local_store import KeyValueStorage, create_storage
from storefront.utils.logger import get_logger

logger = get_logger("cart.store")


@dataclass(frozen=True)
class CartState:
    """Immutable snapshot handed to subscribers. Totals are derived on read."""
    lines: Tuple[CartLine, ...] = ()
    mode: CartMode = CartMode.LOCAL
    is_loading: bool = False

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def total_price(self) -> float:
        return sum(line.line_total for line in self.lines)


StateCallback = Callable[[CartState], None]


class CartStore:
    """
    Shopping cart with remote/local persistence.

    Args:
        client: REST client for the storefront backend
        storage: durable storage used while the shopper is anonymous
        notifier: toast channel for user-facing messages
        storage_key: key holding the anonymous cart in storage
    """

    def __init__(
        self,
        client: StorefrontClient,
        storage: KeyValueStorage,
        notifier: Optional[Notifier] = None,
        storage_key: str = "cart",
    ):
        self.client = client
        self.storage = storage
        self.notifier = notifier or Notifier()
        self.storage_key = storage_key

        self._backend: CartBackend = LocalCartBackend(storage, storage_key)
        self._lines: List[CartLine] = []
        self._pending = 0
        self._lock = asyncio.Lock()
        self._subscribers: List[StateCallback] = []
        self._closed = False
        self._owns_client = False

    @classmethod
    def from_config(cls, config, notifier: Optional[Notifier] = None) -> "CartStore":
        client = StorefrontClient(config.base_url, timeout=config.request_timeout)
        store = cls(client, create_storage(config), notifier=notifier, storage_key=config.cart_storage_key)
        store._owns_client = True
        return store

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def mode(self) -> CartMode:
        return self._backend.mode

    @property
    def lines(self) -> Tuple[CartLine, ...]:
        return tuple(self._lines)

    @property
    def is_loading(self) -> bool:
        return self._pending > 0

    @property
    def state(self) -> CartState:
        return CartState(lines=self.lines, mode=self.mode, is_loading=self.is_loading)

    @property
    def total_items(self) -> int:
        return self.state.total_items

    @property
    def total_price(self) -> float:
        return self.state.total_price

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _emit(self) -> None:
        if self._closed:
            return
        state = self.state
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception as e:
                logger.error(f"Cart subscriber failed: {e}")

    def _apply(self, lines: List[CartLine]) -> None:
        if self._closed:
            logger.debug("Cart store closed; dropping late result")
            return
        self._lines = list(lines)
        self._emit()

    def _toast(self, send: Callable[[str, str], None], title: str, description: str) -> None:
        if self._closed:
            logger.debug(f"Cart store closed; dropping toast {title!r}")
            return
        send(title, description)

    @asynccontextmanager
    async def _busy(self):
        self._pending += 1
        self._emit()
        try:
            async with self._lock:
                yield
        finally:
            self._pending -= 1
            self._emit()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Probe authentication and load the cart from the matching source."""
        try:
            user = await self.client.get_current_user()
        except StorefrontError as e:
            logger.error(f"Error checking authentication: {e}")
            user = None

        if user:
            logger.info("Authenticated session; using server cart")
            self._backend = RemoteCartBackend(self.client)
            await self.fetch_cart()
            return

        logger.info("Anonymous session; using local cart")
        await self._use_local_cart()

    async def _use_local_cart(self) -> None:
        backend = LocalCartBackend(self.storage, self.storage_key)
        self._backend = backend
        try:
            lines = backend.restore()
        except StorageError as e:
            logger.error(f"Cannot read stored cart: {e}")
            lines = []
        self._apply(lines)

    def close(self) -> None:
        """Detach consumers; calls still in flight will not touch the state."""
        self._closed = True
        self._subscribers.clear()

    async def aclose(self) -> None:
        self.close()
        if self._owns_client:
            await self.client.aclose()

    def _fall_back_to_local(self) -> None:
        """401 mid-session: keep what the shopper sees, now stored on this device."""
        if self._closed:
            logger.debug("Cart store closed; ignoring session expiry")
            return
        logger.warning("Cart session expired; switching to local cart")
        backend = LocalCartBackend(self.storage, self.storage_key, lines=self._lines)
        try:
            backend.save()
        except StorageError as e:
            logger.error(f"Cannot persist cart after session expiry: {e}")
        self._backend = backend
        self._toast(self.notifier.warning, "Session expired", "Your cart is now saved on this device.")
        self._emit()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def fetch_cart(self) -> None:
        """Replace the cart with the server's copy. No-op for local carts."""
        async with self._busy():
            if self._backend.mode is CartMode.LOCAL:
                return
            await self._refresh()

    async def _refresh(self) -> None:
        try:
            lines = await self._backend.fetch()
        except UnauthorizedError:
            self._fall_back_to_local()
            return
        except StorefrontError as e:
            logger.error(f"Error fetching cart: {e}")
            self._toast(self.notifier.error, "Error", "Could not load your cart. Please try again.")
            return
        self._apply(lines)

    async def add_to_cart(
        self,
        product_id: int,
        quantity: int,
        name: str,
        unit_price: float,
        image: str = "",
        discounted_price: Optional[float] = None,
    ) -> bool:
        if quantity < 1:
            self._toast(self.notifier.error, "Error adding to cart", "Quantity must be at least 1.")
            return False

        snapshot = ProductSnapshot(
            id=product_id,
            name=name,
            unit_price=unit_price,
            discounted_price=discounted_price,
            image=image,
        )
        async with self._busy():
            try:
                lines = await self._backend.add(product_id, quantity, snapshot)
            except UnauthorizedError:
                self._fall_back_to_local()
                return False
            except BackendError as e:
                logger.warning(f"Add to cart rejected: {e}")
                self._toast(self.notifier.error, "Error adding to cart", e.message or "Could not add item to cart")
                return False
            except StorefrontError as e:
                logger.error(f"Error adding to cart: {e}")
                self._toast(self.notifier.error, "Error", "Could not add item to cart. Please try again.")
                return False

            self._apply(lines)
            self._toast(self.notifier.info, "Added to cart", f"{name} has been added to your cart.")
            return True

    async def update_quantity(self, line_id: int, quantity: int) -> bool:
        if quantity <= 0:
            return await self.remove_from_cart(line_id)

        async with self._busy():
            try:
                lines = await self._backend.update(line_id, quantity)
            except UnauthorizedError:
                self._fall_back_to_local()
                return False
            except BackendError as e:
                logger.warning(f"Quantity update rejected: {e}")
                self._toast(self.notifier.error, "Error updating cart", e.message or "Could not update item quantity")
                return False
            except StorefrontError as e:
                logger.error(f"Error updating quantity: {e}")
                self._toast(self.notifier.error, "Error", "Could not update item quantity. Please try again.")
                return False

            self._apply(lines)
            return True

    async def remove_from_cart(self, line_id: int) -> bool:
        async with self._busy():
            try:
                lines = await self._backend.remove(line_id)
            except UnauthorizedError:
                self._fall_back_to_local()
                return False
            except StorefrontError as e:
                logger.error(f"Error removing from cart: {e}")
                self._toast(self.notifier.error, "Error", "Could not remove item from cart. Please try again.")
                return False

            self._apply(lines)
            return True

    async def clear_cart(self) -> bool:
        async with self._busy():
            try:
                lines = await self._backend.clear()
            except UnauthorizedError:
                self._fall_back_to_local()
                return False
            except StorefrontError as e:
                logger.error(f"Error clearing cart: {e}")
                self._toast(self.notifier.error, "Error", "Could not clear your cart. Please try again.")
                return False

            self._apply(lines)
            return True

    # ------------------------------------------------------------------
    # Sign-in / sign-out
    # ------------------------------------------------------------------

    async def login(self) -> bool:
        """
        Move an anonymous cart into the account cart after the shopper signs in.

        Each local line is replayed through POST /api/cart, so the backend
        applies its usual merge and stock rules. Lines the server refuses stay
        in local storage; the rest of the local entry is removed.

        Returns:
            True once the store is using the server cart.
        """
        async with self._busy():
            if self._backend.mode is CartMode.REMOTE:
                return True

            try:
                user = await self.client.get_current_user()
            except StorefrontError as e:
                logger.error(f"Error checking authentication: {e}")
                self._toast(self.notifier.error, "Error", "Could not reach the store. Please try again.")
                return False
            if not user:
                return False

            failed: List[CartLine] = []
            for line in list(self._lines):
                try:
                    await self.client.add_cart_item(line.product_id, line.quantity)
                except StorefrontError as e:
                    logger.warning(f"Could not merge product {line.product_id} into account cart: {e}")
                    failed.append(line)

            try:
                if failed:
                    LocalCartBackend(self.storage, self.storage_key, lines=failed).save()
                else:
                    self.storage.remove_item(self.storage_key)
            except StorageError as e:
                logger.error(f"Cannot update stored cart after login: {e}")

            if failed:
                self._toast(
                    self.notifier.warning,
                    "Some items were not moved",
                    f"{len(failed)} item(s) could not be added to your account cart.",
                )

            logger.info(f"Merged {len(self._lines) - len(failed)} local line(s) into account cart")
            self._backend = RemoteCartBackend(self.client)
            await self._refresh()
            return self._backend.mode is CartMode.REMOTE

    async def logout(self) -> None:
        """Switch back to the anonymous cart; the account cart stays on the server."""
        async with self._busy():
            if self._backend.mode is CartMode.LOCAL:
                return
            await self._use_local_cart()
