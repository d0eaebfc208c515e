"""Optimistic Mutation Executor.

Every verb follows the same protocol:

1. resolve the session id (``SessionMissing`` before anything else happens);
2. deep-copy the store's *current* cart as this call's undo point;
3. refuse to speculate on an uninitialized cart (clear is a no-op instead);
4. apply the speculative edit to the store synchronously;
5. await the remote call;
6. on success leave the speculative state alone - the realtime channel
   delivers the authoritative snapshot;
7. on failure restore this call's snapshot and re-raise.

There is no lock and no shared undo stack. Calls may overlap; each one rolls
back to the state it saw when it started, which includes the speculative
edits of calls still in flight.
"""
import copy
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Union

from tablecart.errors import CartNotInitialized, ERROR_INVALID_QUANTITY
from tablecart.logging import get_logger, sanitize_id_for_logging
from tablecart.money import to_decimal
from tablecart.session import SessionContext, require_session_id
from .client import (
    AddToCartPayload,
    CartMutationClient,
    CustomizationSelection,
    UpdateCartItemPayload,
)
from .models import (
    Cart,
    CartItem,
    CartItemCustomization,
    make_temporary_id,
    utc_now_iso,
)
from .store import CartStateStore

logger = get_logger(__name__)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset()


@dataclass
class OptimisticCustomization:
    customization_option_id: str
    option_name: str
    additional_price: Union[str, float, int] = "0"


@dataclass
class OptimisticAddCartItem:
    """What the menu screen knows when the guest taps "add"."""
    menu_item_id: str
    menu_item_name: str
    base_price: Union[str, float, int]
    quantity: int = 1
    notes: Optional[str] = None
    customizations: List[OptimisticCustomization] = field(default_factory=list)

    def to_payload(self) -> AddToCartPayload:
        return AddToCartPayload(
            menu_item_id=self.menu_item_id,
            quantity=self.quantity,
            notes=self.notes,
            customizations=[
                CustomizationSelection(customization_option_id=c.customization_option_id)
                for c in self.customizations
            ],
        )


class OptimisticCartExecutor:
    """Applies cart mutations locally first, then confirms them remotely."""

    def __init__(
        self,
        store: CartStateStore,
        session: SessionContext,
        client: CartMutationClient,
    ):
        self.store = store
        self.session = session
        self.client = client

    # ==================== INTERNAL HELPERS ====================

    def _working_copy(self) -> Cart:
        # New object per write; earlier snapshots are never mutated in place
        return copy.deepcopy(self.store.cart)

    async def _confirm_or_rollback(
        self,
        action: str,
        remote_call: Callable[[], Awaitable[object]],
        snapshot: Optional[Cart],
    ) -> None:
        try:
            await remote_call()
        except Exception as e:
            logger.error(f"Failed to {action} via API: {e}")
            logger.debug(f"Rolling back optimistic {action}")
            self.store.replace_cart(snapshot)
            raise
        logger.debug(f"Successfully called API to {action}")

    @staticmethod
    def _unique_temporary_id(cart: Cart) -> str:
        temp_id = make_temporary_id()
        taken = {item.id for item in cart.items}
        candidate, n = temp_id, 1
        while candidate in taken:
            candidate = f"{temp_id}-{n}"
            n += 1
        return candidate

    # ==================== MUTATIONS ====================

    async def add_item(self, cart_item: OptimisticAddCartItem) -> str:
        """
        Append a temporary line and POST it.

        Returns:
            The temporary id of the speculative line. It is only meaningful
            until the next authoritative snapshot replaces it.
        """
        session_id = require_session_id(self.session)
        if cart_item.quantity < 1:
            raise ValueError(ERROR_INVALID_QUANTITY)
        payload = cart_item.to_payload()
        original_cart = self.store.snapshot()

        if original_cart is None:
            logger.error("Cannot add item: cart state is None")
            raise CartNotInitialized()

        cart = self._working_copy()
        temp_id = self._unique_temporary_id(cart)
        now = utc_now_iso()
        optimistic_item = CartItem(
            id=temp_id,
            # Unknown until the server echoes the line back
            menu_item_id=None,
            menu_item_name=cart_item.menu_item_name,
            base_price=to_decimal(cart_item.base_price),
            quantity=cart_item.quantity,
            notes=cart_item.notes,
            customizations=[
                CartItemCustomization(
                    id=f"temp-cust-{idx}",
                    customization_option_id=opt.customization_option_id,
                    option_name=opt.option_name,
                    additional_price=to_decimal(opt.additional_price),
                )
                for idx, opt in enumerate(cart_item.customizations)
            ],
            created_at=now,
            updated_at=now,
        )
        cart.items.append(optimistic_item)
        self.store.replace_cart(cart)
        logger.debug(f"Optimistically added item {temp_id} ({cart_item.menu_item_name})")

        await self._confirm_or_rollback(
            f"add item {temp_id}",
            lambda: self.client.add_item(session_id, payload),
            original_cart,
        )
        return temp_id

    async def update_item(
        self,
        cart_item_id: str,
        quantity: Union[int, None, _Unset] = UNSET,
        notes: Union[Optional[str], _Unset] = UNSET,
    ) -> None:
        """
        Overwrite quantity and/or notes of one line, then PATCH it.

        Passing ``notes=None`` clears the notes locally; the API only receives
        fields that carry a value. ``quantity=None`` leaves the quantity as is.
        """
        session_id = require_session_id(self.session)
        if quantity is None:
            quantity = UNSET
        if quantity is not UNSET and quantity < 1:
            # Decrementing past 1 is a removal, see decrement_item
            raise ValueError(ERROR_INVALID_QUANTITY)
        payload = UpdateCartItemPayload(
            quantity=None if quantity is UNSET else quantity,
            notes=None if notes is UNSET else notes,
        )
        original_cart = self.store.snapshot()

        if original_cart is None:
            logger.error("Cannot update item: cart state is None")
            raise CartNotInitialized()

        cart = self._working_copy()
        item = cart.find_item(cart_item_id)
        if item is not None:
            if quantity is not UNSET:
                item.quantity = quantity
            if notes is not UNSET:
                item.notes = notes
            item.updated_at = utc_now_iso()
            self.store.replace_cart(cart)
            logger.debug(
                f"Optimistically updated item {sanitize_id_for_logging(cart_item_id)}: "
                f"quantity={item.quantity}"
            )
        else:
            logger.warning(
                f"Optimistic update: item {sanitize_id_for_logging(cart_item_id)} not found in cart"
            )

        await self._confirm_or_rollback(
            f"update item {sanitize_id_for_logging(cart_item_id)}",
            lambda: self.client.update_item(session_id, cart_item_id, payload),
            original_cart,
        )

    async def remove_item(self, cart_item_id: str) -> bool:
        """
        Drop one line, then DELETE it.

        Returns:
            False when no line matched; nothing is sent in that case.
        """
        session_id = require_session_id(self.session)
        original_cart = self.store.snapshot()

        if original_cart is None:
            logger.error("Cannot remove item: cart state is None")
            raise CartNotInitialized()

        cart = self._working_copy()
        remaining = [item for item in cart.items if item.id != cart_item_id]
        if len(remaining) == len(cart.items):
            logger.warning(
                f"Optimistic remove: item {sanitize_id_for_logging(cart_item_id)} not found"
            )
            return False

        cart.items = remaining
        self.store.replace_cart(cart)
        logger.debug(f"Optimistically removed item {sanitize_id_for_logging(cart_item_id)}")

        await self._confirm_or_rollback(
            f"remove item {sanitize_id_for_logging(cart_item_id)}",
            lambda: self.client.remove_item(session_id, cart_item_id),
            original_cart,
        )
        return True

    async def clear_cart(self) -> bool:
        """
        Empty the cart, then DELETE it.

        Returns:
            False when the cart was already None or empty (no request sent).
        """
        session_id = require_session_id(self.session)
        original_cart = self.store.snapshot()

        if original_cart is None or not original_cart.items:
            logger.debug("Cart is already empty or None, skipping clear")
            return False

        cart = self._working_copy()
        cart.items = []
        self.store.replace_cart(cart)
        logger.debug("Optimistically cleared cart items")

        await self._confirm_or_rollback(
            "clear cart",
            lambda: self.client.clear_cart(session_id),
            original_cart,
        )
        return True

    # ==================== STEPPERS ====================

    async def increment_item(self, cart_item_id: str) -> None:
        item = self.store.cart.find_item(cart_item_id) if self.store.cart else None
        if item is None:
            logger.warning(f"Increment: item {sanitize_id_for_logging(cart_item_id)} not found")
            return
        await self.update_item(cart_item_id, quantity=item.quantity + 1)

    async def decrement_item(self, cart_item_id: str) -> None:
        """Lower the quantity by one; a quantity-1 line is removed instead."""
        item = self.store.cart.find_item(cart_item_id) if self.store.cart else None
        if item is None:
            logger.warning(f"Decrement: item {sanitize_id_for_logging(cart_item_id)} not found")
            return
        if item.quantity > 1:
            await self.update_item(cart_item_id, quantity=item.quantity - 1)
        else:
            await self.remove_item(cart_item_id)
