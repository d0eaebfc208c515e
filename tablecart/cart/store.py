"""Client-side cart state container.

One store per table session view. Written by exactly two producers: the
optimistic executor (speculative edits and rollbacks) and the realtime
reconciler (authoritative snapshots).
"""
import copy
from decimal import Decimal
from typing import Callable, List, Optional

from tablecart.logging import get_logger
from .models import Cart, CartItem

logger = get_logger(__name__)

Listener = Callable[["CartStateStore"], None]
Unsubscribe = Callable[[], None]


class CartStateStore:
    """Holds the current ``Cart`` (or None) and the last error message."""

    def __init__(self, cart: Optional[Cart] = None):
        self._cart: Optional[Cart] = cart
        self._error: Optional[str] = None
        self._listeners: List[Listener] = []

    @property
    def cart(self) -> Optional[Cart]:
        return self._cart

    @property
    def error(self) -> Optional[str]:
        return self._error

    def set_cart(self, cart: Optional[Cart]) -> None:
        """Replace the cart wholesale and clear any error."""
        logger.debug(
            "Setting cart state: %s",
            None if cart is None else f"{len(cart.items)} item(s)",
        )
        self._cart = cart
        self._error = None
        self._notify()

    def replace_cart(self, cart: Optional[Cart]) -> None:
        """Write the cart but keep the error (speculative edits and rollbacks)."""
        self._cart = cart
        self._notify()

    def set_error(self, message: Optional[str]) -> None:
        self._error = message
        self._notify()

    def clear(self) -> None:
        """Forget cart and error (session teardown)."""
        self._cart = None
        self._error = None
        self._notify()

    def snapshot(self) -> Optional[Cart]:
        """Deep copy of the current cart, used as a rollback point."""
        return copy.deepcopy(self._cart)

    def subscribe(self, listener: Listener) -> Unsubscribe:
        """Call ``listener(store)`` after every write; returns the unsubscribe handle."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Cart store listener failed")


# Selectors

def select_cart(store: CartStateStore) -> Optional[Cart]:
    return store.cart


def select_cart_error(store: CartStateStore) -> Optional[str]:
    return store.error


def select_cart_items(store: CartStateStore) -> List[CartItem]:
    return list(store.cart.items) if store.cart else []


def select_cart_item_count(store: CartStateStore) -> int:
    return store.cart.total_items if store.cart else 0


def select_cart_subtotal(store: CartStateStore) -> Decimal:
    return store.cart.subtotal if store.cart else Decimal("0")
