"""Realtime Reconciler - keeps the store in step with server pushes.

Every ``cart:updated`` snapshot replaces the store's cart wholesale, even
when optimistic lines are still pending: the server view is authoritative.
Snapshots carry no version, so a late delivery of an older snapshot wins
over a newer one that arrived first.
"""
from typing import Any, Callable, List, Optional

from tablecart.logging import get_logger, sanitize_id_for_logging, sanitize_string_for_logging
from tablecart.realtime import CART_ERROR, CART_UPDATED, CartChannel, CartErrorPayload
from tablecart.session import SessionContext, SessionInfoStore
from .client import CartMutationClient
from .models import Cart
from .store import CartStateStore

logger = get_logger(__name__)


class RealtimeReconciler:
    """Subscribes the store to one session's cart events at a time."""

    def __init__(
        self,
        store: CartStateStore,
        session: SessionContext,
        channel: CartChannel,
        client: Optional[CartMutationClient] = None,
    ):
        self.store = store
        self.session = session
        self.channel = channel
        self.client = client
        self._unsubscribers: List[Callable[[], None]] = []
        self._session_unsubscribe: Optional[Callable[[], None]] = None
        self._scope: Optional[str] = None

    @property
    def subscribed_session_id(self) -> Optional[str]:
        return self._scope

    # ==================== HANDLERS ====================

    def handle_cart_updated(self, payload: Any) -> None:
        if payload is None or isinstance(payload, Cart):
            cart = payload
        else:
            cart = Cart.from_dict(payload)
        logger.debug(
            f"cart:updated for session {sanitize_id_for_logging(self._scope)}: "
            f"{'None' if cart is None else len(cart.items)} item(s)"
        )
        self.store.set_cart(cart)

    def handle_cart_error(self, payload: Any) -> None:
        if isinstance(payload, dict):
            error = CartErrorPayload.model_validate(payload)
        else:
            error = CartErrorPayload(message=str(payload))
        logger.warning(
            f"cart:error for session {sanitize_id_for_logging(self._scope)}: "
            f"{sanitize_string_for_logging(error.message)}"
            + (f" (from {error.originating_event})" if error.originating_event else "")
        )
        self.store.set_error(error.message)

    # ==================== LIFECYCLE ====================

    def start(self) -> None:
        """
        Subscribe under the current session and follow session switches.

        Channels that start reader tasks (``RedisStreamCartChannel``) need a
        running event loop here and for every later ``set_session`` on the
        followed ``SessionInfoStore``.
        """
        if self._session_unsubscribe is None and isinstance(self.session, SessionInfoStore):
            self._session_unsubscribe = self.session.subscribe(self._on_session_changed)
        self.resubscribe(self.session.session_id)

    def _on_session_changed(self, session_id: Optional[str]) -> None:
        # The previous session's cart must not leak into the new one
        self.store.clear()
        self.resubscribe(session_id)

    def resubscribe(self, session_id: Optional[str]) -> None:
        """
        Drop both handlers of the old scope, then subscribe under ``session_id``.

        Already subscribed under ``session_id``: nothing changes, so a stream
        reader keeps its read position.
        """
        if session_id and session_id == self._scope:
            return
        self._unsubscribe_all()
        if not session_id:
            return
        self._unsubscribers = [
            self.channel.subscribe(session_id, CART_UPDATED, self.handle_cart_updated),
            self.channel.subscribe(session_id, CART_ERROR, self.handle_cart_error),
        ]
        self._scope = session_id
        logger.info(f"Subscribed to cart events for session {sanitize_id_for_logging(session_id)}")

    def stop(self) -> None:
        """Unsubscribe everything; in-flight executor calls are not affected."""
        if self._session_unsubscribe is not None:
            self._session_unsubscribe()
            self._session_unsubscribe = None
        self._unsubscribe_all()

    def _unsubscribe_all(self) -> None:
        if self._scope is not None:
            logger.info(
                f"Unsubscribing cart events for session {sanitize_id_for_logging(self._scope)}"
            )
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self._scope = None

    async def refresh(self) -> Optional[Cart]:
        """Fetch the current snapshot over REST (initial acquisition)."""
        if self.client is None:
            raise RuntimeError("RealtimeReconciler.refresh needs a cart client")
        session_id = self.session.session_id
        if not session_id:
            logger.debug("No active session, nothing to refresh")
            return None
        cart = await self.client.get_cart(session_id)
        self.store.set_cart(cart)
        return cart

    async def __aenter__(self) -> "RealtimeReconciler":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.stop()
