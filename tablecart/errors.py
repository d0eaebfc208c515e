"""
Cart synchronization errors.

Message constants live here so the executor, the HTTP client and the tests
share one wording.
"""
from typing import Any, Optional

# Guard errors
ERROR_SESSION_MISSING = "No active session. Please scan a QR code to start ordering."
ERROR_CART_NOT_INITIALIZED = "Cart is not initialized."
ERROR_INVALID_QUANTITY = "Quantity must be at least 1"

# Remote errors
ERROR_GET_CART = "Failed to get cart"
ERROR_ADD_ITEM = "Failed to add item to cart"
ERROR_UPDATE_ITEM = "Failed to update cart item {cart_item_id}"
ERROR_REMOVE_ITEM = "Failed to remove cart item {cart_item_id}"
ERROR_CLEAR_CART = "Failed to clear cart"
ERROR_NETWORK = "Network error while contacting the cart API"
ERROR_UNAUTHORIZED = "Unauthorized"

# Configuration errors
ERROR_API_URL_MISSING = "TABLECART_API_URL must be set"
ERROR_REDIS_MISSING = "REDIS_URL must be set"


class CartSyncError(Exception):
    """Base class for every error raised by tablecart."""


class SessionMissing(CartSyncError):
    """No active table session; raised before any state change or request."""

    def __init__(self, message: str = ERROR_SESSION_MISSING):
        super().__init__(message)


class CartNotInitialized(CartSyncError):
    """A mutation was attempted before the first cart snapshot arrived."""

    def __init__(self, message: str = ERROR_CART_NOT_INITIALIZED):
        super().__init__(message)


class NetworkError(CartSyncError):
    """The request never produced an HTTP response."""


class ApiError(CartSyncError):
    """The cart API answered with an error status or an empty envelope."""

    def __init__(
        self,
        message: str,
        status: int,
        response_json: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.response_json = response_json
        self.errors = (response_json or {}).get("errors")


class UnauthorizedError(ApiError):
    def __init__(
        self,
        message: str = ERROR_UNAUTHORIZED,
        response_json: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, 401, response_json)
