"""Cart Mutation Client - REST calls against the session cart API.

Every call is scoped by ``sessionId`` and either returns the server's cart
snapshot or raises. The optimistic executor ignores the returned snapshot:
the authoritative copy arrives over the realtime channel.
"""
from typing import Any, Dict, List, Optional, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field

from tablecart.config import CartApiSettings
from tablecart.errors import (
    ApiError,
    NetworkError,
    UnauthorizedError,
    ERROR_ADD_ITEM,
    ERROR_CLEAR_CART,
    ERROR_GET_CART,
    ERROR_NETWORK,
    ERROR_REMOVE_ITEM,
    ERROR_UPDATE_ITEM,
)
from tablecart.logging import get_logger, sanitize_id_for_logging
from .models import Cart

logger = get_logger(__name__)


# ==================== REQUEST MODELS ====================

class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_body(self) -> Dict[str, Any]:
        # Unset/None fields are omitted: the API treats absence as "leave as is"
        return self.model_dump(by_alias=True, exclude_none=True)


class CustomizationSelection(_CamelModel):
    customization_option_id: str = Field(alias="customizationOptionId")


class AddToCartPayload(_CamelModel):
    menu_item_id: str = Field(alias="menuItemId")
    quantity: int = Field(default=1, ge=1)
    notes: Optional[str] = None
    customizations: List[CustomizationSelection] = Field(default_factory=list)


class UpdateCartItemPayload(_CamelModel):
    quantity: Optional[int] = Field(default=None, ge=1)
    notes: Optional[str] = None


# ==================== CLIENT ====================

class CartMutationClient(Protocol):
    async def get_cart(self, session_id: str) -> Cart: ...

    async def add_item(self, session_id: str, payload: AddToCartPayload) -> Cart: ...

    async def update_item(
        self, session_id: str, cart_item_id: str, payload: UpdateCartItemPayload
    ) -> Cart: ...

    async def remove_item(self, session_id: str, cart_item_id: str) -> Cart: ...

    async def clear_cart(self, session_id: str) -> Cart: ...


def _error_message(body: Optional[Dict[str, Any]], default: str) -> str:
    if not body:
        return default
    errors = body.get("errors")
    if isinstance(errors, list) and errors:
        first = errors[0]
        if isinstance(first, dict) and first.get("message"):
            return str(first["message"])
    message = body.get("message")
    if isinstance(message, str) and message:
        return message
    return default


class HttpCartMutationClient:
    """Cart API client on a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        settings: Optional[CartApiSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or CartApiSettings.from_env()
        # Lazily created unless injected
        self._http_client: Optional[httpx.AsyncClient] = http_client

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            timeout = self.settings.timeout
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            )
        return self._http_client

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.settings.session_token:
            headers["x-session-token"] = self.settings.session_token
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        session_id: str,
        default_error: str,
        body: Optional[Dict[str, Any]] = None,
    ) -> Cart:
        client = await self._get_http_client()
        url = f"{self.settings.base_url}{path}"
        try:
            resp = await client.request(
                method,
                url,
                params={"sessionId": session_id},
                json=body,
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed before a response: {e}")
            raise NetworkError(f"{ERROR_NETWORK}: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            data = None

        if resp.status_code == 401:
            raise UnauthorizedError(_error_message(data, "Unauthorized"), data)
        if resp.is_error or not data or not data.get("data"):
            message = _error_message(data, default_error)
            logger.warning(
                f"{method} {path} rejected for session "
                f"{sanitize_id_for_logging(session_id)}: {resp.status_code} {message}"
            )
            raise ApiError(message, resp.status_code, data)

        return Cart.from_dict(data["data"])

    async def get_cart(self, session_id: str) -> Cart:
        """GET /cart - current snapshot, used for the initial acquisition."""
        return await self._request("GET", "/cart", session_id, ERROR_GET_CART)

    async def add_item(self, session_id: str, payload: AddToCartPayload) -> Cart:
        """POST /cart/items - the server assigns the permanent line id."""
        return await self._request(
            "POST", "/cart/items", session_id, ERROR_ADD_ITEM, payload.to_body()
        )

    async def update_item(
        self, session_id: str, cart_item_id: str, payload: UpdateCartItemPayload
    ) -> Cart:
        return await self._request(
            "PATCH",
            f"/cart/items/{cart_item_id}",
            session_id,
            ERROR_UPDATE_ITEM.format(cart_item_id=cart_item_id),
            payload.to_body(),
        )

    async def remove_item(self, session_id: str, cart_item_id: str) -> Cart:
        return await self._request(
            "DELETE",
            f"/cart/items/{cart_item_id}",
            session_id,
            ERROR_REMOVE_ITEM.format(cart_item_id=cart_item_id),
        )

    async def clear_cart(self, session_id: str) -> Cart:
        return await self._request("DELETE", "/cart", session_id, ERROR_CLEAR_CART)
