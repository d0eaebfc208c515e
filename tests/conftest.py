"""Pytest configuration and fixtures"""
import asyncio
import os
from typing import Any, List, Optional, Tuple
from unittest.mock import AsyncMock

import pytest

os.environ.setdefault("TABLECART_API_URL", "https://api.test.local")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

from tablecart.cart import Cart, CartStateStore, OptimisticCartExecutor
from tablecart.session import SessionInfoStore

SESSION_ID = "session-0001"
BURGER_ID = "item-burger"


@pytest.fixture
def sample_cart_data():
    """Cart snapshot as the API sends it"""
    return {
        "id": "cart-1",
        "sessionId": SESSION_ID,
        "subTotal": "23.00",
        "createdAt": "2025-01-01T00:00:00Z",
        "updatedAt": "2025-01-01T00:00:00Z",
        "items": [
            {
                "id": BURGER_ID,
                "menuItemId": "menu-burger",
                "menuItemName": "Burger",
                "basePrice": "10.00",
                "quantity": 2,
                "notes": None,
                "customizations": [
                    {
                        "id": "cust-cheese",
                        "customizationOptionId": "opt-cheese",
                        "optionName": "Cheese",
                        "additionalPrice": "1.50",
                    }
                ],
                "createdAt": "2025-01-01T00:00:00Z",
                "updatedAt": "2025-01-01T00:00:00Z",
            }
        ],
    }


@pytest.fixture
def sample_cart(sample_cart_data):
    return Cart.from_dict(sample_cart_data)


@pytest.fixture
def session():
    return SessionInfoStore(SESSION_ID)


@pytest.fixture
def store(sample_cart):
    return CartStateStore(sample_cart)


@pytest.fixture
def mock_cart_client():
    """Cart API client whose calls all succeed"""
    client = AsyncMock()
    client.add_item = AsyncMock(return_value=None)
    client.update_item = AsyncMock(return_value=None)
    client.remove_item = AsyncMock(return_value=None)
    client.clear_cart = AsyncMock(return_value=None)
    client.get_cart = AsyncMock()
    return client


@pytest.fixture
def executor(store, session, mock_cart_client):
    return OptimisticCartExecutor(store, session, mock_cart_client)


class HeldCartClient:
    """Cart client whose calls wait until the test settles them one by one."""

    def __init__(self):
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.pending: List[asyncio.Future] = []

    async def _call(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        future = asyncio.get_running_loop().create_future()
        self.pending.append(future)
        await future

    def settle(self, index: int, error: Optional[Exception] = None) -> None:
        future = self.pending[index]
        if error is None:
            future.set_result(None)
        else:
            future.set_exception(error)

    async def get_cart(self, session_id):
        raise NotImplementedError

    async def add_item(self, session_id, payload):
        await self._call("add_item", session_id, payload)

    async def update_item(self, session_id, cart_item_id, payload):
        await self._call("update_item", session_id, cart_item_id, payload)

    async def remove_item(self, session_id, cart_item_id):
        await self._call("remove_item", session_id, cart_item_id)

    async def clear_cart(self, session_id):
        await self._call("clear_cart", session_id)


@pytest.fixture
def held_client():
    return HeldCartClient()
