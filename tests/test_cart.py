"""
Tests for cart models
"""

from decimal import Decimal

import pytest

from tablecart.cart import Cart, CartItem, CartItemCustomization, is_temporary_id
from tablecart.cart.models import make_temporary_id


class TestCartItem:
    """Tests for CartItem dataclass."""

    def test_unit_price_includes_customizations(self):
        item = CartItem(
            id="item-1",
            menu_item_id="menu-1",
            menu_item_name="Burger",
            base_price="10.00",
            quantity=1,
            customizations=[
                CartItemCustomization("c1", "opt-cheese", "Cheese", "1.50"),
                CartItemCustomization("c2", "opt-bacon", "Bacon", "2.25"),
            ],
        )

        assert item.unit_price == Decimal("13.75")
        assert item.created_at != ""

    def test_line_total(self):
        item = CartItem(
            id="item-1",
            menu_item_id="menu-1",
            menu_item_name="Burger",
            base_price="10.00",
            quantity=3,
            customizations=[CartItemCustomization("c1", "opt-cheese", "Cheese", "1.50")],
        )

        # 3 * (10.00 + 1.50)
        assert item.line_total == Decimal("34.50")

    def test_from_dict_treats_empty_object_notes_as_none(self):
        item = CartItem.from_dict({
            "id": "item-1",
            "menuItemId": {},
            "menuItemName": "Fries",
            "basePrice": "3.00",
            "quantity": 1,
            "notes": {},
            "customizations": [],
        })

        assert item.notes is None
        assert item.menu_item_id is None

    def test_from_dict_rejects_zero_quantity(self):
        with pytest.raises(ValueError):
            CartItem.from_dict({
                "id": "item-1",
                "menuItemName": "Fries",
                "basePrice": "3.00",
                "quantity": 0,
            })

    def test_to_dict_uses_api_field_names(self, sample_cart):
        data = sample_cart.items[0].to_dict()

        assert data["menuItemName"] == "Burger"
        assert data["basePrice"] == "10.00"
        assert data["customizations"][0]["additionalPrice"] == "1.50"


class TestTemporaryIds:

    def test_temporary_id_prefix(self):
        temp_id = make_temporary_id()

        assert temp_id.startswith("temp-")
        assert is_temporary_id(temp_id)

    def test_server_ids_are_not_temporary(self):
        assert not is_temporary_id("0b6f3c1e-2d4a-4d7e-9d1a-7b1c2e3f4a5b")
        assert not is_temporary_id(None)
        assert not is_temporary_id("")


class TestCart:
    """Tests for Cart dataclass."""

    def test_empty_cart(self):
        cart = Cart(id="cart-1", session_id="s-1")

        assert cart.total_items == 0
        assert cart.subtotal == Decimal("0.00")
        assert not cart.has_pending_items

    def test_server_subtotal_wins(self, sample_cart_data):
        sample_cart_data["subTotal"] = "99.00"
        cart = Cart.from_dict(sample_cart_data)

        assert cart.subtotal == Decimal("99.00")

    def test_subtotal_falls_back_to_items(self, sample_cart_data):
        sample_cart_data["subTotal"] = None
        cart = Cart.from_dict(sample_cart_data)

        # 2 * 11.50
        assert cart.subtotal == Decimal("23.00")

    def test_zero_subtotal_falls_back_to_items(self, sample_cart_data):
        sample_cart_data["subTotal"] = "0"
        cart = Cart.from_dict(sample_cart_data)

        assert cart.subtotal == Decimal("23.00")

    def test_pending_items(self, sample_cart):
        sample_cart.items.append(
            CartItem(
                id="temp-1700000000000",
                menu_item_id=None,
                menu_item_name="Fries",
                base_price="3.00",
                quantity=1,
            )
        )

        assert sample_cart.has_pending_items
        assert sample_cart.total_items == 3

    def test_find_item(self, sample_cart):
        assert sample_cart.find_item("item-burger").menu_item_name == "Burger"
        assert sample_cart.find_item("missing") is None

    def test_cart_serialization(self, sample_cart_data):
        cart = Cart.from_dict(sample_cart_data)

        assert cart.to_dict() == sample_cart_data
