"""Cart models with Decimal-based pricing.

Field names are snake_case here; ``to_dict``/``from_dict`` speak the API's
camelCase shape.
"""
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Optional

from tablecart.money import add, multiply, round_money, to_decimal, to_price_string

TEMP_ID_PREFIX = "temp-"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_temporary_id(prefix: str = TEMP_ID_PREFIX) -> str:
    """Placeholder id for a line the server has not confirmed yet."""
    return f"{prefix}{int(time.time() * 1000)}"


def is_temporary_id(item_id: Optional[str]) -> bool:
    return bool(item_id) and item_id.startswith(TEMP_ID_PREFIX)


def _optional_str(value: Any) -> Optional[str]:
    # Generated API types sometimes hand over {} for a nullable string
    if value is None or isinstance(value, dict):
        return None
    return str(value)


@dataclass
class CartItemCustomization:
    """Selected option on a cart line, with name and price cached at add-time."""
    id: str
    customization_option_id: str
    option_name: str
    additional_price: Decimal = Decimal("0")

    def __post_init__(self):
        self.additional_price = to_decimal(self.additional_price)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customizationOptionId": self.customization_option_id,
            "optionName": self.option_name,
            "additionalPrice": to_price_string(self.additional_price),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartItemCustomization":
        return cls(
            id=data["id"],
            customization_option_id=data["customizationOptionId"],
            option_name=data.get("optionName", ""),
            additional_price=to_decimal(data.get("additionalPrice")),
        )


@dataclass
class CartItem:
    """Single line in the cart."""
    id: str
    menu_item_id: Optional[str]
    menu_item_name: str
    base_price: Decimal
    quantity: int
    notes: Optional[str] = None
    customizations: List[CartItemCustomization] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self):
        now = utc_now_iso()
        if not self.created_at:
            self.created_at = now
        if not self.updated_at:
            self.updated_at = now
        self.base_price = to_decimal(self.base_price)

    @property
    def is_temporary(self) -> bool:
        """True while the line is an unconfirmed optimistic add."""
        return is_temporary_id(self.id)

    @property
    def unit_price(self) -> Decimal:
        """Base price plus every selected customization."""
        price = self.base_price
        for option in self.customizations:
            price = add(price, option.additional_price)
        return price

    @property
    def line_total(self) -> Decimal:
        return round_money(multiply(self.unit_price, self.quantity))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "menuItemId": self.menu_item_id,
            "menuItemName": self.menu_item_name,
            "basePrice": to_price_string(self.base_price),
            "quantity": self.quantity,
            "notes": self.notes,
            "customizations": [c.to_dict() for c in self.customizations],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartItem":
        quantity = int(data["quantity"])
        if quantity < 1:
            raise ValueError(f"Cart item {data.get('id')} has quantity {quantity}")
        return cls(
            id=data["id"],
            menu_item_id=_optional_str(data.get("menuItemId")),
            menu_item_name=data.get("menuItemName", ""),
            base_price=to_decimal(data.get("basePrice")),
            quantity=quantity,
            notes=_optional_str(data.get("notes")),
            customizations=[
                CartItemCustomization.from_dict(c) for c in data.get("customizations") or []
            ],
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
        )


@dataclass
class Cart:
    """Table-session cart as last seen by this client."""
    id: str
    session_id: str
    items: List[CartItem] = field(default_factory=list)
    sub_total: Optional[Decimal] = None
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self):
        if self.sub_total is not None:
            self.sub_total = to_decimal(self.sub_total)

    @property
    def total_items(self) -> int:
        """Total number of units in the cart."""
        return sum(item.quantity for item in self.items)

    @property
    def computed_subtotal(self) -> Decimal:
        return round_money(sum((item.line_total for item in self.items), Decimal("0")))

    @property
    def subtotal(self) -> Decimal:
        """Server sub-total when the snapshot carries a non-zero one, else computed."""
        if self.sub_total:
            return round_money(self.sub_total)
        return self.computed_subtotal

    @property
    def has_pending_items(self) -> bool:
        return any(item.is_temporary for item in self.items)

    def find_item(self, cart_item_id: str) -> Optional[CartItem]:
        return next((item for item in self.items if item.id == cart_item_id), None)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "items": [item.to_dict() for item in self.items],
            "subTotal": to_price_string(self.sub_total) if self.sub_total is not None else None,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Cart":
        sub_total = data.get("subTotal")
        return cls(
            id=data.get("id", ""),
            session_id=data.get("sessionId", ""),
            items=[CartItem.from_dict(item) for item in data.get("items") or []],
            sub_total=to_decimal(sub_total) if sub_total is not None else None,
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
        )
