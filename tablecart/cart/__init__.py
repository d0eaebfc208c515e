"""Cart package: models, state store, optimistic executor and reconciler."""
from .models import Cart, CartItem, CartItemCustomization, is_temporary_id
from .store import CartStateStore
from .client import (
    AddToCartPayload,
    CartMutationClient,
    HttpCartMutationClient,
    UpdateCartItemPayload,
)
from .executor import (
    OptimisticAddCartItem,
    OptimisticCartExecutor,
    OptimisticCustomization,
    UNSET,
)
from .reconciler import RealtimeReconciler

__all__ = [
    "Cart",
    "CartItem",
    "CartItemCustomization",
    "is_temporary_id",
    "CartStateStore",
    "AddToCartPayload",
    "CartMutationClient",
    "HttpCartMutationClient",
    "UpdateCartItemPayload",
    "OptimisticAddCartItem",
    "OptimisticCartExecutor",
    "OptimisticCustomization",
    "UNSET",
    "RealtimeReconciler",
]
