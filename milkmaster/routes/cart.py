"""Cart API routes"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..database.carts import CartStore
from ..models.cart import CartResult
from .deps import get_cart_store

router = APIRouter(prefix="/api/cart", tags=["Cart"])


class AddToCartRequest(BaseModel):
    """Product snapshot from the catalog page"""
    item: dict[str, Any]
    quantity: Optional[int] = None


class UpdateCartItemRequest(BaseModel):
    """Request to update cart item quantity"""
    quantity: int


class CartResponse(BaseModel):
    """Cart API response"""
    items: list[dict[str, Any]] = Field(default_factory=list)
    count: int = 0
    total: float = 0.0
    is_open: bool = False
    message: Optional[str] = None


def _response(cart: CartStore, message: Optional[str] = None) -> CartResponse:
    return CartResponse(
        items=[line.to_storage() for line in cart.get_user_cart_items()],
        count=cart.get_cart_count(),
        total=cart.get_cart_total(),
        is_open=cart.is_cart_open,
        message=message,
    )


def _check(result: CartResult) -> None:
    if not result.success:
        raise HTTPException(status_code=400, detail=result.message)


@router.get("", response_model=CartResponse)
async def get_cart(cart: CartStore = Depends(get_cart_store)):
    """Get the current identity's cart"""
    return _response(cart)


@router.post("/items", response_model=CartResponse)
async def add_to_cart(
    request: AddToCartRequest,
    cart: CartStore = Depends(get_cart_store),
):
    """Add an item to the cart"""
    result = cart.add_to_cart(request.item, request.quantity)
    _check(result)
    return _response(cart, result.message)


@router.put("/items/{product_ref}", response_model=CartResponse)
async def update_cart_item(
    product_ref: str,
    request: UpdateCartItemRequest,
    cart: CartStore = Depends(get_cart_store),
):
    """Update item quantity in cart"""
    result = cart.update_quantity(product_ref, request.quantity)
    _check(result)
    return _response(cart, result.message)


@router.delete("/items/{product_ref}", response_model=CartResponse)
async def remove_from_cart(
    product_ref: str,
    cart: CartStore = Depends(get_cart_store),
):
    """Remove an item from the cart"""
    result = cart.remove_from_cart(product_ref)
    return _response(cart, result.message)


@router.delete("", response_model=CartResponse)
async def clear_cart(cart: CartStore = Depends(get_cart_store)):
    """Clear the current identity's cart"""
    result = cart.clear_cart()
    return _response(cart, result.message)


@router.post("/toggle", response_model=CartResponse)
async def toggle_cart(cart: CartStore = Depends(get_cart_store)):
    """Open or close the cart drawer"""
    cart.toggle_cart()
    return _response(cart)
