"""Order history API routes"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from ..core.identity import IdentityResolver
from ..services.orders import DEFAULT_ORDERS_PER_PAGE, OrderHistory
from ..services.storefront_client import StorefrontAPIError, StorefrontClient
from .deps import get_identity, get_storefront_client

router = APIRouter(prefix="/api/orders", tags=["Orders"])


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = None


def get_order_history(
    identity: IdentityResolver = Depends(get_identity),
    client: StorefrontClient = Depends(get_storefront_client),
) -> OrderHistory:
    if not identity.get_token():
        raise HTTPException(status_code=401, detail="Please login to view your orders")
    return OrderHistory(client, identity.resolve())


@router.get("")
async def list_orders(
    order_number: Optional[str] = Query(None, description="Order number contains this text"),
    date_from: Optional[date] = Query(None, description="Created on or after (YYYY-MM-DD)"),
    date_to: Optional[date] = Query(None, description="Created on or before (YYYY-MM-DD)"),
    page: int = Query(1, ge=1),
    per_page: int = Query(DEFAULT_ORDERS_PER_PAGE, ge=1, le=100),
    history: OrderHistory = Depends(get_order_history),
):
    """The current identity's orders, filtered and paginated"""
    try:
        result = await history.page_orders(
            order_number=order_number,
            date_from=date_from,
            date_to=date_to,
            page=page,
            per_page=per_page,
        )
    except StorefrontAPIError as e:
        raise HTTPException(status_code=502, detail=f"Failed to load orders: {e.message}")
    return result.to_dict()


@router.post("/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    request: CancelOrderRequest,
    history: OrderHistory = Depends(get_order_history),
):
    """Cancel an order"""
    try:
        order = await history.cancel_order(order_id, request.reason)
    except StorefrontAPIError as e:
        raise HTTPException(status_code=e.status_code or 502, detail=e.message)
    return {"message": "Order cancelled", "order": order}
