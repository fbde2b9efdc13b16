"""Order history for the logged-in customer"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional

from .storefront_client import StorefrontClient

logger = logging.getLogger(__name__)

DEFAULT_CANCELLATION_REASON = "Cancelled by customer"
DEFAULT_ORDERS_PER_PAGE = 10


def _order_owner(order: dict) -> Optional[str]:
    owner = order.get("userId")
    if not owner and isinstance(order.get("user"), dict):
        owner = order["user"].get("_id") or order["user"].get("id")
    return str(owner) if owner else None


def _order_date(order: dict) -> Optional[date]:
    """Calendar day of an order's createdAt (ISO 8601), None if unreadable"""
    created = order.get("createdAt")
    if not isinstance(created, str) or not created:
        return None
    try:
        return datetime.fromisoformat(created.replace("Z", "+00:00")).date()
    except ValueError:
        logger.warning(f"Order {order.get('_id') or order.get('id')} has an unreadable createdAt: {created}")
        return None


@dataclass
class OrderPage:
    """One page of filtered order history"""
    orders: list[dict[str, Any]] = field(default_factory=list)
    page: int = 1
    per_page: int = DEFAULT_ORDERS_PER_PAGE
    total: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.per_page)

    def to_dict(self) -> dict[str, Any]:
        return {
            "orders": self.orders,
            "page": self.page,
            "per_page": self.per_page,
            "total": self.total,
            "total_pages": self.total_pages,
        }


class OrderHistory:
    """Lists, filters and cancels the current identity's orders"""

    def __init__(self, client: StorefrontClient, identity: Optional[str]):
        self.client = client
        self.identity = identity

    async def list_orders(
        self,
        order_number: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[dict]:
        """
        Orders placed by the current identity, totals as numbers.

        Without an identity every order the token can see is returned.

        Args:
            order_number: keep orders whose number contains this text
            date_from: keep orders created on or after this day
            date_to: keep orders created on or before this day

        Orders without a readable createdAt are dropped while a date
        filter is set.
        """
        orders = await self.client.list_orders()

        result = []
        for order in orders:
            if self.identity and _order_owner(order) != self.identity:
                continue

            if order_number and order_number not in str(order.get("orderNumber") or ""):
                continue

            if date_from or date_to:
                created = _order_date(order)
                if created is None:
                    continue
                if date_from and created < date_from:
                    continue
                if date_to and created > date_to:
                    continue

            try:
                total = float(order.get("total") or 0)
            except (TypeError, ValueError):
                logger.warning(f"Order {order.get('_id') or order.get('id')} has a non-numeric total")
                total = 0.0
            result.append({**order, "total": total})

        return result

    async def page_orders(
        self,
        order_number: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        page: int = 1,
        per_page: int = DEFAULT_ORDERS_PER_PAGE,
    ) -> OrderPage:
        """Filtered orders split into pages of `per_page` (pages start at 1)"""
        if page < 1 or per_page < 1:
            raise ValueError("page and per_page must be at least 1")

        orders = await self.list_orders(order_number, date_from, date_to)
        start = (page - 1) * per_page
        return OrderPage(
            orders=orders[start:start + per_page],
            page=page,
            per_page=per_page,
            total=len(orders),
        )

    async def cancel_order(self, order_id: str, reason: Optional[str] = None) -> dict:
        """Cancel an order; the server restores stock and flags refunds"""
        data = await self.client.cancel_order(order_id, reason or DEFAULT_CANCELLATION_REASON)
        order = data.get("order", {}) if isinstance(data, dict) else {}
        logger.info(f"Order {order_id} cancelled (payment status: {order.get('paymentStatus')})")
        return order
