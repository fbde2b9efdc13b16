"""Cart storage for the storefront"""

import json
import logging
from typing import Any, Optional, Union

from pydantic import ValidationError

from ..core.identity import IdentityResolver
from ..core.storage import StoragePort
from ..models.cart import CartLine, CartResult, RejectionReason

logger = logging.getLogger(__name__)

ANONYMOUS_CART_KEY = "cartItems"


def _whole_number(value: Any) -> Optional[int]:
    """Value as an int, or None when it is not a whole number"""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return int(number) if number.is_integer() else None


def partition_key(identity: Optional[str]) -> str:
    """Storage key holding the cart of an identity"""
    if identity:
        return f"{ANONYMOUS_CART_KEY}_{identity}"
    return ANONYMOUS_CART_KEY


class CartStore:
    """
    Per-identity shopping cart backed by key-value storage.

    Lines are kept per storage partition. A partition blob may also hold
    lines owned by other identities; those are carried along untouched.
    Every public call resolves the identity again, so a login in the
    middle of a session switches to that user's partition.
    """

    def __init__(self, storage: StoragePort, identity: IdentityResolver):
        self.storage = storage
        self.identity = identity
        self.is_cart_open = False
        self._partitions: dict[str, list[CartLine]] = {}

        # Hydrate the partition of whoever is logged in right now
        self._partition(partition_key(self.identity.resolve()))

    def _load(self, key: str) -> list[CartLine]:
        raw = self.storage.get(key)
        if not raw:
            return []

        try:
            data = json.loads(raw)
            if not isinstance(data, list):
                raise ValueError("cart blob is not a list")
            return [CartLine.model_validate(item) for item in data]
        except (ValueError, TypeError) as e:
            logger.warning(f"Discarding unreadable cart in '{key}': {e}")
            return []

    def _partition(self, key: str) -> list[CartLine]:
        if key not in self._partitions:
            self._partitions[key] = self._load(key)
        return self._partitions[key]

    def _save(self, key: str, lines: list[CartLine]) -> None:
        self._partitions[key] = lines
        self.storage.set(key, json.dumps([line.to_storage() for line in lines]))

    def _current(self) -> tuple[Optional[str], str, list[CartLine]]:
        user_id = self.identity.resolve()
        key = partition_key(user_id)
        return user_id, key, self._partition(key)

    @staticmethod
    def _owned_by(line: CartLine, user_id: Optional[str]) -> bool:
        if user_id:
            return line.identity == user_id
        return not line.identity

    @staticmethod
    def _find(lines: list[CartLine], product_ref: str, user_id: Optional[str]) -> Optional[CartLine]:
        return next(
            (
                line for line in lines
                if line.product_ref == product_ref and CartStore._owned_by(line, user_id)
            ),
            None,
        )

    def _result(self, success: bool, message: str, reason: Optional[RejectionReason] = None) -> CartResult:
        return CartResult(
            success=success,
            message=message,
            reason=reason,
            items=self.get_user_cart_items(),
        )

    # ==================== Mutations ====================

    def add_to_cart(
        self,
        item: Union[CartLine, dict[str, Any]],
        quantity: Optional[int] = None,
    ) -> CartResult:
        """Add a product, merging with an existing line for the same product"""
        user_id, key, lines = self._current()

        raw = item.to_storage() if isinstance(item, CartLine) else dict(item)
        raw.pop("identity", None)
        requested = quantity if quantity is not None else (raw.get("quantity") or 1)

        requested = _whole_number(requested)
        if requested is None:
            return self._result(False, "Quantity must be a whole number", RejectionReason.INVALID_QUANTITY)

        if requested < 1:
            return self._result(False, "Quantity must be at least 1", RejectionReason.INVALID_QUANTITY)

        try:
            incoming = CartLine.model_validate({**raw, "quantity": requested, "userId": user_id})
        except ValidationError as e:
            logger.error(f"Rejected malformed cart item: {e}")
            return self._result(False, "Failed to add item to cart", RejectionReason.INVALID_ITEM)

        stock = incoming.available_stock
        existing = self._find(lines, incoming.product_ref, user_id)

        if existing:
            new_quantity = existing.quantity + requested
            if new_quantity > stock:
                return self._result(
                    False,
                    f"Only {stock} of {incoming.name or 'this item'} available "
                    f"({existing.quantity} already in cart)",
                    RejectionReason.INSUFFICIENT_STOCK,
                )

            updated = existing.model_copy(update={
                "quantity": new_quantity,
                "available_stock": stock,
                "remaining_stock": stock - new_quantity,
            })
            new_lines = [updated if line is existing else line for line in lines]
        else:
            if requested > stock:
                return self._result(
                    False,
                    f"Only {stock} of {incoming.name or 'this item'} available",
                    RejectionReason.INSUFFICIENT_STOCK,
                )

            incoming.remaining_stock = stock - requested
            new_lines = [*lines, incoming]

        self._save(key, new_lines)
        logger.debug(f"Cart '{key}': {incoming.product_ref} -> {requested} added")
        return self._result(True, "Item added to cart successfully")

    def remove_from_cart(self, product_ref: str) -> CartResult:
        """Remove a product from the current cart. Removing a missing line is a no-op."""
        user_id, key, lines = self._current()

        product_ref = str(product_ref)
        remaining = [
            line for line in lines
            if not (line.product_ref == product_ref and self._owned_by(line, user_id))
        ]

        if len(remaining) != len(lines):
            self._save(key, remaining)

        return self._result(True, "Item removed from cart")

    def update_quantity(self, product_ref: str, new_quantity: int) -> CartResult:
        """Set the quantity of a line; zero removes it"""
        new_quantity = _whole_number(new_quantity)
        if new_quantity is None:
            return self._result(False, "Quantity must be a whole number", RejectionReason.INVALID_QUANTITY)

        if new_quantity < 0:
            return self._result(False, "Quantity cannot be negative", RejectionReason.INVALID_QUANTITY)

        if new_quantity == 0:
            return self.remove_from_cart(product_ref)

        user_id, key, lines = self._current()
        line = self._find(lines, str(product_ref), user_id)

        if not line:
            return self._result(True, "Item is not in the cart")

        if new_quantity > line.available_stock:
            return self._result(
                False,
                f"Only {line.available_stock} of {line.name or 'this item'} available",
                RejectionReason.INSUFFICIENT_STOCK,
            )

        updated = line.model_copy(update={
            "quantity": new_quantity,
            "remaining_stock": line.available_stock - new_quantity,
        })
        self._save(key, [updated if item is line else item for item in lines])
        return self._result(True, "Quantity updated successfully")

    def clear_cart(self) -> CartResult:
        """Remove every line owned by the current identity"""
        user_id, key, lines = self._current()

        remaining = [line for line in lines if not self._owned_by(line, user_id)]
        if remaining:
            self._save(key, remaining)
        else:
            self._partitions[key] = []
            self.storage.remove(key)

        logger.info(f"Cleared cart '{key}'")
        return self._result(True, "Cart cleared")

    def reload(self) -> None:
        """Drop in-memory state and read the current cart back from storage"""
        self._partitions.clear()
        self._partition(partition_key(self.identity.resolve()))

    # ==================== Queries ====================

    def get_user_cart_items(self) -> list[CartLine]:
        """Lines of the current identity, in insertion order"""
        user_id, _, lines = self._current()
        return [line for line in lines if self._owned_by(line, user_id)]

    def get_cart_count(self) -> int:
        return sum(line.quantity for line in self.get_user_cart_items())

    def get_cart_total(self) -> float:
        return sum((float(line.unit_price) * line.quantity for line in self.get_user_cart_items()), 0.0)

    def toggle_cart(self) -> bool:
        """Toggle the cart drawer visibility"""
        self.is_cart_open = not self.is_cart_open
        return self.is_cart_open
