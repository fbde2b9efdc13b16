"""Cart models"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator


class CartLine(BaseModel):
    """
    One product queued for purchase by one identity.

    Serialized with the storefront's local storage keys (`id`, `userId`,
    `price`, `stock`, ...) so existing saved carts keep loading.
    """
    product_ref: str = Field(
        validation_alias=AliasChoices("product_ref", "id", "_id", "productId"),
        serialization_alias="id",
    )
    identity: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("identity", "userId"),
        serialization_alias="userId",
    )
    unit_price: float = Field(
        validation_alias=AliasChoices("unit_price", "price"),
        serialization_alias="price",
    )
    quantity: int = Field(default=1, ge=1)
    available_stock: int = Field(
        ge=0,
        validation_alias=AliasChoices("available_stock", "stock"),
        serialization_alias="stock",
    )
    remaining_stock: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("remaining_stock", "remainingStock"),
        serialization_alias="remainingStock",
    )
    name: str = ""
    image_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("image_url", "imageUrl"),
        serialization_alias="imageUrl",
    )

    @field_validator("product_ref", "identity", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return str(value)

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity

    def to_storage(self) -> dict:
        return self.model_dump(by_alias=True)


class RejectionReason(str, Enum):
    """Why a cart mutation was rejected"""
    INSUFFICIENT_STOCK = "insufficient_stock"
    INVALID_QUANTITY = "invalid_quantity"
    INVALID_ITEM = "invalid_item"


@dataclass
class CartResult:
    """Outcome of a cart mutation. Rejected mutations leave the cart unchanged."""
    success: bool
    message: str
    reason: Optional[RejectionReason] = None
    items: list[CartLine] = field(default_factory=list)

    @property
    def rejected(self) -> bool:
        return not self.success
