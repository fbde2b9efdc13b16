"""Checkout models"""

import re
from enum import Enum
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, Field
from pydantic.alias_generators import to_camel

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class CheckoutStep(str, Enum):
    """Wizard steps, in order"""
    ADDRESS = "address"
    SUMMARY = "summary"
    PAYMENT = "payment"

    @property
    def index(self) -> int:
        return STEPS.index(self)


STEPS = [CheckoutStep.ADDRESS, CheckoutStep.SUMMARY, CheckoutStep.PAYMENT]


class PaymentMethod(str, Enum):
    UNSET = ""
    CASH_ON_DELIVERY = "cod"
    CARD = "card"


class PaymentStatus(str, Enum):
    PAID = "Paid"
    PENDING = "Pending"


class DeliveryForm(BaseModel):
    """Delivery details collected on the address step"""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    def missing_fields(self) -> list[str]:
        """Names (as shown on the form) of required fields left blank"""
        return [
            to_camel(name)
            for name in type(self).model_fields
            if not getattr(self, name).strip()
        ]

    def has_valid_email(self) -> bool:
        return bool(EMAIL_PATTERN.match(self.email))

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def to_address(self) -> dict[str, str]:
        """Delivery address as sent with an order"""
        return {
            "name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "pincode": self.pincode,
        }


class CardForm(BaseModel):
    """Card details for the mocked card verification"""
    number: str = ""
    expiry: str = ""
    cvv: str = ""
    holder_name: str = ""

    def is_complete(self) -> bool:
        return all([self.number, self.expiry, self.cvv, self.holder_name])

    @property
    def digits(self) -> str:
        return re.sub(r"\D", "", self.number)

    @property
    def last_four(self) -> str:
        return self.digits[-4:] or "****"

    def to_verification_request(self) -> dict[str, str]:
        return {
            "cardNumber": self.number,
            "cardExpiry": self.expiry,
            "cardCvv": self.cvv,
            "cardName": self.holder_name,
        }

    def to_order_details(self) -> dict[str, Any]:
        """Card details safe to attach to an order (no CVV)"""
        return {
            "cardNumber": self.digits,
            "lastFour": self.last_four,
            "expiryDate": self.expiry,
            "cardName": self.holder_name,
            "verified": True,
        }


class StockIssue(BaseModel):
    """A line whose requested quantity exceeds available stock"""
    name: Optional[str] = "Product"
    requested: int
    available: int

    def describe(self) -> str:
        return f"{self.name or 'Product'}: Requested {self.requested}, only {self.available} in stock"


class OrderItem(BaseModel):
    """Item in an order"""
    product_id: str
    name: str
    price: float
    quantity: int
    image_url: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class OrderRequest(BaseModel):
    """Order as submitted to the backend"""
    user_id: str
    items: list[OrderItem]
    total: float
    delivery_address: dict[str, str]
    payment_method: PaymentMethod
    payment_details: Optional[dict[str, Any]] = None
    payment_status: PaymentStatus

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class OrderConfirmation(BaseModel):
    """Order details handed to the confirmation page"""
    order_id: Optional[Union[str, int]] = Field(
        default=None, validation_alias=AliasChoices("order_id", "_id", "id")
    )
    order_number: Optional[Union[str, int]] = Field(
        default=None, validation_alias=AliasChoices("order_number", "orderNumber")
    )
    status: Optional[str] = None
    payment_status: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("payment_status", "paymentStatus")
    )
    payment_method: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("payment_method", "paymentMethod")
    )
    stock_updates: Optional[list[Any]] = Field(
        default_factory=list, validation_alias=AliasChoices("stock_updates", "stockUpdates")
    )
