# Data models

from .cart import CartLine, CartResult, RejectionReason
from .checkout import (
    CardForm,
    CheckoutStep,
    DeliveryForm,
    OrderConfirmation,
    OrderItem,
    OrderRequest,
    PaymentMethod,
    PaymentStatus,
    StockIssue,
)

__all__ = [
    "CartLine",
    "CartResult",
    "RejectionReason",
    "CardForm",
    "CheckoutStep",
    "DeliveryForm",
    "OrderConfirmation",
    "OrderItem",
    "OrderRequest",
    "PaymentMethod",
    "PaymentStatus",
    "StockIssue",
]
