# Storefront services

from .storefront_client import (
    InvalidResponseError,
    StockValidationError,
    StorefrontAPIError,
    StorefrontClient,
)
from .mail_relay import OtpMailer
from .checkout_flow import CheckoutFlow, FlowResult
from .orders import OrderHistory

__all__ = [
    "InvalidResponseError",
    "StockValidationError",
    "StorefrontAPIError",
    "StorefrontClient",
    "OtpMailer",
    "CheckoutFlow",
    "FlowResult",
    "OrderHistory",
]
