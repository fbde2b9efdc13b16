"""
Storefront API Client

HTTP client for the storefront backend: profile, stock validation,
orders and the mocked card/OTP verification endpoints.
"""

import json
import logging
from typing import Any, Callable, Optional

import httpx
from pydantic import ValidationError

from ..models.checkout import StockIssue

logger = logging.getLogger(__name__)


class StorefrontAPIError(Exception):
    """Base exception for storefront API errors"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class InvalidResponseError(StorefrontAPIError):
    """The server answered with something that is not JSON"""

    def __init__(self, message: str, is_html: bool = False, status_code: Optional[int] = None):
        super().__init__(message, status_code=status_code)
        self.is_html = is_html


class StockValidationError(StorefrontAPIError):
    """The server reported items exceeding available stock"""

    def __init__(
        self,
        message: str,
        invalid_items: Optional[list[StockIssue]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, status_code=status_code)
        self.invalid_items = invalid_items or []


def _looks_like_html(text: str) -> bool:
    head = text.lstrip()[:200].lower()
    return head.startswith("<!doctype") or "<html" in head


class StorefrontClient:
    """
    Client for the storefront REST API.

    Every request carries the bearer token of the logged-in user.
    """

    def __init__(
        self,
        api_base_url: str,
        token: Optional[str] = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize storefront client.

        Args:
            api_base_url: Base URL of the storefront API
            token: Bearer token of the current user
            token_provider: Called per request for the token instead of `token`
            timeout: Request timeout in seconds (None disables it)
            http_client: Preconfigured client, e.g. with a mock transport
        """
        self.base_url = api_base_url.rstrip("/")
        self.token = token
        self.token_provider = token_provider
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """Close HTTP client"""
        await self._http_client.aclose()

    def _generate_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        token = self.token_provider() if self.token_provider else self.token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _send(
        self,
        method: str,
        path: str,
        body: Optional[dict] = None,
    ) -> tuple[httpx.Response, Any]:
        """
        Make an HTTP request and parse the JSON body.

        Returns the response and the decoded body (None for an empty body).
        Transport failures and non-JSON bodies raise StorefrontAPIError.
        """
        url = f"{self.base_url}{path}"

        try:
            response = await self._http_client.request(
                method=method,
                url=url,
                headers=self._generate_headers(),
                content=json.dumps(body) if body is not None else None,
            )
        except httpx.HTTPError as e:
            logger.error(f"Request to {method} {path} failed: {e}")
            raise StorefrontAPIError(
                "Network connection error. Please check your internet connection."
            ) from e

        text = response.text
        if not text.strip():
            return response, None

        try:
            return response, json.loads(text)
        except ValueError:
            logger.error(f"Non-JSON response from {method} {path} ({response.status_code}): {text[:200]}")
            if _looks_like_html(text):
                raise InvalidResponseError(
                    "Server is down or returned an HTML error page. Please try again later.",
                    is_html=True,
                    status_code=response.status_code,
                )
            raise InvalidResponseError(
                "Server returned an invalid response format. Please try again.",
                status_code=response.status_code,
            )

    async def _request(
        self,
        method: str,
        path: str,
        body: Optional[dict] = None,
        default_error: str = "Request failed",
    ) -> Any:
        """Make a request, raising StorefrontAPIError on an error status"""
        response, data = await self._send(method, path, body)

        if response.status_code >= 400:
            message = data.get("message") if isinstance(data, dict) else None
            logger.error(f"Request failed: {response.status_code} - {message or response.reason_phrase}")
            raise StorefrontAPIError(
                message or response.reason_phrase or default_error,
                status_code=response.status_code,
            )

        return data

    # ==================== Profile APIs ====================

    async def get_profile(self) -> dict:
        """Get the logged-in user's profile"""
        data = await self._request("GET", "/api/user/profile", default_error="Failed to fetch profile")
        return data if isinstance(data, dict) else {}

    # ==================== Stock APIs ====================

    async def validate_stock(self, items: list[dict]) -> dict:
        """
        Re-check requested quantities against live stock.

        Args:
            items: [{"productId": ..., "quantity": ...}, ...]

        Returns:
            The server's validation body

        Raises:
            StockValidationError: if any item exceeds available stock
        """
        response, data = await self._send(
            "POST",
            "/api/products/validate-stock",
            body={"items": items},
        )

        data = data if isinstance(data, dict) else None
        invalid = []
        for item in (data or {}).get("invalidItems") or []:
            try:
                invalid.append(StockIssue.model_validate(item))
            except ValidationError:
                logger.warning(f"Ignoring malformed stock issue: {item}")

        if response.status_code >= 400 or invalid or (data and data.get("valid") is False):
            if invalid:
                details = "; ".join(issue.describe() for issue in invalid)
                raise StockValidationError(
                    f"Stock validation failed: {details}",
                    invalid_items=invalid,
                    status_code=response.status_code,
                )

            message = (data or {}).get("message")
            raise StockValidationError(
                message or f"Server error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        if data is None:
            logger.warning("Stock validation returned an empty body with OK status")
            return {"valid": True, "message": "All items in stock (fallback validation)"}

        return data

    # ==================== Order APIs ====================

    async def create_order(self, order: dict) -> dict:
        """Submit an order"""
        data = await self._request("POST", "/api/orders", body=order, default_error="Failed to place order")
        if not data:
            raise StorefrontAPIError("No response data received from server")
        return data

    async def list_orders(self) -> list[dict]:
        """List orders visible to the current token"""
        data = await self._request("GET", "/api/orders", default_error="Failed to fetch orders")
        return data if isinstance(data, list) else []

    async def cancel_order(self, order_id: str, reason: str) -> dict:
        """Cancel an order"""
        return await self._request(
            "POST",
            f"/api/orders/{order_id}/cancel",
            body={"cancellationReason": reason},
            default_error="Failed to cancel order",
        )

    # ==================== Payment verification APIs ====================

    async def verify_card(self, card: dict) -> dict:
        """
        Submit card details for the mocked verification.

        A successful response carries the OTP that must be relayed to
        the card holder.
        """
        _, data = await self._send("POST", "/api/verify-card", body=card)
        return data if isinstance(data, dict) else {}

    async def verify_otp(self, otp: str, expected_otp: Optional[str]) -> dict:
        """Compare an entered OTP with the one issued on card verification"""
        _, data = await self._send(
            "POST",
            "/api/verify-otp",
            body={"otp": otp, "expectedOtp": expected_otp},
        )
        return data if isinstance(data, dict) else {}
