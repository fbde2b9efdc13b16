"""
Checkout Flow

Drives the three-step checkout wizard:
1. Delivery address (prefilled from the user's profile)
2. Order summary
3. Payment (cash on delivery, or card with the mocked card/OTP verification)

and places the order once stock has been re-validated by the server.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from ..core.config import Settings
from ..core.identity import IdentityResolver
from ..core.session import (
    AwaitingOtp,
    CheckoutSession,
    Failed,
    Idle,
    OtpVerified,
    ProfileStatus,
    Verifying,
)
from ..database.carts import CartStore
from ..models.cart import CartLine
from ..models.checkout import (
    STEPS,
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
from .mail_relay import OtpMailer
from .storefront_client import StorefrontAPIError, StorefrontClient

logger = logging.getLogger(__name__)

# Form names accepted for card fields
_CARD_FIELD_NAMES = {
    "number": "number",
    "cardNumber": "number",
    "expiry": "expiry",
    "cardExpiry": "expiry",
    "cvv": "cvv",
    "cardCvv": "cvv",
    "holder_name": "holder_name",
    "holderName": "holder_name",
    "cardName": "holder_name",
}


@dataclass
class FlowResult:
    """Outcome of a checkout action"""
    success: bool
    message: str = ""
    step: Optional[CheckoutStep] = None
    redirect_to: Optional[str] = None  # e.g. the login page
    data: Optional[dict] = None


class CheckoutFlow:
    """
    Checkout wizard controller.

    Reads the cart only through CartStore's public methods. All failures
    come back as FlowResult; nothing is raised to the caller.
    """

    def __init__(
        self,
        session: CheckoutSession,
        cart: CartStore,
        identity: IdentityResolver,
        client: StorefrontClient,
        mailer: OtpMailer,
        settings: Settings,
    ):
        self.session = session
        self.cart = cart
        self.identity = identity
        self.client = client
        self.mailer = mailer
        self.settings = settings

    # ==================== Results ====================

    def _ok(self, message: str = "", data: Optional[dict] = None) -> FlowResult:
        self.session.error = ""
        self.session.notice = message
        self.session.touch()
        return FlowResult(success=True, message=message, step=self.session.step, data=data)

    def _fail(self, message: str, data: Optional[dict] = None) -> FlowResult:
        self.session.error = message
        self.session.notice = ""
        self.session.touch()
        return FlowResult(success=False, message=message, step=self.session.step, data=data)

    def _redirect_to_login(self, message: str) -> FlowResult:
        logger.info(f"Checkout session {self.session.session_id} redirected to login: {message}")
        self.session.error = message
        return FlowResult(
            success=False,
            message=message,
            step=self.session.step,
            redirect_to=self.settings.login_path,
        )

    def _busy(self) -> FlowResult:
        return FlowResult(
            success=False,
            message="A request is already in progress",
            step=self.session.step,
        )

    def _authenticated_identity(self) -> Optional[str]:
        if not self.identity.get_token():
            return None
        return self.identity.resolve()

    async def _restart_for(self, user_id: str) -> FlowResult:
        """A different user logged in mid-checkout: start over with their data"""
        logger.warning(
            f"Checkout session {self.session.session_id} started by {self.session.identity} "
            f"but {user_id} is now logged in, restarting"
        )
        restarted = await self.refresh()
        if restarted.redirect_to:
            return restarted
        return self._fail(
            "You are now logged in as a different user. "
            "Please review your delivery details and cart again."
        )

    def _identity_changed(self, user_id: str) -> bool:
        return bool(self.session.identity) and user_id != self.session.identity

    # ==================== Wizard entry ====================

    async def start(self) -> FlowResult:
        """Mount the wizard: check login and prefill the delivery form"""
        if not self.identity.get_token():
            return self._redirect_to_login("Please login to proceed with checkout")

        user_id = self.identity.resolve()
        if not user_id:
            return self._redirect_to_login("No user ID found. Unable to load profile data.")

        self.session.identity = user_id
        record = self.identity.get_user_record()
        token_email = self.identity.get_claims().email

        self.session.busy = True
        try:
            profile = await self.client.get_profile()
            self.session.delivery = self._prefill(record, token_email, profile=profile)
            self.session.profile_status = ProfileStatus(
                success=True,
                message="Successfully loaded user data from backend",
            )
        except StorefrontAPIError as e:
            logger.error(f"Error fetching profile: {e.message}")
            self.session.delivery = self._prefill(record, token_email)
            self.session.profile_status = ProfileStatus(
                success=False,
                message=f"Could not load data from backend: {e.message}. Using locally stored data instead.",
            )
        finally:
            self.session.busy = False

        return self._ok(data={"profile": self.session.profile_status.message})

    @staticmethod
    def _prefill(
        record: dict,
        token_email: Optional[str],
        profile: Optional[dict] = None,
    ) -> DeliveryForm:
        """Build the delivery form from the first non-empty value of each field"""
        values: dict[str, str] = {}
        for name in DeliveryForm.model_fields:
            key = to_camel(name)
            if name == "email" and profile is not None:
                # The server profile wins, then the token, then the cached record
                candidates = [profile.get(key), token_email, record.get(key)]
            elif name == "email":
                candidates = [record.get(key), token_email]
            else:
                candidates = [(profile or {}).get(key), record.get(key)]
            values[name] = str(next((c for c in candidates if c), ""))
        return DeliveryForm(**values)

    # ==================== Form input ====================

    def update_delivery(self, **fields: Any) -> FlowResult:
        """Update delivery form fields (snake_case or form names)"""
        known = {to_camel(name): name for name in DeliveryForm.model_fields}
        known.update({name: name for name in DeliveryForm.model_fields})

        unknown = [key for key in fields if key not in known]
        if unknown:
            return self._fail(f"Unknown delivery fields: {', '.join(unknown)}")

        values = self.session.delivery.model_dump()
        values.update({known[key]: "" if value is None else str(value) for key, value in fields.items()})
        self.session.delivery = DeliveryForm(**values)
        return self._ok()

    def select_payment_method(self, method: Union[str, PaymentMethod]) -> FlowResult:
        try:
            method = PaymentMethod(method)
        except ValueError:
            return self._fail(f"Unsupported payment method: {method}")

        self.session.payment_method = method
        return self._ok()

    def update_card(self, **fields: Any) -> FlowResult:
        """Update card fields. Editing the card invalidates an issued OTP."""
        unknown = [key for key in fields if key not in _CARD_FIELD_NAMES]
        if unknown:
            return self._fail(f"Unknown card fields: {', '.join(unknown)}")

        values = self.session.card.model_dump()
        values.update({
            _CARD_FIELD_NAMES[key]: "" if value is None else str(value)
            for key, value in fields.items()
        })
        card = CardForm(**values)

        if card != self.session.card and not isinstance(self.session.verification, Idle):
            self.session.set_verification(Idle())
        self.session.card = card
        return self._ok()

    # ==================== Step transitions ====================

    def next_step(self) -> FlowResult:
        """Advance one step if the current step's guard passes"""
        step = self.session.step

        if step == CheckoutStep.ADDRESS:
            missing = self.session.delivery.missing_fields()
            if missing:
                return self._fail(f"Please fill all required fields: {', '.join(missing)}")
            if not self.session.delivery.has_valid_email():
                return self._fail("Please enter a valid email address")

        elif step == CheckoutStep.SUMMARY:
            if not self.cart.get_user_cart_items():
                return self._fail("Your cart is empty. Please add items to your cart before checkout.")

        else:
            if self.session.payment_method == PaymentMethod.UNSET:
                return self._fail("Please select a payment method to continue")
            return self._fail("Payment is the final step. Place the order to complete checkout.")

        self.session.update_step(STEPS[step.index + 1])
        return self._ok()

    def back(self) -> FlowResult:
        """Go back one step; form data is kept"""
        if self.session.step.index > 0:
            self.session.update_step(STEPS[self.session.step.index - 1])
        return self._ok()

    def summary(self) -> FlowResult:
        """Order summary for the current cart"""
        items = self.cart.get_user_cart_items()
        return FlowResult(
            success=True,
            step=self.session.step,
            data={
                "items": [item.to_storage() for item in items],
                "count": self.cart.get_cart_count(),
                "total": self.cart.get_cart_total(),
            },
        )

    # ==================== Card verification ====================

    async def verify_card(self) -> FlowResult:
        """
        Verify the card and relay the issued OTP to the card holder.

        Allowed again from any state before the OTP is confirmed, which
        is how a new OTP is requested.
        """
        if self.session.busy:
            return self._busy()

        if self.session.payment_method != PaymentMethod.CARD:
            return self._fail("Select card payment to verify a card")

        if self.session.otp_verified:
            return self._ok("Card payment already verified")

        card = self.session.card
        if not card.is_complete():
            return self._fail("Please fill in all card details")

        self.session.busy = True
        self.session.set_verification(Verifying())
        try:
            try:
                data = await self.client.verify_card(card.to_verification_request())
            except StorefrontAPIError as e:
                logger.error(f"Card verification error: {e.message}")
                message = "Error verifying card. Please try again."
                self.session.set_verification(Failed(message))
                return self._fail(message)

            if not data.get("success"):
                message = data.get("message") or "Card verification failed"
                self.session.set_verification(Failed(message))
                return self._fail(message)

            card_details = data.get("cardDetails")
            otp = data.get("otp")
            if otp is None:
                self.session.set_verification(AwaitingOtp(expected_otp=None, card_details=card_details))
                return self._ok("Card verified successfully! Please check your email for OTP.")

            otp = str(otp)
            sent = await self.mailer.send_otp(
                otp,
                card_name=card.holder_name,
                holder_name=self.session.delivery.full_name,
                amount=self.cart.get_cart_total(),
                email=self.session.delivery.email or None,
            )
            self.session.set_verification(
                AwaitingOtp(expected_otp=otp, card_details=card_details, otp_sent=sent)
            )
        finally:
            self.session.busy = False

        if not sent:
            return self._fail("Card verified but failed to send OTP email. Please try again.")
        return self._ok("Card verified successfully! Please check your email for OTP.")

    async def resend_otp(self) -> FlowResult:
        """Issue a fresh OTP by verifying the card again"""
        return await self.verify_card()

    async def verify_otp(self, entered_otp: Optional[str]) -> FlowResult:
        """Check the OTP the user typed against the one issued for the card"""
        if self.session.busy:
            return self._busy()

        state = self.session.verification
        if isinstance(state, OtpVerified):
            return self._ok("OTP already verified")
        if not isinstance(state, AwaitingOtp):
            return self._fail("Please verify your card before entering the OTP")

        entered = (entered_otp or "").strip()
        if len(entered) < self.settings.otp_length:
            return self._fail(f"Invalid OTP: Please enter a valid {self.settings.otp_length}-digit OTP")

        self.session.busy = True
        try:
            data = await self.client.verify_otp(entered, state.expected_otp)
        except StorefrontAPIError as e:
            logger.error(f"OTP verification error: {e.message}")
            return self._fail("Error verifying OTP. Please try again.")
        finally:
            self.session.busy = False

        if not data.get("success"):
            return self._fail(data.get("message") or "Invalid OTP. Please check and try again.")

        self.session.set_verification(OtpVerified(card_details=state.card_details))
        return self._ok(
            "OTP verified successfully! Your payment will be marked as 'Paid' when you place the order."
        )

    # ==================== Order submission ====================

    @staticmethod
    def _local_stock_issues(items: list[CartLine]) -> list[StockIssue]:
        return [
            StockIssue(name=item.name, requested=item.quantity, available=item.available_stock)
            for item in items
            if item.quantity > item.available_stock
        ]

    async def _validate_stock(self, items: list[CartLine]) -> None:
        await self.client.validate_stock([
            {"productId": item.product_ref, "quantity": item.quantity}
            for item in items
        ])

    def _build_order(self, user_id: str, items: list[CartLine]) -> OrderRequest:
        method = self.session.payment_method
        paid_by_card = method == PaymentMethod.CARD

        return OrderRequest(
            user_id=user_id,
            items=[
                OrderItem(
                    product_id=item.product_ref,
                    name=item.name,
                    price=item.unit_price,
                    quantity=item.quantity,
                    image_url=item.image_url,
                )
                for item in items
            ],
            total=self.cart.get_cart_total(),
            delivery_address=self.session.delivery.to_address(),
            payment_method=method,
            payment_details=self.session.card.to_order_details() if paid_by_card else None,
            payment_status=PaymentStatus.PAID if paid_by_card else PaymentStatus.PENDING,
        )

    async def submit_order(self) -> FlowResult:
        """
        Place the order.

        Checks stock locally, re-validates it with the server, submits
        the order and clears the cart. Stock or order failures turn on
        the stock refresh advisory.
        """
        if self.session.busy:
            return self._busy()

        user_id = self._authenticated_identity()
        if not user_id:
            return self._redirect_to_login("You must be logged in to place an order")

        if self._identity_changed(user_id):
            return await self._restart_for(user_id)

        if self.session.step != CheckoutStep.PAYMENT:
            return self._fail("Please complete the previous steps before placing the order")

        self.session.show_stock_refresh = False
        self.session.retry_count = 0

        items = self.cart.get_user_cart_items()
        if not items:
            return self._fail("Your cart is empty. Please add items to your cart before placing an order.")

        method = self.session.payment_method
        if method == PaymentMethod.UNSET:
            return self._fail("Please select a payment method before placing an order.")

        if method == PaymentMethod.CARD:
            if not self.session.card.is_complete():
                return self._fail("Please fill in all card details before placing an order.")
            if not self.session.otp_verified:
                return self._fail("Please verify your card payment before placing the order.")

        issues = self._local_stock_issues(items)
        if issues:
            self.session.show_stock_refresh = True
            details = "; ".join(issue.describe() for issue in issues)
            return self._fail(f"Insufficient stock for the following items: {details}")

        try:
            order = self._build_order(user_id, items)
        except ValidationError as e:
            logger.error(f"Could not build order: {e}")
            return self._fail(
                "Some products in your cart are missing identification. "
                "Please try removing and adding them again."
            )

        self.session.busy = True
        try:
            try:
                await self._validate_stock(items)
            except StorefrontAPIError as e:
                self.session.show_stock_refresh = True
                return self._fail(e.message, data={"retry_count": self.session.retry_count})

            logger.info(
                f"Submitting order for {user_id}: {len(items)} items, "
                f"{order.total:.2f} via {method.value}"
            )
            try:
                response = await self.client.create_order(order.to_payload())
            except StorefrontAPIError as e:
                logger.error(f"Order submission error: {e.message}")
                self.session.show_stock_refresh = True
                return self._fail(e.message)
        finally:
            self.session.busy = False

        try:
            confirmation = OrderConfirmation.model_validate(response)
        except ValidationError as e:
            # The order exists server-side; only the confirmation details are unreadable
            logger.warning(f"Unexpected order response {response}: {e}")
            confirmation = OrderConfirmation()
        self.cart.clear_cart()

        logger.info(f"Order {confirmation.order_number or confirmation.order_id} placed for {user_id}")
        return FlowResult(
            success=True,
            message="Order placed successfully",
            step=self.session.step,
            redirect_to="/order-success",
            data={"order": confirmation.model_dump()},
        )

    async def retry_stock_validation(self) -> FlowResult:
        """Re-run the server stock check only"""
        if self.session.busy:
            return self._busy()

        user_id = self._authenticated_identity()
        if not user_id:
            return self._redirect_to_login("You must be logged in to place an order")

        if self._identity_changed(user_id):
            return await self._restart_for(user_id)

        items = self.cart.get_user_cart_items()
        if not items:
            return self._fail("Your cart is empty. Please add items to your cart before placing an order.")

        self.session.retry_count += 1

        self.session.busy = True
        try:
            await self._validate_stock(items)
        except StorefrontAPIError as e:
            self.session.show_stock_refresh = True
            return self._fail(e.message, data={"retry_count": self.session.retry_count})
        finally:
            self.session.busy = False

        self.session.show_stock_refresh = False
        return self._ok(
            "Stock confirmed. You can place your order now.",
            data={"retry_count": self.session.retry_count},
        )

    async def refresh(self) -> FlowResult:
        """Reload the cart from storage and restart the wizard"""
        self.cart.reload()
        self.session.reset()
        return await self.start()
