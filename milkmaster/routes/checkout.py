"""Checkout API routes"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..core.config import settings
from ..core.identity import IdentityResolver
from ..core.session import CheckoutSession, session_manager
from ..database.carts import CartStore
from ..services.checkout_flow import CheckoutFlow, FlowResult
from ..services.mail_relay import OtpMailer
from ..services.storefront_client import StorefrontClient
from .deps import get_cart_store, get_identity, get_otp_mailer, get_storefront_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/checkout", tags=["Checkout"])


class PaymentMethodRequest(BaseModel):
    method: str


class OtpRequest(BaseModel):
    otp: str


class CheckoutResponse(BaseModel):
    """Response from checkout endpoints"""
    session_id: str
    success: bool
    message: str = ""
    redirect_to: Optional[str] = None
    data: Optional[dict] = None
    session: dict[str, Any]


def _build_flow(
    session: CheckoutSession,
    cart: CartStore,
    identity: IdentityResolver,
    client: StorefrontClient,
    mailer: OtpMailer,
) -> CheckoutFlow:
    return CheckoutFlow(
        session=session,
        cart=cart,
        identity=identity,
        client=client,
        mailer=mailer,
        settings=settings,
    )


def get_flow(
    session_id: str,
    cart: CartStore = Depends(get_cart_store),
    identity: IdentityResolver = Depends(get_identity),
    client: StorefrontClient = Depends(get_storefront_client),
    mailer: OtpMailer = Depends(get_otp_mailer),
) -> CheckoutFlow:
    """Flow for an existing checkout session"""
    session = session_manager.get_session(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Checkout session not found")
    return _build_flow(session, cart, identity, client, mailer)


def _response(flow: CheckoutFlow, result: FlowResult) -> CheckoutResponse:
    return CheckoutResponse(
        session_id=flow.session.session_id,
        success=result.success,
        message=result.message,
        redirect_to=result.redirect_to,
        data=result.data,
        session=flow.session.to_dict(),
    )


@router.post("", response_model=CheckoutResponse)
async def start_checkout(
    cart: CartStore = Depends(get_cart_store),
    identity: IdentityResolver = Depends(get_identity),
    client: StorefrontClient = Depends(get_storefront_client),
    mailer: OtpMailer = Depends(get_otp_mailer),
):
    """
    Open the checkout wizard.

    Not logged in: the response carries redirect_to and the session is
    discarded right away.
    """
    removed = session_manager.cleanup_old_sessions(settings.checkout_session_max_age_hours)
    if removed:
        logger.info(f"Discarded {removed} abandoned checkout sessions")

    session = session_manager.create_session()
    flow = _build_flow(session, cart, identity, client, mailer)
    result = await flow.start()

    if result.redirect_to:
        session_manager.delete_session(session.session_id)
    else:
        logger.info(f"Checkout session {session.session_id} opened for {session.identity}")

    return _response(flow, result)


@router.get("/{session_id}", response_model=CheckoutResponse)
async def get_checkout(flow: CheckoutFlow = Depends(get_flow)):
    """Current wizard state"""
    return _response(flow, FlowResult(success=True, step=flow.session.step))


@router.patch("/{session_id}/delivery", response_model=CheckoutResponse)
async def update_delivery(fields: dict[str, Optional[str]], flow: CheckoutFlow = Depends(get_flow)):
    """Edit delivery form fields"""
    return _response(flow, flow.update_delivery(**fields))


@router.put("/{session_id}/payment-method", response_model=CheckoutResponse)
async def select_payment_method(request: PaymentMethodRequest, flow: CheckoutFlow = Depends(get_flow)):
    """Choose cash on delivery or card"""
    return _response(flow, flow.select_payment_method(request.method))


@router.patch("/{session_id}/card", response_model=CheckoutResponse)
async def update_card(fields: dict[str, Optional[str]], flow: CheckoutFlow = Depends(get_flow)):
    """Edit card form fields"""
    return _response(flow, flow.update_card(**fields))


@router.post("/{session_id}/next", response_model=CheckoutResponse)
async def next_step(flow: CheckoutFlow = Depends(get_flow)):
    return _response(flow, flow.next_step())


@router.post("/{session_id}/back", response_model=CheckoutResponse)
async def previous_step(flow: CheckoutFlow = Depends(get_flow)):
    return _response(flow, flow.back())


@router.get("/{session_id}/summary", response_model=CheckoutResponse)
async def get_summary(flow: CheckoutFlow = Depends(get_flow)):
    """Order summary for the current cart"""
    return _response(flow, flow.summary())


@router.post("/{session_id}/verify-card", response_model=CheckoutResponse)
async def verify_card(flow: CheckoutFlow = Depends(get_flow)):
    """Verify the card and email the OTP"""
    return _response(flow, await flow.verify_card())


@router.post("/{session_id}/resend-otp", response_model=CheckoutResponse)
async def resend_otp(flow: CheckoutFlow = Depends(get_flow)):
    return _response(flow, await flow.resend_otp())


@router.post("/{session_id}/verify-otp", response_model=CheckoutResponse)
async def verify_otp(request: OtpRequest, flow: CheckoutFlow = Depends(get_flow)):
    return _response(flow, await flow.verify_otp(request.otp))


@router.post("/{session_id}/order", response_model=CheckoutResponse)
async def place_order(flow: CheckoutFlow = Depends(get_flow)):
    """Place the order; the session ends when it succeeds"""
    result = await flow.submit_order()

    if result.success or result.redirect_to:
        session_manager.delete_session(flow.session.session_id)
        logger.info(f"Checkout session {flow.session.session_id} closed: {result.message}")

    return _response(flow, result)


@router.post("/{session_id}/retry-stock", response_model=CheckoutResponse)
async def retry_stock_validation(flow: CheckoutFlow = Depends(get_flow)):
    """Re-check stock with the server"""
    return _response(flow, await flow.retry_stock_validation())


@router.post("/{session_id}/refresh", response_model=CheckoutResponse)
async def refresh_checkout(flow: CheckoutFlow = Depends(get_flow)):
    """Reload the cart and restart the wizard"""
    result = await flow.refresh()

    if result.redirect_to:
        session_manager.delete_session(flow.session.session_id)

    return _response(flow, result)


@router.delete("/{session_id}")
async def leave_checkout(session_id: str):
    """Discard the wizard (navigating away)"""
    if session_manager.delete_session(session_id):
        return {"message": "Checkout session discarded"}
    raise HTTPException(status_code=404, detail="Checkout session not found")
