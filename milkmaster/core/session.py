"""Checkout session state"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Optional, Union

from ..models.checkout import CardForm, CheckoutStep, DeliveryForm, PaymentMethod


# ==================== Card verification states ====================

@dataclass(frozen=True)
class Idle:
    """No card verification attempted yet"""
    kind: ClassVar[str] = "idle"


@dataclass(frozen=True)
class Verifying:
    """Card verification request in flight"""
    kind: ClassVar[str] = "verifying"


@dataclass(frozen=True)
class AwaitingOtp:
    """Card accepted; waiting for the user to enter the emailed OTP"""
    expected_otp: Optional[str]
    card_details: Optional[dict] = None
    otp_sent: bool = True
    kind: ClassVar[str] = "awaiting_otp"


@dataclass(frozen=True)
class Failed:
    """Card rejected or the request failed"""
    message: str
    kind: ClassVar[str] = "failed"


@dataclass(frozen=True)
class OtpVerified:
    """OTP confirmed; a card order may be placed"""
    card_details: Optional[dict] = None
    kind: ClassVar[str] = "otp_verified"


VerificationState = Union[Idle, Verifying, AwaitingOtp, Failed, OtpVerified]


@dataclass
class ProfileStatus:
    """Where the delivery form prefill came from"""
    success: bool
    message: str


@dataclass
class CheckoutSession:
    """One checkout wizard, from mount until the order is placed"""
    session_id: str
    created_at: datetime
    updated_at: datetime
    identity: Optional[str] = None
    step: CheckoutStep = CheckoutStep.ADDRESS
    delivery: DeliveryForm = field(default_factory=DeliveryForm)
    payment_method: PaymentMethod = PaymentMethod.UNSET
    card: CardForm = field(default_factory=CardForm)
    verification: VerificationState = field(default_factory=Idle)
    error: str = ""
    notice: str = ""
    busy: bool = False
    retry_count: int = 0
    show_stock_refresh: bool = False
    profile_status: Optional[ProfileStatus] = None

    def touch(self) -> None:
        self.updated_at = datetime.utcnow()

    def reset(self) -> None:
        """Back to a freshly mounted wizard (keeps the session id)"""
        self.step = CheckoutStep.ADDRESS
        self.delivery = DeliveryForm()
        self.payment_method = PaymentMethod.UNSET
        self.card = CardForm()
        self.verification = Idle()
        self.error = ""
        self.notice = ""
        self.busy = False
        self.retry_count = 0
        self.show_stock_refresh = False
        self.profile_status = None
        self.touch()

    def update_step(self, new_step: CheckoutStep) -> None:
        """Move to a wizard step"""
        self.step = new_step
        self.touch()

    def set_verification(self, state: VerificationState) -> None:
        self.verification = state
        self.touch()

    @property
    def otp_verified(self) -> bool:
        return isinstance(self.verification, OtpVerified)

    def to_dict(self) -> dict[str, Any]:
        """Session view for the UI (never exposes card number, CVV or OTP)"""
        verification: dict[str, Any] = {"state": self.verification.kind}
        if isinstance(self.verification, AwaitingOtp):
            verification["otp_sent"] = self.verification.otp_sent
        elif isinstance(self.verification, Failed):
            verification["message"] = self.verification.message

        return {
            "session_id": self.session_id,
            "step": self.step.value,
            "delivery": self.delivery.model_dump(by_alias=True),
            "payment_method": self.payment_method.value,
            "card": {
                "last_four": self.card.last_four if self.card.number else None,
                "holder_name": self.card.holder_name,
                "expiry": self.card.expiry,
            },
            "verification": verification,
            "error": self.error,
            "notice": self.notice,
            "busy": self.busy,
            "retry_count": self.retry_count,
            "show_stock_refresh": self.show_stock_refresh,
            "profile_status": (
                {"success": self.profile_status.success, "message": self.profile_status.message}
                if self.profile_status else None
            ),
        }


class SessionManager:
    """Manages checkout sessions"""

    def __init__(self):
        self.sessions: dict[str, CheckoutSession] = {}

    def create_session(self, identity: Optional[str] = None) -> CheckoutSession:
        """Create a new session"""
        now = datetime.utcnow()
        session = CheckoutSession(
            session_id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            identity=identity,
        )
        self.sessions[session.session_id] = session
        return session

    def get_session(self, session_id: str) -> Optional[CheckoutSession]:
        """Get session by ID"""
        return self.sessions.get(session_id)

    def delete_session(self, session_id: str) -> bool:
        """Delete a session"""
        if session_id in self.sessions:
            del self.sessions[session_id]
            return True
        return False

    def cleanup_old_sessions(self, max_age_hours: int = 24) -> int:
        """Remove sessions older than max_age_hours"""
        now = datetime.utcnow()
        old_sessions = [
            sid for sid, session in self.sessions.items()
            if (now - session.updated_at).total_seconds() > max_age_hours * 3600
        ]
        for sid in old_sessions:
            del self.sessions[sid]
        return len(old_sessions)


# Singleton instance
session_manager = SessionManager()
