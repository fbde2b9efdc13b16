"""OTP delivery through a transactional mail relay"""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class OtpMailer:
    """
    Relays card verification OTPs to the account holder by email.

    Delivery is best effort: failures are logged and reported as False,
    never raised.
    """

    def __init__(
        self,
        relay_url: str,
        access_key: Optional[str],
        store_name: str = "MilkMaster",
        subject: str = "BankCard OTP",
        currency_symbol: str = "Rs.",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.relay_url = relay_url
        self.access_key = access_key
        self.store_name = store_name
        self.subject = subject
        self.currency_symbol = currency_symbol
        self._http_client = http_client or httpx.AsyncClient()

        if not access_key:
            logger.warning("No mail relay access key configured - OTP emails will be rejected")

    async def close(self) -> None:
        await self._http_client.aclose()

    def build_message(self, otp: str, holder_name: str, amount: float) -> str:
        return (
            f"Dear Customer, Your OTP for an online purchase of {self.currency_symbol} {amount:.2f} "
            f"at {self.store_name} (Holder: {holder_name}) is {otp}. "
            "Please do not share this OTP with anyone."
        )

    async def send_otp(
        self,
        otp: str,
        card_name: str,
        holder_name: str,
        amount: float,
        email: Optional[str] = None,
    ) -> bool:
        """Send the OTP; returns True when the relay accepted the message"""
        if not (otp and card_name and holder_name.strip()):
            return False

        payload = {
            "Subject": self.subject,
            "message": self.build_message(otp, holder_name, amount),
            "access_key": self.access_key,
        }
        if email:
            payload["email"] = email

        try:
            response = await self._http_client.post(
                self.relay_url,
                json=payload,
                headers={"Accept": "application/json"},
            )
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"OTP relay failed: {e}")
            return False

        if isinstance(result, dict) and result.get("success"):
            logger.info("OTP email accepted by relay")
            return True

        logger.warning(f"OTP relay rejected message: {result}")
        return False
