"""
Tests for OTP delivery through the mail relay.
"""
import httpx
import pytest

from conftest import RELAY_URL, FakeBackend
from milkmaster.services.mail_relay import OtpMailer


def make_mailer(relay: FakeBackend, access_key="relay-key") -> OtpMailer:
    return OtpMailer(
        relay_url=RELAY_URL,
        access_key=access_key,
        http_client=httpx.AsyncClient(transport=relay.transport()),
    )


class TestOtpMailer:
    """Test the OTP email relay."""

    def test_build_message(self, mailer):
        message = mailer.build_message("123456", "Asha Rao", 150)

        assert message == (
            "Dear Customer, Your OTP for an online purchase of Rs. 150.00 at MilkMaster "
            "(Holder: Asha Rao) is 123456. Please do not share this OTP with anyone."
        )

    @pytest.mark.asyncio
    async def test_send_otp(self, mailer, relay):
        sent = await mailer.send_otp("123456", "ASHA RAO", "Asha Rao", 99.5, email="asha@example.com")

        assert sent is True
        payload = relay.bodies("/submit")[0]
        assert payload["Subject"] == "BankCard OTP"
        assert payload["access_key"] == "relay-key"
        assert payload["email"] == "asha@example.com"
        assert "123456" in payload["message"]
        assert "Rs. 99.50" in payload["message"]

    @pytest.mark.asyncio
    async def test_relay_rejection(self, relay):
        relay.on("POST", "/submit", status=400, json_body={"success": False, "message": "Invalid access key"})

        assert await make_mailer(relay, access_key=None).send_otp("123456", "A", "Asha Rao", 10) is False

    @pytest.mark.asyncio
    async def test_relay_unreachable(self, relay):
        relay.fail("POST", "/submit")

        assert await make_mailer(relay).send_otp("123456", "A", "Asha Rao", 10) is False

    @pytest.mark.asyncio
    async def test_relay_non_json(self, relay):
        relay.on("POST", "/submit", status=500, text="<html>oops</html>")

        assert await make_mailer(relay).send_otp("123456", "A", "Asha Rao", 10) is False

    @pytest.mark.asyncio
    async def test_missing_inputs_are_not_sent(self, mailer, relay):
        assert await mailer.send_otp("", "A", "Asha Rao", 10) is False
        assert await mailer.send_otp("123456", "A", " ", 10) is False
        assert relay.requests == []
