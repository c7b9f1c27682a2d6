# app/services/sms.py
import logging
import time
from dataclasses import dataclass
from typing import Optional

from twilio.rest import Client

logger = logging.getLogger(__name__)


@dataclass
class SmsReceipt:
    sid: str
    mock: bool = False


class SmsClient:
    """Twilio wrapper. Without credentials it runs in mock mode and only logs."""

    def __init__(self, account_sid: str = "", auth_token: str = "", from_number: str = ""):
        self.from_number = from_number
        self._client: Optional[Client] = None
        if account_sid and account_sid.startswith("AC") and auth_token and from_number:
            self._client = Client(account_sid, auth_token)
            logger.info("Twilio client initialized")
        else:
            logger.info("Twilio credentials not configured, SMS running in mock mode")

    @property
    def mock_mode(self) -> bool:
        return self._client is None

    def send(self, to: str, body: str) -> SmsReceipt:
        if self._client is None:
            logger.info("[MOCK SMS] to %s: %s", to, body)
            return SmsReceipt(sid=f"MOCK_SID_{int(time.time() * 1000)}", mock=True)

        message = self._client.messages.create(body=body, from_=self.from_number, to=to)
        logger.info("SMS sent to %s, SID: %s", to, message.sid)
        return SmsReceipt(sid=message.sid)

    def send_otp(self, phone: str, otp: str, expires_minutes: int = 10) -> SmsReceipt:
        return self.send(
            phone,
            f"Your Ambulance Dispatch verification code is: {otp}. "
            f"This code expires in {expires_minutes} minutes.",
        )

    def send_emergency_confirmation(self, phone: str, registration_number: str, eta: str) -> SmsReceipt:
        return self.send(
            phone,
            f"Your ambulance request is confirmed. Ambulance ({registration_number}) has been dispatched "
            f"and will arrive in approximately {eta}. Track in real-time on the app.",
        )

    def notify_driver(self, phone: str, severity: str, address: str) -> SmsReceipt:
        return self.send(
            phone,
            f"NEW EMERGENCY ASSIGNMENT ({severity.upper()}): Patient located at {address}. "
            f"Please confirm and start immediately.",
        )

    def close(self) -> None:
        self._client = None
