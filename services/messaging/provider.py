"""Delivery of WhatsApp messages through Twilio's REST API.

When the ``TWILIO_ACCOUNT_SID``, ``TWILIO_AUTH_TOKEN`` and
``TWILIO_WHATSAPP_NUMBER`` variables are missing the sender is disabled and
messages are only logged.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

import httpx

logger = logging.getLogger("messaging")

TWILIO_API = "https://api.twilio.com/2010-04-01"


@dataclass
class DeliveryResult:
    status: str  # sent | skipped | failed
    provider_sid: Optional[str] = None
    error: Optional[str] = None


class TwilioSender:
    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        timeout: float = 5.0,
    ):
        self.account_sid = account_sid or os.getenv("TWILIO_ACCOUNT_SID")
        self.auth_token = auth_token or os.getenv("TWILIO_AUTH_TOKEN")
        self.from_number = from_number or os.getenv("TWILIO_WHATSAPP_NUMBER")
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def deliver(self, to_phone: str, body: str) -> DeliveryResult:
        """Send one message; never raises.

        Returns:
            DeliveryResult: ``sent`` with the provider sid, ``skipped`` when
            the sender is not configured, or ``failed`` with the error text.
        """
        if not self.configured:
            logger.info("twilio not configured, skipping send", extra={"to": to_phone})
            return DeliveryResult(status="skipped")

        url = f"{TWILIO_API}/Accounts/{self.account_sid}/Messages.json"
        data = {
            "From": f"whatsapp:{self.from_number}",
            "To": f"whatsapp:{to_phone}",
            "Body": body,
        }
        try:
            with httpx.Client(timeout=self.timeout, auth=(self.account_sid, self.auth_token)) as client:
                resp = client.post(url, data=data)
                resp.raise_for_status()
                sid = resp.json().get("sid")
        except (httpx.HTTPError, ValueError) as e:
            logger.error("twilio send error", extra={"to": to_phone, "error": str(e)})
            return DeliveryResult(status="failed", error=str(e))
        logger.info("twilio message sent", extra={"to": to_phone, "sid": sid})
        return DeliveryResult(status="sent", provider_sid=sid)
