# connectors/sms/twilio.py

import os
import logging

from connectors.base import BaseConnector

logger = logging.getLogger(__name__)

TWILIO_BASE_URL = "https://api.twilio.com/2010-04-01"


class TwilioConnector(BaseConnector):
    """Envoi de SMS via l'API Messages de Twilio (Basic Auth)."""

    REQUIRED_CREDENTIALS = ("account_sid", "auth_token", "from_number")
    TIMEOUT = 15

    @classmethod
    def from_env(cls) -> "TwilioConnector":
        return cls({
            "account_sid": os.environ.get("TWILIO_ACCOUNT_SID", ""),
            "auth_token": os.environ.get("TWILIO_AUTH_TOKEN", ""),
            "from_number": os.environ.get("TWILIO_PHONE_NUMBER", ""),
        })

    def _get_source_name(self) -> str:
        return "twilio"

    def send_message(self, to: str, body: str) -> str:
        """Retourne le SID du message."""
        sid = self.credentials["account_sid"]

        data = self._request(
            "POST", f"{TWILIO_BASE_URL}/Accounts/{sid}/Messages.json",
            data={
                "To": to,
                "From": self.credentials["from_number"],
                "Body": body,
            },
            auth=(sid, self.credentials["auth_token"]),
        )

        message_sid = data.get("sid", "") if isinstance(data, dict) else ""
        logger.info(f"[twilio] SMS envoyé à {to} : {message_sid}")
        return message_sid
