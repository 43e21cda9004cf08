import logging

from django.conf import settings
from twilio.rest import Client

logger = logging.getLogger(__name__)


def _client() -> Client:
    return Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)


def send_message(to: str, body: str):
    """
    Send a WhatsApp message through Twilio's WhatsApp channel.

    Raises:
        ValueError: If required settings are missing.
        twilio.base.exceptions.TwilioException: On API failures.
    """
    sender = getattr(settings, "TWILIO_WHATSAPP_FROM", "")
    if not (settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN and sender):
        raise ValueError(
            "Twilio WhatsApp is not configured. Set TWILIO_ACCOUNT_SID, "
            "TWILIO_AUTH_TOKEN and TWILIO_WHATSAPP_FROM."
        )

    message = _client().messages.create(
        from_=f"whatsapp:{sender}",
        to=f"whatsapp:{to}",
        body=body,
    )
    logger.info("[WHATSAPP] Twilio message sid=%s to=%s", message.sid, to)
    return message
