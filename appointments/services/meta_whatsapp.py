import logging
import re

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

META_GRAPH_BASE_URL = "https://graph.facebook.com"


def normalize_recipient(phone: str) -> str:
    """Meta expects the international number with digits only (no '+')."""
    return re.sub(r"\D", "", phone or "")


def send_template(to: str, template_name: str, parameters: list[str]) -> bool:
    """
    Send an approved WhatsApp template via the Meta Cloud API.

    Args:
        to: Recipient phone number (any formatting).
        template_name: Name of the approved template.
        parameters: Ordered body parameters of the template.

    Returns:
        True if the message was accepted by the API.

    Raises:
        ValueError: If required settings are missing.
        RuntimeError: If the API answers with an error.
        requests.RequestException: On network / HTTP failures.
    """
    token = getattr(settings, "WHATSAPP_ACCESS_TOKEN", "")
    phone_id = getattr(settings, "WHATSAPP_PHONE_ID", "")
    api_version = getattr(settings, "WHATSAPP_API_VERSION", "v21.0")
    language = getattr(settings, "WHATSAPP_TEMPLATE_LANGUAGE", "es")

    if not token or not phone_id:
        raise ValueError(
            "Meta WhatsApp is not configured. Set WHATSAPP_ACCESS_TOKEN and WHATSAPP_PHONE_ID."
        )

    recipient = normalize_recipient(to)
    template = {"name": template_name, "language": {"code": language}}
    if parameters:
        template["components"] = [
            {
                "type": "body",
                "parameters": [{"type": "text", "text": text} for text in parameters],
            }
        ]

    payload = {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": recipient,
        "type": "template",
        "template": template,
    }

    logger.info("[WHATSAPP] Sending template=%s to=%s via Meta", template_name, recipient)

    response = requests.post(
        f"{META_GRAPH_BASE_URL}/{api_version}/{phone_id}/messages",
        json=payload,
        headers={"Authorization": f"Bearer {token}"},
        timeout=10,
    )

    if response.status_code >= 400:
        logger.error(
            "[WHATSAPP] Meta API error to=%s status=%s body=%r",
            recipient,
            response.status_code,
            response.text[:500],
        )
        raise RuntimeError(f"Meta WhatsApp API error (status={response.status_code})")

    logger.info("[WHATSAPP] Template %s accepted for to=%s", template_name, recipient)
    return True
