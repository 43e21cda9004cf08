"""
WhatsApp notifications for appointments.

Channels (WHATSAPP_PROVIDER setting):
- META:   approved templates through the Meta Cloud API
- TWILIO: plain text through Twilio's WhatsApp sender
- other:  log-only mock, so development never depends on a provider

Senders raise on failure. Callers on the booking path wrap every call
and only log; a notification problem never undoes a committed booking.
"""

import logging

from django.conf import settings

from appointments.models import Appointment
from appointments.policy import BookingPolicy

logger = logging.getLogger(__name__)

TEMPLATE_APPOINTMENT_CONFIRMATION = "appointment_confirmation"
TEMPLATE_APPOINTMENT_REMINDER = "appointment_reminder"

_TEXT_TEMPLATES = {
    TEMPLATE_APPOINTMENT_CONFIRMATION: (
        "Hi {0}, your appointment with {1} for {2} on {3} is booked. "
        "We will confirm it shortly."
    ),
    TEMPLATE_APPOINTMENT_REMINDER: (
        "Hi {0}, reminder: your appointment with {1} for {2} is on {3}. "
        "If you cannot make it, please cancel at least 2 hours before."
    ),
}


def _provider():
    return getattr(settings, "WHATSAPP_PROVIDER", "").upper()


def _is_whatsapp_configured():
    """True only when the selected provider has every required setting."""
    provider = _provider()
    if provider == "META":
        return bool(
            getattr(settings, "WHATSAPP_ACCESS_TOKEN", "")
            and getattr(settings, "WHATSAPP_PHONE_ID", "")
        )
    if provider == "TWILIO":
        return bool(
            getattr(settings, "TWILIO_ACCOUNT_SID", "")
            and getattr(settings, "TWILIO_AUTH_TOKEN", "")
            and getattr(settings, "TWILIO_WHATSAPP_FROM", "")
        )
    return False


class AppointmentNotifier:
    def __init__(self, policy=None):
        self.policy = policy or BookingPolicy.from_settings()

    def _load(self, appointment_id):
        return (
            Appointment.objects.select_related("client", "barber", "service")
            .filter(pk=appointment_id)
            .first()
        )

    def _template_params(self, appointment):
        local_start = appointment.date.astimezone(self.policy.tz)
        return [
            appointment.client.first_name_or_name or "Client",
            appointment.barber.name,
            appointment.service.name,
            local_start.strftime("%d %b %Y, %H:%M"),
        ]

    def _send(self, phone, template_name, params):
        if not _is_whatsapp_configured():
            logger.info(
                "[WHATSAPP] Provider not configured; MOCK %s to=%s params=%s",
                template_name,
                phone,
                params,
            )
            return

        if _provider() == "META":
            from appointments.services.meta_whatsapp import send_template

            send_template(phone, template_name, params)
        else:
            from appointments.services.twilio_whatsapp import send_message

            send_message(phone, _TEXT_TEMPLATES[template_name].format(*params))

    def notify_confirmation(self, appointment_id) -> bool:
        """Send the booking confirmation. Returns False when there is nothing to send."""
        appointment = self._load(appointment_id)
        if appointment is None or not appointment.client.phone:
            logger.warning(
                "[WHATSAPP] Appointment %s missing or client without phone; no confirmation sent",
                appointment_id,
            )
            return False

        self._send(
            appointment.client.phone,
            TEMPLATE_APPOINTMENT_CONFIRMATION,
            self._template_params(appointment),
        )
        return True

    def notify_reminder(self, appointment_id) -> bool:
        """
        Send the day-before reminder once.

        No-op when the reminder already went out or the appointment is no
        longer PENDING. Marks reminder_sent after a successful send.
        """
        appointment = self._load(appointment_id)
        if appointment is None or not appointment.client.phone or appointment.reminder_sent:
            return False
        if appointment.status != Appointment.Status.PENDING:
            return False

        self._send(
            appointment.client.phone,
            TEMPLATE_APPOINTMENT_REMINDER,
            self._template_params(appointment),
        )
        Appointment.objects.filter(pk=appointment.pk).update(reminder_sent=True)
        logger.info("[WHATSAPP] Reminder sent for appointment_id=%s", appointment.pk)
        return True
