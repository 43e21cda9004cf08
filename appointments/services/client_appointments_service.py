"""
Appointment listings.

- Client view:  every appointment booked by the user
- Barber view:  every appointment assigned to the barber

Both accept an optional local calendar date and return a queryset ordered
newest first, with barber/service/client loaded in the same query.
"""

from appointments.models import Appointment
from appointments.policy import BookingPolicy
from barbers.services import parse_target_date
from barbers.timegrid import day_bounds


def _base_qs():
    return Appointment.objects.select_related("client", "barber", "service")


def _on_date(queryset, target_date, policy):
    if target_date is None or target_date == "":
        return queryset
    day_start, day_end = day_bounds(parse_target_date(target_date), policy.tz)
    return queryset.filter(date__gte=day_start, date__lt=day_end)


def get_client_appointments(client_id, target_date=None, policy=None):
    """
    Raises:
        InvalidInputError: target_date is given but malformed.
    """
    policy = policy or BookingPolicy.from_settings()
    queryset = _base_qs().filter(client_id=client_id)
    return _on_date(queryset, target_date, policy).order_by("-date")


def get_barber_appointments(barber_id, target_date=None, policy=None):
    """
    Raises:
        InvalidInputError: target_date is given but malformed.
    """
    policy = policy or BookingPolicy.from_settings()
    queryset = _base_qs().filter(barber_id=barber_id)
    return _on_date(queryset, target_date, policy).order_by("-date")
