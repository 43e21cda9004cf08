from rest_framework import serializers

from .models import Appointment
from .policy import BookingPolicy


def _business_tz():
    return BookingPolicy.from_settings().tz


class SlotLockRequestSerializer(serializers.Serializer):
    """Validates the input for acquiring a slot lock."""

    barber_id = serializers.IntegerField()
    service_id = serializers.IntegerField()
    date = serializers.DateTimeField()

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # Naive timestamps are wall clock in the business time zone
        self.fields["date"].timezone = _business_tz()


class BookAppointmentSerializer(SlotLockRequestSerializer):
    """Validates the input for booking an appointment."""

    notes = serializers.CharField(
        max_length=Appointment.NOTES_MAX_LENGTH,
        required=False,
        allow_blank=True,
        default="",
    )


class AppointmentStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(
        choices=[
            Appointment.Status.ACCEPTED,
            Appointment.Status.REJECTED,
            Appointment.Status.CANCELLED,
            Appointment.Status.COMPLETED,
        ]
    )
    rejection_reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class AppointmentDateQuerySerializer(serializers.Serializer):
    date = serializers.DateField(required=False, input_formats=["%Y-%m-%d"])


class AppointmentResponseSerializer(serializers.ModelSerializer):
    """Full appointment details returned after booking and in listings."""

    client_name = serializers.CharField(source="client.name", read_only=True)
    barber_name = serializers.CharField(source="barber.name", read_only=True)
    service_name = serializers.CharField(source="service.name", read_only=True)
    service_duration = serializers.IntegerField(source="service.duration_minutes", read_only=True)
    service_price = serializers.DecimalField(
        source="service.price", max_digits=8, decimal_places=2, read_only=True
    )
    status_display = serializers.CharField(source="get_status_display", read_only=True)
    date = serializers.SerializerMethodField()

    class Meta:
        model = Appointment
        fields = [
            "id",
            "client_id",
            "client_name",
            "barber_id",
            "barber_name",
            "service_id",
            "service_name",
            "service_duration",
            "service_price",
            "date",
            "status",
            "status_display",
            "notes",
            "rejection_reason",
            "reminder_sent",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_date(self, obj):
        return obj.date.astimezone(_business_tz()).isoformat()
