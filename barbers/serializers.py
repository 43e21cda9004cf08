from rest_framework import serializers

from .models import Service, WorkSchedule


class ServiceSerializer(serializers.ModelSerializer):
    class Meta:
        model = Service
        fields = ["id", "name", "description", "duration_minutes", "price"]


class WorkScheduleSerializer(serializers.ModelSerializer):
    """Serializer for weekly working hours."""

    day_name = serializers.CharField(source="get_day_of_week_display", read_only=True)
    start_time = serializers.TimeField(format="%H:%M")
    end_time = serializers.TimeField(format="%H:%M")
    break_start = serializers.TimeField(format="%H:%M", allow_null=True)
    break_end = serializers.TimeField(format="%H:%M", allow_null=True)

    class Meta:
        model = WorkSchedule
        fields = ["id", "day_of_week", "day_name", "start_time", "end_time", "break_start", "break_end"]


class SlotSerializer(serializers.Serializer):
    """
    Serializer for computed time slots.
    These are not database records; they are generated on the fly
    from WorkSchedule + existing Appointments + live SlotLocks.
    """

    time = serializers.CharField()
    reason = serializers.CharField()
    is_available = serializers.BooleanField()


class DayAvailabilitySerializer(serializers.Serializer):
    date = serializers.DateField()
    barber_id = serializers.IntegerField()
    service_id = serializers.IntegerField()
    duration_minutes = serializers.IntegerField()
    available = serializers.ListField(child=serializers.CharField())
    occupied = serializers.ListField(child=serializers.CharField())
    slots = SlotSerializer(many=True)
