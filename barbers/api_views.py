from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from appointments.exceptions import BookingError, http_status_for
from .models import Barber, Service, WorkSchedule
from .serializers import DayAvailabilitySerializer, ServiceSerializer, WorkScheduleSerializer
from .services import AvailabilityCalculator


class ServiceListAPIView(APIView):
    """
    GET /barbers/api/services/

    Returns all active services.
    """

    permission_classes = [AllowAny]

    def get(self, request):
        services = Service.objects.filter(is_active=True)
        serializer = ServiceSerializer(services, many=True)
        return Response({"results": serializer.data}, status=status.HTTP_200_OK)


class BarberScheduleAPIView(APIView):
    """
    GET /barbers/api/<barber_id>/schedule/

    Returns the active weekly working hours of a barber.
    """

    permission_classes = [AllowAny]

    def get(self, request, barber_id):
        if not Barber.objects.filter(pk=barber_id, is_active=True).exists():
            return Response(
                {"detail": "Barber not found or inactive.", "code": "barber_not_found"},
                status=status.HTTP_404_NOT_FOUND,
            )

        schedules = WorkSchedule.objects.filter(barber_id=barber_id, is_active=True)
        serializer = WorkScheduleSerializer(schedules, many=True)
        return Response({"results": serializer.data}, status=status.HTTP_200_OK)


class BarberAvailableSlotsAPIView(APIView):
    """
    GET /barbers/api/<barber_id>/available-slots/?date=YYYY-MM-DD&service_id=Y

    Returns the slot grid for a date, each slot with the reason for its
    state. Slots locked by the requesting client read as available.
    """

    permission_classes = [AllowAny]

    def get(self, request, barber_id):
        date_str = request.query_params.get("date")
        service_id = request.query_params.get("service_id")

        errors = {}
        if not date_str:
            errors["date"] = "This query parameter is required (format: YYYY-MM-DD)."
        if not service_id:
            errors["service_id"] = "This query parameter is required."
        elif not service_id.isdigit():
            errors["service_id"] = "A valid integer is required."

        if errors:
            return Response(errors, status=status.HTTP_400_BAD_REQUEST)

        client_id = request.user.pk if request.user and request.user.is_authenticated else None

        try:
            availability = AvailabilityCalculator().get_available_slots(
                barber_id, date_str, int(service_id), client_id=client_id
            )
        except BookingError as e:
            return Response({"detail": e.message, "code": e.code}, status=http_status_for(e))

        serializer = DayAvailabilitySerializer(availability)
        return Response(serializer.data, status=status.HTTP_200_OK)
