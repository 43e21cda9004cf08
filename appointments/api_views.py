from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.permissions import IsBarber, IsClient
from .exceptions import BookingBlockedError, BookingError, http_status_for
from .serializers import (
    AppointmentDateQuerySerializer,
    AppointmentResponseSerializer,
    AppointmentStatusUpdateSerializer,
    BookAppointmentSerializer,
    SlotLockRequestSerializer,
)
from .services import (
    ActorContext,
    BookingService,
    SlotLockManager,
    StatusTransitionEngine,
    get_barber_appointments,
    get_client_appointments,
)


def _error_response(e: BookingError) -> Response:
    body = {"detail": e.message, "code": e.code}
    if isinstance(e, BookingBlockedError):
        body["blocked_until"] = e.blocked_until.isoformat()
    return Response(body, status=http_status_for(e))


class SlotLockAPIView(APIView):
    """
    POST /appointments/api/slot-lock/

    Hold a slot for a few minutes while the client completes the booking.

    Request body:
        {
            "barber_id": 2,
            "service_id": 3,
            "date": "2026-02-20T10:00:00-06:00"
        }

    Success Response (200):
        {"lock_id": "...", "expires_at": "...", "renewed": false}

    Error Responses:
        400: Validation errors, past date, slot not on the grid.
        404: Barber or service not found.
        409: Slot held by another client or not available.
    """

    permission_classes = [IsClient]

    def post(self, request):
        serializer = SlotLockRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            grant = SlotLockManager().acquire(
                client_id=request.user.pk,
                barber_id=serializer.validated_data["barber_id"],
                service_id=serializer.validated_data["service_id"],
                start=serializer.validated_data["date"],
            )
        except BookingError as e:
            return _error_response(e)

        return Response(
            {
                "lock_id": str(grant.lock_id),
                "expires_at": grant.expires_at.isoformat(),
                "renewed": grant.renewed,
            },
            status=status.HTTP_200_OK,
        )


class BookAppointmentAPIView(APIView):
    """
    POST /appointments/api/book/

    Book an appointment as a client.

    Request body:
        {
            "barber_id": 2,
            "service_id": 3,
            "date": "2026-02-20T10:00:00-06:00",
            "notes": "Short on the sides"  (optional)
        }

    Success Response (201):
        Full appointment details via AppointmentResponseSerializer.

    Error Responses:
        400: Validation errors or booking rule violations.
        403: Booking blocked by the cancellation penalty.
        404: Barber or service not found.
        409: Slot taken, locked by someone else, or lost to a concurrent booking.
    """

    permission_classes = [IsClient]

    def post(self, request):
        serializer = BookAppointmentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            appointment = BookingService().book(
                client_id=request.user.pk,
                barber_id=serializer.validated_data["barber_id"],
                service_id=serializer.validated_data["service_id"],
                start=serializer.validated_data["date"],
                notes=serializer.validated_data.get("notes", ""),
            )
        except BookingError as e:
            return _error_response(e)

        response_serializer = AppointmentResponseSerializer(appointment)
        return Response(response_serializer.data, status=status.HTTP_201_CREATED)


class AppointmentStatusAPIView(APIView):
    """
    PATCH /appointments/api/<appointment_id>/status/

    Request body:
        {"status": "REJECTED", "rejection_reason": "Barber unavailable"}
    """

    permission_classes = [IsAuthenticated]

    def patch(self, request, appointment_id):
        serializer = AppointmentStatusUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            appointment = StatusTransitionEngine().transition(
                appointment_id,
                serializer.validated_data["status"],
                ActorContext.from_user(request.user),
                rejection_reason=serializer.validated_data.get("rejection_reason"),
            )
        except BookingError as e:
            return _error_response(e)

        return Response(AppointmentResponseSerializer(appointment).data, status=status.HTTP_200_OK)


class MyAppointmentsAPIView(APIView):
    """
    GET /appointments/api/my/?date=YYYY-MM-DD

    Appointments booked by the authenticated user, newest first.
    """

    permission_classes = [IsAuthenticated]

    def get(self, request):
        query = AppointmentDateQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return Response(query.errors, status=status.HTTP_400_BAD_REQUEST)

        appointments = get_client_appointments(request.user.pk, query.validated_data.get("date"))
        serializer = AppointmentResponseSerializer(appointments, many=True)
        return Response({"results": serializer.data}, status=status.HTTP_200_OK)


class BarberAppointmentsAPIView(APIView):
    """
    GET /appointments/api/barber/?date=YYYY-MM-DD

    Appointments assigned to the authenticated barber, newest first.
    """

    permission_classes = [IsBarber]

    def get(self, request):
        query = AppointmentDateQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return Response(query.errors, status=status.HTTP_400_BAD_REQUEST)

        appointments = get_barber_appointments(
            request.user.barber_profile.pk, query.validated_data.get("date")
        )
        serializer = AppointmentResponseSerializer(appointments, many=True)
        return Response({"results": serializer.data}, status=status.HTTP_200_OK)
