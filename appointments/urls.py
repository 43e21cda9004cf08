from django.urls import path
from . import api_views

app_name = "appointments"

urlpatterns = [
    path(
        "api/slot-lock/",
        api_views.SlotLockAPIView.as_view(),
        name="api_slot_lock",
    ),
    path(
        "api/book/",
        api_views.BookAppointmentAPIView.as_view(),
        name="api_book_appointment",
    ),
    path(
        "api/<int:appointment_id>/status/",
        api_views.AppointmentStatusAPIView.as_view(),
        name="api_appointment_status",
    ),
    path(
        "api/my/",
        api_views.MyAppointmentsAPIView.as_view(),
        name="api_my_appointments",
    ),
    path(
        "api/barber/",
        api_views.BarberAppointmentsAPIView.as_view(),
        name="api_barber_appointments",
    ),
]
