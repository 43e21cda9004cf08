from django.urls import path
from . import api_views

app_name = "barbers"

urlpatterns = [
    path(
        "api/services/",
        api_views.ServiceListAPIView.as_view(),
        name="api_services",
    ),
    path(
        "api/<int:barber_id>/schedule/",
        api_views.BarberScheduleAPIView.as_view(),
        name="api_barber_schedule",
    ),
    path(
        "api/<int:barber_id>/available-slots/",
        api_views.BarberAvailableSlotsAPIView.as_view(),
        name="api_barber_available_slots",
    ),
]
