from django.contrib import admin
from .models import Appointment, SlotLock


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    """Read-only: appointments are created and moved through the booking and status APIs."""

    list_display = [
        "id",
        "client",
        "barber",
        "service",
        "date",
        "status",
        "loyalty_points_awarded",
        "reminder_sent",
        "created_at",
    ]
    list_filter = ["status", "barber", "reminder_sent"]
    search_fields = ["client__name", "client__phone", "barber__name", "service__name"]
    raw_id_fields = ["client", "barber", "service"]
    date_hierarchy = "date"

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(SlotLock)
class SlotLockAdmin(admin.ModelAdmin):
    list_display = ["id", "barber", "slot_start", "locked_by", "expires_at"]
    list_filter = ["barber"]
    raw_id_fields = ["barber", "locked_by"]
    readonly_fields = ["created_at"]
