from django.contrib import admin
from .models import Barber, ScheduleException, Service, WorkSchedule


class WorkScheduleInline(admin.TabularInline):
    model = WorkSchedule
    extra = 0


class ScheduleExceptionInline(admin.TabularInline):
    model = ScheduleException
    extra = 0


@admin.register(Barber)
class BarberAdmin(admin.ModelAdmin):
    list_display = ["name", "user", "is_active", "created_at"]
    list_filter = ["is_active"]
    search_fields = ["name", "user__name", "user__phone"]
    list_editable = ["is_active"]
    raw_id_fields = ["user"]
    inlines = [WorkScheduleInline, ScheduleExceptionInline]


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ["name", "duration_minutes", "price", "is_active"]
    list_filter = ["is_active"]
    search_fields = ["name"]
    list_editable = ["is_active"]


@admin.register(WorkSchedule)
class WorkScheduleAdmin(admin.ModelAdmin):
    list_display = ["barber", "day_of_week", "start_time", "end_time", "break_start", "break_end", "is_active"]
    list_filter = ["day_of_week", "is_active", "barber"]


@admin.register(ScheduleException)
class ScheduleExceptionAdmin(admin.ModelAdmin):
    list_display = ["date", "type", "barber", "reason"]
    list_filter = ["type", "barber"]
    date_hierarchy = "date"
