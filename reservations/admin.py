from django.contrib import admin, messages
from django.utils import timezone
from django.utils.html import format_html

from .models import CourtReservation, FacilitySchedule, FacilitySetting, ReservationStatus
from .services import cancel_reservation


admin.site.site_header = "Court & Membership Admin"
admin.site.site_title = "Court & Membership Admin"
admin.site.index_title = "Facility Controls"


STATUS_COLORS = {
    ReservationStatus.PENDING: "#c9b26b",
    ReservationStatus.CONFIRMED: "#4f8a5b",
    ReservationStatus.CANCELLED: "#a35d5d",
    ReservationStatus.COMPLETED: "#7e8571",
}


@admin.register(FacilitySetting)
class FacilitySettingAdmin(admin.ModelAdmin):
    list_display = ("number_of_courts", "minimum_reservation_duration_minutes", "advance_booking_days", "updated_at")

    def has_add_permission(self, request):
        if FacilitySetting.objects.exists():
            return False
        return super().has_add_permission(request)

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(FacilitySchedule)
class FacilityScheduleAdmin(admin.ModelAdmin):
    list_display = ("day_of_week", "is_open", "open_time", "close_time")
    list_editable = ("is_open", "open_time", "close_time")
    ordering = ("day_of_week",)


class UpcomingFilter(admin.SimpleListFilter):
    title = "timing"
    parameter_name = "timing"

    def lookups(self, request, model_admin):
        return (("upcoming", "Upcoming"), ("past", "Past"))

    def queryset(self, request, queryset):
        value = self.value()
        now = timezone.now()
        if value == "upcoming":
            return queryset.filter(start_time__gt=now)
        if value == "past":
            return queryset.filter(start_time__lte=now)
        return queryset


@admin.register(CourtReservation)
class CourtReservationAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "user_email",
        "category",
        "court_number",
        "reservation_date",
        "time_range",
        "duration_minutes",
        "status_badge",
    )
    list_filter = ("status", "category", "court_number", "reservation_date", UpcomingFilter)
    search_fields = ("user__email", "user__username")
    ordering = ("-start_time", "court_number")
    readonly_fields = ("reservation_date", "end_time", "cancelled_at", "created_at", "updated_at")
    list_select_related = ("user",)
    actions = ["cancel_selected"]

    @admin.display(description="User", ordering="user__email")
    def user_email(self, obj: CourtReservation) -> str:
        return obj.user.email or obj.user.username

    @admin.display(description="Time", ordering="start_time")
    def time_range(self, obj: CourtReservation) -> str:
        return f"{obj.local_start:%H:%M}–{obj.local_end:%H:%M}"

    @admin.display(description="Status", ordering="status")
    def status_badge(self, obj: CourtReservation) -> str:
        return format_html(
            '<span style="padding:3px 8px;border-radius:999px;color:{};font-weight:600;font-size:11px;">{}</span>',
            STATUS_COLORS.get(obj.status, "#7e8571"),
            obj.get_status_display(),
        )

    @admin.action(description="Cancel selected reservations")
    def cancel_selected(self, request, queryset):
        cancelled = 0
        for reservation in queryset.exclude(status=ReservationStatus.CANCELLED):
            cancel_reservation(reservation, "Cancelled by staff.")
            cancelled += 1
        self.message_user(request, f"Cancelled {cancelled} reservation(s).", messages.SUCCESS)

    def get_actions(self, request):
        actions = super().get_actions(request)
        actions.pop("delete_selected", None)
        return actions

    def save_model(self, request, obj, form, change):
        # Ensure model-level validation (including the conflict checks) runs before saving.
        obj.full_clean()
        return super().save_model(request, obj, form, change)
