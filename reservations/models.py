from __future__ import annotations

from datetime import date as date_type
from datetime import datetime, timedelta

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone


DURATION_CHOICES = [(minutes, f"{minutes} minutes") for minutes in (30, 60, 90, 120, 150, 180)]


class FacilitySetting(models.Model):
    """
    Facility-wide booking rules. Conceptually a single row: ``load()`` lazily
    creates it with defaults and ``save()`` on a fresh instance merges into the
    existing row instead of adding a second one.
    """

    DEFAULT_NUMBER_OF_COURTS = 2
    DEFAULT_MIN_DURATION_MINUTES = 30
    DEFAULT_ADVANCE_BOOKING_DAYS = 30

    number_of_courts = models.PositiveSmallIntegerField(
        default=DEFAULT_NUMBER_OF_COURTS,
        validators=[MinValueValidator(1)],
    )
    minimum_reservation_duration_minutes = models.PositiveSmallIntegerField(
        choices=DURATION_CHOICES,
        default=DEFAULT_MIN_DURATION_MINUTES,
    )
    advance_booking_days = models.PositiveSmallIntegerField(
        default=DEFAULT_ADVANCE_BOOKING_DAYS,
        validators=[MinValueValidator(1), MaxValueValidator(365)],
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(number_of_courts__gte=1), name="facility_setting_courts_gte_1"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return (
            f"{self.number_of_courts} courts · min {self.minimum_reservation_duration_minutes} min · "
            f"{self.advance_booking_days} days ahead"
        )

    @classmethod
    def load(cls, *, lock: bool = False) -> "FacilitySetting":
        """
        Return the settings row, creating it with defaults on first use.
        Pass ``lock=True`` inside a transaction to take a row lock on it.
        """
        qs = cls.objects.order_by("id")
        if lock:
            qs = qs.select_for_update()
        setting = qs.first()
        if setting is None:
            setting = cls.objects.create()
            if lock:
                setting = cls.objects.select_for_update().get(pk=setting.pk)
        return setting

    @classmethod
    def update_settings(cls, **fields) -> "FacilitySetting":
        setting = cls.load()
        for name, value in fields.items():
            setattr(setting, name, value)
        setting.full_clean()
        setting.save()
        return setting

    def save(self, *args, **kwargs):
        if self._state.adding and self.pk is None:
            existing_id = type(self).objects.order_by("id").values_list("id", flat=True).first()
            if existing_id is not None:
                self.pk = existing_id
                self._state.adding = False
        super().save(*args, **kwargs)


class FacilitySchedule(models.Model):
    class Weekday(models.IntegerChoices):
        SUNDAY = 0, "Sunday"
        MONDAY = 1, "Monday"
        TUESDAY = 2, "Tuesday"
        WEDNESDAY = 3, "Wednesday"
        THURSDAY = 4, "Thursday"
        FRIDAY = 5, "Friday"
        SATURDAY = 6, "Saturday"

    day_of_week = models.PositiveSmallIntegerField(choices=Weekday.choices, unique=True)
    is_open = models.BooleanField(default=True)
    open_time = models.TimeField(null=True, blank=True)
    close_time = models.TimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["day_of_week"]

    def __str__(self) -> str:  # pragma: no cover
        if not self.is_open_day:
            return f"{self.get_day_of_week_display()}: closed"
        return f"{self.get_day_of_week_display()}: {self.open_time:%H:%M}–{self.close_time:%H:%M}"

    @property
    def is_open_day(self) -> bool:
        return bool(self.is_open and self.open_time is not None and self.close_time is not None)

    def clean(self) -> None:
        super().clean()
        if not self.is_open:
            return
        if self.open_time is None or self.close_time is None:
            raise ValidationError({"open_time": "Open and close times are required on open days."})
        if self.close_time <= self.open_time:
            raise ValidationError({"close_time": "Close time must be after open time."})

    @staticmethod
    def day_index(value: date_type) -> int:
        """
        Sunday-based weekday index (0 = Sunday … 6 = Saturday).
        """
        return (value.weekday() + 1) % 7

    @classmethod
    def get_schedule(cls, day_of_week: int) -> "FacilitySchedule | None":
        return cls.objects.filter(day_of_week=day_of_week).first()

    @classmethod
    def for_date(cls, value: date_type) -> "FacilitySchedule | None":
        return cls.get_schedule(cls.day_index(value))

    @classmethod
    def operating_window(cls, value: date_type) -> tuple[datetime, datetime] | None:
        """
        Timezone-aware (open, close) datetimes for a date, or None when closed.
        """
        schedule = cls.for_date(value)
        if schedule is None or not schedule.is_open_day:
            return None
        tz = timezone.get_current_timezone()
        return (
            timezone.make_aware(datetime.combine(value, schedule.open_time), tz),
            timezone.make_aware(datetime.combine(value, schedule.close_time), tz),
        )

    @classmethod
    def set_day(cls, day_of_week: int, *, is_open: bool, open_time=None, close_time=None) -> "FacilitySchedule":
        schedule = cls.objects.filter(day_of_week=day_of_week).first() or cls(day_of_week=day_of_week)
        schedule.is_open = is_open
        schedule.open_time = open_time
        schedule.close_time = close_time
        schedule.full_clean(validate_unique=False)
        schedule.save()
        return schedule


class ReservationCategory(models.TextChoices):
    GYM = "GYM", "Gym"
    BADMINTON_COURT = "BADMINTON_COURT", "Badminton court"


class ReservationStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    CONFIRMED = "CONFIRMED", "Confirmed"
    CANCELLED = "CANCELLED", "Cancelled"
    COMPLETED = "COMPLETED", "Completed"


ACTIVE_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)


class CourtReservationQuerySet(models.QuerySet):
    def active(self):
        return self.filter(status__in=ACTIVE_STATUSES)

    def not_cancelled(self):
        return self.exclude(status=ReservationStatus.CANCELLED)

    def for_court(self, court_number: int):
        return self.filter(court_number=court_number)

    def for_date(self, value: date_type):
        return self.filter(reservation_date=value)

    def overlapping(self, start: datetime, end: datetime):
        """
        Half-open [start, end) intersection: touching boundaries do not overlap.
        """
        return self.filter(start_time__lt=end, end_time__gt=start)

    def upcoming(self):
        return self.active().filter(start_time__gt=timezone.now())


class CourtReservation(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="court_reservations",
    )
    category = models.CharField(
        max_length=20,
        choices=ReservationCategory.choices,
        default=ReservationCategory.BADMINTON_COURT,
    )
    court_number = models.PositiveSmallIntegerField(validators=[MinValueValidator(1)])
    reservation_date = models.DateField(editable=False, blank=True)
    start_time = models.DateTimeField()
    end_time = models.DateTimeField(blank=True)
    duration_minutes = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    status = models.CharField(
        max_length=10,
        choices=ReservationStatus.choices,
        default=ReservationStatus.CONFIRMED,
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = CourtReservationQuerySet.as_manager()

    class Meta:
        constraints = [
            # Final guard against two racing inserts for the same court and start.
            models.UniqueConstraint(
                fields=["court_number", "start_time"],
                condition=Q(status__in=["PENDING", "CONFIRMED"]),
                name="unique_active_reservation_court_start",
            ),
            models.CheckConstraint(condition=Q(end_time__gt=models.F("start_time")), name="reservation_end_after_start"),
        ]
        indexes = [
            models.Index(fields=["user", "start_time"], name="idx_court_res_user_start"),
            models.Index(fields=["court_number", "reservation_date"], name="idx_court_res_court_date"),
        ]
        ordering = ["-start_time", "court_number"]

    def __str__(self) -> str:  # pragma: no cover
        return f"Court {self.court_number} · {self.local_start:%Y-%m-%d %H:%M}–{self.local_end:%H:%M} · {self.user}"

    @property
    def local_start(self) -> datetime:
        return timezone.localtime(self.start_time)

    @property
    def local_end(self) -> datetime:
        return timezone.localtime(self.end_time)

    def normalize(self) -> None:
        """
        Recompute derived fields from start_time and duration_minutes.
        Caller-supplied end_time / reservation_date are never trusted.
        """
        if self.start_time is None:
            return
        if self.duration_minutes:
            self.end_time = self.start_time + timedelta(minutes=int(self.duration_minutes))
        self.reservation_date = timezone.localtime(self.start_time).date()

    def clean(self) -> None:
        """
        Run the booking conflict rules at the model validation layer so admin
        and any other save path get the same protection as the service layer.
        """
        super().clean()
        self.normalize()
        if self.start_time is None or self.end_time is None or not self.is_active():
            return
        if self.user_id is None or self.court_number is None:
            return

        from .conflicts import court_is_free, has_member_overlap

        number_of_courts = FacilitySetting.load().number_of_courts
        if not 1 <= self.court_number <= number_of_courts:
            raise ValidationError({"court_number": f"Court number must be between 1 and {number_of_courts}."})
        if has_member_overlap(self.user_id, self.start_time, self.end_time, exclude_reservation_id=self.pk):
            raise ValidationError("This member already has a reservation that overlaps with this time.")
        if not court_is_free(self.court_number, self.start_time, self.end_time, exclude_reservation_id=self.pk):
            raise ValidationError({"court_number": "This court is already reserved for that time."})

    def save(self, *args, **kwargs):
        self.normalize()
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and {"start_time", "duration_minutes"} & set(update_fields):
            kwargs["update_fields"] = set(update_fields) | {"end_time", "reservation_date"}
        super().save(*args, **kwargs)

    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def is_future(self) -> bool:
        return self.end_time >= timezone.now()

    def cancel(self, reason: str | None = None) -> None:
        self.status = ReservationStatus.CANCELLED
        self.cancelled_at = timezone.now()
        self.cancellation_reason = reason or ""
        self.save(update_fields=["status", "cancelled_at", "cancellation_reason", "updated_at"])
