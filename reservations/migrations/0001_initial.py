# Generated manually (initial migration).
from django.conf import settings
import django.core.validators
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="FacilitySetting",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "number_of_courts",
                    models.PositiveSmallIntegerField(
                        default=2, validators=[django.core.validators.MinValueValidator(1)]
                    ),
                ),
                (
                    "minimum_reservation_duration_minutes",
                    models.PositiveSmallIntegerField(
                        choices=[
                            (30, "30 minutes"),
                            (60, "60 minutes"),
                            (90, "90 minutes"),
                            (120, "120 minutes"),
                            (150, "150 minutes"),
                            (180, "180 minutes"),
                        ],
                        default=30,
                    ),
                ),
                (
                    "advance_booking_days",
                    models.PositiveSmallIntegerField(
                        default=30,
                        validators=[
                            django.core.validators.MinValueValidator(1),
                            django.core.validators.MaxValueValidator(365),
                        ],
                    ),
                ),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(number_of_courts__gte=1), name="facility_setting_courts_gte_1"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="FacilitySchedule",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "day_of_week",
                    models.PositiveSmallIntegerField(
                        choices=[
                            (0, "Sunday"),
                            (1, "Monday"),
                            (2, "Tuesday"),
                            (3, "Wednesday"),
                            (4, "Thursday"),
                            (5, "Friday"),
                            (6, "Saturday"),
                        ],
                        unique=True,
                    ),
                ),
                ("is_open", models.BooleanField(default=True)),
                ("open_time", models.TimeField(blank=True, null=True)),
                ("close_time", models.TimeField(blank=True, null=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["day_of_week"],
            },
        ),
        migrations.CreateModel(
            name="CourtReservation",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "category",
                    models.CharField(
                        choices=[("GYM", "Gym"), ("BADMINTON_COURT", "Badminton court")],
                        default="BADMINTON_COURT",
                        max_length=20,
                    ),
                ),
                (
                    "court_number",
                    models.PositiveSmallIntegerField(validators=[django.core.validators.MinValueValidator(1)]),
                ),
                ("reservation_date", models.DateField(blank=True, editable=False)),
                ("start_time", models.DateTimeField()),
                ("end_time", models.DateTimeField(blank=True)),
                (
                    "duration_minutes",
                    models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)]),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("CONFIRMED", "Confirmed"),
                            ("CANCELLED", "Cancelled"),
                            ("COMPLETED", "Completed"),
                        ],
                        default="CONFIRMED",
                        max_length=10,
                    ),
                ),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("cancellation_reason", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="court_reservations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-start_time", "court_number"],
            },
        ),
        migrations.AddIndex(
            model_name="courtreservation",
            index=models.Index(fields=["user", "start_time"], name="idx_court_res_user_start"),
        ),
        migrations.AddIndex(
            model_name="courtreservation",
            index=models.Index(fields=["court_number", "reservation_date"], name="idx_court_res_court_date"),
        ),
        migrations.AddConstraint(
            model_name="courtreservation",
            constraint=models.UniqueConstraint(
                condition=models.Q(status__in=["PENDING", "CONFIRMED"]),
                fields=("court_number", "start_time"),
                name="unique_active_reservation_court_start",
            ),
        ),
        migrations.AddConstraint(
            model_name="courtreservation",
            constraint=models.CheckConstraint(
                condition=models.Q(end_time__gt=models.F("start_time")), name="reservation_end_after_start"
            ),
        ),
    ]
