from django.urls import path

from .api import (
    availability_api,
    cancel_reservation_api,
    create_reservation_api,
    reschedule_reservation_api,
)


app_name = "reservations"

urlpatterns = [
    path("api/availability/", availability_api, name="availability_api"),
    path("api/reservations/", create_reservation_api, name="create_reservation_api"),
    path(
        "api/reservations/<int:reservation_id>/update/",
        reschedule_reservation_api,
        name="reschedule_reservation_api",
    ),
    path(
        "api/reservations/<int:reservation_id>/cancel/",
        cancel_reservation_api,
        name="cancel_reservation_api",
    ),
]
