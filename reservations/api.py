from __future__ import annotations

import json
from datetime import date as date_type
from datetime import time

from django.core.exceptions import PermissionDenied
from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_GET
from django.views.decorators.http import require_POST

from .models import CourtReservation, ReservationCategory
from .services import (
    MembershipRequiredError,
    PastReservationError,
    ReservationError,
    ReservationInput,
    SlotUnavailableError,
    cancel_member_reservation,
    create_reservation,
    reschedule_reservation,
)
from .slots import available_slots


def _parse_date(value: str) -> date_type:
    return date_type.fromisoformat(value)


def _parse_time(value: str) -> time:
    return time.fromisoformat(value)


def _serialize(reservation: CourtReservation) -> dict:
    return {
        "id": reservation.id,
        "category": reservation.category,
        "court_number": reservation.court_number,
        "reservation_date": reservation.reservation_date.isoformat(),
        "start_time": reservation.local_start.isoformat(),
        "end_time": reservation.local_end.isoformat(),
        "duration_minutes": reservation.duration_minutes,
        "status": reservation.status,
    }


def _read_payload(request) -> tuple[dict | None, JsonResponse | None]:
    try:
        payload = json.loads(request.body.decode("utf-8") or "{}")
    except json.JSONDecodeError:
        return None, JsonResponse({"error": "Invalid JSON payload."}, status=400)
    if not isinstance(payload, dict):
        return None, JsonResponse({"error": "JSON payload must be an object."}, status=400)
    return payload, None


def _string_field(payload: dict, key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        return None
    return value.strip()


def _reservation_input(payload: dict) -> tuple[ReservationInput | None, JsonResponse | None]:
    date_str = _string_field(payload, "date")
    start_str = _string_field(payload, "start_time")
    category = _string_field(payload, "category")
    duration = payload.get("duration_minutes")
    court_number = payload.get("court_number")

    if date_str is None or start_str is None or category is None:
        return None, JsonResponse({"error": "date, start_time and category must be strings."}, status=400)
    if not date_str:
        return None, JsonResponse({"error": "date is required."}, status=400)
    if not start_str:
        return None, JsonResponse({"error": "start_time is required."}, status=400)
    if not isinstance(duration, int):
        return None, JsonResponse({"error": "duration_minutes must be an integer."}, status=400)
    if court_number is not None and not isinstance(court_number, int):
        return None, JsonResponse({"error": "court_number must be an integer."}, status=400)

    try:
        target_date = _parse_date(date_str)
        start_time = _parse_time(start_str)
    except ValueError:
        return None, JsonResponse({"error": "Invalid date or time. Expected YYYY-MM-DD and HH:MM."}, status=400)

    return (
        ReservationInput(
            date=target_date,
            start_time=start_time,
            duration_minutes=duration,
            court_number=court_number,
            category=category or ReservationCategory.BADMINTON_COURT,
        ),
        None,
    )


def _conflict_response(exc: SlotUnavailableError) -> JsonResponse:
    return JsonResponse({"error": str(exc), "code": exc.code}, status=409)


@require_GET
def availability_api(request):
    """
    GET /api/availability/?date=YYYY-MM-DD[&court_number=1]

    Returns the day's slots with booked courts and remaining capacity, plus
    the caller's own active reservations on that date.
    """
    if not request.user.is_authenticated:
        return JsonResponse({"error": "Authentication required."}, status=401)

    date_str = request.GET.get("date", "").strip()
    if not date_str:
        return JsonResponse({"error": "Missing required query param: date"}, status=400)

    try:
        target_date = _parse_date(date_str)
    except ValueError:
        return JsonResponse({"error": "Invalid date. Expected YYYY-MM-DD."}, status=400)

    court_number = request.GET.get("court_number", "").strip()
    if court_number and not court_number.isdigit():
        return JsonResponse({"error": "Invalid court_number. Expected an integer."}, status=400)

    slots = available_slots(target_date, court_number=int(court_number) if court_number else None)
    mine = CourtReservation.objects.filter(user=request.user).for_date(target_date).not_cancelled()

    return JsonResponse(
        {
            "date": target_date.isoformat(),
            "slots": [
                {
                    "start_time": slot.start.isoformat(),
                    "time_string": slot.time_string,
                    "available_courts": slot.available_courts,
                    "is_available": slot.is_available,
                    "booked_courts": slot.booked_courts,
                }
                for slot in slots
            ],
            "member_reservations": [
                {
                    "start": timezone.localtime(r.start_time).strftime("%H:%M"),
                    "end": timezone.localtime(r.end_time).strftime("%H:%M"),
                    "court_number": r.court_number,
                }
                for r in mine
            ],
        }
    )


@require_POST
def create_reservation_api(request):
    """
    POST /api/reservations/
    Payload (JSON):
      - date: YYYY-MM-DD
      - start_time: HH:MM
      - duration_minutes: int
      - court_number: int (optional; any free court when omitted)
    """
    if not request.user.is_authenticated:
        return JsonResponse({"error": "Authentication required."}, status=401)

    payload, error = _read_payload(request)
    if error:
        return error
    data, error = _reservation_input(payload)
    if error:
        return error

    try:
        reservation = create_reservation(user=request.user, data=data)
    except ValidationError as exc:
        return JsonResponse({"error": "Validation error.", "details": exc.message_dict}, status=400)
    except MembershipRequiredError as exc:
        return JsonResponse({"error": str(exc), "code": exc.code}, status=403)
    except PastReservationError as exc:
        return JsonResponse({"error": str(exc)}, status=400)
    except SlotUnavailableError as exc:
        return _conflict_response(exc)

    return JsonResponse(
        {
            "success": True,
            "reservation": _serialize(reservation),
            "message": "Reservation created successfully.",
        },
        status=201,
    )


@require_POST
def reschedule_reservation_api(request, reservation_id: int):
    """
    POST /api/reservations/<id>/update/
    Payload (JSON): same as create.
    """
    if not request.user.is_authenticated:
        return JsonResponse({"error": "Authentication required."}, status=401)

    payload, error = _read_payload(request)
    if error:
        return error
    data, error = _reservation_input(payload)
    if error:
        return error

    try:
        reservation = reschedule_reservation(user=request.user, reservation_id=reservation_id, new_data=data)
    except CourtReservation.DoesNotExist:
        return JsonResponse({"error": "Reservation not found."}, status=404)
    except PermissionDenied:
        return JsonResponse({"error": "You do not have permission to edit this reservation."}, status=403)
    except ValidationError as exc:
        return JsonResponse({"error": "Validation error.", "details": exc.message_dict}, status=400)
    except MembershipRequiredError as exc:
        return JsonResponse({"error": str(exc), "code": exc.code}, status=403)
    except SlotUnavailableError as exc:
        return _conflict_response(exc)
    except ReservationError as exc:
        return JsonResponse({"error": str(exc)}, status=400)

    return JsonResponse(
        {
            "success": True,
            "reservation": _serialize(reservation),
            "message": "Reservation updated successfully.",
        }
    )


@require_POST
def cancel_reservation_api(request, reservation_id: int):
    """
    POST /api/reservations/<id>/cancel/
    Payload (JSON, optional): {"reason": "..."}
    """
    if not request.user.is_authenticated:
        return JsonResponse({"error": "Authentication required."}, status=401)

    payload, error = _read_payload(request)
    if error:
        return error
    reason = _string_field(payload, "reason")
    if reason is None:
        return JsonResponse({"error": "reason must be a string."}, status=400)
    reason = reason[:500] or None

    try:
        reservation = cancel_member_reservation(user=request.user, reservation_id=reservation_id, reason=reason)
    except CourtReservation.DoesNotExist:
        return JsonResponse({"error": "Reservation not found."}, status=404)
    except PermissionDenied:
        return JsonResponse(
            {"error": "You do not have permission to cancel this reservation."},
            status=403,
        )
    except ReservationError as exc:
        return JsonResponse({"error": str(exc)}, status=400)

    return JsonResponse({"success": True, "reservation": _serialize(reservation), "message": "Reservation cancelled."})
