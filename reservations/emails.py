from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string
from django.utils import timezone


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReservationEmailPayload:
    to_email: str
    event: str  # created
    reservation_id: int
    court_number: int
    category_label: str
    start: datetime
    end: datetime

    @property
    def time_label(self) -> str:
        start = timezone.localtime(self.start)
        end = timezone.localtime(self.end)
        return f"{start:%H:%M}–{end:%H:%M}"


def send_reservation_email(payload: ReservationEmailPayload) -> bool:
    """
    Send reservation email. Returns True if attempted, False if skipped.
    Never raises (logs on failure).
    """
    if not payload.to_email:
        return False

    context = {
        "reservation_id": payload.reservation_id,
        "court_number": payload.court_number,
        "category_label": payload.category_label,
        "date": timezone.localtime(payload.start).date(),
        "time_label": payload.time_label,
    }

    try:
        subject = render_to_string(f"emails/reservation_{payload.event}_subject.txt", context).strip()
        text_body = render_to_string(f"emails/reservation_{payload.event}.txt", context)
        html_body = render_to_string(f"emails/reservation_{payload.event}.html", context)

        msg = EmailMultiAlternatives(
            subject=subject,
            body=text_body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            to=[payload.to_email],
        )
        if html_body:
            msg.attach_alternative(html_body, "text/html")
        msg.send(fail_silently=False)
        return True
    except Exception:
        logger.exception(
            "Failed to send reservation email (%s) for reservation %s to %s",
            payload.event,
            payload.reservation_id,
            payload.to_email,
        )
        return True


def notify_new_reservation(reservation) -> bool:
    return send_reservation_email(
        ReservationEmailPayload(
            to_email=reservation.user.email,
            event="created",
            reservation_id=reservation.id,
            court_number=reservation.court_number,
            category_label=reservation.get_category_display(),
            start=reservation.start_time,
            end=reservation.end_time,
        )
    )
