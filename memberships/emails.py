from __future__ import annotations

import logging

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string


logger = logging.getLogger(__name__)


def notify_billing_statement_generated(statement) -> bool:
    """
    Send the renewal notice for a freshly generated billing statement.
    Returns True if attempted, False if skipped. Never raises (logs on failure).
    """
    try:
        user = statement.user
        if not user.email:
            return False

        subscription = statement.membership_subscription
        invoice = getattr(statement, "invoice", None)
        context = {
            "offer_name": subscription.membership_offer.name,
            "due_date": statement.due_date,
            "amount": statement.amount,
            "period_start": statement.period_start,
            "period_end": statement.period_end,
            "payment_code": statement.payment.payment_code if statement.payment_id else None,
            "invoice_number": invoice.invoice_number if invoice is not None else None,
        }

        subject = render_to_string("emails/billing_statement_generated_subject.txt", context).strip()
        text_body = render_to_string("emails/billing_statement_generated.txt", context)
        html_body = render_to_string("emails/billing_statement_generated.html", context)

        msg = EmailMultiAlternatives(
            subject=subject,
            body=text_body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            to=[user.email],
        )
        if html_body:
            msg.attach_alternative(html_body, "text/html")
        msg.send(fail_silently=False)
        return True
    except Exception:
        logger.exception("Failed to send renewal notice for billing statement %s", statement.pk)
        return True
