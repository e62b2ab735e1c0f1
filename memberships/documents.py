"""
Invoices for billing statements and receipts for settled payments.

Numbers follow ``<PREFIX>-YYYYMMDD-NNNN``: a per-day sequence, zero padded to
four digits, continuing from the highest number already issued that day.
"""

from __future__ import annotations

import logging
from datetime import datetime

from django.db import models
from django.utils import timezone

from .models import BillingStatement, Invoice, InvoiceStatus, Payment, Receipt


logger = logging.getLogger(__name__)

INVOICE_PREFIX = "INV"
RECEIPT_PREFIX = "RCP"


def _next_number(model: type[models.Model], field: str, prefix: str, issued_at: datetime) -> str:
    day_prefix = f"{prefix}-{timezone.localtime(issued_at):%Y%m%d}-"
    last = (
        model.objects.filter(**{f"{field}__startswith": day_prefix})
        .order_by(f"-{field}")
        .values_list(field, flat=True)
        .first()
    )
    sequence = int(last.rsplit("-", 1)[1]) + 1 if last else 1
    return f"{day_prefix}{sequence:04d}"


def generate_invoice_number(issued_at: datetime | None = None) -> str:
    return _next_number(Invoice, "invoice_number", INVOICE_PREFIX, issued_at or timezone.now())


def generate_receipt_number(issued_at: datetime | None = None) -> str:
    return _next_number(Receipt, "receipt_number", RECEIPT_PREFIX, issued_at or timezone.now())


def issue_invoice(statement: BillingStatement) -> Invoice:
    """
    Return the statement's invoice, creating it on first call.
    """
    invoice = Invoice.objects.filter(billing_statement=statement).first()
    if invoice is not None:
        return invoice

    issued_at = timezone.now()
    invoice = Invoice.objects.create(
        billing_statement=statement,
        invoice_number=generate_invoice_number(issued_at),
        invoice_date=issued_at,
        amount=statement.amount,
        status=InvoiceStatus.SENT,
    )
    logger.info("Invoice %s issued for billing statement %s", invoice.invoice_number, statement.pk)
    return invoice


def issue_receipt(payment: Payment) -> Receipt:
    """
    Return the payment's receipt, creating it on first call. The receipt is
    dated at the payment date when the payment has one.
    """
    receipt = Receipt.objects.filter(payment=payment).first()
    if receipt is not None:
        return receipt

    receipt_date = payment.payment_date or timezone.now()
    receipt = Receipt.objects.create(
        payment=payment,
        receipt_number=generate_receipt_number(receipt_date),
        receipt_date=receipt_date,
        amount=payment.amount,
    )
    logger.info("Receipt %s issued for payment %s", receipt.receipt_number, payment.pk)
    return receipt


def set_invoice_status(statement_ids, status: str) -> int:
    return Invoice.objects.filter(billing_statement_id__in=statement_ids).update(
        status=status,
        updated_at=timezone.now(),
    )
