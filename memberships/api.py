from __future__ import annotations

import json

from django.http import JsonResponse
from django.views.decorators.http import require_GET
from django.views.decorators.http import require_POST

from .models import BillingStatement, FirstTimeDiscount, MembershipOffer, Payment, PaymentMethod, Promo
from .payments import PurchaseError, initiate_purchase


def _serialize_payment(payment: Payment) -> dict:
    return {
        "id": payment.id,
        "membership_offer": payment.membership_offer_id,
        "payment_code": payment.payment_code,
        "payment_method": payment.payment_method,
        "amount": str(payment.amount),
        "status": payment.status,
    }


def _invoice_number(statement: BillingStatement) -> str | None:
    invoice = getattr(statement, "invoice", None)
    return invoice.invoice_number if invoice is not None else None


def _serialize_statement(statement: BillingStatement) -> dict:
    return {
        "id": statement.id,
        "membership_subscription": statement.membership_subscription_id,
        "statement_date": statement.statement_date.isoformat(),
        "period_start": statement.period_start.isoformat(),
        "period_end": statement.period_end.isoformat(),
        "due_date": statement.due_date.isoformat(),
        "amount": str(statement.amount),
        "status": statement.status,
        "payment_code": statement.payment.payment_code if statement.payment_id else None,
        "invoice_number": _invoice_number(statement),
    }


def _optional_id(payload: dict, key: str) -> tuple[int | None, JsonResponse | None]:
    value = payload.get(key)
    if value is None:
        return None, None
    if not isinstance(value, int):
        return None, JsonResponse({"error": f"{key} must be an integer."}, status=400)
    return value, None


@require_POST
def purchase_membership_api(request):
    """
    POST /api/memberships/purchase/
    Payload (JSON):
      - offer_id: int
      - payment_method: CASH | ONLINE_CARD | ONLINE_MAYA | ONLINE_MAYA_WALLET (default CASH)
      - promo_id: int (optional)
      - first_time_discount_id: int (optional)
    """
    if not request.user.is_authenticated:
        return JsonResponse({"error": "Authentication required."}, status=401)

    try:
        payload = json.loads(request.body.decode("utf-8") or "{}")
    except json.JSONDecodeError:
        return JsonResponse({"error": "Invalid JSON payload."}, status=400)
    if not isinstance(payload, dict):
        return JsonResponse({"error": "JSON payload must be an object."}, status=400)

    offer_id = payload.get("offer_id")
    if not isinstance(offer_id, int):
        return JsonResponse({"error": "offer_id is required."}, status=400)
    promo_id, error = _optional_id(payload, "promo_id")
    if error:
        return error
    discount_id, error = _optional_id(payload, "first_time_discount_id")
    if error:
        return error

    try:
        offer = MembershipOffer.objects.get(pk=offer_id)
        promo = Promo.objects.get(pk=promo_id) if promo_id is not None else None
        discount = FirstTimeDiscount.objects.get(pk=discount_id) if discount_id is not None else None
    except (MembershipOffer.DoesNotExist, Promo.DoesNotExist, FirstTimeDiscount.DoesNotExist):
        return JsonResponse({"error": "Offer or discount not found."}, status=404)

    try:
        payment = initiate_purchase(
            user=request.user,
            offer=offer,
            payment_method=payload.get("payment_method") or PaymentMethod.CASH,
            promo=promo,
            first_time_discount=discount,
        )
    except PurchaseError as exc:
        return JsonResponse({"error": str(exc)}, status=400)

    return JsonResponse(
        {
            "success": True,
            "payment": _serialize_payment(payment),
            "message": "Payment created. Present the payment code at the front desk to complete it.",
        },
        status=201,
    )


@require_GET
def billing_statements_api(request):
    if not request.user.is_authenticated:
        return JsonResponse({"error": "Authentication required."}, status=401)

    statements = BillingStatement.objects.filter(user=request.user).select_related("payment", "invoice")
    return JsonResponse({"statements": [_serialize_statement(s) for s in statements]})
