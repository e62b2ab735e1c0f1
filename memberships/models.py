from __future__ import annotations

from datetime import date as date_type
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone


class MembershipCategory(models.TextChoices):
    GYM = "GYM", "Gym"
    BADMINTON_COURT = "BADMINTON_COURT", "Badminton court"


class DiscountCategory(models.TextChoices):
    ALL = "ALL", "All categories"
    GYM = "GYM", "Gym"
    BADMINTON_COURT = "BADMINTON_COURT", "Badminton court"


class MembershipOffer(models.Model):
    class BillingType(models.TextChoices):
        ONE_TIME = "ONE_TIME", "One-time"
        RECURRING = "RECURRING", "Recurring"

    class DurationType(models.TextChoices):
        MONTH = "MONTH", "Month"
        YEAR = "YEAR", "Year"

    category = models.CharField(max_length=20, choices=MembershipCategory.choices)
    name = models.CharField(max_length=120)
    description = models.TextField(blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0"))])
    billing_type = models.CharField(max_length=10, choices=BillingType.choices, default=BillingType.ONE_TIME)
    duration_type = models.CharField(max_length=5, choices=DurationType.choices, default=DurationType.MONTH)
    duration_value = models.PositiveSmallIntegerField(default=1, validators=[MinValueValidator(1)])
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["category", "price"]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.name} ({self.get_category_display()})"

    @property
    def is_recurring(self) -> bool:
        return self.billing_type == self.BillingType.RECURRING


class DiscountBase(models.Model):
    class DiscountType(models.TextChoices):
        PERCENTAGE = "PERCENTAGE", "Percentage"
        FIXED_AMOUNT = "FIXED_AMOUNT", "Fixed amount"

    name = models.CharField(max_length=120)
    description = models.TextField(blank=True)
    discount_type = models.CharField(max_length=12, choices=DiscountType.choices)
    discount_value = models.DecimalField(
        max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0"))]
    )
    applicable_to_category = models.CharField(
        max_length=20, choices=DiscountCategory.choices, default=DiscountCategory.ALL
    )
    start_date = models.DateTimeField()
    end_date = models.DateTimeField()
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ["-start_date"]

    def __str__(self) -> str:  # pragma: no cover
        return self.name

    def clean(self) -> None:
        super().clean()
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValidationError({"end_date": "End date must be after start date."})
        if self.discount_type == self.DiscountType.PERCENTAGE and self.discount_value is not None:
            if self.discount_value > 100:
                raise ValidationError({"discount_value": "A percentage discount cannot exceed 100."})

    def is_currently_active(self, now=None) -> bool:
        now = now or timezone.now()
        return bool(self.is_active and self.start_date <= now <= self.end_date)

    def applies_to(self, category: str) -> bool:
        return self.applicable_to_category in (DiscountCategory.ALL, category)

    def apply(self, price: Decimal) -> Decimal:
        """
        Price after this discount, floored at zero.
        """
        if self.discount_type == self.DiscountType.PERCENTAGE:
            reduction = (price * self.discount_value / Decimal("100")).quantize(Decimal("0.01"))
        else:
            reduction = self.discount_value
        return max(Decimal("0.00"), price - reduction)


class Promo(DiscountBase):
    class Meta(DiscountBase.Meta):
        pass


class FirstTimeDiscount(DiscountBase):
    class Meta(DiscountBase.Meta):
        pass


class SubscriptionStatus(models.TextChoices):
    ACTIVE = "ACTIVE", "Active"
    EXPIRED = "EXPIRED", "Expired"
    CANCELLED = "CANCELLED", "Cancelled"


class MembershipSubscription(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="membership_subscriptions",
    )
    membership_offer = models.ForeignKey(MembershipOffer, on_delete=models.CASCADE, related_name="subscriptions")
    payment = models.ForeignKey(
        "Payment",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="subscriptions",
    )
    promo = models.ForeignKey(Promo, on_delete=models.SET_NULL, null=True, blank=True, related_name="subscriptions")
    first_time_discount = models.ForeignKey(
        FirstTimeDiscount,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="subscriptions",
    )
    price_paid = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0"))])
    start_date = models.DateField()
    end_date = models.DateField()
    status = models.CharField(max_length=10, choices=SubscriptionStatus.choices, default=SubscriptionStatus.ACTIVE)
    is_recurring = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(end_date__gt=models.F("start_date")),
                name="subscription_start_before_end",
            ),
            models.CheckConstraint(condition=Q(price_paid__gte=0), name="subscription_price_paid_gte_0"),
        ]
        indexes = [
            models.Index(fields=["status", "end_date"], name="idx_sub_status_end"),
        ]
        ordering = ["-start_date"]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.user} · {self.membership_offer} · {self.start_date} → {self.end_date} ({self.status})"

    def clean(self) -> None:
        super().clean()
        if self.start_date and self.end_date and self.start_date >= self.end_date:
            raise ValidationError({"end_date": "End date must be after start date."})

    def save(self, *args, **kwargs):
        """
        An ACTIVE subscription never persists with an end date in the past:
        existing rows are coerced to EXPIRED, new rows are rejected.
        """
        if self.status == SubscriptionStatus.ACTIVE and self.end_date is not None:
            end_date = self.end_date
            if isinstance(end_date, str):
                end_date = date_type.fromisoformat(end_date)
            if end_date < timezone.localdate():
                if self._state.adding:
                    raise ValidationError({"end_date": "An active subscription cannot end in the past."})
                self.status = SubscriptionStatus.EXPIRED
                update_fields = kwargs.get("update_fields")
                if update_fields is not None:
                    kwargs["update_fields"] = set(update_fields) | {"status"}
        super().save(*args, **kwargs)

    def is_current(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE and self.end_date >= timezone.localdate()


class PaymentMethod(models.TextChoices):
    CASH = "CASH", "Cash"
    ONLINE_CARD = "ONLINE_CARD", "Online (card)"
    ONLINE_MAYA = "ONLINE_MAYA", "Online (Maya)"
    ONLINE_MAYA_WALLET = "ONLINE_MAYA_WALLET", "Online (Maya wallet)"


class PaymentStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PAID = "PAID", "Paid"
    CANCELLED = "CANCELLED", "Cancelled"
    FAILED = "FAILED", "Failed"


class Payment(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="payments")
    membership_offer = models.ForeignKey(MembershipOffer, on_delete=models.CASCADE, related_name="payments")
    promo = models.ForeignKey(Promo, on_delete=models.SET_NULL, null=True, blank=True, related_name="payments")
    first_time_discount = models.ForeignKey(
        FirstTimeDiscount,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
    )
    payment_code = models.CharField(max_length=8, unique=True, null=True, blank=True)
    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices, default=PaymentMethod.CASH)
    amount = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0"))])
    status = models.CharField(max_length=10, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    payment_date = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["status", "created_at"], name="idx_payment_status_created"),
        ]
        ordering = ["-created_at"]

    def __str__(self) -> str:  # pragma: no cover
        return f"Payment #{self.pk} · {self.amount} · {self.status}"


class BillingStatementStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PAID = "PAID", "Paid"
    CANCELLED = "CANCELLED", "Cancelled"


class BillingStatement(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="billing_statements",
    )
    membership_subscription = models.ForeignKey(
        MembershipSubscription,
        on_delete=models.CASCADE,
        related_name="billing_statements",
    )
    statement_date = models.DateField()
    period_start = models.DateField()
    period_end = models.DateField()
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    status = models.CharField(
        max_length=10,
        choices=BillingStatementStatus.choices,
        default=BillingStatementStatus.PENDING,
    )
    due_date = models.DateField()
    payment = models.ForeignKey(
        Payment,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="billing_statements",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            # One open statement per subscription per cycle.
            models.UniqueConstraint(
                fields=["membership_subscription"],
                condition=Q(status="PENDING"),
                name="unique_pending_statement_per_subscription",
            ),
        ]
        ordering = ["-statement_date", "-id"]

    def __str__(self) -> str:  # pragma: no cover
        return f"Statement #{self.pk} · {self.period_start} → {self.period_end} · {self.status}"


class InvoiceStatus(models.TextChoices):
    SENT = "SENT", "Sent"
    PAID = "PAID", "Paid"
    CANCELLED = "CANCELLED", "Cancelled"


class Invoice(models.Model):
    billing_statement = models.OneToOneField(
        BillingStatement,
        on_delete=models.CASCADE,
        related_name="invoice",
    )
    invoice_number = models.CharField(max_length=20, unique=True)
    invoice_date = models.DateTimeField()
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    status = models.CharField(max_length=10, choices=InvoiceStatus.choices, default=InvoiceStatus.SENT)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-invoice_date", "-id"]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.invoice_number} · {self.amount} · {self.status}"


class Receipt(models.Model):
    payment = models.OneToOneField(Payment, on_delete=models.CASCADE, related_name="receipt")
    receipt_number = models.CharField(max_length=20, unique=True)
    receipt_date = models.DateTimeField()
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-receipt_date", "-id"]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.receipt_number} · {self.amount}"
