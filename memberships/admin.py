from django.contrib import admin, messages

from .models import (
    BillingStatement,
    FirstTimeDiscount,
    Invoice,
    MembershipOffer,
    MembershipSubscription,
    Payment,
    PaymentStatus,
    Promo,
    Receipt,
)
from .payments import PaymentStateError, cancel_payment, mark_payment_paid


@admin.register(MembershipOffer)
class MembershipOfferAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "price", "billing_type", "duration_value", "duration_type", "is_active")
    list_filter = ("category", "billing_type", "is_active")
    search_fields = ("name",)


class DiscountAdmin(admin.ModelAdmin):
    list_display = (
        "name",
        "discount_type",
        "discount_value",
        "applicable_to_category",
        "start_date",
        "end_date",
        "is_active",
    )
    list_filter = ("discount_type", "applicable_to_category", "is_active")
    search_fields = ("name",)


admin.site.register(Promo, DiscountAdmin)
admin.site.register(FirstTimeDiscount, DiscountAdmin)


@admin.register(MembershipSubscription)
class MembershipSubscriptionAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "membership_offer", "start_date", "end_date", "status", "is_recurring")
    list_filter = ("status", "is_recurring", "membership_offer__category")
    search_fields = ("user__email", "user__username")
    list_select_related = ("user", "membership_offer")
    readonly_fields = ("created_at", "updated_at")


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "membership_offer", "payment_code", "payment_method", "amount", "status", "created_at")
    list_filter = ("status", "payment_method")
    search_fields = ("payment_code", "user__email", "user__username")
    list_select_related = ("user", "membership_offer")
    readonly_fields = ("payment_code", "payment_date", "created_at", "updated_at")
    actions = ["mark_paid", "cancel_pending"]

    @admin.action(description="Mark selected payments as paid")
    def mark_paid(self, request, queryset):
        paid = 0
        for payment in queryset.filter(status=PaymentStatus.PENDING):
            try:
                mark_payment_paid(payment)
            except PaymentStateError as exc:
                self.message_user(request, f"Payment #{payment.pk}: {exc}", messages.WARNING)
                continue
            paid += 1
        self.message_user(request, f"Marked {paid} payment(s) as paid.", messages.SUCCESS)

    @admin.action(description="Cancel selected pending payments")
    def cancel_pending(self, request, queryset):
        cancelled = 0
        for payment in queryset.filter(status=PaymentStatus.PENDING):
            cancel_payment(payment)
            cancelled += 1
        self.message_user(request, f"Cancelled {cancelled} payment(s).", messages.SUCCESS)


@admin.register(BillingStatement)
class BillingStatementAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "membership_subscription", "period_start", "period_end", "due_date", "amount", "status")
    list_filter = ("status", "due_date")
    search_fields = ("user__email", "user__username")
    list_select_related = ("user", "membership_subscription")
    readonly_fields = ("payment", "created_at", "updated_at")


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ("invoice_number", "billing_statement", "invoice_date", "amount", "status")
    list_filter = ("status",)
    search_fields = ("invoice_number", "billing_statement__user__email")
    list_select_related = ("billing_statement",)
    readonly_fields = ("invoice_number", "billing_statement", "invoice_date", "amount", "created_at", "updated_at")


@admin.register(Receipt)
class ReceiptAdmin(admin.ModelAdmin):
    list_display = ("receipt_number", "payment", "receipt_date", "amount")
    search_fields = ("receipt_number", "payment__user__email")
    list_select_related = ("payment",)
    readonly_fields = ("receipt_number", "payment", "receipt_date", "amount", "created_at")
