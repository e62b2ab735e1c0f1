from datetime import timedelta
from decimal import Decimal

import factory
from django.contrib.auth import get_user_model
from django.utils import timezone
from factory.django import DjangoModelFactory

from memberships.models import (
    FirstTimeDiscount,
    MembershipCategory,
    MembershipOffer,
    MembershipSubscription,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Promo,
    SubscriptionStatus,
)
from reservations.models import CourtReservation, ReservationCategory, ReservationStatus


class UserFactory(DjangoModelFactory):
    class Meta:
        model = get_user_model()
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"member{n:04d}")
    email = factory.LazyAttribute(lambda obj: f"{obj.username}@example.com")
    is_active = True

    @factory.post_generation
    def password(self, create, extracted, **kwargs):
        if not create:
            return
        self.set_password(extracted or "password123")
        self.save(update_fields=["password"])


class MembershipOfferFactory(DjangoModelFactory):
    class Meta:
        model = MembershipOffer

    category = MembershipCategory.BADMINTON_COURT
    name = factory.Sequence(lambda n: f"Court pass {n}")
    price = Decimal("1000.00")
    billing_type = MembershipOffer.BillingType.ONE_TIME
    duration_type = MembershipOffer.DurationType.MONTH
    duration_value = 1
    is_active = True

    class Params:
        recurring = factory.Trait(billing_type=MembershipOffer.BillingType.RECURRING)


class PromoFactory(DjangoModelFactory):
    class Meta:
        model = Promo

    name = factory.Sequence(lambda n: f"Promo {n}")
    discount_type = Promo.DiscountType.PERCENTAGE
    discount_value = Decimal("10")
    start_date = factory.LazyFunction(lambda: timezone.now() - timedelta(days=1))
    end_date = factory.LazyFunction(lambda: timezone.now() + timedelta(days=30))


class FirstTimeDiscountFactory(DjangoModelFactory):
    class Meta:
        model = FirstTimeDiscount

    name = factory.Sequence(lambda n: f"Welcome discount {n}")
    discount_type = FirstTimeDiscount.DiscountType.FIXED_AMOUNT
    discount_value = Decimal("200.00")
    start_date = factory.LazyFunction(lambda: timezone.now() - timedelta(days=1))
    end_date = factory.LazyFunction(lambda: timezone.now() + timedelta(days=30))


class SubscriptionFactory(DjangoModelFactory):
    class Meta:
        model = MembershipSubscription

    user = factory.SubFactory(UserFactory)
    membership_offer = factory.SubFactory(MembershipOfferFactory)
    price_paid = factory.LazyAttribute(lambda obj: obj.membership_offer.price)
    start_date = factory.LazyFunction(timezone.localdate)
    end_date = factory.LazyAttribute(lambda obj: obj.start_date + timedelta(days=30))
    status = SubscriptionStatus.ACTIVE
    is_recurring = factory.LazyAttribute(lambda obj: obj.membership_offer.is_recurring)


class PaymentFactory(DjangoModelFactory):
    class Meta:
        model = Payment

    user = factory.SubFactory(UserFactory)
    membership_offer = factory.SubFactory(MembershipOfferFactory)
    payment_code = factory.Sequence(lambda n: f"P{n:07d}")
    payment_method = PaymentMethod.CASH
    amount = factory.LazyAttribute(lambda obj: obj.membership_offer.price)
    status = PaymentStatus.PENDING


class CourtReservationFactory(DjangoModelFactory):
    class Meta:
        model = CourtReservation

    user = factory.SubFactory(UserFactory)
    category = ReservationCategory.BADMINTON_COURT
    court_number = 1
    start_time = factory.LazyFunction(lambda: timezone.now() + timedelta(days=1))
    duration_minutes = 60
    status = ReservationStatus.CONFIRMED
