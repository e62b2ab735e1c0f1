import pytest
from django.core.cache import cache
from django.utils import timezone

from memberships.models import MembershipCategory
from reservations.models import FacilitySetting
from reservations.seed import seed_facility

from .factories import MembershipOfferFactory, SubscriptionFactory, UserFactory
from .helpers import FROZEN_NOW


@pytest.fixture(autouse=True)
def _timezone(settings):
    settings.TIME_ZONE = "Asia/Manila"


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def freeze(monkeypatch):
    """
    Pin django.utils.timezone.now (and therefore localdate/localtime) to a
    fixed instant. Returns a setter so a test can move the clock.
    """

    def _freeze(value):
        monkeypatch.setattr(timezone, "now", lambda: value)
        return value

    return _freeze


@pytest.fixture
def frozen_now(freeze):
    return freeze(FROZEN_NOW)


@pytest.fixture
def facility(db):
    seed_facility()
    return FacilitySetting.load()


@pytest.fixture
def badminton_offer(db):
    return MembershipOfferFactory(category=MembershipCategory.BADMINTON_COURT)


@pytest.fixture
def member(frozen_now, badminton_offer):
    user = UserFactory()
    SubscriptionFactory(user=user, membership_offer=badminton_offer)
    return user


@pytest.fixture
def other_member(frozen_now, badminton_offer):
    user = UserFactory()
    SubscriptionFactory(user=user, membership_offer=badminton_offer)
    return user
