import datetime
from decimal import Decimal

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from apps.accounts.models import User
from apps.expenses.services import ExchangeRateResolver, RateCache
from apps.groups.models import Group, GroupMembership, GroupRole


class StaticRatesClient:
    """Rate provider double returning a fixed USD-based table."""

    def __init__(self, rates):
        self.rates = {code: Decimal(value) for code, value in rates.items()}
        self.calls = 0

    def fetch_rates(self):
        self.calls += 1
        return dict(self.rates)


def authenticate(user):
    """Return a new API client authenticated as ``user``."""
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


@pytest.fixture
def alice(db):
    return User.objects.create_user(email='alice@example.com', password='TestPass123!', display_name='Alice')


@pytest.fixture
def bob(db):
    return User.objects.create_user(email='bob@example.com', password='TestPass123!', display_name='Bob')


@pytest.fixture
def carol(db):
    return User.objects.create_user(email='carol@example.com', password='TestPass123!', display_name='Carol')


@pytest.fixture
def outsider(db):
    return User.objects.create_user(email='outsider@example.com', password='TestPass123!')


@pytest.fixture
def trip(alice, bob, carol):
    """USD group owned by Alice with Bob and Carol as members, joined in that order."""
    group = Group.objects.create(name='Trip', currency='USD', owner=alice)
    start = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)
    for offset, (user, role) in enumerate(
        [(alice, GroupRole.OWNER), (bob, GroupRole.MEMBER), (carol, GroupRole.MEMBER)]
    ):
        membership = GroupMembership.objects.create(user=user, group=group, role=role)
        GroupMembership.objects.filter(id=membership.id).update(
            joined_at=start + datetime.timedelta(minutes=offset)
        )
    return group


@pytest.fixture
def rates_client():
    return StaticRatesClient({'USD': '1', 'EUR': '0.9', 'GBP': '0.8', 'JPY': '150'})


@pytest.fixture
def resolver(rates_client):
    """Resolver backed by a static rate table."""
    return ExchangeRateResolver(client=rates_client, cache=RateCache(ttl=3600))


@pytest.fixture
def alice_client(alice):
    return authenticate(alice)


@pytest.fixture
def bob_client(bob):
    return authenticate(bob)


@pytest.fixture
def outsider_client(outsider):
    return authenticate(outsider)


@pytest.fixture
def today():
    return datetime.date(2024, 3, 1)


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()
