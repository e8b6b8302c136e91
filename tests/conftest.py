"""Shared fixtures for all tests."""
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import User
from deals.models import Deal, DealSize, DiscountTier


@pytest.fixture
def admin_user(db):
    return User.objects.create_user(
        email="admin@test.com",
        password="testpass123",
        name="Admin User",
        role=User.Role.ADMIN,
    )


@pytest.fixture
def distributor_user(db):
    return User.objects.create_user(
        email="distributor@test.com",
        password="testpass123",
        name="Dana Distributor",
        business_name="Coastal Beverages",
        role=User.Role.DISTRIBUTOR,
    )


@pytest.fixture
def member_user(db):
    return User.objects.create_user(
        email="member@test.com",
        password="testpass123",
        name="Morgan Member",
        business_name="Corner Liquor",
        phone="+15550100001",
        role=User.Role.MEMBER,
    )


@pytest.fixture
def other_member(db):
    return User.objects.create_user(
        email="other.member@test.com",
        password="testpass123",
        name="Olive Other",
        role=User.Role.MEMBER,
    )


@pytest.fixture
def make_deal(db, distributor_user):
    """Build a deal straight through the ORM.

    ``sizes`` maps size name to discount price; original cost is set a
    little higher.  ``tiers`` is a list of ``(quantity, percent)``.
    """
    def _make(sizes=None, tiers=(), min_qty=50, status=Deal.Status.ACTIVE, name="Sparkling Water"):
        deal = Deal.objects.create(
            name=name,
            distributor=distributor_user,
            min_qty_for_discount=min_qty,
            status=status,
            deal_starts_at=timezone.now() - timedelta(days=1),
            deal_ends_at=timezone.now() + timedelta(days=30),
        )
        for size, price in (sizes or {"Large": "10.00"}).items():
            price = Decimal(price)
            DealSize.objects.create(
                deal=deal,
                size=size,
                original_cost=price + Decimal("2.00"),
                discount_price=price,
                bottles_per_case=12,
            )
        for quantity, percent in tiers:
            DiscountTier.objects.create(
                deal=deal,
                tier_quantity=quantity,
                tier_discount_percent=Decimal(percent),
            )
        return deal

    return _make


@pytest.fixture
def single_size_deal(make_deal):
    """Minimum 50, "Large" at $10, no tiers."""
    return make_deal()


@pytest.fixture
def deal(make_deal):
    """Minimum 50, "Large" at $10 and "Medium" at $8, 10% off from 100 units."""
    return make_deal(sizes={"Large": "10.00", "Medium": "8.00"}, tiers=[(100, "10")])


@pytest.fixture
def api_client():
    return APIClient()


def _client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def member_client(member_user):
    return _client_for(member_user)


@pytest.fixture
def distributor_client(distributor_user):
    return _client_for(distributor_user)


@pytest.fixture
def admin_client(admin_user):
    return _client_for(admin_user)
