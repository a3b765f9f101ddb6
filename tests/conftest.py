"""
Shared fixtures for the entry-point and end-to-end tests.

`engine` is an EngineService over an in-memory store seeded with staff, one
application under review, one open opportunity and one funded wallet. The
clock is fixed at a Monday noon so business-hour rules are predictable.
"""

from datetime import datetime

import pytest

from financing_engine import EngineService, Settings
from financing_engine.models import AdminProfile, Role
from financing_engine.store import ADMIN_PROFILES, APPLICATIONS, OPPORTUNITIES, WALLETS, InMemoryDocumentStore

MONDAY_NOON = datetime(2025, 6, 16, 12, 0)

STAFF = {
    "super-1": "super_admin",
    "manager-1": "manager",
    "manager-2": "manager",
    "approver-1": "approver",
    "reviewer-1": "reviewer",
    "viewer-1": "viewer",
}


class FixedClock:
    def __init__(self, now=MONDAY_NOON):
        self.now = now

    def __call__(self):
        return self.now


def seed(store):
    for user_id, role in STAFF.items():
        profile = AdminProfile(user_id=user_id, role=Role(role), display_name=user_id.replace("-", " ").title())
        store.set(ADMIN_PROFILES, user_id, profile.to_dict())

    store.set(APPLICATIONS, "app-1", {
        "id": "app-1",
        "businessId": "biz-1",
        "businessName": "Halal Foods Ltd",
        "requestedAmount": "2000000",
        "contractType": "musharaka",
        "status": "new",
    })
    store.set(OPPORTUNITIES, "opp-1", {
        "id": "opp-1",
        "applicationId": "app-0",
        "businessId": "biz-0",
        "businessName": "Green Farms Co",
        "contractType": "mudaraba",
        "fundingGoal": "1000000",
        "currentFunding": "0",
        "minimumInvestment": "10000",
        "expectedReturnMin": "12",
        "expectedReturnMax": "18",
        "termMonths": 12,
        "campaignDeadline": "2025-12-31",
        "status": "active",
    })
    store.set(WALLETS, "investor-1", {
        "userId": "investor-1",
        "availableBalance": "500000",
        "totalBalance": "500000",
        "totalInvested": "0",
    })


@pytest.fixture
def seed_store():
    return seed


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store():
    store = InMemoryDocumentStore()
    seed(store)
    return store


@pytest.fixture
def engine(store, clock):
    return EngineService(Settings(invest_rate_limit=3), store=store, clock=clock)
