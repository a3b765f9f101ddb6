"""
Unit Tests for Admin Profile Management
"""

import pytest

from financing_engine.admins import AdminDirectory
from financing_engine.errors import StateError
from financing_engine.models import AdminProfile, Role
from financing_engine.store import InMemoryDocumentStore


@pytest.fixture
def directory():
    return AdminDirectory(InMemoryDocumentStore())


@pytest.fixture
def founded(directory):
    directory.save("founder", AdminProfile(user_id="founder", role=Role.SUPER_ADMIN))
    return directory


class TestAdminDirectory:
    def test_first_super_admin_bootstraps(self, founded):
        assert founded.get("founder").role == Role.SUPER_ADMIN

    def test_bootstrap_closed_once_an_admin_exists(self, founded):
        with pytest.raises(StateError, match="not found for caller"):
            founded.save("intruder", AdminProfile(user_id="intruder", role=Role.SUPER_ADMIN))

    def test_bootstrap_requires_super_admin_role(self, directory):
        with pytest.raises(StateError):
            directory.save("someone", AdminProfile(user_id="someone", role=Role.MANAGER))

    def test_super_admin_creates_manager(self, founded):
        founded.save("founder", AdminProfile(user_id="m1", role=Role.MANAGER, display_name="Musa"))

        assert founded.get("m1").display_name == "Musa"

    def test_manager_cannot_promote_to_super_admin(self, founded):
        founded.save("founder", AdminProfile(user_id="m1", role=Role.MANAGER))

        with pytest.raises(StateError, match="Only super admins"):
            founded.set_role("m1", "m1", "super_admin")

    def test_update_preserves_workload(self, founded):
        founded.save("founder", AdminProfile(user_id="r1", role=Role.REVIEWER, current_workload=4))

        founded.save("founder", AdminProfile(user_id="r1", role=Role.APPROVER))

        updated = founded.get("r1")
        assert updated.role == Role.APPROVER
        assert updated.current_workload == 4

    def test_manager_cannot_demote_super_admin(self, founded):
        founded.save("founder", AdminProfile(user_id="m1", role=Role.MANAGER))

        with pytest.raises(StateError, match="Only super admins"):
            founded.set_role("m1", "founder", "viewer")

        assert founded.get("founder").role == Role.SUPER_ADMIN

    def test_manager_cannot_deactivate_super_admin(self, founded):
        founded.save("founder", AdminProfile(user_id="m1", role=Role.MANAGER))

        with pytest.raises(StateError):
            founded.save("m1", AdminProfile(user_id="founder", role=Role.SUPER_ADMIN, is_active=False))

        assert founded.get("founder").is_active

    def test_set_role_unknown_user(self, founded):
        with pytest.raises(StateError, match="not found"):
            founded.set_role("founder", "ghost", "reviewer")

    def test_get_missing_returns_none(self, directory):
        assert directory.get("nobody") is None
