"""
Unit Tests for the Application Workflow

Tests verify status changes against stored applications, the admin permission
checks, dual authorization end to end, and business resubmission.
"""

from datetime import datetime, timedelta

import pytest

from financing_engine.audit import AuditSink
from financing_engine.errors import ConflictError
from financing_engine.models import AdminProfile, Role
from financing_engine.status_machine import TransitionContext
from financing_engine.store import ADMIN_PROFILES, APPLICATIONS, DUAL_AUTHORIZATIONS, InMemoryDocumentStore
from financing_engine.workflow import ApplicationWorkflow

MONDAY_NOON = datetime(2025, 6, 16, 12, 0)


class RecordingAuditSink(AuditSink):
    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)


class _RacingStore(InMemoryDocumentStore):
    """Bumps an application's version between our read and our write."""

    def __init__(self):
        super().__init__()
        self.raced = False

    def set(self, collection, key, data, version=None):
        if collection == APPLICATIONS and version is not None and not self.raced:
            self.raced = True
            current = self.get(collection, key)
            super().set(collection, key, current.data, current.version)
        return super().set(collection, key, data, version)


class _LockedApplicationsStore(InMemoryDocumentStore):
    """Every update to an existing application loses a race."""

    def set(self, collection, key, data, version=None):
        if collection == APPLICATIONS and version is not None:
            raise ConflictError(f"{collection}/{key} changed")
        return super().set(collection, key, data, version)


class _Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def _add_admin(store, user_id, role, **kwargs):
    store.set(ADMIN_PROFILES, user_id, AdminProfile(user_id=user_id, role=Role(role), **kwargs).to_dict())


def _add_application(store, app_id="app-1", amount="2000000", status="new", **extra):
    store.set(APPLICATIONS, app_id, {
        "id": app_id,
        "businessId": "biz-1",
        "businessName": "Halal Foods Ltd",
        "requestedAmount": amount,
        "contractType": "musharaka",
        "status": status,
        **extra,
    })


def _status(store, app_id="app-1") -> str:
    return store.get(APPLICATIONS, app_id).data["status"]


def _seed_staff(store):
    _add_admin(store, "viewer-1", "viewer")
    _add_admin(store, "reviewer-1", "reviewer")
    _add_admin(store, "approver-1", "approver")
    _add_admin(store, "manager-1", "manager")
    _add_admin(store, "manager-2", "manager")


@pytest.fixture
def store():
    store = InMemoryDocumentStore()
    _seed_staff(store)
    return store


@pytest.fixture
def audit():
    return RecordingAuditSink()


@pytest.fixture
def clock():
    return _Clock(MONDAY_NOON)


@pytest.fixture
def workflow(store, audit, clock):
    return ApplicationWorkflow(store, audit=audit, clock=clock)


class TestReviewAndApprove:
    def test_reviewer_moves_new_to_review(self, workflow, store):
        _add_application(store)

        result = workflow.change_status("app-1", "review", "reviewer-1")

        assert result.success
        assert result.message == "Application moved to Under Review"
        assert _status(store) == "review"
        assert store.get(APPLICATIONS, "app-1").data["reviewedBy"] == "reviewer-1"

    def test_approver_approves_within_limit(self, workflow, store):
        _add_application(store, status="review", reviewedBy="reviewer-1")

        result = workflow.change_status("app-1", "approved", "approver-1")

        assert result.success
        assert _status(store) == "approved"
        assert store.get(APPLICATIONS, "app-1").data["approvedBy"] == "approver-1"

    def test_reviewer_cannot_approve(self, workflow, store):
        _add_application(store, status="review")

        result = workflow.change_status("app-1", "approved", "reviewer-1")

        assert not result.success
        assert result.error_kind == "state"
        assert "Access Denied" in result.message
        assert _status(store) == "review"

    def test_viewer_cannot_start_review(self, workflow, store):
        _add_application(store)

        assert not workflow.change_status("app-1", "review", "viewer-1").success

    def test_reviewer_of_record_cannot_approve(self, workflow, store):
        _add_application(store, status="review", reviewedBy="manager-1")

        result = workflow.change_status("app-1", "approved", "manager-1")

        assert not result.success
        assert "Separation of duties" in result.message

    def test_over_limit_denied(self, workflow, store):
        _add_admin(store, "approver-2", "approver", approval_limit="1000000")
        _add_application(store, status="review")

        result = workflow.change_status("app-1", "approved", "approver-2")

        assert not result.success
        assert "exceeds your approval limit" in result.message

    def test_invalid_transition(self, workflow, store):
        _add_application(store)

        result = workflow.change_status("app-1", "approved", "manager-1")

        assert not result.success
        assert "Invalid transition" in result.message

    def test_context_blocks_approval(self, workflow, store):
        _add_application(store, status="review")

        result = workflow.change_status(
            "app-1", "approved", "approver-1", context=TransitionContext(has_required_documents=False)
        )

        assert not result.success
        assert "required documents" in result.message

    def test_unchanged_status_is_a_no_op(self, workflow, store):
        _add_application(store, status="review")
        version = store.get(APPLICATIONS, "app-1").version

        result = workflow.change_status("app-1", "review", "reviewer-1")

        assert result.success
        assert result.message == "Status unchanged"
        assert store.get(APPLICATIONS, "app-1").version == version

    def test_unknown_application(self, workflow):
        result = workflow.change_status("missing", "review", "reviewer-1")

        assert result.error_kind == "state"

    def test_unknown_admin(self, workflow, store):
        _add_application(store)

        assert "not found" in workflow.change_status("app-1", "review", "stranger").message

    def test_inactive_admin(self, workflow, store):
        _add_admin(store, "gone", "manager", is_active=False)
        _add_application(store)

        assert "inactive" in workflow.change_status("app-1", "review", "gone").message

    def test_audit_event_emitted(self, workflow, store, audit):
        _add_application(store)

        workflow.change_status("app-1", "review", "reviewer-1", notes="starting")

        event = audit.events[-1]
        assert event.action == "application_status_changed"
        assert event.details["from"] == "new"
        assert event.details["to"] == "review"


class TestRejection:
    def test_rejection_requires_reason(self, workflow, store):
        _add_application(store, status="review")

        result = workflow.change_status("app-1", "rejected", "reviewer-1")

        assert not result.success
        assert "Rejection reason is required" in result.message

    def test_rejection_records_reason(self, workflow, store):
        _add_application(store, status="review")

        result = workflow.change_status(
            "app-1", "rejected", "reviewer-1", rejection_reason="  Incomplete financials ", allows_resubmit=False
        )

        assert result.success
        data = store.get(APPLICATIONS, "app-1").data
        assert data["rejectionReason"] == "Incomplete financials"
        assert data["rejectionAllowsResubmit"] is False

    def test_reversing_approval_needs_approval_authority(self, workflow, store):
        _add_application(store, status="approved")

        denied = workflow.change_status("app-1", "rejected", "reviewer-1", rejection_reason="fraud")
        allowed = workflow.change_status("app-1", "rejected", "manager-1", rejection_reason="fraud")

        assert not denied.success
        assert allowed.success


class TestBusinessResubmission:
    def test_owner_resubmits_rejected_application(self, workflow, store):
        _add_application(store, status="rejected", rejectionReason="missing docs")

        result = workflow.change_status("app-1", "pending", "biz-1", actor="business")

        assert result.success
        assert _status(store) == "pending"

    def test_other_business_cannot_resubmit(self, workflow, store):
        _add_application(store, status="more-info")

        result = workflow.change_status("app-1", "pending", "biz-2", actor="business")

        assert not result.success
        assert "owner" in result.message

    def test_stored_permanent_rejection_wins_over_context(self, workflow, store):
        _add_application(store, status="rejected", rejectionAllowsResubmit=False)

        result = workflow.change_status(
            "app-1", "pending", "biz-1", context=TransitionContext(rejection_allows_resubmit=True), actor="business"
        )

        assert not result.success
        assert "permanent rejection" in result.message

    def test_business_cannot_approve(self, workflow, store):
        _add_application(store, status="review")

        assert not workflow.change_status("app-1", "approved", "biz-1", actor="business").success


class TestDualAuthorizationFlow:
    """Approvals above 50M need a second, distinct approver."""

    @pytest.fixture
    def pending(self, workflow, store):
        _add_application(store, amount="60000000", status="review", reviewedBy="reviewer-1")
        result = workflow.change_status("app-1", "approved", "manager-1", notes="strong collateral")
        return result.data["dualAuthorizationId"]

    def test_primary_approval_leaves_application_in_review(self, workflow, store, pending):
        assert _status(store) == "review"
        record = store.get(DUAL_AUTHORIZATIONS, pending).data
        assert record["status"] == "pending_secondary"
        assert record["primaryApproverId"] == "manager-1"

    def test_second_request_while_pending_is_refused(self, workflow, store, pending):
        result = workflow.change_status("app-1", "approved", "manager-2")

        assert not result.success
        assert "already awaiting secondary approval" in result.message

    def test_secondary_approval_completes(self, workflow, store, audit, pending):
        result = workflow.record_secondary_approval(pending, "manager-2", notes="agreed")

        assert result.success
        data = store.get(APPLICATIONS, "app-1").data
        assert data["status"] == "approved"
        assert data["approvedBy"] == "manager-1"
        assert data["secondaryApprover"] == "manager-2"
        assert audit.events[-1].action == "dual_authorization_approved"

    def test_primary_cannot_be_secondary(self, workflow, store, pending):
        result = workflow.record_secondary_approval(pending, "manager-1")

        assert not result.success
        assert _status(store) == "review"

    def test_approver_cannot_cover_amount(self, workflow, pending):
        result = workflow.record_secondary_approval(pending, "approver-1")

        assert not result.success
        assert "cannot approve" in result.message

    def test_expired_request(self, workflow, clock, pending):
        clock.now = MONDAY_NOON + timedelta(hours=49)

        result = workflow.record_secondary_approval(pending, "manager-2")

        assert not result.success
        assert "expired" in result.message

    def test_secondary_rejection_keeps_review(self, workflow, store, pending):
        result = workflow.reject_dual_authorization(pending, "manager-2", notes="needs more detail")

        assert result.success
        assert _status(store) == "review"
        assert store.get(DUAL_AUTHORIZATIONS, pending).data["status"] == "rejected"

    def test_secondary_approval_outside_business_hours(self, workflow, store, clock, pending):
        clock.now = MONDAY_NOON.replace(hour=23, minute=30)

        result = workflow.record_secondary_approval(pending, "manager-2")

        assert not result.success
        assert "business hours" in result.message
        assert _status(store) == "review"
        assert store.get(DUAL_AUTHORIZATIONS, pending).data["status"] == "pending_secondary"

    def test_reviewer_of_record_cannot_be_secondary(self, workflow, store):
        _add_application(store, amount="60000000", status="review", reviewedBy="manager-2")
        primary = workflow.change_status("app-1", "approved", "manager-1")

        result = workflow.record_secondary_approval(primary.data["dualAuthorizationId"], "manager-2")

        assert not result.success
        assert "Separation of duties" in result.message
        assert _status(store) == "review"

    def test_rejection_closes_pending_request(self, workflow, store, pending):
        workflow.change_status("app-1", "rejected", "approver-1", rejection_reason="Collateral not verified")

        record = store.get(DUAL_AUTHORIZATIONS, pending).data
        assert record["status"] == "rejected"
        assert record["secondaryApproverId"] == "approver-1"

        result = workflow.record_secondary_approval(pending, "manager-2")

        assert not result.success
        assert _status(store) == "rejected"

    def test_more_info_closes_pending_request(self, workflow, store, pending):
        workflow.change_status("app-1", "more-info", "reviewer-1")

        assert store.get(DUAL_AUTHORIZATIONS, pending).data["status"] == "rejected"

    def test_moved_application_leaves_record_pending(self, workflow, store, pending):
        doc = store.get(APPLICATIONS, "app-1")
        store.set(APPLICATIONS, "app-1", {**doc.data, "status": "rejected"}, doc.version)

        result = workflow.record_secondary_approval(pending, "manager-2")

        assert not result.success
        assert "no longer awaiting approval" in result.message
        assert store.get(DUAL_AUTHORIZATIONS, pending).data["status"] == "pending_secondary"

    def test_failed_application_write_restores_pending(self, audit, clock):
        store = _LockedApplicationsStore()
        _seed_staff(store)
        _add_application(store, amount="60000000", status="review", reviewedBy="reviewer-1")
        workflow = ApplicationWorkflow(store, audit=audit, clock=clock)
        dual_auth_id = workflow.change_status("app-1", "approved", "manager-1").data["dualAuthorizationId"]

        result = workflow.record_secondary_approval(dual_auth_id, "manager-2")

        assert not result.success
        assert result.error_kind == "conflict"
        assert _status(store) == "review"
        assert store.get(DUAL_AUTHORIZATIONS, dual_auth_id).data["status"] == "pending_secondary"

    def test_unknown_record(self, workflow):
        result = workflow.record_secondary_approval("dualauth_missing", "manager-2")

        assert result.error_kind == "state"


class TestConcurrentChanges:
    def test_stale_write_is_retryable_conflict(self, audit, clock):
        store = _RacingStore()
        _seed_staff(store)
        _add_application(store)
        workflow = ApplicationWorkflow(store, audit=audit, clock=clock)

        result = workflow.change_status("app-1", "review", "reviewer-1")

        assert not result.success
        assert result.error_kind == "conflict"
        assert result.retryable
        assert _status(store) == "new"
