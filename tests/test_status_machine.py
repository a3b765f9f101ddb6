"""
Unit Tests for the Application Status State Machine

Tests verify every allowed edge, every rejected edge, and the
context rules that gate approval, rejection and resubmission.
"""

import itertools

import pytest

from financing_engine.models import ApplicationStatus
from financing_engine.status_machine import (
    ADMIN_TRANSITIONS,
    TransitionContext,
    is_terminal,
    requires_business_action,
    status_label,
    valid_next_statuses,
    validate_transition,
)

ALL_STATUSES = [s.value for s in ApplicationStatus]


class TestAdminTransitions:
    """Test the administrator transition table."""

    @pytest.mark.parametrize("current,proposed", [
        ("new", "review"),
        ("new", "rejected"),
        ("new", "more-info"),
        ("pending", "review"),
        ("review", "approved"),
        ("review", "more-info"),
        ("more-info", "review"),
        ("more-info", "rejected"),
        ("approved", "rejected"),
        ("rejected", "review"),
    ])
    def test_allowed_edges_are_valid(self, current, proposed):
        result = validate_transition(current, proposed)

        assert result.valid
        assert result.error is None

    def test_every_edge_outside_table_is_invalid_and_names_both_statuses(self):
        """Any pair not in the allow-list is rejected with both statuses in the message."""
        for current, proposed in itertools.permutations(ALL_STATUSES, 2):
            allowed = [s.value for s in ADMIN_TRANSITIONS[ApplicationStatus(current)]]
            if proposed in allowed:
                continue
            result = validate_transition(current, proposed)

            assert not result.valid, f"{current} -> {proposed} should be invalid"
            assert current in result.error
            assert proposed in result.error

    def test_invalid_edge_lists_alternatives(self):
        result = validate_transition("approved", "review")

        assert not result.valid
        assert "Allowed transitions: rejected" in result.error

    def test_same_status_is_valid_with_warning(self):
        result = validate_transition("review", "review")

        assert result.valid
        assert result.warning == "Status unchanged"

    def test_approved_can_only_be_reversed_to_rejected(self):
        for proposed in ALL_STATUSES:
            if proposed in ("approved", "rejected"):
                continue
            assert not validate_transition("approved", proposed).valid


class TestContextRules:
    """Test the facts that gate specific transitions."""

    def test_permanent_rejection_blocks_resubmission(self):
        context = TransitionContext(rejection_allows_resubmit=False)

        result = validate_transition("rejected", "review", context)

        assert not result.valid
        assert "permanent rejection" in result.error

    def test_permanent_rejection_blocks_every_status(self):
        """A permanently rejected application can never move again."""
        context = TransitionContext(rejection_allows_resubmit=False)

        for proposed in ALL_STATUSES:
            if proposed == "rejected":
                continue
            for actor in ("admin", "business"):
                assert not validate_transition("rejected", proposed, context, actor).valid

    def test_absent_resubmit_flag_allows_resubmission(self):
        assert validate_transition("rejected", "review", TransitionContext()).valid
        assert validate_transition("rejected", "review", TransitionContext(rejection_allows_resubmit=True)).valid

    def test_approval_requires_documents(self):
        result = validate_transition("review", "approved", TransitionContext(has_required_documents=False))

        assert not result.valid
        assert "documents" in result.error

    def test_approval_requires_due_diligence(self):
        result = validate_transition("review", "approved", TransitionContext(due_diligence_complete=False))

        assert not result.valid
        assert "due diligence" in result.error

    def test_rejection_requires_reason_when_checked(self):
        result = validate_transition("review", "rejected", TransitionContext(rejection_reason_provided=False))

        assert not result.valid
        assert "reason" in result.error.lower()

    def test_context_from_camel_case_dict(self):
        context = TransitionContext.from_dict({"hasRequiredDocuments": False, "dueDiligenceComplete": True})

        assert context.has_required_documents is False
        assert context.due_diligence_complete is True
        assert context.rejection_allows_resubmit is None


class TestBusinessTransitions:
    """Test the business-owner transition table."""

    def test_business_may_resubmit_after_more_info(self):
        assert validate_transition("more-info", "pending", actor="business").valid

    def test_business_may_resubmit_after_rejection(self):
        assert validate_transition("rejected", "pending", actor="business").valid

    def test_business_cannot_approve(self):
        result = validate_transition("review", "approved", actor="business")

        assert not result.valid
        assert "none" in result.error


class TestBadInput:
    """Unknown values come back as invalid results, never exceptions."""

    def test_unknown_current_status(self):
        result = validate_transition("archived", "review")

        assert not result.valid
        assert "archived" in result.error

    def test_unknown_proposed_status(self):
        assert not validate_transition("review", "done").valid

    def test_unknown_actor(self):
        result = validate_transition("review", "approved", actor="investor")

        assert not result.valid
        assert "actor" in result.error.lower()


class TestHelpers:
    def test_valid_next_statuses(self):
        assert valid_next_statuses("review") == [
            ApplicationStatus.APPROVED, ApplicationStatus.REJECTED, ApplicationStatus.MORE_INFO
        ]
        assert valid_next_statuses("rejected", rejection_allows_resubmit=False) == []

    def test_terminal_and_business_action(self):
        assert is_terminal("approved")
        assert is_terminal("rejected")
        assert not is_terminal("review")
        assert requires_business_action("more-info")
        assert not requires_business_action("approved")

    def test_status_label(self):
        assert status_label("more-info") == "More Information Required"
