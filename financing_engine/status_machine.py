"""
Application Status State Machine

Validates status transitions for a financing application. Pure functions:
the caller persists the new status only after a valid result.
"""

from dataclasses import dataclass
from typing import Optional

from .models import ApplicationStatus

S = ApplicationStatus

# Transitions an administrator may make.
ADMIN_TRANSITIONS: dict[ApplicationStatus, tuple[ApplicationStatus, ...]] = {
    S.NEW: (S.REVIEW, S.REJECTED, S.MORE_INFO),
    S.PENDING: (S.REVIEW, S.REJECTED, S.MORE_INFO),
    S.REVIEW: (S.APPROVED, S.REJECTED, S.MORE_INFO),
    S.MORE_INFO: (S.REVIEW, S.REJECTED),
    S.APPROVED: (S.REJECTED,),  # exceptional reversal only
    S.REJECTED: (S.REVIEW,),  # only if resubmission is allowed
}

# Transitions a business owner may make: resubmission only.
BUSINESS_TRANSITIONS: dict[ApplicationStatus, tuple[ApplicationStatus, ...]] = {
    S.NEW: (),
    S.PENDING: (),
    S.REVIEW: (),
    S.MORE_INFO: (S.PENDING,),
    S.APPROVED: (),
    S.REJECTED: (S.PENDING,),
}

ACTORS = {"admin": ADMIN_TRANSITIONS, "business": BUSINESS_TRANSITIONS}

TERMINAL_STATUSES = frozenset({S.APPROVED, S.REJECTED})
NEEDS_BUSINESS_ACTION = frozenset({S.PENDING, S.MORE_INFO})

STATUS_LABELS = {
    S.NEW: "New Application",
    S.PENDING: "Pending Review",
    S.REVIEW: "Under Review",
    S.APPROVED: "Approved",
    S.REJECTED: "Rejected",
    S.MORE_INFO: "More Information Required",
}


@dataclass(frozen=True)
class TransitionContext:
    """
    Facts about the application that gate specific transitions.

    Each flag blocks only when explicitly False; None means "not checked".
    """

    rejection_allows_resubmit: Optional[bool] = None
    has_required_documents: Optional[bool] = None
    due_diligence_complete: Optional[bool] = None
    rejection_reason_provided: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "TransitionContext":
        data = data or {}
        return cls(
            rejection_allows_resubmit=data.get("rejectionAllowsResubmit"),
            has_required_documents=data.get("hasRequiredDocuments"),
            due_diligence_complete=data.get("dueDiligenceComplete"),
            rejection_reason_provided=data.get("rejectionReasonProvided"),
        )


@dataclass(frozen=True)
class TransitionResult:
    valid: bool
    error: Optional[str] = None
    warning: Optional[str] = None

    def to_dict(self) -> dict:
        output = {"valid": self.valid}
        if self.error:
            output["error"] = self.error
        if self.warning:
            output["warning"] = self.warning
        return output


def _parse_status(value) -> Optional[ApplicationStatus]:
    try:
        return ApplicationStatus(value)
    except ValueError:
        return None


def validate_transition(
    current,
    proposed,
    context: Optional[TransitionContext] = None,
    actor: str = "admin",
) -> TransitionResult:
    """
    Check whether `current -> proposed` is legal for the given actor.

    Never raises for bad input: unknown statuses or actors come back as an
    invalid result with an explanatory error.
    """
    context = context or TransitionContext()

    current_status = _parse_status(current)
    proposed_status = _parse_status(proposed)
    if current_status is None or proposed_status is None:
        unknown = current if current_status is None else proposed
        return TransitionResult(valid=False, error=f"Unknown application status: {unknown!r}")

    transitions = ACTORS.get(actor)
    if transitions is None:
        return TransitionResult(valid=False, error=f"Unknown actor: {actor!r}. Must be 'admin' or 'business'")

    if current_status == proposed_status:
        return TransitionResult(valid=True, warning="Status unchanged")

    allowed = transitions[current_status]
    if proposed_status not in allowed:
        alternatives = ", ".join(s.value for s in allowed) or "none"
        return TransitionResult(
            valid=False,
            error=(
                f"Invalid transition: {current_status.value} → {proposed_status.value}. "
                f"Allowed transitions: {alternatives}"
            ),
        )

    if current_status == S.REJECTED and context.rejection_allows_resubmit is False:
        return TransitionResult(
            valid=False,
            error="This rejected application cannot be resubmitted (permanent rejection)",
        )

    if proposed_status == S.APPROVED:
        if context.has_required_documents is False:
            return TransitionResult(valid=False, error="Cannot approve: required documents not submitted")
        if context.due_diligence_complete is False:
            return TransitionResult(valid=False, error="Cannot approve: due diligence not completed")

    if proposed_status == S.REJECTED and context.rejection_reason_provided is False:
        return TransitionResult(valid=False, error="Rejection reason is required when rejecting an application")

    return TransitionResult(valid=True)


def valid_next_statuses(
    current, rejection_allows_resubmit: Optional[bool] = None, actor: str = "admin"
) -> list[ApplicationStatus]:
    """All statuses reachable from `current` for the actor."""
    status = ApplicationStatus(current)
    if status == S.REJECTED and rejection_allows_resubmit is False:
        return []
    return list(ACTORS[actor][status])


def is_terminal(status) -> bool:
    return ApplicationStatus(status) in TERMINAL_STATUSES


def requires_business_action(status) -> bool:
    return ApplicationStatus(status) in NEEDS_BUSINESS_ACTION


def status_label(status) -> str:
    return STATUS_LABELS[ApplicationStatus(status)]
