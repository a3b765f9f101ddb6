"""
Approval Authorization

Composes the permission checks that gate an approval, and manages the
dual-authorization record required for high-value approvals.
"""

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from .config import Settings
from .errors import StateError
from .models import AdminProfile, Application, DualAuthorization, DualAuthStatus, Role
from .permissions import (
    CheckResult,
    can_approve_amount,
    can_approve_high_value,
    effective_approval_limit,
    has_role_level,
    permissions_for,
    requires_dual_authorization,
    validate_separation_of_duties,
)


def _naira(amount: Decimal) -> str:
    return f"₦{amount:,.2f}"


@dataclass(frozen=True)
class AuthorizationDecision:
    allowed: bool
    reason: Optional[str] = None
    requires_dual_authorization: bool = False

    def to_dict(self) -> dict:
        output = {
            "allowed": self.allowed,
            "requires_dual_authorization": self.requires_dual_authorization,
        }
        if self.reason:
            output["reason"] = self.reason
        return output


class ApprovalAuthorizer:
    """Decides whether an admin may approve an application right now."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()

    def authorize(self, approver: AdminProfile, application: Application, now: datetime) -> AuthorizationDecision:
        """
        Run every approval check in order and stop at the first denial.

        Order:
        1. Approver is active
        2. Role can approve
        3. Amount within the approver's effective limit
        4. Separation of duties (reviewer != approver)
        5. Business hours for high-value amounts
        """
        amount = application.requested_amount

        if not approver.is_active:
            return AuthorizationDecision(False, f"Admin account '{approver.user_id}' is inactive")

        if not permissions_for(approver.role).can_approve:
            return AuthorizationDecision(False, f"Role '{approver.role.value}' cannot approve applications")

        if not can_approve_amount(approver, amount):
            limit = effective_approval_limit(approver)
            return AuthorizationDecision(
                False,
                f"Approval Denied: Amount {_naira(amount)} exceeds your approval limit of "
                f"{_naira(limit)} ({approver.role.value} role)",
            )

        separation = validate_separation_of_duties(application.reviewed_by, approver.user_id)
        if not separation.allowed:
            return AuthorizationDecision(False, separation.reason)

        hours = can_approve_high_value(amount, now)
        if not hours.allowed:
            return AuthorizationDecision(False, hours.reason)

        return AuthorizationDecision(
            True, requires_dual_authorization=requires_dual_authorization(amount, approver.role)
        )

    def open_dual_authorization(
        self,
        application: Application,
        primary: AdminProfile,
        now: datetime,
        notes: Optional[str] = None,
    ) -> DualAuthorization:
        return DualAuthorization(
            id=f"dualauth_{application.id}_{int(now.timestamp())}_{uuid.uuid4().hex[:6]}",
            application_id=application.id,
            requested_amount=application.requested_amount,
            primary_approver_id=primary.user_id,
            primary_approval_at=now,
            primary_approval_notes=notes,
            required_by=now + timedelta(hours=self.settings.dual_auth_sla_hours),
            created_at=now,
        )

    def record_secondary_approval(
        self,
        record: DualAuthorization,
        secondary: AdminProfile,
        now: datetime,
        notes: Optional[str] = None,
        reviewed_by: Optional[str] = None,
    ) -> DualAuthorization:
        """
        Complete a pending dual authorization. Raises StateError if not allowed.

        The secondary signature is an approval in its own right: it must come
        from someone other than the reviewer of record and, for high-value
        amounts, within business hours.
        """
        self._ensure_pending(record, now)

        if secondary.user_id == record.primary_approver_id:
            raise StateError("Dual authorization requires a second, distinct approver")
        if not secondary.is_active:
            raise StateError(f"Admin account '{secondary.user_id}' is inactive")
        if not has_role_level(secondary, Role.APPROVER) or not can_approve_amount(secondary, record.requested_amount):
            raise StateError(
                f"Secondary approver '{secondary.user_id}' ({secondary.role.value}) cannot approve "
                f"{_naira(record.requested_amount)}"
            )

        separation = validate_separation_of_duties(reviewed_by, secondary.user_id)
        if not separation.allowed:
            raise StateError(separation.reason)

        hours = can_approve_high_value(record.requested_amount, now)
        if not hours.allowed:
            raise StateError(hours.reason)

        return replace(
            record,
            status=DualAuthStatus.APPROVED,
            secondary_approver_id=secondary.user_id,
            secondary_approval_at=now,
            secondary_approval_notes=notes,
        )

    def reject_dual_authorization(
        self,
        record: DualAuthorization,
        admin: AdminProfile,
        now: datetime,
        notes: Optional[str] = None,
    ) -> DualAuthorization:
        if record.status != DualAuthStatus.PENDING_SECONDARY:
            raise StateError(f"Dual authorization {record.id} is already {record.status.value}")
        if not has_role_level(admin, Role.APPROVER):
            raise StateError(f"Admin '{admin.user_id}' cannot act on dual authorizations")
        return replace(
            record,
            status=DualAuthStatus.REJECTED,
            secondary_approver_id=admin.user_id,
            secondary_approval_at=now,
            secondary_approval_notes=notes,
        )

    @staticmethod
    def _ensure_pending(record: DualAuthorization, now: datetime) -> None:
        if record.status != DualAuthStatus.PENDING_SECONDARY:
            raise StateError(f"Dual authorization {record.id} is already {record.status.value}")
        if now > record.required_by:
            raise StateError(
                f"Dual authorization {record.id} expired at {record.required_by.isoformat()}; "
                "the primary approval must be repeated"
            )


def authorize_admin_change(
    actor: Optional[AdminProfile],
    actor_id: str,
    target_user_id: str,
    new_role: Role,
    bootstrap_allowed: bool = False,
    current_role: Optional[Role] = None,
) -> CheckResult:
    """
    Who may create or change an admin profile.

    `bootstrap_allowed` is True only while no admin profile exists at all;
    then the caller may create a super_admin profile for themselves.
    `current_role` is the target's stored role when the profile exists.
    """
    if actor is None:
        if bootstrap_allowed and target_user_id == actor_id and new_role == Role.SUPER_ADMIN:
            return CheckResult(True)
        return CheckResult(False, f"Admin profile not found for caller '{actor_id}'")

    if not has_role_level(actor, Role.MANAGER):
        return CheckResult(
            False, f"Access Denied: Only managers can manage admin profiles. Your role: {actor.role.value}"
        )

    if target_user_id == actor.user_id and actor.role == Role.SUPER_ADMIN and new_role != Role.SUPER_ADMIN:
        return CheckResult(
            False, "Super admins cannot demote themselves. Have another super admin change your role."
        )

    if new_role == Role.SUPER_ADMIN and actor.role != Role.SUPER_ADMIN:
        return CheckResult(False, "Only super admins can create or promote to super_admin role")

    if current_role == Role.SUPER_ADMIN and actor.role != Role.SUPER_ADMIN:
        return CheckResult(False, "Only super admins can change a super_admin profile")

    return CheckResult(True)


def authorize_profit_distribution(actor: AdminProfile) -> CheckResult:
    if not actor.is_active or not permissions_for(actor.role).can_distribute_profits:
        return CheckResult(
            False, f"Access Denied: Only managers can distribute profits. Your role: {actor.role.value}"
        )
    return CheckResult(True)
