"""
Role & Permission Model

The role -> permission table is fixed and identical for every admin holding
a role. Nothing stored on an individual AdminProfile can grant a capability;
the stored approval limit can only lower the role's limit.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Optional, Union

from .errors import ValidationError
from .models import AdminProfile, Role

UNLIMITED = Decimal("Infinity")

DUAL_AUTH_THRESHOLD = Decimal("50000000")
REVIEWER_DUAL_AUTH_THRESHOLD = Decimal("5000000")
HIGH_VALUE_THRESHOLD = Decimal("10000000")

BUSINESS_DAYS = range(0, 5)  # Monday..Friday
BUSINESS_HOURS_START = 6
BUSINESS_HOURS_END = 22  # exclusive


@dataclass(frozen=True)
class AdminPermissions:
    can_view_applications: bool = False
    can_review_due_diligence: bool = False
    can_request_changes: bool = False
    can_approve: bool = False
    approval_limit: Decimal = Decimal("0")
    can_assign_reviews: bool = False
    can_manage_admins: bool = False
    can_access_system_config: bool = False
    can_distribute_profits: bool = False
    can_view_reports: bool = False
    can_export_data: bool = False
    can_access_audit_logs: bool = False
    can_manage_investors: bool = False

    def to_dict(self) -> dict:
        limit = None if self.approval_limit == UNLIMITED else float(self.approval_limit)
        return {
            "canViewApplications": self.can_view_applications,
            "canReviewDueDiligence": self.can_review_due_diligence,
            "canRequestChanges": self.can_request_changes,
            "canApprove": self.can_approve,
            "approvalLimit": limit,
            "canAssignReviews": self.can_assign_reviews,
            "canManageAdmins": self.can_manage_admins,
            "canAccessSystemConfig": self.can_access_system_config,
            "canDistributeProfits": self.can_distribute_profits,
            "canViewReports": self.can_view_reports,
            "canExportData": self.can_export_data,
            "canAccessAuditLogs": self.can_access_audit_logs,
            "canManageInvestors": self.can_manage_investors,
        }


ROLE_PERMISSIONS = MappingProxyType({
    Role.VIEWER: AdminPermissions(
        can_view_applications=True,
        can_view_reports=True,
    ),
    Role.REVIEWER: AdminPermissions(
        can_view_applications=True,
        can_review_due_diligence=True,
        can_request_changes=True,
        can_view_reports=True,
        can_export_data=True,
    ),
    Role.APPROVER: AdminPermissions(
        can_view_applications=True,
        can_review_due_diligence=True,
        can_request_changes=True,
        can_approve=True,
        approval_limit=DUAL_AUTH_THRESHOLD,
        can_view_reports=True,
        can_export_data=True,
        can_access_audit_logs=True,
        can_manage_investors=True,
    ),
    Role.MANAGER: AdminPermissions(
        can_view_applications=True,
        can_review_due_diligence=True,
        can_request_changes=True,
        can_approve=True,
        approval_limit=Decimal("100000000"),
        can_assign_reviews=True,
        can_manage_admins=True,
        can_access_system_config=True,
        can_distribute_profits=True,
        can_view_reports=True,
        can_export_data=True,
        can_access_audit_logs=True,
        can_manage_investors=True,
    ),
    Role.SUPER_ADMIN: AdminPermissions(
        can_view_applications=True,
        can_review_due_diligence=True,
        can_request_changes=True,
        can_approve=True,
        approval_limit=UNLIMITED,
        can_assign_reviews=True,
        can_manage_admins=True,
        can_access_system_config=True,
        can_distribute_profits=True,
        can_view_reports=True,
        can_export_data=True,
        can_access_audit_logs=True,
        can_manage_investors=True,
    ),
})


def permissions_for(role: Union[Role, str]) -> AdminPermissions:
    """Fixed capability set for a role. Unknown roles are rejected, not downgraded."""
    if not isinstance(role, Role):
        role = Role.parse(role)
    return ROLE_PERMISSIONS[role]


def has_permission(profile: AdminProfile, permission: str) -> bool:
    """Boolean capability check; inactive admins have no permissions."""
    if not profile.is_active:
        return False
    value = getattr(permissions_for(profile.role), permission, None)
    if not isinstance(value, bool):
        raise ValidationError(f"Unknown permission: {permission}")
    return value


def effective_approval_limit(profile: AdminProfile) -> Decimal:
    role_limit = permissions_for(profile.role).approval_limit
    if profile.role == Role.SUPER_ADMIN or profile.approval_limit is None:
        return role_limit
    return min(role_limit, profile.approval_limit)


def can_approve_amount(profile: AdminProfile, amount: Decimal) -> bool:
    permissions = permissions_for(profile.role)
    return profile.is_active and permissions.can_approve and amount <= effective_approval_limit(profile)


def has_role_level(profile: AdminProfile, minimum_role: Union[Role, str]) -> bool:
    if not isinstance(minimum_role, Role):
        minimum_role = Role.parse(minimum_role)
    return profile.is_active and profile.role.level >= minimum_role.level


@dataclass(frozen=True)
class CheckResult:
    """Outcome of a single policy check. `reason` is set whenever denied."""

    allowed: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        output = {"allowed": self.allowed}
        if self.reason:
            output["reason"] = self.reason
        return output


def validate_separation_of_duties(reviewer_id: Optional[str], approver_id: str) -> CheckResult:
    if reviewer_id and reviewer_id == approver_id:
        return CheckResult(False, "Separation of duties violation: Reviewer cannot approve their own review")
    return CheckResult(True)


def requires_dual_authorization(amount: Decimal, primary_role: Union[Role, str]) -> bool:
    if amount > DUAL_AUTH_THRESHOLD:
        return True
    return Role.parse(primary_role) == Role.REVIEWER and amount > REVIEWER_DUAL_AUTH_THRESHOLD


def is_within_business_hours(now: datetime) -> bool:
    return now.weekday() in BUSINESS_DAYS and BUSINESS_HOURS_START <= now.hour < BUSINESS_HOURS_END


def can_approve_high_value(amount: Decimal, now: datetime) -> CheckResult:
    """Approvals above the high-value threshold only run during business hours."""
    if amount <= HIGH_VALUE_THRESHOLD:
        return CheckResult(True)
    if not is_within_business_hours(now):
        return CheckResult(
            False,
            f"High-value approvals (>₦{HIGH_VALUE_THRESHOLD:,.0f}) are restricted to business hours "
            f"(Mon-Fri, {BUSINESS_HOURS_START} AM - {BUSINESS_HOURS_END - 12} PM). "
            f"Current time: {now:%a %H:%M}",
        )
    return CheckResult(True)
