"""
Domain Models for the Financing Engine

These dataclasses provide type-safe representations of all business entities.
All monetary values use Decimal for precision. `from_dict` accepts the
camelCase documents held by the record store; `to_dict` writes them back.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from .errors import EngineError, ValidationError

# =============================================================================
# PARSING HELPERS
# =============================================================================


def to_decimal(value: Any, field_name: str = "value") -> Decimal:
    """Convert a JSON number or numeric string to Decimal."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number, got: {value!r}")
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field_name} must be a number, got: {value!r}") from None
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be finite, got: {value!r}")
    return result


def _optional_decimal(value: Any, field_name: str) -> Optional[Decimal]:
    return to_decimal(value, field_name) if value is not None else None


def parse_date(value: Any, field_name: str = "date") -> date:
    """Parse a date given as `YYYY-MM-DD` or the legacy `DD-MM-YYYY`."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    for fmt in ("%Y-%m-%d", "%d-%m-%Y"):
        try:
            return datetime.strptime(str(value), fmt).date()
        except ValueError:
            continue
    raise ValidationError(f"{field_name} must be YYYY-MM-DD or DD-MM-YYYY, got: {value!r}")


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_enum(enum_cls, value: Any, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {field_name}: {value!r}. Must be one of: {allowed}") from None


# =============================================================================
# ENUMERATIONS
# =============================================================================


class ContractType(str, Enum):
    MURABAHA = "murabaha"
    MUSHARAKA = "musharaka"
    MUDARABA = "mudaraba"
    IJARA = "ijara"
    ISTISNA = "istisna"

    @classmethod
    def parse(cls, value: Any) -> "ContractType":
        """Accept the canonical names plus the alternate spellings in use."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        return _parse_enum(cls, CONTRACT_TYPE_ALIASES.get(normalized, normalized), "contract_type")


CONTRACT_TYPE_ALIASES = {
    "murabahah": "murabaha",
    "musharakah": "musharaka",
    "mudarabah": "mudaraba",
    "ijarah": "ijara",
    "istisnaa": "istisna",
    "istisna'a": "istisna",
}


class ApplicationStatus(str, Enum):
    NEW = "new"
    PENDING = "pending"
    REVIEW = "review"
    APPROVED = "approved"
    REJECTED = "rejected"
    MORE_INFO = "more-info"


class Role(str, Enum):
    """Admin roles, totally ordered by `level`."""

    VIEWER = "viewer"
    REVIEWER = "reviewer"
    APPROVER = "approver"
    MANAGER = "manager"
    SUPER_ADMIN = "super_admin"

    @property
    def level(self) -> int:
        return ROLE_LEVELS[self]

    @classmethod
    def parse(cls, value: Any) -> "Role":
        return _parse_enum(cls, value, "role")


ROLE_LEVELS = {
    Role.VIEWER: 1,
    Role.REVIEWER: 2,
    Role.APPROVER: 3,
    Role.MANAGER: 4,
    Role.SUPER_ADMIN: 5,
}


class OpportunityStatus(str, Enum):
    ACTIVE = "active"
    FUNDED = "funded"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class InvestmentStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    DEFAULTED = "defaulted"


class InvestorType(str, Enum):
    INDIVIDUAL = "individual"
    CORPORATE = "corporate"


class DualAuthStatus(str, Enum):
    PENDING_SECONDARY = "pending_secondary"
    APPROVED = "approved"
    REJECTED = "rejected"


class AssignmentStatus(str, Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    COMPLETED = "completed"
    REASSIGNED = "reassigned"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# =============================================================================
# RECORD MODELS
# =============================================================================


@dataclass
class Application:
    """A business financing request."""

    id: str
    business_id: str
    requested_amount: Decimal
    contract_type: ContractType
    status: ApplicationStatus
    business_name: str = ""
    rejection_reason: Optional[str] = None
    rejection_allows_resubmit: Optional[bool] = None  # None = allowed
    admin_message: Optional[str] = None
    reviewed_by: Optional[str] = None
    approved_by: Optional[str] = None
    secondary_approver: Optional[str] = None

    @property
    def resubmission_allowed(self) -> bool:
        return self.rejection_allows_resubmit is not False

    @classmethod
    def from_dict(cls, data: dict, key: Optional[str] = None) -> "Application":
        return cls(
            id=key or data["id"],
            business_id=data["businessId"],
            requested_amount=to_decimal(data["requestedAmount"], "requestedAmount"),
            contract_type=ContractType.parse(data["contractType"]),
            status=_parse_enum(ApplicationStatus, data.get("status", "new"), "status"),
            business_name=data.get("businessName", ""),
            rejection_reason=data.get("rejectionReason"),
            rejection_allows_resubmit=data.get("rejectionAllowsResubmit"),
            admin_message=data.get("adminMessage"),
            reviewed_by=data.get("reviewedBy"),
            approved_by=data.get("approvedBy"),
            secondary_approver=data.get("secondaryApprover"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "businessId": self.business_id,
            "businessName": self.business_name,
            "requestedAmount": str(self.requested_amount),
            "contractType": self.contract_type.value,
            "status": self.status.value,
            "rejectionReason": self.rejection_reason,
            "rejectionAllowsResubmit": self.rejection_allows_resubmit,
            "adminMessage": self.admin_message,
            "reviewedBy": self.reviewed_by,
            "approvedBy": self.approved_by,
            "secondaryApprover": self.secondary_approver,
        }


@dataclass
class AdminProfile:
    """A staff identity. Permissions always derive from `role`."""

    user_id: str
    role: Role
    display_name: str = ""
    approval_limit: Optional[Decimal] = None  # stored override, can only lower the role limit
    is_active: bool = True
    specializations: list[str] = field(default_factory=list)
    current_workload: int = 0
    max_workload: int = 10

    @property
    def has_capacity(self) -> bool:
        return self.current_workload < self.max_workload

    @classmethod
    def from_dict(cls, data: dict, key: Optional[str] = None) -> "AdminProfile":
        return cls(
            user_id=key or data["userId"],
            role=Role.parse(data.get("role")),
            display_name=data.get("displayName", ""),
            approval_limit=_optional_decimal(data.get("approvalLimit"), "approvalLimit"),
            is_active=data.get("isActive", True),
            specializations=list(data.get("specializations", [])),
            current_workload=int(data.get("currentWorkload", 0)),
            max_workload=int(data.get("maxWorkload", 10)),
        )

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "role": self.role.value,
            "displayName": self.display_name,
            "approvalLimit": str(self.approval_limit) if self.approval_limit is not None else None,
            "isActive": self.is_active,
            "specializations": list(self.specializations),
            "currentWorkload": self.current_workload,
            "maxWorkload": self.max_workload,
        }


@dataclass
class Opportunity:
    """An approved application opened for investor funding."""

    id: str
    funding_goal: Decimal
    current_funding: Decimal
    minimum_investment: Decimal
    campaign_deadline: date
    status: OpportunityStatus = OpportunityStatus.ACTIVE
    investor_count: int = 0
    application_id: str = ""
    business_id: str = ""
    business_name: str = ""
    contract_type: ContractType = ContractType.MUSHARAKA
    expected_return_min: Decimal = Decimal("0")
    expected_return_max: Decimal = Decimal("0")
    term_months: int = 12

    @property
    def remaining_capacity(self) -> Decimal:
        return self.funding_goal - self.current_funding

    @classmethod
    def from_dict(cls, data: dict, key: Optional[str] = None) -> "Opportunity":
        return cls(
            id=key or data["id"],
            funding_goal=to_decimal(data["fundingGoal"], "fundingGoal"),
            current_funding=to_decimal(data.get("currentFunding", 0), "currentFunding"),
            minimum_investment=to_decimal(data["minimumInvestment"], "minimumInvestment"),
            campaign_deadline=parse_date(data["campaignDeadline"], "campaignDeadline"),
            status=_parse_enum(OpportunityStatus, data.get("status", "active"), "status"),
            investor_count=int(data.get("investorCount", 0)),
            application_id=data.get("applicationId", ""),
            business_id=data.get("businessId", ""),
            business_name=data.get("businessName", ""),
            contract_type=ContractType.parse(data.get("contractType", "musharaka")),
            expected_return_min=to_decimal(data.get("expectedReturnMin", 0), "expectedReturnMin"),
            expected_return_max=to_decimal(data.get("expectedReturnMax", 0), "expectedReturnMax"),
            term_months=int(data.get("termMonths", 12)),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "fundingGoal": str(self.funding_goal),
            "currentFunding": str(self.current_funding),
            "minimumInvestment": str(self.minimum_investment),
            "campaignDeadline": self.campaign_deadline.isoformat(),
            "status": self.status.value,
            "investorCount": self.investor_count,
            "applicationId": self.application_id,
            "businessId": self.business_id,
            "businessName": self.business_name,
            "contractType": self.contract_type.value,
            "expectedReturnMin": str(self.expected_return_min),
            "expectedReturnMax": str(self.expected_return_max),
            "termMonths": self.term_months,
        }


@dataclass
class Wallet:
    """One per investor. available_balance never goes negative."""

    user_id: str
    available_balance: Decimal = Decimal("0")
    total_balance: Decimal = Decimal("0")
    total_invested: Decimal = Decimal("0")
    currency: str = "NGN"

    @classmethod
    def from_dict(cls, data: dict, key: Optional[str] = None) -> "Wallet":
        return cls(
            user_id=key or data["userId"],
            available_balance=to_decimal(data.get("availableBalance", 0), "availableBalance"),
            total_balance=to_decimal(data.get("totalBalance", 0), "totalBalance"),
            total_invested=to_decimal(data.get("totalInvested", 0), "totalInvested"),
            currency=data.get("currency", "NGN"),
        )

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "availableBalance": str(self.available_balance),
            "totalBalance": str(self.total_balance),
            "totalInvested": str(self.total_invested),
            "currency": self.currency,
        }


@dataclass(frozen=True)
class InvestmentTransaction:
    """Immutable record of one investment, with a snapshot of the terms."""

    id: str
    investor_id: str
    investor_type: InvestorType
    opportunity_id: str
    amount: Decimal
    contract_type: ContractType
    expected_return_min: Decimal
    expected_return_max: Decimal
    term_months: int
    transaction_date: date
    idempotency_key: str
    application_id: str = ""
    business_id: str = ""
    business_name: str = ""
    status: InvestmentStatus = InvestmentStatus.ACTIVE

    @classmethod
    def from_dict(cls, data: dict, key: Optional[str] = None) -> "InvestmentTransaction":
        return cls(
            id=key or data["id"],
            investor_id=data["investorId"],
            investor_type=_parse_enum(InvestorType, data["investorType"], "investorType"),
            opportunity_id=data["opportunityId"],
            amount=to_decimal(data["amount"], "amount"),
            contract_type=ContractType.parse(data["contractType"]),
            expected_return_min=to_decimal(data["expectedReturnMin"], "expectedReturnMin"),
            expected_return_max=to_decimal(data["expectedReturnMax"], "expectedReturnMax"),
            term_months=int(data["termMonths"]),
            transaction_date=parse_date(data["transactionDate"], "transactionDate"),
            idempotency_key=data["idempotencyKey"],
            application_id=data.get("applicationId", ""),
            business_id=data.get("businessId", ""),
            business_name=data.get("businessName", ""),
            status=_parse_enum(InvestmentStatus, data.get("status", "active"), "status"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "investorId": self.investor_id,
            "investorType": self.investor_type.value,
            "opportunityId": self.opportunity_id,
            "applicationId": self.application_id,
            "businessId": self.business_id,
            "businessName": self.business_name,
            "amount": str(self.amount),
            "contractType": self.contract_type.value,
            "expectedReturnMin": str(self.expected_return_min),
            "expectedReturnMax": str(self.expected_return_max),
            "termMonths": self.term_months,
            "status": self.status.value,
            "transactionDate": self.transaction_date.isoformat(),
            "idempotencyKey": self.idempotency_key,
        }


@dataclass(frozen=True)
class LedgerTransaction:
    """Generic wallet ledger entry."""

    id: str
    user_id: str
    type: str  # 'investment' or 'investment_reversal'
    # amount is always positive; the type gives the direction
    amount: Decimal
    reference: str
    description: str
    created_at: datetime
    status: str = "completed"
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type,
            "status": self.status,
            "amount": str(self.amount),
            "reference": self.reference,
            "description": self.description,
            "createdAt": self.created_at.isoformat(),
            "metadata": dict(self.metadata),
        }


@dataclass
class DualAuthorization:
    """Secondary-approval record for a high-value approval."""

    id: str
    application_id: str
    requested_amount: Decimal
    primary_approver_id: str
    primary_approval_at: datetime
    required_by: datetime
    created_at: datetime
    status: DualAuthStatus = DualAuthStatus.PENDING_SECONDARY
    primary_approval_notes: Optional[str] = None
    secondary_approver_id: Optional[str] = None
    secondary_approval_at: Optional[datetime] = None
    secondary_approval_notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict, key: Optional[str] = None) -> "DualAuthorization":
        return cls(
            id=key or data["id"],
            application_id=data["applicationId"],
            requested_amount=to_decimal(data["requestedAmount"], "requestedAmount"),
            primary_approver_id=data["primaryApproverId"],
            primary_approval_at=parse_datetime(data["primaryApprovalAt"]),
            required_by=parse_datetime(data["requiredBy"]),
            created_at=parse_datetime(data["createdAt"]),
            status=_parse_enum(DualAuthStatus, data.get("status", "pending_secondary"), "status"),
            primary_approval_notes=data.get("primaryApprovalNotes"),
            secondary_approver_id=data.get("secondaryApproverId"),
            secondary_approval_at=parse_datetime(data.get("secondaryApprovalAt")),
            secondary_approval_notes=data.get("secondaryApprovalNotes"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "applicationId": self.application_id,
            "requestedAmount": str(self.requested_amount),
            "primaryApproverId": self.primary_approver_id,
            "primaryApprovalAt": _iso(self.primary_approval_at),
            "primaryApprovalNotes": self.primary_approval_notes,
            "secondaryApproverId": self.secondary_approver_id,
            "secondaryApprovalAt": _iso(self.secondary_approval_at),
            "secondaryApprovalNotes": self.secondary_approval_notes,
            "status": self.status.value,
            "requiredBy": _iso(self.required_by),
            "createdAt": _iso(self.created_at),
        }


@dataclass
class Assignment:
    """Which admin reviews which application."""

    id: str
    application_id: str
    assigned_to: str
    assigned_by: str
    assigned_at: datetime
    status: AssignmentStatus = AssignmentStatus.PENDING
    priority: Priority = Priority.MEDIUM
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    completed_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.status in (AssignmentStatus.PENDING, AssignmentStatus.IN_REVIEW)

    @classmethod
    def from_dict(cls, data: dict, key: Optional[str] = None) -> "Assignment":
        return cls(
            id=key or data["id"],
            application_id=data["applicationId"],
            assigned_to=data["assignedTo"],
            assigned_by=data["assignedBy"],
            assigned_at=parse_datetime(data["assignedAt"]),
            status=_parse_enum(AssignmentStatus, data.get("status", "pending"), "status"),
            priority=_parse_enum(Priority, data.get("priority", "medium"), "priority"),
            due_date=parse_datetime(data.get("dueDate")),
            notes=data.get("notes"),
            completed_at=parse_datetime(data.get("completedAt")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "applicationId": self.application_id,
            "assignedTo": self.assigned_to,
            "assignedBy": self.assigned_by,
            "assignedAt": _iso(self.assigned_at),
            "status": self.status.value,
            "priority": self.priority.value,
            "dueDate": _iso(self.due_date),
            "notes": self.notes,
            "completedAt": _iso(self.completed_at),
        }


# =============================================================================
# DISTRIBUTION MODELS
# =============================================================================


@dataclass(frozen=True)
class InvestorStake:
    """One investor's capital in the pool being distributed."""

    investor_id: str
    amount: Decimal

    @classmethod
    def from_dict(cls, data: dict) -> "InvestorStake":
        investor_id = data.get("investorId", data.get("id"))
        if not investor_id:
            raise ValidationError(f"Investment entry is missing investorId: {data}")
        return cls(investor_id=str(investor_id), amount=to_decimal(data["amount"], "amount"))


@dataclass(frozen=True)
class ContractTerms:
    """Per-contract rates for the fixed-return contract types."""

    markup_rate: Decimal = Decimal("0.15")
    lease_rate: Decimal = Decimal("0.12")


@dataclass
class InvestorShare:
    investor_id: str
    investment_amount: Decimal
    profit_share: Decimal  # negative = loss
    percentage: Decimal


@dataclass
class DistributionResult:
    contract_type: ContractType
    total_distributable: Decimal
    business_share: Decimal
    investor_share: Decimal
    per_investor: list[InvestorShare] = field(default_factory=list)


@dataclass
class DistributionRequest:
    """Complete input for a profit distribution run."""

    contract_type: ContractType
    net_profit: Decimal
    total_investment: Decimal
    business_share_percentage: Decimal
    investments: list[InvestorStake] = field(default_factory=list)
    terms: Optional[ContractTerms] = None

    @classmethod
    def from_dict(cls, data: dict) -> "DistributionRequest":
        terms = None
        if "markupRate" in data or "leaseRate" in data:
            defaults = ContractTerms()
            terms = ContractTerms(
                markup_rate=to_decimal(data.get("markupRate", defaults.markup_rate), "markupRate"),
                lease_rate=to_decimal(data.get("leaseRate", defaults.lease_rate), "leaseRate"),
            )
        return cls(
            contract_type=ContractType.parse(data.get("contractType")),
            net_profit=to_decimal(data.get("netProfit"), "netProfit"),
            total_investment=to_decimal(data.get("totalInvestment"), "totalInvestment"),
            business_share_percentage=to_decimal(
                data.get("businessSharePercentage"), "businessSharePercentage"
            ),
            investments=[InvestorStake.from_dict(i) for i in data.get("investments", [])],
            terms=terms,
        )


@dataclass(frozen=True)
class ReturnProjection:
    """Projected returns for an amount; rates are percentages."""

    min_return: Decimal
    max_return: Decimal
    avg_monthly: Decimal


# =============================================================================
# INVESTMENT REQUEST
# =============================================================================


@dataclass(frozen=True)
class InvestmentRequest:
    investor_id: str
    investor_type: InvestorType
    opportunity_id: str
    amount: Decimal
    idempotency_key: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "InvestmentRequest":
        return cls(
            investor_id=data.get("investorId", ""),
            investor_type=_parse_enum(InvestorType, data.get("investorType"), "investorType"),
            opportunity_id=data.get("opportunityId", ""),
            amount=to_decimal(data.get("amount"), "amount"),
            idempotency_key=data.get("idempotencyKey"),
        )


# =============================================================================
# OPERATION RESULT
# =============================================================================


@dataclass
class OperationResult:
    """
    Discriminated result returned at every public contract.

    error_kind is None on success, else one of
    'validation', 'state', 'conflict', 'dependency'.
    """

    success: bool
    message: str
    error_kind: Optional[str] = None
    investment_id: Optional[str] = None
    data: Optional[dict] = None

    @property
    def retryable(self) -> bool:
        return self.error_kind == "conflict"

    @classmethod
    def ok(cls, message: str, **kwargs) -> "OperationResult":
        return cls(success=True, message=message, **kwargs)

    @classmethod
    def from_error(cls, error: EngineError, message: Optional[str] = None) -> "OperationResult":
        return cls(success=False, message=message or str(error), error_kind=error.kind)

    def to_dict(self) -> dict:
        output = {"success": self.success, "message": self.message}
        if self.error_kind:
            output["error_kind"] = self.error_kind
            output["retryable"] = self.retryable
        if self.investment_id:
            output["investment_id"] = self.investment_id
        if self.data is not None:
            output["data"] = self.data
        return output
