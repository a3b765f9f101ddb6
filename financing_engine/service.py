"""
Engine Service

Wires the store, settings, rate limiter and engine components together and
exposes them to the HTTP entry points as dict-in, (dict, status)-out calls.
Both main.py (Flask) and lambda_handler.py (AWS Lambda) share one instance.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from .admins import AdminDirectory
from .assignments import AssignmentService
from .audit import AuditSink, StoreAuditSink
from .authorization import ApprovalAuthorizer, authorize_profit_distribution
from .calculators import ProfitDistributor
from .config import Settings
from .errors import ConflictError, DependencyError, EngineError, StateError, ValidationError
from .models import (
    AdminProfile,
    Application,
    DistributionRequest,
    InvestmentRequest,
    OperationResult,
    Priority,
)
from .output import OutputBuilder
from .permissions import has_permission
from .processor import InvestmentProcessor, calculate_returns
from .rate_limiter import RateLimiter
from .status_machine import TransitionContext, validate_transition
from .store import APPLICATIONS, DeadlineStore, DocumentStore, InMemoryDocumentStore
from .workflow import ApplicationWorkflow

logger = logging.getLogger(__name__)

VERSION = "1.0"

STATUS_BY_ERROR_KIND = {
    "validation": 400,
    "state": 400,
    "conflict": 409,
    "dependency": 503,
}

ENDPOINTS = {
    "health": "/health [GET]",
    "validate_transition": "/transitions/validate [POST]",
    "change_status": "/applications/<id>/status [POST]",
    "approve_dual_authorization": "/dual-authorizations/<id>/approve [POST]",
    "reject_dual_authorization": "/dual-authorizations/<id>/reject [POST]",
    "check_approval": "/approvals/check [POST]",
    "invest": "/investments [POST]",
    "returns": "/investments/returns [POST]",
    "distribute": "/distributions [POST]",
    "assign": "/assignments [POST]",
    "complete_assignment": "/assignments/<id>/complete [POST]",
    "workload": "/assignments/stats [GET]",
    "save_admin": "/admins [POST]",
}


def require(data: dict, field: str) -> Any:
    value = data.get(field)
    if value is None or value == "":
        raise ValidationError(f"{field} is required")
    return value


def result_response(result: OperationResult) -> tuple[dict, int]:
    if result.success:
        return result.to_dict(), 200
    return result.to_dict(), STATUS_BY_ERROR_KIND.get(result.error_kind, 500)


def error_response(error: EngineError) -> tuple[dict, int]:
    if isinstance(error, DependencyError):
        logger.error(f"Store failure: {error}", exc_info=True)
        return result_response(OperationResult.from_error(error, "Please try again later."))
    return result_response(OperationResult.from_error(error))


def forbidden(message: str) -> tuple[dict, int]:
    return {"error": message, "status": "forbidden"}, 403


class EngineService:
    """One per process; safe to reuse across requests."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[DocumentStore] = None,
        rate_limiter: Optional[RateLimiter] = None,
        clock: Callable[[], datetime] = datetime.now,
        audit: Optional[AuditSink] = None,
    ):
        self.settings = settings or Settings()
        self.store = store or DeadlineStore(InMemoryDocumentStore(), self.settings.store_timeout_seconds)
        self.rate_limiter = rate_limiter or RateLimiter(max_keys=self.settings.rate_limiter_max_keys)
        self.clock = clock
        self.audit = audit or StoreAuditSink(self.store)

        self.processor = InvestmentProcessor(self.store, self.audit, clock)
        self.distributor = ProfitDistributor(self.settings)
        self.workflow = ApplicationWorkflow(self.store, self.settings, self.audit, clock)
        self.assignments = AssignmentService(self.store, self.settings, clock, self.audit)
        self.admins = AdminDirectory(self.store, self.audit, clock)
        self.authorizer = ApprovalAuthorizer(self.settings)
        self.output = OutputBuilder()

    @classmethod
    def from_env(cls, environ=None) -> "EngineService":
        return cls(Settings.from_env(environ))

    # -------------------------------------------------------------------------
    # Info
    # -------------------------------------------------------------------------

    def health(self) -> tuple[dict, int]:
        return {"status": "healthy", "environment": self.settings.environment}, 200

    def api_info(self, runtime: str) -> tuple[dict, int]:
        return {
            "status": "ok",
            "message": "Shariah Financing Engine API",
            "version": VERSION,
            "environment": self.settings.environment,
            "runtime": runtime,
            "endpoints": ENDPOINTS,
        }, 200

    # -------------------------------------------------------------------------
    # Applications
    # -------------------------------------------------------------------------

    def validate_transition(self, data: dict) -> tuple[dict, int]:
        result = validate_transition(
            require(data, "currentStatus"),
            require(data, "proposedStatus"),
            TransitionContext.from_dict(data.get("context")),
            data.get("actor", "admin"),
        )
        return result.to_dict(), 200

    def change_status(self, application_id: str, data: dict) -> tuple[dict, int]:
        result = self.workflow.change_status(
            application_id,
            require(data, "proposedStatus"),
            require(data, "actorId"),
            context=TransitionContext.from_dict(data.get("context")),
            actor=data.get("actor", "admin"),
            rejection_reason=data.get("rejectionReason"),
            allows_resubmit=data.get("rejectionAllowsResubmit"),
            admin_message=data.get("adminMessage"),
            notes=data.get("notes"),
        )
        return result_response(result)

    def approve_dual_authorization(self, dual_auth_id: str, data: dict) -> tuple[dict, int]:
        result = self.workflow.record_secondary_approval(dual_auth_id, require(data, "actorId"), data.get("notes"))
        return result_response(result)

    def reject_dual_authorization(self, dual_auth_id: str, data: dict) -> tuple[dict, int]:
        result = self.workflow.reject_dual_authorization(dual_auth_id, require(data, "actorId"), data.get("notes"))
        return result_response(result)

    def check_approval(self, data: dict) -> tuple[dict, int]:
        """Dry run of the approval checks for an approver and a stored application."""
        application_id = require(data, "applicationId")
        approver_id = require(data, "approverId")

        try:
            doc = self.store.get(APPLICATIONS, application_id)
            approver = self.admins.get(approver_id)
        except (ConflictError, DependencyError) as e:
            return error_response(e)
        if doc is None:
            return {"allowed": False, "reason": f"Application not found: {application_id}"}, 404
        if approver is None:
            return {"allowed": False, "reason": f"Admin profile not found: {approver_id}"}, 404

        application = Application.from_dict(doc.data, doc.key)
        decision = self.authorizer.authorize(approver, application, self.clock())
        return decision.to_dict(), 200

    # -------------------------------------------------------------------------
    # Investments
    # -------------------------------------------------------------------------

    def invest(self, data: dict) -> tuple[dict, int]:
        request = InvestmentRequest.from_dict(data)

        key = f"invest:{request.investor_id}"
        limit = self.settings.invest_rate_limit
        if not self.rate_limiter.check(key, limit, self.settings.invest_rate_window_seconds):
            retry_after = self.rate_limiter.seconds_until_reset(key)
            logger.warning(f"Investment rate limit hit for {request.investor_id}")
            return {
                "success": False,
                "message": f"Too many investment attempts. Please try again in {retry_after} seconds.",
                "error_kind": "rate_limited",
                "retryable": True,
                "retry_after": retry_after,
            }, 429

        return result_response(self.processor.process_request(request))

    def returns(self, data: dict) -> tuple[dict, int]:
        projection = calculate_returns(
            require(data, "amount"),
            require(data, "returnMin"),
            require(data, "returnMax"),
            int(require(data, "termMonths")),
        )
        return self.output.returns(projection), 200

    def distribute(self, data: dict) -> tuple[dict, int]:
        actor_id = require(data, "actorId")
        try:
            actor = self.admins.get(actor_id)
        except (ConflictError, DependencyError) as e:
            return error_response(e)
        if actor is None:
            return forbidden(f"Admin profile not found: {actor_id}")
        check = authorize_profit_distribution(actor)
        if not check.allowed:
            return forbidden(check.reason)

        result = self.distributor.distribute_request(DistributionRequest.from_dict(data))
        return self.output.distribution(result), 200

    # -------------------------------------------------------------------------
    # Assignments and admins
    # -------------------------------------------------------------------------

    def assign(self, data: dict) -> tuple[dict, int]:
        application_id = require(data, "applicationId")
        assigned_by = require(data, "assignedBy")
        priority = Priority(data.get("priority", "medium"))
        try:
            actor = self.admins.get(assigned_by)
            if actor is None or not has_permission(actor, "can_assign_reviews"):
                return forbidden(f"Access Denied: '{assigned_by}' cannot assign reviews")
            if data.get("assignedTo"):
                assignment = self.assignments.assign(
                    application_id, data["assignedTo"], assigned_by, priority=priority, notes=data.get("notes")
                )
            else:
                assignment = self.assignments.auto_assign(
                    application_id, assigned_by, priority=priority, specialization=data.get("specialization")
                )
        except EngineError as e:
            return error_response(e)
        return OperationResult.ok("Application assigned", data=assignment.to_dict()).to_dict(), 200

    def complete_assignment(self, assignment_id: str, data: dict) -> tuple[dict, int]:
        actor_id = require(data, "actorId")
        try:
            assignment = self.assignments.get(assignment_id)
            if assignment is not None and actor_id != assignment.assigned_to:
                actor = self.admins.get(actor_id)
                if actor is None or not has_permission(actor, "can_assign_reviews"):
                    return forbidden(f"Access Denied: only the assignee or a manager can complete {assignment_id}")
            assignment = self.assignments.complete(assignment_id, actor_id)
        except EngineError as e:
            return error_response(e)
        return OperationResult.ok("Assignment completed", data=assignment.to_dict()).to_dict(), 200

    def workload(self) -> tuple[dict, int]:
        try:
            return self.assignments.workload_stats(self.clock()), 200
        except (ConflictError, DependencyError) as e:
            return error_response(e)

    def save_admin(self, data: dict) -> tuple[dict, int]:
        actor_id = require(data, "actorId")
        profile = AdminProfile.from_dict(require(data, "profile"))
        try:
            saved = self.admins.save(actor_id, profile)
        except StateError as e:
            return forbidden(str(e))
        except (ConflictError, DependencyError) as e:
            return error_response(e)
        return saved.to_dict(), 200
