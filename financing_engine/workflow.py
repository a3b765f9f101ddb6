"""
Application Workflow

Applies status changes to stored applications: validates the transition,
checks the acting admin's permissions and approval authority, writes the
new status under the version token read, and emits an audit event.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from .audit import AuditEvent, AuditSink, safe_emit
from .authorization import ApprovalAuthorizer
from .config import Settings
from .errors import ConflictError, DependencyError, EngineError, StateError, ValidationError
from .models import (
    AdminProfile,
    Application,
    ApplicationStatus,
    DualAuthorization,
    DualAuthStatus,
    OperationResult,
)
from .permissions import has_permission
from .status_machine import TransitionContext, status_label, validate_transition
from .store import ADMIN_PROFILES, APPLICATIONS, DUAL_AUTHORIZATIONS, DocumentStore

logger = logging.getLogger(__name__)

APPROVAL_WRITE_ATTEMPTS = 3

S = ApplicationStatus

# Capability an admin needs to move an application into each status.
REQUIRED_PERMISSION = {
    S.REVIEW: "can_review_due_diligence",
    S.MORE_INFO: "can_request_changes",
    S.REJECTED: "can_review_due_diligence",
    S.APPROVED: "can_approve",
}


def _failure(e: EngineError, operation: str) -> OperationResult:
    if isinstance(e, (ValidationError, StateError)):
        logger.info(f"{operation} rejected: {e}")
        return OperationResult.from_error(e)
    if isinstance(e, ConflictError):
        logger.warning(f"{operation} conflicted: {e}")
        return OperationResult.from_error(e, "The application changed while processing. Please retry.")
    if isinstance(e, DependencyError):
        logger.error(f"{operation} failed on the record store: {e}", exc_info=True)
        return OperationResult.from_error(e, "The request could not be completed right now. Please try again later.")
    logger.error(f"{operation} failed: {e}", exc_info=True)
    return OperationResult.from_error(e, "The request could not be completed.")


class ApplicationWorkflow:
    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[Settings] = None,
        audit: Optional[AuditSink] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.settings = settings or Settings()
        self.audit = audit
        self.clock = clock
        self.authorizer = ApprovalAuthorizer(self.settings)

    # -------------------------------------------------------------------------
    # Status changes
    # -------------------------------------------------------------------------

    def change_status(
        self,
        application_id: str,
        proposed,
        actor_id: str,
        context: Optional[TransitionContext] = None,
        actor: str = "admin",
        rejection_reason: Optional[str] = None,
        allows_resubmit: Optional[bool] = None,
        admin_message: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> OperationResult:
        """
        Move an application to `proposed` on behalf of `actor_id`.

        An approval that needs dual authorization records the primary approval
        and leaves the application in review until a second approver acts.
        """
        try:
            return self._change_status(
                application_id, proposed, actor_id, context or TransitionContext(), actor,
                rejection_reason, allows_resubmit, admin_message, notes,
            )
        except EngineError as e:
            return _failure(e, f"Status change for {application_id}")

    def _change_status(
        self, application_id, proposed, actor_id, context, actor,
        rejection_reason, allows_resubmit, admin_message, notes,
    ) -> OperationResult:
        doc = self.store.get(APPLICATIONS, application_id)
        if doc is None:
            raise StateError(f"Application not found: {application_id}")
        application = Application.from_dict(doc.data, doc.key)

        # Stored facts override anything the caller claims.
        context = replace(
            context,
            rejection_allows_resubmit=application.rejection_allows_resubmit,
            rejection_reason_provided=bool(rejection_reason and rejection_reason.strip()),
        )
        result = validate_transition(application.status, proposed, context, actor)
        if not result.valid:
            raise StateError(result.error)
        if result.warning:
            return OperationResult.ok(result.warning, data={"status": application.status.value})

        target = ApplicationStatus(proposed)
        now = self.clock()

        if actor == "business":
            if actor_id != application.business_id:
                raise StateError("Only the application owner can resubmit this application")
            updated = replace(application, status=target)
        else:
            admin = self._load_admin(actor_id)
            self._check_admin_may_move(admin, application, target)

            if target == S.APPROVED:
                decision = self.authorizer.authorize(admin, application, now)
                if not decision.allowed:
                    raise StateError(decision.reason)
                if decision.requires_dual_authorization:
                    return self._open_dual_authorization(application, admin, now, notes)
                updated = replace(application, status=target, approved_by=admin.user_id)
            elif target == S.REJECTED:
                updated = replace(
                    application,
                    status=target,
                    rejection_reason=rejection_reason.strip(),
                    rejection_allows_resubmit=allows_resubmit,
                )
            elif target == S.REVIEW:
                updated = replace(application, status=target, reviewed_by=admin.user_id)
            else:
                updated = replace(application, status=target)

            if admin_message is not None:
                updated.admin_message = admin_message

        self.store.set(APPLICATIONS, application_id, updated.to_dict(), doc.version)
        if target in (S.REJECTED, S.MORE_INFO):
            self._close_pending_dual_authorizations(application_id, actor_id, now, target)

        logger.info(f"Application {application_id}: {application.status.value} -> {target.value} by {actor_id}")
        safe_emit(self.audit, AuditEvent(
            "application_status_changed",
            actor_id,
            application_id,
            now,
            {"from": application.status.value, "to": target.value, "actor": actor, "notes": notes},
        ))
        return OperationResult.ok(
            f"Application moved to {status_label(target)}", data={"status": target.value}
        )

    @staticmethod
    def _check_admin_may_move(admin: AdminProfile, application: Application, target: ApplicationStatus) -> None:
        if not admin.is_active:
            raise StateError(f"Admin account '{admin.user_id}' is inactive")
        permission = REQUIRED_PERMISSION[target]
        # reversing an approval needs approval authority
        if target == S.REJECTED and application.status == S.APPROVED:
            permission = "can_approve"
        if not has_permission(admin, permission):
            raise StateError(
                f"Access Denied: role '{admin.role.value}' cannot move applications to {target.value}"
            )

    # -------------------------------------------------------------------------
    # Dual authorization
    # -------------------------------------------------------------------------

    def _open_dual_authorization(self, application, admin, now, notes) -> OperationResult:
        pending = self.store.list(
            DUAL_AUTHORIZATIONS,
            lambda data: data.get("applicationId") == application.id
            and data.get("status") == DualAuthStatus.PENDING_SECONDARY.value,
        )
        for doc in pending:
            record = DualAuthorization.from_dict(doc.data, doc.key)
            if record.required_by >= now:
                raise StateError(f"Application {application.id} is already awaiting secondary approval ({record.id})")

        record = self.authorizer.open_dual_authorization(application, admin, now, notes)
        self.store.set(DUAL_AUTHORIZATIONS, record.id, record.to_dict())

        logger.info(f"Dual authorization {record.id} opened for application {application.id} by {admin.user_id}")
        safe_emit(self.audit, AuditEvent(
            "dual_authorization_requested",
            admin.user_id,
            application.id,
            now,
            {"dualAuthorizationId": record.id, "requestedAmount": str(application.requested_amount)},
        ))
        return OperationResult.ok(
            "Primary approval recorded. A second approver must confirm before the application is approved.",
            data={
                "status": application.status.value,
                "dualAuthorizationId": record.id,
                "requiredBy": record.required_by.isoformat(),
            },
        )

    def record_secondary_approval(self, dual_auth_id: str, secondary_id: str, notes: Optional[str] = None) -> OperationResult:
        try:
            return self._record_secondary_approval(dual_auth_id, secondary_id, notes)
        except EngineError as e:
            return _failure(e, f"Secondary approval of {dual_auth_id}")

    def _record_secondary_approval(self, dual_auth_id, secondary_id, notes) -> OperationResult:
        doc, record = self._load_dual_authorization(dual_auth_id)
        secondary = self._load_admin(secondary_id)
        now = self.clock()
        application = self._awaiting_approval(record)

        approved = self.authorizer.record_secondary_approval(
            record, secondary, now, notes, reviewed_by=application.reviewed_by
        )
        written = self.store.set(DUAL_AUTHORIZATIONS, dual_auth_id, approved.to_dict(), doc.version)
        try:
            self._finish_approval(approved)
        except EngineError:
            self._restore_pending(record, written.version)
            raise

        logger.info(f"Dual authorization {dual_auth_id} completed by {secondary_id}")
        safe_emit(self.audit, AuditEvent(
            "dual_authorization_approved",
            secondary_id,
            record.application_id,
            now,
            {"dualAuthorizationId": dual_auth_id, "primaryApproverId": record.primary_approver_id},
        ))
        return OperationResult.ok(
            f"Application moved to {status_label(S.APPROVED)}", data={"status": S.APPROVED.value}
        )

    def _awaiting_approval(self, record: DualAuthorization) -> Application:
        doc = self.store.get(APPLICATIONS, record.application_id)
        if doc is None:
            raise StateError(f"Application not found: {record.application_id}")
        application = Application.from_dict(doc.data, doc.key)
        result = validate_transition(application.status, S.APPROVED)
        if not result.valid or result.warning:
            raise StateError(
                f"Application {application.id} is {application.status.value} and no longer awaiting approval"
            )
        return application

    def _finish_approval(self, record: DualAuthorization) -> None:
        """Approve the application named by a completed dual authorization, re-reading on conflict."""
        for attempt in range(1, APPROVAL_WRITE_ATTEMPTS + 1):
            doc = self.store.get(APPLICATIONS, record.application_id)
            if doc is None:
                raise StateError(f"Application not found: {record.application_id}")
            application = Application.from_dict(doc.data, doc.key)
            result = validate_transition(application.status, S.APPROVED)
            if not result.valid or result.warning:
                raise StateError(f"Application {application.id} is no longer awaiting approval")

            updated = replace(
                application,
                status=S.APPROVED,
                approved_by=record.primary_approver_id,
                secondary_approver=record.secondary_approver_id,
            )
            try:
                self.store.set(APPLICATIONS, application.id, updated.to_dict(), doc.version)
                return
            except ConflictError:
                logger.warning(f"Approval write for {application.id} conflicted (attempt {attempt})")
        raise ConflictError(f"Application {record.application_id} kept changing; approval not written")

    def _restore_pending(self, record: DualAuthorization, version: int) -> None:
        """Put a dual authorization back to pending after its application write failed."""
        try:
            self.store.set(DUAL_AUTHORIZATIONS, record.id, record.to_dict(), version)
        except EngineError as e:
            logger.error(
                f"Dual authorization {record.id} is approved but application {record.application_id} "
                f"is not; reconciliation required: {e}"
            )

    def _close_pending_dual_authorizations(self, application_id: str, actor_id: str, now: datetime, status) -> None:
        """A rejected or returned application cannot keep an open request for a second signature."""
        pending = self.store.list(
            DUAL_AUTHORIZATIONS,
            lambda data: data.get("applicationId") == application_id
            and data.get("status") == DualAuthStatus.PENDING_SECONDARY.value,
        )
        for doc in pending:
            record = DualAuthorization.from_dict(doc.data, doc.key)
            closed = replace(
                record,
                status=DualAuthStatus.REJECTED,
                secondary_approver_id=actor_id,
                secondary_approval_at=now,
                secondary_approval_notes=f"Closed: application moved to {status.value}",
            )
            try:
                self.store.set(DUAL_AUTHORIZATIONS, record.id, closed.to_dict(), doc.version)
            except EngineError as e:
                logger.error(f"Could not close dual authorization {record.id} for {application_id}: {e}")
                continue
            logger.info(f"Dual authorization {record.id} closed; application {application_id} moved to {status.value}")

    def reject_dual_authorization(self, dual_auth_id: str, admin_id: str, notes: Optional[str] = None) -> OperationResult:
        try:
            doc, record = self._load_dual_authorization(dual_auth_id)
            admin = self._load_admin(admin_id)
            now = self.clock()
            rejected = self.authorizer.reject_dual_authorization(record, admin, now, notes)
            self.store.set(DUAL_AUTHORIZATIONS, dual_auth_id, rejected.to_dict(), doc.version)
        except EngineError as e:
            return _failure(e, f"Rejection of {dual_auth_id}")

        safe_emit(self.audit, AuditEvent(
            "dual_authorization_rejected", admin_id, record.application_id, now, {"dualAuthorizationId": dual_auth_id}
        ))
        return OperationResult.ok("Secondary approval declined; the application remains under review")

    # -------------------------------------------------------------------------

    def _load_admin(self, user_id: str) -> AdminProfile:
        doc = self.store.get(ADMIN_PROFILES, user_id)
        if doc is None:
            raise StateError(f"Admin profile not found: {user_id}")
        return AdminProfile.from_dict(doc.data, doc.key)

    def _load_dual_authorization(self, dual_auth_id: str):
        doc = self.store.get(DUAL_AUTHORIZATIONS, dual_auth_id)
        if doc is None:
            raise StateError(f"Dual authorization not found: {dual_auth_id}")
        return doc, DualAuthorization.from_dict(doc.data, doc.key)
