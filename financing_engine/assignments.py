"""
Review Assignments

Tracks which admin reviews which application and keeps each admin's
workload counter in step. Workload counters are updated with versioned
writes and re-read on conflict.
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Optional

from .audit import AuditEvent, AuditSink, safe_emit
from .config import Settings
from .errors import ConflictError, EngineError, StateError
from .models import AdminProfile, Assignment, AssignmentStatus, Priority
from .permissions import has_permission
from .store import ADMIN_PROFILES, ASSIGNMENTS, DocumentStore

logger = logging.getLogger(__name__)

DUE_SOON_HOURS = 24
WORKLOAD_WRITE_ATTEMPTS = 3


def sla_status(assignment: Assignment, now: datetime) -> str:
    """'overdue', 'due_soon' (under 24 hours left) or 'on_time'."""
    if assignment.due_date is None:
        return "on_time"
    remaining = assignment.due_date - now
    if remaining < timedelta(0):
        return "overdue"
    if remaining < timedelta(hours=DUE_SOON_HOURS):
        return "due_soon"
    return "on_time"


class AssignmentService:
    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.now,
        audit: Optional[AuditSink] = None,
    ):
        self.store = store
        self.settings = settings or Settings()
        self.clock = clock
        self.audit = audit

    def assign(
        self,
        application_id: str,
        assigned_to: str,
        assigned_by: str,
        priority: Priority = Priority.MEDIUM,
        due_date: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> Assignment:
        """
        Create a pending assignment and increment the assignee's workload.

        The assignment is withdrawn again if the workload counter cannot be
        written. complete() and reassign() do not undo their status writes
        when the counter update fails; the counter is advisory and
        workload_stats() recounts open assignments.
        """
        assignee = self._load_admin(assigned_to)
        if not assignee.is_active:
            raise StateError(f"Admin '{assigned_to}' is inactive and cannot take assignments")
        if not has_permission(assignee, "can_review_due_diligence"):
            raise StateError(
                f"Admin '{assigned_to}' ({assignee.role.value}) cannot review applications and cannot take assignments"
            )

        now = self.clock()
        assignment = Assignment(
            id=f"assign_{application_id}_{uuid.uuid4().hex[:12]}",
            application_id=application_id,
            assigned_to=assigned_to,
            assigned_by=assigned_by,
            assigned_at=now,
            priority=Priority(priority),
            due_date=due_date or now + timedelta(hours=self.settings.assignment_sla_hours),
            notes=notes,
        )
        written = self.store.set(ASSIGNMENTS, assignment.id, assignment.to_dict())
        try:
            self._adjust_workload(assigned_to, +1)
        except EngineError:
            logger.warning(f"Workload update for {assigned_to} failed; withdrawing {assignment.id}")
            self.store.delete(ASSIGNMENTS, assignment.id, written.version)
            raise

        logger.info(f"Assigned application {application_id} to {assigned_to} ({assignment.id})")
        self._audit("assignment_created", assigned_by, application_id, now, assignedTo=assigned_to)
        return assignment

    def complete(self, assignment_id: str, performed_by: str) -> Assignment:
        doc, assignment = self._load_assignment(assignment_id)
        if not assignment.is_open:
            raise StateError(f"Assignment {assignment_id} is already {assignment.status.value}")

        now = self.clock()
        completed = replace(assignment, status=AssignmentStatus.COMPLETED, completed_at=now)
        self.store.set(ASSIGNMENTS, assignment_id, completed.to_dict(), doc.version)
        self._adjust_workload(assignment.assigned_to, -1)

        self._audit("assignment_completed", performed_by, assignment.application_id, now)
        return completed

    def reassign(
        self, assignment_id: str, to_assignee: str, performed_by: str, reason: Optional[str] = None
    ) -> Assignment:
        """
        Close the current assignment as 'reassigned' and open a new one for
        `to_assignee` with the same priority and due date.
        """
        doc, current = self._load_assignment(assignment_id)
        if not current.is_open:
            raise StateError(f"Assignment {assignment_id} is already {current.status.value}")
        if current.assigned_to == to_assignee:
            raise StateError(f"Assignment {assignment_id} is already held by {to_assignee}")

        self._load_admin(to_assignee)
        closed = replace(current, status=AssignmentStatus.REASSIGNED)
        self.store.set(ASSIGNMENTS, assignment_id, closed.to_dict(), doc.version)

        new_assignment = self.assign(
            current.application_id,
            to_assignee,
            performed_by,
            priority=current.priority,
            due_date=current.due_date,
            notes=reason,
        )
        self._adjust_workload(current.assigned_to, -1)

        self._audit(
            "assignment_reassigned",
            performed_by,
            current.application_id,
            self.clock(),
            fromAssignee=current.assigned_to,
            toAssignee=to_assignee,
            reason=reason,
        )
        return new_assignment

    def auto_assign(
        self,
        application_id: str,
        assigned_by: str,
        priority: Priority = Priority.MEDIUM,
        specialization: Optional[str] = None,
    ) -> Assignment:
        """Assign to the active reviewing admin with the lowest workload."""
        admins = [AdminProfile.from_dict(d.data, d.key) for d in self.store.list(ADMIN_PROFILES)]
        eligible = [a for a in admins if has_permission(a, "can_review_due_diligence")]
        if specialization:
            eligible = [a for a in eligible if specialization in a.specializations]
        if not eligible:
            raise StateError("No eligible admins available for assignment")

        eligible.sort(key=lambda a: (a.current_workload, a.user_id))
        selected = eligible[0]
        if not selected.has_capacity:
            raise StateError("All admins are at maximum capacity")

        return self.assign(application_id, selected.user_id, assigned_by, priority=priority)

    def get(self, assignment_id: str) -> Optional[Assignment]:
        doc = self.store.get(ASSIGNMENTS, assignment_id)
        return Assignment.from_dict(doc.data, doc.key) if doc else None

    def assignments_for(self, admin_id: str, status: Optional[AssignmentStatus] = None) -> list[Assignment]:
        assignments = [
            Assignment.from_dict(d.data, d.key)
            for d in self.store.list(ASSIGNMENTS, lambda data: data.get("assignedTo") == admin_id)
        ]
        if status is not None:
            assignments = [a for a in assignments if a.status == status]
        return assignments

    def workload_stats(self, now: Optional[datetime] = None) -> dict:
        now = now or self.clock()
        assignments = [Assignment.from_dict(d.data, d.key) for d in self.store.list(ASSIGNMENTS)]
        admins = [AdminProfile.from_dict(d.data, d.key) for d in self.store.list(ADMIN_PROFILES)]
        open_assignments = [a for a in assignments if a.is_open]

        admin_workloads = []
        for admin in admins:
            assigned = sum(1 for a in open_assignments if a.assigned_to == admin.user_id)
            utilization = (assigned / admin.max_workload * 100) if admin.max_workload > 0 else 0.0
            admin_workloads.append({
                "admin_id": admin.user_id,
                "display_name": admin.display_name,
                "assigned": assigned,
                "capacity": admin.max_workload,
                "utilization_rate": round(utilization, 2),
            })

        return {
            "total_assignments": len(assignments),
            "pending": sum(1 for a in open_assignments if a.status == AssignmentStatus.PENDING),
            "in_review": sum(1 for a in open_assignments if a.status == AssignmentStatus.IN_REVIEW),
            "completed": sum(1 for a in assignments if a.status == AssignmentStatus.COMPLETED),
            "overdue_sla": sum(1 for a in open_assignments if sla_status(a, now) == "overdue"),
            "admin_workloads": admin_workloads,
        }

    # -------------------------------------------------------------------------

    def _load_admin(self, user_id: str) -> AdminProfile:
        doc = self.store.get(ADMIN_PROFILES, user_id)
        if doc is None:
            raise StateError(f"Admin profile not found: {user_id}")
        return AdminProfile.from_dict(doc.data, doc.key)

    def _load_assignment(self, assignment_id: str):
        doc = self.store.get(ASSIGNMENTS, assignment_id)
        if doc is None:
            raise StateError(f"Assignment not found: {assignment_id}")
        return doc, Assignment.from_dict(doc.data, doc.key)

    def _adjust_workload(self, user_id: str, delta: int) -> None:
        """Re-read and retry on a stale version; the counter never drops below zero."""
        for attempt in range(1, WORKLOAD_WRITE_ATTEMPTS + 1):
            doc = self.store.get(ADMIN_PROFILES, user_id)
            if doc is None:
                logger.warning(f"Workload update skipped: admin profile {user_id} not found")
                return
            profile = AdminProfile.from_dict(doc.data, doc.key)
            profile.current_workload = max(0, profile.current_workload + delta)
            try:
                self.store.set(ADMIN_PROFILES, user_id, profile.to_dict(), doc.version)
                return
            except ConflictError:
                logger.warning(f"Workload update for {user_id} conflicted (attempt {attempt})")
        raise ConflictError(f"Could not update workload for {user_id} after {WORKLOAD_WRITE_ATTEMPTS} attempts")

    def _audit(self, action: str, actor_id: str, subject_id: str, when: datetime, **details) -> None:
        safe_emit(self.audit, AuditEvent(action, actor_id, subject_id, when, details))
