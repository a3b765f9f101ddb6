"""
Admin profile management.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from .audit import AuditEvent, AuditSink, safe_emit
from .authorization import authorize_admin_change
from .errors import StateError
from .models import AdminProfile, Role
from .store import ADMIN_PROFILES, DocumentStore

logger = logging.getLogger(__name__)


class AdminDirectory:
    def __init__(
        self,
        store: DocumentStore,
        audit: Optional[AuditSink] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.audit = audit
        self.clock = clock

    def get(self, user_id: str) -> Optional[AdminProfile]:
        doc = self.store.get(ADMIN_PROFILES, user_id)
        return AdminProfile.from_dict(doc.data, doc.key) if doc else None

    def save(self, actor_id: str, profile: AdminProfile) -> AdminProfile:
        """
        Create or update `profile` on behalf of `actor_id`.

        While no admin exists at all, a caller may create a super_admin
        profile for themselves. Workload counters are owned by the
        assignment service and are never overwritten here.
        """
        actor = self.get(actor_id)
        bootstrap_allowed = actor is None and not self.store.list(ADMIN_PROFILES)
        existing = self.store.get(ADMIN_PROFILES, profile.user_id)
        current = AdminProfile.from_dict(existing.data, existing.key) if existing else None
        check = authorize_admin_change(
            actor, actor_id, profile.user_id, profile.role, bootstrap_allowed,
            current_role=current.role if current else None,
        )
        if not check.allowed:
            raise StateError(check.reason)

        if existing is None:
            self.store.set(ADMIN_PROFILES, profile.user_id, profile.to_dict())
            action = "admin_created"
        else:
            profile = replace(profile, current_workload=current.current_workload)
            self.store.set(ADMIN_PROFILES, profile.user_id, profile.to_dict(), existing.version)
            action = "admin_updated"

        logger.info(f"{action}: {profile.user_id} as {profile.role.value} by {actor_id}")
        safe_emit(self.audit, AuditEvent(
            action, actor_id, profile.user_id, self.clock(), {"role": profile.role.value}
        ))
        return profile

    def set_role(self, actor_id: str, user_id: str, role) -> AdminProfile:
        profile = self.get(user_id)
        if profile is None:
            raise StateError(f"Admin profile not found: {user_id}")
        return self.save(actor_id, replace(profile, role=Role.parse(role)))
