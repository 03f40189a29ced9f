"""
Entitlement Resolver — may this principal use this capability?

    access = role override
           ∨ (no allocations ∧ capability is free)
           ∨ (allocated courses ∩ accessible courses ≠ ∅)

Decisions are security-sensitive and fail closed: any upstream failure
produces `has_access=False`, and `resolve()` never raises.
"""

from __future__ import annotations

import logging
from typing import Optional

from skills_portal.models.enums import AccessReason, Role
from skills_portal.models.schemas import (
    AccessDecision,
    Allocation,
    Principal,
    RequiredCourse,
)
from skills_portal.persistence.allocation_store import AllocationStore
from skills_portal.persistence.capability_store import CapabilityStore
from skills_portal.services.enrollment_provider import EnrollmentProvider

logger = logging.getLogger(__name__)


class EntitlementResolver:

    def __init__(
        self,
        allocations: AllocationStore,
        capabilities: CapabilityStore,
        enrollment: EnrollmentProvider,
        course_url_template: str = "",
        school_url: str = "",
    ):
        self.allocations = allocations
        self.capabilities = capabilities
        self.enrollment = enrollment
        self.course_url_template = course_url_template
        self.school_url = school_url.rstrip("/")

    def resolve(self, principal: Optional[Principal], capability_id: str) -> AccessDecision:
        if principal is None:
            return AccessDecision(has_access=False, reason=AccessReason.NOT_AUTHENTICATED)

        role = principal.role
        if role in (Role.ADMIN, Role.SUPER_ADMIN):
            return AccessDecision(has_access=True, reason=AccessReason.ADMIN)
        if role is not Role.USER:
            logger.warning(f"Unknown role {role!r} for {principal.id}; denying")
            return AccessDecision(has_access=False, reason=AccessReason.NO_ENROLLMENT)

        try:
            return self._resolve_user(principal, capability_id)
        except Exception as exc:
            logger.warning(
                f"Access check for {principal.id} on {capability_id} failed closed: {exc}"
            )
            return AccessDecision(has_access=False, reason=AccessReason.NO_ENROLLMENT)

    # ── Internals ────────────────────────────────────────

    def _resolve_user(self, principal: Principal, capability_id: str) -> AccessDecision:
        rows = self.allocations.allocations_for(capability_id)

        if not rows:
            capability = self.capabilities.get(capability_id)
            if capability is not None and capability.is_public and not capability.is_premium:
                return AccessDecision(has_access=True, reason=AccessReason.ENROLLED)
            return AccessDecision(
                has_access=False, reason=AccessReason.NO_ENROLLMENT, required_courses=[]
            )

        accessible = set(self._accessible_courses(principal))
        matched = [row.course_id for row in rows if row.course_id in accessible]

        if matched:
            return AccessDecision(
                has_access=True, reason=AccessReason.ENROLLED, matched_courses=matched
            )
        return AccessDecision(
            has_access=False,
            reason=AccessReason.NO_ENROLLMENT,
            required_courses=[self._required_course(row) for row in rows],
        )

    def _accessible_courses(self, principal: Principal) -> list[str]:
        try:
            return self.enrollment.get_accessible_course_ids(principal)
        except Exception as exc:
            # SourceUnavailable, timeouts, anything else: treat as no access.
            logger.warning(f"Enrollment lookup failed for {principal.id}: {exc}")
            return []

    def _required_course(self, row: Allocation) -> RequiredCourse:
        url = ""
        if self.course_url_template:
            url = self.course_url_template.format(
                school_url=self.school_url, course_id=row.course_id
            )
        return RequiredCourse(id=row.course_id, name=row.course_name or row.course_id, url=url)
