"""
Admin API routes — allocations, capability catalog, skill categories and
their links, activity logs. Every route requires an admin role.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from skills_portal.api.dependencies import portal_dependency, require_admin
from skills_portal.errors import NotFound
from skills_portal.models.enums import ActivityType
from skills_portal.models.schemas import (
    ActivityEntry,
    Allocation,
    Capability,
    CategoryCapabilityLink,
    CategoryCourseLink,
    Principal,
    SkillCategory,
)
from skills_portal.services.portal import Portal

logger = logging.getLogger(__name__)

admin_router = APIRouter()


# ── Request / response schemas ───────────────────────────
class AllocationRequest(BaseModel):
    capability_id: str
    course_id: str
    course_name: Optional[str] = None


class CourseAllocationsRequest(BaseModel):
    capability_ids: list[str]
    course_name: Optional[str] = None


class CapabilityRequest(BaseModel):
    name: str = ""
    category: str = ""
    is_public: bool = True
    is_premium: bool = False


class CategoryUpdateRequest(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    knowledge_description: Optional[str] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None


class CourseLinkRequest(BaseModel):
    course_id: str
    course_name: Optional[str] = None
    knowledge_description: Optional[str] = None
    learning_hours: Optional[float] = None


class CapabilityLinkRequest(BaseModel):
    capability_id: str
    capability_name: Optional[str] = None
    application_description: Optional[str] = None
    display_order: int = 0


class ActivityPage(BaseModel):
    entries: list[ActivityEntry]
    total: int


def _audit(portal: Portal, admin: Principal, description: str, **metadata: Any) -> None:
    portal.activity.record(ActivityType.ADMIN_ACTION, description, principal=admin, metadata=metadata)


# ── Allocations ──────────────────────────────────────────

@admin_router.get("/allocations")
def list_allocations(
    admin: Principal = Depends(require_admin),
    portal: Portal = Depends(portal_dependency),
) -> dict[str, list[str]]:
    return portal.allocations.all_allocations()


@admin_router.get("/allocations/{course_id}", response_model=list[Allocation])
def course_allocations(
    course_id: str,
    admin: Principal = Depends(require_admin),
    portal: Portal = Depends(portal_dependency),
):
    return portal.allocations.allocations_for_course(course_id)


@admin_router.put("/allocations/{course_id}", response_model=list[Allocation])
def replace_course_allocations(
    course_id: str,
    body: CourseAllocationsRequest,
    admin: Principal = Depends(require_admin),
    portal: Portal = Depends(portal_dependency),
):
    rows = portal.allocations.set_capabilities_for_course(course_id, body.capability_ids, body.course_name)
    _audit(portal, admin, f"Set capabilities for course {course_id}",
           course_id=course_id, capability_ids=body.capability_ids)
    return rows


@admin_router.post("/allocations", response_model=Allocation)
def allocate(
    body: AllocationRequest,
    admin: Principal = Depends(require_admin),
    portal: Portal = Depends(portal_dependency),
):
    row = portal.allocations.allocate(body.capability_id, body.course_id, body.course_name)
    _audit(portal, admin, f"Allocated {body.capability_id} to {body.course_id}",
           capability_id=body.capability_id, course_id=body.course_id)
    return row


@admin_router.delete("/allocations/{capability_id}/{course_id}")
def deactivate_allocation(
    capability_id: str,
    course_id: str,
    admin: Principal = Depends(require_admin),
    portal: Portal = Depends(portal_dependency),
):
    if not portal.allocations.deactivate(capability_id, course_id):
        raise NotFound(f"No active allocation {capability_id} → {course_id}")
    _audit(portal, admin, f"Deactivated {capability_id} for {course_id}",
           capability_id=capability_id, course_id=course_id)
    return {"deactivated": True}


# ── Capability catalog ───────────────────────────────────

@admin_router.get("/capabilities", response_model=list[Capability])
def list_capabilities(
    admin: Principal = Depends(require_admin),
    portal: Portal = Depends(portal_dependency),
):
    return portal.capabilities.list_all()


@admin_router.put("/capabilities/{capability_id}", response_model=Capability)
def upsert_capability(
    capability_id: str,
    body: CapabilityRequest,
    admin: Principal = Depends(require_admin),
    portal: Portal = Depends(portal_dependency),
):
    saved = portal.capabilities.upsert(Capability(id=capability_id, **body.model_dump()))
    _audit(portal, admin, f"Saved capability {capability_id}", capability_id=capability_id)
    return saved


# ── Skill categories ─────────────────────────────────────

@admin_router.get("/categories", response_model=list[SkillCategory])
def list_categories(
    include_inactive: bool = False,
    admin: Principal = Depends(require_admin),
    portal: Portal = Depends(portal_dependency),
):
    return portal.aggregator.categories.list_categories(active_only=not include_inactive)


@admin_router.post("/categories", response_model=SkillCategory)
def create_category(
    body: SkillCategory,
    admin: Principal = Depends(require_admin),
    portal: Portal = Depends(portal_dependency),
):
    saved = portal.aggregator.create_category(body)
    _audit(portal, admin, f"Created category {body.name}", category_id=body.id)
    return saved


@admin_router.patch("/categories/{category_id}", response_model=SkillCategory)
def update_category(
    category_id: str,
    body: CategoryUpdateRequest,
    admin: Principal = Depends(require_admin),
    portal: Portal = Depends(portal_dependency),
):
    updated = portal.aggregator.update_category(category_id, **body.model_dump(exclude_none=True))
    _audit(portal, admin, f"Updated category {category_id}", category_id=category_id)
    return updated


@admin_router.delete("/categories/{category_id}", response_model=SkillCategory)
def deactivate_category(
    category_id: str,
    admin: Principal = Depends(require_admin),
    portal: Portal = Depends(portal_dependency),
):
    updated = portal.aggregator.deactivate_category(category_id)
    _audit(portal, admin, f"Deactivated category {category_id}", category_id=category_id)
    return updated


@admin_router.get("/categories/{category_id}/courses", response_model=list[CategoryCourseLink])
def category_courses(
    category_id: str,
    admin: Principal = Depends(require_admin),
    portal: Portal = Depends(portal_dependency),
):
    return portal.aggregator.categories.courses_for_category(category_id)


@admin_router.post("/categories/{category_id}/courses", response_model=CategoryCourseLink)
def link_course(
    category_id: str,
    body: CourseLinkRequest,
    admin: Principal = Depends(require_admin),
    portal: Portal = Depends(portal_dependency),
):
    link = portal.aggregator.link_course(CategoryCourseLink(category_id=category_id, **body.model_dump()))
    _audit(portal, admin, f"Linked course {body.course_id} to {category_id}",
           category_id=category_id, course_id=body.course_id)
    return link


@admin_router.delete("/categories/{category_id}/courses/{course_id}")
def unlink_course(
    category_id: str,
    course_id: str,
    admin: Principal = Depends(require_admin),
    portal: Portal = Depends(portal_dependency),
):
    if not portal.aggregator.unlink_course(category_id, course_id):
        raise NotFound(f"Course {course_id} is not linked to {category_id}")
    _audit(portal, admin, f"Unlinked course {course_id} from {category_id}",
           category_id=category_id, course_id=course_id)
    return {"unlinked": True}


@admin_router.get("/categories/{category_id}/capabilities", response_model=list[CategoryCapabilityLink])
def category_capabilities(
    category_id: str,
    admin: Principal = Depends(require_admin),
    portal: Portal = Depends(portal_dependency),
):
    return portal.aggregator.categories.capabilities_for_category(category_id)


@admin_router.post("/categories/{category_id}/capabilities", response_model=CategoryCapabilityLink)
def link_capability(
    category_id: str,
    body: CapabilityLinkRequest,
    admin: Principal = Depends(require_admin),
    portal: Portal = Depends(portal_dependency),
):
    link = portal.aggregator.link_capability(
        CategoryCapabilityLink(category_id=category_id, **body.model_dump())
    )
    _audit(portal, admin, f"Linked capability {body.capability_id} to {category_id}",
           category_id=category_id, capability_id=body.capability_id)
    return link


@admin_router.delete("/categories/{category_id}/capabilities/{capability_id}")
def unlink_capability(
    category_id: str,
    capability_id: str,
    admin: Principal = Depends(require_admin),
    portal: Portal = Depends(portal_dependency),
):
    if not portal.aggregator.unlink_capability(category_id, capability_id):
        raise NotFound(f"Capability {capability_id} is not linked to {category_id}")
    _audit(portal, admin, f"Unlinked capability {capability_id} from {category_id}",
           category_id=category_id, capability_id=capability_id)
    return {"unlinked": True}


# ── Activity logs ────────────────────────────────────────

@admin_router.get("/activity-logs", response_model=ActivityPage)
def activity_logs(
    type: Optional[ActivityType] = None,
    principal_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: Principal = Depends(require_admin),
    portal: Portal = Depends(portal_dependency),
):
    entries, total = portal.activity.query(type=type, principal_id=principal_id, limit=limit, offset=offset)
    return ActivityPage(entries=entries, total=total)


@admin_router.get("/activity-logs/stats")
def activity_stats(
    days: int = Query(7, ge=1, le=365),
    admin: Principal = Depends(require_admin),
    portal: Portal = Depends(portal_dependency),
) -> dict[str, Any]:
    return portal.activity.stats(days=days)
