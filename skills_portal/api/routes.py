"""
API routes — thin HTTP layer that delegates to the Portal.

Routes:
  GET   /health                                → API health check
  GET   /api/capabilities/{id}/access          → Access decision for the caller
  POST  /api/capabilities/{id}/usage           → Record one capability use
  POST  /api/capabilities/{id}/projects        → Record a saved project
  GET   /api/user/skills                       → Evidence list and summary
  PATCH /api/user/skills/{evidence_id}         → Show / hide one evidence row
  GET   /api/user/skill-matrix                 → Category matrix
  POST  /api/user/skill-matrix/sync            → Pull course completions
  POST  /api/user/skill-verification           → Freeze a verification snapshot
  GET   /api/user/skill-verification           → Snapshot history
  GET   /api/verify/skills/{token}             → Public verification view
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from skills_portal.api.dependencies import current_principal, portal_dependency, require_principal
from skills_portal.errors import NotFound
from skills_portal.models.schemas import (
    AccessDecision,
    Evidence,
    EvidenceSummary,
    Principal,
    PublicVerification,
    SkillMatrixEntry,
)
from skills_portal.services.portal import Portal

logger = logging.getLogger(__name__)

# ── Routers ──────────────────────────────────────────────
health_router = APIRouter()
capability_router = APIRouter()
user_router = APIRouter()
verify_router = APIRouter()


# ── Request / response schemas ───────────────────────────
class UsageResponse(BaseModel):
    recorded: bool
    evidence: Optional[Evidence] = None


class ProjectSaveRequest(BaseModel):
    project_name: str = ""


class ProjectSaveResponse(BaseModel):
    saved: bool = True
    project_count: Optional[int] = None


class SkillsResponse(BaseModel):
    skills: list[Evidence]
    summary: EvidenceSummary


class VisibilityRequest(BaseModel):
    is_visible: bool


class VisibilityResponse(BaseModel):
    evidence_id: str
    is_visible: bool


class SyncResponse(BaseModel):
    categories_completed: int


class VerificationRequest(BaseModel):
    selected_category_ids: Optional[list[str]] = None
    user_name: Optional[str] = None


class VerificationResponse(BaseModel):
    token: str
    url: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    view_count: int = 0
    selected_category_ids: list[str] = []


# ── Health ───────────────────────────────────────────────

@health_router.get("/health")
async def health_check():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ── Capabilities ─────────────────────────────────────────

@capability_router.get("/{capability_id}/access", response_model=AccessDecision)
def check_access(
    capability_id: str,
    principal: Optional[Principal] = Depends(current_principal),
    portal: Portal = Depends(portal_dependency),
):
    """Always 200: a denial is a decision, not an error."""
    return portal.check_access(principal, capability_id)


@capability_router.post("/{capability_id}/usage", response_model=UsageResponse)
def record_usage(
    capability_id: str,
    principal: Principal = Depends(require_principal),
    portal: Portal = Depends(portal_dependency),
):
    evidence = portal.record_capability_use(principal, capability_id)
    return UsageResponse(recorded=evidence is not None, evidence=evidence)


@capability_router.post("/{capability_id}/projects", response_model=ProjectSaveResponse)
def record_project(
    capability_id: str,
    body: ProjectSaveRequest,
    principal: Principal = Depends(require_principal),
    portal: Portal = Depends(portal_dependency),
):
    record = portal.record_project_saved(principal, capability_id, body.project_name)
    return ProjectSaveResponse(project_count=record.project_count if record else None)


# ── User skills ──────────────────────────────────────────

@user_router.get("/skills", response_model=SkillsResponse)
def list_skills(
    visible_only: bool = False,
    principal: Principal = Depends(require_principal),
    portal: Portal = Depends(portal_dependency),
):
    return SkillsResponse(
        skills=portal.evidence.list_evidence(principal, visible_only=visible_only),
        summary=portal.evidence.summarize(principal),
    )


@user_router.patch("/skills/{evidence_id}", response_model=VisibilityResponse)
def set_skill_visibility(
    evidence_id: str,
    body: VisibilityRequest,
    principal: Principal = Depends(require_principal),
    portal: Portal = Depends(portal_dependency),
):
    if not portal.evidence.set_visibility(principal, evidence_id, body.is_visible):
        raise NotFound(f"Skill {evidence_id} not found")
    return VisibilityResponse(evidence_id=evidence_id, is_visible=body.is_visible)


@user_router.get("/skill-matrix", response_model=list[SkillMatrixEntry])
def get_skill_matrix(
    principal: Principal = Depends(require_principal),
    portal: Portal = Depends(portal_dependency),
):
    return portal.aggregator.compute_matrix(principal)


@user_router.post("/skill-matrix/sync", response_model=SyncResponse)
def sync_skill_matrix(
    principal: Principal = Depends(require_principal),
    portal: Portal = Depends(portal_dependency),
):
    return SyncResponse(categories_completed=portal.sync_course_completions(principal))


@user_router.post("/skill-verification", response_model=VerificationResponse)
def create_verification(
    body: VerificationRequest,
    principal: Principal = Depends(require_principal),
    portal: Portal = Depends(portal_dependency),
):
    snapshot = portal.create_verification(principal, body.selected_category_ids, body.user_name)
    return VerificationResponse(
        token=snapshot.token,
        url=portal.snapshots.verification_url(snapshot.token),
        created_at=snapshot.created_at,
        expires_at=snapshot.expires_at,
        view_count=snapshot.view_count,
        selected_category_ids=snapshot.selected_category_ids,
    )


@user_router.get("/skill-verification", response_model=list[VerificationResponse])
def list_verifications(
    principal: Principal = Depends(require_principal),
    portal: Portal = Depends(portal_dependency),
):
    return [
        VerificationResponse(
            token=s.token,
            url=portal.snapshots.verification_url(s.token),
            created_at=s.created_at,
            expires_at=s.expires_at,
            view_count=s.view_count,
            selected_category_ids=s.selected_category_ids,
        )
        for s in portal.snapshots.list_for_principal(principal)
    ]


# ── Public verification ──────────────────────────────────

@verify_router.get("/skills/{token}", response_model=PublicVerification)
def verify_skills(token: str, portal: Portal = Depends(portal_dependency)):
    return portal.get_verification(token)
