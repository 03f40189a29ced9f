"""
Data schemas shared by the stores, services and the HTTP layer.
Each schema is a clearly-bounded record owned by one component.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from .enums import AccessReason, ActivityType, EvidenceType, Role, SkillLevel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Principals & capabilities ────────────────────────────


class Principal(BaseModel):
    """An authenticated actor, as produced by the SessionDecoder."""
    id: str
    email: str
    role: Role = Role.USER
    external_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role in (Role.ADMIN, Role.SUPER_ADMIN)

    @property
    def display_name(self) -> str:
        return self.email.split("@")[0] if self.email else self.id


class Capability(BaseModel):
    """A gated tool."""
    id: str
    name: str = ""
    category: str = ""
    is_public: bool = True
    is_premium: bool = False


class Allocation(BaseModel):
    """Admin-curated link: `course_id` unlocks `capability_id`."""
    capability_id: str
    course_id: str
    course_name: Optional[str] = None
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class RequiredCourse(BaseModel):
    id: str
    name: str
    url: str = ""


class AccessDecision(BaseModel):
    has_access: bool
    reason: AccessReason
    required_courses: Optional[list[RequiredCourse]] = None
    matched_courses: Optional[list[str]] = None


class CourseProgress(BaseModel):
    """One row of the enrollment provider's completion report."""
    course_id: str
    title: str = ""
    progress_score: float = 0.0  # 0-100
    completed: bool = False
    completed_at: Optional[datetime] = None


# ── Evidence ─────────────────────────────────────────────


class Evidence(BaseModel):
    id: str
    principal_id: str
    skill_name: str
    skill_category: str = "cross_category"
    evidence_type: EvidenceType
    source_id: str
    source_name: Optional[str] = None
    count: int = 1
    level: SkillLevel = SkillLevel.FAMILIAR
    is_visible: bool = True
    acquired_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class EvidenceSummary(BaseModel):
    total_skills: int = 0
    by_category: dict[str, int] = {}
    by_level: dict[str, int] = {}
    by_evidence: dict[str, int] = {}


# ── Skill categories ─────────────────────────────────────


class SkillCategory(BaseModel):
    id: str
    name: str
    slug: str
    knowledge_description: Optional[str] = None
    display_order: int = 0
    is_active: bool = True


class CategoryCourseLink(BaseModel):
    category_id: str
    course_id: str
    course_name: Optional[str] = None
    knowledge_description: Optional[str] = None
    learning_hours: Optional[float] = None


class CategoryCapabilityLink(BaseModel):
    category_id: str
    capability_id: str
    capability_name: Optional[str] = None
    application_description: Optional[str] = None
    display_order: int = 0


class CategoryProgress(BaseModel):
    principal_id: str
    category_id: str
    knowledge_completed: bool = False
    completed_at: Optional[datetime] = None
    triggering_course_id: Optional[str] = None


class CourseCompletion(BaseModel):
    principal_id: str
    course_id: str
    course_name: Optional[str] = None
    progress_score: float = 0.0
    completed_at: datetime = Field(default_factory=utcnow)


class CapabilityProjectRecord(BaseModel):
    principal_id: str
    capability_id: str
    project_count: int = 0
    last_used_at: Optional[datetime] = None


# ── Snapshot projection ──────────────────────────────────


class SnapshotCourse(BaseModel):
    course_id: str
    course_name: str
    knowledge_description: Optional[str] = None
    progress_score: float = 0.0
    completed_at: datetime
    learning_hours: Optional[float] = None


class SnapshotCapability(BaseModel):
    capability_id: str
    name: str
    application_description: Optional[str] = None
    project_count: int = 0
    last_used_at: Optional[datetime] = None


class SnapshotCategory(BaseModel):
    id: str
    name: str
    courses: list[SnapshotCourse] = []
    capabilities: list[SnapshotCapability] = []


class SkillSnapshot(BaseModel):
    categories: list[SnapshotCategory] = []


class MatrixCapability(BaseModel):
    capability_id: str
    name: Optional[str] = None
    application_description: Optional[str] = None
    project_count: int = 0
    last_used_at: Optional[datetime] = None


class SkillMatrixEntry(BaseModel):
    """Dashboard view: every linked capability, used or not."""
    category: SkillCategory
    knowledge_completed: bool = False
    completed_at: Optional[datetime] = None
    triggering_course_id: Optional[str] = None
    capabilities: list[MatrixCapability] = []


# ── Verification snapshots ───────────────────────────────


class VerificationSnapshot(BaseModel):
    token: str
    principal_id: str
    principal_email: str = ""
    user_name: str = ""
    skills_snapshot: dict[str, Any]
    selected_category_ids: list[str] = []
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None
    view_count: int = 0

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class PublicVerification(BaseModel):
    """What an anonymous verifier may see. No email."""
    user_name: str
    skills_snapshot: dict[str, Any]
    created_at: datetime
    view_count: int


# ── Activity log ─────────────────────────────────────────


class ActivityEntry(BaseModel):
    type: ActivityType
    description: str
    principal_id: Optional[str] = None
    user_name: Optional[str] = None
    metadata: dict[str, Any] = {}
    created_at: datetime = Field(default_factory=utcnow)
