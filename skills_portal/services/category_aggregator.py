"""
Category Aggregator — rolls course completions ("Knowledge") and capability
usage ("Application") up into admin-defined skill categories.

Knowledge completion is first-wins: once a category is completed, later
courses linked to it never overwrite `completed_at` or `triggering_course_id`.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from skills_portal.errors import NotFound, ValidationError
from skills_portal.models.schemas import (
    CapabilityProjectRecord,
    CategoryCapabilityLink,
    CategoryCourseLink,
    CategoryProgress,
    MatrixCapability,
    Principal,
    SkillCategory,
    SkillMatrixEntry,
    SkillSnapshot,
    SnapshotCapability,
    SnapshotCategory,
    SnapshotCourse,
    utcnow,
)
from skills_portal.persistence.category_store import CategoryStore
from skills_portal.persistence.progress_store import ProgressStore

logger = logging.getLogger(__name__)


class CategoryAggregator:

    def __init__(
        self,
        categories: CategoryStore,
        progress: ProgressStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.categories = categories
        self.progress = progress
        self._clock = clock

    # ── Event handlers ───────────────────────────────────

    def on_course_completion(
        self,
        principal: Principal,
        course_id: str,
        progress_score: float,
        course_name: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> tuple[list[CategoryProgress], bool]:
        """
        Record the completion and complete every category linked to the course.

        Returns (newly completed progress rows, whether the completion row
        was created by this call).
        """
        if not course_id:
            raise ValidationError("course_id is required")
        now = self._clock()
        _, created = self.progress.record_course_completion(
            principal.id, course_id, course_name, float(progress_score), completed_at or now
        )

        newly: list[CategoryProgress] = []
        for link in self.categories.categories_for_course(course_id):
            row, changed = self.progress.mark_knowledge_completed(
                principal.id, link.category_id, course_id, now
            )
            if changed:
                logger.info(f"Category {link.category_id} completed by {principal.id} via {course_id}")
                newly.append(row)
        return newly, created

    def on_capability_saved(
        self, principal: Principal, capability_id: str
    ) -> Optional[CapabilityProjectRecord]:
        """Count one saved project, but only for capabilities some category links."""
        if not self.categories.categories_for_capability(capability_id):
            return None
        record = self.progress.increment_project(principal.id, capability_id, self._clock())
        logger.debug(f"Project count {principal.id}/{capability_id} -> {record.project_count}")
        return record

    # ── Projections ──────────────────────────────────────

    def compute_snapshot(self, principal: Principal) -> SkillSnapshot:
        """Frozen-ready portfolio: completed courses and used capabilities per category."""
        completions = {c.course_id: c for c in self.progress.list_completions(principal.id)}
        projects = {p.capability_id: p for p in self.progress.list_projects(principal.id)}

        result: list[SnapshotCategory] = []
        for category in self.categories.list_categories(active_only=True):
            courses = [
                self._snapshot_course(category, link, completions[link.course_id])
                for link in self.categories.courses_for_category(category.id)
                if link.course_id in completions
            ]
            courses.sort(key=lambda c: (c.completed_at, c.course_id))

            capabilities = []
            for link in self.categories.capabilities_for_category(category.id):
                record = projects.get(link.capability_id)
                if record is None or record.project_count <= 0:
                    continue
                capabilities.append(SnapshotCapability(
                    capability_id=link.capability_id,
                    name=link.capability_name or link.capability_id,
                    application_description=link.application_description,
                    project_count=record.project_count,
                    last_used_at=record.last_used_at,
                ))

            if courses or capabilities:
                result.append(SnapshotCategory(
                    id=category.id, name=category.name, courses=courses, capabilities=capabilities
                ))
        return SkillSnapshot(categories=result)

    def compute_matrix(self, principal: Principal) -> list[SkillMatrixEntry]:
        """Every active category with knowledge status and all linked capabilities."""
        progress = {p.category_id: p for p in self.progress.list_progress(principal.id)}
        projects = {p.capability_id: p for p in self.progress.list_projects(principal.id)}

        matrix = []
        for category in self.categories.list_categories(active_only=True):
            row = progress.get(category.id)
            capabilities = []
            for link in self.categories.capabilities_for_category(category.id):
                record = projects.get(link.capability_id)
                capabilities.append(MatrixCapability(
                    capability_id=link.capability_id,
                    name=link.capability_name,
                    application_description=link.application_description,
                    project_count=record.project_count if record else 0,
                    last_used_at=record.last_used_at if record else None,
                ))
            matrix.append(SkillMatrixEntry(
                category=category,
                knowledge_completed=bool(row and row.knowledge_completed),
                completed_at=row.completed_at if row else None,
                triggering_course_id=row.triggering_course_id if row else None,
                capabilities=capabilities,
            ))
        return matrix

    @staticmethod
    def _snapshot_course(category, link, completion) -> SnapshotCourse:
        return SnapshotCourse(
            course_id=link.course_id,
            course_name=link.course_name or completion.course_name or link.course_id,
            knowledge_description=link.knowledge_description or category.knowledge_description,
            progress_score=completion.progress_score,
            completed_at=completion.completed_at,
            learning_hours=link.learning_hours,
        )

    # ── Admin catalog ────────────────────────────────────

    def create_category(self, category: SkillCategory) -> SkillCategory:
        if self.categories.get_category(category.id) is not None:
            raise ValidationError(f"category {category.id} already exists")
        saved = self.categories.save_category(category)
        logger.info(f"Created skill category {category.id} ({category.name})")
        return saved

    def update_category(self, category_id: str, **fields: Any) -> SkillCategory:
        updated = self.categories.update_category(category_id, **fields)
        if updated is None:
            raise NotFound(f"category {category_id} not found")
        return updated

    def deactivate_category(self, category_id: str) -> SkillCategory:
        return self.update_category(category_id, is_active=False)

    def link_course(self, link: CategoryCourseLink) -> CategoryCourseLink:
        if link.learning_hours is not None and link.learning_hours < 0:
            raise ValidationError("learning_hours must be non-negative")
        return self.categories.link_course(link)

    def unlink_course(self, category_id: str, course_id: str) -> bool:
        return self.categories.unlink_course(category_id, course_id)

    def link_capability(self, link: CategoryCapabilityLink) -> CategoryCapabilityLink:
        return self.categories.link_capability(link)

    def unlink_capability(self, category_id: str, capability_id: str) -> bool:
        return self.categories.unlink_capability(category_id, capability_id)
