"""
Category Store — admin-defined skill categories and their links to
courses ("Knowledge") and capabilities ("Application").
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Optional

from skills_portal.errors import ValidationError
from skills_portal.models.schemas import (
    CategoryCapabilityLink,
    CategoryCourseLink,
    SkillCategory,
)
from skills_portal.persistence.mongo_client import (
    CATEGORIES,
    CATEGORY_CAPABILITIES,
    CATEGORY_COURSES,
    MongoClient,
    strip_doc,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"name", "slug", "knowledge_description", "display_order", "is_active"}


def _validate_category(category: SkillCategory) -> None:
    if not category.id.strip() or not category.name.strip() or not category.slug.strip():
        raise ValidationError("category id, name and slug are required")


def _category_order(c: SkillCategory) -> tuple[int, str]:
    return (c.display_order, c.name)


class CategoryStore(ABC):

    # ── Categories ───────────────────────────────────────

    @abstractmethod
    def save_category(self, category: SkillCategory) -> SkillCategory:
        ...

    @abstractmethod
    def get_category(self, category_id: str) -> Optional[SkillCategory]:
        ...

    @abstractmethod
    def list_categories(self, active_only: bool = False) -> list[SkillCategory]:
        ...

    def update_category(self, category_id: str, **fields: Any) -> Optional[SkillCategory]:
        """Apply a partial update. Unknown field names are rejected."""
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"cannot update fields: {sorted(unknown)}")
        current = self.get_category(category_id)
        if current is None:
            return None
        updated = current.model_copy(update=fields)
        return self.save_category(updated)

    # ── Course links ─────────────────────────────────────

    @abstractmethod
    def link_course(self, link: CategoryCourseLink) -> CategoryCourseLink:
        ...

    @abstractmethod
    def unlink_course(self, category_id: str, course_id: str) -> bool:
        ...

    @abstractmethod
    def courses_for_category(self, category_id: str) -> list[CategoryCourseLink]:
        ...

    @abstractmethod
    def categories_for_course(self, course_id: str) -> list[CategoryCourseLink]:
        ...

    # ── Capability links ─────────────────────────────────

    @abstractmethod
    def link_capability(self, link: CategoryCapabilityLink) -> CategoryCapabilityLink:
        ...

    @abstractmethod
    def unlink_capability(self, category_id: str, capability_id: str) -> bool:
        ...

    @abstractmethod
    def capabilities_for_category(self, category_id: str) -> list[CategoryCapabilityLink]:
        """Links ordered by display_order."""

    @abstractmethod
    def categories_for_capability(self, capability_id: str) -> list[CategoryCapabilityLink]:
        ...


class InMemoryCategoryStore(CategoryStore):

    def __init__(self):
        self._categories: dict[str, SkillCategory] = {}
        self._courses: dict[tuple[str, str], CategoryCourseLink] = {}
        self._capabilities: dict[tuple[str, str], CategoryCapabilityLink] = {}
        self._lock = threading.Lock()

    def save_category(self, category):
        _validate_category(category)
        with self._lock:
            self._categories[category.id] = category.model_copy()
        return category

    def get_category(self, category_id):
        with self._lock:
            c = self._categories.get(category_id)
            return c.model_copy() if c else None

    def list_categories(self, active_only=False):
        with self._lock:
            rows = [c.model_copy() for c in self._categories.values() if c.is_active or not active_only]
        return sorted(rows, key=_category_order)

    def link_course(self, link):
        if not link.course_id.strip():
            raise ValidationError("course_id is required")
        with self._lock:
            if link.category_id not in self._categories:
                raise ValidationError(f"unknown category {link.category_id}")
            self._courses[(link.category_id, link.course_id)] = link.model_copy()
        return link

    def unlink_course(self, category_id, course_id):
        with self._lock:
            return self._courses.pop((category_id, course_id), None) is not None

    def courses_for_category(self, category_id):
        with self._lock:
            return [l.model_copy() for (cat, _), l in self._courses.items() if cat == category_id]

    def categories_for_course(self, course_id):
        with self._lock:
            return [l.model_copy() for (_, course), l in self._courses.items() if course == course_id]

    def link_capability(self, link):
        if not link.capability_id.strip():
            raise ValidationError("capability_id is required")
        with self._lock:
            if link.category_id not in self._categories:
                raise ValidationError(f"unknown category {link.category_id}")
            self._capabilities[(link.category_id, link.capability_id)] = link.model_copy()
        return link

    def unlink_capability(self, category_id, capability_id):
        with self._lock:
            return self._capabilities.pop((category_id, capability_id), None) is not None

    def capabilities_for_category(self, category_id):
        with self._lock:
            rows = [l.model_copy() for (cat, _), l in self._capabilities.items() if cat == category_id]
        return sorted(rows, key=lambda l: l.display_order)

    def categories_for_capability(self, capability_id):
        with self._lock:
            return [
                l.model_copy() for (_, cap), l in self._capabilities.items() if cap == capability_id
            ]


class MongoCategoryStore(CategoryStore):

    def __init__(self, mongo: MongoClient):
        self._categories = mongo.collection(CATEGORIES)
        self._courses = mongo.collection(CATEGORY_COURSES)
        self._capabilities = mongo.collection(CATEGORY_CAPABILITIES)

    def save_category(self, category):
        _validate_category(category)
        self._categories.replace_one(
            {"_id": category.id}, {"_id": category.id, **category.model_dump()}, upsert=True
        )
        return category

    def get_category(self, category_id):
        doc = self._categories.find_one({"_id": category_id})
        return SkillCategory(**strip_doc(doc)) if doc else None

    def list_categories(self, active_only=False):
        query = {"is_active": True} if active_only else {}
        rows = [SkillCategory(**strip_doc(doc)) for doc in self._categories.find(query)]
        return sorted(rows, key=_category_order)

    def link_course(self, link):
        if not link.course_id.strip():
            raise ValidationError("course_id is required")
        if self._categories.find_one({"_id": link.category_id}) is None:
            raise ValidationError(f"unknown category {link.category_id}")
        self._courses.replace_one(
            {"category_id": link.category_id, "course_id": link.course_id},
            link.model_dump(),
            upsert=True,
        )
        return link

    def unlink_course(self, category_id, course_id):
        result = self._courses.delete_one({"category_id": category_id, "course_id": course_id})
        return result.deleted_count > 0

    def courses_for_category(self, category_id):
        return [CategoryCourseLink(**strip_doc(d)) for d in self._courses.find({"category_id": category_id})]

    def categories_for_course(self, course_id):
        return [CategoryCourseLink(**strip_doc(d)) for d in self._courses.find({"course_id": course_id})]

    def link_capability(self, link):
        if not link.capability_id.strip():
            raise ValidationError("capability_id is required")
        if self._categories.find_one({"_id": link.category_id}) is None:
            raise ValidationError(f"unknown category {link.category_id}")
        self._capabilities.replace_one(
            {"category_id": link.category_id, "capability_id": link.capability_id},
            link.model_dump(),
            upsert=True,
        )
        return link

    def unlink_capability(self, category_id, capability_id):
        result = self._capabilities.delete_one(
            {"category_id": category_id, "capability_id": capability_id}
        )
        return result.deleted_count > 0

    def capabilities_for_category(self, category_id):
        cursor = self._capabilities.find({"category_id": category_id}).sort("display_order", 1)
        return [CategoryCapabilityLink(**strip_doc(d)) for d in cursor]

    def categories_for_capability(self, capability_id):
        return [
            CategoryCapabilityLink(**strip_doc(d))
            for d in self._capabilities.find({"capability_id": capability_id})
        ]
