"""
Progress Store — per-principal category progress, course completions and
capability project counters.

Every write is a single conditional upsert:
  • knowledge completion is first-wins ($setOnInsert on a unique key),
  • project counters use $inc,
  • course completions keep the first completed_at and refresh the score.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from skills_portal.models.schemas import (
    CapabilityProjectRecord,
    CategoryProgress,
    CourseCompletion,
)
from skills_portal.persistence.mongo_client import (
    CAPABILITY_PROJECTS,
    CATEGORY_PROGRESS,
    COURSE_COMPLETIONS,
    MongoClient,
    strip_doc,
)

logger = logging.getLogger(__name__)


class ProgressStore(ABC):

    @abstractmethod
    def mark_knowledge_completed(
        self, principal_id: str, category_id: str, course_id: str, now: datetime
    ) -> tuple[CategoryProgress, bool]:
        """Complete the category unless already complete. Returns (row, changed)."""

    @abstractmethod
    def list_progress(self, principal_id: str) -> list[CategoryProgress]:
        ...

    @abstractmethod
    def record_course_completion(
        self,
        principal_id: str,
        course_id: str,
        course_name: Optional[str],
        progress_score: float,
        completed_at: datetime,
    ) -> tuple[CourseCompletion, bool]:
        """Upsert a completion. Returns (row, created)."""

    @abstractmethod
    def list_completions(self, principal_id: str) -> list[CourseCompletion]:
        ...

    @abstractmethod
    def increment_project(
        self, principal_id: str, capability_id: str, now: datetime
    ) -> CapabilityProjectRecord:
        ...

    @abstractmethod
    def list_projects(self, principal_id: str) -> list[CapabilityProjectRecord]:
        ...


class InMemoryProgressStore(ProgressStore):

    def __init__(self):
        self._progress: dict[tuple[str, str], CategoryProgress] = {}
        self._completions: dict[tuple[str, str], CourseCompletion] = {}
        self._projects: dict[tuple[str, str], CapabilityProjectRecord] = {}
        self._lock = threading.Lock()

    def mark_knowledge_completed(self, principal_id, category_id, course_id, now):
        with self._lock:
            existing = self._progress.get((principal_id, category_id))
            if existing is not None and existing.knowledge_completed:
                return existing.model_copy(), False
            row = CategoryProgress(
                principal_id=principal_id,
                category_id=category_id,
                knowledge_completed=True,
                completed_at=now,
                triggering_course_id=course_id,
            )
            self._progress[(principal_id, category_id)] = row
            return row.model_copy(), True

    def list_progress(self, principal_id):
        with self._lock:
            return [p.model_copy() for (pid, _), p in self._progress.items() if pid == principal_id]

    def record_course_completion(self, principal_id, course_id, course_name, progress_score, completed_at):
        with self._lock:
            existing = self._completions.get((principal_id, course_id))
            if existing is None:
                row = CourseCompletion(
                    principal_id=principal_id,
                    course_id=course_id,
                    course_name=course_name,
                    progress_score=progress_score,
                    completed_at=completed_at,
                )
                created = True
            else:
                row = existing.model_copy(update={
                    "progress_score": progress_score,
                    "course_name": course_name or existing.course_name,
                })
                created = False
            self._completions[(principal_id, course_id)] = row
            return row.model_copy(), created

    def list_completions(self, principal_id):
        with self._lock:
            return [c.model_copy() for (pid, _), c in self._completions.items() if pid == principal_id]

    def increment_project(self, principal_id, capability_id, now):
        with self._lock:
            existing = self._projects.get((principal_id, capability_id))
            count = existing.project_count + 1 if existing else 1
            row = CapabilityProjectRecord(
                principal_id=principal_id,
                capability_id=capability_id,
                project_count=count,
                last_used_at=now,
            )
            self._projects[(principal_id, capability_id)] = row
            return row.model_copy()

    def list_projects(self, principal_id):
        with self._lock:
            return [p.model_copy() for (pid, _), p in self._projects.items() if pid == principal_id]


class MongoProgressStore(ProgressStore):

    def __init__(self, mongo: MongoClient):
        self._progress = mongo.collection(CATEGORY_PROGRESS)
        self._completions = mongo.collection(COURSE_COMPLETIONS)
        self._projects = mongo.collection(CAPABILITY_PROJECTS)

    def mark_knowledge_completed(self, principal_id, category_id, course_id, now):
        key = {"principal_id": principal_id, "category_id": category_id}
        try:
            result = self._progress.update_one(
                key,
                {"$setOnInsert": {
                    "knowledge_completed": True,
                    "completed_at": now,
                    "triggering_course_id": course_id,
                }},
                upsert=True,
            )
            changed = result.upserted_id is not None
        except DuplicateKeyError:
            # A concurrent completion inserted first; it wins.
            changed = False
        doc = self._progress.find_one(key)
        return CategoryProgress(**strip_doc(doc)), changed

    def list_progress(self, principal_id):
        return [CategoryProgress(**strip_doc(d)) for d in self._progress.find({"principal_id": principal_id})]

    def record_course_completion(self, principal_id, course_id, course_name, progress_score, completed_at):
        key = {"principal_id": principal_id, "course_id": course_id}
        update: dict[str, Any] = {
            "$set": {"progress_score": progress_score},
            "$setOnInsert": {"completed_at": completed_at},
        }
        if course_name:
            update["$set"]["course_name"] = course_name
        try:
            result = self._completions.update_one(key, update, upsert=True)
            created = result.upserted_id is not None
        except DuplicateKeyError:
            self._completions.update_one(key, update)
            created = False
        doc = self._completions.find_one(key)
        return CourseCompletion(**strip_doc(doc)), created

    def list_completions(self, principal_id):
        return [CourseCompletion(**strip_doc(d)) for d in self._completions.find({"principal_id": principal_id})]

    def increment_project(self, principal_id, capability_id, now):
        key = {"principal_id": principal_id, "capability_id": capability_id}
        update = {"$inc": {"project_count": 1}, "$set": {"last_used_at": now}}
        try:
            doc = self._projects.find_one_and_update(
                key, update, upsert=True, return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            doc = self._projects.find_one_and_update(
                key, update, return_document=ReturnDocument.AFTER
            )
        return CapabilityProjectRecord(**strip_doc(doc))

    def list_projects(self, principal_id):
        return [CapabilityProjectRecord(**strip_doc(d)) for d in self._projects.find({"principal_id": principal_id})]
