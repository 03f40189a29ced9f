"""
Allocation Store — admin-curated capability ↔ course mapping.

Rows are many-to-many and queryable from either side. Deactivation is soft:
the row stays, flagged inactive, and re-allocating reactivates it.

Two implementations:
  • InMemoryAllocationStore — process-local dict. A write on one instance is
    invisible to every other instance, so it is a test-only stand-in.
  • MongoAllocationStore    — shared durable storage for production.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Optional

from pymongo import ASCENDING

from skills_portal.errors import ValidationError
from skills_portal.models.schemas import Allocation, utcnow
from skills_portal.persistence.mongo_client import ALLOCATIONS, MongoClient, strip_doc

logger = logging.getLogger(__name__)


def _require(**ids: str) -> None:
    for field, value in ids.items():
        if not value or not str(value).strip():
            raise ValidationError(f"{field} is required")


class AllocationStore(ABC):
    """Capability ↔ course allocations."""

    # ── Reads ────────────────────────────────────────────

    def courses_for(self, capability_id: str) -> list[str]:
        """Active course ids that unlock the capability, in allocation order."""
        return [a.course_id for a in self.allocations_for(capability_id)]

    def capabilities_for(self, course_id: str) -> list[str]:
        """Active capability ids unlocked by the course."""
        return [a.capability_id for a in self.allocations_for_course(course_id)]

    @abstractmethod
    def allocations_for(self, capability_id: str) -> list[Allocation]:
        """Active allocation rows for a capability."""

    @abstractmethod
    def allocations_for_course(self, course_id: str) -> list[Allocation]:
        """Active allocation rows for a course."""

    @abstractmethod
    def all_allocations(self) -> dict[str, list[str]]:
        """course_id → [capability_id] across every active row."""

    # ── Admin writes ─────────────────────────────────────

    @abstractmethod
    def allocate(
        self, capability_id: str, course_id: str, course_name: Optional[str] = None
    ) -> Allocation:
        """Create or reactivate an allocation."""

    @abstractmethod
    def deactivate(self, capability_id: str, course_id: str) -> bool:
        """Soft-delete an allocation. Returns False if no active row matched."""

    def set_capabilities_for_course(
        self,
        course_id: str,
        capability_ids: list[str],
        course_name: Optional[str] = None,
    ) -> list[Allocation]:
        """Replace the course's allocations with exactly `capability_ids`."""
        _require(course_id=course_id)
        wanted = list(dict.fromkeys(capability_ids))
        for capability_id in self.capabilities_for(course_id):
            if capability_id not in wanted:
                self.deactivate(capability_id, course_id)
        rows = [self.allocate(cid, course_id, course_name) for cid in wanted]
        logger.info(f"Course {course_id} now unlocks {len(rows)} capabilities")
        return rows


# ── In-memory (tests only) ───────────────────────────────


class InMemoryAllocationStore(AllocationStore):
    """Single-process stand-in. Do not use with more than one instance."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._rows: dict[tuple[str, str], Allocation] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def allocations_for(self, capability_id: str) -> list[Allocation]:
        with self._lock:
            return [
                a.model_copy() for (cap, _), a in self._rows.items()
                if cap == capability_id and a.active
            ]

    def allocations_for_course(self, course_id: str) -> list[Allocation]:
        with self._lock:
            return [
                a.model_copy() for (_, course), a in self._rows.items()
                if course == course_id and a.active
            ]

    def all_allocations(self) -> dict[str, list[str]]:
        result: dict[str, list[str]] = {}
        with self._lock:
            for (cap, course), a in self._rows.items():
                if a.active:
                    result.setdefault(course, []).append(cap)
        return result

    def allocate(
        self, capability_id: str, course_id: str, course_name: Optional[str] = None
    ) -> Allocation:
        _require(capability_id=capability_id, course_id=course_id)
        now = self._clock()
        with self._lock:
            existing = self._rows.get((capability_id, course_id))
            if existing is None:
                row = Allocation(
                    capability_id=capability_id,
                    course_id=course_id,
                    course_name=course_name,
                    created_at=now,
                    updated_at=now,
                )
            else:
                row = existing.model_copy(update={
                    "active": True,
                    "course_name": course_name or existing.course_name,
                    "updated_at": now,
                })
            self._rows[(capability_id, course_id)] = row
            return row.model_copy()

    def deactivate(self, capability_id: str, course_id: str) -> bool:
        with self._lock:
            row = self._rows.get((capability_id, course_id))
            if row is None or not row.active:
                return False
            self._rows[(capability_id, course_id)] = row.model_copy(
                update={"active": False, "updated_at": self._clock()}
            )
            return True


# ── MongoDB ──────────────────────────────────────────────


class MongoAllocationStore(AllocationStore):
    """Allocations in a shared MongoDB collection."""

    def __init__(self, mongo: MongoClient, clock: Callable[[], datetime] = utcnow):
        self._col = mongo.collection(ALLOCATIONS)
        self._clock = clock

    @staticmethod
    def _to_model(doc: dict[str, Any]) -> Allocation:
        return Allocation(**strip_doc(doc))

    def allocations_for(self, capability_id: str) -> list[Allocation]:
        cursor = self._col.find(
            {"capability_id": capability_id, "active": True}
        ).sort("created_at", ASCENDING)
        return [self._to_model(doc) for doc in cursor]

    def allocations_for_course(self, course_id: str) -> list[Allocation]:
        cursor = self._col.find(
            {"course_id": course_id, "active": True}
        ).sort("created_at", ASCENDING)
        return [self._to_model(doc) for doc in cursor]

    def all_allocations(self) -> dict[str, list[str]]:
        result: dict[str, list[str]] = {}
        for doc in self._col.find({"active": True}, {"capability_id": 1, "course_id": 1}):
            result.setdefault(doc["course_id"], []).append(doc["capability_id"])
        return result

    def allocate(
        self, capability_id: str, course_id: str, course_name: Optional[str] = None
    ) -> Allocation:
        _require(capability_id=capability_id, course_id=course_id)
        now = self._clock()
        update: dict[str, Any] = {
            "$set": {"active": True, "updated_at": now},
            "$setOnInsert": {
                "capability_id": capability_id,
                "course_id": course_id,
                "created_at": now,
            },
        }
        if course_name:
            update["$set"]["course_name"] = course_name
        else:
            update["$setOnInsert"]["course_name"] = None
        self._col.update_one(
            {"capability_id": capability_id, "course_id": course_id},
            update,
            upsert=True,
        )
        doc = self._col.find_one({"capability_id": capability_id, "course_id": course_id})
        return self._to_model(doc)

    def deactivate(self, capability_id: str, course_id: str) -> bool:
        result = self._col.update_one(
            {"capability_id": capability_id, "course_id": course_id, "active": True},
            {"$set": {"active": False, "updated_at": self._clock()}},
        )
        return result.modified_count > 0
