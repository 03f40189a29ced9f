"""
Evidence Repository — unique, countable skill evidence rows.

The only write path for counts is `increment()`, an atomic
upsert-and-add-one at the storage layer that returns the post-increment row.
Application code never reads a count, adds to it, and writes it back.
`ensure()` is the set-once variant for awards that must count exactly once.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, NamedTuple, Optional

from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from skills_portal.models.enums import EvidenceType, SkillLevel
from skills_portal.models.schemas import Evidence
from skills_portal.persistence.mongo_client import EVIDENCE, MongoClient, strip_doc
from skills_portal.utils.hashing import stable_key

logger = logging.getLogger(__name__)

UPSERT_RETRIES = 2


class EvidenceKey(NamedTuple):
    principal_id: str
    skill_name: str
    evidence_type: EvidenceType
    source_id: str

    @property
    def id(self) -> str:
        return stable_key(
            self.principal_id, self.skill_name, self.evidence_type.value, self.source_id
        )


def _sort_key(e: Evidence) -> tuple[int, float]:
    # level desc, then most recently acquired first
    return (-e.level.rank, -e.acquired_at.timestamp())


class EvidenceRepository(ABC):

    @abstractmethod
    def increment(
        self,
        key: EvidenceKey,
        *,
        skill_category: str,
        source_name: Optional[str],
        initial_level: SkillLevel,
        now: datetime,
    ) -> Evidence:
        """Add one to the row's count, creating it with count=1; return the new row."""

    @abstractmethod
    def ensure(
        self,
        key: EvidenceKey,
        *,
        skill_category: str,
        source_name: Optional[str],
        level: SkillLevel,
        now: datetime,
    ) -> tuple[Evidence, bool]:
        """Create the row with count=1 unless it exists. Returns (row, created)."""

    @abstractmethod
    def set_level(self, evidence_id: str, count: int, level: SkillLevel) -> bool:
        """Write `level` only if the row still holds `count`."""

    @abstractmethod
    def get(self, evidence_id: str) -> Optional[Evidence]:
        ...

    @abstractmethod
    def list_for_principal(self, principal_id: str, visible_only: bool = False) -> list[Evidence]:
        ...

    @abstractmethod
    def set_visibility(self, principal_id: str, evidence_id: str, visible: bool) -> bool:
        ...


class InMemoryEvidenceRepository(EvidenceRepository):

    def __init__(self):
        self._rows: dict[str, Evidence] = {}
        self._lock = threading.Lock()

    def increment(self, key, *, skill_category, source_name, initial_level, now):
        with self._lock:
            row = self._rows.get(key.id)
            if row is None:
                row = Evidence(
                    id=key.id,
                    principal_id=key.principal_id,
                    skill_name=key.skill_name,
                    skill_category=skill_category,
                    evidence_type=key.evidence_type,
                    source_id=key.source_id,
                    source_name=source_name,
                    count=1,
                    level=initial_level,
                    acquired_at=now,
                    updated_at=now,
                )
            else:
                row = row.model_copy(update={"count": row.count + 1, "updated_at": now})
            self._rows[key.id] = row
            return row.model_copy()

    def ensure(self, key, *, skill_category, source_name, level, now):
        with self._lock:
            row = self._rows.get(key.id)
            if row is not None:
                return row.model_copy(), False
            row = Evidence(
                id=key.id,
                principal_id=key.principal_id,
                skill_name=key.skill_name,
                skill_category=skill_category,
                evidence_type=key.evidence_type,
                source_id=key.source_id,
                source_name=source_name,
                count=1,
                level=level,
                acquired_at=now,
                updated_at=now,
            )
            self._rows[key.id] = row
            return row.model_copy(), True

    def set_level(self, evidence_id, count, level):
        with self._lock:
            row = self._rows.get(evidence_id)
            if row is None or row.count != count:
                return False
            self._rows[evidence_id] = row.model_copy(update={"level": level})
            return True

    def get(self, evidence_id):
        with self._lock:
            row = self._rows.get(evidence_id)
            return row.model_copy() if row else None

    def list_for_principal(self, principal_id, visible_only=False):
        with self._lock:
            rows = [
                r.model_copy() for r in self._rows.values()
                if r.principal_id == principal_id and (r.is_visible or not visible_only)
            ]
        return sorted(rows, key=_sort_key)

    def set_visibility(self, principal_id, evidence_id, visible):
        with self._lock:
            row = self._rows.get(evidence_id)
            if row is None or row.principal_id != principal_id:
                return False
            self._rows[evidence_id] = row.model_copy(update={"is_visible": visible})
            return True


class MongoEvidenceRepository(EvidenceRepository):

    def __init__(self, mongo: MongoClient):
        self._col = mongo.collection(EVIDENCE)

    @staticmethod
    def _to_model(doc: dict[str, Any]) -> Evidence:
        return Evidence(**strip_doc(doc))

    def increment(self, key, *, skill_category, source_name, initial_level, now):
        update = {
            "$inc": {"count": 1},
            "$set": {"updated_at": now},
            "$setOnInsert": {
                "id": key.id,
                "principal_id": key.principal_id,
                "skill_name": key.skill_name,
                "evidence_type": key.evidence_type.value,
                "source_id": key.source_id,
                "skill_category": skill_category,
                "source_name": source_name,
                "level": initial_level.value,
                "is_visible": True,
                "acquired_at": now,
            },
        }
        attempt = 0
        while True:
            try:
                doc = self._col.find_one_and_update(
                    {"_id": key.id},
                    update,
                    upsert=True,
                    return_document=ReturnDocument.AFTER,
                )
                return self._to_model(doc)
            except DuplicateKeyError:
                # Two first-time upserts raced on _id; the loser retries as an update.
                attempt += 1
                if attempt > UPSERT_RETRIES:
                    raise
                logger.debug(f"Evidence upsert race on {key.id}, retrying")

    def ensure(self, key, *, skill_category, source_name, level, now):
        try:
            result = self._col.update_one(
                {"_id": key.id},
                {"$setOnInsert": {
                    "id": key.id,
                    "principal_id": key.principal_id,
                    "skill_name": key.skill_name,
                    "evidence_type": key.evidence_type.value,
                    "source_id": key.source_id,
                    "skill_category": skill_category,
                    "source_name": source_name,
                    "count": 1,
                    "level": level.value,
                    "is_visible": True,
                    "acquired_at": now,
                    "updated_at": now,
                }},
                upsert=True,
            )
            created = result.upserted_id is not None
        except DuplicateKeyError:
            # A concurrent writer inserted it first.
            created = False
        return self.get(key.id), created

    def set_level(self, evidence_id, count, level):
        result = self._col.update_one(
            {"_id": evidence_id, "count": count},
            {"$set": {"level": level.value}},
        )
        return result.matched_count > 0

    def get(self, evidence_id):
        doc = self._col.find_one({"_id": evidence_id})
        return self._to_model(doc) if doc else None

    def list_for_principal(self, principal_id, visible_only=False):
        query: dict[str, Any] = {"principal_id": principal_id}
        if visible_only:
            query["is_visible"] = True
        rows = [self._to_model(doc) for doc in self._col.find(query).sort("acquired_at", DESCENDING)]
        return sorted(rows, key=_sort_key)

    def set_visibility(self, principal_id, evidence_id, visible):
        result = self._col.update_one(
            {"_id": evidence_id, "principal_id": principal_id},
            {"$set": {"is_visible": visible}},
        )
        return result.matched_count > 0
