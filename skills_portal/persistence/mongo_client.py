"""
Mongo Client — raw database connection management and index setup.
Only used when `storage_backend == "mongo"`; tests pass a mongomock client.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pymongo import ASCENDING, DESCENDING

from skills_portal.config import Settings, get_settings

logger = logging.getLogger(__name__)

# ── Collection names ─────────────────────────────────────
ALLOCATIONS = "capability_allocations"
CAPABILITIES = "capabilities"
EVIDENCE = "evidence"
CATEGORIES = "skill_categories"
CATEGORY_COURSES = "skill_category_courses"
CATEGORY_CAPABILITIES = "skill_category_capabilities"
CATEGORY_PROGRESS = "category_progress"
COURSE_COMPLETIONS = "course_completions"
CAPABILITY_PROJECTS = "capability_projects"
SNAPSHOTS = "verification_snapshots"
ACTIVITY_LOGS = "activity_logs"


class MongoClient:
    """
    Thin wrapper around pymongo.
    Accepts a pre-built client so tests can inject mongomock.
    """

    def __init__(self, settings: Settings | None = None, client: Any = None):
        self.settings = settings or get_settings()
        self._client: Any = client
        self._db: Any = None

    def connect(self) -> None:
        """Establish the MongoDB connection."""
        if self._client is None:
            from pymongo import MongoClient as PyMongoClient

            self._client = PyMongoClient(self.settings.mongodb_uri, tz_aware=True)
        self._db = self._client[self.settings.mongodb_database]
        logger.info(f"Connected to MongoDB: {self.settings.mongodb_database}")

    def get_database(self) -> Any:
        """Return the database handle, connecting lazily."""
        if self._db is None:
            self.connect()
        return self._db

    def collection(self, name: str) -> Any:
        return self.get_database()[name]

    def ensure_indexes(self) -> None:
        """Create the unique keys the atomic upserts rely on."""
        db = self.get_database()
        db[ALLOCATIONS].create_index(
            [("capability_id", ASCENDING), ("course_id", ASCENDING)], unique=True
        )
        db[ALLOCATIONS].create_index("course_id")
        db[EVIDENCE].create_index("principal_id")
        db[CATEGORY_COURSES].create_index(
            [("category_id", ASCENDING), ("course_id", ASCENDING)], unique=True
        )
        db[CATEGORY_COURSES].create_index("course_id")
        db[CATEGORY_CAPABILITIES].create_index(
            [("category_id", ASCENDING), ("capability_id", ASCENDING)], unique=True
        )
        db[CATEGORY_CAPABILITIES].create_index("capability_id")
        db[CATEGORY_PROGRESS].create_index(
            [("principal_id", ASCENDING), ("category_id", ASCENDING)], unique=True
        )
        db[COURSE_COMPLETIONS].create_index(
            [("principal_id", ASCENDING), ("course_id", ASCENDING)], unique=True
        )
        db[CAPABILITY_PROJECTS].create_index(
            [("principal_id", ASCENDING), ("capability_id", ASCENDING)], unique=True
        )
        db[SNAPSHOTS].create_index("token", unique=True)
        db[SNAPSHOTS].create_index([("principal_id", ASCENDING), ("created_at", DESCENDING)])
        db[ACTIVITY_LOGS].create_index([("created_at", DESCENDING)])
        db[ACTIVITY_LOGS].create_index("type")
        logger.info("MongoDB indexes ensured")

    def close(self) -> None:
        """Close the connection."""
        if self._client:
            self._client.close()
            logger.info("MongoDB connection closed")


# ── Document helpers ─────────────────────────────────────


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Mongo hands back naive UTC datetimes unless tz_aware is set."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def strip_doc(doc: dict[str, Any]) -> dict[str, Any]:
    """Drop `_id` and normalise top-level datetimes to aware UTC."""
    out = {k: v for k, v in doc.items() if k != "_id"}
    for key, value in out.items():
        if isinstance(value, datetime):
            out[key] = as_utc(value)
    return out
