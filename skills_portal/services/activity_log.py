"""
Activity Log — fire-and-forget record of access decisions, evidence events,
project saves and verification views, plus the admin read side.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter, deque
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from pymongo import DESCENDING

from skills_portal.models.enums import ActivityType
from skills_portal.models.schemas import ActivityEntry, Principal, utcnow
from skills_portal.persistence.mongo_client import ACTIVITY_LOGS, MongoClient, strip_doc

logger = logging.getLogger(__name__)


class ActivityLog:
    """
    Records portal activity.
    Without a MongoClient entries live in an in-memory ring of the newest
    `max_entries`.
    `record()` never raises: a failing sink must not fail the caller.
    """

    def __init__(
        self,
        mongo: MongoClient | None = None,
        clock: Callable[[], datetime] = utcnow,
        max_entries: int = 10_000,
    ):
        self._col = mongo.collection(ACTIVITY_LOGS) if mongo is not None else None
        self._entries: deque[ActivityEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()
        self._clock = clock

    def record(
        self,
        type: ActivityType,
        description: str,
        principal: Principal | None = None,
        user_name: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Optional[ActivityEntry]:
        """Record an activity entry and return it, or None if the sink failed."""
        try:
            entry = ActivityEntry(
                type=type,
                description=description,
                principal_id=principal.id if principal else None,
                user_name=user_name or (principal.display_name if principal else None),
                metadata=metadata or {},
                created_at=self._clock(),
            )
            if self._col is None:
                with self._lock:
                    self._entries.append(entry)
            else:
                self._col.insert_one({**entry.model_dump(), "type": entry.type.value})
            logger.debug(f"[ACTIVITY] {type.value}: {description}")
            return entry
        except Exception as exc:
            logger.warning(f"Activity log write failed ({type.value}): {exc}")
            return None

    def query(
        self,
        type: ActivityType | None = None,
        principal_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[ActivityEntry], int]:
        """Newest-first page of entries and the total matching count."""
        if self._col is None:
            with self._lock:
                rows = [
                    e for e in self._entries
                    if (type is None or e.type == type)
                    and (principal_id is None or e.principal_id == principal_id)
                ]
            rows.sort(key=lambda e: e.created_at, reverse=True)
            return rows[offset:offset + limit], len(rows)

        flt: dict[str, Any] = {}
        if type is not None:
            flt["type"] = type.value
        if principal_id is not None:
            flt["principal_id"] = principal_id
        total = self._col.count_documents(flt)
        cursor = self._col.find(flt).sort("created_at", DESCENDING).skip(offset).limit(limit)
        return [ActivityEntry(**strip_doc(d)) for d in cursor], total

    def stats(self, days: int = 7) -> dict[str, Any]:
        """Totals by type, recent principals and per-day counts for the window."""
        since = self._clock() - timedelta(days=days)
        if self._col is None:
            with self._lock:
                rows = [e for e in self._entries if e.created_at >= since]
        else:
            rows = [ActivityEntry(**strip_doc(d)) for d in self._col.find({"created_at": {"$gte": since}})]

        rows.sort(key=lambda e: e.created_at, reverse=True)
        by_type = Counter(e.type.value for e in rows)
        daily = Counter(e.created_at.date().isoformat() for e in rows)
        recent: list[str] = []
        for e in rows:
            if e.principal_id and e.principal_id not in recent:
                recent.append(e.principal_id)

        return {
            "total_activities": len(rows),
            "by_type": dict(by_type),
            "recent_users": recent[:20],
            "daily_counts": [{"date": d, "count": c} for d, c in sorted(daily.items())],
        }
