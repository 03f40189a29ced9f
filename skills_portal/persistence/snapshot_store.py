"""
Snapshot Store — immutable verification snapshots keyed by token.

After insert the only mutable field is `view_count`, and it only moves via
`record_view()`, which checks expiry and increments in one storage operation.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from copy import deepcopy
from datetime import datetime
from typing import Optional

from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from skills_portal.models.schemas import VerificationSnapshot
from skills_portal.persistence.mongo_client import SNAPSHOTS, MongoClient, strip_doc

logger = logging.getLogger(__name__)


class TokenCollision(Exception):
    """A snapshot with this token already exists."""


class SnapshotStore(ABC):

    @abstractmethod
    def insert(self, snapshot: VerificationSnapshot) -> None:
        """Persist a new snapshot. Raises TokenCollision on duplicate token."""

    @abstractmethod
    def record_view(self, token: str, now: datetime) -> Optional[VerificationSnapshot]:
        """Atomically increment views of a live snapshot; None if absent or expired."""

    @abstractmethod
    def list_for_principal(self, principal_id: str) -> list[VerificationSnapshot]:
        """Newest first."""


class InMemorySnapshotStore(SnapshotStore):

    def __init__(self):
        self._rows: dict[str, VerificationSnapshot] = {}
        self._lock = threading.Lock()

    def insert(self, snapshot):
        with self._lock:
            if snapshot.token in self._rows:
                raise TokenCollision(snapshot.token)
            self._rows[snapshot.token] = snapshot.model_copy(deep=True)

    def record_view(self, token, now):
        with self._lock:
            row = self._rows.get(token)
            if row is None or row.is_expired(now):
                return None
            row = row.model_copy(update={"view_count": row.view_count + 1})
            self._rows[token] = row
            # Callers get their own copy; the stored content never changes.
            return VerificationSnapshot(**deepcopy(row.model_dump()))

    def list_for_principal(self, principal_id):
        with self._lock:
            rows = [r.model_copy(deep=True) for r in self._rows.values() if r.principal_id == principal_id]
        return sorted(rows, key=lambda r: r.created_at, reverse=True)


class MongoSnapshotStore(SnapshotStore):

    def __init__(self, mongo: MongoClient):
        self._col = mongo.collection(SNAPSHOTS)

    def insert(self, snapshot):
        try:
            self._col.insert_one(snapshot.model_dump())
        except DuplicateKeyError as exc:
            raise TokenCollision(snapshot.token) from exc

    def record_view(self, token, now):
        doc = self._col.find_one_and_update(
            {
                "token": token,
                "$or": [{"expires_at": None}, {"expires_at": {"$gt": now}}],
            },
            {"$inc": {"view_count": 1}},
            return_document=ReturnDocument.AFTER,
        )
        return VerificationSnapshot(**strip_doc(doc)) if doc else None

    def list_for_principal(self, principal_id):
        cursor = self._col.find({"principal_id": principal_id}).sort("created_at", DESCENDING)
        return [VerificationSnapshot(**strip_doc(d)) for d in cursor]
