"""
Capability Store — registry of gated tools and their free-tier flags.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

from skills_portal.errors import ValidationError
from skills_portal.models.schemas import Capability
from skills_portal.persistence.mongo_client import CAPABILITIES, MongoClient, strip_doc

logger = logging.getLogger(__name__)


class CapabilityStore(ABC):

    @abstractmethod
    def get(self, capability_id: str) -> Optional[Capability]:
        ...

    @abstractmethod
    def list_all(self) -> list[Capability]:
        ...

    @abstractmethod
    def upsert(self, capability: Capability) -> Capability:
        ...


class InMemoryCapabilityStore(CapabilityStore):

    def __init__(self, capabilities: list[Capability] | None = None):
        self._items: dict[str, Capability] = {}
        self._lock = threading.Lock()
        for capability in capabilities or []:
            self.upsert(capability)

    def get(self, capability_id: str) -> Optional[Capability]:
        with self._lock:
            item = self._items.get(capability_id)
            return item.model_copy() if item else None

    def list_all(self) -> list[Capability]:
        with self._lock:
            return sorted((c.model_copy() for c in self._items.values()), key=lambda c: c.id)

    def upsert(self, capability: Capability) -> Capability:
        if not capability.id.strip():
            raise ValidationError("capability id is required")
        with self._lock:
            self._items[capability.id] = capability.model_copy()
        return capability


class MongoCapabilityStore(CapabilityStore):

    def __init__(self, mongo: MongoClient):
        self._col = mongo.collection(CAPABILITIES)

    def get(self, capability_id: str) -> Optional[Capability]:
        doc = self._col.find_one({"_id": capability_id})
        return Capability(**strip_doc(doc)) if doc else None

    def list_all(self) -> list[Capability]:
        return [Capability(**strip_doc(doc)) for doc in self._col.find().sort("_id", 1)]

    def upsert(self, capability: Capability) -> Capability:
        if not capability.id.strip():
            raise ValidationError("capability id is required")
        self._col.replace_one(
            {"_id": capability.id},
            {"_id": capability.id, **capability.model_dump()},
            upsert=True,
        )
        logger.info(f"Upserted capability {capability.id}")
        return capability
