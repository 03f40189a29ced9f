"""Persistence — MongoClient and the in-memory / MongoDB stores."""

from skills_portal.persistence.mongo_client import MongoClient
from skills_portal.persistence.allocation_store import (
    AllocationStore,
    InMemoryAllocationStore,
    MongoAllocationStore,
)
from skills_portal.persistence.capability_store import (
    CapabilityStore,
    InMemoryCapabilityStore,
    MongoCapabilityStore,
)
from skills_portal.persistence.category_store import (
    CategoryStore,
    InMemoryCategoryStore,
    MongoCategoryStore,
)
from skills_portal.persistence.evidence_repository import (
    EvidenceKey,
    EvidenceRepository,
    InMemoryEvidenceRepository,
    MongoEvidenceRepository,
)
from skills_portal.persistence.progress_store import (
    InMemoryProgressStore,
    MongoProgressStore,
    ProgressStore,
)
from skills_portal.persistence.snapshot_store import (
    InMemorySnapshotStore,
    MongoSnapshotStore,
    SnapshotStore,
    TokenCollision,
)

__all__ = [
    "MongoClient",
    "AllocationStore", "InMemoryAllocationStore", "MongoAllocationStore",
    "CapabilityStore", "InMemoryCapabilityStore", "MongoCapabilityStore",
    "CategoryStore", "InMemoryCategoryStore", "MongoCategoryStore",
    "EvidenceKey", "EvidenceRepository", "InMemoryEvidenceRepository", "MongoEvidenceRepository",
    "ProgressStore", "InMemoryProgressStore", "MongoProgressStore",
    "SnapshotStore", "InMemorySnapshotStore", "MongoSnapshotStore", "TokenCollision",
]
