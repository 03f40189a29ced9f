"""Services — entitlement, evidence, categories, snapshots, activity and the Portal facade."""

from skills_portal.services.activity_log import ActivityLog
from skills_portal.services.category_aggregator import CategoryAggregator
from skills_portal.services.enrollment_provider import (
    CachedEnrollmentProvider,
    EnrollmentProvider,
    LearnWorldsEnrollmentProvider,
    StaticEnrollmentProvider,
)
from skills_portal.services.entitlement_resolver import EntitlementResolver
from skills_portal.services.evidence_collector import EvidenceCollector
from skills_portal.services.portal import Portal, build_portal, get_portal
from skills_portal.services.session_decoder import SessionDecoder
from skills_portal.services.snapshot_service import SnapshotService

__all__ = [
    "ActivityLog",
    "CategoryAggregator",
    "EnrollmentProvider", "CachedEnrollmentProvider",
    "LearnWorldsEnrollmentProvider", "StaticEnrollmentProvider",
    "EntitlementResolver",
    "EvidenceCollector",
    "Portal", "build_portal", "get_portal",
    "SessionDecoder",
    "SnapshotService",
]
