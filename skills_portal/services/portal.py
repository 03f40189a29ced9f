"""
Portal — wires the engine components together and owns the propagation
policy between them:

  • access checks are logged but never raise,
  • evidence and competency updates are best-effort and never fail the
    primary action,
  • course completions are pulled from the enrollment provider on sync.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from functools import lru_cache
from typing import Any, Callable, Optional

from skills_portal.config import Settings, get_settings
from skills_portal.errors import NotAuthenticated, NotAuthorized, SourceUnavailable
from skills_portal.models.enums import ActivityType, EvidenceType
from skills_portal.models.schemas import (
    AccessDecision,
    CapabilityProjectRecord,
    Evidence,
    Principal,
    PublicVerification,
    VerificationSnapshot,
)
from skills_portal.persistence import (
    AllocationStore,
    CapabilityStore,
    InMemoryAllocationStore,
    InMemoryCapabilityStore,
    InMemoryCategoryStore,
    InMemoryEvidenceRepository,
    InMemoryProgressStore,
    InMemorySnapshotStore,
    MongoAllocationStore,
    MongoCapabilityStore,
    MongoCategoryStore,
    MongoClient,
    MongoEvidenceRepository,
    MongoProgressStore,
    MongoSnapshotStore,
)
from skills_portal.services.activity_log import ActivityLog
from skills_portal.services.category_aggregator import CategoryAggregator
from skills_portal.services.enrollment_provider import (
    CachedEnrollmentProvider,
    EnrollmentProvider,
    LearnWorldsEnrollmentProvider,
    StaticEnrollmentProvider,
)
from skills_portal.services.entitlement_resolver import EntitlementResolver
from skills_portal.services.evidence_collector import EvidenceCollector, normalize_category
from skills_portal.services.snapshot_service import SnapshotService

logger = logging.getLogger(__name__)


class Portal:

    def __init__(
        self,
        allocations: AllocationStore,
        capabilities: CapabilityStore,
        enrollment: EnrollmentProvider,
        resolver: EntitlementResolver,
        evidence: EvidenceCollector,
        aggregator: CategoryAggregator,
        snapshots: SnapshotService,
        activity: ActivityLog,
    ):
        self.allocations = allocations
        self.capabilities = capabilities
        self.enrollment = enrollment
        self.resolver = resolver
        self.evidence = evidence
        self.aggregator = aggregator
        self.snapshots = snapshots
        self.activity = activity

    # ── Entitlement ──────────────────────────────────────

    def check_access(self, principal: Optional[Principal], capability_id: str) -> AccessDecision:
        decision = self.resolver.resolve(principal, capability_id)
        self.activity.record(
            ActivityType.CAPABILITY_ACCESS,
            f"Access {'granted' if decision.has_access else 'denied'} to {capability_id}",
            principal=principal,
            metadata={
                "capability_id": capability_id,
                "has_access": decision.has_access,
                "reason": decision.reason.value,
            },
        )
        return decision

    def record_capability_use(
        self, principal: Optional[Principal], capability_id: str
    ) -> Optional[Evidence]:
        """Count one use of a capability the principal may access."""
        if principal is None:
            raise NotAuthenticated()
        decision = self.resolver.resolve(principal, capability_id)
        if not decision.has_access:
            raise NotAuthorized(decision.reason.value)

        capability = self.capabilities.get(capability_id)
        name = capability.name if capability and capability.name else capability_id
        category = capability.category if capability else None
        return self._best_effort(
            "capability_used evidence",
            self.evidence.record_evidence,
            principal, EvidenceType.CAPABILITY_USED, capability_id, name, category,
        )

    def record_project_saved(
        self, principal: Optional[Principal], capability_id: str, project_name: str = ""
    ) -> Optional[CapabilityProjectRecord]:
        """
        Log the save, then update evidence and the category project counter.
        The save itself already happened; nothing here may fail it.
        """
        if principal is None:
            raise NotAuthenticated()
        self.activity.record(
            ActivityType.PROJECT_SAVE,
            f"Saved project {project_name or 'untitled'} in {capability_id}",
            principal=principal,
            metadata={"capability_id": capability_id, "project_name": project_name},
        )

        capability = self._best_effort("capability lookup", self.capabilities.get, capability_id)
        name = capability.name if capability and capability.name else capability_id
        self._best_effort(
            "work_saved evidence",
            self.evidence.record_evidence,
            principal, EvidenceType.WORK_SAVED, capability_id, name,
            capability.category if capability else None,
        )
        return self._best_effort(
            "project counter", self.aggregator.on_capability_saved, principal, capability_id
        )

    # ── Course completion sync ───────────────────────────

    def sync_course_completions(self, principal: Optional[Principal]) -> int:
        """Pull completion progress and roll it into categories. Returns newly completed count."""
        if principal is None:
            raise NotAuthenticated()
        try:
            rows = self.enrollment.get_course_completion_progress(principal)
        except SourceUnavailable as exc:
            logger.warning(f"Completion sync for {principal.id} skipped: {exc}")
            rows = []

        newly_completed = 0
        new_courses = 0
        for row in rows:
            if not row.completed:
                continue
            newly, created = self.aggregator.on_course_completion(
                principal, row.course_id, row.progress_score,
                course_name=row.title or None, completed_at=row.completed_at,
            )
            newly_completed += len(newly)
            # Set-once on every sync, so a failed award is repaired by the next one.
            self._best_effort(
                "course_completed evidence",
                self.evidence.ensure_evidence,
                principal, EvidenceType.COURSE_COMPLETED, row.course_id,
                row.title or row.course_id, self._course_category(row.course_id),
            )
            if created:
                new_courses += 1
                self.activity.record(
                    ActivityType.COURSE_COMPLETION,
                    f"Completed course {row.title or row.course_id}",
                    principal=principal,
                    metadata={"course_id": row.course_id, "progress_score": row.progress_score},
                )

        self.activity.record(
            ActivityType.SKILLS_SYNC,
            f"Synced {len(rows)} courses, {newly_completed} categories newly completed",
            principal=principal,
            metadata={"courses": len(rows), "new_courses": new_courses,
                      "categories_completed": newly_completed},
        )
        return newly_completed

    def _course_category(self, course_id: str) -> Optional[str]:
        for link in self.aggregator.categories.categories_for_course(course_id):
            category = self.aggregator.categories.get_category(link.category_id)
            if category is not None:
                slug = normalize_category(category.slug.replace("-", "_"))
                if slug != "cross_category":
                    return slug
        return None

    # ── Verification ─────────────────────────────────────

    def create_verification(
        self,
        principal: Optional[Principal],
        selected_category_ids: Optional[list[str]] = None,
        user_name: Optional[str] = None,
    ) -> VerificationSnapshot:
        snapshot = self.snapshots.create_snapshot(principal, selected_category_ids, user_name)
        self.activity.record(
            ActivityType.SKILLS_DOWNLOAD,
            "Created skills verification",
            principal=principal,
            metadata={
                "categories": len(snapshot.skills_snapshot.get("categories", [])),
                "selected_category_ids": snapshot.selected_category_ids,
            },
        )
        return snapshot

    def get_verification(self, token: str) -> PublicVerification:
        view = self.snapshots.public_view(token)
        self.activity.record(
            ActivityType.SKILLS_VERIFICATION,
            f"Verification viewed for {view.user_name}",
            user_name=view.user_name,
            metadata={"view_count": view.view_count},
        )
        return view

    # ── Internals ────────────────────────────────────────

    @staticmethod
    def _best_effort(label: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except Exception as exc:
            logger.warning(f"Best-effort {label} failed: {exc}")
            return None


# ── Wiring ───────────────────────────────────────────────


def build_enrollment_provider(settings: Settings) -> EnrollmentProvider:
    if settings.learnworlds_api_url:
        inner: EnrollmentProvider = LearnWorldsEnrollmentProvider(settings)
    else:
        logger.warning("No LearnWorlds API URL configured; using static enrollment provider")
        inner = StaticEnrollmentProvider()
    return CachedEnrollmentProvider(inner, settings.enrollment_cache_ttl_seconds)


def build_portal(
    settings: Settings | None = None,
    mongo: MongoClient | None = None,
    enrollment: EnrollmentProvider | None = None,
) -> Portal:
    """Assemble a Portal with the storage backend the settings select."""
    settings = settings or get_settings()

    if settings.storage_backend == "mongo":
        mongo = mongo or MongoClient(settings)
        mongo.ensure_indexes()
        allocations: AllocationStore = MongoAllocationStore(mongo)
        capabilities: CapabilityStore = MongoCapabilityStore(mongo)
        evidence_repo = MongoEvidenceRepository(mongo)
        categories = MongoCategoryStore(mongo)
        progress = MongoProgressStore(mongo)
        snapshot_store = MongoSnapshotStore(mongo)
        activity = ActivityLog(mongo)
    else:
        logger.warning(
            "In-memory storage selected: data is per-process and lost on restart. "
            "Set STORAGE_BACKEND=mongo outside tests and local development."
        )
        allocations = InMemoryAllocationStore()
        capabilities = InMemoryCapabilityStore()
        evidence_repo = InMemoryEvidenceRepository()
        categories = InMemoryCategoryStore()
        progress = InMemoryProgressStore()
        snapshot_store = InMemorySnapshotStore()
        activity = ActivityLog()

    enrollment = enrollment or build_enrollment_provider(settings)
    aggregator = CategoryAggregator(categories, progress)
    ttl = timedelta(days=settings.snapshot_ttl_days) if settings.snapshot_ttl_days else None

    logger.info(f"Portal assembled with {settings.storage_backend} storage")
    return Portal(
        allocations=allocations,
        capabilities=capabilities,
        enrollment=enrollment,
        resolver=EntitlementResolver(
            allocations, capabilities, enrollment,
            course_url_template=settings.course_url_template,
            school_url=settings.learnworlds_school_url,
        ),
        evidence=EvidenceCollector(evidence_repo),
        aggregator=aggregator,
        snapshots=SnapshotService(
            aggregator, snapshot_store, ttl=ttl, base_url=settings.public_base_url
        ),
        activity=activity,
    )


@lru_cache()
def get_portal() -> Portal:
    """Process-wide Portal built from the cached settings."""
    return build_portal(get_settings())
