"""
Tests: MongoDB store implementations against mongomock.

Run with:
    pytest skills_portal/tests/test_mongo_stores.py -v
"""

import pytest

mongomock = pytest.importorskip("mongomock")

from skills_portal.config import Settings
from skills_portal.models.enums import ActivityType, EvidenceType, SkillLevel
from skills_portal.models.schemas import (
    Capability,
    CategoryCapabilityLink,
    CategoryCourseLink,
    SkillCategory,
    VerificationSnapshot,
)
from skills_portal.persistence import (
    EvidenceKey,
    MongoAllocationStore,
    MongoCapabilityStore,
    MongoCategoryStore,
    MongoClient,
    MongoEvidenceRepository,
    MongoProgressStore,
    MongoSnapshotStore,
    TokenCollision,
)
from skills_portal.services import ActivityLog, CategoryAggregator, EvidenceCollector


@pytest.fixture
def mongo():
    client = MongoClient(Settings(mongodb_database="skills_test", _env_file=None), client=mongomock.MongoClient())
    client.ensure_indexes()
    return client


class TestMongoAllocationStore:
    def test_allocate_query_and_deactivate(self, mongo, clock):
        store = MongoAllocationStore(mongo, clock=clock)
        store.allocate("C1", "K1", "Course One")
        clock.advance(seconds=1)
        store.allocate("C1", "K2")
        clock.advance(seconds=1)
        store.allocate("C2", "K1")

        assert store.courses_for("C1") == ["K1", "K2"]
        assert sorted(store.capabilities_for("K1")) == ["C1", "C2"]
        assert store.allocations_for("C1")[0].course_name == "Course One"

        assert store.deactivate("C1", "K1") is True
        assert store.deactivate("C1", "K1") is False
        assert store.courses_for("C1") == ["K2"]

        again = store.allocate("C1", "K1")
        assert again.active is True
        assert again.course_name == "Course One"

    def test_replace_for_course(self, mongo, clock):
        store = MongoAllocationStore(mongo, clock=clock)
        store.allocate("C1", "K1")
        store.set_capabilities_for_course("K1", ["C2"])
        assert store.capabilities_for("K1") == ["C2"]


class TestMongoCapabilityStore:
    def test_upsert_and_get(self, mongo):
        store = MongoCapabilityStore(mongo)
        store.upsert(Capability(id="vat-validator", name="VAT Validator", is_premium=True))
        store.upsert(Capability(id="vat-validator", name="VAT Validator", is_premium=False))
        assert store.get("vat-validator").is_premium is False
        assert store.get("missing") is None
        assert [c.id for c in store.list_all()] == ["vat-validator"]


class TestMongoEvidenceRepository:
    def test_increment_and_conditional_level(self, mongo, clock, alice):
        collector = EvidenceCollector(MongoEvidenceRepository(mongo), clock=clock)
        for _ in range(5):
            row = collector.record_evidence(alice, EvidenceType.CAPABILITY_USED, "C3", "Tool")
        assert row.count == 5
        assert row.level == SkillLevel.PROFICIENT
        assert collector.repository.get(row.id).level == SkillLevel.PROFICIENT

    def test_stale_level_write_is_rejected(self, mongo, clock, alice):
        repo = MongoEvidenceRepository(mongo)
        key = EvidenceKey(alice.id, "Tool - Tool Proficiency", EvidenceType.CAPABILITY_USED, "C3")
        for _ in range(3):
            row = repo.increment(key, skill_category="vat", source_name="Tool",
                                 initial_level=SkillLevel.FAMILIAR, now=clock())
        assert row.count == 3
        assert repo.set_level(key.id, 2, SkillLevel.EXPERT) is False
        assert repo.get(key.id).level == SkillLevel.FAMILIAR

    def test_ensure_does_not_count_twice(self, mongo, clock, alice):
        repo = MongoEvidenceRepository(mongo)
        key = EvidenceKey(alice.id, "Pillar Two - Course Certified", EvidenceType.COURSE_COMPLETED, "K9")
        row, created = repo.ensure(key, skill_category="pillar_two", source_name="Pillar Two",
                                   level=SkillLevel.PROFICIENT, now=clock())
        assert created is True
        assert row.count == 1
        row, created = repo.ensure(key, skill_category="pillar_two", source_name="Pillar Two",
                                   level=SkillLevel.PROFICIENT, now=clock())
        assert created is False
        assert row.count == 1

    def test_visibility(self, mongo, clock, alice, bob):
        collector = EvidenceCollector(MongoEvidenceRepository(mongo), clock=clock)
        row = collector.record_evidence(alice, EvidenceType.WORK_SAVED, "C3", "Tool")
        assert collector.set_visibility(bob, row.id, False) is False
        assert collector.set_visibility(alice, row.id, False) is True
        assert collector.list_evidence(alice, visible_only=True) == []


class TestMongoCategoriesAndProgress:
    def test_first_wins_and_projection(self, mongo, clock, alice):
        aggregator = CategoryAggregator(MongoCategoryStore(mongo), MongoProgressStore(mongo), clock=clock)
        aggregator.create_category(SkillCategory(id="pillar2", name="Pillar2", slug="pillar_two"))
        aggregator.link_course(CategoryCourseLink(category_id="pillar2", course_id="K9"))
        aggregator.link_course(CategoryCourseLink(category_id="pillar2", course_id="K10"))
        aggregator.link_capability(CategoryCapabilityLink(category_id="pillar2", capability_id="p2-calc"))

        newly, created = aggregator.on_course_completion(alice, "K9", 100)
        assert created is True
        assert newly[0].triggering_course_id == "K9"

        clock.advance(days=1)
        newly, _ = aggregator.on_course_completion(alice, "K10", 100)
        assert newly == []
        [progress] = aggregator.progress.list_progress(alice.id)
        assert progress.triggering_course_id == "K9"

        _, created = aggregator.on_course_completion(alice, "K9", 50)
        assert created is False

        assert aggregator.on_capability_saved(alice, "p2-calc").project_count == 1
        assert aggregator.on_capability_saved(alice, "p2-calc").project_count == 2

        [category] = aggregator.compute_snapshot(alice).categories
        assert sorted(c.course_id for c in category.courses) == ["K10", "K9"]
        assert category.capabilities[0].project_count == 2


class TestMongoSnapshotStore:
    def test_insert_view_and_collision(self, mongo, clock, alice):
        store = MongoSnapshotStore(mongo)
        snapshot = VerificationSnapshot(
            token="tok-1", principal_id=alice.id, principal_email=alice.email, user_name="alice",
            skills_snapshot={"categories": [{"id": "pillar2"}]}, created_at=clock(),
        )
        store.insert(snapshot)
        with pytest.raises(TokenCollision):
            store.insert(snapshot)

        assert store.record_view("tok-1", clock()).view_count == 1
        viewed = store.record_view("tok-1", clock())
        assert viewed.view_count == 2
        assert viewed.skills_snapshot == {"categories": [{"id": "pillar2"}]}
        assert store.record_view("tok-2", clock()) is None
        assert [s.token for s in store.list_for_principal(alice.id)] == ["tok-1"]


class TestMongoActivityLog:
    def test_query(self, mongo, clock, alice):
        log = ActivityLog(mongo, clock=clock)
        log.record(ActivityType.CAPABILITY_ACCESS, "Access granted", principal=alice)
        log.record(ActivityType.PROJECT_SAVE, "Saved", principal=alice)

        entries, total = log.query(type=ActivityType.PROJECT_SAVE)
        assert total == 1
        assert entries[0].description == "Saved"
        assert log.query(principal_id=alice.id)[1] == 2
