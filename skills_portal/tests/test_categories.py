"""
Tests: CategoryAggregator — knowledge completion, project counters,
snapshot projection and the dashboard matrix.

Run with:
    pytest skills_portal/tests/test_categories.py -v
"""

import pytest

from skills_portal.errors import NotFound, ValidationError
from skills_portal.models.schemas import CategoryCapabilityLink, CategoryCourseLink, SkillCategory
from skills_portal.persistence import InMemoryCategoryStore, InMemoryProgressStore
from skills_portal.services import CategoryAggregator


@pytest.fixture
def aggregator(clock):
    agg = CategoryAggregator(InMemoryCategoryStore(), InMemoryProgressStore(), clock=clock)
    agg.create_category(SkillCategory(
        id="pillar2", name="Pillar Two", slug="pillar_two",
        knowledge_description="GloBE rules", display_order=1,
    ))
    agg.create_category(SkillCategory(id="tp", name="Transfer Pricing", slug="transfer_pricing", display_order=2))
    agg.link_course(CategoryCourseLink(category_id="pillar2", course_id="K9", course_name="Pillar Two Masterclass",
                                       learning_hours=6))
    agg.link_course(CategoryCourseLink(category_id="pillar2", course_id="K10", course_name="GloBE Deep Dive"))
    agg.link_course(CategoryCourseLink(category_id="tp", course_id="K20", course_name="TP Basics",
                                       knowledge_description="Arm's length principle"))
    agg.link_capability(CategoryCapabilityLink(category_id="pillar2", capability_id="p2-calc",
                                               capability_name="GloBE Calculator",
                                               application_description="ETR computations", display_order=2))
    agg.link_capability(CategoryCapabilityLink(category_id="pillar2", capability_id="p2-safe-harbour",
                                               capability_name="Safe Harbour Checker", display_order=1))
    return agg


class TestKnowledgeCompletion:
    def test_scenario_d_course_completes_category(self, aggregator, alice):
        newly, created = aggregator.on_course_completion(alice, "K9", 100)
        assert created is True
        assert len(newly) == 1
        assert newly[0].category_id == "pillar2"
        assert newly[0].knowledge_completed is True
        assert newly[0].triggering_course_id == "K9"

    def test_first_course_wins(self, aggregator, clock, alice):
        aggregator.on_course_completion(alice, "K9", 100)
        first_completed_at = clock()
        clock.advance(days=3)
        newly, _ = aggregator.on_course_completion(alice, "K10", 90)

        assert newly == []
        [row] = [p for p in aggregator.progress.list_progress(alice.id) if p.category_id == "pillar2"]
        assert row.triggering_course_id == "K9"
        assert row.completed_at == first_completed_at

    def test_repeat_completion_is_not_new(self, aggregator, alice):
        aggregator.on_course_completion(alice, "K9", 80)
        newly, created = aggregator.on_course_completion(alice, "K9", 100)
        assert created is False
        assert newly == []
        [completion] = aggregator.progress.list_completions(alice.id)
        assert completion.progress_score == 100

    def test_unlinked_course_only_records_completion(self, aggregator, alice):
        newly, created = aggregator.on_course_completion(alice, "K99", 100)
        assert newly == []
        assert created is True
        assert aggregator.progress.list_progress(alice.id) == []

    def test_progress_is_per_principal(self, aggregator, alice, bob):
        aggregator.on_course_completion(alice, "K9", 100)
        newly, _ = aggregator.on_course_completion(bob, "K10", 100)
        assert newly[0].triggering_course_id == "K10"


class TestProjectCounter:
    def test_linked_capability_counts(self, aggregator, clock, alice):
        aggregator.on_capability_saved(alice, "p2-calc")
        clock.advance(hours=1)
        record = aggregator.on_capability_saved(alice, "p2-calc")
        assert record.project_count == 2
        assert record.last_used_at == clock()

    def test_unlinked_capability_is_ignored(self, aggregator, alice):
        assert aggregator.on_capability_saved(alice, "vat-validator") is None
        assert aggregator.progress.list_projects(alice.id) == []


class TestSnapshotProjection:
    def test_empty_principal_has_no_categories(self, aggregator, alice):
        assert aggregator.compute_snapshot(alice).categories == []

    def test_only_completed_courses_and_used_capabilities(self, aggregator, alice):
        aggregator.on_course_completion(alice, "K9", 95)
        aggregator.on_capability_saved(alice, "p2-calc")

        [category] = aggregator.compute_snapshot(alice).categories
        assert category.id == "pillar2"
        assert [c.course_id for c in category.courses] == ["K9"]
        course = category.courses[0]
        assert course.course_name == "Pillar Two Masterclass"
        assert course.knowledge_description == "GloBE rules"
        assert course.learning_hours == 6
        assert course.progress_score == 95
        assert [c.capability_id for c in category.capabilities] == ["p2-calc"]
        assert category.capabilities[0].project_count == 1

    def test_link_description_overrides_category(self, aggregator, alice):
        aggregator.on_course_completion(alice, "K20", 100)
        [category] = aggregator.compute_snapshot(alice).categories
        assert category.courses[0].knowledge_description == "Arm's length principle"

    def test_categories_in_display_order(self, aggregator, alice):
        aggregator.on_course_completion(alice, "K20", 100)
        aggregator.on_course_completion(alice, "K9", 100)
        assert [c.id for c in aggregator.compute_snapshot(alice).categories] == ["pillar2", "tp"]

    def test_inactive_categories_are_omitted(self, aggregator, alice):
        aggregator.on_course_completion(alice, "K20", 100)
        aggregator.deactivate_category("tp")
        assert aggregator.compute_snapshot(alice).categories == []

    def test_projection_is_idempotent(self, aggregator, clock, alice):
        aggregator.on_course_completion(alice, "K9", 100)
        first = aggregator.compute_snapshot(alice)
        clock.advance(days=10)
        assert aggregator.compute_snapshot(alice) == first


class TestMatrix:
    def test_matrix_lists_every_linked_capability(self, aggregator, alice):
        aggregator.on_course_completion(alice, "K9", 100)
        aggregator.on_capability_saved(alice, "p2-calc")

        pillar2, tp = aggregator.compute_matrix(alice)
        assert pillar2.knowledge_completed is True
        assert pillar2.triggering_course_id == "K9"
        assert [(c.capability_id, c.project_count) for c in pillar2.capabilities] == [
            ("p2-safe-harbour", 0),
            ("p2-calc", 1),
        ]
        assert tp.knowledge_completed is False
        assert tp.capabilities == []


class TestCatalogAdmin:
    def test_duplicate_category_rejected(self, aggregator):
        with pytest.raises(ValidationError):
            aggregator.create_category(SkillCategory(id="tp", name="Again", slug="again"))

    def test_update_unknown_category(self, aggregator):
        with pytest.raises(NotFound):
            aggregator.update_category("nope", name="Nope")

    def test_update_rejects_unknown_fields(self, aggregator):
        with pytest.raises(ValidationError):
            aggregator.update_category("tp", colour="red")

    def test_link_to_unknown_category(self, aggregator):
        with pytest.raises(ValidationError):
            aggregator.link_course(CategoryCourseLink(category_id="nope", course_id="K1"))

    def test_negative_learning_hours(self, aggregator):
        with pytest.raises(ValidationError):
            aggregator.link_course(CategoryCourseLink(category_id="tp", course_id="K1", learning_hours=-1))

    def test_unlink(self, aggregator):
        assert aggregator.unlink_capability("pillar2", "p2-calc") is True
        assert aggregator.unlink_capability("pillar2", "p2-calc") is False
        assert [l.capability_id for l in aggregator.categories.capabilities_for_category("pillar2")] == [
            "p2-safe-harbour"
        ]
