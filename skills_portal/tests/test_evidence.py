"""
Tests: EvidenceCollector — skill naming, leveling, atomic counting, visibility.

Run with:
    pytest skills_portal/tests/test_evidence.py -v
"""

import threading

import pytest

from skills_portal.errors import NotAuthenticated, ValidationError
from skills_portal.models.enums import EvidenceType, SkillLevel
from skills_portal.persistence import InMemoryEvidenceRepository
from skills_portal.services import EvidenceCollector
from skills_portal.services.evidence_collector import level_for, normalize_category, skill_name_for


@pytest.fixture
def collector(clock):
    return EvidenceCollector(InMemoryEvidenceRepository(), clock=clock)


class TestLeveling:
    @pytest.mark.parametrize("count,level", [
        (1, SkillLevel.FAMILIAR),
        (4, SkillLevel.FAMILIAR),
        (5, SkillLevel.PROFICIENT),
        (14, SkillLevel.PROFICIENT),
        (15, SkillLevel.EXPERT),
        (40, SkillLevel.EXPERT),
    ])
    def test_capability_used(self, count, level):
        assert level_for(EvidenceType.CAPABILITY_USED, count) == level

    @pytest.mark.parametrize("count,level", [
        (1, SkillLevel.FAMILIAR),
        (4, SkillLevel.FAMILIAR),
        (5, SkillLevel.PROFICIENT),
        (50, SkillLevel.PROFICIENT),
    ])
    def test_work_saved(self, count, level):
        assert level_for(EvidenceType.WORK_SAVED, count) == level

    @pytest.mark.parametrize("count", [1, 2, 100])
    def test_course_completed_is_always_proficient(self, count):
        assert level_for(EvidenceType.COURSE_COMPLETED, count) == SkillLevel.PROFICIENT

    def test_level_never_decreases_with_count(self):
        for evidence_type in EvidenceType:
            ranks = [level_for(evidence_type, n).rank for n in range(1, 30)]
            assert ranks == sorted(ranks)


class TestSkillNames:
    def test_course_words_are_stripped(self):
        name = skill_name_for(EvidenceType.COURSE_COMPLETED, "Pillar Two Masterclass")
        assert name == "Pillar Two - Course Certified"

    def test_tool_words_are_stripped(self):
        name = skill_name_for(EvidenceType.CAPABILITY_USED, "Pillar Two Calculator")
        assert name == "Pillar Two - Tool Proficiency"

    def test_work_saved_suffix(self):
        name = skill_name_for(EvidenceType.WORK_SAVED, "VAT Number Validator")
        assert name == "VAT Number - Applied Practice"

    def test_empty_name_falls_back_to_source_id(self):
        name = skill_name_for(EvidenceType.CAPABILITY_USED, "Calculator", fallback="calc-1")
        assert name == "calc-1 - Tool Proficiency"

    def test_category_normalisation(self):
        assert normalize_category("VAT") == "vat"
        assert normalize_category("transfer_pricing") == "transfer_pricing"
        assert normalize_category("astrology") == "cross_category"
        assert normalize_category(None) == "cross_category"


class TestRecordEvidence:
    def test_scenario_c_fifth_use_promotes(self, collector, alice):
        for _ in range(4):
            row = collector.record_evidence(
                alice, EvidenceType.CAPABILITY_USED, "C3", "Withholding Tax Calculator", "withholding_tax"
            )
        assert row.count == 4
        assert row.level == SkillLevel.FAMILIAR

        row = collector.record_evidence(
            alice, EvidenceType.CAPABILITY_USED, "C3", "Withholding Tax Calculator", "withholding_tax"
        )
        assert row.count == 5
        assert row.level == SkillLevel.PROFICIENT
        assert collector.repository.get(row.id).level == SkillLevel.PROFICIENT

    def test_fifteenth_use_is_expert(self, collector, alice):
        for _ in range(15):
            row = collector.record_evidence(alice, EvidenceType.CAPABILITY_USED, "C3", "Tool")
        assert row.level == SkillLevel.EXPERT

    def test_course_completion_created_proficient(self, collector, alice):
        row = collector.record_evidence(alice, EvidenceType.COURSE_COMPLETED, "K9", "Pillar Two Fundamentals")
        assert row.count == 1
        assert row.level == SkillLevel.PROFICIENT
        assert row.skill_name == "Pillar Two - Course Certified"

    def test_one_row_per_key(self, collector, alice, bob):
        collector.record_evidence(alice, EvidenceType.CAPABILITY_USED, "C3", "Tool")
        collector.record_evidence(alice, EvidenceType.CAPABILITY_USED, "C3", "Tool")
        collector.record_evidence(alice, EvidenceType.WORK_SAVED, "C3", "Tool")
        collector.record_evidence(bob, EvidenceType.CAPABILITY_USED, "C3", "Tool")
        assert len(collector.list_evidence(alice)) == 2
        assert len(collector.list_evidence(bob)) == 1

    def test_string_type_is_accepted(self, collector, alice):
        row = collector.record_evidence(alice, "work_saved", "C3", "Tool")
        assert row.evidence_type == EvidenceType.WORK_SAVED

    def test_missing_principal(self, collector):
        with pytest.raises(NotAuthenticated):
            collector.record_evidence(None, EvidenceType.CAPABILITY_USED, "C3", "Tool")

    def test_unknown_type(self, collector, alice):
        with pytest.raises(ValidationError):
            collector.record_evidence(alice, "telepathy", "C3", "Tool")

    def test_empty_source_id(self, collector, alice):
        with pytest.raises(ValidationError):
            collector.record_evidence(alice, EvidenceType.CAPABILITY_USED, "  ", "Tool")

    def test_concurrent_increments_are_not_lost(self, collector, alice):
        def use():
            for _ in range(10):
                collector.record_evidence(alice, EvidenceType.CAPABILITY_USED, "C3", "Tool")

        threads = [threading.Thread(target=use) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        [row] = collector.list_evidence(alice)
        assert row.count == 80
        assert row.level == SkillLevel.EXPERT

    def test_ensure_is_set_once(self, collector, clock, alice):
        first = collector.ensure_evidence(alice, EvidenceType.COURSE_COMPLETED, "K9", "Pillar Two Masterclass")
        clock.advance(days=1)
        again = collector.ensure_evidence(alice, EvidenceType.COURSE_COMPLETED, "K9", "Pillar Two Masterclass")
        assert first.count == again.count == 1
        assert again.acquired_at == first.acquired_at
        assert again.level == SkillLevel.PROFICIENT


class TestListingAndVisibility:
    def test_ordered_by_level_then_recency(self, collector, clock, alice):
        collector.record_evidence(alice, EvidenceType.CAPABILITY_USED, "old-tool", "Old Tool")
        clock.advance(days=1)
        collector.record_evidence(alice, EvidenceType.CAPABILITY_USED, "new-tool", "New Tool")
        clock.advance(days=1)
        collector.record_evidence(alice, EvidenceType.COURSE_COMPLETED, "K1", "VAT Course")

        names = [e.source_id for e in collector.list_evidence(alice)]
        assert names == ["K1", "new-tool", "old-tool"]

    def test_hidden_rows_are_filtered(self, collector, alice):
        row = collector.record_evidence(alice, EvidenceType.CAPABILITY_USED, "C3", "Tool")
        assert collector.set_visibility(alice, row.id, False) is True
        assert collector.list_evidence(alice, visible_only=True) == []
        assert len(collector.list_evidence(alice)) == 1

    def test_cannot_hide_someone_elses_row(self, collector, alice, bob):
        row = collector.record_evidence(alice, EvidenceType.CAPABILITY_USED, "C3", "Tool")
        assert collector.set_visibility(bob, row.id, False) is False
        assert collector.repository.get(row.id).is_visible is True

    def test_summary(self, collector, alice):
        collector.record_evidence(alice, EvidenceType.CAPABILITY_USED, "C3", "Tool", "vat")
        collector.record_evidence(alice, EvidenceType.COURSE_COMPLETED, "K1", "VAT Course", "vat")
        collector.record_evidence(alice, EvidenceType.WORK_SAVED, "C3", "Tool")

        summary = collector.summarize(alice)
        assert summary.total_skills == 3
        assert summary.by_category == {"vat": 2, "cross_category": 1}
        assert summary.by_level["proficient"] == 1
        assert summary.by_level["familiar"] == 2
        assert summary.by_level["expert"] == 0
        assert summary.by_evidence == {"course_completed": 1, "capability_used": 1, "work_saved": 1}
