"""
Evidence Collector — records countable skill evidence and derives its level.

Skill names are derived from the source name and evidence type:
    course_completed → "<name> - Course Certified"
    capability_used  → "<name> - Tool Proficiency"
    work_saved       → "<name> - Applied Practice"

Levels:
    course_completed → proficient, whatever the count
    capability_used  → familiar <5, proficient 5-14, expert ≥15
    work_saved       → familiar <5, proficient ≥5
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Callable, Optional

from skills_portal.errors import NotAuthenticated, ValidationError
from skills_portal.models.enums import EvidenceType, SkillLevel
from skills_portal.models.schemas import Evidence, EvidenceSummary, Principal, utcnow
from skills_portal.persistence.evidence_repository import EvidenceKey, EvidenceRepository

logger = logging.getLogger(__name__)

SKILL_CATEGORIES = (
    "pillar_two",
    "transfer_pricing",
    "vat",
    "fatca_crs",
    "withholding_tax",
    "pe_assessment",
    "cross_category",
)
DEFAULT_SKILL_CATEGORY = "cross_category"

_COURSE_WORDS = re.compile(
    r"\s*\b(masterclass|course|training|certification|fundamentals|advanced|basics|module|program)\b",
    re.IGNORECASE,
)
_TOOL_WORDS = re.compile(
    r"\s*\b(calculator|tool|checker|validator|generator|assessment|form)\b",
    re.IGNORECASE,
)

_SUFFIX = {
    EvidenceType.COURSE_COMPLETED: "Course Certified",
    EvidenceType.CAPABILITY_USED: "Tool Proficiency",
    EvidenceType.WORK_SAVED: "Applied Practice",
}


def level_for(evidence_type: EvidenceType, count: int) -> SkillLevel:
    """Pure leveling rule."""
    if evidence_type == EvidenceType.COURSE_COMPLETED:
        return SkillLevel.PROFICIENT
    if evidence_type == EvidenceType.CAPABILITY_USED:
        if count >= 15:
            return SkillLevel.EXPERT
        if count >= 5:
            return SkillLevel.PROFICIENT
        return SkillLevel.FAMILIAR
    return SkillLevel.PROFICIENT if count >= 5 else SkillLevel.FAMILIAR


def skill_name_for(evidence_type: EvidenceType, source_name: str, fallback: str = "") -> str:
    pattern = _COURSE_WORDS if evidence_type == EvidenceType.COURSE_COMPLETED else _TOOL_WORDS
    clean = re.sub(r"\s{2,}", " ", pattern.sub("", source_name or "")).strip(" -")
    return f"{clean or fallback} - {_SUFFIX[evidence_type]}"


def normalize_category(category: Optional[str]) -> str:
    value = (category or "").strip().lower()
    return value if value in SKILL_CATEGORIES else DEFAULT_SKILL_CATEGORY


class EvidenceCollector:

    def __init__(self, repository: EvidenceRepository, clock: Callable[[], datetime] = utcnow):
        self.repository = repository
        self._clock = clock

    def record_evidence(
        self,
        principal: Optional[Principal],
        evidence_type: EvidenceType | str,
        source_id: str,
        source_name: Optional[str] = None,
        category: Optional[str] = None,
    ) -> Evidence:
        """Create or increment the evidence row for this event and return it."""
        key = self._key(principal, evidence_type, source_id, source_name)
        evidence_type = key.evidence_type
        row = self.repository.increment(
            key,
            skill_category=normalize_category(category),
            source_name=source_name,
            initial_level=level_for(evidence_type, 1),
            now=self._clock(),
        )

        level = level_for(evidence_type, row.count)
        if level != row.level:
            # Conditional on count: a concurrent, later increment owns the level.
            self.repository.set_level(row.id, row.count, level)
            row = row.model_copy(update={"level": level})

        logger.info(
            f"Evidence {evidence_type.value} for {principal.id}: "
            f"{key.skill_name} x{row.count} ({row.level.value})"
        )
        return row

    def ensure_evidence(
        self,
        principal: Optional[Principal],
        evidence_type: EvidenceType | str,
        source_id: str,
        source_name: Optional[str] = None,
        category: Optional[str] = None,
    ) -> Evidence:
        """
        Make sure the evidence row exists without counting the event again.
        Used for one-time awards that a later sync may need to repair.
        """
        key = self._key(principal, evidence_type, source_id, source_name)
        row, created = self.repository.ensure(
            key,
            skill_category=normalize_category(category),
            source_name=source_name,
            level=level_for(key.evidence_type, 1),
            now=self._clock(),
        )
        if created:
            logger.info(f"Evidence {key.evidence_type.value} for {principal.id}: {key.skill_name} awarded")
        return row

    @staticmethod
    def _key(
        principal: Optional[Principal],
        evidence_type: EvidenceType | str,
        source_id: str,
        source_name: Optional[str],
    ) -> EvidenceKey:
        if principal is None:
            raise NotAuthenticated()
        try:
            evidence_type = EvidenceType(evidence_type)
        except ValueError:
            raise ValidationError(f"unknown evidence type: {evidence_type!r}")
        if not source_id or not str(source_id).strip():
            raise ValidationError("source_id is required")
        return EvidenceKey(
            principal_id=principal.id,
            skill_name=skill_name_for(evidence_type, source_name or "", fallback=source_id),
            evidence_type=evidence_type,
            source_id=source_id,
        )

    def list_evidence(self, principal: Principal, visible_only: bool = False) -> list[Evidence]:
        return self.repository.list_for_principal(principal.id, visible_only=visible_only)

    def summarize(self, principal: Principal) -> EvidenceSummary:
        rows = self.list_evidence(principal)
        summary = EvidenceSummary(
            total_skills=len(rows),
            by_level={level.value: 0 for level in SkillLevel},
            by_evidence={t.value: 0 for t in EvidenceType},
        )
        for row in rows:
            summary.by_category[row.skill_category] = summary.by_category.get(row.skill_category, 0) + 1
            summary.by_level[row.level.value] += 1
            summary.by_evidence[row.evidence_type.value] += 1
        return summary

    def set_visibility(self, principal: Principal, evidence_id: str, visible: bool) -> bool:
        return self.repository.set_visibility(principal.id, evidence_id, visible)
