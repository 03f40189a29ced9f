from enum import Enum


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class AccessReason(str, Enum):
    ADMIN = "admin"
    ENROLLED = "enrolled"
    NO_ENROLLMENT = "no_enrollment"
    NOT_AUTHENTICATED = "not_authenticated"


class EvidenceType(str, Enum):
    COURSE_COMPLETED = "course_completed"
    CAPABILITY_USED = "capability_used"
    WORK_SAVED = "work_saved"


class SkillLevel(str, Enum):
    FAMILIAR = "familiar"
    PROFICIENT = "proficient"
    EXPERT = "expert"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]


_LEVEL_RANK = {
    SkillLevel.FAMILIAR: 1,
    SkillLevel.PROFICIENT: 2,
    SkillLevel.EXPERT: 3,
}


class ActivityType(str, Enum):
    CAPABILITY_ACCESS = "capability_access"
    EVIDENCE_RECORDED = "evidence_recorded"
    PROJECT_SAVE = "project_save"
    COURSE_COMPLETION = "course_completion"
    SKILLS_SYNC = "skills_sync"
    SKILLS_DOWNLOAD = "skills_download"
    SKILLS_VERIFICATION = "skills_verification"
    ADMIN_ACTION = "admin_action"
