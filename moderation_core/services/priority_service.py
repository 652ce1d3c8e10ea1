from moderation_core.schemas.report import ReportReason

DEFAULT_PRIORITY = 5

PRIORITY_MAP: dict[str, int] = {
    ReportReason.self_harm.value: 1,
    ReportReason.hate_speech.value: 2,
    ReportReason.harassment.value: 2,
    ReportReason.inappropriate_content.value: 3,
    ReportReason.spam.value: 3,
    ReportReason.copyright_violation.value: 3,
    ReportReason.impersonation.value: 3,
    ReportReason.other.value: 4,
}

# Moderator flags never enter the queue below this priority
MODERATOR_FLAG_MAX_PRIORITY = 2


def calculate_priority(reason: ReportReason | str) -> int:
    """Map a report reason to 1 (most urgent) .. 5. Unknown reasons get 5."""
    key = reason.value if isinstance(reason, ReportReason) else reason
    return PRIORITY_MAP.get(key, DEFAULT_PRIORITY)


def moderator_flag_priority(reason: ReportReason | str, override: int | None = None) -> int:
    if override is not None:
        return override
    return min(calculate_priority(reason), MODERATOR_FLAG_MAX_PRIORITY)
