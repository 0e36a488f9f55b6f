"""Enumeration types for the course generation pipeline."""

from enum import Enum
from typing import Optional


class Stage(str, Enum):
    """Pipeline stages."""

    A = "A"  # Architect: course markdown + metadata
    B = "B"  # Inspector: quiz
    C = "C"  # Teacher: explanations


class Severity(str, Enum):
    """Severity levels for diagnostics."""

    WARNING = "warning"
    ERROR = "error"


class Category(str, Enum):
    """Course categories accepted in course metadata."""

    HEALTHCARE_COMPLIANCE = "Healthcare Compliance"
    CYBERSECURITY = "Cybersecurity and Technology"
    HR_ETHICS = "HR & Ethics"
    MEDICAL_EQUIPMENT = "Medical Equipment"
    OTHER = "Other"


class Difficulty(str, Enum):
    """Target complexity of the course content."""

    BEGINNER = "Beginner"
    MODERATE = "Moderate"
    ADVANCED = "Advanced"


class Duration(str, Enum):
    """Estimated course duration buckets."""

    UNDER_30_MINS = "< 30 mins"
    UNDER_45_MINS = "< 45 mins"
    UNDER_1_HOUR = "< 1 hour"
    ONE_TO_TWO_HOURS = "1-2 hours"
    OVER_2_HOURS = "2+ hours"


class QuestionDifficulty(str, Enum):
    """Cognitive level of a quiz question."""

    RECALL = "recall"
    APPLICATION = "application"
    JUDGMENT = "judgment"


class RunStatus(str, Enum):
    """States of a single pipeline run."""

    NOT_STARTED = "NotStarted"
    RUNNING_A = "RunningA"
    RUNNING_B = "RunningB"
    RUNNING_C = "RunningC"
    PARSING = "Parsing"
    COMPLETED = "Completed"
    COMPLETED_WITH_WARNINGS = "CompletedWithWarnings"
    FAILED = "Failed"


class InvocationErrorKind(str, Enum):
    """Classification of model invocation failures."""

    RATE_LIMIT = "rate_limit"
    TRANSPORT = "transport"
    EMPTY_RESPONSE = "empty_response"
    UNKNOWN = "unknown"


class FailureCategory(str, Enum):
    """Why a stage failed."""

    INVOCATION = "invocation"
    PARSE = "parse"
    VALIDATION = "validation"


def match_enum(enum_cls: type[Enum], value: object) -> Optional[Enum]:
    """Match a loosely formatted value against an enum's values.

    Comparison ignores case and surrounding whitespace.

    Returns:
        The matching member, or None.
    """
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str):
        return None

    needle = value.strip().casefold()
    for member in enum_cls:
        if member.value.casefold() == needle:
            return member
    return None
