"""Structural and cross-stage validation of parsed stage payloads.

Each validator takes the raw parsed JSON value and returns a tuple of
(artifact or None, diagnostics). Errors are fatal for the stage and mean
no artifact is returned; warnings never block the artifact.

Severity policy:
- Missing/mistyped required fields, enum violations, malformed questions,
  and a quiz question without an explanation are errors.
- Count mismatches, explanations for unknown question ids, duplicate
  explanation entries and bad optional fields are warnings.
"""

from typing import Any, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from coursegen.models import (
    OPTIONS_PER_QUESTION,
    Category,
    CourseMeta,
    Difficulty,
    DiagnosticWarning,
    Duration,
    ExplanationsOutput,
    QuestionDifficulty,
    QuestionExplanation,
    QuizOutput,
    QuizQuestion,
    Severity,
    Stage,
    match_enum,
)

logger = structlog.get_logger(__name__)

DiagnosticList = list[DiagnosticWarning]


def _error(stage: Stage, code: str, message: str, question_id: Optional[str] = None) -> DiagnosticWarning:
    return DiagnosticWarning(
        stage=stage, severity=Severity.ERROR, code=code, message=message, question_id=question_id
    )


def _warning(stage: Stage, code: str, message: str, question_id: Optional[str] = None) -> DiagnosticWarning:
    return DiagnosticWarning(
        stage=stage, severity=Severity.WARNING, code=code, message=message, question_id=question_id
    )


def _has_errors(diagnostics: DiagnosticList) -> bool:
    return any(d.is_error for d in diagnostics)


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _first_present(data: dict, *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


# =============================================================================
# Stage A: CourseMeta
# =============================================================================

ENUM_FIELDS = (
    ("category", Category, "INVALID_CATEGORY"),
    ("difficulty", Difficulty, "INVALID_DIFFICULTY"),
    ("duration", Duration, "INVALID_DURATION"),
)


def validate_course_meta(obj: Any) -> tuple[Optional[CourseMeta], DiagnosticList]:
    """Validate Stage A course metadata.

    Args:
        obj: Parsed JSON value from the Stage A payload.

    Returns:
        (CourseMeta or None, diagnostics)
    """
    stage = Stage.A
    diagnostics: DiagnosticList = []

    if not isinstance(obj, dict):
        diagnostics.append(_error(stage, "INVALID_COURSE_META", "courseMeta is not a JSON object"))
        return None, diagnostics

    normalized: dict[str, Any] = {}

    for field in ("title", "description"):
        value = obj.get(field)
        if value is None:
            diagnostics.append(_error(stage, "MISSING_FIELD", f"courseMeta missing required field: {field}"))
        elif not isinstance(value, str):
            diagnostics.append(_error(stage, "INVALID_FIELD_TYPE", f"courseMeta.{field} must be a string"))
        elif field == "title" and not value.strip():
            diagnostics.append(_error(stage, "MISSING_FIELD", "courseMeta.title is empty"))
        else:
            normalized[field] = value.strip()

    for field, enum_cls, code in ENUM_FIELDS:
        value = obj.get(field)
        if value is None:
            diagnostics.append(_error(stage, "MISSING_FIELD", f"courseMeta missing required field: {field}"))
            continue
        member = match_enum(enum_cls, value)
        if member is None:
            allowed = ", ".join(m.value for m in enum_cls)
            diagnostics.append(_error(stage, code, f"courseMeta.{field} '{value}' is not one of: {allowed}"))
        else:
            normalized[field] = member

    objectives = obj.get("objectives")
    if objectives is None:
        diagnostics.append(_error(stage, "MISSING_FIELD", "courseMeta missing required field: objectives"))
    elif not isinstance(objectives, list):
        diagnostics.append(_error(stage, "INVALID_FIELD_TYPE", "courseMeta.objectives must be an array"))
    elif not objectives:
        diagnostics.append(_error(stage, "EMPTY_OBJECTIVES", "courseMeta.objectives must not be empty"))
    elif not all(_non_empty_str(o) for o in objectives):
        diagnostics.append(_error(stage, "INVALID_OBJECTIVE", "courseMeta.objectives must be non-empty strings"))
    else:
        normalized["objectives"] = [o.strip() for o in objectives]

    compliance = obj.get("complianceMapping", obj.get("compliance_mapping"))
    if compliance is None:
        diagnostics.append(_warning(stage, "MISSING_COMPLIANCE_MAPPING", "courseMeta.complianceMapping missing; using empty string"))
        normalized["compliance_mapping"] = ""
    elif not isinstance(compliance, str):
        diagnostics.append(_error(stage, "INVALID_FIELD_TYPE", "courseMeta.complianceMapping must be a string"))
    else:
        normalized["compliance_mapping"] = compliance.strip()

    if _has_errors(diagnostics):
        return None, diagnostics

    try:
        return CourseMeta(**normalized), diagnostics
    except PydanticValidationError as e:
        diagnostics.append(_error(stage, "SCHEMA_VIOLATION", f"courseMeta failed schema validation: {e}"))
        return None, diagnostics


# =============================================================================
# Stage B: Quiz
# =============================================================================

def _validate_question(
    raw: Any,
    position: int,
    seen_ids: set[str],
    objective_count: Optional[int],
    diagnostics: DiagnosticList,
) -> Optional[dict]:
    """Validate one question dict. Appends diagnostics; returns normalized fields."""
    stage = Stage.B

    if not isinstance(raw, dict):
        diagnostics.append(_error(stage, "INVALID_QUESTION", f"Question #{position + 1} is not an object"))
        return None

    qid = raw.get("id")
    if isinstance(qid, int) and not isinstance(qid, bool):
        qid = str(qid)
    if not _non_empty_str(qid):
        diagnostics.append(_error(stage, "MISSING_QUESTION_ID", f"Question #{position + 1} has no id"))
        return None
    qid = qid.strip()

    if qid in seen_ids:
        diagnostics.append(_error(stage, "DUPLICATE_QUESTION_ID", f"Duplicate question id: {qid}", qid))
        return None
    seen_ids.add(qid)

    ok = True
    text = _first_present(raw, "text", "questionText")
    if not _non_empty_str(text):
        diagnostics.append(_error(stage, "MISSING_QUESTION_TEXT", f"Question {qid} has no text", qid))
        ok = False

    options = raw.get("options")
    if (
        not isinstance(options, list)
        or len(options) != OPTIONS_PER_QUESTION
        or not all(_non_empty_str(o) for o in options)
    ):
        diagnostics.append(_error(
            stage, "INVALID_OPTIONS",
            f"Question {qid} must have exactly {OPTIONS_PER_QUESTION} non-empty options", qid,
        ))
        ok = False

    index = _first_present(raw, "correctAnswerIndex", "correctAnswer")
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < OPTIONS_PER_QUESTION:
        diagnostics.append(_error(
            stage, "INVALID_CORRECT_ANSWER",
            f"Question {qid} has invalid correctAnswerIndex: {index!r}", qid,
        ))
        ok = False

    if not ok:
        return None

    question = {
        "id": qid,
        "text": text.strip(),
        "options": [o.strip() for o in options],
        "correct_answer_index": index,
    }

    difficulty = raw.get("difficulty")
    if difficulty is not None:
        member = match_enum(QuestionDifficulty, difficulty)
        if member is None:
            diagnostics.append(_warning(
                stage, "INVALID_QUESTION_DIFFICULTY",
                f"Question {qid} has unknown difficulty '{difficulty}'; ignored", qid,
            ))
        else:
            question["difficulty"] = member

    objective_index = raw.get("objectiveIndex")
    if objective_index is not None:
        valid = isinstance(objective_index, int) and not isinstance(objective_index, bool) and objective_index >= 0
        if valid and objective_count is not None and objective_index >= objective_count:
            valid = False
        if valid:
            question["objective_index"] = objective_index
        else:
            diagnostics.append(_warning(
                stage, "INVALID_OBJECTIVE_REF",
                f"Question {qid} references non-existent objective: {objective_index!r}", qid,
            ))

    return question


def validate_quiz(
    obj: Any,
    expected_count: Optional[int] = None,
    course_meta: Optional[CourseMeta] = None,
) -> tuple[Optional[QuizOutput], DiagnosticList]:
    """Validate Stage B quiz output.

    Args:
        obj: Parsed JSON value: {"questions": [...]} or a bare question array.
        expected_count: Target question count; a mismatch is a warning.
        course_meta: When given, objective references are checked against it.

    Returns:
        (QuizOutput or None, diagnostics)
    """
    stage = Stage.B
    diagnostics: DiagnosticList = []

    questions_raw = obj.get("questions") if isinstance(obj, dict) else obj
    if isinstance(obj, dict) and "questions" not in obj:
        diagnostics.append(_error(stage, "MISSING_QUESTIONS", "Quiz must have a questions array"))
        return None, diagnostics
    if not isinstance(questions_raw, list):
        diagnostics.append(_error(stage, "INVALID_QUIZ", "Quiz questions must be an array"))
        return None, diagnostics
    if not questions_raw:
        diagnostics.append(_error(stage, "EMPTY_QUIZ", "Quiz contains no questions"))
        return None, diagnostics

    objective_count = len(course_meta.objectives) if course_meta else None
    seen_ids: set[str] = set()
    questions = [
        _validate_question(raw, position, seen_ids, objective_count, diagnostics)
        for position, raw in enumerate(questions_raw)
    ]

    if expected_count is not None and len(questions_raw) != expected_count:
        diagnostics.append(_warning(
            stage, "QUESTION_COUNT_MISMATCH",
            f"Expected {expected_count} questions, got {len(questions_raw)}",
        ))

    if _has_errors(diagnostics):
        return None, diagnostics

    try:
        quiz = QuizOutput(questions=[QuizQuestion(**q) for q in questions])
    except PydanticValidationError as e:
        diagnostics.append(_error(stage, "SCHEMA_VIOLATION", f"Quiz failed schema validation: {e}"))
        return None, diagnostics

    return quiz, diagnostics


# =============================================================================
# Stage C: Explanations
# =============================================================================

def _explanation_entries(obj: Any) -> Optional[list[tuple[str, Any]]]:
    """Flatten the accepted explanation layouts into (question_id, entry) pairs.

    Accepted layouts:
    - {"explanations": [{"questionId": ..., "explanation": ...}, ...]}
    - {"explanations": {"q01": "text" | {...}}}
    - a bare list or mapping of the same shapes
    """
    container = obj.get("explanations", obj) if isinstance(obj, dict) else obj

    if isinstance(container, dict):
        return [(str(k), v) for k, v in container.items()]

    if isinstance(container, list):
        entries = []
        for item in container:
            if isinstance(item, dict):
                qid = _first_present(item, "questionId", "question_id", "id")
                entries.append((str(qid) if qid is not None else "", item))
            else:
                entries.append(("", item))
        return entries

    return None


def _entry_text(entry: Any) -> Optional[str]:
    if isinstance(entry, str):
        return entry
    if isinstance(entry, dict):
        value = _first_present(entry, "explanation", "correctExplanation", "text")
        return value if isinstance(value, str) else None
    return None


def _incorrect_options(
    entry: Any,
    question: QuizQuestion,
    diagnostics: DiagnosticList,
) -> dict[str, str]:
    if not isinstance(entry, dict):
        return {}
    raw = _first_present(entry, "incorrectOptions", "incorrect_options")
    if raw is None:
        return {}

    valid_keys = {str(i) for i in range(OPTIONS_PER_QUESTION) if i != question.correct_answer_index}
    if not isinstance(raw, dict):
        diagnostics.append(_warning(
            Stage.C, "INVALID_INCORRECT_OPTIONS",
            f"incorrectOptions for {question.id} is not an object; ignored", question.id,
        ))
        return {}

    kept = {str(k): v.strip() for k, v in raw.items() if str(k) in valid_keys and _non_empty_str(v)}
    if len(kept) != len(raw):
        diagnostics.append(_warning(
            Stage.C, "INVALID_INCORRECT_OPTIONS",
            f"incorrectOptions for {question.id} has keys outside the wrong options; extras ignored",
            question.id,
        ))
    return dict(sorted(kept.items()))


def validate_explanations(obj: Any, quiz: QuizOutput) -> tuple[Optional[ExplanationsOutput], DiagnosticList]:
    """Validate Stage C explanations against the quiz they explain.

    Every quiz question id needs a non-empty explanation (error per missing
    id). Explanations for ids not in the quiz are warnings and are dropped.

    Args:
        obj: Parsed JSON value from the Stage C payload.
        quiz: The validated quiz.

    Returns:
        (ExplanationsOutput or None, diagnostics)
    """
    stage = Stage.C
    diagnostics: DiagnosticList = []

    entries = _explanation_entries(obj)
    if entries is None:
        diagnostics.append(_error(stage, "MISSING_EXPLANATIONS", "Explanations must be an array or an object keyed by question id"))
        return None, diagnostics

    questions = {q.id: q for q in quiz.questions}
    explained: dict[str, QuestionExplanation] = {}

    for qid, entry in entries:
        if qid not in questions:
            diagnostics.append(_warning(
                stage, "UNKNOWN_QUESTION_ID",
                f"Explanation references non-existent question: {qid or '<missing id>'}",
                qid or None,
            ))
            continue

        if qid in explained:
            diagnostics.append(_warning(stage, "DUPLICATE_EXPLANATION", f"Duplicate explanation for {qid}; first kept", qid))
            continue

        text = _entry_text(entry)
        if not _non_empty_str(text):
            # Reported as missing below
            continue

        explained[qid] = QuestionExplanation(
            explanation=text.strip(),
            incorrect_options=_incorrect_options(entry, questions[qid], diagnostics),
        )

    for qid in questions:
        if qid not in explained:
            diagnostics.append(_error(stage, "MISSING_EXPLANATION", f"No explanation for question: {qid}", qid))

    if _has_errors(diagnostics):
        return None, diagnostics

    ordered = {qid: explained[qid] for qid in questions}
    return ExplanationsOutput(explanations=ordered), diagnostics
