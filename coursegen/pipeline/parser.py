"""Turn raw stage text into validated artifacts.

Parsing is a pure function of the raw text and the run config: the same
triple of raw outputs always yields the same artifacts and the same
diagnostics list. Nothing in here raises on bad model output; failures are
reported as error diagnostics.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import structlog

from coursegen.models import (
    CourseMeta,
    DiagnosticWarning,
    ExplanationsOutput,
    FailureCategory,
    PipelineConfig,
    QuizOutput,
    Severity,
    Stage,
)
from coursegen.pipeline.extraction import (
    ParseError,
    RepairResult,
    extract_json_block,
    extract_markdown_content,
    repair_json,
)
from coursegen.pipeline.prompts import resolve_question_count
from coursegen.pipeline.validation import (
    validate_course_meta,
    validate_explanations,
    validate_quiz,
)

logger = structlog.get_logger(__name__)

HTML_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
REVIEWER_NOTE_RE = re.compile(r"^[ \t]*\[(?:REVIEWER|INTERNAL|NOTE:)[^\n]*\n?", re.IGNORECASE | re.MULTILINE)
EXCESS_BLANK_LINES_RE = re.compile(r"\n{3,}")

# Wrapper keys a model sometimes puts around the payload
PAYLOAD_KEYS = {
    Stage.A: "courseMeta",
    Stage.B: "quiz",
}


@dataclass
class StageParse:
    """Outcome of parsing one stage's raw text."""

    stage: Stage
    diagnostics: list[DiagnosticWarning] = field(default_factory=list)
    repairs: list[str] = field(default_factory=list)
    course_markdown: Optional[str] = None
    course_meta: Optional[CourseMeta] = None
    quiz: Optional[QuizOutput] = None
    explanations: Optional[ExplanationsOutput] = None
    failure: Optional[FailureCategory] = None

    @property
    def success(self) -> bool:
        return self.failure is None

    @property
    def first_error(self) -> Optional[DiagnosticWarning]:
        return next((d for d in self.diagnostics if d.is_error), None)

    def error_message(self) -> str:
        error = self.first_error
        return error.message if error else f"Stage {self.stage.value} failed"


@dataclass
class ParseResult:
    """Artifacts and diagnostics from parsing all three raw stage texts."""

    course_markdown: Optional[str] = None
    course_meta: Optional[CourseMeta] = None
    quiz: Optional[QuizOutput] = None
    explanations: Optional[ExplanationsOutput] = None
    diagnostics: list[DiagnosticWarning] = field(default_factory=list)
    repairs: dict[Stage, list[str]] = field(default_factory=dict)
    failures: dict[Stage, StageParse] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return (
            not self.failures
            and self.course_markdown is not None
            and self.course_meta is not None
            and self.quiz is not None
            and self.explanations is not None
        )


def sanitize_course_markdown(markdown: str) -> str:
    """Strip HTML comments and reviewer/internal note lines from course text."""
    cleaned = HTML_COMMENT_RE.sub("", markdown)
    cleaned = REVIEWER_NOTE_RE.sub("", cleaned)
    cleaned = EXCESS_BLANK_LINES_RE.sub("\n\n", cleaned)
    return cleaned.strip()


def _error(stage: Stage, code: str, message: str) -> DiagnosticWarning:
    return DiagnosticWarning(stage=stage, severity=Severity.ERROR, code=code, message=message)


def _load_payload(raw: str, result: StageParse, config: PipelineConfig) -> Optional[RepairResult]:
    """Extract and repair the JSON payload. Records a failure on result."""
    stage = result.stage
    block = extract_json_block(raw)
    if block is None:
        result.diagnostics.append(_error(stage, "NO_JSON_BLOCK", f"No JSON found in Stage {stage.value} output"))
        result.failure = FailureCategory.PARSE
        return None

    try:
        repaired = repair_json(block.text, enabled=config.repair)
    except ParseError as e:
        attempted = ", ".join(e.attempted) or "none"
        result.diagnostics.append(_error(
            stage, "JSON_PARSE_ERROR",
            f"Stage {stage.value} JSON could not be parsed (heuristics tried: {attempted}): {e}",
        ))
        result.failure = FailureCategory.PARSE
        return None

    if repaired.was_repaired:
        result.repairs.extend(repaired.repairs)
        result.diagnostics.append(DiagnosticWarning(
            stage=stage,
            severity=Severity.WARNING,
            code="JSON_REPAIRED",
            message=f"Stage {stage.value} JSON needed repair: {', '.join(repaired.repairs)}",
        ))
        logger.info("stage_json_repaired", stage=stage.value, repairs=list(repaired.repairs))

    return repaired


def _unwrap(stage: Stage, value: Any) -> Any:
    wrapper = PAYLOAD_KEYS.get(stage)
    if wrapper and isinstance(value, dict) and isinstance(value.get(wrapper), (dict, list)) and len(value) == 1:
        return value[wrapper]
    return value


def _validate_payload(
    result: StageParse,
    repaired: RepairResult,
    validate: Callable[[Any], tuple[Any, list[DiagnosticWarning]]],
) -> tuple[Any, list[DiagnosticWarning]]:
    """Validate the repaired payload, backing off past a truncated last element.

    Output cut off mid-element usually parses once its string and brackets
    are closed, but the final element is incomplete and fails validation.
    The truncation cut-back candidates are then tried in order and the first
    that validates wins, so the complete elements before the cut survive.
    """
    artifact, diagnostics = validate(_unwrap(result.stage, repaired.value))
    if artifact is not None:
        return artifact, diagnostics

    for value in repaired.alternative_values():
        fallback, fallback_diagnostics = validate(_unwrap(result.stage, value))
        if fallback is None:
            continue
        result.repairs.append("drop_partial_element")
        result.diagnostics.append(DiagnosticWarning(
            stage=result.stage,
            severity=Severity.WARNING,
            code="TRUNCATED_ELEMENT_DROPPED",
            message=f"Stage {result.stage.value} output was cut off; the incomplete last element was dropped",
        ))
        logger.info("truncated_element_dropped", stage=result.stage.value)
        return fallback, fallback_diagnostics

    if repaired.alternatives:
        result.diagnostics.append(_error(
            result.stage, "TRUNCATED_OUTPUT",
            f"Stage {result.stage.value} output was cut off and no valid prefix of it could be recovered",
        ))
        result.failure = FailureCategory.PARSE
    return artifact, diagnostics


def _finish(result: StageParse, artifact: Any, diagnostics: list[DiagnosticWarning]) -> StageParse:
    result.diagnostics.extend(diagnostics)
    if artifact is None and result.failure is None:
        result.failure = FailureCategory.VALIDATION
    return result


# =============================================================================
# Per-stage parsing
# =============================================================================

def parse_stage_a(raw: str, config: PipelineConfig) -> StageParse:
    """Parse Architect output into course markdown and CourseMeta.

    Args:
        raw: Raw Stage A model text.
        config: Run configuration (repair and sanitize switches).

    Returns:
        StageParse with course_markdown and course_meta on success.
    """
    result = StageParse(stage=Stage.A)

    markdown = extract_markdown_content(raw)
    if config.sanitize_course:
        markdown = sanitize_course_markdown(markdown)

    repaired = _load_payload(raw, result, config)
    if repaired is None:
        return result

    if not markdown:
        result.diagnostics.append(_error(Stage.A, "MISSING_COURSE_CONTENT", "Stage A produced no course markdown"))
        result.failure = FailureCategory.VALIDATION
        return result

    course_meta, diagnostics = _validate_payload(result, repaired, validate_course_meta)
    result.course_markdown = markdown
    result.course_meta = course_meta
    return _finish(result, course_meta, diagnostics)


def parse_stage_b(
    raw: str,
    config: PipelineConfig,
    course_meta: Optional[CourseMeta] = None,
) -> StageParse:
    """Parse Inspector output into a QuizOutput.

    The expected question count is config.num_questions, or the count
    derived from course_meta when that is unset.
    """
    result = StageParse(stage=Stage.B)

    repaired = _load_payload(raw, result, config)
    if repaired is None:
        return result

    expected = (
        resolve_question_count(config, course_meta)
        if config.num_questions or course_meta
        else None
    )
    quiz, diagnostics = _validate_payload(
        result, repaired,
        lambda payload: validate_quiz(payload, expected_count=expected, course_meta=course_meta),
    )
    result.quiz = quiz
    return _finish(result, quiz, diagnostics)


def parse_stage_c(raw: str, quiz: QuizOutput, config: Optional[PipelineConfig] = None) -> StageParse:
    """Parse Teacher output into ExplanationsOutput keyed to the quiz."""
    result = StageParse(stage=Stage.C)

    repaired = _load_payload(raw, result, config or PipelineConfig())
    if repaired is None:
        return result

    explanations, diagnostics = _validate_payload(
        result, repaired, lambda payload: validate_explanations(payload, quiz)
    )
    result.explanations = explanations
    return _finish(result, explanations, diagnostics)


# =============================================================================
# Whole-run parsing
# =============================================================================

def parse_pipeline(raw_a: str, raw_b: str, raw_c: str, config: PipelineConfig) -> ParseResult:
    """Parse all three raw stage texts into artifacts and diagnostics.

    Stage B is parsed against Stage A's metadata and Stage C against Stage
    B's quiz; a stage whose upstream artifact is missing is not parsed.

    Args:
        raw_a: Raw Architect output.
        raw_b: Raw Inspector output.
        raw_c: Raw Teacher output.
        config: Run configuration.

    Returns:
        ParseResult. Deterministic for identical inputs.
    """
    parsed = ParseResult()

    def _collect(stage_parse: StageParse) -> None:
        parsed.diagnostics.extend(stage_parse.diagnostics)
        if stage_parse.repairs:
            parsed.repairs[stage_parse.stage] = list(stage_parse.repairs)
        if not stage_parse.success:
            parsed.failures[stage_parse.stage] = stage_parse

    a = parse_stage_a(raw_a, config)
    _collect(a)
    parsed.course_markdown = a.course_markdown
    parsed.course_meta = a.course_meta

    b = parse_stage_b(raw_b, config, a.course_meta)
    _collect(b)
    parsed.quiz = b.quiz

    if b.quiz is not None:
        c = parse_stage_c(raw_c, b.quiz, config)
        _collect(c)
        parsed.explanations = c.explanations

    logger.info(
        "pipeline_parsed",
        complete=parsed.complete,
        diagnostics=len(parsed.diagnostics),
        failed_stages=[s.value for s in parsed.failures],
    )
    return parsed
