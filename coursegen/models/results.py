"""Diagnostics, stage results and the terminal pipeline result."""

from datetime import datetime
from typing import Optional

from pydantic import Field

from .artifacts import CourseMeta, ExplanationsOutput, QuizOutput
from .base import CamelModel
from .enums import FailureCategory, InvocationErrorKind, RunStatus, Severity, Stage

BUSY_MESSAGE = "AI service is busy. Please try again shortly."


# =============================================================================
# Diagnostics
# =============================================================================

class DiagnosticWarning(CamelModel):
    """A single warning or error found while parsing or validating a stage."""

    stage: Stage
    severity: Severity
    code: str
    message: str
    question_id: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR


class StageDiagnostics(CamelModel):
    """Per-stage invocation summary."""

    success: bool = False
    duration_ms: int = 0
    raw_char_count: int = 0


class Coverage(CamelModel):
    """Quiz coverage statistics."""

    correct_answer_distribution: dict[int, int] = Field(
        default_factory=lambda: {0: 0, 1: 0, 2: 0, 3: 0}
    )
    objectives_with_questions: int = 0
    objectives_without_questions: list[int] = Field(default_factory=list)


class Diagnostics(CamelModel):
    """Aggregated diagnostics bundle for one run."""

    run_id: str
    prompt_version: str
    started_at: datetime
    completed_at: datetime
    status: RunStatus
    stages: dict[Stage, StageDiagnostics] = Field(default_factory=dict)
    warnings: list[DiagnosticWarning] = Field(default_factory=list)
    errors: list[DiagnosticWarning] = Field(default_factory=list)
    repairs: dict[Stage, list[str]] = Field(default_factory=dict)
    coverage: Coverage = Field(default_factory=Coverage)


# =============================================================================
# Stage execution
# =============================================================================

class StageResult(CamelModel):
    """Outcome of a single model invocation for one stage. Never raised."""

    stage: Stage
    success: bool
    output: str = ""
    duration_ms: int = 0
    attempts: int = 0
    prompt_chars: int = 0
    model: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[InvocationErrorKind] = None


class StageError(CamelModel):
    """Fatal failure of a stage, as surfaced to callers."""

    stage: Stage
    category: FailureCategory
    message: str
    invocation_kind: Optional[InvocationErrorKind] = None

    @property
    def rate_limited(self) -> bool:
        return self.invocation_kind == InvocationErrorKind.RATE_LIMIT

    @property
    def user_message(self) -> str:
        return BUSY_MESSAGE if self.rate_limited else self.message


class RawStageOutput(CamelModel):
    """Raw model text for one stage, kept for debugging and regeneration."""

    output: str = ""
    duration_ms: int = 0
    prompt_chars: int = 0


class RawPipelineOutputs(CamelModel):
    """Raw text per stage. Retained even when the run fails."""

    run_id: str
    timestamp: datetime
    raw_a: RawStageOutput = Field(default_factory=RawStageOutput)
    raw_b: RawStageOutput = Field(default_factory=RawStageOutput)
    raw_c: RawStageOutput = Field(default_factory=RawStageOutput)

    def for_stage(self, stage: Stage) -> RawStageOutput:
        return {Stage.A: self.raw_a, Stage.B: self.raw_b, Stage.C: self.raw_c}[stage]


# =============================================================================
# Results
# =============================================================================

class PipelineResult(CamelModel):
    """The four validated artifacts plus diagnostics."""

    course_markdown: str
    course_meta: CourseMeta
    quiz: QuizOutput
    explanations: ExplanationsOutput
    diagnostics: Diagnostics


class FullPipelineResult(CamelModel):
    """Terminal, caller-owned result of run_full_pipeline."""

    success: bool
    status: RunStatus
    result: Optional[PipelineResult] = None
    stage_errors: dict[Stage, StageError] = Field(default_factory=dict)
    raw_outputs: RawPipelineOutputs
    diagnostics: Optional[Diagnostics] = None
    status_history: list[RunStatus] = Field(default_factory=list)

    @property
    def failed_stage(self) -> Optional[Stage]:
        for stage in Stage:
            if stage in self.stage_errors:
                return stage
        return None

    @property
    def user_message(self) -> Optional[str]:
        """Caller-facing message: retry guidance for rate limits, error text otherwise."""
        if self.success:
            return None
        stage = self.failed_stage
        if stage is not None:
            return self.stage_errors[stage].user_message
        if self.diagnostics and self.diagnostics.errors:
            return self.diagnostics.errors[0].message
        if self.diagnostics and self.diagnostics.warnings:
            return "Strict mode: run produced warnings"
        return "Pipeline failed"


class StageRegeneration(CamelModel):
    """Result of re-running exactly one stage from existing upstream artifacts."""

    stage: Stage
    run: StageResult
    course_markdown: Optional[str] = None
    course_meta: Optional[CourseMeta] = None
    quiz: Optional[QuizOutput] = None
    explanations: Optional[ExplanationsOutput] = None
    diagnostics: list[DiagnosticWarning] = Field(default_factory=list)
    repairs: list[str] = Field(default_factory=list)
    error: Optional[StageError] = None

    @property
    def success(self) -> bool:
        return self.error is None
