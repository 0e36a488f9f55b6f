"""Diagnostics collection and quiz coverage statistics."""

from datetime import datetime
from typing import Iterable, Optional

import structlog

from coursegen.models import (
    OPTIONS_PER_QUESTION,
    Coverage,
    CourseMeta,
    Diagnostics,
    DiagnosticWarning,
    QuizOutput,
    RunStatus,
    Stage,
    StageDiagnostics,
)

logger = structlog.get_logger(__name__)


def compute_coverage(quiz: Optional[QuizOutput], course_meta: Optional[CourseMeta]) -> Coverage:
    """Compute correct-answer distribution and objective coverage.

    Args:
        quiz: Validated quiz, if any.
        course_meta: Validated course metadata, if any.

    Returns:
        Coverage statistics. Empty when the quiz is missing.
    """
    if quiz is None:
        return Coverage()

    distribution = {i: 0 for i in range(OPTIONS_PER_QUESTION)}
    for question in quiz.questions:
        distribution[question.correct_answer_index] += 1

    covered = {q.objective_index for q in quiz.questions if q.objective_index is not None}
    objective_count = len(course_meta.objectives) if course_meta else 0
    uncovered = [i for i in range(objective_count) if i not in covered]

    return Coverage(
        correct_answer_distribution=distribution,
        objectives_with_questions=objective_count - len(uncovered),
        objectives_without_questions=uncovered,
    )


class DiagnosticsCollector:
    """Accumulates warnings, errors and repairs for one run.

    Owned by a single run; never shared.
    """

    def __init__(self):
        self._items: list[DiagnosticWarning] = []
        self._repairs: dict[Stage, list[str]] = {}
        self._stages: dict[Stage, StageDiagnostics] = {}

    def add(self, diagnostic: DiagnosticWarning) -> None:
        self._items.append(diagnostic)

    def extend(self, diagnostics: Iterable[DiagnosticWarning]) -> None:
        for diagnostic in diagnostics:
            self.add(diagnostic)

    def add_repairs(self, stage: Stage, repairs: Iterable[str]) -> None:
        repairs = list(repairs)
        if repairs:
            self._repairs.setdefault(stage, []).extend(repairs)

    def record_stage(self, stage: Stage, success: bool, duration_ms: int, raw_char_count: int) -> None:
        self._stages[stage] = StageDiagnostics(
            success=success,
            duration_ms=duration_ms,
            raw_char_count=raw_char_count,
        )

    @property
    def warnings(self) -> list[DiagnosticWarning]:
        return [d for d in self._items if not d.is_error]

    @property
    def errors(self) -> list[DiagnosticWarning]:
        return [d for d in self._items if d.is_error]

    @property
    def has_errors(self) -> bool:
        return any(d.is_error for d in self._items)

    @property
    def has_warnings(self) -> bool:
        return any(not d.is_error for d in self._items)

    def classify(self) -> RunStatus:
        """Terminal status implied by the collected diagnostics."""
        if self.has_errors:
            return RunStatus.FAILED
        if self.has_warnings:
            return RunStatus.COMPLETED_WITH_WARNINGS
        return RunStatus.COMPLETED

    def build(
        self,
        run_id: str,
        prompt_version: str,
        started_at: datetime,
        completed_at: datetime,
        status: Optional[RunStatus] = None,
        coverage: Optional[Coverage] = None,
    ) -> Diagnostics:
        """Freeze the collected state into a Diagnostics bundle.

        Args:
            run_id: Run identifier.
            prompt_version: Prompt version used for the run.
            started_at: Run start time.
            completed_at: Run end time.
            status: Terminal status; derived from the diagnostics when omitted.
            coverage: Quiz coverage statistics.

        Returns:
            Diagnostics bundle.
        """
        diagnostics = Diagnostics(
            run_id=run_id,
            prompt_version=prompt_version,
            started_at=started_at,
            completed_at=completed_at,
            status=status or self.classify(),
            stages=dict(self._stages),
            warnings=self.warnings,
            errors=self.errors,
            repairs={stage: list(r) for stage, r in self._repairs.items()},
            coverage=coverage or Coverage(),
        )

        logger.debug(
            "diagnostics_built",
            run_id=run_id,
            warnings=len(diagnostics.warnings),
            errors=len(diagnostics.errors),
        )
        return diagnostics
